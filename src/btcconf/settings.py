"""节点设置：冻结的默认值、显式深度合并与持久化设置层的读写。"""  # 模块说明。
from __future__ import annotations  # 启用前向注解以提升类型兼容性。

# 导入 types.MappingProxyType 以构造只读的默认设置。
from types import MappingProxyType
# 导入 typing 以标注设置记录。
from typing import Any, Dict, Iterable, Mapping, Tuple

# 导入 jsonschema 的异常类型，结构不合法的设置层视为损坏。
from jsonschema import ValidationError

# 导入文件存储接口。
from src.btcconf.stores import IFileStore
# 导入读取错误与设置不合法错误类型。
from src.utils.errors import InvalidSettingsError, StorageReadError
# 导入结构化日志器。
from src.utils.logging import StructuredLogger, get_logger
# 导入持久化设置层的 schema 校验。
from src.utils.schema import validate_settings_layer

# 设置记录是 JSON 兼容的普通字典。
SettingsRecord = Dict[str, Any]

# 默认设置目录（network 的默认值由运行环境决定，见 build_default_settings）。
_DEFAULT_CATALOGUE: Dict[str, Any] = {
    # Peer Settings
    "clearnet": True,
    "torProxyForClearnet": False,
    "tor": True,
    "i2p": True,
    "incomingConnections": False,
    "peerblockfilters": True,
    "peerbloomfilters": False,
    "bantime": 86400,
    "maxconnections": 125,
    "maxreceivebuffer": 5000,
    "maxsendbuffer": 1000,
    "maxtimeadjustment": 4200,
    "peertimeout": 60,
    "timeout": 5000,
    "maxuploadtarget": 0,
    # Optimization
    "cacheSizeMB": 450,
    "mempoolFullRbf": False,
    "prune": {
        "enabled": False,
        "pruneSizeGB": 300,
    },
    "blockfilterindex": True,
    "maxmempool": 300,
    "mempoolexpiry": 336,
    "persistmempool": True,
    "datacarrier": True,
    "datacarriersize": 42,
    "permitbaremultisig": False,
    "rejectparasites": True,
    "rejecttokens": False,
    "minrelaytxfee": 0.00001,
    "bytespersigop": 20,
    "bytespersigopstrict": 20,
    "limitancestorcount": 25,
    "limitancestorsize": 101,
    "limitdescendantcount": 25,
    "limitdescendantsize": 101,
    "permitbarepubkey": False,
    "maxscriptsize": 1650,
    "datacarriercost": 1,
    "acceptnonstddatacarrier": False,
    "dustrelayfee": 0.00003,
    "blockmaxsize": 3985000,
    "blockmaxweight": 3985000,
    "blockreconstructionextratxn": 1000000,
    "maxorphantx": 100,
    "reindex": False,
    # RPC/REST
    "rest": False,
    "rpcworkqueue": 128,
}

# 允许逐字段合并的嵌套分组；其余任何值（包括未知对象）整体替换。
NESTED_GROUPS: Tuple[str, ...] = ("prune",)


def _freeze(value: Any) -> Any:
    """递归地把字典转换为只读映射。"""  # 工具函数说明。

    if isinstance(value, Mapping):
        return MappingProxyType({key: _freeze(item) for key, item in value.items()})
    return value


def _plain_copy(value: Any) -> Any:
    """深拷贝为普通 dict/list，只读映射也会被展开。"""  # 工具函数说明。

    if isinstance(value, Mapping):
        return {key: _plain_copy(item) for key, item in value.items()}
    if isinstance(value, list):
        return [_plain_copy(item) for item in value]
    return value


def build_default_settings(network: str = "main") -> Mapping[str, Any]:
    """构造进程级只读默认设置，启动时调用一次并注入 SettingsStore。"""  # 函数说明。

    catalogue = _plain_copy(_DEFAULT_CATALOGUE)
    catalogue["network"] = network  # Network Selection
    return _freeze(catalogue)


def default_keys() -> Iterable[str]:
    """返回默认设置目录中的全部顶层键（含 network）。"""  # 函数说明。

    return (*_DEFAULT_CATALOGUE.keys(), "network")


def deep_merge(base: Mapping[str, Any], incoming: Mapping[str, Any], nested_groups: Iterable[str] = NESTED_GROUPS) -> SettingsRecord:
    """右偏深度合并，返回新的普通字典，不修改也不引用任何输入。

    仅 nested_groups 中的键在两侧都是映射时逐字段递归合并；
    标量、列表、None 以及未知的嵌套对象都由 incoming 的值整体替换。
    """  # 函数说明。

    groups = tuple(nested_groups)
    result: SettingsRecord = {key: _plain_copy(value) for key, value in base.items()}
    for key, value in incoming.items():
        current = result.get(key)
        if key in groups and isinstance(value, Mapping) and isinstance(current, Mapping):
            result[key] = deep_merge(current, value, nested_groups=())  # 分组内部只有标量。
        else:
            result[key] = _plain_copy(value)
    return result


class SettingsStore:
    """在冻结默认值之上叠加持久化设置层。

    merge_and_persist 是非原子的读-改-写：两次重叠调用可能丢失其中一次更新，
    这里不加锁，调用方需自行保证单写者。
    """  # 类说明。

    def __init__(
        self,
        defaults: Mapping[str, Any],
        store: IFileStore,
        path: str,
        logger: StructuredLogger | None = None,
    ) -> None:
        self._defaults = defaults
        self._store = store
        self._path = path
        self._logger = logger or get_logger(quiet=True)

    @property
    def defaults(self) -> Mapping[str, Any]:
        return self._defaults

    @property
    def path(self) -> str:
        return self._path

    def read_layer(self) -> SettingsRecord:
        """读取持久化设置层；任何读取失败（缺失、损坏、结构不符）都回退为空层。"""  # 方法说明。

        try:
            payload = self._store.read_json(self._path)
            validate_settings_layer(payload)
        except StorageReadError as exc:
            if isinstance(exc.__cause__, FileNotFoundError):
                self._logger.debug("settings layer missing", path=self._path)
            else:
                self._logger.warning("settings layer unreadable, using defaults", path=self._path, error=str(exc))
            return {}
        except ValidationError as exc:
            # 与读取失败走同一回退路径：损坏但可修复的文件也会被忽略。
            self._logger.warning("settings layer malformed, using defaults", path=self._path, error=exc.message)
            return {}
        return payload

    def load(self) -> SettingsRecord:
        """返回默认值与持久化设置层合并后的完整设置记录，只读。"""  # 方法说明。

        return deep_merge(self._defaults, self.read_layer())

    def prepare(self, update: Mapping[str, Any]) -> Tuple[SettingsRecord, SettingsRecord]:
        """计算新的设置层与应用默认值后的完整记录，不写盘。

        合并后的设置层必须能通过与读取时相同的结构校验，否则抛出
        InvalidSettingsError，调用方不会写入任何文件。
        """  # 方法说明。

        layer = deep_merge(self.read_layer(), update)
        try:
            validate_settings_layer(layer)
        except ValidationError as exc:
            key = ".".join(str(part) for part in exc.absolute_path) or None
            label = key or "<root>"  # 非对象载荷没有键路径。
            raise InvalidSettingsError(f"invalid value for setting {label}: {exc.message}", key=key) from exc
        return layer, deep_merge(self._defaults, layer)

    def persist(self, layer: Mapping[str, Any]) -> None:
        """整体写回设置层，写入失败以 StorageWriteError 向上传播。"""  # 方法说明。

        self._store.write_json(self._path, _plain_copy(layer))
        self._logger.info("settings persisted", path=self._path, keys=len(layer))

    def merge_and_persist(self, update: Mapping[str, Any]) -> SettingsRecord:
        """合并更新并写回设置层，返回应用默认值后的完整记录。"""  # 方法说明。

        layer, record = self.prepare(update)
        self.persist(layer)
        return record
