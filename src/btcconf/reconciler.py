"""比对与写入受管配置文件，并在用户的 bitcoin.conf 中维护 includeconf 指令。"""  # 模块说明。
from __future__ import annotations  # 启用前向注解以提升类型兼容性。

# 导入 typing 以标注设置记录。
from typing import Any, Mapping

# 导入运行环境常量与渲染函数。
from src.btcconf.environment import NodeEnvironment
from src.btcconf.renderer import render_config
# 导入文件存储接口。
from src.btcconf.stores import IFileStore
# 导入结构化日志器。
from src.utils.logging import StructuredLogger, get_logger

INCLUDE_COMMENT = "# Load additional configuration file, relative to the data directory."

# reconcile_includer_config 的返回值，描述对 includer 文件做了什么。
INCLUDER_CREATED = "created"
INCLUDER_OVERWRITTEN = "overwritten"
INCLUDER_PREPENDED = "prepended"
INCLUDER_UNCHANGED = "unchanged"


def include_directive(managed_file_base_name: str) -> str:
    """返回注释 + includeconf 两行组成的指令文本（不含末尾换行）。"""  # 函数说明。
    return f"{INCLUDE_COMMENT}\nincludeconf={managed_file_base_name}"


class ConfigReconciler:
    """受管文件完全归本系统所有；includer 文件只保证包含指令，其余内容不动。

    两个文件的写入彼此独立，不具备事务性。读写失败分别以
    StorageReadError / StorageWriteError 原样向上传播。
    """  # 类说明。

    def __init__(self, store: IFileStore, env: NodeEnvironment, logger: StructuredLogger | None = None) -> None:
        self._store = store
        self._env = env
        self._logger = logger or get_logger(quiet=True)

    @property
    def managed_path(self) -> str:
        return self._env.managed_conf_path

    @property
    def includer_path(self) -> str:
        return self._env.includer_conf_path

    def render(self, record: Mapping[str, Any]) -> str:
        return render_config(record, self._env)

    def read_managed_config(self) -> str:
        """读取受管文件，不存在时返回空字符串。"""  # 方法说明。
        if not self._store.exists(self.managed_path):
            return ""
        return self._store.read_text(self.managed_path)

    def is_managed_config_up_to_date(self, record: Mapping[str, Any]) -> bool:
        """渲染结果与磁盘上的受管文件逐字节相同则无需重新生成与重启守护进程。"""  # 方法说明。
        up_to_date = self.render(record) == self.read_managed_config()
        if not up_to_date:
            self._logger.info("managed config stale", path=self.managed_path)
        return up_to_date

    def write_managed_text(self, text: str) -> None:
        """整体覆盖受管文件。"""  # 方法说明。
        self._store.write_text(self.managed_path, text)
        self._logger.info("managed config written", path=self.managed_path, bytes=len(text.encode("utf-8")))

    def write_managed_config(self, record: Mapping[str, Any]) -> str:
        """渲染并无条件覆盖受管文件，返回写入的文本。"""  # 方法说明。
        text = self.render(record)
        self.write_managed_text(text)
        return text

    def reconcile_includer_config(self, managed_file_base_name: str | None = None, force_overwrite: bool = False) -> str:
        """确保 includer 文件引用受管文件，返回 created/overwritten/prepended/unchanged。"""  # 方法说明。
        base_name = managed_file_base_name or self._env.managed_conf_name
        directive = include_directive(base_name)
        path = self.includer_path
        exists = self._store.exists(path)
        if not exists or force_overwrite:
            # 缺失或要求重置时只写指令本身，丢弃原有内容。
            self._store.write_text(path, directive)
            action = INCLUDER_OVERWRITTEN if exists else INCLUDER_CREATED
        else:
            existing = self._store.read_text(path)
            if directive in existing:
                action = INCLUDER_UNCHANGED
            else:
                self._store.write_text(path, f"{directive}\n{existing}")
                action = INCLUDER_PREPENDED
        self._logger.info(f"includer config {action}", path=path, include=base_name)
        return action
