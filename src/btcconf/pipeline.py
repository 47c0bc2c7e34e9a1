"""设置应用编排：合并并持久化设置、渲染受管配置、维护 includer 文件。"""  # 模块说明。
from __future__ import annotations  # 启用前向注解以提升类型兼容性。

import time  # 导入 time 以测量一次应用的耗时。
from dataclasses import dataclass  # 导入 dataclass 用于结构化结果。
from typing import Any, Dict, Mapping, Optional

from src.btcconf.environment import NodeEnvironment
from src.btcconf.reconciler import ConfigReconciler
from src.btcconf.settings import SettingsRecord, SettingsStore, build_default_settings
from src.btcconf.stores import IFileStore, create_file_store
from src.utils.concurrency import TaskGroupError, run_all
from src.utils.logging import StructuredLogger, bind_context, get_logger, new_trace_id


@dataclass
class ApplyResult:
    """一次设置应用的结果。"""  # 类说明。

    settings: SettingsRecord  # 应用默认值后的完整设置记录。
    config_text: str  # 写入受管文件的文本。
    includer_action: str  # includer 文件的处理结果。
    trace_id: str  # 本次应用的 TraceID，与日志对应。
    duration_sec: float  # 从读取设置层到三次写入全部完成的耗时。


def apply_settings(
    settings_store: SettingsStore,
    reconciler: ConfigReconciler,
    update: Mapping[str, Any],
    force_overwrite: bool,
    logger: StructuredLogger | None = None,
) -> ApplyResult:
    """合并更新后同时发出三次写入并等待全部完成。

    三次写入（设置层、受管配置、includer 配置）互不等待；进程在中途崩溃可能让
    三个文件彼此不一致，下次加载时以幸存的设置层为准重新推导。任一写入失败时，
    等其余写入结束后按提交顺序重新抛出第一个异常，绝不报告成功。
    """  # 函数说明。

    trace_id = new_trace_id()
    run_logger = bind_context(logger or get_logger(quiet=True), trace_id=trace_id)
    started = time.monotonic()
    layer, record = settings_store.prepare(update)
    text = reconciler.render(record)
    run_logger.debug("settings merged", keys=len(layer), force_overwrite=force_overwrite)
    try:
        _, _, includer_action = run_all(
            [
                ("persist settings", lambda: settings_store.persist(layer)),
                ("write managed config", lambda: reconciler.write_managed_text(text)),
                (
                    "reconcile includer config",
                    lambda: reconciler.reconcile_includer_config(force_overwrite=force_overwrite),
                ),
            ]
        )
    except TaskGroupError as group:
        run_logger.error("apply writes failed", failed=[name for name, _ in group.errors], error=str(group.first))
        raise group.first
    duration = time.monotonic() - started
    run_logger.info("settings applied", includer=includer_action, duration_sec=round(duration, 4))
    return ApplyResult(
        settings=record,
        config_text=text,
        includer_action=includer_action,
        trace_id=trace_id,
        duration_sec=duration,
    )


def apply_custom(
    settings_store: SettingsStore,
    reconciler: ConfigReconciler,
    update: Mapping[str, Any],
    logger: StructuredLogger | None = None,
) -> ApplyResult:
    """部分更新：保留用户在 includer 文件中的其他内容。"""  # 函数说明。
    return apply_settings(settings_store, reconciler, update, False, logger=logger)


def apply_default(
    settings_store: SettingsStore,
    reconciler: ConfigReconciler,
    logger: StructuredLogger | None = None,
) -> ApplyResult:
    """以默认值覆盖全部已知键，并强制重写 includer 文件。

    设置层中不在默认目录里的键会保留下来（它们不参与渲染）。
    """  # 函数说明。
    return apply_settings(settings_store, reconciler, settings_store.defaults, True, logger=logger)


class BitcoinConfigService:
    """对外暴露的设置操作：查询、应用自定义设置、重置为默认、检查受管配置。"""  # 类说明。

    def __init__(
        self,
        env: NodeEnvironment,
        file_store: IFileStore,
        logger: StructuredLogger | None = None,
        defaults: Optional[Mapping[str, Any]] = None,
    ) -> None:
        self.env = env
        self.file_store = file_store
        self.logger = logger or get_logger(quiet=True)
        # 默认设置在构造时冻结一次，之后只读。
        self.defaults = defaults if defaults is not None else build_default_settings(env.default_chain)
        self.settings_store = SettingsStore(self.defaults, file_store, env.settings_file, logger=self.logger)
        self.reconciler = ConfigReconciler(file_store, env, logger=self.logger)

    @classmethod
    def from_config(
        cls,
        config: Mapping[str, Any],
        logger: StructuredLogger | None = None,
        file_store: IFileStore | None = None,
    ) -> "BitcoinConfigService":
        """根据应用配置字典构造服务；未传入存储时按 config["store"] 创建。"""  # 方法说明。
        env = NodeEnvironment.from_config(config)
        store = file_store if file_store is not None else create_file_store(config.get("store", "local"))
        return cls(env, store, logger=logger)

    def get_current_settings(self) -> SettingsRecord:
        return self.settings_store.load()

    def apply_custom_settings(self, partial_update: Mapping[str, Any]) -> ApplyResult:
        """在现有设置层上合并部分更新；includer 文件仅在缺少指令时补写。"""  # 方法说明。
        return apply_custom(self.settings_store, self.reconciler, partial_update, logger=self.logger)

    def reset_to_default_settings(self) -> ApplyResult:
        """以默认值覆盖所有已知键，并把 includer 文件重置为只含指令。"""  # 方法说明。
        return apply_default(self.settings_store, self.reconciler, logger=self.logger)

    def check_managed_config_up_to_date(self, record: Optional[Mapping[str, Any]] = None) -> bool:
        """未提供记录时以当前设置为准。"""  # 方法说明。
        return self.reconciler.is_managed_config_up_to_date(record if record is not None else self.get_current_settings())

    def render_current_config(self) -> str:
        return self.reconciler.render(self.get_current_settings())

    def describe(self) -> Dict[str, str]:
        """返回受管文件路径，供 CLI 输出。"""  # 方法说明。
        return {
            "settings_file": self.env.settings_file,
            "managed_conf": self.env.managed_conf_path,
            "includer_conf": self.env.includer_conf_path,
        }
