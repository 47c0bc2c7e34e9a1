"""bitcoind 设置管理：默认值、合并、渲染与配置文件维护。"""
# 导出服务与编排入口，供 CLI 及嵌入方直接使用。
from .environment import NodeEnvironment
from .pipeline import ApplyResult, BitcoinConfigService, apply_custom, apply_default, apply_settings
from .settings import SettingsStore, build_default_settings, deep_merge

__all__ = [
    "ApplyResult",
    "BitcoinConfigService",
    "NodeEnvironment",
    "SettingsStore",
    "apply_custom",
    "apply_default",
    "apply_settings",
    "build_default_settings",
    "deep_merge",
]
