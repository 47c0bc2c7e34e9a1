"""定义配置管理流程使用的错误类型与分类辅助函数。"""  # 模块说明。
# 导入 typing 以标注可选路径属性。
from typing import Optional

# 定义所有错误的公共基类，便于调用方统一捕获。
class SettingsError(Exception):
    """配置管理流程中所有自定义异常的基类。"""  # 类说明。

# 定义存储层错误基类，携带出错的文件路径。
class StorageError(SettingsError):
    """文件存储读写失败时抛出的异常基类。"""  # 类说明。

    def __init__(self, message: str, path: Optional[str] = None) -> None:
        """保存错误信息与关联路径。"""  # 方法说明。
        super().__init__(message)
        self.path = path  # 记录出错的路径，便于日志输出。

# 读取失败：文件缺失、无法读取或内容损坏。
class StorageReadError(StorageError):
    """读取失败，持久化设置层会在本地回退为空层。"""  # 类说明。

# 写入失败：磁盘已满、权限不足等，必须向上传播。
class StorageWriteError(StorageError):
    """写入失败，不做任何恢复，交由调用方处理。"""  # 类说明。

# 渲染失败：设置记录不完整，属于编程错误。
class RenderError(SettingsError):
    """设置记录缺少必需键时抛出，不应被捕获或掩盖。"""  # 类说明。

# 设置更新不合法：合并后的设置层无法通过结构校验，拒绝写盘。
class InvalidSettingsError(SettingsError):
    """设置更新的键类型不符时抛出，携带出错的键路径。"""  # 类说明。

    def __init__(self, message: str, key: Optional[str] = None) -> None:
        """保存错误信息与出错的键。"""  # 方法说明。
        super().__init__(message)
        self.key = key  # 例如 "rest" 或 "prune.enabled"。

# 定义异常分类函数，帮助 CLI 输出错误类别。
def classify_exception(exc: BaseException) -> str:
    """根据异常类型返回 read/write/render/invalid/unknown 标签。"""  # 函数说明。
    if isinstance(exc, StorageReadError):
        return "read"
    if isinstance(exc, StorageWriteError):
        return "write"
    if isinstance(exc, RenderError):
        return "render"
    if isinstance(exc, InvalidSettingsError):
        return "invalid"
    # 未包装的权限错误一律视为写入问题。
    if isinstance(exc, PermissionError):
        return "write"
    return "unknown"
