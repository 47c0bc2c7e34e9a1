"""基于本地磁盘的文件存储实现，写入均为原子替换。"""
# 导入 json 以识别解析错误类型。
import json
# 导入 typing 的 Any 用于标注 JSON 负载。
from typing import Any

# 从同目录的 base 模块导入接口基类。
from .base import IFileStore
# 导入错误类型，将底层 OSError 包装为存储错误。
from src.utils.errors import StorageReadError, StorageWriteError
# 导入 I/O 工具执行原子写入与 UTF-8 读取。
from src.utils.io import atomic_write_json, atomic_write_text, file_exists, read_json_file, read_text_utf8

# 定义存储名称常量，供注册表使用。
LOCAL_NAME = "local"


class LocalFileStore(IFileStore):
    """直接读写磁盘文件，路径按原样使用（通常为绝对路径）。"""

    def exists(self, path: str) -> bool:
        return file_exists(path)

    def read_text(self, path: str) -> str:
        try:
            return read_text_utf8(path)
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageReadError(f"cannot read {path}: {exc}", path=path) from exc

    def read_json(self, path: str) -> Any:
        try:
            return read_json_file(path)
        except json.JSONDecodeError as exc:
            # 损坏的 JSON 与缺失文件同属读取失败。
            raise StorageReadError(f"malformed JSON in {path}: {exc}", path=path) from exc
        except (OSError, UnicodeDecodeError) as exc:
            raise StorageReadError(f"cannot read {path}: {exc}", path=path) from exc

    def write_text(self, path: str, content: str) -> None:
        try:
            atomic_write_text(path, content)
        except OSError as exc:
            raise StorageWriteError(f"cannot write {path}: {exc}", path=path) from exc

    def write_json(self, path: str, record: Any) -> None:
        try:
            atomic_write_json(path, record)
        except (OSError, TypeError, ValueError) as exc:
            raise StorageWriteError(f"cannot write {path}: {exc}", path=path) from exc
