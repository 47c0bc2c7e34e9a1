"""内存文件存储：记录每次写入，可选地透读到另一个存储。"""
# 导入 copy 以隔离调用方传入的 JSON 记录。
import copy
# 导入 json 以在内存中保持与磁盘一致的序列化语义。
import json
# 导入 threading 以保护并发写入下的内部字典。
import threading
# 导入 dataclass 以定义写入记录结构。
from dataclasses import dataclass
# 导入 typing 用于类型注释。
from typing import Any, Dict, List, Optional

# 从同目录的 base 模块导入接口基类。
from .base import IFileStore
# 导入错误类型以模拟缺失文件与损坏内容。
from src.utils.errors import StorageReadError, StorageWriteError

# 定义存储名称常量，供注册表使用。
MEMORY_NAME = "memory"


@dataclass
class WriteRecord:
    """一次写入操作的快照。"""

    path: str  # 被写入的路径。
    content: str  # 写入后的完整文本。


class MemoryFileStore(IFileStore):
    """在字典中保存文件内容；dry-run 时叠加在本地存储之上只读透传。"""

    def __init__(self, files: Optional[Dict[str, str]] = None, fallback: Optional[IFileStore] = None) -> None:
        self.files: Dict[str, str] = dict(files or {})  # 路径到文本内容的映射。
        self.fallback = fallback  # 本地缺失时透读的下层存储。
        self.writes: List[WriteRecord] = []  # 按发生顺序记录全部写入。
        self.fail_writes: set[str] = set()  # 测试用：对这些路径的写入直接失败。
        self._lock = threading.Lock()  # 编排器会在多个线程中并发写入。

    def exists(self, path: str) -> bool:
        with self._lock:
            if path in self.files:
                return True
        return self.fallback.exists(path) if self.fallback is not None else False

    def read_text(self, path: str) -> str:
        with self._lock:
            if path in self.files:
                return self.files[path]
        if self.fallback is not None:
            return self.fallback.read_text(path)
        raise StorageReadError(f"no such file: {path}", path=path) from FileNotFoundError(path)

    def read_json(self, path: str) -> Any:
        text = self.read_text(path)
        try:
            return json.loads(text)
        except json.JSONDecodeError as exc:
            raise StorageReadError(f"malformed JSON in {path}: {exc}", path=path) from exc

    def write_text(self, path: str, content: str) -> None:
        if path in self.fail_writes:
            raise StorageWriteError(f"cannot write {path}: simulated failure", path=path)
        with self._lock:
            self.files[path] = content
            self.writes.append(WriteRecord(path=path, content=content))

    def write_json(self, path: str, record: Any) -> None:
        try:
            text = json.dumps(copy.deepcopy(record), ensure_ascii=False, indent=2)
        except (TypeError, ValueError) as exc:
            raise StorageWriteError(f"cannot serialise {path}: {exc}", path=path) from exc
        self.write_text(path, text)

    def writes_to(self, path: str) -> List[WriteRecord]:
        """返回针对某一路径的写入记录。"""
        with self._lock:
            return [record for record in self.writes if record.path == path]
