"""定义所有文件存储共同遵循的抽象接口。"""
# 导入 abc 模块中的 ABC 与 abstractmethod，用于声明抽象基类。
from abc import ABC, abstractmethod
# 导入 typing 的 Any 用于标注 JSON 负载。
from typing import Any

# 定义统一的抽象基类，本地磁盘与内存实现都继承该类。
class IFileStore(ABC):
    """约定存在性检查与文本/JSON 读写方法的抽象基类。

    读取失败统一抛出 StorageReadError，写入失败统一抛出 StorageWriteError，
    底层异常通过 __cause__ 保留。
    """

    @abstractmethod
    def exists(self, path: str) -> bool:
        """判断路径上是否存在文件。"""
        raise NotImplementedError

    @abstractmethod
    def read_text(self, path: str) -> str:
        """读取 UTF-8 文本，文件缺失或不可读时抛出 StorageReadError。"""
        raise NotImplementedError

    @abstractmethod
    def read_json(self, path: str) -> Any:
        """读取并解析 JSON，缺失或解析失败时抛出 StorageReadError。"""
        raise NotImplementedError

    @abstractmethod
    def write_text(self, path: str, content: str) -> None:
        """整体替换文本文件内容，失败时抛出 StorageWriteError。"""
        raise NotImplementedError

    @abstractmethod
    def write_json(self, path: str, record: Any) -> None:
        """将记录序列化为 JSON 并整体替换文件，失败时抛出 StorageWriteError。"""
        raise NotImplementedError
