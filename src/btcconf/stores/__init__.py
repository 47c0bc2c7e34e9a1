"""文件存储注册表，用于根据名称返回具体实现。"""
# 导入 typing 以标注注册表类型。
from typing import Dict, Type

# 导入接口与两种实现以注册。
from .base import IFileStore
from .local import LOCAL_NAME, LocalFileStore
from .memory import MEMORY_NAME, MemoryFileStore, WriteRecord

# 名称到实现类的映射，新增存储时在此注册。
STORES: Dict[str, Type[IFileStore]] = {
    LOCAL_NAME: LocalFileStore,
    MEMORY_NAME: MemoryFileStore,
}


def create_file_store(name: str, **kwargs) -> IFileStore:
    """根据名称返回对应的文件存储实例。"""
    if name not in STORES:
        raise ValueError(
            f"Unsupported file store '{name}'. Available options: {', '.join(STORES)}"
        )
    return STORES[name](**kwargs)


__all__ = ["IFileStore", "LocalFileStore", "MemoryFileStore", "WriteRecord", "STORES", "create_file_store"]
