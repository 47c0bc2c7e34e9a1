"""提供跨平台的 I/O 工具，包括原子写入、UTF-8 读取与文件锁。"""  # 模块说明。
# 导入 json 以支持 JSON 序列化与解析。
import json
# 导入 os 模块以执行文件系统操作与原子替换。
import os
# 导入 stat 用于设置锁文件权限。
import stat
# 导入 threading 以生成线程唯一的临时文件名。
import threading
# 导入 time 以在等待文件锁时休眠与处理超时逻辑。
import time
# 导入 contextlib.contextmanager 以实现 with 语句上下文管理器。
from contextlib import contextmanager
# 导入 pathlib.Path 统一处理路径对象。
from pathlib import Path
# 导入 typing 以进行类型注释。
from typing import Any, Iterator

# 尝试导入 fcntl 以在 POSIX 系统上实现文件锁。
try:
    import fcntl  # type: ignore
except Exception:  # noqa: BLE001
    fcntl = None  # 若导入失败则后续退化到基于文件创建的锁。

# 定义安全创建目录的函数，确保重复调用也不会抛异常。
def safe_mkdirs(path: str | os.PathLike[str]) -> None:
    """创建目标目录及其父级目录，目录已存在时静默跳过。"""  # 函数说明。
    Path(path).mkdir(parents=True, exist_ok=True)

# 定义临时文件路径生成函数，同一文件的并发写入互不干扰。
def _temp_path_for(target: Path) -> Path:
    """返回与目标同目录、带进程与线程标识的隐藏临时文件路径。"""  # 函数说明。
    suffix = f"{os.getpid()}.{threading.get_ident()}.tmp"  # 进程号+线程号保证唯一。
    return target.with_name(f".{target.name}.{suffix}")

# 定义以原子方式写入文本的函数。
def atomic_write_text(path: str | os.PathLike[str], text: str) -> None:
    """通过临时文件写入文本内容，并以原子方式替换目标文件。"""  # 函数说明。
    target_path = Path(path)
    safe_mkdirs(target_path.parent)  # 确保父目录存在。
    tmp_path = _temp_path_for(target_path)
    try:
        # newline="" 保证内容按原样落盘，不做换行符转换。
        with open(tmp_path, "w", encoding="utf-8", newline="") as handle:
            handle.write(text)
        atomic_replace(tmp_path, target_path)
    finally:
        # 替换失败时清理残留的临时文件。
        if tmp_path.exists():
            tmp_path.unlink(missing_ok=True)

# 定义以 JSON 形式原子写入数据的函数。
def atomic_write_json(path: str | os.PathLike[str], data: Any) -> None:
    """将数据序列化为 JSON 文本后执行原子写入。"""  # 函数说明。
    json_text = json.dumps(data, ensure_ascii=False, indent=2)  # 两空格缩进便于人工查看。
    atomic_write_text(path, json_text)

# 定义原子替换函数，封装 os.replace 并确保目录存在。
def atomic_replace(tmp_path: str | os.PathLike[str], final_path: str | os.PathLike[str]) -> None:
    """使用 os.replace 将临时文件移动到目标位置，确保父目录存在。"""  # 函数说明。
    final = Path(final_path)
    safe_mkdirs(final.parent)
    os.replace(Path(tmp_path), final)  # 同一文件系统内为原子操作。

# 定义 UTF-8 文本读取函数。
def read_text_utf8(path: str | os.PathLike[str]) -> str:
    """读取 UTF-8 文本并原样返回，不做换行符转换。"""  # 函数说明。
    with open(path, "r", encoding="utf-8", newline="") as handle:
        return handle.read()

# 定义 JSON 文件读取函数。
def read_json_file(path: str | os.PathLike[str]) -> Any:
    """读取并解析 JSON 文件，解析失败时抛出 json.JSONDecodeError。"""  # 函数说明。
    return json.loads(read_text_utf8(path))

# 定义跨平台文件锁的上下文管理器。
@contextmanager
def with_file_lock(lock_path: str | os.PathLike[str], timeout_sec: float) -> Iterator[None]:
    """尝试在指定路径创建独占文件锁，超时则抛出 TimeoutError。"""  # 函数说明。
    path = Path(lock_path)
    safe_mkdirs(path.parent)
    start = time.monotonic()  # 记录开始时间以便计算超时。
    interval = 0.05  # 轮询间隔。
    fd: int | None = None
    while True:
        try:
            if fcntl is not None:
                # POSIX：打开锁文件并申请非阻塞独占锁。
                fd = os.open(path, os.O_RDWR | os.O_CREAT, mode=stat.S_IRUSR | stat.S_IWUSR)
                try:
                    fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
                    break
                except BlockingIOError:
                    os.close(fd)
                    fd = None
            else:
                # 无系统级锁支持时，使用 O_EXCL 创建文件实现自旋锁。
                fd = os.open(path, os.O_CREAT | os.O_EXCL | os.O_RDWR)
                break
        except FileExistsError:
            fd = None  # 锁文件已存在表示被占用，继续等待。
        if time.monotonic() - start >= timeout_sec:
            raise TimeoutError(f"Timed out acquiring lock: {path}")
        time.sleep(interval)
    try:
        yield
    finally:
        try:
            if fd is not None:
                if fcntl is not None:
                    fcntl.flock(fd, fcntl.LOCK_UN)
                os.close(fd)
        finally:
            path.unlink(missing_ok=True)  # 释放后删除锁文件。

# 定义追加 JSON 行到 JSONL 文件的函数。
def jsonl_append(path: str | os.PathLike[str], record: dict, *, force_flush: bool = False) -> None:
    """在文件锁保护下向 JSONL 文件追加一行记录。"""  # 函数说明。
    target = Path(path)
    safe_mkdirs(target.parent)
    lock_path = target.with_suffix(target.suffix + ".lock")  # 为 JSONL 文件单独创建锁文件。
    with with_file_lock(lock_path, timeout_sec=30):
        with target.open("a", encoding="utf-8") as handle:
            handle.write(json.dumps(record, ensure_ascii=False))
            handle.write("\n")
            handle.flush()
            if force_flush:
                os.fsync(handle.fileno())

# 定义简易的文件存在性检查函数。
def file_exists(path: str | os.PathLike[str]) -> bool:
    """判断给定路径是否为已存在的普通文件。"""  # 函数说明。
    return os.path.isfile(path)
