"""验证原子写入、文件锁与“同时发出、全部等待”的并发工具。"""  # 模块说明。
import sys  # 导入 sys 以在测试中调整模块搜索路径。
import threading  # 导入 threading 以制造并发写入与任务重叠。
import time  # 导入 time 以在任务中注入延时。
from pathlib import Path  # 导入 Path 以构造临时路径。

ROOT = Path(__file__).resolve().parents[1]  # 计算仓库根目录路径。
if str(ROOT) not in sys.path:  # 若根目录未在 sys.path 中。
    sys.path.insert(0, str(ROOT))  # 将其加入模块搜索路径以支持 from src 导入。

import pytest  # 导入 pytest 以使用异常断言。

from src.utils.concurrency import TaskGroupError, run_all  # 导入并发工具。
from src.utils.errors import InvalidSettingsError, StorageReadError, StorageWriteError, classify_exception  # 导入错误类型与分类。
from src.utils.io import atomic_write_text, file_exists, read_text_utf8, with_file_lock  # 导入 I/O 工具。


def test_run_all_returns_results_in_submission_order() -> None:
    """结果按提交顺序返回，与完成顺序无关。"""  # 测试说明。

    def _slow() -> str:
        time.sleep(0.05)  # 让第一个任务最后完成。
        return "slow"

    assert run_all([("slow", _slow), ("fast", lambda: "fast")]) == ["slow", "fast"]
    assert run_all([]) == []


def test_run_all_tasks_overlap() -> None:
    """全部任务先提交再等待：两个任务必须同时处于运行中才能通过屏障。"""  # 测试说明。
    barrier = threading.Barrier(2, timeout=5)
    assert sorted(run_all([("a", barrier.wait), ("b", barrier.wait)])) == [0, 1]


def test_run_all_waits_for_all_and_reports_first_failure() -> None:
    """失败任务不会中断其他任务，first 为提交顺序中的首个异常。"""  # 测试说明。
    finished: list = []

    def _ok() -> None:
        time.sleep(0.05)
        finished.append("ok")

    def _fail(message: str):
        def _raise() -> None:
            raise StorageWriteError(message, path=message)

        return _raise

    with pytest.raises(TaskGroupError) as exc:
        run_all([("ok", _ok), ("second", _fail("second")), ("third", _fail("third"))])
    assert finished == ["ok"]  # 成功任务依然完成。
    assert [name for name, _ in exc.value.errors] == ["second", "third"]
    assert exc.value.first.path == "second"


def test_atomic_write_creates_parents_and_leaves_no_temp(tmp_path: Path) -> None:
    """原子写入自动创建目录，内容原样落盘且不残留临时文件。"""  # 测试说明。
    target = tmp_path / "a" / "b" / "umbrel-bitcoin.conf"
    atomic_write_text(target, "line1\nline2")  # 不追加换行。
    assert read_text_utf8(target) == "line1\nline2"
    assert file_exists(target)
    assert not file_exists(tmp_path / "a")  # 目录不是普通文件。
    assert [item.name for item in target.parent.iterdir()] == ["umbrel-bitcoin.conf"]


def test_concurrent_atomic_writes_do_not_collide(tmp_path: Path) -> None:
    """多个线程同时写同一文件，最终内容是其中一次完整写入。"""  # 测试说明。
    target = tmp_path / "bitcoin.conf"
    payloads = [f"payload-{index}\n" * 200 for index in range(8)]
    run_all([(f"w{index}", lambda text=text: atomic_write_text(target, text)) for index, text in enumerate(payloads)])
    assert read_text_utf8(target) in payloads
    assert [item.name for item in tmp_path.iterdir()] == ["bitcoin.conf"]


def test_file_lock_times_out_when_held(tmp_path: Path) -> None:
    """锁被占用时在超时后抛出 TimeoutError，释放后可再次获取。"""  # 测试说明。
    lock_path = tmp_path / "log.lock"
    with with_file_lock(lock_path, timeout_sec=1):
        with pytest.raises(TimeoutError):
            with with_file_lock(lock_path, timeout_sec=0.1):
                pass
    with with_file_lock(lock_path, timeout_sec=1):
        assert lock_path.exists()
    assert not lock_path.exists()


@pytest.mark.parametrize(
    "exc, category",
    [
        (StorageReadError("r"), "read"),
        (StorageWriteError("w"), "write"),
        (InvalidSettingsError("bad", key="rest"), "invalid"),
        (PermissionError("denied"), "write"),
        (KeyError("x"), "unknown"),
    ],
)
def test_classify_exception(exc: BaseException, category: str) -> None:
    """异常分类用于 CLI 的结构化错误日志。"""  # 测试说明。
    assert classify_exception(exc) == category
