"""受管配置比对与 includer 文件维护的测试集合。"""  # 模块说明。
from __future__ import annotations  # 启用前向注解支持类型提示。

import sys  # 导入 sys 以动态调整模块搜索路径。
from pathlib import Path  # 导入 Path 以构造临时目录。

ROOT = Path(__file__).resolve().parents[1]  # 计算仓库根目录路径。
if str(ROOT) not in sys.path:  # 若根目录未在 sys.path 中。
    sys.path.insert(0, str(ROOT))  # 将其加入模块搜索路径以支持 from src 导入。

import pytest  # 导入 pytest 以使用异常断言。

from src.btcconf.environment import NodeEnvironment
from src.btcconf.reconciler import ConfigReconciler, include_directive
from src.btcconf.renderer import render_config
from src.btcconf.settings import build_default_settings, deep_merge
from src.btcconf.stores import LocalFileStore, MemoryFileStore
from src.utils.errors import StorageReadError, StorageWriteError

ENV = NodeEnvironment()  # 默认运行环境，文件位于 /data/.bitcoin。
DIRECTIVE = "# Load additional configuration file, relative to the data directory.\nincludeconf=umbrel-bitcoin.conf"


def _reconciler(files: dict | None = None) -> tuple[ConfigReconciler, MemoryFileStore]:
    memory = MemoryFileStore(files=files)
    return ConfigReconciler(memory, ENV), memory


def test_include_directive_text() -> None:
    """指令由固定注释与 includeconf 行组成。"""  # 测试说明。
    assert include_directive("umbrel-bitcoin.conf") == DIRECTIVE


def test_includer_created_when_absent() -> None:
    """includer 文件缺失时只写入指令本身。"""  # 测试说明。
    reconciler, memory = _reconciler()
    assert reconciler.reconcile_includer_config("umbrel-bitcoin.conf") == "created"
    assert memory.files["/data/.bitcoin/bitcoin.conf"] == DIRECTIVE


def test_includer_prepends_directive_and_keeps_user_content() -> None:
    """缺少指令时把指令插到开头，原有内容完整保留。"""  # 测试说明。
    original = "rpcuser=alice\nrpcpassword=secret\n"
    reconciler, memory = _reconciler({"/data/.bitcoin/bitcoin.conf": original})
    assert reconciler.reconcile_includer_config() == "prepended"
    assert memory.files["/data/.bitcoin/bitcoin.conf"] == DIRECTIVE + "\n" + original


def test_includer_is_idempotent() -> None:
    """已包含指令时不再写入，多次调用结果稳定。"""  # 测试说明。
    reconciler, memory = _reconciler({"/data/.bitcoin/bitcoin.conf": "rpcuser=alice"})
    reconciler.reconcile_includer_config()
    first = memory.files["/data/.bitcoin/bitcoin.conf"]
    assert reconciler.reconcile_includer_config() == "unchanged"
    assert reconciler.reconcile_includer_config() == "unchanged"
    assert memory.files["/data/.bitcoin/bitcoin.conf"] == first
    assert len(memory.writes_to("/data/.bitcoin/bitcoin.conf")) == 1
    assert first.count("includeconf=umbrel-bitcoin.conf") == 1


def test_includer_force_overwrite_discards_user_content() -> None:
    """强制模式下整体重写为只含指令。"""  # 测试说明。
    reconciler, memory = _reconciler({"/data/.bitcoin/bitcoin.conf": DIRECTIVE + "\nrpcuser=alice"})
    assert reconciler.reconcile_includer_config(force_overwrite=True) == "overwritten"
    assert memory.files["/data/.bitcoin/bitcoin.conf"] == DIRECTIVE


def test_managed_config_up_to_date_check() -> None:
    """受管文件缺失或内容不同即过期，逐字节相同才算最新。"""  # 测试说明。
    record = deep_merge(build_default_settings(), {})
    reconciler, memory = _reconciler()
    assert reconciler.read_managed_config() == ""
    assert reconciler.is_managed_config_up_to_date(record) is False
    text = reconciler.write_managed_config(record)
    assert text == render_config(record, ENV)
    assert memory.files["/data/.bitcoin/umbrel-bitcoin.conf"] == text
    assert reconciler.is_managed_config_up_to_date(record) is True
    memory.files["/data/.bitcoin/umbrel-bitcoin.conf"] = text + "\n"  # 仅多一个换行也视为过期。
    assert reconciler.is_managed_config_up_to_date(record) is False


def test_managed_config_overwritten_unconditionally() -> None:
    """受管文件每次都整体覆盖，即使内容相同。"""  # 测试说明。
    record = deep_merge(build_default_settings(), {})
    reconciler, memory = _reconciler({"/data/.bitcoin/umbrel-bitcoin.conf": "manual edit"})
    reconciler.write_managed_config(record)
    reconciler.write_managed_config(record)
    assert len(memory.writes_to("/data/.bitcoin/umbrel-bitcoin.conf")) == 2


def test_write_failures_propagate() -> None:
    """写入失败不做恢复。"""  # 测试说明。
    reconciler, memory = _reconciler()
    memory.fail_writes.update({"/data/.bitcoin/bitcoin.conf", "/data/.bitcoin/umbrel-bitcoin.conf"})
    with pytest.raises(StorageWriteError):
        reconciler.reconcile_includer_config()
    with pytest.raises(StorageWriteError):
        reconciler.write_managed_text("x")


def test_read_failure_propagates_from_reconciler() -> None:
    """reconciler 不吞掉读取错误。"""  # 测试说明。
    reconciler = ConfigReconciler(_BrokenStore(), ENV)
    with pytest.raises(StorageReadError):
        reconciler.reconcile_includer_config()
    with pytest.raises(StorageReadError):
        reconciler.is_managed_config_up_to_date(deep_merge(build_default_settings(), {}))


class _BrokenStore(LocalFileStore):
    """测试用：文件存在但读取总是失败。"""  # 类说明。

    def exists(self, path: str) -> bool:
        return True

    def read_text(self, path: str) -> str:
        raise StorageReadError(f"cannot read {path}: simulated", path=path)


def test_local_files_on_disk(tmp_path: Path) -> None:
    """基于本地磁盘的完整流程：创建 includer 与受管文件。"""  # 测试说明。
    env = NodeEnvironment(data_dir=str(tmp_path / ".bitcoin"))
    reconciler = ConfigReconciler(LocalFileStore(), env)
    record = deep_merge(build_default_settings(), {"prune": {"enabled": True}})
    reconciler.write_managed_config(record)
    assert reconciler.reconcile_includer_config() == "created"
    includer = tmp_path / ".bitcoin" / "bitcoin.conf"
    managed = tmp_path / ".bitcoin" / "umbrel-bitcoin.conf"
    assert includer.read_text(encoding="utf-8") == DIRECTIVE
    assert "prune=286102" in managed.read_text(encoding="utf-8")
    assert reconciler.is_managed_config_up_to_date(record)
