"""配置渲染规则的测试：派生值、按需输出、网络开关与数值格式。"""  # 模块说明。
from __future__ import annotations  # 启用前向注解支持类型提示。

import sys  # 导入 sys 以动态调整模块搜索路径。
from pathlib import Path  # 导入 Path 以定位仓库根目录。

ROOT = Path(__file__).resolve().parents[1]  # 计算仓库根目录路径。
if str(ROOT) not in sys.path:  # 若根目录未在 sys.path 中。
    sys.path.insert(0, str(ROOT))  # 将其加入模块搜索路径以支持 from src 导入。

import pytest  # 导入 pytest 以使用参数化与异常断言。

from src.btcconf.environment import NodeEnvironment
from src.btcconf.renderer import format_value, render_config, round_half_up
from src.btcconf.settings import build_default_settings, deep_merge
from src.utils.errors import RenderError

# 默认设置在默认环境下的完整渲染结果。
DEFAULT_CONFIG_LINES = [
    "# [chain]",
    "",
    "# [core]",
    "# Maximum database cache size in MiB",
    "dbcache=429",
    "txindex=1",
    "# Enable all compact filters.",
    "blockfilterindex=1",
    "# Keep the transaction memory pool below this many megabytes.",
    "maxmempool=300",
    "# Do not keep transactions in the mempool longer than this many hours.",
    "mempoolexpiry=336",
    "# Save the mempool on shutdown and load on restart.",
    "persistmempool=1",
    "# Maximum size of arbitrary data to relay and mine.",
    "datacarriersize=42",
    "# Min Transaction Relay Fee",
    "minrelaytxfee=0.00001",
    "# Equivalent bytes per sigop in transactions for relay and mining",
    "bytespersigop=20",
    "# Minimum bytes per sigop in transactions we relay and mine",
    "bytespersigopstrict=20",
    "# Do not accept transactions if number of in-mempool ancestors is <n> or more",
    "limitancestorcount=25",
    "# Do not accept transactions whose size with all in-mempool ancestors exceeds <n> kilobytes",
    "limitancestorsize=101",
    "# Do not accept transactions if any ancestor would have <n> or more in-mempool descendants",
    "limitdescendantcount=25",
    "# Do not accept transactions if any ancestor would have more than <n> kilobytes of in-mempool descendants",
    "limitdescendantsize=101",
    "# Maximum size of scripts we relay and mine, in bytes",
    "maxscriptsize=1650",
    "# Treat extra data in transactions as at least N vbytes per actual byte",
    "datacarriercost=1",
    "# Fee rate (in BTC/kvB) used to define dust, the value of an output such that it will cost "
    "more than its value in fees at this fee rate to spend it.",
    "dustrelayfee=0.00003",
    "# Set maximum block size in bytes",
    "blockmaxsize=3985000",
    "# Set maximum BIP141 block weight",
    "blockmaxweight=3985000",
    "# Extra transactions to keep in memory for compact block reconstructions",
    "blockreconstructionextratxn=1000000",
    "# Maximum number of orphan transactions to be kept in memory.",
    "maxorphantx=100",
    "",
    "# [network]",
    "# Connect to peers over the clearnet.",
    "onlynet=ipv4",
    "onlynet=ipv6",
    "# Use separate SOCKS5 proxy <ip:port> to reach peers via Tor hidden services.",
    "onlynet=onion",
    "onion=10.21.21.11:9050",
    "# Tor control <ip:port> and password to use when onion listening enabled.",
    "torcontrol=10.21.21.11:9051",
    "torpassword=moneyprintergobrrr",
    "# I2P SAM proxy <ip:port> to reach I2P peers.",
    "i2psam=10.21.21.12:7656",
    "onlynet=i2p",
    "# Enable/disable incoming connections from peers.",
    "listen=1",
    "listenonion=0",
    "i2pacceptincoming=0",
    "# Whitelist peers connecting from local Umbrel IP range. Whitelisted peers cannot be DoS banned "
    "and their transactions are always relayed, even if they are already in the mempool.",
    "whitelist=10.21.0.0/16",
    "# Serve compact block filters to peers per BIP 157.",
    "peerblockfilters=1",
    "# Number of seconds to keep misbehaving peers from reconnecting.",
    "bantime=86400",
    "# Maintain at most this many connections to peers.",
    "maxconnections=125",
    "# Maximum per-connection receive buffer in KB.",
    "maxreceivebuffer=5000",
    "# Maximum per-connection send buffer in KB.",
    "maxsendbuffer=1000",
    "# Maximum allowed median peer time offset adjustment.",
    "maxtimeadjustment=4200",
    "# The amount of time (in seconds) a peer may be inactive before the connection to it is dropped.",
    "peertimeout=60",
    "# Initial peer connection timeout in milliseconds.",
    "timeout=5000",
    "# Maximum total upload target in MB per 24hr period.",
    "maxuploadtarget=0",
    "",
    "# [rpc]",
    "# Depth of the work queue to service RPC calls.",
    "rpcworkqueue=128",
    "",
    "# Required to configure Tor control port properly",
    "[main]",
    "bind=0.0.0.0:8333",
    "bind=10.21.21.8:8334=onion",
]


def _settings(**overrides: object) -> dict:
    """辅助函数：在默认设置上合并覆盖项。"""  # 函数说明。
    return deep_merge(build_default_settings(), overrides)


def _lines(**overrides: object) -> list[str]:
    return render_config(_settings(**overrides)).split("\n")


def test_default_settings_golden_text() -> None:
    """默认设置的渲染结果逐行固定，末尾不带换行。"""  # 测试说明。
    text = render_config(build_default_settings())
    assert text.split("\n") == DEFAULT_CONFIG_LINES
    assert not text.endswith("\n")


def test_render_is_deterministic() -> None:
    """同一记录重复渲染得到完全相同的文本。"""  # 测试说明。
    record = _settings(cacheSizeMB=1234, prune={"enabled": True})
    assert render_config(record) == render_config(dict(record))


def test_dbcache_is_converted_from_mb() -> None:
    """cacheSizeMB 换算为 MiB 后四舍五入。"""  # 测试说明。
    assert "dbcache=429" in _lines(cacheSizeMB=450)
    assert "dbcache=954" in _lines(cacheSizeMB=1000)


def test_prune_enabled_disables_txindex() -> None:
    """开启裁剪时输出 prune=<MiB> 且 txindex=0。"""  # 测试说明。
    lines = _lines(prune={"enabled": True, "pruneSizeGB": 300})
    assert "prune=286102" in lines
    assert "txindex=0" in lines
    assert "txindex=1" not in lines
    assert lines.index("prune=286102") < lines.index("txindex=0")


def test_prune_disabled_keeps_txindex() -> None:
    """未开启裁剪时不输出 prune，txindex=1。"""  # 测试说明。
    lines = _lines()
    assert not any(line.startswith("prune=") for line in lines)
    assert "txindex=1" in lines


@pytest.mark.parametrize(
    "key, directive",
    [
        ("mempoolFullRbf", "mempoolfullrbf=1"),
        ("permitbaremultisig", "permitbaremultisig=1"),
        ("rejecttokens", "rejecttokens=1"),
        ("permitbarepubkey", "permitbarepubkey=1"),
        ("acceptnonstddatacarrier", "acceptnonstddatacarrier=1"),
        ("reindex", "reindex=1"),
        ("peerbloomfilters", "peerbloomfilters=1"),
        ("rest", "rest=1"),
    ],
)
def test_flags_emitted_only_when_true(key: str, directive: str) -> None:
    """默认关闭的开关只有为真时才输出，键名统一小写。"""  # 测试说明。
    assert directive not in _lines(**{key: False})
    assert directive in _lines(**{key: True})


@pytest.mark.parametrize("key", ["datacarrier", "rejectparasites"])
def test_flags_emitted_only_when_false(key: str) -> None:
    """默认开启的开关只有关闭时才输出 key=0。"""  # 测试说明。
    assert f"{key}=0" not in _lines(**{key: True})
    assert f"{key}=0" in _lines(**{key: False})


def test_flags_true_by_default_are_omitted_when_false() -> None:
    """blockfilterindex 等为假时整行（含注释）省略。"""  # 测试说明。
    lines = _lines(blockfilterindex=False, persistmempool=False, peerblockfilters=False)
    assert not any(line.startswith(("blockfilterindex", "persistmempool", "peerblockfilters")) for line in lines)
    assert "# Enable all compact filters." not in lines


def test_network_toggles_off() -> None:
    """关闭 clearnet/tor/i2p 时相应的 onlynet 与代理行全部省略。"""  # 测试说明。
    lines = _lines(clearnet=False, tor=False, i2p=False)
    assert not any(line.startswith(("onlynet=", "onion=", "torcontrol=", "torpassword=", "i2psam=")) for line in lines)
    assert "listen=1" in lines  # listen 与网络开关无关，恒为 1。


def test_incoming_connections_toggle() -> None:
    """incomingConnections 只控制 listenonion 与 i2pacceptincoming。"""  # 测试说明。
    lines = _lines(incomingConnections=True)
    assert "listen=1" in lines
    assert "listenonion=1" in lines
    assert "i2pacceptincoming=1" in lines


def test_tor_proxy_for_clearnet() -> None:
    """torProxyForClearnet 为真时经 Tor 代理连接 clearnet 节点。"""  # 测试说明。
    assert "proxy=10.21.21.11:9050" not in _lines()
    assert "proxy=10.21.21.11:9050" in _lines(torProxyForClearnet=True)


def test_non_main_network_emits_chain_and_section() -> None:
    """非主网输出 chain=<network>，bind 段落头跟随网络名。"""  # 测试说明。
    lines = _lines(network="signet")
    assert lines[:3] == ["# [chain]", "chain=signet", ""]
    assert lines[-3:] == ["[signet]", "bind=0.0.0.0:8333", "bind=10.21.21.8:8334=onion"]
    assert not any(line.startswith("chain=") for line in _lines(network="main"))


def test_environment_values_are_interpolated() -> None:
    """代理地址、端口与口令取自运行环境。"""  # 测试说明。
    env = NodeEnvironment(tor_proxy_ip="127.0.0.1", tor_control_password="secret", p2p_port=18444, whitelist="10.0.0.0/8")
    lines = render_config(build_default_settings(), env).split("\n")
    assert "onion=127.0.0.1:9050" in lines
    assert "torpassword=secret" in lines
    assert "bind=0.0.0.0:18444" in lines
    assert "whitelist=10.0.0.0/8" in lines


def test_fee_rates_render_as_decimals() -> None:
    """费率以十进制小数输出，不出现科学计数法。"""  # 测试说明。
    lines = _lines(minrelaytxfee=0.0001, dustrelayfee=0.00001)
    assert "minrelaytxfee=0.0001" in lines
    assert "dustrelayfee=0.00001" in lines


@pytest.mark.parametrize(
    "value, expected",
    [
        (True, "1"),
        (False, "0"),
        (300, "300"),
        (300.0, "300"),
        (0.5, "0.5"),
        (0.00001, "0.00001"),
        (0.000001, "0.000001"),
        (1e-7, "1e-7"),
        ("ipv4", "ipv4"),
    ],
)
def test_format_value(value: object, expected: str) -> None:
    """数值格式与配置文件惯用写法一致。"""  # 测试说明。
    assert format_value(value) == expected


def test_integral_float_settings_render_without_fraction() -> None:
    """来自 JSON 的 300.0 与 300 渲染结果相同。"""  # 测试说明。
    assert "maxmempool=300" in _lines(maxmempool=300.0)


def test_round_half_up() -> None:
    """.5 一律向上取整。"""  # 测试说明。
    assert round_half_up(2.5) == 3
    assert round_half_up(3.5) == 4
    assert round_half_up(2.4999) == 2


def test_incomplete_record_raises_render_error() -> None:
    """缺少必需键的记录属于编程错误。"""  # 测试说明。
    record = _settings()
    del record["maxmempool"]
    with pytest.raises(RenderError):
        render_config(record)
