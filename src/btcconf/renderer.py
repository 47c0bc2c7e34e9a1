"""把完整的设置记录渲染为 bitcoind 原生配置文本。

渲染是纯函数：同一记录总是得到逐字节相同的输出，配置是否过期的判断依赖这一点。
每个键的输出规则在下方按分区声明，顺序即输出顺序：

* ``_always``      注释 + ``key=<值>``，无条件输出；
* ``_when_true``   设置为真时输出 ``key=1``，否则整行省略；
* ``_when_false``  设置为假时输出 ``key=0``（默认开启、偏离默认才需要写出）；
* 其余为派生或耦合的键，由专门的函数处理。

注释文本与键名由下游的严格解析器消费，必须逐字保持。
"""  # 模块说明。
from __future__ import annotations  # 启用前向注解以提升类型兼容性。

import math  # 导入 math 以实现四舍五入（half-up）。
from decimal import Decimal  # 导入 Decimal 以把小数费率写成十进制字面量。
from typing import Any, Callable, List, Mapping, Sequence, Tuple

from src.btcconf.environment import NodeEnvironment
from src.utils.errors import RenderError

GB_TO_MIB = 953.674  # 1 GB = 953.674 MiB。
MB_TO_MIB = 0.953674  # 1 MB = 0.953674 MiB。

Rule = Callable[[Mapping[str, Any], NodeEnvironment, "ConfigBuilder"], None]


def round_half_up(value: float) -> int:
    """四舍五入到整数，.5 一律向上（区别于 Python 内置 round 的银行家舍入）。"""  # 函数说明。
    return int(math.floor(value + 0.5))


def format_value(value: Any) -> str:
    """按配置文件惯用写法格式化数值。

    整数值的浮点数不带小数部分（300.0 -> 300），费率等小数写成十进制
    （0.00001，而不是 1e-05）。
    """  # 函数说明。
    if isinstance(value, bool):
        return "1" if value else "0"
    if isinstance(value, int):
        return str(value)
    if isinstance(value, float):
        if value.is_integer() and abs(value) < 1e21:
            return str(int(value))
        text = repr(value)
        if "e" in text:
            if 1e-6 <= abs(value) < 1e21:
                return format(Decimal(text), "f")
            mantissa, _, exponent = text.partition("e")
            return f"{mantissa}e{int(exponent):+d}"  # 1e-07 -> 1e-7
        return text
    return str(value)


class ConfigBuilder:
    """按顺序收集配置行，最后以换行符拼接（末尾不追加换行）。"""  # 类说明。

    def __init__(self) -> None:
        self._lines: List[str] = []

    def section(self, name: str) -> None:
        self._lines.append(f"# [{name}]")

    def comment(self, text: str) -> None:
        self._lines.append(f"# {text}")

    def directive(self, key: str, value: Any) -> None:
        self._lines.append(f"{key}={format_value(value)}")

    def header(self, name: str) -> None:
        """网络专属段落头，例如 ``[main]``。"""
        self._lines.append(f"[{name}]")

    def blank(self) -> None:
        self._lines.append("")

    def render(self) -> str:
        return "\n".join(self._lines)


def _always(key: str, comment: str) -> Rule:
    def rule(settings: Mapping[str, Any], env: NodeEnvironment, out: ConfigBuilder) -> None:
        out.comment(comment)
        out.directive(key, settings[key])

    return rule


def _when_true(key: str, comment: str) -> Rule:
    def rule(settings: Mapping[str, Any], env: NodeEnvironment, out: ConfigBuilder) -> None:
        if settings[key]:
            out.comment(comment)
            out.directive(key.lower(), 1)

    return rule


def _when_false(key: str, comment: str) -> Rule:
    def rule(settings: Mapping[str, Any], env: NodeEnvironment, out: ConfigBuilder) -> None:
        if not settings[key]:
            out.comment(comment)
            out.directive(key, 0)

    return rule


# [chain]

def _chain(settings: Mapping[str, Any], env: NodeEnvironment, out: ConfigBuilder) -> None:
    if settings["network"] != "main":
        out.directive("chain", settings["network"])


# [core]

def _dbcache(settings: Mapping[str, Any], env: NodeEnvironment, out: ConfigBuilder) -> None:
    out.comment("Maximum database cache size in MiB")
    out.directive("dbcache", round_half_up(settings["cacheSizeMB"] * MB_TO_MIB))


def _prune(settings: Mapping[str, Any], env: NodeEnvironment, out: ConfigBuilder) -> None:
    prune = settings["prune"]
    if prune["enabled"]:
        out.comment(
            "Reduce disk space requirements to this many MiB by enabling pruning (deleting) of old blocks. "
            "This mode is incompatible with -txindex and -coinstatsindex. WARNING: Reverting this setting "
            "requires re-downloading the entire blockchain. (default: 0 = disable pruning blocks, 1 = allow "
            "manual pruning via RPC, greater than or equal to 550 = automatically prune blocks to stay under "
            "target size in MiB)."
        )
        out.directive("prune", round_half_up(prune["pruneSizeGB"] * GB_TO_MIB))


def _txindex(settings: Mapping[str, Any], env: NodeEnvironment, out: ConfigBuilder) -> None:
    # txindex 不可单独配置，只由是否裁剪决定。
    out.directive("txindex", 0 if settings["prune"]["enabled"] else 1)


# [network]

def _clearnet(settings: Mapping[str, Any], env: NodeEnvironment, out: ConfigBuilder) -> None:
    if settings["clearnet"]:
        out.comment("Connect to peers over the clearnet.")
        out.directive("onlynet", "ipv4")
        out.directive("onlynet", "ipv6")


def _tor_proxy_for_clearnet(settings: Mapping[str, Any], env: NodeEnvironment, out: ConfigBuilder) -> None:
    if settings["torProxyForClearnet"]:
        out.comment("Connect through <ip:port> SOCKS5 proxy.")
        out.directive("proxy", f"{env.tor_proxy_ip}:{env.tor_proxy_port}")


def _tor(settings: Mapping[str, Any], env: NodeEnvironment, out: ConfigBuilder) -> None:
    if settings["tor"]:
        out.comment("Use separate SOCKS5 proxy <ip:port> to reach peers via Tor hidden services.")
        out.directive("onlynet", "onion")
        out.directive("onion", f"{env.tor_proxy_ip}:{env.tor_proxy_port}")
        out.comment("Tor control <ip:port> and password to use when onion listening enabled.")
        out.directive("torcontrol", f"{env.tor_proxy_ip}:{env.tor_control_port}")
        out.directive("torpassword", env.tor_control_password)


def _i2p(settings: Mapping[str, Any], env: NodeEnvironment, out: ConfigBuilder) -> None:
    if settings["i2p"]:
        out.comment("I2P SAM proxy <ip:port> to reach I2P peers.")
        out.directive("i2psam", f"{env.i2p_sam_ip}:{env.i2p_sam_port}")
        out.directive("onlynet", "i2p")


def _incoming_connections(settings: Mapping[str, Any], env: NodeEnvironment, out: ConfigBuilder) -> None:
    # listen 恒为 1：Tor/I2P 服务需要本地监听，incomingConnections 只控制两个派生开关。
    accept = 1 if settings["incomingConnections"] else 0
    out.comment("Enable/disable incoming connections from peers.")
    out.directive("listen", 1)
    out.directive("listenonion", accept)
    out.directive("i2pacceptincoming", accept)


def _whitelist(settings: Mapping[str, Any], env: NodeEnvironment, out: ConfigBuilder) -> None:
    out.comment(
        "Whitelist peers connecting from local Umbrel IP range. Whitelisted peers cannot be DoS banned "
        "and their transactions are always relayed, even if they are already in the mempool."
    )
    out.directive("whitelist", env.whitelist)


# 末尾的网络专属 bind 段落。

def _bind_block(settings: Mapping[str, Any], env: NodeEnvironment, out: ConfigBuilder) -> None:
    out.comment("Required to configure Tor control port properly")
    out.header(settings["network"])
    out.directive("bind", f"0.0.0.0:{env.p2p_port}")
    out.directive("bind", f"{env.bitcoind_ip}:{env.onion_port}=onion")


SECTIONS: Sequence[Tuple[str, Sequence[Rule]]] = (
    ("chain", (_chain,)),
    (
        "core",
        (
            _dbcache,
            _when_true(
                "mempoolFullRbf",
                "Allow any transaction in the mempool of Bitcoin Node to be replaced with newer versions "
                "of the same transaction that include a higher fee.",
            ),
            _prune,
            _txindex,
            _when_true("blockfilterindex", "Enable all compact filters."),
            _always("maxmempool", "Keep the transaction memory pool below this many megabytes."),
            _always("mempoolexpiry", "Do not keep transactions in the mempool longer than this many hours."),
            _when_true("persistmempool", "Save the mempool on shutdown and load on restart."),
            _when_false("datacarrier", "Relay and mine data carrier transactions."),
            _always("datacarriersize", "Maximum size of arbitrary data to relay and mine."),
            _when_true("permitbaremultisig", "Relay non-P2SH multisig."),
            _when_false("rejectparasites", "Do not relay transactions that are considered parasitic."),
            _when_true("rejecttokens", "Reject transactions that create tokens."),
            _always("minrelaytxfee", "Min Transaction Relay Fee"),
            _always("bytespersigop", "Equivalent bytes per sigop in transactions for relay and mining"),
            _always("bytespersigopstrict", "Minimum bytes per sigop in transactions we relay and mine"),
            _always("limitancestorcount", "Do not accept transactions if number of in-mempool ancestors is <n> or more"),
            _always(
                "limitancestorsize",
                "Do not accept transactions whose size with all in-mempool ancestors exceeds <n> kilobytes",
            ),
            _always(
                "limitdescendantcount",
                "Do not accept transactions if any ancestor would have <n> or more in-mempool descendants",
            ),
            _always(
                "limitdescendantsize",
                "Do not accept transactions if any ancestor would have more than <n> kilobytes of in-mempool descendants",
            ),
            _when_true("permitbarepubkey", "Relay legacy pubkey outputs"),
            _always("maxscriptsize", "Maximum size of scripts we relay and mine, in bytes"),
            _always("datacarriercost", "Treat extra data in transactions as at least N vbytes per actual byte"),
            _when_true("acceptnonstddatacarrier", "Relay and mine non-OP_RETURN datacarrier injection"),
            _always(
                "dustrelayfee",
                "Fee rate (in BTC/kvB) used to define dust, the value of an output such that it will cost "
                "more than its value in fees at this fee rate to spend it.",
            ),
            _always("blockmaxsize", "Set maximum block size in bytes"),
            _always("blockmaxweight", "Set maximum BIP141 block weight"),
            _always("blockreconstructionextratxn", "Extra transactions to keep in memory for compact block reconstructions"),
            _always("maxorphantx", "Maximum number of orphan transactions to be kept in memory."),
            _when_true("reindex", "Rebuild chain state and block index from the blk*.dat files on disk."),
        ),
    ),
    (
        "network",
        (
            _clearnet,
            _tor_proxy_for_clearnet,
            _tor,
            _i2p,
            _incoming_connections,
            _whitelist,
            _when_true("peerblockfilters", "Serve compact block filters to peers per BIP 157."),
            _when_true("peerbloomfilters", "Support filtering of blocks and transactions with bloom filters."),
            _always("bantime", "Number of seconds to keep misbehaving peers from reconnecting."),
            _always("maxconnections", "Maintain at most this many connections to peers."),
            _always("maxreceivebuffer", "Maximum per-connection receive buffer in KB."),
            _always("maxsendbuffer", "Maximum per-connection send buffer in KB."),
            _always("maxtimeadjustment", "Maximum allowed median peer time offset adjustment."),
            _always(
                "peertimeout",
                "The amount of time (in seconds) a peer may be inactive before the connection to it is dropped.",
            ),
            _always("timeout", "Initial peer connection timeout in milliseconds."),
            _always("maxuploadtarget", "Maximum total upload target in MB per 24hr period."),
        ),
    ),
    (
        "rpc",
        (
            _when_true("rest", "Accept public REST requests."),
            _always("rpcworkqueue", "Depth of the work queue to service RPC calls."),
        ),
    ),
)

TRAILER: Sequence[Rule] = (_bind_block,)


def build_config(settings: Mapping[str, Any], env: NodeEnvironment) -> ConfigBuilder:
    """按分区顺序应用全部规则，返回填充好的 ConfigBuilder。"""  # 函数说明。
    out = ConfigBuilder()
    try:
        for index, (name, rules) in enumerate(SECTIONS):
            if index:
                out.blank()
            out.section(name)
            for rule in rules:
                rule(settings, env, out)
        out.blank()
        for rule in TRAILER:
            rule(settings, env, out)
    except (KeyError, TypeError) as exc:
        raise RenderError(f"settings record is not complete: missing or invalid {exc}") from exc
    return out


def render_config(settings: Mapping[str, Any], env: NodeEnvironment | None = None) -> str:
    """渲染完整的设置记录为配置文本（调用方需保证记录已合并默认值）。"""  # 函数说明。
    return build_config(settings, env or NodeEnvironment()).render()
