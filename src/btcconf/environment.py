"""节点运行环境常量：数据目录、文件名与 Tor/I2P 代理地址。"""  # 模块说明。
# 导入 os 以拼接数据目录下的文件路径。
import os
# 导入 dataclass 以定义不可变的环境记录。
from dataclasses import dataclass
# 导入 typing 以标注配置映射。
from typing import Any, Mapping


@dataclass(frozen=True)
class NodeEnvironment:
    """进程级只读常量，启动时由应用配置构造后注入各组件。"""  # 类说明。

    data_dir: str = "/data/.bitcoin"  # bitcoind 数据目录，两个 conf 文件都位于此处。
    settings_file: str = "/data/bitcoin-config.json"  # 持久化设置层 JSON 路径。
    managed_conf_name: str = "umbrel-bitcoin.conf"  # 完全由本系统生成的配置文件名。
    includer_conf_name: str = "bitcoin.conf"  # 用户所有、仅注入 includeconf 指令的配置文件名。
    default_chain: str = "main"  # 默认网络，写入默认设置的 network 键。
    bitcoind_ip: str = "10.21.21.8"
    p2p_port: int = 8333
    onion_port: int = 8334
    whitelist: str = "10.21.0.0/16"
    tor_proxy_ip: str = "10.21.21.11"
    tor_proxy_port: int = 9050
    tor_control_port: int = 9051
    tor_control_password: str = "moneyprintergobrrr"
    i2p_sam_ip: str = "10.21.21.12"
    i2p_sam_port: int = 7656

    @property
    def managed_conf_path(self) -> str:
        return os.path.join(self.data_dir, self.managed_conf_name)

    @property
    def includer_conf_path(self) -> str:
        return os.path.join(self.data_dir, self.includer_conf_name)

    @classmethod
    def from_config(cls, config: Mapping[str, Any]) -> "NodeEnvironment":
        """从已校验的应用配置字典构造环境记录。"""  # 方法说明。
        paths = config["paths"]
        network = config["network"]
        tor = network["tor"]
        i2p = network["i2p"]
        return cls(
            data_dir=paths["data_dir"],
            settings_file=paths["settings_file"],
            managed_conf_name=paths["managed_conf_name"],
            includer_conf_name=paths["includer_conf_name"],
            default_chain=network["default_chain"],
            bitcoind_ip=network["bitcoind_ip"],
            p2p_port=network["p2p_port"],
            onion_port=network["onion_port"],
            whitelist=network["whitelist"],
            tor_proxy_ip=tor["proxy_ip"],
            tor_proxy_port=tor["proxy_port"],
            tor_control_port=tor["control_port"],
            tor_control_password=tor["control_password"],
            i2p_sam_ip=i2p["sam_ip"],
            i2p_sam_port=i2p["sam_port"],
        )
