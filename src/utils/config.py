"""应用配置系统：分层加载、Profile、来源追踪、校验与快照导出。"""  # 模块说明。
from __future__ import annotations  # 启用前向注解以提升类型兼容性。

import copy  # 导入 copy 以执行深拷贝避免引用共享。
import os  # 导入 os 以访问环境变量与路径扩展。
from dataclasses import dataclass  # 导入 dataclass 以封装结果结构。
from pathlib import Path  # 导入 Path 统一路径处理。
from typing import Any, Dict, Iterable, Mapping  # 导入类型注解辅助代码可读性。

import yaml  # 导入 PyYAML 以读取/写出 YAML 文件。

from src.utils.io import atomic_write_text  # 复用原子写入工具以保存配置快照。

ENV_PREFIX = "BTCCONF_"  # 所有环境变量需以此前缀开头才会被解析。
KNOWN_CHAINS = {"main", "test", "testnet4", "signet", "regtest"}  # bitcoind 支持的网络名称。
KNOWN_STORES = {"local", "memory"}  # 可选的文件存储实现。


@dataclass
class ConfigBundle:
    """封装配置加载结果，包含配置体、来源映射与激活的 Profile。"""  # 数据类说明。

    config: Dict[str, Any]  # 最终合并并经过规范化的配置字典。
    sources: Dict[str, Any]  # 与 config 对应的来源追踪树，叶子为字符串。
    profile: str | None  # 当前生效的 profile 名称，若未选择则为 None。
    profile_source: str | None  # profile 由哪一层触发，例如 "cli:--profile"。


class ConfigError(ValueError):
    """对外统一的配置异常类型，包含来源链路信息。"""  # 自定义异常说明。


def _project_root() -> Path:
    """返回仓库根目录，基于当前文件路径推断。"""  # 工具函数说明。

    return Path(__file__).resolve().parents[2]  # config.py 位于 src/utils，下两级即仓库根。


def _load_yaml(path: Path) -> Dict[str, Any]:
    """读取 YAML 文件并返回字典结构，若为空则返回空字典。"""  # 工具函数说明。

    with path.open("r", encoding="utf-8") as handle:
        data = yaml.safe_load(handle)
    if data is None:
        return {}
    if not isinstance(data, dict):  # 顶层必须是映射。
        raise ConfigError(f"Config file {path} must contain a mapping at the top level")
    return data


def _build_source_tree(node: Any, label: str) -> Any:
    """根据数据结构构造与之同形的来源树，叶子为来源标签。"""  # 工具函数说明。

    if isinstance(node, dict):
        return {key: _build_source_tree(value, label) for key, value in node.items()}
    return label


def _deep_merge(base: Dict[str, Any], incoming: Dict[str, Any], sources: Dict[str, Any], incoming_sources: Any) -> None:
    """递归地将 incoming 合并进 base，并同步更新来源信息。"""  # 工具函数说明。

    for key, value in incoming.items():
        source_info = incoming_sources.get(key) if isinstance(incoming_sources, dict) else incoming_sources
        if isinstance(value, dict):
            base_child = base.get(key)
            source_child = sources.get(key)
            if not isinstance(base_child, dict):  # 旧值不是字典时直接替换为新字典。
                base_child = {}
            if not isinstance(source_child, dict):
                source_child = {}
            base[key] = base_child
            sources[key] = source_child
            if isinstance(source_info, str):  # 来源只是标签时扩展为整棵树。
                source_info = _build_source_tree(value, source_info)
            _deep_merge(base_child, value, source_child, source_info)
            continue
        if value is None and base.get(key) is not None:  # None 不会覆盖已有非空值。
            continue
        base[key] = copy.deepcopy(value)
        sources[key] = source_info


def _parse_scalar(value: str) -> Any:
    """将字符串尝试解析为布尔、整数或浮点类型，失败时返回原字符串。"""  # 工具函数说明。

    lowered = value.strip().lower()
    if lowered in {"true", "false"}:
        return lowered == "true"
    if lowered in {"null", "none"}:
        return None
    try:
        if lowered.startswith("0") and not lowered.startswith("0.") and lowered != "0":
            raise ValueError  # 以 0 开头的整数保持字符串，避免八进制误判。
        return int(lowered)
    except ValueError:
        try:
            return float(lowered)
        except ValueError:
            return value.strip()


def _keypath_to_tree(keypath: Iterable[str], value: Any) -> Dict[str, Any]:
    """根据层级列表生成嵌套字典，用于 --set 与环境变量合并。"""  # 工具函数说明。

    result: Dict[str, Any] = {}
    cursor = result
    components = list(keypath)
    for index, part in enumerate(components):
        if index == len(components) - 1:
            cursor[part] = value
        else:
            cursor = cursor.setdefault(part, {})
    return result


def _collect_env_from_mapping(env: Mapping[str, str], source_prefix: str) -> tuple[Dict[str, Any], Dict[str, Any]]:
    """从映射中提取 BTCCONF_* 变量并构造值树与来源树。"""  # 工具函数说明。

    values: Dict[str, Any] = {}
    value_sources: Dict[str, Any] = {}
    for key, raw_value in sorted(env.items()):  # 排序保证同一层内覆盖顺序稳定。
        if not key.startswith(ENV_PREFIX):
            continue
        trimmed = key[len(ENV_PREFIX) :]
        path = [segment.lower() for segment in trimmed.split("__") if segment]  # 双下划线表示层级。
        if not path:
            continue
        tree = _keypath_to_tree(path, _parse_scalar(raw_value))
        source_tree = _keypath_to_tree(path, f"env:{source_prefix}{key}")
        _deep_merge(values, tree, value_sources, source_tree)
    return values, value_sources


def _parse_dotenv_file(path: Path) -> Dict[str, str]:
    """解析 .env 文件，仅返回键值对字典。"""  # 工具函数说明。

    result: Dict[str, str] = {}
    if not path.exists():
        return result
    with path.open("r", encoding="utf-8") as handle:
        for line in handle:
            stripped = line.strip()
            if not stripped or stripped.startswith("#") or "=" not in stripped:
                continue
            key, _, raw_value = stripped.partition("=")
            result[key.strip()] = raw_value.strip().strip("\"'")
    return result


def _normalize_path(value: str) -> str:
    """展开用户目录与环境变量并清理尾部斜杠。"""  # 工具函数说明。

    expanded = os.path.expanduser(os.path.expandvars(value.strip()))
    if expanded not in {"/", ""}:
        expanded = expanded.rstrip("/\\")
    return expanded


def _normalize_config(config: Dict[str, Any]) -> None:
    """对配置进行就地规范化：路径展开、网络名小写、口令转字符串。"""  # 工具函数说明。

    paths = config.setdefault("paths", {})
    for key in ("data_dir", "settings_file"):
        value = paths.get(key)
        if isinstance(value, str) and value.strip():
            paths[key] = _normalize_path(value)
    for key in ("managed_conf_name", "includer_conf_name"):
        value = paths.get(key)
        if isinstance(value, str):
            paths[key] = value.strip()
    network = config.setdefault("network", {})
    chain = network.get("default_chain")
    if isinstance(chain, str):
        network["default_chain"] = chain.strip().lower()
    tor = network.setdefault("tor", {})
    password = tor.get("control_password")
    if password is not None and not isinstance(password, str):  # 纯数字口令经环境变量解析后会变成 int。
        tor["control_password"] = str(password)
    log_file = config.get("log_file")
    if isinstance(log_file, str) and log_file.strip():
        config["log_file"] = _normalize_path(log_file)
    store = config.get("store")
    if isinstance(store, str):
        config["store"] = store.strip().lower()
    log_sample = config.get("log_sample_rate")
    if isinstance(log_sample, (int, float)) and not isinstance(log_sample, bool):
        config["log_sample_rate"] = max(min(float(log_sample), 1.0), 1e-6)


def _source_for_path(path: Iterable[str], sources: Dict[str, Any]) -> str:
    """根据键路径在来源树中查找对应标签。"""  # 工具函数说明。

    cursor: Any = sources
    for part in path:
        if not isinstance(cursor, dict):
            return "unknown"
        cursor = cursor.get(part)
        if cursor is None:
            return "unknown"
    return cursor if isinstance(cursor, str) else "unknown"


def _assert_condition(condition: bool, path: Iterable[str], message: str, value: Any, sources: Dict[str, Any]) -> None:
    """若条件不成立则抛出包含来源信息的配置异常。"""  # 工具函数说明。

    if condition:
        return
    path = list(path)
    dotted = ".".join(path)
    origin = _source_for_path(path, sources)
    raise ConfigError(f"Invalid value for {dotted}: {message} (value={value!r}, source={origin})")


def _is_port(value: Any) -> bool:
    return isinstance(value, int) and not isinstance(value, bool) and 0 < value < 65536


def _validate_config(config: Dict[str, Any], sources: Dict[str, Any]) -> None:
    """执行语义校验，确保关键字段满足约束。"""  # 工具函数说明。

    paths = config.get("paths", {})
    for key in ("data_dir", "settings_file"):
        value = paths.get(key)
        _assert_condition(isinstance(value, str) and bool(value), ["paths", key], "must be a non-empty path", value, sources)
    for key in ("managed_conf_name", "includer_conf_name"):
        value = paths.get(key)
        _assert_condition(
            isinstance(value, str) and bool(value) and "/" not in value and "\\" not in value,
            ["paths", key],
            "must be a bare file name inside data_dir",
            value,
            sources,
        )
    _assert_condition(
        paths.get("managed_conf_name") != paths.get("includer_conf_name"),
        ["paths", "managed_conf_name"],
        "managed and includer config must be different files",
        paths.get("managed_conf_name"),
        sources,
    )
    network = config.get("network", {})
    chain = network.get("default_chain")
    _assert_condition(
        chain in KNOWN_CHAINS,
        ["network", "default_chain"],
        f"must be one of {sorted(KNOWN_CHAINS)}",
        chain,
        sources,
    )
    for key in ("p2p_port", "onion_port"):
        _assert_condition(_is_port(network.get(key)), ["network", key], "must be a TCP port", network.get(key), sources)
    for key in ("bitcoind_ip", "whitelist"):
        value = network.get(key)
        _assert_condition(isinstance(value, str) and bool(value), ["network", key], "must be a non-empty string", value, sources)
    tor = network.get("tor", {})
    _assert_condition(isinstance(tor.get("proxy_ip"), str), ["network", "tor", "proxy_ip"], "must be a string", tor.get("proxy_ip"), sources)
    for key in ("proxy_port", "control_port"):
        _assert_condition(_is_port(tor.get(key)), ["network", "tor", key], "must be a TCP port", tor.get(key), sources)
    _assert_condition(
        isinstance(tor.get("control_password"), str),
        ["network", "tor", "control_password"],
        "must be a string",
        tor.get("control_password"),
        sources,
    )
    i2p = network.get("i2p", {})
    _assert_condition(isinstance(i2p.get("sam_ip"), str), ["network", "i2p", "sam_ip"], "must be a string", i2p.get("sam_ip"), sources)
    _assert_condition(_is_port(i2p.get("sam_port")), ["network", "i2p", "sam_port"], "must be a TCP port", i2p.get("sam_port"), sources)
    store = config.get("store")
    _assert_condition(store in KNOWN_STORES, ["store"], f"must be one of {sorted(KNOWN_STORES)}", store, sources)
    log_format = config.get("log_format")
    _assert_condition(log_format in {"human", "jsonl"}, ["log_format"], "must be human or jsonl", log_format, sources)


def parse_cli_set_items(items: Iterable[str], *, lowercase: bool = True) -> Dict[str, Any]:
    """将 KEY=VALUE 形式的列表解析为嵌套字典，点号表示层级。

    应用配置键统一小写；节点设置键（如 cacheSizeMB）区分大小写，需传 lowercase=False。
    """  # 公共函数说明。

    overrides: Dict[str, Any] = {}
    for raw in items:
        if "=" not in raw:
            raise ConfigError(f"Invalid --set entry '{raw}', expected KEY=VALUE")
        key, value = raw.split("=", 1)  # 仅拆分首个等号以允许值中包含等号。
        path = [segment.strip() for segment in key.split(".") if segment.strip()]
        if lowercase:
            path = [segment.lower() for segment in path]
        if not path:
            continue
        tree = _keypath_to_tree(path, _parse_scalar(value))
        _deep_merge(overrides, tree, {}, "cli:set")
    return overrides


def load_and_merge_config(
    cli_set_overrides: Dict[str, Any] | None = None,
    config_path: str | None = None,
    profile_name: str | None = None,
    environ: Mapping[str, str] | None = None,
) -> ConfigBundle:
    """按照默认→用户→profile→环境→CLI 顺序加载配置并返回结果。"""  # 主函数说明。

    root = _project_root()
    default_path = root / "config" / "default.yaml"
    if not default_path.exists():
        raise FileNotFoundError(f"Default config not found: {default_path}")
    config = copy.deepcopy(_load_yaml(default_path))
    sources = _build_source_tree(config, f"default:{default_path}")
    user_path = Path(config_path) if config_path else root / "config" / "user.yaml"
    if config_path and not user_path.exists():  # 显式指定但不存在时报错，默认路径缺失则忽略。
        raise ConfigError(f"Config file not found: {user_path}")
    user_config: Dict[str, Any] = {}
    if user_path.exists():
        user_config = _load_yaml(user_path)
        _deep_merge(config, user_config, sources, _build_source_tree(user_config, f"user:{user_path}"))
    effective_profile = profile_name or (user_config.get("meta") or {}).get("profile") or (config.get("meta") or {}).get("profile")
    profile_source = None
    if effective_profile:
        profile_data = config.get("profiles", {}).get(effective_profile)
        if profile_data is None:
            raise ConfigError(f"Unknown profile '{effective_profile}'")
        profile_source = "cli:--profile" if profile_name else f"profile:{effective_profile}"
        _deep_merge(config, profile_data, sources, _build_source_tree(profile_data, f"profile:{effective_profile}"))
    environ = os.environ if environ is None else environ
    env_layers: list[tuple[Dict[str, Any], Dict[str, Any]]] = []
    dotenv_candidates = [root / ".env"]
    if user_path.exists() and user_path.parent != root:
        dotenv_candidates.append(user_path.parent / ".env")
    for dotenv_path in dotenv_candidates:
        env_map = _parse_dotenv_file(dotenv_path)
        if env_map:
            env_layers.append(_collect_env_from_mapping(env_map, f"{dotenv_path}:"))
    env_layers.append(_collect_env_from_mapping(environ, ""))  # 真实环境变量最后应用。
    for values, source_tree in env_layers:
        if values:
            _deep_merge(config, values, sources, source_tree)
    if cli_set_overrides:
        _deep_merge(config, cli_set_overrides, sources, _build_source_tree(cli_set_overrides, "cli:set"))
    _normalize_config(config)
    _validate_config(config, sources)
    meta = config.setdefault("meta", {})
    meta["profile"] = effective_profile
    return ConfigBundle(config=config, sources=sources, profile=effective_profile, profile_source=profile_source)


def render_effective_config(bundle: ConfigBundle, include_sources: bool = True) -> str:
    """将配置与来源以 YAML 文本渲染，可附带来源注释。"""  # 导出函数说明。

    def _render(node: Any, source_node: Any, indent: int) -> list[str]:
        lines: list[str] = []
        for key in sorted(node.keys()):  # 排序以稳定输出。
            value = node[key]
            child_source = source_node.get(key) if isinstance(source_node, dict) else source_node
            prefix = " " * indent
            if isinstance(value, dict):
                lines.append(f"{prefix}{key}:")
                lines.extend(_render(value, child_source, indent + 2))
                continue
            rendered = yaml.safe_dump(value, default_flow_style=True).strip()
            if rendered.endswith("\n..."):  # safe_dump 对裸标量会追加文档结束标记。
                rendered = rendered[: -len("\n...")]
            line = f"{prefix}{key}: {rendered}"
            if include_sources and isinstance(child_source, str):
                line += f"  # {child_source}"
            lines.append(line)
        return lines

    snapshot = {key: value for key, value in bundle.config.items() if key != "profiles"}  # profile 预设不属于生效配置。
    return "\n".join(_render(snapshot, bundle.sources, 0)) + "\n"


def save_config(bundle: ConfigBundle, path: str | os.PathLike[str], include_sources: bool = True) -> None:
    """将配置快照写入目标路径，使用原子写入避免半成品。"""  # 导出函数说明。

    atomic_write_text(path, render_effective_config(bundle, include_sources=include_sources))
