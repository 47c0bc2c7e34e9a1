"""提供 JSON Schema 加载、缓存与持久化设置层结构校验的工具函数。"""  # 模块文档说明。
# 导入 json 以解析 schema 文件内容。
import json
# 导入 pathlib.Path 以定位仓库中的 schemas 目录。
from pathlib import Path
# 导入 typing 以标注缓存字典类型。
from typing import Any, Dict

# 从 jsonschema 导入校验器。
from jsonschema import Draft202012Validator

# 预先解析 schema 目录，避免每次调用都重新计算。
SCHEMA_DIR = Path(__file__).resolve().parents[2] / "schemas"
# 定义支持的 schema 名称到文件名的映射。
SCHEMA_FILES = {
    "settings": "settings.schema.json",
}
# 已加载的 schema 与编译后的校验器缓存。
_SCHEMA_CACHE: Dict[str, dict] = {}
_VALIDATOR_CACHE: Dict[str, Draft202012Validator] = {}


def load_schema(name: str) -> dict:
    """加载指定名称的 JSON Schema，并在内存中缓存。"""  # 函数文档说明。

    key = name.strip().lower()
    if key not in SCHEMA_FILES:
        raise KeyError(f"Unknown schema: {name}")
    if key in _SCHEMA_CACHE:
        return _SCHEMA_CACHE[key]
    schema_path = SCHEMA_DIR / SCHEMA_FILES[key]
    with schema_path.open("r", encoding="utf-8") as handle:
        schema = json.load(handle)
    _SCHEMA_CACHE[key] = schema
    return schema


def _get_validator(name: str) -> Draft202012Validator:
    """获取编译后的 Draft2020-12 校验器实例并缓存。"""  # 内部工具函数说明。

    key = name.strip().lower()
    load_schema(key)
    if key not in _VALIDATOR_CACHE:
        _VALIDATOR_CACHE[key] = Draft202012Validator(_SCHEMA_CACHE[key])
    return _VALIDATOR_CACHE[key]


def validate_settings_layer(payload: Any) -> None:
    """校验持久化设置层的结构（仅类型与形状，不做取值范围检查）。

    未知键一律放行；校验失败时抛出 jsonschema.ValidationError。
    """  # 函数文档说明。

    _get_validator("settings").validate(payload)
