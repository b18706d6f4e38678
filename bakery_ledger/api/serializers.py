"""JSON conversion between snake_case service dicts and camelCase payloads."""

import re
from typing import Any

_CAMEL_BOUNDARY = re.compile(r"(?<!^)(?=[A-Z])")

# Summary sections keyed by material name; the names are data, not field names
_NAME_KEYED_SECTIONS = frozenset({"raw_materials", "raw_material_usage"})


def to_camel(key: str) -> str:
    """``total_stock_cost`` -> ``totalStockCost``"""
    head, *rest = key.split("_")
    return head + "".join(part[:1].upper() + part[1:] for part in rest)


def to_snake(key: str) -> str:
    """``standardCakes`` -> ``standard_cakes``"""
    return _CAMEL_BOUNDARY.sub("_", key).lower()


def camelize(value: Any) -> Any:
    """Recursively convert dict keys to camelCase, leaving material names as they are."""
    if isinstance(value, dict):
        result = {}
        for key, item in value.items():
            if key in _NAME_KEYED_SECTIONS and isinstance(item, dict):
                result[to_camel(key)] = {name: camelize(entry) for name, entry in item.items()}
            else:
                result[to_camel(key) if isinstance(key, str) else key] = camelize(item)
        return result
    if isinstance(value, list):
        return [camelize(item) for item in value]
    return value


def snakify(value: Any) -> Any:
    """Recursively convert dict keys of a request payload to snake_case."""
    if isinstance(value, dict):
        return {(to_snake(k) if isinstance(k, str) else k): snakify(v) for k, v in value.items()}
    if isinstance(value, list):
        return [snakify(item) for item in value]
    return value
