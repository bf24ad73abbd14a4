"""
Field resolution — dot-path lookup and ${...} interpolation.

Every step reads earlier results through these helpers:

    resolve_field(ctx, "loyalty.OPERADOR")       → 17
    resolve_params(ctx, ["${contact.customerId}", 5])  → [1234, 5]
    interpolate_string(ctx, "Hi ${contact.name}") → "Hi Alice"

Lookups walk mappings, pydantic models (by field name or alias) and plain
attributes. A missing or null segment resolves to None; nothing raises.
Interpolation leaves unresolved tokens in place so gaps stay visible.
"""
from __future__ import annotations

import json
import re
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel

TOKEN_PATTERN = re.compile(r"\$\{([^}]+)\}")


def _lookup(obj: Any, key: str) -> Any:
    """Resolve one path segment on obj, or None."""
    if isinstance(obj, Mapping):
        return obj.get(key)

    if isinstance(obj, BaseModel):
        fields = type(obj).model_fields
        if key in fields:
            return getattr(obj, key)
        for name, info in fields.items():
            if info.alias == key:
                return getattr(obj, name)
        extra = obj.model_extra or {}
        return extra.get(key)

    if isinstance(obj, (list, tuple)) and key.isdigit():
        index = int(key)
        return obj[index] if index < len(obj) else None

    return getattr(obj, key, None)


def resolve_field(context: Any, field_path: str) -> Any:
    """Get a value from the context using dot notation, e.g. 'contact.customerId'."""
    value = context
    for part in field_path.split("."):
        if value is None:
            return None
        value = _lookup(value, part)
    return value


def token_path(value: Any) -> str | None:
    """Return the path of a value that is exactly one ${path} token, else None."""
    if not isinstance(value, str):
        return None
    match = TOKEN_PATTERN.fullmatch(value)
    return match.group(1).strip() if match else None


def resolve_value(context: Any, value: Any) -> Any:
    """Resolve a single literal-or-${path} value."""
    path = token_path(value)
    if path is None:
        return value
    return resolve_field(context, path)


def resolve_params(context: Any, params: list[Any]) -> list[Any]:
    """Replace exact ${path} parameters with their resolved values; keep literals."""
    return [resolve_value(context, param) for param in params]


def stringify_value(value: Any) -> str:
    """Render a resolved value the way persisted flows spell it."""
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    if isinstance(value, (dict, list)):
        return json.dumps(value, default=str, ensure_ascii=False)
    if isinstance(value, BaseModel):
        return value.model_dump_json()
    return str(value)


def interpolate_string(context: Any, template: str) -> str:
    """Replace every ${path} in template; unresolved tokens are left untouched."""
    if not template:
        return template

    def replacer(match: re.Match) -> str:
        value = resolve_field(context, match.group(1).strip())
        if value is None:
            return match.group(0)
        return stringify_value(value)

    return TOKEN_PATTERN.sub(replacer, template)
