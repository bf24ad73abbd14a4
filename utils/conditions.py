"""
Condition operators — the fixed comparison table used by CONDITION steps.

Operators (symbol aliases in brackets):
    equals [==]  notEquals [!=]  contains  in
    gt [>]  gte [>=]  lt [<]  lte [<=]  between
    exists  notExists  regex

Equality is strict: values of different kinds never compare equal
(1 vs "1", 1 vs True). Ordering operators coerce a numeric string when
the other side is a number and evaluate to False for incomparable values.
"""
from __future__ import annotations

import numbers
import operator as op
import re
from typing import Any, Callable

from flows.errors import UnsupportedOperatorError
from utils.fields import stringify_value


def _is_number(value: Any) -> bool:
    return isinstance(value, numbers.Number) and not isinstance(value, bool)


def strict_equals(a: Any, b: Any) -> bool:
    if isinstance(a, bool) or isinstance(b, bool):
        return isinstance(a, bool) and isinstance(b, bool) and a == b
    if _is_number(a) and _is_number(b):
        return a == b
    return type(a) is type(b) and a == b


def _coerce(a: Any, b: Any) -> tuple[Any, Any]:
    """Turn a numeric string into a float when compared against a number."""
    if _is_number(b) and isinstance(a, str):
        try:
            return float(a), b
        except ValueError:
            return a, b
    if _is_number(a) and isinstance(b, str):
        try:
            return a, float(b)
        except ValueError:
            return a, b
    return a, b


def _ordered(fn: Callable[[Any, Any], bool]) -> Callable[[Any, Any], bool]:
    def compare(a: Any, b: Any) -> bool:
        if a is None or b is None:
            return False
        a, b = _coerce(a, b)
        try:
            return bool(fn(a, b))
        except TypeError:
            return False
    return compare


def _contains(field_value: Any, value: Any) -> bool:
    if isinstance(field_value, (list, tuple, set)):
        return any(strict_equals(item, value) for item in field_value)
    if field_value is None:
        return False
    return stringify_value(value) in stringify_value(field_value)


def _in(field_value: Any, value: Any) -> bool:
    if not isinstance(value, (list, tuple)):
        return False
    return any(strict_equals(field_value, item) for item in value)


def _between(field_value: Any, value: Any) -> bool:
    if not isinstance(value, (list, tuple)) or len(value) != 2:
        return False
    low, high = value
    return _ordered(op.ge)(field_value, low) and _ordered(op.le)(field_value, high)


def _regex(field_value: Any, value: Any) -> bool:
    return re.search(str(value), stringify_value(field_value)) is not None


OPERATORS: dict[str, Callable[[Any, Any], bool]] = {
    "equals": strict_equals,
    "notEquals": lambda a, b: not strict_equals(a, b),
    "contains": _contains,
    "in": _in,
    "gt": _ordered(op.gt),
    "gte": _ordered(op.ge),
    "lt": _ordered(op.lt),
    "lte": _ordered(op.le),
    "exists": lambda a, b: a is not None,
    "notExists": lambda a, b: a is None,
    "regex": _regex,
    "between": _between,
}

ALIASES: dict[str, str] = {
    "==": "equals",
    "!=": "notEquals",
    ">": "gt",
    ">=": "gte",
    "<": "lt",
    "<=": "lte",
}


def supported_operators() -> list[str]:
    return [*OPERATORS, *ALIASES]


def evaluate_operator(field_value: Any, operator: str, value: Any) -> bool:
    """Apply one operator. Raises UnsupportedOperatorError for unknown names."""
    fn = OPERATORS.get(ALIASES.get(operator, operator))
    if fn is None:
        raise UnsupportedOperatorError(operator)
    return fn(field_value, value)
