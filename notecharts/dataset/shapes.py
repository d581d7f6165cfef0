"""
Extractable value shapes.

Raw note field values arrive in many forms (plain scalars, lists, rich-text
nodes such as ``{"type": "p", "content": "..."}``, option objects such as
``{"label": .., "value": ..}``). ``classify`` turns a raw value into exactly one
of the shapes below; wrapper objects are unwrapped by a fixed key precedence.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Sequence, Tuple, Union
import json
import math

# first key present wins
WRAPPER_KEYS: Tuple[str, ...] = ("value", "content", "text", "title", "name")


@dataclass(frozen=True)
class Missing:
    pass


@dataclass(frozen=True)
class Number:
    value: float | int


@dataclass(frozen=True)
class Text:
    value: str


@dataclass(frozen=True)
class Flag:
    value: bool


@dataclass(frozen=True)
class Items:
    items: Tuple[Any, ...]


@dataclass(frozen=True)
class Wrapped:
    key: str
    inner: Any


@dataclass(frozen=True)
class Opaque:
    obj: Any


Shape = Union[Missing, Number, Text, Flag, Items, Wrapped, Opaque]
MISSING = Missing()


def classify(raw: Any) -> Shape:
    if raw is None:
        return MISSING
    if isinstance(raw, float) and math.isnan(raw):
        return MISSING
    if isinstance(raw, bool):
        return Flag(raw)
    if isinstance(raw, (int, float)):
        return Number(raw)
    if isinstance(raw, str):
        return Text(raw)
    if isinstance(raw, Mapping):
        for k in WRAPPER_KEYS:
            if k in raw:
                return Wrapped(k, raw[k])
        return Opaque(raw)
    if isinstance(raw, (list, tuple)):
        return Items(tuple(raw))
    return Opaque(raw)


def extract_leaf(raw: Any) -> Any:
    """Unwrap wrapper objects down to a leaf; lists and opaque objects are returned as-is."""
    shape = classify(raw)
    while isinstance(shape, Wrapped):
        shape = classify(shape.inner)
    if isinstance(shape, Missing):
        return None
    if isinstance(shape, (Number, Text, Flag)):
        return shape.value
    if isinstance(shape, Items):
        return list(shape.items)
    return shape.obj


def compact_json(obj: Any) -> str:
    return json.dumps(obj, ensure_ascii=False, separators=(",", ":"), default=str)


def parse_number(text: str) -> Optional[float | int]:
    s = text.strip()
    if not s:
        return None
    try:
        v = float(s)
    except ValueError:
        return None
    if not math.isfinite(v):
        return None
    return int(v) if v.is_integer() and "." not in s and "e" not in s.lower() else v


def normalize_metric(raw: Any) -> Optional[float | int]:
    """Numbers pass through, arrays count their length, strings parse; anything else is omitted."""
    shape = classify(raw)
    if isinstance(shape, Number):
        return shape.value
    if isinstance(shape, Items):
        return len(shape.items)
    leaf = extract_leaf(raw)
    if isinstance(leaf, bool):
        return None
    if isinstance(leaf, (int, float)):
        return leaf
    if isinstance(leaf, str):
        return parse_number(leaf)
    return None


def _leaf_text(item: Any) -> Any:
    leaf = extract_leaf(item)
    if isinstance(leaf, (Mapping, list)):
        return compact_json(leaf)
    return leaf


def normalize_dimension(raw: Any) -> Any:
    """Unwrap to a scalar; arrays join their truthy leaves with commas; unknown objects become JSON."""
    shape = classify(raw)
    if isinstance(shape, Missing):
        return None
    if isinstance(shape, Items):
        leaves = [_leaf_text(x) for x in shape.items]
        return ",".join(as_key(x) for x in leaves if x)
    return _leaf_text(raw)


def is_missing(v: Any) -> bool:
    if v is None:
        return True
    if isinstance(v, float) and math.isnan(v):
        return True
    return isinstance(v, str) and v == ""


def as_key(v: Any) -> str:
    """Stringify a dataset value for distinct-value counting and grouping."""
    if isinstance(v, bool):
        return "true" if v else "false"
    if isinstance(v, float) and v.is_integer():
        return str(int(v))
    if isinstance(v, (list, tuple)):
        return ",".join(as_key(x) for x in v)
    if isinstance(v, Mapping):
        return compact_json(v)
    return str(v)


__all__ = [
    "WRAPPER_KEYS",
    "Missing", "Number", "Text", "Flag", "Items", "Wrapped", "Opaque", "Shape",
    "classify", "extract_leaf", "normalize_metric", "normalize_dimension",
    "is_missing", "as_key", "compact_json", "parse_number",
]
