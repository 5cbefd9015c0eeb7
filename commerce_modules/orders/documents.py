"""
Order document codec (``commerce_modules.orders.documents``).

Converts the frozen ``Order`` aggregate to and from the JSON document stored
in the ``orders.document`` column.  Downstream readers (document generation,
notifications) consume the same shape.

Encoding rules: Decimals become strings, datetimes ISO-8601 strings, enums
their values, tuples lists, nested dataclasses objects.  Decoding is driven
by the dataclass type hints; unknown keys are ignored and missing keys take
the field default, so older documents stay readable.
"""

from __future__ import annotations

import dataclasses
import types
import typing
from datetime import datetime
from decimal import Decimal
from enum import Enum
from typing import Any

from commerce_modules.orders.models import Order

_hint_cache: dict[type, dict[str, Any]] = {}


def _hints(cls: type) -> dict[str, Any]:
    hints = _hint_cache.get(cls)
    if hints is None:
        hints = typing.get_type_hints(cls)
        _hint_cache[cls] = hints
    return hints


def encode_value(value: Any) -> Any:
    """Encode a domain value into JSON-compatible primitives."""
    if value is None or isinstance(value, (bool, int, str)) and not isinstance(value, Enum):
        return value
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, datetime):
        return value.isoformat()
    if dataclasses.is_dataclass(value) and not isinstance(value, type):
        return {
            f.name: encode_value(getattr(value, f.name))
            for f in dataclasses.fields(value)
        }
    if isinstance(value, (list, tuple)):
        return [encode_value(v) for v in value]
    if isinstance(value, dict):
        return {str(k): encode_value(v) for k, v in value.items()}
    raise TypeError(f"Cannot encode {type(value).__name__} into an order document")


def decode_value(tp: Any, raw: Any) -> Any:
    """Decode a JSON primitive into the value type ``tp``."""
    if raw is None or tp is Any:
        return raw

    origin = typing.get_origin(tp)
    if origin in (typing.Union, types.UnionType):
        inner = [arg for arg in typing.get_args(tp) if arg is not type(None)]
        return decode_value(inner[0], raw)
    if origin is tuple:
        item_type = typing.get_args(tp)[0]
        return tuple(decode_value(item_type, r) for r in raw)
    if origin is dict:
        return dict(raw)

    if isinstance(tp, type):
        if issubclass(tp, Enum):
            return tp(raw)
        if tp is Decimal:
            return Decimal(str(raw))
        if tp is datetime:
            return datetime.fromisoformat(raw)
        if dataclasses.is_dataclass(tp):
            return _decode_dataclass(tp, raw)
        if tp in (bool, int, str):
            return tp(raw)

    raise TypeError(f"Cannot decode order document field of type {tp!r}")


def _decode_dataclass(cls: type, raw: dict[str, Any]) -> Any:
    hints = _hints(cls)
    kwargs = {
        f.name: decode_value(hints[f.name], raw[f.name])
        for f in dataclasses.fields(cls)
        if f.init and f.name in raw
    }
    return cls(**kwargs)


def order_to_document(order: Order) -> dict[str, Any]:
    return encode_value(order)


def order_from_document(document: dict[str, Any]) -> Order:
    return _decode_dataclass(Order, document)
