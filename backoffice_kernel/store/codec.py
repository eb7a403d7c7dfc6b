"""
Field value codec for the entity/field layout.

Maps Python values to ``(value_type, value_text, value_num)`` triples and
back.  Lists and tuples become one row per element with ``is_multi`` set, so
relationship fields holding several ids round-trip as lists.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal
from enum import Enum
from typing import Any

NULL = "null"
STR = "str"
INT = "int"
DECIMAL = "decimal"
BOOL = "bool"
DATE = "date"
DATETIME = "datetime"


@dataclass(frozen=True)
class EncodedValue:
    value_type: str
    value_text: str | None
    value_num: Decimal | None


def encode_scalar(value: Any) -> EncodedValue:
    if isinstance(value, Enum):
        value = value.value
    if value is None:
        return EncodedValue(NULL, None, None)
    if isinstance(value, bool):
        return EncodedValue(BOOL, "1" if value else "0", Decimal(int(value)))
    if isinstance(value, int):
        return EncodedValue(INT, str(value), Decimal(value))
    if isinstance(value, float):
        value = Decimal(str(value))
    if isinstance(value, Decimal):
        return EncodedValue(DECIMAL, str(value), value)
    if isinstance(value, datetime):
        return EncodedValue(DATETIME, value.isoformat(), None)
    if isinstance(value, date):
        return EncodedValue(DATE, value.isoformat(), None)
    if isinstance(value, str):
        return EncodedValue(STR, value, None)
    raise TypeError(f"Unsupported field value type: {type(value).__name__}")


def encode(value: Any) -> tuple[bool, list[EncodedValue]]:
    """Return ``(is_multi, rows)`` for a field value."""
    if isinstance(value, (list, tuple)):
        if not value:
            return True, [EncodedValue(NULL, None, None)]
        return True, [encode_scalar(v) for v in value]
    return False, [encode_scalar(value)]


def decode_scalar(value_type: str, value_text: str | None) -> Any:
    if value_type == NULL or value_text is None:
        return None
    if value_type == BOOL:
        return value_text == "1"
    if value_type == INT:
        return int(value_text)
    if value_type == DECIMAL:
        return Decimal(value_text)
    if value_type == DATE:
        return date.fromisoformat(value_text)
    if value_type == DATETIME:
        return datetime.fromisoformat(value_text)
    return value_text


def decode(is_multi: bool, rows: list[tuple[str, str | None]]) -> Any:
    """Inverse of ``encode``; ``rows`` are ``(value_type, value_text)`` by position."""
    if is_multi:
        return [
            decode_scalar(value_type, text)
            for value_type, text in rows
            if value_type != NULL
        ]
    if not rows:
        return None
    value_type, text = rows[0]
    return decode_scalar(value_type, text)


def comparison_operand(value: Any) -> tuple[str, Any]:
    """
    Pick the column a filter value compares against.

    Returns ``("num", Decimal)`` for numbers and booleans,
    ``("null", None)`` for None, otherwise ``("text", str)``.
    """
    encoded = encode_scalar(value)
    if encoded.value_type == NULL:
        return "null", None
    if encoded.value_num is not None:
        return "num", encoded.value_num
    return "text", encoded.value_text
