"""
Value primitives shared by the kernel and the modules.

Responsibility:
    - ``EntityType``: the type tags of every document in the object store.
    - Decimal helpers: conversion of stored or caller-supplied numbers into
      ``Decimal`` and the single rounding function used for money and hours.

Invariants enforced:
    - No floats in results.  Floats arriving from callers are converted via
      ``str()`` so ``0.1`` becomes ``Decimal("0.1")``, not its binary
      expansion.
    - Rounding is ROUND_HALF_UP (the rounding used for invoices and
      overage charges).
"""

from __future__ import annotations

from datetime import date, datetime
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation
from enum import Enum

DEFAULT_ROUNDING = ROUND_HALF_UP
MONEY_DECIMAL_PLACES = 2
HOURS_DECIMAL_PLACES = 2

ZERO = Decimal("0")


class EntityType(str, Enum):
    """Document type tags in the object store."""

    ORGANIZATION = "client_organization"
    PROJECT = "project"
    MILESTONE = "milestone"
    INVOICE = "invoice"
    INVOICE_LINE_ITEM = "invoice_line_item"
    TIME_ENTRY = "time_entry"
    SERVICE_REQUEST = "service_request"
    MONTHLY_REPORT = "monthly_report"
    PROJECT_REPORT = "project_report"

    def __str__(self) -> str:
        return self.value


def to_decimal(value, default: Decimal = ZERO) -> Decimal:
    """
    Coerce a stored or caller-supplied value to Decimal.

    ``None``, empty strings and non-numeric strings give ``default``;
    this mirrors how empty meta fields read as zero.
    """
    if value is None or value == "":
        return default
    if isinstance(value, bool):
        return Decimal(int(value))
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    try:
        return Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return default


def is_numeric(value) -> bool:
    if value is None or value == "" or isinstance(value, bool):
        return False
    try:
        Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        return False
    return True


def round_decimal(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a Decimal to ``decimal_places``.

    The only rounding function for money and hours; everything else
    delegates here.
    """
    quantize_str = "1" if decimal_places == 0 else "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def round_money(value: Decimal) -> Decimal:
    return round_decimal(value, MONEY_DECIMAL_PLACES)


def round_hours(value: Decimal) -> Decimal:
    return round_decimal(value, HOURS_DECIMAL_PLACES)


def coerce_id(value) -> int | None:
    """
    Normalize a relationship field to a single integer id.

    Relationship fields may hold one id or a list of ids; the first id is
    the owner.  Empty values give None.
    """
    if isinstance(value, (list, tuple)):
        value = value[0] if value else None
    if value is None or value == "" or isinstance(value, bool):
        return None
    try:
        ident = int(value)
    except (TypeError, ValueError):
        return None
    return ident if ident > 0 else None


def to_date(value) -> date | None:
    """Coerce a stored date field (``date`` or ISO string) to ``date``; invalid gives None."""
    if value is None or value == "":
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(str(value).strip()[:10])
    except ValueError:
        return None


def is_flag_set(value) -> bool:
    """True for the stored forms of a checked checkbox: True, 1 and "1"."""
    if isinstance(value, bool):
        return value
    return value in (1, "1")
