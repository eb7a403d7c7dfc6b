"""
Settings loader (``backoffice_config.loader``).

Responsibility
--------------
Loads the YAML settings file and parses it into the frozen dataclasses of
``backoffice_config.schema``.  Runtime callers use
``backoffice_config.get_active_config()`` instead of calling this directly.

Invariants enforced
-------------------
* Every problem in a settings file is reported at once: ``parse_settings``
  collects all validation errors and raises a single ``ValueError``.
* Money and hour values are parsed as ``Decimal`` from their string form.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  parsed source for change detection.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
* Invalid values  -> ``ValueError`` listing every problem.
"""

from __future__ import annotations

import hashlib
import json
from decimal import Decimal, InvalidOperation
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from backoffice_config.schema import (
    BackofficeSettings,
    BillingSettings,
    CacheSettings,
    StoreSettings,
)

CACHE_BACKENDS = ("memory", "sql")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def _decimal(value: Any, name: str, errors: list[str]) -> Decimal:
    try:
        result = Decimal(str(value))
    except (InvalidOperation, ValueError):
        errors.append(f"{name}: not a number ({value!r})")
        return Decimal("0")
    if result < 0:
        errors.append(f"{name}: must not be negative ({value!r})")
    return result


def _int(value: Any, name: str, errors: list[str]) -> int:
    try:
        result = int(value)
    except (TypeError, ValueError):
        errors.append(f"{name}: not an integer ({value!r})")
        return 0
    if result < 0:
        errors.append(f"{name}: must not be negative ({value!r})")
    return result


def parse_billing(data: dict[str, Any], errors: list[str]) -> BillingSettings:
    defaults = BillingSettings()
    timezone = data.get("timezone", defaults.timezone)
    try:
        ZoneInfo(timezone)
    except (ZoneInfoNotFoundError, ValueError):
        errors.append(f"billing.timezone: unknown time zone ({timezone!r})")

    return BillingSettings(
        default_free_hours=_decimal(
            data.get("default_free_hours", defaults.default_free_hours),
            "billing.default_free_hours",
            errors,
        ),
        hourly_rate=_decimal(
            data.get("hourly_rate", defaults.hourly_rate), "billing.hourly_rate", errors
        ),
        timezone=timezone,
        due_soon_days=_int(
            data.get("due_soon_days", defaults.due_soon_days),
            "billing.due_soon_days",
            errors,
        ),
        report_invoice_window_days=_int(
            data.get("report_invoice_window_days", defaults.report_invoice_window_days),
            "billing.report_invoice_window_days",
            errors,
        ),
    )


def parse_cache(data: dict[str, Any], errors: list[str]) -> CacheSettings:
    defaults = CacheSettings()
    backend = data.get("backend", defaults.backend)
    if backend not in CACHE_BACKENDS:
        errors.append(
            f"cache.backend: expected one of {', '.join(CACHE_BACKENDS)} ({backend!r})"
        )
    return CacheSettings(
        backend=backend,
        default_ttl_seconds=_int(
            data.get("default_ttl_seconds", defaults.default_ttl_seconds),
            "cache.default_ttl_seconds",
            errors,
        ),
        key_prefix=str(data.get("key_prefix", defaults.key_prefix)),
    )


def parse_store(data: dict[str, Any], errors: list[str]) -> StoreSettings:
    defaults = StoreSettings()
    timeout_raw = data.get("call_timeout_seconds", defaults.call_timeout_seconds)
    try:
        timeout = float(timeout_raw)
    except (TypeError, ValueError):
        errors.append(f"store.call_timeout_seconds: not a number ({timeout_raw!r})")
        timeout = defaults.call_timeout_seconds
    if timeout <= 0:
        errors.append(f"store.call_timeout_seconds: must be positive ({timeout_raw!r})")

    statement_timeout = data.get("statement_timeout_ms")
    return StoreSettings(
        database_url=str(data.get("database_url", defaults.database_url)),
        call_timeout_seconds=timeout,
        statement_timeout_ms=(
            _int(statement_timeout, "store.statement_timeout_ms", errors)
            if statement_timeout is not None
            else None
        ),
    )


def parse_settings(data: dict[str, Any]) -> BackofficeSettings:
    """
    Parse a settings dict into ``BackofficeSettings``.

    Missing sections and keys take their dataclass defaults.

    Raises:
        ValueError: listing every invalid value.
    """
    errors: list[str] = []
    settings = BackofficeSettings(
        config_id=str(data.get("config_id", "backoffice-default")),
        version=_int(data.get("version", 1), "version", errors),
        billing=parse_billing(data.get("billing") or {}, errors),
        cache=parse_cache(data.get("cache") or {}, errors),
        store=parse_store(data.get("store") or {}, errors),
        checksum=compute_checksum(data),
    )
    if errors:
        raise ValueError(
            "Settings validation failed:\n" + "\n".join(f"  - {e}" for e in errors)
        )
    return settings


def compute_checksum(data: dict[str, Any]) -> str:
    """SHA-256 of the canonical JSON serialization; identical data, identical checksum."""
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
