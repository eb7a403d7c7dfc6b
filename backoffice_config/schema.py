"""
Back-office settings schema.

The YAML settings file is parsed by the loader into these frozen
dataclasses.  Services receive the section they need (``BillingSettings``,
``CacheSettings``) rather than the whole tree.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from decimal import Decimal

# ---------------------------------------------------------------------------
# Sections
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BillingSettings:
    """Free hours, overage rate and the business calendar."""

    default_free_hours: Decimal = Decimal("2.0")
    hourly_rate: Decimal = Decimal("30.00")
    timezone: str = "America/Chicago"
    due_soon_days: int = 2
    report_invoice_window_days: int = 7


@dataclass(frozen=True)
class CacheSettings:
    backend: str = "memory"  # memory | sql
    default_ttl_seconds: int = 3600
    key_prefix: str = "bbab_sc_"


@dataclass(frozen=True)
class StoreSettings:
    database_url: str = "sqlite:///:memory:"
    call_timeout_seconds: float = 5.0
    statement_timeout_ms: int | None = None


# ---------------------------------------------------------------------------
# Root
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class BackofficeSettings:
    """The whole settings tree plus its identity."""

    config_id: str = "backoffice-default"
    version: int = 1
    billing: BillingSettings = field(default_factory=BillingSettings)
    cache: CacheSettings = field(default_factory=CacheSettings)
    store: StoreSettings = field(default_factory=StoreSettings)
    checksum: str = ""
