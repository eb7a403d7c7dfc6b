"""
backoffice_config -- single public entrypoint for back-office settings.

Responsibility:
    Provides the ONLY way to obtain settings at runtime through
    ``get_active_config()``.  Services receive settings sections from their
    caller; they never read files or environment variables themselves.

Architecture position:
    Configuration.  Sits above ``backoffice_kernel`` and below
    ``backoffice_modules``.  The kernel MUST NEVER import from
    ``backoffice_config``.

Invariants enforced:
    - Single entrypoint: all runtime settings flow through
      ``get_active_config()``.
    - Deterministic: the same YAML always produces the same checksum.

Failure modes:
    - ``FileNotFoundError`` -- the settings file does not exist.
    - ``ValueError`` -- one or more settings are invalid.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``BACKOFFICE_CONFIG_TRACE`` log entry with the config_id, version and
    checksum, tying billing results to the settings that produced them.
"""

from __future__ import annotations

import os
from pathlib import Path

from backoffice_config.loader import compute_checksum, load_yaml_file, parse_settings
from backoffice_config.schema import (
    BackofficeSettings,
    BillingSettings,
    CacheSettings,
    StoreSettings,
)
from backoffice_kernel.logging_config import get_logger

_logger = get_logger("config")

CONFIG_ENV_VAR = "BACKOFFICE_CONFIG"

_DEFAULT_CONFIG_FILE = Path(__file__).parent / "sets" / "default.yaml"


def get_active_config(config_path: Path | str | None = None) -> BackofficeSettings:
    """The ONLY public settings entrypoint.

    Resolution order: ``config_path`` argument, then the
    ``BACKOFFICE_CONFIG`` environment variable, then the packaged
    ``sets/default.yaml``.

    Raises:
        FileNotFoundError: If the resolved file does not exist.
        ValueError: If any setting is invalid.
    """
    path = Path(config_path or os.environ.get(CONFIG_ENV_VAR) or _DEFAULT_CONFIG_FILE)
    if not path.is_file():
        raise FileNotFoundError(f"Settings file not found: {path}")

    settings = parse_settings(load_yaml_file(path))

    _logger.info(
        "BACKOFFICE_CONFIG_TRACE",
        extra={
            "trace_type": "BACKOFFICE_CONFIG_TRACE",
            "config_id": settings.config_id,
            "config_version": settings.version,
            "checksum": settings.checksum,
            "config_path": str(path),
            "cache_backend": settings.cache.backend,
        },
    )
    return settings


__all__ = [
    "BackofficeSettings",
    "BillingSettings",
    "CacheSettings",
    "StoreSettings",
    "compute_checksum",
    "get_active_config",
    "load_yaml_file",
    "parse_settings",
]
