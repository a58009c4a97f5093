"""
Configuration Loader (``stock_config.loader``).

Responsibility
--------------
Loads YAML configuration files and parses them into the typed
``stock_config.schema`` dataclasses.  Callers use
``stock_config.get_active_config()``; this module is its implementation.

Invariants enforced
-------------------
* Every parsed object is a frozen dataclass from ``schema.py``.
* Invalid values raise ``ValueError`` with a descriptive message; unknown
  keys are rejected so typos never silently fall back to defaults.
* ``compute_checksum`` produces a deterministic SHA-256 hash of the
  effective configuration.

Failure modes
-------------
* Missing YAML file  -> ``FileNotFoundError`` propagates.
* Malformed YAML  -> ``yaml.YAMLError`` propagates.
"""

from __future__ import annotations

import hashlib
import json
from collections.abc import Mapping
from pathlib import Path
from typing import Any
from zoneinfo import ZoneInfo, ZoneInfoNotFoundError

import yaml

from stock_config.schema import (
    LOT_POLICIES,
    DashboardConfig,
    DatabaseConfig,
    LedgerConfig,
    LoggingConfig,
    StockLedgerConfig,
    ValuationConfig,
)

DEFAULTS_PATH = Path(__file__).parent / "defaults.yaml"

_SECTIONS = ("database", "ledger", "valuation", "dashboard", "logging")

_LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def load_yaml_file(path: Path) -> dict[str, Any]:
    """
    Load a single YAML file and return its contents as a dict.

    Raises:
        FileNotFoundError: if the file does not exist.
        yaml.YAMLError: if the file contains invalid YAML.
    """
    with open(path) as f:
        return yaml.safe_load(f) or {}


def merge_dicts(base: dict[str, Any], override: Mapping[str, Any]) -> dict[str, Any]:
    """Section-wise merge: keys in ``override`` replace keys in ``base``."""
    merged = {key: dict(value or {}) for key, value in base.items()}
    for section, values in override.items():
        if section not in _SECTIONS:
            raise ValueError(f"Unknown configuration section: {section!r}")
        if values is None:
            continue
        if not isinstance(values, Mapping):
            raise ValueError(f"Configuration section {section!r} must be a mapping")
        merged.setdefault(section, {}).update(values)
    return merged


def apply_environment(data: dict[str, Any], environ: Mapping[str, str]) -> dict[str, Any]:
    """Apply STOCK_LEDGER_* environment overrides."""
    url = environ.get("STOCK_LEDGER_DATABASE_URL") or environ.get("DATABASE_URL")
    if url:
        data.setdefault("database", {})["url"] = url
    level = environ.get("STOCK_LEDGER_LOG_LEVEL")
    if level:
        data.setdefault("logging", {})["level"] = level
    return data


def _build(cls, section: str, values: Mapping[str, Any]):
    known = set(cls.__dataclass_fields__)
    unknown = set(values) - known
    if unknown:
        raise ValueError(
            f"Unknown key(s) in {section!r} section: {', '.join(sorted(unknown))}"
        )
    return cls(**values)


def parse_config(data: Mapping[str, Any]) -> StockLedgerConfig:
    """
    Parse and validate a merged configuration dict.

    Raises:
        ValueError: on missing database URL, unknown keys, or out-of-range
            values.
    """
    database_data = dict(data.get("database") or {})
    if not database_data.get("url"):
        raise ValueError(
            "database.url is required (set it in YAML or via STOCK_LEDGER_DATABASE_URL)"
        )

    database = _build(DatabaseConfig, "database", database_data)
    ledger = _build(LedgerConfig, "ledger", data.get("ledger") or {})
    valuation = _build(ValuationConfig, "valuation", data.get("valuation") or {})
    dashboard = _build(DashboardConfig, "dashboard", data.get("dashboard") or {})
    logging_config = _build(LoggingConfig, "logging", data.get("logging") or {})

    if ledger.max_retries < 1:
        raise ValueError(f"ledger.max_retries must be >= 1, got {ledger.max_retries}")
    if ledger.retry_backoff_seconds < 0:
        raise ValueError("ledger.retry_backoff_seconds must be >= 0")
    if valuation.lot_policy not in LOT_POLICIES:
        raise ValueError(
            f"valuation.lot_policy must be one of {', '.join(LOT_POLICIES)}, "
            f"got {valuation.lot_policy!r}"
        )
    if valuation.weighted_average_window < 1:
        raise ValueError("valuation.weighted_average_window must be >= 1")
    if valuation.money_places < 0:
        raise ValueError("valuation.money_places must be >= 0")
    try:
        ZoneInfo(dashboard.business_timezone)
    except (ZoneInfoNotFoundError, ValueError) as exc:
        raise ValueError(
            f"dashboard.business_timezone is not a known timezone: "
            f"{dashboard.business_timezone!r}"
        ) from exc
    if logging_config.level.upper() not in _LOG_LEVELS:
        raise ValueError(f"logging.level must be one of {', '.join(_LOG_LEVELS)}")

    canonical = {
        "database": {**database_data, "url": _redact_url(database.url)},
        "ledger": vars(ledger),
        "valuation": vars(valuation),
        "dashboard": vars(dashboard),
        "logging": vars(logging_config),
    }

    return StockLedgerConfig(
        database=database,
        ledger=ledger,
        valuation=valuation,
        dashboard=dashboard,
        logging=logging_config,
        checksum=compute_checksum(canonical),
    )


def _redact_url(url: str) -> str:
    """Drop the password from a database URL before it is hashed or logged."""
    scheme, sep, rest = url.partition("://")
    if not sep or "@" not in rest:
        return url
    credentials, _, host = rest.rpartition("@")
    user = credentials.split(":", 1)[0]
    return f"{scheme}://{user}:***@{host}"


def compute_checksum(data: dict[str, Any]) -> str:
    """
    Compute SHA-256 checksum of canonical JSON serialization.

    Identical ``data`` always produces identical checksums.
    """
    canonical = json.dumps(data, sort_keys=True, default=str)
    return hashlib.sha256(canonical.encode()).hexdigest()
