"""
stock_config -- single public entrypoint for stock ledger configuration.

Responsibility:
    Provides the ONLY way to obtain configuration at runtime through
    ``get_active_config()``.  No other component reads configuration files
    or environment variables directly.

Architecture position:
    Configuration.  Sits above ``stock_kernel``; the kernel MUST NEVER
    import from ``stock_config``.  ``stock_config.bridges`` translates the
    configuration into kernel objects.

Failure modes:
    - ``FileNotFoundError`` -- override file does not exist.
    - ``ValueError`` -- missing database URL or invalid values.

Audit relevance:
    Every successful ``get_active_config()`` call emits a
    ``STOCK_CONFIG_TRACE`` log entry with the checksum of the effective
    configuration.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from pathlib import Path

from stock_config.loader import (
    DEFAULTS_PATH,
    apply_environment,
    load_yaml_file,
    merge_dicts,
    parse_config,
)
from stock_config.schema import (
    DashboardConfig,
    DatabaseConfig,
    LedgerConfig,
    LoggingConfig,
    StockLedgerConfig,
    ValuationConfig,
)

_logger = logging.getLogger("stock_kernel.config")


def get_active_config(
    path: Path | str | None = None,
    environ: Mapping[str, str] | None = None,
) -> StockLedgerConfig:
    """The ONLY public configuration entrypoint.

    Layers, lowest precedence first: ``defaults.yaml``, the optional
    override file at ``path``, then environment variables
    (``STOCK_LEDGER_DATABASE_URL`` falling back to ``DATABASE_URL``,
    ``STOCK_LEDGER_LOG_LEVEL``).

    Args:
        path: Optional YAML override file.
        environ: Environment mapping; defaults to ``os.environ``.

    Raises:
        FileNotFoundError: If ``path`` does not exist.
        ValueError: If the effective configuration is invalid.
    """
    data = merge_dicts({}, load_yaml_file(DEFAULTS_PATH))
    if path is not None:
        data = merge_dicts(data, load_yaml_file(Path(path)))
    data = apply_environment(data, os.environ if environ is None else environ)

    config = parse_config(data)

    _logger.info(
        "STOCK_CONFIG_TRACE",
        extra={
            "trace_type": "STOCK_CONFIG_TRACE",
            "checksum": config.checksum,
            "lot_policy": config.valuation.lot_policy,
            "max_retries": config.ledger.max_retries,
            "business_timezone": config.dashboard.business_timezone,
            "source": str(path) if path is not None else "defaults",
        },
    )

    return config


__all__ = [
    "get_active_config",
    "StockLedgerConfig",
    "DatabaseConfig",
    "LedgerConfig",
    "ValuationConfig",
    "DashboardConfig",
    "LoggingConfig",
]
