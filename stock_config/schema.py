"""
Stock ledger configuration schema.

Frozen dataclasses describing the effective runtime configuration.  The
loader parses YAML into these types; ``get_active_config()`` is the only way
callers obtain an instance.
"""

from __future__ import annotations

from dataclasses import dataclass, field

LOT_POLICIES = ("fifo", "most_recent", "weighted_average")


@dataclass(frozen=True)
class DatabaseConfig:
    """Connection settings passed to ``stock_kernel.db.engine.Database``."""

    url: str
    echo: bool = False
    pool_size: int = 10
    max_overflow: int = 10
    pool_timeout: int = 30
    pool_recycle: int = 1800
    sqlite_busy_timeout: int = 30
    install_triggers: bool = True


@dataclass(frozen=True)
class LedgerConfig:
    """Write-path behaviour: conflict retries and backoff."""

    max_retries: int = 5
    retry_backoff_seconds: float = 0.05


@dataclass(frozen=True)
class ValuationConfig:
    lot_policy: str = "fifo"
    weighted_average_window: int = 10
    money_places: int = 2


@dataclass(frozen=True)
class DashboardConfig:
    business_timezone: str = "UTC"


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"


@dataclass(frozen=True)
class StockLedgerConfig:
    """Root configuration object."""

    database: DatabaseConfig
    ledger: LedgerConfig = field(default_factory=LedgerConfig)
    valuation: ValuationConfig = field(default_factory=ValuationConfig)
    dashboard: DashboardConfig = field(default_factory=DashboardConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)
    checksum: str = ""
