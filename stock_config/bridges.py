"""
Config -> Kernel Bridges.

Turn a StockLedgerConfig into kernel objects.  These live in stock_config
(the producer) because the kernel must NEVER import stock_config.

Usage:
    from stock_config import get_active_config
    from stock_config.bridges import build_ledger

    with build_ledger(get_active_config()) as ledger:
        ...
"""

from __future__ import annotations

from stock_config.schema import DatabaseConfig, StockLedgerConfig
from stock_kernel.db.engine import Database
from stock_kernel.domain.clock import Clock
from stock_kernel.ledger import StockLedger
from stock_kernel.logging_config import configure_logging


def build_database(config: DatabaseConfig) -> Database:
    return Database(
        config.url,
        echo=config.echo,
        pool_size=config.pool_size,
        max_overflow=config.max_overflow,
        pool_timeout=config.pool_timeout,
        pool_recycle=config.pool_recycle,
        sqlite_busy_timeout=config.sqlite_busy_timeout,
    )


def build_ledger(config: StockLedgerConfig, clock: Clock | None = None) -> StockLedger:
    """
    Build a StockLedger (and its Database) from configuration.

    Also configures kernel logging at the configured level (idempotent).
    """
    configure_logging(level=config.logging.level.upper())
    return StockLedger(
        build_database(config.database),
        clock=clock,
        max_retries=config.ledger.max_retries,
        retry_backoff_seconds=config.ledger.retry_backoff_seconds,
        lot_policy=config.valuation.lot_policy,
        weighted_average_window=config.valuation.weighted_average_window,
        money_places=config.valuation.money_places,
        business_timezone=config.dashboard.business_timezone,
    )
