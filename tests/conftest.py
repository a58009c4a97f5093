"""
Pytest fixtures for the stock kernel test suite.

Provides:
- A fresh database per test (file-backed SQLite by default)
- A StockLedger wired to a deterministic clock
- Material / movement helpers
- Structured log capture

Environment Variables:
- DATABASE_URL: when it points at PostgreSQL (postgresql://...), tests run
  against that database instead of SQLite.  Tables are dropped and
  recreated around every test, so use a dedicated test database.
"""

import json
import logging
import os
from datetime import date, datetime, timezone
from decimal import Decimal
from io import StringIO
from uuid import UUID, uuid4

import pytest
from sqlalchemy import text

from stock_kernel.db.engine import Database
from stock_kernel.domain.clock import DeterministicClock
from stock_kernel.ledger import StockLedger
from stock_kernel.logging_config import (
    LogContext,
    StructuredFormatter,
    configure_logging,
    reset_logging,
)

OWNER_ID = "tenant-a"
OTHER_OWNER_ID = "tenant-b"

# Business "today" of the deterministic clock
TODAY = date(2024, 3, 15)


# =============================================================================
# Logging fixtures
# =============================================================================


@pytest.fixture(autouse=True, scope="session")
def _configure_test_logging():
    """Configure structured logging for the test suite."""
    reset_logging()
    configure_logging(level=logging.DEBUG)
    yield
    reset_logging()


@pytest.fixture(autouse=True)
def _clear_log_context():
    """Clear LogContext between tests to prevent cross-test contamination."""
    LogContext.clear()
    yield
    LogContext.clear()


@pytest.fixture
def captured_logs():
    """
    Capture stock_kernel logs as parsed JSON dicts.

    Usage::

        def test_something(captured_logs, ledger):
            ledger.record_movement(...)
            logs = captured_logs()
            assert any(r["message"] == "movement_recorded" for r in logs)
    """
    stream = StringIO()
    handler = logging.StreamHandler(stream)
    handler.setFormatter(StructuredFormatter())
    root = logging.getLogger("stock_kernel")
    previous_level = root.level
    root.setLevel(logging.DEBUG)
    root.addHandler(handler)

    def _get_records() -> list[dict]:
        lines = stream.getvalue().strip().split("\n")
        return [json.loads(line) for line in lines if line]

    yield _get_records

    root.removeHandler(handler)
    root.setLevel(previous_level)


def pytest_configure(config):
    """Register custom markers."""
    config.addinivalue_line(
        "markers", "postgres: mark test as requiring PostgreSQL"
    )
    config.addinivalue_line(
        "markers", "slow_locks: mark test as potentially waiting for DB locks"
    )


def _postgres_url() -> str | None:
    url = os.environ.get("DATABASE_URL", "")
    return url if url.startswith("postgresql") else None


def pytest_collection_modifyitems(config, items):
    """Skip PostgreSQL-only tests when no PostgreSQL URL is configured."""
    if _postgres_url():
        return
    skip_pg = pytest.mark.skip(reason="DATABASE_URL does not point at PostgreSQL")
    for item in items:
        if "postgres" in item.keywords:
            item.add_marker(skip_pg)


# =============================================================================
# Database fixtures
# =============================================================================


@pytest.fixture
def database_url(tmp_path) -> str:
    """PostgreSQL from DATABASE_URL, else a SQLite file private to the test."""
    return _postgres_url() or f"sqlite:///{tmp_path / 'stock.db'}"


@pytest.fixture
def database(database_url):
    """A Database with a freshly created schema and immutability triggers."""
    db = Database(database_url)
    if db.is_postgres:
        db.drop_tables()
    db.create_tables()
    yield db
    if db.is_postgres:
        db.drop_tables()
    db.close()


@pytest.fixture
def clock() -> DeterministicClock:
    """Deterministic clock at noon UTC on TODAY."""
    return DeterministicClock(datetime(2024, 3, 15, 12, 0, 0, tzinfo=timezone.utc))


@pytest.fixture
def ledger(database, clock) -> StockLedger:
    """
    StockLedger over the test database.

    Not closed here: the ``database`` fixture owns the engine's teardown.
    """
    return StockLedger(database, clock=clock, retry_backoff_seconds=0.01)


# =============================================================================
# Reference data and movement helpers
# =============================================================================


@pytest.fixture
def owner_id() -> str:
    return OWNER_ID


@pytest.fixture
def supplier_id() -> UUID:
    return uuid4()


@pytest.fixture
def employee_id() -> UUID:
    return uuid4()


@pytest.fixture
def third_party_id() -> UUID:
    return uuid4()


@pytest.fixture
def make_material(ledger):
    """Factory: register a material for OWNER_ID (or another owner)."""

    def _make(name: str = "Disco de Corte", owner: str = OWNER_ID, **kwargs):
        return ledger.register_material(owner, name, **kwargs)

    return _make


@pytest.fixture
def material(make_material):
    return make_material()


@pytest.fixture
def receive(ledger, clock, supplier_id):
    """
    Factory: record an entry.  Ticks the clock first so every fact gets a
    distinct created_at.
    """

    def _receive(material_id, quantity, price="10.00", effective_date=TODAY, owner=OWNER_ID):
        clock.tick()
        return ledger.record_movement(
            owner,
            material_id,
            "entry",
            quantity,
            effective_date,
            unit_price=Decimal(price),
            supplier_id=supplier_id,
        )

    return _receive


@pytest.fixture
def issue(ledger, clock, employee_id):
    """Factory: record an exit (or, with is_return=True, a return)."""

    def _issue(material_id, quantity, effective_date=TODAY, is_return=False, owner=OWNER_ID):
        clock.tick()
        return ledger.record_movement(
            owner,
            material_id,
            "exit",
            quantity,
            effective_date,
            is_return=is_return,
            employee_id=employee_id,
        )

    return _issue


@pytest.fixture
def tamper_stock(database):
    """
    Overwrite a material's stored stock with raw SQL, simulating drift from
    a bug or manual edit outside the kernel.
    """

    def _tamper(material_id, value: int) -> None:
        with database.engine.begin() as conn:
            conn.execute(
                text("UPDATE materials SET current_stock = :value WHERE id = :id"),
                {"value": value, "id": str(material_id)},
            )

    return _tamper
