"""
Concurrent writes against the same material.

Threads are released together by a Barrier so their transactions overlap.
Every outcome must be one that some serial order of the same movements
could have produced: no lost updates, never a negative stock.
"""

from concurrent.futures import ThreadPoolExecutor
from decimal import Decimal
from threading import Barrier
from uuid import uuid4

import pytest

from stock_kernel.exceptions import InsufficientStockError

from tests.conftest import OWNER_ID, TODAY

pytestmark = pytest.mark.slow_locks


def _run_together(count, fn):
    barrier = Barrier(count)

    def worker(i):
        barrier.wait()
        try:
            return fn(i)
        except Exception as exc:
            return exc

    with ThreadPoolExecutor(max_workers=count) as pool:
        return list(pool.map(worker, range(count)))


def test_two_exits_race_for_the_same_stock(ledger, material, receive):
    """15 on hand, two exits of 10: exactly one wins, stock ends at 5."""
    receive(material.id, 15)

    results = _run_together(
        2,
        lambda i: ledger.record_movement(
            OWNER_ID, material.id, "exit", 10, TODAY, employee_id=uuid4()
        ),
    )

    failures = [r for r in results if isinstance(r, Exception)]
    assert len(failures) == 1
    assert isinstance(failures[0], InsufficientStockError)
    assert failures[0].available == 5
    assert ledger.get_current_stock(OWNER_ID, material.id) == 5
    assert len(ledger.get_movement_history(OWNER_ID, movement_type="exit")) == 1


def test_concurrent_entries_are_not_lost(ledger, material):
    supplier_id = uuid4()
    workers = 8

    results = _run_together(
        workers,
        lambda i: ledger.record_movement(
            OWNER_ID,
            material.id,
            "entry",
            i + 1,
            TODAY,
            unit_price=Decimal("1.00"),
            supplier_id=supplier_id,
        ),
    )

    assert not [r for r in results if isinstance(r, Exception)]
    assert ledger.get_current_stock(OWNER_ID, material.id) == sum(range(1, workers + 1))
    assert ledger.reconcile(OWNER_ID).materials_corrected == 0


def test_mixed_traffic_matches_replay(ledger, clock, material, receive):
    # enough stock that every exit succeeds in any order, so the replay
    # (which orders same-instant facts by id) cannot clamp
    receive(material.id, 30)
    clock.tick()
    supplier_id = uuid4()

    def movement(i):
        if i % 3 == 0:
            return ledger.record_movement(
                OWNER_ID, material.id, "entry", 2, TODAY,
                unit_price="1.00", supplier_id=supplier_id,
            )
        return ledger.record_movement(
            OWNER_ID, material.id, "exit", 3, TODAY, employee_id=uuid4()
        )

    results = _run_together(12, movement)

    assert not [r for r in results if isinstance(r, Exception)]

    stock = ledger.get_current_stock(OWNER_ID, material.id)
    # 30 + 4 entries of 2 - 8 exits of 3
    assert stock == 14
    report = ledger.reconcile(OWNER_ID, dry_run=True)
    assert report.materials_corrected == 0
    assert report.results[0].corrected_stock == stock
