"""
Property-based checks of the replay and lot rules.

Uses Hypothesis to generate arbitrary movement histories.  The pure
properties run against the domain functions; the last one drives the full
ledger and checks that the stored projection always equals the replay.
"""

from datetime import date, datetime, timedelta, timezone
from decimal import Decimal
from uuid import uuid4

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from stock_kernel.domain.lots import LotPolicy, attribute_lots
from stock_kernel.domain.movements import (
    FactLine,
    MovementType,
    available_at,
    replay_stock,
    sort_for_replay,
)
from stock_kernel.exceptions import InsufficientStockError

from tests.conftest import OWNER_ID, TODAY

T0 = datetime(2024, 1, 1, tzinfo=timezone.utc)

prices = st.decimals(min_value=Decimal("0.01"), max_value=Decimal("999.99"), places=2)

facts = st.lists(
    st.builds(
        FactLine,
        movement_type=st.sampled_from(list(MovementType)),
        quantity=st.integers(min_value=1, max_value=500),
        effective_date=st.dates(min_value=date(2024, 1, 1), max_value=date(2024, 3, 31)),
        created_at=st.integers(min_value=0, max_value=10_000).map(
            lambda s: T0 + timedelta(seconds=s)
        ),
        is_return=st.booleans(),
        unit_price=prices,
        movement_id=st.uuids(),
    ).filter(lambda f: not (f.movement_type is MovementType.ENTRY and f.is_return)),
    max_size=60,
    unique_by=lambda f: f.movement_id,
)


@given(facts)
def test_replay_never_negative(history):
    assert replay_stock(history).stock >= 0


@given(facts)
def test_replay_independent_of_input_order(history):
    assert replay_stock(history) == replay_stock(list(reversed(history)))


@given(facts)
def test_unclamped_replay_is_the_sum_of_deltas(history):
    result = replay_stock(history)
    if not result.clamped:
        assert result.stock == sum(f.delta for f in history)


@given(facts, st.integers(min_value=0, max_value=5_000), st.sampled_from(list(LotPolicy)))
def test_lots_cover_exactly_the_stock(history, stock, policy):
    ordered = sorted(history, key=lambda f: (f.effective_date, f.created_at, str(f.movement_id)))
    lots = attribute_lots(policy, ordered, stock, Decimal("1.00"))
    assert sum(lot.quantity for lot in lots) == stock
    assert all(lot.quantity > 0 for lot in lots)


def _without_overdraws(history):
    kept, stock = [], 0
    for fact in sort_for_replay(history):
        if stock + fact.delta >= 0:
            stock += fact.delta
            kept.append(fact)
    return kept


@given(facts, st.dates(min_value=date(2024, 1, 1), max_value=date(2024, 3, 31)))
def test_exit_within_available_never_clamps(history, day):
    history = _without_overdraws(history)
    available = available_at(history, day)
    latest = T0 + timedelta(seconds=20_000)

    def with_exit(quantity):
        return history + [FactLine(MovementType.EXIT, quantity, day, latest, movement_id=uuid4())]

    if available > 0:
        assert replay_stock(with_exit(available)).clamped is False
    assert replay_stock(with_exit(available + 1)).clamped is True


# (kind, quantity, days before TODAY)
operations = st.lists(
    st.tuples(
        st.sampled_from(["entry", "exit", "return"]),
        st.integers(min_value=1, max_value=20),
        st.integers(min_value=0, max_value=10),
    ),
    min_size=1,
    max_size=15,
)


@settings(
    max_examples=25,
    deadline=None,
    suppress_health_check=[HealthCheck.function_scoped_fixture],
)
@given(ops=operations)
def test_projection_always_matches_replay(ledger, make_material, receive, issue, ops):
    """Whatever the ledger accepts, at any effective date, replays without drift."""
    material = make_material(f"Material {uuid4()}")
    expected = 0
    for kind, quantity, days_back in ops:
        day = TODAY - timedelta(days=days_back)
        if kind == "entry":
            receive(material.id, quantity, effective_date=day)
            expected += quantity
        elif kind == "return":
            issue(material.id, quantity, effective_date=day, is_return=True)
            expected += quantity
        else:
            try:
                issue(material.id, quantity, effective_date=day)
            except InsufficientStockError:
                continue
            expected -= quantity

    assert ledger.get_current_stock(OWNER_ID, material.id) == expected
    report = ledger.reconcile(OWNER_ID, material_id=material.id, dry_run=True)
    assert report.materials_corrected == 0
    assert report.results[0].clamped is False
