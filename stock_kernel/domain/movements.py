"""
Movements -- pure rules for stock movement facts.

Responsibility:
    The delta rule, the canonical replay ordering and the replay fold that
    rebuilds a material's stock from its facts.  Also the input validation
    applied before a fact is appended.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Invariants enforced:
    Delta rule -- entry: +q; exit: -q; exit flagged as return: +q.
    Replay order -- (effective_date, created_at) ascending, movement id as
        the final tie-breaker, so replay never depends on insertion order.
    Non-negativity -- the running total is clamped at zero after every
        step; a clamp is reported so corrupted history is visible.

Failure modes:
    - InvalidQuantityError when quantity is not an integer > 0.
    - ValidationError for missing prices or counterparts, or an entry
      flagged as a return.
"""

from __future__ import annotations

from collections.abc import Iterable
from dataclasses import dataclass
from datetime import date, datetime
from decimal import Decimal, InvalidOperation
from enum import Enum
from uuid import UUID

from stock_kernel.exceptions import InvalidQuantityError, ValidationError


class MovementType(str, Enum):
    """Kind of stock movement.  Returns are exits with is_return=True."""

    ENTRY = "entry"
    EXIT = "exit"


def stock_delta(movement_type: MovementType | str, quantity: int, is_return: bool) -> int:
    """Signed stock effect of one movement."""
    if MovementType(movement_type) is MovementType.ENTRY:
        return quantity
    return quantity if is_return else -quantity


@dataclass(frozen=True)
class FactLine:
    """
    The replay-relevant slice of a movement fact.

    Built from the ORM row by the selector layer, or directly by tests and
    property checks.
    """

    movement_type: MovementType
    quantity: int
    effective_date: date
    created_at: datetime
    is_return: bool = False
    unit_price: Decimal | None = None
    movement_id: UUID | None = None

    @property
    def delta(self) -> int:
        return stock_delta(self.movement_type, self.quantity, self.is_return)


def replay_order_key(fact: FactLine) -> tuple:
    """Canonical ordering key: (effective_date, created_at, id)."""
    return (
        fact.effective_date,
        fact.created_at,
        str(fact.movement_id) if fact.movement_id is not None else "",
    )


def sort_for_replay(facts: Iterable[FactLine]) -> list[FactLine]:
    return sorted(facts, key=replay_order_key)


@dataclass(frozen=True)
class ReplayResult:
    """
    Outcome of folding a material's facts.

    Attributes:
        stock: Final stock, never negative.
        clamped: True if the running total went negative at any step and
            was reset to zero.
        facts_replayed: Number of facts folded.
    """

    stock: int
    clamped: bool
    facts_replayed: int


def replay_stock(facts: Iterable[FactLine], *, presorted: bool = False) -> ReplayResult:
    """
    Fold facts from zero with the delta rule, clamping at zero per step.

    Args:
        facts: The material's facts.
        presorted: Set when ``facts`` already come in canonical order
            (e.g. from an ORDER BY in the selector), to skip the sort.
    """
    ordered = list(facts) if presorted else sort_for_replay(facts)
    stock = 0
    clamped = False
    for fact in ordered:
        stock += fact.delta
        if stock < 0:
            stock = 0
            clamped = True
    return ReplayResult(stock=stock, clamped=clamped, facts_replayed=len(ordered))


def available_at(
    facts: Iterable[FactLine],
    effective_date: date,
    *,
    presorted: bool = False,
) -> int:
    """
    Largest quantity a new non-return exit dated ``effective_date`` can take.

    A new fact is the newest by created_at, so replay slots it after every
    fact dated on or before ``effective_date``.  The result is the lowest
    running total from that slot to the end of the history: taking more
    would drive a later step of the replay below zero.
    """
    ordered = list(facts) if presorted else sort_for_replay(facts)
    stock = 0
    available: int | None = None
    for fact in ordered:
        if available is None and fact.effective_date > effective_date:
            available = stock
        stock = max(stock + fact.delta, 0)
        if available is not None:
            available = min(available, stock)
    return stock if available is None else available


# =============================================================================
# Input validation
# =============================================================================


def validate_quantity(quantity: object) -> int:
    """
    Quantities are strictly positive integers.

    ``bool`` is rejected even though it subclasses ``int``.
    """
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise InvalidQuantityError(quantity)
    return quantity


def coerce_price(value: object, field: str = "unit_price") -> Decimal:
    """Convert a price to Decimal, rejecting negatives and non-numbers."""
    if isinstance(value, bool):
        raise ValidationError(field, f"must be a number, got {value!r}")
    if isinstance(value, float):
        value = str(value)
    try:
        price = value if isinstance(value, Decimal) else Decimal(value)
    except (InvalidOperation, TypeError, ValueError):
        raise ValidationError(field, f"must be a number, got {value!r}") from None
    if not price.is_finite():
        raise ValidationError(field, f"must be finite, got {value!r}")
    if price < 0:
        raise ValidationError(field, f"cannot be negative, got {price}")
    return price


@dataclass(frozen=True)
class MovementInput:
    """Validated, normalized arguments for a fact append."""

    movement_type: MovementType
    quantity: int
    is_return: bool
    unit_price: Decimal | None
    effective_date: date
    supplier_id: UUID | None = None
    employee_id: UUID | None = None
    third_party_id: UUID | None = None
    cost_center_id: UUID | None = None
    notes: str | None = None

    @property
    def delta(self) -> int:
        return stock_delta(self.movement_type, self.quantity, self.is_return)


def validate_movement(
    *,
    movement_type: MovementType | str,
    quantity: object,
    effective_date: date,
    unit_price: object = None,
    is_return: bool = False,
    supplier_id: UUID | None = None,
    employee_id: UUID | None = None,
    third_party_id: UUID | None = None,
    cost_center_id: UUID | None = None,
    notes: str | None = None,
) -> MovementInput:
    """
    Check the shape of a movement before anything touches the database.

    Rules:
        - quantity is an int > 0.
        - entry: unit_price present and >= 0, supplier_id present, no
          employee/third party, never a return.
        - exit (including returns): exactly one of employee_id /
          third_party_id, no supplier; unit_price optional but >= 0.

    Raises:
        InvalidQuantityError, ValidationError.
    """
    try:
        kind = MovementType(movement_type)
    except ValueError:
        raise ValidationError(
            "movement_type", f"must be 'entry' or 'exit', got {movement_type!r}"
        ) from None

    qty = validate_quantity(quantity)

    if isinstance(effective_date, datetime) or not isinstance(effective_date, date):
        raise ValidationError(
            "effective_date", f"must be a date, got {effective_date!r}"
        )

    price = coerce_price(unit_price) if unit_price is not None else None

    if kind is MovementType.ENTRY:
        if is_return:
            raise ValidationError("is_return", "only exits can be returns")
        if price is None:
            raise ValidationError("unit_price", "required for entries")
        if supplier_id is None:
            raise ValidationError("supplier_id", "required for entries")
        if employee_id is not None or third_party_id is not None:
            raise ValidationError(
                "counterpart", "entries come from a supplier, not an employee or third party"
            )
    else:
        if (employee_id is None) == (third_party_id is None):
            raise ValidationError(
                "counterpart",
                "exits require exactly one of employee_id or third_party_id",
            )
        if supplier_id is not None:
            raise ValidationError("supplier_id", "only entries carry a supplier")

    return MovementInput(
        movement_type=kind,
        quantity=qty,
        is_return=bool(is_return),
        unit_price=price,
        effective_date=effective_date,
        supplier_id=supplier_id,
        employee_id=employee_id,
        third_party_id=third_party_id,
        cost_center_id=cost_center_id,
        notes=notes,
    )
