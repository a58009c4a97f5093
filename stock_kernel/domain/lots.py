"""
Lots -- price-lot attribution for stock valuation.

Responsibility:
    Splits a material's current stock into price lots derived from its
    entry facts, under one of three attribution policies.  Lots are never
    stored; they are recomputed on every valuation.

Architecture position:
    Kernel > Domain -- pure functional core, zero I/O.

Policies:
    FIFO (default)
        Exits consume the oldest receipts first, so the stock on hand is
        attributed to the newest entries.  Entries are walked newest to
        oldest, each contributing up to its own quantity, and the
        contributions are grouped by unit price.  Lots keep the order in
        which their price first appeared in the entry history.  Stock not
        covered by any entry (returns beyond the entry history, legacy
        opening balances) lands on the lot at the material's stored price.
    MOST_RECENT
        One lot: the whole stock at the material's stored (most recent
        entry) price.
    WEIGHTED_AVERAGE
        One lot: the whole stock at the quantity-weighted average price of
        the last N entries.

Invariants enforced:
    - Attributed quantities always sum to the current stock.
    - Zero-quantity lots are never returned; zero stock yields no lots.
    - A material with stock but no entries yields one lot at its stored
      price (zero when unknown).
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal
from enum import Enum

from stock_kernel.domain.movements import FactLine, MovementType

ZERO = Decimal("0")


class LotPolicy(str, Enum):
    FIFO = "fifo"
    MOST_RECENT = "most_recent"
    WEIGHTED_AVERAGE = "weighted_average"


@dataclass(frozen=True)
class Lot:
    """Stock attributed to one unit price."""

    unit_price: Decimal
    quantity: int

    def subtotal(self, places: int = 2) -> Decimal:
        return round_money(self.unit_price * self.quantity, places)


def round_money(value: Decimal, places: int = 2) -> Decimal:
    """Round half-up to ``places`` decimal places."""
    return value.quantize(Decimal(1).scaleb(-places), rounding=ROUND_HALF_UP)


def _entries(facts: Sequence[FactLine]) -> list[FactLine]:
    return [
        fact
        for fact in facts
        if fact.movement_type is MovementType.ENTRY and fact.unit_price is not None
    ]


def fifo_lots(
    entries: Sequence[FactLine],
    current_stock: int,
    stored_price: Decimal | None,
) -> list[Lot]:
    """Attribute stock to the newest entries first.  See module docstring."""
    attributed: dict[Decimal, int] = {}
    for entry in entries:
        attributed.setdefault(entry.unit_price, 0)

    remaining = current_stock
    for entry in reversed(entries):
        if remaining <= 0:
            break
        take = min(remaining, entry.quantity)
        attributed[entry.unit_price] += take
        remaining -= take

    if remaining > 0:
        fallback = stored_price if stored_price is not None else ZERO
        attributed[fallback] = attributed.get(fallback, 0) + remaining

    return [Lot(price, qty) for price, qty in attributed.items() if qty > 0]


def weighted_average_price(
    entries: Sequence[FactLine],
    window: int,
    stored_price: Decimal | None,
) -> Decimal:
    """Quantity-weighted average price of the last ``window`` entries."""
    recent = list(entries)[-window:]
    total_quantity = sum(entry.quantity for entry in recent)
    if total_quantity == 0:
        return stored_price if stored_price is not None else ZERO
    total_cost = sum((entry.unit_price * entry.quantity for entry in recent), ZERO)
    return (total_cost / total_quantity).quantize(
        Decimal("0.0001"), rounding=ROUND_HALF_UP
    )


def attribute_lots(
    policy: LotPolicy | str,
    facts: Sequence[FactLine],
    current_stock: int,
    stored_price: Decimal | None,
    weighted_average_window: int = 10,
) -> list[Lot]:
    """
    Split ``current_stock`` into price lots.

    Args:
        policy: Attribution policy.
        facts: The material's facts in canonical replay order; only
            entries are considered.
        current_stock: Stock to attribute (the projection).
        stored_price: The material's stored unit price.
        weighted_average_window: N for the weighted-average policy.

    Returns:
        Lots with quantity > 0, in lot order.
    """
    if current_stock <= 0:
        return []

    policy = LotPolicy(policy)
    entries = _entries(facts)

    if policy is LotPolicy.FIFO:
        return fifo_lots(entries, current_stock, stored_price)

    if policy is LotPolicy.MOST_RECENT:
        price = stored_price if stored_price is not None else ZERO
        return [Lot(price, current_stock)]

    price = weighted_average_price(entries, weighted_average_window, stored_price)
    return [Lot(price, current_stock)]
