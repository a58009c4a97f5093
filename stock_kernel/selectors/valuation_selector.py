"""
Module: stock_kernel.selectors.valuation_selector
Responsibility: Financial valuation of the stock on hand, lot by lot.
Architecture position: Kernel > Selectors.  Reads the projection and the
    entry facts; the lot arithmetic lives in domain/lots.py.

Invariants enforced:
    - Entry facts are read in canonical replay order before lots are
      attributed, so the lot split never depends on insertion order.
    - Subtotals are rounded half-up per row; total_value is the sum of the
      rounded row subtotals.
    - Materials with zero stock contribute no rows.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy.orm import Session

from stock_kernel.domain.dtos import ValuationReport, ValuationRow
from stock_kernel.domain.lots import LotPolicy, attribute_lots
from stock_kernel.domain.movements import MovementType
from stock_kernel.models.material import Material
from stock_kernel.selectors.base import BaseSelector
from stock_kernel.selectors.material_selector import MaterialSelector
from stock_kernel.selectors.movement_selector import MovementSelector


class ValuationSelector(BaseSelector[Material]):
    """
    Lot valuation report.

    Args:
        session: Caller's session.
        lot_policy: How current stock is split into price lots.
        weighted_average_window: Entries considered by the weighted-average
            policy.
        money_places: Decimal places of the rounded subtotals.
    """

    def __init__(
        self,
        session: Session,
        lot_policy: LotPolicy | str = LotPolicy.FIFO,
        weighted_average_window: int = 10,
        money_places: int = 2,
    ):
        super().__init__(session)
        self.lot_policy = LotPolicy(lot_policy)
        self.weighted_average_window = weighted_average_window
        self.money_places = money_places

    def valuation(
        self,
        owner_id: str,
        material_name_search: str | None = None,
        category_id: UUID | None = None,
    ) -> ValuationReport:
        """
        Value every matching material's stock, one row per price lot.

        Rows are ordered by category name, material name, then lot order.
        """
        movements = MovementSelector(self.session)
        rows: list[ValuationRow] = []

        for material, category_name in MaterialSelector(self.session).for_valuation(
            owner_id, material_name_search, category_id
        ):
            entries = movements.facts_for_replay(material.id, MovementType.ENTRY)
            lots = attribute_lots(
                self.lot_policy,
                entries,
                material.current_stock,
                material.unit_price,
                self.weighted_average_window,
            )
            rows.extend(
                ValuationRow(
                    material_id=material.id,
                    material_name=material.name,
                    category=category_name,
                    unit=material.unit,
                    unit_price=lot.unit_price,
                    quantity=lot.quantity,
                    subtotal=lot.subtotal(self.money_places),
                )
                for lot in lots
            )

        total = sum((row.subtotal for row in rows), Decimal("0"))
        return ValuationReport(
            rows=tuple(rows),
            total_value=total,
            lot_policy=self.lot_policy.value,
        )
