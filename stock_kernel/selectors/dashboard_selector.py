"""
Module: stock_kernel.selectors.dashboard_selector
Responsibility: Dashboard counters -- material count, today's entries and
    exits, and the critical (below-minimum) materials.
Architecture position: Kernel > Selectors.  Pure read; composes the
    projection and the movement ledger, holds no state of its own.
"""

from datetime import date

from sqlalchemy import select

from stock_kernel.domain.dtos import DashboardSummary, LowStockMaterial
from stock_kernel.models.material import Category, Material
from stock_kernel.selectors.base import BaseSelector
from stock_kernel.selectors.material_selector import MaterialSelector
from stock_kernel.selectors.movement_selector import MovementSelector


class DashboardSelector(BaseSelector[Material]):
    """
    Read-only dashboard summary.

    Guarantees:
        - A material is critical when current_stock < minimum_stock
          (strictly below; a material sitting exactly at its minimum is
          not critical).
        - Returns are exits and count toward exits.
    """

    def low_stock_materials(self, owner_id: str) -> list[LowStockMaterial]:
        rows = self.session.execute(
            select(Material, Category.name)
            .outerjoin(Category, Material.category_id == Category.id)
            .where(
                Material.owner_id == owner_id,
                Material.current_stock < Material.minimum_stock,
            )
            .order_by(Material.name, Material.id)
        )
        return [
            LowStockMaterial(
                material_id=material.id,
                name=material.name,
                category=category_name,
                unit=material.unit,
                current_stock=material.current_stock,
                minimum_stock=material.minimum_stock,
            )
            for material, category_name in rows
        ]

    def summary(self, owner_id: str, business_date: date) -> DashboardSummary:
        """
        Build the dashboard for one owner.

        Args:
            owner_id: Tenant.
            business_date: "Today" in the business timezone, supplied by
                the caller from its clock.
        """
        entries, exits = MovementSelector(self.session).counts_on(owner_id, business_date)
        low_stock = self.low_stock_materials(owner_id)
        return DashboardSummary(
            total_materials=MaterialSelector(self.session).count(owner_id),
            entries_today=entries,
            exits_today=exits,
            critical_items=len(low_stock),
            business_date=business_date,
            low_stock_materials=tuple(low_stock),
        )
