"""Read-only selectors (the query side of the kernel)."""

from stock_kernel.selectors.dashboard_selector import DashboardSelector
from stock_kernel.selectors.material_selector import MaterialSelector
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.selectors.valuation_selector import ValuationSelector

__all__ = [
    "DashboardSelector",
    "MaterialSelector",
    "MovementSelector",
    "ValuationSelector",
]
