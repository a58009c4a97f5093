"""ORM models for the stock kernel."""

from stock_kernel.models.material import Category, Material
from stock_kernel.models.movement import Movement, StockCorrection

__all__ = [
    "Category",
    "Material",
    "Movement",
    "StockCorrection",
]
