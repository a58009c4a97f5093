"""Write-side kernel services."""

from stock_kernel.services.fact_store import FactStore
from stock_kernel.services.reconciliation_service import ReconciliationService
from stock_kernel.services.reference_data import ReferenceDataService
from stock_kernel.services.retry import run_with_retry
from stock_kernel.services.stock_projection import StockProjection

__all__ = [
    "FactStore",
    "ReconciliationService",
    "ReferenceDataService",
    "StockProjection",
    "run_with_retry",
]
