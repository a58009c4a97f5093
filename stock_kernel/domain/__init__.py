"""
Pure domain layer.

Movement rules, replay, lot attribution and DTOs, with NO dependencies on
the ORM, the database or I/O (SystemClock aside).
"""

from stock_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from stock_kernel.domain.dtos import (
    CategoryRecord,
    ConsumptionRow,
    DashboardSummary,
    LowStockMaterial,
    MaterialReconciliation,
    MaterialRecord,
    MovementRecord,
    ReconciliationFailure,
    ReconciliationReport,
    ValuationReport,
    ValuationRow,
)
from stock_kernel.domain.lots import Lot, LotPolicy, attribute_lots, round_money
from stock_kernel.domain.movements import (
    FactLine,
    MovementInput,
    MovementType,
    ReplayResult,
    available_at,
    replay_order_key,
    replay_stock,
    sort_for_replay,
    stock_delta,
    validate_movement,
)

__all__ = [
    "Clock",
    "DeterministicClock",
    "SystemClock",
    "CategoryRecord",
    "ConsumptionRow",
    "DashboardSummary",
    "LowStockMaterial",
    "MaterialReconciliation",
    "MaterialRecord",
    "MovementRecord",
    "ReconciliationFailure",
    "ReconciliationReport",
    "ValuationReport",
    "ValuationRow",
    "Lot",
    "LotPolicy",
    "attribute_lots",
    "round_money",
    "FactLine",
    "MovementInput",
    "MovementType",
    "ReplayResult",
    "available_at",
    "replay_order_key",
    "replay_stock",
    "sort_for_replay",
    "stock_delta",
    "validate_movement",
]
