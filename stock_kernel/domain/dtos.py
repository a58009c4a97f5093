"""
DTOs -- immutable data returned across the kernel boundary.

Responsibility:
    Frozen dataclasses handed to callers by the facade, services and
    selectors.  Callers never receive ORM instances.

Architecture position:
    Kernel > Domain -- pure, zero I/O.  ``from_model()`` class methods are
    boundary converters invoked only from services and selectors.

Data flow:
    Movement row -> MovementRecord
    reconciliation -> MaterialReconciliation* -> ReconciliationReport
    valuation -> ValuationRow* -> ValuationReport
    dashboard -> LowStockMaterial* -> DashboardSummary
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime
from decimal import Decimal
from typing import TYPE_CHECKING, Any
from uuid import UUID

from stock_kernel.domain.movements import MovementType
from stock_kernel.exceptions import ReconciliationDriftDetected

if TYPE_CHECKING:
    from stock_kernel.models.material import Category as CategoryModel
    from stock_kernel.models.material import Material as MaterialModel
    from stock_kernel.models.movement import Movement as MovementModel


# =============================================================================
# Reference data
# =============================================================================


@dataclass(frozen=True)
class CategoryRecord:
    id: UUID
    owner_id: str
    name: str

    @classmethod
    def from_model(cls, model: CategoryModel) -> CategoryRecord:
        return cls(id=model.id, owner_id=model.owner_id, name=model.name)


@dataclass(frozen=True)
class MaterialRecord:
    """Snapshot of a material and its projected stock."""

    id: UUID
    owner_id: str
    name: str
    unit: str
    category_id: UUID | None
    current_stock: int
    minimum_stock: int
    unit_price: Decimal | None
    last_supplier_id: UUID | None = None
    description: str | None = None

    @classmethod
    def from_model(cls, model: MaterialModel) -> MaterialRecord:
        return cls(
            id=model.id,
            owner_id=model.owner_id,
            name=model.name,
            unit=model.unit,
            category_id=model.category_id,
            current_stock=model.current_stock,
            minimum_stock=model.minimum_stock,
            unit_price=model.unit_price,
            last_supplier_id=model.last_supplier_id,
            description=model.description,
        )


# =============================================================================
# Movements
# =============================================================================


@dataclass(frozen=True)
class MovementRecord:
    """A persisted movement fact."""

    id: UUID
    owner_id: str
    material_id: UUID
    movement_type: MovementType
    is_return: bool
    quantity: int
    unit_price: Decimal | None
    effective_date: date
    created_at: datetime
    supplier_id: UUID | None = None
    employee_id: UUID | None = None
    third_party_id: UUID | None = None
    cost_center_id: UUID | None = None
    notes: str | None = None
    created_by_id: str | None = None

    @property
    def is_entry(self) -> bool:
        return self.movement_type is MovementType.ENTRY

    @property
    def is_exit(self) -> bool:
        return self.movement_type is MovementType.EXIT and not self.is_return

    @classmethod
    def from_model(cls, model: MovementModel) -> MovementRecord:
        return cls(
            id=model.id,
            owner_id=model.owner_id,
            material_id=model.material_id,
            movement_type=MovementType(model.movement_type),
            is_return=model.is_return,
            quantity=model.quantity,
            unit_price=model.unit_price,
            effective_date=model.effective_date,
            created_at=model.created_at,
            supplier_id=model.supplier_id,
            employee_id=model.employee_id,
            third_party_id=model.third_party_id,
            cost_center_id=model.cost_center_id,
            notes=model.notes,
            created_by_id=model.created_by_id,
        )


@dataclass(frozen=True)
class ConsumptionRow:
    """Non-return exit volume of one material over a window."""

    material_id: UUID
    material_name: str
    category: str | None
    unit: str
    quantity: int
    movements: int


# =============================================================================
# Reconciliation
# =============================================================================


@dataclass(frozen=True)
class MaterialReconciliation:
    """
    Reconciliation outcome for one material.

    ``corrected`` is True when the stored projection differed from the
    replay and was (or, in a dry run, would have been) overwritten.
    """

    material_id: UUID
    name: str
    previous_stock: int
    corrected_stock: int
    clamped: bool = False

    @property
    def corrected(self) -> bool:
        return self.previous_stock != self.corrected_stock

    def to_dict(self) -> dict[str, Any]:
        if self.corrected:
            return {
                "material_id": str(self.material_id),
                "name": self.name,
                "previous_stock": self.previous_stock,
                "corrected_stock": self.corrected_stock,
            }
        return {
            "material_id": str(self.material_id),
            "name": self.name,
            "stock": self.corrected_stock,
        }


@dataclass(frozen=True)
class ReconciliationFailure:
    material_id: UUID
    code: str
    message: str

    def to_dict(self) -> dict[str, Any]:
        return {
            "material_id": str(self.material_id),
            "code": self.code,
            "message": self.message,
        }


@dataclass(frozen=True)
class ReconciliationReport:
    """Summary of one reconciliation run over an owner's materials."""

    run_id: UUID
    owner_id: str
    results: tuple[MaterialReconciliation, ...] = ()
    failures: tuple[ReconciliationFailure, ...] = ()
    dry_run: bool = False

    @property
    def materials_checked(self) -> int:
        return len(self.results) + len(self.failures)

    @property
    def corrections(self) -> tuple[MaterialReconciliation, ...]:
        return tuple(result for result in self.results if result.corrected)

    @property
    def materials_corrected(self) -> int:
        return len(self.corrections)

    @property
    def has_drift(self) -> bool:
        return self.materials_corrected > 0

    def raise_for_drift(self) -> None:
        """Raise ReconciliationDriftDetected if any material was corrected."""
        if self.has_drift:
            raise ReconciliationDriftDetected(
                owner_id=self.owner_id,
                materials_corrected=self.materials_corrected,
                material_ids=[str(c.material_id) for c in self.corrections],
            )

    def to_dict(self) -> dict[str, Any]:
        return {
            "run_id": str(self.run_id),
            "owner_id": self.owner_id,
            "dry_run": self.dry_run,
            "materials_checked": self.materials_checked,
            "materials_corrected": self.materials_corrected,
            "corrections": [c.to_dict() for c in self.corrections],
            "results": [r.to_dict() for r in self.results],
            "failures": [f.to_dict() for f in self.failures],
        }


# =============================================================================
# Valuation
# =============================================================================


@dataclass(frozen=True)
class ValuationRow:
    """One price lot of one material."""

    material_id: UUID
    material_name: str
    category: str | None
    unit: str
    unit_price: Decimal
    quantity: int
    subtotal: Decimal


@dataclass(frozen=True)
class ValuationReport:
    rows: tuple[ValuationRow, ...]
    total_value: Decimal
    lot_policy: str

    @property
    def total_items(self) -> int:
        """Number of lot rows (not units)."""
        return len(self.rows)


# =============================================================================
# Dashboard
# =============================================================================


@dataclass(frozen=True)
class LowStockMaterial:
    material_id: UUID
    name: str
    category: str | None
    unit: str
    current_stock: int
    minimum_stock: int


@dataclass(frozen=True)
class DashboardSummary:
    total_materials: int
    entries_today: int
    exits_today: int
    critical_items: int
    business_date: date
    low_stock_materials: tuple[LowStockMaterial, ...] = field(default_factory=tuple)
