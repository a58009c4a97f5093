"""
Module: stock_kernel.models.movement
Responsibility: ORM persistence for stock movement facts -- the append-only
    ledger that is the sole source of truth for stock history.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    F1 -- Immutability.  No UPDATE and no DELETE, ever (ORM listener in
          db/immutability.py + database trigger in db/triggers.py).
    F2 -- Positive quantity.  CHECK (quantity > 0).
    F3 -- Type domain.  movement_type IN ('entry', 'exit'); an entry can never
          be flagged as a return; an entry always carries a unit price.
    F4 -- Replay order.  (material_id, effective_date, created_at) index backs
          the canonical replay ordering used by reconciliation and valuation.

Failure modes:
    - IntegrityError on CHECK violations (service-level validation rejects
      these first with ValidationError).
    - ImmutabilityViolationError on any UPDATE/DELETE through the ORM.

Audit relevance:
    Every stock-affecting event lives here exactly once.  The projection in
    ``materials.current_stock`` must always be reconstructable from these rows.
"""

from datetime import date, datetime
from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    Boolean,
    CheckConstraint,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
)
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import Base, UUIDString


class Movement(Base):
    """
    One immutable stock movement fact.

    Contract:
        Created once by FactStore.append() in the same transaction that
        adjusts the material's projection.  Never updated, never deleted.

    Guarantees:
        - movement_type is the MovementType value ('entry' or 'exit').
        - is_return is False for entries (F3).
        - created_at comes from the injected Clock, not the database, so
          replay tie-breaking is reproducible.

    Non-goals:
        - Counterpart ids (supplier, employee, third party, cost center) point
          at external master data and carry NO foreign keys.
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        CheckConstraint("quantity > 0", name="ck_movement_quantity_positive"),
        CheckConstraint(
            "movement_type IN ('entry', 'exit')",
            name="ck_movement_type",
        ),
        CheckConstraint(
            "NOT (movement_type = 'entry' AND is_return)",
            name="ck_movement_entry_not_return",
        ),
        CheckConstraint(
            "movement_type <> 'entry' OR unit_price IS NOT NULL",
            name="ck_movement_entry_priced",
        ),
        # Query: canonical replay order per material (F4)
        Index(
            "idx_movement_replay",
            "material_id", "effective_date", "created_at",
        ),
        # Query: dashboard counters by business date
        Index("idx_movement_owner_date", "owner_id", "effective_date"),
        Index("idx_movement_owner_type", "owner_id", "movement_type"),
    )

    owner_id: Mapped[str] = mapped_column(String(100), nullable=False)

    material_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("materials.id"),
        nullable=False,
    )

    movement_type: Mapped[str] = mapped_column(String(10), nullable=False)

    is_return: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    # INVARIANT F2: quantity > 0
    quantity: Mapped[int] = mapped_column(BigInteger, nullable=False)

    unit_price: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9),
        nullable=True,
    )

    effective_date: Mapped[date] = mapped_column(Date, nullable=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    # External references (no FK)
    supplier_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    employee_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    third_party_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)
    cost_center_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    notes: Mapped[str | None] = mapped_column(Text, nullable=True)

    created_by_id: Mapped[str | None] = mapped_column(String(100), nullable=True)

    def __repr__(self) -> str:
        kind = "return" if self.is_return else self.movement_type
        return (
            f"<Movement {self.id}: {kind} material={self.material_id} "
            f"qty={self.quantity} date={self.effective_date}>"
        )


class StockCorrection(Base):
    """
    Audit artifact for one projection correction made by reconciliation.

    Contract:
        Append-only, never updated or deleted (ORM listener + DB trigger).
        One row per material whose stored current_stock differed from the
        replayed value during a reconciliation run.

    Guarantees:
        - run_id groups all corrections of a single reconciliation run.
        - clamped is True when the replay hit a negative running total and
          was clamped at zero (corrupted history signal).
    """

    __tablename__ = "stock_corrections"

    __table_args__ = (
        Index("idx_stock_correction_material", "material_id", "created_at"),
        Index("idx_stock_correction_run", "run_id"),
    )

    run_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    owner_id: Mapped[str] = mapped_column(String(100), nullable=False)

    material_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("materials.id"),
        nullable=False,
    )

    material_name: Mapped[str] = mapped_column(String(255), nullable=False)

    previous_stock: Mapped[int] = mapped_column(BigInteger, nullable=False)

    corrected_stock: Mapped[int] = mapped_column(BigInteger, nullable=False)

    clamped: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True),
        nullable=False,
    )

    def __repr__(self) -> str:
        return (
            f"<StockCorrection {self.id}: material={self.material_id} "
            f"{self.previous_stock} -> {self.corrected_stock}>"
        )
