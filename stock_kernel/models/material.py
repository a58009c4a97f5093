"""
Module: stock_kernel.models.material
Responsibility: ORM persistence for materials (stock-keeping items) and their
    categories.  The ``current_stock`` and ``unit_price`` columns of
    ``materials`` ARE the stock projection: a derived, fast-read view of the
    movement ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    P1 -- Non-negative projection.  CHECK (current_stock >= 0) at the database
          level; the ORM listener in db/immutability.py rejects negative values
          before they reach SQL.
    P2 -- Sanctioned writers.  current_stock may only change inside the
          StockProjection write context (fact append or reconciliation); any
          other UPDATE raises ImmutabilityViolationError (db/immutability.py).
    P3 -- Optimistic guard.  ``version`` is the mapper's version_id_col; an
          UPDATE against a stale row raises StaleDataError.
    T1 -- Tenant scope.  owner_id is NOT NULL; every selector filters by it.

Failure modes:
    - IntegrityError on CHECK violations (negative stock or minimum).
    - StaleDataError when a concurrent transaction bumped ``version`` first.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import (
    BigInteger,
    CheckConstraint,
    ForeignKey,
    Index,
    Numeric,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column

from stock_kernel.db.base import TrackedBase, UUIDString


class Category(TrackedBase):
    """
    Material category (owned by the master-data collaborator).

    Only the label and tenant scope matter to the ledger: the category name
    is printed on valuation rows and used as a report filter.
    """

    __tablename__ = "categories"

    __table_args__ = (
        UniqueConstraint("owner_id", "name", name="uq_category_owner_name"),
    )

    owner_id: Mapped[str] = mapped_column(String(100), nullable=False)
    name: Mapped[str] = mapped_column(String(255), nullable=False)

    def __repr__(self) -> str:
        return f"<Category {self.id}: {self.name} owner={self.owner_id}>"


class Material(TrackedBase):
    """
    A stock-keeping material and its stock projection.

    Contract:
        ``current_stock`` equals the replay of the material's movement facts
        (see domain/movements.replay_stock) except inside the transaction that
        appends a fact, which updates both atomically.

    Guarantees:
        - current_stock >= 0 (P1).
        - unit_price holds the most recent entry price (most-recent-price
          policy), NULL for legacy rows that never had one.
        - last_supplier_id is the supplier of the most recent
          supplier-originated entry.

    Non-goals:
        - Does NOT store lot or valuation data; lots are derived on read.
    """

    __tablename__ = "materials"

    __table_args__ = (
        CheckConstraint("current_stock >= 0", name="ck_material_stock_non_negative"),
        CheckConstraint("minimum_stock >= 0", name="ck_material_minimum_non_negative"),
        # Query: tenant listing / name search
        Index("idx_material_owner_name", "owner_id", "name"),
        # Query: category filter
        Index("idx_material_owner_category", "owner_id", "category_id"),
    )

    owner_id: Mapped[str] = mapped_column(String(100), nullable=False)

    name: Mapped[str] = mapped_column(String(255), nullable=False)

    category_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("categories.id"),
        nullable=True,
    )

    unit: Mapped[str] = mapped_column(String(20), nullable=False, default="unit")

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # INVARIANT P1/P2: the projection -- written only by StockProjection
    current_stock: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    minimum_stock: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )

    unit_price: Mapped[Decimal | None] = mapped_column(
        Numeric(38, 9),
        nullable=True,
    )

    # Supplier master data is external: no FK
    last_supplier_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        nullable=True,
    )

    # INVARIANT P3: optimistic lock counter
    version: Mapped[int] = mapped_column(BigInteger, nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return (
            f"<Material {self.id}: {self.name} stock={self.current_stock} "
            f"min={self.minimum_stock} owner={self.owner_id}>"
        )
