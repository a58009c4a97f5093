"""
StockProjection -- the only writer of ``materials.current_stock``.

Responsibility:
    Locks a material for the duration of a write, applies stock deltas from
    newly appended facts, and overwrites the stock during reconciliation.

Architecture position:
    Kernel > Services -- imperative shell.  Used by FactStore (append) and
    ReconciliationService (correction); nothing else writes the projection.

Invariants enforced:
    P1 -- current_stock never goes negative.  apply_delta() refuses a
          delta that would take it below zero.
    P2 -- Sanctioned writers.  Every write happens inside
          projection_write_context(); the Material before_update listener
          rejects current_stock changes made anywhere else.
    Serialization -- lock_material() takes SELECT ... FOR UPDATE on
          PostgreSQL; on SQLite the transaction already holds the database
          write lock (BEGIN IMMEDIATE).  The version column catches any
          remaining lost update with StaleDataError.

Failure modes:
    - MaterialNotFoundError: no such material for the owner.
    - InsufficientStockError: delta would make the stock negative.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select
from sqlalchemy.orm import Session

from stock_kernel.db.immutability import projection_write_context
from stock_kernel.exceptions import InsufficientStockError, MaterialNotFoundError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.material import Material
from stock_kernel.services.base import BaseService

logger = get_logger("services.stock_projection")


class StockProjection(BaseService[Material]):
    """
    Writes the derived stock counter of a material.

    Contract:
        Callers lock the material first, then apply exactly one delta per
        appended fact (or one overwrite per reconciliation), all within the
        caller's transaction.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    def lock_material(self, owner_id: str, material_id: UUID) -> Material:
        """
        Load and lock a material row for update.

        ``populate_existing`` refreshes an instance already in the identity
        map, so the caller always sees the committed stock.

        Raises:
            MaterialNotFoundError: unknown material or other owner's material.
        """
        material = self.session.execute(
            select(Material)
            .where(Material.id == material_id, Material.owner_id == owner_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if material is None:
            raise MaterialNotFoundError(material_id, owner_id)
        return material

    def apply_delta(
        self,
        material: Material,
        delta: int,
        entry_price: Decimal | None = None,
        supplier_id: UUID | None = None,
        actor_id: str | None = None,
    ) -> int:
        """
        Apply a fact's stock delta, and an entry's price, to the projection.

        Args:
            material: Locked material.
            delta: Signed stock change from the delta rule.
            entry_price: For entries, the new most-recent unit price.
            supplier_id: For entries, the supplier recorded as last supplier.
            actor_id: Acting user, stored as updated_by_id.

        Returns:
            The new current_stock.

        Raises:
            InsufficientStockError: if the result would be negative.
        """
        available = material.current_stock
        new_stock = available + delta
        if new_stock < 0:
            raise InsufficientStockError(material.id, requested=-delta, available=available)

        with projection_write_context(self.session):
            material.current_stock = new_stock
            if entry_price is not None:
                material.unit_price = entry_price
            if supplier_id is not None:
                material.last_supplier_id = supplier_id
            if actor_id is not None:
                material.updated_by_id = actor_id

        logger.debug(
            "projection_updated",
            extra={
                "material_id": str(material.id),
                "previous_stock": available,
                "delta": delta,
                "current_stock": new_stock,
            },
        )
        return new_stock

    def set_stock(self, material: Material, stock: int) -> None:
        """
        Overwrite the projection with a replayed value (reconciliation only).
        """
        if stock < 0:
            raise ValueError(f"Replayed stock cannot be negative, got {stock}")
        with projection_write_context(self.session):
            material.current_stock = stock
