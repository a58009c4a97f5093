"""
FactStore -- append-only writer of stock movement facts.

Responsibility:
    Validates a movement, appends it to the ledger and applies its stock
    effect to the projection, inside the caller's transaction.

Architecture position:
    Kernel > Services -- imperative shell.  Called by the StockLedger facade
    inside ``Database.session_scope()``.

Invariants enforced:
    F1 -- Facts are only ever inserted (updates/deletes are blocked by the
          ORM listeners and database triggers).
    Atomicity -- the fact insert and the projection delta are flushed in the
          same transaction; the facade commits or rolls back both.
    Stock check -- a non-return exit must fit at its effective date: neither
          the projection nor any later step of the replayed history may go
          below zero.  The check runs after the material row is locked.

Failure modes:
    - InvalidQuantityError / ValidationError: malformed input, nothing
      written.
    - MaterialNotFoundError: material missing or owned by another tenant.
    - InsufficientStockError: exit larger than the stock available at its
      effective date.

Audit relevance:
    Every append logs ``movement_recorded`` with the fact id, type, quantity
    and resulting stock.
"""

from datetime import date
from uuid import UUID

from sqlalchemy.orm import Session

from stock_kernel.domain.clock import Clock
from stock_kernel.domain.dtos import MovementRecord
from stock_kernel.domain.movements import MovementType, available_at, validate_movement
from stock_kernel.exceptions import InsufficientStockError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.movement import Movement
from stock_kernel.selectors.movement_selector import MovementSelector
from stock_kernel.services.base import BaseService
from stock_kernel.services.stock_projection import StockProjection

logger = get_logger("services.fact_store")


class FactStore(BaseService[Movement]):
    """
    Appends movement facts and keeps the projection in step.

    Guarantees:
        - Validation happens before the material is locked; a rejected
          movement leaves no trace.
        - An exit without a unit price is priced at the material's current
          unit price.
        - An entry makes its price the material's unit price and its
          supplier the material's last supplier.
        - created_at is taken from the injected clock.
    """

    def __init__(self, session: Session, clock: Clock | None = None):
        super().__init__(session, clock)
        self._projection = StockProjection(session)
        self._movements = MovementSelector(session)

    def append(
        self,
        owner_id: str,
        material_id: UUID,
        movement_type: MovementType | str,
        quantity: int,
        effective_date: date,
        unit_price=None,
        is_return: bool = False,
        cost_center_id: UUID | None = None,
        supplier_id: UUID | None = None,
        employee_id: UUID | None = None,
        third_party_id: UUID | None = None,
        notes: str | None = None,
        actor_id: str | None = None,
    ) -> MovementRecord:
        """
        Append one movement fact.

        Returns:
            The persisted fact.

        Raises:
            InvalidQuantityError, ValidationError, MaterialNotFoundError,
            InsufficientStockError.
        """
        movement = validate_movement(
            movement_type=movement_type,
            quantity=quantity,
            effective_date=effective_date,
            unit_price=unit_price,
            is_return=is_return,
            supplier_id=supplier_id,
            employee_id=employee_id,
            third_party_id=third_party_id,
            cost_center_id=cost_center_id,
            notes=notes,
        )

        material = self._projection.lock_material(owner_id, material_id)

        is_entry = movement.movement_type is MovementType.ENTRY
        if not is_entry and not movement.is_return:
            self._check_available(material, movement.quantity, movement.effective_date)

        price = movement.unit_price
        if price is None:
            price = material.unit_price

        fact = Movement(
            owner_id=owner_id,
            material_id=material.id,
            movement_type=movement.movement_type.value,
            is_return=movement.is_return,
            quantity=movement.quantity,
            unit_price=price,
            effective_date=movement.effective_date,
            created_at=self.clock.now(),
            supplier_id=movement.supplier_id,
            employee_id=movement.employee_id,
            third_party_id=movement.third_party_id,
            cost_center_id=movement.cost_center_id,
            notes=movement.notes,
            created_by_id=actor_id,
        )
        self.session.add(fact)

        new_stock = self._projection.apply_delta(
            material,
            movement.delta,
            entry_price=movement.unit_price if is_entry else None,
            supplier_id=movement.supplier_id if is_entry else None,
            actor_id=actor_id,
        )

        logger.info(
            "movement_recorded",
            extra={
                "movement_id": str(fact.id),
                "material_id": str(material.id),
                "movement_type": fact.movement_type,
                "is_return": fact.is_return,
                "quantity": fact.quantity,
                "effective_date": fact.effective_date,
                "current_stock": new_stock,
            },
        )

        return MovementRecord.from_model(fact)

    def _check_available(self, material, quantity: int, effective_date: date) -> None:
        """
        Reject an exit the history cannot cover at ``effective_date``.

        A backdated exit is held against the history from its replay slot
        onward as well as against the projection.
        """
        available = min(
            material.current_stock,
            available_at(
                self._movements.facts_for_replay(material.id),
                effective_date,
                presorted=True,
            ),
        )
        if available >= quantity:
            return

        logger.info(
            "movement_rejected_insufficient_stock",
            extra={
                "material_id": str(material.id),
                "requested": quantity,
                "available": available,
                "effective_date": effective_date,
            },
        )
        raise InsufficientStockError(material.id, requested=quantity, available=available)
