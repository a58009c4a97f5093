"""
Module: stock_kernel.selectors.movement_selector
Responsibility: Read-only queries over the movement ledger: the canonical
    replay stream of a material, movement history and consumption totals.
Architecture position: Kernel > Selectors.

Invariants enforced:
    Replay order -- facts_for_replay() orders by (effective_date,
    created_at, id) ascending in SQL.  Reconciliation and valuation both
    read through it, so neither depends on insertion order.
"""

from datetime import date
from uuid import UUID

from sqlalchemy import and_, func, select

from stock_kernel.domain.dtos import ConsumptionRow, MovementRecord
from stock_kernel.domain.movements import FactLine, MovementType
from stock_kernel.models.material import Category, Material
from stock_kernel.models.movement import Movement
from stock_kernel.selectors.base import BaseSelector


def _fact_line(movement: Movement) -> FactLine:
    return FactLine(
        movement_type=MovementType(movement.movement_type),
        quantity=movement.quantity,
        effective_date=movement.effective_date,
        created_at=movement.created_at,
        is_return=movement.is_return,
        unit_price=movement.unit_price,
        movement_id=movement.id,
    )


class MovementSelector(BaseSelector[Movement]):
    """Queries over stock movement facts."""

    def facts_for_replay(
        self,
        material_id: UUID,
        movement_type: MovementType | None = None,
    ) -> list[FactLine]:
        """
        A material's facts in canonical replay order.

        Args:
            material_id: Material whose history to stream.
            movement_type: Restrict to one kind (valuation reads entries only).
        """
        query = select(Movement).where(Movement.material_id == material_id)
        if movement_type is not None:
            query = query.where(Movement.movement_type == MovementType(movement_type).value)
        query = query.order_by(
            Movement.effective_date,
            Movement.created_at,
            Movement.id,
        )
        return [_fact_line(m) for m in self.session.execute(query).scalars()]

    def history(
        self,
        owner_id: str,
        material_id: UUID | None = None,
        movement_type: MovementType | None = None,
        start_date: date | None = None,
        end_date: date | None = None,
        limit: int | None = None,
    ) -> list[MovementRecord]:
        """Movements of an owner, newest first, with optional filters."""
        query = select(Movement).where(Movement.owner_id == owner_id)
        if material_id is not None:
            query = query.where(Movement.material_id == material_id)
        if movement_type is not None:
            query = query.where(Movement.movement_type == MovementType(movement_type).value)
        if start_date is not None:
            query = query.where(Movement.effective_date >= start_date)
        if end_date is not None:
            query = query.where(Movement.effective_date <= end_date)
        query = query.order_by(
            Movement.effective_date.desc(),
            Movement.created_at.desc(),
            Movement.id.desc(),
        )
        if limit is not None:
            query = query.limit(limit)
        return [MovementRecord.from_model(m) for m in self.session.execute(query).scalars()]

    def counts_on(self, owner_id: str, business_date: date) -> tuple[int, int]:
        """
        (entries, exits) with the given effective date.

        Returns are exits and count toward exits.
        """
        rows = self.session.execute(
            select(Movement.movement_type, func.count(Movement.id))
            .where(
                Movement.owner_id == owner_id,
                Movement.effective_date == business_date,
            )
            .group_by(Movement.movement_type)
        ).all()
        counts = {movement_type: count for movement_type, count in rows}
        return (
            counts.get(MovementType.ENTRY.value, 0),
            counts.get(MovementType.EXIT.value, 0),
        )

    def consumption(
        self,
        owner_id: str,
        start_date: date | None = None,
        end_date: date | None = None,
        category_id: UUID | None = None,
    ) -> list[ConsumptionRow]:
        """
        Non-return exit volume per material, largest first.

        Returns are excluded: material that came back was not consumed.
        """
        conditions = [
            Movement.owner_id == owner_id,
            Movement.movement_type == MovementType.EXIT.value,
            Movement.is_return.is_(False),
        ]
        if start_date is not None:
            conditions.append(Movement.effective_date >= start_date)
        if end_date is not None:
            conditions.append(Movement.effective_date <= end_date)
        if category_id is not None:
            conditions.append(Material.category_id == category_id)

        total = func.sum(Movement.quantity).label("total")
        query = (
            select(
                Material.id,
                Material.name,
                Category.name,
                Material.unit,
                total,
                func.count(Movement.id),
            )
            .join(Material, Movement.material_id == Material.id)
            .outerjoin(Category, Material.category_id == Category.id)
            .where(and_(*conditions))
            .group_by(Material.id, Material.name, Category.name, Material.unit)
            .order_by(total.desc(), Material.name)
        )
        return [
            ConsumptionRow(
                material_id=material_id,
                material_name=name,
                category=category_name,
                unit=unit,
                quantity=int(quantity),
                movements=movements,
            )
            for material_id, name, category_name, unit, quantity, movements in self.session.execute(query)
        ]
