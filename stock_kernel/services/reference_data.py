"""
ReferenceDataService -- the minimum master data the ledger needs.

Responsibility:
    Registers categories and materials so facts have something to point
    at.  Full master-data maintenance (suppliers, employees, third parties,
    cost centers, material edits) lives outside the kernel.

Invariants enforced:
    - A new material starts at zero stock; stock only ever comes from facts.
    - Category names are unique per owner.
"""

from decimal import Decimal
from uuid import UUID

from sqlalchemy import select

from stock_kernel.domain.dtos import CategoryRecord, MaterialRecord
from stock_kernel.domain.movements import coerce_price
from stock_kernel.exceptions import CategoryNotFoundError, ValidationError
from stock_kernel.logging_config import get_logger
from stock_kernel.models.material import Category, Material
from stock_kernel.services.base import BaseService

logger = get_logger("services.reference_data")


def _require_name(name: str) -> str:
    if not isinstance(name, str) or not name.strip():
        raise ValidationError("name", "must be a non-empty string")
    return name.strip()


class ReferenceDataService(BaseService[Material]):

    def register_category(
        self,
        owner_id: str,
        name: str,
        actor_id: str | None = None,
    ) -> CategoryRecord:
        name = _require_name(name)
        existing = self.session.execute(
            select(Category.id).where(Category.owner_id == owner_id, Category.name == name)
        ).scalar_one_or_none()
        if existing is not None:
            raise ValidationError("name", f"category {name!r} already exists")

        category = Category(owner_id=owner_id, name=name, created_by_id=actor_id)
        self.session.add(category)
        self.session.flush()

        logger.info(
            "category_registered",
            extra={"category_id": str(category.id), "category_name": name},
        )
        return CategoryRecord.from_model(category)

    def register_material(
        self,
        owner_id: str,
        name: str,
        unit: str = "unit",
        category_id: UUID | None = None,
        minimum_stock: int = 0,
        unit_price: Decimal | str | int | None = None,
        description: str | None = None,
        actor_id: str | None = None,
    ) -> MaterialRecord:
        """
        Register a material with zero stock.

        Raises:
            ValidationError: blank name or unit, bad minimum or price.
            CategoryNotFoundError: category missing for this owner.
        """
        name = _require_name(name)
        if not isinstance(unit, str) or not unit.strip():
            raise ValidationError("unit", "must be a non-empty string")
        if isinstance(minimum_stock, bool) or not isinstance(minimum_stock, int) or minimum_stock < 0:
            raise ValidationError("minimum_stock", f"must be an integer >= 0, got {minimum_stock!r}")
        price = coerce_price(unit_price) if unit_price is not None else None

        if category_id is not None:
            category = self.session.execute(
                select(Category.id).where(
                    Category.id == category_id, Category.owner_id == owner_id
                )
            ).scalar_one_or_none()
            if category is None:
                raise CategoryNotFoundError(category_id, owner_id)

        material = Material(
            owner_id=owner_id,
            name=name,
            unit=unit.strip(),
            category_id=category_id,
            description=description,
            current_stock=0,
            minimum_stock=minimum_stock,
            unit_price=price,
            created_by_id=actor_id,
        )
        self.session.add(material)
        self.session.flush()

        logger.info(
            "material_registered",
            extra={
                "material_id": str(material.id),
                "material_name": name,
                "minimum_stock": minimum_stock,
            },
        )
        return MaterialRecord.from_model(material)
