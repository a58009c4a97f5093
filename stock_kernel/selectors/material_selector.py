"""
Module: stock_kernel.selectors.material_selector
Responsibility: Read-only material queries: single material lookup, the
    projected stock, owner listings and the material set a valuation runs
    over.
Architecture position: Kernel > Selectors.
"""

from uuid import UUID

from sqlalchemy import case, distinct, func, select

from stock_kernel.domain.dtos import CategoryRecord, MaterialRecord
from stock_kernel.exceptions import MaterialNotFoundError
from stock_kernel.models.material import Category, Material
from stock_kernel.selectors.base import BaseSelector


class MaterialSelector(BaseSelector[Material]):
    """Queries over materials and categories, always scoped by owner."""

    def get(self, owner_id: str, material_id: UUID) -> MaterialRecord | None:
        material = self.session.execute(
            select(Material).where(
                Material.id == material_id,
                Material.owner_id == owner_id,
            )
        ).scalar_one_or_none()
        return MaterialRecord.from_model(material) if material is not None else None

    def get_or_raise(self, owner_id: str, material_id: UUID) -> MaterialRecord:
        record = self.get(owner_id, material_id)
        if record is None:
            raise MaterialNotFoundError(material_id, owner_id)
        return record

    def current_stock(self, owner_id: str, material_id: UUID) -> int:
        """
        The projected stock of one material.

        Raises:
            MaterialNotFoundError: unknown material or other owner's material.
        """
        stock = self.session.execute(
            select(Material.current_stock).where(
                Material.id == material_id,
                Material.owner_id == owner_id,
            )
        ).scalar_one_or_none()
        if stock is None:
            raise MaterialNotFoundError(material_id, owner_id)
        return stock

    def material_ids(self, owner_id: str) -> list[UUID]:
        """All material ids of an owner, ordered by name."""
        return list(
            self.session.execute(
                select(Material.id)
                .where(Material.owner_id == owner_id)
                .order_by(Material.name, Material.id)
            ).scalars()
        )

    def owner_ids(self) -> list[str]:
        """Every owner that has at least one material."""
        return list(
            self.session.execute(
                select(distinct(Material.owner_id)).order_by(Material.owner_id)
            ).scalars()
        )

    def count(self, owner_id: str) -> int:
        return self.session.execute(
            select(func.count(Material.id)).where(Material.owner_id == owner_id)
        ).scalar_one()

    def get_category(self, owner_id: str, category_id: UUID) -> CategoryRecord | None:
        category = self.session.execute(
            select(Category).where(
                Category.id == category_id,
                Category.owner_id == owner_id,
            )
        ).scalar_one_or_none()
        return CategoryRecord.from_model(category) if category is not None else None

    def for_valuation(
        self,
        owner_id: str,
        material_name_search: str | None = None,
        category_id: UUID | None = None,
    ) -> list[tuple[MaterialRecord, str | None]]:
        """
        Materials with positive stock matching the report filter.

        Ordered by category name (uncategorized last), then material name.
        The name filter is a case-insensitive substring match.

        Returns:
            (material, category name) pairs.
        """
        query = (
            select(Material, Category.name)
            .outerjoin(Category, Material.category_id == Category.id)
            .where(Material.owner_id == owner_id, Material.current_stock > 0)
        )
        if material_name_search:
            query = query.where(
                func.lower(Material.name).contains(
                    material_name_search.lower(), autoescape=True
                )
            )
        if category_id is not None:
            query = query.where(Material.category_id == category_id)

        query = query.order_by(
            case((Category.name.is_(None), 1), else_=0),
            Category.name,
            Material.name,
            Material.id,
        )
        return [
            (MaterialRecord.from_model(material), category_name)
            for material, category_name in self.session.execute(query)
        ]
