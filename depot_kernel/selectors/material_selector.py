"""Read-only material queries: lookup, listing and low-stock detection."""

from uuid import UUID

from sqlalchemy import select

from depot_kernel.domain.dtos import MaterialView
from depot_kernel.exceptions import MaterialNotFoundError
from depot_kernel.models.material import Material
from depot_kernel.selectors.base import BaseSelector


def material_to_view(material: Material) -> MaterialView:
    return MaterialView(
        id=material.id,
        code=material.code,
        name=material.name,
        unit=material.unit,
        stock_on_hand=material.stock_on_hand,
        stock_minimum=material.stock_minimum,
        category_id=material.category_id,
        depot_id=material.depot_id,
        description=material.description,
        supplier=material.supplier,
        version=material.version,
    )


class MaterialSelector(BaseSelector[Material]):

    def get(self, material_id: UUID) -> MaterialView:
        material = self.session.get(Material, material_id)
        if material is None:
            raise MaterialNotFoundError(str(material_id))
        return material_to_view(material)

    def get_by_code(self, code: str) -> MaterialView | None:
        material = self.session.execute(
            select(Material).where(Material.code == code)
        ).scalar_one_or_none()
        return material_to_view(material) if material is not None else None

    def list_materials(
        self,
        depot_id: UUID | None = None,
        category_id: UUID | None = None,
    ) -> list[MaterialView]:
        stmt = select(Material).order_by(Material.code)
        if depot_id is not None:
            stmt = stmt.where(Material.depot_id == depot_id)
        if category_id is not None:
            stmt = stmt.where(Material.category_id == category_id)
        return [material_to_view(m) for m in self.session.execute(stmt).scalars()]

    def low_stock(self, depot_id: UUID | None = None) -> list[MaterialView]:
        """Materials at or below their reorder threshold, most depleted first."""
        stmt = (
            select(Material)
            .where(Material.stock_on_hand <= Material.stock_minimum)
            .order_by(
                (Material.stock_on_hand - Material.stock_minimum).asc(),
                Material.code,
            )
        )
        if depot_id is not None:
            stmt = stmt.where(Material.depot_id == depot_id)
        return [material_to_view(m) for m in self.session.execute(stmt).scalars()]
