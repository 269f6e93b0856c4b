"""
Module: depot_kernel.models.material
Responsibility: ORM persistence for catalog materials and their stock on hand.
Architecture position: Kernel > Models.  May import from db/base.py only.
    MUST NOT import from services/, selectors/, domain/, or outer layers.

Invariants enforced:
    - stock_on_hand >= 0 (CHECK constraint ck_material_stock_non_negative).
    - code is unique across the catalog.
    - version is the mapper's version_id_col: an UPDATE that does not match
      the version read raises StaleDataError (lost-update detection).
    - stock_on_hand only changes together with a new StockMovement whose
      stock_after equals the new value (before_flush listener in
      db/immutability.py).

Failure modes:
    - IntegrityError on duplicate code or negative stock at flush time.
    - StaleDataError on a concurrent version bump.
    - MaterialReferencedError when deleting a material with ledger history.
"""

from uuid import UUID

from sqlalchemy import CheckConstraint, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from depot_kernel.db.base import TrackedBase, UUIDString


class Material(TrackedBase):
    """
    A catalog material held in a depot.

    Contract:
        Created at stock 0 by the catalog; opening stock is recorded as a
        ledger receipt.  category_id and depot_id reference subsystems that
        live outside the kernel and carry no foreign key.
    """

    __tablename__ = "materials"

    __table_args__ = (
        UniqueConstraint("code", name="uq_material_code"),
        CheckConstraint("stock_on_hand >= 0", name="ck_material_stock_non_negative"),
        CheckConstraint("stock_minimum >= 0", name="ck_material_minimum_non_negative"),
        Index("idx_material_depot", "depot_id"),
        Index("idx_material_category", "category_id"),
    )

    code: Mapped[str] = mapped_column(String(50), nullable=False)

    name: Mapped[str] = mapped_column(String(200), nullable=False)

    # Unit of measure (e.g. "bag", "m3", "piece")
    unit: Mapped[str] = mapped_column(String(20), nullable=False)

    stock_on_hand: Mapped[int] = mapped_column(nullable=False, default=0)

    # Reorder threshold, informational only
    stock_minimum: Mapped[int] = mapped_column(nullable=False, default=0)

    category_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    depot_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    supplier: Mapped[str | None] = mapped_column(String(200), nullable=True)

    version: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def __repr__(self) -> str:
        return f"<Material {self.code} stock={self.stock_on_hand}>"

    @property
    def is_below_minimum(self) -> bool:
        return self.stock_on_hand <= self.stock_minimum
