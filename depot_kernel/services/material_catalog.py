"""
MaterialCatalog -- material identity and guarded stock arithmetic.

Responsibility:
    Reads materials, takes their row locks, and applies increments and
    decrements to ``stock_on_hand`` while guarding the non-negativity
    invariant.  Registers and deletes catalog entries.

Architecture position:
    Kernel > Services -- imperative shell.  Leaf component: it never
    writes ledger entries.  StockLedger.record is the only caller of the
    mutation methods and pairs every change with a StockMovement in the
    same flush (enforced by the before_flush listener in
    db/immutability.py).

Invariants enforced:
    - stock_on_hand >= 0: a decrement below the expected minimum raises
      InsufficientStockError and leaves the row untouched.
    - Mutations operate on a row re-read under ``SELECT ... FOR UPDATE``
      inside the caller's transaction, never on a value read earlier.

Failure modes:
    - MaterialNotFoundError for an unknown id.
    - InsufficientStockError when current < expected minimum.
    - ValidationError for non-positive quantities or malformed catalog input.
    - MaterialReferencedError / InvalidStateError on delete of a material
      with ledger history or request/delivery lines.
"""

from collections.abc import Iterable
from uuid import UUID

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from depot_kernel.exceptions import (
    InsufficientStockError,
    InvalidStateError,
    MaterialNotFoundError,
    MaterialReferencedError,
    ValidationError,
)
from depot_kernel.logging_config import get_logger
from depot_kernel.models.delivery_note import DeliveryLine
from depot_kernel.models.material import Material
from depot_kernel.models.request import RequestLine
from depot_kernel.models.stock_movement import StockMovement
from depot_kernel.services.base import BaseService

logger = get_logger("services.material_catalog")


def _require_positive(quantity: int, field: str = "quantity") -> None:
    if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
        raise ValidationError(f"{field} must be a positive integer, got {quantity!r}", field=field)


class MaterialCatalog(BaseService[Material]):
    """
    Material reads, row locks and guarded increment/decrement.

    Contract:
        Mutation methods set ``stock_on_hand`` and return the new balance
        without flushing.  The caller flushes together with the matching
        ledger entry.
    """

    def __init__(self, session: Session):
        super().__init__(session)

    # -------------------------------------------------------------------------
    # Reads and locks
    # -------------------------------------------------------------------------

    def get(self, material_id: UUID) -> Material:
        material = self.session.get(Material, material_id)
        if material is None:
            raise MaterialNotFoundError(str(material_id))
        return material

    def get_stock(self, material_id: UUID) -> int:
        """Current committed-or-own-transaction stock, read from the row."""
        stock = self.session.execute(
            select(Material.stock_on_hand).where(Material.id == material_id)
        ).scalar_one_or_none()
        if stock is None:
            raise MaterialNotFoundError(str(material_id))
        return stock

    def lock(self, material_id: UUID) -> Material:
        """
        Lock the material row and re-read it.

        ``populate_existing`` overwrites any identity-map copy with the row
        as it is now, so the balance used afterwards is the one the lock
        protects.
        """
        material = self.session.execute(
            select(Material)
            .where(Material.id == material_id)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()
        if material is None:
            raise MaterialNotFoundError(str(material_id))
        return material

    def lock_many(self, material_ids: Iterable[UUID]) -> list[Material]:
        """Lock materials one at a time in ascending id order."""
        ordered = sorted(set(material_ids), key=str)
        return [self.lock(material_id) for material_id in ordered]

    # -------------------------------------------------------------------------
    # Guarded arithmetic
    # -------------------------------------------------------------------------

    def decrement_stock(
        self,
        material_id: UUID,
        quantity: int,
        expected_minimum: int | None = None,
    ) -> int:
        """
        Decrease stock by ``quantity``.

        Raises InsufficientStockError when the locked balance is below
        ``expected_minimum`` (defaults to ``quantity``).
        """
        _require_positive(quantity)
        minimum = quantity if expected_minimum is None else max(expected_minimum, quantity)

        material = self.lock(material_id)
        current = material.stock_on_hand
        if current < minimum:
            raise InsufficientStockError(
                material_id=str(material.id),
                material_code=material.code,
                available=current,
                requested=quantity,
                unit=material.unit,
            )

        material.stock_on_hand = current - quantity
        logger.debug(
            "stock_decremented",
            extra={
                "material_id": str(material.id),
                "stock_before": current,
                "stock_after": material.stock_on_hand,
            },
        )
        return material.stock_on_hand

    def increment_stock(self, material_id: UUID, quantity: int) -> int:
        """Increase stock by ``quantity``."""
        _require_positive(quantity)

        material = self.lock(material_id)
        current = material.stock_on_hand
        material.stock_on_hand = current + quantity
        logger.debug(
            "stock_incremented",
            extra={
                "material_id": str(material.id),
                "stock_before": current,
                "stock_after": material.stock_on_hand,
            },
        )
        return material.stock_on_hand

    # -------------------------------------------------------------------------
    # Catalog entries
    # -------------------------------------------------------------------------

    def register(
        self,
        *,
        code: str,
        name: str,
        unit: str,
        actor_id: UUID,
        stock_minimum: int = 0,
        category_id: UUID | None = None,
        depot_id: UUID | None = None,
        description: str | None = None,
        supplier: str | None = None,
    ) -> Material:
        """
        Create a catalog entry at stock 0.

        Opening stock is recorded afterwards as a ledger receipt.
        """
        for field, value in (("code", code), ("name", name), ("unit", unit)):
            if not value or not value.strip():
                raise ValidationError(f"Material {field} is required", field=field)
        if isinstance(stock_minimum, bool) or not isinstance(stock_minimum, int) or stock_minimum < 0:
            raise ValidationError(
                f"stock_minimum must be a non-negative integer, got {stock_minimum!r}",
                field="stock_minimum",
            )

        code = code.strip()
        existing = self.session.execute(
            select(Material.id).where(Material.code == code)
        ).scalar_one_or_none()
        if existing is not None:
            raise ValidationError(f"Material code already exists: {code}", field="code")

        material = Material(
            code=code,
            name=name.strip(),
            unit=unit.strip(),
            stock_on_hand=0,
            stock_minimum=stock_minimum,
            category_id=category_id,
            depot_id=depot_id,
            description=description,
            supplier=supplier,
            created_by_id=actor_id,
        )
        self.session.add(material)
        self.session.flush()

        logger.info(
            "material_registered",
            extra={"material_id": str(material.id), "code": material.code},
        )
        return material

    def delete(self, material_id: UUID, actor_id: UUID) -> None:
        """
        Delete a catalog entry with no history.

        Raises:
            MaterialReferencedError: Ledger entries reference the material.
            InvalidStateError: Request or delivery lines reference it.
        """
        material = self.lock(material_id)

        movements = self.session.execute(
            select(func.count())
            .select_from(StockMovement)
            .where(StockMovement.material_id == material.id)
        ).scalar_one()
        if movements:
            raise MaterialReferencedError(material_id=str(material.id), movement_count=movements)

        line_refs = self.session.execute(
            select(func.count()).select_from(RequestLine).where(RequestLine.material_id == material.id)
        ).scalar_one() + self.session.execute(
            select(func.count()).select_from(DeliveryLine).where(DeliveryLine.material_id == material.id)
        ).scalar_one()
        if line_refs:
            raise InvalidStateError(
                "Material",
                str(material.id),
                "referenced",
                f"{line_refs} request/delivery line(s) reference this material",
            )

        self.session.delete(material)
        self.session.flush()
        logger.info(
            "material_deleted",
            extra={"material_id": str(material_id), "actor_id": str(actor_id)},
        )
