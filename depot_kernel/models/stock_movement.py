"""
Module: depot_kernel.models.stock_movement
Responsibility: ORM persistence for the append-only stock ledger.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Append-only: UPDATE and DELETE are refused by ORM listeners
      (db/immutability.py).  Only the updated_at / updated_by_id audit
      columns are exempt.
    - stock_after = stock_before + quantity (CHECK ck_movement_balance).
    - stock_before >= 0 and stock_after >= 0.
    - seq is allocated from the "stock_movement" counter row and is unique;
      the highest seq for a material is its latest entry.

Audit relevance:
    stock_before and stock_after are captured at write time under the
    material's row lock.  They are never recomputed.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from depot_kernel.db.base import TrackedBase, UUIDString


class StockMovement(TrackedBase):
    """
    One ledger entry: a single signed change to one material's balance.

    movement_type is one of "in", "out", "adjustment".  quantity is the
    signed delta.  created_by_id equals actor_id.
    """

    __tablename__ = "stock_movements"

    __table_args__ = (
        UniqueConstraint("seq", name="uq_stock_movement_seq"),
        CheckConstraint("stock_before >= 0", name="ck_movement_before_non_negative"),
        CheckConstraint("stock_after >= 0", name="ck_movement_after_non_negative"),
        CheckConstraint(
            "stock_after = stock_before + quantity", name="ck_movement_balance"
        ),
        CheckConstraint(
            "movement_type IN ('in', 'out', 'adjustment')", name="ck_movement_type"
        ),
        Index("idx_movement_material_seq", "material_id", "seq"),
        Index("idx_movement_delivery_note", "delivery_note_id"),
        Index("idx_movement_request", "request_id"),
        Index("idx_movement_occurred_at", "occurred_at"),
    )

    # Global ledger order
    seq: Mapped[int] = mapped_column(nullable=False)

    material_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("materials.id"),
        nullable=False,
    )

    movement_type: Mapped[str] = mapped_column(String(20), nullable=False)

    # Signed delta
    quantity: Mapped[int] = mapped_column(nullable=False)

    stock_before: Mapped[int] = mapped_column(nullable=False)

    stock_after: Mapped[int] = mapped_column(nullable=False)

    actor_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    request_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("material_requests.id"),
        nullable=True,
    )

    delivery_note_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("delivery_notes.id"),
        nullable=True,
    )

    # Reason code, e.g. "supplier receipt", "inventory correction"
    reason: Mapped[str | None] = mapped_column(String(100), nullable=True)

    description: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Receipts only
    supplier: Mapped[str | None] = mapped_column(String(200), nullable=True)
    invoice_number: Mapped[str | None] = mapped_column(String(100), nullable=True)

    occurred_at: Mapped[datetime] = mapped_column(nullable=False)

    def __repr__(self) -> str:
        return (
            f"<StockMovement #{self.seq} {self.movement_type} "
            f"{self.stock_before}->{self.stock_after}>"
        )
