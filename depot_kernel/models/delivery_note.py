"""
Module: depot_kernel.models.delivery_note
Responsibility: ORM persistence for delivery notes and their lines.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - Exactly one of recipient_id / custom_destination is set
      (CHECK ck_delivery_note_recipient_xor).
    - A request produces at most one delivery note (UNIQUE request_id).
    - DeliveryLine.quantity > 0 and is frozen once written (ORM listener
      in db/immutability.py).
    - Delivery notes are never deleted.

Failure modes:
    - IntegrityError when a second note is inserted for the same request.
    - ImmutabilityViolationError on UPDATE/DELETE of a DeliveryLine.
"""

from datetime import datetime
from uuid import UUID

from sqlalchemy import CheckConstraint, ForeignKey, Index, String, Text, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column, relationship

from depot_kernel.db.base import TrackedBase, UUIDString


class DeliveryNote(TrackedBase):
    """
    Delivery note header.

    Type values: from_request, direct.
    Status values: in_preparation, ready, delivered, cancelled.
    """

    __tablename__ = "delivery_notes"

    __table_args__ = (
        UniqueConstraint("number", name="uq_delivery_note_number"),
        UniqueConstraint("request_id", name="uq_delivery_note_request"),
        CheckConstraint(
            "(recipient_id IS NULL) <> (custom_destination IS NULL)",
            name="ck_delivery_note_recipient_xor",
        ),
        CheckConstraint(
            "status IN ('in_preparation', 'ready', 'delivered', 'cancelled')",
            name="ck_delivery_note_status",
        ),
        CheckConstraint(
            "delivery_type IN ('from_request', 'direct')",
            name="ck_delivery_note_type",
        ),
        Index("idx_delivery_note_recipient", "recipient_id"),
        Index("idx_delivery_note_issuer", "issuer_id"),
        Index("idx_delivery_note_depot", "depot_id"),
        Index("idx_delivery_note_status", "status"),
    )

    # Human-readable number, e.g. BL-2024-000001
    number: Mapped[str] = mapped_column(String(40), nullable=False)

    request_id: Mapped[UUID | None] = mapped_column(
        UUIDString(),
        ForeignKey("material_requests.id"),
        nullable=True,
    )

    recipient_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    custom_destination: Mapped[str | None] = mapped_column(String(200), nullable=True)

    issuer_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    depot_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    delivery_type: Mapped[str] = mapped_column(String(20), nullable=False)

    status: Mapped[str] = mapped_column(
        String(20), nullable=False, default="in_preparation"
    )

    # Recipient's signature, captured on delivery confirmation
    signature: Mapped[str | None] = mapped_column(Text, nullable=True)

    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    delivered_at: Mapped[datetime | None] = mapped_column(nullable=True)

    lines: Mapped[list["DeliveryLine"]] = relationship(
        back_populates="delivery_note",
        order_by="DeliveryLine.line_no",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<DeliveryNote {self.number} status={self.status}>"


class DeliveryLine(TrackedBase):
    """One material line of a delivery note.  Frozen at creation."""

    __tablename__ = "delivery_lines"

    __table_args__ = (
        UniqueConstraint("delivery_note_id", "line_no", name="uq_delivery_line_no"),
        UniqueConstraint(
            "delivery_note_id", "material_id", name="uq_delivery_line_material"
        ),
        CheckConstraint("quantity > 0", name="ck_delivery_line_quantity_positive"),
    )

    delivery_note_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("delivery_notes.id"),
        nullable=False,
    )

    line_no: Mapped[int] = mapped_column(nullable=False)

    material_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("materials.id"),
        nullable=False,
    )

    quantity: Mapped[int] = mapped_column(nullable=False)

    delivery_note: Mapped[DeliveryNote] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return f"<DeliveryLine {self.line_no} qty={self.quantity}>"
