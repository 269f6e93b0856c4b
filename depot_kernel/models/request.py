"""
Module: depot_kernel.models.request
Responsibility: ORM persistence for material requests and their lines.
Architecture position: Kernel > Models.  May import from db/base.py only.

Invariants enforced:
    - number is unique (allocated by SequenceService, never reused).
    - quantity_requested > 0; 0 <= quantity_granted <= quantity_requested
      (CHECK constraints).
    - A material appears at most once per request.
    - Requests are never deleted; status moves along REQUEST_WORKFLOW.

Failure modes:
    - IntegrityError on duplicate number or line constraint violations.
"""

from datetime import date, datetime
from uuid import UUID

from sqlalchemy import (
    CheckConstraint,
    Date,
    ForeignKey,
    Index,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import Mapped, mapped_column, relationship

from depot_kernel.db.base import TrackedBase, UUIDString


class MaterialRequest(TrackedBase):
    """
    A request for materials submitted by a requester and decided by a
    validator.

    Status values: pending, approved, rejected, in_preparation, delivered.
    Priority values: normal, urgent.
    """

    __tablename__ = "material_requests"

    __table_args__ = (
        UniqueConstraint("number", name="uq_request_number"),
        CheckConstraint(
            "status IN ('pending', 'approved', 'rejected', 'in_preparation', 'delivered')",
            name="ck_request_status",
        ),
        CheckConstraint("priority IN ('normal', 'urgent')", name="ck_request_priority"),
        Index("idx_request_requester", "requester_id"),
        Index("idx_request_status", "status"),
        Index("idx_request_depot", "depot_id"),
    )

    # Human-readable number, e.g. DEM-2024-000001
    number: Mapped[str] = mapped_column(String(40), nullable=False)

    requester_id: Mapped[UUID] = mapped_column(UUIDString(), nullable=False)

    depot_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    custom_destination: Mapped[str | None] = mapped_column(String(200), nullable=True)

    priority: Mapped[str] = mapped_column(String(10), nullable=False, default="normal")

    desired_date: Mapped[date | None] = mapped_column(Date, nullable=True)

    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    status: Mapped[str] = mapped_column(String(20), nullable=False, default="pending")

    validator_id: Mapped[UUID | None] = mapped_column(UUIDString(), nullable=True)

    validated_at: Mapped[datetime | None] = mapped_column(nullable=True)

    validator_comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    lines: Mapped[list["RequestLine"]] = relationship(
        back_populates="request",
        cascade="all, delete-orphan",
        order_by="RequestLine.line_no",
        lazy="selectin",
    )

    def __repr__(self) -> str:
        return f"<MaterialRequest {self.number} status={self.status}>"


class RequestLine(TrackedBase):
    """One material line of a request."""

    __tablename__ = "request_lines"

    __table_args__ = (
        UniqueConstraint("request_id", "line_no", name="uq_request_line_no"),
        UniqueConstraint("request_id", "material_id", name="uq_request_line_material"),
        CheckConstraint("quantity_requested > 0", name="ck_request_line_requested_positive"),
        CheckConstraint(
            "quantity_granted >= 0 AND quantity_granted <= quantity_requested",
            name="ck_request_line_granted_range",
        ),
    )

    request_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("material_requests.id"),
        nullable=False,
    )

    line_no: Mapped[int] = mapped_column(nullable=False)

    material_id: Mapped[UUID] = mapped_column(
        UUIDString(),
        ForeignKey("materials.id"),
        nullable=False,
    )

    quantity_requested: Mapped[int] = mapped_column(nullable=False)

    # 0 until an approval writes it
    quantity_granted: Mapped[int] = mapped_column(nullable=False, default=0)

    comment: Mapped[str | None] = mapped_column(Text, nullable=True)

    request: Mapped[MaterialRequest] = relationship(back_populates="lines")

    def __repr__(self) -> str:
        return (
            f"<RequestLine {self.line_no} requested={self.quantity_requested} "
            f"granted={self.quantity_granted}>"
        )
