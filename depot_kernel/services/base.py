"""
BaseService -- abstract base for all kernel services.

Responsibility:
    Provides the common constructor and session-handling contract for
    every write-side service in the kernel.  Services receive a SQLAlchemy
    ``Session`` and use ``session.flush()`` -- never ``session.commit()``.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.

Invariants enforced:
    Transaction boundaries: services flush within the caller's
    transaction and never commit or roll back themselves.  The caller
    (FulfillmentCoordinator or a test harness) owns commit/rollback, so a
    delivery note, its lines, every stock decrement and every ledger entry
    land together or not at all.
"""

from abc import ABC
from typing import Generic, TypeVar
from uuid import UUID

from sqlalchemy.orm import Session

from depot_kernel.db.base import Base
from depot_kernel.exceptions import ValidationError

ModelType = TypeVar("ModelType", bound=Base)


def coerce_id(value: object, field: str) -> UUID:
    """Caller-supplied id as a UUID; UUID strings are accepted."""
    if isinstance(value, UUID):
        return value
    try:
        return UUID(str(value))
    except ValueError:
        raise ValidationError(f"{field} is not a valid id: {value!r}", field=field) from None


class BaseService(ABC, Generic[ModelType]):
    """
    Abstract base class for all kernel services.

    Guarantees:
        - The service never calls ``session.commit()`` or
          ``session.rollback()``.

    Non-goals:
        - Does NOT provide list/stats read methods -- those belong in
          ``depot_kernel/selectors/``.
    """

    def __init__(self, session: Session):
        """
        Args:
            session: SQLAlchemy session for database operations.
        """
        self.session = session
