"""
Module: depot_kernel.selectors.base
Responsibility: Abstract base class for all read-only query selectors.  Selectors
    form the "Q" side of the kernel, providing list, get, history and stats
    reads over materials, requests, delivery notes and the stock ledger.
Architecture position: Kernel > Selectors.  May import from db/, models/ and
    domain/dtos.py.  MUST NOT import from services/ or outer layers.

Invariants enforced:
    - Read-only access: Selectors accept a Session from the caller but MUST NOT
      call session.add(), session.delete(), session.commit(), or session.flush().
    - DTO return convention: Selectors return frozen dataclasses, NOT raw ORM
      model instances, so results survive the session that produced them.
    - Session ownership: the caller owns the session and its transaction scope.
"""

from abc import ABC
from enum import Enum
from typing import Generic, TypeVar

from sqlalchemy.orm import Session

from depot_kernel.db.base import Base
from depot_kernel.exceptions import ValidationError

ModelType = TypeVar("ModelType", bound=Base)


def enum_value(value):
    """Plain column value for an Enum member or an already-plain value."""
    return value.value if isinstance(value, Enum) else value


def check_page(limit: int | None, offset: int) -> None:
    """Reject negative offsets and non-positive limits."""
    if limit is not None and (isinstance(limit, bool) or not isinstance(limit, int) or limit < 1):
        raise ValidationError(f"limit must be a positive integer, got {limit!r}", field="limit")
    if isinstance(offset, bool) or not isinstance(offset, int) or offset < 0:
        raise ValidationError(f"offset must be a non-negative integer, got {offset!r}", field="offset")


class BaseSelector(ABC, Generic[ModelType]):
    """
    Abstract base class for all selectors.

    Contract:
        Selectors accept a Session from the caller, perform read-only queries,
        and return DTOs or computed results.  They MUST NOT mutate any data.
    """

    def __init__(self, session: Session):
        """
        Args:
            session: SQLAlchemy session for database operations.
        """
        self.session = session
