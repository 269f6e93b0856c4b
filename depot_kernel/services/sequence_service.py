"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly monotonically increasing sequence numbers for the
    stock ledger and the human-readable request / delivery note numbers.
    Uses a dedicated counter table with row-level locking
    (``SELECT ... FOR UPDATE``) to guarantee uniqueness and ordering under
    concurrent access.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by StockLedger (movement seq), RequestWorkflow (request
    numbers) and DeliveryNoteIssuer (delivery note numbers).

Invariants enforced:
    - Sequence monotonicity: the locked counter row is the sole source of
      truth for the next value.  MAX()+1 over the data tables is never used.
    - Transactional: an increment is only visible after the caller's
      transaction commits.  Rollback returns the value.

Lock ordering:
    Callers take material row locks first (ascending id) and counter rows
    after, in the order delivery-note number then stock_movement.

Failure modes:
    - IntegrityError: concurrent counter creation race (handled via
      savepoint rollback and retry).
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from depot_kernel.db.base import Base
from depot_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named sequence with its current value.
    Row-level locking ensures monotonicity under concurrency.
    """

    __tablename__ = "sequence_counters"

    # Sequence name (e.g., "stock_movement", "request_number:2024")
    name: Mapped[str] = mapped_column(
        String(50),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


def format_document_number(prefix: str, year: int, value: int) -> str:
    """Render ``<PREFIX>-<YYYY>-<NNNNNN>``."""
    return f"{prefix}-{year:04d}-{value:06d}"


class SequenceService:
    """
    Service for generating transactional sequence numbers.

    Guarantees:
        - Strictly monotonic sequences via locked counter row.
        - Gap-safe under normal operation; on rollback the value is returned.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
    """

    STOCK_MOVEMENT = "stock_movement"
    REQUEST_NUMBER = "request_number"
    DELIVERY_NOTE_NUMBER = "delivery_note_number"

    def __init__(self, session: Session):
        self._session = session

    def _lock_counter(self, sequence_name: str) -> SequenceCounter | None:
        return self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        Locks the sequence row (or creates it if it does not exist),
        increments the counter and returns the new value.

        Postconditions:
            - Returns an integer > 0 strictly greater than any previously
              returned value for this sequence name.
            - The counter row is locked until the transaction completes.
        """
        counter = self._lock_counter(sequence_name)

        if counter is None:
            # First use of this sequence.  Another transaction may create it
            # concurrently; the savepoint keeps the caller's work intact.
            savepoint = self._session.begin_nested()
            try:
                counter = SequenceCounter(name=sequence_name, current_value=1)
                self._session.add(counter)
                self._session.flush()
                savepoint.commit()
                logger.debug(
                    "sequence_allocated",
                    extra={"sequence_name": sequence_name, "value": 1},
                )
                return 1
            except IntegrityError:
                logger.debug(
                    "sequence_counter_race_retry",
                    extra={"sequence_name": sequence_name},
                )
                savepoint.rollback()
                counter = self._lock_counter(sequence_name)
                if counter is None:
                    raise

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing, or None."""
        counter = self._session.execute(
            select(SequenceCounter).where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()
        return counter.current_value if counter else None

    def next_document_number(self, kind: str, prefix: str, year: int) -> str:
        """
        Allocate the next ``<PREFIX>-<YYYY>-<NNNNNN>`` number.

        Numbering restarts at 1 each year: the counter is keyed by kind and
        year, so "request_number:2024" and "request_number:2025" are
        distinct rows.
        """
        value = self.next_value(f"{kind}:{year:04d}")
        return format_document_number(prefix, year, value)

    def next_request_number(self, prefix: str, year: int) -> str:
        return self.next_document_number(self.REQUEST_NUMBER, prefix, year)

    def next_delivery_note_number(self, prefix: str, year: int) -> str:
        return self.next_document_number(self.DELIVERY_NOTE_NUMBER, prefix, year)

    def next_movement_seq(self) -> int:
        return self.next_value(self.STOCK_MOVEMENT)
