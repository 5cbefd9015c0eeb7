"""
SequenceService -- monotonic sequence allocation via locked counter rows.

Responsibility:
    Provides strictly increasing sequence numbers for human-facing order
    documents: order numbers, cart numbers and quotation numbers.  Uses a
    dedicated counter table with row-level locking (``SELECT ... FOR UPDATE``)
    so two concurrent confirmations can never receive the same number.

Architecture position:
    Kernel > Services -- imperative shell infrastructure.
    Called by the order store when the lifecycle service needs a new
    ``order_number``, ``cart_number`` or ``quotation_number``.

Invariants enforced:
    - Uniqueness: within one sequence name every returned value is distinct
      and strictly greater than the previous one.  Scanning the orders table
      for its current maximum is never used to allocate.
    - Scope: sequence names are built as ``"{tenant}:{type}:{year}"`` so each
      tenant, document type and year counts independently.
    - Transactional: the increment is visible only after the caller's
      transaction commits.  Rollback returns the value.

Failure modes:
    - IntegrityError: Concurrent counter creation race (handled via
      savepoint rollback and retry).
"""

from sqlalchemy import BigInteger, String, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Mapped, Session, mapped_column

from commerce_kernel.db.base import Base
from commerce_kernel.logging_config import get_logger

logger = get_logger("services.sequence")


class SequenceCounter(Base):
    """
    Sequence counter table.

    Each row represents a named, tenant-scoped sequence with its current
    value.  Row-level locking keeps allocation unique under concurrency.
    """

    __tablename__ = "sequence_counters"

    # Scoped sequence name (e.g., "acme:order:2025")
    name: Mapped[str] = mapped_column(
        String(120),
        nullable=False,
        unique=True,
    )

    current_value: Mapped[int] = mapped_column(
        BigInteger,
        nullable=False,
        default=0,
    )


class SequenceService:
    """
    Service for allocating transactional document numbers.

    Contract:
        Accepts a sequence name and returns the next strictly increasing
        integer value.  The increment is only committed when the caller's
        transaction commits.

    Non-goals:
        - Does NOT call ``session.commit()`` -- caller controls boundaries.
        - Does NOT format numbers; the order module owns number layout.
    """

    # Well-known document types
    ORDER = "order"
    CART = "cart"
    QUOTATION = "quotation"

    def __init__(self, session: Session):
        self._session = session

    @staticmethod
    def scoped_name(tenant_id: str, sequence_type: str, year: int) -> str:
        """Build the counter name for one tenant, document type and year."""
        return f"{tenant_id}:{sequence_type}:{year}"

    def next_scoped_value(self, tenant_id: str, sequence_type: str, year: int) -> int:
        """Allocate the next value of a ``(tenant, type, year)`` sequence."""
        return self.next_value(self.scoped_name(tenant_id, sequence_type, year))

    def next_value(self, sequence_name: str) -> int:
        """
        Get the next value for a named sequence.

        This method:
        1. Locks the sequence row (or creates it if not exists)
        2. Increments the counter
        3. Returns the new value

        Preconditions:
            - ``sequence_name`` is a non-empty string.
            - The caller is within an active database transaction.

        Postconditions:
            - Returns an integer > 0 that is strictly greater than any
              previously returned value for this sequence name.
            - The counter row is locked until the transaction completes.
        """
        if not sequence_name:
            raise ValueError("sequence_name must be a non-empty string")

        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

        if counter is None:
            # First use of this sequence.  Another writer may create the row
            # at the same time; the savepoint keeps the caller's work intact.
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
                counter = self._session.execute(
                    select(SequenceCounter)
                    .where(SequenceCounter.name == sequence_name)
                    .with_for_update()
                    .execution_options(populate_existing=True)
                ).scalar_one()

        counter.current_value += 1
        self._session.flush()
        logger.debug(
            "sequence_allocated",
            extra={"sequence_name": sequence_name, "value": counter.current_value},
        )
        return counter.current_value

    def current_value(self, sequence_name: str) -> int | None:
        """Current value of a sequence without incrementing, or None if unused."""
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
        ).scalar_one_or_none()

        return counter.current_value if counter else None

    def reset(self, sequence_name: str, value: int = 0) -> None:
        """
        Reset a sequence to a specific value.

        WARNING: Only for tests and data migrations that seed counters from
        numbers already issued by an older system.
        """
        counter = self._session.execute(
            select(SequenceCounter)
            .where(SequenceCounter.name == sequence_name)
            .with_for_update()
        ).scalar_one_or_none()

        if counter is None:
            counter = SequenceCounter(name=sequence_name, current_value=value)
            self._session.add(counter)
        else:
            counter.current_value = value

        self._session.flush()
