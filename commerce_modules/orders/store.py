"""
Order Aggregate Store (``commerce_modules.orders.store``).

Responsibility
--------------
The persistence boundary of the lifecycle service: load an order by id,
save it, query by filter, patch many orders at once, and allocate document
numbers.  The service never issues queries beyond this interface.

Architecture position
---------------------
**Modules layer** -- persistence.  ``OrderStore`` is the protocol the
service depends on; ``SqlOrderStore`` implements it over SQLAlchemy with
one ``orders`` row per aggregate.

Invariants enforced
-------------------
* Lost-update protection: ``save`` only writes when the stored version
  equals the version the order was loaded with.  The UPDATE itself carries
  ``WHERE version = :expected``, so a concurrent writer between check and
  flush is detected too.
* Document numbers come from ``SequenceService`` counters scoped by tenant,
  document type and year -- never from the current maximum.
* ``save`` flushes but never commits; the service owns the transaction.

Failure modes
-------------
* ``OptimisticLockError`` -- the order changed since it was loaded, or it
  vanished.
* ``DuplicateDocumentNumberError`` -- a unique document number collided.
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from datetime import datetime
from typing import Protocol

from sqlalchemy import func, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from commerce_kernel.exceptions import DuplicateDocumentNumberError, OptimisticLockError
from commerce_kernel.logging_config import get_logger
from commerce_kernel.services.sequence_service import SequenceService
from commerce_modules.orders.models import Order, OrderStatus, QuotationStatus
from commerce_modules.orders.orm import OrderDocumentModel

logger = get_logger("modules.orders.store")


@dataclass(frozen=True)
class OrderFilter:
    """Conjunctive filter over the queryable order columns.

    Unset fields do not constrain the query.
    """
    statuses: tuple[OrderStatus, ...] = ()
    customer_id: str | None = None
    shipping_address_id: str | None = None
    is_current: bool | None = None
    year: int | None = None
    quotation_status_not_in: tuple[QuotationStatus, ...] = ()
    valid_until_before: datetime | None = None
    exclude_order_id: str | None = None


class OrderStore(Protocol):
    """What the lifecycle service needs from persistence."""

    def find_by_id(self, order_id: str) -> Order | None: ...

    def save(self, order: Order, actor_id: str) -> Order: ...

    def find(self, order_filter: OrderFilter) -> list[Order]: ...

    def find_max_sequence_value(self, scope: OrderFilter, sequence_field: str) -> int: ...

    def update_many(
        self,
        order_filter: OrderFilter,
        patch: Callable[[Order], Order],
        actor_id: str,
    ) -> int: ...

    def next_sequence_value(self, scope: str, sequence_type: str, year: int) -> int: ...


_SEQUENCE_FIELDS = {
    "order_number": OrderDocumentModel.order_number,
    "cart_number": OrderDocumentModel.cart_number,
}


class SqlOrderStore:
    """
    ``OrderStore`` over SQLAlchemy, bound to one tenant.

    Contract:
        Every query is restricted to ``tenant_id``.  ``save`` returns the
        order carrying its new version; callers must use the returned value
        for any further save in the same operation.
    """

    def __init__(self, session: Session, tenant_id: str):
        self._session = session
        self._tenant_id = tenant_id
        self._sequences = SequenceService(session)

    # =========================================================================
    # Reads
    # =========================================================================

    def _load_row(self, order_id: str) -> OrderDocumentModel | None:
        return self._session.execute(
            select(OrderDocumentModel)
            .where(OrderDocumentModel.tenant_id == self._tenant_id)
            .where(OrderDocumentModel.order_id == order_id)
            .execution_options(populate_existing=True)
        ).scalar_one_or_none()

    def find_by_id(self, order_id: str) -> Order | None:
        row = self._load_row(order_id)
        return row.to_dto() if row is not None else None

    def _select(self, order_filter: OrderFilter):
        stmt = select(OrderDocumentModel).where(
            OrderDocumentModel.tenant_id == self._tenant_id
        )
        if order_filter.statuses:
            stmt = stmt.where(
                OrderDocumentModel.status.in_([s.value for s in order_filter.statuses])
            )
        if order_filter.customer_id is not None:
            stmt = stmt.where(OrderDocumentModel.customer_id == order_filter.customer_id)
        if order_filter.shipping_address_id is not None:
            stmt = stmt.where(
                OrderDocumentModel.shipping_address_id == order_filter.shipping_address_id
            )
        if order_filter.is_current is not None:
            stmt = stmt.where(OrderDocumentModel.is_current == order_filter.is_current)
        if order_filter.year is not None:
            stmt = stmt.where(OrderDocumentModel.year == order_filter.year)
        if order_filter.quotation_status_not_in:
            stmt = stmt.where(
                OrderDocumentModel.quotation_status.not_in(
                    [s.value for s in order_filter.quotation_status_not_in]
                )
            )
        if order_filter.valid_until_before is not None:
            stmt = stmt.where(
                OrderDocumentModel.valid_until < order_filter.valid_until_before
            )
        if order_filter.exclude_order_id is not None:
            stmt = stmt.where(OrderDocumentModel.order_id != order_filter.exclude_order_id)
        return stmt

    def find(self, order_filter: OrderFilter) -> list[Order]:
        rows = self._session.execute(
            self._select(order_filter)
            .order_by(OrderDocumentModel.order_id)
            .execution_options(populate_existing=True)
        ).scalars().all()
        return [row.to_dto() for row in rows]

    def find_max_sequence_value(self, scope: OrderFilter, sequence_field: str) -> int:
        """Highest ``order_number`` or ``cart_number`` in scope, 0 if none.

        Read-only reporting query; numbers are allocated with
        ``next_sequence_value``.
        """
        column = _SEQUENCE_FIELDS.get(sequence_field)
        if column is None:
            raise ValueError(f"Unknown sequence field: {sequence_field}")
        subquery = self._select(scope).subquery()
        value = self._session.execute(
            select(func.max(subquery.c[sequence_field]))
        ).scalar_one()
        return int(value or 0)

    # =========================================================================
    # Writes
    # =========================================================================

    def save(self, order: Order, actor_id: str) -> Order:
        """Insert or update one aggregate.

        ``order.version == 0`` means the order was never stored.

        Returns:
            The order with its new stored version.
        """
        try:
            if order.version == 0:
                row = OrderDocumentModel.from_dto(order, created_by=actor_id)
                self._session.add(row)
            else:
                row = self._load_row(order.order_id)
                if row is None or row.version != order.version:
                    raise OptimisticLockError("order", order.order_id)
                row.apply_dto(order, actor_id)
            self._session.flush()
        except StaleDataError as exc:
            raise OptimisticLockError("order", order.order_id) from exc
        except IntegrityError as exc:
            raise DuplicateDocumentNumberError("order document", order.order_id) from exc

        logger.debug(
            "order_saved",
            extra={
                "order_id": order.order_id,
                "status": order.status.value,
                "version": row.version,
            },
        )
        return replace(order, version=row.version)

    def update_many(
        self,
        order_filter: OrderFilter,
        patch: Callable[[Order], Order],
        actor_id: str,
    ) -> int:
        """Apply ``patch`` to every matching order; returns how many changed."""
        modified = 0
        for order in self.find(order_filter):
            patched = patch(order)
            if patched != order:
                self.save(patched, actor_id)
                modified += 1
        logger.debug(
            "orders_bulk_updated",
            extra={"modified_count": modified},
        )
        return modified

    def next_sequence_value(self, scope: str, sequence_type: str, year: int) -> int:
        """Allocate the next document number for ``(scope, type, year)``."""
        return self._sequences.next_scoped_value(scope, sequence_type, year)
