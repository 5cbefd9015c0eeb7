"""
Order Lifecycle Service - Orchestrates order and quotation operations.

Thin glue layer that:
1. Loads the order aggregate through the OrderStore
2. Checks the transition policy engine before any status change
3. Mutates an in-memory copy and recomputes totals with the totals engine
4. Appends one history entry and saves the aggregate once

All computation lives in engines. All persistence lives in the store.
This service owns the transaction boundary: it commits on success and
rolls back on failure.  The one exception is the quotation expiry check:
when an operation finds its quotation past ``valid_until``, the expired
state is saved and committed before the ``expired`` result is returned.

Every operation returns a ``LifecycleResult``; typed kernel exceptions are
raised internally and translated at this boundary only.  Unexpected
exceptions roll back and propagate.

Usage:
    service = OrderLifecycleService(session, tenant_id="acme", clock=clock)
    result = service.confirm_order(order_id, actor=Actor("u-1", UserRole.SALES))
    if result.is_success:
        print(result.order.order_number)
"""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from enum import Enum
from typing import Any
from uuid import uuid4

from sqlalchemy.orm import Session

from commerce_engines.payments import reconcile_payments
from commerce_engines.totals import recalculate
from commerce_engines.transition_policy import (
    DELIVERY_EDITABLE_STATUSES,
    TransitionDenial,
    can_edit_payments,
    can_modify_order,
    can_transition_quotation,
    evaluate_transition,
    is_quotation_expired,
    is_terminal_quotation_status,
    is_terminal_status,
)
from commerce_kernel.domain.clock import Clock, SystemClock
from commerce_kernel.domain.money import ZERO
from commerce_kernel.exceptions import (
    CommerceKernelError,
    InvalidQuantityError,
    InvalidStateError,
    InvalidTransitionError,
    LineItemNotFoundError,
    OrderNotFoundError,
    QuotationExpiredError,
    RecordNotFoundError,
    RoleDeniedError,
)
from commerce_kernel.logging_config import LogContext, get_logger
from commerce_kernel.services.sequence_service import SequenceService
from commerce_modules.orders.config import OrdersConfig
from commerce_modules.orders.models import (
    Actor,
    ActorType,
    AdjustmentType,
    CartDiscount,
    CartDiscountInput,
    Delivery,
    DeliveryInput,
    DiscountType,
    DuplicateOptions,
    HistoryEntry,
    LineAdjustment,
    LineAdjustmentInput,
    LineItem,
    NewLineItem,
    Order,
    OrderStatus,
    Payment,
    PaymentInput,
    PaymentRecord,
    PaymentStatus,
    PaymentUpdate,
    QuantityChange,
    Quotation,
    QuotationRevision,
    QuotationStatus,
    RevisionChanges,
    UserRole,
)
from commerce_modules.orders.store import OrderFilter, OrderStore, SqlOrderStore

logger = get_logger("modules.orders.service")

SYSTEM_ACTOR_ID = "system"


class LifecycleStatus(str, Enum):
    """Outcome of a lifecycle operation."""

    OK = "ok"
    NOT_FOUND = "not_found"
    INVALID_TRANSITION = "invalid_transition"
    INVALID_STATE = "invalid_state"
    EXPIRED = "expired"
    ROLE_DENIED = "role_denied"
    CONFLICT = "conflict"


_STATUS_BY_CODE: dict[str, LifecycleStatus] = {
    "NOT_FOUND": LifecycleStatus.NOT_FOUND,
    "INVALID_TRANSITION": LifecycleStatus.INVALID_TRANSITION,
    "INVALID_STATE": LifecycleStatus.INVALID_STATE,
    "EXPIRED": LifecycleStatus.EXPIRED,
    "ROLE_DENIED": LifecycleStatus.ROLE_DENIED,
    "CONFLICT": LifecycleStatus.CONFLICT,
}


@dataclass(frozen=True)
class LifecycleResult:
    """Result of a lifecycle operation.

    ``order`` is the saved aggregate on success.  ``error`` is the failure
    kind callers map to a response status; ``message`` describes it.
    """

    status: LifecycleStatus
    order: Order | None = None
    message: str | None = None

    @property
    def is_success(self) -> bool:
        return self.status == LifecycleStatus.OK

    @property
    def error(self) -> str | None:
        return None if self.is_success else self.status.value

    @classmethod
    def success(cls, order: Order) -> LifecycleResult:
        return cls(status=LifecycleStatus.OK, order=order)

    @classmethod
    def from_error(cls, exc: CommerceKernelError) -> LifecycleResult:
        return cls(
            status=_STATUS_BY_CODE.get(exc.code, LifecycleStatus.INVALID_STATE),
            message=str(exc),
        )


def _new_id() -> str:
    return uuid4().hex


def _short_id() -> str:
    return uuid4().hex[:8]


def _actor_type_for(actor: Actor) -> ActorType:
    role = getattr(actor.role, "value", actor.role)
    return ActorType.CUSTOMER if role == UserRole.CUSTOMER.value else ActorType.SALES


def _role_value(actor: Actor) -> str:
    return getattr(actor.role, "value", actor.role)


class OrderLifecycleService:
    """
    Orchestrates the order and quotation lifecycle through engines and store.

    Engine composition:
    - transition_policy: every status change and editability check
    - totals: full recomputation after every pricing mutation
    - payments: payment figures from the complete payment list

    Transaction boundary: this service commits on success, rolls back on
    failure.  The store only flushes.
    """

    def __init__(
        self,
        session: Session,
        tenant_id: str,
        clock: Clock | None = None,
        config: OrdersConfig | None = None,
        store: OrderStore | None = None,
    ):
        self._session = session
        self._tenant_id = tenant_id
        self._clock = clock or SystemClock()
        self._config = config or OrdersConfig.with_defaults()
        self._store = store or SqlOrderStore(session, tenant_id)

    # =========================================================================
    # Transaction shell
    # =========================================================================

    def _execute(
        self,
        event: str,
        actor: Actor | None,
        order_id: str | None,
        operation: Callable[[datetime], Order],
    ) -> LifecycleResult:
        actor_id = actor.user_id if actor else None
        with LogContext.bind(
            tenant_id=self._tenant_id, actor_id=actor_id, order_id=order_id
        ):
            try:
                order = operation(self._clock.now())
                self._session.commit()
            except QuotationExpiredError as exc:
                # The expired state was saved before raising; keep it.
                self._session.commit()
                logger.warning(
                    "order_operation_rejected",
                    extra={"operation": event, "code": exc.code, "reason": str(exc)},
                )
                return LifecycleResult.from_error(exc)
            except CommerceKernelError as exc:
                self._session.rollback()
                logger.warning(
                    "order_operation_rejected",
                    extra={"operation": event, "code": exc.code, "reason": str(exc)},
                )
                return LifecycleResult.from_error(exc)
            except Exception:
                self._session.rollback()
                raise

            logger.info(
                event,
                extra={
                    "order_id": order.order_id,
                    "status": order.status.value,
                    "order_total": str(order.order_total),
                    "version": order.version,
                },
            )
            return LifecycleResult.success(order)

    # =========================================================================
    # Shared helpers
    # =========================================================================

    def _load(self, order_id: str) -> Order:
        order = self._store.find_by_id(order_id)
        if order is None:
            raise OrderNotFoundError(order_id)
        return order

    def _save(self, order: Order, actor_id: str) -> Order:
        return self._store.save(order, actor_id)

    @staticmethod
    def _record(
        order: Order,
        actor: Actor | None,
        now: datetime,
        action: str,
        details: dict[str, Any] | None = None,
    ) -> Order:
        """Stamp ``updated_at`` and append one history entry."""
        entry = HistoryEntry(
            action=action,
            performed_by=actor.user_id if actor else SYSTEM_ACTOR_ID,
            performed_by_name=actor.name if actor else None,
            performed_at=now,
            details=details,
        )
        return replace(order, updated_at=now, history=order.history + (entry,))

    @staticmethod
    def _recalculate(order: Order) -> Order:
        totals = recalculate(
            items=order.items,
            cart_discounts=order.cart_discounts,
            line_adjustments=order.line_adjustments,
            shipping_cost=order.shipping_cost,
        )
        return replace(
            order,
            items=totals.items,
            subtotal_gross=totals.subtotal_gross,
            subtotal_net=totals.subtotal_net,
            total_discount=totals.total_discount,
            total_vat=totals.total_vat,
            order_total=totals.order_total,
        )

    def _authorize(
        self, order: Order, to_status: OrderStatus, actor: Actor
    ) -> None:
        """Raise the typed denial when the policy refuses a status change."""
        quotation_status = order.quotation.quotation_status if order.quotation else None
        decision = evaluate_transition(
            order.status, to_status, actor.role, quotation_status
        )
        if decision.allowed:
            return
        if decision.denial == TransitionDenial.ROLE_NOT_ALLOWED:
            raise RoleDeniedError(
                order.order_id, order.status.value, to_status.value, _role_value(actor)
            )
        if decision.denial == TransitionDenial.GUARD_FAILED:
            raise InvalidStateError(order.order_id, decision.reason)
        raise InvalidTransitionError(order.order_id, order.status.value, to_status.value)

    @staticmethod
    def _require_modifiable(order: Order) -> None:
        if not can_modify_order(order.status):
            raise InvalidStateError(order.order_id, "Cannot modify order in current status")

    @staticmethod
    def _require_quotation(order: Order) -> Quotation:
        if order.status != OrderStatus.QUOTATION or order.quotation is None:
            raise InvalidStateError(order.order_id, "Order is not a quotation")
        return order.quotation

    @staticmethod
    def _expire(order: Order, now: datetime, actor: Actor | None) -> Order:
        quotation = replace(
            order.quotation,
            quotation_status=QuotationStatus.EXPIRED,
            expired_at=now,
        )
        expired = replace(order, quotation=quotation)
        return OrderLifecycleService._record(
            expired,
            actor,
            now,
            "quotation_expired",
            {"valid_until": order.quotation.valid_until.isoformat()},
        )

    def _ensure_not_expired(self, order: Order, actor: Actor | None, now: datetime) -> None:
        """Fail with EXPIRED when the quotation is past validity.

        An open quotation found past ``valid_until`` is first saved as
        expired so the stored state matches reality.
        """
        quotation = order.quotation
        if quotation is None:
            return
        if quotation.quotation_status == QuotationStatus.EXPIRED:
            raise QuotationExpiredError(
                order.order_id, quotation.quotation_number, quotation.valid_until.isoformat()
            )
        if is_quotation_expired(quotation, now):
            actor_id = actor.user_id if actor else SYSTEM_ACTOR_ID
            self._save(self._expire(order, now, actor), actor_id)
            raise QuotationExpiredError(
                order.order_id, quotation.quotation_number, quotation.valid_until.isoformat()
            )

    @staticmethod
    def _validate_quantity(
        order_id: str,
        quantity: int,
        min_order_quantity: int | None,
        pack_size: int | None,
    ) -> None:
        if quantity <= 0:
            raise InvalidQuantityError(order_id, quantity, "Quantity must be greater than 0")
        if min_order_quantity and quantity < min_order_quantity:
            raise InvalidQuantityError(
                order_id, quantity, f"Minimum order quantity is {min_order_quantity}"
            )
        if pack_size and quantity % pack_size != 0:
            raise InvalidQuantityError(
                order_id, quantity, f"Quantity must be a multiple of {pack_size}"
            )

    def _build_line(
        self, order_id: str, new_line: NewLineItem, line_number: int, now: datetime
    ) -> LineItem:
        if not new_line.sku:
            raise InvalidStateError(order_id, "Line item requires a sku")
        if new_line.unit_price < ZERO or new_line.vat_rate < ZERO:
            raise InvalidStateError(order_id, "Prices and VAT rates cannot be negative")
        if new_line.list_price is not None and new_line.list_price < ZERO:
            raise InvalidStateError(order_id, "Prices and VAT rates cannot be negative")
        self._validate_quantity(
            order_id, new_line.quantity, new_line.min_order_quantity, new_line.pack_size
        )
        return LineItem(
            line_number=line_number,
            sku=new_line.sku,
            quantity=new_line.quantity,
            unit_price=new_line.unit_price,
            vat_rate=new_line.vat_rate,
            entity_code=new_line.entity_code,
            name=new_line.name,
            list_price=new_line.list_price,
            discount_percent=new_line.discount_percent,
            min_order_quantity=new_line.min_order_quantity,
            pack_size=new_line.pack_size,
            added_at=now,
        )

    def _append_lines(
        self, order: Order, new_lines: Iterable[NewLineItem], now: datetime
    ) -> tuple[Order, tuple[int, ...]]:
        added: list[int] = []
        for new_line in new_lines:
            line_number = order.next_line_number(self._config.line_number_step)
            line = self._build_line(order.order_id, new_line, line_number, now)
            order = replace(order, items=order.items + (line,))
            added.append(line_number)
        return order, tuple(added)

    def _change_quantity(self, order: Order, line_number: int, quantity: int) -> tuple[Order, int]:
        item = order.find_item(line_number)
        if item is None:
            raise LineItemNotFoundError(order.order_id, line_number)
        self._validate_quantity(
            order.order_id, quantity, item.min_order_quantity, item.pack_size
        )
        items = tuple(
            replace(i, quantity=quantity) if i.line_number == line_number else i
            for i in order.items
        )
        return replace(order, items=items), item.quantity

    @staticmethod
    def _drop_line(order: Order, line_number: int) -> Order:
        if order.find_item(line_number) is None:
            raise LineItemNotFoundError(order.order_id, line_number)
        return replace(
            order,
            items=tuple(i for i in order.items if i.line_number != line_number),
            line_adjustments=tuple(
                a for a in order.line_adjustments if a.line_number != line_number
            ),
        )

    @staticmethod
    def _build_cart_discount(
        order: Order,
        discount: CartDiscountInput,
        actor: Actor,
        now: datetime,
        revision: int | None = None,
    ) -> CartDiscount:
        if discount.type == DiscountType.PERCENTAGE and abs(discount.value) > 100:
            raise InvalidStateError(order.order_id, "Percentage discount cannot exceed 100")
        return CartDiscount(
            discount_id=_short_id(),
            type=discount.type,
            value=discount.value,
            reason=discount.reason,
            applied_by=actor.user_id,
            applied_at=now,
            description=discount.description,
            revision=revision,
        )

    @staticmethod
    def _build_line_adjustment(
        order: Order,
        adjustment: LineAdjustmentInput,
        actor: Actor,
        now: datetime,
        revision: int | None = None,
    ) -> LineAdjustment:
        item = order.find_item(adjustment.line_number)
        if item is None:
            raise LineItemNotFoundError(order.order_id, adjustment.line_number)
        if adjustment.type == AdjustmentType.PRICE_OVERRIDE and adjustment.new_value < ZERO:
            raise InvalidStateError(order.order_id, "Price override cannot be negative")
        if adjustment.type == AdjustmentType.DISCOUNT_PERCENTAGE and abs(adjustment.new_value) > 100:
            raise InvalidStateError(order.order_id, "Percentage discount cannot exceed 100")
        return LineAdjustment(
            adjustment_id=_short_id(),
            line_number=adjustment.line_number,
            type=adjustment.type,
            original_value=item.unit_price,
            new_value=adjustment.new_value,
            reason=adjustment.reason,
            applied_by=actor.user_id,
            applied_at=now,
            description=adjustment.description,
            revision=revision,
        )

    @staticmethod
    def _reconciled(payment: Payment, records: tuple[PaymentRecord, ...], now: datetime) -> Payment:
        summary = reconcile_payments(amount_due=payment.amount_due, payments=records)
        if summary.payment_status == PaymentStatus.PAID:
            payment_date = payment.payment_date or now
        else:
            payment_date = None
        return replace(
            payment,
            payments=records,
            amount_paid=summary.amount_paid,
            amount_remaining=summary.amount_remaining,
            payment_status=summary.payment_status,
            payment_date=payment_date,
        )

    def _clear_current_drafts(
        self,
        customer_id: str,
        shipping_address_id: str | None,
        actor_id: str,
        keep_order_id: str | None = None,
    ) -> int:
        """Unmark every other current draft of a (customer, address) pair."""

        def unmark(order: Order) -> Order:
            if order.shipping_address_id != shipping_address_id:
                return order
            return replace(order, is_current=False)

        return self._store.update_many(
            OrderFilter(
                statuses=(OrderStatus.DRAFT,),
                customer_id=customer_id,
                shipping_address_id=shipping_address_id,
                is_current=True,
                exclude_order_id=keep_order_id,
            ),
            unmark,
            actor_id,
        )

    # =========================================================================
    # Status changes (shared by the specific operations and transition_status)
    # =========================================================================

    def _to_pending(self, order: Order, now: datetime) -> Order:
        return replace(
            order, status=OrderStatus.PENDING, submitted_at=now, is_current=False
        )

    def _to_quotation(
        self,
        order: Order,
        actor: Actor,
        now: datetime,
        days_valid: int | None = None,
        notes: str | None = None,
    ) -> Order:
        days = days_valid if days_valid is not None else self._config.default_days_valid
        if days <= 0:
            raise InvalidStateError(order.order_id, "days_valid must be positive")

        sequence = self._store.next_sequence_value(
            self._tenant_id, SequenceService.QUOTATION, now.year
        )
        order = self._recalculate(order)
        actor_type = _actor_type_for(actor)
        initial = QuotationRevision(
            revision_number=0,
            created_at=now,
            created_by=actor.user_id,
            created_by_name=actor.name,
            actor_type=actor_type,
            subtotal_net=order.subtotal_net,
            total_discount=order.total_discount,
            order_total=order.order_total,
            items_added=tuple(i.line_number for i in order.items),
            notes=notes,
        )
        quotation = Quotation(
            quotation_number=self._config.format_quotation_number(now.year, sequence),
            quotation_status=QuotationStatus.DRAFT,
            valid_until=now + timedelta(days=days),
            days_valid=days,
            current_revision=0,
            revisions=(initial,),
            total_rounds=0,
            last_actor=actor_type,
            last_activity_at=now,
        )
        return replace(
            order, status=OrderStatus.QUOTATION, quotation=quotation, is_current=False
        )

    def _to_confirmed(self, order: Order, now: datetime) -> Order:
        order_number = order.order_number
        if order_number is None:
            order_number = self._store.next_sequence_value(
                self._tenant_id, SequenceService.ORDER, order.year
            )
        payment = order.payment
        if payment is None:
            payment = self._reconciled(
                Payment(payment_status=PaymentStatus.AWAITING, amount_due=order.order_total),
                (),
                now,
            )
        return replace(
            order,
            status=OrderStatus.CONFIRMED,
            order_number=order_number,
            payment=payment,
            confirmed_at=now,
            is_current=False,
        )

    @staticmethod
    def _to_shipped(order: Order, now: datetime, delivery: DeliveryInput | None) -> Order:
        current = order.delivery or Delivery()
        current = replace(current, shipped_at=now)
        if delivery is not None:
            current = replace(
                current,
                carrier=delivery.carrier,
                tracking_number=delivery.tracking_number,
                tracking_url=delivery.tracking_url,
                estimated_delivery=delivery.estimated_delivery,
                delivery_notes=delivery.delivery_notes,
            )
        return replace(order, status=OrderStatus.SHIPPED, shipped_at=now, delivery=current)

    @staticmethod
    def _to_delivered(order: Order, now: datetime) -> Order:
        delivery = replace(order.delivery, delivered_at=now) if order.delivery else None
        return replace(
            order, status=OrderStatus.DELIVERED, delivered_at=now, delivery=delivery
        )

    @staticmethod
    def _to_cancelled(order: Order, actor: Actor, now: datetime, reason: str | None) -> Order:
        return replace(
            order,
            status=OrderStatus.CANCELLED,
            cancelled_at=now,
            cancelled_by=actor.user_id,
            cancellation_reason=reason,
            is_current=False,
        )

    # =========================================================================
    # Cart
    # =========================================================================

    def create_draft_order(
        self,
        actor: Actor,
        customer_id: str,
        shipping_address_id: str | None = None,
        currency: str | None = None,
        shipping_cost: Decimal = ZERO,
        notes: str | None = None,
        items: Iterable[NewLineItem] = (),
    ) -> LifecycleResult:
        """Open a new empty (or pre-filled) cart as the current draft of its pair."""

        def operation(now: datetime) -> Order:
            order_id = _new_id()
            if shipping_cost < ZERO:
                raise InvalidStateError(order_id, "shipping_cost cannot be negative")
            cart_number = self._store.next_sequence_value(
                self._tenant_id, SequenceService.CART, now.year
            )
            self._clear_current_drafts(customer_id, shipping_address_id, actor.user_id)

            order = Order(
                order_id=order_id,
                tenant_id=self._tenant_id,
                year=now.year,
                status=OrderStatus.DRAFT,
                customer_id=customer_id,
                shipping_address_id=shipping_address_id,
                is_current=True,
                currency=currency or self._config.default_currency,
                cart_number=cart_number,
                shipping_cost=shipping_cost,
                notes=notes,
                created_at=now,
            )
            order, added = self._append_lines(order, items, now)
            order = self._recalculate(order)
            order = self._record(
                order, actor, now, "created", {"cart_number": cart_number, "items_added": list(added)}
            )
            return self._save(order, actor.user_id)

        return self._execute("order_created", actor, None, operation)

    def add_item(self, order_id: str, actor: Actor, item: NewLineItem) -> LifecycleResult:
        def operation(now: datetime) -> Order:
            order = self._load(order_id)
            self._require_modifiable(order)
            self._ensure_not_expired(order, actor, now)
            order, added = self._append_lines(order, (item,), now)
            order = self._recalculate(order)
            order = self._record(
                order, actor, now, "item_added",
                {"line_number": added[0], "sku": item.sku, "quantity": item.quantity},
            )
            return self._save(order, actor.user_id)

        return self._execute("order_item_added", actor, order_id, operation)

    def update_item_quantity(
        self, order_id: str, actor: Actor, line_number: int, quantity: int
    ) -> LifecycleResult:
        def operation(now: datetime) -> Order:
            order = self._load(order_id)
            self._require_modifiable(order)
            self._ensure_not_expired(order, actor, now)
            order, old_qty = self._change_quantity(order, line_number, quantity)
            order = self._recalculate(order)
            order = self._record(
                order, actor, now, "item_quantity_changed",
                {"line_number": line_number, "old_qty": old_qty, "new_qty": quantity},
            )
            return self._save(order, actor.user_id)

        return self._execute("order_item_updated", actor, order_id, operation)

    def remove_item(self, order_id: str, actor: Actor, line_number: int) -> LifecycleResult:
        def operation(now: datetime) -> Order:
            order = self._load(order_id)
            self._require_modifiable(order)
            self._ensure_not_expired(order, actor, now)
            order = self._recalculate(self._drop_line(order, line_number))
            order = self._record(order, actor, now, "item_removed", {"line_number": line_number})
            return self._save(order, actor.user_id)

        return self._execute("order_item_removed", actor, order_id, operation)

    # =========================================================================
    # Status transitions
    # =========================================================================

    def transition_status(
        self, order_id: str, to_status: OrderStatus, actor: Actor
    ) -> LifecycleResult:
        """Generic policy-checked status change.

        Only the transition policy is enforced; the cart checks of
        ``submit_order`` and ``convert_to_quotation`` do not apply, so an
        empty draft may move to pending or quotation.  Stamps the lifecycle
        timestamp of the target status.  Targets that carry extra state
        (quotation data, order number and payment) are built the same way
        as by the dedicated operations.
        """

        def operation(now: datetime) -> Order:
            order = self._load(order_id)
            from_status = order.status
            try:
                target = OrderStatus(to_status)
            except ValueError as exc:
                raise InvalidTransitionError(
                    order_id, from_status.value, str(to_status)
                ) from exc
            self._authorize(order, target, actor)

            if target == OrderStatus.PENDING:
                order = self._to_pending(order, now)
            elif target == OrderStatus.QUOTATION:
                order = self._to_quotation(order, actor, now)
            elif target == OrderStatus.CONFIRMED:
                order = self._to_confirmed(order, now)
            elif target == OrderStatus.SHIPPED:
                order = self._to_shipped(order, now, None)
            elif target == OrderStatus.DELIVERED:
                order = self._to_delivered(order, now)
            else:
                order = self._to_cancelled(order, actor, now, None)

            order = self._record(
                order, actor, now, "status_changed",
                {"from": from_status.value, "to": target.value},
            )
            return self._save(order, actor.user_id)

        return self._execute("order_status_changed", actor, order_id, operation)

    def submit_order(self, order_id: str, actor: Actor) -> LifecycleResult:
        def operation(now: datetime) -> Order:
            order = self._load(order_id)
            if order.status != OrderStatus.DRAFT:
                raise InvalidStateError(order_id, "Order must be in draft status to submit")
            self._authorize(order, OrderStatus.PENDING, actor)
            if order.is_empty:
                raise InvalidStateError(order_id, "Cannot submit empty order")
            order = self._to_pending(self._recalculate(order), now)
            order = self._record(order, actor, now, "submitted")
            return self._save(order, actor.user_id)

        return self._execute("order_submitted", actor, order_id, operation)

    def confirm_order(self, order_id: str, actor: Actor) -> LifecycleResult:
        def operation(now: datetime) -> Order:
            order = self._load(order_id)
            if order.status not in (OrderStatus.PENDING, OrderStatus.QUOTATION):
                raise InvalidStateError(
                    order_id, "Order must be pending or have accepted quotation to confirm"
                )
            self._authorize(order, OrderStatus.CONFIRMED, actor)
            order = self._to_confirmed(order, now)
            order = self._record(
                order, actor, now, "confirmed", {"order_number": order.order_number}
            )
            return self._save(order, actor.user_id)

        return self._execute("order_confirmed", actor, order_id, operation)

    def ship_order(
        self,
        order_id: str,
        actor: Actor,
        delivery: DeliveryInput | None = None,
    ) -> LifecycleResult:
        def operation(now: datetime) -> Order:
            order = self._load(order_id)
            self._authorize(order, OrderStatus.SHIPPED, actor)
            order = self._to_shipped(order, now, delivery)
            details = None
            if delivery is not None:
                details = {
                    "carrier": delivery.carrier,
                    "tracking_number": delivery.tracking_number,
                }
            order = self._record(order, actor, now, "shipped", details)
            return self._save(order, actor.user_id)

        return self._execute("order_shipped", actor, order_id, operation)

    def deliver_order(self, order_id: str, actor: Actor) -> LifecycleResult:
        def operation(now: datetime) -> Order:
            order = self._load(order_id)
            self._authorize(order, OrderStatus.DELIVERED, actor)
            order = self._record(self._to_delivered(order, now), actor, now, "delivered")
            return self._save(order, actor.user_id)

        return self._execute("order_delivered", actor, order_id, operation)

    def cancel_order(
        self, order_id: str, actor: Actor, reason: str | None = None
    ) -> LifecycleResult:
        def operation(now: datetime) -> Order:
            order = self._load(order_id)
            if is_terminal_status(order.status):
                raise InvalidStateError(order_id, "Cannot cancel order in terminal status")
            self._authorize(order, OrderStatus.CANCELLED, actor)
            order = self._to_cancelled(order, actor, now, reason)
            order = self._record(
                order, actor, now, "cancelled",
                {"reason": reason} if reason else None,
            )
            return self._save(order, actor.user_id)

        return self._execute("order_cancelled", actor, order_id, operation)

    # =========================================================================
    # Quotation negotiation
    # =========================================================================

    def convert_to_quotation(
        self,
        order_id: str,
        actor: Actor,
        days_valid: int | None = None,
        notes: str | None = None,
    ) -> LifecycleResult:
        def operation(now: datetime) -> Order:
            order = self._load(order_id)
            if order.status != OrderStatus.DRAFT:
                raise InvalidStateError(
                    order_id, "Only draft orders can be converted to quotations"
                )
            self._authorize(order, OrderStatus.QUOTATION, actor)
            if order.is_empty:
                raise InvalidStateError(
                    order_id, "Cannot create quotation from empty cart"
                )
            order = self._to_quotation(order, actor, now, days_valid, notes)
            order = self._record(
                order, actor, now, "quotation_created",
                {
                    "quotation_number": order.quotation.quotation_number,
                    "valid_until": order.quotation.valid_until.isoformat(),
                },
            )
            return self._save(order, actor.user_id)

        return self._execute("quotation_created", actor, order_id, operation)

    def send_quotation(
        self, order_id: str, actor: Actor, message: str | None = None
    ) -> LifecycleResult:
        def operation(now: datetime) -> Order:
            order = self._load(order_id)
            quotation = self._require_quotation(order)
            self._ensure_not_expired(order, actor, now)
            if not can_transition_quotation(quotation.quotation_status, QuotationStatus.SENT):
                raise InvalidStateError(
                    order_id,
                    f"Cannot send quotation in status {quotation.quotation_status.value}",
                )
            quotation = replace(
                quotation,
                quotation_status=QuotationStatus.SENT,
                sent_at=now,
                last_actor=ActorType.SALES,
                last_activity_at=now,
            )
            order = replace(order, quotation=quotation)
            order = self._record(
                order, actor, now, "quotation_sent",
                {"message": message} if message else None,
            )
            return self._save(order, actor.user_id)

        return self._execute("quotation_sent", actor, order_id, operation)

    def create_revision(
        self,
        order_id: str,
        actor: Actor,
        actor_type: ActorType,
        changes: RevisionChanges,
    ) -> LifecycleResult:
        """Record one negotiation round.

        Item edits are applied first, then the new discounts and adjustments
        (tagged with the new revision number).  Totals are recomputed and an
        immutable snapshot of the round is appended.
        """

        def operation(now: datetime) -> Order:
            order = self._load(order_id)
            quotation = self._require_quotation(order)
            self._ensure_not_expired(order, actor, now)
            if is_terminal_quotation_status(quotation.quotation_status):
                raise InvalidStateError(
                    order_id,
                    f"Cannot revise quotation in status {quotation.quotation_status.value}",
                )

            revision_number = quotation.current_revision + 1

            for line_number in changes.items_removed:
                order = self._drop_line(order, line_number)
            qty_changed: list[QuantityChange] = []
            for update in changes.qty_changes:
                order, old_qty = self._change_quantity(order, update.line_number, update.quantity)
                qty_changed.append(QuantityChange(update.line_number, old_qty, update.quantity))
            order, added = self._append_lines(order, changes.items_added, now)

            discounts = tuple(
                self._build_cart_discount(order, discount, actor, now, revision_number)
                for discount in changes.cart_discounts_added
            )
            adjustments = tuple(
                self._build_line_adjustment(order, adjustment, actor, now, revision_number)
                for adjustment in changes.line_adjustments_added
            )
            order = replace(
                order,
                cart_discounts=order.cart_discounts + discounts,
                line_adjustments=order.line_adjustments + adjustments,
            )
            order = self._recalculate(order)

            revision = QuotationRevision(
                revision_number=revision_number,
                created_at=now,
                created_by=actor.user_id,
                created_by_name=actor.name,
                actor_type=actor_type,
                subtotal_net=order.subtotal_net,
                total_discount=order.total_discount,
                order_total=order.order_total,
                cart_discounts_added=discounts,
                line_adjustments_added=adjustments,
                items_added=added,
                items_removed=tuple(changes.items_removed),
                items_qty_changed=tuple(qty_changed),
                notes=changes.notes,
                internal_notes=changes.internal_notes,
            )
            quotation = replace(
                quotation,
                revisions=quotation.revisions + (revision,),
                current_revision=revision_number,
                total_rounds=quotation.total_rounds + 1,
                last_actor=actor_type,
                last_activity_at=now,
                quotation_status=(
                    QuotationStatus.REVISED
                    if actor_type == ActorType.SALES
                    else QuotationStatus.COUNTER_OFFER
                ),
            )
            order = replace(order, quotation=quotation)
            order = self._record(
                order, actor, now, "quotation_revised",
                {
                    "revision_number": revision_number,
                    "actor_type": actor_type.value,
                    "order_total": str(order.order_total),
                },
            )
            return self._save(order, actor.user_id)

        return self._execute("quotation_revision_created", actor, order_id, operation)

    def accept_quotation(self, order_id: str, actor: Actor) -> LifecycleResult:
        def operation(now: datetime) -> Order:
            order = self._load(order_id)
            quotation = self._require_quotation(order)
            self._ensure_not_expired(order, actor, now)
            if is_terminal_quotation_status(quotation.quotation_status):
                raise InvalidStateError(
                    order_id,
                    f"Cannot accept quotation in status {quotation.quotation_status.value}",
                )
            quotation = replace(
                quotation,
                quotation_status=QuotationStatus.ACCEPTED,
                accepted_at=now,
                last_actor=ActorType.CUSTOMER,
                last_activity_at=now,
            )
            order = self._record(replace(order, quotation=quotation), actor, now, "quotation_accepted")
            return self._save(order, actor.user_id)

        return self._execute("quotation_accepted", actor, order_id, operation)

    def reject_quotation(
        self, order_id: str, actor: Actor, reason: str | None = None
    ) -> LifecycleResult:
        def operation(now: datetime) -> Order:
            order = self._load(order_id)
            quotation = self._require_quotation(order)
            self._ensure_not_expired(order, actor, now)
            if is_terminal_quotation_status(quotation.quotation_status):
                raise InvalidStateError(
                    order_id,
                    f"Cannot reject quotation in status {quotation.quotation_status.value}",
                )
            revisions = quotation.revisions
            if reason and revisions:
                revisions = revisions[:-1] + (
                    replace(revisions[-1], internal_notes=f"Rejected: {reason}"),
                )
            quotation = replace(
                quotation,
                quotation_status=QuotationStatus.REJECTED,
                rejected_at=now,
                last_actor=ActorType.CUSTOMER,
                last_activity_at=now,
                revisions=revisions,
            )
            order = self._record(
                replace(order, quotation=quotation), actor, now, "quotation_rejected",
                {"reason": reason} if reason else None,
            )
            return self._save(order, actor.user_id)

        return self._execute("quotation_rejected", actor, order_id, operation)

    # =========================================================================
    # Discounts & adjustments
    # =========================================================================

    def add_cart_discount(
        self, order_id: str, actor: Actor, discount: CartDiscountInput
    ) -> LifecycleResult:
        def operation(now: datetime) -> Order:
            order = self._load(order_id)
            self._require_modifiable(order)
            self._ensure_not_expired(order, actor, now)
            record = self._build_cart_discount(order, discount, actor, now)
            order = self._recalculate(
                replace(order, cart_discounts=order.cart_discounts + (record,))
            )
            order = self._record(
                order, actor, now, "cart_discount_added",
                {
                    "discount_id": record.discount_id,
                    "type": record.type.value,
                    "value": str(record.value),
                },
            )
            return self._save(order, actor.user_id)

        return self._execute("cart_discount_added", actor, order_id, operation)

    def remove_cart_discount(
        self, order_id: str, actor: Actor, discount_id: str
    ) -> LifecycleResult:
        def operation(now: datetime) -> Order:
            order = self._load(order_id)
            self._require_modifiable(order)
            self._ensure_not_expired(order, actor, now)
            remaining = tuple(d for d in order.cart_discounts if d.discount_id != discount_id)
            if len(remaining) == len(order.cart_discounts):
                raise RecordNotFoundError(order_id, "Discount", discount_id)
            order = self._recalculate(replace(order, cart_discounts=remaining))
            order = self._record(
                order, actor, now, "cart_discount_removed", {"discount_id": discount_id}
            )
            return self._save(order, actor.user_id)

        return self._execute("cart_discount_removed", actor, order_id, operation)

    def add_line_adjustment(
        self, order_id: str, actor: Actor, adjustment: LineAdjustmentInput
    ) -> LifecycleResult:
        def operation(now: datetime) -> Order:
            order = self._load(order_id)
            self._require_modifiable(order)
            self._ensure_not_expired(order, actor, now)
            record = self._build_line_adjustment(order, adjustment, actor, now)
            order = self._recalculate(
                replace(order, line_adjustments=order.line_adjustments + (record,))
            )
            order = self._record(
                order, actor, now, "line_adjustment_added",
                {
                    "adjustment_id": record.adjustment_id,
                    "line_number": record.line_number,
                    "type": record.type.value,
                    "new_value": str(record.new_value),
                },
            )
            return self._save(order, actor.user_id)

        return self._execute("line_adjustment_added", actor, order_id, operation)

    def remove_line_adjustment(
        self, order_id: str, actor: Actor, adjustment_id: str
    ) -> LifecycleResult:
        def operation(now: datetime) -> Order:
            order = self._load(order_id)
            self._require_modifiable(order)
            self._ensure_not_expired(order, actor, now)
            remaining = tuple(
                a for a in order.line_adjustments if a.adjustment_id != adjustment_id
            )
            if len(remaining) == len(order.line_adjustments):
                raise RecordNotFoundError(order_id, "Adjustment", adjustment_id)
            order = self._recalculate(replace(order, line_adjustments=remaining))
            order = self._record(
                order, actor, now, "line_adjustment_removed", {"adjustment_id": adjustment_id}
            )
            return self._save(order, actor.user_id)

        return self._execute("line_adjustment_removed", actor, order_id, operation)

    # =========================================================================
    # Payments
    # =========================================================================

    @staticmethod
    def _require_payments(order: Order) -> Payment:
        if not can_edit_payments(order.status):
            raise InvalidStateError(
                order.order_id,
                "Can only record payments for confirmed, shipped, or delivered orders",
            )
        if order.payment is None:
            raise RecordNotFoundError(order.order_id, "Payment data", order.order_id)
        return order.payment

    def record_payment(
        self, order_id: str, actor: Actor, payment: PaymentInput
    ) -> LifecycleResult:
        def operation(now: datetime) -> Order:
            order = self._load(order_id)
            current = self._require_payments(order)
            if payment.amount <= ZERO:
                raise InvalidStateError(order_id, "Payment amount must be positive")
            record = PaymentRecord(
                payment_id=_short_id(),
                amount=payment.amount,
                method=payment.method,
                reference=payment.reference,
                notes=payment.notes,
                recorded_at=payment.recorded_at or now,
                recorded_by=actor.user_id,
                confirmed=payment.confirmed,
            )
            updated = self._reconciled(current, current.payments + (record,), now)
            order = self._record(
                replace(order, payment=updated), actor, now, "payment_recorded",
                {
                    "payment_id": record.payment_id,
                    "amount": str(record.amount),
                    "method": record.method,
                    "payment_status": updated.payment_status.value,
                },
            )
            return self._save(order, actor.user_id)

        return self._execute("payment_recorded", actor, order_id, operation)

    def edit_payment(
        self, order_id: str, actor: Actor, payment_id: str, updates: PaymentUpdate
    ) -> LifecycleResult:
        def operation(now: datetime) -> Order:
            order = self._load(order_id)
            current = self._require_payments(order)
            existing = current.find_payment(payment_id)
            if existing is None:
                raise RecordNotFoundError(order_id, "Payment", payment_id)
            if updates.amount is not None and updates.amount <= ZERO:
                raise InvalidStateError(order_id, "Payment amount must be positive")

            changes = {
                name: value
                for name, value in (
                    ("amount", updates.amount),
                    ("method", updates.method),
                    ("reference", updates.reference),
                    ("notes", updates.notes),
                    ("recorded_at", updates.recorded_at),
                    ("confirmed", updates.confirmed),
                )
                if value is not None
            }
            edited = replace(existing, **changes)
            records = tuple(
                edited if p.payment_id == payment_id else p for p in current.payments
            )
            updated = self._reconciled(current, records, now)
            order = self._record(
                replace(order, payment=updated), actor, now, "payment_edited",
                {"payment_id": payment_id, "fields": sorted(changes)},
            )
            return self._save(order, actor.user_id)

        return self._execute("payment_edited", actor, order_id, operation)

    def delete_payment(self, order_id: str, actor: Actor, payment_id: str) -> LifecycleResult:
        def operation(now: datetime) -> Order:
            order = self._load(order_id)
            current = self._require_payments(order)
            if current.find_payment(payment_id) is None:
                raise RecordNotFoundError(order_id, "Payment", payment_id)
            records = tuple(p for p in current.payments if p.payment_id != payment_id)
            updated = self._reconciled(current, records, now)
            order = self._record(
                replace(order, payment=updated), actor, now, "payment_deleted",
                {"payment_id": payment_id},
            )
            return self._save(order, actor.user_id)

        return self._execute("payment_deleted", actor, order_id, operation)

    # =========================================================================
    # Delivery
    # =========================================================================

    def update_delivery(
        self, order_id: str, actor: Actor, delivery: DeliveryInput
    ) -> LifecycleResult:
        """Update carrier and tracking information; never changes status."""

        def operation(now: datetime) -> Order:
            order = self._load(order_id)
            if order.status.value not in DELIVERY_EDITABLE_STATUSES:
                raise InvalidStateError(
                    order_id,
                    "Delivery information can only be updated for confirmed, "
                    "shipped, or delivered orders",
                )
            current = order.delivery or Delivery()
            changes = {
                name: getattr(delivery, name)
                for name in (
                    "carrier",
                    "tracking_number",
                    "tracking_url",
                    "estimated_delivery",
                    "delivery_notes",
                )
                if getattr(delivery, name) is not None
            }
            order = self._record(
                replace(order, delivery=replace(current, **changes)),
                actor, now, "delivery_updated", {"fields": sorted(changes)},
            )
            return self._save(order, actor.user_id)

        return self._execute("order_delivery_updated", actor, order_id, operation)

    # =========================================================================
    # Duplication
    # =========================================================================

    def duplicate_order(
        self,
        order_id: str,
        actor: Actor,
        options: DuplicateOptions | None = None,
    ) -> LifecycleResult:
        """Copy an order into a new current draft, recording lineage both ways."""
        options = options or DuplicateOptions()
        reset_quantities = (
            options.reset_quantities
            if options.reset_quantities is not None
            else self._config.reset_quantities_on_duplicate
        )

        def operation(now: datetime) -> Order:
            source = self._load(order_id)
            new_id = _new_id()
            cart_number = self._store.next_sequence_value(
                self._tenant_id, SequenceService.CART, now.year
            )

            items = tuple(
                replace(item, quantity=1 if reset_quantities else item.quantity, added_at=now)
                for item in source.items
            )
            copy = Order(
                order_id=new_id,
                tenant_id=self._tenant_id,
                year=now.year,
                status=OrderStatus.DRAFT,
                customer_id=source.customer_id,
                shipping_address_id=source.shipping_address_id,
                is_current=True,
                currency=source.currency,
                cart_number=cart_number,
                items=items,
                cart_discounts=source.cart_discounts if options.include_discounts else (),
                line_adjustments=source.line_adjustments if options.include_discounts else (),
                shipping_cost=source.shipping_cost,
                notes=None if options.clear_notes else source.notes,
                created_at=now,
                duplicated_from=source.order_id,
                duplicated_at=now,
            )
            copy = self._recalculate(copy)
            copy = self._record(
                copy, actor, now, "duplicated_from",
                {"source_order_id": source.order_id, "reset_quantities": reset_quantities},
            )

            self._clear_current_drafts(
                source.customer_id, source.shipping_address_id, actor.user_id, keep_order_id=None
            )
            saved = self._save(copy, actor.user_id)

            # Re-read: the source may itself have been a current draft just unmarked.
            source = self._load(order_id)
            source = self._record(
                replace(source, duplications=source.duplications + (new_id,)),
                actor, now, "duplicated_to", {"order_id": new_id},
            )
            self._save(source, actor.user_id)
            return saved

        return self._execute("order_duplicated", actor, order_id, operation)

    # =========================================================================
    # Reads and scheduled work
    # =========================================================================

    def get_order(self, order_id: str, actor: Actor | None = None) -> LifecycleResult:
        """Load an order; an open quotation past validity is stored as expired first."""

        def operation(now: datetime) -> Order:
            order = self._load(order_id)
            if order.quotation is not None and is_quotation_expired(order.quotation, now):
                actor_id = actor.user_id if actor else SYSTEM_ACTOR_ID
                order = self._save(self._expire(order, now, actor), actor_id)
            return order

        return self._execute("order_loaded", actor, order_id, operation)

    def _expiry_filter(self, now: datetime) -> OrderFilter:
        return OrderFilter(
            statuses=(OrderStatus.QUOTATION,),
            quotation_status_not_in=(
                QuotationStatus.ACCEPTED,
                QuotationStatus.REJECTED,
                QuotationStatus.EXPIRED,
            ),
            valid_until_before=now,
        )

    def count_expired_quotations(self) -> int:
        """How many open quotations the next sweep would expire."""
        now = self._clock.now()
        return sum(
            1
            for order in self._store.find(self._expiry_filter(now))
            if is_quotation_expired(order.quotation, now)
        )

    def mark_expired_quotations(self, actor_id: str = SYSTEM_ACTOR_ID) -> int:
        """Expire every open quotation past ``valid_until``.

        Idempotent: a second run in the same instant changes nothing.

        Returns:
            Number of orders modified.
        """
        now = self._clock.now()

        def expire(order: Order) -> Order:
            if not is_quotation_expired(order.quotation, now):
                return order
            return self._expire(order, now, None)

        with LogContext.bind(tenant_id=self._tenant_id, actor_id=actor_id):
            try:
                count = self._store.update_many(self._expiry_filter(now), expire, actor_id)
                self._session.commit()
            except Exception:
                self._session.rollback()
                raise
            logger.info("quotations_expired", extra={"count": count})
        return count
