"""
Order Domain Models (``commerce_modules.orders.models``).

Responsibility
--------------
Frozen dataclass value objects for the order aggregate: the ``Order`` root,
its optional quotation, payment and delivery sub-records, the append-only
history, and the input records callers pass to ``OrderLifecycleService``.

Architecture position
---------------------
**Modules layer** -- pure data definitions with ZERO I/O.  Priced records
and status enums come from ``commerce_kernel.domain.orders`` and are
re-exported here so callers import one module.

Invariants enforced
-------------------
* All models are ``frozen=True``; nested collections are tuples.
* All monetary fields use ``Decimal`` -- NEVER ``float``.
* Sub-record presence follows the status: a ``quotation`` order carries a
  ``Quotation``; ``confirmed``, ``shipped`` and ``delivered`` orders carry
  a ``Payment``.

Failure modes
-------------
* Construction that breaks a presence rule raises ``ValueError``.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from typing import Any

from commerce_kernel.domain.money import ZERO
from commerce_kernel.domain.orders import (
    ActorType,
    AdjustmentType,
    CartDiscount,
    DiscountReason,
    DiscountType,
    LineAdjustment,
    LineItem,
    OrderStatus,
    PaymentRecord,
    PaymentStatus,
    QuotationStatus,
    UserRole,
)

__all__ = [
    "ActorType",
    "AdjustmentType",
    "CartDiscount",
    "DiscountReason",
    "DiscountType",
    "LineAdjustment",
    "LineItem",
    "OrderStatus",
    "PaymentRecord",
    "PaymentStatus",
    "QuotationStatus",
    "UserRole",
    "Actor",
    "QuantityChange",
    "QuotationRevision",
    "Quotation",
    "Payment",
    "Delivery",
    "HistoryEntry",
    "Order",
    "NewLineItem",
    "CartDiscountInput",
    "LineAdjustmentInput",
    "QuantityUpdate",
    "RevisionChanges",
    "PaymentInput",
    "PaymentUpdate",
    "DeliveryInput",
    "DuplicateOptions",
]


_PAYMENT_STATUSES = frozenset(
    {OrderStatus.CONFIRMED, OrderStatus.SHIPPED, OrderStatus.DELIVERED}
)


@dataclass(frozen=True)
class Actor:
    """The user performing an operation."""
    user_id: str
    role: UserRole
    name: str | None = None


# =============================================================================
# Quotation
# =============================================================================


@dataclass(frozen=True)
class QuantityChange:
    line_number: int
    old_qty: int
    new_qty: int


@dataclass(frozen=True)
class QuotationRevision:
    """
    Immutable snapshot of one negotiation round.

    Records the totals after the round and the delta applied in it.
    ``internal_notes`` of the latest revision is the only field ever
    written after creation (the rejection reason).
    """
    revision_number: int
    created_at: datetime
    created_by: str
    actor_type: ActorType
    subtotal_net: Decimal
    total_discount: Decimal
    order_total: Decimal
    cart_discounts_added: tuple[CartDiscount, ...] = ()
    line_adjustments_added: tuple[LineAdjustment, ...] = ()
    items_added: tuple[int, ...] = ()
    items_removed: tuple[int, ...] = ()
    items_qty_changed: tuple[QuantityChange, ...] = ()
    created_by_name: str | None = None
    notes: str | None = None
    internal_notes: str | None = None


@dataclass(frozen=True)
class Quotation:
    """Quotation sub-record, present once an order has become a quotation."""
    quotation_number: str
    quotation_status: QuotationStatus
    valid_until: datetime
    days_valid: int
    current_revision: int = 0
    revisions: tuple[QuotationRevision, ...] = ()
    total_rounds: int = 0
    last_actor: ActorType = ActorType.SALES
    last_activity_at: datetime | None = None
    sent_at: datetime | None = None
    accepted_at: datetime | None = None
    rejected_at: datetime | None = None
    expired_at: datetime | None = None

    @property
    def latest_revision(self) -> QuotationRevision | None:
        return self.revisions[-1] if self.revisions else None


# =============================================================================
# Payment / delivery
# =============================================================================


@dataclass(frozen=True)
class Payment:
    """Payment sub-record; figures are always derived from ``payments``."""
    payment_status: PaymentStatus
    amount_due: Decimal
    amount_paid: Decimal = ZERO
    amount_remaining: Decimal = ZERO
    payments: tuple[PaymentRecord, ...] = ()
    payment_date: datetime | None = None

    def find_payment(self, payment_id: str) -> PaymentRecord | None:
        for record in self.payments:
            if record.payment_id == payment_id:
                return record
        return None


@dataclass(frozen=True)
class Delivery:
    """Shipping information; informational only."""
    carrier: str | None = None
    tracking_number: str | None = None
    tracking_url: str | None = None
    estimated_delivery: datetime | None = None
    delivery_notes: str | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None


@dataclass(frozen=True)
class HistoryEntry:
    """One audit log entry; never edited or removed."""
    action: str
    performed_by: str
    performed_at: datetime
    performed_by_name: str | None = None
    details: dict[str, Any] | None = None


# =============================================================================
# Order aggregate
# =============================================================================


@dataclass(frozen=True)
class Order:
    """
    The order aggregate root.

    One order is an active cart (``draft``), a quotation under negotiation,
    or a confirmed sale moving through fulfilment.  Totals are always the
    output of the totals engine over the current items, cart discounts and
    line adjustments; they are never set directly.
    """
    order_id: str
    tenant_id: str
    year: int
    status: OrderStatus
    customer_id: str
    shipping_address_id: str | None = None
    is_current: bool = False
    currency: str = "EUR"
    order_number: int | None = None
    cart_number: int | None = None

    items: tuple[LineItem, ...] = ()
    cart_discounts: tuple[CartDiscount, ...] = ()
    line_adjustments: tuple[LineAdjustment, ...] = ()

    shipping_cost: Decimal = ZERO
    subtotal_gross: Decimal = ZERO
    subtotal_net: Decimal = ZERO
    total_discount: Decimal = ZERO
    total_vat: Decimal = ZERO
    order_total: Decimal = ZERO

    quotation: Quotation | None = None
    payment: Payment | None = None
    delivery: Delivery | None = None
    history: tuple[HistoryEntry, ...] = ()
    notes: str | None = None

    created_at: datetime | None = None
    updated_at: datetime | None = None
    submitted_at: datetime | None = None
    confirmed_at: datetime | None = None
    shipped_at: datetime | None = None
    delivered_at: datetime | None = None
    cancelled_at: datetime | None = None
    cancelled_by: str | None = None
    cancellation_reason: str | None = None

    duplicated_from: str | None = None
    duplicated_at: datetime | None = None
    duplications: tuple[str, ...] = ()

    version: int = 0

    def __post_init__(self) -> None:
        if self.status == OrderStatus.QUOTATION and self.quotation is None:
            raise ValueError(f"Order {self.order_id}: quotation status requires quotation data")
        if self.status in _PAYMENT_STATUSES and self.payment is None:
            raise ValueError(
                f"Order {self.order_id}: status {self.status.value} requires payment data"
            )

    @property
    def quotation_number(self) -> str | None:
        return self.quotation.quotation_number if self.quotation else None

    @property
    def is_empty(self) -> bool:
        return not self.items

    def find_item(self, line_number: int) -> LineItem | None:
        for item in self.items:
            if item.line_number == line_number:
                return item
        return None

    def next_line_number(self, step: int = 10) -> int:
        """Next free line number: ``step`` above the highest used one."""
        if not self.items:
            return step
        return max(item.line_number for item in self.items) + step


# =============================================================================
# Operation inputs
# =============================================================================


@dataclass(frozen=True)
class NewLineItem:
    """A line to add to a cart or a quotation revision."""
    sku: str
    quantity: int
    unit_price: Decimal
    vat_rate: Decimal
    entity_code: str | None = None
    name: str | None = None
    list_price: Decimal | None = None
    discount_percent: Decimal | None = None
    min_order_quantity: int | None = None
    pack_size: int | None = None


@dataclass(frozen=True)
class CartDiscountInput:
    type: DiscountType
    value: Decimal
    reason: DiscountReason = DiscountReason.MANUAL
    description: str | None = None


@dataclass(frozen=True)
class LineAdjustmentInput:
    line_number: int
    type: AdjustmentType
    new_value: Decimal
    reason: DiscountReason = DiscountReason.NEGOTIATION
    description: str | None = None


@dataclass(frozen=True)
class QuantityUpdate:
    line_number: int
    quantity: int


@dataclass(frozen=True)
class RevisionChanges:
    """Everything one negotiation round changes.

    Item edits are applied first, then discounts and adjustments.
    """
    cart_discounts_added: tuple[CartDiscountInput, ...] = ()
    line_adjustments_added: tuple[LineAdjustmentInput, ...] = ()
    items_added: tuple[NewLineItem, ...] = ()
    items_removed: tuple[int, ...] = ()
    qty_changes: tuple[QuantityUpdate, ...] = ()
    notes: str | None = None
    internal_notes: str | None = None


@dataclass(frozen=True)
class PaymentInput:
    amount: Decimal
    method: str
    reference: str | None = None
    notes: str | None = None
    recorded_at: datetime | None = None
    confirmed: bool = False


@dataclass(frozen=True)
class PaymentUpdate:
    """Fields to change on a payment record; None leaves a field unchanged."""
    amount: Decimal | None = None
    method: str | None = None
    reference: str | None = None
    notes: str | None = None
    recorded_at: datetime | None = None
    confirmed: bool | None = None


@dataclass(frozen=True)
class DeliveryInput:
    carrier: str | None = None
    tracking_number: str | None = None
    tracking_url: str | None = None
    estimated_delivery: datetime | None = None
    delivery_notes: str | None = None


@dataclass(frozen=True)
class DuplicateOptions:
    """
    Options for ``duplicate_order``.

    ``reset_quantities=None`` falls back to the module configuration.
    """
    reset_quantities: bool | None = None
    include_discounts: bool = False
    clear_notes: bool = False
