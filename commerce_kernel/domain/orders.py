"""
Order value types (``commerce_kernel.domain.orders``).

Responsibility
--------------
Status enumerations and the priced records of an order -- line items, cart
discounts, line adjustments and payment records.  These are shared by the
pure engines (totals, transition policy, payment reconciliation) and by the
order module, so they live in the kernel domain layer.

Architecture position
---------------------
**Kernel domain layer** -- pure value objects.  ZERO I/O.

Invariants enforced
-------------------
* All records are frozen; nested values are Decimals, never floats.
* Enum values are the lowercase wire strings stored in order documents.
* Discount values may be stored negative ("-10" meaning 10 off); consumers
  use ``magnitude`` so the sign convention never changes the result.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from decimal import Decimal
from enum import Enum

from commerce_kernel.domain.money import ZERO


class OrderStatus(str, Enum):
    DRAFT = "draft"
    PENDING = "pending"
    QUOTATION = "quotation"
    CONFIRMED = "confirmed"
    SHIPPED = "shipped"
    DELIVERED = "delivered"
    CANCELLED = "cancelled"


class QuotationStatus(str, Enum):
    DRAFT = "draft"
    SENT = "sent"
    REVISED = "revised"
    COUNTER_OFFER = "counter_offer"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    EXPIRED = "expired"


class PaymentStatus(str, Enum):
    AWAITING = "awaiting"
    PARTIAL = "partial"
    PAID = "paid"


class ActorType(str, Enum):
    """Which side of a quotation negotiation acted."""

    SALES = "sales"
    CUSTOMER = "customer"


class UserRole(str, Enum):
    CUSTOMER = "customer"
    SALES = "sales"
    ADMIN = "admin"


class DiscountType(str, Enum):
    PERCENTAGE = "percentage"
    FIXED = "fixed"


class AdjustmentType(str, Enum):
    PRICE_OVERRIDE = "price_override"
    DISCOUNT_PERCENTAGE = "discount_percentage"
    DISCOUNT_FIXED = "discount_fixed"


class DiscountReason(str, Enum):
    CUSTOMER_GROUP = "customer_group"
    QUANTITY = "quantity"
    PROMO = "promo"
    MANUAL = "manual"
    NEGOTIATION = "negotiation"
    LOYALTY = "loyalty"
    CLEARANCE = "clearance"


@dataclass(frozen=True)
class LineItem:
    """
    One priced line of an order.

    ``unit_price`` is the base selling price and is never rewritten by a line
    adjustment; ``effective_unit_price`` and the ``line_*`` figures are
    computed by the totals engine.
    """

    line_number: int
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
    added_at: datetime | None = None
    # Computed
    effective_unit_price: Decimal | None = None
    line_gross: Decimal = ZERO
    line_net: Decimal = ZERO
    line_vat: Decimal = ZERO
    line_total: Decimal = ZERO

    def __post_init__(self) -> None:
        if self.line_number <= 0:
            raise ValueError(f"line_number must be positive, got {self.line_number}")
        if self.quantity < 0:
            raise ValueError(f"quantity cannot be negative, got {self.quantity}")
        if self.unit_price < ZERO:
            raise ValueError("unit_price cannot be negative")
        if self.vat_rate < ZERO:
            raise ValueError("vat_rate cannot be negative")

    @property
    def gross_unit_price(self) -> Decimal:
        """List price before any negotiated pricing; falls back to unit_price."""
        return self.list_price if self.list_price is not None else self.unit_price


@dataclass(frozen=True)
class CartDiscount:
    """A discount applied to the whole cart."""

    discount_id: str
    type: DiscountType
    value: Decimal
    reason: DiscountReason
    applied_by: str
    applied_at: datetime
    description: str | None = None
    revision: int | None = None

    @property
    def magnitude(self) -> Decimal:
        return abs(self.value)


@dataclass(frozen=True)
class LineAdjustment:
    """A price override or discount targeting one line by line_number."""

    adjustment_id: str
    line_number: int
    type: AdjustmentType
    original_value: Decimal
    new_value: Decimal
    reason: DiscountReason
    applied_by: str
    applied_at: datetime
    description: str | None = None
    revision: int | None = None

    @property
    def magnitude(self) -> Decimal:
        return abs(self.new_value)


@dataclass(frozen=True)
class PaymentRecord:
    """One payment received against a confirmed order."""

    payment_id: str
    amount: Decimal
    method: str
    recorded_at: datetime
    recorded_by: str
    reference: str | None = None
    notes: str | None = None
    confirmed: bool = False

    def __post_init__(self) -> None:
        if self.amount <= ZERO:
            raise ValueError(f"Payment amount must be positive, got {self.amount}")
