"""Pure domain layer - clock, money, workflow and order value types."""

from commerce_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from commerce_kernel.domain.money import (
    ZERO,
    clamp_non_negative,
    round_money,
    to_decimal,
)
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
from commerce_kernel.domain.workflow import Guard, Transition, Workflow

__all__ = [
    "Clock",
    "SystemClock",
    "DeterministicClock",
    "ZERO",
    "round_money",
    "to_decimal",
    "clamp_non_negative",
    "Guard",
    "Transition",
    "Workflow",
    "OrderStatus",
    "QuotationStatus",
    "PaymentStatus",
    "ActorType",
    "UserRole",
    "DiscountType",
    "AdjustmentType",
    "DiscountReason",
    "LineItem",
    "CartDiscount",
    "LineAdjustment",
    "PaymentRecord",
]
