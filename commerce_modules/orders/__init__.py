"""
Orders Module.

Handles carts, quotation negotiation, confirmation, payments and delivery.

Totals, transition rules and payment figures come from shared engines.
"""

from commerce_modules.orders.config import OrdersConfig
from commerce_modules.orders.models import (
    Actor,
    CartDiscountInput,
    DeliveryInput,
    DuplicateOptions,
    LineAdjustmentInput,
    NewLineItem,
    Order,
    PaymentInput,
    PaymentUpdate,
    QuantityUpdate,
    RevisionChanges,
)
from commerce_modules.orders.service import (
    LifecycleResult,
    LifecycleStatus,
    OrderLifecycleService,
)
from commerce_modules.orders.store import OrderFilter, OrderStore, SqlOrderStore

__all__ = [
    "Actor",
    "CartDiscountInput",
    "DeliveryInput",
    "DuplicateOptions",
    "LineAdjustmentInput",
    "NewLineItem",
    "Order",
    "PaymentInput",
    "PaymentUpdate",
    "QuantityUpdate",
    "RevisionChanges",
    "OrdersConfig",
    "LifecycleResult",
    "LifecycleStatus",
    "OrderLifecycleService",
    "OrderFilter",
    "OrderStore",
    "SqlOrderStore",
]
