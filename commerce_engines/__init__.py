"""
Commerce Engines - pure calculation layer for the order lifecycle.

Engines take frozen domain values and return frozen results.  They never
read the clock, touch the database or mutate their inputs.

    totals              Recompute line and order figures
    transition_policy   Status decision table and quotation expiry test
    payments            Derive paid / remaining / status from payment records
"""

from commerce_engines.payments import PaymentSummary, reconcile_payments
from commerce_engines.totals import OrderTotals, recalculate
from commerce_engines.transition_policy import (
    ORDER_WORKFLOW,
    QUOTATION_WORKFLOW,
    TransitionDecision,
    allowed_transitions,
    can_modify_order,
    can_transition,
    evaluate_transition,
    is_quotation_expired,
    is_terminal_quotation_status,
    is_terminal_status,
)

__all__ = [
    "OrderTotals",
    "recalculate",
    "PaymentSummary",
    "reconcile_payments",
    "ORDER_WORKFLOW",
    "QUOTATION_WORKFLOW",
    "TransitionDecision",
    "evaluate_transition",
    "can_transition",
    "allowed_transitions",
    "can_modify_order",
    "is_terminal_status",
    "is_terminal_quotation_status",
    "is_quotation_expired",
]
