"""
commerce_engines.payments -- Pure payment reconciliation.

Responsibility:
    Derive ``amount_paid``, ``amount_remaining`` and ``payment_status`` of an
    order from its full list of payment records.

Architecture position:
    Engines -- pure calculation layer, zero I/O.

Invariants enforced:
    - ``amount_paid`` is always the sum of the current payment records; the
      figures are recomputed from the whole list, never adjusted
      incrementally.
    - ``amount_remaining = max(0, amount_due - amount_paid)``.
    - ``paid`` iff remaining is zero; ``partial`` iff something was paid but
      a balance remains; ``awaiting`` otherwise.
"""

from __future__ import annotations

from collections.abc import Sequence
from dataclasses import dataclass
from decimal import Decimal

from commerce_engines.tracer import traced_engine
from commerce_kernel.domain.money import ZERO, clamp_non_negative, round_money
from commerce_kernel.domain.orders import PaymentRecord, PaymentStatus


@dataclass(frozen=True)
class PaymentSummary:
    amount_due: Decimal
    amount_paid: Decimal
    amount_remaining: Decimal
    payment_status: PaymentStatus

    @property
    def is_settled(self) -> bool:
        return self.payment_status == PaymentStatus.PAID


def derive_payment_status(amount_paid: Decimal, amount_remaining: Decimal) -> PaymentStatus:
    if amount_remaining <= ZERO:
        return PaymentStatus.PAID
    if amount_paid > ZERO:
        return PaymentStatus.PARTIAL
    return PaymentStatus.AWAITING


@traced_engine("payments", "1.0", fingerprint_fields=("amount_due", "payments"))
def reconcile_payments(
    amount_due: Decimal,
    payments: Sequence[PaymentRecord],
) -> PaymentSummary:
    """Recompute payment figures from the complete payment list."""
    amount_paid = round_money(sum((p.amount for p in payments), ZERO))
    amount_remaining = round_money(clamp_non_negative(amount_due - amount_paid))
    return PaymentSummary(
        amount_due=round_money(amount_due),
        amount_paid=amount_paid,
        amount_remaining=amount_remaining,
        payment_status=derive_payment_status(amount_paid, amount_remaining),
    )
