"""
Hypothesis-based properties of the totals and payment engines.

Boundaries fuzzed here:
- Line quantities, prices and VAT rates across realistic ranges
- Any mix of percentage and fixed cart discounts, including oversized ones
- Line adjustments of every type, including overrides above list price
- Payment lists against arbitrary amounts due
"""

from datetime import UTC, datetime
from decimal import Decimal

from hypothesis import HealthCheck, given, settings
from hypothesis import strategies as st

from commerce_engines.payments import reconcile_payments
from commerce_engines.totals import recalculate
from commerce_kernel.domain.orders import (
    AdjustmentType,
    CartDiscount,
    DiscountReason,
    DiscountType,
    LineAdjustment,
    LineItem,
    PaymentRecord,
    PaymentStatus,
)

NOW = datetime(2025, 1, 15, 9, 0, tzinfo=UTC)
_SUPPRESSED = [HealthCheck.too_slow, HealthCheck.function_scoped_fixture]

money = st.decimals(min_value=Decimal("0"), max_value=Decimal("9999.99"), places=2)
positive_money = st.decimals(min_value=Decimal("0.01"), max_value=Decimal("9999.99"), places=2)
vat_rates = st.sampled_from([Decimal("0"), Decimal("4"), Decimal("10"), Decimal("22")])
percentages = st.decimals(min_value=Decimal("0"), max_value=Decimal("150"), places=2)


@st.composite
def line_items(draw):
    count = draw(st.integers(min_value=0, max_value=6))
    return tuple(
        LineItem(
            line_number=(i + 1) * 10,
            sku=f"SKU-{i}",
            quantity=draw(st.integers(min_value=0, max_value=500)),
            unit_price=draw(money),
            vat_rate=draw(vat_rates),
            discount_percent=draw(st.none() | percentages),
        )
        for i in range(count)
    )


@st.composite
def cart_discounts(draw):
    count = draw(st.integers(min_value=0, max_value=4))
    discounts = []
    for i in range(count):
        type_ = draw(st.sampled_from(list(DiscountType)))
        value = draw(percentages if type_ == DiscountType.PERCENTAGE else money)
        discounts.append(
            CartDiscount(
                discount_id=f"d{i}",
                type=type_,
                value=value,
                reason=DiscountReason.MANUAL,
                applied_by="sales-1",
                applied_at=NOW,
            )
        )
    return tuple(discounts)


@st.composite
def adjustments_for(draw, items):
    result = []
    for item in items:
        if not draw(st.booleans()):
            continue
        type_ = draw(st.sampled_from(list(AdjustmentType)))
        value = draw(percentages if type_ == AdjustmentType.DISCOUNT_PERCENTAGE else money)
        result.append(
            LineAdjustment(
                adjustment_id=f"a{item.line_number}",
                line_number=item.line_number,
                type=type_,
                original_value=item.unit_price,
                new_value=value,
                reason=DiscountReason.NEGOTIATION,
                applied_by="sales-1",
                applied_at=NOW,
            )
        )
    return tuple(result)


@st.composite
def priced_orders(draw):
    items = draw(line_items())
    return items, draw(cart_discounts()), draw(adjustments_for(items)), draw(money)


class TestTotalsProperties:

    @given(priced_orders())
    @settings(max_examples=200, suppress_health_check=_SUPPRESSED)
    def test_total_never_negative(self, order):
        items, discounts, adjustments, shipping = order
        totals = recalculate(
            items=items,
            cart_discounts=discounts,
            line_adjustments=adjustments,
            shipping_cost=shipping,
        )
        assert totals.order_total >= 0
        assert totals.total_vat >= 0

    @given(priced_orders())
    @settings(max_examples=200, suppress_health_check=_SUPPRESSED)
    def test_subtotal_is_sum_of_lines(self, order):
        items, discounts, adjustments, shipping = order
        totals = recalculate(
            items=items,
            cart_discounts=discounts,
            line_adjustments=adjustments,
            shipping_cost=shipping,
        )
        assert totals.subtotal_net == sum((line.line_net for line in totals.items), Decimal("0"))
        assert all(line.effective_unit_price >= 0 for line in totals.items)

    @given(priced_orders())
    @settings(max_examples=200, suppress_health_check=_SUPPRESSED)
    def test_discount_capped_by_subtotal(self, order):
        items, discounts, adjustments, shipping = order
        totals = recalculate(
            items=items,
            cart_discounts=discounts,
            line_adjustments=adjustments,
            shipping_cost=shipping,
        )
        assert 0 <= totals.total_discount <= totals.subtotal_net
        assert totals.discounted_subtotal == totals.subtotal_net - totals.total_discount
        assert totals.order_total == (
            totals.subtotal_net - totals.total_discount + totals.total_vat + totals.shipping_cost
        )

    @given(line_items(), money)
    @settings(suppress_health_check=_SUPPRESSED)
    def test_recalculation_is_idempotent(self, items, shipping):
        first = recalculate(items=items, shipping_cost=shipping)
        second = recalculate(items=first.items, shipping_cost=shipping)
        assert second == first


class TestPaymentProperties:

    @given(
        money,
        st.lists(positive_money, max_size=5),
    )
    @settings(suppress_health_check=_SUPPRESSED)
    def test_status_matches_figures(self, amount_due, amounts):
        payments = tuple(
            PaymentRecord(
                payment_id=f"p{i}",
                amount=amount,
                method="card",
                recorded_at=NOW,
                recorded_by="sales-1",
            )
            for i, amount in enumerate(amounts)
        )
        summary = reconcile_payments(amount_due=amount_due, payments=payments)

        assert summary.amount_paid == sum(amounts, Decimal("0"))
        assert summary.amount_remaining == max(amount_due - summary.amount_paid, Decimal("0"))
        if summary.amount_remaining == 0:
            assert summary.payment_status == PaymentStatus.PAID
        elif summary.amount_paid > 0:
            assert summary.payment_status == PaymentStatus.PARTIAL
        else:
            assert summary.payment_status == PaymentStatus.AWAITING
