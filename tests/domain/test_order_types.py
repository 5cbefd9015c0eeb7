"""
Tests for the order value types and the workflow definition types.
"""

from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from commerce_kernel.domain.clock import Clock, DeterministicClock, SystemClock
from commerce_kernel.domain.orders import (
    CartDiscount,
    DiscountReason,
    DiscountType,
    LineItem,
    OrderStatus,
)
from commerce_kernel.domain.workflow import Transition, Workflow
from commerce_modules.orders.models import Order, Payment, PaymentStatus


class TestLineItem:

    def test_gross_unit_price_falls_back_to_unit_price(self):
        item = LineItem(line_number=10, sku="A", quantity=1, unit_price=Decimal("5"), vat_rate=Decimal("22"))
        assert item.gross_unit_price == Decimal("5")

    @pytest.mark.parametrize(
        "kwargs",
        [
            {"line_number": 0},
            {"quantity": -1},
            {"unit_price": Decimal("-0.01")},
            {"vat_rate": Decimal("-1")},
        ],
    )
    def test_invalid_values_rejected(self, kwargs):
        base = dict(line_number=10, sku="A", quantity=1, unit_price=Decimal("5"), vat_rate=Decimal("22"))
        base.update(kwargs)
        with pytest.raises(ValueError):
            LineItem(**base)

    def test_discount_magnitude(self):
        discount = CartDiscount(
            discount_id="d",
            type=DiscountType.FIXED,
            value=Decimal("-3"),
            reason=DiscountReason.PROMO,
            applied_by="u",
            applied_at=datetime(2025, 1, 1, tzinfo=UTC),
        )
        assert discount.magnitude == Decimal("3")


class TestOrderAggregate:

    def _order(self, **kwargs):
        defaults = dict(
            order_id="o-1", tenant_id="t", year=2025, status=OrderStatus.DRAFT, customer_id="c"
        )
        defaults.update(kwargs)
        return Order(**defaults)

    def test_quotation_status_requires_quotation(self):
        with pytest.raises(ValueError, match="quotation"):
            self._order(status=OrderStatus.QUOTATION)

    @pytest.mark.parametrize(
        "status", [OrderStatus.CONFIRMED, OrderStatus.SHIPPED, OrderStatus.DELIVERED]
    )
    def test_post_confirmation_requires_payment(self, status):
        with pytest.raises(ValueError, match="payment"):
            self._order(status=status)
        order = self._order(
            status=status,
            payment=Payment(payment_status=PaymentStatus.AWAITING, amount_due=Decimal("1")),
        )
        assert order.payment is not None

    def test_next_line_number(self):
        order = self._order()
        assert order.is_empty
        assert order.next_line_number() == 10
        item = LineItem(line_number=40, sku="A", quantity=1, unit_price=Decimal("1"), vat_rate=Decimal("0"))
        assert self._order(items=(item,)).next_line_number() == 50
        assert self._order(items=(item,)).next_line_number(step=1) == 41


class TestWorkflow:

    def test_terminal_state_cannot_have_exits(self):
        with pytest.raises(ValueError, match="terminal"):
            Workflow(
                name="w",
                description="",
                initial_state="a",
                states=("a", "b"),
                transitions=(Transition("b", "a", action="back"),),
                terminal_states=("b",),
            )

    def test_undeclared_state_rejected(self):
        with pytest.raises(ValueError, match="undeclared"):
            Workflow(
                name="w",
                description="",
                initial_state="a",
                states=("a",),
                transitions=(Transition("a", "z", action="go"),),
            )

    def test_empty_roles_permit_anyone(self):
        assert Transition("a", "b", action="go").permits("anyone")
        assert not Transition("a", "b", action="go", roles=("sales",)).permits("customer")


class TestDeterministicClock:

    def test_advance(self):
        start = datetime(2025, 6, 1, 12, 0, tzinfo=UTC)
        clock = DeterministicClock(start)
        clock.advance_days(2)
        clock.advance(30)
        assert clock.now() == start + timedelta(days=2, seconds=30)
        assert clock.tick() == start + timedelta(days=2, seconds=31)

    def test_set_time_resets_offset(self):
        clock = DeterministicClock()
        clock.advance(100)
        target = datetime(2030, 1, 1, tzinfo=UTC)
        clock.set_time(target)
        assert clock.now() == target

    def test_clock_interface_is_now_only(self):
        assert Clock.__abstractmethods__ == frozenset({"now"})
        assert SystemClock().now().tzinfo is not None
