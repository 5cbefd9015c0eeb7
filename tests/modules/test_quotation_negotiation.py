"""
Tests for quotation negotiation.

Validates:
- Conversion from draft: numbering, validity window, initial revision
- Sending, revising (sales and customer rounds), accepting, rejecting
- Revision snapshots: totals, deltas, revision-tagged discounts
- Expiry forcing on access and the scheduled sweep
- Confirmation only after acceptance
"""

from __future__ import annotations

from datetime import timedelta
from decimal import Decimal

import pytest

from commerce_modules.orders.config import OrdersConfig
from commerce_modules.orders.models import (
    ActorType,
    AdjustmentType,
    CartDiscountInput,
    DiscountType,
    LineAdjustmentInput,
    OrderStatus,
    QuantityUpdate,
    QuotationStatus,
    RevisionChanges,
)
from commerce_modules.orders.service import LifecycleStatus, OrderLifecycleService
from tests.factories import TEST_CUSTOMER_ID, TEST_TENANT_ID, make_item


def _reload(service, order_id):
    result = service.get_order(order_id)
    assert result.is_success, result.message
    return result.order


class TestConversion:

    def test_convert_draft(self, quotation_order, deterministic_clock, sales_actor):
        quotation = quotation_order.quotation
        assert quotation_order.status == OrderStatus.QUOTATION
        assert quotation_order.is_current is False
        assert quotation.quotation_number == "Q-2025-00001"
        assert quotation.quotation_status == QuotationStatus.DRAFT
        assert quotation.days_valid == 30
        assert quotation.valid_until == deterministic_clock.now() + timedelta(days=30)
        assert quotation.current_revision == 0
        assert quotation.total_rounds == 0

        (initial,) = quotation.revisions
        assert initial.revision_number == 0
        assert initial.items_added == (10, 20)
        assert initial.order_total == Decimal("30.50")
        assert initial.created_by == sales_actor.user_id

    def test_quotation_numbers_are_sequential(self, service, sales_actor, quotation_order):
        other = service.create_draft_order(
            sales_actor, customer_id="cust-2", items=(make_item(),)
        ).order
        second = service.convert_to_quotation(other.order_id, sales_actor, days_valid=10)
        assert second.order.quotation.quotation_number == "Q-2025-00002"
        assert second.order.quotation.days_valid == 10

    def test_custom_number_format(self, session, deterministic_clock, sales_actor):
        config = OrdersConfig(quotation_number_prefix="OFF", quotation_number_width=3)
        service = OrderLifecycleService(
            session, tenant_id=TEST_TENANT_ID, clock=deterministic_clock, config=config
        )
        draft = service.create_draft_order(
            sales_actor, customer_id=TEST_CUSTOMER_ID, items=(make_item(),)
        ).order
        result = service.convert_to_quotation(draft.order_id, sales_actor)
        assert result.order.quotation.quotation_number == "OFF-2025-001"

    def test_empty_cart_cannot_be_quoted(self, service, sales_actor):
        draft = service.create_draft_order(sales_actor, customer_id=TEST_CUSTOMER_ID).order
        result = service.convert_to_quotation(draft.order_id, sales_actor)
        assert result.status == LifecycleStatus.INVALID_STATE
        assert "empty cart" in result.message

    def test_only_drafts_convert(self, service, sales_actor, confirmed_order):
        result = service.convert_to_quotation(confirmed_order.order_id, sales_actor)
        assert result.status == LifecycleStatus.INVALID_STATE


class TestNegotiation:

    def test_send(self, service, sales_actor, quotation_order, deterministic_clock):
        deterministic_clock.advance(60)
        result = service.send_quotation(quotation_order.order_id, sales_actor, message="Hi")
        quotation = result.order.quotation
        assert quotation.quotation_status == QuotationStatus.SENT
        assert quotation.sent_at == deterministic_clock.now()
        assert quotation.last_actor == ActorType.SALES
        assert result.order.history[-1].details == {"message": "Hi"}

    def test_cannot_send_twice(self, service, sales_actor, quotation_order):
        service.send_quotation(quotation_order.order_id, sales_actor)
        result = service.send_quotation(quotation_order.order_id, sales_actor)
        assert result.status == LifecycleStatus.INVALID_STATE

    def test_sales_revision(self, service, sales_actor, quotation_order):
        service.send_quotation(quotation_order.order_id, sales_actor)
        result = service.create_revision(
            quotation_order.order_id,
            sales_actor,
            ActorType.SALES,
            RevisionChanges(
                cart_discounts_added=(CartDiscountInput(DiscountType.PERCENTAGE, Decimal("10")),),
                notes="Volume discount",
            ),
        )
        assert result.is_success, result.message
        order = result.order
        quotation = order.quotation
        assert quotation.quotation_status == QuotationStatus.REVISED
        assert quotation.current_revision == 1
        assert quotation.total_rounds == 1
        assert order.cart_discounts[0].revision == 1

        revision = quotation.latest_revision
        assert revision.revision_number == 1
        assert revision.actor_type == ActorType.SALES
        assert revision.total_discount == Decimal("2.50")
        assert revision.order_total == order.order_total == Decimal("27.45")
        assert revision.notes == "Volume discount"
        assert len(revision.cart_discounts_added) == 1

    def test_customer_counter_offer(self, service, customer_actor, sales_actor, quotation_order):
        service.send_quotation(quotation_order.order_id, sales_actor)
        result = service.create_revision(
            quotation_order.order_id,
            customer_actor,
            ActorType.CUSTOMER,
            RevisionChanges(
                qty_changes=(QuantityUpdate(10, 4),),
                items_removed=(20,),
                items_added=(make_item("SKU-Z", 1, "3.00"),),
            ),
        )
        quotation = result.order.quotation
        assert quotation.quotation_status == QuotationStatus.COUNTER_OFFER
        assert quotation.last_actor == ActorType.CUSTOMER

        revision = quotation.latest_revision
        assert revision.items_removed == (20,)
        assert revision.items_added == (20,)
        assert [(c.line_number, c.old_qty, c.new_qty) for c in revision.items_qty_changed] == [
            (10, 2, 4)
        ]
        assert result.order.subtotal_net == Decimal("43.00")

    def test_revision_adjustment_on_unknown_line(self, service, sales_actor, quotation_order):
        before = _reload(service, quotation_order.order_id)
        result = service.create_revision(
            quotation_order.order_id,
            sales_actor,
            ActorType.SALES,
            RevisionChanges(
                line_adjustments_added=(
                    LineAdjustmentInput(99, AdjustmentType.PRICE_OVERRIDE, Decimal("1")),
                ),
            ),
        )
        assert result.status == LifecycleStatus.NOT_FOUND
        assert _reload(service, quotation_order.order_id) == before

    def test_revisions_accumulate(self, service, sales_actor, customer_actor, quotation_order):
        order_id = quotation_order.order_id
        service.create_revision(order_id, sales_actor, ActorType.SALES, RevisionChanges(notes="r1"))
        service.create_revision(order_id, customer_actor, ActorType.CUSTOMER, RevisionChanges(notes="r2"))
        service.create_revision(order_id, sales_actor, ActorType.SALES, RevisionChanges(notes="r3"))
        quotation = _reload(service, order_id).quotation
        assert [r.revision_number for r in quotation.revisions] == [0, 1, 2, 3]
        assert quotation.total_rounds == 3
        assert quotation.quotation_status == QuotationStatus.REVISED

    def test_accept_then_confirm(self, service, customer_actor, sales_actor, quotation_order):
        accepted = service.accept_quotation(quotation_order.order_id, customer_actor)
        assert accepted.order.quotation.quotation_status == QuotationStatus.ACCEPTED
        assert accepted.order.quotation.accepted_at is not None

        confirmed = service.confirm_order(quotation_order.order_id, sales_actor)
        assert confirmed.is_success, confirmed.message
        assert confirmed.order.status == OrderStatus.CONFIRMED
        assert confirmed.order.order_number == 1
        assert confirmed.order.quotation.quotation_number == "Q-2025-00001"

    def test_confirm_unaccepted_quotation(self, service, sales_actor, quotation_order):
        result = service.confirm_order(quotation_order.order_id, sales_actor)
        assert result.status == LifecycleStatus.INVALID_STATE
        assert "accepted quotation" in result.message

    def test_reject_records_reason(self, service, customer_actor, quotation_order):
        result = service.reject_quotation(quotation_order.order_id, customer_actor, reason="Too expensive")
        quotation = result.order.quotation
        assert quotation.quotation_status == QuotationStatus.REJECTED
        assert quotation.latest_revision.internal_notes == "Rejected: Too expensive"

    def test_no_revision_after_acceptance(self, service, customer_actor, sales_actor, quotation_order):
        service.accept_quotation(quotation_order.order_id, customer_actor)
        result = service.create_revision(
            quotation_order.order_id, sales_actor, ActorType.SALES, RevisionChanges()
        )
        assert result.status == LifecycleStatus.INVALID_STATE

    def test_revision_requires_quotation(self, service, sales_actor, draft_order):
        result = service.create_revision(
            draft_order.order_id, sales_actor, ActorType.SALES, RevisionChanges()
        )
        assert result.status == LifecycleStatus.INVALID_STATE


class TestExpiry:

    def test_accept_after_validity_expires(
        self, service, customer_actor, quotation_order, deterministic_clock
    ):
        deterministic_clock.advance_days(31)
        result = service.accept_quotation(quotation_order.order_id, customer_actor)
        assert result.status == LifecycleStatus.EXPIRED

        stored = _reload(service, quotation_order.order_id)
        assert stored.quotation.quotation_status == QuotationStatus.EXPIRED
        assert stored.quotation.expired_at == deterministic_clock.now()
        assert stored.history[-1].action == "quotation_expired"

    def test_valid_until_boundary_is_still_valid(
        self, service, customer_actor, quotation_order, deterministic_clock
    ):
        deterministic_clock.set_time(quotation_order.quotation.valid_until)
        result = service.accept_quotation(quotation_order.order_id, customer_actor)
        assert result.is_success

    @pytest.mark.parametrize("operation", ["send", "revise", "reject", "add_item"])
    def test_every_quotation_mutation_checks_expiry(
        self, service, sales_actor, quotation_order, deterministic_clock, operation
    ):
        deterministic_clock.advance_days(31)
        order_id = quotation_order.order_id
        calls = {
            "send": lambda: service.send_quotation(order_id, sales_actor),
            "revise": lambda: service.create_revision(
                order_id, sales_actor, ActorType.SALES, RevisionChanges()
            ),
            "reject": lambda: service.reject_quotation(order_id, sales_actor),
            "add_item": lambda: service.add_item(order_id, sales_actor, make_item()),
        }
        assert calls[operation]().status == LifecycleStatus.EXPIRED
        assert _reload(service, order_id).quotation.quotation_status == QuotationStatus.EXPIRED

    def test_read_expires_quotation(self, service, quotation_order, deterministic_clock):
        deterministic_clock.advance_days(31)
        order = _reload(service, quotation_order.order_id)
        assert order.quotation.quotation_status == QuotationStatus.EXPIRED

    def test_expired_quotation_can_be_cancelled(
        self, service, sales_actor, quotation_order, deterministic_clock
    ):
        deterministic_clock.advance_days(31)
        service.get_order(quotation_order.order_id)
        result = service.cancel_order(quotation_order.order_id, sales_actor)
        assert result.is_success
        assert result.order.status == OrderStatus.CANCELLED


class TestExpirySweep:

    def _quotation(self, service, sales_actor, customer_id, days_valid):
        draft = service.create_draft_order(
            sales_actor, customer_id=customer_id, items=(make_item(),)
        ).order
        return service.convert_to_quotation(draft.order_id, sales_actor, days_valid=days_valid).order

    def test_sweep_expires_only_past_validity(
        self, service, sales_actor, customer_actor, deterministic_clock
    ):
        short = self._quotation(service, sales_actor, "c-1", 5)
        long_ = self._quotation(service, sales_actor, "c-2", 60)
        accepted = self._quotation(service, sales_actor, "c-3", 5)
        service.accept_quotation(accepted.order_id, customer_actor)

        deterministic_clock.advance_days(10)
        assert service.count_expired_quotations() == 1
        assert service.mark_expired_quotations() == 1

        assert _reload(service, short.order_id).quotation.quotation_status == QuotationStatus.EXPIRED
        assert _reload(service, long_.order_id).quotation.quotation_status == QuotationStatus.DRAFT
        assert (
            _reload(service, accepted.order_id).quotation.quotation_status
            == QuotationStatus.ACCEPTED
        )

    def test_sweep_is_idempotent(self, service, sales_actor, deterministic_clock):
        self._quotation(service, sales_actor, "c-1", 5)
        deterministic_clock.advance_days(6)
        assert service.mark_expired_quotations() == 1
        assert service.mark_expired_quotations() == 0
        assert service.count_expired_quotations() == 0

    def test_sweep_with_nothing_to_do(self, service):
        assert service.mark_expired_quotations() == 0
