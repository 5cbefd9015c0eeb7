"""
Tests for the SQL order store.

Validates:
- Insert/update round trip through the JSON document
- Version bump on every save; stale saves raise OptimisticLockError
- Tenant isolation
- Filtering, bulk patching and sequence helpers
"""

from __future__ import annotations

from dataclasses import replace
from datetime import UTC, datetime, timedelta
from decimal import Decimal

import pytest

from commerce_kernel.domain.orders import LineItem
from commerce_kernel.exceptions import DuplicateDocumentNumberError, OptimisticLockError
from commerce_kernel.services.sequence_service import SequenceService
from commerce_modules.orders.models import (
    HistoryEntry,
    Order,
    OrderStatus,
    Quotation,
    QuotationStatus,
)
from commerce_modules.orders.store import OrderFilter, SqlOrderStore
from tests.factories import TEST_TENANT_ID

NOW = datetime(2025, 1, 15, 9, 0, tzinfo=UTC)


def _order(order_id="o-1", customer_id="c-1", cart_number=1, **kwargs) -> Order:
    defaults = dict(
        order_id=order_id,
        tenant_id=TEST_TENANT_ID,
        year=2025,
        status=OrderStatus.DRAFT,
        customer_id=customer_id,
        is_current=True,
        cart_number=cart_number,
        items=(
            LineItem(
                line_number=10,
                sku="SKU-A",
                quantity=2,
                unit_price=Decimal("10.00"),
                vat_rate=Decimal("22"),
                added_at=NOW,
            ),
        ),
        history=(HistoryEntry(action="created", performed_by="u-1", performed_at=NOW),),
        created_at=NOW,
    )
    defaults.update(kwargs)
    return Order(**defaults)


@pytest.fixture
def store(session):
    return SqlOrderStore(session, TEST_TENANT_ID)


class TestSaveAndLoad:

    def test_round_trip(self, store):
        saved = store.save(_order(), "u-1")
        assert saved.version == 1

        loaded = store.find_by_id("o-1")
        assert loaded == saved
        assert loaded.items[0].unit_price == Decimal("10.00")
        assert loaded.history[0].performed_at == NOW

    def test_missing_order(self, store):
        assert store.find_by_id("nope") is None

    def test_update_bumps_version(self, store):
        saved = store.save(_order(), "u-1")
        updated = store.save(replace(saved, notes="call first"), "u-2")
        assert updated.version == 2
        assert store.find_by_id("o-1").notes == "call first"

    def test_stale_save_rejected(self, store):
        original = store.save(_order(), "u-1")
        store.save(replace(original, notes="first writer"), "u-1")

        with pytest.raises(OptimisticLockError):
            store.save(replace(original, notes="second writer"), "u-2")
        assert store.find_by_id("o-1").notes == "first writer"

    def test_save_of_vanished_order_rejected(self, store):
        with pytest.raises(OptimisticLockError):
            store.save(replace(_order(), version=3), "u-1")

    def test_duplicate_cart_number_rejected(self, store):
        store.save(_order("o-1", cart_number=7), "u-1")
        with pytest.raises(DuplicateDocumentNumberError):
            store.save(_order("o-2", cart_number=7), "u-1")

    def test_quotation_round_trip(self, store):
        quotation = Quotation(
            quotation_number="Q-2025-00001",
            quotation_status=QuotationStatus.SENT,
            valid_until=NOW + timedelta(days=30),
            days_valid=30,
            sent_at=NOW,
        )
        store.save(_order(status=OrderStatus.QUOTATION, quotation=quotation), "u-1")
        loaded = store.find_by_id("o-1")
        assert loaded.quotation == quotation
        assert loaded.quotation_number == "Q-2025-00001"

    def test_tenant_isolation(self, session, store):
        store.save(_order(), "u-1")
        other = SqlOrderStore(session, "other-tenant")
        assert other.find_by_id("o-1") is None
        assert other.find(OrderFilter()) == []


class TestQueries:

    def test_filter_by_customer_and_current(self, store):
        store.save(_order("o-1", "c-1", 1), "u-1")
        store.save(_order("o-2", "c-1", 2, is_current=False), "u-1")
        store.save(_order("o-3", "c-2", 3), "u-1")

        found = store.find(OrderFilter(customer_id="c-1", is_current=True))
        assert [o.order_id for o in found] == ["o-1"]

        found = store.find(OrderFilter(customer_id="c-1", exclude_order_id="o-1"))
        assert [o.order_id for o in found] == ["o-2"]

    def test_expiry_filter(self, store):
        def quote(order_id, cart_number, status, valid_until):
            return _order(
                order_id,
                cart_number=cart_number,
                status=OrderStatus.QUOTATION,
                quotation=Quotation(
                    quotation_number=f"Q-{order_id}",
                    quotation_status=status,
                    valid_until=valid_until,
                    days_valid=1,
                ),
            )

        store.save(quote("q-1", 1, QuotationStatus.SENT, NOW - timedelta(days=1)), "u-1")
        store.save(quote("q-2", 2, QuotationStatus.ACCEPTED, NOW - timedelta(days=1)), "u-1")
        store.save(quote("q-3", 3, QuotationStatus.SENT, NOW + timedelta(days=1)), "u-1")

        found = store.find(
            OrderFilter(
                statuses=(OrderStatus.QUOTATION,),
                quotation_status_not_in=(QuotationStatus.ACCEPTED, QuotationStatus.REJECTED),
                valid_until_before=NOW,
            )
        )
        assert [o.order_id for o in found] == ["q-1"]

    def test_update_many_counts_changed_orders(self, store):
        store.save(_order("o-1", "c-1", 1), "u-1")
        store.save(_order("o-2", "c-1", 2, is_current=False), "u-1")

        count = store.update_many(
            OrderFilter(customer_id="c-1"),
            lambda o: replace(o, is_current=False),
            "u-9",
        )
        assert count == 1
        assert store.find_by_id("o-1").is_current is False
        assert store.find_by_id("o-2").version == 1

    def test_find_max_sequence_value(self, store):
        assert store.find_max_sequence_value(OrderFilter(year=2025), "cart_number") == 0
        store.save(_order("o-1", cart_number=4), "u-1")
        store.save(_order("o-2", cart_number=9), "u-1")
        assert store.find_max_sequence_value(OrderFilter(year=2025), "cart_number") == 9
        assert store.find_max_sequence_value(OrderFilter(year=2024), "cart_number") == 0

    def test_find_max_sequence_value_unknown_field(self, store):
        with pytest.raises(ValueError):
            store.find_max_sequence_value(OrderFilter(), "quotation_number")

    def test_next_sequence_value_scoped(self, store):
        assert store.next_sequence_value(TEST_TENANT_ID, SequenceService.ORDER, 2025) == 1
        assert store.next_sequence_value(TEST_TENANT_ID, SequenceService.ORDER, 2025) == 2
        assert store.next_sequence_value(TEST_TENANT_ID, SequenceService.ORDER, 2026) == 1
        assert store.next_sequence_value(TEST_TENANT_ID, SequenceService.CART, 2025) == 1
        assert store.next_sequence_value("other", SequenceService.ORDER, 2025) == 1
