"""Shared constants and builders for the order engine tests."""

import os
from decimal import Decimal

from commerce_modules.orders.models import NewLineItem

TEST_TENANT_ID = "tenant-test"
TEST_CUSTOMER_ID = "cust-001"
TEST_ADDRESS_ID = "addr-001"


def make_item(
    sku: str = "SKU-1",
    quantity: int = 1,
    unit_price: str = "10.00",
    vat_rate: str = "22",
    **kwargs,
) -> NewLineItem:
    """Build a NewLineItem with string-friendly money arguments."""
    return NewLineItem(
        sku=sku,
        quantity=quantity,
        unit_price=Decimal(unit_price),
        vat_rate=Decimal(vat_rate),
        **kwargs,
    )


DEFAULT_DATABASE_URL = "sqlite://"


def get_database_url() -> str:
    """Get database URL from environment, or use in-memory SQLite."""
    return os.environ.get("DATABASE_URL", DEFAULT_DATABASE_URL)


def is_postgres_url(url: str) -> bool:
    return url.startswith("postgresql")
