"""
Orders ORM Models (``commerce_modules.orders.orm``).

Responsibility
--------------
SQLAlchemy persistence model for the order aggregate.  Each order is one
row: the columns the store filters and sorts on, plus the complete
aggregate as a JSON document.

Architecture position
---------------------
**Modules layer** -- persistence.  Imports from ``commerce_kernel.db`` and
sibling ``models.py`` / ``documents.py``.  MUST NOT be imported by
``commerce_kernel``.
"""

from datetime import datetime
from decimal import Decimal

from sqlalchemy import JSON, Boolean, Index, String, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from commerce_kernel.db.base import TrackedBase
from commerce_kernel.db.types import Currency, DocumentId, Money, Sequence, ShortCode


class OrderDocumentModel(TrackedBase):
    """
    ORM model for order aggregates.

    Maps to the ``Order`` frozen dataclass through the document codec.

    Guarantees:
        - order_id is unique.
        - order_number and cart_number are unique per (tenant, year);
          quotation_number is unique per tenant.
        - version is the optimistic lock: every UPDATE is issued as
          ``WHERE version = :loaded_version`` and bumps it by one.
    """

    __tablename__ = "orders"

    __table_args__ = (
        UniqueConstraint("order_id", name="uq_orders_order_id"),
        UniqueConstraint(
            "tenant_id", "year", "order_number", name="uq_orders_tenant_year_order_number"
        ),
        UniqueConstraint(
            "tenant_id", "year", "cart_number", name="uq_orders_tenant_year_cart_number"
        ),
        UniqueConstraint(
            "tenant_id", "quotation_number", name="uq_orders_tenant_quotation_number"
        ),
        Index("idx_orders_tenant_status", "tenant_id", "status"),
        Index(
            "idx_orders_current_cart",
            "tenant_id",
            "customer_id",
            "shipping_address_id",
            "status",
            "is_current",
        ),
        Index("idx_orders_quotation_expiry", "tenant_id", "quotation_status", "valid_until"),
    )

    order_id: Mapped[DocumentId] = mapped_column(nullable=False)
    tenant_id: Mapped[str] = mapped_column(String(64), nullable=False)
    year: Mapped[int] = mapped_column(nullable=False)
    status: Mapped[ShortCode] = mapped_column(nullable=False)
    customer_id: Mapped[str] = mapped_column(String(64), nullable=False)
    shipping_address_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    is_current: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)

    order_number: Mapped[Sequence | None] = mapped_column(nullable=True)
    cart_number: Mapped[Sequence | None] = mapped_column(nullable=True)
    quotation_number: Mapped[ShortCode | None] = mapped_column(nullable=True)
    quotation_status: Mapped[ShortCode | None] = mapped_column(nullable=True)
    valid_until: Mapped[datetime | None] = mapped_column(nullable=True)

    currency: Mapped[Currency] = mapped_column(nullable=False)
    order_total: Mapped[Money] = mapped_column(nullable=False, default=Decimal("0"))

    document: Mapped[dict] = mapped_column(JSON, nullable=False)

    version: Mapped[int] = mapped_column(nullable=False)

    __mapper_args__ = {"version_id_col": version}

    def apply_dto(self, dto, actor_id: str) -> None:
        """Copy an ``Order`` into the query columns and the document."""
        from commerce_modules.orders.documents import order_to_document

        document = order_to_document(dto)
        document.pop("version", None)

        self.order_id = dto.order_id
        self.tenant_id = dto.tenant_id
        self.year = dto.year
        self.status = dto.status.value
        self.customer_id = dto.customer_id
        self.shipping_address_id = dto.shipping_address_id
        self.is_current = dto.is_current
        self.order_number = dto.order_number
        self.cart_number = dto.cart_number
        self.quotation_number = dto.quotation.quotation_number if dto.quotation else None
        self.quotation_status = (
            dto.quotation.quotation_status.value if dto.quotation else None
        )
        self.valid_until = dto.quotation.valid_until if dto.quotation else None
        self.currency = dto.currency
        self.order_total = dto.order_total
        self.document = document
        self.updated_by = actor_id

    def to_dto(self):
        """Convert ORM model to frozen dataclass."""
        from dataclasses import replace

        from commerce_modules.orders.documents import order_from_document

        return replace(order_from_document(self.document), version=self.version)

    @classmethod
    def from_dto(cls, dto, created_by: str) -> "OrderDocumentModel":
        """Create ORM model from frozen dataclass."""
        model = cls(created_by=created_by)
        model.apply_dto(dto, created_by)
        return model

    def __repr__(self) -> str:
        return f"<OrderDocumentModel {self.order_id}: {self.status} v{self.version}>"
