"""
Module: commerce_kernel.db.types
Responsibility: Annotated type aliases for columns shared by the order tables.
    Centralizes precision so every model uses identical type definitions.
Architecture position: Kernel > DB.  May be imported by ORM models and
    services.  MUST NOT import from modules or engines.

Invariants enforced:
    No floats anywhere in persisted amounts.  Money columns use Numeric with
    explicit precision.
"""

from decimal import Decimal
from typing import Annotated

from sqlalchemy import BigInteger, Numeric, String


# Monetary amount, stored at cent precision with headroom for large orders
Money = Annotated[Decimal, Numeric(18, 2)]

# ISO 4217 currency code (e.g., "EUR", "USD")
Currency = Annotated[str, String(3)]

# Monotonic sequence number
Sequence = Annotated[int, BigInteger]

# Opaque document identifiers (order ids, record ids)
DocumentId = Annotated[str, String(64)]

# Short status / code strings
ShortCode = Annotated[str, String(50)]
