"""
Commerce Modules.

Thin orchestration layers over the Commerce Kernel and Engines.
Each module contains:
- Domain models (the nouns)
- Persistence (ORM rows and the store)
- Configuration schemas (settings per tenant)
- The service that owns the transaction boundary

Modules:
- Orders: carts, quotations, confirmed orders, payments, delivery
"""

from commerce_modules import orders

__all__ = ["orders"]
