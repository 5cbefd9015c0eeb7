"""
Module ORM Registry (``commerce_modules._orm_registry``).

Responsibility
--------------
Ensure all SQLAlchemy ORM models are imported so that ``Base.metadata``
contains their table definitions before tables are created or dropped.

Architecture position
---------------------
**Modules layer** -- utility.  Imported lazily by
``commerce_kernel.db.engine.create_tables`` so the kernel never imports
module code at import time.
"""


def import_all_orm_models() -> None:
    """Import kernel models and every ``commerce_modules.*.orm`` module.

    This function is idempotent -- repeated calls are harmless.
    """
    import commerce_kernel.services.sequence_service  # noqa: F401  # sequence_counters
    import commerce_modules.orders.orm  # noqa: F401
