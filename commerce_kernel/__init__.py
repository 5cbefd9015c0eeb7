"""
Commerce Kernel

Shared infrastructure for the order lifecycle engine:
- Typed exceptions with machine-readable codes
- Structured JSON logging with request-scoped context
- Injectable clock for deterministic time
- SQLAlchemy declarative base, engine and column types
- Atomic, tenant-scoped sequence allocation
"""

__version__ = "0.1.0"
