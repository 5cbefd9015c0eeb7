"""
Typed Exception Hierarchy for the Commerce Kernel.

===============================================================================
WHY TYPED EXCEPTIONS
===============================================================================

Callers of the order lifecycle engine (API routes, scheduled jobs) translate
failures into HTTP statuses or operator messages.  Parsing message strings
for that is fragile, so:
  1. Every error has a TYPED exception class (catch by type, not message)
  2. Every exception has a CODE attribute (machine-readable, API-safe)
  3. Exceptions carry structured DATA (not just a message string)

Inside the engine these exceptions are raised where a precondition fails.
The lifecycle service catches them at its boundary and returns a
``LifecycleResult`` whose status mirrors the exception code, so nothing in
this hierarchy ever crosses the service boundary as a raised exception.

===============================================================================
EXCEPTION HIERARCHY
===============================================================================

    CommerceKernelError (base)
    |
    +-- OrderNotFoundError
    +-- LineItemNotFoundError
    +-- RecordNotFoundError
    |
    +-- InvalidTransitionError
    +-- RoleDeniedError
    +-- InvalidStateError
    |   +-- InvalidQuantityError
    |
    +-- QuotationExpiredError
    |
    +-- ConflictError
        +-- OptimisticLockError
        +-- DuplicateDocumentNumberError

===============================================================================
ERROR CODES - QUICK REFERENCE
===============================================================================

Code                 | When Raised
---------------------|------------------------------------------------------
NOT_FOUND            | Order, line, discount, adjustment or payment missing
INVALID_TRANSITION   | Status edge does not exist in the order workflow
ROLE_DENIED          | Edge exists but the actor's role may not take it
INVALID_STATE        | Precondition failed (empty cart, locked status, ...)
EXPIRED              | Quotation is past valid_until
CONFLICT             | Concurrent modification or duplicate document number
"""


class CommerceKernelError(Exception):
    """
    Base exception for all commerce kernel errors.

    All subclasses must have a `code` class attribute for machine-readable
    error identification.
    """

    code: str = "COMMERCE_KERNEL_ERROR"


# Lookup failures


class OrderNotFoundError(CommerceKernelError):
    """Order with given ID was not found for the tenant."""

    code: str = "NOT_FOUND"

    def __init__(self, order_id: str):
        self.order_id = order_id
        super().__init__(f"Order not found: {order_id}")


class LineItemNotFoundError(CommerceKernelError):
    """Order has no line with the given line number."""

    code: str = "NOT_FOUND"

    def __init__(self, order_id: str, line_number: int):
        self.order_id = order_id
        self.line_number = line_number
        super().__init__(f"Line item {line_number} not found on order {order_id}")


class RecordNotFoundError(CommerceKernelError):
    """A nested record (discount, adjustment, payment) was not found by id."""

    code: str = "NOT_FOUND"

    def __init__(self, order_id: str, record_type: str, record_id: str):
        self.order_id = order_id
        self.record_type = record_type
        self.record_id = record_id
        super().__init__(f"{record_type} not found on order {order_id}: {record_id}")


# Policy failures


class InvalidTransitionError(CommerceKernelError):
    """The requested status change is not an edge of the order workflow."""

    code: str = "INVALID_TRANSITION"

    def __init__(self, order_id: str, from_status: str, to_status: str):
        self.order_id = order_id
        self.from_status = from_status
        self.to_status = to_status
        super().__init__(
            f"Order {order_id} cannot transition from '{from_status}' to '{to_status}'"
        )


class RoleDeniedError(CommerceKernelError):
    """The transition exists but the actor's role is not allowed to take it."""

    code: str = "ROLE_DENIED"

    def __init__(self, order_id: str, from_status: str, to_status: str, role: str):
        self.order_id = order_id
        self.from_status = from_status
        self.to_status = to_status
        self.role = role
        super().__init__(
            f"Role {role} cannot move order {order_id} "
            f"from '{from_status}' to '{to_status}'"
        )


class InvalidStateError(CommerceKernelError):
    """An operation precondition on the order's current state failed."""

    code: str = "INVALID_STATE"

    def __init__(self, order_id: str, reason: str):
        self.order_id = order_id
        self.reason = reason
        super().__init__(f"Order {order_id}: {reason}")


class InvalidQuantityError(InvalidStateError):
    """Quantity violates the line's ordering constraints."""

    def __init__(self, order_id: str, quantity: int, reason: str):
        self.quantity = quantity
        super().__init__(order_id, reason)


# Quotation validity


class QuotationExpiredError(CommerceKernelError):
    """
    Quotation is past its validity date.

    The stored quotation has already been flipped to ``expired`` by the time
    this is raised.
    """

    code: str = "EXPIRED"

    def __init__(self, order_id: str, quotation_number: str | None, valid_until: str):
        self.order_id = order_id
        self.quotation_number = quotation_number
        self.valid_until = valid_until
        super().__init__(
            f"Quotation {quotation_number or order_id} expired at {valid_until}"
        )


# Concurrency


class ConflictError(CommerceKernelError):
    """Base exception for write conflicts."""

    code: str = "CONFLICT"


class OptimisticLockError(ConflictError):
    """Order was modified by another transaction since it was loaded."""

    def __init__(self, entity_type: str, entity_id: str):
        self.entity_type = entity_type
        self.entity_id = entity_id
        super().__init__(
            f"Optimistic lock conflict on {entity_type} {entity_id}: "
            "entity was modified by another transaction"
        )


class DuplicateDocumentNumberError(ConflictError):
    """A document number collided with one already stored for the tenant."""

    def __init__(self, number_type: str, number: str):
        self.number_type = number_type
        self.number = number
        super().__init__(f"Duplicate {number_type}: {number}")
