"""
commerce_engines.transition_policy -- Pure order status decision table.

Responsibility:
    Decide whether an actor role may move an order from one status to
    another, classify terminal statuses, and answer "is this order still
    editable" queries.  Also holds the quotation sub-workflow and its
    expiry test.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import commerce_kernel/domain/ types.

Invariants enforced:
    - The order workflow is declared once (``ORDER_WORKFLOW``); every
      decision is a lookup in it.  Terminal statuses have no outgoing edges.
    - ``quotation -> confirmed`` is guarded: the embedded quotation must be
      ``accepted``.
    - Customers may cancel only before confirmation; sales and admin may
      cancel any non-terminal order that has not shipped.
    - Items, discounts and adjustments are editable only in ``draft``,
      ``pending`` and ``quotation``.

Failure modes:
    - None.  Unknown statuses or roles evaluate to a denial, never raise.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from typing import Protocol

from commerce_kernel.domain.orders import OrderStatus, QuotationStatus, UserRole
from commerce_kernel.domain.workflow import Guard, Transition, Workflow


ALL_ROLES: tuple[str, ...] = (
    UserRole.CUSTOMER.value,
    UserRole.SALES.value,
    UserRole.ADMIN.value,
)
STAFF_ROLES: tuple[str, ...] = (UserRole.SALES.value, UserRole.ADMIN.value)

QUOTATION_ACCEPTED_GUARD = Guard(
    name="quotation_accepted",
    description="The embedded quotation must be accepted before confirmation",
)


ORDER_WORKFLOW = Workflow(
    name="order",
    description="Cart, quotation and sale lifecycle of an order",
    initial_state=OrderStatus.DRAFT.value,
    states=tuple(s.value for s in OrderStatus),
    transitions=(
        Transition("draft", "pending", action="submit", roles=ALL_ROLES),
        Transition("draft", "quotation", action="convert_to_quotation", roles=ALL_ROLES),
        Transition("pending", "confirmed", action="confirm", roles=STAFF_ROLES),
        Transition(
            "quotation",
            "confirmed",
            action="confirm",
            roles=STAFF_ROLES,
            guard=QUOTATION_ACCEPTED_GUARD,
        ),
        Transition("confirmed", "shipped", action="ship", roles=STAFF_ROLES),
        Transition("shipped", "delivered", action="deliver", roles=STAFF_ROLES),
        Transition("draft", "cancelled", action="cancel", roles=ALL_ROLES),
        Transition("pending", "cancelled", action="cancel", roles=ALL_ROLES),
        Transition("quotation", "cancelled", action="cancel", roles=ALL_ROLES),
        Transition("confirmed", "cancelled", action="cancel", roles=STAFF_ROLES),
    ),
    terminal_states=(OrderStatus.DELIVERED.value, OrderStatus.CANCELLED.value),
)


QUOTATION_WORKFLOW = Workflow(
    name="quotation",
    description="Negotiation rounds of a quotation",
    initial_state=QuotationStatus.DRAFT.value,
    states=tuple(s.value for s in QuotationStatus),
    transitions=(
        Transition("draft", "sent", action="send"),
        Transition("revised", "sent", action="send"),
        Transition("counter_offer", "sent", action="send"),
        Transition("draft", "revised", action="revise"),
        Transition("sent", "revised", action="revise"),
        Transition("revised", "revised", action="revise"),
        Transition("counter_offer", "revised", action="revise"),
        Transition("draft", "counter_offer", action="revise"),
        Transition("sent", "counter_offer", action="revise"),
        Transition("revised", "counter_offer", action="revise"),
        Transition("counter_offer", "counter_offer", action="revise"),
        Transition("draft", "accepted", action="accept"),
        Transition("sent", "accepted", action="accept"),
        Transition("revised", "accepted", action="accept"),
        Transition("counter_offer", "accepted", action="accept"),
        Transition("draft", "rejected", action="reject"),
        Transition("sent", "rejected", action="reject"),
        Transition("revised", "rejected", action="reject"),
        Transition("counter_offer", "rejected", action="reject"),
        Transition("draft", "expired", action="expire"),
        Transition("sent", "expired", action="expire"),
        Transition("revised", "expired", action="expire"),
        Transition("counter_offer", "expired", action="expire"),
    ),
    terminal_states=(
        QuotationStatus.ACCEPTED.value,
        QuotationStatus.REJECTED.value,
        QuotationStatus.EXPIRED.value,
    ),
)


MODIFIABLE_STATUSES: frozenset[str] = frozenset({"draft", "pending", "quotation"})
PAYMENT_EDITABLE_STATUSES: frozenset[str] = frozenset({"confirmed", "shipped", "delivered"})
DELIVERY_EDITABLE_STATUSES: frozenset[str] = PAYMENT_EDITABLE_STATUSES


class TransitionDenial:
    """Why a transition was refused."""

    NO_SUCH_TRANSITION = "invalid_transition"
    ROLE_NOT_ALLOWED = "role_denied"
    GUARD_FAILED = "invalid_state"


@dataclass(frozen=True)
class TransitionDecision:
    allowed: bool
    denial: str | None = None
    reason: str = ""
    transition: Transition | None = None


class QuotationLike(Protocol):
    quotation_status: QuotationStatus
    valid_until: datetime | None


def _value(status: object) -> str:
    return getattr(status, "value", status)  # type: ignore[return-value]


def evaluate_transition(
    from_status: OrderStatus | str,
    to_status: OrderStatus | str,
    role: UserRole | str,
    quotation_status: QuotationStatus | str | None = None,
) -> TransitionDecision:
    """Decide a status change and report why it is refused.

    Args:
        from_status: The order's current status.
        to_status: The requested status.
        role: The acting user's role.
        quotation_status: Current quotation status, consulted by the
            ``quotation -> confirmed`` guard.

    Returns:
        TransitionDecision; ``denial`` is one of the ``TransitionDenial``
        constants when ``allowed`` is False.
    """
    source, target, actor = _value(from_status), _value(to_status), _value(role)

    transition = ORDER_WORKFLOW.find_transition(source, target)
    if transition is None:
        return TransitionDecision(
            allowed=False,
            denial=TransitionDenial.NO_SUCH_TRANSITION,
            reason=f"Transition from {source} to {target} is not allowed",
        )

    if not transition.permits(actor):
        return TransitionDecision(
            allowed=False,
            denial=TransitionDenial.ROLE_NOT_ALLOWED,
            reason=f"Transition from {source} to {target} not allowed for role {actor}",
            transition=transition,
        )

    if transition.guard is QUOTATION_ACCEPTED_GUARD:
        if _value(quotation_status) != QuotationStatus.ACCEPTED.value:
            return TransitionDecision(
                allowed=False,
                denial=TransitionDenial.GUARD_FAILED,
                reason="Order must be pending or have accepted quotation to confirm",
                transition=transition,
            )

    return TransitionDecision(allowed=True, transition=transition)


def can_transition(
    from_status: OrderStatus | str,
    to_status: OrderStatus | str,
    role: UserRole | str,
    quotation_status: QuotationStatus | str | None = None,
) -> bool:
    return evaluate_transition(from_status, to_status, role, quotation_status).allowed


def allowed_transitions(
    status: OrderStatus | str,
    role: UserRole | str,
    quotation_status: QuotationStatus | str | None = None,
) -> tuple[OrderStatus, ...]:
    """Statuses the role can move an order to from ``status``."""
    source = _value(status)
    return tuple(
        OrderStatus(t.to_state)
        for t in ORDER_WORKFLOW.transitions_from(source)
        if can_transition(source, t.to_state, role, quotation_status)
    )


def can_modify_order(status: OrderStatus | str) -> bool:
    """True while items, discounts and adjustments may still change."""
    return _value(status) in MODIFIABLE_STATUSES


def is_terminal_status(status: OrderStatus | str) -> bool:
    return _value(status) in ORDER_WORKFLOW.terminal_states


def can_edit_payments(status: OrderStatus | str) -> bool:
    return _value(status) in PAYMENT_EDITABLE_STATUSES


def is_terminal_quotation_status(status: QuotationStatus | str) -> bool:
    return _value(status) in QUOTATION_WORKFLOW.terminal_states


def can_transition_quotation(
    from_status: QuotationStatus | str,
    to_status: QuotationStatus | str,
) -> bool:
    return QUOTATION_WORKFLOW.find_transition(_value(from_status), _value(to_status)) is not None


def is_quotation_expired(quotation: QuotationLike | None, now: datetime) -> bool:
    """True when an open quotation is past ``valid_until``.

    Quotations already accepted, rejected or expired are never reported as
    (newly) expired.
    """
    if quotation is None or quotation.valid_until is None:
        return False
    if is_terminal_quotation_status(quotation.quotation_status):
        return False
    return now > quotation.valid_until
