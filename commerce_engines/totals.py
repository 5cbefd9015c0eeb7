"""
commerce_engines.totals -- Pure order totals calculator.

Responsibility:
    Recompute every derived figure of an order from its line items, cart
    discounts and line adjustments: per-line prices and amounts, then
    subtotal, discount, VAT and order total.

Architecture position:
    Engines -- pure calculation layer, zero I/O.
    May only import commerce_kernel/domain/ types.

Invariants enforced:
    - Determinism: identical inputs always yield identical ``OrderTotals``.
      Cart discounts are applied in recorded order; when several line
      adjustments target one line, the last recorded one wins.
    - Non-negativity: unit prices, subtotals, discounts and the order total
      are clamped at zero.  A discount can never exceed the amount it
      discounts.
    - Rounding: every stored figure is rounded half-up to cents at the step
      that produces it.  Order-level VAT is the sum of per-line rounded VAT.

Failure modes:
    - ValueError if ``shipping_cost`` is negative.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from dataclasses import dataclass, replace
from decimal import Decimal

from commerce_engines.tracer import traced_engine
from commerce_kernel.domain.money import (
    HUNDRED,
    ZERO,
    clamp_non_negative,
    round_money,
)
from commerce_kernel.domain.orders import (
    AdjustmentType,
    CartDiscount,
    DiscountType,
    LineAdjustment,
    LineItem,
)
from commerce_kernel.logging_config import get_logger

logger = get_logger("engines.totals")


@dataclass(frozen=True)
class OrderTotals:
    """Result of a totals recalculation."""

    items: tuple[LineItem, ...]
    subtotal_gross: Decimal
    subtotal_net: Decimal
    total_discount: Decimal
    discounted_subtotal: Decimal
    total_vat: Decimal
    shipping_cost: Decimal
    order_total: Decimal


def resolve_line_adjustments(
    line_adjustments: Iterable[LineAdjustment],
) -> dict[int, LineAdjustment]:
    """Map each line number to its active adjustment (last recorded wins)."""
    active: dict[int, LineAdjustment] = {}
    for adjustment in line_adjustments:
        active[adjustment.line_number] = adjustment
    return active


def adjusted_unit_price(unit_price: Decimal, adjustment: LineAdjustment | None) -> Decimal:
    """Unit price after applying a line adjustment, clamped at zero."""
    if adjustment is None:
        return unit_price

    if adjustment.type == AdjustmentType.PRICE_OVERRIDE:
        price = adjustment.new_value
    elif adjustment.type == AdjustmentType.DISCOUNT_PERCENTAGE:
        percent = min(adjustment.magnitude, HUNDRED)
        price = unit_price * (HUNDRED - percent) / HUNDRED
    else:
        price = unit_price - adjustment.magnitude

    return round_money(clamp_non_negative(price))


def price_line(item: LineItem, adjustment: LineAdjustment | None = None) -> LineItem:
    """Return a copy of ``item`` with its effective price and line amounts set."""
    effective = adjusted_unit_price(item.unit_price, adjustment)

    net = effective * item.quantity
    if item.discount_percent:
        percent = min(abs(item.discount_percent), HUNDRED)
        net = net * (HUNDRED - percent) / HUNDRED

    line_net = round_money(net)
    line_vat = round_money(line_net * item.vat_rate / HUNDRED)

    return replace(
        item,
        effective_unit_price=effective,
        line_gross=round_money(item.gross_unit_price * item.quantity),
        line_net=line_net,
        line_vat=line_vat,
        line_total=line_net + line_vat,
    )


def apply_cart_discounts(
    subtotal_net: Decimal,
    cart_discounts: Iterable[CartDiscount],
) -> tuple[Decimal, Decimal]:
    """Apply cart discounts in order to a subtotal.

    Percentage discounts are computed against the running subtotal before
    that discount; fixed discounts subtract a flat amount.  No discount can
    take the running subtotal below zero.

    Returns:
        ``(total_discount, discounted_subtotal)``.
    """
    running = subtotal_net
    for discount in cart_discounts:
        if discount.type == DiscountType.PERCENTAGE:
            percent = min(discount.magnitude, HUNDRED)
            amount = round_money(running * percent / HUNDRED)
        else:
            amount = round_money(discount.magnitude)
        amount = min(amount, running)
        running -= amount
    return subtotal_net - running, running


@traced_engine(
    "totals",
    "1.0",
    fingerprint_fields=("items", "cart_discounts", "line_adjustments", "shipping_cost"),
)
def recalculate(
    items: Sequence[LineItem],
    cart_discounts: Sequence[CartDiscount] = (),
    line_adjustments: Sequence[LineAdjustment] = (),
    shipping_cost: Decimal = ZERO,
) -> OrderTotals:
    """
    Recompute all order totals.

    ``order_total = subtotal_net - total_discount + total_vat + shipping_cost``
    where ``total_vat`` is each line's VAT on its share of the discounted
    subtotal.

    Args:
        items: Current line items (computed fields are ignored and rebuilt).
        cart_discounts: Cart discounts in the order they were recorded.
        line_adjustments: Line adjustments in the order they were recorded.
        shipping_cost: Flat shipping charge added after VAT.

    Returns:
        OrderTotals with re-priced items and order-level figures.
    """
    if shipping_cost < ZERO:
        raise ValueError(f"shipping_cost cannot be negative, got {shipping_cost}")

    active = resolve_line_adjustments(line_adjustments)
    priced = tuple(price_line(item, active.get(item.line_number)) for item in items)

    subtotal_gross = sum((line.line_gross for line in priced), ZERO)
    subtotal_net = sum((line.line_net for line in priced), ZERO)
    total_discount, discounted = apply_cart_discounts(subtotal_net, cart_discounts)

    total_vat = ZERO
    if subtotal_net > ZERO:
        for line in priced:
            share = line.line_net * discounted / subtotal_net
            total_vat += round_money(share * line.vat_rate / HUNDRED)

    order_total = round_money(
        clamp_non_negative(subtotal_net - total_discount + total_vat + shipping_cost)
    )

    logger.debug(
        "order_totals_recalculated",
        extra={
            "line_count": len(priced),
            "subtotal_net": str(subtotal_net),
            "total_discount": str(total_discount),
            "order_total": str(order_total),
        },
    )

    return OrderTotals(
        items=priced,
        subtotal_gross=subtotal_gross,
        subtotal_net=subtotal_net,
        total_discount=total_discount,
        discounted_subtotal=discounted,
        total_vat=total_vat,
        shipping_cost=round_money(shipping_cost),
        order_total=order_total,
    )
