"""
Money helpers (``commerce_kernel.domain.money``).

Responsibility
--------------
The single rounding rule and the coercion from wire values to ``Decimal``
used by every engine and model.  Order figures are stored with two decimal
places, rounded half-up.

Architecture position
---------------------
**Kernel domain layer** -- pure functions, zero I/O.

Invariants enforced
-------------------
* No floats: ``to_decimal`` rejects ``float`` so binary rounding error can
  never enter a stored amount.
* ``round_money`` is the only rounding function for order figures.
"""

from decimal import ROUND_HALF_UP, Decimal, InvalidOperation

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0")
HUNDRED = Decimal("100")


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    Args:
        value: The Decimal value to round.
        decimal_places: Number of decimal places to round to.
        rounding: Rounding mode (default: ROUND_HALF_UP).

    Returns:
        Rounded Decimal value.
    """
    quantize_str = "0." + "0" * decimal_places
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def to_decimal(value: Decimal | int | str) -> Decimal:
    """Coerce an int, numeric string or Decimal into a Decimal.

    Raises:
        TypeError: If ``value`` is a float or another unsupported type.
        ValueError: If a string is not a valid number.
    """
    if isinstance(value, bool):
        raise TypeError("Boolean is not a monetary amount")
    if isinstance(value, Decimal):
        return value
    if isinstance(value, int):
        return Decimal(value)
    if isinstance(value, str):
        try:
            return Decimal(value.strip())
        except InvalidOperation as exc:
            raise ValueError(f"Not a valid amount: {value!r}") from exc
    raise TypeError(
        f"Amounts must be Decimal, int or str, got {type(value).__name__}"
    )


def clamp_non_negative(value: Decimal) -> Decimal:
    """Return ``value`` or zero, whichever is larger."""
    return value if value > ZERO else ZERO
