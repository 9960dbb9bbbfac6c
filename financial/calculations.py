"""
Financial calculations module with precise Decimal arithmetic.

Ledger amounts are never rounded when they are stored: a trade moves exactly
``amount * price`` of cash. Rounding only happens when a value is rendered for
display on the wire.
"""

from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, MAX_EMAX, MAX_PREC, MIN_EMIN, localcontext
from typing import Union

from config.constants import DISPLAY_DECIMAL_PLACES

# Type alias for numeric inputs that will be converted to Decimal
NumericInput = Union[int, str, Decimal]

# Type alias for validated financial values (should always be Decimal)
FinancialDecimal = Decimal

_DISPLAY_QUANTUM = Decimal(1).scaleb(-DISPLAY_DECIMAL_PLACES)


def validate_no_float_usage(*args, function_name: str = "financial_function") -> None:
    """Validate that no float values are being passed to financial functions.

    Args:
        *args: Arguments to validate
        function_name: Name of the function for error messages

    Raises:
        ValueError: If any argument is a float
    """
    for i, arg in enumerate(args):
        if isinstance(arg, float):
            raise ValueError(
                f"Float usage detected in {function_name} (argument {i}): {arg}. "
                f"Use Decimal instead to avoid precision issues."
            )


def to_decimal(value: NumericInput) -> FinancialDecimal:
    """
    Convert a value to an exact, finite Decimal.

    Args:
        value: int, str or Decimal

    Returns:
        Decimal: The exact value, unrounded

    Raises:
        ValueError: If the value is a float, not numeric, or not finite

    Examples:
        >>> to_decimal("3.4")
        Decimal('3.4')
        >>> to_decimal(100)
        Decimal('100')
    """
    validate_no_float_usage(value, function_name="to_decimal")
    try:
        dec = value if isinstance(value, Decimal) else Decimal(str(value).strip())
    except (InvalidOperation, ValueError, TypeError) as e:
        raise ValueError(f"Not a number: {value!r}") from e
    if not dec.is_finite():
        raise ValueError(f"Not a finite number: {value!r}")
    return dec


def calculate_trade_total(amount: NumericInput, price: NumericInput) -> FinancialDecimal:
    """
    Calculate the cash moved by a trade.

    Args:
        amount: Number of units traded (fractional allowed)
        price: Price per unit

    Returns:
        Decimal: ``amount * price`` with full Decimal precision

    Examples:
        >>> calculate_trade_total("3.4", "1.35")
        Decimal('4.590')
        >>> calculate_trade_total(2, "1.45")
        Decimal('2.90')
    """
    amount_dec = to_decimal(amount)
    price_dec = to_decimal(price)
    with localcontext() as ctx:
        _widen_context(ctx, len(amount_dec.as_tuple().digits) + len(price_dec.as_tuple().digits))
        return amount_dec * price_dec


def round_for_display(value: NumericInput) -> FinancialDecimal:
    """
    Round a value half-up to the display precision (2 decimal places).

    Examples:
        >>> round_for_display(Decimal('95.41'))
        Decimal('95.41')
        >>> round_for_display(Decimal('3.005'))
        Decimal('3.01')
    """
    dec = to_decimal(value)
    with localcontext() as ctx:
        # the quantized result carries every integer digit plus the display places
        _widen_context(ctx, max(dec.adjusted(), 0) + DISPLAY_DECIMAL_PLACES + 2)
        return dec.quantize(_DISPLAY_QUANTUM, rounding=ROUND_HALF_UP)


def format_amount(value: NumericInput) -> str:
    """Render an amount the way the wire protocol prints it ("95.41")."""
    return f"{round_for_display(value):.{DISPLAY_DECIMAL_PLACES}f}"


def normalize_stored_decimal(value: NumericInput) -> str:
    """Serialize a Decimal for text storage without losing precision.

    Exponent notation is avoided so CSV files and database rows stay
    readable ("0.000001" rather than "1E-6").
    """
    dec = to_decimal(value)
    return format(dec, 'f')


def _widen_context(ctx, digits: int) -> None:
    """Give a local context room for ``digits`` significant digits and any exponent."""
    ctx.prec = min(max(ctx.prec, digits), MAX_PREC)
    ctx.Emax = MAX_EMAX
    ctx.Emin = MIN_EMIN


def apply_delta(value: NumericInput, delta: NumericInput) -> FinancialDecimal:
    """Add a signed delta to a stored balance or quantity without rounding.

    Examples:
        >>> apply_delta(Decimal("100.00"), Decimal("-4.590"))
        Decimal('95.410')
    """
    base = to_decimal(value)
    change = to_decimal(delta)
    span = (max(base.adjusted(), change.adjusted())
            - min(base.as_tuple().exponent, change.as_tuple().exponent) + 2)
    with localcontext() as ctx:
        _widen_context(ctx, span)
        return base + change
