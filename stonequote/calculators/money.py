"""
Exact decimal arithmetic for money and linear measures.

Pure Python math on decimal.Decimal. No floats anywhere in the pricing path.
All public calculator methods hand their outputs through round_money() so
every monetary field leaves the engine at currency minor-unit precision.
"""

from decimal import ROUND_HALF_UP, Decimal

ZERO = Decimal("0")
ONE = Decimal("1")
HUNDRED = Decimal("100")

MONEY_QUANTUM = Decimal("0.01")   # 2 dp, AUD/NZD/USD minor unit
PERCENT_QUANTUM = Decimal("0.1")  # utilization reported to 1 dp

MM_PER_METRE = Decimal("1000")
SQ_MM_PER_SQ_METRE = Decimal("1000000")


def to_decimal(value) -> Decimal:
    """
    Coerce an int, str or Decimal to Decimal.

    Floats are converted through str() so 0.1 becomes Decimal("0.1"),
    not its binary approximation.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round_money(value) -> Decimal:
    """Round half-up to 2 dp. Always returns a Decimal with exactly 2 places."""
    return to_decimal(value).quantize(MONEY_QUANTUM, rounding=ROUND_HALF_UP)


def round_percent(value) -> Decimal:
    return to_decimal(value).quantize(PERCENT_QUANTUM, rounding=ROUND_HALF_UP)


def mm_to_metres(mm) -> Decimal:
    return to_decimal(mm) / MM_PER_METRE


def area_sq_metres(length_mm, width_mm) -> Decimal:
    """Exact area in m². Rounded only at output."""
    return to_decimal(length_mm) * to_decimal(width_mm) / SQ_MM_PER_SQ_METRE


def percent_of(amount, percent) -> Decimal:
    return to_decimal(amount) * to_decimal(percent) / HUNDRED


def safe_divide(numerator, denominator, default: Decimal = ZERO) -> Decimal:
    denominator = to_decimal(denominator)
    if denominator == ZERO:
        return default
    return to_decimal(numerator) / denominator


def sum_decimals(values) -> Decimal:
    total = ZERO
    for value in values:
        total += to_decimal(value)
    return total
