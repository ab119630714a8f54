"""Fixed-point helpers. The ledger stores integer minor units (kobo);
Decimal is only used at the edges for parsing, rates and display."""
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP, ROUND_DOWN

MINOR_PER_UNIT = 100


def to_minor(value):
    """Parse a user-supplied major-unit amount ("1500.50", 1500, Decimal) into minor units.

    Raises ValueError for anything that is not a finite amount with at most two decimals.
    """
    if isinstance(value, bool) or value is None:
        raise ValueError("Amount is required")
    if isinstance(value, float):
        # Floats come from JSON bodies; route them through str to avoid binary artefacts
        value = repr(value)
    try:
        amount = Decimal(str(value))
    except InvalidOperation:
        raise ValueError(f"Invalid amount: {value!r}")
    if not amount.is_finite():
        raise ValueError(f"Invalid amount: {value!r}")
    minor = amount * MINOR_PER_UNIT
    if minor != minor.to_integral_value():
        raise ValueError("Amount cannot have more than two decimal places")
    return int(minor)


def format_minor(minor):
    """1050 -> '10.50'"""
    if minor is None:
        return None
    return str((Decimal(minor) / MINOR_PER_UNIT).quantize(Decimal('0.01')))


def apply_rate(minor, rate):
    """Percentage of a minor-unit amount, rounded half-up to the nearest minor unit."""
    return int((Decimal(minor) * Decimal(rate)).quantize(Decimal('1'), rounding=ROUND_HALF_UP))


def points_to_minor(points, rate):
    """Convert points to minor units at `rate` points per currency unit, rounding down."""
    units = Decimal(points) / Decimal(rate)
    return int((units * MINOR_PER_UNIT).quantize(Decimal('1'), rounding=ROUND_DOWN))
