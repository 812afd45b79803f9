"""Fixed-point money helpers shared by the validator and the balance engine."""

from decimal import ROUND_HALF_UP, Decimal, getcontext

getcontext().prec = 28
CENTS = Decimal("0.01")
ZERO = Decimal("0.00")

# Legacy split-validation trigger tolerance
TOLERANCE = Decimal("0.01")


def to_decimal(value) -> Decimal:
    """Convert int/float/str/Decimal to Decimal without float artifacts."""
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    return Decimal(str(value))


def qround(d) -> Decimal:
    """Quantize to cents with ROUND_HALF_UP."""
    return to_decimal(d).quantize(CENTS, rounding=ROUND_HALF_UP)


def within_tolerance(a, b, tolerance: Decimal = TOLERANCE) -> bool:
    return abs(to_decimal(a) - to_decimal(b)) <= tolerance
