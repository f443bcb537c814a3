"""
Quantity Configuration - Single Source of Truth

Quantities, prices and stock counters are stored as NUMERIC(18, 4). A value
with more decimal places than the column holds would be rounded on write,
so line arithmetic done in Python would no longer match what the database
kept (e.g. 99.99999 received against 100 ordered is stored as 100.0000 but
the line stays open in memory). Inputs are rejected instead of rounded.

Import QUANTITY_SCALE and the helpers from here; do not repeat the 4.
"""
from decimal import ROUND_HALF_UP, Decimal

QUANTITY_PRECISION = 18
QUANTITY_SCALE = 4

# Smallest storable step, used to round computed amounts such as line totals
QUANTUM = Decimal(1).scaleb(-QUANTITY_SCALE)


def decimal_places(value: Decimal) -> int:
    """Number of significant decimal places (trailing zeros ignored)."""
    exponent = value.normalize().as_tuple().exponent
    return max(0, -exponent)


def fits_scale(value: Decimal) -> bool:
    return decimal_places(value) <= QUANTITY_SCALE


def round_amount(value: Decimal) -> Decimal:
    return value.quantize(QUANTUM, rounding=ROUND_HALF_UP)
