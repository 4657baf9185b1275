from __future__ import annotations

from decimal import Decimal

from driftpy.constants.numeric_constants import BASE_PRECISION, QUOTE_PRECISION, SPOT_BALANCE_PRECISION
from driftpy.math.conversion import convert_to_number

# Perp funding rates are reported at 1e14, not driftpy's FUNDING_RATE_PRECISION.
FUNDING_RATE_PRECISION = 10**14
LAMPORTS_PER_SOL = 10**9


def format_number(value: int, precision: int) -> str:
    """Human form of a scaled integer, in fixed notation without trailing zeros."""
    digits = len(str(int(precision))) - 1
    number = round(float(convert_to_number(int(value), precision)), digits)
    if number.is_integer():
        return str(int(number))
    return format(Decimal(repr(number)), "f")
