"""Rounding helpers for charge amounts."""
from decimal import Decimal, ROUND_HALF_UP

WHOLE = Decimal("1")
PAISE = Decimal("0.01")


def round_half_up(value, places: int = 0) -> Decimal:
    """Round half away from zero; 2.5 -> 3, not 2."""
    exponent = WHOLE if places == 0 else Decimal(1).scaleb(-places)
    return Decimal(str(value)).quantize(exponent, rounding=ROUND_HALF_UP)


def round_whole(value) -> int:
    return int(round_half_up(value))
