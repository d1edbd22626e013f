"""
Money helpers.

The gateway works in the smallest currency unit (pesewas, kobo, cents).
Display amounts are Decimals with two places; every conversion rounds
half-up so fee splits never leak a minor unit in one direction.
"""

from decimal import Decimal, ROUND_HALF_UP
from typing import Union

Number = Union[int, float, str, Decimal]

_CENT = Decimal("0.01")
_UNIT = Decimal("1")


def to_decimal(value: Number) -> Decimal:
    # str() first so floats like 0.1 don't carry binary noise
    return value if isinstance(value, Decimal) else Decimal(str(value))


def quantize_amount(value: Number) -> Decimal:
    return to_decimal(value).quantize(_CENT, rounding=ROUND_HALF_UP)


def to_minor(display: Number) -> int:
    """minor = round(display * 100)"""
    return int((to_decimal(display) * 100).quantize(_UNIT, rounding=ROUND_HALF_UP))


def from_minor(minor: int) -> Decimal:
    """display = minor / 100"""
    return (Decimal(minor) / 100).quantize(_CENT)


def percentage_of(amount_minor: int, percentage: Number) -> int:
    """round(amount * percentage / 100), in minor units."""
    share = Decimal(amount_minor) * to_decimal(percentage) / 100
    return int(share.quantize(_UNIT, rounding=ROUND_HALF_UP))


def rate_of(amount_minor: int, rate: Number) -> int:
    """round(amount * rate), in minor units. rate is a fraction, e.g. 0.10."""
    share = Decimal(amount_minor) * to_decimal(rate)
    return int(share.quantize(_UNIT, rounding=ROUND_HALF_UP))


def split_amount(total_minor: int, fee_percentage: Number) -> tuple[int, int]:
    """Return (platform_fee, owner_amount); they always sum to total_minor."""
    platform_fee = percentage_of(total_minor, fee_percentage)
    return platform_fee, total_minor - platform_fee
