"""
fixed_point.py - 18-digit fixed-point arithmetic

Every amount handled by the reserve is a Decimal with at most 18 fractional
digits. Products and quotients are computed exactly on integers scaled by
10**18 and rounded once, in an explicit direction:

    ROUND_FLOOR    - outflows from the reserve (redemption, rollover output)
    ROUND_CEILING  - inputs owed to the reserve that are derived by division
    ROUND_DOWN     - signed fee amounts (truncate toward zero)

Functions:
- to_fixed(value, rounding): quantize to 18 fractional digits
- mul_div(x, y, denominator, rounding): exact x * y / denominator
- mul_div_div(x, y, d1, d2, rounding): exact x * y / (d1 * d2)
- mul(x, y, rounding), div(x, y, rounding): two-operand forms
"""

from __future__ import annotations
from decimal import (
    Decimal, ROUND_CEILING, ROUND_DOWN, ROUND_FLOOR, localcontext,
)
from typing import Union

from .core import FIXED_POINT_DECIMALS, FIXED_POINT_QUANTUM


Numeric = Union[Decimal, int, str]

_SCALE = 10 ** FIXED_POINT_DECIMALS

_SUPPORTED_ROUNDING = (ROUND_FLOOR, ROUND_CEILING, ROUND_DOWN)


def _as_decimal(value: Numeric) -> Decimal:
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        raise TypeError("float amounts are not accepted; pass a Decimal or str")
    return Decimal(value)


def to_fixed(value: Numeric, rounding: str = ROUND_FLOOR) -> Decimal:
    """
    Quantize a value to 18 fractional digits.

    Raises:
        ValueError: If value is NaN or infinite
    """
    value = _as_decimal(value)
    if not value.is_finite():
        raise ValueError(f"Fixed-point value must be finite, got {value}")
    with localcontext() as ctx:
        ctx.prec = 200
        return value.quantize(FIXED_POINT_QUANTUM, rounding=rounding)


def _to_scaled(value: Numeric) -> int:
    """Exact integer representation of a fixed-point value (value * 10**18)."""
    fixed = to_fixed(value)
    with localcontext() as ctx:
        ctx.prec = 200
        return int(fixed.scaleb(FIXED_POINT_DECIMALS))


def _from_scaled(scaled: int) -> Decimal:
    with localcontext() as ctx:
        ctx.prec = 200
        return Decimal(scaled).scaleb(-FIXED_POINT_DECIMALS).quantize(FIXED_POINT_QUANTUM)


def _divide(numerator: int, denominator: int, rounding: str) -> int:
    """Integer division with an explicit rounding direction."""
    quotient, remainder = divmod(numerator, denominator)
    if remainder == 0:
        return quotient
    # divmod floors; adjust for the other directions
    if rounding == ROUND_FLOOR:
        return quotient
    if rounding == ROUND_CEILING:
        return quotient + 1
    # ROUND_DOWN: toward zero
    if (numerator < 0) != (denominator < 0):
        return quotient + 1
    return quotient


def mul_div(
    x: Numeric,
    y: Numeric,
    denominator: Numeric,
    rounding: str = ROUND_FLOOR,
) -> Decimal:
    """
    Compute x * y / denominator exactly, rounded once to 18 fractional digits.

    Operands are first quantized (floor) to 18 fractional digits.

    Args:
        x, y: Factors (signed)
        denominator: Divisor (signed, non-zero)
        rounding: ROUND_FLOOR (default), ROUND_CEILING or ROUND_DOWN

    Raises:
        ZeroDivisionError: If denominator is zero
        ValueError: If rounding is not supported

    Example:
        mul_div(Decimal("750"), Decimal("375"), Decimal("750"))  # Decimal("375")
    """
    if rounding not in _SUPPORTED_ROUNDING:
        raise ValueError(f"Unsupported rounding mode: {rounding}")
    d = _to_scaled(denominator)
    if d == 0:
        raise ZeroDivisionError("fixed-point division by zero")
    # (x*S)(y*S)/(d*S) = (x*y/d)*S
    return _from_scaled(_divide(_to_scaled(x) * _to_scaled(y), d, rounding))


def mul_div_div(
    x: Numeric,
    y: Numeric,
    d1: Numeric,
    d2: Numeric,
    rounding: str = ROUND_FLOOR,
) -> Decimal:
    """
    Compute x * y / (d1 * d2) exactly, rounded once.

    The product d1 * d2 is never rounded to 18 digits on its own.
    """
    if rounding not in _SUPPORTED_ROUNDING:
        raise ValueError(f"Unsupported rounding mode: {rounding}")
    denominator = _to_scaled(d1) * _to_scaled(d2)
    if denominator == 0:
        raise ZeroDivisionError("fixed-point division by zero")
    # (x*S)(y*S)*S/((d1*S)(d2*S)) = (x*y/(d1*d2))*S
    return _from_scaled(_divide(_to_scaled(x) * _to_scaled(y) * _SCALE, denominator, rounding))


def mul(x: Numeric, y: Numeric, rounding: str = ROUND_FLOOR) -> Decimal:
    """x * y rounded to 18 fractional digits."""
    return mul_div(x, y, Decimal(1), rounding)


def div(x: Numeric, y: Numeric, rounding: str = ROUND_FLOOR) -> Decimal:
    """x / y rounded to 18 fractional digits."""
    return mul_div(x, Decimal(1), y, rounding)
