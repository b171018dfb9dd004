"""
fixed_point.py - Exact Integer Money Math

Every amount is a non-negative int in base units. Prices, ratios and bid
increments are Decimal and are converted exactly to Fraction, so all
arithmetic is rational and every rounding happens once, at the end, in a
direction fixed by the call site:

    floor   amounts the vault pays out (principal, exchange output)
    ceiling amounts the vault must receive or that decide solvency
            (required collateral, minimum bids)

Conventions:
    P  price: pegged units per whole reserve unit (e.g. Decimal("20"))
    d  decimals of the pegged token
    r  decimals of the reserve asset

    reserve_to_peg(a) = a * P * 10**d / 10**r
    peg_to_reserve(p) = p * 10**r / (P * 10**d)
"""

from __future__ import annotations
from decimal import Decimal
from fractions import Fraction
from typing import Union

Number = Union[int, Decimal, Fraction]

ONE_PERCENT = Decimal("0.01")


def _exact(value: Number) -> Fraction:
    """Convert an int, Decimal or Fraction to an exact Fraction. Floats are refused."""
    if isinstance(value, float):
        raise TypeError("floats are not allowed in money math, use Decimal")
    if isinstance(value, Fraction):
        return value
    return Fraction(value)


def floor_div(x: Fraction) -> int:
    """Largest int <= x."""
    return x.numerator // x.denominator


def ceil_div(x: Fraction) -> int:
    """Smallest int >= x."""
    return -((-x.numerator) // x.denominator)


def mul_div(a: Number, b: Number, c: Number) -> Fraction:
    """Exact a * b / c."""
    divisor = _exact(c)
    if divisor == 0:
        raise ZeroDivisionError("mul_div by zero")
    return _exact(a) * _exact(b) / divisor


def floor_mul_div(a: Number, b: Number, c: Number) -> int:
    """floor(a * b / c)"""
    return floor_div(mul_div(a, b, c))


def ceil_mul_div(a: Number, b: Number, c: Number) -> int:
    """ceil(a * b / c)"""
    return ceil_div(mul_div(a, b, c))


def reserve_to_peg(amount: Number, price: Number, decimals: int, reserve_decimals: int) -> Fraction:
    """Exact pegged base units worth `amount` reserve base units at `price`."""
    return mul_div(amount, _exact(price) * 10 ** decimals, 10 ** reserve_decimals)


def peg_to_reserve(amount: Number, price: Number, decimals: int, reserve_decimals: int) -> Fraction:
    """Exact reserve base units worth `amount` pegged base units at `price`."""
    price = _exact(price)
    if price <= 0:
        raise ValueError(f"price must be positive, got {price}")
    return mul_div(amount, 10 ** reserve_decimals, price * 10 ** decimals)


def is_ratio_at_least(
    collateral: int,
    principal: int,
    price: Number,
    decimals: int,
    reserve_decimals: int,
    threshold: Number,
) -> bool:
    """
    True if collateral / value(principal) >= threshold.

    Compared by cross-multiplication so no division rounds:
    collateral * P * 10**d >= threshold * principal * 10**r
    """
    lhs = collateral * _exact(price) * 10 ** decimals
    rhs = _exact(threshold) * principal * 10 ** reserve_decimals
    return lhs >= rhs


def min_outbid(current_bid: int, increment: Number = ONE_PERCENT) -> int:
    """Smallest bid that beats current_bid by at least `increment`: ceil(bid * (1 + increment))."""
    return ceil_div(current_bid * (1 + _exact(increment)))
