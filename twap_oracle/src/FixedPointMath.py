"""FixedPointMath: Deterministic integer helpers shared by the oracle core.

Prices are unsigned integers scaled by ``10**PRICE_DECIMALS``; thresholds are
basis points. All divisions truncate toward zero, never round to nearest.

.. code-block:: python

    >>> deviation_bps(105_000_000, 100_000_000)
    500
    >>> to_fixed("1.5")
    150000000
"""

from __future__ import annotations

from decimal import ROUND_DOWN, Decimal
from typing import Iterable

PRICE_DECIMALS = 8
PRICE_SCALE = 10**PRICE_DECIMALS
BPS_DENOMINATOR = 10_000


def mul_div(a: int, b: int, denominator: int) -> int:
    """Compute ``a * b / denominator`` with truncating integer division.

    :param a: First factor.
    :param b: Second factor.
    :param denominator: Divisor.
    :returns: Truncated quotient.
    :raises ZeroDivisionError: If denominator is zero.
    """
    if denominator == 0:
        raise ZeroDivisionError("mul_div denominator is zero")
    return (a * b) // denominator


def deviation_bps(value: int, reference: int) -> int:
    """Absolute deviation of ``value`` from ``reference`` in basis points.

    :param value: Price being compared.
    :param reference: Reference price, must be positive.
    :returns: ``|value - reference| * 10000 // reference``.
    :raises ValueError: If reference is not positive.

    .. code-block:: python

        >>> deviation_bps(115_000_000, 100_000_000)
        1500
    """
    if reference <= 0:
        raise ValueError("reference price must be positive")
    return mul_div(abs(value - reference), BPS_DENOMINATOR, reference)


def median(values: Iterable[int]) -> int:
    """Integer median; even-length input yields the truncated mean of the middle pair.

    :param values: Prices to take the median of.
    :returns: Median price.
    :raises ValueError: If values is empty.
    """
    ordered = sorted(values)
    count = len(ordered)
    if count == 0:
        raise ValueError("median of empty sequence")

    mid = count // 2
    if count % 2 == 1:
        return ordered[mid]
    return (ordered[mid - 1] + ordered[mid]) // 2


def to_fixed(value: int | str | Decimal, decimals: int = PRICE_DECIMALS) -> int:
    """Convert a decimal price into its scaled integer representation.

    Strings go through :class:`~decimal.Decimal` so "100.12345678" is exact.
    Excess precision is truncated.

    :param value: Human-readable price.
    :param decimals: Implied decimal places of the result.
    :returns: Scaled integer price.
    :raises ValueError: If value is negative or not a number.
    """
    try:
        amount = Decimal(str(value))
    except ArithmeticError as e:
        raise ValueError(f"Invalid price value {value!r}") from e
    if not amount.is_finite() or amount < 0:
        raise ValueError(f"Invalid price value {value!r}")
    scaled = (amount * (Decimal(10) ** decimals)).quantize(Decimal(1), rounding=ROUND_DOWN)
    return int(scaled)


def from_fixed(value: int, decimals: int = PRICE_DECIMALS) -> Decimal:
    """Convert a scaled integer price back to a :class:`~decimal.Decimal`."""
    return Decimal(value) / (Decimal(10) ** decimals)
