"""Pure fixed-point arithmetic for the perpetual ledger.

Every function is stateless and operates on plain Python ints. Amounts, prices,
rates and ratios are base-scaled fixed-point numbers (``BASE = 1e18``).

Rounding is always explicit: each helper either floors or ceils, and callers
pick the direction that favours the solvency of the ledger (credits round
down, debits round up).
"""

from __future__ import annotations

from typing import NamedTuple

from .errors import LedgerArithmeticError, LedgerOverflowError

BASE: int = 10**18

# Widths of the persisted fields.
MAX_UINT32: int = 2**32 - 1
MAX_UINT120: int = 2**120 - 1
MAX_UINT128: int = 2**128 - 1

MAX_BALANCE: int = MAX_UINT120
MAX_INDEX_VALUE: int = MAX_UINT128
MAX_TIMESTAMP: int = MAX_UINT32


# -- Basic helpers -----------------------------------------------------------

def abs_val(x: int) -> int:
    """Absolute value of *x*."""
    return x if x >= 0 else -x


def checked_uint(value: int, bound: int, name: str) -> int:
    """Return *value* unchanged if ``0 <= value <= bound``, else raise."""
    if value < 0 or value > bound:
        raise LedgerOverflowError(f"overflow:{name}", f"{name}={value} outside [0, {bound}]")
    return value


def checked_int(value: int, bound: int, name: str) -> int:
    """Return *value* unchanged if ``|value| <= bound``, else raise."""
    if abs_val(value) > bound:
        raise LedgerOverflowError(f"overflow:{name}", f"|{name}|={abs_val(value)} exceeds {bound}")
    return value


def _unsigned(*values: int) -> None:
    for v in values:
        if v < 0:
            raise LedgerArithmeticError("negative_operand", f"unsigned operand expected, got {v}")


# -- Fixed-point multiplication / division ----------------------------------

def base_mul(a: int, b: int) -> int:
    """``floor(a * b / BASE)``."""
    _unsigned(a, b)
    return (a * b) // BASE


def base_mul_round_up(a: int, b: int) -> int:
    """``ceil(a * b / BASE)``."""
    _unsigned(a, b)
    if a == 0 or b == 0:
        return 0
    return (a * b - 1) // BASE + 1


def base_div(a: int, b: int) -> int:
    """``floor(a * BASE / b)``."""
    return get_fraction(a, BASE, b)


def get_fraction(target: int, numerator: int, denominator: int) -> int:
    """``floor(target * numerator / denominator)``."""
    _unsigned(target, numerator)
    if denominator <= 0:
        raise LedgerArithmeticError("division_by_zero", "fraction denominator must be positive")
    return (target * numerator) // denominator


def get_fraction_round_up(target: int, numerator: int, denominator: int) -> int:
    """``ceil(target * numerator / denominator)``."""
    _unsigned(target, numerator)
    if denominator <= 0:
        raise LedgerArithmeticError("division_by_zero", "fraction denominator must be positive")
    if target == 0 or numerator == 0:
        return 0
    return (target * numerator - 1) // denominator + 1


# -- Sign-and-magnitude values -----------------------------------------------

class Signed(NamedTuple):
    """A ``(magnitude, is_positive)`` pair. Zero conventionally carries ``+``."""

    magnitude: int
    is_positive: bool = True


def to_signed(value: int) -> Signed:
    return Signed(abs_val(value), value >= 0)


def from_signed(value: Signed) -> int:
    return value.magnitude if value.is_positive else -value.magnitude


def signed_add(a: Signed, b: Signed) -> Signed:
    """Add two signed values.

    Same sign: magnitudes sum and the sign is kept. Opposite signs: the smaller
    magnitude is subtracted from the larger and the larger one's sign wins.
    """
    if a.is_positive == b.is_positive:
        return Signed(a.magnitude + b.magnitude, a.is_positive)
    if a.magnitude >= b.magnitude:
        mag = a.magnitude - b.magnitude
        return Signed(mag, a.is_positive or mag == 0)
    return Signed(b.magnitude - a.magnitude, b.is_positive)


def signed_sub(a: Signed, b: Signed) -> Signed:
    """``a - b`` (adds the negation of *b*)."""
    return signed_add(a, Signed(b.magnitude, not b.is_positive))


# -- Balance valuation -------------------------------------------------------

def get_positive_and_negative_value(margin: int, position: int, price: int) -> tuple[int, int]:
    """Split an account into its total backing and total exposure.

    Returns ``(positive, negative)``, both non-negative. The position is valued
    as ``base_mul(|position|, price)`` on either side.
    """
    positive = 0
    negative = 0
    if margin > 0:
        positive += margin
    else:
        negative += -margin
    if position > 0:
        positive += base_mul(position, price)
    elif position < 0:
        negative += base_mul(-position, price)
    return positive, negative


def get_scaled_positive_and_negative_value(margin: int, position: int, price: int) -> tuple[int, int]:
    """Like `get_positive_and_negative_value` but unrounded, scaled by ``BASE``."""
    positive = 0
    negative = 0
    if margin > 0:
        positive += margin * BASE
    else:
        negative += -margin * BASE
    if position > 0:
        positive += position * price
    elif position < 0:
        negative += -position * price
    return positive, negative


def is_collateralized_value(positive: int, negative: int, min_collateral: int) -> bool:
    """``positive * BASE >= negative * min_collateral``."""
    return positive * BASE >= negative * min_collateral


def is_underwater_value(positive: int, negative: int) -> bool:
    """Net account value is negative."""
    return negative > positive


def collateralization_not_decreased(
    initial: tuple[int, int],
    current: tuple[int, int],
) -> bool:
    """``current_pos / current_neg >= initial_pos / initial_neg``, cross-multiplied."""
    init_pos, init_neg = initial
    cur_pos, cur_neg = current
    return cur_pos * init_neg >= init_pos * cur_neg
