"""Tests for powerperp/core/perpetual/math.py — pure fixed-point arithmetic."""

import pytest

from powerperp.core.perpetual.errors import LedgerArithmeticError, LedgerOverflowError
from powerperp.core.perpetual.math import (
    BASE,
    MAX_BALANCE,
    Signed,
    abs_val,
    base_div,
    base_mul,
    base_mul_round_up,
    checked_int,
    checked_uint,
    collateralization_not_decreased,
    from_signed,
    get_fraction,
    get_fraction_round_up,
    get_positive_and_negative_value,
    get_scaled_positive_and_negative_value,
    is_collateralized_value,
    is_underwater_value,
    signed_add,
    signed_sub,
    to_signed,
)


# ---------------------------------------------------------------------------
# base_mul / base_div
# ---------------------------------------------------------------------------

class TestBaseMul:
    def test_exact(self):
        assert base_mul(5 * BASE // 100, 100 * BASE) == 5 * BASE

    def test_rounds_down(self):
        assert base_mul(1, BASE - 1) == 0
        assert base_mul(3, BASE // 2) == 1

    def test_round_up(self):
        assert base_mul_round_up(1, BASE - 1) == 1
        assert base_mul_round_up(3, BASE // 2) == 2

    def test_round_up_exact_is_unchanged(self):
        assert base_mul_round_up(2 * BASE, 3 * BASE) == 6 * BASE

    def test_round_up_zero(self):
        assert base_mul_round_up(0, BASE) == 0
        assert base_mul_round_up(BASE, 0) == 0

    def test_negative_operand_rejected(self):
        with pytest.raises(LedgerArithmeticError):
            base_mul(-1, BASE)

    def test_base_div(self):
        assert base_div(BASE, 4 * BASE) == BASE // 4
        assert base_div(1, 3) == BASE // 3


class TestFraction:
    def test_floor(self):
        assert get_fraction(200, 5, 8) == 125
        assert get_fraction(10, 1, 3) == 3

    def test_ceil(self):
        assert get_fraction_round_up(200, 5, 8) == 125
        assert get_fraction_round_up(10, 1, 3) == 4

    def test_zero_denominator(self):
        with pytest.raises(LedgerArithmeticError, match="division_by_zero"):
            get_fraction(1, 1, 0)
        with pytest.raises(LedgerArithmeticError, match="division_by_zero"):
            get_fraction_round_up(1, 1, 0)


# ---------------------------------------------------------------------------
# Signed values
# ---------------------------------------------------------------------------

class TestSigned:
    def test_same_sign_sums(self):
        assert signed_add(Signed(3, True), Signed(4, True)) == Signed(7, True)
        assert signed_add(Signed(3, False), Signed(4, False)) == Signed(7, False)

    def test_opposite_sign_larger_wins(self):
        assert signed_add(Signed(3, True), Signed(5, False)) == Signed(2, False)
        assert signed_add(Signed(5, True), Signed(3, False)) == Signed(2, True)

    def test_zero_result_is_positive(self):
        assert signed_add(Signed(5, False), Signed(5, True)) == Signed(0, True)
        assert signed_add(Signed(5, True), Signed(5, False)) == Signed(0, True)

    def test_sub(self):
        assert signed_sub(Signed(5, True), Signed(8, True)) == Signed(3, False)
        assert signed_sub(Signed(5, False), Signed(2, False)) == Signed(3, False)

    def test_conversions(self):
        assert to_signed(-7) == Signed(7, False)
        assert to_signed(0) == Signed(0, True)
        assert from_signed(Signed(7, False)) == -7
        assert from_signed(signed_sub(to_signed(4), to_signed(9))) == -5

    def test_abs_val(self):
        assert abs_val(-42) == 42
        assert abs_val(0) == 0


class TestChecked:
    def test_uint_in_range(self):
        assert checked_uint(MAX_BALANCE, MAX_BALANCE, "x") == MAX_BALANCE

    def test_uint_overflow(self):
        with pytest.raises(LedgerOverflowError, match="overflow:x"):
            checked_uint(MAX_BALANCE + 1, MAX_BALANCE, "x")

    def test_uint_negative(self):
        with pytest.raises(LedgerOverflowError):
            checked_uint(-1, MAX_BALANCE, "x")

    def test_int_bound_is_symmetric(self):
        assert checked_int(-MAX_BALANCE, MAX_BALANCE, "x") == -MAX_BALANCE
        with pytest.raises(LedgerOverflowError):
            checked_int(-MAX_BALANCE - 1, MAX_BALANCE, "x")


# ---------------------------------------------------------------------------
# Valuation
# ---------------------------------------------------------------------------

class TestPositiveNegativeValue:
    def test_long_with_margin(self):
        assert get_positive_and_negative_value(10 * BASE, 2 * BASE, 50 * BASE) == (110 * BASE, 0)

    def test_short_with_margin(self):
        # maker from the liquidation walkthrough: -8 @ 50 against 200 margin
        assert get_positive_and_negative_value(200 * BASE, -8 * BASE, 50 * BASE) == (200 * BASE, 400 * BASE)

    def test_long_with_debt(self):
        assert get_positive_and_negative_value(-300 * BASE, 5 * BASE, 50 * BASE) == (250 * BASE, 300 * BASE)

    def test_short_rounds_exposure_down(self):
        assert get_positive_and_negative_value(0, -1, BASE // 2) == (0, 0)

    def test_short_boundary_at_fractional_price(self):
        # exposure floor(1.5) = 1 is fully backed by a margin of 1
        positive, negative = get_positive_and_negative_value(1, -1, 3 * BASE // 2)
        assert (positive, negative) == (1, 1)
        assert is_collateralized_value(positive, negative, BASE)

    def test_long_rounds_backing_down(self):
        assert get_positive_and_negative_value(0, 1, BASE // 2) == (0, 0)

    def test_empty(self):
        assert get_positive_and_negative_value(0, 0, BASE) == (0, 0)

    def test_scaled_value_is_unrounded(self):
        assert get_scaled_positive_and_negative_value(0, -1, 3 * BASE // 2) == (0, 3 * BASE // 2)
        assert get_scaled_positive_and_negative_value(-2, 3, BASE // 2) == (3 * BASE // 2, 2 * BASE)
        assert get_scaled_positive_and_negative_value(5, 0, BASE) == (5 * BASE, 0)


class TestCollateralization:
    def test_boundary_is_inclusive(self):
        assert is_collateralized_value(110, 100, BASE * 11 // 10)
        assert not is_collateralized_value(109, 100, BASE * 11 // 10)

    def test_no_exposure_always_collateralized(self):
        assert is_collateralized_value(0, 0, 2 * BASE)

    def test_underwater(self):
        assert is_underwater_value(99, 100)
        assert not is_underwater_value(100, 100)

    def test_ratio_not_decreased(self):
        assert collateralization_not_decreased((200, 400), (75, 150))
        assert collateralization_not_decreased((200, 400), (80, 150))
        assert not collateralization_not_decreased((200, 400), (74, 150))
