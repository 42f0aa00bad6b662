"""
test_fixed.py - Unit tests for the checked 64.64 fixed-point type

Tests:
- Construction from int, str, Decimal; float rejection
- Truncating multiplication and division
- Overflow, underflow and division by zero raise FixedPointError
- Rounding helpers (floor / ceil / div_ceil)
- Comparison with ints, hashing, immutability
"""

import copy
import pickle
from decimal import Decimal

import pytest
from hypothesis import given, settings
from hypothesis import strategies as st

from margin_ledger import FixedPoint, FixedPointError, ArithmeticFault, fp
from margin_ledger.fixed import SCALE, RAW_MAX


class TestConstruction:

    def test_from_int_is_exact(self):
        assert FixedPoint.from_int(100).raw == 100 * SCALE
        assert FixedPoint.from_int(100).floor() == 100

    def test_from_str_and_decimal_agree(self):
        assert FixedPoint.from_str("1.05") == FixedPoint.from_decimal(Decimal("1.05"))

    def test_binary_fraction_is_exact(self):
        assert FixedPoint.from_str("2.5").raw == 5 * SCALE // 2
        assert str(FixedPoint.from_str("2.5")) == "2.5"

    def test_float_rejected(self):
        with pytest.raises(TypeError):
            FixedPoint.from_decimal(1.5)

    def test_bool_rejected(self):
        with pytest.raises(TypeError):
            FixedPoint.from_int(True)

    def test_negative_rejected(self):
        with pytest.raises(FixedPointError):
            FixedPoint.from_int(-1)
        with pytest.raises(FixedPointError):
            FixedPoint.from_str("-0.5")

    def test_too_large_rejected(self):
        with pytest.raises(FixedPointError):
            FixedPoint.from_int(1 << 64)

    def test_ratio_truncates_once(self):
        third = FixedPoint.ratio(1, 3)
        assert third.raw == SCALE // 3

    def test_ratio_handles_wide_operands(self):
        # 10**36 does not fit the integer part but the quotient does
        assert FixedPoint.ratio(10 ** 36, 10 ** 36) == FixedPoint.ONE

    def test_fp_shorthand(self):
        assert fp(3) == FixedPoint.from_int(3)
        assert fp("0.25") == FixedPoint.from_str("0.25")

    def test_immutable(self):
        x = fp(1)
        with pytest.raises(AttributeError):
            x._raw = 5


class TestArithmetic:

    def test_add_sub(self):
        assert fp("1.5") + fp("2.25") == fp("3.75")
        assert fp(5) - 2 == fp(3)
        assert 10 - fp(4) == fp(6)

    def test_mul_truncates_toward_zero(self):
        third = fp(1) / 3
        assert (third * 3).raw == (SCALE // 3) * 3
        assert third * 3 < fp(1)

    def test_div(self):
        assert fp(100) / fp("1.25") == fp(80)
        assert 1 / fp(4) == fp("0.25")

    def test_sub_below_zero_raises(self):
        with pytest.raises(FixedPointError):
            fp(1) - fp(2)

    def test_overflow_raises(self):
        with pytest.raises(FixedPointError):
            FixedPoint.MAX + FixedPoint(1)
        with pytest.raises(FixedPointError):
            fp(1 << 40) * fp(1 << 40)

    def test_division_by_zero_raises(self):
        with pytest.raises(FixedPointError):
            fp(1) / FixedPoint.ZERO

    def test_errors_are_arithmetic_faults(self):
        assert issubclass(FixedPointError, ArithmeticFault)

    def test_unsupported_operand(self):
        with pytest.raises(TypeError):
            fp(1) + 1.0


class TestRounding:

    def test_floor_and_ceil(self):
        x = fp("104.999")
        assert x.floor() == 104
        assert x.ceil() == 105

    def test_ceil_of_integer_is_itself(self):
        assert fp(7).ceil() == 7

    def test_to_decimal(self):
        assert fp("0.5").to_decimal() == Decimal("0.5")

    def test_div_ceil_rounds_up(self):
        third = fp(1).div_ceil(3)
        assert third.raw == SCALE // 3 + 1
        assert third * 3 >= fp(1)
        assert fp(100).div_ceil(fp("1.25")) == fp(80)

    def test_div_ceil_by_zero_raises(self):
        with pytest.raises(FixedPointError):
            fp(1).div_ceil(FixedPoint.ZERO)


class TestComparison:

    def test_compare_with_int(self):
        assert fp("1.01") > 1
        assert fp(1) == 1
        assert fp("0.99") < 1

    def test_hash_matches_equality(self):
        assert hash(fp("1.5")) == hash(FixedPoint.from_decimal(Decimal("1.50")))

    def test_bool(self):
        assert not FixedPoint.ZERO
        assert FixedPoint.ONE

    def test_max_is_representable_maximum(self):
        assert FixedPoint.MAX.raw == RAW_MAX

    def test_copy_and_pickle(self):
        x = fp("3.125")
        assert copy.deepcopy(x) is x
        assert pickle.loads(pickle.dumps(x)) == x

    def test_repr(self):
        assert repr(fp("2.5")) == "FixedPoint('2.5')"


class TestProperties:

    @given(st.integers(min_value=0, max_value=2 ** 62), st.integers(min_value=0, max_value=2 ** 62))
    @settings(max_examples=100)
    def test_integer_addition_is_exact(self, a, b):
        assert (fp(a) + fp(b)).floor() == a + b

    @given(st.integers(min_value=1, max_value=10 ** 12), st.integers(min_value=1, max_value=10 ** 6))
    @settings(max_examples=100)
    def test_division_then_multiplication_never_exceeds(self, amount, divisor):
        shares = fp(amount) / fp(divisor)
        assert shares * fp(divisor) <= fp(amount)

    @given(st.integers(min_value=1, max_value=10 ** 12), st.integers(min_value=1, max_value=10 ** 6))
    @settings(max_examples=100)
    def test_ceil_division_then_multiplication_never_falls_short(self, amount, divisor):
        index = fp(divisor) / 7
        shares = fp(amount).div_ceil(index)
        assert shares * index >= fp(amount)
