"""
Tests for 18-digit fixed-point arithmetic.

Tests cover:
1. Quantization with explicit rounding
2. Exact mul_div in each rounding direction
3. Signed operands (fee deltas)
4. Three-factor denominators
5. Error cases
"""
import pytest
from decimal import Decimal, ROUND_CEILING, ROUND_DOWN, ROUND_FLOOR, ROUND_HALF_UP

from perp_reserve.fixed_point import to_fixed, mul_div, mul_div_div, mul, div


class TestToFixed:
    """Quantization to 18 fractional digits."""

    def test_keeps_eighteen_digits(self):
        assert to_fixed(Decimal("1.123456789012345678")) == Decimal("1.123456789012345678")

    def test_floors_by_default(self):
        assert to_fixed(Decimal("1.0000000000000000009")) == Decimal("1")

    def test_ceiling(self):
        assert to_fixed(Decimal("1.0000000000000000001"), ROUND_CEILING) == Decimal("1.000000000000000001")

    def test_accepts_int_and_str(self):
        assert to_fixed(5) == Decimal("5")
        assert to_fixed("0.5") == Decimal("0.5")

    def test_large_values_keep_precision(self):
        value = Decimal("123456789012345678901234567890.123456789012345678")
        assert to_fixed(value) == value

    def test_rejects_float(self):
        with pytest.raises(TypeError):
            to_fixed(0.1)

    def test_rejects_non_finite(self):
        with pytest.raises(ValueError):
            to_fixed(Decimal("Infinity"))


class TestMulDiv:
    """Exact x * y / d with a single rounding."""

    def test_exact_ratio(self):
        assert mul_div(Decimal("750"), Decimal("375"), Decimal("750")) == Decimal("375")

    def test_floor_of_repeating_quotient(self):
        assert mul_div(1, 1, 3) == Decimal("0.333333333333333333")

    def test_ceiling_of_repeating_quotient(self):
        assert mul_div(1, 1, 3, ROUND_CEILING) == Decimal("0.333333333333333334")

    def test_negative_floor_rounds_away_from_zero(self):
        assert mul_div(-1, 1, 3) == Decimal("-0.333333333333333334")

    def test_negative_round_down_truncates(self):
        assert mul_div(-1, 1, 3, ROUND_DOWN) == Decimal("-0.333333333333333333")

    def test_exact_result_ignores_rounding_direction(self):
        for rounding in (ROUND_FLOOR, ROUND_CEILING, ROUND_DOWN):
            assert mul_div(Decimal("500"), Decimal("0.5"), Decimal("1"), rounding) == Decimal("250")

    def test_division_by_zero(self):
        with pytest.raises(ZeroDivisionError):
            mul_div(1, 1, 0)

    def test_unsupported_rounding(self):
        with pytest.raises(ValueError):
            mul_div(1, 1, 3, ROUND_HALF_UP)


class TestMulDivDiv:
    """Two-factor denominators are never rounded on their own."""

    def test_rebate_divisor(self):
        # 500 * 0.5 / (1 * 1.01)
        result = mul_div_div(Decimal("500"), Decimal("0.5"), Decimal("1"), Decimal("1.01"), ROUND_CEILING)
        assert result == Decimal("247.524752475247524753")

    def test_floor(self):
        result = mul_div_div(Decimal("500"), Decimal("0.5"), Decimal("1"), Decimal("1.01"))
        assert result == Decimal("247.524752475247524752")

    def test_zero_denominator(self):
        with pytest.raises(ZeroDivisionError):
            mul_div_div(1, 1, 1, 0)


class TestMulAndDiv:
    """Two-operand convenience forms."""

    def test_mul(self):
        assert mul(Decimal("0.1"), Decimal("0.3")) == Decimal("0.03")

    def test_mul_truncates_signed(self):
        assert mul(Decimal("-0.000000000000000001"), Decimal("0.5"), ROUND_DOWN) == Decimal("0")

    def test_div_rebate(self):
        assert div(Decimal("500"), Decimal("1.01"), ROUND_CEILING) == Decimal("495.049504950495049505")
        assert div(Decimal("500"), Decimal("1.01")) == Decimal("495.049504950495049504")
