"""Unit tests for American odds arithmetic."""

import math

import pytest

from linesentry.services.odds import (
    cents_delta,
    clamp,
    implied_probability,
    is_valid_price,
    safe_div,
    to_cents,
)


class TestImpliedProbability:
    """Test implied probability from American prices."""

    def test_favorite(self):
        assert implied_probability(-110) == pytest.approx(110 / 210)

    def test_underdog(self):
        assert implied_probability(150) == pytest.approx(0.4)

    def test_even_money_both_signs(self):
        """-100 and +100 are the same price."""
        assert implied_probability(-100) == implied_probability(100) == 0.5

    def test_zero_rejected(self):
        with pytest.raises(ValueError):
            implied_probability(0)


class TestCentsScale:
    """Test the continuous cents scale used for magnitudes."""

    def test_negative_prices_map_to_themselves(self):
        assert to_cents(-130) == -130

    def test_positive_prices_shift_by_200(self):
        assert to_cents(110) == -90

    def test_move_between_favorites(self):
        """-110 to -130 is a 20 cent move toward the side."""
        assert cents_delta(-110, -130) == -20

    def test_move_across_even(self):
        """+110 to -110 is 20 cents, not 220."""
        assert abs(cents_delta(110, -110)) == 20

    def test_drift_is_positive(self):
        assert cents_delta(-130, -110) == 20


class TestValidPrice:
    @pytest.mark.parametrize("price", [-100, 100, -10000, 250])
    def test_valid(self, price):
        assert is_valid_price(price)

    @pytest.mark.parametrize("price", [0, 99, -99, 50])
    def test_invalid(self, price):
        assert not is_valid_price(price)


class TestSafeDiv:
    """Division by zero yields the neutral value, never NaN or inf."""

    def test_zero_denominator_returns_neutral(self):
        assert safe_div(5, 0) == 0.0
        assert safe_div(5, 0, 1.0) == 1.0

    def test_nan_result_returns_neutral(self):
        assert safe_div(math.nan, 1.0, 0.5) == 0.5

    def test_regular_division(self):
        assert safe_div(8, 12) == pytest.approx(0.6667, abs=1e-4)


def test_clamp():
    assert clamp(1.5, 0, 1) == 1
    assert clamp(-0.5, 0, 1) == 0
    assert clamp(0.3, 0, 1) == 0.3
