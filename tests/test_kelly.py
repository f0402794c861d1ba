"""
Tests for Kelly criterion math and bet-size clamping
Run with: pytest tests/test_kelly.py -v
"""

import math

import pytest

from backend.core.kelly import (
    clamp_bet_size,
    expected_growth_rate,
    full_kelly,
    kelly_fraction,
    round_to_increment,
)


class TestFullKelly:
    """Unscaled Kelly fraction"""

    def test_positive_edge(self):
        # b = 3, (0.3 * 3 - 0.7) / 3
        assert full_kelly(0.30, 4.0) == pytest.approx(0.2 / 3)

    def test_break_even(self):
        assert full_kelly(0.25, 4.0) == pytest.approx(0.0)

    def test_negative_edge(self):
        assert full_kelly(0.20, 4.0) < 0

    def test_rejects_bad_probability(self):
        with pytest.raises(ValueError):
            full_kelly(1.0, 4.0)
        with pytest.raises(ValueError):
            full_kelly(0.0, 4.0)

    def test_rejects_bad_odds(self):
        with pytest.raises(ValueError):
            full_kelly(0.5, 1.0)
        with pytest.raises(ValueError):
            full_kelly(0.5, float("nan"))


class TestKellyFraction:

    def test_quarter_kelly_default(self):
        assert kelly_fraction(0.30, 4.0) == pytest.approx(0.2 / 3 * 0.25)

    def test_multiplier(self):
        assert kelly_fraction(0.30, 4.0, kelly_multiplier=1.0) == pytest.approx(0.2 / 3)

    def test_no_bet_without_edge(self):
        # p × odds ≤ 1
        assert kelly_fraction(0.25, 4.0) == 0.0
        assert kelly_fraction(0.10, 5.0) == 0.0


class TestGrowthRate:

    def test_zero_fraction(self):
        assert expected_growth_rate(0.3, 3.0, 0.0) == 0.0

    def test_full_kelly_positive_growth(self):
        f = full_kelly(0.30, 4.0)
        assert expected_growth_rate(0.30, 3.0, f) > 0

    def test_kelly_maximises_growth(self):
        f = full_kelly(0.30, 4.0)
        g = expected_growth_rate(0.30, 3.0, f)
        assert g > expected_growth_rate(0.30, 3.0, f * 0.5)
        assert g > expected_growth_rate(0.30, 3.0, f * 1.5)

    def test_ruin(self):
        assert expected_growth_rate(0.3, 3.0, 1.0) == -math.inf


class TestRounding:

    def test_nearest(self):
        assert round_to_increment(16.67, 1.0) == 17.0
        assert round_to_increment(16.2, 0.5) == 16.0

    def test_never_above_ceiling(self):
        assert round_to_increment(49.7, 1.0, ceiling=49.7) == 49.0


class TestClampBetSize:
    """Bounds, caps and rounding"""

    _bounds = dict(min_bet=2.0, max_bet=100.0, max_bet_percent=0.05, round_to=1.0)

    def test_within_bounds(self):
        assert clamp_bet_size(16.67, 1000.0, **self._bounds) == (17.0, False)

    def test_raised_to_min_bet(self):
        assert clamp_bet_size(0.8, 1000.0, **self._bounds) == (2.0, False)

    def test_percent_cap(self):
        size, capped = clamp_bet_size(400.0, 1000.0, **self._bounds)
        assert size == 50.0
        assert capped

    def test_max_bet(self):
        size, _ = clamp_bet_size(400.0, 10000.0, **self._bounds)
        assert size == 100.0

    def test_cap_below_min_bet_is_no_bet(self):
        # 5% of $30 is $1.50, under the $2 minimum.
        size, capped = clamp_bet_size(10.0, 30.0, **self._bounds)
        assert size == 0.0
        assert capped

    def test_never_exceeds_bankroll(self):
        bounds = dict(min_bet=2.0, max_bet=100.0, max_bet_percent=1.0, round_to=1.0)
        size, _ = clamp_bet_size(80.0, 50.0, **bounds)
        assert size <= 50.0

    def test_zero_bankroll(self):
        assert clamp_bet_size(10.0, 0.0, **self._bounds) == (0.0, False)

    @pytest.mark.parametrize("bankroll", [37.0, 250.0, 999.0, 5000.0])
    def test_cap_holds(self, bankroll):
        size, _ = clamp_bet_size(bankroll * 0.3, bankroll, **self._bounds)
        assert size <= bankroll * 0.05 + 1e-9
        assert size <= bankroll
