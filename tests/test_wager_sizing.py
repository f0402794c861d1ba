"""
Tests for bankroll-aware win-bet sizing
Run with: pytest tests/test_wager_sizing.py -v
"""

import math

import pytest

from backend.core.race_types import BankrollState, Entrant
from backend.core.wager_config import WagerSizingConfig
from backend.services import wager_sizing
from backend.services.race_analysis import analyze_race
from backend.services.wager_sizing import get_sizing_config, size_field_wagers, size_wager


class TestSizeWager:
    """Fractional Kelly through the bounds"""

    def test_quarter_kelly(self):
        rec = size_wager(0.30, 4.0, BankrollState.start(1000.0), WagerSizingConfig.conservative(), entrant_id="3")
        assert rec.should_bet
        assert rec.entrant_id == "3"
        assert rec.full_kelly_fraction == pytest.approx(0.2 / 3)
        assert rec.kelly_fraction == pytest.approx(0.2 / 3 * 0.25)
        assert rec.raw_bet_size == pytest.approx(1000.0 * 0.2 / 3 * 0.25)
        assert rec.rounded_bet_size == 17.0
        assert rec.expected_value == pytest.approx(0.2)
        assert rec.is_positive_ev
        assert rec.expected_growth_rate > 0

    def test_presets_scale_size(self):
        bankroll = BankrollState.start(1000.0)
        sizes = [
            size_wager(0.30, 4.0, bankroll, cfg).rounded_bet_size
            for cfg in (WagerSizingConfig.conservative(), WagerSizingConfig.moderate(), WagerSizingConfig.aggressive())
        ]
        assert sizes == [17.0, 33.0, 67.0]

    def test_percent_cap(self):
        rec = size_wager(0.60, 4.0, 1000.0, WagerSizingConfig.conservative())
        assert rec.rounded_bet_size == 50.0
        assert rec.was_capped
        assert "capped" in rec.reason

    def test_no_edge(self):
        rec = size_wager(0.25, 4.0, 1000.0)
        assert not rec.should_bet
        assert rec.rounded_bet_size == 0.0
        assert not rec.is_positive_ev

    def test_negative_edge(self):
        rec = size_wager(0.10, 5.0, 1000.0)
        assert not rec.should_bet
        assert rec.full_kelly_fraction < 0

    def test_capped_below_minimum_is_no_bet(self):
        rec = size_wager(0.30, 4.0, 30.0, WagerSizingConfig.conservative())
        assert not rec.should_bet
        assert rec.rounded_bet_size == 0.0
        assert rec.is_positive_ev
        assert "minimum" in rec.reason

    def test_min_edge(self):
        cfg = WagerSizingConfig(min_edge=0.25).validate()
        rec = size_wager(0.30, 4.0, 1000.0, cfg)
        assert not rec.should_bet
        assert rec.is_positive_ev

    @pytest.mark.parametrize("p,odds,bankroll", [
        (0.0, 4.0, 1000.0),
        (1.0, 4.0, 1000.0),
        (float("nan"), 4.0, 1000.0),
        (0.3, 1.0, 1000.0),
        (0.3, float("inf"), 1000.0),
        (0.3, 4.0, 0.0),
        (0.3, 4.0, -50.0),
    ])
    def test_invalid_input_never_raises(self, p, odds, bankroll):
        rec = size_wager(p, odds, bankroll)
        assert not rec.should_bet
        assert rec.rounded_bet_size == 0.0
        assert rec.reason

    @pytest.mark.parametrize("p,odds", [(0.2, 6.0), (0.5, 3.0), (0.7, 2.0), (0.9, 1.5), (0.05, 40.0)])
    def test_size_bounded(self, p, odds):
        bankroll = 400.0
        cfg = WagerSizingConfig.aggressive()
        rec = size_wager(p, odds, bankroll, cfg)
        assert rec.rounded_bet_size <= bankroll * cfg.max_bet_percent + 1e-9
        assert rec.rounded_bet_size <= bankroll

    def test_whole_bankroll_stake_keeps_growth_finite(self):
        cfg = WagerSizingConfig(min_bet=2.0, max_bet_percent=1.0, kelly_multiplier=1.0).validate()
        rec = size_wager(0.6, 4.0, 2.0, cfg)
        assert rec.should_bet
        assert rec.rounded_bet_size == 2.0
        assert math.isfinite(rec.expected_growth_rate)
        assert rec.expected_growth_rate == 0.0
        assert "entire bankroll" in rec.reason

    def test_bankroll_not_mutated(self):
        state = BankrollState.start(1000.0)
        size_wager(0.30, 4.0, state)
        assert state == BankrollState.start(1000.0)


class TestSizeFieldWagers:

    def _analysis(self):
        rows = [("1", 2.0, "8-5"), ("2", 1.6, "5-2"), ("3", 1.0, "4-1"),
                ("4", 1.5, "8-1"), ("5", 0.2, "10-1"), ("6", -0.5, "15-1")]
        return analyze_race([Entrant.from_odds_string(*r) for r in rows], temperature=1.0)

    def test_sizes_value_bets_only(self):
        sizing = size_field_wagers(self._analysis(), BankrollState.start(1000.0))
        assert [r.entrant_id for r in sizing.recommendations] == ["4"]
        assert sizing.total_stake == sizing.recommendations[0].rounded_bet_size
        assert not sizing.exceeds_bankroll

    def test_small_bankroll_full_kelly(self):
        cfg = WagerSizingConfig(min_bet=2.0, max_bet=500.0, max_bet_percent=1.0, kelly_multiplier=1.0).validate()
        sizing = size_field_wagers(self._analysis(), 3.0, cfg)
        assert sizing.total_stake <= 3.0


class TestDefaultConfig:

    def test_loaded_once(self, monkeypatch):
        monkeypatch.setattr(wager_sizing, "_default_config", None)
        monkeypatch.setenv("RISK_PROFILE", "moderate")
        first = get_sizing_config()
        monkeypatch.setenv("RISK_PROFILE", "aggressive")
        assert get_sizing_config() is first
        assert first.risk_profile == "moderate"
