"""
Tests for entrant and bankroll value objects
Run with: pytest tests/test_race_types.py -v
"""

import dataclasses
import math

import pytest

from backend.core.race_types import BankrollState, Entrant, active_entrants, duplicate_ids


class TestEntrant:

    def test_from_odds_string(self):
        e = Entrant.from_odds_string("3", 1.7, "5-2", name="Shadow Fax")
        assert e.odds_decimal == pytest.approx(3.5)
        assert e.has_valid_odds

    def test_unparseable_odds_flagged(self):
        e = Entrant.from_odds_string("3", 1.7, "SCR")
        assert math.isnan(e.odds_decimal)
        assert not e.has_valid_odds

    def test_frozen(self):
        e = Entrant(id="1", base_score=1.0, odds_display="2-1", odds_decimal=3.0)
        with pytest.raises(dataclasses.FrozenInstanceError):
            e.odds_decimal = 4.0

    def test_active_entrants(self):
        field = [
            Entrant(id="1", base_score=1.0, odds_display="", odds_decimal=3.0),
            Entrant(id="2", base_score=1.0, odds_display="", odds_decimal=3.0, is_scratched=True),
        ]
        assert [e.id for e in active_entrants(field)] == ["1"]

    def test_duplicate_ids(self):
        field = [Entrant(id=i, base_score=0.0, odds_display="", odds_decimal=3.0) for i in ("1", "2", "1", "1")]
        assert duplicate_ids(field) == ["1"]


class TestBankrollState:
    """Settlement returns a new state"""

    def test_start(self):
        state = BankrollState.start(500.0)
        assert state.current_bankroll == state.peak_bankroll == state.lowest_bankroll == 500.0
        assert state.roi_percent == 0.0

    def test_settle_win(self):
        state = BankrollState.start(500.0)
        after = state.settle(stake=20.0, payout=70.0)
        assert after.current_bankroll == 550.0
        assert after.total_wagered == 20.0
        assert after.total_profit == 50.0
        assert after.peak_bankroll == 550.0
        assert after.roi_percent == pytest.approx(250.0)
        # original untouched
        assert state.current_bankroll == 500.0

    def test_settle_loss_tracks_low_and_drawdown(self):
        after = BankrollState.start(500.0).settle(100.0, 0.0)
        assert after.current_bankroll == 400.0
        assert after.lowest_bankroll == 400.0
        assert after.drawdown_percent == pytest.approx(20.0)
