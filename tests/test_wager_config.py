"""
Tests for wager sizing configuration
Run with: pytest tests/test_wager_config.py -v
"""

from dataclasses import replace

import pytest

from backend.core.wager_config import ConfigurationError, WagerSizingConfig


class TestPresets:
    """Named risk profiles"""

    def test_conservative(self):
        cfg = WagerSizingConfig.conservative()
        assert cfg.kelly_multiplier == 0.25
        assert cfg.max_bet_percent == 0.05

    def test_moderate(self):
        cfg = WagerSizingConfig.moderate()
        assert cfg.kelly_multiplier == 0.5
        assert cfg.max_bet_percent == 0.10

    def test_aggressive(self):
        cfg = WagerSizingConfig.aggressive()
        assert cfg.kelly_multiplier == 1.0
        assert cfg.max_bet_percent == 0.15

    def test_by_label(self):
        assert WagerSizingConfig.for_risk_profile("Moderate") == WagerSizingConfig.moderate()

    def test_unknown_label(self):
        with pytest.raises(ConfigurationError):
            WagerSizingConfig.for_risk_profile("reckless")


class TestValidation:
    """Inconsistent bounds are rejected at load time"""

    def test_min_above_max(self):
        with pytest.raises(ConfigurationError):
            replace(WagerSizingConfig(), min_bet=50.0, max_bet=10.0).validate()

    @pytest.mark.parametrize("pct", [0.0, -0.1, 1.5])
    def test_max_bet_percent_range(self, pct):
        with pytest.raises(ConfigurationError):
            WagerSizingConfig(max_bet_percent=pct).validate()

    def test_max_bet_percent_one_allowed(self):
        assert WagerSizingConfig(max_bet_percent=1.0).validate()

    @pytest.mark.parametrize("mult", [0.0, 1.01])
    def test_kelly_multiplier_range(self, mult):
        with pytest.raises(ConfigurationError):
            WagerSizingConfig(kelly_multiplier=mult).validate()

    def test_round_to_positive(self):
        with pytest.raises(ConfigurationError):
            WagerSizingConfig(round_to=0.0).validate()

    def test_is_value_error(self):
        assert issubclass(ConfigurationError, ValueError)


class TestFromEnv:

    def test_defaults(self, monkeypatch):
        for var in ("RISK_PROFILE", "MIN_BET", "MAX_BET", "BET_ROUND_TO",
                    "MAX_BET_PERCENT", "KELLY_MULTIPLIER", "MIN_EDGE"):
            monkeypatch.delenv(var, raising=False)
        assert WagerSizingConfig.from_env() == WagerSizingConfig.conservative()

    def test_overrides(self, monkeypatch):
        monkeypatch.setenv("RISK_PROFILE", "moderate")
        monkeypatch.setenv("MIN_BET", "5")
        monkeypatch.setenv("BET_ROUND_TO", "0.5")
        cfg = WagerSizingConfig.from_env()
        assert cfg.kelly_multiplier == 0.5
        assert cfg.min_bet == 5.0
        assert cfg.round_to == 0.5

    def test_invalid_env_rejected(self, monkeypatch):
        monkeypatch.setenv("MIN_BET", "900")
        monkeypatch.setenv("MAX_BET", "100")
        with pytest.raises(ConfigurationError):
            WagerSizingConfig.from_env()

    def test_non_numeric_env_rejected(self, monkeypatch):
        monkeypatch.setenv("MAX_BET_PERCENT", "ten")
        with pytest.raises(ConfigurationError):
            WagerSizingConfig.from_env()
