"""Wager-sizing configuration — every bankroll bound in one place.

This module is the **registry** for the sizing knobs the Kelly engine
reads: bet bounds, rounding increment, percent-of-bankroll cap and the
fractional Kelly multiplier.  Nowhere else should a minimum bet or a Kelly
multiplier be hard-coded.

Architecture
------------
:class:`WagerSizingConfig` is a frozen dataclass.  Named constructors
(:meth:`WagerSizingConfig.conservative`, :meth:`~WagerSizingConfig.moderate`,
:meth:`~WagerSizingConfig.aggressive`) return the three risk presets;
:meth:`WagerSizingConfig.from_env` reads overrides from the environment
(``.env`` loaded via ``python-dotenv``).  Every constructor validates, so an
invalid configuration fails once at load time with
:class:`ConfigurationError` and the per-bet sizing path never re-checks it.

Typical usage::

    from backend.core.wager_config import WagerSizingConfig

    cfg = WagerSizingConfig.moderate()

    # Override a single bound:
    from dataclasses import replace
    custom = replace(cfg, min_bet=5.0).validate()
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Final

from dotenv import load_dotenv

#: Risk-profile identifiers used in API payloads.
RISK_CONSERVATIVE: Final[str] = "conservative"
RISK_MODERATE: Final[str] = "moderate"
RISK_AGGRESSIVE: Final[str] = "aggressive"


class ConfigurationError(ValueError):
    """Raised when sizing bounds are mutually inconsistent."""


@dataclass(frozen=True)
class WagerSizingConfig:
    """Immutable bankroll-bound bundle for the sizing engine.

    Attributes:
        min_bet: Smallest wager the track accepts.  A recommendation that
            cannot reach it under the caps becomes "no bet".  $2 is the
            standard North American win-pool minimum.
        max_bet: Largest single wager regardless of bankroll.
        round_to: Betting increment.  Sizes are rounded to a multiple of it.
        max_bet_percent: Hard cap as a fraction of the current bankroll,
            in ``(0, 1]``.
        kelly_multiplier: Fraction of full Kelly to stake, in ``(0, 1]``.
            0.25 is quarter Kelly.
        min_edge: Minimum EV per unit (``p × odds − 1``) before a
            positive-Kelly bet is recommended.  0 accepts any positive edge.
        risk_profile: Label of the preset the config came from.
    """

    min_bet: float = 2.0
    max_bet: float = 500.0
    round_to: float = 1.0
    max_bet_percent: float = 0.05
    kelly_multiplier: float = 0.25
    min_edge: float = 0.0
    risk_profile: str = RISK_CONSERVATIVE

    def validate(self) -> "WagerSizingConfig":
        """Return ``self`` if the bounds are consistent.

        Raises:
            ConfigurationError: On ``min_bet > max_bet``, a non-positive
                ``min_bet`` or ``round_to``, or a ``max_bet_percent`` or
                ``kelly_multiplier`` outside ``(0, 1]``.
        """
        if self.min_bet <= 0:
            raise ConfigurationError(f"min_bet must be positive, got {self.min_bet!r}")
        if self.min_bet > self.max_bet:
            raise ConfigurationError(
                f"min_bet ({self.min_bet}) must not exceed max_bet ({self.max_bet})"
            )
        if not (0.0 < self.max_bet_percent <= 1.0):
            raise ConfigurationError(
                f"max_bet_percent must be in (0, 1], got {self.max_bet_percent!r}"
            )
        if not (0.0 < self.kelly_multiplier <= 1.0):
            raise ConfigurationError(
                f"kelly_multiplier must be in (0, 1], got {self.kelly_multiplier!r}"
            )
        if self.round_to <= 0:
            raise ConfigurationError(f"round_to must be positive, got {self.round_to!r}")
        if self.min_edge < 0:
            raise ConfigurationError(f"min_edge must be non-negative, got {self.min_edge!r}")
        return self

    # ------------------------------------------------------------------
    # Named constructors
    # ------------------------------------------------------------------

    @classmethod
    def conservative(cls) -> "WagerSizingConfig":
        """Quarter Kelly, at most 5% of bankroll per bet."""
        return cls(
            kelly_multiplier=0.25,
            max_bet_percent=0.05,
            risk_profile=RISK_CONSERVATIVE,
        ).validate()

    @classmethod
    def moderate(cls) -> "WagerSizingConfig":
        """Half Kelly, at most 10% of bankroll per bet."""
        return cls(
            kelly_multiplier=0.5,
            max_bet_percent=0.10,
            risk_profile=RISK_MODERATE,
        ).validate()

    @classmethod
    def aggressive(cls) -> "WagerSizingConfig":
        """Full Kelly, at most 15% of bankroll per bet."""
        return cls(
            kelly_multiplier=1.0,
            max_bet_percent=0.15,
            risk_profile=RISK_AGGRESSIVE,
        ).validate()

    @classmethod
    def for_risk_profile(cls, profile: str) -> "WagerSizingConfig":
        """Preset by label.

        Raises:
            ConfigurationError: For an unknown label.
        """
        presets = {
            RISK_CONSERVATIVE: cls.conservative,
            RISK_MODERATE: cls.moderate,
            RISK_AGGRESSIVE: cls.aggressive,
        }
        try:
            return presets[profile.lower()]()
        except KeyError:
            raise ConfigurationError(
                f"Unknown risk profile {profile!r}; expected one of {sorted(presets)}"
            ) from None

    @classmethod
    def from_env(cls) -> "WagerSizingConfig":
        """Build from environment variables over the selected preset.

        ``RISK_PROFILE`` picks the preset (default conservative); ``MIN_BET``,
        ``MAX_BET``, ``BET_ROUND_TO``, ``MAX_BET_PERCENT``,
        ``KELLY_MULTIPLIER`` and ``MIN_EDGE`` override single fields.
        """
        load_dotenv()
        base = cls.for_risk_profile(os.getenv("RISK_PROFILE", RISK_CONSERVATIVE))
        try:
            cfg = cls(
                min_bet=float(os.getenv("MIN_BET", base.min_bet)),
                max_bet=float(os.getenv("MAX_BET", base.max_bet)),
                round_to=float(os.getenv("BET_ROUND_TO", base.round_to)),
                max_bet_percent=float(os.getenv("MAX_BET_PERCENT", base.max_bet_percent)),
                kelly_multiplier=float(os.getenv("KELLY_MULTIPLIER", base.kelly_multiplier)),
                min_edge=float(os.getenv("MIN_EDGE", base.min_edge)),
                risk_profile=base.risk_profile,
            )
        except ValueError as exc:
            raise ConfigurationError(f"Non-numeric wager sizing setting: {exc}") from exc
        return cfg.validate()
