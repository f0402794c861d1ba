"""Data-transfer objects shared by every stage of the race pipeline.

Nothing here performs wagering math beyond trivial derived properties.  The
pricing modules (:mod:`backend.core.calibration`, :mod:`backend.core.odds_math`,
:mod:`backend.core.overlay`, :mod:`backend.core.kelly`,
:mod:`backend.core.exotics`) consume these objects and return their own
result types.

Design choices
--------------
* :class:`Entrant` is frozen and slotted so a field can be hashed, cached and
  re-analysed without the risk of a stage mutating odds in place.  Every
  analysis pass recomputes derived values from the entrant, never from a
  previous result.
* :class:`BankrollState` is an immutable value object.  The engine only
  reads it; recording a settled wager returns a **new** state via
  :meth:`BankrollState.settle`.  The caller owns persistence.

Run tests with::

    pytest tests/test_race_types.py -v
"""

from __future__ import annotations

import math
from dataclasses import dataclass, replace
from typing import Optional, Sequence

from backend.core.odds_math import parse_odds


# ---------------------------------------------------------------------------
# Entrants
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class Entrant:
    """A single starter in a race.

    Attributes:
        id: Program number.  Unique within the race; the join key between
            the calibrated distribution, the market distribution and every
            downstream result.
        base_score: Handicapping score from the upstream scorer.  Higher is
            better.  Any finite real is accepted; the calibrator handles the
            scale through its temperature.
        odds_display: Odds text as shown on the tote board (``"5-2"``,
            ``"EVEN"``).  Carried for display only.
        odds_decimal: Decimal odds (total return per unit staked).  Values
            ``≤ 1.0`` or non-finite are treated as invalid by the market
            model and excluded from normalisation.
        name: Optional horse name for logging.
        is_scratched: Scratched entrants are removed by
            :func:`active_entrants` before any pricing pass.
    """

    id: str
    base_score: float
    odds_display: str
    odds_decimal: float
    name: Optional[str] = None
    is_scratched: bool = False

    @classmethod
    def from_odds_string(
        cls,
        id: str,
        base_score: float,
        odds_display: str,
        *,
        name: Optional[str] = None,
    ) -> "Entrant":
        """Build an entrant from tote-board odds text.

        Unparseable text yields ``odds_decimal = nan`` so the market model
        flags the entrant instead of pricing it at an invented default.
        """
        parsed = parse_odds(odds_display)
        return cls(
            id=str(id),
            base_score=float(base_score),
            odds_display=odds_display,
            odds_decimal=parsed if parsed is not None else math.nan,
            name=name,
        )

    @property
    def has_valid_odds(self) -> bool:
        return math.isfinite(self.odds_decimal) and self.odds_decimal > 1.0


def active_entrants(field: Sequence[Entrant]) -> list[Entrant]:
    """Return the non-scratched entrants of *field* in program order."""
    return [e for e in field if not e.is_scratched]


def duplicate_ids(field: Sequence[Entrant]) -> list[str]:
    """Program numbers that appear more than once in *field*."""
    seen: set[str] = set()
    dupes: list[str] = []
    for e in field:
        if e.id in seen and e.id not in dupes:
            dupes.append(e.id)
        seen.add(e.id)
    return dupes


# ---------------------------------------------------------------------------
# Bankroll
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class BankrollState:
    """Read-only snapshot of the player's bankroll.

    Attributes:
        current_bankroll: Funds available right now.
        initial_bankroll: Funds at the start of the session.
        total_wagered: Sum of all settled stakes.
        total_profit: Net result of all settled wagers.
        peak_bankroll: Highest ``current_bankroll`` observed.
        lowest_bankroll: Lowest ``current_bankroll`` observed.
    """

    current_bankroll: float
    initial_bankroll: float
    total_wagered: float = 0.0
    total_profit: float = 0.0
    peak_bankroll: float = 0.0
    lowest_bankroll: float = 0.0

    @classmethod
    def start(cls, amount: float) -> "BankrollState":
        """Fresh state with *amount* as the initial, peak and low mark."""
        return cls(
            current_bankroll=amount,
            initial_bankroll=amount,
            peak_bankroll=amount,
            lowest_bankroll=amount,
        )

    def settle(self, stake: float, payout: float) -> "BankrollState":
        """Return the state after a wager of *stake* that returned *payout*.

        *payout* is the total returned by the tote (0 for a loser), so the
        profit on the wager is ``payout - stake``.  ``self`` is unchanged.
        """
        profit = payout - stake
        current = self.current_bankroll + profit
        return replace(
            self,
            current_bankroll=current,
            total_wagered=self.total_wagered + stake,
            total_profit=self.total_profit + profit,
            peak_bankroll=max(self.peak_bankroll, current),
            lowest_bankroll=min(self.lowest_bankroll, current),
        )

    @property
    def roi_percent(self) -> float:
        """Return on amount wagered, in percent (0 when nothing wagered)."""
        if self.total_wagered <= 0:
            return 0.0
        return self.total_profit / self.total_wagered * 100.0

    @property
    def drawdown_percent(self) -> float:
        """Current drop from the peak, in percent."""
        if self.peak_bankroll <= 0:
            return 0.0
        return max(0.0, (self.peak_bankroll - self.current_bankroll) / self.peak_bankroll * 100.0)
