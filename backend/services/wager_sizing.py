"""
Bankroll-aware win-bet sizing.

Wraps the pure Kelly math in ``backend.core.kelly`` with the input checks,
bankroll bounds and logging the API needs.  Each recommendation is a
read-only calculation against the BankrollState it is given:

    * The bankroll is never mutated here.  Settlement belongs to the caller
      (see ``BankrollState.settle``).
    * Recommendations for several entrants are sized independently.  They
      are NOT mutually budget-aware; ``size_field_wagers`` reports the
      summed stake so the caller can check it against the bankroll.
"""

import logging
import math
from dataclasses import dataclass, field
from typing import List, Optional, Union

from backend.core.kelly import clamp_bet_size, expected_growth_rate, full_kelly
from backend.core.race_types import BankrollState
from backend.core.wager_config import WagerSizingConfig

logger = logging.getLogger(__name__)

BET_TYPE_WIN = "WIN"


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class WagerRecommendation:
    """Sizing output for a single candidate bet."""

    entrant_id: Optional[str]
    bet_type: str
    odds: float
    probability: float
    kelly_fraction: float        # f* × kelly_multiplier, 0 when no edge
    full_kelly_fraction: float   # f*, may be negative
    raw_bet_size: float          # bankroll × kelly_fraction, before bounds
    rounded_bet_size: float      # bettable amount, 0 when should_bet is False
    expected_value: float        # per unit staked
    should_bet: bool
    is_positive_ev: bool
    was_capped: bool = False
    expected_growth_rate: float = 0.0
    reason: str = ""


@dataclass
class FieldSizing:
    """Independent recommendations for every value bet in a race."""

    recommendations: List[WagerRecommendation] = field(default_factory=list)
    total_stake: float = 0.0
    bankroll: float = 0.0

    @property
    def exceeds_bankroll(self) -> bool:
        return self.total_stake > self.bankroll


# ---------------------------------------------------------------------------
# Sizing
# ---------------------------------------------------------------------------

def _no_bet(
    entrant_id: Optional[str],
    bet_type: str,
    odds: float,
    probability: float,
    reason: str,
    full_fraction: float = 0.0,
    ev: float = 0.0,
) -> WagerRecommendation:
    return WagerRecommendation(
        entrant_id=entrant_id,
        bet_type=bet_type,
        odds=odds,
        probability=probability,
        kelly_fraction=0.0,
        full_kelly_fraction=full_fraction,
        raw_bet_size=0.0,
        rounded_bet_size=0.0,
        expected_value=ev,
        should_bet=False,
        is_positive_ev=full_fraction > 0,
        reason=reason,
    )


def size_wager(
    probability: float,
    decimal_odds: float,
    bankroll: Union[BankrollState, float],
    config: Optional[WagerSizingConfig] = None,
    entrant_id: Optional[str] = None,
    bet_type: str = BET_TYPE_WIN,
) -> WagerRecommendation:
    """
    Size a single win bet with fractional Kelly.

    Args:
        probability: Model win probability.
        decimal_odds: Posted decimal odds.
        bankroll: BankrollState (its current_bankroll is used) or a plain
            amount.
        config: Validated sizing bounds; the conservative preset when None.
        entrant_id: Program number, echoed in the result.
        bet_type: Label echoed in the result.

    Returns:
        WagerRecommendation.  Invalid inputs give should_bet=False with a
        reason; nothing is raised.
    """
    cfg = config or WagerSizingConfig.conservative()
    amount = bankroll.current_bankroll if isinstance(bankroll, BankrollState) else bankroll

    if not (isinstance(probability, (int, float)) and math.isfinite(probability)) or not (0.0 < probability < 1.0):
        logger.warning("Rejecting sizing for %s: probability %r out of (0, 1)", entrant_id, probability)
        return _no_bet(entrant_id, bet_type, decimal_odds, probability, "Probability must be between 0 and 1")
    if not math.isfinite(decimal_odds) or decimal_odds <= 1.0:
        logger.warning("Rejecting sizing for %s: invalid odds %r", entrant_id, decimal_odds)
        return _no_bet(entrant_id, bet_type, decimal_odds, probability, "Odds must be greater than 1.0", ev=-1.0)
    if not math.isfinite(amount) or amount <= 0:
        logger.warning("Rejecting sizing for %s: bankroll %r", entrant_id, amount)
        return _no_bet(entrant_id, bet_type, decimal_odds, probability, "Bankroll must be positive")

    f_star = full_kelly(probability, decimal_odds)
    ev = probability * decimal_odds - 1.0

    if f_star <= 0:
        return _no_bet(
            entrant_id, bet_type, decimal_odds, probability,
            f"No edge: Kelly fraction {f_star:.4f}", full_fraction=f_star, ev=ev,
        )
    if ev < cfg.min_edge:
        return _no_bet(
            entrant_id, bet_type, decimal_odds, probability,
            f"Edge {ev:.1%} below minimum {cfg.min_edge:.1%}", full_fraction=f_star, ev=ev,
        )

    fraction = f_star * cfg.kelly_multiplier
    raw_size = amount * fraction
    size, capped = clamp_bet_size(
        raw_size,
        amount,
        min_bet=cfg.min_bet,
        max_bet=cfg.max_bet,
        max_bet_percent=cfg.max_bet_percent,
        round_to=cfg.round_to,
    )

    if size <= 0:
        reason = f"Capped size below minimum bet ${cfg.min_bet:.2f}"
        logger.info("No bet on %s: %s (raw=%.2f)", entrant_id, reason, raw_size)
        rec = _no_bet(entrant_id, bet_type, decimal_odds, probability, reason, full_fraction=f_star, ev=ev)
        rec.kelly_fraction = fraction
        rec.raw_bet_size = raw_size
        rec.was_capped = capped
        return rec

    reason = f"{cfg.kelly_multiplier:g}x Kelly on {f_star:.2%} edge fraction"
    if capped:
        reason += f", capped at {cfg.max_bet_percent:.0%} of bankroll"

    # Log growth is -inf once the whole bankroll rides on one bet.
    stake_fraction = size / amount
    if stake_fraction >= 1.0:
        growth = 0.0
        reason += ", entire bankroll at risk (a loss is ruin)"
        logger.warning("Bet on %s stakes the entire bankroll $%.2f", entrant_id, amount)
    else:
        growth = expected_growth_rate(probability, decimal_odds - 1.0, stake_fraction)

    return WagerRecommendation(
        entrant_id=entrant_id,
        bet_type=bet_type,
        odds=decimal_odds,
        probability=probability,
        kelly_fraction=fraction,
        full_kelly_fraction=f_star,
        raw_bet_size=raw_size,
        rounded_bet_size=size,
        expected_value=ev,
        should_bet=True,
        is_positive_ev=True,
        was_capped=capped,
        expected_growth_rate=growth,
        reason=reason,
    )


def size_field_wagers(
    analysis,
    bankroll: Union[BankrollState, float],
    config: Optional[WagerSizingConfig] = None,
) -> FieldSizing:
    """
    Size every value bet in a RaceAnalysis independently.

    The summed stake is reported, not enforced: when it exceeds the
    bankroll a warning is logged and the caller decides what to trim.
    """
    amount = bankroll.current_bankroll if isinstance(bankroll, BankrollState) else bankroll
    recs: List[WagerRecommendation] = []
    for result in analysis.value_bets():
        entrant = analysis.entrant(result.entrant_id)
        if entrant is None:
            continue
        recs.append(size_wager(
            result.model_probability, entrant.odds_decimal, bankroll, config,
            entrant_id=entrant.id,
        ))

    total = round(sum(r.rounded_bet_size for r in recs if r.should_bet), 2)
    sizing = FieldSizing(recommendations=recs, total_stake=total, bankroll=amount)
    if sizing.exceeds_bankroll:
        logger.warning(
            "Combined stake $%.2f exceeds bankroll $%.2f across %d bets",
            total, amount, sum(1 for r in recs if r.should_bet),
        )
    else:
        logger.info("Sized %d value bets, total stake $%.2f", len(recs), total)
    return sizing


# ---------------------------------------------------------------------------
# Process-wide default config
# ---------------------------------------------------------------------------

_default_config: Optional[WagerSizingConfig] = None


def get_sizing_config() -> WagerSizingConfig:
    """Config from the environment, loaded and validated once per process."""
    global _default_config
    if _default_config is None:
        _default_config = WagerSizingConfig.from_env()
        logger.info(
            "Loaded %s sizing config: %.2fx Kelly, cap %.0f%%, bets $%.2f-$%.2f",
            _default_config.risk_profile, _default_config.kelly_multiplier,
            _default_config.max_bet_percent * 100, _default_config.min_bet, _default_config.max_bet,
        )
    return _default_config
