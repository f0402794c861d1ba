"""Overlay and expected-value classification for a single entrant.

All functions here are **pure**: no I/O, no logging.

An *overlay* is a horse the model rates more likely to win than the tote
does.  This module measures that gap, converts it to expected value at the
posted price, buckets both into tiers, and derives a bounded scoring nudge
(``overlay_adjustment``) for presentation.

Formulas
--------
* ``overlay% = (p_model − p_market) / p_market × 100``
* ``EV       = p_model × decimal_odds − 1``   (per unit staked)
* ``fair     = 1 / p_model``

Guards
------
Every denominator is checked.  A market probability at or below
:data:`MIN_MARKET_PROBABILITY` or any non-finite input yields 0% overlay
(neutral), NaN EV yields 0, and a non-positive model probability or odds
``≤ 1`` yields EV −1 (the stake is lost).

Run tests with::

    pytest tests/test_overlay.py -v
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from enum import Enum
from typing import TYPE_CHECKING, Final

from backend.core.calibration import probability_to_fair_odds

if TYPE_CHECKING:
    from backend.core.race_types import Entrant

# ---------------------------------------------------------------------------
# Thresholds
# ---------------------------------------------------------------------------

#: Overlay percent at or above which an entrant is a strong overlay.
STRONG_OVERLAY_PCT: Final[float] = 15.0
MODERATE_OVERLAY_PCT: Final[float] = 8.0
SLIGHT_OVERLAY_PCT: Final[float] = 3.0

#: Overlay percent at or below which an entrant is an underlay.
UNDERLAY_PCT: Final[float] = -5.0

#: EV tier floors (fractional EV per unit staked).
EV_STRONG: Final[float] = 0.15
EV_MODERATE: Final[float] = 0.08
EV_SLIGHT: Final[float] = 0.02
EV_NEUTRAL_FLOOR: Final[float] = -0.01

#: Market probability below which overlay is undefined.
MIN_MARKET_PROBABILITY: Final[float] = 0.001

#: Adjustment bands ``(min_points, max_points)`` per tier.
STRONG_ADJUSTMENT: Final[tuple[int, int]] = (15, 25)
MODERATE_ADJUSTMENT: Final[tuple[int, int]] = (8, 15)
SLIGHT_ADJUSTMENT: Final[tuple[int, int]] = (3, 8)
UNDERLAY_ADJUSTMENT: Final[tuple[int, int]] = (-20, -5)

#: Overlay percent at which the strong band saturates at +25.
_STRONG_SATURATION_PCT: Final[float] = 30.0

#: Underlay magnitude at which the underlay band saturates at −20.
_UNDERLAY_SATURATION_PCT: Final[float] = 20.0


class ValueClass(str, Enum):
    STRONG_VALUE = "STRONG_VALUE"
    MODERATE_VALUE = "MODERATE_VALUE"
    SLIGHT_VALUE = "SLIGHT_VALUE"
    NEUTRAL = "NEUTRAL"
    UNDERLAY = "UNDERLAY"


class EVClass(str, Enum):
    STRONG_POSITIVE = "strong_positive"
    MODERATE_POSITIVE = "moderate_positive"
    SLIGHT_POSITIVE = "slight_positive"
    NEUTRAL = "neutral"
    NEGATIVE = "negative"


# ---------------------------------------------------------------------------
# Scalar formulas
# ---------------------------------------------------------------------------


def overlay_percent(model_probability: float, market_probability: float) -> float:
    """Percent by which the model probability exceeds the market's.

    Examples::

        overlay_percent(0.30, 0.20) →  50.0
        overlay_percent(0.15, 0.20) → −25.0
        overlay_percent(0.30, 0.0)  →   0.0   (undefined, neutral)
    """
    if not (math.isfinite(model_probability) and math.isfinite(market_probability)):
        return 0.0
    if market_probability <= MIN_MARKET_PROBABILITY:
        return 0.0
    return (model_probability - market_probability) / market_probability * 100.0


def expected_value(model_probability: float, decimal_odds: float) -> float:
    """Expected profit per unit staked at *decimal_odds*.

    Examples::

        expected_value(0.25, 4.0) → 0.0
        expected_value(0.30, 4.0) → 0.2
        expected_value(0.0, 4.0)  → −1.0
    """
    if math.isnan(model_probability) or math.isnan(decimal_odds):
        return 0.0
    if model_probability <= 0 or not math.isfinite(decimal_odds) or decimal_odds <= 1.0:
        return -1.0
    return model_probability * decimal_odds - 1.0


def classify_value(overlay_pct: float) -> ValueClass:
    if not math.isfinite(overlay_pct):
        return ValueClass.NEUTRAL
    if overlay_pct >= STRONG_OVERLAY_PCT:
        return ValueClass.STRONG_VALUE
    if overlay_pct >= MODERATE_OVERLAY_PCT:
        return ValueClass.MODERATE_VALUE
    if overlay_pct >= SLIGHT_OVERLAY_PCT:
        return ValueClass.SLIGHT_VALUE
    if overlay_pct > UNDERLAY_PCT:
        return ValueClass.NEUTRAL
    return ValueClass.UNDERLAY


def classify_ev(ev: float) -> EVClass:
    if not math.isfinite(ev):
        return EVClass.NEUTRAL
    if ev >= EV_STRONG:
        return EVClass.STRONG_POSITIVE
    if ev >= EV_MODERATE:
        return EVClass.MODERATE_POSITIVE
    if ev >= EV_SLIGHT:
        return EVClass.SLIGHT_POSITIVE
    if ev >= EV_NEUTRAL_FLOOR:
        return EVClass.NEUTRAL
    return EVClass.NEGATIVE


def is_value_bet(overlay_pct: float, ev: float) -> bool:
    """At least a slight overlay with EV inside the −1% tolerance band."""
    if not (math.isfinite(overlay_pct) and math.isfinite(ev)):
        return False
    return overlay_pct >= SLIGHT_OVERLAY_PCT and ev >= EV_NEUTRAL_FLOOR


def is_underlay(overlay_pct: float) -> bool:
    return math.isfinite(overlay_pct) and overlay_pct <= UNDERLAY_PCT


def _lerp_band(band: tuple[int, int], fraction: float) -> int:
    fraction = min(1.0, max(0.0, fraction))
    return round(band[0] + fraction * (band[1] - band[0]))


def overlay_adjustment(overlay_pct: float, ev: float) -> tuple[int, str]:
    """Bounded scoring nudge for presentation, and the reason for it.

    The positive bands are gated by EV: strong and moderate overlays need
    ``EV ≥ 0.02``, slight overlays need ``EV ≥ −0.01``.  An entrant that
    fails its tier's gate is scored by the next tier down whose gate it
    passes, and by the neutral rule (0) when none does.

    Returns:
        ``(points, reason)``.  Points lie in ``[−20, +25]``.
    """
    if not (math.isfinite(overlay_pct) and math.isfinite(ev)):
        return 0, "Invalid overlay or EV data"

    if overlay_pct >= STRONG_OVERLAY_PCT and ev >= EV_SLIGHT:
        span = _STRONG_SATURATION_PCT - STRONG_OVERLAY_PCT
        points = _lerp_band(STRONG_ADJUSTMENT, (overlay_pct - STRONG_OVERLAY_PCT) / span)
        return points, f"Strong value: {overlay_pct:.1f}% overlay with {ev * 100:.1f}% EV"

    if overlay_pct >= MODERATE_OVERLAY_PCT and ev >= EV_SLIGHT:
        span = STRONG_OVERLAY_PCT - MODERATE_OVERLAY_PCT
        points = _lerp_band(MODERATE_ADJUSTMENT, (overlay_pct - MODERATE_OVERLAY_PCT) / span)
        return points, f"Good value: {overlay_pct:.1f}% overlay with {ev * 100:.1f}% EV"

    if overlay_pct >= SLIGHT_OVERLAY_PCT and ev >= EV_NEUTRAL_FLOOR:
        span = MODERATE_OVERLAY_PCT - SLIGHT_OVERLAY_PCT
        points = _lerp_band(SLIGHT_ADJUSTMENT, (overlay_pct - SLIGHT_OVERLAY_PCT) / span)
        return points, f"Slight value: {overlay_pct:.1f}% overlay"

    if overlay_pct > UNDERLAY_PCT:
        if overlay_pct >= SLIGHT_OVERLAY_PCT:
            return 0, f"Overlay {overlay_pct:.1f}% not supported by EV {ev * 100:.1f}%"
        return 0, f"Neutral: {overlay_pct:.1f}% (within fair price range)"

    # −5 at a 5% underlay, −10 at 10%, −20 at 20% or worse.
    magnitude = abs(overlay_pct)
    if magnitude < 10.0:
        points = round(-5.0 - (magnitude - 5.0))
    else:
        frac = min(1.0, (magnitude - 10.0) / (_UNDERLAY_SATURATION_PCT - 10.0))
        points = round(-10.0 - frac * 10.0)
    return points, f"Underlay: {overlay_pct:.1f}% (market overvalues this entrant)"


# ---------------------------------------------------------------------------
# Entrant-level classifier
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class OverlayResult:
    """Market-relative value read for one entrant.

    Attributes:
        entrant_id: Program number.
        model_probability: Calibrated win probability.
        market_probability: Normalised market probability.
        true_overlay_percent: Overlay against the normalised market.
        raw_overlay_percent: Overlay against the raw implied probability
            (includes the takeout, so it reads lower).
        expected_value: EV per unit at the entrant's posted odds.
        value_class: Overlay tier.
        ev_class: EV tier.
        overlay_adjustment: Presentation nudge in ``[−20, +25]``.
        adjustment_reason: Human-readable reason for the nudge.
        fair_odds: ``1 / model_probability``, bounded.
        is_positive_ev: ``expected_value > 0``.
        is_value_bet: See :func:`is_value_bet`.
    """

    entrant_id: str
    model_probability: float
    market_probability: float
    true_overlay_percent: float
    raw_overlay_percent: float
    expected_value: float
    value_class: ValueClass
    ev_class: EVClass
    overlay_adjustment: int
    adjustment_reason: str
    fair_odds: float
    is_positive_ev: bool
    is_value_bet: bool


def classify(
    entrant: "Entrant",
    model_probability: float,
    market_probability: float,
    raw_implied_probability: float | None = None,
) -> OverlayResult:
    """Classify *entrant* against the market.

    Args:
        entrant: Entrant carrying the posted decimal odds.
        model_probability: Calibrated win probability.
        market_probability: Normalised market probability.
        raw_implied_probability: Raw ``1 / odds``; derived from the entrant
            when omitted.

    Returns:
        :class:`OverlayResult`.  Deterministic: the same inputs always give
        an equal result.
    """
    if raw_implied_probability is None:
        odds = entrant.odds_decimal
        raw_implied_probability = 1.0 / odds if math.isfinite(odds) and odds > 1.0 else 0.0

    true_overlay = overlay_percent(model_probability, market_probability)
    raw_overlay = overlay_percent(model_probability, raw_implied_probability)
    ev = expected_value(model_probability, entrant.odds_decimal)
    points, reason = overlay_adjustment(true_overlay, ev)

    return OverlayResult(
        entrant_id=entrant.id,
        model_probability=model_probability,
        market_probability=market_probability,
        true_overlay_percent=true_overlay,
        raw_overlay_percent=raw_overlay,
        expected_value=ev,
        value_class=classify_value(true_overlay),
        ev_class=classify_ev(ev),
        overlay_adjustment=points,
        adjustment_reason=reason,
        fair_odds=probability_to_fair_odds(model_probability),
        is_positive_ev=ev > 0,
        is_value_bet=is_value_bet(true_overlay, ev),
    )
