"""
Single-race value pipeline.

Runs one full pricing pass over a field:

    1. Drop scratches and duplicate program numbers.
    2. Calibrate handicapping scores to model win probabilities.
    3. Build the market distribution from the posted odds.
    4. Classify every entrant's overlay and expected value.
    5. Roll the field up into summary metrics (overround, takeout,
       best value entrant).

Every call recomputes from the entrants; nothing is cached between passes.
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Sequence

from backend.core.calibration import (
    DEFAULT_TEMPERATURE,
    CalibratedDistribution,
    PlattScaler,
    calibrate,
    validate_probabilities,
)
from backend.core.odds_math import MarketDistribution, market_model
from backend.core.overlay import OverlayResult, ValueClass, classify
from backend.core.race_types import Entrant, active_entrants, duplicate_ids

logger = logging.getLogger(__name__)


def default_temperature() -> float:
    """Softmax temperature from ``SOFTMAX_TEMPERATURE`` (default 1.0)."""
    try:
        value = float(os.getenv("SOFTMAX_TEMPERATURE", str(DEFAULT_TEMPERATURE)))
    except ValueError:
        logger.warning("SOFTMAX_TEMPERATURE is not numeric; using %.2f", DEFAULT_TEMPERATURE)
        return DEFAULT_TEMPERATURE
    return value if value > 0 else DEFAULT_TEMPERATURE


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class FieldMetrics:
    """Field-level roll-up of one analysis pass."""

    field_size: int
    overround: float
    takeout_percent: float
    average_model_probability: float
    probs_validated: bool
    best_value_entrant: Optional[str] = None
    best_overlay_percent: float = 0.0
    value_bet_count: int = 0


@dataclass
class RaceAnalysis:
    """Everything one pass produced, keyed by program number."""

    entrants: List[Entrant]
    calibrated: CalibratedDistribution
    market: MarketDistribution
    results: Dict[str, OverlayResult]
    metrics: FieldMetrics
    warnings: List[str] = field(default_factory=list)

    def value_bets(self) -> List[OverlayResult]:
        """Value bets ordered by true overlay, best first."""
        bets = [r for r in self.results.values() if r.is_value_bet]
        return sorted(bets, key=lambda r: r.true_overlay_percent, reverse=True)

    def underlays(self) -> List[OverlayResult]:
        return [r for r in self.results.values() if r.value_class is ValueClass.UNDERLAY]

    def entrant(self, entrant_id: str) -> Optional[Entrant]:
        for e in self.entrants:
            if e.id == entrant_id:
                return e
        return None


# ---------------------------------------------------------------------------
# Pipeline
# ---------------------------------------------------------------------------

def analyze_race(
    field_entrants: Sequence[Entrant],
    temperature: Optional[float] = None,
    use_normalization: bool = True,
    scaler: Optional[PlattScaler] = None,
    score_scale: float = 1.0,
) -> RaceAnalysis:
    """
    Run calibration, market normalisation and overlay classification.

    Args:
        field_entrants: Entrants in program order.  Scratched entrants are
            skipped; a repeated program number keeps its first occurrence.
        temperature: Softmax temperature; ``SOFTMAX_TEMPERATURE`` when None.
        use_normalization: Compare against the normalised market (default)
            or the raw implied probabilities.
        scaler: Optional fitted Platt scaler.
        score_scale: Divisor applied to base scores before the softmax.

    Returns:
        RaceAnalysis.  An empty field yields empty results and zeroed
        metrics rather than an error.
    """
    warnings: List[str] = []
    t = default_temperature() if temperature is None else temperature

    active = active_entrants(field_entrants)
    scratched = len(field_entrants) - len(active)
    if scratched:
        logger.info("Skipping %d scratched entrant(s)", scratched)

    dupes = duplicate_ids(active)
    if dupes:
        logger.warning("Duplicate program numbers %s; keeping first occurrence", dupes)
        warnings.append(f"Duplicate program numbers ignored: {', '.join(dupes)}")
        seen = set()
        unique = []
        for e in active:
            if e.id not in seen:
                unique.append(e)
                seen.add(e.id)
        active = unique

    calibrated = calibrate(active, t, score_scale=score_scale, scaler=scaler)
    market = market_model(active, use_normalization=use_normalization)
    warnings.extend(market.warnings)
    if market.excluded_ids:
        logger.warning(
            "Excluded %d entrant(s) with invalid odds from normalisation: %s",
            len(market.excluded_ids), list(market.excluded_ids),
        )

    results: Dict[str, OverlayResult] = {}
    for e in active:
        results[e.id] = classify(
            e,
            calibrated.get(e.id),
            market.normalized_probability(e.id),
            market.raw_probability(e.id),
        )

    metrics = _field_metrics(calibrated, market, results)
    logger.info(
        "Analyzed field of %d: overround=%.3f takeout=%.1f%% value_bets=%d best=%s",
        metrics.field_size, metrics.overround, metrics.takeout_percent,
        metrics.value_bet_count, metrics.best_value_entrant,
    )

    return RaceAnalysis(
        entrants=active,
        calibrated=calibrated,
        market=market,
        results=results,
        metrics=metrics,
        warnings=warnings,
    )


def _field_metrics(
    calibrated: CalibratedDistribution,
    market: MarketDistribution,
    results: Dict[str, OverlayResult],
) -> FieldMetrics:
    size = len(results)
    probs = list(calibrated.probabilities.values())

    best_id: Optional[str] = None
    best_overlay = 0.0
    for r in results.values():
        if best_id is None or r.true_overlay_percent > best_overlay:
            best_id, best_overlay = r.entrant_id, r.true_overlay_percent

    # Only a positive overlay counts as a best value.
    if best_overlay <= 0:
        best_id, best_overlay = None, 0.0

    return FieldMetrics(
        field_size=size,
        overround=market.overround,
        takeout_percent=market.takeout_percent,
        average_model_probability=sum(probs) / size if size else 0.0,
        probs_validated=validate_probabilities(probs),
        best_value_entrant=best_id,
        best_overlay_percent=best_overlay,
        value_bet_count=sum(1 for r in results.values() if r.is_value_bet),
    )
