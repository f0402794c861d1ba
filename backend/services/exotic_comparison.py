"""
Exotic ticket comparison for a fixed budget.

Given a ranked list of contenders, builds candidate tickets for each
requested pool (straight, box, key over, key under, part wheel), prices
each one with the Harville payout model and ranks them by expected value.
Exotics compound the model's edge but carry far more variance than win
bets; the comparison table is advisory and never sizes against the
bankroll.
"""

import logging
from dataclasses import dataclass, field
from typing import List, Mapping, Optional, Sequence

from backend.core.exotics import (
    DEFAULT_BASE_BET,
    ExoticCostResult,
    ExoticStructureSpec,
    PayoutEstimate,
    PoolType,
    Structure,
    estimate_payout,
    exotic_cost,
    market_probs_from_odds,
)

logger = logging.getLogger(__name__)

# Most entrants boxed in a single candidate ticket
MAX_BOX_SIZE = 5

# Selections beyond this are ignored (part wheels grow combinatorially)
MAX_SELECTIONS = 8


# ---------------------------------------------------------------------------
# Data structures
# ---------------------------------------------------------------------------

@dataclass
class Selection:
    """A contender offered to the comparison."""

    entrant_id: str
    decimal_odds: float
    model_probability: float


@dataclass
class ComparisonRow:
    """One candidate ticket, priced."""

    label: str
    spec: ExoticStructureSpec
    cost: ExoticCostResult
    payout: PayoutEstimate
    is_recommended: bool = False

    @property
    def combinations(self) -> int:
        return self.cost.combinations

    @property
    def expected_value(self) -> float:
        return self.payout.expected_value

    @property
    def hit_probability(self) -> float:
        return self.payout.hit_probability


@dataclass
class ComparisonTable:
    budget: float
    rows: List[ComparisonRow] = field(default_factory=list)
    skipped_over_budget: int = 0

    @property
    def recommended(self) -> Optional[ComparisonRow]:
        return self.rows[0] if self.rows else None


# ---------------------------------------------------------------------------
# Candidate generation
# ---------------------------------------------------------------------------

def _candidates(pool: PoolType, ranked: List[str], unit: float) -> List[tuple]:
    """(label, spec) pairs for every structure the selections support."""
    m = pool.positions
    out = []
    if len(ranked) < m:
        return out

    out.append((
        "Straight " + "-".join(ranked[:m]),
        ExoticStructureSpec.build(pool, Structure.STRAIGHT, [[e] for e in ranked[:m]], unit),
    ))

    boxed = ranked[:MAX_BOX_SIZE]
    out.append((
        f"Box {len(boxed)}",
        ExoticStructureSpec.build(pool, Structure.BOX, [boxed], unit),
    ))

    key, others = ranked[0], ranked[1:]
    out.append((
        f"Key #{key} over",
        ExoticStructureSpec.build(pool, Structure.KEY_OVER, [[key], others], unit),
    ))
    out.append((
        f"Key #{key} under",
        ExoticStructureSpec.build(pool, Structure.KEY_UNDER, [[key], others], unit),
    ))

    if len(ranked) > m:
        top_two = ranked[:2]
        out.append((
            f"Part wheel {'/'.join(top_two)} with all",
            ExoticStructureSpec.build(pool, Structure.PART_WHEEL, [top_two] + [ranked] * (m - 1), unit),
        ))
    return out


def compare_structures(
    selections: Sequence[Selection],
    budget: float,
    pools: Sequence[PoolType] = (PoolType.EXACTA, PoolType.TRIFECTA, PoolType.SUPERFECTA),
    base_bets: Optional[Mapping[PoolType, float]] = None,
    market_probs: Optional[Mapping[str, float]] = None,
) -> ComparisonTable:
    """
    Build, price and rank exotic tickets within a budget.

    Args:
        selections: Contenders.  Ranked internally by model probability.
        budget: Most a single ticket may cost.
        pools: Pools to build candidates for.
        base_bets: Dollars per combination by pool; defaults per pool.
        market_probs: Normalised win-market probabilities for the whole
            field.  Approximated from the selections' odds when omitted.

    Returns:
        ComparisonTable with rows sorted by expected value (highest first),
        then by fewer combinations.  The first row is flagged recommended.
    """
    table = ComparisonTable(budget=budget)
    if budget <= 0 or not selections:
        logger.info("Nothing to compare (budget=%.2f, selections=%d)", budget, len(selections))
        return table

    ranked_sel = sorted(selections, key=lambda s: s.model_probability, reverse=True)[:MAX_SELECTIONS]
    ranked = list(dict.fromkeys(s.entrant_id for s in ranked_sel))
    model = {s.entrant_id: s.model_probability for s in ranked_sel}
    market = (
        dict(market_probs) if market_probs is not None
        else market_probs_from_odds({s.entrant_id: s.decimal_odds for s in ranked_sel})
    )
    units = dict(DEFAULT_BASE_BET)
    if base_bets:
        units.update(base_bets)

    for pool in pools:
        pool = PoolType(pool)
        for label, spec in _candidates(pool, ranked, units[pool]):
            cost = exotic_cost(spec)
            if not cost.is_valid:
                continue
            if cost.total_cost > budget:
                table.skipped_over_budget += 1
                continue
            payout = estimate_payout(spec, market, model)
            table.rows.append(ComparisonRow(
                label=f"{pool.value.capitalize()} {label}",
                spec=spec,
                cost=cost,
                payout=payout,
            ))

    table.rows.sort(key=lambda r: (-r.expected_value, r.combinations))
    if table.rows:
        table.rows[0].is_recommended = True
        top = table.rows[0]
        logger.info(
            "Compared %d tickets within $%.2f; recommended %s (%d combos, EV %.2f)",
            len(table.rows), budget, top.label, top.combinations, top.expected_value,
        )
    else:
        logger.info("No exotic ticket fits a $%.2f budget", budget)
    return table


def compare_race_structures(analysis, budget: float, top_n: int = 5, **kwargs) -> ComparisonTable:
    """Compare tickets built from the top ``top_n`` entrants of a RaceAnalysis."""
    selections = [
        Selection(
            entrant_id=e.id,
            decimal_odds=e.odds_decimal,
            model_probability=analysis.calibrated.get(e.id),
        )
        for e in analysis.entrants
        if e.has_valid_odds
    ]
    selections.sort(key=lambda s: s.model_probability, reverse=True)
    market = {eid: entry.normalized_market_probability for eid, entry in analysis.market.entries.items()}
    return compare_structures(selections[:top_n], budget, market_probs=market, **kwargs)
