"""Combinatorial (exotic) wager math: exacta, trifecta and superfecta.

All functions here are **pure**: no I/O, no logging.

Ticket structures
-----------------
Each :class:`ExoticStructureSpec` names a pool (how many finishing places
must be hit in order) and a structure (how selections fill those places).
``position_sets`` is interpreted per structure:

=============  ===========================================================
STRAIGHT       one set per place, each holding exactly one entrant
BOX            a single set; every ordering of any ``m`` of its entrants
KEY_OVER       ``[keys, others]``: a key wins, others fill the places below
KEY_UNDER      ``[keys, others]``: a key runs last covered place, others
               fill the places above it
PART_WHEEL     one set per place; every tuple with no entrant repeated
=============  ===========================================================

Counts
------
* Box: ``P(k, m) = k! / (k − m)!``.  Exacta box of 4 = 12, trifecta box of
  4 = 24, superfecta box of 5 = 120.
* Key: per key, ``P(r, m − 1)`` with ``r`` the others excluding that key.
  Exacta key over 1 + 3 others = 3.
* Part wheel: enumerated, because the sets may overlap.

Invalid tickets never raise.  They come back as an
:class:`ExoticCostResult` with ``is_valid=False``, zero combinations and an
explanatory ``error``.

Payout model
------------
A pari-mutuel exotic pays ``unit × (1 − takeout) / P_pool(ordering)``,
where ``P_pool`` is the share of the pool on the winning ordering.  The
pool share is approximated by the Harville ordering probability computed
from the normalised win-market probabilities.  The result is a
``{min, max, likely}`` band across the covered orderings, never a single
number: real pool shares deviate from Harville, most of all for long
shots underneath.

Run tests with::

    pytest tests/test_exotics.py -v
"""

from __future__ import annotations

import itertools
import math
from dataclasses import dataclass
from enum import Enum
from typing import Final, Iterator, Mapping, Optional, Sequence

from backend.core.odds_math import DEFAULT_TAKEOUT, implied_prob


class PoolType(str, Enum):
    EXACTA = "EXACTA"
    TRIFECTA = "TRIFECTA"
    SUPERFECTA = "SUPERFECTA"

    @property
    def positions(self) -> int:
        return POOL_POSITIONS[self]


class Structure(str, Enum):
    STRAIGHT = "STRAIGHT"
    BOX = "BOX"
    KEY_OVER = "KEY_OVER"
    KEY_UNDER = "KEY_UNDER"
    PART_WHEEL = "PART_WHEEL"


# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Finishing places covered by each pool.  Also the minimum number of
#: distinct entrants a ticket needs.
POOL_POSITIONS: Final[dict[PoolType, int]] = {
    PoolType.EXACTA: 2,
    PoolType.TRIFECTA: 3,
    PoolType.SUPERFECTA: 4,
}

#: Typical base wager per combination.
DEFAULT_BASE_BET: Final[dict[PoolType, float]] = {
    PoolType.EXACTA: 2.0,
    PoolType.TRIFECTA: 1.0,
    PoolType.SUPERFECTA: 0.10,
}

#: Typical North American takeout per exotic pool.
POOL_TAKEOUT: Final[dict[PoolType, float]] = {
    PoolType.EXACTA: 0.19,
    PoolType.TRIFECTA: 0.22,
    PoolType.SUPERFECTA: 0.25,
}


# ---------------------------------------------------------------------------
# Data types
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class ExoticStructureSpec:
    """A single exotic ticket.

    Attributes:
        pool_type: Exacta, trifecta or superfecta.
        structure: How ``position_sets`` fill the places (see module doc).
        position_sets: Entrant program numbers, grouped per structure.
        base_bet_unit: Dollars per combination.  Must be finite and > 0.
    """

    pool_type: PoolType
    structure: Structure
    position_sets: tuple[tuple[str, ...], ...]
    base_bet_unit: float

    @classmethod
    def build(
        cls,
        pool_type: PoolType | str,
        structure: Structure | str,
        position_sets: Sequence[Sequence[str]],
        base_bet_unit: Optional[float] = None,
    ) -> "ExoticStructureSpec":
        """Coerce plain strings and lists; default the unit by pool."""
        pool = PoolType(pool_type.upper() if isinstance(pool_type, str) else pool_type)
        struct = Structure(structure.upper() if isinstance(structure, str) else structure)
        unit = DEFAULT_BASE_BET[pool] if base_bet_unit is None else float(base_bet_unit)
        return cls(
            pool_type=pool,
            structure=struct,
            position_sets=tuple(tuple(str(e) for e in s) for s in position_sets),
            base_bet_unit=unit,
        )


@dataclass(frozen=True, slots=True)
class ExoticCostResult:
    """Cost of a ticket.  ``combinations == 0`` whenever ``is_valid`` is False."""

    pool_type: PoolType
    structure: Structure
    combinations: int
    total_cost: float
    base_bet_unit: float
    is_valid: bool
    error: Optional[str] = None


@dataclass(frozen=True, slots=True)
class PayoutEstimate:
    """Payout band for one ticket.

    ``min``/``max`` span the covered orderings; ``likely`` is the mean
    payout weighted by model probability.  ``hit_probability`` is the model
    probability that any covered ordering comes in, and ``expected_value``
    is ``Σ P_model × payout − cost``.
    """

    min: float
    max: float
    likely: float
    hit_probability: float
    expected_value: float
    takeout: float


# ---------------------------------------------------------------------------
# Validation and counting
# ---------------------------------------------------------------------------


def _distinct(ids: Sequence[str]) -> list[str]:
    return list(dict.fromkeys(i for i in ids if i))


def _invalid(spec: ExoticStructureSpec, message: str) -> ExoticCostResult:
    return ExoticCostResult(
        pool_type=spec.pool_type,
        structure=spec.structure,
        combinations=0,
        total_cost=0.0,
        base_bet_unit=spec.base_bet_unit,
        is_valid=False,
        error=message,
    )


def _validation_error(spec: ExoticStructureSpec) -> Optional[str]:
    """Human-readable reason *spec* cannot be costed, or ``None``."""
    m = spec.pool_type.positions
    pool = spec.pool_type.value.lower()
    sets = spec.position_sets

    unit = spec.base_bet_unit
    if not isinstance(unit, (int, float)) or not math.isfinite(unit) or unit <= 0:
        return f"Base bet must be a positive amount, got {unit!r}"

    if spec.structure is Structure.STRAIGHT:
        if len(sets) != m or any(len(_distinct(s)) != 1 for s in sets):
            return f"Straight {pool} requires exactly one entrant for each of {m} positions"
        picks = [_distinct(s)[0] for s in sets]
        if len(set(picks)) != m:
            return f"Straight {pool} cannot use the same entrant in two positions"
        return None

    if spec.structure is Structure.BOX:
        boxed = _distinct(sets[0]) if len(sets) == 1 else _distinct(list(itertools.chain(*sets)))
        if len(boxed) < m:
            return f"{pool.capitalize()} box requires at least {m} entrants, got {len(boxed)}"
        return None

    if spec.structure in (Structure.KEY_OVER, Structure.KEY_UNDER):
        if len(sets) != 2:
            return f"{pool.capitalize()} key requires a key set and an others set"
        keys = _distinct(sets[0])
        if not keys:
            return f"{pool.capitalize()} key requires at least 1 key entrant"
        others = _distinct(sets[1])
        if all(len([o for o in others if o != k]) < m - 1 for k in keys):
            return (
                f"{pool.capitalize()} key requires at least {m - 1} other entrant(s) "
                "besides the key"
            )
        return None

    if spec.structure is Structure.PART_WHEEL:
        if len(sets) != m:
            return f"{pool.capitalize()} part wheel requires {m} position sets, got {len(sets)}"
        for place, s in enumerate(sets, start=1):
            if not _distinct(s):
                return f"{pool.capitalize()} part wheel position {place} is empty"
        if len(_distinct(list(itertools.chain(*sets)))) < m:
            return f"{pool.capitalize()} part wheel requires at least {m} distinct entrants"
        return None

    return f"Unknown structure: {spec.structure!r}"


def iter_combinations(spec: ExoticStructureSpec) -> Iterator[tuple[str, ...]]:
    """Yield every ordered finish covered by *spec*.

    Yields nothing for an invalid ticket.
    """
    if _validation_error(spec) is not None:
        return
    m = spec.pool_type.positions
    sets = spec.position_sets

    if spec.structure is Structure.STRAIGHT:
        yield tuple(_distinct(s)[0] for s in sets)

    elif spec.structure is Structure.BOX:
        boxed = _distinct(sets[0]) if len(sets) == 1 else _distinct(list(itertools.chain(*sets)))
        yield from itertools.permutations(boxed, m)

    elif spec.structure in (Structure.KEY_OVER, Structure.KEY_UNDER):
        keys, others = _distinct(sets[0]), _distinct(sets[1])
        for key in keys:
            rest = [o for o in others if o != key]
            for fill in itertools.permutations(rest, m - 1):
                yield (key, *fill) if spec.structure is Structure.KEY_OVER else (*fill, key)

    elif spec.structure is Structure.PART_WHEEL:
        for combo in itertools.product(*(_distinct(s) for s in sets)):
            if len(set(combo)) == m:
                yield combo


def count_combinations(spec: ExoticStructureSpec) -> int:
    """Number of ordered finishes covered by *spec*; 0 when invalid."""
    if _validation_error(spec) is not None:
        return 0
    m = spec.pool_type.positions
    sets = spec.position_sets

    if spec.structure is Structure.STRAIGHT:
        return 1
    if spec.structure is Structure.BOX:
        boxed = _distinct(sets[0]) if len(sets) == 1 else _distinct(list(itertools.chain(*sets)))
        return math.perm(len(boxed), m)
    if spec.structure in (Structure.KEY_OVER, Structure.KEY_UNDER):
        keys, others = _distinct(sets[0]), _distinct(sets[1])
        return sum(math.perm(len([o for o in others if o != k]), m - 1) for k in keys)
    return sum(1 for _ in iter_combinations(spec))


def exotic_cost(spec: ExoticStructureSpec) -> ExoticCostResult:
    """Cost a ticket.

    Examples::

        exotic_cost(ExoticStructureSpec.build("EXACTA", "BOX", [["1", "2", "3", "4"]], 2))
            → combinations=12, total_cost=24.0
        exotic_cost(ExoticStructureSpec.build("TRIFECTA", "BOX", [["1", "2"]], 1))
            → is_valid=False, error="Trifecta box requires at least 3 entrants, got 2"
    """
    error = _validation_error(spec)
    if error is not None:
        return _invalid(spec, error)

    combos = count_combinations(spec)
    if combos == 0:
        return _invalid(spec, "Selections cover no valid finishing order")

    return ExoticCostResult(
        pool_type=spec.pool_type,
        structure=spec.structure,
        combinations=combos,
        total_cost=round(combos * spec.base_bet_unit, 2),
        base_bet_unit=spec.base_bet_unit,
        is_valid=True,
    )


def total_exotic_cost(specs: Sequence[ExoticStructureSpec]) -> tuple[float, list[str]]:
    """Sum the cost of several tickets.

    Returns:
        ``(total_cost, errors)``.  Invalid tickets contribute 0 and their
        error text.
    """
    total = 0.0
    errors: list[str] = []
    for spec in specs:
        result = exotic_cost(spec)
        if result.is_valid:
            total += result.total_cost
        else:
            errors.append(result.error or "Unknown error")
    return round(total, 2), errors


# ---------------------------------------------------------------------------
# Ordering probability and payout
# ---------------------------------------------------------------------------


def harville_probability(ordering: Sequence[str], win_probs: Mapping[str, float]) -> float:
    """Probability of *ordering* as the first ``len(ordering)`` finishers.

    Harville (1973): each place is won in proportion to the win
    probabilities of the entrants not yet placed::

        P(a, b, c) = p_a · p_b / (1 − p_a) · p_c / (1 − p_a − p_b)

    Entrants missing from *win_probs* have probability 0.
    """
    result = 1.0
    remaining = 1.0
    for entrant_id in ordering:
        p = win_probs.get(entrant_id, 0.0)
        if not math.isfinite(p) or p <= 0 or remaining <= 1e-12:
            return 0.0
        result *= p / remaining
        remaining -= p
    return result


def estimate_payout(
    spec: ExoticStructureSpec,
    market_probs: Mapping[str, float],
    model_probs: Optional[Mapping[str, float]] = None,
    *,
    takeout: Optional[float] = None,
) -> PayoutEstimate:
    """Payout band and expected value for a ticket.

    Each ordering pays ``unit × (1 − takeout) / P_Harville(ordering)``.  This
    differs from the rule of thumb that multiplies the covered entrants'
    win odds together and discounts by takeout: that product ignores
    how the conditional chances of the lower places grow once the winner
    is removed, so it overstates payouts for long shots underneath.

    Args:
        spec: The ticket.
        market_probs: Normalised win-market probabilities by entrant id.
            Drive the pool-share estimate.
        model_probs: Model win probabilities.  Weight ``likely`` and drive
            the hit probability and EV; the market probabilities stand in
            when omitted.
        takeout: Pool takeout; defaults to :data:`POOL_TAKEOUT` for the pool.

    Returns:
        :class:`PayoutEstimate`.  All zeros (EV = −cost) for an invalid
        ticket or when no covered ordering has a market probability.
    """
    t = POOL_TAKEOUT[spec.pool_type] if takeout is None else takeout
    weights_source = model_probs if model_probs is not None else market_probs
    cost = exotic_cost(spec).total_cost

    payouts: list[float] = []
    weights: list[float] = []
    for ordering in iter_combinations(spec):
        p_market = harville_probability(ordering, market_probs)
        if p_market <= 0:
            continue
        payouts.append(spec.base_bet_unit * (1.0 - t) / p_market)
        weights.append(harville_probability(ordering, weights_source))

    if not payouts:
        return PayoutEstimate(0.0, 0.0, 0.0, 0.0, -cost, t)

    hit = sum(weights)
    expected_return = sum(w * p for w, p in zip(weights, payouts))
    likely = expected_return / hit if hit > 0 else sum(payouts) / len(payouts)
    return PayoutEstimate(
        min=round(min(payouts), 2),
        max=round(max(payouts), 2),
        likely=round(likely, 2),
        hit_probability=hit,
        expected_value=expected_return - cost,
        takeout=t,
    )


def market_probs_from_odds(entrant_odds: Mapping[str, float]) -> dict[str, float]:
    """Approximate market probabilities when only some entrants' odds are known.

    Each raw implied probability is scaled by :data:`DEFAULT_TAKEOUT` in
    place of the unknown full-field overround.  Invalid odds map to 0.
    """
    return {eid: implied_prob(odds) * (1.0 - DEFAULT_TAKEOUT) for eid, odds in entrant_odds.items()}


def payout_estimate(
    pool_type: PoolType | str,
    entrant_odds: Mapping[str, float],
    unit_bet: Optional[float] = None,
    model_probs: Optional[Mapping[str, float]] = None,
) -> PayoutEstimate:
    """Payout band for a box of the given entrants, priced from their odds.

    Shortcut over :func:`estimate_payout` for callers holding decimal odds
    rather than a normalised market.

    Example::

        payout_estimate("EXACTA", {"1": 3.0, "4": 9.0}, 2.0)
            → min ≈ 45.93 (1 over 4), max ≈ 57.64 (4 over 1)
    """
    spec = ExoticStructureSpec.build(pool_type, Structure.BOX, [list(entrant_odds)], unit_bet)
    return estimate_payout(spec, market_probs_from_odds(entrant_odds), model_probs)
