"""Fundamental odds mathematics and the pari-mutuel market model.

Every function here is **pure**: no I/O, no logging, no side effects.
Import from this module; never reimplement locally in services.

The three pillars exposed are:

1. **Odds conversion** — tote-board text, fractional, American and decimal.
2. **Implied probability** — raw ``1 / odds`` per entrant, the field
   overround and the track takeout it implies.
3. **Normalisation** — :func:`market_model`, which rescales raw implied
   probabilities so the field sums to 1.0 and the market can be compared
   like-for-like with the calibrated model distribution.

Design decisions
----------------
* Pari-mutuel odds already net out the takeout, so every displayed price is
  shaded downwards and raw implied probabilities sum to more than 1.0 (the
  *overround*).  Proportional normalisation is used rather than Shin: the
  tote has no bookmaker choosing a margin per runner, so the takeout is
  spread evenly across the pool by construction.
* Entrants with decimal odds ``≤ 1.0`` or non-finite odds cannot carry a
  probability.  They are excluded from the normalisation denominator and
  reported back in ``excluded_ids`` instead of being priced at an invented
  default.
* Unparseable odds text returns ``None`` from :func:`parse_odds`.  Callers
  decide what a missing price means.

Run tests with::

    pytest tests/test_odds_math.py -v
"""

from __future__ import annotations

import math
import re
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Final, Optional, Sequence

if TYPE_CHECKING:
    from backend.core.race_types import Entrant

# ---------------------------------------------------------------------------
# Module-level constants
# ---------------------------------------------------------------------------

#: American-odds magnitude floor.  Values below this are not representable
#: American odds and indicate a data error.
_MIN_ODDS_MAGNITUDE: Final[int] = 100

#: Typical North American win-pool takeout.
DEFAULT_TAKEOUT: Final[float] = 0.17

#: Lowest plausible overround for a win pool.  Anything lower means the
#: odds were captured mid-update or are missing runners.
MIN_EXPECTED_OVERROUND: Final[float] = 1.10

#: Highest plausible overround for a win pool.
MAX_EXPECTED_OVERROUND: Final[float] = 1.35

#: Smallest decimal price a tote board displays (1-10 or 1-20 shading).
MIN_DISPLAYED_DECIMAL: Final[float] = 1.01

_EVEN_TOKENS: Final[frozenset[str]] = frozenset({"EVEN", "EVN", "EV"})
_FRACTIONAL_RE: Final[re.Pattern[str]] = re.compile(r"^(\d+(?:\.\d+)?)\s*[-/]\s*(\d+(?:\.\d+)?)$")
_AMERICAN_RE: Final[re.Pattern[str]] = re.compile(r"^([+-])(\d+(?:\.\d+)?)$")
_NUMBER_RE: Final[re.Pattern[str]] = re.compile(r"^\d+(?:\.\d+)?$")


# ---------------------------------------------------------------------------
# Odds conversion
# ---------------------------------------------------------------------------


def american_to_decimal(american: int | float) -> float:
    """Convert American odds to decimal (European) format.

    Decimal odds represent the total payout per unit staked, **including**
    the return of the stake itself.  Examples::

        american_to_decimal(-120) → 1.8333   (risk 120 to win 100)
        american_to_decimal(+150) → 2.5000   (risk 100 to win 150)

    Args:
        american: American odds.  Negative = favourite, positive = underdog.

    Returns:
        Decimal odds > 1.0.

    Raises:
        ValueError: If ``|american| < 100``, which is not a representable
            American odds value.
    """
    if abs(american) < _MIN_ODDS_MAGNITUDE:
        raise ValueError(
            f"Invalid American odds {american!r}: magnitude must be ≥ 100. "
            "Check upstream odds parsing for data errors."
        )
    if american > 0:
        return american / 100.0 + 1.0
    return 100.0 / abs(american) + 1.0


def decimal_to_american(decimal_odds: float) -> int:
    """Convert decimal odds to the nearest American integer.

    Inverse of :func:`american_to_decimal`.  Use the result for display and
    logging, not for further arithmetic.

    Raises:
        ValueError: If ``decimal_odds ≤ 1.0``.
    """
    if decimal_odds <= 1.0:
        raise ValueError(
            f"Decimal odds {decimal_odds!r} must be > 1.0 to have an American equivalent."
        )
    if decimal_odds >= 2.0:
        return round((decimal_odds - 1.0) * 100)
    return round(-100.0 / (decimal_odds - 1.0))


def fractional_to_decimal(numerator: float, denominator: float) -> Optional[float]:
    """Tote-board fractional odds (``5-2``) to decimal (``3.5``).

    Returns ``None`` for a zero or non-finite denominator.
    """
    if not (math.isfinite(numerator) and math.isfinite(denominator)) or denominator <= 0:
        return None
    return numerator / denominator + 1.0


def parse_odds(text: str) -> Optional[float]:
    """Parse odds text in any common racing notation into decimal odds.

    Accepted forms::

        "5-2", "5/2"   → 3.5    fractional (tote board / morning line)
        "EVEN", "EVN"  → 2.0
        "+150"         → 2.5    American
        "-120"         → 1.833  American
        "4.5"          → 4.5    decimal (contains a point)
        "7"            → 8.0    bare integer, read as 7-1

    Args:
        text: Raw odds string.  Surrounding whitespace and case are ignored.

    Returns:
        Decimal odds, or ``None`` when the text is not recognisable odds.
    """
    if text is None:
        return None
    cleaned = str(text).strip().upper()
    if not cleaned:
        return None

    if cleaned in _EVEN_TOKENS:
        return 2.0

    m = _FRACTIONAL_RE.match(cleaned)
    if m:
        return fractional_to_decimal(float(m.group(1)), float(m.group(2)))

    m = _AMERICAN_RE.match(cleaned)
    if m:
        magnitude = float(m.group(2))
        if magnitude < _MIN_ODDS_MAGNITUDE:
            return None
        return american_to_decimal(magnitude if m.group(1) == "+" else -magnitude)

    if _NUMBER_RE.match(cleaned):
        value = float(cleaned)
        # A decimal point marks decimal odds; a bare integer is N-1.
        if "." in cleaned:
            return value if value > 1.0 else None
        return value + 1.0

    return None


# ---------------------------------------------------------------------------
# Implied probability and overround
# ---------------------------------------------------------------------------


def is_valid_decimal_odds(decimal_odds: float) -> bool:
    """True when *decimal_odds* can carry an implied probability."""
    return isinstance(decimal_odds, (int, float)) and math.isfinite(decimal_odds) and decimal_odds > 1.0


def implied_prob(decimal_odds: float) -> float:
    """Raw implied probability ``1 / odds`` (takeout-inclusive).

    Returns 0.0 for invalid odds so the entrant contributes nothing to the
    overround.

    Examples::

        implied_prob(4.0) → 0.25
        implied_prob(2.0) → 0.50
        implied_prob(1.0) → 0.0
    """
    if not is_valid_decimal_odds(decimal_odds):
        return 0.0
    return 1.0 / decimal_odds


def calculate_overround(implied_probs: Sequence[float]) -> float:
    """Sum of raw implied probabilities.  1.0 is a fair book."""
    return float(sum(p for p in implied_probs if math.isfinite(p) and p > 0))


def calculate_takeout_percent(overround: float) -> float:
    """Takeout implied by an overround, in percent.

    ``(overround − 1) / overround × 100``; an overround of 1.20 is a 16.7%
    takeout.  Returns 0.0 for a fair or under-round book.
    """
    if not math.isfinite(overround) or overround <= 1.0:
        return 0.0
    return (overround - 1.0) / overround * 100.0


# ---------------------------------------------------------------------------
# Market model
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class MarketEntry:
    """Market view of one entrant.

    Attributes:
        entrant_id: Program number.
        decimal_odds: Odds as priced.
        raw_implied_probability: ``1 / odds``; 0.0 when the odds are invalid.
        normalized_market_probability: Raw implied probability divided by
            the overround of the valid entrants.  Equals the raw value when
            normalisation is disabled.
        is_valid: False when the entrant was excluded for invalid odds.
    """

    entrant_id: str
    decimal_odds: float
    raw_implied_probability: float
    normalized_market_probability: float
    is_valid: bool = True


@dataclass(frozen=True, slots=True)
class MarketDistribution:
    """Field-level market view returned by :func:`market_model`."""

    entries: dict[str, MarketEntry]
    overround: float
    takeout_percent: float
    normalized: bool = True
    excluded_ids: tuple[str, ...] = ()
    warnings: tuple[str, ...] = field(default_factory=tuple)

    def normalized_probability(self, entrant_id: str) -> float:
        entry = self.entries.get(entrant_id)
        return entry.normalized_market_probability if entry else 0.0

    def raw_probability(self, entrant_id: str) -> float:
        entry = self.entries.get(entrant_id)
        return entry.raw_implied_probability if entry else 0.0

    @property
    def total_normalized(self) -> float:
        return sum(e.normalized_market_probability for e in self.entries.values())


def normalize_probabilities(implied_probs: Sequence[float]) -> list[float]:
    """Rescale a list of raw implied probabilities to sum to 1.0.

    Non-positive or non-finite inputs stay at 0.0.  An all-zero list is
    returned unchanged.
    """
    clean = [p if math.isfinite(p) and p > 0 else 0.0 for p in implied_probs]
    total = sum(clean)
    if total <= 0:
        return clean
    return [p / total for p in clean]


def market_model(
    field_entrants: Sequence["Entrant"],
    *,
    use_normalization: bool = True,
) -> MarketDistribution:
    """Build the market distribution for a field.

    Args:
        field_entrants: Entrants in program order.  Scratches should be
            removed by the caller.
        use_normalization: When False the raw implied probabilities are
            passed through as the "normalized" column.  For diagnostics
            only; overlay against raw values overstates underlays.

    Returns:
        :class:`MarketDistribution`.  An empty field yields an empty
        distribution with overround 0.

    Examples::

        >>> dist = market_model([...])       # odds 2.0, 3.0, 6.0
        >>> dist.overround                    # 0.5 + 0.333 + 0.167
        1.0
    """
    raw: dict[str, float] = {}
    excluded: list[str] = []
    for e in field_entrants:
        if is_valid_decimal_odds(e.odds_decimal):
            raw[e.id] = 1.0 / e.odds_decimal
        else:
            excluded.append(e.id)

    overround = calculate_overround(raw.values())

    entries: dict[str, MarketEntry] = {}
    for e in field_entrants:
        if e.id not in raw:
            entries[e.id] = MarketEntry(
                entrant_id=e.id,
                decimal_odds=e.odds_decimal,
                raw_implied_probability=0.0,
                normalized_market_probability=0.0,
                is_valid=False,
            )
            continue
        p_raw = raw[e.id]
        if use_normalization and overround > 0:
            p_norm = p_raw / overround
        else:
            p_norm = p_raw
        entries[e.id] = MarketEntry(
            entrant_id=e.id,
            decimal_odds=e.odds_decimal,
            raw_implied_probability=p_raw,
            normalized_market_probability=p_norm,
        )

    warnings = validate_market_odds([e.odds_decimal for e in field_entrants])
    return MarketDistribution(
        entries=entries,
        overround=overround,
        takeout_percent=calculate_takeout_percent(overround),
        normalized=use_normalization,
        excluded_ids=tuple(excluded),
        warnings=tuple(warnings),
    )


def validate_market_odds(decimal_odds: Sequence[float]) -> list[str]:
    """Sanity-check a field's odds and return human-readable warnings.

    Checks field size (at least two runners), invalid prices and whether the
    overround sits inside the expected win-pool band.  An empty list means
    the market looks healthy.
    """
    if len(decimal_odds) < 2:
        return ["Insufficient field size - need at least 2 entrants"]

    warnings: list[str] = []
    invalid = [o for o in decimal_odds if not is_valid_decimal_odds(o) or o < MIN_DISPLAYED_DECIMAL]
    if invalid:
        warnings.append(f"Found {len(invalid)} invalid odds values")

    overround = calculate_overround([implied_prob(o) for o in decimal_odds])
    if overround < MIN_EXPECTED_OVERROUND:
        warnings.append(
            f"Overround {overround:.3f} is below minimum {MIN_EXPECTED_OVERROUND} "
            "- odds data may be suspect"
        )
    elif overround > MAX_EXPECTED_OVERROUND:
        warnings.append(
            f"Overround {overround:.3f} is above maximum {MAX_EXPECTED_OVERROUND} "
            "- unusual market conditions"
        )
    return warnings
