"""Kelly criterion sizing — the single source of truth for win-bet sizing math.

All functions here are **pure**: no I/O, no bankroll mutation, no logging.
Import from this module; never reimplement Kelly locally in services.

The functions cover three steps of the sizing pipeline:

1. :func:`full_kelly` — the unscaled Kelly fraction for a win/lose bet.
2. :func:`kelly_fraction` — fractional Kelly (``f* × multiplier``), the
   share of bankroll the sizing engine starts from.
3. :func:`clamp_bet_size` — turns a dollar amount into a bettable one:
   min/max bounds, percent-of-bankroll cap, rounding to the tote increment.

Design decisions
----------------
* **Quarter Kelly by default.**  Win-pool prices move after the bet is
  placed (the final tote price is unknown at betting time) and the model
  probability carries estimation error.  Overbetting is punished
  geometrically while underbetting only forgoes EV, so the default
  multiplier is 0.25.
* **Rounding never breaks the cap.**  Rounding to the nearest increment can
  step over ``max_bet_percent × bankroll``; when it would, the amount is
  rounded down instead.
* **Below-minimum after capping means no bet.**  Lifting a capped amount
  back up to ``min_bet`` would breach the cap, so the sizing returns 0.

Run tests with::

    pytest tests/test_kelly.py -v
"""

from __future__ import annotations

import math
from typing import Final

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Default fractional Kelly multiplier (quarter Kelly).
DEFAULT_KELLY_MULTIPLIER: Final[float] = 0.25

#: Fractions below this are treated as zero (too small to execute).
MIN_KELLY_FRACTION: Final[float] = 1e-6


# ---------------------------------------------------------------------------
# Kelly fraction
# ---------------------------------------------------------------------------


def full_kelly(win_prob: float, decimal_odds: float) -> float:
    """Unscaled Kelly fraction for a simple win/lose bet.

    The Kelly criterion maximises expected log-wealth.  With ``b`` the net
    profit per unit (``decimal_odds − 1``), ``p`` the win probability and
    ``q = 1 − p``::

        f*  =  (p · b − q) / b                                   (1)

    A negative ``f*`` means the bet is −EV at this price.

    Raises:
        ValueError: If ``win_prob`` is not in ``(0, 1)`` or ``decimal_odds``
            is not a finite value above 1.0.

    Examples::

        full_kelly(0.30, 4.0) → 0.0667
        full_kelly(0.25, 4.0) → 0.0
        full_kelly(0.20, 4.0) → −0.0667
    """
    if not (0.0 < win_prob < 1.0):
        raise ValueError(
            f"win_prob must be in (0, 1), got {win_prob!r}. "
            "Check upstream probability calibration."
        )
    if not math.isfinite(decimal_odds) or decimal_odds <= 1.0:
        raise ValueError(
            f"decimal_odds must be a finite value > 1.0, got {decimal_odds!r}."
        )
    b = decimal_odds - 1.0
    return (win_prob * b - (1.0 - win_prob)) / b


def kelly_fraction(
    win_prob: float,
    decimal_odds: float,
    *,
    kelly_multiplier: float = DEFAULT_KELLY_MULTIPLIER,
) -> float:
    """Fractional Kelly: ``max(0, f*) × kelly_multiplier``.

    Returns 0.0 for non-positive edges and for fractions below
    :data:`MIN_KELLY_FRACTION`.

    Examples::

        kelly_fraction(0.30, 4.0)                         → 0.0167
        kelly_fraction(0.30, 4.0, kelly_multiplier=1.0)   → 0.0667
        kelly_fraction(0.20, 4.0)                         → 0.0
    """
    f_star = full_kelly(win_prob, decimal_odds)
    if f_star <= 0.0:
        return 0.0
    sized = f_star * kelly_multiplier
    return sized if sized >= MIN_KELLY_FRACTION else 0.0


def expected_growth_rate(win_prob: float, net_odds: float, fraction: float) -> float:
    """Expected log-growth per bet when staking *fraction* of bankroll.

    ``G(f) = p · ln(1 + b·f) + (1 − p) · ln(1 − f)``

    Returns ``-inf`` when ``f ≥ 1`` (ruin on a loss) and 0.0 for ``f ≤ 0``.
    """
    if fraction <= 0.0:
        return 0.0
    if fraction >= 1.0:
        return float("-inf")
    return win_prob * math.log1p(net_odds * fraction) + (1.0 - win_prob) * math.log1p(-fraction)


# ---------------------------------------------------------------------------
# Dollar sizing
# ---------------------------------------------------------------------------


def round_to_increment(amount: float, increment: float, *, ceiling: float | None = None) -> float:
    """Round *amount* to the nearest multiple of *increment*.

    When *ceiling* is given and the nearest multiple exceeds it, the amount
    is rounded down instead.
    """
    if increment <= 0:
        return amount
    rounded = round(amount / increment) * increment
    if ceiling is not None and rounded > ceiling + 1e-9:
        rounded = math.floor(amount / increment + 1e-9) * increment
    # Strip float noise such as 14.000000000000002.
    return round(rounded, 10)


def clamp_bet_size(
    raw_amount: float,
    bankroll: float,
    *,
    min_bet: float,
    max_bet: float,
    max_bet_percent: float,
    round_to: float,
) -> tuple[float, bool]:
    """Turn a raw Kelly dollar amount into a bettable size.

    Order of operations: clamp to ``[min_bet, max_bet]``, cap at
    ``max_bet_percent × bankroll`` and at the bankroll itself, then round to
    ``round_to`` without crossing the cap.  A result below ``min_bet`` after
    capping is returned as 0.0.

    Returns:
        ``(size, was_capped)`` where *was_capped* is True when the percent
        or bankroll cap reduced the amount.

    Examples::

        clamp_bet_size(16.67, 1000, min_bet=2, max_bet=100,
                       max_bet_percent=0.05, round_to=1)   → (17.0, False)
        clamp_bet_size(400, 1000, min_bet=2, max_bet=500,
                       max_bet_percent=0.05, round_to=1)   → (50.0, True)
    """
    if raw_amount <= 0 or bankroll <= 0:
        return 0.0, False

    amount = min(max(raw_amount, min_bet), max_bet)
    cap = min(bankroll * max_bet_percent, bankroll)
    was_capped = amount > cap
    amount = min(amount, cap)

    amount = round_to_increment(amount, round_to, ceiling=cap)
    if amount < min_bet - 1e-9 or amount <= 0:
        return 0.0, was_capped
    return amount, was_capped
