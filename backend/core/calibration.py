"""Probability calibration — handicapping scores to win probabilities.

All functions here are **pure**: no I/O, no logging.  The only state lives
in a :class:`PlattScaler` instance the caller owns and passes in.

Pipeline
--------
1. :func:`softmax_probabilities` maps a list of scores to a distribution
   via a temperature-scaled softmax with the max-subtraction trick, so
   scores in the hundreds never overflow ``exp``.
2. :func:`clamp_and_redistribute` bounds each probability and
   hands the clipped mass to the unclamped entrants in proportion to their
   share, keeping the sum at 1.0.
3. :class:`PlattScaler` optionally applies a fitted
   ``sigmoid(A · logit(p) + B)`` correction per entrant and renormalises.
   It stays inert until it has been fitted on enough settled predictions.

:func:`calibrate` chains the three for a field of
:class:`~backend.core.race_types.Entrant`.

Temperature semantics
---------------------
* ``T < 1`` sharpens the distribution toward the top score; ``T → 0``
  concentrates all mass on the highest score (ties split evenly).
* ``T > 1`` flattens it; ``T → ∞`` tends to uniform.
* Temperature is floored at :data:`MIN_TEMPERATURE`.

Run tests with::

    pytest tests/test_calibration.py -v
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from typing import TYPE_CHECKING, Final, Optional, Sequence

import numpy as np
from scipy.optimize import minimize
from scipy.special import expit, logit

if TYPE_CHECKING:
    from backend.core.race_types import Entrant

# ---------------------------------------------------------------------------
# Constants
# ---------------------------------------------------------------------------

#: Default softmax temperature.  1.0 is the unscaled softmax.
DEFAULT_TEMPERATURE: Final[float] = 1.0

#: Floor applied to the temperature to keep the division finite.
MIN_TEMPERATURE: Final[float] = 1e-3

#: Default probability floor used by :func:`clamp_and_redistribute`.
#: Every starter keeps some chance of winning.
DEFAULT_MIN_PROBABILITY: Final[float] = 0.005

#: Default probability ceiling used by :func:`clamp_and_redistribute`.
DEFAULT_MAX_PROBABILITY: Final[float] = 0.95

#: Tolerance for a distribution to count as summing to 1.0.
PROBABILITY_SUM_TOLERANCE: Final[float] = 0.01

#: Fair odds reported for a zero-probability entrant (99-1).
MAX_FAIR_ODDS: Final[float] = 100.0

#: Fair odds reported for a certainty.
MIN_FAIR_ODDS: Final[float] = 1.01

#: Platt input clamp.  logit(0) and logit(1) are infinite.
_PLATT_MIN_INPUT: Final[float] = 0.001
_PLATT_MAX_INPUT: Final[float] = 0.999

#: Platt output clamp.
_PLATT_MIN_OUTPUT: Final[float] = 0.005
_PLATT_MAX_OUTPUT: Final[float] = 0.995

#: Settled predictions required before a fitted scaler is trusted.
MIN_CALIBRATION_SAMPLES: Final[int] = 500

_CLAMP_MAX_ITER: Final[int] = 10


# ---------------------------------------------------------------------------
# Result type
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class CalibratedDistribution:
    """Model win probabilities for a field, keyed by program number.

    Attributes:
        probabilities: ``id → p``.  Each value lies in ``(0, 1]`` and the
            values sum to 1.0 within :data:`PROBABILITY_SUM_TOLERANCE`.
        temperature: Temperature actually used (after flooring).
        platt_applied: True when a fitted :class:`PlattScaler` adjusted the
            softmax output.
    """

    probabilities: dict[str, float]
    temperature: float = DEFAULT_TEMPERATURE
    platt_applied: bool = False

    def get(self, entrant_id: str) -> float:
        return self.probabilities.get(entrant_id, 0.0)

    @property
    def total(self) -> float:
        return sum(self.probabilities.values())

    def __len__(self) -> int:
        return len(self.probabilities)


# ---------------------------------------------------------------------------
# Softmax
# ---------------------------------------------------------------------------


def softmax_probabilities(
    scores: Sequence[float],
    temperature: float = DEFAULT_TEMPERATURE,
    *,
    score_scale: float = 1.0,
) -> list[float]:
    """Temperature-scaled softmax over *scores*.

    ``p_i = exp((s_i − max s) / T) / Σ_j exp((s_j − max s) / T)``

    Args:
        scores: Raw scores, higher is better.  Non-finite values are
            replaced by the lowest finite score so they cannot poison the
            distribution.
        temperature: Softmax temperature, floored at :data:`MIN_TEMPERATURE`.
        score_scale: Divisor applied to the scores before the softmax.
            Racing ratings in the hundreds are usually divided down so a
            temperature near 1.0 gives a sensible spread.

    Returns:
        Probabilities in input order.  ``[]`` for no scores, ``[1.0]`` for
        a single score, uniform when every score is equal.

    Examples::

        softmax_probabilities([2.0, 1.0])        → [0.731, 0.269]
        softmax_probabilities([2.0, 1.0], 0.5)   → [0.881, 0.119]
        softmax_probabilities([5.0, 5.0, 5.0])   → [0.333, 0.333, 0.333]
    """
    n = len(scores)
    if n == 0:
        return []
    if n == 1:
        return [1.0]

    arr = np.asarray(scores, dtype=float)
    finite = np.isfinite(arr)
    if not finite.any():
        return [1.0 / n] * n
    arr = np.where(finite, arr, arr[finite].min())

    t = max(MIN_TEMPERATURE, float(temperature)) if math.isfinite(temperature) else DEFAULT_TEMPERATURE
    scale = score_scale if math.isfinite(score_scale) and score_scale > 0 else 1.0

    z = (arr / scale - (arr / scale).max()) / t
    ez = np.exp(z)
    probs = ez / ez.sum()
    return [float(p) for p in probs]


def clamp_and_redistribute(
    probs: Sequence[float],
    floor: float = DEFAULT_MIN_PROBABILITY,
    ceiling: float = DEFAULT_MAX_PROBABILITY,
) -> list[float]:
    """Bound each probability to ``[floor, ceiling]`` keeping the sum at 1.0.

    Mass removed from entrants above *ceiling*, or added to entrants below
    *floor*, is taken from or given to the unclamped entrants in
    proportion to their current share.  Iterates because redistribution can
    push another entrant across a bound.

    A field of one is returned unchanged; the bounds cannot apply when the
    only entrant must hold all the mass.  Likewise when ``n · floor > 1`` or
    ``n · ceiling < 1`` the bounds are infeasible and the input is returned
    renormalised.
    """
    n = len(probs)
    if n <= 1:
        return [float(p) for p in probs]
    if n * floor > 1.0 or n * ceiling < 1.0:
        total = sum(probs)
        return [p / total for p in probs] if total > 0 else [1.0 / n] * n

    result = [float(p) for p in probs]
    for _ in range(_CLAMP_MAX_ITER):
        low = [i for i, p in enumerate(result) if p < floor]
        high = [i for i, p in enumerate(result) if p > ceiling]
        if not low and not high:
            break
        free = [i for i in range(n) if i not in low and i not in high]

        excess = 0.0
        for i in low:
            excess -= floor - result[i]
            result[i] = floor
        for i in high:
            excess += result[i] - ceiling
            result[i] = ceiling

        free_total = sum(result[i] for i in free)
        if free and free_total > 0:
            for i in free:
                result[i] += excess * result[i] / free_total
        else:
            # Every entrant hit a bound: move the surplus back across it.
            targets = low if excess > 0 else high
            for i in targets:
                result[i] += excess / len(targets)

    total = sum(result)
    if total > 0 and abs(total - 1.0) > 1e-9:
        result = [p / total for p in result]
    return result


def validate_probabilities(probs: Sequence[float], tolerance: float = PROBABILITY_SUM_TOLERANCE) -> bool:
    """True when *probs* is empty or sums to 1.0 within *tolerance*."""
    if len(probs) == 0:
        return True
    return abs(sum(probs) - 1.0) <= tolerance


def probability_to_fair_odds(probability: float) -> float:
    """Fair decimal odds ``1 / p``, bounded to ``[1.01, 100]``.

    Examples::

        probability_to_fair_odds(0.25) → 4.0
        probability_to_fair_odds(0.0)  → 100.0
    """
    if not math.isfinite(probability) or probability <= 0:
        return MAX_FAIR_ODDS
    if probability >= 1.0:
        return MIN_FAIR_ODDS
    return min(MAX_FAIR_ODDS, max(MIN_FAIR_ODDS, 1.0 / probability))


# ---------------------------------------------------------------------------
# Platt scaling
# ---------------------------------------------------------------------------


class PlattScaler:
    """Post-hoc Platt calibration ``p' = sigmoid(A · logit(p) + B)``.

    Starts as the identity (``A = 1``, ``B = 0``).  :meth:`fit` estimates
    ``A`` and ``B`` by minimising log-loss over settled predictions with
    ``scipy.optimize.minimize``.  The scaler only reports :attr:`is_ready`
    once it has been fitted on at least *min_samples* predictions; until
    then :func:`calibrate` leaves the softmax output untouched.

    Example::

        scaler = PlattScaler()
        scaler.fit(predicted_probs, won_flags)
        dist = calibrate(field, scaler=scaler)
    """

    def __init__(self, a: float = 1.0, b: float = 0.0, min_samples: int = MIN_CALIBRATION_SAMPLES):
        self.a = float(a)
        self.b = float(b)
        self.min_samples = min_samples
        self.n_samples = 0

    @property
    def is_ready(self) -> bool:
        return self.n_samples >= self.min_samples

    @property
    def is_identity(self) -> bool:
        return abs(self.a - 1.0) < 1e-3 and abs(self.b) < 1e-3

    def fit(self, predictions: Sequence[float], outcomes: Sequence[int | bool]) -> "PlattScaler":
        """Fit ``A`` and ``B`` on paired predictions and 0/1 outcomes.

        Raises:
            ValueError: If the sequences differ in length or are empty.
        """
        if len(predictions) != len(outcomes):
            raise ValueError(
                f"predictions ({len(predictions)}) and outcomes ({len(outcomes)}) differ in length"
            )
        if len(predictions) == 0:
            raise ValueError("cannot fit a Platt scaler on zero samples")

        x = logit(np.clip(np.asarray(predictions, dtype=float), _PLATT_MIN_INPUT, _PLATT_MAX_INPUT))
        y = np.asarray(outcomes, dtype=float)

        def _neg_log_likelihood(params: np.ndarray) -> float:
            p = np.clip(expit(params[0] * x + params[1]), 1e-12, 1 - 1e-12)
            return float(-np.mean(y * np.log(p) + (1 - y) * np.log(1 - p)))

        res = minimize(_neg_log_likelihood, x0=np.array([self.a, self.b]), method="L-BFGS-B")
        if res.success and np.all(np.isfinite(res.x)):
            self.a, self.b = float(res.x[0]), float(res.x[1])
        self.n_samples = len(predictions)
        return self

    def transform(self, probability: float) -> float:
        """Calibrate one probability.  Output is clamped to ``[0.005, 0.995]``."""
        if not math.isfinite(probability):
            return _PLATT_MIN_OUTPUT
        p = min(_PLATT_MAX_INPUT, max(_PLATT_MIN_INPUT, probability))
        out = float(expit(self.a * float(logit(p)) + self.b))
        return min(_PLATT_MAX_OUTPUT, max(_PLATT_MIN_OUTPUT, out))

    def transform_field(self, probs: Sequence[float]) -> list[float]:
        """Calibrate every entrant then renormalise the field to 1.0."""
        if len(probs) <= 1:
            return [float(p) for p in probs]
        calibrated = [self.transform(p) for p in probs]
        total = sum(calibrated)
        if total <= 0:
            return [1.0 / len(probs)] * len(probs)
        return [p / total for p in calibrated]


def brier_score(predictions: Sequence[float], outcomes: Sequence[int | bool]) -> float:
    """Mean squared error of probabilistic predictions.  Lower is better."""
    if len(predictions) == 0:
        return 0.0
    p = np.asarray(predictions, dtype=float)
    y = np.asarray(outcomes, dtype=float)
    return float(np.mean((p - y) ** 2))


def log_loss(predictions: Sequence[float], outcomes: Sequence[int | bool]) -> float:
    """Mean negative log-likelihood, predictions clipped away from 0 and 1."""
    if len(predictions) == 0:
        return 0.0
    p = np.clip(np.asarray(predictions, dtype=float), 1e-12, 1 - 1e-12)
    y = np.asarray(outcomes, dtype=float)
    return float(-np.mean(y * np.log(p) + (1 - y) * np.log(1 - p)))


# ---------------------------------------------------------------------------
# Field-level entry point
# ---------------------------------------------------------------------------


def calibrate(
    field_entrants: Sequence["Entrant"],
    temperature: float = DEFAULT_TEMPERATURE,
    *,
    score_scale: float = 1.0,
    bounds: Optional[tuple[float, float]] = (DEFAULT_MIN_PROBABILITY, DEFAULT_MAX_PROBABILITY),
    scaler: Optional[PlattScaler] = None,
) -> CalibratedDistribution:
    """Model win probabilities for a field.

    Args:
        field_entrants: Entrants in program order (scratches removed).
        temperature: Softmax temperature.
        score_scale: Divisor applied to ``base_score`` before the softmax.
        bounds: ``(floor, ceiling)`` passed to
            :func:`clamp_and_redistribute`.  The default keeps every
            entrant strictly inside (0, 1) even when the softmax
            underflows; ``None`` leaves the raw softmax untouched.
        scaler: Optional Platt scaler; only applied when :attr:`~PlattScaler.is_ready`.

    Returns:
        :class:`CalibratedDistribution`.  Empty for an empty field; a single
        entrant receives exactly 1.0.
    """
    t = max(MIN_TEMPERATURE, temperature) if math.isfinite(temperature) else DEFAULT_TEMPERATURE
    ids = [e.id for e in field_entrants]
    probs = softmax_probabilities(
        [e.base_score for e in field_entrants], t, score_scale=score_scale
    )
    if bounds is not None:
        probs = clamp_and_redistribute(probs, bounds[0], bounds[1])

    platt_applied = False
    if scaler is not None and scaler.is_ready and len(probs) > 1:
        probs = scaler.transform_field(probs)
        platt_applied = True

    return CalibratedDistribution(
        probabilities=dict(zip(ids, probs)),
        temperature=t,
        platt_applied=platt_applied,
    )
