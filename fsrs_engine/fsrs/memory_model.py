"""
FSRS Memory Model

DSR model:
- D (Difficulty): 1-10 scale, inherent hardness of the card
- S (Stability): days until R decays to 90%
- R (Retrievability): probability of recall after t days

Core formulas (FSRS v5):
- R(t, S) = (1 + F * t / S) ^ C              with C = -0.5, F = 19/81
- D0(G) = w4 - e^(w5 * (G - 1)) + 1
- D'  = w7 * D0(3) + (1 - w7) * (D - w6 * (G - 3))
- S'r = S * (1 + e^w8 * (11 - D) * S^-w9 * (e^(w10 * (1 - R)) - 1) * hard * easy)
- S'f = w11 * D^-w12 * ((S + 1)^w13 - 1) * e^(w14 * (1 - R))
- I   = S / F * (R_req ^ (1 / C) - 1)

Every function is pure. Inputs may be scalars or numpy arrays so the optimizer
can replay whole batches of card histories through the same formulas; scalar
inputs return plain floats.
"""
from typing import Optional, Sequence, Union
import math

import numpy as np

from .parameters import (
    DEFAULT_WEIGHTS,
    MAX_DIFFICULTY,
    MAX_INTERVAL_DAYS,
    MIN_DIFFICULTY,
    MIN_STABILITY,
    Rating,
    curve_constants,
)

ArrayLike = Union[float, np.ndarray]

# Upper bound used when a computation overflows
MAX_STABILITY = float(MAX_INTERVAL_DAYS)


def _weights(w: Optional[Sequence[float]]) -> Sequence[float]:
    return DEFAULT_WEIGHTS if w is None else w


def _grades(rating) -> np.ndarray:
    if isinstance(rating, Rating):
        return np.asarray(rating.value)
    return np.asarray(rating, dtype=int)


def _out(x) -> ArrayLike:
    arr = np.asarray(x, dtype=float)
    if arr.ndim == 0:
        return float(arr)
    return arr


def sanitize_stability(stability: ArrayLike) -> ArrayLike:
    """Map non-finite or out-of-range stability to the nearest valid bound"""
    s = np.asarray(stability, dtype=float)
    s = np.nan_to_num(s, nan=MIN_STABILITY, posinf=MAX_STABILITY, neginf=MIN_STABILITY)
    return _out(np.clip(s, MIN_STABILITY, MAX_STABILITY))


def clamp_difficulty(difficulty: ArrayLike) -> ArrayLike:
    d = np.asarray(difficulty, dtype=float)
    d = np.nan_to_num(d, nan=MAX_DIFFICULTY, posinf=MAX_DIFFICULTY, neginf=MIN_DIFFICULTY)
    return _out(np.clip(d, MIN_DIFFICULTY, MAX_DIFFICULTY))


def retrievability(
    elapsed_days: ArrayLike,
    stability: ArrayLike,
    w: Optional[Sequence[float]] = None,
) -> ArrayLike:
    """
    Probability of recall after elapsed_days

    Args:
        elapsed_days: Days since last review (negative treated as 0)
        stability: Memory stability in days
        w: Weights; only a 21-weight vector changes the curve shape

    Returns:
        Retrievability in (0, 1], or 0 for non-positive stability
    """
    decay, factor = curve_constants(w)
    t = np.maximum(np.asarray(elapsed_days, dtype=float), 0.0)
    s = np.asarray(stability, dtype=float)
    valid = s > 0
    safe_s = np.where(valid, s, 1.0)
    r = np.power(1.0 + factor * t / safe_s, decay)
    return _out(np.where(valid, r, 0.0))


def init_stability(rating, w: Optional[Sequence[float]] = None) -> ArrayLike:
    """S0(G) = w[G-1]"""
    w = _weights(w)
    g = _grades(rating)
    s0 = np.take(np.asarray(w[:4], dtype=float), g - 1)
    return _out(np.maximum(s0, MIN_STABILITY))


def init_difficulty(rating, w: Optional[Sequence[float]] = None) -> ArrayLike:
    """D0(G) = w4 - e^(w5 * (G - 1)) + 1, clamped to [1, 10]"""
    w = _weights(w)
    g = _grades(rating)
    return clamp_difficulty(w[4] - np.exp(w[5] * (g - 1)) + 1)


def next_difficulty(difficulty: ArrayLike, rating, w: Optional[Sequence[float]] = None) -> ArrayLike:
    """
    Difficulty after a review

    Linear step by grade, then mean reversion toward D0(GOOD).
    """
    w = _weights(w)
    g = _grades(rating)
    stepped = np.asarray(difficulty, dtype=float) - w[6] * (g - 3)
    target = init_difficulty(Rating.GOOD, w)
    return clamp_difficulty(w[7] * target + (1 - w[7]) * stepped)


def next_recall_stability(
    difficulty: ArrayLike,
    stability: ArrayLike,
    retrievability_at_review: ArrayLike,
    rating,
    w: Optional[Sequence[float]] = None,
) -> ArrayLike:
    """
    Stability after a successful recall (HARD, GOOD or EASY)

    The growth factor shrinks as difficulty rises and grows as the card is
    reviewed closer to being forgotten. Never below the current stability.
    """
    w = _weights(w)
    g = _grades(rating)
    d = np.asarray(difficulty, dtype=float)
    s = np.maximum(np.asarray(stability, dtype=float), MIN_STABILITY)
    r = np.asarray(retrievability_at_review, dtype=float)

    hard_penalty = np.where(g == Rating.HARD.value, w[15], 1.0)
    easy_bonus = np.where(g == Rating.EASY.value, w[16], 1.0)

    with np.errstate(over="ignore", invalid="ignore"):
        growth = (
            np.exp(w[8])
            * (11 - d)
            * np.power(s, -w[9])
            * (np.exp((1 - r) * w[10]) - 1)
            * hard_penalty
            * easy_bonus
        )
        new_stability = s * (1 + growth)
    return sanitize_stability(np.fmax(s, new_stability))


def next_forget_stability(
    difficulty: ArrayLike,
    stability: ArrayLike,
    retrievability_at_review: ArrayLike,
    w: Optional[Sequence[float]] = None,
) -> ArrayLike:
    """Stability after a lapse (AGAIN). Never above the current stability."""
    w = _weights(w)
    d = np.asarray(difficulty, dtype=float)
    s = np.maximum(np.asarray(stability, dtype=float), MIN_STABILITY)
    r = np.asarray(retrievability_at_review, dtype=float)

    with np.errstate(over="ignore", invalid="ignore"):
        new_stability = (
            w[11]
            * np.power(d, -w[12])
            * (np.power(s + 1, w[13]) - 1)
            * np.exp((1 - r) * w[14])
        )
    return sanitize_stability(np.fmin(new_stability, s))


def next_stability(
    stability: ArrayLike,
    difficulty: ArrayLike,
    rating,
    elapsed_days: ArrayLike,
    retrievability_at_review: Optional[ArrayLike] = None,
    w: Optional[Sequence[float]] = None,
) -> ArrayLike:
    """
    Stability after a review of a card that already has a memory state

    Dispatches to the lapse formula for AGAIN and the recall formula
    otherwise. Retrievability is derived from elapsed_days when not given.
    """
    if retrievability_at_review is None:
        retrievability_at_review = retrievability(elapsed_days, stability, w)
    g = _grades(rating)
    recall = next_recall_stability(difficulty, stability, retrievability_at_review, g, w)
    forget = next_forget_stability(difficulty, stability, retrievability_at_review, w)
    return _out(np.where(g == Rating.AGAIN.value, forget, recall))


def short_term_stability(
    stability: float,
    elapsed_minutes: float,
    rating: Rating,
    w: Optional[Sequence[float]] = None,
) -> float:
    """
    Same-day stability update (FSRS v6 short-term term)

    S' = S * (1 + w17 * (t_minutes / 1440) ^ w18), halved on AGAIN.
    AGAIN never raises stability and a pass never lowers it.
    """
    w = _weights(w)
    s = float(sanitize_stability(stability))
    day_fraction = max(0.0, float(elapsed_minutes)) / 1440
    scale = 1 + w[17] * math.pow(day_fraction, w[18])
    if rating == Rating.AGAIN:
        return float(sanitize_stability(min(s, s * 0.5 * scale)))
    return float(sanitize_stability(max(s, s * scale)))


def next_interval(
    stability: float,
    request_retention: float = 0.9,
    maximum_interval: int = MAX_INTERVAL_DAYS,
    w: Optional[Sequence[float]] = None,
) -> int:
    """
    Whole days until retrievability decays to request_retention

    Formula: I = S / F * (R_req ^ (1 / C) - 1), clamped to [1, maximum_interval]
    """
    if not math.isfinite(stability) or stability <= 0:
        return 1
    decay, factor = curve_constants(w)
    interval = stability / factor * (math.pow(request_retention, 1 / decay) - 1)
    if not math.isfinite(interval):
        return maximum_interval
    return max(1, min(maximum_interval, int(round(interval))))
