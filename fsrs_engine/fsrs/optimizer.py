"""
FSRS Weight Optimizer

Fits per-user FSRS weights to a learner's review history so that predicted
retrievability matches observed recall.

Method:
1. Group review events per card and replay each card's history through the
   memory model with the candidate weights
2. Score predictions against outcomes (rating > AGAIN means recalled) with
   binary cross-entropy plus a small L2 pull toward the starting weights
3. Minimise with range-scaled gradient descent on a forward-difference
   gradient, clipping weights to WEIGHT_BOUNDS after every step

Too little data is an expected outcome, reported as
OptimizationStatus.INSUFFICIENT_DATA rather than raised.

References:
- FSRS-4.5 / v5: https://github.com/open-spaced-repetition/fsrs4anki
"""
from collections import defaultdict
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional, Sequence, Tuple
import logging
import math

import numpy as np

from ..core.config import settings
from . import memory_model as mm
from .parameters import (
    DEFAULT_WEIGHTS,
    MAX_WEIGHTS,
    MIN_WEIGHTS,
    InvalidParametersError,
    Rating,
    ReviewEvent,
)

logger = logging.getLogger(__name__)


MIN_REVIEWS_FOR_OPTIMIZATION = 100
MAX_ITERATIONS = 200
CONVERGENCE_EPSILON = 1e-6
LEARNING_RATE = 0.1
MIN_LEARNING_RATE = 1e-6
REGULARIZATION = 1e-3
GRADIENT_STEP = 1e-5
LOSS_EPS = 1e-7

# Parameter bounds keeping the memory model numerically sane
WEIGHT_BOUNDS: Tuple[Tuple[float, float], ...] = (
    (0.01, 10.0),   # w[0]: initial stability AGAIN
    (0.01, 10.0),   # w[1]: initial stability HARD
    (0.1, 30.0),    # w[2]: initial stability GOOD
    (1.0, 100.0),   # w[3]: initial stability EASY
    (1.0, 10.0),    # w[4]: initial difficulty baseline
    (0.01, 3.0),    # w[5]: difficulty spread
    (0.01, 5.0),    # w[6]: difficulty update rate
    (0.001, 0.5),   # w[7]: mean reversion rate
    (0.0, 4.0),     # w[8]: stability increase base
    (0.01, 1.0),    # w[9]: stability saturation exponent
    (0.01, 3.0),    # w[10]: retrievability gain
    (0.1, 5.0),     # w[11]: lapse stability scale
    (0.001, 0.5),   # w[12]: difficulty impact on lapse
    (0.01, 1.0),    # w[13]: stability impact on lapse
    (0.01, 5.0),    # w[14]: retrievability impact on lapse
    (0.01, 1.0),    # w[15]: HARD penalty
    (1.0, 5.0),     # w[16]: EASY bonus
    (0.0, 1.0),     # w[17]: short-term stability scale
    (0.0, 1.0),     # w[18]: short-term curve shape
    (0.0, 1.0),     # w[19]: short-term stability exponent (FSRS-6)
    (0.1, 0.8),     # w[20]: forgetting curve decay (FSRS-6)
)

# Short-term weights never influence inter-day predictions
_LONG_TERM_INDICES = tuple(range(17))
_DECAY_INDEX = 20


class OptimizationStatus(str, Enum):
    OPTIMIZED = "optimized"
    INSUFFICIENT_DATA = "insufficient_data"


@dataclass
class OptimizationResult:
    """Result of weight optimization"""
    status: OptimizationStatus
    weights: List[float]
    loss: float
    rmse: float
    sample_size: int
    iterations: int
    initial_loss: float = 0.0
    converged: bool = False
    min_reviews_required: int = MIN_REVIEWS_FOR_OPTIMIZATION
    convergence_history: List[float] = field(default_factory=list)
    metrics: Dict[str, float] = field(default_factory=dict)

    @property
    def reviews_needed(self) -> int:
        """Additional usable reviews before optimization can run"""
        return max(0, self.min_reviews_required - self.sample_size)

    @property
    def improvement_percent(self) -> float:
        if self.initial_loss <= 0:
            return 0.0
        return (self.initial_loss - self.loss) / self.initial_loss * 100

    def to_dict(self) -> Dict[str, Any]:
        return {
            "status": self.status.value,
            "weights": self.weights,
            "loss": self.loss,
            "rmse": self.rmse,
            "sample_size": self.sample_size,
            "iterations": self.iterations,
            "initial_loss": self.initial_loss,
            "converged": self.converged,
            "improvement_percent": self.improvement_percent,
            "reviews_needed": self.reviews_needed,
            "metrics": self.metrics,
        }


@dataclass
class WeightComparison:
    """Optimized weights scored against the shipped defaults"""
    default_loss: float
    optimized_loss: float
    improvement_percent: float
    sample_size: int


@dataclass
class FitReport:
    """Fit quality of one weight vector on a review history"""
    loss: float
    rmse: float
    sample_size: int
    metrics: Dict[str, float] = field(default_factory=dict)


@dataclass
class TrainingSet:
    """
    Card histories padded into (n_cards, max_len) arrays

    Column 0 holds each card's first kept review, which initialises the
    memory state; later masked columns are the scored samples.
    """
    ratings: np.ndarray
    elapsed: np.ndarray
    mask: np.ndarray

    @property
    def sample_size(self) -> int:
        if self.mask.shape[1] < 2:
            return 0
        return int(self.mask[:, 1:].sum())

    @property
    def labels(self) -> np.ndarray:
        return (self.ratings[:, 1:] > Rating.AGAIN.value)[self.mask[:, 1:]].astype(float)


def get_min_reviews_for_optimization() -> int:
    return MIN_REVIEWS_FOR_OPTIMIZATION


def clip_weights(weights: Sequence[float]) -> np.ndarray:
    """Clip weights to WEIGHT_BOUNDS"""
    w = np.asarray(weights, dtype=float).copy()
    bounds = np.asarray(WEIGHT_BOUNDS[: len(w)])
    return np.clip(w, bounds[:, 0], bounds[:, 1])


def validate_weights(weights: Sequence[float]) -> bool:
    """True when every weight is finite and inside WEIGHT_BOUNDS"""
    if len(weights) < 17 or len(weights) > len(WEIGHT_BOUNDS):
        return False
    for value, (low, high) in zip(weights, WEIGHT_BOUNDS):
        if not math.isfinite(value) or value < low or value > high:
            return False
    return True


def log_loss(predictions: np.ndarray, labels: np.ndarray) -> float:
    """Binary cross-entropy: -mean(y * log(p) + (1 - y) * log(1 - p))"""
    if len(predictions) == 0:
        return 0.0
    p = np.clip(predictions, LOSS_EPS, 1 - LOSS_EPS)
    return float(-np.mean(labels * np.log(p) + (1 - labels) * np.log(1 - p)))


def rmse(predictions: np.ndarray, labels: np.ndarray) -> float:
    if len(predictions) == 0:
        return 0.0
    return float(np.sqrt(np.mean((predictions - labels) ** 2)))


def build_training_set(events: Sequence[ReviewEvent]) -> TrainingSet:
    """
    Turn raw review events into padded per-card histories

    Learning and relearning reviews are dropped (the model fits inter-day
    scheduling) and so are same-day repeats after the first kept review.
    Cards left with a single review carry no elapsed-time signal.
    """
    by_card: Dict[str, List[ReviewEvent]] = defaultdict(list)
    for event in events:
        by_card[event.card_id].append(event)

    histories: List[List[Tuple[int, float]]] = []
    for card_events in by_card.values():
        card_events.sort(key=lambda e: e.reviewed_at)
        kept: List[Tuple[int, float]] = []
        for event in card_events:
            if event.state.is_stepping:
                continue
            if kept and event.elapsed_days <= 0:
                continue
            kept.append((int(Rating(event.rating)), max(0.0, float(event.elapsed_days))))
        if len(kept) >= 2:
            histories.append(kept)

    if not histories:
        empty = np.zeros((0, 1))
        return TrainingSet(empty.astype(int), empty, empty.astype(bool))

    max_len = max(len(h) for h in histories)
    ratings = np.full((len(histories), max_len), Rating.GOOD.value, dtype=int)
    elapsed = np.zeros((len(histories), max_len))
    mask = np.zeros((len(histories), max_len), dtype=bool)
    for row, history in enumerate(histories):
        n = len(history)
        ratings[row, :n] = [r for r, _ in history]
        elapsed[row, :n] = [t for _, t in history]
        mask[row, :n] = True
    return TrainingSet(ratings, elapsed, mask)


def predict(data: TrainingSet, weights: Sequence[float]) -> np.ndarray:
    """
    Predicted retrievability for every scored sample

    Replays each card's history with the given weights; returns a flat array
    aligned with TrainingSet.labels.
    """
    if data.sample_size == 0:
        return np.zeros(0)

    w = tuple(float(x) for x in weights)
    stability = mm.init_stability(data.ratings[:, 0], w)
    difficulty = mm.init_difficulty(data.ratings[:, 0], w)
    predictions = np.zeros((data.ratings.shape[0], data.ratings.shape[1] - 1))

    for t in range(1, data.ratings.shape[1]):
        grades = data.ratings[:, t]
        elapsed = data.elapsed[:, t]
        r = mm.retrievability(elapsed, stability, w)
        predictions[:, t - 1] = r

        new_stability = mm.next_stability(stability, difficulty, grades, elapsed, r, w)
        new_difficulty = mm.next_difficulty(difficulty, grades, w)
        active = data.mask[:, t]
        stability = np.where(active, new_stability, stability)
        difficulty = np.where(active, new_difficulty, difficulty)

    return predictions[data.mask[:, 1:]]


def _trainable_indices(n_weights: int) -> List[int]:
    indices = list(_LONG_TERM_INDICES)
    if n_weights > _DECAY_INDEX:
        indices.append(_DECAY_INDEX)
    return indices


def _calculate_metrics(predictions: np.ndarray, labels: np.ndarray) -> Dict[str, float]:
    """Evaluation metrics for a set of predictions"""
    if len(predictions) == 0:
        return {}

    predicted_retention = float(np.mean(predictions))
    actual_retention = float(np.mean(labels))
    return {
        "rmse": rmse(predictions, labels),
        "mae": float(np.mean(np.abs(predictions - labels))),
        "auc": _calculate_auc(predictions, labels),
        "calibration": _calculate_calibration(predictions, labels),
        "predicted_retention": predicted_retention,
        "actual_retention": actual_retention,
        "retention_error": abs(predicted_retention - actual_retention),
    }


def _calculate_auc(predictions: np.ndarray, labels: np.ndarray) -> float:
    """AUC-ROC via the rank-sum statistic (ties share their mean rank)"""
    positive = labels == 1.0
    n_pos = int(positive.sum())
    n_neg = len(labels) - n_pos
    if n_pos == 0 or n_neg == 0:
        return 0.5

    _, inverse, counts = np.unique(predictions, return_inverse=True, return_counts=True)
    mean_ranks = np.cumsum(counts) - (counts - 1) / 2
    ranks = mean_ranks[inverse]
    return float((ranks[positive].sum() - n_pos * (n_pos + 1) / 2) / (n_pos * n_neg))


def _calculate_calibration(predictions: np.ndarray, labels: np.ndarray, n_bins: int = 10) -> float:
    """Expected calibration error"""
    bins = np.minimum((predictions * n_bins).astype(int), n_bins - 1)
    ece = 0.0
    for b in range(n_bins):
        in_bin = bins == b
        if not in_bin.any():
            continue
        ece += in_bin.sum() * abs(predictions[in_bin].mean() - labels[in_bin].mean())
    return float(ece / len(predictions))


class WeightOptimizer:
    """
    Gradient-descent fit of FSRS weights to one learner's history

    Holds the prepared training set so that repeated loss evaluations during
    the search only replay the memory model.
    """

    def __init__(self, data: TrainingSet, anchor: Sequence[float]):
        self.data = data
        self.labels = data.labels
        self.anchor = np.asarray(anchor, dtype=float)
        bounds = np.asarray(WEIGHT_BOUNDS[: len(self.anchor)])
        self.lower = bounds[:, 0]
        self.upper = bounds[:, 1]
        self.span = self.upper - self.lower
        self.indices = _trainable_indices(len(self.anchor))

    def log_loss(self, weights: np.ndarray) -> float:
        return log_loss(predict(self.data, weights), self.labels)

    def objective(self, weights: np.ndarray) -> float:
        """Log loss plus range-normalised L2 pull toward the anchor weights"""
        penalty = np.sum(((weights - self.anchor) / self.span)[self.indices] ** 2)
        return self.log_loss(weights) + REGULARIZATION * penalty / len(self.indices)

    def gradient(self, weights: np.ndarray, base: float) -> np.ndarray:
        """Forward-difference gradient over the trainable weights"""
        grad = np.zeros_like(weights)
        for i in self.indices:
            h = GRADIENT_STEP * max(1.0, self.span[i])
            if weights[i] + h > self.upper[i]:
                h = -h
            shifted = weights.copy()
            shifted[i] += h
            grad[i] = (self.objective(shifted) - base) / h
        return grad

    def run(self, start: Sequence[float]) -> Tuple[np.ndarray, List[float], bool]:
        """
        Search from start; returns (best weights, loss history, converged)
        """
        weights = clip_weights(start)
        current = self.objective(weights)
        best_weights, best = weights.copy(), current
        learning_rate = LEARNING_RATE
        history: List[float] = []
        converged = False

        for iteration in range(MAX_ITERATIONS):
            grad = self.gradient(weights, current)
            candidate = np.clip(
                weights - learning_rate * self.span ** 2 * grad, self.lower, self.upper
            )
            loss = self.objective(candidate)
            history.append(loss)
            logger.debug(f"iteration={iteration} loss={loss:.6f} lr={learning_rate:.2e}")

            if loss < best:
                best_weights, best = candidate.copy(), loss

            if loss <= current:
                improvement = current - loss
                weights, current = candidate, loss
                if improvement < CONVERGENCE_EPSILON:
                    converged = True
                    break
            else:
                learning_rate *= 0.5
                if learning_rate < MIN_LEARNING_RATE:
                    converged = True
                    break

        return best_weights, history, converged


def _recent(events: Sequence[ReviewEvent]) -> List[ReviewEvent]:
    limit = settings.OPTIMIZER_MAX_EVENTS
    if len(events) <= limit:
        return list(events)
    logger.info(f"Capping optimizer input to the {limit} most recent of {len(events)} events")
    return sorted(events, key=lambda e: e.reviewed_at)[-limit:]


def optimize(
    events: Sequence[ReviewEvent],
    initial_weights: Optional[Sequence[float]] = None,
) -> OptimizationResult:
    """
    Fit FSRS weights to a learner's review history

    Args:
        events: Review events, chained per card in chronological order
        initial_weights: Starting point (default: DEFAULT_WEIGHTS)

    Returns:
        OptimizationResult; INSUFFICIENT_DATA with the initial weights
        unchanged and iterations == 0 when too few usable reviews exist
    """
    initial = list(DEFAULT_WEIGHTS if initial_weights is None else initial_weights)
    if not MIN_WEIGHTS <= len(initial) <= MAX_WEIGHTS:
        raise InvalidParametersError(
            "initial_weights", f"expected {MIN_WEIGHTS}-{MAX_WEIGHTS} weights, got {len(initial)}"
        )
    data = build_training_set(_recent(events))

    if data.sample_size < MIN_REVIEWS_FOR_OPTIMIZATION:
        logger.info(
            f"Skipping optimization: {data.sample_size} usable reviews, "
            f"{MIN_REVIEWS_FOR_OPTIMIZATION} required"
        )
        return OptimizationResult(
            status=OptimizationStatus.INSUFFICIENT_DATA,
            weights=initial,
            loss=0.0,
            rmse=0.0,
            sample_size=data.sample_size,
            iterations=0,
        )

    search = WeightOptimizer(data, anchor=clip_weights(initial))
    initial_loss = search.log_loss(np.asarray(initial, dtype=float))
    best_weights, history, converged = search.run(initial)

    predictions = predict(data, best_weights)
    final_loss = log_loss(predictions, search.labels)
    result = OptimizationResult(
        status=OptimizationStatus.OPTIMIZED,
        weights=[float(x) for x in best_weights],
        loss=final_loss,
        rmse=rmse(predictions, search.labels),
        sample_size=data.sample_size,
        iterations=len(history),
        initial_loss=initial_loss,
        converged=converged,
        convergence_history=history,
        metrics=_calculate_metrics(predictions, search.labels),
    )
    logger.info(
        f"Optimized FSRS weights on {result.sample_size} reviews: "
        f"loss {initial_loss:.4f} -> {final_loss:.4f} "
        f"in {result.iterations} iterations (converged={converged})"
    )
    return result


def evaluate(events: Sequence[ReviewEvent], weights: Sequence[float]) -> FitReport:
    """Score a weight vector on a review history without fitting"""
    data = build_training_set(events)
    predictions = predict(data, weights)
    labels = data.labels
    return FitReport(
        loss=log_loss(predictions, labels),
        rmse=rmse(predictions, labels),
        sample_size=data.sample_size,
        metrics=_calculate_metrics(predictions, labels),
    )


def compare_with_defaults(
    events: Sequence[ReviewEvent],
    optimized_weights: Sequence[float],
) -> WeightComparison:
    """
    Score optimized weights against DEFAULT_WEIGHTS on the same history

    improvement_percent is positive when the optimized weights predict
    better than the defaults.
    """
    data = build_training_set(events)
    labels = data.labels
    default_loss = log_loss(predict(data, DEFAULT_WEIGHTS), labels)
    optimized_loss = log_loss(predict(data, optimized_weights), labels)
    improvement = (
        (default_loss - optimized_loss) / default_loss * 100 if default_loss > 0 else 0.0
    )
    return WeightComparison(
        default_loss=default_loss,
        optimized_loss=optimized_loss,
        improvement_percent=improvement,
        sample_size=data.sample_size,
    )
