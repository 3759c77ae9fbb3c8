"""
FSRS Spaced Repetition Engine

Includes:
- Memory model: retrievability, stability and difficulty formulas (FSRS v5)
- Scheduler: NEW -> LEARNING -> REVIEW <-> RELEARNING state machine
- Optimizer: per-user weight fitting from review history
- Analytics: forgetting curves, retention and workload helpers
"""
from .parameters import (
    DEFAULT_WEIGHTS,
    CardState,
    Days,
    InvalidParametersError,
    MemoryState,
    Minutes,
    Parameters,
    Rating,
    ReviewEvent,
)

from .memory_model import (
    init_difficulty,
    init_stability,
    next_difficulty,
    next_forget_stability,
    next_interval,
    next_recall_stability,
    next_stability,
    retrievability,
    short_term_stability,
)

from .fuzz import fuzz_interval, fuzz_range

from .scheduler import HardStepPolicy, ReviewLog, Scheduler, SchedulingInfo

from .optimizer import (
    MIN_REVIEWS_FOR_OPTIMIZATION,
    WEIGHT_BOUNDS,
    OptimizationResult,
    OptimizationStatus,
    WeightComparison,
    compare_with_defaults,
    evaluate,
    get_min_reviews_for_optimization,
    optimize,
)

__all__ = [
    # Data model
    "DEFAULT_WEIGHTS",
    "CardState",
    "Days",
    "InvalidParametersError",
    "MemoryState",
    "Minutes",
    "Parameters",
    "Rating",
    "ReviewEvent",
    # Memory model
    "init_difficulty",
    "init_stability",
    "next_difficulty",
    "next_forget_stability",
    "next_interval",
    "next_recall_stability",
    "next_stability",
    "retrievability",
    "short_term_stability",
    # Scheduling
    "fuzz_interval",
    "fuzz_range",
    "HardStepPolicy",
    "ReviewLog",
    "Scheduler",
    "SchedulingInfo",
    # Optimization
    "MIN_REVIEWS_FOR_OPTIMIZATION",
    "WEIGHT_BOUNDS",
    "OptimizationResult",
    "OptimizationStatus",
    "WeightComparison",
    "compare_with_defaults",
    "evaluate",
    "get_min_reviews_for_optimization",
    "optimize",
]
