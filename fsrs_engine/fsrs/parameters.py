"""
FSRS Parameters and Card Types

Holds the model's default weight table, the per-user scheduling parameters,
the time-unit value types and the card / review data models shared by the
scheduler and the optimizer.

Default weights are FSRS v5 values (19 weights). Vectors of 21 weights are
accepted for FSRS-6, where w[20] is the trainable forgetting-curve decay.
"""
from dataclasses import dataclass, field, replace
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Dict, Optional, Sequence, Tuple, Union
import math


# FSRS v5 default weights (analysis of millions of public reviews)
DEFAULT_WEIGHTS: Tuple[float, ...] = (
    0.4072,   # w[0]: initial stability for AGAIN
    1.1829,   # w[1]: initial stability for HARD
    3.1262,   # w[2]: initial stability for GOOD
    15.4722,  # w[3]: initial stability for EASY
    7.2102,   # w[4]: initial difficulty baseline
    0.5316,   # w[5]: initial difficulty spread by grade
    1.0651,   # w[6]: difficulty update rate
    0.0234,   # w[7]: difficulty mean reversion rate
    1.6160,   # w[8]: stability increase base (e^w8)
    0.1544,   # w[9]: stability saturation exponent
    1.0070,   # w[10]: retrievability gain factor
    1.9395,   # w[11]: lapse stability scale
    0.1100,   # w[12]: difficulty impact on lapse stability
    0.2939,   # w[13]: previous stability impact on lapse
    2.2697,   # w[14]: retrievability impact on lapse stability
    0.2315,   # w[15]: HARD penalty
    2.9898,   # w[16]: EASY bonus
    0.5100,   # w[17]: short-term stability scale
    0.6000,   # w[18]: short-term curve shape
)

MIN_WEIGHTS = 19
MAX_WEIGHTS = 21

# Power-law forgetting curve R(t, S) = (1 + FACTOR * t / S) ^ DECAY
DECAY = -0.5
FACTOR = 19 / 81

MIN_STABILITY = 0.1
MIN_DIFFICULTY = 1.0
MAX_DIFFICULTY = 10.0
MAX_INTERVAL_DAYS = 36500

RETENTION_RANGE = (0.70, 0.99)
FUZZ_FACTOR_RANGE = (0.0, 0.25)


class InvalidParametersError(ValueError):
    """A scheduling parameter is outside its documented range"""

    def __init__(self, field_name: str, message: str):
        self.field = field_name
        super().__init__(f"{field_name}: {message}")


class Rating(int, Enum):
    """Review rating options"""
    AGAIN = 1  # Completely forgot
    HARD = 2   # Difficult to recall
    GOOD = 3   # Recalled correctly
    EASY = 4   # Recalled easily


class CardState(str, Enum):
    """Card lifecycle stage"""
    NEW = "new"
    LEARNING = "learning"
    REVIEW = "review"
    RELEARNING = "relearning"

    @property
    def is_stepping(self) -> bool:
        return self in (CardState.LEARNING, CardState.RELEARNING)


@dataclass(frozen=True, order=True)
class Minutes:
    """Intra-day interval used while a card walks its (re)learning steps"""
    value: int

    def __post_init__(self):
        _check_unit_value(self.value, "minutes")

    def to_timedelta(self) -> timedelta:
        return timedelta(minutes=self.value)

    def as_days(self) -> float:
        return self.value / 1440

    def __str__(self) -> str:
        return f"{self.value}m"


@dataclass(frozen=True, order=True)
class Days:
    """Inter-day interval used for graduated (review) cards"""
    value: int

    def __post_init__(self):
        _check_unit_value(self.value, "days")

    def to_timedelta(self) -> timedelta:
        return timedelta(days=self.value)

    def as_days(self) -> float:
        return float(self.value)

    def __str__(self) -> str:
        return f"{self.value}d"


Interval = Union[Minutes, Days]


def _check_unit_value(value: Any, unit: str) -> None:
    if isinstance(value, bool) or not isinstance(value, int):
        raise TypeError(f"{unit} must be an int, got {type(value).__name__}")
    if value < 0:
        raise ValueError(f"{unit} must be non-negative, got {value}")


def interval_to_dict(interval: Optional[Interval]) -> Optional[Dict[str, Any]]:
    if interval is None:
        return None
    unit = "minutes" if isinstance(interval, Minutes) else "days"
    return {"value": interval.value, "unit": unit}


def interval_from_dict(d: Optional[Dict[str, Any]]) -> Optional[Interval]:
    if not d:
        return None
    if d["unit"] == "minutes":
        return Minutes(int(d["value"]))
    if d["unit"] == "days":
        return Days(int(d["value"]))
    raise ValueError(f"Unknown interval unit: {d['unit']!r}")


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


@dataclass(frozen=True)
class MemoryState:
    """
    Scheduling state of a single card.

    Owned by the caller's card record; the scheduler never mutates it and
    returns a new instance after each review.
    """
    card_id: str = ""
    stability: float = 0.0
    difficulty: float = 0.0
    state: CardState = CardState.NEW
    step: int = 0
    due: datetime = field(default_factory=_utcnow)
    last_review: Optional[datetime] = None
    reps: int = 0
    lapses: int = 0
    elapsed_days: float = 0.0
    scheduled_interval: Optional[Interval] = None

    @classmethod
    def new(cls, card_id: str, now: Optional[datetime] = None) -> "MemoryState":
        """Create a card that has never been reviewed"""
        return cls(card_id=card_id, due=now or _utcnow())

    def to_dict(self) -> Dict:
        """Convert to dictionary"""
        return {
            "card_id": self.card_id,
            "stability": self.stability,
            "difficulty": self.difficulty,
            "state": self.state.value,
            "step": self.step,
            "due": self.due.isoformat(),
            "last_review": self.last_review.isoformat() if self.last_review else None,
            "reps": self.reps,
            "lapses": self.lapses,
            "elapsed_days": self.elapsed_days,
            "scheduled_interval": interval_to_dict(self.scheduled_interval),
        }

    @classmethod
    def from_dict(cls, d: Dict) -> "MemoryState":
        return cls(
            card_id=d.get("card_id", ""),
            stability=float(d.get("stability", 0.0)),
            difficulty=float(d.get("difficulty", 0.0)),
            state=CardState(d.get("state", CardState.NEW.value)),
            step=int(d.get("step", 0)),
            due=datetime.fromisoformat(d["due"]) if d.get("due") else _utcnow(),
            last_review=datetime.fromisoformat(d["last_review"]) if d.get("last_review") else None,
            reps=int(d.get("reps", 0)),
            lapses=int(d.get("lapses", 0)),
            elapsed_days=float(d.get("elapsed_days", 0.0)),
            scheduled_interval=interval_from_dict(d.get("scheduled_interval")),
        )


@dataclass(frozen=True)
class ReviewEvent:
    """A single historical review used for weight optimization"""
    card_id: str
    rating: Rating
    reviewed_at: datetime
    elapsed_days: float = 0.0
    state: CardState = CardState.REVIEW  # card state before the review

    @property
    def recalled(self) -> bool:
        return self.rating > Rating.AGAIN

    @classmethod
    def from_review_log(cls, log: Dict) -> "ReviewEvent":
        """Create from a persisted review log dictionary"""
        reviewed_at = log.get("reviewed_at") or log.get("review_time")
        if isinstance(reviewed_at, str):
            reviewed_at = datetime.fromisoformat(reviewed_at)
        return cls(
            card_id=str(log["card_id"]),
            rating=Rating(int(log["rating"])),
            reviewed_at=reviewed_at,
            elapsed_days=max(0.0, float(log.get("elapsed_days") or 0.0)),
            state=CardState(log.get("state", CardState.REVIEW.value)),
        )


@dataclass(frozen=True)
class Parameters:
    """
    Per-user scheduling parameters.

    Validated on construction; out-of-range values raise
    InvalidParametersError instead of being clamped.
    """
    w: Tuple[float, ...] = DEFAULT_WEIGHTS
    request_retention: float = 0.9
    maximum_interval: int = MAX_INTERVAL_DAYS
    learning_steps: Tuple[int, ...] = (1, 10)  # minutes
    relearning_steps: Tuple[int, ...] = (10,)  # minutes
    graduating_interval: int = 1  # days
    easy_interval: int = 4  # days
    enable_fuzz: bool = True
    fuzz_factor: float = 0.05
    enable_short_term: bool = False

    def __post_init__(self):
        # Accept any sequence, store tuples so instances stay hashable
        object.__setattr__(self, "w", tuple(float(x) for x in self.w))
        object.__setattr__(self, "learning_steps", tuple(self.learning_steps))
        object.__setattr__(self, "relearning_steps", tuple(self.relearning_steps))
        self._validate()

    @classmethod
    def default(cls) -> "Parameters":
        return cls()

    def with_weights(self, weights: Sequence[float]) -> "Parameters":
        return replace(self, w=tuple(weights))

    def steps_for(self, state: CardState) -> Tuple[int, ...]:
        if state == CardState.RELEARNING:
            return self.relearning_steps
        return self.learning_steps

    @property
    def decay(self) -> float:
        return curve_constants(self.w)[0]

    @property
    def factor(self) -> float:
        return curve_constants(self.w)[1]

    def _validate(self) -> None:
        if not MIN_WEIGHTS <= len(self.w) <= MAX_WEIGHTS:
            raise InvalidParametersError(
                "w", f"expected {MIN_WEIGHTS}-{MAX_WEIGHTS} weights, got {len(self.w)}"
            )
        if not all(math.isfinite(x) for x in self.w):
            raise InvalidParametersError("w", "weights must be finite")
        if len(self.w) >= MAX_WEIGHTS and self.w[20] <= 0:
            raise InvalidParametersError("w", "w[20] (curve decay) must be positive")

        low, high = RETENTION_RANGE
        if not low <= self.request_retention <= high:
            raise InvalidParametersError(
                "request_retention", f"must be between {low} and {high}"
            )
        if not 1 <= self.maximum_interval <= MAX_INTERVAL_DAYS:
            raise InvalidParametersError(
                "maximum_interval", f"must be between 1 and {MAX_INTERVAL_DAYS} days"
            )
        for name in ("learning_steps", "relearning_steps"):
            steps = getattr(self, name)
            if not steps:
                raise InvalidParametersError(name, "must be a non-empty list of minutes")
            if any(isinstance(s, bool) or not isinstance(s, int) or s < 1 for s in steps):
                raise InvalidParametersError(name, "steps must be positive whole minutes")
        for name in ("graduating_interval", "easy_interval"):
            if getattr(self, name) < 1:
                raise InvalidParametersError(name, "must be at least 1 day")
        low, high = FUZZ_FACTOR_RANGE
        if not low <= self.fuzz_factor <= high:
            raise InvalidParametersError("fuzz_factor", f"must be between {low} and {high}")


def curve_constants(w: Optional[Sequence[float]] = None) -> Tuple[float, float]:
    """
    Forgetting curve (decay, factor) for a weight vector.

    FACTOR is chosen so that R(S, S) == 0.9 for any decay.
    """
    if w is not None and len(w) >= MAX_WEIGHTS:
        decay = -float(w[20])
        return decay, math.pow(0.9, 1 / decay) - 1
    return DECAY, FACTOR
