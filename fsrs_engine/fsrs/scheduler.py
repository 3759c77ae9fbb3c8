"""
FSRS Scheduler

State machine that applies the memory model to a single review:

    NEW -> LEARNING -> REVIEW <-> RELEARNING

Learning and relearning cards walk a list of short steps measured in minutes;
graduated cards are scheduled in whole days from their stability. The unit of
every returned interval follows the state the card ends up in.
"""
from dataclasses import dataclass, replace
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, NamedTuple, Optional, Tuple
import logging
import math

from . import memory_model as mm
from .fuzz import fuzz_interval, fuzz_seed
from .parameters import (
    CardState,
    Days,
    Interval,
    MemoryState,
    Minutes,
    Parameters,
    Rating,
    ReviewEvent,
    interval_to_dict,
)

logger = logging.getLogger(__name__)


class HardStepPolicy(str, Enum):
    """Delay used when HARD is pressed on a (re)learning step"""
    REPEAT = "repeat"    # repeat the current step's delay
    AVERAGE = "average"  # midpoint of the current and next step


@dataclass(frozen=True)
class ReviewLog:
    """Record of one review, as persisted by the caller"""
    card_id: str
    rating: Rating
    state: CardState  # state before the review
    due: datetime  # due date before the review
    stability: float  # after the review
    difficulty: float  # after the review
    elapsed_days: float
    scheduled_interval: Interval
    reviewed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return {
            "card_id": self.card_id,
            "rating": self.rating.value,
            "state": self.state.value,
            "due": self.due.isoformat(),
            "stability": self.stability,
            "difficulty": self.difficulty,
            "elapsed_days": self.elapsed_days,
            "scheduled_interval": interval_to_dict(self.scheduled_interval),
            "scheduled_days": self.scheduled_interval.as_days(),
            "reviewed_at": self.reviewed_at.isoformat(),
        }

    def to_review_event(self) -> ReviewEvent:
        return ReviewEvent(
            card_id=self.card_id,
            rating=self.rating,
            reviewed_at=self.reviewed_at,
            elapsed_days=self.elapsed_days,
            state=self.state,
        )


@dataclass(frozen=True)
class SchedulingInfo:
    """Predicted outcome of one rating, for previews"""
    state: CardState
    interval: Interval
    due: datetime
    stability: float
    difficulty: float


class _Outcome(NamedTuple):
    state: CardState
    step: int
    stability: float
    difficulty: float
    interval: Interval
    lapses: int


class Scheduler:
    """
    FSRS review scheduler

    Args:
        params: Per-user scheduling parameters (defaults when omitted)
        hard_step_policy: Delay policy for HARD on a learning step
        easy_skips_learning: EASY on a new card graduates straight to review
    """

    def __init__(
        self,
        params: Optional[Parameters] = None,
        hard_step_policy: HardStepPolicy = HardStepPolicy.REPEAT,
        easy_skips_learning: bool = True,
    ):
        self.params = params or Parameters.default()
        self.hard_step_policy = hard_step_policy
        self.easy_skips_learning = easy_skips_learning

    @property
    def w(self) -> Tuple[float, ...]:
        return self.params.w

    def review_card(
        self,
        card: MemoryState,
        rating: Rating,
        reviewed_at: Optional[datetime] = None,
    ) -> Tuple[MemoryState, ReviewLog]:
        """
        Process a card review and compute its next state

        Args:
            card: Memory state before the review
            rating: Learner's rating
            reviewed_at: Time of review (default: now, UTC)

        Returns:
            (New memory state, review log)
        """
        rating = Rating(rating)
        now = reviewed_at or datetime.now(timezone.utc)
        elapsed_days = self._elapsed_days(card, now)

        if card.state == CardState.NEW:
            outcome = self._review_new(card, rating)
        elif card.state.is_stepping:
            outcome = self._review_stepping(card, rating, elapsed_days)
        else:
            outcome = self._review_mature(card, rating, now, elapsed_days)

        updated = replace(
            card,
            stability=outcome.stability,
            difficulty=outcome.difficulty,
            state=outcome.state,
            step=outcome.step,
            due=now + outcome.interval.to_timedelta(),
            last_review=now,
            reps=card.reps + 1,
            lapses=outcome.lapses,
            elapsed_days=elapsed_days,
            scheduled_interval=outcome.interval,
        )
        log = ReviewLog(
            card_id=card.card_id,
            rating=rating,
            state=card.state,
            due=card.due,
            stability=outcome.stability,
            difficulty=outcome.difficulty,
            elapsed_days=elapsed_days,
            scheduled_interval=outcome.interval,
            reviewed_at=now,
        )
        return updated, log

    def preview(
        self, card: MemoryState, reviewed_at: Optional[datetime] = None
    ) -> Dict[Rating, SchedulingInfo]:
        """
        Preview what would happen for each rating

        The card itself is left untouched.
        """
        now = reviewed_at or datetime.now(timezone.utc)
        predictions = {}
        for rating in Rating:
            updated, _ = self.review_card(card, rating, now)
            predictions[rating] = SchedulingInfo(
                state=updated.state,
                interval=updated.scheduled_interval,
                due=updated.due,
                stability=updated.stability,
                difficulty=updated.difficulty,
            )
        return predictions

    def next_intervals(
        self, card: MemoryState, reviewed_at: Optional[datetime] = None
    ) -> Dict[Rating, Interval]:
        return {rating: info.interval for rating, info in self.preview(card, reviewed_at).items()}

    def current_retrievability(self, card: MemoryState, now: Optional[datetime] = None) -> float:
        """Predicted recall probability right now (0 for unseen cards)"""
        if card.state == CardState.NEW or card.last_review is None:
            return 0.0
        now = now or datetime.now(timezone.utc)
        return mm.retrievability(self._elapsed_days(card, now), card.stability, self.w)

    # === State handlers ===

    def _review_new(self, card: MemoryState, rating: Rating) -> _Outcome:
        stability = mm.init_stability(rating, self.w)
        difficulty = mm.init_difficulty(rating, self.w)

        if rating == Rating.EASY and self.easy_skips_learning:
            return _Outcome(
                CardState.REVIEW, 0, stability, difficulty,
                self._days(card, self.params.easy_interval), card.lapses,
            )

        steps = self.params.learning_steps
        return _Outcome(
            CardState.LEARNING, 0, stability, difficulty, Minutes(steps[0]), card.lapses
        )

    def _review_stepping(self, card: MemoryState, rating: Rating, elapsed_days: float) -> _Outcome:
        steps = self.params.steps_for(card.state)
        # Step lists can shrink after a settings change
        step = min(max(card.step, 0), len(steps) - 1)

        stability = card.stability if card.stability > 0 else mm.init_stability(Rating.GOOD, self.w)
        stability = self._checked_stability(stability, card)
        difficulty = card.difficulty if card.difficulty > 0 else mm.init_difficulty(Rating.GOOD, self.w)

        if self.params.enable_short_term:
            stability = mm.short_term_stability(stability, elapsed_days * 1440, rating, self.w)

        if rating == Rating.AGAIN:
            return _Outcome(card.state, 0, stability, difficulty, Minutes(steps[0]), card.lapses)

        if rating == Rating.HARD:
            return _Outcome(
                card.state, step, stability, difficulty, self._hard_delay(steps, step), card.lapses
            )

        if rating == Rating.GOOD and step + 1 < len(steps):
            return _Outcome(
                card.state, step + 1, stability, difficulty, Minutes(steps[step + 1]), card.lapses
            )

        # GOOD past the last step, or EASY: graduate
        if card.state == CardState.LEARNING:
            days = (
                self.params.easy_interval
                if rating == Rating.EASY
                else self.params.graduating_interval
            )
        else:
            days = mm.next_interval(
                stability, self.params.request_retention, self.params.maximum_interval, self.w
            )
        return _Outcome(
            CardState.REVIEW, 0, stability, difficulty, self._days(card, days), card.lapses
        )

    def _review_mature(
        self, card: MemoryState, rating: Rating, now: datetime, elapsed_days: float
    ) -> _Outcome:
        stability = self._checked_stability(card.stability, card)
        difficulty = float(mm.clamp_difficulty(card.difficulty))
        r = mm.retrievability(elapsed_days, stability, self.w)
        same_day = card.last_review is not None and card.last_review.date() == now.date()

        if self.params.enable_short_term and same_day:
            new_stability = mm.short_term_stability(stability, elapsed_days * 1440, rating, self.w)
        else:
            new_stability = mm.next_stability(
                stability, difficulty, rating, elapsed_days, r, self.w
            )
        new_stability = self._checked_stability(new_stability, card)
        new_difficulty = mm.next_difficulty(difficulty, rating, self.w)

        if rating == Rating.AGAIN:
            return _Outcome(
                CardState.RELEARNING, 0, new_stability, new_difficulty,
                Minutes(self.params.relearning_steps[0]), card.lapses + 1,
            )

        days = mm.next_interval(
            new_stability, self.params.request_retention, self.params.maximum_interval, self.w
        )
        return _Outcome(
            CardState.REVIEW, 0, new_stability, new_difficulty, self._days(card, days), card.lapses
        )

    # === Helpers ===

    def _hard_delay(self, steps: Tuple[int, ...], step: int) -> Minutes:
        if self.hard_step_policy == HardStepPolicy.REPEAT:
            return Minutes(steps[step])
        if step + 1 < len(steps):
            return Minutes(int(round((steps[step] + steps[step + 1]) / 2)))
        return Minutes(int(round(steps[step] * 1.5)))

    def _days(self, card: MemoryState, days: int) -> Days:
        days = max(1, min(int(days), self.params.maximum_interval))
        if self.params.enable_fuzz:
            return fuzz_interval(days, fuzz_seed(card.card_id, card.due), self.params)
        return Days(days)

    def _checked_stability(self, stability: float, card: MemoryState) -> float:
        if not math.isfinite(stability) or stability < mm.MIN_STABILITY:
            logger.warning(
                f"Degenerate stability {stability!r} for card {card.card_id!r}; clamping"
            )
        return float(mm.sanitize_stability(stability))

    @staticmethod
    def _elapsed_days(card: MemoryState, now: datetime) -> float:
        if card.last_review is None:
            return 0.0
        return max(0.0, (now - card.last_review).total_seconds() / 86400)
