"""
Unit test conftest - fixtures for the FSRS engine.

These tests are pure computation and need no services.
"""

import os

# Set minimal test environment
os.environ["ENVIRONMENT"] = "testing"
os.environ["LOG_LEVEL"] = "DEBUG"

import pytest
import numpy as np
from datetime import datetime, timedelta, timezone
from typing import List, Optional, Sequence

from fsrs_engine.fsrs import memory_model as mm
from fsrs_engine.fsrs.parameters import (
    DEFAULT_WEIGHTS,
    CardState,
    MemoryState,
    Parameters,
    Rating,
    ReviewEvent,
)
from fsrs_engine.fsrs.scheduler import Scheduler


@pytest.fixture
def now():
    """Fixed review time."""
    return datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def default_params():
    return Parameters.default()


@pytest.fixture
def no_fuzz_params():
    """Parameters with fuzz disabled, for exact interval assertions."""
    return Parameters(enable_fuzz=False)


@pytest.fixture
def scheduler(no_fuzz_params):
    return Scheduler(no_fuzz_params)


@pytest.fixture
def new_card(now):
    return MemoryState.new("card-1", now)


@pytest.fixture
def review_card(now):
    """Mature card last seen 20 days ago, due now."""
    return MemoryState(
        card_id="card-review",
        stability=20.0,
        difficulty=5.0,
        state=CardState.REVIEW,
        due=now,
        last_review=now - timedelta(days=20),
        reps=6,
        lapses=1,
    )


def simulate_history(
    weights: Sequence[float],
    n_cards: int = 60,
    reviews_per_card: int = 6,
    seed: int = 7,
    start: Optional[datetime] = None,
) -> List[ReviewEvent]:
    """
    Review events drawn from the memory model itself.

    Recall outcomes are sampled from the retrievability predicted by
    `weights`, so those weights are the best possible fit.
    """
    rng = np.random.default_rng(seed)
    start = start or datetime(2023, 1, 1, tzinfo=timezone.utc)
    events: List[ReviewEvent] = []

    for card_index in range(n_cards):
        card_id = f"card-{card_index}"
        reviewed_at = start + timedelta(minutes=card_index)
        first = Rating(int(rng.choice([1, 2, 3, 3, 3, 4])))
        events.append(ReviewEvent(card_id, first, reviewed_at, 0.0, CardState.NEW))

        stability = mm.init_stability(first, weights)
        difficulty = mm.init_difficulty(first, weights)
        for _ in range(reviews_per_card):
            elapsed = int(rng.integers(1, 40))
            r = mm.retrievability(elapsed, stability, weights)
            if rng.random() < r:
                rating = Rating(int(rng.choice([2, 3, 3, 3, 4])))
            else:
                rating = Rating.AGAIN
            reviewed_at = reviewed_at + timedelta(days=elapsed)
            events.append(
                ReviewEvent(card_id, rating, reviewed_at, float(elapsed), CardState.REVIEW)
            )
            stability = mm.next_stability(stability, difficulty, rating, elapsed, r, weights)
            difficulty = mm.next_difficulty(difficulty, rating, weights)

    return events


@pytest.fixture(scope="session")
def true_weights():
    """Weights that differ noticeably from the defaults."""
    w = list(DEFAULT_WEIGHTS)
    w[2] = 8.0
    w[8] = 2.2
    w[11] = 1.2
    return w


@pytest.fixture(scope="session")
def synthetic_events(true_weights):
    return simulate_history(true_weights)


@pytest.fixture(scope="session")
def history_factory():
    """Build synthetic review histories with custom weights and sizes."""
    return simulate_history
