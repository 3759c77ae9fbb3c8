"""
Unit tests for review analytics helpers
"""

import pytest
import math
from datetime import datetime, timedelta, timezone

from fsrs_engine.fsrs.analytics import (
    average_retrievability,
    forgetting_curve,
    format_interval,
    format_interval_range,
    hourly_breakdown,
    simulate_future_workload,
    true_retention,
)
from fsrs_engine.fsrs.parameters import CardState, Days, MemoryState, Minutes, Parameters, Rating
from fsrs_engine.fsrs.scheduler import ReviewLog


def _log(rating, state=CardState.REVIEW, hour=9):
    reviewed_at = datetime(2024, 3, 1, hour, tzinfo=timezone.utc)
    return ReviewLog(
        card_id="c",
        rating=Rating(rating),
        state=state,
        due=reviewed_at,
        stability=5.0,
        difficulty=5.0,
        elapsed_days=3.0,
        scheduled_interval=Days(5),
        reviewed_at=reviewed_at,
    )


class TestForgettingCurve:
    """Tests for curve sampling"""

    def test_shape(self):
        curve = forgetting_curve(10.0, days=30, points=100)

        assert len(curve) == 101
        assert curve[0] == {"day": 0.0, "retention": 100.0}
        assert math.isclose(curve[-1]["day"], 30.0)

    def test_decreasing(self):
        retention = [p["retention"] for p in forgetting_curve(5.0)]
        assert all(a > b for a, b in zip(retention, retention[1:]))

    def test_ninety_percent_at_stability(self):
        curve = forgetting_curve(10.0, days=20, points=2)
        assert math.isclose(curve[1]["retention"], 90.0)


class TestRetention:
    """Tests for collection-wide retention statistics"""

    def test_average_retrievability(self, now):
        states = [
            MemoryState.new("a", now),
            MemoryState(
                card_id="b",
                stability=10.0,
                difficulty=5.0,
                state=CardState.REVIEW,
                due=now,
                last_review=now - timedelta(days=10),
            ),
        ]

        assert math.isclose(average_retrievability(states, now), 0.45)

    def test_average_retrievability_empty(self, now):
        assert average_retrievability([], now) == 0.0

    def test_true_retention_uses_mature_reviews(self):
        logs = [
            _log(3),
            _log(1),
            _log(4),
            _log(2),
            _log(1, CardState.LEARNING),
            _log(1, CardState.NEW),
        ]

        assert true_retention(logs) == 0.75

    def test_true_retention_empty(self):
        assert true_retention([_log(1, CardState.LEARNING)]) == 0.0

    def test_hourly_breakdown(self):
        logs = [_log(3, hour=9), _log(1, hour=9), _log(3, hour=21)]

        breakdown = hourly_breakdown(logs)

        assert len(breakdown) == 24
        assert breakdown[9] == {"hour": 9, "count": 2, "retention": 50.0}
        assert breakdown[21]["retention"] == 100.0
        assert breakdown[0] == {"hour": 0, "count": 0, "retention": 0.0}


class TestWorkload:
    """Tests for workload forecasting"""

    def test_counts_per_day(self, now):
        states = [
            MemoryState.new("new", now),
            MemoryState(card_id="a", stability=3.0, difficulty=5.0, state=CardState.REVIEW,
                        due=now + timedelta(days=2)),
            MemoryState(card_id="b", stability=3.0, difficulty=5.0, state=CardState.REVIEW,
                        due=now + timedelta(days=2, hours=3)),
            MemoryState(card_id="c", stability=3.0, difficulty=5.0, state=CardState.REVIEW,
                        due=now - timedelta(days=4)),
            MemoryState(card_id="d", stability=3.0, difficulty=5.0, state=CardState.REVIEW,
                        due=now + timedelta(days=90)),
        ]

        workload = simulate_future_workload(states, days=7, now=now)

        assert len(workload) == 7
        assert workload[0] == {"date": "2024-03-01", "new_cards": 1, "reviews": 1, "total": 2}
        assert workload[2]["reviews"] == 2
        assert sum(day["total"] for day in workload) == 4


class TestFormatInterval:
    """Tests for human-readable intervals"""

    @pytest.mark.parametrize("interval, expected", [
        (Minutes(10), "10m"),
        (Minutes(0), "1m"),
        (Minutes(120), "2h"),
        (Days(1), "1d"),
        (Days(12), "12d"),
        (Days(60), "2mo"),
        (Days(400), "1.1y"),
        (Days(1000), "3y"),
        (0.5, "12h"),
    ])
    def test_format(self, interval, expected):
        assert format_interval(interval) == expected

    def test_range_when_fuzzed(self):
        assert format_interval_range(20) == "19d-21d"

    def test_no_range_for_short_interval(self):
        assert format_interval_range(2) == "2d"

    def test_no_range_without_fuzz(self):
        assert format_interval_range(20, Parameters(enable_fuzz=False)) == "20d"
