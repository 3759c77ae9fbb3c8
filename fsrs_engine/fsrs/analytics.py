"""
Review analytics derived from the memory model

Chart and dashboard helpers: forgetting curves, collection-wide
retrievability, observed retention and workload forecasts.
"""
from collections import Counter
from datetime import date, datetime, timedelta, timezone
from typing import Dict, Iterable, List, Optional, Sequence, Union

import numpy as np

from . import memory_model as mm
from .fuzz import fuzz_range
from .parameters import CardState, Days, Interval, MemoryState, Minutes, Parameters, Rating
from .scheduler import ReviewLog


def forgetting_curve(
    stability: float,
    days: float = 30,
    points: int = 100,
    w: Optional[Sequence[float]] = None,
) -> List[Dict[str, float]]:
    """
    Sample the forgetting curve for visualization

    Returns:
        points + 1 samples of {"day", "retention"} with retention in percent
    """
    day_values = np.linspace(0, days, points + 1)
    retention = np.asarray(mm.retrievability(day_values, stability, w)) * 100
    return [
        {"day": float(d), "retention": float(r)}
        for d, r in zip(day_values, retention)
    ]


def average_retrievability(
    states: Sequence[MemoryState],
    now: Optional[datetime] = None,
    w: Optional[Sequence[float]] = None,
) -> float:
    """Mean predicted recall over a collection; unseen cards count as 0"""
    if not states:
        return 0.0
    now = now or datetime.now(timezone.utc)

    total = 0.0
    for state in states:
        if state.state == CardState.NEW or state.last_review is None:
            continue
        elapsed = max(0.0, (now - state.last_review).total_seconds() / 86400)
        total += mm.retrievability(elapsed, state.stability, w)
    return total / len(states)


def true_retention(logs: Iterable[ReviewLog]) -> float:
    """Share of mature (REVIEW-state) reviews that were passed"""
    mature = [log for log in logs if log.state == CardState.REVIEW]
    if not mature:
        return 0.0
    return sum(1 for log in mature if log.rating > Rating.AGAIN) / len(mature)


def hourly_breakdown(logs: Iterable[ReviewLog]) -> List[Dict[str, float]]:
    """Review count and pass rate (percent) per hour of day"""
    totals: Counter = Counter()
    passed: Counter = Counter()
    for log in logs:
        hour = log.reviewed_at.hour
        totals[hour] += 1
        if log.rating > Rating.AGAIN:
            passed[hour] += 1

    return [
        {
            "hour": hour,
            "count": totals[hour],
            "retention": passed[hour] / totals[hour] * 100 if totals[hour] else 0.0,
        }
        for hour in range(24)
    ]


def simulate_future_workload(
    states: Sequence[MemoryState],
    days: int = 30,
    now: Optional[datetime] = None,
) -> List[Dict[str, Union[str, int]]]:
    """
    Cards coming due on each of the next `days` days

    Overdue cards are counted on the first day. Cards due beyond the window
    are ignored.
    """
    now = now or datetime.now(timezone.utc)
    start = now.date()
    window: Dict[date, Dict[str, int]] = {
        start + timedelta(days=offset): {"new_cards": 0, "reviews": 0}
        for offset in range(days)
    }

    for state in states:
        due_day = max(state.due.date(), start)
        bucket = window.get(due_day)
        if bucket is None:
            continue
        if state.state == CardState.NEW:
            bucket["new_cards"] += 1
        else:
            bucket["reviews"] += 1

    return [
        {
            "date": day.isoformat(),
            "new_cards": counts["new_cards"],
            "reviews": counts["reviews"],
            "total": counts["new_cards"] + counts["reviews"],
        }
        for day, counts in window.items()
    ]


def format_interval(interval: Union[Interval, float]) -> str:
    """
    Human-readable interval: minutes, hours, days, months or years

    Accepts a Minutes or Days value, or a plain number of days.
    """
    if isinstance(interval, Minutes):
        days = interval.value / 1440
    elif isinstance(interval, Days):
        days = float(interval.value)
    else:
        days = float(interval)

    if days < 1 / 24:
        return f"{max(1, round(days * 1440))}m"
    if days < 1:
        return f"{round(days * 24)}h"
    if days < 30:
        return f"{round(days)}d"
    if days < 365:
        return f"{round(days / 30)}mo"
    years = days / 365
    return f"{years:.1f}y" if years < 2 else f"{round(years)}y"


def format_interval_range(days: int, params: Optional[Parameters] = None) -> str:
    """Interval as it will be shown once fuzzed, e.g. "19d-21d" """
    params = params or Parameters.default()
    low, high = fuzz_range(days, params)
    if low == high:
        return format_interval(days)
    return f"{format_interval(low)}-{format_interval(high)}"
