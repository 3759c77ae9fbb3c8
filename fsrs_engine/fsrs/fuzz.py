"""
Interval fuzzing

Spreads review intervals by a small deterministic offset so that cards
learned together do not all come due on the same day. The draw is seeded from
the card identifier and its due timestamp, so re-scheduling the same review
always yields the same interval.
"""
from datetime import datetime
from typing import Tuple
import hashlib
import math
import random

from .parameters import Days, Parameters

# Intervals at or below this many days are never fuzzed
FUZZ_THRESHOLD_DAYS = 2


def fuzz_seed(card_id: str, due: datetime) -> int:
    """Stable 64-bit seed from a card identifier and due timestamp"""
    digest = hashlib.sha256(f"{card_id}|{due.isoformat()}".encode("utf-8")).digest()
    return int.from_bytes(digest[:8], "big")


def fuzz_range(interval: int, params: Parameters) -> Tuple[int, int]:
    """
    Window of days a fuzzed interval can land in

    Args:
        interval: Unfuzzed interval in days
        params: Scheduling parameters (enable_fuzz, fuzz_factor, maximum_interval)

    Returns:
        (min_days, max_days); both equal the interval when no fuzz applies
    """
    if not params.enable_fuzz or interval <= FUZZ_THRESHOLD_DAYS:
        return interval, interval

    # Whole days only; never wider than fuzz_factor of the interval
    delta = math.floor(interval * params.fuzz_factor)
    low = max(1, interval - delta)
    high = min(params.maximum_interval, interval + delta)
    return low, max(low, high)


def fuzz_interval(interval: int, seed: int, params: Parameters) -> Days:
    """Apply a seeded perturbation of up to +/- fuzz_factor to an interval"""
    low, high = fuzz_range(interval, params)
    if low == high:
        return Days(low)
    rng = random.Random(seed)
    return Days(rng.randint(low, high))
