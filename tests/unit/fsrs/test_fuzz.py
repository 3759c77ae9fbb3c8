"""
Unit tests for interval fuzzing
"""

import pytest
from datetime import datetime, timedelta, timezone

from fsrs_engine.fsrs.fuzz import fuzz_interval, fuzz_range, fuzz_seed
from fsrs_engine.fsrs.parameters import Days, Parameters

DUE = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)


class TestFuzzRange:
    """Tests for the fuzz window"""

    def test_window_is_proportional(self):
        assert fuzz_range(100, Parameters.default()) == (95, 105)

    def test_short_intervals_not_fuzzed(self):
        params = Parameters.default()
        assert fuzz_range(1, params) == (1, 1)
        assert fuzz_range(2, params) == (2, 2)

    def test_disabled(self):
        assert fuzz_range(100, Parameters(enable_fuzz=False)) == (100, 100)

    def test_capped_at_maximum_interval(self):
        params = Parameters(maximum_interval=100)
        assert fuzz_range(100, params) == (95, 100)

    def test_wider_factor(self):
        assert fuzz_range(20, Parameters(fuzz_factor=0.25)) == (15, 25)

    @pytest.mark.parametrize("fuzz_factor", [0.05, 0.1, 0.25])
    def test_window_never_exceeds_factor(self, fuzz_factor):
        params = Parameters(fuzz_factor=fuzz_factor)

        for interval in range(3, 400):
            low, high = fuzz_range(interval, params)
            assert high - interval <= interval * fuzz_factor
            assert interval - low <= interval * fuzz_factor
            assert high - interval == interval - low

    def test_window_grows_in_whole_days(self):
        params = Parameters.default()

        assert fuzz_range(19, params) == (19, 19)
        assert fuzz_range(20, params) == (19, 21)
        assert fuzz_range(39, params) == (38, 40)
        assert fuzz_range(40, params) == (38, 42)
        assert fuzz_range(50, params) == (48, 52)
        assert fuzz_range(70, params) == (67, 73)

    def test_small_interval_below_one_day_window(self):
        assert fuzz_range(11, Parameters.default()) == (11, 11)


class TestFuzzInterval:
    """Tests for seeded fuzz draws"""

    def test_deterministic_for_same_seed(self):
        params = Parameters.default()
        seed = fuzz_seed("card-1", DUE)

        assert fuzz_interval(100, seed, params) == fuzz_interval(100, seed, params)

    def test_seed_depends_on_card_and_due(self):
        assert fuzz_seed("card-1", DUE) == fuzz_seed("card-1", DUE)
        assert fuzz_seed("card-1", DUE) != fuzz_seed("card-2", DUE)
        assert fuzz_seed("card-1", DUE) != fuzz_seed("card-1", DUE + timedelta(days=1))

    def test_stays_in_window(self):
        params = Parameters.default()
        low, high = fuzz_range(200, params)

        for i in range(50):
            result = fuzz_interval(200, fuzz_seed(f"card-{i}", DUE), params)
            assert isinstance(result, Days)
            assert low <= result.value <= high

    def test_spreads_cards(self):
        params = Parameters.default()
        values = {
            fuzz_interval(200, fuzz_seed(f"card-{i}", DUE), params).value for i in range(50)
        }
        assert len(values) > 1

    @pytest.mark.parametrize("interval", [1, 2])
    def test_short_interval_unchanged(self, interval):
        result = fuzz_interval(interval, fuzz_seed("card-1", DUE), Parameters.default())
        assert result == Days(interval)
