"""
Tests for the polling policies.
"""

import pytest

from tracklog.recording.policy import (
    AbsolutePollingPolicy,
    AdaptivePollingPolicy,
    policy_from_interval,
)


class TestAbsolute:

    def test_ignores_idle_time(self):
        p = AbsolutePollingPolicy(5_000, 2.0)
        p.update_idle_time(10 * 60_000)
        assert p.desired_interval() == 5_000
        assert p.min_distance() == 2.0


class TestAdaptive:

    def test_starts_at_minimum(self):
        p = AdaptivePollingPolicy(1_000, 30_000)
        assert p.desired_interval() == 1_000

    def test_half_of_idle_time_in_whole_seconds(self):
        p = AdaptivePollingPolicy(1_000, 30_000)
        p.update_idle_time(9_500)
        assert p.desired_interval() == 4_000

    def test_clamped_to_maximum(self):
        p = AdaptivePollingPolicy(1_000, 30_000)
        p.update_idle_time(10 * 60_000)
        assert p.desired_interval() == 30_000

    def test_snaps_back_on_movement(self):
        p = AdaptivePollingPolicy(1_000, 30_000)
        p.update_idle_time(20_000)
        assert p.desired_interval() == 10_000
        p.update_idle_time(0)
        assert p.desired_interval() == 1_000

    def test_min_above_max_is_rejected(self):
        with pytest.raises(ValueError):
            AdaptivePollingPolicy(30_000, 1_000)


class TestFromInterval:

    def test_battery(self):
        p = policy_from_interval(-2)
        assert isinstance(p, AdaptivePollingPolicy)
        assert (p.min_interval_ms, p.max_interval_ms, p.min_distance()) == (30_000, 300_000, 5.0)

    def test_accuracy(self):
        p = policy_from_interval(-1)
        assert isinstance(p, AdaptivePollingPolicy)
        assert (p.min_interval_ms, p.max_interval_ms, p.min_distance()) == (1_000, 30_000, 0.0)

    @pytest.mark.parametrize("seconds", [0, 1, 60])
    def test_fixed_seconds(self, seconds):
        p = policy_from_interval(seconds)
        assert isinstance(p, AbsolutePollingPolicy)
        assert p.desired_interval() == seconds * 1_000
