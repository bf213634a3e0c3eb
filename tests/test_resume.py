"""
Tests for the bounded auto-resume decision.
"""

import pytest

from tracklog.recording import config as keys
from tracklog.recording.preferences import Preferences
from tracklog.recording.resume import MAX_AUTO_RESUME_TRACK_RETRY_ATTEMPTS, AutoResumeGuard
from tracklog.utils.validate import Track, TripStatistics

MINUTE = 60_000


@pytest.fixture
def prefs(dao):
    return Preferences(dao)


@pytest.fixture
def guard(prefs, clock):
    return AutoResumeGuard(prefs, clock)


def track_stopped_at(stop_time: int) -> Track:
    return Track(id=1, statistics=TripStatistics(start_time=stop_time - MINUTE, stop_time=stop_time))


class TestAutoResume:

    def test_no_track_never_resumes(self, guard, prefs):
        assert guard.should_resume(None) is False
        assert prefs.auto_resume_track_current_retry == 0

    def test_timeout_zero_never_resumes(self, guard, prefs, clock):
        prefs.set(keys.AUTO_RESUME_TRACK_TIMEOUT, 0)
        assert guard.should_resume(track_stopped_at(clock())) is False

    def test_timeout_minus_one_always_resumes(self, guard, prefs, clock):
        prefs.set(keys.AUTO_RESUME_TRACK_TIMEOUT, -1)
        assert guard.should_resume(track_stopped_at(clock() - 1_000 * MINUTE)) is True

    def test_stopped_31_minutes_ago_with_30_minute_timeout(self, guard, prefs, clock):
        prefs.set(keys.AUTO_RESUME_TRACK_TIMEOUT, 30)
        assert guard.should_resume(track_stopped_at(clock() - 31 * MINUTE)) is False

    def test_stopped_29_minutes_ago_with_30_minute_timeout(self, guard, prefs, clock):
        prefs.set(keys.AUTO_RESUME_TRACK_TIMEOUT, 30)
        assert guard.should_resume(track_stopped_at(clock() - 29 * MINUTE)) is True

    def test_never_stopped_track_is_not_resumed(self, guard, clock):
        assert guard.should_resume(track_stopped_at(0)) is False

    def test_counter_at_limit_refuses_whatever_the_timeout(self, guard, prefs, clock):
        prefs.set(keys.AUTO_RESUME_TRACK_TIMEOUT, -1)
        prefs.auto_resume_track_current_retry = MAX_AUTO_RESUME_TRACK_RETRY_ATTEMPTS
        assert guard.should_resume(track_stopped_at(clock())) is False
        assert prefs.auto_resume_track_current_retry == MAX_AUTO_RESUME_TRACK_RETRY_ATTEMPTS

    def test_each_evaluation_counts(self, guard, prefs, clock):
        prefs.set(keys.AUTO_RESUME_TRACK_TIMEOUT, -1)
        track = track_stopped_at(clock())
        results = [guard.should_resume(track) for _ in range(4)]
        assert results == [True, True, True, False]

    def test_reset_clears_counter(self, guard, prefs, clock):
        prefs.auto_resume_track_current_retry = 3
        guard.reset()
        assert prefs.auto_resume_track_current_retry == 0
