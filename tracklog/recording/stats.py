"""
Running trip statistics fed one fix at a time.

The engine only relies on the accumulator contract: add fixes, pause and
resume, read a snapshot, and ask how long the recorder has been idle.
"""

from __future__ import annotations

from typing import Optional

from tracklog.recording.types import Fix
from tracklog.utils.validate import TripStatistics

# Below both thresholds a fix counts as no movement
MIN_MOVEMENT_DISTANCE_M = 5.0
MAX_NO_MOVEMENT_SPEED_MS = 0.224
# Speeds above this are GPS glitches
MAX_PLAUSIBLE_SPEED_MS = 150.0
# Grades are only meaningful over some distance
MIN_GRADE_DISTANCE_M = 10.0


class TripStatisticsBuilder:
    """
    Accumulates statistics for a track or a checkpoint segment.

    The result depends only on the sequence of calls, so replaying the same
    fixes into a fresh builder reproduces the same statistics.
    """

    def __init__(self, start_time: int, statistics: Optional[TripStatistics] = None) -> None:
        if statistics is not None:
            self._data = statistics.model_copy()
        else:
            self._data = TripStatistics(start_time=start_time, stop_time=start_time)
        self._segment_start = start_time
        self._time_before_segment = self._data.total_time if statistics is not None else 0
        # a builder restored from a snapshot resumes on its first fix
        self._paused = statistics is not None
        self._last_fix: Optional[Fix] = None
        self._last_moving_fix: Optional[Fix] = None

    @property
    def statistics(self) -> TripStatistics:
        """Snapshot copy of the current statistics."""
        return self._data.model_copy()

    @property
    def paused(self) -> bool:
        return self._paused

    @property
    def idle_time(self) -> int:
        """Milliseconds between the last fix and the last fix with movement."""
        if self._last_fix is None or self._last_moving_fix is None:
            return 0
        return max(0, self._last_fix.time - self._last_moving_fix.time)

    def set_moving_time(self, moving_time: int) -> None:
        self._data.moving_time = moving_time

    def add_location(self, fix: Fix, system_time: int) -> None:
        """
        Account for one fix received at `system_time`.
        """
        if self._paused:
            self.resume_at(system_time)
        self._data.total_time = self._time_before_segment + (system_time - self._segment_start)
        self._data.stop_time = system_time

        if not fix.is_valid:
            return

        self._update_bounds(fix)
        self._update_elevation(fix)

        if self._last_fix is None:
            self._last_fix = fix
            self._last_moving_fix = fix
            return

        distance = fix.distance_to(self._last_fix)
        if distance < MIN_MOVEMENT_DISTANCE_M and fix.speed < MAX_NO_MOVEMENT_SPEED_MS:
            self._last_fix = fix
            return

        elapsed = fix.time - self._last_fix.time
        if elapsed > 0:
            self._data.moving_time += elapsed
        self._data.total_distance += distance
        if fix.speed < MAX_PLAUSIBLE_SPEED_MS and fix.speed > self._data.max_speed:
            self._data.max_speed = fix.speed
        if distance >= MIN_GRADE_DISTANCE_M:
            self._update_grade((fix.altitude - self._last_fix.altitude) / distance)

        self._last_fix = fix
        self._last_moving_fix = fix

    def pause_at(self, time: int) -> None:
        if self._paused:
            return
        self._data.total_time = self._time_before_segment + (time - self._segment_start)
        self._data.stop_time = time
        self._time_before_segment = self._data.total_time
        self._paused = True

    def resume_at(self, time: int) -> None:
        if not self._paused:
            return
        self._segment_start = time
        self._paused = False
        # distance must not bridge the pause
        self._last_fix = None
        self._last_moving_fix = None

    def _update_bounds(self, fix: Fix) -> None:
        d = self._data
        d.top = fix.latitude if d.top is None else max(d.top, fix.latitude)
        d.bottom = fix.latitude if d.bottom is None else min(d.bottom, fix.latitude)
        d.right = fix.longitude if d.right is None else max(d.right, fix.longitude)
        d.left = fix.longitude if d.left is None else min(d.left, fix.longitude)

    def _update_elevation(self, fix: Fix) -> None:
        d = self._data
        if self._last_fix is not None and fix.altitude > self._last_fix.altitude:
            d.elevation_gain += fix.altitude - self._last_fix.altitude
        d.min_elevation = fix.altitude if d.min_elevation is None else min(d.min_elevation, fix.altitude)
        d.max_elevation = fix.altitude if d.max_elevation is None else max(d.max_elevation, fix.altitude)

    def _update_grade(self, grade: float) -> None:
        d = self._data
        d.min_grade = grade if d.min_grade is None else min(d.min_grade, grade)
        d.max_grade = grade if d.max_grade is None else max(d.max_grade, grade)
