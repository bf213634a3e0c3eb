"""
Polling policies: how often, and after how much movement, to ask the
location source for fixes.
"""

from typing import Protocol

from tracklog.recording.config import ONE_MINUTE_MS, ONE_SECOND_MS


class PollingPolicy(Protocol):
    def update_idle_time(self, idle_time: int) -> None: ...

    def desired_interval(self) -> int: ...

    def min_distance(self) -> float: ...


class AbsolutePollingPolicy:
    """
    Always requests the same interval, whatever the idle time.
    """

    def __init__(self, interval_ms: int, min_distance: float = 0.0) -> None:
        self.interval_ms = interval_ms
        self._min_distance = min_distance

    def update_idle_time(self, idle_time: int) -> None:
        pass

    def desired_interval(self) -> int:
        return self.interval_ms

    def min_distance(self) -> float:
        return self._min_distance

    def __repr__(self) -> str:
        return f"AbsolutePollingPolicy({self.interval_ms} ms, {self._min_distance} m)"


class AdaptivePollingPolicy:
    """
    Backs off while the recorder is idle: the interval is half the idle
    time, in whole seconds, kept within [min_interval, max_interval].
    It drops back to the minimum as soon as movement resets the idle time.
    """

    def __init__(self, min_interval_ms: int, max_interval_ms: int, min_distance: float = 0.0) -> None:
        if min_interval_ms > max_interval_ms:
            raise ValueError("min_interval_ms must not exceed max_interval_ms")
        self.min_interval_ms = min_interval_ms
        self.max_interval_ms = max_interval_ms
        self._min_distance = min_distance
        self.idle_time = 0

    def update_idle_time(self, idle_time: int) -> None:
        self.idle_time = max(0, idle_time)

    def desired_interval(self) -> int:
        desired = (self.idle_time // 2) // ONE_SECOND_MS * ONE_SECOND_MS
        return max(self.min_interval_ms, min(self.max_interval_ms, desired))

    def min_distance(self) -> float:
        return self._min_distance

    def __repr__(self) -> str:
        return (
            f"AdaptivePollingPolicy({self.min_interval_ms}..{self.max_interval_ms} ms, "
            f"{self._min_distance} m)"
        )


def policy_from_interval(value: int) -> PollingPolicy:
    """
    Build the policy selected by the `min_recording_interval` preference.

    -2 favours battery, -1 favours accuracy, and N >= 0 polls every N
    seconds (0 meaning as fast as the source delivers).
    """
    if value == -2:
        return AdaptivePollingPolicy(30 * ONE_SECOND_MS, 5 * ONE_MINUTE_MS, 5.0)
    if value == -1:
        return AdaptivePollingPolicy(ONE_SECOND_MS, 30 * ONE_SECOND_MS, 0.0)
    return AbsolutePollingPolicy(max(0, value) * ONE_SECOND_MS)
