# tracklog/recording/config.py

from dataclasses import dataclass

# Preference keys persisted in the store
AUTO_RESUME_TRACK_TIMEOUT = "auto_resume_track_timeout"
AUTO_RESUME_TRACK_CURRENT_RETRY = "auto_resume_track_current_retry"
MIN_RECORDING_DISTANCE = "min_recording_distance"
MAX_RECORDING_DISTANCE = "max_recording_distance"
MIN_REQUIRED_ACCURACY = "min_required_accuracy"
MIN_RECORDING_INTERVAL = "min_recording_interval"
RECORDING_TRACK_ID = "recording_track_id"

# Written by the recorder itself, never by callers
MANAGED_KEYS = frozenset({RECORDING_TRACK_ID, AUTO_RESUME_TRACK_CURRENT_RETRY})

ONE_SECOND_MS = 1000
ONE_MINUTE_MS = 60 * ONE_SECOND_MS


@dataclass
class RecorderConfig:
    """
    Default tunables for the recording engine.

    Persisted preferences override these at runtime; the defaults apply
    whenever a preference has never been written.

    Attributes
    ----------
    min_recording_distance
        Minimum distance (m) from the last recorded point before a new one
        is recorded; suppresses jitter.
    max_recording_distance
        Distance (m) from the last recorded point beyond which a segment
        boundary is inserted.
    min_required_accuracy
        Fixes with a worse accuracy radius (m) are discarded.
    min_recording_interval
        Polling preference: seconds between fixes (0 = as often as
        possible), -1 adaptive for accuracy, -2 adaptive for battery.
    auto_resume_track_timeout
        Minutes after which an interrupted track is no longer resumed;
        0 never resumes, -1 always resumes.
    max_loaded_track_points
        Upper bound on the points replayed when restoring statistics.
    watchdog_initial_delay
        Seconds before the first registration check.
    watchdog_period
        Seconds between registration checks.
    """
    min_recording_distance:   float = 5.0
    max_recording_distance:   float = 200.0
    min_required_accuracy:    float = 200.0
    min_recording_interval:   int   = 0
    auto_resume_track_timeout: int  = 10
    max_loaded_track_points:  int   = 20_000
    watchdog_initial_delay:   float = 5 * 60.0
    watchdog_period:          float = 60.0

    @classmethod
    def walking(cls):
        """Preset for pedestrian recording (default thresholds)."""
        return cls()

    @classmethod
    def driving(cls):
        """Preset for vehicle recording (coarser thresholds)."""
        return cls(
            min_recording_distance=20.0,
            max_recording_distance=1_000.0,
            min_required_accuracy=500.0,
        )
