# tracklog/recording/types.py

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional

from tracklog.utils.geo import haversine, is_valid_coordinate

SEGMENT_BOUNDARY_LAT = 100.0
SEGMENT_BOUNDARY_LON = 0.0


@dataclass(frozen=True)
class Fix:
    """
    Single positioning sample delivered by the location source.

    Parameters
    ----------
    latitude : float
        Latitude in decimal degrees.
    longitude : float
        Longitude in decimal degrees.
    accuracy : float
        Radius (m) of the 68% confidence circle.
    time : int
        Timestamp of the fix (milliseconds since epoch).
    altitude : float
        Altitude in metres.
    speed : float
        Ground speed in m/s.
    bearing : float
        Heading in degrees.
    """
    latitude: float
    longitude: float
    accuracy: float
    time: int
    altitude: float = 0.0
    speed: float = 0.0
    bearing: float = 0.0

    @classmethod
    def segment_boundary(cls, time: int) -> Fix:
        """Sentinel point written between two segments of the same track."""
        return cls(SEGMENT_BOUNDARY_LAT, SEGMENT_BOUNDARY_LON, 0.0, time)

    @property
    def is_valid(self) -> bool:
        return is_valid_coordinate(self.latitude, self.longitude)

    def distance_to(self, other: Fix) -> float:
        """Great-circle distance to `other` in metres."""
        return haversine((self.latitude, self.longitude), (other.latitude, other.longitude))

    def same_sample(self, other: Optional[Fix]) -> bool:
        return (
            other is not None
            and self.latitude == other.latitude
            and self.longitude == other.longitude
            and self.time == other.time
        )


class FilterOutcome(enum.Enum):
    """What happened to one incoming fix."""
    IGNORED = "ignored"                      # not recording, or no track to append to
    REJECTED_ACCURACY = "rejected_accuracy"
    STATIONARY = "stationary"                # first repeat of the previous position
    DUPLICATE = "duplicate"                  # further repeats while stationary
    RECORDED = "recorded"
    TOO_CLOSE = "too_close"
    ABORTED = "aborted"                      # storage busy mid-way


@dataclass
class SessionState:
    """
    Mutable state of the one active recording attempt.

    Owned by a single RecordingSession and only touched from the dispatcher.
    """
    track_id: int = -1
    recording: bool = False
    moving: bool = True
    last_fix: Optional[Fix] = None
    last_valid_fix: Optional[Fix] = None
    length: float = 0.0
    current_interval_ms: int = -1

    def reset(self) -> None:
        self.track_id = -1
        self.recording = False
        self.moving = True
        self.last_fix = None
        self.last_valid_fix = None
        self.length = 0.0
        self.current_interval_ms = -1
