"""
Pydantic schemas for records persisted by the store and served over HTTP.
"""

from enum import Enum
from typing import Any, Optional
from pydantic import BaseModel, Field

from tracklog.recording.types import Fix


class TripStatistics(BaseModel):
    """
    Aggregate statistics of a track, or of one checkpoint segment.

    Times are epoch milliseconds (durations in milliseconds), distances in
    metres, speeds in m/s. Bounding box and elevation extremes stay unset
    until the first valid fix.
    """
    start_time: int = 0
    stop_time: int = 0
    total_time: int = 0
    moving_time: int = 0
    total_distance: float = 0.0
    max_speed: float = 0.0
    min_elevation: Optional[float] = None
    max_elevation: Optional[float] = None
    elevation_gain: float = 0.0
    min_grade: Optional[float] = None
    max_grade: Optional[float] = None
    top: Optional[float] = None
    bottom: Optional[float] = None
    left: Optional[float] = None
    right: Optional[float] = None

    @property
    def average_speed(self) -> float:
        if self.total_time <= 0:
            return 0.0
        return self.total_distance / (self.total_time / 1000.0)

    @property
    def average_moving_speed(self) -> float:
        if self.moving_time <= 0:
            return 0.0
        return self.total_distance / (self.moving_time / 1000.0)


class Track(BaseModel):
    """
    Normalized record for one recording attempt.
    """
    id: int = -1
    name: str = ""
    description: str = ""
    start_id: int = -1
    stop_id: int = -1
    num_points: int = 0
    statistics: TripStatistics = Field(default_factory=TripStatistics)


class MarkerType(str, Enum):
    WAYPOINT = "waypoint"
    STATISTICS = "statistics"


class Marker(BaseModel):
    """
    A user waypoint or a statistics checkpoint attached to a track.

    `length` and `duration` are measured from the start of the track;
    `statistics` only covers the segment since the previous checkpoint.
    An open checkpoint is the one still accumulating the current segment.
    """
    id: int = -1
    track_id: int = -1
    type: MarkerType = MarkerType.WAYPOINT
    name: str = ""
    description: str = ""
    category: str = ""
    icon: str = ""
    metadata: dict[str, Any] = Field(default_factory=dict)
    location: Optional[Fix] = None
    start_id: int = -1
    length: float = 0.0
    duration: int = 0
    is_open: bool = False
    statistics: Optional[TripStatistics] = None


class RecorderStatus(BaseModel):
    """
    Snapshot of the recorder served by the control surface.
    """
    recording: bool
    track_id: int
    moving: bool
    length: float
    interval_ms: int
    statistics: Optional[TripStatistics] = None


class Thresholds(BaseModel):
    min_recording_distance: float
    max_recording_distance: float
    min_required_accuracy: float


class PreferenceValue(BaseModel):
    value: int
