"""
Waypoint and statistics-checkpoint markers.

A track always has one open statistics checkpoint while it records. The open
checkpoint accumulates the statistics of the current segment and is rewritten
after every recorded point. Inserting a statistics marker closes it at the
given location and opens a fresh one for the next segment.
"""

from __future__ import annotations

from typing import Callable, Optional

from tracklog.recording.stats import TripStatisticsBuilder
from tracklog.recording.types import Fix
from tracklog.storage.dao import DAO, location_fields, statistics_fields
from tracklog.utils.log import get_logger
from tracklog.utils.validate import Marker, MarkerType, TripStatistics

logger = get_logger(__name__)

STATISTICS_MARKER_NAME = "Statistics"
STATISTICS_ICON_URL = "http://maps.google.com/mapfiles/ms/micons/ylw-pushpin.png"


def _format_duration(ms: int) -> str:
    seconds = max(0, ms) // 1000
    return f"{seconds // 3600}:{seconds // 60 % 60:02d}:{seconds % 60:02d}"


def describe_statistics(stats: TripStatistics) -> str:
    """
    Human-readable summary stored as the description of a checkpoint.
    """
    lines = [
        f"Total distance: {stats.total_distance / 1000.0:.2f} km",
        f"Total time: {_format_duration(stats.total_time)}",
        f"Moving time: {_format_duration(stats.moving_time)}",
        f"Average speed: {stats.average_speed * 3.6:.2f} km/h",
        f"Average moving speed: {stats.average_moving_speed * 3.6:.2f} km/h",
        f"Max speed: {stats.max_speed * 3.6:.2f} km/h",
    ]
    if stats.min_elevation is not None and stats.max_elevation is not None:
        lines.append(f"Min elevation: {stats.min_elevation:.0f} m")
        lines.append(f"Max elevation: {stats.max_elevation:.0f} m")
        lines.append(f"Elevation gain: {stats.elevation_gain:.0f} m")
    if stats.min_grade is not None and stats.max_grade is not None:
        lines.append(f"Min grade: {stats.min_grade * 100:.0f} %")
        lines.append(f"Max grade: {stats.max_grade * 100:.0f} %")
    return "\n".join(lines)


class MarkerManager:
    """
    Owns the open checkpoint of the recording track and its accumulator.
    """

    def __init__(self, dao: DAO, clock: Callable[[], int]) -> None:
        self.dao = dao
        self.clock = clock
        self.track_id = -1
        self.current_marker_id = -1
        self.builder: Optional[TripStatisticsBuilder] = None

    def start(self, track_id: int, start_time: int) -> int:
        """
        Open the first checkpoint of a new track.
        """
        self.track_id = track_id
        return self._open(start_time, start_id=-1)

    def restore(self, track_id: int, track_start_time: int) -> None:
        """
        Reopen the most recent open checkpoint of the track after a restart.
        """
        self.track_id = track_id
        marker = self.dao.get_open_statistics_marker(track_id)
        if marker is not None and marker.statistics is not None:
            self.current_marker_id = marker.id
            self.builder = TripStatisticsBuilder(marker.statistics.start_time, marker.statistics)
            logger.debug("Reopened checkpoint %d of track %d", marker.id, track_id)
            return
        # Not expected once a track has been started normally.
        logger.warning("Track %d has no open checkpoint; accumulating from track start", track_id)
        self.current_marker_id = -1
        self.builder = TripStatisticsBuilder(track_start_time)

    def add_location(self, fix: Fix, system_time: int) -> None:
        if self.builder is not None:
            self.builder.add_location(fix, system_time)

    def update_current(self, length: float, track_start_time: int) -> None:
        """
        Rewrite the open checkpoint with the running segment statistics.
        """
        if self.current_marker_id < 0 or self.builder is None:
            return
        stats = self.builder.statistics
        self.dao.update_marker(
            self.current_marker_id,
            {
                "length": length,
                "duration": self.clock() - track_start_time,
                **statistics_fields(stats),
            },
        )

    def insert_waypoint(self, marker: Marker, length: float, track_start_time: int) -> int:
        """
        Store a user waypoint anchored at its location; -1 without one.
        """
        if marker.location is None:
            logger.warning("Waypoint %r has no location; not inserted", marker.name)
            return -1
        waypoint = marker.model_copy(
            update={
                "id": -1,
                "track_id": self.track_id,
                "type": MarkerType.WAYPOINT,
                "length": length,
                "duration": marker.location.time - track_start_time,
                "is_open": False,
                "statistics": None,
            }
        )
        marker_id = self.dao.insert_marker(waypoint)
        logger.info("Inserted waypoint %d (%s) on track %d", marker_id, waypoint.name, self.track_id)
        return marker_id

    def insert_statistics(
        self,
        location: Optional[Fix],
        length: float,
        track_start_time: int,
        last_point_id: int,
    ) -> int:
        """
        Close the open checkpoint at `location` and open the next one.

        Returns the id of the closed checkpoint, which now carries the
        statistics of the segment since the previous checkpoint.
        """
        now = self.clock()
        if self.builder is None:
            self.builder = TripStatisticsBuilder(track_start_time)
        self.builder.pause_at(now)
        stats = self.builder.statistics
        fields = {
            "name": STATISTICS_MARKER_NAME,
            "description": describe_statistics(stats),
            "icon": STATISTICS_ICON_URL,
            "length": length,
            # measured from the start of the whole track
            "duration": now - track_start_time,
            "is_open": False,
            **location_fields(location),
            **statistics_fields(stats),
        }
        if self.current_marker_id >= 0:
            closed_id = self.current_marker_id
            self.dao.update_marker(closed_id, fields)
        else:
            closed_id = self.dao.insert_marker(
                Marker(
                    track_id=self.track_id,
                    type=MarkerType.STATISTICS,
                    name=STATISTICS_MARKER_NAME,
                    description=fields["description"],
                    icon=STATISTICS_ICON_URL,
                    location=location,
                    length=length,
                    duration=fields["duration"],
                    statistics=stats,
                )
            )
        logger.info("Closed checkpoint %d on track %d", closed_id, self.track_id)
        self._open(now, start_id=last_point_id)
        return closed_id

    def close(self, length: float, track_start_time: int, location: Optional[Fix]) -> None:
        """
        Flush and close the open checkpoint when the track ends.

        The manager keeps pointing at the closed checkpoint until `reset`.
        """
        if self.current_marker_id < 0 or self.builder is None:
            return
        now = self.clock()
        self.builder.pause_at(now)
        stats = self.builder.statistics
        self.dao.update_marker(
            self.current_marker_id,
            {
                "description": describe_statistics(stats),
                "length": length,
                "duration": now - track_start_time,
                "is_open": False,
                **location_fields(location),
                **statistics_fields(stats),
            },
        )

    def reset(self) -> None:
        self.track_id = -1
        self.current_marker_id = -1
        self.builder = None

    def _open(self, start_time: int, start_id: int) -> int:
        self.builder = TripStatisticsBuilder(start_time)
        self.current_marker_id = self.dao.insert_marker(
            Marker(
                track_id=self.track_id,
                type=MarkerType.STATISTICS,
                name=STATISTICS_MARKER_NAME,
                icon=STATISTICS_ICON_URL,
                start_id=start_id,
                is_open=True,
                statistics=self.builder.statistics,
            )
        )
        return self.current_marker_id
