import functools
import json
import sqlite3
from sqlite3 import Connection
from typing import Any, Callable, Iterator, Optional, TypeVar

from tracklog.errors import StorageBusyError
from tracklog.recording.types import Fix
from tracklog.storage.db import init_db, DEFAULT_BUSY_TIMEOUT
from tracklog.utils.log import get_logger
from tracklog.utils.validate import Marker, MarkerType, Track, TripStatistics

logger = get_logger(__name__)

F = TypeVar("F", bound=Callable[..., Any])

# TripStatistics field -> column, shared by tracks and markers
STATS_COLUMNS: dict[str, str] = {
    "start_time": "start_time",
    "stop_time": "stop_time",
    "total_time": "total_time",
    "moving_time": "moving_time",
    "total_distance": "total_distance",
    "max_speed": "max_speed",
    "min_elevation": "min_elevation",
    "max_elevation": "max_elevation",
    "elevation_gain": "elevation_gain",
    "min_grade": "min_grade",
    "max_grade": "max_grade",
    "bottom": "min_lat",
    "top": "max_lat",
    "left": "min_lon",
    "right": "max_lon",
}

TRACK_COLUMNS = frozenset(
    {"name", "description", "start_id", "stop_id", "num_points", *STATS_COLUMNS.values()}
)
MARKER_COLUMNS = frozenset(
    {
        "name", "description", "category", "icon", "metadata",
        "latitude", "longitude", "altitude", "accuracy", "speed", "bearing", "time",
        "start_id", "length", "duration", "is_open",
        *STATS_COLUMNS.values(),
    }
)
LOCATION_COLUMNS = ("latitude", "longitude", "altitude", "accuracy", "speed", "bearing", "time")

RECORDING_TRACK_KEY = "recording_track_id"


def _is_busy(exc: sqlite3.OperationalError) -> bool:
    msg = str(exc).lower()
    return "locked" in msg or "busy" in msg


def translate_busy(func: F) -> F:
    """
    Re-raise SQLite busy/locked failures as StorageBusyError.
    """
    @functools.wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except sqlite3.OperationalError as e:
            if _is_busy(e):
                raise StorageBusyError(f"{func.__name__}: {e}") from e
            raise
    return wrapper  # type: ignore[return-value]


def statistics_fields(stats: TripStatistics) -> dict[str, Any]:
    """
    Flatten statistics into column -> value pairs.
    """
    return {col: getattr(stats, attr) for attr, col in STATS_COLUMNS.items()}


def location_fields(fix: Optional[Fix]) -> dict[str, Any]:
    if fix is None:
        return {col: None for col in LOCATION_COLUMNS}
    return {col: getattr(fix, col) for col in LOCATION_COLUMNS}


def _row_to_fix(row: sqlite3.Row) -> Fix:
    return Fix(
        latitude=row["latitude"],
        longitude=row["longitude"],
        accuracy=row["accuracy"],
        time=row["time"],
        altitude=row["altitude"],
        speed=row["speed"],
        bearing=row["bearing"],
    )


def _row_to_statistics(row: sqlite3.Row) -> TripStatistics:
    return TripStatistics(
        **{attr: row[col] for attr, col in STATS_COLUMNS.items() if row[col] is not None}
    )


class DAO:
    """
    Encapsulates all inserts/queries against the track store.
    """

    def __init__(self, db_path: str, timeout: float = DEFAULT_BUSY_TIMEOUT):
        """
        Create/connect and apply schema if needed.
        """
        self.db_path = db_path
        self.conn: Connection = init_db(db_path, timeout)

    def close(self) -> None:
        self.conn.close()

    # ------------------------------------------------------------------ tracks

    @translate_busy
    def insert_track(self, track: Track) -> int:
        """
        Insert a new track and return its id.
        """
        fields = {
            "name": track.name,
            "description": track.description,
            "start_id": track.start_id,
            "stop_id": track.stop_id,
            "num_points": track.num_points,
            **statistics_fields(track.statistics),
        }
        cols = ", ".join(fields)
        marks = ", ".join("?" for _ in fields)
        with self.conn:
            cur = self.conn.execute(
                f"INSERT INTO tracks ({cols}) VALUES ({marks})",
                tuple(fields.values()),
            )
        return cur.lastrowid

    @translate_busy
    def get_track(self, track_id: int) -> Optional[Track]:
        """
        Return the track with the given id, or None.
        """
        row = self.conn.execute("SELECT * FROM tracks WHERE id = ?", (track_id,)).fetchone()
        if row is None:
            return None
        return Track(
            id=row["id"],
            name=row["name"],
            description=row["description"],
            start_id=row["start_id"],
            stop_id=row["stop_id"],
            num_points=row["num_points"],
            statistics=_row_to_statistics(row),
        )

    @translate_busy
    def get_last_track_id(self) -> int:
        row = self.conn.execute("SELECT COALESCE(MAX(id), -1) AS last_id FROM tracks").fetchone()
        return row["last_id"]

    @translate_busy
    def update_track_envelope(self, track_id: int, fields: dict[str, Any]) -> None:
        """
        Patch the track row. Keys are column names of the tracks table.
        """
        self._update("tracks", TRACK_COLUMNS, track_id, fields)

    def update_track(self, track: Track) -> None:
        """
        Rewrite every mutable column of the track.
        """
        self.update_track_envelope(
            track.id,
            {
                "name": track.name,
                "description": track.description,
                "start_id": track.start_id,
                "stop_id": track.stop_id,
                "num_points": track.num_points,
                **statistics_fields(track.statistics),
            },
        )

    @translate_busy
    def get_active_track(self) -> Optional[Track]:
        """
        Return the track persisted as currently recording, if it still exists.
        """
        track_id = self.get_preference(RECORDING_TRACK_KEY)
        if track_id is None or int(track_id) < 0:
            return None
        return self.get_track(int(track_id))

    # ------------------------------------------------------------------ points

    @translate_busy
    def insert_point(self, fix: Fix, track_id: int) -> int:
        """
        Append a fix (or a segment boundary) to a track; return the point id.
        """
        with self.conn:
            cur = self.conn.execute(
                """
                INSERT INTO track_points
                  (track_id, latitude, longitude, altitude, accuracy, speed, bearing, time)
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    track_id,
                    fix.latitude,
                    fix.longitude,
                    fix.altitude,
                    fix.accuracy,
                    fix.speed,
                    fix.bearing,
                    fix.time,
                ),
            )
        return cur.lastrowid

    @translate_busy
    def get_last_point(self, track_id: int) -> Optional[Fix]:
        """
        Return the most recently persisted point of a track.
        """
        row = self.conn.execute(
            "SELECT * FROM track_points WHERE track_id = ? ORDER BY id DESC LIMIT 1",
            (track_id,),
        ).fetchone()
        return _row_to_fix(row) if row is not None else None

    @translate_busy
    def get_last_point_id(self, track_id: int) -> int:
        row = self.conn.execute(
            "SELECT COALESCE(MAX(id), -1) AS last_id FROM track_points WHERE track_id = ?",
            (track_id,),
        ).fetchone()
        return row["last_id"]

    @translate_busy
    def get_points_cursor(
        self, track_id: int, limit: int = -1, newest_first: bool = False
    ) -> Iterator[Fix]:
        """
        Iterate over the points of a track.

        With `newest_first` the `limit` most recent points are returned,
        newest first; otherwise the first `limit` points in insertion order.
        A negative limit means no limit.
        """
        order = "DESC" if newest_first else "ASC"
        cursor = self.conn.execute(
            f"SELECT * FROM track_points WHERE track_id = ? ORDER BY id {order} LIMIT ?",
            (track_id, limit),
        )
        return (_row_to_fix(row) for row in cursor.fetchall())

    @translate_busy
    def count_points(self, track_id: int) -> int:
        row = self.conn.execute(
            "SELECT COUNT(*) AS n FROM track_points WHERE track_id = ?", (track_id,)
        ).fetchone()
        return row["n"]

    # ----------------------------------------------------------------- markers

    @translate_busy
    def insert_marker(self, marker: Marker) -> int:
        """
        Insert a waypoint or statistics marker and return its id.
        """
        fields: dict[str, Any] = {
            "track_id": marker.track_id,
            "type": marker.type.value,
            "name": marker.name,
            "description": marker.description,
            "category": marker.category,
            "icon": marker.icon,
            "metadata": json.dumps(marker.metadata),
            "start_id": marker.start_id,
            "length": marker.length,
            "duration": marker.duration,
            "is_open": int(marker.is_open),
            **location_fields(marker.location),
        }
        if marker.statistics is not None:
            fields.update(statistics_fields(marker.statistics))
        cols = ", ".join(fields)
        marks = ", ".join("?" for _ in fields)
        with self.conn:
            cur = self.conn.execute(
                f"INSERT INTO markers ({cols}) VALUES ({marks})",
                tuple(fields.values()),
            )
        return cur.lastrowid

    @translate_busy
    def update_marker(self, marker_id: int, fields: dict[str, Any]) -> None:
        """
        Patch a marker row. Keys are column names of the markers table.
        """
        if "metadata" in fields and not isinstance(fields["metadata"], str):
            fields = {**fields, "metadata": json.dumps(fields["metadata"])}
        if "is_open" in fields:
            fields = {**fields, "is_open": int(fields["is_open"])}
        self._update("markers", MARKER_COLUMNS, marker_id, fields)

    @translate_busy
    def get_marker(self, marker_id: int) -> Optional[Marker]:
        row = self.conn.execute("SELECT * FROM markers WHERE id = ?", (marker_id,)).fetchone()
        return self._row_to_marker(row) if row is not None else None

    @translate_busy
    def get_markers(self, track_id: int) -> list[Marker]:
        """
        Return all markers of a track in insertion order.
        """
        rows = self.conn.execute(
            "SELECT * FROM markers WHERE track_id = ? ORDER BY id", (track_id,)
        ).fetchall()
        return [self._row_to_marker(row) for row in rows]

    @translate_busy
    def get_open_statistics_marker(self, track_id: int) -> Optional[Marker]:
        """
        Return the most recent statistics checkpoint still open on the track.
        """
        row = self.conn.execute(
            """
            SELECT * FROM markers
             WHERE track_id = ? AND type = ? AND is_open = 1
             ORDER BY id DESC
             LIMIT 1
            """,
            (track_id, MarkerType.STATISTICS.value),
        ).fetchone()
        return self._row_to_marker(row) if row is not None else None

    # ------------------------------------------------------------- preferences

    @translate_busy
    def get_preference(self, key: str) -> Optional[str]:
        row = self.conn.execute("SELECT value FROM preferences WHERE key = ?", (key,)).fetchone()
        return row["value"] if row is not None else None

    @translate_busy
    def set_preference(self, key: str, value: Any) -> None:
        """
        Persist a single preference (one-row transaction).
        """
        with self.conn:
            self.conn.execute(
                """
                INSERT INTO preferences (key, value) VALUES (?, ?)
                ON CONFLICT(key) DO UPDATE SET value = excluded.value
                """,
                (key, str(value)),
            )

    @translate_busy
    def get_preferences(self) -> dict[str, str]:
        rows = self.conn.execute("SELECT key, value FROM preferences ORDER BY key").fetchall()
        return {row["key"]: row["value"] for row in rows}

    # ----------------------------------------------------------------- helpers

    def _update(self, table: str, allowed: frozenset, row_id: int, fields: dict[str, Any]) -> None:
        unknown = set(fields) - allowed
        if unknown:
            raise ValueError(f"Unknown {table} columns: {sorted(unknown)}")
        if not fields:
            return
        assignments = ", ".join(f"{col} = ?" for col in fields)
        with self.conn:
            self.conn.execute(
                f"UPDATE {table} SET {assignments} WHERE id = ?",
                (*fields.values(), row_id),
            )

    @staticmethod
    def _row_to_marker(row: sqlite3.Row) -> Marker:
        location = None
        if row["latitude"] is not None and row["longitude"] is not None:
            location = _row_to_fix(row)
        marker_type = MarkerType(row["type"])
        statistics = None
        if marker_type is MarkerType.STATISTICS:
            statistics = _row_to_statistics(row)
        return Marker(
            id=row["id"],
            track_id=row["track_id"],
            type=marker_type,
            name=row["name"],
            description=row["description"],
            category=row["category"],
            icon=row["icon"],
            metadata=json.loads(row["metadata"] or "{}"),
            location=location,
            start_id=row["start_id"],
            length=row["length"],
            duration=row["duration"],
            is_open=bool(row["is_open"]),
            statistics=statistics,
        )
