"""
Track recording session.

Owns the state of the one active recording, wires fix delivery through the
LocationFilter into the store, keeps the statistics and the open checkpoint
up to date, and re-negotiates polling with the location source.

Every method assumes it runs on the dispatcher (see service.py), or on the
caller's thread when the session is driven directly.
"""

from __future__ import annotations

import queue
import time
from datetime import datetime
from typing import Callable, Optional, Protocol

from tracklog.errors import InvalidStateError, SourceUnavailableError, StorageBusyError
from tracklog.recording import config as keys
from tracklog.recording.config import RecorderConfig
from tracklog.recording.filter import LocationFilter
from tracklog.recording.markers import MarkerManager
from tracklog.recording.policy import PollingPolicy, policy_from_interval
from tracklog.recording.preferences import Preferences
from tracklog.recording.resume import AutoResumeGuard
from tracklog.recording.source import LocationSource
from tracklog.recording.stats import TripStatisticsBuilder
from tracklog.recording.types import Fix, FilterOutcome, SessionState
from tracklog.recording.watchdog import Watchdog
from tracklog.storage.dao import DAO, statistics_fields
from tracklog.utils.log import get_logger
from tracklog.utils.validate import Marker, RecorderStatus, Track, TripStatistics

logger = get_logger(__name__)

THRESHOLD_KEYS = frozenset(
    {keys.MIN_RECORDING_DISTANCE, keys.MAX_RECORDING_DISTANCE, keys.MIN_REQUIRED_ACCURACY}
)


class WakeLock(Protocol):
    def acquire(self) -> None: ...

    def release(self) -> None: ...


def now_ms() -> int:
    return int(time.time() * 1000)


def default_track_name(track_id: int, start_time: int) -> str:
    started = datetime.fromtimestamp(start_time / 1000.0)
    return f"Track {track_id} ({started:%Y-%m-%d %H:%M})"


class RecordingSession:
    """
    Recording lifecycle: idle <-> recording, plus recovery at construction.

    Parameters
    ----------
    dao
        Track store.
    source
        Positioning source; fixes it delivers must reach `on_fix`.
    config
        Default tunables, overridden by persisted preferences.
    clock
        Wall clock in epoch milliseconds.
    post
        Queues a callable on the dispatcher; used by the watchdog. Without
        one, watchdog ticks wait in a local queue until `run_pending` (or
        the next `on_fix`) runs them on the caller's thread.
    deliver
        Listener registered with the source. Defaults to `on_fix`.
    wake_lock
        Optional resource held while recording.
    split_listener
        Called with the track statistics after every recorded point.
    """

    def __init__(
        self,
        dao: DAO,
        source: Optional[LocationSource] = None,
        *,
        config: Optional[RecorderConfig] = None,
        clock: Callable[[], int] = now_ms,
        post: Optional[Callable[[Callable[[], None]], object]] = None,
        deliver: Optional[Callable[[Fix], None]] = None,
        wake_lock: Optional[WakeLock] = None,
        split_listener: Optional[Callable[[TripStatistics], None]] = None,
    ) -> None:
        self.dao = dao
        self.source = source
        self.config = config or RecorderConfig()
        self.clock = clock
        self.deliver = deliver or self.on_fix
        self.wake_lock = wake_lock
        self.split_listener = split_listener
        self._pending: queue.SimpleQueue = queue.SimpleQueue()

        self.prefs = Preferences(dao, self.config)
        self.state = SessionState()
        self.filter = LocationFilter(
            self.config.min_recording_distance,
            self.config.max_recording_distance,
            self.config.min_required_accuracy,
        )
        self.policy: PollingPolicy = policy_from_interval(self.config.min_recording_interval)
        self.guard = AutoResumeGuard(self.prefs, clock)
        self.markers = MarkerManager(dao, clock)
        self.watchdog = Watchdog(
            post or self._pending.put,
            self.check_registration,
            self.config.watchdog_initial_delay,
            self.config.watchdog_period,
        )
        self.stats: Optional[TripStatisticsBuilder] = None
        self.track: Optional[Track] = None
        self._armed = False

        self.on_preference_changed(None)
        try:
            self._recover()
        except StorageBusyError as e:
            # active-track marker is left as is for the next start
            logger.warning("Storage busy during recovery, staying idle: %s", e)
            self._disarm()
            self.state.reset()
            self.markers.reset()

    # ----------------------------------------------------------- properties

    @property
    def is_recording(self) -> bool:
        return self.state.recording

    @property
    def track_id(self) -> int:
        return self.state.track_id

    @property
    def trip_statistics(self) -> Optional[TripStatistics]:
        return self.stats.statistics if self.stats is not None else None

    def status(self) -> RecorderStatus:
        return RecorderStatus(
            recording=self.state.recording,
            track_id=self.state.track_id,
            moving=self.state.moving,
            length=self.state.length,
            interval_ms=self.state.current_interval_ms,
            statistics=self.trip_statistics,
        )

    def has_recorded(self) -> bool:
        return self.dao.get_last_track_id() >= 0

    def run_pending(self) -> int:
        """
        Run watchdog callbacks queued while the session has no dispatcher.
        """
        ran = 0
        while True:
            try:
                fn = self._pending.get_nowait()
            except queue.Empty:
                return ran
            fn()
            ran += 1

    # -------------------------------------------------------------- recovery

    def _recover(self) -> None:
        """
        Decide once, before any fix, whether an interrupted track resumes.
        """
        track_id = self.prefs.recording_track_id
        track = self.dao.get_active_track()
        if track is None:
            if track_id >= 0:
                logger.warning("Resetting an orphaned recording track %d", track_id)
                self.prefs.recording_track_id = -1
            return

        if not self.guard.should_resume(track):
            logger.info("Not resuming track %d; recorder stays idle", track.id)
            self.prefs.recording_track_id = -1
            return

        self.state.track_id = track.id
        self.track = track
        self.restore_stats(track)
        self.state.recording = True
        self._arm()

    def restore_stats(self, track: Track) -> None:
        """
        Rebuild the in-memory statistics of `track` from the store.

        Replays up to `max_loaded_track_points` of the most recent points in
        recording order, re-deriving `length` from the valid ones. Running it
        twice over the same points gives the same result.
        """
        logger.info("Restoring stats of track %d", track.id)
        stored = track.statistics
        self.stats = TripStatisticsBuilder(stored.start_time)
        self.state.length = 0.0
        self.state.last_valid_fix = None
        self.markers.restore(track.id, stored.start_time)

        try:
            newest_first = list(
                self.dao.get_points_cursor(track.id, self.config.max_loaded_track_points, newest_first=True)
            )
        except StorageBusyError as e:
            logger.error("Could not load points of track %d: %s", track.id, e)
            newest_first = []

        for fix in reversed(newest_first):
            if not fix.is_valid:
                continue
            self.stats.add_location(fix, fix.time)
            if self.state.last_valid_fix is not None:
                self.state.length += fix.distance_to(self.state.last_valid_fix)
            self.state.last_valid_fix = fix

        self.stats.set_moving_time(stored.moving_time)
        self.stats.pause_at(stored.stop_time)
        self.stats.resume_at(self.clock())
        logger.info(
            "Restored %d points of track %d, length %.1f m", len(newest_first), track.id, self.state.length
        )

    # ------------------------------------------------------------- lifecycle

    def start_new_track(self) -> int:
        """
        Start recording a new track and return its id.

        Every store write happens before the session changes state, so a
        busy store leaves the session idle and the call can be retried.
        """
        if self.state.recording or self.state.track_id >= 0:
            raise InvalidStateError("A track is already in progress")

        start_time = self.clock()
        track = Track(statistics=TripStatistics(start_time=start_time, stop_time=start_time))
        track.id = self.dao.insert_track(track)
        track.name = default_track_name(track.id, start_time)
        try:
            self.dao.update_track_envelope(track.id, {"name": track.name})
            self.markers.start(track.id, start_time)
            self.guard.reset()
            self.prefs.recording_track_id = track.id
        except StorageBusyError as e:
            logger.warning("Storage busy while starting track %d, staying idle: %s", track.id, e)
            self.markers.reset()
            raise

        self.track = track
        self.state.reset()
        self.state.track_id = track.id
        self.state.recording = True
        self.stats = TripStatisticsBuilder(start_time)

        self._arm()
        logger.info("Started track %d (%s)", track.id, track.name)
        return track.id

    def end_current_track(self) -> None:
        """
        Stop recording and finalize the track's stop fields.

        The track is finalized in the store first. If the store is busy the
        session keeps recording and the call can be retried.
        """
        if self.state.track_id < 0 or not self.state.recording:
            raise InvalidStateError("No recording track in progress")

        track_id = self.state.track_id
        try:
            track = self.dao.get_track(track_id)
            if track is not None:
                stop_time = self.clock()
                fields = {
                    "stop_time": stop_time,
                    "total_time": stop_time - track.statistics.start_time,
                }
                last_point_id = self.dao.get_last_point_id(track_id)
                if last_point_id >= 0 and track.stop_id >= 0:
                    fields["stop_id"] = last_point_id
                self.dao.update_track_envelope(track_id, fields)
                self.markers.close(self.state.length, track.statistics.start_time, self.state.last_valid_fix)
            else:
                logger.warning("Track %d vanished while recording", track_id)
            self.prefs.recording_track_id = -1
        except StorageBusyError as e:
            logger.warning("Storage busy while ending track %d, still recording: %s", track_id, e)
            raise

        self._disarm()
        self.markers.reset()
        self.state.reset()
        self.track = None
        logger.info("Ended track %d", track_id)

    def shutdown(self) -> None:
        """
        Process teardown. The track stays active so it can be resumed.
        """
        self._disarm()
        self.state.recording = False
        logger.info("Recorder shut down")

    def _arm(self) -> None:
        self.register_location_listener()
        self.watchdog.arm()
        if self.wake_lock is not None and not self._armed:
            self.wake_lock.acquire()
        self._armed = True

    def _disarm(self) -> None:
        # Watchdog and source first: no fix may arrive mid-teardown.
        self.watchdog.cancel()
        self.unregister_location_listener()
        if self.wake_lock is not None and self._armed:
            self.wake_lock.release()
        self._armed = False

    # --------------------------------------------------------------- polling

    def register_location_listener(self) -> None:
        if self.source is None:
            logger.error("No location source to register with")
            return
        interval = self.policy.desired_interval()
        try:
            self.source.register(self.deliver, interval, self.policy.min_distance())
        except SourceUnavailableError as e:
            logger.error("Could not register location listener: %s", e)
            return
        self.state.current_interval_ms = interval
        logger.debug("Location listener registered @ %d ms", interval)

    def unregister_location_listener(self) -> None:
        if self.source is None:
            return
        try:
            self.source.unregister(self.deliver)
        except SourceUnavailableError as e:
            logger.error("Could not unregister location listener: %s", e)
        self.state.current_interval_ms = -1
        logger.debug("Location listener unregistered")

    def check_registration(self) -> None:
        """
        Watchdog tick: re-register if the source silently dropped us.
        """
        if not self.state.recording or self.source is None:
            return
        if self.source.is_registered(self.deliver):
            return
        logger.warning("Location listener lost its registration; re-registering")
        self.register_location_listener()

    def set_polling_policy(self, policy: PollingPolicy) -> None:
        self.policy = policy
        logger.info("Polling policy set to %r", policy)
        if self.state.recording:
            self.register_location_listener()

    def _update_polling(self) -> None:
        if self.stats is not None:
            self.policy.update_idle_time(self.stats.idle_time)
        if self.state.current_interval_ms != self.policy.desired_interval():
            self.register_location_listener()

    # ----------------------------------------------------------- preferences

    def set_thresholds(self, min_distance: float, max_distance: float, min_accuracy: float) -> None:
        self.filter.set_thresholds(min_distance, max_distance, min_accuracy)
        logger.info(
            "Thresholds: min distance %.1f m, max distance %.1f m, accuracy %.1f m",
            min_distance, max_distance, min_accuracy,
        )

    def on_preference_changed(self, key: Optional[str]) -> None:
        """
        Re-read one tunable (or all of them when `key` is None).
        """
        logger.debug("Preference changed: %s", key or "<all>")
        if key is None or key in THRESHOLD_KEYS:
            self.filter.set_thresholds(
                self.prefs.min_recording_distance,
                self.prefs.max_recording_distance,
                self.prefs.min_required_accuracy,
            )
        if key is None or key == keys.MIN_RECORDING_INTERVAL:
            self.policy = policy_from_interval(self.prefs.min_recording_interval)
        if self.state.recording:
            self.register_location_listener()

    # ----------------------------------------------------------- fix intake

    def on_fix(self, fix: Optional[Fix]) -> FilterOutcome:
        """
        Process one fix delivered by the location source.
        """
        self.run_pending()
        if not self.state.recording:
            logger.debug("Not recording; ignoring fix")
            return FilterOutcome.IGNORED
        if fix is None:
            logger.warning("Location changed, but location is null")
            return FilterOutcome.IGNORED
        if not self.filter.is_accurate(fix):
            logger.debug("Not recording. Bad accuracy (%.1f m).", fix.accuracy)
            return FilterOutcome.REJECTED_ACCURACY

        try:
            track = self.dao.get_track(self.state.track_id)
            if track is None:
                logger.debug("Not recording. No track to append to available.")
                return FilterOutcome.IGNORED
            self.track = track

            if fix.is_valid and self.stats is not None:
                now = self.clock()
                self.stats.add_location(fix, now)
                self.markers.add_location(fix, now)

            last_recorded = self.dao.get_last_point(track.id)
            outcome = self.filter.process(fix, self.state, last_recorded, self)
        except StorageBusyError as e:
            logger.warning("Storage busy, skipping fix at %d: %s", fix.time, e)
            outcome = FilterOutcome.ABORTED
        except Exception:
            logger.exception("Error while processing fix at %d", fix.time)
            raise

        self._update_polling()
        return outcome

    # PointWriter

    def has_start_point(self) -> bool:
        return self.track is not None and self.track.start_id >= 0

    def record_boundary(self, boundary: Fix) -> None:
        self.dao.insert_point(boundary, self.state.track_id)

    def record_point(self, fix: Fix) -> None:
        """
        Persist one fix and bring the track envelope and checkpoint up to date.
        """
        track = self.track
        point_id = self.dao.insert_point(fix, self.state.track_id)

        # length follows recorded points only
        if fix.is_valid:
            if self.state.last_valid_fix is not None:
                self.state.length += fix.distance_to(self.state.last_valid_fix)
            self.state.last_valid_fix = fix

        stats = self.stats.statistics if self.stats is not None else TripStatistics()
        fields = {
            "stop_id": point_id,
            "num_points": track.num_points + 1,
            **statistics_fields(stats),
        }
        fields["stop_time"] = self.clock()
        if track.start_id < 0:
            fields["start_id"] = point_id
        self.dao.update_track_envelope(track.id, fields)

        if track.start_id < 0:
            track.start_id = point_id
        track.stop_id = point_id
        track.num_points += 1
        self.markers.update_current(self.state.length, track.statistics.start_time)

        if self.split_listener is not None:
            self.split_listener(stats)

    # --------------------------------------------------------------- markers

    def insert_waypoint_marker(self, marker: Marker) -> int:
        if not self.state.recording:
            raise InvalidStateError("Unable to insert waypoint marker while not recording")
        return self.markers.insert_waypoint(marker, self.state.length, self._track_start_time())

    def insert_statistics_marker(self, location: Optional[Fix]) -> int:
        """
        Close the current statistics segment at `location`.
        """
        if not self.state.recording:
            raise InvalidStateError("Unable to insert statistics marker while not recording")
        return self.markers.insert_statistics(
            location,
            self.state.length,
            self._track_start_time(),
            self.dao.get_last_point_id(self.state.track_id),
        )

    def _track_start_time(self) -> int:
        if self.stats is not None:
            return self.stats.statistics.start_time
        return self.track.statistics.start_time if self.track is not None else self.clock()
