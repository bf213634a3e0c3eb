"""
Recording service: a single dispatcher thread in front of a RecordingSession.

Fix deliveries, watchdog ticks and control-surface calls all become commands
on one queue, so the session is only ever touched by the dispatcher thread.
Callers on other threads (CLI, HTTP handlers) wait on a Future for the result.
"""

from __future__ import annotations

import queue
import threading
from concurrent.futures import Future
from typing import Any, Callable, Optional

from tracklog.errors import TracklogError
from tracklog.recording.config import RecorderConfig
from tracklog.recording.policy import PollingPolicy
from tracklog.recording.session import RecordingSession, WakeLock, now_ms
from tracklog.recording.source import LocationSource
from tracklog.recording.types import Fix, FilterOutcome
from tracklog.storage.dao import DAO
from tracklog.utils.log import get_logger
from tracklog.utils.validate import Marker, RecorderStatus, TripStatistics

logger = get_logger(__name__)

_STOP = None


class Dispatcher(threading.Thread):
    """
    Runs queued callables one at a time, in submission order.

    Protocol on self.q:
      (future, fn, args)   run fn(*args), settle future with its result
      None                 drain stops, thread exits
    """

    def __init__(self, name: str = "tracklog-dispatcher") -> None:
        super().__init__(name=name, daemon=True)
        self.q: queue.Queue = queue.Queue()

    def submit(self, fn: Callable[..., Any], *args: Any) -> Future:
        future: Future = Future()
        self.q.put((future, fn, args))
        return future

    def stop(self) -> None:
        self.q.put(_STOP)

    @property
    def on_dispatcher(self) -> bool:
        return threading.current_thread() is self

    def run(self) -> None:
        while True:
            item = self.q.get()
            try:
                if item is _STOP:
                    break
                future, fn, args = item
                if not future.set_running_or_notify_cancel():
                    continue
                try:
                    future.set_result(fn(*args))
                except BaseException as e:
                    future.set_exception(e)
            finally:
                self.q.task_done()


class RecordingService:
    """
    Control surface of the recorder; every call executes on the dispatcher.

    Parameters
    ----------
    dao_factory
        Builds the store; called on the dispatcher thread.
    source
        Positioning source to register with.
    """

    def __init__(
        self,
        dao_factory: Callable[[], DAO],
        source: Optional[LocationSource] = None,
        *,
        config: Optional[RecorderConfig] = None,
        clock: Callable[[], int] = now_ms,
        wake_lock: Optional[WakeLock] = None,
        split_listener: Optional[Callable[[TripStatistics], None]] = None,
    ) -> None:
        self.dispatcher = Dispatcher()
        self.dispatcher.start()
        self._closed = False
        # unexpected fault from a delivered fix; stops the recorder for good
        self._fault: Optional[BaseException] = None
        self.session: RecordingSession

        def _build() -> None:
            # assigned on the dispatcher before any delivered fix can run
            self.session = RecordingSession(
                dao_factory(),
                source,
                config=config,
                clock=clock,
                post=self.post,
                deliver=self.deliver,
                wake_lock=wake_lock,
                split_listener=split_listener,
            )
        self.call(_build)

    # --------------------------------------------------------------- plumbing

    def post(self, fn: Callable[..., Any], *args: Any) -> Future:
        """Queue `fn` on the dispatcher without waiting."""
        return self.dispatcher.submit(fn, *args)

    def call(self, fn: Callable[..., Any], *args: Any, timeout: Optional[float] = None) -> Any:
        """
        Run `fn` on the dispatcher and return (or raise) its result.

        Once a delivered fix has failed unexpectedly, every call raises that
        fault instead.
        """
        if self.dispatcher.on_dispatcher:
            return fn(*args)
        self._raise_fault()
        result = self.post(fn, *args).result(timeout)
        self._raise_fault()
        return result

    def _raise_fault(self) -> None:
        if self._fault is not None:
            raise self._fault

    def deliver(self, fix: Fix) -> None:
        """Listener handed to the location source."""
        future = self.post(self._on_fix, fix)
        future.add_done_callback(self._log_failure)

    def _on_fix(self, fix: Fix) -> FilterOutcome:
        try:
            return self.session.on_fix(fix)
        except TracklogError:
            raise
        except Exception as e:
            if self._fault is None:
                self._fault = e
                logger.error("Recorder stopped after an unexpected fault: %r", e)
                self.session.shutdown()
            raise

    @staticmethod
    def _log_failure(future: Future) -> None:
        e = future.exception()
        if e is not None:
            logger.error("Fix processing failed: %r", e)

    def drain(self, timeout: Optional[float] = None) -> None:
        """Wait until everything queued so far has run."""
        self.call(lambda: None, timeout=timeout)

    def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        try:
            self.post(self.session.shutdown).result()
        finally:
            self.dispatcher.stop()
            self.dispatcher.join(timeout=5.0)
        self._raise_fault()

    # --------------------------------------------------------- control surface

    def start_new_track(self) -> int:
        return self.call(self.session.start_new_track)

    def end_current_track(self) -> None:
        self.call(self.session.end_current_track)

    def is_recording(self) -> bool:
        return self.call(lambda: self.session.is_recording)

    def status(self) -> RecorderStatus:
        return self.call(self.session.status)

    def record_fix(self, fix: Fix) -> FilterOutcome:
        return self.call(self._on_fix, fix)

    def insert_waypoint_marker(self, marker: Marker) -> int:
        return self.call(self.session.insert_waypoint_marker, marker)

    def insert_statistics_marker(self, location: Optional[Fix]) -> int:
        return self.call(self.session.insert_statistics_marker, location)

    def set_polling_policy(self, policy: PollingPolicy) -> None:
        self.call(self.session.set_polling_policy, policy)

    def set_thresholds(self, min_distance: float, max_distance: float, min_accuracy: float) -> None:
        self.call(self.session.set_thresholds, min_distance, max_distance, min_accuracy)

    def on_preference_changed(self, key: Optional[str]) -> None:
        self.call(self.session.on_preference_changed, key)

    def set_preference(self, key: str, value: Any) -> None:
        def _apply() -> None:
            self.session.prefs.set(key, value)
            self.session.on_preference_changed(key)
        self.call(_apply)
