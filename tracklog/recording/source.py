"""
Positioning sources.

The recorder only needs register/unregister and a push callback; the two
sources here feed it from a file replay or from fixes pushed over HTTP.
"""

import threading
import time
from typing import Callable, Iterable, Optional, Protocol

from tracklog.recording.types import Fix
from tracklog.utils.log import get_logger

logger = get_logger(__name__)

Listener = Callable[[Fix], None]


class LocationSource(Protocol):
    def register(self, listener: Listener, interval_ms: int, min_distance: float) -> None: ...

    def unregister(self, listener: Listener) -> None: ...

    def is_registered(self, listener: Listener) -> bool: ...


class PushSource:
    """
    Delivers fixes handed to `push` to the registered listener.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._listener: Optional[Listener] = None
        self.interval_ms = -1
        self.min_distance = 0.0

    def register(self, listener: Listener, interval_ms: int, min_distance: float) -> None:
        with self._lock:
            self._listener = listener
            self.interval_ms = interval_ms
            self.min_distance = min_distance

    def unregister(self, listener: Listener) -> None:
        with self._lock:
            if self._listener == listener:
                self._listener = None

    def is_registered(self, listener: Listener) -> bool:
        with self._lock:
            return self._listener is not None and self._listener == listener

    def push(self, fix: Fix) -> bool:
        """Deliver one fix; False when nobody listens."""
        with self._lock:
            listener = self._listener
        if listener is None:
            logger.debug("Dropping fix at %d: no listener registered", fix.time)
            return False
        listener(fix)
        return True


class ReplaySource:
    """
    Replays recorded fixes on a background thread.

    Delivery waits while no listener is registered, so a re-registration
    never drops fixes. `speedup` scales the gaps between fix timestamps;
    0 replays as fast as possible.
    """

    def __init__(self, fixes: Iterable[Fix], speedup: float = 0.0) -> None:
        self.fixes = fixes
        self.speedup = speedup
        self.interval_ms = -1
        self.min_distance = 0.0
        self.delivered = 0
        self._cond = threading.Condition()
        self._listener: Optional[Listener] = None
        self._stopped = False
        self._thread: Optional[threading.Thread] = None

    def register(self, listener: Listener, interval_ms: int, min_distance: float) -> None:
        with self._cond:
            self._listener = listener
            self.interval_ms = interval_ms
            self.min_distance = min_distance
            self._cond.notify_all()
            if self._thread is None:
                self._thread = threading.Thread(target=self._run, name="tracklog-replay", daemon=True)
                self._thread.start()

    def unregister(self, listener: Listener) -> None:
        with self._cond:
            if self._listener == listener:
                self._listener = None

    def is_registered(self, listener: Listener) -> bool:
        with self._cond:
            return self._listener is not None and self._listener == listener

    def stop(self) -> None:
        with self._cond:
            self._stopped = True
            self._cond.notify_all()

    def join(self, timeout: Optional[float] = None) -> None:
        if self._thread is not None:
            self._thread.join(timeout)

    def _run(self) -> None:
        previous: Optional[Fix] = None
        for fix in self.fixes:
            if previous is not None and self.speedup > 0:
                time.sleep(max(0, fix.time - previous.time) / 1000.0 / self.speedup)
            previous = fix
            with self._cond:
                while self._listener is None and not self._stopped:
                    self._cond.wait()
                if self._stopped:
                    break
                listener = self._listener
            listener(fix)
            self.delivered += 1
        logger.info("Replay finished after %d fixes", self.delivered)
