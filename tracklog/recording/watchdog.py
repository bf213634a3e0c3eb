"""
Registration watchdog.

Runs on its own timer thread but never touches session state: each tick only
hands a callback to `post`, which queues it for the thread that owns the
session.
"""

import threading
from typing import Callable, Optional

from tracklog.utils.log import get_logger

logger = get_logger(__name__)


class Watchdog:
    """
    Calls `post(check)` once after `initial_delay` seconds, then every
    `period` seconds, until cancelled.
    """

    def __init__(
        self,
        post: Callable[[Callable[[], None]], object],
        check: Callable[[], None],
        initial_delay: float,
        period: float,
    ) -> None:
        self.post = post
        self.check = check
        self.initial_delay = initial_delay
        self.period = period
        self._stop = threading.Event()
        self._thread: Optional[threading.Thread] = None

    @property
    def armed(self) -> bool:
        return self._thread is not None and self._thread.is_alive() and not self._stop.is_set()

    def arm(self) -> None:
        if self.armed:
            return
        self._stop = threading.Event()
        self._thread = threading.Thread(
            target=self._run, args=(self._stop,), name="tracklog-watchdog", daemon=True
        )
        self._thread.start()
        logger.debug("Watchdog armed: first check in %.0fs, then every %.0fs", self.initial_delay, self.period)

    def cancel(self) -> None:
        self._stop.set()
        thread = self._thread
        self._thread = None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout=1.0)

    def _run(self, stop: threading.Event) -> None:
        if stop.wait(self.initial_delay):
            return
        while not stop.is_set():
            self.post(self.check)
            if stop.wait(self.period):
                return
