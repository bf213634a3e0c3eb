"""
Decides, once per process start, whether an interrupted recording resumes.
"""

from typing import Callable, Optional

from tracklog.recording.config import ONE_MINUTE_MS
from tracklog.recording.preferences import Preferences
from tracklog.utils.log import get_logger
from tracklog.utils.validate import Track

logger = get_logger(__name__)

MAX_AUTO_RESUME_TRACK_RETRY_ATTEMPTS = 3


class AutoResumeGuard:
    """
    Bounded auto-resume.

    The persisted retry counter stops a resume/crash loop: after
    MAX_AUTO_RESUME_TRACK_RETRY_ATTEMPTS evaluations without an explicit
    new recording, resuming is refused whatever the timeout says.
    """

    def __init__(self, prefs: Preferences, clock: Callable[[], int]) -> None:
        self.prefs = prefs
        self.clock = clock

    def should_resume(self, track: Optional[Track]) -> bool:
        if track is None:
            logger.info("Not resuming: no active track")
            return False

        timeout = self.prefs.auto_resume_track_timeout
        retries = self.prefs.auto_resume_track_current_retry
        logger.debug(
            "Attempting to auto-resume track %d (%d/%d), timeout=%d",
            track.id, retries + 1, MAX_AUTO_RESUME_TRACK_RETRY_ATTEMPTS, timeout,
        )
        if retries >= MAX_AUTO_RESUME_TRACK_RETRY_ATTEMPTS:
            logger.info("Not resuming: exceeded %d auto-resume attempts", MAX_AUTO_RESUME_TRACK_RETRY_ATTEMPTS)
            return False

        self.prefs.auto_resume_track_current_retry = retries + 1

        if timeout == 0:
            logger.info("Not resuming: auto-resume disabled")
            return False
        if timeout == -1:
            logger.info("Resuming track %d: auto-resume forced", track.id)
            return True

        last_modified = track.statistics.stop_time
        now = self.clock()
        if last_modified > 0 and now - last_modified <= timeout * ONE_MINUTE_MS:
            logger.info("Resuming track %d stopped %.1f min ago", track.id, (now - last_modified) / ONE_MINUTE_MS)
            return True
        logger.info("Not resuming: track %d is older than %d min", track.id, timeout)
        return False

    def reset(self) -> None:
        self.prefs.auto_resume_track_current_retry = 0
