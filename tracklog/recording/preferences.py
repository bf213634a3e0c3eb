"""
Typed access to the preferences persisted in the track store.
"""

from typing import Any

from tracklog.recording import config as keys
from tracklog.recording.config import RecorderConfig
from tracklog.storage.dao import DAO
from tracklog.utils.log import get_logger

logger = get_logger(__name__)


class Preferences:
    """
    Reads and writes single preference values; every write is its own
    transaction, so a crash between two writes loses at most one of them.
    """

    def __init__(self, dao: DAO, defaults: RecorderConfig | None = None) -> None:
        self.dao = dao
        self.defaults = defaults or RecorderConfig()

    def _get_int(self, key: str, default: int) -> int:
        raw = self.dao.get_preference(key)
        if raw is None:
            return default
        try:
            return int(float(raw))
        except ValueError:
            logger.warning("Ignoring malformed preference %s=%r", key, raw)
            return default

    def _get_float(self, key: str, default: float) -> float:
        raw = self.dao.get_preference(key)
        if raw is None:
            return default
        try:
            return float(raw)
        except ValueError:
            logger.warning("Ignoring malformed preference %s=%r", key, raw)
            return default

    def set(self, key: str, value: Any) -> None:
        logger.debug("Setting preference %s=%s", key, value)
        self.dao.set_preference(key, value)

    @property
    def recording_track_id(self) -> int:
        return self._get_int(keys.RECORDING_TRACK_ID, -1)

    @recording_track_id.setter
    def recording_track_id(self, track_id: int) -> None:
        self.set(keys.RECORDING_TRACK_ID, track_id)

    @property
    def auto_resume_track_current_retry(self) -> int:
        return self._get_int(keys.AUTO_RESUME_TRACK_CURRENT_RETRY, 0)

    @auto_resume_track_current_retry.setter
    def auto_resume_track_current_retry(self, retries: int) -> None:
        self.set(keys.AUTO_RESUME_TRACK_CURRENT_RETRY, retries)

    @property
    def auto_resume_track_timeout(self) -> int:
        return self._get_int(keys.AUTO_RESUME_TRACK_TIMEOUT, self.defaults.auto_resume_track_timeout)

    @property
    def min_recording_distance(self) -> float:
        return self._get_float(keys.MIN_RECORDING_DISTANCE, self.defaults.min_recording_distance)

    @property
    def max_recording_distance(self) -> float:
        return self._get_float(keys.MAX_RECORDING_DISTANCE, self.defaults.max_recording_distance)

    @property
    def min_required_accuracy(self) -> float:
        return self._get_float(keys.MIN_REQUIRED_ACCURACY, self.defaults.min_required_accuracy)

    @property
    def min_recording_interval(self) -> int:
        return self._get_int(keys.MIN_RECORDING_INTERVAL, self.defaults.min_recording_interval)
