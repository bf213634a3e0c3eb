"""
Per-fix recording decisions.

For each fix that passes the accuracy check the filter decides whether it
becomes a track point, whether the previous fix has to be written first
(the last stationary position), and whether a segment boundary goes in
front of it. It also keeps the moving/stationary flag and the last-seen fix
of the session.
"""

from __future__ import annotations

import math
from typing import Optional, Protocol

from tracklog.recording.types import Fix, FilterOutcome, SessionState
from tracklog.utils.log import get_logger

logger = get_logger(__name__)


class PointWriter(Protocol):
    """
    Where the filter's decisions land. Any write may raise
    StorageBusyError; the filter lets it propagate.
    """

    def record_point(self, fix: Fix) -> None: ...

    def record_boundary(self, boundary: Fix) -> None: ...

    def has_start_point(self) -> bool: ...


class LocationFilter:
    """
    Accept/reject/segment-split engine.

    Parameters
    ----------
    min_recording_distance
        Distance (m) the fix must be from the last recorded point.
    max_recording_distance
        Beyond this distance (m) from the last recorded point a segment
        boundary is written first.
    min_required_accuracy
        Fixes with a larger accuracy radius (m) are discarded.
    """

    def __init__(
        self,
        min_recording_distance: float,
        max_recording_distance: float,
        min_required_accuracy: float,
    ) -> None:
        self.min_recording_distance = min_recording_distance
        self.max_recording_distance = max_recording_distance
        self.min_required_accuracy = min_required_accuracy

    def set_thresholds(self, min_distance: float, max_distance: float, min_accuracy: float) -> None:
        self.min_recording_distance = min_distance
        self.max_recording_distance = max_distance
        self.min_required_accuracy = min_accuracy

    def is_accurate(self, fix: Fix) -> bool:
        return fix.accuracy <= self.min_required_accuracy

    def process(
        self,
        fix: Fix,
        state: SessionState,
        last_recorded: Optional[Fix],
        writer: PointWriter,
    ) -> FilterOutcome:
        """
        Decide what happens to `fix` and carry it out through `writer`.

        If a write raises, the exception propagates: flags already flipped
        stay flipped and the last-seen fix keeps its previous value.
        """
        if not self.is_accurate(fix):
            logger.debug("Not recording. Bad accuracy (%.1f m).", fix.accuracy)
            return FilterOutcome.REJECTED_ACCURACY

        last = state.last_fix
        distance_to_last_recorded = fix.distance_to(last_recorded) if last_recorded is not None else math.inf
        distance_to_last = fix.distance_to(last) if last is not None else math.inf

        if distance_to_last == 0:
            if not state.moving:
                logger.debug("Not recording. More than two identical locations.")
                return FilterOutcome.DUPLICATE
            logger.debug("Found two identical locations.")
            state.moving = False
            # One-fix lag: the previous fix is where motion stopped.
            if last_recorded is not None and not last_recorded.same_sample(last):
                writer.record_point(last)
            outcome = FilterOutcome.STATIONARY

        elif distance_to_last_recorded > self.min_recording_distance:
            if last is not None and not state.moving:
                # The last stationary fix was held back; write it now.
                writer.record_point(last)
                state.moving = True

            if (
                last_recorded is not None
                and last_recorded.is_valid
                and distance_to_last_recorded > self.max_recording_distance
                and writer.has_start_point()
            ):
                logger.debug("Inserting a segment boundary (%.1f m gap).", distance_to_last_recorded)
                writer.record_boundary(Fix.segment_boundary(last_recorded.time))

            writer.record_point(fix)
            outcome = FilterOutcome.RECORDED

        else:
            logger.debug(
                "Not recording. Distance to last recorded point (%.1f m) is less than %.1f m.",
                distance_to_last_recorded, self.min_recording_distance,
            )
            outcome = FilterOutcome.TOO_CLOSE

        state.last_fix = fix
        return outcome
