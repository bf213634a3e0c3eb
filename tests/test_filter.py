"""
Tests for the per-fix accept/reject/segment-split decisions.
"""

import pytest

from tracklog.errors import StorageBusyError
from tracklog.recording.filter import LocationFilter
from tracklog.recording.types import Fix, FilterOutcome, SessionState

from conftest import make_fix


class RecordingWriter:
    """PointWriter that keeps every write in order."""

    def __init__(self, has_start=True, fail_on=None):
        self.writes: list[Fix] = []
        self.has_start = has_start
        self.fail_on = fail_on

    def record_point(self, fix):
        if self.fail_on is not None and fix == self.fail_on:
            raise StorageBusyError("database is locked")
        self.writes.append(fix)

    def record_boundary(self, boundary):
        self.writes.append(boundary)

    def has_start_point(self):
        return self.has_start


@pytest.fixture
def flt():
    return LocationFilter(min_recording_distance=5.0, max_recording_distance=200.0, min_required_accuracy=200.0)


A = make_fix(0.0, 0.0, 1_000)


class TestAccuracy:

    def test_inaccurate_fix_is_discarded_without_state_change(self, flt):
        state = SessionState(recording=True, last_fix=A, length=12.5)
        writer = RecordingWriter()
        bad = make_fix(0.01, 0.01, 2_000, accuracy=250.0)

        assert flt.process(bad, state, A, writer) is FilterOutcome.REJECTED_ACCURACY
        assert state.last_fix is A
        assert state.moving is True
        assert state.length == 12.5
        assert writer.writes == []

    def test_threshold_is_inclusive(self, flt):
        assert flt.is_accurate(make_fix(0.0, 0.0, 0, accuracy=200.0))
        assert not flt.is_accurate(make_fix(0.0, 0.0, 0, accuracy=200.1))


class TestStationary:

    def test_first_fix_is_recorded(self, flt):
        state = SessionState(recording=True)
        writer = RecordingWriter(has_start=False)

        assert flt.process(A, state, None, writer) is FilterOutcome.RECORDED
        assert writer.writes == [A]
        assert state.last_fix is A

    def test_identical_fix_flips_to_stationary_once(self, flt):
        state = SessionState(recording=True, last_fix=A)
        writer = RecordingWriter()
        b = make_fix(0.0, 0.0, 2_000)
        c = make_fix(0.0, 0.0, 3_000)

        assert flt.process(b, state, A, writer) is FilterOutcome.STATIONARY
        assert state.moving is False
        assert state.last_fix is b
        # the previous fix is the persisted one, nothing to flush
        assert writer.writes == []

        assert flt.process(c, state, A, writer) is FilterOutcome.DUPLICATE
        assert state.moving is False
        assert state.last_fix is b
        assert writer.writes == []

    def test_stop_flushes_previous_unrecorded_fix(self, flt):
        near = make_fix(0.00002, 0.0, 2_000)  # ~2 m from A
        state = SessionState(recording=True, last_fix=near)
        writer = RecordingWriter()
        repeat = make_fix(0.00002, 0.0, 3_000)

        assert flt.process(repeat, state, A, writer) is FilterOutcome.STATIONARY
        assert writer.writes == [near]

    def test_moving_again_flushes_stationary_fix_first(self, flt):
        b = make_fix(0.0, 0.0, 2_000)
        state = SessionState(recording=True, moving=False, last_fix=b)
        writer = RecordingWriter()
        far = make_fix(0.0, 0.001, 3_000)

        assert flt.process(far, state, A, writer) is FilterOutcome.RECORDED
        assert writer.writes == [b, far]
        assert state.moving is True
        assert state.last_fix is far


class TestDistance:

    def test_too_close_is_skipped(self, flt):
        state = SessionState(recording=True, last_fix=A)
        writer = RecordingWriter()
        near = make_fix(0.00002, 0.0, 2_000)

        assert flt.process(near, state, A, writer) is FilterOutcome.TOO_CLOSE
        assert writer.writes == []
        assert state.last_fix is near

    def test_boundary_written_before_far_fix(self, flt):
        state = SessionState(recording=True, last_fix=A)
        writer = RecordingWriter()
        far = make_fix(0.01, 0.0, 2_000)  # ~1.1 km

        assert flt.process(far, state, A, writer) is FilterOutcome.RECORDED
        assert writer.writes == [Fix.segment_boundary(A.time), far]

    def test_no_boundary_without_start_point(self, flt):
        state = SessionState(recording=True, last_fix=A)
        writer = RecordingWriter(has_start=False)
        far = make_fix(0.01, 0.0, 2_000)

        flt.process(far, state, A, writer)
        assert writer.writes == [far]

    def test_no_boundary_after_boundary(self, flt):
        boundary = Fix.segment_boundary(A.time)
        state = SessionState(recording=True, last_fix=A)
        writer = RecordingWriter()
        far = make_fix(0.01, 0.0, 2_000)

        flt.process(far, state, boundary, writer)
        assert writer.writes == [far]

    def test_thresholds_can_change(self, flt):
        flt.set_thresholds(1.0, 200.0, 200.0)
        state = SessionState(recording=True, last_fix=A)
        writer = RecordingWriter()
        near = make_fix(0.00002, 0.0, 2_000)

        assert flt.process(near, state, A, writer) is FilterOutcome.RECORDED


class TestBusyStore:

    def test_busy_write_propagates_and_keeps_last_fix(self, flt):
        state = SessionState(recording=True, last_fix=A)
        far = make_fix(0.0, 0.001, 2_000)
        writer = RecordingWriter(fail_on=far)

        with pytest.raises(StorageBusyError):
            flt.process(far, state, A, writer)
        assert state.last_fix is A
        assert writer.writes == []

    def test_flag_flip_survives_busy_write(self, flt):
        near = make_fix(0.00002, 0.0, 2_000)
        state = SessionState(recording=True, last_fix=near)
        writer = RecordingWriter(fail_on=near)

        with pytest.raises(StorageBusyError):
            flt.process(make_fix(0.00002, 0.0, 3_000), state, A, writer)
        assert state.moving is False
        assert state.last_fix is near
