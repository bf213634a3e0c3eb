"""
Tests for distance and coordinate validity helpers.
"""

import pytest

from tracklog.utils.geo import haversine, is_valid_coordinate
from tracklog.recording.types import Fix


class TestHaversine:

    def test_same_point(self):
        assert haversine((43.0, 76.0), (43.0, 76.0)) == 0.0

    def test_one_millidegree_of_latitude(self):
        """0.001 degree latitude is about 111 metres."""
        dist = haversine((0.0, 0.0), (0.001, 0.0))
        assert 110.0 < dist < 112.0

    def test_symmetry(self):
        assert haversine((43.0, 76.0), (44.0, 77.0)) == pytest.approx(
            haversine((44.0, 77.0), (43.0, 76.0))
        )

    def test_antipodes_do_not_overflow(self):
        dist = haversine((0.0, 0.0), (0.0, 180.0))
        assert dist == pytest.approx(20_015_086, rel=1e-3)


class TestValidity:

    @pytest.mark.parametrize("lat, lon", [(0.0, 0.0), (-90.0, -180.0), (89.999, 179.999)])
    def test_valid(self, lat, lon):
        assert is_valid_coordinate(lat, lon)

    @pytest.mark.parametrize("lat, lon", [(90.0, 0.0), (100.0, 0.0), (0.0, 180.0), (-90.1, 0.0)])
    def test_invalid(self, lat, lon):
        assert not is_valid_coordinate(lat, lon)

    def test_segment_boundary_is_invalid(self):
        boundary = Fix.segment_boundary(1234)
        assert not boundary.is_valid
        assert boundary.time == 1234
        assert (boundary.latitude, boundary.longitude) == (100.0, 0.0)
