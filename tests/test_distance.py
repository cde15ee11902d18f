"""Unit tests for the haversine helpers used by the tracker's distance gate."""

from xdrive_driver.domain.distance import haversine_km, haversine_m


class TestHaversine:
    def test_same_point_is_zero(self):
        assert haversine_km(43.7, 7.26, 43.7, 7.26) == 0.0

    def test_known_distance(self):
        # Nice centre -> Nice airport ~6 km
        d = haversine_km(43.7031, 7.2661, 43.6584, 7.2159)
        assert 5.0 < d < 7.5

    def test_symmetric(self):
        d1 = haversine_km(43.0, 7.0, 44.0, 8.0)
        d2 = haversine_km(44.0, 8.0, 43.0, 7.0)
        assert abs(d1 - d2) < 1e-6

    def test_metres(self):
        # 0.001 degree of latitude is ~111 m
        d = haversine_m(43.7, 7.26, 43.701, 7.26)
        assert 105 < d < 115
