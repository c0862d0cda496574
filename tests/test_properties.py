import math

import pytest
from hypothesis import given, strategies as st, assume
from shapely.geometry import LineString, Point

from ridertrack.geometry import (
    GeoPoint,
    haversine_meters,
    initial_bearing_degrees,
    point_to_segment_meters,
    project_onto_segment,
    smooth_bearing,
)
from ridertrack.polyline import decode_polyline, decode_polyline_checked, encode_polyline
from ridertrack.route import find_nearest, route_progress, trim_behind

# Strategy for valid GPS coordinates
valid_lat = st.floats(-85.0, 85.0)
valid_lon = st.floats(-180.0, 180.0)
valid_point = st.builds(GeoPoint, latitude=valid_lat, longitude=valid_lon)

# City-scale points, where the planar segment projection is meant to be used
city_lat = st.floats(12.90, 13.05)
city_lon = st.floats(77.50, 77.70)
city_point = st.builds(GeoPoint, latitude=city_lat, longitude=city_lon)
city_route = st.lists(city_point, min_size=2, max_size=8)


class TestDistanceProperties:

    @given(valid_point, valid_point)
    def test_distance_is_non_negative(self, a, b):
        """Distance between any two points is always non-negative."""
        assert haversine_meters(a, b) >= 0

    @given(valid_point)
    def test_distance_to_self_is_zero(self, point):
        """Distance from a point to itself is always zero."""
        assert haversine_meters(point, point) == 0

    @given(valid_point, valid_point)
    def test_distance_is_symmetric(self, a, b):
        """Distance from A to B equals distance from B to A."""
        assert haversine_meters(a, b) == haversine_meters(b, a)

    @given(valid_point, valid_point, valid_point)
    def test_triangle_inequality(self, a, b, c):
        """For any triangle, sum of two sides >= third side."""
        ab = haversine_meters(a, b)
        bc = haversine_meters(b, c)
        ac = haversine_meters(a, c)

        # Loose tolerance for precision loss near antipodal pairs
        assert ab + bc >= ac - 1.0
        assert ab + ac >= bc - 1.0
        assert bc + ac >= ab - 1.0


class TestBearingProperties:

    @given(valid_point, valid_point)
    def test_bearing_range(self, a, b):
        """Bearing is always in range [0, 360)."""
        bearing = initial_bearing_degrees(a, b)
        assert 0 <= bearing < 360

    @given(st.floats(0, 359.999), st.floats(0, 359.999), st.floats(0, 1))
    def test_smoothing_never_overshoots(self, current, target, factor):
        """A smoothed heading moves at most the shorter arc towards the target."""
        result = smooth_bearing(current, target, factor)

        def arc(x, y):
            diff = abs(x - y) % 360
            return min(diff, 360 - diff)

        assert arc(result, target) <= arc(current, target) + 1e-9


class TestProjectionProperties:

    @given(city_point, city_point, city_point)
    def test_projection_lies_on_segment(self, rider, start, end):
        """The projected point never leaves the segment's bounding box."""
        projected = project_onto_segment(rider, start, end)

        assert min(start.latitude, end.latitude) - 1e-12 <= projected.latitude
        assert projected.latitude <= max(start.latitude, end.latitude) + 1e-12
        assert min(start.longitude, end.longitude) - 1e-12 <= projected.longitude
        assert projected.longitude <= max(start.longitude, end.longitude) + 1e-12

    @given(city_point, city_point, city_point)
    def test_projection_matches_shapely(self, rider, start, end):
        """Planar projection agrees with shapely's nearest point on the segment."""
        assume(haversine_meters(start, end) > 1.0)

        line = LineString([(start.longitude, start.latitude), (end.longitude, end.latitude)])
        nearest = line.interpolate(line.project(Point(rider.longitude, rider.latitude)))
        projected = project_onto_segment(rider, start, end)

        assert projected.longitude == pytest.approx(nearest.x, abs=1e-7)
        assert projected.latitude == pytest.approx(nearest.y, abs=1e-7)


class TestRouteProperties:

    @given(city_route, city_point)
    def test_nearest_segment_is_first_minimum(self, route, rider):
        """find_nearest picks the first segment with the smallest distance."""
        result = find_nearest(route, rider)
        distances = [
            point_to_segment_meters(rider, route[i], route[i + 1])
            for i in range(len(route) - 1)
        ]

        assert result.distance_meters == min(distances)
        assert all(d > result.distance_meters for d in distances[: result.segment_index])
        assert 0 <= result.segment_index <= len(route) - 2

    @given(city_route, city_point)
    def test_trim_starts_at_projection(self, route, rider):
        """The remaining path is the projected point followed by the rest of the route."""
        projection = find_nearest(route, rider)
        remaining = trim_behind(route, projection)

        assert remaining[0] == projection.nearest_point
        assert remaining[1:] == route[projection.segment_index + 1 :]
        assert len(remaining) == len(route) - projection.segment_index

    @given(city_route, city_point)
    def test_progress_bounds(self, route, rider):
        """Progress fraction stays in [0, 1] and distances add up."""
        progress = route_progress(route, find_nearest(route, rider))

        assert 0.0 <= progress.fraction <= 1.0
        assert progress.distance_covered + progress.remaining_distance == pytest.approx(
            progress.total_distance, abs=1e-6
        )


class TestPolylineProperties:

    @given(st.lists(valid_point, max_size=20))
    def test_encoding_keeps_five_decimals(self, points):
        """Decoding an encoded route reproduces it to 1e-5 degrees."""
        decoded = decode_polyline(encode_polyline(points))

        assert len(decoded) == len(points)
        for original, result in zip(points, decoded):
            assert result.latitude == pytest.approx(original.latitude, abs=1e-5)
            assert result.longitude == pytest.approx(original.longitude, abs=1e-5)

    @given(st.text(alphabet=st.characters(min_codepoint=63, max_codepoint=126)))
    def test_decode_never_raises(self, encoded):
        """Lenient decoding accepts any polyline-alphabet string."""
        assert isinstance(decode_polyline(encoded), list)

    @given(
        st.text(
            alphabet=st.characters(min_codepoint=63, max_codepoint=126),
            min_size=50,
            max_size=2000,
        )
    )
    def test_checked_decode_never_raises_on_long_input(self, encoded):
        """Long runs of continuation characters end decoding instead of overflowing."""
        result = decode_polyline_checked(encoded)

        assert result.consumed <= len(encoded)
        assert result.complete == (result.consumed == len(encoded))
        assert all(math.isfinite(p.latitude) and math.isfinite(p.longitude) for p in result.points)

    @given(st.integers(min_value=8, max_value=500))
    def test_continuation_runs_decode_to_nothing(self, run_length):
        """A value longer than 32 bits yields no points."""
        result = decode_polyline_checked("~" * run_length + "??")

        assert result.points == []
        assert not result.complete
