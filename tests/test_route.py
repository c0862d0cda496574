import math

import pytest

from ridertrack.geometry import EARTH_RADIUS_M, GeoPoint
from ridertrack.polyline import PolylineDecodeError, encode_polyline
from ridertrack.route import (
    ProjectionResult,
    Route,
    advance_along,
    find_nearest,
    position_at_distance,
    route_progress,
    trim_behind,
)

ONE_DEGREE_M = EARTH_RADIUS_M * math.pi / 180

# Straight route east along the equator, three segments of 0.01 degrees
EQUATOR_ROUTE = [
    GeoPoint(0.0, 0.0),
    GeoPoint(0.0, 0.01),
    GeoPoint(0.0, 0.02),
    GeoPoint(0.0, 0.03),
]

GPX_ROUTE = """<gpx version="1.1" creator="ridertrack-tests" xmlns="http://www.topografix.com/GPX/1/1">
  <rte>
    <rtept lat="12.9700" lon="77.5900"></rtept>
    <rtept lat="12.9710" lon="77.5920"></rtept>
    <rtept lat="12.9725" lon="77.5935"></rtept>
  </rte>
</gpx>
"""

GPX_TRACK = """<gpx version="1.1" creator="ridertrack-tests" xmlns="http://www.topografix.com/GPX/1/1">
  <trk>
    <trkseg>
      <trkpt lat="45.0" lon="7.0"></trkpt>
      <trkpt lat="45.1" lon="7.1"></trkpt>
    </trkseg>
  </trk>
</gpx>
"""


class TestFindNearest:

    def test_rider_beside_middle_segment(self):
        result = find_nearest(EQUATOR_ROUTE, GeoPoint(0.001, 0.015))

        assert result.segment_index == 1
        assert result.nearest_point.latitude == pytest.approx(0.0, abs=1e-12)
        assert result.nearest_point.longitude == pytest.approx(0.015)
        assert result.distance_meters == pytest.approx(0.001 * ONE_DEGREE_M, rel=1e-6)
        assert result.has_route

    def test_rider_on_route(self):
        result = find_nearest(EQUATOR_ROUTE, GeoPoint(0.0, 0.025))

        assert result.segment_index == 2
        assert result.distance_meters == pytest.approx(0.0, abs=1e-6)

    def test_shared_vertex_prefers_first_segment(self):
        # Equidistant from segments 0 and 1 at the shared vertex
        result = find_nearest(EQUATOR_ROUTE, GeoPoint(0.001, 0.01))

        assert result.segment_index == 0
        assert result.nearest_point == GeoPoint(0.0, 0.01)

    def test_rider_before_route_start(self):
        result = find_nearest(EQUATOR_ROUTE, GeoPoint(0.0, -0.01))

        assert result.segment_index == 0
        assert result.nearest_point == EQUATOR_ROUTE[0]

    def test_rider_past_route_end(self):
        result = find_nearest(EQUATOR_ROUTE, GeoPoint(0.0, 0.05))

        assert result.segment_index == 2
        assert result.nearest_point == EQUATOR_ROUTE[-1]

    def test_single_point_route(self):
        rider = GeoPoint(1.0, 1.0)
        result = find_nearest([GeoPoint(0.0, 0.0)], rider)

        assert result == ProjectionResult(0, rider, math.inf)
        assert not result.has_route

    def test_empty_route(self):
        rider = GeoPoint(1.0, 1.0)
        result = find_nearest([], rider)

        assert result.segment_index == 0
        assert result.nearest_point == rider
        assert result.distance_meters == math.inf

    def test_route_with_repeated_points(self):
        route = [GeoPoint(0.0, 0.0), GeoPoint(0.0, 0.0), GeoPoint(0.0, 0.01)]
        result = find_nearest(route, GeoPoint(0.001, 0.005))

        assert result.segment_index == 1
        assert result.nearest_point.longitude == pytest.approx(0.005)


class TestTrimBehind:

    def test_starts_at_projected_point(self):
        projection = find_nearest(EQUATOR_ROUTE, GeoPoint(0.001, 0.015))
        remaining = trim_behind(EQUATOR_ROUTE, projection)

        assert remaining[0] == projection.nearest_point
        assert remaining[1:] == EQUATOR_ROUTE[2:]

    def test_on_last_segment(self):
        projection = find_nearest(EQUATOR_ROUTE, GeoPoint(0.0, 0.029))
        remaining = trim_behind(EQUATOR_ROUTE, projection)

        assert len(remaining) == 2
        assert remaining[-1] == EQUATOR_ROUTE[-1]

    def test_past_the_end_keeps_end_point(self):
        projection = find_nearest(EQUATOR_ROUTE, GeoPoint(0.0, 0.05))
        remaining = trim_behind(EQUATOR_ROUTE, projection)

        assert remaining == [EQUATOR_ROUTE[-1], EQUATOR_ROUTE[-1]]

    def test_at_route_start(self):
        projection = find_nearest(EQUATOR_ROUTE, GeoPoint(0.0, 0.0))
        remaining = trim_behind(EQUATOR_ROUTE, projection)

        assert remaining == EQUATOR_ROUTE

    def test_short_route_returned_unchanged(self):
        single = [GeoPoint(0.0, 0.0)]
        projection = find_nearest(single, GeoPoint(1.0, 1.0))

        assert trim_behind(single, projection) is single
        assert trim_behind([], projection) == []

    def test_does_not_modify_route(self):
        route = list(EQUATOR_ROUTE)
        projection = find_nearest(route, GeoPoint(0.001, 0.015))
        trim_behind(route, projection)

        assert route == EQUATOR_ROUTE


class TestProgress:

    def test_halfway(self):
        projection = find_nearest(EQUATOR_ROUTE, GeoPoint(0.001, 0.015))
        progress = route_progress(EQUATOR_ROUTE, projection)

        assert progress.fraction == pytest.approx(0.5)
        assert progress.total_distance == pytest.approx(0.03 * ONE_DEGREE_M)
        assert progress.distance_covered + progress.remaining_distance == pytest.approx(
            progress.total_distance
        )

    def test_at_end(self):
        projection = find_nearest(EQUATOR_ROUTE, GeoPoint(0.0, 0.05))
        progress = route_progress(EQUATOR_ROUTE, projection)

        assert progress.fraction == pytest.approx(1.0)
        assert progress.remaining_distance == pytest.approx(0.0, abs=1e-6)

    def test_without_segments(self):
        projection = find_nearest([GeoPoint(0.0, 0.0)], GeoPoint(1.0, 1.0))
        progress = route_progress([GeoPoint(0.0, 0.0)], projection)

        assert progress.fraction == 0.0
        assert progress.distance_covered == 0.0


class TestPositionAtDistance:

    def test_interpolates_within_segment(self):
        point = position_at_distance(EQUATOR_ROUTE, 0.015 * ONE_DEGREE_M)

        assert point.latitude == pytest.approx(0.0, abs=1e-12)
        assert point.longitude == pytest.approx(0.015)

    def test_clamps_to_ends(self):
        assert position_at_distance(EQUATOR_ROUTE, -5.0) == EQUATOR_ROUTE[0]
        assert position_at_distance(EQUATOR_ROUTE, 1e9) == EQUATOR_ROUTE[-1]

    def test_empty_route_raises(self):
        with pytest.raises(ValueError):
            position_at_distance([], 10.0)


class TestAdvanceAlong:

    def test_moves_forward_across_vertices(self):
        projection = find_nearest(EQUATOR_ROUTE, GeoPoint(0.0, 0.005))
        estimate = advance_along(EQUATOR_ROUTE, projection, 0.01 * ONE_DEGREE_M)

        assert estimate.longitude == pytest.approx(0.015)

    def test_stops_at_route_end(self):
        projection = find_nearest(EQUATOR_ROUTE, GeoPoint(0.0, 0.025))
        estimate = advance_along(EQUATOR_ROUTE, projection, 10_000.0)

        assert estimate == EQUATOR_ROUTE[-1]

    def test_without_segments_stays_put(self):
        rider = GeoPoint(1.0, 1.0)
        projection = find_nearest([GeoPoint(0.0, 0.0)], rider)

        assert advance_along([GeoPoint(0.0, 0.0)], projection, 100.0) == rider


class TestRoute:

    def test_sequence_protocol(self):
        route = Route(list(EQUATOR_ROUTE))

        assert len(route) == 4
        assert route[1] == EQUATOR_ROUTE[1]
        assert list(route) == EQUATOR_ROUTE

    def test_total_distance(self):
        route = Route(list(EQUATOR_ROUTE))

        assert route.total_distance == pytest.approx(0.03 * ONE_DEGREE_M)
        assert route.cumulative_distances[0] == 0.0
        assert Route([]).total_distance == 0.0

    def test_methods_match_functions(self):
        route = Route(list(EQUATOR_ROUTE))
        rider = GeoPoint(0.001, 0.015)
        projection = route.find_nearest(rider)

        assert projection == find_nearest(EQUATOR_ROUTE, rider)
        assert route.trim_behind(projection) == trim_behind(EQUATOR_ROUTE, projection)
        assert route.progress(projection).fraction == pytest.approx(0.5)

    def test_bbox(self):
        route = Route([GeoPoint(1.0, 2.0), GeoPoint(3.0, -4.0), GeoPoint(2.0, 5.0)])

        assert route.get_bbox() == (1.0, -4.0, 3.0, 5.0)

    def test_bbox_single_point(self):
        assert Route([GeoPoint(1.0, 2.0)]).get_bbox() == (1.0, 2.0, 1.0, 2.0)

    def test_bbox_empty_route(self):
        with pytest.raises(ValueError):
            Route([]).get_bbox()

    def test_linestring(self):
        route = Route(list(EQUATOR_ROUTE))

        assert route.linestring is not None
        assert route.linestring.coords[1] == (0.01, 0.0)
        assert Route([GeoPoint(1.0, 2.0)]).linestring is None

    def test_from_encoded(self):
        encoded = encode_polyline(EQUATOR_ROUTE)
        route = Route.from_encoded(f"  {encoded}\n")

        assert len(route) == 4
        assert route[-1].longitude == pytest.approx(0.03)

    def test_from_encoded_lenient_truncation(self):
        route = Route.from_encoded("_p~iF~ps|U_ulL")
        assert len(route) == 1

    def test_from_encoded_strict_truncation(self):
        with pytest.raises(PolylineDecodeError):
            Route.from_encoded("_p~iF~ps|U_ulL", strict=True)

    def test_from_gpx_route_points(self):
        route = Route.from_gpx(GPX_ROUTE)

        assert len(route) == 3
        assert route[0] == GeoPoint(12.97, 77.59)

    def test_from_gpx_falls_back_to_track(self):
        route = Route.from_gpx(GPX_TRACK)

        assert list(route) == [GeoPoint(45.0, 7.0), GeoPoint(45.1, 7.1)]

    def test_from_file_polyline(self, tmp_path):
        path = tmp_path / "route.txt"
        path.write_text(encode_polyline(EQUATOR_ROUTE) + "\n", encoding="utf-8")

        route = Route.from_file(str(path))
        assert len(route) == 4

    def test_from_file_gpx(self, tmp_path):
        path = tmp_path / "route.gpx"
        path.write_text(GPX_ROUTE, encoding="utf-8")

        route = Route.from_file(str(path))
        assert len(route) == 3

    def test_from_file_missing(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            Route.from_file(str(tmp_path / "missing.txt"))
