#!/usr/bin/env python3
"""
Route data model and rider projection for live tracking.
"""

from typing import List, NamedTuple, Optional, Sequence, TextIO, Tuple, Union
import logging
import math

import gpxpy
from shapely.geometry import LineString

from .geometry import (
    GeoPoint,
    coords_to_linestring,
    cumulative_distances,
    haversine_meters,
    point_to_segment_meters,
    project_onto_segment,
)
from .polyline import decode_polyline, decode_polyline_strict

logger = logging.getLogger(__name__)


class ProjectionResult(NamedTuple):
    """Where a rider fix lands on a route."""

    segment_index: int  # Segment [i, i+1] containing nearest_point
    nearest_point: GeoPoint
    distance_meters: float  # Rider to nearest_point; inf when there is no route

    @property
    def has_route(self) -> bool:
        """False for the sentinel returned when the route has no segments."""
        return math.isfinite(self.distance_meters)


class RouteProgress(NamedTuple):
    """How far along a route a projected position is."""

    distance_covered: float  # meters
    total_distance: float  # meters
    remaining_distance: float  # meters
    fraction: float  # 0 to 1


def find_nearest(route: Sequence[GeoPoint], rider: GeoPoint) -> ProjectionResult:
    """
    Project a rider fix onto the nearest segment of a route.

    Args:
        route: Route points
        rider: Rider fix

    Returns:
        ProjectionResult for the closest segment. The first segment wins on
        ties. Routes with fewer than two points yield
        ProjectionResult(0, rider, inf).
    """
    if len(route) < 2:
        return ProjectionResult(segment_index=0, nearest_point=rider, distance_meters=math.inf)

    min_distance = math.inf
    min_index = 0
    for i in range(len(route) - 1):
        distance = point_to_segment_meters(rider, route[i], route[i + 1])
        if distance < min_distance:
            min_distance = distance
            min_index = i

    nearest_point = project_onto_segment(rider, route[min_index], route[min_index + 1])
    return ProjectionResult(
        segment_index=min_index,
        nearest_point=nearest_point,
        distance_meters=min_distance,
    )


def trim_behind(route: Sequence[GeoPoint], projection: ProjectionResult) -> List[GeoPoint]:
    """
    Drop the part of a route the rider has already covered.

    Args:
        route: Route points
        projection: Projection of the rider onto this route

    Returns:
        The remaining path, starting exactly at the projected point. Routes
        with fewer than two points are returned unchanged.
    """
    if len(route) < 2:
        return route  # type: ignore[return-value]

    return [projection.nearest_point] + list(route[projection.segment_index + 1 :])


def route_progress(
    route: Sequence[GeoPoint],
    projection: ProjectionResult,
    cumulative: Optional[Sequence[float]] = None,
) -> RouteProgress:
    """
    Calculate progress along a route up to a projected point.

    Args:
        route: Route points
        projection: Projection of the rider onto this route
        cumulative: Precomputed cumulative distances for route, if available

    Returns:
        RouteProgress; zero progress for routes without segments
    """
    if cumulative is None:
        cumulative = cumulative_distances(route)
    total = cumulative[-1] if cumulative else 0.0

    if len(route) < 2 or not projection.has_route:
        return RouteProgress(0.0, total, total, 0.0)

    index = min(max(projection.segment_index, 0), len(route) - 2)
    covered = cumulative[index] + haversine_meters(route[index], projection.nearest_point)
    covered = min(covered, total)

    fraction = covered / total if total > 0 else 0.0
    fraction = min(1.0, max(0.0, fraction))

    return RouteProgress(
        distance_covered=covered,
        total_distance=total,
        remaining_distance=total - covered,
        fraction=fraction,
    )


def position_at_distance(
    route: Sequence[GeoPoint],
    meters: float,
    cumulative: Optional[Sequence[float]] = None,
) -> GeoPoint:
    """
    Find the point a given distance along a route.

    Args:
        route: Route points
        meters: Distance from the route start
        cumulative: Precomputed cumulative distances for route, if available

    Returns:
        Interpolated point; clamped to the first or last point

    Raises:
        ValueError: If route is empty
    """
    if not route:
        raise ValueError("Cannot find a position on an empty route")
    if cumulative is None:
        cumulative = cumulative_distances(route)

    if meters <= 0:
        return route[0]
    if meters >= cumulative[-1]:
        return route[-1]

    for i in range(len(route) - 1):
        if cumulative[i + 1] >= meters:
            segment_length = cumulative[i + 1] - cumulative[i]
            if segment_length <= 0:
                return route[i]
            t = (meters - cumulative[i]) / segment_length
            start, end = route[i], route[i + 1]
            return GeoPoint(
                latitude=start.latitude + (end.latitude - start.latitude) * t,
                longitude=start.longitude + (end.longitude - start.longitude) * t,
            )

    return route[-1]


def advance_along(
    route: Sequence[GeoPoint],
    projection: ProjectionResult,
    meters: float,
    cumulative: Optional[Sequence[float]] = None,
) -> GeoPoint:
    """
    Estimate a position further along the route than a projection.

    Args:
        route: Route points
        projection: Last known projection onto this route
        meters: Distance to move forward

    Returns:
        Estimated point; the projected point itself if the route has no segments
    """
    if len(route) < 2 or not projection.has_route:
        return projection.nearest_point
    if cumulative is None:
        cumulative = cumulative_distances(route)

    progress = route_progress(route, projection, cumulative)
    return position_at_distance(route, progress.distance_covered + meters, cumulative)


class Route:
    """Represents a route polyline with memoized geometric operations."""

    def __init__(self, coords: List[GeoPoint]):
        """Initializes a Route object.

        Args:
            coords: A list of GeoPoint objects representing the route's geometry.
                Routes with fewer than two points are accepted; projection and
                trimming then return their degenerate results.
        """
        self.coords = coords
        self._cumulative: Optional[List[float]] = None
        self._linestring: Optional[LineString] = None

        if len(coords) < 2:
            logger.debug(f"Route has {len(coords)} points; no segments to project onto")

    @property
    def cumulative_distances(self) -> List[float]:
        """Cumulative distances in meters, one per route point."""
        if self._cumulative is None:
            self._cumulative = cumulative_distances(self.coords)
        return self._cumulative

    @property
    def total_distance(self) -> float:
        """Route length in meters."""
        cumulative = self.cumulative_distances
        return cumulative[-1] if cumulative else 0.0

    @property
    def linestring(self) -> Optional[LineString]:
        """Shapely LineString in (longitude, latitude), or None without segments."""
        if self._linestring is None:
            self._linestring = coords_to_linestring(self.coords)
        return self._linestring

    def get_bbox(self) -> Tuple[float, float, float, float]:
        """
        Get the bounding box of this route.

        Returns:
            Tuple of (south, west, north, east) in decimal degrees

        Raises:
            ValueError: If route is empty
        """
        if not self.coords:
            raise ValueError("Cannot calculate bounding box for empty route")

        linestring = self.linestring
        if linestring is not None:
            west, south, east, north = linestring.bounds
            return (south, west, north, east)

        point = self.coords[0]
        return (point.latitude, point.longitude, point.latitude, point.longitude)

    def find_nearest(self, rider: GeoPoint) -> ProjectionResult:
        """Project a rider fix onto this route."""
        return find_nearest(self.coords, rider)

    def trim_behind(self, projection: ProjectionResult) -> List[GeoPoint]:
        """Remaining path from a projection onward."""
        return trim_behind(self.coords, projection)

    def progress(self, projection: ProjectionResult) -> RouteProgress:
        """Progress along this route up to a projection."""
        return route_progress(self.coords, projection, self.cumulative_distances)

    def position_at_distance(self, meters: float) -> GeoPoint:
        """Point the given distance along this route."""
        return position_at_distance(self.coords, meters, self.cumulative_distances)

    def advance_along(self, projection: ProjectionResult, meters: float) -> GeoPoint:
        """Point the given distance past a projection."""
        return advance_along(self.coords, projection, meters, self.cumulative_distances)

    @classmethod
    def from_encoded(cls, encoded: str, strict: bool = False) -> "Route":
        """
        Build a route from an encoded polyline.

        Args:
            encoded: Encoded polyline string
            strict: Reject truncated input instead of decoding best effort

        Raises:
            PolylineDecodeError: If strict and the polyline is truncated
        """
        encoded = encoded.strip()
        coords = decode_polyline_strict(encoded) if strict else decode_polyline(encoded)
        logger.debug(f"Decoded {len(coords)} route points from encoded polyline")
        return cls(coords)

    @classmethod
    def from_gpx(cls, file_input: Union[str, TextIO]) -> "Route":
        """
        Parse GPX data and concatenate all routes or track segments into a route.

        GPX <rte> points are used when present, track points otherwise.

        Raises:
            gpxpy.gpx.GPXException: If GPX data is malformed.
        """
        gpx_data = gpxpy.parse(file_input)

        coords: List[GeoPoint] = []
        for gpx_route in gpx_data.routes:
            for point in gpx_route.points:
                coords.append(GeoPoint(point.latitude, point.longitude))

        if not coords:
            for track in gpx_data.tracks:
                for segment in track.segments:
                    for point in segment.points:
                        coords.append(GeoPoint(point.latitude, point.longitude))

        logger.debug(f"Parsed {len(coords)} route points from GPX data")
        return cls(coords)

    @classmethod
    def from_file(cls, filename: str, strict: bool = False) -> "Route":
        """
        Load a route from a file holding either GPX data or an encoded polyline.

        Raises:
            FileNotFoundError: If file doesn't exist.
            PermissionError: If file can't be read.
            gpxpy.gpx.GPXException: If GPX data is malformed.
            PolylineDecodeError: If strict and the polyline is truncated
        """
        logger.debug(f"Reading route file: {filename}")
        with open(filename, "r", encoding="utf-8") as f:
            content = f.read()

        if content.lstrip().startswith("<"):
            return cls.from_gpx(content)
        return cls.from_encoded(content, strict=strict)

    def __len__(self) -> int:
        """Return number of points in route."""
        return len(self.coords)

    def __getitem__(self, index):
        """Allow indexing into points."""
        return self.coords[index]

    def __iter__(self):
        """Allow iteration over points."""
        return iter(self.coords)
