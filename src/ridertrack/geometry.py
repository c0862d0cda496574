"""
Geographic primitives and distance/bearing calculations for rider tracking.

This module provides the GeoPoint value type together with the distance
kernel used by everything above it: great-circle (haversine) distance,
point-to-segment projection and distance, cumulative route distances,
initial bearing and marker rotation smoothing.

Segment projection is computed with a planar parametric approximation in
latitude/longitude space, and the distance from the rider to the projected
point is then measured on the sphere. The approximation holds at city-block
scale; for highway-scale segments the projected point drifts away from the
true geodesic foot point.
"""

from typing import List, NamedTuple, Optional, Sequence
import logging
import math

from shapely.geometry import LineString

logger = logging.getLogger(__name__)

# Mean Earth radius in meters
EARTH_RADIUS_M = 6371000.0


class GeoPoint(NamedTuple):
    """Represents a geographic position with latitude and longitude in degrees."""

    latitude: float
    longitude: float

    def is_valid(self) -> bool:
        """Check that both coordinates are finite and within range."""
        return (
            math.isfinite(self.latitude)
            and math.isfinite(self.longitude)
            and -90.0 <= self.latitude <= 90.0
            and -180.0 <= self.longitude <= 180.0
        )


def haversine_meters(a: GeoPoint, b: GeoPoint) -> float:
    """
    Calculate the great-circle distance between two points.

    Args:
        a: First point
        b: Second point

    Returns:
        Distance in meters
    """
    lat1, lon1 = math.radians(a.latitude), math.radians(a.longitude)
    lat2, lon2 = math.radians(b.latitude), math.radians(b.longitude)

    dlat = lat2 - lat1
    dlon = lon2 - lon1

    h = (
        math.sin(dlat / 2) ** 2
        + math.cos(lat1) * math.cos(lat2) * math.sin(dlon / 2) ** 2
    )
    # Rounding can push h marginally outside [0, 1] for antipodal points
    h = min(1.0, max(0.0, h))

    return 2 * EARTH_RADIUS_M * math.asin(math.sqrt(h))


def project_onto_segment(p: GeoPoint, seg_start: GeoPoint, seg_end: GeoPoint) -> GeoPoint:
    """
    Find the point on a segment closest to p in planar lat/lng space.

    Args:
        p: Point to project
        seg_start: Start of the segment
        seg_end: End of the segment

    Returns:
        The projected point. Projections falling before the start or past
        the end are clamped to the respective endpoint, which is returned as is.
    """
    dlat = seg_end.latitude - seg_start.latitude
    dlng = seg_end.longitude - seg_start.longitude
    length_sq = dlat * dlat + dlng * dlng

    # Degenerate segment collapses to a point
    if length_sq == 0.0:
        return seg_start

    t = (
        (p.latitude - seg_start.latitude) * dlat
        + (p.longitude - seg_start.longitude) * dlng
    ) / length_sq

    if t <= 0.0:
        return seg_start
    if t >= 1.0:
        return seg_end

    return GeoPoint(
        latitude=seg_start.latitude + t * dlat,
        longitude=seg_start.longitude + t * dlng,
    )


def point_to_segment_meters(p: GeoPoint, seg_start: GeoPoint, seg_end: GeoPoint) -> float:
    """
    Calculate the distance from a point to a segment.

    The closest point is located with project_onto_segment() and the
    distance to it is measured with the haversine formula.

    Returns:
        Distance in meters
    """
    return haversine_meters(p, project_onto_segment(p, seg_start, seg_end))


def cumulative_distances(points: Sequence[GeoPoint]) -> List[float]:
    """
    Calculate cumulative distances along a sequence of points.

    Args:
        points: Ordered points

    Returns:
        List of cumulative distances in meters, with same length as points
    """
    if not points:
        return []

    distances = [0.0]
    for i in range(1, len(points)):
        distances.append(distances[-1] + haversine_meters(points[i - 1], points[i]))

    return distances


def initial_bearing_degrees(from_point: GeoPoint, to_point: GeoPoint) -> float:
    """
    Calculate the initial compass bearing from one point toward another.

    Bearing between coincident points is undefined; 0.0 is returned for them.

    Args:
        from_point: Starting point
        to_point: Destination point

    Returns:
        Bearing in degrees in [0, 360), 0 = north, clockwise
    """
    if from_point == to_point:
        return 0.0

    lat1 = math.radians(from_point.latitude)
    lat2 = math.radians(to_point.latitude)
    dlon = math.radians(to_point.longitude - from_point.longitude)

    y = math.sin(dlon) * math.cos(lat2)
    x = math.cos(lat1) * math.sin(lat2) - math.sin(lat1) * math.cos(lat2) * math.cos(
        dlon
    )

    bearing = math.degrees(math.atan2(y, x)) % 360.0
    # A tiny negative angle wraps to exactly 360.0 in floating point
    if bearing >= 360.0:
        bearing = 0.0
    return bearing


def smooth_bearing(current: float, target: float, factor: float = 0.3) -> float:
    """
    Rotate a bearing part of the way toward a target along the shorter arc.

    Args:
        current: Current bearing in degrees
        target: Target bearing in degrees
        factor: Fraction of the angular difference to apply (0 to 1)

    Returns:
        Smoothed bearing in degrees in [0, 360)
    """
    diff = target - current
    if diff > 180.0:
        diff -= 360.0
    elif diff < -180.0:
        diff += 360.0

    smoothed = (current + diff * factor) % 360.0
    if smoothed >= 360.0:
        smoothed = 0.0
    return smoothed


def coords_to_linestring(points: Sequence[GeoPoint]) -> Optional[LineString]:
    """
    Convert points to a Shapely LineString in (longitude, latitude) order.

    Args:
        points: Ordered points

    Returns:
        LineString object, or None if there are fewer than 2 points
    """
    if len(points) < 2:
        return None

    return LineString([(pt.longitude, pt.latitude) for pt in points])
