#!/usr/bin/env python3
"""
Replay visualization using folium maps.
"""

from typing import List, Optional, Sequence
import logging
import folium
from folium.template import Template

from .geometry import GeoPoint
from .metrics import ReplayMetrics
from .route import Route
from .tracker import TrackingUpdate

logger = logging.getLogger(__name__)


class TrackingLegend(folium.MacroElement):
    """Custom legend for replay visualization with dynamic counts."""

    def __init__(self, metrics: ReplayMetrics):
        super().__init__()
        self.projected_count = metrics.projected_fixes
        self.held_count = metrics.held_fixes
        self.rejected_count = metrics.rejected_fixes
        self.final_percent = f"{metrics.final_progress * 100:.1f}"

        self._template = Template(
            """
        {% macro html(this, kwargs) %}
        <div id="tracking-legend" style="
            position: fixed;
            bottom: 50px;
            left: 50px;
            width: 230px;
            background-color: white;
            border: 2px solid grey;
            z-index: 9999;
            font-size: 13px;
            padding: 12px;
            font-family: Arial, sans-serif;
            border-radius: 5px;
            box-shadow: 0 2px 5px rgba(0,0,0,0.2);
            box-sizing: border-box;
        ">
            <b>Legend</b><br>
            <div style="margin: 4px 0; line-height: 1.3;">
                <span style="color: #9E9E9E; font-size: 18px;">&#9644;</span>
                Full Route
            </div>
            <div style="margin: 4px 0; line-height: 1.3;">
                <span style="color: #2E86AB; font-weight: bold; font-size: 18px;">&#9644;</span>
                Remaining Route ({{ this.final_percent }}% covered)
            </div>
            <div style="margin: 4px 0; line-height: 1.3;">
                <span style="color: #D23C4C; font-size: 18px;">&#9679;</span>
                Rider Fixes ({{ this.rejected_count }} rejected)
            </div>
            <div style="margin: 4px 0; line-height: 1.3;">
                <span style="color: #69498F; font-size: 18px;">&#9679;</span>
                Projected Positions ({{ this.projected_count }}, {{ this.held_count }} held)
            </div>
        </div>
        {% endmacro %}
        """
        )


def _to_latlng(points: Sequence[GeoPoint]) -> List[List[float]]:
    return [[pt.latitude, pt.longitude] for pt in points]


def create_tracking_map(
    route: Route,
    output_filename: str,
    fixes: Sequence[GeoPoint],
    updates: Sequence[Optional[TrackingUpdate]],
    metrics: ReplayMetrics,
    marker_trail: Optional[Sequence[GeoPoint]] = None,
) -> None:
    """
    Create an interactive map of a tracking replay, save as HTML.

    Args:
        route: Route the rider was tracked along
        output_filename: Path where HTML map file should be saved
        fixes: Raw rider fixes in replay order
        updates: Tracker updates, one per fix (None for rejected fixes)
        metrics: ReplayMetrics for the legend
        marker_trail: Animated marker positions, if recorded

    Raises:
        ValueError: If route is empty
    """
    if not route:
        raise ValueError("Cannot create map for empty route")

    south, west, north, east = route.get_bbox()
    center_lat = (south + north) / 2
    center_lon = (west + east) / 2

    logger.debug(f"Creating map centered at ({center_lat:.4f}, {center_lon:.4f})")

    tracking_map = folium.Map(
        location=[center_lat, center_lon],
        tiles=None,
    )

    folium.TileLayer(
        tiles="CartoDB positron",
        attr=(
            "&copy; <a href='https://www.openstreetmap.org/copyright'>OpenStreetMap</a> "
            "contributors &copy; <a href='https://carto.com/attributions'>CARTO</a>"
        ),
        name="Standard",
        control=True,
        show=True,
    ).add_to(tracking_map)

    folium.TileLayer(
        tiles="https://server.arcgisonline.com/ArcGIS/rest/services/World_Imagery/MapServer/tile/{z}/{y}/{x}",
        attr=(
            "Tiles &copy; Esri &mdash; Source: Esri, i-cubed, USDA, USGS, AEX, GeoEye, "
            "Getmapping, Aerogrid, IGN, IGP, UPR-EGP, and the GIS User Community"
        ),
        name="Satellite",
        control=True,
        show=False,
    ).add_to(tracking_map)

    folium.LayerControl().add_to(tracking_map)

    folium.PolyLine(
        _to_latlng(route.coords),
        color="#9E9E9E",
        weight=3,
        opacity=0.6,
        popup=f"Route ({route.total_distance / 1000:.2f} km)",
        z_index=1,
    ).add_to(tracking_map)

    last_update = next((u for u in reversed(updates) if u is not None and u.on_route), None)
    if last_update is not None:
        folium.PolyLine(
            _to_latlng(last_update.remaining_path),
            color="#2E86AB",
            weight=4,
            opacity=0.9,
            popup=(
                f"Remaining {last_update.progress.remaining_distance / 1000:.2f} km"
            ),
            z_index=2,
        ).add_to(tracking_map)

    if marker_trail:
        folium.PolyLine(
            _to_latlng(marker_trail),
            color="#69498F",
            weight=1,
            opacity=0.5,
            dash_array="4",
            z_index=3,
        ).add_to(tracking_map)

    for i, (fix, update) in enumerate(zip(fixes, updates)):
        if update is None:
            popup = f"Fix {i + 1}: rejected"
        else:
            popup = (
                f"Fix {i + 1}: {update.projection.distance_meters:.1f} m off route, "
                f"progress {update.progress.fraction * 100:.1f}%"
            )
            if update.held:
                popup += " (held)"
        folium.CircleMarker(
            [fix.latitude, fix.longitude],
            radius=3,
            color="#D23C4C",
            fill=True,
            popup=popup,
        ).add_to(tracking_map)

        if update is not None and update.on_route:
            nearest = update.projection.nearest_point
            folium.CircleMarker(
                [nearest.latitude, nearest.longitude],
                radius=3,
                color="#69498F",
                fill=True,
                popup=f"Segment {update.projection.segment_index}, heading {update.heading:.0f}°",
            ).add_to(tracking_map)

    folium.Marker(
        [route[0].latitude, route[0].longitude],
        popup="Start",
        icon=folium.Icon(color="green", icon="play"),
    ).add_to(tracking_map)

    folium.Marker(
        [route[-1].latitude, route[-1].longitude],
        popup="Destination",
        icon=folium.Icon(color="red", icon="stop"),
    ).add_to(tracking_map)

    tracking_map.add_child(TrackingLegend(metrics))

    tracking_map.fit_bounds([[south, west], [north, east]])
    tracking_map.save(output_filename)

    logger.debug(
        f"Map saved to {output_filename} with {metrics.projected_fixes}/{metrics.total_fixes} projected fixes"
    )
