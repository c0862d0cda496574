#!/usr/bin/env python3
"""
Ridertrack - live rider-tracking geometry engine.

This package decodes route polylines, projects rider GPS fixes onto the
route, trims the path already covered, computes marker headings, and
animates the rider marker smoothly between positions.
"""
import importlib.metadata

__version__ = importlib.metadata.version("ridertrack")

# Import main classes for public API
from .geometry import (
    GeoPoint,
    haversine_meters,
    initial_bearing_degrees,
    point_to_segment_meters,
    project_onto_segment,
)
from .polyline import (
    DecodeResult,
    PolylineDecodeError,
    decode_polyline,
    decode_polyline_checked,
    encode_polyline,
)
from .route import ProjectionResult, Route, RouteProgress, find_nearest, trim_behind
from .animation import (
    AnimationHandle,
    AsyncioFrameScheduler,
    FrameScheduler,
    ManualFrameScheduler,
    animate,
)
from .config import TrackerConfig
from .tracker import RiderTracker, TrackingUpdate

__all__ = [
    "GeoPoint",
    "haversine_meters",
    "initial_bearing_degrees",
    "point_to_segment_meters",
    "project_onto_segment",
    "DecodeResult",
    "PolylineDecodeError",
    "decode_polyline",
    "decode_polyline_checked",
    "encode_polyline",
    "ProjectionResult",
    "Route",
    "RouteProgress",
    "find_nearest",
    "trim_behind",
    "AnimationHandle",
    "AsyncioFrameScheduler",
    "FrameScheduler",
    "ManualFrameScheduler",
    "animate",
    "TrackerConfig",
    "RiderTracker",
    "TrackingUpdate",
]
