#!/usr/bin/env python3
"""
Live tracking session for a single rider.

RiderTracker turns periodic rider fixes into marker movement along a route:
each fix is smoothed, projected onto the route, kept from moving backwards,
and the marker is animated from where it currently is to the projected
point. The marker only ever shows positions on the route, never raw GPS.
"""

from typing import Callable, List, NamedTuple, Optional, Sequence, Union
import logging

from .animation import AnimationHandle, FrameScheduler, animate
from .config import TrackerConfig
from .geometry import GeoPoint, initial_bearing_degrees, smooth_bearing
from .route import ProjectionResult, Route, RouteProgress
from .smoothing import FixSmoother

logger = logging.getLogger(__name__)


class TrackingUpdate(NamedTuple):
    """Result of processing one rider fix."""

    fix: GeoPoint  # Position used for projection (after smoothing)
    projection: ProjectionResult
    remaining_path: List[GeoPoint]
    heading: float
    progress: RouteProgress
    on_route: bool
    held: bool  # True if the fix would have moved the marker backwards


class RiderTracker:
    """Tracks one rider along one route."""

    def __init__(
        self,
        route: Union[Route, Sequence[GeoPoint]],
        scheduler: FrameScheduler,
        on_marker: Callable[[GeoPoint], None],
        config: Optional[TrackerConfig] = None,
    ):
        """Initializes a RiderTracker.

        Args:
            route: Route to track along
            scheduler: Host frame scheduler driving marker animations
            on_marker: Receives every marker position to render
            config: Tracking settings; defaults to TrackerConfig()
        """
        self.config = config or TrackerConfig()
        self.route = route if isinstance(route, Route) else Route(list(route))
        self.scheduler = scheduler
        self._on_marker = on_marker

        self._smoother: Optional[FixSmoother] = None
        if self.config.smoothing_window > 1:
            self._smoother = FixSmoother(
                window=self.config.smoothing_window,
                min_speed_kmh=self.config.min_speed_kmh,
                max_speed_kmh=self.config.max_speed_kmh,
                default_speed_kmh=self.config.default_speed_kmh,
            )

        self._marker: Optional[GeoPoint] = None
        self._target: Optional[GeoPoint] = None
        self._heading: Optional[float] = None
        self._animation: Optional[AnimationHandle] = None
        self._speed_kmh = self.config.default_speed_kmh
        self._last_projection: Optional[ProjectionResult] = None
        self._last_progress: Optional[RouteProgress] = None
        self._last_update: Optional[TrackingUpdate] = None

    @property
    def marker_position(self) -> Optional[GeoPoint]:
        """Last position delivered to on_marker."""
        return self._marker

    @property
    def heading(self) -> float:
        """Marker heading in degrees; 0 until the marker has moved."""
        return self._heading if self._heading is not None else 0.0

    @property
    def last_update(self) -> Optional[TrackingUpdate]:
        return self._last_update

    @property
    def animating(self) -> bool:
        return self._animation is not None and self._animation.active

    def _deliver(self, point: GeoPoint) -> None:
        self._marker = point
        self._on_marker(point)

    def _turn_towards(self, target: GeoPoint) -> None:
        if self._target is None or self._target == target:
            return
        bearing = initial_bearing_degrees(self._target, target)
        if self._heading is None:
            self._heading = bearing
        else:
            self._heading = smooth_bearing(
                self._heading, bearing, self.config.rotation_smoothing
            )

    def _move_marker(self, target: GeoPoint, duration_ms: float) -> None:
        self._turn_towards(target)
        self._target = target

        if self._animation is not None:
            self._animation.cancel()
            self._animation = None

        if self._marker is None:
            # First position is placed directly
            self._deliver(target)
            return

        self._animation = animate(
            self._marker, target, duration_ms, self._deliver, self.scheduler
        )

    def _resolve_speed(self, speed_kmh: Optional[float]) -> float:
        if speed_kmh is None or speed_kmh <= 0:
            return self.config.default_speed_kmh
        return max(self.config.min_speed_kmh, min(self.config.max_speed_kmh, speed_kmh))

    def on_fix(
        self, fix: GeoPoint, speed_kmh: Optional[float] = None
    ) -> Optional[TrackingUpdate]:
        """
        Process a rider fix.

        Args:
            fix: Raw rider position
            speed_kmh: Reported speed, if available

        Returns:
            TrackingUpdate, or None if the fix was rejected as invalid
        """
        if not fix.is_valid():
            logger.warning(f"Ignoring invalid rider fix: {fix}")
            return None

        if self._smoother is not None:
            smoothed = self._smoother.add(fix, speed_kmh)
            point = smoothed.point
            self._speed_kmh = smoothed.speed_kmh
        else:
            point = fix
            self._speed_kmh = self._resolve_speed(speed_kmh)

        projection = self.route.find_nearest(point)
        progress = self.route.progress(projection)

        if not projection.has_route:
            logger.warning(
                f"Route has {len(self.route)} points; marker not moved for fix {point}"
            )
            update = TrackingUpdate(
                fix=point,
                projection=projection,
                remaining_path=self.route.trim_behind(projection),
                heading=self.heading,
                progress=progress,
                on_route=False,
                held=False,
            )
            self._last_update = update
            return update

        held = False
        if (
            not self.config.allow_backtrack
            and self._last_projection is not None
            and self._last_progress is not None
            and progress.fraction < self._last_progress.fraction
        ):
            logger.debug(
                f"Holding progress at {self._last_progress.fraction:.4f} "
                f"(fix projects to {progress.fraction:.4f})"
            )
            projection = self._last_projection
            progress = self._last_progress
            held = True

        if not (held and projection.nearest_point == self._target):
            # A held fix leaves a running animation towards the same point alone
            self._move_marker(projection.nearest_point, self.config.animation_duration_ms)
        self._last_projection = projection
        self._last_progress = progress

        update = TrackingUpdate(
            fix=point,
            projection=projection,
            remaining_path=self.route.trim_behind(projection),
            heading=self.heading,
            progress=progress,
            on_route=True,
            held=held,
        )
        self._last_update = update

        logger.debug(
            f"Fix {point} -> segment {projection.segment_index}, "
            f"{projection.distance_meters:.1f}m off route, "
            f"progress {progress.fraction:.3f}, heading {self.heading:.1f}"
        )
        return update

    def on_fix_lost(self, elapsed_s: float) -> Optional[GeoPoint]:
        """
        Estimate the rider's position while no fixes arrive.

        The rider is assumed to keep moving along the route at the last known
        speed. The estimate is measured from the last accepted projection,
        so elapsed_s is the time since that fix.

        Args:
            elapsed_s: Seconds since the last accepted fix

        Returns:
            Estimated position, or None if no fix has been projected yet
        """
        if self._last_projection is None:
            return None

        meters = self._speed_kmh / 3.6 * max(0.0, elapsed_s)
        estimate = self.route.advance_along(self._last_projection, meters)
        logger.debug(
            f"GPS lost for {elapsed_s:.1f}s; estimating {meters:.0f}m ahead at {estimate}"
        )
        self._move_marker(estimate, self.config.gps_loss_animation_ms)
        return estimate

    def update_route(self, route: Union[Route, Sequence[GeoPoint]]) -> None:
        """Switch to a new route; progress starts over."""
        self.route = route if isinstance(route, Route) else Route(list(route))
        self._last_projection = None
        self._last_progress = None
        logger.debug(f"Route replaced with {len(self.route)} points")

    def close(self) -> None:
        """Stop any running animation."""
        if self._animation is not None:
            self._animation.cancel()
            self._animation = None
