"""
Moving-average smoothing of raw rider fixes.
"""

from collections import deque
from typing import Deque, NamedTuple, Optional, Tuple
import logging

from .geometry import GeoPoint, initial_bearing_degrees

logger = logging.getLogger(__name__)


class SmoothedFix(NamedTuple):
    """A fix after smoothing."""

    point: GeoPoint
    speed_kmh: float
    bearing: float  # degrees, from the previous raw fix


class FixSmoother:
    """Averages the last few fixes of one rider to damp GPS jitter."""

    def __init__(
        self,
        window: int = 5,
        min_speed_kmh: float = 10.0,
        max_speed_kmh: float = 45.0,
        default_speed_kmh: float = 20.0,
    ):
        if window < 1:
            raise ValueError("Smoothing window must hold at least one fix")
        if min_speed_kmh > max_speed_kmh:
            raise ValueError("min_speed_kmh cannot exceed max_speed_kmh")

        self.window = window
        self.min_speed_kmh = min_speed_kmh
        self.max_speed_kmh = max_speed_kmh
        self.default_speed_kmh = default_speed_kmh
        self._history: Deque[Tuple[GeoPoint, Optional[float]]] = deque(maxlen=window)

    def __len__(self) -> int:
        return len(self._history)

    def reset(self) -> None:
        """Forget all previous fixes."""
        self._history.clear()

    def add(self, fix: GeoPoint, speed_kmh: Optional[float] = None) -> SmoothedFix:
        """
        Add a raw fix and return the smoothed estimate.

        Args:
            fix: Raw rider fix
            speed_kmh: Reported speed, if the device supplied one

        Returns:
            SmoothedFix with the averaged position, the average reported speed
            clamped to the configured range (or the default speed when no
            positive speed was reported), and the bearing of the latest move
        """
        self._history.append((fix, speed_kmh))

        speeds = [s for _, s in self._history if s is not None and s > 0]
        if speeds:
            speed = sum(speeds) / len(speeds)
            speed = max(self.min_speed_kmh, min(self.max_speed_kmh, speed))
        else:
            speed = self.default_speed_kmh

        if len(self._history) < 2:
            return SmoothedFix(point=fix, speed_kmh=speed, bearing=0.0)

        count = len(self._history)
        avg_lat = sum(p.latitude for p, _ in self._history) / count
        avg_lng = sum(p.longitude for p, _ in self._history) / count

        previous = self._history[-2][0]
        bearing = initial_bearing_degrees(previous, fix)

        return SmoothedFix(
            point=GeoPoint(latitude=avg_lat, longitude=avg_lng),
            speed_kmh=speed,
            bearing=bearing,
        )
