"""
Marker animation driven by per-frame callbacks.

An animation moves a marker from one position to another over a fixed
duration with a cubic ease-out curve. It never blocks: each frame it asks
the host's frame scheduler for the next callback and returns. Every call to
animate() owns its own state, so several animations can run side by side.
"""

from abc import ABC, abstractmethod
from typing import Callable, Dict, Optional
import asyncio
import logging

from .geometry import GeoPoint

logger = logging.getLogger(__name__)

# Receives the frame timestamp in milliseconds
FrameCallback = Callable[[float], None]

DEFAULT_FRAME_RATE = 60.0


class FrameScheduler(ABC):
    """Interface of a host per-frame callback mechanism."""

    @abstractmethod
    def request_frame(self, callback: FrameCallback) -> int:
        """Schedule callback for the next frame and return a frame id."""
        pass

    @abstractmethod
    def cancel_frame(self, frame_id: int) -> None:
        """Unschedule a pending frame. Unknown ids are ignored."""
        pass


class ManualFrameScheduler(FrameScheduler):
    """
    Frame scheduler advanced explicitly by its owner.

    Used by hosts that already run their own render loop, and for replaying
    recorded tracks faster than real time. Callbacks requested while a frame
    is running are deferred to the following frame.
    """

    def __init__(self, start_ms: float = 0.0):
        self.now_ms = start_ms
        self._pending: Dict[int, FrameCallback] = {}
        self._next_id = 1

    @property
    def pending(self) -> int:
        """Number of callbacks waiting for the next frame."""
        return len(self._pending)

    def request_frame(self, callback: FrameCallback) -> int:
        frame_id = self._next_id
        self._next_id += 1
        self._pending[frame_id] = callback
        return frame_id

    def cancel_frame(self, frame_id: int) -> None:
        self._pending.pop(frame_id, None)

    def tick(self, now_ms: Optional[float] = None) -> int:
        """
        Run one frame.

        Args:
            now_ms: Frame timestamp; defaults to the previous frame's time

        Returns:
            Number of callbacks invoked

        Raises:
            ValueError: If now_ms is earlier than the previous frame
        """
        if now_ms is not None:
            if now_ms < self.now_ms:
                raise ValueError(f"Frame time went backwards: {now_ms} < {self.now_ms}")
            self.now_ms = now_ms

        invoked = 0
        for frame_id in list(self._pending):
            # A callback earlier in this frame may have cancelled this one
            callback = self._pending.pop(frame_id, None)
            if callback is None:
                continue
            callback(self.now_ms)
            invoked += 1
        return invoked

    def run_until(self, end_ms: float, frame_ms: float = 1000.0 / DEFAULT_FRAME_RATE) -> int:
        """
        Run frames at a fixed interval up to and including end_ms.

        Frame n runs at the current time plus n * frame_ms, so the last
        frames do not drift short of end_ms.

        Returns:
            Number of frames run
        """
        if frame_ms <= 0:
            raise ValueError("frame_ms must be positive")

        origin = self.now_ms
        frames = 0
        while self.now_ms < end_ms:
            frames += 1
            self.tick(min(origin + frames * frame_ms, end_ms))
        return frames


class AsyncioFrameScheduler(FrameScheduler):
    """
    Fixed-rate frame scheduler on an asyncio event loop.

    Stands in for native frame callbacks in hosts without a render loop.
    Callbacks run on the loop thread, one timer per requested frame.
    """

    def __init__(
        self,
        frame_rate: float = DEFAULT_FRAME_RATE,
        loop: Optional[asyncio.AbstractEventLoop] = None,
    ):
        if frame_rate <= 0:
            raise ValueError("frame_rate must be positive")
        self.interval = 1.0 / frame_rate
        # Without an explicit loop, each request uses the loop running it
        self._loop = loop
        self._handles: Dict[int, asyncio.TimerHandle] = {}
        self._next_id = 1

    def request_frame(self, callback: FrameCallback) -> int:
        loop = self._loop if self._loop is not None else asyncio.get_running_loop()
        frame_id = self._next_id
        self._next_id += 1
        self._handles[frame_id] = loop.call_later(
            self.interval, self._fire, loop, frame_id, callback
        )
        return frame_id

    def cancel_frame(self, frame_id: int) -> None:
        handle = self._handles.pop(frame_id, None)
        if handle is not None:
            handle.cancel()

    def _fire(
        self, loop: asyncio.AbstractEventLoop, frame_id: int, callback: FrameCallback
    ) -> None:
        if self._handles.pop(frame_id, None) is None:
            return
        callback(loop.time() * 1000.0)


def ease_out_cubic(t: float) -> float:
    """Cubic ease-out: fast start, decelerating to the end."""
    return 1.0 - (1.0 - t) ** 3


def interpolate(start: GeoPoint, end: GeoPoint, fraction: float) -> GeoPoint:
    """Linearly interpolate each coordinate independently."""
    return GeoPoint(
        latitude=start.latitude + (end.latitude - start.latitude) * fraction,
        longitude=start.longitude + (end.longitude - start.longitude) * fraction,
    )


class AnimationHandle:
    """
    A running marker animation.

    Calling the handle, or its cancel() method, stops the animation. Both
    are safe to call any number of times, including after completion.
    """

    def __init__(
        self,
        start: GeoPoint,
        end: GeoPoint,
        duration_ms: float,
        on_update: Callable[[GeoPoint], None],
        scheduler: FrameScheduler,
        on_complete: Optional[Callable[[], None]] = None,
    ):
        self.start = start
        self.end = end
        self.duration_ms = duration_ms
        self.progress = 0.0
        self._on_update = on_update
        self._on_complete = on_complete
        self._scheduler = scheduler
        self._start_time: Optional[float] = None
        self._frame_id: Optional[int] = None
        self._delivered = False
        self._finished = False
        self._cancelled = False

    @property
    def finished(self) -> bool:
        """True once the end position has been delivered."""
        return self._finished

    @property
    def cancelled(self) -> bool:
        return self._cancelled

    @property
    def active(self) -> bool:
        return not (self._finished or self._cancelled)

    def _schedule(self) -> None:
        self._frame_id = self._scheduler.request_frame(self._on_frame)

    def _on_frame(self, now_ms: float) -> None:
        self._frame_id = None
        if not self.active:
            return

        if self._start_time is None:
            self._start_time = now_ms
        elapsed = now_ms - self._start_time

        if self.duration_ms <= 0:
            raw_progress = 1.0
        else:
            raw_progress = min(1.0, max(0.0, elapsed / self.duration_ms))

        if self._delivered and raw_progress <= self.progress:
            # Same frame time as the last update; wait for time to move on
            self._schedule()
            return

        eased = ease_out_cubic(raw_progress)
        point = interpolate(self.start, self.end, eased)
        self.progress = raw_progress
        self._delivered = True

        if raw_progress >= 1.0 or eased >= 1.0 or point == self.end:
            # Deliver the exact end point rather than an interpolated one
            self.progress = 1.0
            self._finished = True
            self._on_update(self.end)
            logger.debug(f"Animation to {self.end} finished after {elapsed:.0f}ms")
            if self._on_complete is not None:
                self._on_complete()
            return

        self._on_update(point)

        # on_update may have cancelled us
        if self.active:
            self._schedule()

    def cancel(self) -> None:
        """Stop delivering updates. No-op once finished or cancelled."""
        if not self.active:
            return
        self._cancelled = True
        if self._frame_id is not None:
            self._scheduler.cancel_frame(self._frame_id)
            self._frame_id = None
        logger.debug(f"Animation to {self.end} cancelled at progress {self.progress:.2f}")

    def __call__(self) -> None:
        self.cancel()


def animate(
    start: GeoPoint,
    end: GeoPoint,
    duration_ms: float,
    on_update: Callable[[GeoPoint], None],
    scheduler: FrameScheduler,
    on_complete: Optional[Callable[[], None]] = None,
) -> AnimationHandle:
    """
    Animate a marker from start to end.

    The first frame delivers start and fixes the animation's start time;
    later frames deliver eased positions until the frame at or past
    duration_ms delivers end exactly. A non-positive duration delivers end
    on the first frame.

    Args:
        start: Initial marker position
        end: Final marker position
        duration_ms: Animation length in milliseconds
        on_update: Receives each interpolated position
        scheduler: Host frame scheduler
        on_complete: Called once after end has been delivered

    Returns:
        AnimationHandle used to cancel the animation
    """
    handle = AnimationHandle(start, end, duration_ms, on_update, scheduler, on_complete)
    handle._schedule()
    return handle
