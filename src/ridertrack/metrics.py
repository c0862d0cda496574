"""
Module for collecting and logging metrics about a tracking replay.
"""

import logging
from typing import NamedTuple, Optional, Sequence

from .config import TrackerConfig
from .tracker import TrackingUpdate

logger = logging.getLogger(__name__)


class ReplayMetrics(NamedTuple):
    """Container for replay metrics data."""

    total_fixes: int
    projected_fixes: int
    held_fixes: int
    rejected_fixes: int
    off_route_fixes: int
    max_deviation_m: float
    mean_deviation_m: float
    final_progress: float


def collect_metrics(updates: Sequence[Optional[TrackingUpdate]]) -> ReplayMetrics:
    """
    Collect metrics from the updates produced during a replay.

    Args:
        updates: One entry per fix fed to the tracker; None for rejected fixes

    Returns:
        ReplayMetrics summarizing the replay
    """
    rejected = 0
    off_route = 0
    held = 0
    deviations = []
    final_progress = 0.0

    for update in updates:
        if update is None:
            rejected += 1
            continue
        if not update.on_route:
            off_route += 1
            continue
        if update.held:
            held += 1
        deviations.append(update.projection.distance_meters)
        final_progress = update.progress.fraction

    return ReplayMetrics(
        total_fixes=len(updates),
        projected_fixes=len(deviations),
        held_fixes=held,
        rejected_fixes=rejected,
        off_route_fixes=off_route,
        max_deviation_m=max(deviations) if deviations else 0.0,
        mean_deviation_m=sum(deviations) / len(deviations) if deviations else 0.0,
        final_progress=final_progress,
    )


def log_metrics(metrics: ReplayMetrics, config: TrackerConfig) -> None:
    """
    Log detailed metrics after a replay.

    Args:
        metrics: ReplayMetrics containing collected metrics
        config: TrackerConfig containing the metrics flag
    """
    if not config.metrics:
        return

    logger.debug("=== RIDERTRACK_METRICS ===")
    logger.debug(f"total_fixes={metrics.total_fixes}")
    logger.debug(f"projected_fixes={metrics.projected_fixes}")
    logger.debug(f"held_fixes={metrics.held_fixes}")
    logger.debug(f"rejected_fixes={metrics.rejected_fixes}")
    logger.debug(f"off_route_fixes={metrics.off_route_fixes}")
    logger.debug(f"max_deviation_m={metrics.max_deviation_m:.2f}")
    logger.debug(f"mean_deviation_m={metrics.mean_deviation_m:.2f}")
    logger.debug(f"final_progress={metrics.final_progress:.4f}")
    logger.debug("=== END_RIDERTRACK_METRICS ===")
