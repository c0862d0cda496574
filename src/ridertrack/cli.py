#!/usr/bin/env python3
"""
Rider tracking replay tool.
This script feeds a recorded GPX track of rider fixes through the tracking
engine against a route polyline, prints the projected progress for each fix,
and generates an interactive HTML map of the replay.

Requirements:
    pip install gpxpy folium shapely

"""

from typing import List, NamedTuple, Optional, Sequence, TextIO, Tuple
import webbrowser
import argparse
import logging
import sys
import os
import gpxpy
from gpxpy import gpx

from . import __version__
from . import visualization
from .animation import ManualFrameScheduler
from .config import TrackerConfig
from .file_utils import generate_output_filename
from .geometry import GeoPoint
from .metrics import collect_metrics, log_metrics
from .polyline import PolylineDecodeError, encode_polyline
from .route import Route
from .tracker import RiderTracker, TrackingUpdate

# Configure logging
logger = logging.getLogger("ridertrack")


class RecordedFix(NamedTuple):
    """A rider fix read from a recorded track."""

    point: GeoPoint
    time_s: Optional[float]  # seconds since epoch, if recorded
    speed_kmh: Optional[float]


def create_argument_parser() -> argparse.ArgumentParser:
    """
    Create and configure the command-line argument parser.

    Returns:
        Configured ArgumentParser instance
    """
    parser = argparse.ArgumentParser(
        description="Replay recorded rider fixes along a route polyline",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument(
        "route",
        type=str,
        nargs="?",
        help="File holding an encoded route polyline or a GPX route",
    )
    parser.add_argument(
        "track",
        type=str,
        nargs="?",
        help="GPX file with the rider's recorded fixes",
    )
    parser.add_argument(
        "--polyline",
        action="store_true",
        help="Treat ROUTE as an encoded polyline string instead of a filename",
    )
    parser.add_argument(
        "--output",
        type=str,
        default=None,
        help="Output HTML map file (default: auto-generated based on track filename)",
    )
    parser.add_argument(
        "--animation-duration",
        type=float,
        default=1200.0,
        help="Marker animation duration in milliseconds (default: 1200)",
    )
    parser.add_argument(
        "--frame-rate",
        type=float,
        default=60.0,
        help="Simulated frame rate in frames per second (default: 60)",
    )
    parser.add_argument(
        "--interval",
        type=float,
        default=3.0,
        help="Seconds between fixes when the track has no timestamps (default: 3)",
    )
    parser.add_argument(
        "--allow-backtrack",
        action="store_true",
        help="Let the marker move backwards along the route",
    )
    parser.add_argument(
        "--no-smoothing",
        action="store_true",
        help="Project raw fixes without moving-average smoothing",
    )
    parser.add_argument(
        "--strict-decode",
        action="store_true",
        help="Fail on truncated route polylines instead of decoding best effort",
    )
    parser.add_argument(
        "--log-level",
        type=str,
        default="WARNING",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        help="Set logging level (default: WARNING)",
    )
    parser.add_argument(
        "--no-open",
        action="store_true",
        help="Don't automatically open the HTML file in browser",
    )
    parser.add_argument(
        "--metrics",
        action="store_true",
        help="Output structured metrics after processing",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"ridertrack {__version__}",
    )
    return parser


def config_from_args(args: argparse.Namespace) -> TrackerConfig:
    """Build a TrackerConfig from parsed command-line arguments."""
    return TrackerConfig(
        animation_duration_ms=args.animation_duration,
        frame_rate=args.frame_rate,
        allow_backtrack=args.allow_backtrack,
        smoothing_window=1 if args.no_smoothing else TrackerConfig.smoothing_window,
        strict_decode=args.strict_decode,
        log_level=args.log_level,
        metrics=args.metrics,
    )


def determine_output_filename(input_filename: str, output_arg: Optional[str]) -> str:
    """
    Determine the output filename to use.

    Raises:
        RuntimeError: If auto-generation fails
        ValueError: If constructed filename would be illegal
    """
    if output_arg is not None:
        return output_arg

    try:
        return generate_output_filename(input_filename)
    except (RuntimeError, ValueError) as e:
        logger.error(f"Failed to generate output filename: {e}")
        raise


def open_file_in_browser(filename: str) -> None:
    """
    Open the specified file in the default browser.

    Args:
        filename: Path to the file to open
    """
    abs_path = os.path.abspath(filename)
    try:
        webbrowser.open(f"file://{abs_path}")
        logger.debug(f"Opening {abs_path} in your default browser...")
    except Exception as e:
        logger.warning(f"Could not automatically open browser: {e}")
        logger.warning(f"Please manually open {abs_path}")


def setup_logging(log_level: str) -> None:
    """Setup logging configuration."""
    level = getattr(logging, log_level)

    formatter = logging.Formatter(
        "%(asctime)s - %(name)s - %(levelname)s - %(message)s", datefmt="%H:%M:%S"
    )

    console_handler = logging.StreamHandler()
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)

    # Configure the root logger so all modules inherit the configuration
    root_logger = logging.getLogger()
    root_logger.setLevel(level)
    root_logger.addHandler(console_handler)


def read_fixes(file_input: TextIO) -> List[RecordedFix]:
    """
    Parse GPX data and collect every track point as a rider fix.

    Raises:
        gpxpy.gpx.GPXException: If GPX data is malformed.
    """
    gpx_data = gpxpy.parse(file_input)

    fixes = []
    for track in gpx_data.tracks:
        for segment in track.segments:
            for point in segment.points:
                time_s = point.time.timestamp() if point.time is not None else None
                # GPX speeds are in meters per second
                speed_kmh = point.speed * 3.6 if point.speed is not None else None
                fixes.append(
                    RecordedFix(
                        point=GeoPoint(point.latitude, point.longitude),
                        time_s=time_s,
                        speed_kmh=speed_kmh,
                    )
                )

    logger.debug(f"Parsed {len(fixes)} rider fixes from GPX data")
    return fixes


def replay(
    route: Route,
    fixes: Sequence[RecordedFix],
    config: TrackerConfig,
    interval_s: float = 3.0,
) -> Tuple[List[Optional[TrackingUpdate]], List[GeoPoint]]:
    """
    Feed recorded fixes through a RiderTracker on a simulated frame clock.

    Frames run at config.frame_rate between fixes, so marker animations play
    out (or get interrupted) as they would on screen. Fixes are spaced by
    their recorded timestamps, or by interval_s when any is missing.

    Returns:
        Tuple of (updates, marker_trail): one update per fix (None for
        rejected fixes) and every marker position delivered
    """
    scheduler = ManualFrameScheduler()
    marker_trail: List[GeoPoint] = []
    tracker = RiderTracker(route, scheduler, marker_trail.append, config)
    frame_ms = 1000.0 / config.frame_rate

    timed = bool(fixes) and all(f.time_s is not None for f in fixes)
    t0 = fixes[0].time_s if timed else 0.0

    updates: List[Optional[TrackingUpdate]] = []
    for i, fix in enumerate(fixes):
        if timed:
            fix_ms = (fix.time_s - t0) * 1000.0  # type: ignore[operator]
        else:
            fix_ms = i * interval_s * 1000.0
        scheduler.run_until(fix_ms, frame_ms)
        updates.append(tracker.on_fix(fix.point, fix.speed_kmh))

    # Let the last animation finish
    scheduler.run_until(
        scheduler.now_ms + config.animation_duration_ms + 2 * frame_ms, frame_ms
    )
    tracker.close()

    return updates, marker_trail


def print_updates(fixes: Sequence[RecordedFix], updates: Sequence[Optional[TrackingUpdate]]) -> None:
    """
    Print one line per fix with its projection onto the route.

    Args:
        fixes: Recorded fixes in replay order
        updates: Tracker updates, one per fix
    """
    if not updates:
        print("No rider fixes found")
        return

    print(f"Replayed {len(updates)} fixes:")
    index_width = len(str(len(updates)))
    for i, update in enumerate(updates):
        prefix = f"{i + 1:>{index_width}}"
        if update is None:
            print(f"{prefix} - rejected fix {fixes[i].point}")
            continue
        if not update.on_route:
            print(f"{prefix} - no route to project onto")
            continue
        annotation = "-" if update.held else "*"
        print(
            f"{prefix} {annotation} {update.progress.distance_covered / 1000:7.2f} km "
            f"({update.progress.fraction * 100:5.1f}%) "
            f"{update.projection.distance_meters:7.1f} m off route, "
            f"heading {update.heading:5.1f}"
        )

    last = next((u for u in reversed(updates) if u is not None and u.on_route), None)
    if last is not None:
        print(f"Remaining path: {encode_polyline(last.remaining_path)}")


def load_route(args: argparse.Namespace, config: TrackerConfig) -> Route:
    """
    Load the route named on the command line.

    Raises:
        SystemExit: If the route cannot be read or decoded
    """
    try:
        if args.polyline:
            return Route.from_encoded(args.route, strict=config.strict_decode)
        return Route.from_file(args.route, strict=config.strict_decode)
    except FileNotFoundError:
        logger.error(f"Route file not found: {args.route}")
    except PermissionError:
        logger.error(f"Cannot read route file (permission denied): {args.route}")
    except PolylineDecodeError as e:
        logger.error(f"Invalid route polyline: {e}")
    except gpx.GPXException as e:
        logger.error(f"Invalid GPX route: {e}")
    sys.exit(1)


def load_fixes(filename: str) -> List[RecordedFix]:
    """
    Load recorded rider fixes from a GPX file.

    Raises:
        SystemExit: If the file cannot be read or parsed
    """
    try:
        logger.debug(f"Reading GPX track: {filename}")
        with open(filename, "r", encoding="utf-8") as f:
            return read_fixes(f)
    except FileNotFoundError:
        logger.error(f"GPX file not found: {filename}")
    except PermissionError:
        logger.error(f"Cannot read GPX file (permission denied): {filename}")
    except gpx.GPXException as e:
        logger.error(f"Invalid GPX file: {e}")
    sys.exit(1)


def main():
    """
    Parses command-line arguments, replays the rider track along the route,
    and generates an interactive map.
    """
    parser = create_argument_parser()
    args = parser.parse_args()

    if not args.route or not args.track:
        parser.print_help()
        sys.exit(1)

    if args.frame_rate <= 0:
        parser.error("--frame-rate must be positive")
    if args.interval <= 0:
        parser.error("--interval must be positive")

    setup_logging(args.log_level)
    config = config_from_args(args)

    try:
        output_filename = determine_output_filename(args.track, args.output)
        logger.debug(f"Output filename: {output_filename}")
    except (RuntimeError, ValueError):
        sys.exit(1)

    route = load_route(args, config)
    logger.info(f"Loaded route with {len(route)} points")
    logger.info(f"Total route distance: {route.total_distance / 1000:.2f} km")

    if len(route) == 0:
        logger.error("Route has no points")
        sys.exit(1)

    fixes = load_fixes(args.track)
    logger.info(f"Loaded {len(fixes)} rider fixes")

    updates, marker_trail = replay(route, fixes, config, args.interval)

    print_updates(fixes, updates)

    metrics = collect_metrics(updates)

    try:
        visualization.create_tracking_map(
            route,
            output_filename,
            [f.point for f in fixes],
            updates,
            metrics,
            marker_trail,
        )
    except Exception as e:
        logger.error(f"Failed to create map: {e}")
        sys.exit(1)

    log_metrics(metrics, config)

    if not args.no_open:
        open_file_in_browser(output_filename)


if __name__ == "__main__":
    main()
