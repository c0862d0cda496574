from dataclasses import dataclass


@dataclass
class TrackerConfig:
    """Configuration for rider tracking and the replay CLI."""

    animation_duration_ms: float = 1200.0
    gps_loss_animation_ms: float = 2000.0
    rotation_smoothing: float = 0.4
    smoothing_window: int = 5
    min_speed_kmh: float = 10.0
    max_speed_kmh: float = 45.0
    default_speed_kmh: float = 20.0
    frame_rate: float = 60.0
    allow_backtrack: bool = False
    strict_decode: bool = False
    log_level: str = "INFO"
    metrics: bool = False
