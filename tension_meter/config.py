"""
Analyzer configuration.

All tunable parameters of a measurement session live in one immutable
``AnalyzerConfig``. Callers override individual values with
``with_overrides`` or load them from a JSON file with ``load_config``.
"""

import json
import logging
from dataclasses import asdict, dataclass, fields, replace
from pathlib import Path
from typing import Any

from .constants import (
    ANALYSIS_WINDOW_SIZE,
    CAPTURE_BUFFER_SIZE,
    DETECTION_INTERVAL,
    FFT_SIZE,
    LOCK_COUNT,
    LOCK_TOLERANCE,
    MAX_FREQUENCY,
    MAX_TENSION_LBS,
    MIN_FREQUENCY,
    MIN_SIGNAL_RMS,
    MIN_TENSION_LBS,
    SCAN_STRIDE,
)

logger = logging.getLogger(__name__)

# Default settings values
DEFAULTS = {
    "fft_size": FFT_SIZE,
    "analysis_window_size": ANALYSIS_WINDOW_SIZE,
    "scan_stride": SCAN_STRIDE,
    "capture_buffer_size": CAPTURE_BUFFER_SIZE,
    "min_frequency": MIN_FREQUENCY,
    "max_frequency": MAX_FREQUENCY,
    "min_signal_rms": MIN_SIGNAL_RMS,
    "lock_count": LOCK_COUNT,
    "lock_tolerance": LOCK_TOLERANCE,
    "detection_interval": DETECTION_INTERVAL,
    "min_tension_lbs": MIN_TENSION_LBS,
    "max_tension_lbs": MAX_TENSION_LBS,
    "input_device": None,  # None = default device
    "sample_rate": None,  # None = device default
}


def _is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


@dataclass(frozen=True)
class AnalyzerConfig:
    """
    Configuration for a measurement session.

    Attributes:
        fft_size: Transform size, a power of two
        analysis_window_size: Samples selected from the capture buffer per tick
        scan_stride: Step between candidate windows when searching for signal
        capture_buffer_size: Capacity of the rolling capture buffer
        min_frequency: Lower edge of the fundamental search band (Hz)
        max_frequency: Upper edge of the fundamental search band (Hz)
        min_signal_rms: RMS below which a tick is treated as silence
        lock_count: Consistent readings required to lock
        lock_tolerance: Relative deviation allowed between readings
        detection_interval: Seconds between detection ticks
        min_tension_lbs: Lowest plausible tension for the default validator
        max_tension_lbs: Highest plausible tension for the default validator
        input_device: sounddevice device index or name, None for default
        sample_rate: Capture rate in Hz, None to use the device default
    """

    fft_size: int = FFT_SIZE
    analysis_window_size: int = ANALYSIS_WINDOW_SIZE
    scan_stride: int = SCAN_STRIDE
    capture_buffer_size: int = CAPTURE_BUFFER_SIZE
    min_frequency: float = MIN_FREQUENCY
    max_frequency: float = MAX_FREQUENCY
    min_signal_rms: float = MIN_SIGNAL_RMS
    lock_count: int = LOCK_COUNT
    lock_tolerance: float = LOCK_TOLERANCE
    detection_interval: float = DETECTION_INTERVAL
    min_tension_lbs: float = MIN_TENSION_LBS
    max_tension_lbs: float = MAX_TENSION_LBS
    input_device: int | str | None = None
    sample_rate: float | None = None

    def __post_init__(self) -> None:
        """Validate configuration parameters."""
        if not _is_power_of_two(self.fft_size):
            raise ValueError(f"fft_size must be a power of two, got {self.fft_size}")
        if self.analysis_window_size <= 0:
            raise ValueError(
                f"analysis_window_size must be positive, got {self.analysis_window_size}"
            )
        if self.analysis_window_size > self.fft_size:
            raise ValueError(
                f"analysis_window_size ({self.analysis_window_size}) must not exceed "
                f"fft_size ({self.fft_size})"
            )
        if self.scan_stride <= 0:
            raise ValueError(f"scan_stride must be positive, got {self.scan_stride}")
        if self.capture_buffer_size < self.analysis_window_size:
            raise ValueError(
                f"capture_buffer_size ({self.capture_buffer_size}) must hold at least "
                f"one analysis window ({self.analysis_window_size})"
            )
        if not 0 < self.min_frequency < self.max_frequency:
            raise ValueError(
                f"invalid frequency band {self.min_frequency}-{self.max_frequency} Hz"
            )
        if self.min_signal_rms < 0:
            raise ValueError(f"min_signal_rms must be non-negative, got {self.min_signal_rms}")
        if self.lock_count < 1:
            raise ValueError(f"lock_count must be at least 1, got {self.lock_count}")
        if not 0 < self.lock_tolerance < 1:
            raise ValueError(f"lock_tolerance must be in (0, 1), got {self.lock_tolerance}")
        if self.detection_interval < 0:
            raise ValueError(
                f"detection_interval must be non-negative, got {self.detection_interval}"
            )
        if self.min_tension_lbs > self.max_tension_lbs:
            raise ValueError(
                f"min_tension_lbs ({self.min_tension_lbs}) exceeds "
                f"max_tension_lbs ({self.max_tension_lbs})"
            )
        if self.sample_rate is not None and self.sample_rate <= 0:
            raise ValueError(f"sample_rate must be positive, got {self.sample_rate}")

    @classmethod
    def from_dict(cls, values: dict[str, Any]) -> "AnalyzerConfig":
        """Build a config from a mapping, falling back to DEFAULTS for missing keys."""
        known = {f.name for f in fields(cls)}
        unknown = sorted(set(values) - known)
        if unknown:
            raise ValueError(f"Unknown config keys: {', '.join(unknown)}")
        merged = {**DEFAULTS, **values}
        return cls(**merged)

    def with_overrides(self, **changes: Any) -> "AnalyzerConfig":
        """Return a copy with the given fields replaced (None values are ignored)."""
        changes = {k: v for k, v in changes.items() if v is not None}
        return replace(self, **changes)

    def to_dict(self) -> dict[str, Any]:
        return asdict(self)


def load_config(path: str | Path) -> AnalyzerConfig:
    """
    Load analyzer configuration from a JSON file.

    The file holds a single object whose keys are AnalyzerConfig field names.
    Missing keys take their default values.

    Raises:
        FileNotFoundError: If the file doesn't exist
        ValueError: If the file is not a JSON object or has unknown keys
    """
    file_path = Path(path)
    if not file_path.exists():
        raise FileNotFoundError(f"Config file not found: {path}")

    with open(file_path, "r", encoding="utf-8") as f:
        try:
            values = json.load(f)
        except json.JSONDecodeError as e:
            raise ValueError(f"Invalid JSON in config file {path}: {e}") from e

    if not isinstance(values, dict):
        raise ValueError(f"Config file must contain a JSON object: {path}")

    config = AnalyzerConfig.from_dict(values)
    logger.debug("Loaded config from %s: %s", file_path, values)
    return config
