"""
tension_meter - String tension measurement from the pitch of a plucked string
"""

from .analyzer import ReplaySource, TensionAnalyzer, TickEvent, replay
from .audio_capture import AudioCapture, CaptureError
from .config import AnalyzerConfig, load_config
from .lock_in import LockInFilter, LockState, LockUpdate, status_message
from .scheduler import CancellationToken, PeriodicTask
from .spectral_estimator import FundamentalEstimator, radix2_fft
from .string_database import (
    DEFAULT_DATABASE,
    GaugeDensity,
    StringDatabase,
    StringModel,
    load_string_database,
)
from .string_physics import (
    StringProfile,
    TensionResult,
    compute_tension,
    cross_loading_factor,
    frequency_for_tension,
    linear_density,
    tension,
    tension_range_validator,
    vibrating_length,
)
from .window_selector import SampleRingBuffer, SignalWindowSelector, WindowSelection

__version__ = "0.1.0"
__all__ = [
    "TensionAnalyzer",
    "TickEvent",
    "ReplaySource",
    "replay",
    "AudioCapture",
    "CaptureError",
    "AnalyzerConfig",
    "load_config",
    "LockInFilter",
    "LockState",
    "LockUpdate",
    "status_message",
    "PeriodicTask",
    "CancellationToken",
    "FundamentalEstimator",
    "radix2_fft",
    "StringDatabase",
    "StringModel",
    "GaugeDensity",
    "DEFAULT_DATABASE",
    "load_string_database",
    "StringProfile",
    "TensionResult",
    "compute_tension",
    "cross_loading_factor",
    "frequency_for_tension",
    "linear_density",
    "tension",
    "tension_range_validator",
    "vibrating_length",
    "SampleRingBuffer",
    "SignalWindowSelector",
    "WindowSelection",
]
