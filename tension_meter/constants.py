"""
Default constants for the tension meter.
"""

# Capture
CAPTURE_BUFFER_SIZE = 32768  # Samples kept in the rolling capture buffer
BLOCK_SIZE = 1024  # Samples per audio callback

# Spectral analysis
FFT_SIZE = 32768  # Transform size (~1.46 Hz/bin at 48 kHz)
ANALYSIS_WINDOW_SIZE = 16384  # Samples handed to the estimator
SCAN_STRIDE = 4096  # Step between candidate windows
MIN_FREQUENCY = 200.0  # Hz, lower edge of the fundamental search band
MAX_FREQUENCY = 750.0  # Hz, upper edge of the fundamental search band
MIN_SIGNAL_RMS = 0.004  # Below this the window is treated as silence

# Lock-in
LOCK_COUNT = 5
LOCK_TOLERANCE = 0.03  # Relative deviation allowed between readings
DETECTION_INTERVAL = 0.35  # Seconds between detection ticks

# Plausible tension range used to filter readings
MIN_TENSION_LBS = 20.0
MAX_TENSION_LBS = 65.0

# String physics
NEWTONS_TO_LBS = 0.224809
SQ_IN_TO_SQ_M = 0.00064516
HEAD_ASPECT_RATIO = 1.45  # Length:width of the elliptical head model
GROMMET_CORRECTION = 0.96  # Grommets sit inboard of the frame
REFERENCE_CROSSES = 19  # 16x19 is the reference pattern
CROSS_LOADING_PER_CROSS = 0.0015  # ~0.15% effective density per cross

DEFAULT_MATERIAL = "Polyester"
DEFAULT_GAUGE_MM = 1.25
DEFAULT_HEAD_SIZE_SQ_IN = 100.0
DEFAULT_PATTERN = "16x19"

# Material densities in kg/m^3
MATERIAL_DENSITIES = {
    "Polyester": 1380.0,
    "Nylon": 1140.0,
    "NaturalGut": 1320.0,
    "Multifilament": 1150.0,
    "Kevlar": 1440.0,
}

# Gauge number -> diameter in mm
GAUGE_TO_MM = {
    15: 1.45,
    16: 1.30,
    17: 1.20,
    18: 1.10,
    19: 1.00,
}
