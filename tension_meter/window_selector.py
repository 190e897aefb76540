"""
Capture buffering and analysis window selection.

``SampleRingBuffer`` holds the most recent captured samples. The capture
callback writes into it and the detection tick reads ordered snapshots, so
the two never share a mutable array.

``SignalWindowSelector`` picks the loudest region of a snapshot to analyze.
Capture hardware may leave stale or quiet samples at the buffer edges; scanning
for the strongest region avoids running the estimator on noise.
"""

import threading
from dataclasses import dataclass

import numpy as np

from .constants import ANALYSIS_WINDOW_SIZE, MIN_SIGNAL_RMS, SCAN_STRIDE


class SampleRingBuffer:
    """Fixed-capacity circular buffer of audio samples."""

    def __init__(self, capacity: int, dtype=np.float32):
        if capacity <= 0:
            raise ValueError(f"capacity must be positive, got {capacity}")
        self.capacity = capacity
        self._data = np.zeros(capacity, dtype=dtype)
        self._write_idx = 0
        self._total_written = 0
        self._lock = threading.Lock()

    def write(self, samples: np.ndarray):
        """Append samples, overwriting the oldest ones once full."""
        samples = np.asarray(samples, dtype=self._data.dtype).ravel()
        n = len(samples)
        if n == 0:
            return

        with self._lock:
            self._total_written += n
            if n >= self.capacity:
                self._data[:] = samples[-self.capacity :]
                self._write_idx = 0
                return

            end = self._write_idx + n
            if end <= self.capacity:
                self._data[self._write_idx : end] = samples
            else:
                split = self.capacity - self._write_idx
                self._data[self._write_idx :] = samples[:split]
                self._data[: n - split] = samples[split:]
            self._write_idx = end % self.capacity

    def snapshot(self) -> np.ndarray:
        """Copy of the buffer ordered oldest to newest."""
        with self._lock:
            return np.roll(self._data, -self._write_idx)

    def clear(self):
        with self._lock:
            self._data[:] = 0
            self._write_idx = 0
            self._total_written = 0

    @property
    def total_written(self) -> int:
        """Number of samples written since creation or the last clear."""
        with self._lock:
            return self._total_written

    def __len__(self) -> int:
        return self.capacity


@dataclass(frozen=True)
class WindowSelection:
    """Window chosen for analysis."""
    offset: int  # Start index in the source buffer
    window: np.ndarray
    rms: float  # RMS of the candidate block that won the scan


class SignalWindowSelector:
    """
    Chooses the sub-window of a rolling buffer with the most signal energy.

    Candidate offsets are scanned from the newest position backward in steps
    of ``stride``. Each candidate is scored by the RMS of the stride-length
    block at its offset; a later (older) candidate replaces the best one only
    on strict improvement, so ties favor the most recent audio.
    """

    def __init__(
        self,
        window_size: int = ANALYSIS_WINDOW_SIZE,
        stride: int = SCAN_STRIDE,
        min_rms: float = MIN_SIGNAL_RMS,
    ):
        """
        Initialize selector.

        Args:
            window_size: Length of the window handed to the estimator
            stride: Step between candidate offsets, also the scored block length
            min_rms: Minimum RMS for the window to count as signal
        """
        if window_size <= 0 or stride <= 0:
            raise ValueError("window_size and stride must be positive")
        self.window_size = window_size
        self.stride = stride
        self.min_rms = min_rms

    def select(self, buffer: np.ndarray) -> WindowSelection:
        """
        Select the loudest window of ``buffer``.

        Args:
            buffer: Ordered samples, oldest first

        Returns:
            WindowSelection with the chosen offset, window and its RMS
        """
        buffer = np.asarray(buffer)
        n = len(buffer)
        newest = max(0, n - self.window_size)

        best_offset = newest
        best_rms = 0.0
        for offset in range(newest, -1, -self.stride):
            block = buffer[offset : offset + min(self.stride, n - offset)]
            if len(block) == 0:
                continue
            rms = float(np.sqrt(np.mean(np.square(block, dtype=np.float64))))
            if rms > best_rms:
                best_rms = rms
                best_offset = offset

        start = max(0, min(best_offset, n - self.window_size))
        return WindowSelection(
            offset=start,
            window=buffer[start : start + self.window_size],
            rms=best_rms,
        )

    def has_signal(self, selection: WindowSelection) -> bool:
        """Whether the selection is loud enough to analyze."""
        return selection.rms >= self.min_rms
