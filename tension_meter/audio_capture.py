"""
Microphone capture into a rolling sample buffer.
"""

import logging
from typing import Protocol

import numpy as np

from .constants import BLOCK_SIZE, CAPTURE_BUFFER_SIZE
from .window_selector import SampleRingBuffer

logger = logging.getLogger(__name__)


class CaptureError(RuntimeError):
    """Audio input could not be opened."""


class SampleSource(Protocol):
    """Anything that fills a SampleRingBuffer at a known sample rate."""

    sample_rate: float
    buffer: SampleRingBuffer

    def start(self) -> None: ...

    def stop(self) -> None: ...


class AudioCapture:
    """
    Mono input stream from a sounddevice device.

    The stream callback copies each block into ``buffer``; readers only ever
    see snapshots of it. ``stop`` closes the stream and is safe to call more
    than once.
    """

    def __init__(
        self,
        device: int | str | None = None,
        sample_rate: float | None = None,
        capacity: int = CAPTURE_BUFFER_SIZE,
        block_size: int = BLOCK_SIZE,
    ):
        """
        Initialize capture.

        Args:
            device: sounddevice input device, None for the system default
            sample_rate: Capture rate in Hz, None to use the device default
            capacity: Samples kept in the rolling buffer
            block_size: Samples per audio callback
        """
        self.device = device
        self.sample_rate = sample_rate
        self.block_size = block_size
        self.buffer = SampleRingBuffer(capacity)
        self._stream = None

    def start(self):
        """
        Open the input stream and begin filling the buffer.

        Raises:
            CaptureError: If PortAudio is missing or the device can't be opened
        """
        if self._stream is not None:
            return
        try:
            import sounddevice as sd
        except OSError as e:
            raise CaptureError(f"PortAudio library not available: {e}") from e

        try:
            if self.sample_rate is None:
                info = sd.query_devices(self.device, "input")
                self.sample_rate = float(info["default_samplerate"])

            self.buffer.clear()
            self._stream = sd.InputStream(
                device=self.device,
                samplerate=self.sample_rate,
                blocksize=self.block_size,
                channels=1,
                dtype=np.float32,
                callback=self._audio_callback,
            )
            self._stream.start()
        except (sd.PortAudioError, ValueError) as e:
            self._stream = None
            raise CaptureError(f"Audio error: {e}") from e

        logger.info("Capturing from device %s at %.0f Hz", self.device, self.sample_rate)

    def stop(self):
        """Stop and close the input stream."""
        if self._stream is not None:
            self._stream.stop()
            self._stream.close()
            self._stream = None
            logger.info("Audio capture stopped")

    @property
    def active(self) -> bool:
        return self._stream is not None

    def _audio_callback(self, indata, frames, time, status):
        """Audio callback - append incoming block to the buffer."""
        if status:
            logger.debug("Input stream status: %s", status)
        self.buffer.write(indata[:, 0])

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc, tb):
        self.stop()
