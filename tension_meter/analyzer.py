"""
Measurement session: from live audio to a locked tension reading.

Each detection tick takes a snapshot of the capture buffer, selects its
loudest window, estimates the fundamental and feeds it to the lock-in filter.
Ticks are throttled to the configured detection interval and stop on their
own once the filter locks.
"""

import logging
import time
from dataclasses import dataclass
from typing import Callable

import numpy as np

from .audio_capture import AudioCapture, CaptureError, SampleSource
from .config import AnalyzerConfig
from .lock_in import FrequencyValidator, LockInFilter, LockState
from .scheduler import PeriodicTask
from .spectral_estimator import FundamentalEstimator
from .string_database import DEFAULT_DATABASE, StringDatabase
from .string_physics import StringProfile, TensionResult, compute_tension, tension_range_validator
from .window_selector import SampleRingBuffer, SignalWindowSelector

logger = logging.getLogger(__name__)

# Slack for clock rounding when comparing tick times against the interval
TICK_TIME_EPSILON = 1e-6


@dataclass(frozen=True)
class TickEvent:
    """What a detection tick reports to listeners."""
    frequency: float | None  # Estimate this tick (0.1 Hz), or the locked frequency
    readings: tuple[float, ...]  # Lock-in buffer after the tick
    state: LockState
    counted: bool = False  # Estimate entered the lock-in buffer
    locked_frequency: float | None = None
    tension: TensionResult | None = None  # Tension for ``frequency`` when a profile is set


TickListener = Callable[[TickEvent], None]


class TensionAnalyzer:
    """
    Owns one measurement session.

    ``start`` opens the sample source and begins ticking, ``stop`` cancels
    ticking and releases the source, ``reset`` discards readings and ticks
    again on the already open source. With ``schedule=False`` no worker
    thread is started and the host drives the session by calling ``tick``.
    """

    def __init__(
        self,
        config: AnalyzerConfig | None = None,
        profile: StringProfile | None = None,
        database: StringDatabase = DEFAULT_DATABASE,
        source_factory: Callable[[], SampleSource] | None = None,
        clock: Callable[[], float] = time.monotonic,
        schedule: bool = True,
    ):
        """
        Initialize analyzer.

        Args:
            config: Session parameters, defaults if None
            profile: String setup used for tension and the default validator
            database: Reference string table for the profile
            source_factory: Builds the sample source on start, microphone by default
            clock: Monotonic clock used for tick throttling
            schedule: Run ticks on a worker thread
        """
        self.config = config or AnalyzerConfig()
        self.profile = profile
        self.database = database
        self.clock = clock
        self.schedule = schedule
        self._source_factory = source_factory or self._default_source

        self.estimator = FundamentalEstimator(
            fft_size=self.config.fft_size,
            min_frequency=self.config.min_frequency,
            max_frequency=self.config.max_frequency,
        )
        self.selector = SignalWindowSelector(
            window_size=self.config.analysis_window_size,
            stride=self.config.scan_stride,
            min_rms=self.config.min_signal_rms,
        )
        self.lock_in = LockInFilter(
            lock_count=self.config.lock_count,
            tolerance=self.config.lock_tolerance,
        )

        self.error: str | None = None
        self._source: SampleSource | None = None
        self._task: PeriodicTask | None = None
        self._listeners: list[TickListener] = []
        self._last_tick: float | None = None
        self._last_written: int | None = None
        self._frequency: float | None = None

    def _default_source(self) -> SampleSource:
        return AudioCapture(
            device=self.config.input_device,
            sample_rate=self.config.sample_rate,
            capacity=self.config.capture_buffer_size,
        )

    def add_listener(self, listener: TickListener):
        self._listeners.append(listener)

    def remove_listener(self, listener: TickListener):
        self._listeners.remove(listener)

    def start(self, validator: FrequencyValidator | None = None) -> bool:
        """
        Open the sample source and start listening.

        Args:
            validator: Predicate deciding which readings count toward lock-in.
                Defaults to the profile's plausible tension range.

        Returns:
            True if listening, False if the source could not be opened
            (the reason is kept in ``error``)
        """
        self.stop()

        if validator is None and self.profile is not None:
            validator = tension_range_validator(
                self.profile,
                self.config.min_tension_lbs,
                self.config.max_tension_lbs,
                self.database,
            )

        source = self._source_factory()
        try:
            source.start()
        except CaptureError as e:
            logger.error("Could not start capture: %s", e)
            self.error = str(e)
            return False

        self._source = source
        self.error = None
        self.lock_in.start(validator)
        self._begin_ticking()
        logger.info("Listening at %.0f Hz", source.sample_rate)
        return True

    def stop(self):
        """Stop ticking, release the sample source and return to idle."""
        self._cancel_ticking()
        if self._source is not None:
            self._source.stop()
            self._source = None
            logger.info("Session stopped")
        self.lock_in.stop()
        self._frequency = None

    def reset(self):
        """Discard readings and measure again without reopening the source."""
        self._cancel_ticking()
        self.lock_in.reset()
        self._frequency = None
        if self._source is not None and self.lock_in.state == LockState.LISTENING:
            self._begin_ticking()
            logger.info("Session reset")

    def _begin_ticking(self):
        self._last_tick = None
        self._last_written = None
        if self.schedule:
            self._task = PeriodicTask(
                self._on_tick,
                self.config.detection_interval,
                clock=self.clock,
                name="tension-detector",
                on_error=self._on_task_error,
            )
            self._task.start()

    def _cancel_ticking(self):
        if self._task is not None:
            self._task.cancel()
            self._task = None

    def _on_tick(self, now: float) -> bool:
        try:
            self.tick(now)
        except Exception:
            logger.exception("Detection tick failed, keeping %d readings", len(self.lock_in.readings))
        return self.lock_in.state == LockState.LISTENING

    def _on_task_error(self, error: BaseException):
        """The ticking thread died; release the source and go idle with the reason in ``error``."""
        self.error = f"Detection stopped: {error}"
        if self._source is not None:
            self._source.stop()
            self._source = None
        self.lock_in.stop()
        self._frequency = None

    def tick(self, now: float | None = None) -> TickEvent | None:
        """
        Run one detection step.

        Args:
            now: Monotonic time of the tick, read from the clock if None

        Returns:
            The emitted TickEvent, or None if not listening or called
            before the detection interval has elapsed
        """
        if self._source is None or self.lock_in.state != LockState.LISTENING:
            return None

        if now is None:
            now = self.clock()
        interval = self.config.detection_interval - TICK_TIME_EPSILON
        if self._last_tick is not None and now - self._last_tick < interval:
            return None
        self._last_tick = now

        update = self.lock_in.update(self._detect())
        if update.frequency is not None:
            self._frequency = update.frequency

        tension = None
        if self.profile is not None and update.frequency is not None:
            tension = compute_tension(self.profile, update.frequency, self.database)

        event = TickEvent(
            frequency=update.frequency,
            readings=update.readings,
            state=update.state,
            counted=update.counted,
            locked_frequency=update.locked_frequency,
            tension=tension,
        )
        for listener in list(self._listeners):
            try:
                listener(event)
            except Exception:
                logger.exception("Tick listener %r failed", listener)
        return event

    def _detect(self) -> float | None:
        """Estimate a frequency from the newest audio, None for silence or stale audio."""
        buffer = self._source.buffer
        written = buffer.total_written
        if written == self._last_written:
            logger.debug("No new audio since last tick")
            return None
        self._last_written = written

        selection = self.selector.select(buffer.snapshot())
        if not self.selector.has_signal(selection):
            return None

        frequency = self.estimator.estimate(selection.window, self._source.sample_rate)
        logger.debug("Window @%d rms=%.4f -> %s Hz", selection.offset, selection.rms, frequency)
        return frequency

    @property
    def state(self) -> LockState:
        return self.lock_in.state

    @property
    def readings(self) -> tuple[float, ...]:
        return self.lock_in.readings

    @property
    def frequency(self) -> float | None:
        """Most recently shown frequency, rounded to 0.1 Hz."""
        return self._frequency

    @property
    def locked_frequency(self) -> float | None:
        return self.lock_in.locked_frequency

    @property
    def is_running(self) -> bool:
        return self._task is not None and self._task.is_running

    def result(self) -> TensionResult | None:
        """Tension for the locked frequency, if locked and a profile is set."""
        if self.profile is None or self.locked_frequency is None:
            return None
        return compute_tension(self.profile, self.locked_frequency, self.database)


class ReplaySource:
    """Sample source that plays back a recorded signal block by block."""

    def __init__(self, samples: np.ndarray, sample_rate: float, capacity: int):
        self.samples = np.asarray(samples, dtype=np.float32).ravel()
        self.sample_rate = sample_rate
        self.buffer = SampleRingBuffer(capacity)
        self._position = 0

    def start(self):
        self.buffer.clear()
        self._position = 0

    def stop(self):
        pass

    def advance(self, n: int) -> int:
        """Write the next ``n`` samples into the buffer; returns how many were written."""
        chunk = self.samples[self._position : self._position + n]
        self.buffer.write(chunk)
        self._position += len(chunk)
        return len(chunk)

    @property
    def remaining(self) -> int:
        return len(self.samples) - self._position


def replay(
    samples: np.ndarray,
    sample_rate: float,
    config: AnalyzerConfig | None = None,
    profile: StringProfile | None = None,
    validator: FrequencyValidator | None = None,
    database: StringDatabase = DEFAULT_DATABASE,
) -> list[TickEvent]:
    """
    Run a recorded signal through the detection pipeline.

    The recording is fed in detection-interval sized blocks with one tick per
    block, as if it were being captured live. Stops at the end of the
    recording or when the session locks.

    Returns:
        TickEvents in order; the last one carries the locked frequency if any
    """
    config = config or AnalyzerConfig()
    source = ReplaySource(samples, sample_rate, config.capture_buffer_size)
    analyzer = TensionAnalyzer(
        config,
        profile=profile,
        database=database,
        source_factory=lambda: source,
        schedule=False,
    )
    events: list[TickEvent] = []
    analyzer.add_listener(events.append)

    if not analyzer.start(validator):
        return events

    hop = max(1, int(round(config.detection_interval * sample_rate)))
    now = 0.0
    while source.remaining > 0 and analyzer.state == LockState.LISTENING:
        source.advance(hop)
        analyzer.tick(now)
        now += config.detection_interval

    analyzer.stop()
    return events
