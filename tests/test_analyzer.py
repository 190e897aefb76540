"""
Tests for the measurement session.

A fake sample source stands in for the microphone so ticks can be driven
deterministically.
"""

import threading
import time

import numpy as np
import pytest

from tension_meter.analyzer import ReplaySource, TensionAnalyzer, replay
from tension_meter.audio_capture import CaptureError
from tension_meter.config import AnalyzerConfig
from tension_meter.lock_in import LockState
from tension_meter.string_physics import StringProfile
from tension_meter.window_selector import SampleRingBuffer

SAMPLE_RATE = 48000


def generate_sine_wave(
    frequency: float,
    duration_samples: int,
    sample_rate: int = SAMPLE_RATE,
    amplitude: float = 0.3,
) -> np.ndarray:
    """Generate a sine wave at the given frequency."""
    t = np.arange(duration_samples) / sample_rate
    return (amplitude * np.sin(2 * np.pi * frequency * t)).astype(np.float32)


class FakeSource:
    """Sample source fed by the test."""

    def __init__(self, sample_rate: float = SAMPLE_RATE, capacity: int = 32768, fail: bool = False):
        self.sample_rate = sample_rate
        self.buffer = SampleRingBuffer(capacity)
        self.fail = fail
        self.starts = 0
        self.stops = 0

    def start(self):
        if self.fail:
            raise CaptureError("Audio error: no input device")
        self.starts += 1

    def stop(self):
        self.stops += 1

    def feed(self, samples: np.ndarray):
        self.buffer.write(samples)


class TestTensionAnalyzer:
    """Tests for manually ticked sessions."""

    def setup_method(self):
        self.source = FakeSource()
        self.analyzer = TensionAnalyzer(source_factory=lambda: self.source, schedule=False)

    def test_idle_until_started(self):
        assert self.analyzer.state == LockState.IDLE
        assert self.analyzer.tick(0.0) is None

    def test_start_opens_source(self):
        assert self.analyzer.start()
        assert self.source.starts == 1
        assert self.analyzer.state == LockState.LISTENING

    def test_silence_gives_no_estimate(self):
        """Silent audio never produces a reading or advances the buffer."""
        self.analyzer.start()
        for i in range(6):
            self.source.feed(np.zeros(32768, dtype=np.float32))
            event = self.analyzer.tick(float(i))

            assert event.frequency is None
            assert event.readings == ()

        assert self.analyzer.state == LockState.LISTENING

    def test_quiet_signal_is_silence(self):
        """A tone below the RMS gate is treated as silence."""
        self.analyzer.start()
        self.source.feed(generate_sine_wave(420.0, 32768, amplitude=0.004))

        event = self.analyzer.tick(0.0)

        assert event.frequency is None

    def test_locks_on_steady_tone(self):
        """Five ticks of a steady tone lock near its frequency."""
        events = []
        self.analyzer.add_listener(events.append)
        self.analyzer.start()

        for i in range(5):
            self.source.feed(generate_sine_wave(427.3, 32768))
            self.analyzer.tick(float(i))

        assert len(events) == 5
        assert [len(e.readings) for e in events[:4]] == [1, 2, 3, 4]
        assert events[-1].state == LockState.LOCKED
        assert events[-1].locked_frequency == pytest.approx(427.3, abs=0.5)
        assert self.analyzer.locked_frequency == events[-1].locked_frequency

    def test_no_ticks_after_lock(self):
        self.analyzer.start()
        for i in range(5):
            self.source.feed(generate_sine_wave(427.3, 32768))
            self.analyzer.tick(float(i))

        self.source.feed(generate_sine_wave(300.0, 32768))
        assert self.analyzer.tick(10.0) is None

    def test_throttled_to_detection_interval(self):
        """Ticks closer together than the interval are no-ops."""
        self.analyzer.start()
        self.source.feed(generate_sine_wave(427.3, 32768))
        assert self.analyzer.tick(0.0) is not None

        self.source.feed(generate_sine_wave(427.3, 32768))
        assert self.analyzer.tick(0.1) is None

        event = self.analyzer.tick(0.5)
        assert event is not None
        assert len(event.readings) == 2

    def test_interval_at_large_clock_values(self):
        """A tick one interval later still runs when the clock is far from zero."""
        base = 123456789.0
        self.analyzer.start()
        self.source.feed(generate_sine_wave(427.3, 32768))
        assert self.analyzer.tick(base) is not None

        self.source.feed(generate_sine_wave(427.3, 32768))
        event = self.analyzer.tick(base + 0.35)

        assert event is not None
        assert len(event.readings) == 2

    def test_failing_listener_is_isolated(self):
        """One broken listener doesn't stop the event reaching the others."""
        received = []

        def broken(event):
            raise RuntimeError("display gone")

        self.analyzer.add_listener(broken)
        self.analyzer.add_listener(received.append)
        self.analyzer.start()
        self.source.feed(generate_sine_wave(427.3, 32768))

        event = self.analyzer.tick(0.0)

        assert received == [event]
        assert len(event.readings) == 1

    def test_stale_audio_not_counted_twice(self):
        """Without new samples the tick has no estimate."""
        self.analyzer.start()
        self.source.feed(generate_sine_wave(427.3, 32768))
        self.analyzer.tick(0.0)

        event = self.analyzer.tick(1.0)

        assert event.frequency is None
        assert len(event.readings) == 1

    def test_validator_rejection(self):
        """Rejected readings are shown but not counted."""
        self.analyzer.start(validator=lambda f: False)
        self.source.feed(generate_sine_wave(427.3, 32768))

        event = self.analyzer.tick(0.0)

        assert event.frequency == pytest.approx(427.3, abs=0.5)
        assert not event.counted
        assert event.readings == ()
        assert self.analyzer.frequency == event.frequency

    def test_reset_reuses_source(self):
        """Reset measures again without reopening the source."""
        self.analyzer.start()
        for i in range(5):
            self.source.feed(generate_sine_wave(427.3, 32768))
            self.analyzer.tick(float(i))

        self.analyzer.reset()

        assert self.analyzer.state == LockState.LISTENING
        assert self.analyzer.readings == ()
        assert self.analyzer.locked_frequency is None
        assert self.source.starts == 1

        self.source.feed(generate_sine_wave(427.3, 32768))
        assert self.analyzer.tick(20.0) is not None

    def test_stop_releases_source(self):
        self.analyzer.start()
        self.source.feed(generate_sine_wave(427.3, 32768))
        self.analyzer.tick(0.0)

        self.analyzer.stop()

        assert self.source.stops == 1
        assert self.analyzer.state == LockState.IDLE
        assert self.analyzer.readings == ()
        assert self.analyzer.tick(5.0) is None

    def test_restart_after_stop(self):
        self.analyzer.start()
        self.analyzer.stop()
        assert self.analyzer.start()
        assert self.source.starts == 2
        assert self.analyzer.state == LockState.LISTENING

    def test_capture_failure(self):
        """A failed source leaves the analyzer idle and restartable."""
        source = FakeSource(fail=True)
        analyzer = TensionAnalyzer(source_factory=lambda: source, schedule=False)

        assert not analyzer.start()
        assert analyzer.state == LockState.IDLE
        assert "no input device" in analyzer.error

        source.fail = False
        assert analyzer.start()
        assert analyzer.error is None
        assert analyzer.state == LockState.LISTENING


class TestAnalyzerWithProfile:
    """Sessions that know the string setup."""

    def setup_method(self):
        self.source = FakeSource()
        self.analyzer = TensionAnalyzer(
            profile=StringProfile(),
            source_factory=lambda: self.source,
            schedule=False,
        )

    def test_events_carry_tension(self):
        self.analyzer.start()
        self.source.feed(generate_sine_wave(420.0, 32768))

        event = self.analyzer.tick(0.0)

        assert event.counted
        assert event.tension.lbs == pytest.approx(29.5, abs=0.5)

    def test_implausible_tension_not_counted(self):
        """The default validator drops readings outside 20-65 lbs."""
        self.analyzer.start()
        self.source.feed(generate_sine_wave(210.0, 32768))

        event = self.analyzer.tick(0.0)

        assert event.frequency == pytest.approx(210.0, abs=0.5)
        assert not event.counted

    def test_result_after_lock(self):
        self.analyzer.start()
        assert self.analyzer.result() is None
        for i in range(5):
            self.source.feed(generate_sine_wave(420.0, 32768))
            self.analyzer.tick(float(i))

        assert self.analyzer.result().lbs == pytest.approx(30.0, abs=1.0)


class TestScheduledSession:
    """Sessions ticked by the worker thread."""

    def test_locks_and_stops_ticking(self):
        source = FakeSource()
        config = AnalyzerConfig(detection_interval=0.01)
        analyzer = TensionAnalyzer(config, source_factory=lambda: source)
        locked = threading.Event()

        def on_tick(event):
            if event.state == LockState.LOCKED:
                locked.set()
            else:
                source.feed(generate_sine_wave(388.8, 32768))

        analyzer.add_listener(on_tick)
        source.feed(generate_sine_wave(388.8, 32768))
        analyzer.start()

        assert locked.wait(5.0)
        for _ in range(100):
            if not analyzer.is_running:
                break
            time.sleep(0.01)
        assert not analyzer.is_running
        assert analyzer.locked_frequency == pytest.approx(388.8, abs=0.5)

        analyzer.stop()
        assert source.stops == 1

    def test_listener_error_does_not_stop_session(self):
        """A listener raising on the first tick doesn't end ticking."""
        source = FakeSource()
        analyzer = TensionAnalyzer(AnalyzerConfig(detection_interval=0.01), source_factory=lambda: source)
        locked = threading.Event()
        calls = []

        def on_tick(event):
            calls.append(event)
            if event.state == LockState.LOCKED:
                locked.set()
                return
            source.feed(generate_sine_wave(420.0, 32768))
            if len(calls) == 1:
                raise RuntimeError("listener failed")

        analyzer.add_listener(on_tick)
        source.feed(generate_sine_wave(420.0, 32768))
        analyzer.start()

        assert locked.wait(5.0)
        assert analyzer.locked_frequency == pytest.approx(420.0, abs=0.5)
        assert analyzer.error is None
        analyzer.stop()

    def test_detection_error_keeps_readings(self):
        """A failing estimate costs one tick; earlier readings survive."""
        source = FakeSource()
        analyzer = TensionAnalyzer(AnalyzerConfig(detection_interval=0.01), source_factory=lambda: source)
        estimate = analyzer.estimator.estimate
        attempts = []

        def flaky_estimate(samples, sample_rate):
            attempts.append(len(attempts))
            if len(attempts) == 2:
                raise FloatingPointError("bad window")
            return estimate(samples, sample_rate)

        analyzer.estimator.estimate = flaky_estimate
        locked = threading.Event()
        counts = []

        def on_tick(event):
            counts.append(len(event.readings))
            if event.state == LockState.LOCKED:
                locked.set()
            else:
                source.feed(generate_sine_wave(420.0, 32768))

        analyzer.add_listener(on_tick)
        source.feed(generate_sine_wave(420.0, 32768))
        analyzer.start()

        assert locked.wait(5.0)
        assert analyzer.locked_frequency == pytest.approx(420.0, abs=0.5)
        assert counts[0] == 1
        assert counts == sorted(counts)
        analyzer.stop()

    def test_dead_worker_leaves_analyzer_idle(self):
        """If the ticking thread itself dies the session goes idle with an error."""
        source = FakeSource()
        analyzer = TensionAnalyzer(AnalyzerConfig(detection_interval=0.01), source_factory=lambda: source)

        def broken_tick(now):
            raise RuntimeError("worker crashed")

        analyzer._on_tick = broken_tick
        analyzer.start()

        for _ in range(200):
            if not analyzer.is_running:
                break
            time.sleep(0.01)

        assert not analyzer.is_running
        assert analyzer.state == LockState.IDLE
        assert "worker crashed" in analyzer.error
        assert source.stops == 1

    def test_stop_while_listening(self):
        source = FakeSource()
        analyzer = TensionAnalyzer(AnalyzerConfig(detection_interval=0.01), source_factory=lambda: source)
        analyzer.start()
        time.sleep(0.05)

        analyzer.stop()

        assert not analyzer.is_running
        assert analyzer.state == LockState.IDLE
        assert source.stops == 1


class TestReplay:
    """Tests for running recordings through the pipeline."""

    def test_replay_locks_on_recording(self):
        rng = np.random.default_rng(7)
        signal = generate_sine_wave(512.4, SAMPLE_RATE * 2)
        signal += (0.01 * rng.standard_normal(len(signal))).astype(np.float32)

        events = replay(signal, SAMPLE_RATE)

        assert events[-1].state == LockState.LOCKED
        assert events[-1].locked_frequency == pytest.approx(512.4, abs=0.5)

    def test_replay_leading_silence(self):
        """Silence before the pluck produces empty ticks, then a lock."""
        signal = np.concatenate([
            np.zeros(SAMPLE_RATE, dtype=np.float32),
            generate_sine_wave(300.0, SAMPLE_RATE * 3),
        ])

        events = replay(signal, SAMPLE_RATE)

        assert events[0].frequency is None
        assert events[-1].locked_frequency == pytest.approx(300.0, abs=0.5)

    def test_replay_too_short_to_lock(self):
        signal = generate_sine_wave(300.0, SAMPLE_RATE // 2)

        events = replay(signal, SAMPLE_RATE)

        assert events
        assert events[-1].state == LockState.LISTENING
        assert events[-1].locked_frequency is None

    def test_replay_source(self):
        source = ReplaySource(np.arange(10), 1000, capacity=8)
        source.start()

        assert source.advance(4) == 4
        assert source.remaining == 6
        assert source.advance(100) == 6
        assert source.buffer.total_written == 10
