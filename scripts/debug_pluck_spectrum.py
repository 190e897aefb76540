"""
Debug script: Visualize what the detector sees for a recorded pluck.

For each detection tick of the replayed recording this plots the selected
analysis window and the in-band spectrum, marking the estimate and, once
locked, the locked frequency.

Usage:
    python scripts/debug_pluck_spectrum.py pluck.wav [output_prefix]
"""

import sys
from pathlib import Path

import matplotlib
import numpy as np

matplotlib.use('Agg')
import matplotlib.pyplot as plt

from tension_meter.analyzer import ReplaySource
from tension_meter.cli import load_wav
from tension_meter.config import AnalyzerConfig
from tension_meter.lock_in import LockInFilter, LockState
from tension_meter.spectral_estimator import FundamentalEstimator
from tension_meter.window_selector import SignalWindowSelector


def load_recording(path: Path) -> tuple[np.ndarray, int]:
    """Load a .wav file, or a .npy file recorded at 48 kHz by record_pluck.py."""
    if path.suffix == '.npy':
        return np.load(path).astype(np.float32), 48000
    return load_wav(path)


def plot_tick_spectra(audio, sample_rate, output_prefix, max_ticks=12):
    """Plot window and spectrum at each detection tick."""
    config = AnalyzerConfig()
    estimator = FundamentalEstimator(config.fft_size, config.min_frequency, config.max_frequency)
    selector = SignalWindowSelector(config.analysis_window_size, config.scan_stride, config.min_signal_rms)
    lock_in = LockInFilter(config.lock_count, config.lock_tolerance)
    lock_in.start()

    source = ReplaySource(audio, sample_rate, config.capture_buffer_size)
    hop = int(round(config.detection_interval * sample_rate))
    freqs = np.arange(config.fft_size) * sample_rate / config.fft_size
    min_bin, max_bin = estimator.search_bins(sample_rate)

    for tick in range(max_ticks):
        if source.advance(hop) == 0:
            break

        selection = selector.select(source.buffer.snapshot())
        estimate = None
        if selector.has_signal(selection):
            estimate = estimator.estimate(selection.window, sample_rate)
        update = lock_in.update(estimate)

        re, im = estimator.spectrum(selection.window)
        mags = np.sqrt(re * re + im * im)

        fig, (ax1, ax2) = plt.subplots(2, 1, figsize=(12, 8))

        # Top: selected window
        t = (selection.offset + np.arange(len(selection.window))) / sample_rate
        ax1.plot(t, selection.window, 'b-', linewidth=0.5)
        ax1.set_title(f'Tick {tick} - window @{selection.offset}, RMS {selection.rms:.4f}')
        ax1.set_xlabel('Time in buffer (s)')
        ax1.set_ylabel('Amplitude')
        ax1.grid(True, alpha=0.3)

        # Bottom: in-band spectrum
        band = slice(min_bin, max_bin + 1)
        ax2.semilogy(freqs[band], mags[band] + 1e-12, 'purple', linewidth=0.5, alpha=0.8)
        if estimate is not None:
            ax2.axvline(estimate, color='red', linewidth=1.5, alpha=0.7, label=f'Estimate: {estimate:.2f} Hz')
        if update.state == LockState.LOCKED:
            ax2.axvline(update.locked_frequency, color='green', linestyle='--', linewidth=2,
                        label=f'Locked: {update.locked_frequency:.1f} Hz')
        readings = ', '.join(f'{f:.1f}' for f in update.readings)
        ax2.set_title(f'Readings: [{readings}]')
        ax2.set_xlabel('Frequency (Hz)')
        ax2.set_ylabel('Magnitude (log)')
        if estimate is not None:
            ax2.legend(loc='upper right')
        ax2.grid(True, alpha=0.3)

        plt.tight_layout()
        filename = f'{output_prefix}_tick_{tick:02d}.png'
        plt.savefig(filename, dpi=100)
        plt.close()
        print(f'Saved: {filename}')

        if update.state == LockState.LOCKED:
            break


if __name__ == '__main__':
    if len(sys.argv) < 2:
        print(__doc__)
        sys.exit(1)
    recording = Path(sys.argv[1])
    prefix = sys.argv[2] if len(sys.argv) > 2 else str(recording.with_suffix(''))
    audio, sample_rate = load_recording(recording)
    plot_tick_spectra(audio, sample_rate, prefix)
    print('Done!')
