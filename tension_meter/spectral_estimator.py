"""
Fundamental frequency estimation for a plucked string.

The estimator zero-pads a Hann-windowed block of samples to a fixed transform
size, runs a radix-2 FFT, picks the strongest bin inside the band where string
fundamentals live and refines it with parabolic interpolation.
"""

import numpy as np

from .constants import FFT_SIZE, MAX_FREQUENCY, MIN_FREQUENCY


def _is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


def _bit_reversed_indices(n: int) -> np.ndarray:
    """Bit-reversal permutation for a power-of-two length."""
    bits = n.bit_length() - 1
    idx = np.arange(n)
    rev = np.zeros(n, dtype=np.intp)
    for b in range(bits):
        rev |= ((idx >> b) & 1) << (bits - 1 - b)
    return rev


def radix2_fft(re: np.ndarray, im: np.ndarray) -> None:
    """
    In-place iterative Cooley-Tukey FFT.

    Args:
        re: Real parts, contiguous float64 array (power-of-two length)
        im: Imaginary parts, same shape as ``re``

    Raises:
        ValueError: If the arrays differ in length, are not contiguous, or
            their length is not a power of two
    """
    n = len(re)
    if len(im) != n:
        raise ValueError(f"real and imaginary parts differ in length ({n} vs {len(im)})")
    if n <= 1:
        return
    if not _is_power_of_two(n):
        raise ValueError(f"FFT size must be a power of two, got {n}")
    if not (re.flags.c_contiguous and im.flags.c_contiguous):
        raise ValueError("FFT input arrays must be contiguous")

    rev = _bit_reversed_indices(n)
    re[:] = re[rev]
    im[:] = im[rev]

    # Butterfly passes, all blocks of a pass at once
    length = 2
    while length <= n:
        half = length // 2
        angle = -2.0 * np.pi * np.arange(half) / length
        w_re = np.cos(angle)
        w_im = np.sin(angle)

        blocks_re = re.reshape(-1, length)
        blocks_im = im.reshape(-1, length)
        top_re, bottom_re = blocks_re[:, :half], blocks_re[:, half:]
        top_im, bottom_im = blocks_im[:, :half], blocks_im[:, half:]

        t_re = w_re * bottom_re - w_im * bottom_im
        t_im = w_re * bottom_im + w_im * bottom_re
        bottom_re[...] = top_re - t_re
        bottom_im[...] = top_im - t_im
        top_re += t_re
        top_im += t_im

        length *= 2


def parabolic_offset(prev_mag: float, cur_mag: float, next_mag: float) -> float:
    """
    Sub-bin offset of a peak from three adjacent magnitudes.

    Returns 0.0 when the three points are collinear (flat top).
    """
    denom = prev_mag - 2.0 * cur_mag + next_mag
    if denom == 0:
        return 0.0
    return 0.5 * (prev_mag - next_mag) / denom


class FundamentalEstimator:
    """
    FFT peak estimator for the fundamental of a plucked string.

    The transform size is fixed so frequency resolution is ``sample_rate /
    fft_size`` regardless of how many samples are supplied. Shorter inputs are
    zero-padded, longer inputs are cut down to their most recent samples.
    """

    def __init__(
        self,
        fft_size: int = FFT_SIZE,
        min_frequency: float = MIN_FREQUENCY,
        max_frequency: float = MAX_FREQUENCY,
    ):
        """
        Initialize estimator.

        Args:
            fft_size: Transform size, must be a power of two
            min_frequency: Lower edge of the search band in Hz
            max_frequency: Upper edge of the search band in Hz
        """
        if not _is_power_of_two(fft_size):
            raise ValueError(f"fft_size must be a power of two, got {fft_size}")
        self.fft_size = fft_size
        self.min_frequency = min_frequency
        self.max_frequency = max_frequency

    def search_bins(self, sample_rate: float) -> tuple[int, int]:
        """Inclusive bin range covering the search band at this sample rate."""
        min_bin = int(np.floor(self.min_frequency * self.fft_size / sample_rate))
        max_bin = min(
            int(np.ceil(self.max_frequency * self.fft_size / sample_rate)),
            self.fft_size // 2 - 1,
        )
        return min_bin, max_bin

    def spectrum(self, samples: np.ndarray) -> tuple[np.ndarray, np.ndarray]:
        """Hann-windowed, zero-padded spectrum as (real, imaginary) arrays."""
        samples = np.asarray(samples, dtype=np.float64)
        window_size = min(len(samples), self.fft_size)

        re = np.zeros(self.fft_size, dtype=np.float64)
        im = np.zeros(self.fft_size, dtype=np.float64)
        if window_size > 0:
            recent = samples[len(samples) - window_size :]
            re[:window_size] = recent * np.hanning(window_size)

        radix2_fft(re, im)
        return re, im

    def estimate(self, samples: np.ndarray, sample_rate: float) -> float | None:
        """
        Estimate the fundamental frequency.

        Args:
            samples: Time-domain audio samples
            sample_rate: Sample rate in Hz

        Returns:
            Frequency in Hz, or None if the search band holds no energy
        """
        re, im = self.spectrum(samples)
        power = re * re + im * im

        min_bin, max_bin = self.search_bins(sample_rate)
        if max_bin < min_bin:
            return None

        band = power[min_bin : max_bin + 1]
        peak = min_bin + int(np.argmax(band))
        if power[peak] <= 0:
            return None

        last_bin = self.fft_size // 2 - 1
        prev_mag = np.sqrt(power[peak - 1]) if peak > 0 else 0.0
        cur_mag = np.sqrt(power[peak])
        next_mag = np.sqrt(power[peak + 1]) if peak < last_bin else 0.0
        delta = parabolic_offset(prev_mag, cur_mag, next_mag)

        return float((peak + delta) * sample_rate / self.fft_size)
