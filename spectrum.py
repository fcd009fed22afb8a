"""
beatdetect - Spectrum Analyzer
Forward, unnormalized FFT of one mono frame plus bin/frequency helpers.
No window is applied and the analyzer holds no state between frames.
"""

from dataclasses import dataclass

import numpy as np
import scipy.fft

from config import AnalyzerConfig, FftBackend


def bin_freq(index: int, sample_rate: int, frame_size: int) -> float:
    """Centre frequency (Hz) of FFT bin ``index``."""
    return index * sample_rate / frame_size


@dataclass(frozen=True)
class Spectrum:
    """One frame's spectrum.

    ``coefficients`` holds all N complex bins; ``magnitudes`` holds only the
    first N/2, the bins below Nyquist that detection logic may consult.
    """
    coefficients: np.ndarray
    magnitudes: np.ndarray
    sample_rate: int
    frame_size: int

    def bin_freq(self, index: int) -> float:
        return bin_freq(index, self.sample_rate, self.frame_size)


class SpectrumAnalyzer:
    def __init__(self, config: AnalyzerConfig):
        self.sample_rate = config.sample_rate
        self.frame_size = config.frame_size
        if config.fft_backend == FftBackend.SCIPY:
            self._fft = scipy.fft.fft
        else:
            self._fft = np.fft.fft

    @property
    def num_bins(self) -> int:
        return self.frame_size // 2

    def analyze(self, frame: np.ndarray) -> Spectrum:
        """Transform a validated frame of ``frame_size`` samples."""
        coefficients = self._fft(frame.astype(np.float64, copy=False))
        magnitudes = np.abs(coefficients[:self.num_bins])
        return Spectrum(
            coefficients=coefficients,
            magnitudes=magnitudes,
            sample_rate=self.sample_rate,
            frame_size=self.frame_size,
        )

    def bin_freq(self, index: int) -> float:
        return bin_freq(index, self.sample_rate, self.frame_size)

    def bins_for_range(self, freq_low: float, freq_high: float) -> np.ndarray:
        """Indices of bins whose frequency lies in [freq_low, freq_high], below Nyquist."""
        freqs = np.arange(self.num_bins) * (self.sample_rate / self.frame_size)
        return np.nonzero((freqs >= freq_low) & (freqs <= freq_high))[0]


def dominant_frequency(spectrum: Spectrum | None) -> float:
    """Frequency of the loudest bin below Nyquist (0.0 for an empty/silent spectrum)."""
    if spectrum is None or len(spectrum.magnitudes) == 0:
        return 0.0
    peak_bin = int(np.argmax(spectrum.magnitudes))
    if spectrum.magnitudes[peak_bin] <= 0:
        return 0.0
    return spectrum.bin_freq(peak_bin)
