"""
beatdetect - Spectral-Flux Engine
Half-wave rectified spectral flux, smoothed over a short trailing window,
with a minimum gap between emitted onsets.
"""

from collections import deque

import numpy as np

from beat_event import FLUX_STREAM, BeatEvent
from config import FluxEngineConfig
from logging_utils import log_event
from spectrum import Spectrum, dominant_frequency


class FluxHistory:
    """Bounded FIFO of recent per-frame flux values (oldest evicted first)."""

    def __init__(self, capacity: int = 10):
        self._values: deque[float] = deque(maxlen=capacity)

    def push(self, value: float) -> None:
        self._values.append(value)

    def mean(self) -> float:
        if not self._values:
            return 0.0
        return sum(self._values) / len(self._values)

    def values(self) -> list[float]:
        return list(self._values)

    def clear(self) -> None:
        self._values.clear()

    def __len__(self) -> int:
        return len(self._values)


class SpectralFluxEngine:
    def __init__(self, num_bins: int, config: FluxEngineConfig | None = None):
        self.config = config or FluxEngineConfig()
        self.num_bins = num_bins
        self.history = FluxHistory(self.config.history_size)
        self.prev_magnitudes = np.zeros(num_bins)
        self.last_beat_time: float = self._initial_beat_time()
        self.last_flux: float = 0.0
        self.last_smoothed: float = 0.0

    def _initial_beat_time(self) -> float:
        # 0.0 holds back onsets until min_gap_seconds into the stream
        return 0.0 if self.config.hold_initial_onset else float("-inf")

    def reset(self) -> None:
        self.history.clear()
        self.prev_magnitudes = np.zeros(self.num_bins)
        self.last_beat_time = self._initial_beat_time()
        self.last_flux = 0.0
        self.last_smoothed = 0.0

    def _normalized_magnitudes(self, spectrum: Spectrum) -> np.ndarray:
        mags = spectrum.magnitudes
        if not self.config.normalize:
            return mags.copy()
        peak = float(np.max(mags)) if len(mags) else 0.0
        if peak > 1.0:
            return mags / peak
        return mags.copy()

    def compute_flux(self, magnitudes: np.ndarray) -> float:
        """Sum of positive bin-wise increases against the previous frame."""
        diff = magnitudes - self.prev_magnitudes
        return float(np.sum(np.maximum(0.0, diff)))

    def update(self, spectrum: Spectrum, timestamp: float) -> list[BeatEvent]:
        """Advance one frame. ``timestamp`` is the detector's elapsed time for this frame."""
        mags = self._normalized_magnitudes(spectrum)
        flux = self.compute_flux(mags)
        if not np.isfinite(flux):
            log_event("WARN", "Flux", "Non-finite flux, treating as zero", t=f"{timestamp:.3f}")
            flux = 0.0
            mags = np.nan_to_num(mags, nan=0.0, posinf=0.0, neginf=0.0)

        self.history.push(flux)
        smoothed = self.history.mean()
        self.last_flux = flux
        self.last_smoothed = smoothed

        events = []
        if smoothed > self.config.flux_threshold and timestamp - self.last_beat_time > self.config.min_gap_seconds:
            self.last_beat_time = timestamp
            events.append(BeatEvent(
                stream_id=FLUX_STREAM,
                timestamp=timestamp,
                value=flux,
                smoothed=smoothed,
                frequency=dominant_frequency(spectrum),
            ))
            log_event("DEBUG", "Flux", "Onset", flux=f"{flux:.3f}", smoothed=f"{smoothed:.3f}",
                      t=f"{timestamp:.3f}")

        # Own copy; the analyzer's arrays belong to the current frame
        self.prev_magnitudes = mags
        return events
