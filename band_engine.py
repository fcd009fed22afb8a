"""
beatdetect - Frequency-Band Engine
Seven perceptual bands, each with an adaptive running maximum and a
hysteresis latch that fires one event per rise above the beat threshold.
"""

from dataclasses import dataclass
from types import MappingProxyType
from typing import Mapping

import numpy as np

from beat_event import BeatEvent
from config import BandEngineConfig, EmptyBandPolicy
from logging_utils import log_event
from spectrum import Spectrum, SpectrumAnalyzer


@dataclass(frozen=True)
class FrequencyBand:
    name: str
    freq_low: float     # Hz, inclusive
    freq_high: float    # Hz, inclusive


CANONICAL_BANDS: tuple[FrequencyBand, ...] = (
    FrequencyBand('sub_bass', 20.0, 60.0),
    FrequencyBand('bass', 60.0, 250.0),
    FrequencyBand('low_mid', 250.0, 500.0),
    FrequencyBand('mid', 500.0, 2000.0),
    FrequencyBand('upper_mid', 2000.0, 4000.0),
    FrequencyBand('presence', 4000.0, 6000.0),
    FrequencyBand('brilliance', 6000.0, 20000.0),
)


@dataclass
class BandState:
    """Per-band detection state, persists across frames"""
    running_max: float
    beat_flag: bool = False


class BandMapping:
    """Resolves each band to FFT bin indices once, applying the empty-band policy."""

    def __init__(self, bands, analyzer: SpectrumAnalyzer, policy: EmptyBandPolicy):
        self.indices: dict[str, np.ndarray] = {}
        self.skipped: list[str] = []
        nyquist = analyzer.sample_rate / 2
        bin_width = analyzer.sample_rate / analyzer.frame_size

        for band in bands:
            idx = analyzer.bins_for_range(band.freq_low, band.freq_high)
            if len(idx) > 0:
                self.indices[band.name] = idx
                continue

            if band.freq_low >= nyquist or policy == EmptyBandPolicy.SKIP:
                self.skipped.append(band.name)
                log_event("WARN", "Bands", "Band maps to no bins, beat logic disabled",
                          band=band.name, bin_width=f"{bin_width:.1f}", nyquist=f"{nyquist:.0f}")
                continue

            centre = (band.freq_low + band.freq_high) / 2
            nearest = int(round(centre / bin_width))
            nearest = max(0, min(analyzer.num_bins - 1, nearest))
            self.indices[band.name] = np.array([nearest])
            log_event("WARN", "Bands", "Band maps to no bins, using nearest bin",
                      band=band.name, bin=nearest, freq=f"{analyzer.bin_freq(nearest):.1f}")

        for name, idx in self.indices.items():
            log_event("DEBUG", "Bands", "Band mapping", band=name, first_bin=int(idx[0]),
                      last_bin=int(idx[-1]), bins=len(idx))


class FrequencyBandEngine:
    def __init__(self, analyzer: SpectrumAnalyzer, config: BandEngineConfig | None = None,
                 bands=CANONICAL_BANDS):
        self.config = config or BandEngineConfig()
        self.bands = tuple(bands)
        self.mapping = BandMapping(self.bands, analyzer, self.config.empty_band_policy)
        self._states: dict[str, BandState] = {}
        self.reset()

    @property
    def states(self) -> Mapping[str, BandState]:
        return MappingProxyType(self._states)

    def reset(self) -> None:
        self._states = {
            name: BandState(running_max=self.config.running_max_floor)
            for name in self.mapping.indices
        }

    def band_values(self, spectrum: Spectrum) -> dict[str, float]:
        """Peak magnitude inside each mapped band."""
        mags = spectrum.magnitudes
        return {name: float(np.max(mags[idx])) for name, idx in self.mapping.indices.items()}

    def update(self, spectrum: Spectrum, timestamp: float) -> list[BeatEvent]:
        """Advance every band by one frame; one event per band whose latch just closed."""
        fired = []
        beat_threshold = self.config.beat_threshold
        reset_threshold = self.config.reset_threshold

        for name, value in self.band_values(spectrum).items():
            if not np.isfinite(value):
                value = 0.0
            state = self._states[name]
            state.running_max = max(state.running_max, value)

            if value >= state.running_max * beat_threshold and not state.beat_flag:
                state.beat_flag = True
                fired.append(BeatEvent(stream_id=name, timestamp=timestamp, value=value))
                log_event("DEBUG", "Bands", "Beat", band=name, value=f"{value:.3f}",
                          running_max=f"{state.running_max:.3f}", t=f"{timestamp:.3f}")
            elif value < state.running_max * reset_threshold:
                state.beat_flag = False

        return fired
