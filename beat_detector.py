"""
beatdetect - Beat Detector
Frame-synchronous front end: validates each mono frame, runs the spectrum
analyzer once and feeds the result to the configured strategies.

Not thread-safe; drive it from a single (audio) thread and hand events to
other threads through a queue.
"""

import time
from dataclasses import dataclass
from pathlib import Path
from typing import Callable, Optional

import numpy as np

from band_engine import FrequencyBandEngine
from beat_event import FLUX_STREAM, BeatEvent
from config import Config, DetectionStrategy, validate_config
from flux_engine import SpectralFluxEngine
from logging_utils import is_enabled, log_event
from session_reporter import SessionReporter
from spectrum import SpectrumAnalyzer, dominant_frequency

__all__ = ["BeatDetector", "BeatEvent", "DetectorTimeline", "FrameSizeError"]

# Non-finite input warnings are logged at most once per this many frames
_NONFINITE_LOG_INTERVAL = 100


class FrameSizeError(ValueError):
    """Frame does not match the configured frame size (fatal for the session)."""


@dataclass
class DetectorTimeline:
    """Frame clock shared by all strategies."""
    frame_duration: float
    elapsed_time: float = 0.0
    frame_count: int = 0

    def advance(self) -> None:
        self.frame_count += 1
        self.elapsed_time = self.frame_count * self.frame_duration

    def reset(self) -> None:
        self.elapsed_time = 0.0
        self.frame_count = 0


class BeatDetector:
    def __init__(self, config: Config, beat_callback: Optional[Callable[[BeatEvent], None]] = None,
                 report_dir: Path | None = None):
        validate_config(config)
        self.config = config
        self.beat_callback = beat_callback
        self.sample_rate = config.analyzer.sample_rate
        self.frame_size = config.analyzer.frame_size

        self.analyzer = SpectrumAnalyzer(config.analyzer)
        self.timeline = DetectorTimeline(frame_duration=self.frame_size / self.sample_rate)

        self.band_engine: FrequencyBandEngine | None = None
        self.flux_engine: SpectralFluxEngine | None = None
        if config.strategy in (DetectionStrategy.BANDS, DetectionStrategy.BOTH):
            self.band_engine = FrequencyBandEngine(self.analyzer, config.bands)
        if config.strategy in (DetectionStrategy.FLUX, DetectionStrategy.BOTH):
            self.flux_engine = SpectralFluxEngine(self.analyzer.num_bins, config.flux)

        self._reporter: SessionReporter | None = None
        if report_dir is not None and config.report_generation_enabled:
            self._reporter = SessionReporter(report_dir)

        self._nonfinite_frames = 0
        self._reset_session_stats()

        log_event(
            "INFO",
            "Detector",
            "Initialized",
            strategy=config.strategy.name,
            sample_rate=self.sample_rate,
            frame_size=self.frame_size,
            frame_ms=f"{self.timeline.frame_duration * 1000:.1f}",
        )

    @property
    def elapsed_time(self) -> float:
        return self.timeline.elapsed_time

    def reset(self) -> None:
        """Forget all detection state and restart the clock at zero."""
        self.timeline.reset()
        if self.band_engine is not None:
            self.band_engine.reset()
        if self.flux_engine is not None:
            self.flux_engine.reset()
        self._reset_session_stats()

    # ------------------------------------------------------------------
    # Frame ingestion
    # ------------------------------------------------------------------
    def _validate_frame(self, frame) -> np.ndarray:
        samples = np.asarray(frame, dtype=np.float32)
        if samples.ndim != 1:
            raise FrameSizeError(f"expected a mono 1-D frame, got shape {samples.shape}")
        if samples.shape[0] != self.frame_size:
            raise FrameSizeError(f"expected {self.frame_size} samples, got {samples.shape[0]}")

        finite = np.isfinite(samples)
        if not finite.all():
            if self._nonfinite_frames % _NONFINITE_LOG_INTERVAL == 0:
                log_event("WARN", "Detector", "Non-finite samples replaced with zero",
                          bad=int(np.count_nonzero(~finite)), t=f"{self.elapsed_time:.3f}")
            self._nonfinite_frames += 1
            samples = np.where(finite, samples, np.float32(0.0))
        return samples

    def process(self, frame) -> list[BeatEvent]:
        """Analyze one frame of ``frame_size`` mono samples; returns the events it produced."""
        samples = self._validate_frame(frame)
        spectrum = self.analyzer.analyze(samples)
        timestamp = self.timeline.elapsed_time

        events: list[BeatEvent] = []
        if self.band_engine is not None:
            events.extend(self.band_engine.update(spectrum, timestamp))
        if self.flux_engine is not None:
            events.extend(self.flux_engine.update(spectrum, timestamp))

        self.timeline.advance()

        flux = self.flux_engine.last_flux if self.flux_engine is not None else 0.0
        self._update_session_stats(flux, events)

        if is_enabled("DEBUG") and self.timeline.frame_count % 20 == 0:
            log_event(
                "DEBUG",
                "Detector",
                "Levels",
                frame=self.timeline.frame_count,
                peak_freq=f"{dominant_frequency(spectrum):.1f}",
                flux=f"{flux:.4f}",
            )

        for event in events:
            self._notify(event)
        return events

    def _notify(self, event: BeatEvent) -> None:
        if self.beat_callback is None:
            return
        try:
            self.beat_callback(event)
        except Exception as e:
            log_event("ERROR", "Detector", "Beat callback failed", stream=event.stream_id, error=e)

    # ------------------------------------------------------------------
    # Session statistics
    # ------------------------------------------------------------------
    def _reset_session_stats(self) -> None:
        self._session_started_at = time.time()
        self._session_frame_count = 0
        self._session_flux_min: float | None = None
        self._session_flux_max: float | None = None
        self._session_flux_sum = 0.0
        self._session_event_counts: dict[str, int] = {}

    def _update_session_stats(self, spectral_flux: float, events: list[BeatEvent]) -> None:
        self._session_frame_count += 1
        self._session_flux_sum += spectral_flux
        if self._session_flux_min is None or spectral_flux < self._session_flux_min:
            self._session_flux_min = spectral_flux
        if self._session_flux_max is None or spectral_flux > self._session_flux_max:
            self._session_flux_max = spectral_flux
        for event in events:
            self._session_event_counts[event.stream_id] = self._session_event_counts.get(event.stream_id, 0) + 1

    def session_summary(self) -> dict:
        frame_count = max(1, self._session_frame_count)
        flux_min = float(self._session_flux_min or 0.0)
        flux_max = float(self._session_flux_max or 0.0)
        band_events = sum(n for name, n in self._session_event_counts.items() if name != FLUX_STREAM)
        return {
            "session_started_at": self._session_started_at,
            "session_ended_at": time.time(),
            "strategy": self.config.strategy.name,
            "sample_rate": self.sample_rate,
            "frame_size": self.frame_size,
            "frames": self._session_frame_count,
            "audio_seconds": self.timeline.elapsed_time,
            "flux_low": flux_min,
            "flux_high": flux_max,
            "flux_mean": self._session_flux_sum / frame_count,
            "band_events": band_events,
            "flux_events": self._session_event_counts.get(FLUX_STREAM, 0),
            "events_by_stream": dict(self._session_event_counts),
        }

    def _log_shutdown_summary(self) -> None:
        if self._session_frame_count <= 0:
            return

        summary = self.session_summary()
        log_event(
            "INFO",
            "Detector",
            "Session summary",
            frames=summary["frames"],
            seconds=f"{summary['audio_seconds']:.1f}",
            flux_min=f"{summary['flux_low']:.4f}",
            flux_max=f"{summary['flux_high']:.4f}",
            flux_mean=f"{summary['flux_mean']:.4f}",
            band_events=summary["band_events"],
            flux_events=summary["flux_events"],
        )

        if self._reporter is not None:
            try:
                self._reporter.save_session(summary)
            except OSError as e:
                log_event("ERROR", "Detector", "Failed to write session report", error=e)

    def stop(self) -> None:
        """End of stream: log (and optionally persist) the session summary."""
        self._log_shutdown_summary()
        log_event("INFO", "Detector", "Stopped")
