from dataclasses import dataclass

FLUX_STREAM = 'flux'


@dataclass(frozen=True)
class BeatEvent:
    """Represents a detected beat"""
    stream_id: str            # Band name ('bass', ...) or 'flux'
    timestamp: float          # Seconds since the detector started (frame time)
    value: float = 0.0        # Band value or raw flux that triggered the event
    smoothed: float = 0.0     # Smoothed flux (flux events only)
    frequency: float = 0.0    # Dominant frequency of the frame (flux events only)

    @property
    def is_band_event(self) -> bool:
        return self.stream_id != FLUX_STREAM
