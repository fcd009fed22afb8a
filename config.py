# beatdetect Configuration
# All default values and constants

from dataclasses import dataclass, field, is_dataclass
from enum import IntEnum

from logging_utils import log_event


CURRENT_CONFIG_VERSION = 1


class ConfigError(ValueError):
    """Raised when a configuration cannot drive the detector."""


class DetectionStrategy(IntEnum):
    BANDS = 1              # Seven-band running-max hysteresis
    FLUX = 2               # Smoothed spectral flux with minimum gap
    BOTH = 3               # Run both on the same spectrum


class EmptyBandPolicy(IntEnum):
    """What to do with a band that maps to no FFT bins at this resolution"""
    NEAREST = 1            # Use the single bin nearest the band centre
    SKIP = 2               # No beat logic for that band


class FftBackend(IntEnum):
    NUMPY = 1
    SCIPY = 2


@dataclass
class AnalyzerConfig:
    """Frame geometry and transform settings"""
    sample_rate: int = 44100          # Hz
    frame_size: int = 1024            # Samples per frame, power of two (1024 or 2048 typical)
    fft_backend: FftBackend = FftBackend.NUMPY


@dataclass
class BandEngineConfig:
    """Frequency-band engine tunables"""
    beat_threshold: float = 0.9       # Fire when value >= running_max * this
    reset_threshold: float = 0.3      # Re-arm when value < running_max * this
    running_max_floor: float = 10.0   # Initial running max per band
    empty_band_policy: EmptyBandPolicy = EmptyBandPolicy.NEAREST


@dataclass
class FluxEngineConfig:
    """Spectral-flux engine tunables"""
    flux_threshold: float = 7.0       # Smoothed flux must exceed this
    min_gap_seconds: float = 0.2      # Minimum time between flux onsets
    history_size: int = 10            # Frames averaged for smoothed flux
    normalize: bool = True            # Scale spectrum by 1/max when max > 1.0
    hold_initial_onset: bool = True   # False: an onset may fire before min_gap_seconds have elapsed


@dataclass
class PlaybackConfig:
    """File playback / audio device settings"""
    device: int | None = None         # sounddevice output index, None = system default
    latency: str = "low"              # sounddevice latency hint
    queue_maxsize: int = 256          # Pending beat events between audio and console threads


@dataclass
class Config:
    """Master configuration"""
    version: int = 1                  # Schema version for persisted configs
    strategy: DetectionStrategy = DetectionStrategy.BANDS
    analyzer: AnalyzerConfig = field(default_factory=AnalyzerConfig)
    bands: BandEngineConfig = field(default_factory=BandEngineConfig)
    flux: FluxEngineConfig = field(default_factory=FluxEngineConfig)
    playback: PlaybackConfig = field(default_factory=PlaybackConfig)

    # Global
    log_level: str = "INFO"           # Logging level (DEBUG/INFO/WARNING/ERROR)
    report_generation_enabled: bool = True    # Write session summaries when a report dir is given


def apply_dict_to_dataclass(target, data) -> None:
    """Recursively apply values from a dict onto a dataclass instance.
    Unknown keys are ignored; IntEnum fields are coerced when possible."""
    if not isinstance(data, dict):
        return

    for key, value in data.items():
        if not hasattr(target, key):
            continue

        current = getattr(target, key)

        if is_dataclass(current):
            if isinstance(value, dict):
                apply_dict_to_dataclass(current, value)
            else:
                log_event("WARN", "Config", "Section is not an object, keeping defaults",
                          key=key, value=value)
            continue

        if isinstance(current, IntEnum):
            try:
                setattr(target, key, current.__class__(value))
            except (TypeError, ValueError):
                log_event("WARN", "Config", "Could not convert value, keeping default",
                          key=key, enum=current.__class__.__name__, value=value)
            continue

        setattr(target, key, value)


def migrate_config(config: Config, loaded_version) -> None:
    """Upgrade older config structures to the current schema.
    Files older than CURRENT_CONFIG_VERSION (or unversioned) get missing
    (None) values replaced with defaults; the version is always bumped."""
    if isinstance(loaded_version, int) and loaded_version >= CURRENT_CONFIG_VERSION:
        config.version = CURRENT_CONFIG_VERSION
        return

    defaults = Config()
    for section in ("analyzer", "bands", "flux", "playback"):
        current = getattr(config, section)
        default_section = getattr(defaults, section)
        for name in vars(default_section):
            if name == "device":
                continue  # None is a legitimate value (system default device)
            if getattr(current, name) is None:
                setattr(current, name, getattr(default_section, name))

    if getattr(config, 'log_level', None) is None:
        config.log_level = defaults.log_level
    if getattr(config, 'report_generation_enabled', None) is None:
        config.report_generation_enabled = True

    config.version = CURRENT_CONFIG_VERSION


def _is_power_of_two(n: int) -> bool:
    return n > 0 and (n & (n - 1)) == 0


def _check_types(section, name: str, types: tuple) -> None:
    value = getattr(section, name)
    # bool is an int subclass but never a valid number here
    if isinstance(value, bool) or not isinstance(value, types):
        raise ConfigError(f"{name} must be {' or '.join(t.__name__ for t in types)}, got {value!r}")


def validate_config(config: Config) -> None:
    """Raise ConfigError when the config cannot drive a detector."""
    a = config.analyzer
    for name in ("sample_rate", "frame_size"):
        _check_types(a, name, (int,))
    if a.sample_rate <= 0:
        raise ConfigError(f"sample_rate must be a positive integer, got {a.sample_rate!r}")
    if not _is_power_of_two(a.frame_size):
        raise ConfigError(f"frame_size must be a power of two, got {a.frame_size!r}")
    if a.frame_size < 2:
        raise ConfigError("frame_size must be at least 2")

    b = config.bands
    for name in ("beat_threshold", "reset_threshold", "running_max_floor"):
        _check_types(b, name, (int, float))
    f = config.flux
    for name in ("flux_threshold", "min_gap_seconds"):
        _check_types(f, name, (int, float))
    _check_types(f, "history_size", (int,))
    if not isinstance(f.normalize, bool) or not isinstance(f.hold_initial_onset, bool):
        raise ConfigError("normalize and hold_initial_onset must be true or false")
    _check_types(config.playback, "queue_maxsize", (int,))

    if b.running_max_floor <= 0:
        raise ConfigError("running_max_floor must be positive")
    if not 0 <= b.reset_threshold <= b.beat_threshold:
        raise ConfigError(
            f"reset_threshold ({b.reset_threshold}) must be within [0, beat_threshold ({b.beat_threshold})]"
        )

    if f.history_size < 1:
        raise ConfigError("history_size must be at least 1")
    if f.min_gap_seconds < 0:
        raise ConfigError("min_gap_seconds must not be negative")


# Band marker strings used when rendering band events on the console
BAND_MARKERS = {
    'sub_bass': '>',
    'bass': '>>',
    'low_mid': '>>>',
    'mid': '>>>>',
    'upper_mid': '>>>>>',
    'presence': '>>>>>>',
    'brilliance': '>>>>>>>',
}
FLUX_MARKER = '*'
