"""
beatdetect - Playback
Plays an audio file while the beat detector observes every block.
Samples reach the output device exactly as decoded; the detector only
sees a mono mixdown.
"""

import queue
import threading
from pathlib import Path
from typing import Callable

import numpy as np
import soundfile as sf

from beat_detector import BeatDetector
from beat_event import BeatEvent
from config import BAND_MARKERS, FLUX_MARKER, Config
from logging_utils import log_event


class PlaybackError(RuntimeError):
    """Audio output device could not be opened or failed mid-stream."""


def render_event(event: BeatEvent) -> str:
    """Console line for one event: band markers grow with frequency, flux uses '*'."""
    if event.is_band_event:
        marker = BAND_MARKERS.get(event.stream_id, event.stream_id)
        return f"{marker:<8} {event.timestamp:8.3f}s  {event.stream_id}"
    return (
        f"{FLUX_MARKER:<8} {event.timestamp:8.3f}s  flux={event.value:.2f} "
        f"smoothed={event.smoothed:.2f} freq={event.frequency:.0f}Hz"
    )


class BeatTap:
    """Reads one frame-sized block per call and lets the detector observe it.

    Events are published to ``events`` (a thread-safe queue) when given, so the
    audio thread never blocks on the consumer.
    """

    def __init__(self, sound_file: sf.SoundFile, detector: BeatDetector,
                 events: "queue.Queue[BeatEvent] | None" = None):
        self.sound_file = sound_file
        self.detector = detector
        self.events = events
        self.frame_size = detector.frame_size
        self.last_events: list[BeatEvent] = []
        self.dropped_events = 0

    def read_block(self) -> np.ndarray | None:
        """Next block as (frames, channels) float32, or None at end of file."""
        block = self.sound_file.read(self.frame_size, dtype='float32', always_2d=True)
        if len(block) == 0:
            self.last_events = []
            return None

        if block.shape[1] > 1:
            mono = np.mean(block, axis=1)
        else:
            mono = block[:, 0]
        if len(mono) < self.frame_size:
            # Short final block: pad the analysis copy only
            mono = np.pad(mono, (0, self.frame_size - len(mono)))

        self.last_events = self.detector.process(mono)
        if self.events is not None:
            for event in self.last_events:
                self._publish(event)
        return block

    def _publish(self, event: BeatEvent) -> None:
        try:
            self.events.put_nowait(event)
        except queue.Full:
            self.dropped_events += 1
            log_event("DEBUG", "Playback", "Event queue full, dropping event", stream=event.stream_id)


def analyze_file(path: Path, config: Config, report_dir: Path | None = None) -> list[BeatEvent]:
    """Run the detector over a whole file without an audio device."""
    events: list[BeatEvent] = []
    with sf.SoundFile(str(path)) as f:
        config.analyzer.sample_rate = f.samplerate
        detector = BeatDetector(config, report_dir=report_dir)
        log_event("INFO", "Playback", "Analyzing", file=Path(path).name,
                  sample_rate=f.samplerate, channels=f.channels, frames=f.frames)
        tap = BeatTap(f, detector)
        while tap.read_block() is not None:
            events.extend(tap.last_events)
        detector.stop()
    return events


def play_file(path: Path, config: Config, report_dir: Path | None = None,
              render: Callable[[str], None] = print) -> int:
    """Play ``path`` on the output device, rendering events as they arrive. Returns the event count."""
    # Imported here: PortAudio is only needed for audible playback, not headless analysis
    import sounddevice as sd

    event_queue: "queue.Queue[BeatEvent]" = queue.Queue(maxsize=config.playback.queue_maxsize)
    finished = threading.Event()
    rendered = 0

    with sf.SoundFile(str(path)) as f:
        # Update config with the file's actual sample rate
        config.analyzer.sample_rate = f.samplerate
        detector = BeatDetector(config, report_dir=report_dir)
        tap = BeatTap(f, detector, event_queue)

        def callback(outdata, frames, time_info, status):
            if status:
                log_event("WARN", "Playback", "Stream status", status=status)
            block = tap.read_block()
            if block is None:
                outdata.fill(0)
                raise sd.CallbackStop
            n = len(block)
            outdata[:n] = block
            if n < frames:
                outdata[n:] = 0
                raise sd.CallbackStop

        try:
            stream = sd.OutputStream(
                samplerate=f.samplerate,
                blocksize=detector.frame_size,
                channels=f.channels,
                dtype='float32',
                device=config.playback.device,
                latency=config.playback.latency,
                callback=callback,
                finished_callback=finished.set,
            )
        except sd.PortAudioError as e:
            raise PlaybackError(f"Could not open output device: {e}") from e

        log_event("INFO", "Playback", "Playing", file=Path(path).name,
                  sample_rate=f.samplerate, channels=f.channels)
        try:
            with stream:
                while not finished.is_set() or not event_queue.empty():
                    try:
                        event = event_queue.get(timeout=0.1)
                    except queue.Empty:
                        continue
                    render(render_event(event))
                    rendered += 1
        finally:
            if tap.dropped_events:
                log_event("WARN", "Playback", "Events dropped (consumer too slow)", dropped=tap.dropped_events)
            detector.stop()

    return rendered
