import json
import queue
import tempfile
import unittest
from pathlib import Path
from unittest import mock

import numpy as np
import soundfile as sf

import run
from beat_detector import BeatDetector
from beat_event import BeatEvent
from config import Config, DetectionStrategy
from playback import BeatTap, analyze_file, render_event

SAMPLE_RATE = 44100
FRAME_SIZE = 1024


def bass_frame(magnitude=100.0) -> np.ndarray:
    n = np.arange(FRAME_SIZE)
    return (2.0 * magnitude / FRAME_SIZE * np.cos(2 * np.pi * 3 * n / FRAME_SIZE)).astype(np.float32)


def write_test_file(path: Path, channels: int = 2, tail: int = 0) -> np.ndarray:
    """20 silent frames, bass hit, 5 silent frames, bass hit, plus an optional short tail."""
    silent = np.zeros(FRAME_SIZE, dtype=np.float32)
    mono = np.concatenate([silent] * 20 + [bass_frame()] + [silent] * 5 + [bass_frame()]
                          + [np.zeros(tail, dtype=np.float32)])
    data = np.repeat(mono[:, None], channels, axis=1)
    sf.write(str(path), data, SAMPLE_RATE, subtype='FLOAT')
    return data


class TestRenderEvent(unittest.TestCase):
    def test_band_markers(self):
        self.assertTrue(render_event(BeatEvent('sub_bass', 1.0)).startswith('> '))
        self.assertTrue(render_event(BeatEvent('bass', 1.0)).startswith('>> '))
        self.assertTrue(render_event(BeatEvent('brilliance', 1.0)).startswith('>>>>>>> '))
        self.assertIn('1.000s', render_event(BeatEvent('mid', 1.0)))

    def test_flux_line(self):
        line = render_event(BeatEvent('flux', 0.5, value=12.0, smoothed=8.5, frequency=440.0))
        self.assertTrue(line.startswith('*'))
        self.assertIn('flux=12.00', line)
        self.assertIn('smoothed=8.50', line)
        self.assertIn('440Hz', line)


class TestBeatTap(unittest.TestCase):
    def test_blocks_pass_through_unmodified(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "beats.wav"
            data = write_test_file(path, channels=2, tail=100)

            config = Config()
            events_q: "queue.Queue[BeatEvent]" = queue.Queue()
            with sf.SoundFile(str(path)) as f:
                tap = BeatTap(f, BeatDetector(config), events_q)
                blocks = []
                while True:
                    block = tap.read_block()
                    if block is None:
                        break
                    blocks.append(block.copy())

            np.testing.assert_array_equal(np.concatenate(blocks), data)
            # Short tail block is passed on at its real length
            self.assertEqual(len(blocks[-1]), 100)

            published = []
            while not events_q.empty():
                published.append(events_q.get_nowait())
            self.assertEqual([e.stream_id for e in published], ['bass', 'bass'])

    def test_full_queue_drops_instead_of_blocking(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "beats.wav"
            write_test_file(path, channels=1)
            events_q: "queue.Queue[BeatEvent]" = queue.Queue(maxsize=1)
            with sf.SoundFile(str(path)) as f:
                tap = BeatTap(f, BeatDetector(Config()), events_q)
                while tap.read_block() is not None:
                    pass
            self.assertEqual(events_q.qsize(), 1)
            self.assertEqual(tap.dropped_events, 1)


class TestAnalyzeFile(unittest.TestCase):
    def test_analyze_file_finds_bass_hits(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "beats.wav"
            write_test_file(path)
            config = Config()
            events = analyze_file(path, config)

        self.assertEqual([e.stream_id for e in events], ['bass', 'bass'])
        self.assertAlmostEqual(events[0].timestamp, 20 * FRAME_SIZE / SAMPLE_RATE)
        self.assertAlmostEqual(events[1].timestamp, 26 * FRAME_SIZE / SAMPLE_RATE)

    def test_analyze_file_uses_file_sample_rate(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "quiet.wav"
            sf.write(str(path), np.zeros(4096, dtype=np.float32), 22050, subtype='FLOAT')
            config = Config()
            config.strategy = DetectionStrategy.BOTH
            self.assertEqual(analyze_file(path, config), [])
            self.assertEqual(config.analyzer.sample_rate, 22050)


class TestCommandLine(unittest.TestCase):
    def test_no_playback_run_prints_events(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "beats.wav"
            write_test_file(path)
            with mock.patch("builtins.print") as print_mock:
                with self.assertRaises(SystemExit) as ctx:
                    run.main([str(path), "--no-playback", "--strategy", "both"])
            self.assertEqual(ctx.exception.code, 0)
            lines = [c.args[0] for c in print_mock.call_args_list]
            self.assertEqual(sum(1 for line in lines if line.startswith('>> ')), 2)

    def test_invalid_frame_size_exits_2(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "beats.wav"
            write_test_file(path)
            with self.assertRaises(SystemExit) as ctx:
                run.main([str(path), "--no-playback", "--frame-size", "1000"])
            self.assertEqual(ctx.exception.code, 2)

    def test_mistyped_config_file_exits_2(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            path = Path(tmpdir) / "beats.wav"
            write_test_file(path)
            cfg_file = Path(tmpdir) / "bad.json"
            with open(cfg_file, "w", encoding="utf-8") as f:
                json.dump({"version": 1, "flux": {"history_size": "10"}}, f)
            with self.assertRaises(SystemExit) as ctx:
                run.main([str(path), "--no-playback", "--config", str(cfg_file)])
            self.assertEqual(ctx.exception.code, 2)

    def test_list_devices(self):
        with mock.patch("run.print_output_devices") as list_mock:
            with self.assertRaises(SystemExit) as ctx:
                run.main(["--list-devices"])
        self.assertEqual(ctx.exception.code, 0)
        list_mock.assert_called_once()

    def test_missing_file_argument_exits_2(self):
        with self.assertRaises(SystemExit) as ctx:
            run.main(["--no-playback"])
        self.assertEqual(ctx.exception.code, 2)

    def test_missing_file_exits_1(self):
        with tempfile.TemporaryDirectory() as tmpdir:
            with self.assertRaises(SystemExit) as ctx:
                run.main([str(Path(tmpdir) / "missing.wav"), "--no-playback"])
            self.assertEqual(ctx.exception.code, 1)


if __name__ == "__main__":
    unittest.main()
