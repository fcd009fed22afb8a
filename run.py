#!/usr/bin/env python3
"""
beatdetect - Real-time beat/onset detection

Plays an audio file and prints a line for every detected beat, either per
frequency band, from spectral flux, or both.
"""

import argparse
import cProfile
import sys
from pathlib import Path

import soundfile as sf

from config import Config, ConfigError, DetectionStrategy, validate_config
from config_persistence import load_config, save_config
from list_audio_devices import print_output_devices
from logging_utils import log_event, set_log_level
from playback import PlaybackError, analyze_file, play_file, render_event

STRATEGY_CHOICES = {
    'bands': DetectionStrategy.BANDS,
    'flux': DetectionStrategy.FLUX,
    'both': DetectionStrategy.BOTH,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="beatdetect", description="Detect beats in an audio file while it plays")
    parser.add_argument("file", type=Path, nargs="?", help="Audio file to analyze (anything libsndfile reads)")
    parser.add_argument("--strategy", choices=sorted(STRATEGY_CHOICES), default=None,
                        help="Detection strategy (default: from config, 'bands')")
    parser.add_argument("--frame-size", type=int, default=None,
                        help="Samples per analysis frame, power of two (default: 1024)")
    parser.add_argument("--device", type=int, default=None, help="Output device index (see --list-devices)")
    parser.add_argument("--list-devices", action="store_true", help="List output devices and exit")
    parser.add_argument("--no-playback", action="store_true",
                        help="Analyze without an audio device and print all events")
    parser.add_argument("--config", type=Path, default=None,
                        help="JSON config file (default: built-in defaults)")
    parser.add_argument("--save-config", action="store_true",
                        help="Write the effective config back to --config (or ~/.beatdetect/config.json)")
    parser.add_argument("--log-level", default=None, help="DEBUG/INFO/WARNING/ERROR")
    parser.add_argument("--report-dir", type=Path, default=None,
                        help="Directory for JSON/CSV session summaries")
    parser.add_argument(
        "--profile",
        action="store_true",
        help="Enable cProfile and save stats to --profile-out",
    )
    parser.add_argument(
        "--profile-out",
        default="profile.prof",
        help="Path to save cProfile stats (default: profile.prof)",
    )
    return parser


def resolve_config(args: argparse.Namespace) -> Config:
    config = load_config(args.config) if args.config is not None else Config()
    if args.strategy is not None:
        config.strategy = STRATEGY_CHOICES[args.strategy]
    if args.frame_size is not None:
        config.analyzer.frame_size = args.frame_size
    if args.device is not None:
        config.playback.device = args.device
    if args.log_level is not None:
        config.log_level = args.log_level.upper()
    return config


def run_app(args: argparse.Namespace) -> int:
    if args.list_devices:
        try:
            print_output_devices()
        except OSError as e:
            log_event("ERROR", "App", "Audio devices unavailable", error=e)
            return 1
        return 0
    if args.file is None:
        log_event("ERROR", "App", "No audio file given")
        return 2

    config = resolve_config(args)
    set_log_level(config.log_level)

    try:
        validate_config(config)
    except ConfigError as e:
        log_event("ERROR", "App", "Invalid configuration", error=e)
        return 2

    if args.save_config:
        save_config(config, args.config)

    try:
        if args.no_playback:
            events = analyze_file(args.file, config, report_dir=args.report_dir)
            for event in events:
                print(render_event(event))
            log_event("INFO", "App", "Analysis complete", events=len(events))
        else:
            count = play_file(args.file, config, report_dir=args.report_dir)
            log_event("INFO", "App", "Playback complete", events=count)
    except (sf.LibsndfileError, PlaybackError, OSError) as e:
        log_event("ERROR", "App", "Audio I/O failed", file=args.file, error=e)
        return 1
    except KeyboardInterrupt:
        log_event("INFO", "App", "Interrupted")
        return 130
    return 0


def main(argv: list[str] | None = None) -> None:
    args = build_parser().parse_args(argv)

    if args.profile:
        profiler = cProfile.Profile()
        profiler.enable()
        exit_code = run_app(args)
        profiler.disable()
        profiler.dump_stats(args.profile_out)
    else:
        exit_code = run_app(args)

    sys.exit(exit_code)


if __name__ == "__main__":
    main()
