"""
Command line entry point.

    tension-meter listen --gauge 1.25 --head-size 100
    tension-meter analyze pluck.wav --pattern 18x20
    tension-meter tension --frequency 420
    tension-meter strings --brand Luxilon
"""

import argparse
import logging
import sys
import threading
from pathlib import Path
from typing import Sequence

import numpy as np
from scipy.io import wavfile

from . import __version__
from .analyzer import TensionAnalyzer, TickEvent, replay
from .config import AnalyzerConfig, load_config
from .constants import (
    DEFAULT_GAUGE_MM,
    DEFAULT_HEAD_SIZE_SQ_IN,
    DEFAULT_MATERIAL,
    DEFAULT_PATTERN,
    MATERIAL_DENSITIES,
)
from .lock_in import LockState, status_message
from .string_database import DEFAULT_DATABASE, StringDatabase, load_string_database
from .string_physics import StringProfile, compute_tension

logger = logging.getLogger(__name__)

LOG_LEVELS: dict[str, int] = {
    "critical": logging.CRITICAL,
    "error": logging.ERROR,
    "warning": logging.WARNING,
    "info": logging.INFO,
    "debug": logging.DEBUG,
}


def configure_logging(
    level_name: str,
    fmt: str = "%(asctime)s | %(levelname)-8s | %(name)s | %(message)s",
    datefmt: str = "%H:%M:%S",
) -> None:
    """
    Configure root logging to stderr.

    Args:
        level_name: Logging level (debug, info, warning, error, critical)
        fmt: Log message format
        datefmt: Date/time format
    """
    level = LOG_LEVELS.get(level_name.lower())
    if level is None:
        valid = ", ".join(sorted(LOG_LEVELS))
        raise ValueError(f"Invalid log level '{level_name}'. Choose from: {valid}")

    root = logging.getLogger()
    for handler in list(root.handlers):
        root.removeHandler(handler)
        handler.close()
    root.setLevel(level)

    handler = logging.StreamHandler()
    handler.setFormatter(logging.Formatter(fmt=fmt, datefmt=datefmt))
    root.addHandler(handler)


def load_wav(path: str | Path) -> tuple[np.ndarray, int]:
    """
    Read a WAV file as mono float samples in [-1, 1].

    Returns:
        (samples, sample_rate)
    """
    sample_rate, data = wavfile.read(path)
    if data.dtype == np.uint8:
        # 8-bit PCM is unsigned, centred on 128
        data = (data.astype(np.float32) - 128) / 128
    elif np.issubdtype(data.dtype, np.integer):
        data = data / float(np.iinfo(data.dtype).max)
    if data.ndim > 1:
        data = data.mean(axis=1)
    return data.astype(np.float32), int(sample_rate)


def _add_profile_args(parser: argparse.ArgumentParser):
    group = parser.add_argument_group("string setup")
    group.add_argument("--material", default=DEFAULT_MATERIAL, choices=sorted(MATERIAL_DENSITIES))
    group.add_argument("--gauge", type=float, default=DEFAULT_GAUGE_MM,
                       help="diameter in mm or gauge number (e.g. 16, 16.5)")
    group.add_argument("--head-size", type=float, default=DEFAULT_HEAD_SIZE_SQ_IN,
                       help="head size in square inches")
    group.add_argument("--pattern", default=DEFAULT_PATTERN, help="mains x crosses")
    group.add_argument("--string", dest="string_key", default="",
                       help='reference string as "Brand|Name"')
    group.add_argument("--length-mm", type=float, default=None,
                       help="measured vibrating length, overrides head size")


def _add_session_args(parser: argparse.ArgumentParser):
    parser.add_argument("--config", type=Path, help="JSON file with analyzer settings")
    parser.add_argument("--lock-count", type=int)
    parser.add_argument("--lock-tolerance", type=float)
    parser.add_argument("--min-rms", type=float, dest="min_signal_rms")
    parser.add_argument("--interval", type=float, dest="detection_interval",
                        help="seconds between detection ticks")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="tension-meter",
        description="Measure string tension from the sound of a plucked string.",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--log-level", default="warning", choices=sorted(LOG_LEVELS))
    parser.add_argument("--strings-file", type=Path,
                        help="CSV string table to use instead of the built-in one")
    sub = parser.add_subparsers(dest="command", required=True)

    listen = sub.add_parser("listen", help="measure from the microphone")
    _add_profile_args(listen)
    _add_session_args(listen)
    listen.add_argument("--device", help="input device index or name")
    listen.add_argument("--timeout", type=float, default=60.0,
                        help="give up after this many seconds")

    analyze = sub.add_parser("analyze", help="measure from a WAV recording")
    analyze.add_argument("wav", type=Path)
    _add_profile_args(analyze)
    _add_session_args(analyze)

    calc = sub.add_parser("tension", help="tension for a known frequency")
    calc.add_argument("--frequency", type=float, required=True, help="Hz")
    _add_profile_args(calc)

    strings = sub.add_parser("strings", help="list the reference string table")
    strings.add_argument("--brand")

    return parser


def _profile_from_args(args: argparse.Namespace) -> StringProfile:
    return StringProfile(
        material=args.material,
        gauge=args.gauge,
        head_size_sq_in=args.head_size,
        pattern=args.pattern,
        string_key=args.string_key,
        measured_length_mm=args.length_mm,
    )


def _config_from_args(args: argparse.Namespace) -> AnalyzerConfig:
    config = load_config(args.config) if args.config else AnalyzerConfig()
    return config.with_overrides(
        lock_count=args.lock_count,
        lock_tolerance=args.lock_tolerance,
        min_signal_rms=args.min_signal_rms,
        detection_interval=args.detection_interval,
    )


def _print_result(frequency: float, profile: StringProfile, database: StringDatabase):
    result = compute_tension(profile, frequency, database)
    print(f"{frequency:.1f} Hz  ->  {result.lbs:.1f} lbs ({result.newtons:.1f} N)")


def _print_event(event: TickEvent, lock_count: int):
    if event.state == LockState.LOCKED or event.frequency is None:
        return
    line = f"{event.frequency:7.1f} Hz  {status_message(len(event.readings), True, lock_count)}"
    if event.tension is not None:
        line += f"  ({event.tension.lbs:.1f} lbs)"
    if not event.counted:
        line += "  [ignored]"
    print(line, flush=True)


def _cmd_listen(args: argparse.Namespace, database: StringDatabase) -> int:
    config = _config_from_args(args)
    if args.device is not None:
        device = int(args.device) if args.device.isdigit() else args.device
        config = config.with_overrides(input_device=device)
    profile = _profile_from_args(args)

    analyzer = TensionAnalyzer(config, profile=profile, database=database)
    locked = threading.Event()

    def on_tick(event: TickEvent):
        _print_event(event, config.lock_count)
        if event.state == LockState.LOCKED:
            locked.set()

    analyzer.add_listener(on_tick)
    if not analyzer.start():
        print(analyzer.error, file=sys.stderr)
        return 1

    print(status_message(0, False, config.lock_count), flush=True)
    try:
        locked.wait(args.timeout)
    except KeyboardInterrupt:
        pass
    finally:
        frequency = analyzer.locked_frequency
        analyzer.stop()

    if frequency is None:
        print("No stable reading", file=sys.stderr)
        return 1
    _print_result(frequency, profile, database)
    return 0


def _cmd_analyze(args: argparse.Namespace, database: StringDatabase) -> int:
    config = _config_from_args(args)
    profile = _profile_from_args(args)
    samples, sample_rate = load_wav(args.wav)
    logger.info("Loaded %d samples at %d Hz from %s", len(samples), sample_rate, args.wav)

    events = replay(samples, sample_rate, config, profile=profile, database=database)
    for event in events:
        _print_event(event, config.lock_count)

    if not events or events[-1].locked_frequency is None:
        print("No stable reading", file=sys.stderr)
        return 1
    _print_result(events[-1].locked_frequency, profile, database)
    return 0


def _cmd_tension(args: argparse.Namespace, database: StringDatabase) -> int:
    _print_result(args.frequency, _profile_from_args(args), database)
    return 0


def _cmd_strings(args: argparse.Namespace, database: StringDatabase) -> int:
    brands = [args.brand] if args.brand else database.brands()
    for brand in brands:
        for model in database.models_for_brand(brand):
            gauges = ", ".join(f"{g.mm:.2f}mm={g.linear_density_g_m:.2f}g/m" for g in model.gauges)
            print(f"{model.key:<32} {model.material:<14} {gauges}")
    return 0


COMMANDS = {
    "listen": _cmd_listen,
    "analyze": _cmd_analyze,
    "tension": _cmd_tension,
    "strings": _cmd_strings,
}


def main(argv: Sequence[str] | None = None) -> int:
    """Main entry point for the tension meter CLI."""
    args = build_parser().parse_args(argv)
    configure_logging(args.log_level)

    database = load_string_database(args.strings_file) if args.strings_file else DEFAULT_DATABASE
    return COMMANDS[args.command](args, database)


if __name__ == "__main__":
    sys.exit(main())
