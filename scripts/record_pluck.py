"""
Record a plucked string for tension testing and analysis.

Records a few seconds of audio while the string is plucked, replays the
recording through the detector and writes a report with the per-tick
estimates, the locked frequency and the resulting tension.

Usage:
    python scripts/record_pluck.py [--gauge 1.25] [--head-size 100] [--pattern 16x19]

Output files (in current directory):
    pluck_<timestamp>.npy     - Recording (48 kHz mono float)
    report_<timestamp>.json   - Analysis report
"""

import argparse
import json
import time
from datetime import datetime
from pathlib import Path

import numpy as np

from tension_meter.analyzer import replay
from tension_meter.lock_in import LockState
from tension_meter.string_physics import StringProfile, compute_tension

SAMPLE_RATE = 48000


def countdown(seconds: int = 3) -> None:
    """Countdown before recording."""
    for i in range(seconds, 0, -1):
        print(f"{i}...", end=" ", flush=True)
        time.sleep(1)
    print("PLUCK!")


def record_audio(duration: float, sample_rate: int = SAMPLE_RATE) -> np.ndarray:
    """Record mono audio for the given duration.

    Args:
        duration: Recording duration in seconds
        sample_rate: Audio sample rate

    Returns:
        Recorded audio as numpy array
    """
    import sounddevice as sd

    num_samples = int(duration * sample_rate)
    print(f"Recording {duration}s at {sample_rate}Hz...")

    audio = sd.rec(num_samples, samplerate=sample_rate, channels=1, dtype='float32')
    sd.wait()

    return audio.flatten()


def analyze_recording(audio: np.ndarray, profile: StringProfile, sample_rate: int = SAMPLE_RATE) -> dict:
    """Replay a recording through the detector.

    Returns:
        Dictionary with per-tick estimates and the locked result
    """
    events = replay(audio, sample_rate, profile=profile)
    ticks = [
        {
            "frequency_hz": e.frequency,
            "counted": e.counted,
            "readings": len(e.readings),
            "tension_lbs": e.tension.lbs if e.tension else None,
        }
        for e in events
    ]

    results = {"ticks": ticks, "locked": None}
    if events and events[-1].state == LockState.LOCKED:
        frequency = events[-1].locked_frequency
        result = compute_tension(profile, frequency)
        results["locked"] = {
            "frequency_hz": frequency,
            "tension_lbs": result.lbs,
            "tension_n": result.newtons,
        }
    return results


def print_report_summary(report: dict) -> None:
    """Print a human-readable summary of the report."""
    print("\n" + "=" * 60)
    print("PLUCK ANALYSIS REPORT")
    print("=" * 60)

    print(f"\nTimestamp: {report['timestamp']}")
    profile = report["profile"]
    print(f"String: {profile['material']} {profile['gauge']} on {profile['head_size_sq_in']} sq in, "
          f"{profile['pattern']}")

    estimates = [t["frequency_hz"] for t in report["ticks"] if t["frequency_hz"] is not None]
    print(f"\nTicks: {len(report['ticks'])}, with estimate: {len(estimates)}")
    if estimates:
        print(f"  Spread: {min(estimates):.1f} - {max(estimates):.1f} Hz")

    locked = report["locked"]
    if locked:
        print(f"\nLocked: {locked['frequency_hz']:.1f} Hz")
        print(f"Tension: {locked['tension_lbs']:.1f} lbs ({locked['tension_n']:.1f} N)")
    else:
        print("\nNo stable reading")

    print("\n" + "=" * 60)


def main():
    """Main recording and analysis workflow."""
    parser = argparse.ArgumentParser(description="Record and analyze a plucked string")
    parser.add_argument("--duration", type=float, default=4.0)
    parser.add_argument("--material", default="Polyester")
    parser.add_argument("--gauge", type=float, default=1.25)
    parser.add_argument("--head-size", type=float, default=100.0)
    parser.add_argument("--pattern", default="16x19")
    args = parser.parse_args()

    profile = StringProfile(
        material=args.material,
        gauge=args.gauge,
        head_size_sq_in=args.head_size,
        pattern=args.pattern,
    )
    timestamp = datetime.now().strftime("%Y%m%d_%H%M%S")

    input("\nPress Enter, then pluck the string when prompted...")
    countdown()
    audio = record_audio(args.duration)

    recording_file = Path(f"pluck_{timestamp}.npy")
    np.save(recording_file, audio)
    print(f"Saved: {recording_file} ({len(audio)} samples, {len(audio)/SAMPLE_RATE:.1f}s)")

    print("\nAnalyzing recording...")
    analysis = analyze_recording(audio, profile)

    report = {
        "timestamp": datetime.now().isoformat(),
        "sample_rate": SAMPLE_RATE,
        "file": str(recording_file),
        "profile": {
            "material": profile.material,
            "gauge": profile.gauge,
            "head_size_sq_in": profile.head_size_sq_in,
            "pattern": profile.pattern,
        },
        **analysis,
    }

    report_file = f"report_{timestamp}.json"
    with open(report_file, 'w') as f:
        json.dump(report, f, indent=2)
    print(f"\nReport saved: {report_file}")

    print_report_summary(report)


if __name__ == "__main__":
    main()
