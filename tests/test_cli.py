"""Tests for the command line interface."""

import logging

import numpy as np
import pytest
from scipy.io import wavfile

from tension_meter.cli import build_parser, configure_logging, load_wav, main


def write_tone(path, frequency, seconds, sample_rate=44100, amplitude=0.3, stereo=False):
    t = np.arange(int(seconds * sample_rate)) / sample_rate
    data = (amplitude * 32767 * np.sin(2 * np.pi * frequency * t)).astype(np.int16)
    if stereo:
        data = np.column_stack([data, data])
    wavfile.write(path, sample_rate, data)


class TestTensionCommand:

    def test_prints_tension(self, capsys):
        assert main(["tension", "--frequency", "420"]) == 0

        out = capsys.readouterr().out
        assert "420.0 Hz" in out
        assert "29.5 lbs" in out

    def test_measured_length(self, capsys):
        main(["tension", "--frequency", "420", "--length-mm", "320"])

        assert "420.0 Hz" in capsys.readouterr().out


class TestStringsCommand:

    def test_lists_brand(self, capsys):
        assert main(["strings", "--brand", "Toroline"]) == 0

        lines = capsys.readouterr().out.splitlines()
        assert len(lines) == 9
        assert any(line.startswith("Toroline|Caviar") for line in lines)

    def test_custom_table(self, tmp_path, capsys):
        path = tmp_path / "strings.csv"
        path.write_text("Acme,Spin,Polyester,1.25,1.50\n", encoding="utf-8")

        main(["--strings-file", str(path), "strings"])

        out = capsys.readouterr().out
        assert "Acme|Spin" in out
        assert "Luxilon" not in out


class TestAnalyzeCommand:
    """Tests for measuring from recordings."""

    def test_locks_on_recording(self, tmp_path, capsys):
        path = tmp_path / "pluck.wav"
        write_tone(path, 420.0, 3.0)

        assert main(["analyze", str(path)]) == 0

        out = capsys.readouterr().out
        assert "Locking in..." in out
        result = out.strip().splitlines()[-1]
        assert "lbs" in result
        assert float(result.split()[0]) == pytest.approx(420.0, abs=0.5)

    def test_silent_recording(self, tmp_path, capsys):
        path = tmp_path / "silence.wav"
        wavfile.write(path, 44100, np.zeros(44100, dtype=np.int16))

        assert main(["analyze", str(path)]) == 1
        assert "No stable reading" in capsys.readouterr().err

    def test_load_wav_stereo(self, tmp_path):
        path = tmp_path / "stereo.wav"
        write_tone(path, 300.0, 0.5, stereo=True)

        samples, sample_rate = load_wav(path)

        assert sample_rate == 44100
        assert samples.ndim == 1
        assert samples.dtype == np.float32
        assert np.max(np.abs(samples)) == pytest.approx(0.3, abs=0.01)


    def test_load_wav_8bit_is_centred(self, tmp_path):
        """Unsigned 8-bit silence decodes to zero, not a DC offset."""
        path = tmp_path / "silence8.wav"
        wavfile.write(path, 8000, np.full(8000, 128, dtype=np.uint8))

        samples, _ = load_wav(path)

        assert np.max(np.abs(samples)) == 0.0

    def test_silent_8bit_recording(self, tmp_path, capsys):
        path = tmp_path / "silence8.wav"
        wavfile.write(path, 44100, np.full(44100, 128, dtype=np.uint8))

        assert main(["analyze", str(path)]) == 1
        assert "[ignored]" not in capsys.readouterr().out


class TestParser:

    def test_session_overrides(self):
        args = build_parser().parse_args(["analyze", "x.wav", "--lock-count", "3", "--interval", "0.2"])

        assert args.lock_count == 3
        assert args.detection_interval == 0.2
        assert args.lock_tolerance is None

    def test_command_required(self):
        with pytest.raises(SystemExit):
            build_parser().parse_args([])

    def test_invalid_log_level(self):
        with pytest.raises(ValueError):
            configure_logging("loud")

    def test_configure_logging(self):
        configure_logging("debug")
        assert logging.getLogger().level == logging.DEBUG
        configure_logging("warning")
