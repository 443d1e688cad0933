"""Tests for the wavestream-engine command line."""

import warnings

import numpy as np
import pytest
from click.testing import CliRunner

pytest.importorskip("torch")

from wavestream.cli.engine import main
from wavestream.cli.progress import format_time

SMALL = ["--nx", "16", "--ny", "16", "--pml", "3", "--device", "cpu"]


@pytest.fixture
def runner():
    return CliRunner()


def stderr_lines(result) -> list[str]:
    return [line for line in result.stderr.splitlines() if line.strip()]


class TestEngineCommand:
    """Tests for a normal engine run."""

    def test_streams_header_and_frames(self, runner):
        result = runner.invoke(main, SMALL + ["--steps", "120", "--frames-every", "60"])
        assert result.exit_code == 0, result.output
        assert stderr_lines(result)[0] == "HEADER nx=16 ny=16 dt=0.001 frames_every=60"
        assert len(result.stdout_bytes) == 2 * 16 * 16 * 4

    def test_frames_decode_to_field(self, runner):
        result = runner.invoke(main, SMALL + ["--steps", "60", "--frames-every", "60"])
        assert result.exit_code == 0, result.output
        frame = np.frombuffer(result.stdout_bytes, dtype="<f4").reshape(16, 16)
        assert np.all(np.isfinite(frame))
        assert np.abs(frame).max() > 0.0

    def test_underscore_option_alias(self, runner):
        result = runner.invoke(main, SMALL + ["--steps", "30", "--frames_every", "10"])
        assert result.exit_code == 0, result.output
        assert len(result.stdout_bytes) == 3 * 16 * 16 * 4

    def test_analytics_lines(self, runner):
        result = runner.invoke(main, SMALL + ["--steps", "200", "--frames-every", "1000"])
        assert result.exit_code == 0, result.output
        lines = stderr_lines(result)
        assert sum(line.startswith("PERF step_ms_avg=") for line in lines) == 2
        assert sum(line.startswith("ENERGY val=") for line in lines) == 2
        assert result.stdout_bytes == b""

    def test_unset_source_defaults_to_center(self, runner):
        result = runner.invoke(
            main, SMALL + ["--steps", "1", "--frames-every", "1", "--amp", "1"]
        )
        assert result.exit_code == 0, result.output
        frame = np.frombuffer(result.stdout_bytes, dtype="<f4").reshape(16, 16)
        assert np.unravel_index(np.abs(frame).argmax(), frame.shape) == (8, 8)

    def test_custom_source_location(self, runner):
        result = runner.invoke(
            main, SMALL + ["--steps", "1", "--frames-every", "1", "--sx", "5", "--sy", "10"]
        )
        assert result.exit_code == 0, result.output
        frame = np.frombuffer(result.stdout_bytes, dtype="<f4").reshape(16, 16)
        assert np.unravel_index(np.abs(frame).argmax(), frame.shape) == (10, 5)

    def test_unstable_dt_is_clamped(self, runner):
        result = runner.invoke(main, SMALL + ["--steps", "0", "--dt", "1.0"])
        assert result.exit_code == 0, result.output
        header = next(line for line in stderr_lines(result) if line.startswith("HEADER"))
        dt = float(header.split()[3].split("=")[1])
        assert dt <= 0.5 * 10.0 / (2**0.5 * 3000.0)

    def test_unknown_model_runs(self, runner):
        result = runner.invoke(main, SMALL + ["--steps", "10", "--model", "foo"])
        assert result.exit_code == 0, result.output

    def test_streams_without_deprecated_click_helpers(self, runner):
        with warnings.catch_warnings(record=True) as caught:
            warnings.simplefilter("always")
            result = runner.invoke(main, SMALL + ["--steps", "1", "--frames-every", "1"])
        assert result.exit_code == 0, result.output
        assert len(result.stdout_bytes) == 16 * 16 * 4
        deprecated = [
            w for w in caught
            if issubclass(w.category, DeprecationWarning)
            and ("binary_stream" in str(w.message) or "text_stream" in str(w.message))
        ]
        assert deprecated == []

    def test_dry_run(self, runner):
        result = runner.invoke(main, SMALL + ["--dry-run"])
        assert result.exit_code == 0, result.output
        assert "Dry run" in result.stderr
        assert "16 × 16" in result.stderr
        assert result.stdout_bytes == b""


class TestEngineCommandErrors:
    """Tests for fatal option errors."""

    def test_unknown_option(self, runner):
        result = runner.invoke(main, ["--bogus", "1"])
        assert result.exit_code != 0
        assert "bogus" in result.stderr

    def test_unparsable_value(self, runner):
        result = runner.invoke(main, ["--nx", "wide"])
        assert result.exit_code != 0
        assert "nx" in result.stderr

    def test_invalid_value(self, runner):
        result = runner.invoke(main, ["--nx", "2", "--device", "cpu"])
        assert result.exit_code == 1
        assert "Error" in result.stderr
        assert result.stdout_bytes == b""

    def test_invalid_device_choice(self, runner):
        result = runner.invoke(main, ["--device", "tpu"])
        assert result.exit_code != 0


class TestFormatTime:
    """Tests for duration formatting."""

    @pytest.mark.parametrize(
        "seconds,expected",
        [(0.25, "250ms"), (4.24, "4.2s"), (83, "1m 23s"), (8100, "2h 15m")],
    )
    def test_format_time(self, seconds, expected):
        assert format_time(seconds) == expected
