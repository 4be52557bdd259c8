"""
Tests for the CLI interface.
"""
from unittest.mock import patch

import pytest
import yaml
from typer.testing import CliRunner

from data_watchdog.cli.main import app, EXIT_CODE_PASS, EXIT_CODE_FAIL
from data_watchdog.core.engine import CycleResult, CycleVerdict
from data_watchdog.core.units import MIB

runner = CliRunner()


@pytest.fixture
def write_cycle(tmp_path):
    """Write a cycle description and return its path."""
    def _write(data, name="cycle.yaml"):
        path = tmp_path / name
        path.write_text(yaml.dump(data), encoding="utf-8")
        return str(path)
    return _write


class TestCLI:
    """Test CLI commands."""

    def test_no_command(self):
        result = runner.invoke(app, [])
        assert result.exit_code == 0
        assert "Data Watchdog" in result.output

    def test_status(self):
        result = runner.invoke(app, ["status"])
        assert result.exit_code == 0
        assert "installed" in result.output

    def test_evaluate_basic(self, write_cycle):
        """Test a single dominant app is reported."""
        path = write_cycle({"snapshot": {"video": 100 * MIB, "mail": 1 * MIB}})

        result = runner.invoke(app, ["evaluate", path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Data Usage Evaluation" in result.output
        assert "CRITICAL" in result.output
        assert "Verdict: FAIL" in result.output

    def test_evaluate_enforced_failure(self, write_cycle):
        path = write_cycle({"snapshot": {"video": 100 * MIB}})

        result = runner.invoke(app, ["evaluate", path, "--enforced"])

        assert result.exit_code == EXIT_CODE_FAIL

    def test_evaluate_warning_exits_zero(self, write_cycle):
        """Test that WARN verdict exits with 0 even when enforced."""
        path = write_cycle({"snapshot": {f"app{i}": 10 * MIB for i in range(10)}})

        result = runner.invoke(app, ["evaluate", path, "--enforced"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Verdict: WARN" in result.output

    def test_evaluate_no_alerts(self, write_cycle):
        path = write_cycle({"snapshot": {}})

        result = runner.invoke(app, ["evaluate", path, "--enforced"])

        assert result.exit_code == EXIT_CODE_PASS
        assert "No drain alerts" in result.output
        assert "Verdict: PASS" in result.output

    def test_evaluate_with_bundle(self, write_cycle):
        path = write_cycle({
            "snapshot": {"video": 1 * MIB},
            "bundle": {
                "total_capacity_bytes": 5000 * MIB,
                "used_bytes": 4000 * MIB,
                "days_elapsed": 20,
                "total_days": 30
            },
            "daily_history": [
                {"label": f"d{i}", "bytes": v * MIB}
                for i, v in enumerate((400, 450, 500, 550, 600, 650, 700))
            ]
        })

        result = runner.invoke(app, ["evaluate", path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Bundle forecast" in result.output
        assert "Will exceed limit" in result.output
        assert "Trend: increasing" in result.output
        assert "Peak days: d6, d5, d4" in result.output

    def test_evaluate_replays_history(self, write_cycle):
        """Test prior samples enable spike detection."""
        path = write_cycle({
            "snapshot": {"video": 100 * MIB},
            "history": {"video": [10 * MIB]}
        })

        with patch("data_watchdog.cli.main.run_cycle") as mock_run:
            mock_run.return_value = CycleResult(alerts=[], verdict=CycleVerdict.PASS)
            result = runner.invoke(app, ["evaluate", path])

        assert result.exit_code == EXIT_CODE_PASS
        state = mock_run.call_args[0][0]
        assert state.history.history_of("video") == [10 * MIB]

    def test_evaluate_history_enables_run_out_time(self, write_cycle):
        path = write_cycle({
            "snapshot": {"video": 100 * MIB},
            "history": {"video": [90 * MIB, 95 * MIB, 100 * MIB]},
            "bundle": {
                "total_capacity_bytes": 5000 * MIB,
                "used_bytes": 4000 * MIB,
                "days_elapsed": 20,
                "total_days": 30
            }
        })

        result = runner.invoke(app, ["evaluate", path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "Bundle forecast" in result.output
        assert "runs out at" in result.output

    def test_evaluate_bracketed_names_printed_verbatim(self, write_cycle):
        path = write_cycle({
            "snapshot": {"video[/]": 100 * MIB},
            "bundle": {
                "total_capacity_bytes": 5000 * MIB,
                "used_bytes": 1000 * MIB,
                "days_elapsed": 10,
                "total_days": 30
            },
            "daily_history": [{"label": "[b]Mon[/b]", "bytes": 50 * MIB}]
        })

        result = runner.invoke(app, ["evaluate", path])

        assert result.exit_code == EXIT_CODE_PASS
        assert "video[/]" in result.output
        assert "Peak days: [b]Mon[/b]" in result.output

    def test_evaluate_with_config(self, write_cycle, tmp_path):
        config_path = tmp_path / "watchdog.yaml"
        config_path.write_text(yaml.dump({"history": {"max_samples": 3}}), encoding="utf-8")
        path = write_cycle({"snapshot": {"video": 1}})

        with patch("data_watchdog.cli.main.run_cycle") as mock_run:
            mock_run.return_value = CycleResult(alerts=[], verdict=CycleVerdict.PASS)
            result = runner.invoke(app, ["evaluate", path, "--config", str(config_path)])

        assert result.exit_code == EXIT_CODE_PASS
        state = mock_run.call_args[0][0]
        assert state.config.history.max_samples == 3

    def test_evaluate_missing_file(self, tmp_path):
        result = runner.invoke(app, ["evaluate", str(tmp_path / "missing.yaml")])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "Error" in result.output

    def test_evaluate_invalid_cycle(self, write_cycle):
        path = write_cycle({"mobile": {}})

        result = runner.invoke(app, ["evaluate", path])

        assert result.exit_code == EXIT_CODE_FAIL
        assert "snapshot" in result.output

    def test_init_writes_default_config(self, tmp_path):
        path = tmp_path / "watchdog.yaml"

        result = runner.invoke(app, ["init", "--path", str(path)])

        assert result.exit_code == EXIT_CODE_PASS
        assert path.exists()
        assert "max_samples" in path.read_text(encoding="utf-8")

    def test_init_refuses_existing_file(self, tmp_path):
        path = tmp_path / "watchdog.yaml"
        path.write_text("history: {}", encoding="utf-8")

        result = runner.invoke(app, ["init", "--path", str(path)])

        assert result.exit_code == EXIT_CODE_FAIL
