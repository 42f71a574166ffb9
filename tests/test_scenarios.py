"""
Tests for the scenario pipeline (config, runner, JSON logs and CLI).
"""

import json
from datetime import date
from pathlib import Path

import pytest

from scenarios import ScenarioConfig, ScenarioRunner
from scenarios.run import main, resolve_config

CONFIGS_DIR = Path(__file__).parent.parent / "scenarios" / "configs"


@pytest.fixture
def runner(tmp_path):
    """Runner that writes its logs under tmp_path."""
    return ScenarioRunner(base_path=tmp_path)


class TestScenarioConfig:
    """YAML round trip and frame building."""

    def test_from_yaml(self):
        config = ScenarioConfig.from_yaml(CONFIGS_DIR / "drifting_gym.yaml")

        assert config.name == "drifting_gym"
        assert config.as_of() == date(2025, 6, 1)
        assert len(config.members) == 6
        assert config.funnel_counts().leads == 40

    def test_yaml_round_trip(self, tmp_path):
        config = ScenarioConfig.from_yaml(CONFIGS_DIR / "healthy_gym.yaml")
        path = tmp_path / "copy.yaml"
        config.to_yaml(path)

        assert ScenarioConfig.from_yaml(path) == config

    def test_engine_overrides(self):
        config = ScenarioConfig(name="strict", engine={"ghost_attendance_days": 14})
        assert config.engine_config().ghost_attendance_days == 14

    def test_unknown_engine_field_rejected(self):
        config = ScenarioConfig(name="typo", engine={"ghost_days": 14})
        with pytest.raises(TypeError):
            config.engine_config()

    def test_sample_frames(self):
        config = ScenarioConfig(name="sample", now=date(2025, 6, 1), sample={"n_members": 20, "seed": 3})
        members_df, contacts_df, metrics_df = config.frames()

        assert len(members_df) == 20
        assert len(metrics_df) == 12


class TestScenarioRunner:
    """Runs, expectation checks and logs."""

    def test_healthy_gym_passes(self, runner):
        result = runner.run_from_yaml(CONFIGS_DIR / "healthy_gym.yaml")

        assert result.passed, result.summary()
        assert result.result.focus is None
        assert set(result.checks) == {"focus", "stability_tier", "outlook", "max_flagged"}

    def test_drifting_gym_passes(self, runner):
        result = runner.run_from_yaml(CONFIGS_DIR / "drifting_gym.yaml")

        assert result.passed, result.summary()
        assert result.result.focus is not None

    def test_sample_gym_runs(self, runner):
        result = runner.run_from_yaml(CONFIGS_DIR / "sample_gym.yaml")

        assert result.passed
        assert len(result.result.estimates) == 150

    def test_failed_expectation(self, runner):
        config = ScenarioConfig.from_yaml(CONFIGS_DIR / "healthy_gym.yaml")
        config.expect = {"stability_tier": "early-drift"}
        result = runner.run(config)

        assert not result.passed
        assert result.checks == {"stability_tier": False}
        assert "FAILED" in result.summary()

    def test_run_logged(self, runner):
        result = runner.run_from_yaml(CONFIGS_DIR / "drifting_gym.yaml")
        log_path = runner.logs_dir / f"{result.run_id}.json"

        with open(log_path) as f:
            log = json.load(f)

        assert log["status"] == "PASS"
        assert log["config"]["name"] == "drifting_gym"
        assert log["results"]["roster"]["at_risk_members"] == 3
        assert log["results"]["bottleneck"]["stage"] == "lead-to-booked"
        assert log["results"]["recommendations"][0]["headline"] == log["results"]["roster"]["focus"]
        assert log["results"]["forecast"]["churn_trajectory"] == "rising"
        assert log["results"]["sales_health"]["speed_score"] == 39
        assert log["results"]["cohorts"]["windows"][-1]["lost_count"] == 1

    def test_error_logged_and_raised(self, runner):
        config = ScenarioConfig(name="bad", now=date(2025, 6, 1), expect={"vibes": "good"}, sample={"n_members": 5})

        with pytest.raises(ValueError, match="vibes"):
            runner.run(config)

        logs = list(runner.logger.iter_logs())
        assert len(logs) == 1
        assert logs[0]["status"] == "ERROR"

    def test_list_runs(self, runner):
        runner.run_from_yaml(CONFIGS_DIR / "healthy_gym.yaml")
        runner.run_from_yaml(CONFIGS_DIR / "drifting_gym.yaml")
        df = runner.list_runs()

        assert len(df) == 2
        assert set(df["name"]) == {"healthy_gym", "drifting_gym"}

    def test_batch_continues_after_error(self, runner, tmp_path):
        missing = tmp_path / "missing.yaml"
        results = runner.run_batch([missing, CONFIGS_DIR / "healthy_gym.yaml"])

        assert len(results) == 1


class TestCli:
    """argparse entry point."""

    def test_run_configs(self, tmp_path, capsys):
        logs_dir = tmp_path / "logs"
        code = main([
            str(CONFIGS_DIR / "healthy_gym.yaml"),
            str(CONFIGS_DIR / "drifting_gym.yaml"),
            "--logs-dir", str(logs_dir),
        ])
        out = capsys.readouterr().out

        assert code == 0
        assert "BATCH SUMMARY" in out
        assert len(list(logs_dir.glob("run_*.json"))) == 2

    def test_list_empty(self, tmp_path, capsys):
        code = main(["--list", "--logs-dir", str(tmp_path / "logs")])

        assert code == 0
        assert "No scenario runs found." in capsys.readouterr().out

    def test_missing_config_stops(self, tmp_path):
        code = main(["nope.yaml", "--stop-on-failure", "--logs-dir", str(tmp_path / "logs")])
        assert code == 1

    def test_no_args_prints_help(self, tmp_path):
        assert main(["--logs-dir", str(tmp_path / "logs")]) == 1

    def test_config_resolved_from_package_dir(self):
        assert resolve_config("configs/healthy_gym.yaml") == (CONFIGS_DIR / "healthy_gym.yaml").resolve()
        assert resolve_config("configs/missing.yaml") is None

    def test_list_after_errored_run(self, tmp_path, capsys):
        logs_dir = tmp_path / "logs"
        runner = ScenarioRunner(base_path=tmp_path)
        with pytest.raises(ValueError):
            runner.run(ScenarioConfig(
                name="bad", now=date(2025, 6, 1), expect={"vibes": "good"}, sample={"n_members": 5},
            ))

        assert main(["--list", "--logs-dir", str(logs_dir)]) == 0
        out = capsys.readouterr().out
        assert "bad" in out
        assert "ERROR" in out
