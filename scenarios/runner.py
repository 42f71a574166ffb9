"""
Scenario runner for the retention engine.

Single entry point for running gym snapshots through the engine.
"""

from dataclasses import dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Optional
import uuid

import pandas as pd

from retention.engine import EngineResult, RetentionEngine

from .config import ScenarioConfig
from .logger import ScenarioLogger

EXPECTATION_KEYS = {"focus", "stability_tier", "outlook", "bottleneck", "min_flagged", "max_flagged"}


@dataclass
class ScenarioResult:
    """Container for scenario results."""

    run_id: str
    config: ScenarioConfig
    result: EngineResult
    timestamp: datetime
    duration_seconds: float
    checks: dict[str, bool] = field(default_factory=dict)

    @property
    def passed(self) -> bool:
        return all(self.checks.values())

    def summary(self) -> str:
        """Human-readable summary."""
        status = "PASS" if self.passed else "FAIL"
        roster = self.result.roster_summary()
        stability = (
            f"{roster['stability_score']} ({roster['stability_tier']})"
            if roster["stability_score"] is not None
            else "n/a"
        )
        lines = [
            f"[{self.run_id}] {self.config.name} - {status}",
            f"  Members:         {roster['active_members']} active / {roster['members']} total",
            f"  At risk:         {roster['at_risk_members']} (${roster['revenue_at_risk']:,.2f} at risk)",
            f"  Outlook:         {roster['outlook'] or 'n/a'}",
            f"  Stability:       {stability}",
            f"  Focus:           {roster['focus']}",
        ]
        for name, ok in self.checks.items():
            lines.append(f"  Check {name}: {'ok' if ok else 'FAILED'}")
        for name, message in self.result.errors.items():
            lines.append(f"  Skipped {name}: {message}")
        return "\n".join(lines)


class ScenarioRunner:
    """
    Single entry point for running scenarios.

    Usage:
        runner = ScenarioRunner()

        # From YAML config
        result = runner.run_from_yaml("configs/drifting_gym.yaml")

        # From ScenarioConfig object
        config = ScenarioConfig(name="custom", sample={"n_members": 50})
        result = runner.run(config)

        # Batch run
        results = runner.run_batch(["configs/healthy_gym.yaml", "configs/drifting_gym.yaml"])
    """

    def __init__(
        self,
        base_path: Optional[Path] = None,
        logs_dir: str = "logs",
    ):
        """
        Initialize runner.

        Args:
            base_path: Base path for scenarios (default: this file's parent)
            logs_dir: Subdirectory for logs
        """
        self.base_path = base_path or Path(__file__).parent
        self.logs_dir = self.base_path / logs_dir
        self.logger = ScenarioLogger(self.logs_dir)

    def generate_run_id(self) -> str:
        """Generate unique run ID: run_YYYYMMDD_XXXX"""
        date_str = datetime.now().strftime("%Y%m%d")
        short_uuid = uuid.uuid4().hex[:4]
        return f"run_{date_str}_{short_uuid}"

    def run(self, config: ScenarioConfig) -> ScenarioResult:
        """
        Run a single scenario.

        Args:
            config: ScenarioConfig to run

        Returns:
            ScenarioResult with engine output and expectation checks
        """
        run_id = self.generate_run_id()
        start_time = datetime.now()

        try:
            engine = RetentionEngine(config.engine_config())
            members_df, contacts_df, metrics_df = config.frames()
            engine_result = engine.analyze_frames(
                members_df,
                contacts_df,
                metrics_df,
                now=config.as_of(),
                funnel_counts=config.funnel_counts(),
            )
            checks = self._evaluate_expectations(engine_result, config.expect)

            result = ScenarioResult(
                run_id=run_id,
                config=config,
                result=engine_result,
                timestamp=start_time,
                duration_seconds=(datetime.now() - start_time).total_seconds(),
                checks=checks,
            )

            # Always log
            self.logger.log_run(result)
            return result

        except Exception as e:
            self.logger.log_failure(run_id, config, str(e))
            raise

    def run_from_yaml(self, config_path: str | Path) -> ScenarioResult:
        """
        Load config from YAML and run.

        Args:
            config_path: Path to YAML config (relative to base_path or absolute)

        Returns:
            ScenarioResult
        """
        path = Path(config_path)
        if not path.is_absolute():
            path = self.base_path / path
        config = ScenarioConfig.from_yaml(path)
        return self.run(config)

    def run_batch(
        self,
        config_paths: list[str | Path],
        stop_on_failure: bool = False,
    ) -> list[ScenarioResult]:
        """
        Run multiple scenarios in sequence.

        Args:
            config_paths: List of paths to YAML configs
            stop_on_failure: Whether to stop if a scenario errors

        Returns:
            List of ScenarioResults
        """
        results = []
        for path in config_paths:
            try:
                result = self.run_from_yaml(path)
                results.append(result)
                print(result.summary())
                print()
            except Exception as e:
                print(f"ERROR: {path} - {e}")
                if stop_on_failure:
                    raise
        return results

    def list_runs(self) -> pd.DataFrame:
        """
        Get summary of all past scenario runs.

        Returns:
            DataFrame with run history
        """
        return self.logger.get_summary_dataframe()

    def _evaluate_expectations(self, result: EngineResult, expect: dict) -> dict[str, bool]:
        """Compare engine output with the scenario's expected outcomes."""
        unknown = set(expect) - EXPECTATION_KEYS
        if unknown:
            raise ValueError(f"Unknown expectations: {sorted(unknown)}")

        actual = {
            "focus": result.focus.category if result.focus else None,
            "stability_tier": result.stability.tier.value if result.stability else None,
            "outlook": result.forecast.outlook.value if result.forecast else None,
            "bottleneck": result.bottleneck.stage.value if result.bottleneck else None,
        }
        flagged = len(result.flagged)

        checks = {}
        for key, value in expect.items():
            if key == "min_flagged":
                checks[key] = flagged >= value
            elif key == "max_flagged":
                checks[key] = flagged <= value
            else:
                checks[key] = actual[key] == value
        return checks
