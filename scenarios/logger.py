"""
Scenario logging for the retention engine.

One JSON report per run, named after the run id. Errored runs get a
short report with the error in place of results.
"""

import json
from dataclasses import asdict
from datetime import datetime
from pathlib import Path
from typing import TYPE_CHECKING, Iterator

import pandas as pd

if TYPE_CHECKING:
    from .runner import ScenarioResult
    from .config import ScenarioConfig

# Summary column -> roster_summary() key
SUMMARY_COLUMNS = {
    "members": "members",
    "at_risk": "at_risk_members",
    "revenue_at_risk": "revenue_at_risk",
    "stability": "stability_score",
    "outlook": "outlook",
    "focus": "focus",
}


def _as_dict(value):
    return asdict(value) if value is not None else None


class ScenarioLogger:
    """Structured JSON reports for scenario runs."""

    def __init__(self, logs_dir: Path):
        self.logs_dir = logs_dir
        self.logs_dir.mkdir(parents=True, exist_ok=True)

    def _write(self, run_id: str, report: dict) -> Path:
        path = self.logs_dir / f"{run_id}.json"
        with open(path, "w") as f:
            json.dump(report, f, indent=2, default=str)
        return path

    @staticmethod
    def _config_block(config: "ScenarioConfig") -> dict:
        return {
            "name": config.name,
            "description": config.description,
            "now": config.as_of(),
            "engine": config.engine,
            "expect": config.expect,
        }

    def log_run(self, result: "ScenarioResult") -> Path:
        """
        Write the report for a completed run.

        Returns:
            Path to the report file
        """
        engine_result = result.result
        return self._write(result.run_id, {
            "run_id": result.run_id,
            "timestamp": result.timestamp.isoformat(),
            "duration_seconds": result.duration_seconds,
            "config": self._config_block(result.config),
            "results": {
                "roster": engine_result.roster_summary(),
                "cohorts": _as_dict(engine_result.cohorts),
                "forecast": _as_dict(engine_result.forecast),
                "scenario": _as_dict(engine_result.scenario),
                "funnel_rates": _as_dict(engine_result.funnel_rates),
                "sales_health": _as_dict(engine_result.sales_health),
                "bottleneck": _as_dict(engine_result.bottleneck),
                "stability": _as_dict(engine_result.stability),
                "recommendations": [asdict(r) for r in engine_result.recommendations.recommendations],
            },
            "checks": result.checks,
            "status": "PASS" if result.passed else "FAIL",
        })

    def log_failure(self, run_id: str, config: "ScenarioConfig", error: str) -> Path:
        """Write the report for a run that raised before producing results."""
        return self._write(run_id, {
            "run_id": run_id,
            "timestamp": datetime.now().isoformat(),
            "config": {"name": config.name, "description": config.description, "expect": config.expect},
            "status": "ERROR",
            "error": error,
        })

    def iter_logs(self) -> Iterator[dict]:
        """Yield every run report in run id order."""
        for path in sorted(self.logs_dir.glob("run_*.json")):
            with open(path) as f:
                yield json.load(f)

    def get_summary_dataframe(self) -> pd.DataFrame:
        """
        One row per run, newest first.

        Errored runs carry only run_id, name, timestamp, status and error.
        """
        rows = []
        for report in self.iter_logs():
            row = {
                "run_id": report["run_id"],
                "name": report["config"]["name"],
                "timestamp": report["timestamp"],
                "status": report["status"],
            }
            if "results" in report:
                roster = report["results"]["roster"]
                row.update({column: roster.get(key) for column, key in SUMMARY_COLUMNS.items()})
            else:
                row["error"] = report.get("error")
            rows.append(row)

        if not rows:
            return pd.DataFrame()
        return pd.DataFrame(rows).sort_values("timestamp", ascending=False)
