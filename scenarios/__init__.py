"""
Scenario pipeline for the retention engine.

Usage:
    from scenarios import ScenarioRunner, ScenarioConfig

    # Run from YAML
    runner = ScenarioRunner()
    result = runner.run_from_yaml("configs/drifting_gym.yaml")
    print(result.summary())

    # Run programmatically
    config = ScenarioConfig(
        name="custom",
        description="Generated roster with a longer ghost window",
        sample={"n_members": 150, "seed": 3},
        engine={"ghost_attendance_days": 28},
    )
    result = runner.run(config)

CLI:
    python -m scenarios.run configs/drifting_gym.yaml
    python -m scenarios.run --list
"""

from .config import ScenarioConfig
from .runner import ScenarioRunner, ScenarioResult
from .logger import ScenarioLogger

__all__ = [
    "ScenarioConfig",
    "ScenarioRunner",
    "ScenarioResult",
    "ScenarioLogger",
]
