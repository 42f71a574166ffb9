#!/usr/bin/env python3
"""
CLI entry point for scenario runs.

Usage:
    # Run single scenario
    python -m scenarios.run configs/drifting_gym.yaml

    # Run multiple scenarios
    python -m scenarios.run configs/*.yaml

    # List all past runs
    python -m scenarios.run --list
"""

import argparse
import logging
import sys
from pathlib import Path
from typing import Optional

from .runner import ScenarioResult, ScenarioRunner

SCENARIOS_DIR = Path(__file__).parent
RULE = "=" * 60


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Gym retention engine scenario runner",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m scenarios.run configs/drifting_gym.yaml
  python -m scenarios.run configs/healthy_gym.yaml configs/sample_gym.yaml
  python -m scenarios.run --list
        """,
    )
    parser.add_argument("configs", nargs="*", help="Path(s) to YAML scenario file(s)")
    parser.add_argument("--list", action="store_true", help="List all past scenario runs")
    parser.add_argument(
        "--stop-on-failure",
        action="store_true",
        help="Stop at the first scenario that is missing or errors",
    )
    parser.add_argument(
        "--logs-dir",
        type=Path,
        default=None,
        help="Directory for JSON run reports (default: scenarios/logs)",
    )
    parser.add_argument("-v", "--verbose", action="store_true", help="Show engine debug logging")
    return parser


def resolve_config(config_path: str) -> Optional[Path]:
    """Find a scenario file as given or relative to the scenarios package."""
    path = Path(config_path)
    for candidate in (path, SCENARIOS_DIR / path):
        if candidate.exists():
            return candidate.resolve()
    return None


def print_batch_summary(results: list[ScenarioResult]) -> None:
    passed = sum(r.passed for r in results)
    print(f"\n{RULE}\nBATCH SUMMARY\n{RULE}")
    print(f"Total: {len(results)}, Passed: {passed}, Failed: {len(results) - passed}")
    print("\nResults:")
    for r in results:
        roster = r.result.roster_summary()
        print(
            f"  [{'PASS' if r.passed else 'FAIL'}] {r.config.name}: "
            f"{roster['at_risk_members']} at risk, stability {roster['stability_score']}"
        )


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
    )

    if args.logs_dir is not None:
        runner = ScenarioRunner(base_path=args.logs_dir.parent, logs_dir=args.logs_dir.name)
    else:
        runner = ScenarioRunner()

    if args.list:
        df = runner.list_runs()
        print("No scenario runs found." if df.empty else df.to_string(index=False))
        return 0

    if not args.configs:
        build_parser().print_help()
        return 1

    results = []
    for config_path in args.configs:
        path = resolve_config(config_path)
        if path is None:
            print(f"Config not found: {config_path}")
            if args.stop_on_failure:
                return 1
            continue

        print(f"\n{RULE}\nRunning: {path.name}\n{RULE}")
        try:
            result = runner.run_from_yaml(path)
        except Exception as e:
            print(f"ERROR: {e}")
            if args.stop_on_failure:
                return 1
            continue
        results.append(result)
        print(result.summary())

    if len(results) > 1:
        print_batch_summary(results)
    return 0


if __name__ == "__main__":
    sys.exit(main())
