"""
Scenario configuration for the retention engine.

A scenario is one gym snapshot (roster, contact log, monthly metrics,
funnel counts) plus optional engine overrides and expected outcomes.
"""

from dataclasses import dataclass, field, asdict
from datetime import date
from pathlib import Path
from typing import Any, Optional

import pandas as pd
import yaml

from retention.config import EngineConfig
from retention.engine import generate_sample_roster
from retention.types import FunnelCounts, as_date

MEMBER_COLUMNS = ["member_id", "join_date", "monthly_rate", "status"]
MEMBER_DATE_COLUMNS = ["join_date", "cancel_date", "last_attended_date", "last_contacted_at"]


def _frame(records: list[dict], date_columns: list[str]) -> pd.DataFrame:
    df = pd.DataFrame(records)
    for column in date_columns:
        if column in df.columns:
            df[column] = pd.to_datetime(df[column])
    return df


@dataclass
class ScenarioConfig:
    """
    Configuration for a single scenario.

    Load from YAML:
        config = ScenarioConfig.from_yaml("configs/drifting_gym.yaml")

    Use a generated roster instead of listing members:
        config = ScenarioConfig(
            name="sample",
            now=date(2025, 6, 1),
            sample={"n_members": 200, "seed": 7},
        )
    """

    # Metadata
    name: str
    description: str = ""
    now: Optional[date] = None

    # Snapshot (YAML lists of records, keyed like the input schemas)
    members: list[dict] = field(default_factory=list)
    contacts: list[dict] = field(default_factory=list)
    metrics: list[dict] = field(default_factory=list)
    funnel: Optional[dict] = None

    # generate_sample_roster() arguments; replaces members/contacts/metrics
    sample: Optional[dict] = None

    # EngineConfig field overrides
    engine: dict[str, Any] = field(default_factory=dict)

    # Expected outcomes (all optional):
    #   focus: category of the focus recommendation, or null for none
    #   stability_tier, outlook, bottleneck: expected labels
    #   min_flagged / max_flagged: bounds on at-risk + ghost active members
    expect: dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_yaml(cls, path: Path | str) -> "ScenarioConfig":
        """Load configuration from YAML file."""
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f)
        return cls(**data)

    def to_yaml(self, path: Path | str) -> None:
        """Save configuration to YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(asdict(self), f, default_flow_style=False, sort_keys=False)

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return asdict(self)

    def as_of(self) -> date:
        return as_date(self.now) if self.now is not None else date.today()

    def engine_config(self) -> EngineConfig:
        return EngineConfig(**self.engine)

    def funnel_counts(self) -> Optional[FunnelCounts]:
        return FunnelCounts(**self.funnel) if self.funnel else None

    def frames(self) -> tuple[pd.DataFrame, Optional[pd.DataFrame], Optional[pd.DataFrame]]:
        """
        Build input DataFrames for RetentionEngine.analyze_frames.

        Returns:
            (members_df, contacts_df, metrics_df); contacts and metrics
            are None when the scenario lists none
        """
        if self.sample is not None:
            return generate_sample_roster(now=self.as_of(), **self.sample)

        if self.members:
            members_df = _frame(self.members, MEMBER_DATE_COLUMNS)
        else:
            members_df = pd.DataFrame(columns=MEMBER_COLUMNS)
        contacts_df = _frame(self.contacts, ["contacted_at"]) if self.contacts else None
        metrics_df = _frame(self.metrics, ["month_start"]) if self.metrics else None
        return members_df, contacts_df, metrics_df
