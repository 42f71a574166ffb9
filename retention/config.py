"""
Engine configuration for the retention decision engine.

All thresholds and weights live here so they can be tuned in one place.
They are product heuristics (e.g. 21 days without attendance = ghost,
3 prospects minimum before a funnel stage counts), not derived constants.

Load overrides from YAML:
    config = EngineConfig.from_yaml("thresholds.yaml")
"""

from dataclasses import dataclass, field, asdict
from pathlib import Path
from typing import Dict, List, Tuple

import yaml

from .types import StabilityTier


@dataclass
class EngineConfig:
    """
    Configuration for every engine component.

    Stability score: four components, 0-25 points each, 0-100 total.
    Churn probability: class base + continuous adjustments, clamped.
    """

    # === Signal extraction ===
    days_per_month: float = 30.44
    high_value_share: float = 0.2  # top 20% of active rates

    # === Risk classification (days) ===
    ghost_attendance_days: int = 21
    onboarding_grace_days: int = 14  # no "ghost" while onboarding
    at_risk_attendance_days: int = 10
    drifter_attendance_days: int = 7
    contact_gap_days: int = 14

    # === Churn probability ===
    base_probability: Dict[str, float] = field(default_factory=lambda: {
        "ghost": 0.75,
        "at-risk": 0.45,
        "drifter": 0.25,
        "core": 0.05,
    })
    drift_per_day: float = 0.01
    drift_cap: float = 0.15
    recent_contact_days: int = 7
    recent_contact_credit: float = -0.10
    high_value_neglect_days: int = 14
    high_value_neglect_penalty: float = 0.05
    never_contacted_penalty: float = 0.05
    probability_floor: float = 0.02
    probability_ceiling: float = 0.97

    # === Forecasting ===
    projected_cancel_probability: float = 0.5
    trailing_window_months: int = 3
    forecast_horizon_months: int = 3
    trajectory_change_points: float = 1.0  # churn % move over 3 months
    scenario_months: int = 6
    # Outlook bands on latest churn %; strong also needs growth, stable no shrinkage
    outlook_strong_churn: float = 3.0
    outlook_stable_churn: float = 5.0
    outlook_attention_churn: float = 7.0

    # === Funnel ===
    funnel_min_sample: int = 3
    # Sales health: each rate scores 0-100 linearly across its [low, high] band
    sales_conversion_band: List[float] = field(default_factory=lambda: [0.20, 0.40])
    sales_show_band: List[float] = field(default_factory=lambda: [0.70, 0.90])
    sales_close_band: List[float] = field(default_factory=lambda: [0.60, 0.85])
    sales_response_band: List[float] = field(default_factory=lambda: [5.0, 60.0])  # minutes, fast to slow
    sales_health_weights: Dict[str, float] = field(default_factory=lambda: {
        "conversion": 0.50,
        "speed": 0.25,
        "stage": 0.25,
    })

    # === Cohorts ===
    retention_window_ends: List[int] = field(default_factory=lambda: [30, 60, 90, 180, 365])
    survival_day_marks: List[int] = field(default_factory=lambda: [
        0, 7, 14, 30, 60, 90, 120, 180, 270, 365, 545, 730,
    ])
    early_loss_days: int = 90
    cohort_min_size: int = 3  # for best/worst cohort

    # === Stability score ===
    stability_component_max: int = 25
    stability_tiers: List[Tuple[int, str]] = field(default_factory=lambda: [
        (80, "stable"),
        (60, "plateau-risk"),
        (40, "early-drift"),
        (0, "instability-risk"),
    ])

    # === Recommendation prioritization ===
    impact_horizon_months: int = 3
    cluster_confidence: Dict[str, float] = field(default_factory=lambda: {
        "ghost": 0.5,     # hardest to win back
        "at-risk": 0.7,
        "drifter": 0.8,
    })
    cluster_urgency: Dict[str, float] = field(default_factory=lambda: {
        "ghost": 1.5,
        "at-risk": 1.3,
        "drifter": 1.0,
    })
    cluster_priority: Dict[str, str] = field(default_factory=lambda: {
        "ghost": "critical",
        "at-risk": "high",
        "drifter": "moderate",
    })
    rising_churn_urgency_boost: float = 0.25
    funnel_recovery_rate: float = 0.3
    funnel_confidence: float = 0.6
    funnel_high_priority_drop: float = 60.0
    stability_revenue_share: float = 0.05
    stability_confidence: float = 0.5
    stability_urgency: Dict[str, float] = field(default_factory=lambda: {
        "stable": 1.0,
        "plateau-risk": 1.0,
        "early-drift": 1.2,
        "instability-risk": 1.5,
    })

    intervention_checklists: Dict[str, List[str]] = field(default_factory=lambda: {
        "personal-call": [
            "Head coach calls within 48 hours, not a text",
            "Ask one open question: what has changed for you lately?",
            "Listen first; no retention pitch",
            "Log the contact so the next review sees it",
        ],
        "goal-review": [
            "Book a 15-minute goal session with their coach",
            "Set one skill milestone with a target date",
            "Agree on a weekly class rhythm",
            "Check progress again in 30 days",
        ],
        "schedule-change": [
            "Ask which class times actually fit their week",
            "Offer a standing spot in a class that fits",
            "Pair them with a regular from that class",
            "Confirm attendance after the first week",
        ],
        "funnel": [
            "Review every lead lost at this stage in the last 30 days",
            "Tighten follow-up timing for this stage",
            "Script the next step so every prospect hears it",
            "Re-check the stage conversion after two weeks",
        ],
        "stability": [
            "Review the weakest metric with the coaching staff",
            "Pick one owner and one change for the next 30 days",
            "Re-score after the next monthly close",
        ],
    })

    # === Metadata ===
    version: str = "1.0.0"

    def get_stability_tier(self, score: int) -> StabilityTier:
        """Map a 0-100 score to its tier (thresholds checked high to low)."""
        for threshold, tier in sorted(self.stability_tiers, key=lambda t: -t[0]):
            if score >= threshold:
                return StabilityTier(tier)
        return StabilityTier.INSTABILITY_RISK

    def get_base_probability(self, engagement_class: str) -> float:
        return self.base_probability[str(getattr(engagement_class, "value", engagement_class))]

    def get_class_threshold(self, engagement_class: str) -> int | None:
        """Attendance gap (days) at which the class begins; None for core."""
        key = str(getattr(engagement_class, "value", engagement_class))
        return {
            "ghost": self.ghost_attendance_days,
            "at-risk": self.at_risk_attendance_days,
            "drifter": self.drifter_attendance_days,
        }.get(key)

    def get_checklist(self, key: str) -> tuple[str, ...]:
        return tuple(self.intervention_checklists.get(key, ()))

    @classmethod
    def from_yaml(cls, path: Path | str) -> "EngineConfig":
        """Load configuration overrides from a YAML file."""
        path = Path(path)
        with open(path) as f:
            data = yaml.safe_load(f) or {}
        return cls(**data)

    def to_yaml(self, path: Path | str) -> None:
        """Save configuration to YAML file."""
        path = Path(path)
        path.parent.mkdir(parents=True, exist_ok=True)
        with open(path, "w") as f:
            yaml.dump(self.to_dict(), f, default_flow_style=False, sort_keys=False)

    def to_dict(self) -> dict:
        data = asdict(self)
        # YAML has no tuple type
        data["stability_tiers"] = [list(t) for t in self.stability_tiers]
        return data


# Default configuration instance
DEFAULT_CONFIG = EngineConfig()
