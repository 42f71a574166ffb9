"""
RetentionEngine - orchestrates the engine components for one gym.

Usage:
    from retention import RetentionEngine, EngineConfig

    # With default config
    engine = RetentionEngine()
    result = engine.analyze(members, contacts, metrics_history, now=date.today())

    # With custom config
    config = EngineConfig(ghost_attendance_days=28)
    result = RetentionEngine(config).analyze_frames(members_df, contacts_df, metrics_df, now)

    # Access results
    print(result.to_frame()[["member_id", "engagement_class", "churn_probability"]])
    print(result.focus_message)
"""

import logging
from collections import Counter, defaultdict
from dataclasses import dataclass, field
from datetime import date
from typing import Iterable, Optional, Sequence

import numpy as np
import pandas as pd

from .config import DEFAULT_CONFIG, EngineConfig
from .components import (
    ChurnEstimator,
    CohortAnalyzer,
    FunnelDetector,
    RecommendationPrioritizer,
    RevenueForecaster,
    RiskClassifier,
    SignalExtractor,
    StabilityScorer,
)
from .errors import InvalidInputError
from .schemas import (
    MEMBER_OUTPUT_SCHEMA,
    contacts_from_frame,
    members_from_frame,
    metrics_from_frame,
)
from .types import (
    ChurnEstimate,
    CohortAnalysis,
    ContactEvent,
    DateLike,
    EngagementClass,
    Forecast,
    FunnelBottleneck,
    FunnelCounts,
    FunnelRates,
    Member,
    MemberAction,
    MemberStatus,
    MonthlyMetrics,
    PrioritizedRecommendations,
    Recommendation,
    RevenueScenario,
    RiskTier,
    SalesHealth,
    StabilityScore,
    as_date,
)

logger = logging.getLogger(__name__)

OUTPUT_COLUMNS = [
    "member_id",
    "name",
    "status",
    "engagement_class",
    "risk_tier",
    "churn_probability",
    "tenure_days",
    "days_since_attendance",
    "days_since_contact",
    "monthly_rate",
    "total_revenue",
    "is_high_value",
    "primary_factor",
    "risk_reasons",
    "recommended_action",
    "urgency",
    "churn_delta",
]

TIER_ORDER = [RiskTier.LOW.value, RiskTier.MEDIUM.value, RiskTier.HIGH.value]


@dataclass
class EngineResult:
    """
    Container for one engine run.

    Attributes:
        now: Point in time the run describes
        estimates: One ChurnEstimate per member, highest probability first
        actions: Per-member action keyed by member_id
        forecast: Forecast, or None if the metrics history was rejected
        scenario: Expected/upside/downside paths, or None
        funnel_rates: Stage conversion rates, or None without funnel counts
        bottleneck: Weakest funnel stage, or None
        sales_health: Funnel composite score, or None without funnel counts
        stability: StabilityScore, or None
        recommendations: Ranked interventions with the focus
        cohorts: Join-month cohorts and cancellation windows
        errors: Component name -> message for isolated failures
    """

    now: date
    estimates: list[ChurnEstimate]
    actions: dict[str, MemberAction]
    forecast: Optional[Forecast]
    scenario: Optional[RevenueScenario]
    funnel_rates: Optional[FunnelRates]
    bottleneck: Optional[FunnelBottleneck]
    stability: Optional[StabilityScore]
    recommendations: PrioritizedRecommendations
    cohorts: Optional[CohortAnalysis] = None
    sales_health: Optional[SalesHealth] = None
    names: dict[str, Optional[str]] = field(default_factory=dict)
    errors: dict[str, str] = field(default_factory=dict)

    @property
    def focus(self) -> Optional[Recommendation]:
        return self.recommendations.focus

    @property
    def focus_message(self) -> str:
        return self.recommendations.focus_message

    @property
    def flagged(self) -> list[ChurnEstimate]:
        return [e for e in self.estimates if e.is_flagged]

    def get(self, member_id: str) -> ChurnEstimate:
        for estimate in self.estimates:
            if estimate.member_id == member_id:
                return estimate
        raise KeyError(member_id)

    def to_frame(self) -> pd.DataFrame:
        """
        One row per member, validated against MEMBER_OUTPUT_SCHEMA.

        Returns:
            DataFrame ordered like `estimates` (probability desc)
        """
        rows = []
        for estimate in self.estimates:
            features = estimate.features
            action = self.actions[estimate.member_id]
            primary = estimate.primary_factor
            rows.append({
                "member_id": estimate.member_id,
                "name": self.names.get(estimate.member_id),
                "status": features.status.value,
                "engagement_class": estimate.engagement_class.value,
                "risk_tier": estimate.risk_tier.value,
                "churn_probability": estimate.probability,
                "tenure_days": features.tenure_days,
                "days_since_attendance": features.days_since_attendance,
                "days_since_contact": features.days_since_contact,
                "monthly_rate": features.monthly_rate,
                "total_revenue": features.total_revenue,
                "is_high_value": features.is_high_value,
                "primary_factor": primary.name if primary else None,
                "risk_reasons": "; ".join(estimate.classification.risk_reasons),
                "recommended_action": action.intervention.value if action.intervention else None,
                "urgency": action.urgency.value,
                "churn_delta": action.churn_delta,
            })

        df = pd.DataFrame(rows, columns=OUTPUT_COLUMNS)
        df = df.astype({"churn_probability": float, "monthly_rate": float, "churn_delta": float})
        return MEMBER_OUTPUT_SCHEMA.validate(df)

    def get_flagged(self, min_tier: str = "high") -> pd.DataFrame:
        """
        Get active members at or above a risk tier.

        Args:
            min_tier: Minimum risk tier ("low", "medium", "high")

        Returns:
            DataFrame filtered to members at or above the tier
        """
        min_tier = getattr(min_tier, "value", min_tier)
        valid_tiers = TIER_ORDER[TIER_ORDER.index(min_tier):]
        df = self.to_frame()
        return df[(df["risk_tier"].isin(valid_tiers)) & (df["status"] == MemberStatus.ACTIVE.value)]

    def summary(self) -> pd.DataFrame:
        """
        Counts and averages by engagement class and risk tier.

        Returns:
            DataFrame indexed by (engagement_class, risk_tier)
        """
        return (
            self.to_frame()
            .groupby(["engagement_class", "risk_tier"])
            .agg(
                count=("member_id", "count"),
                avg_probability=("churn_probability", "mean"),
                monthly_revenue=("monthly_rate", "sum"),
            )
            .round(3)
        )

    def factor_breakdown(self) -> pd.DataFrame:
        """
        How often each causal factor fires and how much it contributes.

        Returns:
            DataFrame indexed by factor name
        """
        impacts = defaultdict(list)
        primaries = Counter()
        for estimate in self.estimates:
            for factor in estimate.causal_factors:
                impacts[factor.name].append(factor.impact)
            if estimate.primary_factor is not None:
                primaries[estimate.primary_factor.name] += 1

        stats = {}
        for name, values in impacts.items():
            stats[name] = {
                "count": len(values),
                "primary": primaries.get(name, 0),
                "mean_impact": float(np.mean(values)),
                "total_impact": float(np.sum(values)),
            }
        return pd.DataFrame(stats).T.round(4)

    def top_risk_driver(self) -> Optional[str]:
        """Most common adjustment factor among flagged members."""
        counts = Counter(
            factor.name
            for estimate in self.flagged
            for factor in estimate.causal_factors
            if factor.name != "engagement-class" and factor.impact > 0
        )
        if not counts:
            return None
        # Ties resolve alphabetically so repeated runs agree
        return min(counts.items(), key=lambda item: (-item[1], item[0]))[0]

    def roster_summary(self) -> dict:
        """Headline numbers for the roster."""
        active = [e for e in self.estimates if e.features.status == MemberStatus.ACTIVE]
        by_class = Counter(e.engagement_class.value for e in active)
        return {
            "members": len(self.estimates),
            "active_members": len(active),
            "engagement": {c.value: by_class.get(c.value, 0) for c in EngagementClass},
            "at_risk_members": len(self.flagged),
            "revenue_at_risk": round(sum(e.monthly_rate * e.probability for e in self.flagged), 2),
            "average_probability": round(float(np.mean([e.probability for e in active])), 4) if active else 0.0,
            "urgent_actions": sum(1 for a in self.actions.values() if a.urgency.value == "immediate"),
            "top_risk_driver": self.top_risk_driver(),
            "outlook": self.forecast.outlook.value if self.forecast else None,
            "stability_score": self.stability.score if self.stability else None,
            "stability_tier": self.stability.tier.value if self.stability else None,
            "bottleneck": self.bottleneck.stage.value if self.bottleneck else None,
            "sales_health": self.sales_health.score if self.sales_health else None,
            "early_loss_share": self.cohorts.early_loss_share if self.cohorts else None,
            "focus": self.focus_message,
            "errors": dict(self.errors),
        }


class RetentionEngine:
    """
    Retention decision engine for a single gym.

    Per member: SignalExtractor -> RiskClassifier -> ChurnEstimator.
    Then over the whole roster: RevenueForecaster, FunnelDetector and
    StabilityScorer, all feeding the RecommendationPrioritizer.

    The engine holds only its configuration; every call is a pure function
    of its inputs and `now`.
    """

    def __init__(self, config: Optional[EngineConfig] = None):
        """
        Initialize engine with configuration.

        Args:
            config: EngineConfig instance. Uses DEFAULT_CONFIG if None.
        """
        self.config = config or DEFAULT_CONFIG
        self._init_components()

    def _init_components(self) -> None:
        """Initialize all engine components."""
        self.components = {
            "signals": SignalExtractor(self.config),
            "classifier": RiskClassifier(self.config),
            "churn": ChurnEstimator(self.config),
            "forecast": RevenueForecaster(self.config),
            "funnel": FunnelDetector(self.config),
            "cohorts": CohortAnalyzer(self.config),
            "stability": StabilityScorer(self.config),
            "recommendations": RecommendationPrioritizer(self.config),
        }

    def classify_member(
        self,
        member: Member,
        contact_history: Iterable[ContactEvent],
        now: DateLike,
        high_value_threshold: Optional[float] = None,
    ) -> ChurnEstimate:
        """
        Run the per-member stages for one member.

        Raises:
            InvalidInputError: If the member record is inconsistent
        """
        features = self.components["signals"].extract(member, contact_history, now, high_value_threshold)
        classification = self.components["classifier"].classify(features)
        return self.components["churn"].estimate(features, classification)

    def _group_contacts(
        self,
        members: Sequence[Member],
        contacts: Iterable[ContactEvent],
    ) -> dict[str, list[ContactEvent]]:
        known = {m.member_id for m in members}
        grouped = defaultdict(list)
        for event in contacts:
            if event.member_id not in known:
                raise InvalidInputError(f"Contact event for unknown member {event.member_id}")
            grouped[event.member_id].append(event)
        return grouped

    def analyze(
        self,
        members: Sequence[Member],
        contacts: Iterable[ContactEvent],
        metrics_history: Sequence[MonthlyMetrics],
        now: DateLike,
        funnel_counts: Optional[FunnelCounts] = None,
        current_mrr: Optional[float] = None,
    ) -> EngineResult:
        """
        Analyze a gym's roster and metrics.

        Args:
            members: Member records
            contacts: Contact log for those members
            metrics_history: Monthly metrics, any order
            now: Point in time for the analysis
            funnel_counts: Sales funnel counts for the period, optional
            current_mrr: MRR now; defaults to the latest month's MRR

        Returns:
            EngineResult

        Raises:
            InvalidInputError: On duplicate member ids, inconsistent member
                records or contacts for unknown members. Invalid metrics or
                funnel counts are recorded in EngineResult.errors instead.
        """
        today = as_date(now)
        ids = [m.member_id for m in members]
        duplicates = sorted(i for i, n in Counter(ids).items() if n > 1)
        if duplicates:
            raise InvalidInputError(f"Duplicate member ids: {duplicates}")

        grouped = self._group_contacts(members, contacts)
        threshold = self.components["signals"].high_value_threshold(members)

        estimates = [
            self.classify_member(member, grouped.get(member.member_id, []), today, threshold)
            for member in members
        ]
        estimates.sort(key=lambda e: (-e.probability, e.member_id))
        logger.debug(
            "Estimated %d members (%d flagged, high-value rate %.2f)",
            len(estimates), sum(e.is_flagged for e in estimates), threshold,
        )

        cohorts = self.components["cohorts"].analyze(members, today)

        prioritizer = self.components["recommendations"]
        actions = {e.member_id: prioritizer.recommend_for_member(e) for e in estimates}
        errors = {}

        forecast, scenario = None, None
        try:
            forecast = self.components["forecast"].forecast(metrics_history, estimates, current_mrr)
            scenario = self.components["forecast"].scenarios(metrics_history)
        except InvalidInputError as exc:
            logger.warning("Forecast skipped: %s", exc)
            errors["forecast"] = str(exc)

        funnel_rates, bottleneck, sales_health = None, None, None
        if funnel_counts is not None:
            try:
                funnel_rates = self.components["funnel"].rates(funnel_counts)
                bottleneck = self.components["funnel"].detect(funnel_counts)
                sales_health = self.components["funnel"].health(funnel_counts)
            except InvalidInputError as exc:
                logger.warning("Funnel analysis skipped: %s", exc)
                errors["funnel"] = str(exc)

        stability = None
        try:
            stability = self.components["stability"].score(metrics_history)
        except InvalidInputError as exc:
            logger.warning("Stability score skipped: %s", exc)
            errors["stability"] = str(exc)

        recommendations = prioritizer.prioritize(estimates, forecast, bottleneck, stability)
        logger.debug(
            "Ranked %d recommendations; focus: %s",
            len(recommendations.recommendations),
            recommendations.focus.category if recommendations.focus else None,
        )

        return EngineResult(
            now=today,
            estimates=estimates,
            actions=actions,
            forecast=forecast,
            scenario=scenario,
            funnel_rates=funnel_rates,
            bottleneck=bottleneck,
            stability=stability,
            recommendations=recommendations,
            cohorts=cohorts,
            sales_health=sales_health,
            names={m.member_id: m.name for m in members},
            errors=errors,
        )

    def analyze_frames(
        self,
        members_df: pd.DataFrame,
        contacts_df: Optional[pd.DataFrame],
        metrics_df: Optional[pd.DataFrame],
        now: DateLike,
        funnel_counts: Optional[FunnelCounts] = None,
        current_mrr: Optional[float] = None,
    ) -> EngineResult:
        """
        Analyze from DataFrames (validated with the pandera input schemas).

        Raises:
            pandera.errors.SchemaError: If a frame violates its schema
        """
        return self.analyze(
            members_from_frame(members_df),
            contacts_from_frame(contacts_df),
            metrics_from_frame(metrics_df),
            now,
            funnel_counts=funnel_counts,
            current_mrr=current_mrr,
        )


SAMPLE_NOW = date(2025, 6, 1)


def generate_sample_roster(
    n_members: int = 100,
    seed: int = 42,
    now: date = SAMPLE_NOW,
    n_months: int = 12,
) -> tuple[pd.DataFrame, pd.DataFrame, pd.DataFrame]:
    """
    Generate a realistic gym snapshot for testing.

    Distributions:
    - Rates: mostly unlimited plans around $150-200, some premium
    - Status: active 85%, cancelled 10%, frozen 5%
    - Attendance gap: exponential, mean ~6 days; 5% never attended
    - Contact: 30% never contacted, otherwise one logged contact

    Returns:
        (members_df, contacts_df, metrics_df)
    """
    np.random.seed(seed)
    now_ts = pd.Timestamp(now)

    tenure = np.random.randint(5, 900, size=n_members)
    join = [now_ts - pd.Timedelta(days=int(t)) for t in tenure]

    rates = np.random.choice(
        [99.0, 149.0, 179.0, 199.0, 249.0],
        size=n_members,
        p=[0.15, 0.35, 0.25, 0.15, 0.10],
    )
    status = np.random.choice(
        ["active", "cancelled", "frozen"],
        size=n_members,
        p=[0.85, 0.10, 0.05],
    )
    cancel_offset = (np.random.random(n_members) * tenure).astype(int)

    attendance_gap = np.minimum(np.random.exponential(scale=6, size=n_members).astype(int), tenure)
    never_attended = np.random.random(n_members) < 0.05
    contact_gap = np.minimum(np.random.exponential(scale=20, size=n_members).astype(int), tenure)
    never_contacted = np.random.random(n_members) < 0.30

    member_ids = [f"MEMBER_{i:04d}" for i in range(n_members)]
    members_df = pd.DataFrame(
        {
            "member_id": member_ids,
            "name": [f"Member {i}" for i in range(n_members)],
            "join_date": pd.to_datetime(join),
            "monthly_rate": rates,
            "status": status,
            "cancel_date": pd.to_datetime([
                join[i] + pd.Timedelta(days=int(cancel_offset[i])) if status[i] == "cancelled" else None
                for i in range(n_members)
            ]),
            "last_attended_date": pd.to_datetime([
                None if never_attended[i] else now_ts - pd.Timedelta(days=int(attendance_gap[i]))
                for i in range(n_members)
            ]),
        }
    )

    contacts_df = pd.DataFrame(
        {
            "member_id": [member_ids[i] for i in range(n_members) if not never_contacted[i]],
            "contacted_at": pd.to_datetime([
                now_ts - pd.Timedelta(days=int(contact_gap[i]))
                for i in range(n_members)
                if not never_contacted[i]
            ]),
        }
    )
    contacts_df["note"] = "check-in"

    # Monthly aggregates as the upstream store would supply them
    month_starts = pd.date_range(end=now_ts.replace(day=1), periods=n_months, freq="MS")
    active = int((status == "active").sum())
    new_members = np.random.poisson(lam=8, size=n_months)
    cancels = np.random.poisson(lam=5, size=n_months)
    active_members = []
    for i in range(n_months):
        active_members.append(max(1, active - int(new_members[i:].sum()) + int(cancels[i:].sum())))
    active_members = np.array(active_members)
    start_members = np.maximum(1, active_members - new_members + cancels)
    arm = float(rates.mean())

    metrics_df = pd.DataFrame(
        {
            "month_start": month_starts,
            "mrr": (active_members * arm).round(2),
            "active_members": active_members,
            "new_members": new_members,
            "cancels": cancels,
            "churn_rate": np.clip(cancels / start_members * 100, 0, 100).round(1),
            "rsi": np.clip(np.random.normal(loc=75, scale=8, size=n_months), 0, 100).round(1),
            "arm": round(arm, 2),
        }
    )

    return members_df, contacts_df, metrics_df


def sample_funnel(seed: int = 42) -> FunnelCounts:
    """Plausible monthly funnel counts."""
    rng = np.random.RandomState(seed)
    leads = int(rng.randint(40, 80))
    booked = int(leads * rng.uniform(0.4, 0.7))
    shows = int(booked * rng.uniform(0.5, 0.8))
    return FunnelCounts(leads=leads, booked=booked, shows=shows, new_members=int(shows * rng.uniform(0.3, 0.6)))

