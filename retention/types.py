"""
Input records and output structures for the retention engine.

Inputs (Member, ContactEvent, MonthlyMetrics, FunnelCounts) are supplied by
the member store and sales funnel store. Everything else is produced fresh
on each engine call and carries no UI concerns.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import Optional, Union

DAYS_PER_MONTH = 30.44

DateLike = Union[date, datetime]


class MemberStatus(str, Enum):
    ACTIVE = "active"
    CANCELLED = "cancelled"
    FROZEN = "frozen"


class EngagementClass(str, Enum):
    CORE = "core"
    DRIFTER = "drifter"
    AT_RISK = "at-risk"
    GHOST = "ghost"


class RiskTier(str, Enum):
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class InterventionType(str, Enum):
    PERSONAL_CALL = "personal-call"
    GOAL_REVIEW = "goal-review"
    SCHEDULE_CHANGE = "schedule-change"


class Urgency(str, Enum):
    IMMEDIATE = "immediate"
    THIS_WEEK = "this-week"
    THIS_MONTH = "this-month"
    MONITOR = "monitor"


class ChurnTrajectory(str, Enum):
    RISING = "rising"
    IMPROVING = "improving"
    STEADY = "steady"
    UNKNOWN = "unknown"


class Outlook(str, Enum):
    STRONG = "strong"
    STABLE = "stable"
    ATTENTION = "attention"
    URGENT = "urgent"
    INSUFFICIENT_DATA = "insufficient-data"


class CashFlowRisk(str, Enum):
    LOW = "low"
    MODERATE = "moderate"
    HIGH = "high"
    CRITICAL = "critical"


class FunnelStage(str, Enum):
    LEAD_TO_BOOKED = "lead-to-booked"
    BOOKED_TO_SHOW = "booked-to-show"
    SHOW_TO_MEMBER = "show-to-member"


class StabilityTier(str, Enum):
    STABLE = "stable"
    PLATEAU_RISK = "plateau-risk"
    EARLY_DRIFT = "early-drift"
    INSTABILITY_RISK = "instability-risk"


class Priority(str, Enum):
    CRITICAL = "critical"
    HIGH = "high"
    MODERATE = "moderate"


def as_date(value: DateLike) -> date:
    """Normalize a date or datetime to its calendar date."""
    if isinstance(value, datetime):
        return value.date()
    return value


def days_between(start: DateLike, end: DateLike) -> int:
    """Whole days from start to end (negative if end is earlier)."""
    return (as_date(end) - as_date(start)).days


# ═══════════════════════════════════════════════════════════════
# Inputs
# ═══════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Member:
    """A gym member as held by the member store."""

    member_id: str
    join_date: date
    monthly_rate: float
    status: MemberStatus = MemberStatus.ACTIVE
    cancel_date: Optional[date] = None
    last_attended_date: Optional[date] = None
    last_contacted_at: Optional[DateLike] = None
    name: Optional[str] = None

    def _tenure_end(self, now: DateLike) -> date:
        now = as_date(now)
        if self.cancel_date is not None and self.cancel_date < now:
            return self.cancel_date
        return now

    def tenure_days(self, now: DateLike) -> int:
        return max(0, days_between(self.join_date, self._tenure_end(now)))

    def tenure_months(self, now: DateLike, days_per_month: float = DAYS_PER_MONTH) -> int:
        return int(self.tenure_days(now) // days_per_month)

    def total_revenue(self, now: DateLike, days_per_month: float = DAYS_PER_MONTH) -> float:
        """Rate times billing periods; the first period is billed at join."""
        return round(self.monthly_rate * (self.tenure_months(now, days_per_month) + 1), 2)


@dataclass(frozen=True)
class ContactEvent:
    member_id: str
    contacted_at: DateLike
    note: Optional[str] = None


@dataclass(frozen=True)
class MonthlyMetrics:
    """
    One month of aggregated gym metrics.

    churn_rate is a percentage (cancels / active at start of month * 100)
    computed upstream and never recomputed here.
    """

    month_start: date
    mrr: float
    active_members: int
    new_members: int
    cancels: int
    churn_rate: float
    rsi: float
    arm: Optional[float] = None

    @property
    def average_revenue_per_member(self) -> float:
        if self.arm is not None:
            return self.arm
        if self.active_members <= 0:
            return 0.0
        return self.mrr / self.active_members

    @property
    def net_growth(self) -> int:
        return self.new_members - self.cancels


@dataclass(frozen=True)
class FunnelCounts:
    """Sales funnel stage counts for one date range."""

    leads: int
    booked: int
    shows: int
    new_members: int
    response_median_minutes: Optional[float] = None  # lead to first reply


# ═══════════════════════════════════════════════════════════════
# Per-member outputs
# ═══════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class Features:
    """Normalized signals for one member at one point in time."""

    member_id: str
    status: MemberStatus
    tenure_days: int
    tenure_months: int
    days_since_attendance: Optional[int]
    days_since_contact: Optional[int]
    monthly_rate: float
    total_revenue: float
    is_high_value: bool = False

    @property
    def ever_contacted(self) -> bool:
        return self.days_since_contact is not None

    @property
    def ever_attended(self) -> bool:
        return self.days_since_attendance is not None


@dataclass(frozen=True)
class RiskClassification:
    member_id: str
    engagement_class: EngagementClass
    risk_tier: RiskTier
    risk_reasons: tuple[str, ...] = ()
    churn_probability: Optional[float] = None


@dataclass(frozen=True)
class CausalFactor:
    """One term of the churn probability with its signed contribution."""

    name: str
    impact: float
    evidence: str


@dataclass(frozen=True)
class Counterfactual:
    intervention: InterventionType
    probability: float
    churn_delta: float


@dataclass(frozen=True)
class ChurnEstimate:
    features: Features
    classification: RiskClassification
    probability: float
    causal_factors: tuple[CausalFactor, ...] = ()
    counterfactuals: tuple[Counterfactual, ...] = ()

    @property
    def member_id(self) -> str:
        return self.features.member_id

    @property
    def monthly_rate(self) -> float:
        return self.features.monthly_rate

    @property
    def engagement_class(self) -> EngagementClass:
        return self.classification.engagement_class

    @property
    def risk_tier(self) -> RiskTier:
        return self.classification.risk_tier

    @property
    def is_flagged(self) -> bool:
        """Active member classified at-risk or ghost."""
        return (
            self.features.status == MemberStatus.ACTIVE
            and self.engagement_class in (EngagementClass.AT_RISK, EngagementClass.GHOST)
        )

    @property
    def primary_factor(self) -> Optional[CausalFactor]:
        return self.causal_factors[0] if self.causal_factors else None

    @property
    def secondary_factor(self) -> Optional[CausalFactor]:
        return self.causal_factors[1] if len(self.causal_factors) > 1 else None

    @property
    def best_counterfactual(self) -> Optional[Counterfactual]:
        """Largest reduction; earlier intervention types win ties."""
        if not self.counterfactuals:
            return None
        return min(self.counterfactuals, key=lambda c: c.churn_delta)


# ═══════════════════════════════════════════════════════════════
# Aggregate outputs
# ═══════════════════════════════════════════════════════════════


@dataclass(frozen=True)
class ProjectionPoint:
    month_offset: int
    mrr: float
    members: int


@dataclass(frozen=True)
class ThreeMonthProjection:
    mrr: float
    members: int
    revenue_at_risk: float


@dataclass(frozen=True)
class Forecast:
    current_mrr: float
    next_period_mrr: float
    mrr_delta: float
    churn_trajectory: ChurnTrajectory
    projected_churn_rate: float
    projection: ThreeMonthProjection
    outlook: Outlook
    average_revenue_per_member: float = 0.0
    projected_joins_revenue: float = 0.0
    projected_cancels_revenue: float = 0.0
    trajectory: tuple[ProjectionPoint, ...] = ()

    @property
    def revenue_at_risk(self) -> float:
        return self.projection.revenue_at_risk


@dataclass(frozen=True)
class ScenarioMonth:
    month_offset: int
    expected: float
    upside: float
    downside: float


@dataclass(frozen=True)
class RevenueScenario:
    projections: tuple[ScenarioMonth, ...]
    expected_mrr: float
    upside_mrr: float
    worst_case_mrr: float
    break_even_risk: float
    cash_flow_risk: CashFlowRisk


@dataclass(frozen=True)
class FunnelRates:
    set_rate: Optional[float]
    show_rate: Optional[float]
    close_rate: Optional[float]
    funnel_conversion: Optional[float]


@dataclass(frozen=True)
class FunnelBottleneck:
    stage: FunnelStage
    drop_percent: float
    explanation: str
    sample_size: int = 0
    lost: int = 0
    downstream_rate: float = 1.0  # conversion of the stages after this one


@dataclass(frozen=True)
class SalesHealth:
    """Funnel composite, 0-100, with its 0-100 sub-scores."""

    score: int
    conversion_score: int
    speed_score: int
    stage_score: int


@dataclass(frozen=True)
class CohortBucket:
    cohort_month: str  # YYYY-MM of join_date
    total_joined: int
    still_active: int
    survival_rate: float  # percent
    avg_tenure_days: int  # active members only
    avg_monthly_rate: float
    revenue_retained: float
    revenue_lost: float


@dataclass(frozen=True)
class RetentionWindow:
    """Cancellations whose tenure fell inside [min_days, max_days]."""

    label: str
    min_days: int
    max_days: Optional[int]
    lost_count: int
    lost_pct: float
    avg_rate: float
    revenue_lost: float


@dataclass(frozen=True)
class SurvivalPoint:
    days: int
    survival_rate: float


@dataclass(frozen=True)
class CohortAnalysis:
    cohorts: tuple[CohortBucket, ...]
    windows: tuple[RetentionWindow, ...]
    survival_curve: tuple[SurvivalPoint, ...]
    early_loss_share: Optional[float]  # percent of cancellations within early_loss_days
    best_cohort: Optional[str] = None
    worst_cohort: Optional[str] = None


@dataclass(frozen=True)
class ComponentScore:
    name: str
    score: int
    max_score: int
    label: str

    @property
    def is_weak(self) -> bool:
        """Below half of its maximum."""
        return self.score < self.max_score / 2


@dataclass(frozen=True)
class StabilityScore:
    score: int
    tier: StabilityTier
    rsi_slope: ComponentScore
    churn_average: ComponentScore
    net_growth: ComponentScore
    revenue_momentum: ComponentScore

    @property
    def components(self) -> tuple[ComponentScore, ...]:
        return (self.rsi_slope, self.churn_average, self.net_growth, self.revenue_momentum)


@dataclass(frozen=True)
class Recommendation:
    """
    A candidate intervention.

    intervention_score is a ranking key only; relative order is meaningful,
    absolute units are not.
    """

    category: str
    priority: Priority
    headline: str
    intervention_score: float
    expected_revenue_impact: float
    members_affected: int
    confidence_weight: float
    urgency_factor: float
    execution_checklist: tuple[str, ...] = ()
    member_ids: tuple[str, ...] = ()


@dataclass(frozen=True)
class MemberAction:
    member_id: str
    intervention: Optional[InterventionType]
    urgency: Urgency
    churn_delta: float
    execution_checklist: tuple[str, ...] = ()


MAINTAIN_MOMENTUM_MESSAGE = (
    "No intervention stands out. Maintain momentum: keep contacting members "
    "and reviewing goals on your normal cadence."
)


@dataclass(frozen=True)
class PrioritizedRecommendations:
    recommendations: tuple[Recommendation, ...] = field(default_factory=tuple)
    focus: Optional[Recommendation] = None

    @property
    def focus_message(self) -> str:
        if self.focus is None:
            return MAINTAIN_MOMENTUM_MESSAGE
        return self.focus.headline
