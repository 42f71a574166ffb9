"""Recommendation generation and prioritization."""

from collections import defaultdict
from typing import Iterable, Optional, Sequence

from ..types import (
    ChurnEstimate,
    ChurnTrajectory,
    EngagementClass,
    Forecast,
    FunnelBottleneck,
    MemberAction,
    MemberStatus,
    PrioritizedRecommendations,
    Priority,
    Recommendation,
    RiskTier,
    StabilityScore,
    Urgency,
)
from .base import BaseComponent

INTERVENTION_LABELS = {
    "personal-call": "a personal call",
    "goal-review": "a goal review",
    "schedule-change": "a schedule change",
}


class RecommendationPrioritizer(BaseComponent):
    """
    Turn engine outputs into ranked interventions.

    Candidates:
    - one per (engagement class, best intervention) cluster of active
      ghost / at-risk / drifter members with a nonzero churn reduction
    - one for the funnel bottleneck, if any
    - one per stability component below half its max

    intervention_score = expected_revenue_impact * confidence_weight * urgency_factor.
    Ranking: score desc, members_affected desc, category asc.
    """

    name = "recommendations"

    def rank(self, candidates: Iterable[Recommendation]) -> tuple[Recommendation, ...]:
        """Total, deterministic ordering of candidates."""
        return tuple(sorted(
            candidates,
            key=lambda r: (-r.intervention_score, -r.members_affected, r.category),
        ))

    def _recommendation(
        self,
        category: str,
        priority: Priority,
        headline: str,
        impact: float,
        members_affected: int,
        confidence: float,
        urgency: float,
        checklist: tuple[str, ...],
        member_ids: tuple[str, ...] = (),
    ) -> Recommendation:
        confidence = max(0.0, min(1.0, confidence))
        urgency = max(0.0, urgency)
        return Recommendation(
            category=category,
            priority=priority,
            headline=headline,
            intervention_score=round(impact * confidence * urgency, 4),
            expected_revenue_impact=round(impact, 2),
            members_affected=max(0, members_affected),
            confidence_weight=confidence,
            urgency_factor=round(urgency, 4),
            execution_checklist=checklist,
            member_ids=member_ids,
        )

    def cluster_candidates(
        self,
        churn_results: Sequence[ChurnEstimate],
        forecast: Optional[Forecast] = None,
    ) -> list[Recommendation]:
        cfg = self.config
        clusters = defaultdict(list)
        for estimate in churn_results:
            if estimate.features.status != MemberStatus.ACTIVE:
                continue
            if estimate.engagement_class == EngagementClass.CORE:
                continue
            best = estimate.best_counterfactual
            if best is None or best.churn_delta >= 0:
                continue
            clusters[(estimate.engagement_class, best.intervention)].append((estimate, best))

        boost = 1.0
        if forecast is not None and forecast.churn_trajectory == ChurnTrajectory.RISING:
            boost += cfg.rising_churn_urgency_boost

        candidates = []
        for (engagement_class, intervention), members in sorted(
            clusters.items(), key=lambda item: (item[0][0].value, item[0][1].value)
        ):
            impact = sum(
                e.monthly_rate * -best.churn_delta * cfg.impact_horizon_months
                for e, best in members
            )
            count = len(members)
            noun = "member" if count == 1 else "members"
            candidates.append(self._recommendation(
                category=f"{engagement_class.value}/{intervention.value}",
                priority=Priority(cfg.cluster_priority[engagement_class.value]),
                headline=(
                    f"{count} {engagement_class.value} {noun}: {INTERVENTION_LABELS[intervention.value]} "
                    f"could preserve ${impact:,.0f} over {cfg.impact_horizon_months} months"
                ),
                impact=impact,
                members_affected=count,
                confidence=cfg.cluster_confidence[engagement_class.value],
                urgency=cfg.cluster_urgency[engagement_class.value] * boost,
                checklist=cfg.get_checklist(intervention.value),
                member_ids=tuple(sorted(e.member_id for e, _ in members)),
            ))
        return candidates

    def funnel_candidate(
        self,
        bottleneck: FunnelBottleneck,
        average_revenue_per_member: float,
    ) -> Recommendation:
        cfg = self.config
        impact = (
            bottleneck.lost
            * bottleneck.downstream_rate
            * average_revenue_per_member
            * cfg.impact_horizon_months
            * cfg.funnel_recovery_rate
        )
        high = bottleneck.drop_percent >= cfg.funnel_high_priority_drop
        return self._recommendation(
            category=f"funnel/{bottleneck.stage.value}",
            priority=Priority.HIGH if high else Priority.MODERATE,
            headline=f"{bottleneck.drop_percent:.0f}% of prospects drop at {bottleneck.stage.value}",
            impact=impact,
            members_affected=bottleneck.lost,
            confidence=cfg.funnel_confidence,
            urgency=1.0,
            checklist=cfg.get_checklist("funnel"),
        )

    def stability_candidates(self, stability: StabilityScore, current_mrr: float) -> list[Recommendation]:
        cfg = self.config
        candidates = []
        for component in stability.components:
            if not component.is_weak:
                continue
            deficit = (component.max_score - component.score) / component.max_score
            impact = deficit * current_mrr * cfg.stability_revenue_share * cfg.impact_horizon_months
            candidates.append(self._recommendation(
                category=f"stability/{component.name}",
                priority=Priority.CRITICAL if component.score <= 5 else Priority.HIGH,
                headline=f"{component.label}: {component.name} at {component.score}/{component.max_score}",
                impact=impact,
                members_affected=0,
                confidence=cfg.stability_confidence,
                urgency=cfg.stability_urgency.get(stability.tier.value, 1.0),
                checklist=cfg.get_checklist("stability"),
            ))
        return candidates

    def prioritize(
        self,
        churn_results: Sequence[ChurnEstimate],
        forecast: Optional[Forecast] = None,
        bottleneck: Optional[FunnelBottleneck] = None,
        stability: Optional[StabilityScore] = None,
    ) -> PrioritizedRecommendations:
        """
        Generate, score and rank candidate interventions.

        Args:
            churn_results: ChurnEstimates for the roster
            forecast: Forecast (revenue baseline and churn trajectory)
            bottleneck: FunnelBottleneck or None
            stability: StabilityScore or None

        Returns:
            PrioritizedRecommendations; focus is None when nothing qualifies
        """
        active = [e for e in churn_results if e.features.status == MemberStatus.ACTIVE]
        roster_mrr = sum(e.monthly_rate for e in active)

        if forecast is not None:
            arm = forecast.average_revenue_per_member
            current_mrr = forecast.current_mrr
        else:
            arm = roster_mrr / len(active) if active else 0.0
            current_mrr = roster_mrr

        candidates = self.cluster_candidates(churn_results, forecast)
        if bottleneck is not None:
            candidates.append(self.funnel_candidate(bottleneck, arm))
        if stability is not None:
            candidates.extend(self.stability_candidates(stability, current_mrr))

        ranked = self.rank(candidates)
        return PrioritizedRecommendations(
            recommendations=ranked,
            focus=ranked[0] if ranked else None,
        )

    def recommend_for_member(self, estimate: ChurnEstimate) -> MemberAction:
        """
        The single action for one member, shared by every view that
        shows a member (roster row, detail drawer, alert list).
        """
        best = estimate.best_counterfactual
        if best is None or best.churn_delta >= 0:
            intervention, delta = None, 0.0
        else:
            intervention, delta = best.intervention, best.churn_delta

        if estimate.features.status != MemberStatus.ACTIVE or estimate.risk_tier == RiskTier.LOW:
            urgency = Urgency.MONITOR
        elif estimate.risk_tier == RiskTier.MEDIUM:
            urgency = Urgency.THIS_MONTH
        elif estimate.engagement_class == EngagementClass.GHOST or estimate.features.is_high_value:
            urgency = Urgency.IMMEDIATE
        else:
            urgency = Urgency.THIS_WEEK

        return MemberAction(
            member_id=estimate.member_id,
            intervention=intervention,
            urgency=urgency,
            churn_delta=delta,
            execution_checklist=self.config.get_checklist(intervention.value) if intervention else (),
        )
