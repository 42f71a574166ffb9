"""Churn probability estimation with causal factors and counterfactuals."""

from dataclasses import replace
from typing import Optional

from ..config import EngineConfig
from ..types import (
    CausalFactor,
    ChurnEstimate,
    Counterfactual,
    Features,
    InterventionType,
    RiskClassification,
)
from .base import BaseComponent
from .classifier import RiskClassifier


class ChurnEstimator(BaseComponent):
    """
    Convert features + classification into a churn probability.

    Terms (evaluation order):
    - engagement-class: base probability (ghost 0.75, at-risk 0.45,
      drifter 0.25, core 0.05)
    - attendance-drift: +0.01 per day past the class threshold, capped at
      +0.15; never-attended members take the full cap
    - recent-contact: -0.10 if contacted within 7 days
    - high-value-neglect: +0.05 for high-value members unattended > 14 days
    - never-contacted: +0.05 once past onboarding with no contact logged

    The sum is clamped to [0.02, 0.97]. Identical inputs always give
    identical outputs.
    """

    name = "churn"

    def __init__(self, config: Optional[EngineConfig] = None):
        super().__init__(config)
        self.classifier = RiskClassifier(self.config)

    def factors(self, features: Features, classification: RiskClassification) -> list[CausalFactor]:
        """Contributing terms in evaluation order (unsorted)."""
        cfg = self.config
        engagement_class = classification.engagement_class
        factors = []

        reason = classification.risk_reasons[0] if classification.risk_reasons else "no risk signals"
        factors.append(CausalFactor(
            name="engagement-class",
            impact=cfg.get_base_probability(engagement_class),
            evidence=f"Classified {engagement_class.value}: {reason}",
        ))

        threshold = cfg.get_class_threshold(engagement_class)
        att = features.days_since_attendance
        if threshold is not None:
            if att is None:
                drift = cfg.drift_cap
                evidence = "Never attended"
            else:
                drift = min(cfg.drift_cap, max(0, att - threshold) * cfg.drift_per_day)
                evidence = f"{max(0, att - threshold)} days past the {threshold}-day threshold"
            if drift > 0:
                factors.append(CausalFactor("attendance-drift", round(drift, 4), evidence))

        if features.days_since_contact is not None and features.days_since_contact <= cfg.recent_contact_days:
            factors.append(CausalFactor(
                "recent-contact",
                cfg.recent_contact_credit,
                f"Contacted {features.days_since_contact} days ago",
            ))

        unattended = att if att is not None else features.tenure_days
        if features.is_high_value and unattended > cfg.high_value_neglect_days:
            factors.append(CausalFactor(
                "high-value-neglect",
                cfg.high_value_neglect_penalty,
                f"High-value member (${features.monthly_rate:,.0f}/mo) unattended for {unattended} days",
            ))

        if not features.ever_contacted and features.tenure_days > cfg.onboarding_grace_days:
            factors.append(CausalFactor(
                "never-contacted",
                cfg.never_contacted_penalty,
                f"No contact logged in {features.tenure_days} days of membership",
            ))

        return factors

    def probability(self, features: Features, classification: RiskClassification) -> float:
        total = sum(f.impact for f in self.factors(features, classification))
        return self._clamp(total)

    def _clamp(self, value: float) -> float:
        cfg = self.config
        return round(max(cfg.probability_floor, min(cfg.probability_ceiling, value)), 4)

    def neutralize(self, features: Features, intervention: InterventionType) -> Features:
        """Features as they would look had the intervention already happened."""
        if intervention == InterventionType.PERSONAL_CALL:
            return replace(features, days_since_contact=0)
        if intervention == InterventionType.GOAL_REVIEW:
            cap = self.config.drifter_attendance_days
            att = features.days_since_attendance
            return replace(features, days_since_attendance=cap if att is None else min(att, cap))
        if intervention == InterventionType.SCHEDULE_CHANGE:
            return replace(features, days_since_attendance=0)
        raise ValueError(f"Unknown intervention: {intervention}")

    def counterfactuals(self, features: Features, probability: float) -> tuple[Counterfactual, ...]:
        """Re-score each intervention; churn_delta is never positive."""
        results = []
        for intervention in InterventionType:
            altered = self.neutralize(features, intervention)
            altered_prob = self.probability(altered, self.classifier.classify(altered))
            delta = min(0.0, round(altered_prob - probability, 4))
            results.append(Counterfactual(
                intervention=intervention,
                probability=round(probability + delta, 4),
                churn_delta=delta,
            ))
        return tuple(results)

    def estimate(self, features: Features, classification: RiskClassification) -> ChurnEstimate:
        """
        Estimate churn probability for one member.

        Args:
            features: Output of SignalExtractor.extract
            classification: Output of RiskClassifier.classify

        Returns:
            ChurnEstimate with factors sorted by |impact| (ties keep
            evaluation order) and one counterfactual per intervention type
        """
        factors = self.factors(features, classification)
        probability = self._clamp(sum(f.impact for f in factors))
        ranked = sorted(factors, key=lambda f: -abs(f.impact))

        return ChurnEstimate(
            features=features,
            classification=replace(classification, churn_probability=probability),
            probability=probability,
            causal_factors=tuple(ranked),
            counterfactuals=self.counterfactuals(features, probability),
        )
