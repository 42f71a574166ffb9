"""Engagement classification and risk tiering."""

from ..types import (
    EngagementClass,
    Features,
    MemberStatus,
    RiskClassification,
    RiskTier,
)
from .base import BaseComponent


class RiskClassifier(BaseComponent):
    """
    Map Features to an engagement class and risk tier.

    Classes (first match wins; every matching signal is still recorded
    as a reason):
    1. ghost   - never attended or gap > 21 days, past the 14-day onboarding window
    2. at-risk - gap in (10, 21], or no contact in 14+ days with a 7-10 day gap
    3. drifter - gap in (7, 10]
    4. core    - everything else

    Tier: high for ghost/at-risk, medium for drifter, low for core.
    Cancelled and frozen members are always low: their risk has already
    materialized or is suspended.
    """

    name = "classifier"

    def has_contact_gap(self, features: Features) -> bool:
        """No contact in the contact-gap window (never contacted counts once tenure reaches it)."""
        gap = self.config.contact_gap_days
        if features.days_since_contact is None:
            return features.tenure_days >= gap
        return features.days_since_contact >= gap

    def reasons(self, features: Features) -> tuple[str, ...]:
        """Human-readable signals in evaluation order."""
        cfg = self.config
        reasons = []

        att = features.days_since_attendance
        contact_gap = self.has_contact_gap(features)
        if att is None:
            reasons.append("No attendance on record")
        elif att > cfg.drifter_attendance_days or (att == cfg.drifter_attendance_days and contact_gap):
            reasons.append(f"No attendance in {att} days")

        if contact_gap:
            if features.days_since_contact is None:
                reasons.append("Never contacted")
            else:
                reasons.append(f"No contact in {features.days_since_contact} days")

        if features.tenure_days <= cfg.onboarding_grace_days:
            reasons.append(f"In onboarding window ({features.tenure_days} days since joining)")

        if features.status != MemberStatus.ACTIVE:
            reasons.append(f"Membership {features.status.value}")

        return tuple(reasons)

    def engagement_class(self, features: Features) -> EngagementClass:
        cfg = self.config
        att = features.days_since_attendance

        if (att is None or att > cfg.ghost_attendance_days) and features.tenure_days > cfg.onboarding_grace_days:
            return EngagementClass.GHOST

        # Gaps past the ghost threshold only reach here during onboarding
        if att is not None and att > cfg.at_risk_attendance_days:
            return EngagementClass.AT_RISK

        # Two secondary signals together
        if (
            att is not None
            and cfg.drifter_attendance_days <= att <= cfg.at_risk_attendance_days
            and self.has_contact_gap(features)
        ):
            return EngagementClass.AT_RISK

        if att is not None and cfg.drifter_attendance_days < att <= cfg.at_risk_attendance_days:
            return EngagementClass.DRIFTER

        return EngagementClass.CORE

    def risk_tier(self, features: Features, engagement_class: EngagementClass) -> RiskTier:
        if features.status != MemberStatus.ACTIVE:
            return RiskTier.LOW
        if engagement_class in (EngagementClass.GHOST, EngagementClass.AT_RISK):
            return RiskTier.HIGH
        if engagement_class == EngagementClass.DRIFTER:
            return RiskTier.MEDIUM
        return RiskTier.LOW

    def classify(self, features: Features) -> RiskClassification:
        """Classify one member's features."""
        engagement_class = self.engagement_class(features)
        return RiskClassification(
            member_id=features.member_id,
            engagement_class=engagement_class,
            risk_tier=self.risk_tier(features, engagement_class),
            risk_reasons=self.reasons(features),
        )
