"""Join-month cohorts, cancellation windows and the survival curve."""

from collections import defaultdict
from typing import Sequence

from ..errors import InvalidInputError
from ..types import (
    CohortAnalysis,
    CohortBucket,
    DateLike,
    Member,
    MemberStatus,
    RetentionWindow,
    SurvivalPoint,
    as_date,
    days_between,
)
from .base import BaseComponent


class CohortAnalyzer(BaseComponent):
    """
    Show where in the membership lifecycle members are lost.

    Cohorts group the roster by join month. Retention windows bucket
    cancelled members by how long they stayed (0-30, 31-60, 61-90, 91-180,
    181-365 and 365+ days). The survival curve is the share of the roster
    still a member past each day mark. Active and frozen members count as
    surviving; a cancelled member without a cancel_date does not.
    """

    name = "cohorts"

    def cancelled_tenures(self, members: Sequence[Member]) -> list[tuple[Member, int]]:
        """(member, days from join to cancel) for cancelled members with a cancel_date."""
        tenures = []
        for member in members:
            if member.status != MemberStatus.CANCELLED or member.cancel_date is None:
                continue
            days = days_between(member.join_date, member.cancel_date)
            if days < 0:
                raise InvalidInputError(f"Member {member.member_id}: cancel_date is before join_date")
            tenures.append((member, days))
        return tenures

    def cohorts(self, members: Sequence[Member], now: DateLike) -> list[CohortBucket]:
        """One bucket per join month, oldest first."""
        groups = defaultdict(list)
        for member in members:
            groups[member.join_date.strftime("%Y-%m")].append(member)

        buckets = []
        for month in sorted(groups):
            joined = groups[month]
            active = [m for m in joined if m.status == MemberStatus.ACTIVE]
            total_rate = sum(m.monthly_rate for m in joined)
            active_rate = sum(m.monthly_rate for m in active)
            avg_tenure = sum(m.tenure_days(now) for m in active) / len(active) if active else 0
            buckets.append(CohortBucket(
                cohort_month=month,
                total_joined=len(joined),
                still_active=len(active),
                survival_rate=round(len(active) / len(joined) * 100, 1),
                avg_tenure_days=int(round(avg_tenure)),
                avg_monthly_rate=round(total_rate / len(joined), 2),
                revenue_retained=round(active_rate, 2),
                revenue_lost=round(total_rate - active_rate, 2),
            ))
        return buckets

    def window_bounds(self) -> list[tuple[int, int | None]]:
        """Inclusive (min_days, max_days) pairs; the last window is open-ended."""
        bounds = []
        start = 0
        for end in sorted(self.config.retention_window_ends):
            bounds.append((start, end))
            start = end + 1
        bounds.append((start, None))
        return bounds

    def windows(self, tenures: list[tuple[Member, int]]) -> list[RetentionWindow]:
        total = len(tenures)
        windows = []
        for low, high in self.window_bounds():
            rates = [
                m.monthly_rate for m, days in tenures
                if days >= low and (high is None or days <= high)
            ]
            windows.append(RetentionWindow(
                label=f"{low}-{high} days" if high is not None else f"{max(low - 1, 0)}+ days",
                min_days=low,
                max_days=high,
                lost_count=len(rates),
                lost_pct=round(len(rates) / total * 100, 1) if total else 0.0,
                avg_rate=round(sum(rates) / len(rates), 2) if rates else 0.0,
                revenue_lost=round(sum(rates), 2),
            ))
        return windows

    def survival_curve(self, members: Sequence[Member]) -> list[SurvivalPoint]:
        if not members:
            return []
        cancelled = {m.member_id: days for m, days in self.cancelled_tenures(members)}

        def survived(member: Member, mark: int) -> bool:
            if member.status != MemberStatus.CANCELLED:
                return True
            return member.member_id in cancelled and cancelled[member.member_id] > mark

        return [
            SurvivalPoint(
                days=mark,
                survival_rate=round(sum(survived(m, mark) for m in members) / len(members) * 100, 1),
            )
            for mark in sorted(self.config.survival_day_marks)
        ]

    def analyze(self, members: Sequence[Member], now: DateLike) -> CohortAnalysis:
        """
        Analyze a roster's cohorts and cancellations.

        Args:
            members: Every member the gym has had, cancelled ones included
            now: Point in time for tenure of active members

        Returns:
            CohortAnalysis; early_loss_share is None without cancellations

        Raises:
            InvalidInputError: If a cancelled member's cancel_date precedes join_date
        """
        today = as_date(now)
        tenures = self.cancelled_tenures(members)
        buckets = self.cohorts(members, today)

        early_loss_share = None
        if tenures:
            early = sum(1 for _, days in tenures if days <= self.config.early_loss_days)
            early_loss_share = round(early / len(tenures) * 100, 1)

        best, worst = None, None
        eligible = [c for c in buckets if c.total_joined >= self.config.cohort_min_size]
        if eligible:
            best = min(eligible, key=lambda c: (-c.survival_rate, c.cohort_month)).cohort_month
            worst = min(eligible, key=lambda c: (c.survival_rate, c.cohort_month)).cohort_month
            if best == worst:
                best, worst = None, None

        return CohortAnalysis(
            cohorts=tuple(buckets),
            windows=tuple(self.windows(tenures)),
            survival_curve=tuple(self.survival_curve(members)),
            early_loss_share=early_loss_share,
            best_cohort=best,
            worst_cohort=worst,
        )
