"""Revenue and membership forecasting."""

import logging
from typing import Optional, Sequence

import numpy as np

from ..schemas import validate_metrics
from ..types import (
    CashFlowRisk,
    ChurnEstimate,
    ChurnTrajectory,
    Forecast,
    MemberStatus,
    MonthlyMetrics,
    Outlook,
    ProjectionPoint,
    RevenueScenario,
    ScenarioMonth,
    ThreeMonthProjection,
)
from .base import BaseComponent

logger = logging.getLogger(__name__)


class RevenueForecaster(BaseComponent):
    """
    Project next-period MRR, a short trajectory and revenue at risk.

    All projections assume current churn and growth rates persist
    unchanged ("if nothing changes"); they are not predictions of what
    the gym will actually do.
    """

    name = "forecast"

    @staticmethod
    def _sorted(metrics_history: Sequence[MonthlyMetrics]) -> list[MonthlyMetrics]:
        validate_metrics(metrics_history)
        return sorted(metrics_history, key=lambda m: m.month_start)

    def revenue_at_risk(self, churn_results: Sequence[ChurnEstimate]) -> float:
        """Probability-weighted monthly revenue of flagged members."""
        return round(sum(e.monthly_rate * e.probability for e in churn_results if e.is_flagged), 2)

    def projected_cancels_revenue(self, churn_results: Sequence[ChurnEstimate]) -> float:
        threshold = self.config.projected_cancel_probability
        return round(sum(
            e.monthly_rate
            for e in churn_results
            if e.features.status == MemberStatus.ACTIVE and e.probability > threshold
        ), 2)

    def churn_trajectory(self, history: list[MonthlyMetrics]) -> tuple[ChurnTrajectory, float]:
        """Trend label and projected churn % from the last three months."""
        latest = float(history[-1].churn_rate) if history else 0.0
        if len(history) < 3:
            return ChurnTrajectory.UNKNOWN, latest

        trend = latest - float(history[-3].churn_rate)
        step = self.config.trajectory_change_points
        if trend > step:
            return ChurnTrajectory.RISING, min(latest + trend / 2, 100.0)
        if trend < -step:
            return ChurnTrajectory.IMPROVING, max(latest + trend / 2, 0.0)
        return ChurnTrajectory.STEADY, latest

    def outlook(self, latest: MonthlyMetrics) -> Outlook:
        cfg = self.config
        churn = float(latest.churn_rate)
        if churn <= cfg.outlook_strong_churn and latest.net_growth > 0:
            return Outlook.STRONG
        if churn <= cfg.outlook_stable_churn and latest.net_growth >= 0:
            return Outlook.STABLE
        if churn <= cfg.outlook_attention_churn:
            return Outlook.ATTENTION
        return Outlook.URGENT

    def forecast(
        self,
        metrics_history: Sequence[MonthlyMetrics],
        churn_results: Sequence[ChurnEstimate],
        current_mrr: Optional[float] = None,
        months: Optional[int] = None,
    ) -> Forecast:
        """
        Forecast revenue and membership.

        Args:
            metrics_history: Monthly metrics, one per month, no gaps
            churn_results: ChurnEstimates for the roster
            current_mrr: MRR now; defaults to the latest month's MRR
            months: Trajectory length (default: forecast_horizon_months)

        Returns:
            Forecast. With fewer than 2 months of history the outlook is
            INSUFFICIENT_DATA and nothing is extrapolated.
        """
        cfg = self.config
        history = self._sorted(metrics_history)
        months = months or cfg.forecast_horizon_months
        revenue_at_risk = self.revenue_at_risk(churn_results)
        active = [e for e in churn_results if e.features.status == MemberStatus.ACTIVE]

        if current_mrr is None:
            current_mrr = float(history[-1].mrr) if history else sum(e.monthly_rate for e in active)
        current_members = history[-1].active_members if history else len(active)
        arm = history[-1].average_revenue_per_member if history else (
            current_mrr / len(active) if active else 0.0
        )

        if len(history) < 2:
            logger.debug("Forecast skipped: %d month(s) of history", len(history))
            return Forecast(
                current_mrr=round(current_mrr, 2),
                next_period_mrr=round(current_mrr, 2),
                mrr_delta=0.0,
                churn_trajectory=ChurnTrajectory.UNKNOWN,
                projected_churn_rate=float(history[-1].churn_rate) if history else 0.0,
                projection=ThreeMonthProjection(
                    mrr=round(current_mrr, 2),
                    members=max(0, current_members),
                    revenue_at_risk=revenue_at_risk,
                ),
                outlook=Outlook.INSUFFICIENT_DATA,
                average_revenue_per_member=round(arm, 2),
            )

        recent = history[-cfg.trailing_window_months:]
        joins_revenue = float(np.mean([m.new_members * m.average_revenue_per_member for m in recent]))
        avg_new_members = float(np.mean([m.new_members for m in recent]))
        cancels_revenue = self.projected_cancels_revenue(churn_results)
        mrr_delta = joins_revenue - cancels_revenue

        trajectory_label, projected_churn = self.churn_trajectory(history)
        projected_churn = max(0.0, min(100.0, projected_churn))

        points = []
        members = current_members
        mrr = current_mrr
        for offset in range(1, max(months, 3) + 1):
            lost = int(round(members * projected_churn / 100))
            members = max(0, members - lost + int(round(avg_new_members)))
            mrr = max(0.0, mrr + mrr_delta)
            points.append(ProjectionPoint(month_offset=offset, mrr=round(mrr, 2), members=members))

        three_month = points[2]
        return Forecast(
            current_mrr=round(current_mrr, 2),
            next_period_mrr=round(max(0.0, current_mrr + mrr_delta), 2),
            mrr_delta=round(mrr_delta, 2),
            churn_trajectory=trajectory_label,
            projected_churn_rate=round(projected_churn, 1),
            projection=ThreeMonthProjection(
                mrr=three_month.mrr,
                members=three_month.members,
                revenue_at_risk=revenue_at_risk,
            ),
            outlook=self.outlook(history[-1]),
            average_revenue_per_member=round(arm, 2),
            projected_joins_revenue=round(joins_revenue, 2),
            projected_cancels_revenue=cancels_revenue,
            trajectory=tuple(points[:months]),
        )

    def scenarios(
        self,
        metrics_history: Sequence[MonthlyMetrics],
        months: Optional[int] = None,
    ) -> Optional[RevenueScenario]:
        """
        Expected / upside / downside MRR paths.

        Upside: churn 1 std lower, joins 1 std higher.
        Downside: churn 1.5 std higher, joins 1 std lower.
        Returns None with fewer than 2 months of history.
        """
        history = self._sorted(metrics_history)
        if len(history) < 2:
            return None

        months = months or self.config.scenario_months
        latest = history[-1]
        current_mrr = float(latest.mrr)
        arm = latest.average_revenue_per_member

        recent = history[-self.config.trailing_window_months:]
        churn = np.array([float(m.churn_rate) for m in recent])
        joins = np.array([m.new_members for m in recent], dtype=float)
        avg_churn, churn_std = float(churn.mean()), float(churn.std())
        avg_joins, joins_std = float(joins.mean()), float(joins.std())

        paths = {
            "expected": (avg_churn, avg_joins),
            "upside": (max(0.0, avg_churn - churn_std), avg_joins + joins_std),
            "downside": (avg_churn + churn_std * 1.5, max(0.0, avg_joins - joins_std)),
        }
        members = {name: latest.active_members for name in paths}

        projections = []
        for offset in range(1, months + 1):
            mrr = {}
            for name, (churn_pct, new) in paths.items():
                lost = int(round(members[name] * churn_pct / 100))
                members[name] = max(0, members[name] - lost + int(round(new)))
                mrr[name] = round(members[name] * arm, 2)
            projections.append(ScenarioMonth(
                month_offset=offset,
                expected=mrr["expected"],
                upside=mrr["upside"],
                downside=mrr["downside"],
            ))

        final = projections[-1]
        if final.downside < current_mrr * 0.6:
            break_even_risk = 0.7
        elif final.downside < current_mrr * 0.8:
            break_even_risk = 0.3
        elif final.expected < current_mrr * 0.95:
            break_even_risk = 0.15
        else:
            break_even_risk = 0.05

        if break_even_risk > 0.5:
            cash_flow = CashFlowRisk.CRITICAL
        elif break_even_risk > 0.25:
            cash_flow = CashFlowRisk.HIGH
        elif break_even_risk > 0.1:
            cash_flow = CashFlowRisk.MODERATE
        else:
            cash_flow = CashFlowRisk.LOW

        return RevenueScenario(
            projections=tuple(projections),
            expected_mrr=final.expected,
            upside_mrr=final.upside,
            worst_case_mrr=final.downside,
            break_even_risk=break_even_risk,
            cash_flow_risk=cash_flow,
        )
