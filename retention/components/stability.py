"""Composite business-stability score."""

from typing import Optional, Sequence

import numpy as np

from ..schemas import validate_metrics
from ..types import ComponentScore, MonthlyMetrics, StabilityScore
from .base import BaseComponent


def linear_slope(values: Sequence[float]) -> float:
    """Least-squares slope over evenly spaced points; 0 for fewer than 2."""
    if len(values) < 2:
        return 0.0
    x = np.arange(len(values), dtype=float)
    return float(np.polyfit(x, np.asarray(values, dtype=float), 1)[0])


class StabilityScorer(BaseComponent):
    """
    Score business stability 0-100 from monthly metrics.

    Components (0-25 each):
    - RSI slope: direction of the last three RSI values and current level
    - Churn average: trailing 3-month mean churn %
    - Net growth: trailing 3-month mean of joins minus cancels
    - Revenue momentum: MRR slope as a % of latest MRR

    Tiers: >=80 stable, 60-79 plateau-risk, 40-59 early-drift,
    <40 instability-risk.
    """

    name = "stability"

    def _component(self, name: str, score: int, label: str) -> ComponentScore:
        cap = self.config.stability_component_max
        return ComponentScore(name=name, score=max(0, min(cap, score)), max_score=cap, label=label)

    def rsi_slope_score(self, history: list[MonthlyMetrics]) -> ComponentScore:
        latest_rsi = float(history[-1].rsi)
        slope = linear_slope([m.rsi for m in history[-3:]]) if len(history) >= 3 else 0.0

        if latest_rsi >= 80 and slope >= -1:
            score, label = 25, "RSI stable in healthy zone"
        elif latest_rsi >= 80:
            score, label = 20, "RSI healthy but trending down"
        elif slope > 2:
            score, label = 22, "RSI recovering quickly"
        elif slope > 0:
            score, label = 18, "RSI improving slowly"
        elif latest_rsi >= 60 and slope >= -2:
            score, label = 15, "RSI moderate, slight drift"
        elif slope < -3:
            score, label = 5, "RSI declining rapidly"
        else:
            score, label = 10, "RSI below target"
        return self._component("rsi-slope", score, label)

    def churn_average_score(self, history: list[MonthlyMetrics]) -> ComponentScore:
        recent = history[-self.config.trailing_window_months:]
        avg = float(np.mean([float(m.churn_rate) for m in recent]))

        for ceiling, score, label in [
            (2, 25, "Excellent retention"),
            (4, 22, "Strong retention"),
            (5, 18, "Within target"),
            (7, 12, "Above target"),
            (10, 6, "Elevated churn"),
        ]:
            if avg <= ceiling:
                return self._component("churn-average", score, label)
        return self._component("churn-average", 2, "Critical churn")

    def net_growth_score(self, history: list[MonthlyMetrics]) -> ComponentScore:
        recent = history[-self.config.trailing_window_months:]
        per_month = float(np.mean([m.net_growth for m in recent]))

        if per_month > 3:
            score, label = 25, "Strong positive growth"
        elif per_month > 1:
            score, label = 22, "Moderate growth"
        elif per_month > 0:
            score, label = 18, "Slight growth"
        elif per_month >= -1:
            score, label = 14, "Flat, no momentum"
        elif per_month >= -3:
            score, label = 8, "Contracting"
        else:
            score, label = 3, "Rapid contraction"
        return self._component("net-growth", score, label)

    def revenue_momentum_score(self, history: list[MonthlyMetrics]) -> ComponentScore:
        latest_mrr = float(history[-1].mrr)
        slope = linear_slope([float(m.mrr) for m in history[-3:]]) if len(history) >= 3 else 0.0
        pct = (slope / latest_mrr) * 100 if latest_mrr > 0 else 0.0

        if pct > 3:
            score, label = 25, "Revenue accelerating"
        elif pct > 1:
            score, label = 22, "Revenue growing"
        elif pct > -1:
            score, label = 18, "Revenue stable"
        elif pct > -3:
            score, label = 10, "Revenue softening"
        else:
            score, label = 4, "Revenue declining"
        return self._component("revenue-momentum", score, label)

    def score(self, metrics_history: Sequence[MonthlyMetrics]) -> Optional[StabilityScore]:
        """
        Score stability from chronological monthly metrics.

        Returns:
            StabilityScore, or None for an empty history
        """
        validate_metrics(metrics_history)
        history = sorted(metrics_history, key=lambda m: m.month_start)
        if not history:
            return None

        rsi = self.rsi_slope_score(history)
        churn = self.churn_average_score(history)
        growth = self.net_growth_score(history)
        momentum = self.revenue_momentum_score(history)

        total = max(0, min(100, rsi.score + churn.score + growth.score + momentum.score))
        return StabilityScore(
            score=total,
            tier=self.config.get_stability_tier(total),
            rsi_slope=rsi,
            churn_average=churn,
            net_growth=growth,
            revenue_momentum=momentum,
        )
