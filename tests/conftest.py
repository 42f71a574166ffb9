"""
Pytest fixtures for retention engine tests.
"""

from datetime import date, timedelta

import pytest

# Add packages to path
import sys
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from retention.config import EngineConfig
from retention.engine import RetentionEngine, generate_sample_roster
from retention.types import FunnelCounts, Member, MemberStatus, MonthlyMetrics

NOW = date(2025, 6, 1)


def months_ago(n: int) -> date:
    """First day of the month n months before NOW's month."""
    year, month = NOW.year, NOW.month - n
    while month <= 0:
        month += 12
        year -= 1
    return date(year, month, 1)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def default_config():
    """Default engine configuration."""
    return EngineConfig()


@pytest.fixture
def engine(default_config):
    """RetentionEngine with default config."""
    return RetentionEngine(default_config)


@pytest.fixture
def make_member():
    """
    Factory for members described relative to NOW.

    Day arguments are "days ago"; None means never.
    """
    def _make(
        member_id: str = "M001",
        tenure_days: int = 90,
        attended_days_ago: int | None = 3,
        contacted_days_ago: int | None = 5,
        monthly_rate: float = 150.0,
        status: MemberStatus = MemberStatus.ACTIVE,
        cancelled_days_ago: int | None = None,
    ) -> Member:
        return Member(
            member_id=member_id,
            join_date=NOW - timedelta(days=tenure_days),
            monthly_rate=monthly_rate,
            status=status,
            cancel_date=None if cancelled_days_ago is None else NOW - timedelta(days=cancelled_days_ago),
            last_attended_date=None if attended_days_ago is None else NOW - timedelta(days=attended_days_ago),
            last_contacted_at=None if contacted_days_ago is None else NOW - timedelta(days=contacted_days_ago),
        )
    return _make


@pytest.fixture
def make_metrics():
    """
    Factory for a chronological metrics history ending last month.

    Each argument is a list with one value per month, oldest first.
    """
    def _make(
        churn_rates: list[float],
        rsi: list[float] | None = None,
        mrr: list[float] | None = None,
        active: list[int] | None = None,
        new: list[int] | None = None,
        cancels: list[int] | None = None,
        arm: float | None = None,
    ) -> list[MonthlyMetrics]:
        n = len(churn_rates)
        rsi = rsi or [85.0] * n
        mrr = mrr or [15000.0] * n
        active = active or [100] * n
        new = new or [2] * n
        cancels = cancels or [2] * n
        return [
            MonthlyMetrics(
                month_start=months_ago(n - i),
                mrr=mrr[i],
                active_members=active[i],
                new_members=new[i],
                cancels=cancels[i],
                churn_rate=churn_rates[i],
                rsi=rsi[i],
                arm=arm,
            )
            for i in range(n)
        ]
    return _make


@pytest.fixture
def healthy_metrics(make_metrics):
    """Flat quarter: RSI 85, zero churn, no joins or cancels, flat MRR."""
    return make_metrics(
        churn_rates=[0.0, 0.0, 0.0],
        rsi=[85.0, 85.0, 85.0],
        mrr=[7160.0, 7160.0, 7160.0],
        active=[40, 40, 40],
        new=[0, 0, 0],
        cancels=[0, 0, 0],
    )


@pytest.fixture
def drifting_metrics(make_metrics):
    """Rising churn, falling RSI, shrinking roster and MRR."""
    return make_metrics(
        churn_rates=[3.0, 4.5, 6.5],
        rsi=[78.0, 72.0, 65.0],
        mrr=[8200.0, 8000.0, 7700.0],
        active=[48, 46, 43],
        new=[2, 1, 1],
        cancels=[2, 3, 4],
    )


@pytest.fixture
def healthy_roster(make_member):
    """Four active members, all training and recently contacted."""
    return [
        make_member("H001", tenure_days=500, attended_days_ago=2, contacted_days_ago=12, monthly_rate=179.0),
        make_member("H002", tenure_days=640, attended_days_ago=1, contacted_days_ago=7, monthly_rate=199.0),
        make_member("H003", tenure_days=190, attended_days_ago=4, contacted_days_ago=5, monthly_rate=149.0),
        make_member("H004", tenure_days=1100, attended_days_ago=3, contacted_days_ago=10, monthly_rate=179.0),
    ]


@pytest.fixture
def ghost_member(make_member):
    """Tenure 90 days, last attended 30 days ago, last contacted 40 days ago."""
    return make_member("GHOST", tenure_days=90, attended_days_ago=30, contacted_days_ago=40)


@pytest.fixture
def bottleneck_funnel():
    """70% of leads never book."""
    return FunnelCounts(leads=40, booked=12, shows=9, new_members=5)


@pytest.fixture
def sample_roster():
    """100 generated members with contacts and a year of metrics."""
    return generate_sample_roster(n_members=100, seed=42, now=NOW)
