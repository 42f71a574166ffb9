"""
Integration tests for RetentionEngine.

Tests the full pipeline from roster to ranked recommendations.
"""

from datetime import timedelta

import pandas as pd
import pytest

from retention import RetentionEngine, InvalidInputError
from retention.engine import OUTPUT_COLUMNS, sample_funnel
from retention.types import (
    ContactEvent,
    EngagementClass,
    FunnelCounts,
    FunnelStage,
    MemberStatus,
    Outlook,
    StabilityTier,
)

from conftest import NOW


@pytest.fixture
def drifting_roster(make_member):
    return [
        make_member("D001", tenure_days=273, attended_days_ago=42, contacted_days_ago=78, monthly_rate=199.0),
        make_member("D002", tenure_days=212, attended_days_ago=30, contacted_days_ago=None, monthly_rate=179.0),
        make_member("D003", tenure_days=142, attended_days_ago=14, contacted_days_ago=None, monthly_rate=149.0),
        make_member("D004", tenure_days=365, attended_days_ago=9, contacted_days_ago=4, monthly_rate=179.0),
        make_member("D005", tenure_days=823, attended_days_ago=1, contacted_days_ago=22, monthly_rate=149.0),
        make_member(
            "D006", tenure_days=486, attended_days_ago=101, contacted_days_ago=None,
            monthly_rate=149.0, status=MemberStatus.CANCELLED, cancelled_days_ago=92,
        ),
    ]


class TestHealthyGym:
    """A gym with nothing to fix."""

    def test_no_focus(self, engine, healthy_roster, healthy_metrics):
        result = engine.analyze(healthy_roster, [], healthy_metrics, NOW)

        assert result.focus is None
        assert "Maintain momentum" in result.focus_message
        assert result.stability.tier == StabilityTier.STABLE
        assert result.forecast.outlook == Outlook.STABLE
        assert all(e.engagement_class == EngagementClass.CORE for e in result.estimates)
        assert result.errors == {}

    def test_actions_for_every_member(self, engine, healthy_roster, healthy_metrics):
        result = engine.analyze(healthy_roster, [], healthy_metrics, NOW)
        assert set(result.actions) == {m.member_id for m in healthy_roster}


class TestDriftingGym:
    """A gym with ghosts, rising churn and a funnel leak."""

    def test_flags_and_aggregates(self, engine, drifting_roster, drifting_metrics, bottleneck_funnel):
        result = engine.analyze(drifting_roster, [], drifting_metrics, NOW, funnel_counts=bottleneck_funnel)

        assert {e.member_id for e in result.flagged} == {"D001", "D002", "D003"}
        assert result.get("D006").risk_tier.value == "low"
        assert result.bottleneck.stage == FunnelStage.LEAD_TO_BOOKED
        assert result.stability.tier == StabilityTier.INSTABILITY_RISK
        assert result.forecast.outlook == Outlook.ATTENTION
        assert result.focus is not None
        assert result.focus == result.recommendations.recommendations[0]

    def test_estimates_sorted_by_probability(self, engine, drifting_roster, drifting_metrics):
        result = engine.analyze(drifting_roster, [], drifting_metrics, NOW)
        keys = [(-e.probability, e.member_id) for e in result.estimates]

        assert keys == sorted(keys)

    def test_top_risk_driver(self, engine, drifting_roster, drifting_metrics):
        result = engine.analyze(drifting_roster, [], drifting_metrics, NOW)
        assert result.roster_summary()["top_risk_driver"] == "attendance-drift"

    def test_roster_summary(self, engine, drifting_roster, drifting_metrics, bottleneck_funnel):
        result = engine.analyze(drifting_roster, [], drifting_metrics, NOW, funnel_counts=bottleneck_funnel)
        summary = result.roster_summary()

        assert summary["members"] == 6
        assert summary["active_members"] == 5
        assert summary["at_risk_members"] == 3
        assert summary["engagement"]["ghost"] == 2
        assert summary["engagement"]["drifter"] == 1
        assert summary["revenue_at_risk"] == result.forecast.revenue_at_risk
        assert summary["bottleneck"] == "lead-to-booked"
        assert 0 <= summary["average_probability"] <= 1

    def test_cohorts_and_sales_health(self, engine, drifting_roster, drifting_metrics, bottleneck_funnel):
        result = engine.analyze(drifting_roster, [], drifting_metrics, NOW, funnel_counts=bottleneck_funnel)
        summary = result.roster_summary()

        # D006 stayed 394 days before cancelling
        assert result.cohorts.windows[-1].lost_count == 1
        assert result.cohorts.early_loss_share == 0.0
        assert result.sales_health.score == 3
        assert summary["sales_health"] == 3
        assert summary["early_loss_share"] == 0.0

    def test_no_sales_health_without_funnel(self, engine, drifting_roster, drifting_metrics):
        result = engine.analyze(drifting_roster, [], drifting_metrics, NOW)

        assert result.sales_health is None
        assert result.cohorts is not None

    def test_contact_log_changes_outcome(self, engine, drifting_roster, drifting_metrics):
        without = engine.analyze(drifting_roster, [], drifting_metrics, NOW)
        contacts = [ContactEvent("D003", NOW - timedelta(days=1), note="Checked in")]
        with_contact = engine.analyze(drifting_roster, contacts, drifting_metrics, NOW)

        assert with_contact.get("D003").probability < without.get("D003").probability


class TestResultViews:
    """Tests for EngineResult frame and summary views."""

    def test_to_frame(self, engine, drifting_roster, drifting_metrics):
        df = engine.analyze(drifting_roster, [], drifting_metrics, NOW).to_frame()

        assert list(df.columns) == OUTPUT_COLUMNS
        assert len(df) == len(drifting_roster)
        assert df["churn_probability"].between(0, 1).all()

    def test_get_flagged(self, engine, drifting_roster, drifting_metrics):
        result = engine.analyze(drifting_roster, [], drifting_metrics, NOW)

        high = result.get_flagged("high")
        medium = result.get_flagged("medium")

        assert set(high["member_id"]) == {"D001", "D002", "D003"}
        assert set(medium["member_id"]) == {"D001", "D002", "D003", "D004"}
        assert "D006" not in set(result.get_flagged("low")["member_id"])

    def test_summary(self, engine, drifting_roster, drifting_metrics):
        summary = engine.analyze(drifting_roster, [], drifting_metrics, NOW).summary()

        assert summary["count"].sum() == len(drifting_roster)
        assert ("ghost", "high") in summary.index

    def test_factor_breakdown(self, engine, drifting_roster, drifting_metrics):
        breakdown = engine.analyze(drifting_roster, [], drifting_metrics, NOW).factor_breakdown()

        assert breakdown.loc["engagement-class", "count"] == len(drifting_roster)
        assert "attendance-drift" in breakdown.index

    def test_empty_roster(self, engine, healthy_metrics):
        result = engine.analyze([], [], healthy_metrics, NOW)
        df = result.to_frame()

        assert len(df) == 0
        assert list(df.columns) == OUTPUT_COLUMNS
        assert result.focus is None


class TestInputErrors:
    """Hard failures and isolated component failures."""

    def test_duplicate_member_ids(self, engine, make_member, healthy_metrics):
        members = [make_member("M001"), make_member("M001")]
        with pytest.raises(InvalidInputError, match="Duplicate member ids"):
            engine.analyze(members, [], healthy_metrics, NOW)

    def test_contact_for_unknown_member(self, engine, make_member, healthy_metrics):
        with pytest.raises(InvalidInputError, match="unknown member"):
            engine.analyze([make_member("M001")], [ContactEvent("M999", NOW)], healthy_metrics, NOW)

    def test_inconsistent_member_propagates(self, engine, make_member, healthy_metrics):
        with pytest.raises(InvalidInputError):
            engine.analyze([make_member(tenure_days=-5)], [], healthy_metrics, NOW)

    def test_bad_metrics_isolated(self, engine, healthy_roster, make_metrics):
        metrics = make_metrics([2.0, 150.0])
        result = engine.analyze(healthy_roster, [], metrics, NOW)

        assert result.forecast is None
        assert result.stability is None
        assert set(result.errors) == {"forecast", "stability"}
        assert len(result.estimates) == len(healthy_roster)

    def test_gapped_metrics_isolated(self, engine, healthy_roster, make_metrics):
        metrics = make_metrics([2.0, 2.0, 2.0])
        metrics = [metrics[0], metrics[2]]
        result = engine.analyze(healthy_roster, [], metrics, NOW)

        assert result.forecast is None
        assert result.stability is None
        assert "gap" in result.errors["stability"]
        assert len(result.estimates) == len(healthy_roster)

    def test_bad_funnel_isolated(self, engine, healthy_roster, healthy_metrics):
        funnel = FunnelCounts(leads=-1, booked=0, shows=0, new_members=0)
        result = engine.analyze(healthy_roster, [], healthy_metrics, NOW, funnel_counts=funnel)

        assert result.bottleneck is None
        assert "funnel" in result.errors
        assert result.stability is not None


class TestFrames:
    """DataFrame entry point."""

    def test_analyze_frames(self, engine, sample_roster):
        members_df, contacts_df, metrics_df = sample_roster
        result = engine.analyze_frames(members_df, contacts_df, metrics_df, NOW, funnel_counts=sample_funnel())

        assert len(result.estimates) == len(members_df)
        assert result.forecast.outlook != Outlook.INSUFFICIENT_DATA
        assert result.stability is not None
        assert result.funnel_rates is not None
        assert result.names["MEMBER_0000"] == "Member 0"

    def test_frames_match_records(self, engine, sample_roster):
        members_df, contacts_df, metrics_df = sample_roster
        first = engine.analyze_frames(members_df, contacts_df, metrics_df, NOW).to_frame()
        second = engine.analyze_frames(members_df, contacts_df, metrics_df, NOW).to_frame()

        pd.testing.assert_frame_equal(first, second)

    def test_no_metrics(self, engine, sample_roster):
        members_df, contacts_df, _ = sample_roster
        result = engine.analyze_frames(members_df, contacts_df, None, NOW)

        assert result.forecast.outlook == Outlook.INSUFFICIENT_DATA
        assert result.stability is None
        assert result.scenario is None
