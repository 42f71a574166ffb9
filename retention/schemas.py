"""
Data schema definitions for the retention engine.

Uses Pandera for runtime validation of input DataFrames (roster, contact
log, monthly metrics) so pipeline errors surface before scoring, plus
plain checks for metrics supplied as dataclasses.
"""

from datetime import date
from typing import Optional, Sequence

import pandas as pd
from pandera import Column, Check, DataFrameSchema

from .errors import InvalidInputError
from .types import (
    ContactEvent,
    EngagementClass,
    Member,
    MemberStatus,
    MonthlyMetrics,
    RiskTier,
)


# Schema for member roster input
MEMBER_INPUT_SCHEMA = DataFrameSchema(
    {
        "member_id": Column(
            str,
            nullable=False,
            unique=True,
            description="Unique member identifier"
        ),
        "join_date": Column(
            "datetime64[ns]",
            nullable=False,
            description="Membership start date"
        ),
        "monthly_rate": Column(
            float,
            nullable=False,
            checks=[
                Check.greater_than_or_equal_to(0),
                Check.less_than_or_equal_to(10_000),  # Reasonable upper bound
            ],
            description="Billing rate per month"
        ),
        "status": Column(
            str,
            nullable=False,
            checks=Check.isin([s.value for s in MemberStatus]),
            description="Membership status (active, cancelled, frozen)"
        ),
        "cancel_date": Column(
            "datetime64[ns]",
            nullable=True,
            required=False,
            description="Cancellation date, if cancelled"
        ),
        "last_attended_date": Column(
            "datetime64[ns]",
            nullable=True,
            required=False,
            description="Most recent class attended (null if never)"
        ),
        "last_contacted_at": Column(
            "datetime64[ns]",
            nullable=True,
            required=False,
            description="Most recent logged contact (null if never)"
        ),
    },
    strict=False,  # Allow extra columns (name, email, ...)
    coerce=True,
    description="Schema for member roster input data"
)


# Schema for contact log input
CONTACT_INPUT_SCHEMA = DataFrameSchema(
    {
        "member_id": Column(str, nullable=False),
        "contacted_at": Column("datetime64[ns]", nullable=False),
    },
    strict=False,  # note column is optional free text
    coerce=True,
    description="Schema for member contact log"
)


# Schema for monthly metrics input
METRICS_INPUT_SCHEMA = DataFrameSchema(
    {
        "month_start": Column(
            "datetime64[ns]",
            nullable=False,
            unique=True,
            description="First day of the month"
        ),
        "mrr": Column(float, nullable=False, checks=Check.greater_than_or_equal_to(0)),
        "active_members": Column(int, nullable=False, checks=Check.greater_than_or_equal_to(0)),
        "new_members": Column(int, nullable=False, checks=Check.greater_than_or_equal_to(0)),
        "cancels": Column(int, nullable=False, checks=Check.greater_than_or_equal_to(0)),
        "churn_rate": Column(
            float,
            nullable=False,
            checks=[
                Check.greater_than_or_equal_to(0),
                Check.less_than_or_equal_to(100),
            ],
            description="Monthly churn percentage (computed upstream)"
        ),
        "rsi": Column(
            float,
            nullable=False,
            checks=[
                Check.greater_than_or_equal_to(0),
                Check.less_than_or_equal_to(100),
            ],
            description="Retention stability index, 0-100"
        ),
        "arm": Column(
            float,
            nullable=True,
            required=False,
            checks=Check.greater_than_or_equal_to(0),
            description="Average revenue per member"
        ),
    },
    strict=False,
    coerce=True,
    description="Schema for gym monthly metrics"
)


# Schema for per-member engine output
MEMBER_OUTPUT_SCHEMA = DataFrameSchema(
    {
        "member_id": Column(str, nullable=False, unique=True),
        "engagement_class": Column(
            str,
            nullable=False,
            checks=Check.isin([c.value for c in EngagementClass]),
        ),
        "risk_tier": Column(
            str,
            nullable=False,
            checks=Check.isin([t.value for t in RiskTier]),
        ),
        "churn_probability": Column(
            float,
            nullable=False,
            checks=[
                Check.greater_than_or_equal_to(0),
                Check.less_than_or_equal_to(1),
            ]
        ),
    },
    strict=False,  # Allow signal and action columns
    coerce=True,
    description="Schema for per-member engine output"
)


def _to_date(value) -> Optional[date]:
    if value is None or pd.isna(value):
        return None
    return pd.Timestamp(value).date()


def _optional(record: dict, key: str):
    return _to_date(record[key]) if key in record else None


def members_from_frame(df: pd.DataFrame) -> list[Member]:
    """Validate a roster DataFrame and convert it to Member records."""
    validated = MEMBER_INPUT_SCHEMA.validate(df)
    members = []
    for record in validated.to_dict("records"):
        name = record.get("name")
        members.append(Member(
            member_id=record["member_id"],
            join_date=_to_date(record["join_date"]),
            monthly_rate=float(record["monthly_rate"]),
            status=MemberStatus(record["status"]),
            cancel_date=_optional(record, "cancel_date"),
            last_attended_date=_optional(record, "last_attended_date"),
            last_contacted_at=_optional(record, "last_contacted_at"),
            name=None if name is None or pd.isna(name) else str(name),
        ))
    return members


def contacts_from_frame(df: Optional[pd.DataFrame]) -> list[ContactEvent]:
    """Validate a contact log DataFrame and convert it to ContactEvents."""
    if df is None:
        return []
    validated = CONTACT_INPUT_SCHEMA.validate(df)
    events = []
    for record in validated.to_dict("records"):
        note = record.get("note")
        events.append(ContactEvent(
            member_id=record["member_id"],
            contacted_at=_to_date(record["contacted_at"]),
            note=None if note is None or pd.isna(note) else str(note),
        ))
    return events


def metrics_from_frame(df: Optional[pd.DataFrame]) -> list[MonthlyMetrics]:
    """Validate a monthly metrics DataFrame; returns chronological records."""
    if df is None:
        return []
    validated = METRICS_INPUT_SCHEMA.validate(df).sort_values("month_start")
    metrics = []
    for record in validated.to_dict("records"):
        arm = record.get("arm")
        metrics.append(MonthlyMetrics(
            month_start=_to_date(record["month_start"]),
            mrr=float(record["mrr"]),
            active_members=int(record["active_members"]),
            new_members=int(record["new_members"]),
            cancels=int(record["cancels"]),
            churn_rate=float(record["churn_rate"]),
            rsi=float(record["rsi"]),
            arm=None if arm is None or pd.isna(arm) else float(arm),
        ))
    return metrics


def validate_metrics(metrics_history: Sequence[MonthlyMetrics]) -> None:
    """
    Check MonthlyMetrics records supplied without a DataFrame.

    Raises:
        InvalidInputError: On negative counts/revenue, out-of-range rates,
            a duplicated month or a missing month between records
    """
    seen = set()
    for m in metrics_history:
        if m.month_start in seen:
            raise InvalidInputError(f"Duplicate metrics month {m.month_start}")
        seen.add(m.month_start)
        if m.mrr < 0 or (m.arm is not None and m.arm < 0):
            raise InvalidInputError(f"Metrics {m.month_start}: revenue must be >= 0")
        if min(m.active_members, m.new_members, m.cancels) < 0:
            raise InvalidInputError(f"Metrics {m.month_start}: member counts must be >= 0")
        if not 0 <= m.churn_rate <= 100:
            raise InvalidInputError(f"Metrics {m.month_start}: churn_rate {m.churn_rate} outside 0-100")
        if not 0 <= m.rsi <= 100:
            raise InvalidInputError(f"Metrics {m.month_start}: rsi {m.rsi} outside 0-100")

    months = sorted(m.month_start.year * 12 + m.month_start.month - 1 for m in metrics_history)
    for prev, cur in zip(months, months[1:]):
        if cur == prev:
            year, month = divmod(cur, 12)
            raise InvalidInputError(f"Duplicate metrics month {year}-{month + 1:02d}")
        if cur - prev != 1:
            year, month = divmod(prev, 12)
            raise InvalidInputError(
                f"Metrics history has a gap after {year}-{month + 1:02d}; supply one record per month"
            )
