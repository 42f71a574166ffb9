"""Signal extraction: member record + event history -> Features."""

import math
from typing import Iterable, Optional

import numpy as np

from ..errors import InvalidInputError
from ..types import (
    ContactEvent,
    DateLike,
    Features,
    Member,
    MemberStatus,
    as_date,
    days_between,
)
from .base import BaseComponent


class SignalExtractor(BaseComponent):
    """
    Normalize a member and their contact log into a fixed feature set.

    Features:
    - tenure_days: join date to cancel date (or now)
    - days_since_attendance: None if never attended
    - days_since_contact: most recent of the contact log and the member's
      own last_contacted_at; None if never contacted
    - monthly_rate, total_revenue
    - is_high_value: rate at or above the roster's top-20% rate
    """

    name = "signals"

    def validate(self, member: Member, now: DateLike) -> None:
        """Raise InvalidInputError for logically inconsistent members."""
        today = as_date(now)
        if member.monthly_rate is None or member.monthly_rate < 0:
            raise InvalidInputError(
                f"Member {member.member_id}: monthly_rate must be >= 0, got {member.monthly_rate}"
            )
        if member.join_date > today:
            raise InvalidInputError(
                f"Member {member.member_id}: join_date {member.join_date} is after now {today}"
            )
        if member.cancel_date is not None and member.cancel_date < member.join_date:
            raise InvalidInputError(
                f"Member {member.member_id}: cancel_date {member.cancel_date} "
                f"is before join_date {member.join_date}"
            )
        if member.last_attended_date is not None and as_date(member.last_attended_date) > today:
            raise InvalidInputError(
                f"Member {member.member_id}: last_attended_date is after now"
            )
        if member.last_contacted_at is not None and as_date(member.last_contacted_at) > today:
            raise InvalidInputError(
                f"Member {member.member_id}: last_contacted_at is after now"
            )

    def last_contact(
        self,
        member: Member,
        contact_history: Iterable[ContactEvent],
        now: DateLike,
    ) -> Optional[DateLike]:
        """Most recent contact timestamp for the member, or None."""
        today = as_date(now)
        latest = member.last_contacted_at
        for event in contact_history:
            if event.member_id != member.member_id:
                raise InvalidInputError(
                    f"Contact event for {event.member_id} passed with member {member.member_id}"
                )
            if as_date(event.contacted_at) > today:
                raise InvalidInputError(
                    f"Member {member.member_id}: contact at {event.contacted_at} is after now"
                )
            if latest is None or as_date(event.contacted_at) > as_date(latest):
                latest = event.contacted_at
        return latest

    def extract(
        self,
        member: Member,
        contact_history: Iterable[ContactEvent],
        now: DateLike,
        high_value_threshold: Optional[float] = None,
    ) -> Features:
        """
        Build Features for one member.

        Args:
            member: Member record from the member store
            contact_history: ContactEvents for this member (any order)
            now: Point in time the features describe
            high_value_threshold: Rate marking the top of the roster;
                see high_value_threshold()

        Returns:
            Features

        Raises:
            InvalidInputError: On inconsistent dates or negative rate
        """
        self.validate(member, now)

        last_contact = self.last_contact(member, contact_history, now)
        days_since_contact = days_between(last_contact, now) if last_contact is not None else None
        days_since_attendance = (
            days_between(member.last_attended_date, now)
            if member.last_attended_date is not None
            else None
        )

        tenure_days = member.tenure_days(now)
        days_per_month = self.config.days_per_month
        is_high_value = bool(
            high_value_threshold
            and high_value_threshold > 0
            and member.monthly_rate >= high_value_threshold
        )

        return Features(
            member_id=member.member_id,
            status=MemberStatus(member.status),
            tenure_days=tenure_days,
            tenure_months=member.tenure_months(now, days_per_month),
            days_since_attendance=days_since_attendance,
            days_since_contact=days_since_contact,
            monthly_rate=float(member.monthly_rate),
            total_revenue=member.total_revenue(now, days_per_month),
            is_high_value=is_high_value,
        )

    def high_value_threshold(self, members: Iterable[Member]) -> float:
        """
        Rate at the top-share position of active members' rates.

        Rates are sorted descending and the value at floor(n * share) is
        returned; 0.0 for a roster with no active members.
        """
        rates = np.array(
            [m.monthly_rate for m in members if m.status == MemberStatus.ACTIVE],
            dtype=float,
        )
        if rates.size == 0:
            return 0.0
        rates = np.sort(rates)[::-1]
        index = min(int(math.floor(rates.size * self.config.high_value_share)), rates.size - 1)
        return float(rates[index])
