"""Sales funnel bottleneck detection."""

from typing import Optional

from ..errors import InvalidInputError
from ..types import FunnelBottleneck, FunnelCounts, FunnelRates, FunnelStage, SalesHealth
from .base import BaseComponent

STAGE_EXPLANATIONS = {
    FunnelStage.LEAD_TO_BOOKED: (
        "Most leads are not booking a consultation. Follow-up may be too slow "
        "or there is no clear next step after first contact."
    ),
    FunnelStage.BOOKED_TO_SHOW: (
        "People are booking but not showing up. Appointment reminders or a "
        "stronger reason to attend could help."
    ),
    FunnelStage.SHOW_TO_MEMBER: (
        "People are showing up but not signing up. The consultation or the "
        "pricing presentation may need adjustment."
    ),
}


def _safe_div(num: int, den: int) -> Optional[float]:
    return None if den == 0 else num / den


class FunnelDetector(BaseComponent):
    """
    Find the funnel stage with the largest percentage drop.

    Stages: leads -> booked -> shows -> new members. A stage only counts
    when its denominator reaches funnel_min_sample (3), so tiny cohorts
    do not produce spurious bottlenecks.
    """

    name = "funnel"

    def validate(self, counts: FunnelCounts) -> None:
        for field_name in ("leads", "booked", "shows", "new_members"):
            value = getattr(counts, field_name)
            if value is None or value < 0:
                raise InvalidInputError(f"Funnel count {field_name} must be >= 0, got {value}")
        if counts.response_median_minutes is not None and counts.response_median_minutes < 0:
            raise InvalidInputError(
                f"Funnel response_median_minutes must be >= 0, got {counts.response_median_minutes}"
            )

    def rates(self, counts: FunnelCounts) -> FunnelRates:
        """Stage-over-stage rates; None where the denominator is 0."""
        self.validate(counts)

        def _r(num: int, den: int) -> Optional[float]:
            value = _safe_div(num, den)
            return None if value is None else round(value, 2)

        return FunnelRates(
            set_rate=_r(counts.booked, counts.leads),
            show_rate=_r(counts.shows, counts.booked),
            close_rate=_r(counts.new_members, counts.shows),
            funnel_conversion=_r(counts.new_members, counts.leads),
        )

    def detect(self, counts: FunnelCounts) -> Optional[FunnelBottleneck]:
        """
        Detect the bottleneck stage.

        Returns:
            FunnelBottleneck for the largest drop (earlier stage on ties),
            or None when no stage has enough samples
        """
        self.validate(counts)
        stages = [
            (FunnelStage.LEAD_TO_BOOKED, counts.booked, counts.leads),
            (FunnelStage.BOOKED_TO_SHOW, counts.shows, counts.booked),
            (FunnelStage.SHOW_TO_MEMBER, counts.new_members, counts.shows),
        ]

        # Later stages can include carry-over from an earlier range, so cap at 1
        rates = []
        for _, passed, entered in stages:
            rate = _safe_div(passed, entered)
            rates.append(None if rate is None else min(rate, 1.0))

        worst = None
        for index, (stage, passed, entered) in enumerate(stages):
            rate = rates[index]
            if rate is None or entered < self.config.funnel_min_sample:
                continue
            drop = (1 - rate) * 100
            if worst is None or drop > worst[1]:
                worst = (index, drop)

        if worst is None:
            return None

        index, drop = worst
        stage, passed, entered = stages[index]
        downstream = 1.0
        for later in rates[index + 1:]:
            downstream *= later if later is not None else 0.0

        return FunnelBottleneck(
            stage=stage,
            drop_percent=round(drop, 1),
            explanation=STAGE_EXPLANATIONS[stage],
            sample_size=entered,
            lost=max(0, entered - passed),
            downstream_rate=round(downstream, 4),
        )

    @staticmethod
    def _band_score(value: float, low: float, high: float) -> float:
        """0 at the low end of the band, 100 at the high end, clamped."""
        return max(0.0, min(100.0, (value - low) / (high - low) * 100))

    def health(self, counts: FunnelCounts) -> SalesHealth:
        """
        Composite sales health score, 0-100.

        Conversion (new members per lead) carries half the weight, response
        speed and the show/close stage average a quarter each. A rate with
        a zero denominator scores 0, and so does a missing response time.
        """
        self.validate(counts)
        cfg = self.config

        conversion = self._band_score(
            _safe_div(counts.new_members, counts.leads) or 0.0, *cfg.sales_conversion_band
        )

        fast, slow = cfg.sales_response_band
        response = slow if counts.response_median_minutes is None else counts.response_median_minutes
        speed = max(0.0, min(100.0, (slow - response) / (slow - fast) * 100))

        show = self._band_score(_safe_div(counts.shows, counts.booked) or 0.0, *cfg.sales_show_band)
        close = self._band_score(_safe_div(counts.new_members, counts.shows) or 0.0, *cfg.sales_close_band)
        stage = (show + close) / 2

        weights = cfg.sales_health_weights
        total = weights["conversion"] * conversion + weights["speed"] * speed + weights["stage"] * stage
        return SalesHealth(
            score=int(round(total)),
            conversion_score=int(round(conversion)),
            speed_score=int(round(speed)),
            stage_score=int(round(stage)),
        )
