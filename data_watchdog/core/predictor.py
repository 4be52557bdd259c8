"""
Bundle exhaustion forecasting and usage analytics.

Projects consumption to the end of the billing cycle using a trend-weighted
daily rate, and scores how much the forecast can be trusted.
"""

import logging
import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import List, Optional, Sequence, Tuple

from .models import BundleState
from .units import MIB, clamp_bytes

logger = logging.getLogger(__name__)

MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 0.9


class UsageTrend(Enum):
    """Direction of recent daily consumption."""
    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"
    SPIKE = "spike"


@dataclass(frozen=True)
class UsagePrediction:
    """Forecast for the remainder of the billing cycle."""
    will_exceed_limit: bool
    days_to_exhaustion: int
    recommended_daily_budget: float
    confidence: float
    projected_overage: int
    projected_savings: int
    trend: UsageTrend
    projected_usage: int = 0


@dataclass(frozen=True)
class UsageAnalytics:
    """Summary of labelled daily usage."""
    average_daily_usage: float
    peak_days: List[str] = field(default_factory=list)
    light_days: List[str] = field(default_factory=list)
    weekday_weekend_ratio: float = 1.0
    data_efficiency_score: float = 0.5


def _mean(values: Sequence[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def coefficient_of_variation(values: Sequence[float]) -> float:
    """Mean absolute deviation divided by the mean.

    A zero mean counts as maximal variation (1.0).
    """
    mean = _mean(values)
    if mean <= 0:
        return 1.0
    deviation = _mean([abs(v - mean) for v in values])
    return deviation / mean


def trend_weighted_rate(daily_history: Sequence[int]) -> float:
    """Recency-weighted mean of daily usage.

    Weight for index i (0 = oldest) is 1.0 + (i / len) * 0.5, so the newest
    day carries up to 1.5x the influence of the oldest. Fewer than three
    entries use the plain mean.
    """
    if len(daily_history) < 3:
        return _mean(daily_history)

    count = len(daily_history)
    weights = [1.0 + (index / count) * 0.5 for index in range(count)]
    weighted_sum = sum(usage * weight for usage, weight in zip(daily_history, weights))
    return weighted_sum / sum(weights)


def detect_trend(daily_history: Sequence[int]) -> UsageTrend:
    """Classify the direction of the last days of usage.

    Needs at least five entries; shorter histories are STABLE. A last day
    more than twice the mean of the three days before it is a SPIKE.
    Otherwise the mean of the last three days is compared with the mean of
    the (up to) three days preceding them: more than +20% is INCREASING,
    less than -20% is DECREASING.
    """
    if len(daily_history) < 5:
        return UsageTrend.STABLE

    recent = _mean(daily_history[-3:])
    earlier = _mean(daily_history[-6:-3])
    if earlier > 0:
        change = (recent - earlier) / earlier
    else:
        change = 1.0 if recent > 0 else 0.0

    previous_average = _mean(daily_history[-4:-1])
    spike_ratio = daily_history[-1] / previous_average if previous_average > 0 else 0.0

    if spike_ratio > 2.0:
        return UsageTrend.SPIKE
    if change > 0.2:
        return UsageTrend.INCREASING
    if change < -0.2:
        return UsageTrend.DECREASING
    return UsageTrend.STABLE


def calculate_confidence(days_elapsed: int, daily_history: Sequence[int]) -> float:
    """Score forecast confidence in [0.1, 0.9].

    Confidence ramps up over the first two weeks of a cycle. With three or
    more days of history it is averaged with a consistency score
    (1 - coefficient of variation, floored at 0).
    """
    confidence = min(MAX_CONFIDENCE, max(0, days_elapsed) / 14.0)

    if len(daily_history) >= 3:
        consistency = 1.0 - min(1.0, coefficient_of_variation(daily_history))
        confidence = (confidence + consistency) / 2.0

    return min(MAX_CONFIDENCE, max(MIN_CONFIDENCE, confidence))


class BundlePredictor:
    """Forecasts bundle exhaustion from cumulative and daily usage.

    Stateless: identical inputs always produce identical predictions.
    """

    def predict(self, bundle: BundleState, daily_history: Optional[Sequence[int]] = None) -> UsagePrediction:
        """Forecast whether the allowance runs out before the cycle ends.

        Args:
            bundle: Current allowance state
            daily_history: Daily aggregate totals, oldest first

        Returns:
            UsagePrediction for the remainder of the cycle
        """
        history = [clamp_bytes(v) for v in (daily_history or [])]
        capacity = clamp_bytes(bundle.total_capacity_bytes)
        used = clamp_bytes(bundle.used_bytes)
        days_elapsed = max(0, bundle.days_elapsed)
        total_days = max(0, bundle.total_days)

        remaining_data = max(0, capacity - used)
        remaining_days = max(0, total_days - days_elapsed)

        if history:
            rate = trend_weighted_rate(history)
        else:
            rate = used / max(days_elapsed, 1)

        projected_total = used + rate * remaining_days
        will_exceed = projected_total > capacity

        if rate > 0:
            days_to_exhaustion = math.floor(capacity / rate)
        else:
            days_to_exhaustion = total_days

        recommended_daily = remaining_data / remaining_days if remaining_days > 0 else 0.0

        prediction = UsagePrediction(
            will_exceed_limit=will_exceed,
            days_to_exhaustion=days_to_exhaustion,
            recommended_daily_budget=recommended_daily,
            confidence=calculate_confidence(days_elapsed, history),
            projected_overage=max(0, math.ceil(projected_total - capacity)),
            projected_savings=max(0, int(capacity - projected_total)),
            trend=detect_trend(history),
            projected_usage=int(projected_total)
        )
        logger.debug(
            "Prediction: rate=%.0f B/day projected=%d capacity=%d exceed=%s trend=%s",
            rate, prediction.projected_usage, capacity, will_exceed, prediction.trend.value
        )
        return prediction

    def analyze_patterns(self, labelled_history: Sequence[Tuple[str, int]]) -> UsageAnalytics:
        """Summarize labelled daily usage.

        Peak and light days come from a descending sort (ties keep input
        order). The weekday/weekend ratio treats the first five entries as
        weekdays and the last two as the weekend.

        Args:
            labelled_history: (label, bytes) pairs, oldest first

        Returns:
            UsageAnalytics; fixed defaults for empty input
        """
        if not labelled_history:
            return UsageAnalytics(average_daily_usage=0.0)

        entries = [(label, clamp_bytes(value)) for label, value in labelled_history]
        values = [value for _, value in entries]

        by_usage = sorted(entries, key=lambda entry: entry[1], reverse=True)
        peak_days = [label for label, _ in by_usage[:3]]
        light_days = [label for label, _ in by_usage[-3:]]

        weekday_average = _mean(values[:5])
        weekend_average = _mean(values[-2:])
        ratio = weekday_average / weekend_average if weekend_average > 0 else 1.0

        return UsageAnalytics(
            average_daily_usage=_mean(values),
            peak_days=peak_days,
            light_days=light_days,
            weekday_weekend_ratio=ratio,
            data_efficiency_score=max(0.0, 1.0 - coefficient_of_variation(values))
        )

    def estimate_exhaustion_time(
        self,
        remaining_bytes: int,
        interval_samples: Sequence[int],
        interval: timedelta,
        now: Optional[datetime] = None
    ) -> Optional[datetime]:
        """Estimate when the remaining allowance runs out at the current pace.

        Uses the mean of recent per-interval aggregate totals. Needs at least
        two samples with a positive mean.

        Args:
            remaining_bytes: Allowance left
            interval_samples: Aggregate bytes per monitoring interval, oldest first
            interval: Length of one monitoring interval
            now: Reference time (defaults to datetime.now())

        Returns:
            Estimated exhaustion datetime, or None without enough data
        """
        if len(interval_samples) < 2:
            return None
        average = _mean([clamp_bytes(v) for v in interval_samples])
        if average <= 0:
            return None

        intervals_left = clamp_bytes(remaining_bytes) / average
        reference = now or datetime.now()
        try:
            return reference + interval * intervals_left
        except OverflowError:
            return None

    def average_interval_usage_mib(self, interval_samples: Sequence[int]) -> float:
        """Mean aggregate usage per interval, in MiB."""
        return _mean([clamp_bytes(v) for v in interval_samples]) / MIB
