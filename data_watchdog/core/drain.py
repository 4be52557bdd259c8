"""
Drain detection for per-application usage.

Classifies each app's consumption against tiered thresholds and flags
spikes, metered-interface preference and bundle pacing problems.

Rules, evaluated per app in snapshot order:
1. High usage (tiered CRITICAL/HIGH/MEDIUM, first match wins)
2. Spike (HIGH) - latest sample vs previous sample
3. Mobile preference (MEDIUM) - metered share of a large cycle total
Then once per snapshot:
4. Bundle pacing (CRITICAL/HIGH) - consumption ahead of elapsed time
"""

import logging
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Dict, List, Optional

from data_watchdog.config.loader import DEFAULT_CONFIG, WatchdogConfig

from .history import RollingHistoryStore
from .models import BundleContext
from .units import MIB, clamp_bytes, format_bytes

logger = logging.getLogger(__name__)

BUNDLE_APP_ID = "system.bundle"


class AlertSeverity(Enum):
    """Severity levels for drain alerts, lowest first."""
    LOW = 1
    MEDIUM = 2
    HIGH = 3
    CRITICAL = 4


class AlertKind(Enum):
    """Rule that produced an alert."""
    HIGH_USAGE = "high_usage"
    SPIKE = "spike"
    MOBILE_PREFERENCE = "mobile_preference"
    BUNDLE_PACING = "bundle_pacing"


@dataclass(frozen=True)
class DrainAlert:
    """Detected drain with explanation and recommendation."""
    app_id: str
    kind: AlertKind
    severity: AlertSeverity
    message: str
    data_used: int
    percentage: float
    recommendation: str
    timestamp: datetime = field(default_factory=datetime.now)


@dataclass(frozen=True)
class UsageThresholds:
    """Byte thresholds for each high-usage tier."""
    critical: float
    high: float
    medium: float


_TIER_RECOMMENDATIONS = {
    AlertSeverity.CRITICAL: "Restrict background data or switch to Wi-Fi",
    AlertSeverity.HIGH: "Monitor closely, prefer Wi-Fi when possible",
    AlertSeverity.MEDIUM: "Keep an eye on this app's consumption",
}

_TIER_LABELS = {
    AlertSeverity.CRITICAL: "Critical",
    AlertSeverity.HIGH: "High usage",
    AlertSeverity.MEDIUM: "Notable",
}


def calculate_thresholds(
    total_usage: int,
    bundle_context: Optional[BundleContext] = None
) -> UsageThresholds:
    """Compute tier thresholds for one snapshot.

    With a known budget the tiers are shares of the recommended daily usage
    (remaining / days remaining). Without one they are shares of the
    snapshot total.

    Args:
        total_usage: Sum of all app bytes in the snapshot
        bundle_context: Optional remaining budget

    Returns:
        UsageThresholds for the snapshot
    """
    if bundle_context is not None and bundle_context.days_remaining > 0:
        recommended_daily = clamp_bytes(bundle_context.remaining_bytes) / bundle_context.days_remaining
        return UsageThresholds(
            critical=recommended_daily * 0.40,
            high=recommended_daily * 0.25,
            medium=recommended_daily * 0.15
        )
    return UsageThresholds(
        critical=total_usage * 0.25,
        high=total_usage * 0.15,
        medium=total_usage * 0.08
    )


class DrainDetector:
    """Evaluates usage snapshots against an app's own rolling history."""

    def __init__(self, history: RollingHistoryStore, config: WatchdogConfig = DEFAULT_CONFIG):
        """Initialize the detector.

        Args:
            history: Store that evaluate() records each app's sample into
            config: Detection thresholds
        """
        self.history = history
        self.config = config

    def evaluate(
        self,
        snapshot: Optional[Mapping[str, int]],
        bundle_context: Optional[BundleContext] = None,
        mobile_bytes: Optional[Mapping[str, int]] = None
    ) -> List[DrainAlert]:
        """Evaluate one snapshot and return alerts in detection order.

        Every app in the snapshot is recorded into history before its rules
        run. Alerts are independent: an app may receive a tier alert and a
        spike alert in the same cycle. Malformed or negative byte values are
        treated as 0; nothing is raised for any input shape.

        Args:
            snapshot: Mapping of app id to bytes used this interval
            bundle_context: Optional remaining budget for tiering and pacing
            mobile_bytes: Optional per-app bytes on a metered interface

        Returns:
            List of alerts (empty if nothing was detected)
        """
        if not isinstance(snapshot, Mapping) or not snapshot:
            return []

        usage: Dict[str, int] = {app_id: clamp_bytes(value) for app_id, value in snapshot.items()}
        total_usage = sum(usage.values())
        thresholds = calculate_thresholds(total_usage, bundle_context)

        alerts: List[DrainAlert] = []
        for app_id, app_bytes in usage.items():
            self.history.record(app_id, app_bytes)
            percentage = (app_bytes / total_usage) * 100.0 if total_usage > 0 else 0.0

            high_usage = self._check_high_usage(app_id, app_bytes, percentage, thresholds)
            if high_usage is not None:
                alerts.append(high_usage)

            spike = self._check_spike(app_id)
            if spike is not None:
                alerts.append(spike)

            if isinstance(mobile_bytes, Mapping) and app_id in mobile_bytes:
                preference = self._check_mobile_preference(
                    app_id, app_bytes, clamp_bytes(mobile_bytes[app_id])
                )
                if preference is not None:
                    alerts.append(preference)

        if bundle_context is not None:
            pacing = self._check_bundle_pacing(bundle_context)
            if pacing is not None:
                alerts.append(pacing)

        for alert in alerts:
            logger.debug("%s alert for %s: %s", alert.severity.name, alert.app_id, alert.message)
        return alerts

    def _check_high_usage(
        self,
        app_id: str,
        app_bytes: int,
        percentage: float,
        thresholds: UsageThresholds
    ) -> Optional[DrainAlert]:
        if app_bytes > thresholds.critical:
            severity = AlertSeverity.CRITICAL
        elif app_bytes > thresholds.high:
            severity = AlertSeverity.HIGH
        elif app_bytes > thresholds.medium:
            severity = AlertSeverity.MEDIUM
        else:
            return None

        return DrainAlert(
            app_id=app_id,
            kind=AlertKind.HIGH_USAGE,
            severity=severity,
            message=f"{_TIER_LABELS[severity]}: {format_bytes(app_bytes)} ({int(percentage)}%)",
            data_used=app_bytes,
            percentage=percentage,
            recommendation=_TIER_RECOMMENDATIONS[severity]
        )

    def _check_spike(self, app_id: str) -> Optional[DrainAlert]:
        """Compare the latest sample with the one before it.

        Both thresholds are strict: an increase of exactly the minimum
        amount does not fire.
        """
        history = self.history.history_of(app_id)
        if len(history) < 2:
            return None

        previous, current = history[-2], history[-1]
        if previous <= 0:
            return None

        increase = current - previous
        increase_percent = (increase / previous) * 100.0
        drain = self.config.drain
        if (increase_percent > drain.spike_increase_percent
                and increase > drain.spike_min_increase_mib * MIB):
            return DrainAlert(
                app_id=app_id,
                kind=AlertKind.SPIKE,
                severity=AlertSeverity.HIGH,
                message=f"Usage spike: {int(increase_percent)}% increase ({format_bytes(increase)} more than last interval)",
                data_used=current,
                percentage=increase_percent,
                recommendation="Check if the app is downloading updates or syncing"
            )
        return None

    def _check_mobile_preference(
        self,
        app_id: str,
        app_bytes: int,
        app_mobile_bytes: int
    ) -> Optional[DrainAlert]:
        drain = self.config.drain
        if app_bytes <= drain.mobile_min_total_mib * MIB:
            return None

        mobile_ratio = min(app_mobile_bytes, app_bytes) / app_bytes
        if mobile_ratio <= drain.mobile_ratio:
            return None

        return DrainAlert(
            app_id=app_id,
            kind=AlertKind.MOBILE_PREFERENCE,
            severity=AlertSeverity.MEDIUM,
            message=f"Prefers mobile: {format_bytes(app_mobile_bytes)} ({int(mobile_ratio * 100)}%)",
            data_used=app_mobile_bytes,
            percentage=mobile_ratio * 100.0,
            recommendation="Enable Wi-Fi preference in app settings"
        )

    def _check_bundle_pacing(self, context: BundleContext) -> Optional[DrainAlert]:
        """Compare the used share of the bundle with the elapsed share of the cycle."""
        if context.days_remaining <= 0 or context.total_capacity_bytes <= 0:
            return None

        cycle_days = context.total_days
        if not cycle_days or cycle_days <= 0:
            cycle_days = self.config.bundle.default_cycle_days
        days_elapsed = max(0, cycle_days - context.days_remaining)

        usage_percent = (clamp_bytes(context.used_bytes) / context.total_capacity_bytes) * 100.0
        expected_percent = (days_elapsed / cycle_days) * 100.0
        deviation = usage_percent - expected_percent

        drain = self.config.drain
        if deviation > drain.pacing_critical_deviation:
            return DrainAlert(
                app_id=BUNDLE_APP_ID,
                kind=AlertKind.BUNDLE_PACING,
                severity=AlertSeverity.CRITICAL,
                message=f"Rapid depletion: {int(usage_percent)}% used, {context.days_remaining} days left",
                data_used=context.used_bytes,
                percentage=usage_percent,
                recommendation="Reduce usage significantly or buy an additional bundle"
            )
        if deviation > drain.pacing_high_deviation:
            return DrainAlert(
                app_id=BUNDLE_APP_ID,
                kind=AlertKind.BUNDLE_PACING,
                severity=AlertSeverity.HIGH,
                message=f"Above average: {int(usage_percent)}% used, {context.days_remaining} days left",
                data_used=context.used_bytes,
                percentage=usage_percent,
                recommendation="Monitor usage and prioritize Wi-Fi"
            )
        return None


def rank_alerts(alerts: List[DrainAlert], limit: Optional[int] = None) -> List[DrainAlert]:
    """Order alerts by severity (highest first) and optionally truncate.

    Ties keep detection order. This is a display helper; evaluate() itself
    never suppresses or reorders alerts.
    """
    ranked = sorted(alerts, key=lambda a: a.severity.value, reverse=True)
    if limit is not None:
        return ranked[:max(0, limit)]
    return ranked
