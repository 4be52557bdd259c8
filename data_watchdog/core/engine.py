"""
Evaluation cycle orchestration.

One cycle records the snapshot into history, runs drain detection, and when a
bundle is known produces a prediction and analytics.

All mutable state lives in an explicitly owned EngineState that callers pass
into run_cycle. A periodic driver and a manual refresh may share one state;
the state's lock serializes their history updates.
"""

import logging
import threading
from collections import deque
from collections.abc import Mapping
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum, auto
from typing import Deque, List, Optional, Sequence, Union

from data_watchdog.config.loader import DEFAULT_CONFIG, WatchdogConfig

from .drain import AlertSeverity, DrainAlert, DrainDetector
from .history import RollingHistoryStore
from .models import BundleContext, BundleState, DailyUsage, UsageSample, split_samples
from .predictor import BundlePredictor, UsageAnalytics, UsagePrediction
from .units import MIB, clamp_bytes

logger = logging.getLogger(__name__)


class CycleVerdict(Enum):
    """Overall outcome of an evaluation cycle."""
    PASS = auto()
    WARN = auto()
    FAIL = auto()


@dataclass
class CycleResult:
    """Everything produced by one evaluation cycle."""
    alerts: List[DrainAlert]
    verdict: CycleVerdict
    prediction: Optional[UsagePrediction] = None
    analytics: Optional[UsageAnalytics] = None
    exhaustion_at: Optional[datetime] = None


@dataclass
class EngineState:
    """Long-lived engine state, owned by the caller.

    Holds the per-app rolling history and the aggregate per-interval totals
    used for exhaustion time estimates.
    """
    config: WatchdogConfig = DEFAULT_CONFIG
    history: RollingHistoryStore = field(init=False)
    interval_totals: Deque[int] = field(init=False)
    lock: threading.Lock = field(init=False, repr=False, default_factory=threading.Lock)

    def __post_init__(self):
        self.history = RollingHistoryStore(
            max_samples=self.config.history.max_samples,
            drain_threshold_bytes=self.config.history.drain_threshold_mib * MIB
        )
        self.interval_totals = deque(maxlen=self.config.history.max_samples)

    def replay(self, history: Mapping[str, Sequence[int]]) -> None:
        """Load prior per-app samples, oldest first.

        Per-app histories are aligned on their most recent sample. Each past
        interval's aggregate total is the sum of the samples of the apps
        present in it.
        """
        intervals = max((len(samples) for samples in history.values()), default=0)
        with self.lock:
            for app_id, samples in history.items():
                for sample in samples:
                    self.history.record(app_id, sample)
            for offset in range(intervals, 0, -1):
                self.interval_totals.append(sum(
                    clamp_bytes(samples[-offset])
                    for samples in history.values()
                    if len(samples) >= offset
                ))
        logger.debug("Replayed %d apps over %d intervals", len(history), intervals)

    def reset(self) -> None:
        """Drop all retained history."""
        with self.lock:
            self.history.clear_all()
            self.interval_totals.clear()


DailyHistory = Sequence[Union[DailyUsage, int]]


def run_cycle(
    state: EngineState,
    snapshot: Optional[Union[Mapping[str, int], Sequence[UsageSample]]],
    bundle: Optional[BundleState] = None,
    daily_history: Optional[DailyHistory] = None,
    mobile_bytes: Optional[Mapping[str, int]] = None,
    now: Optional[datetime] = None
) -> CycleResult:
    """
    Run one evaluation cycle against the engine state.

    Drain detection always runs. Prediction, analytics and the exhaustion
    estimate are produced only when a bundle is known. The state's lock is
    held while the cycle records into history, so concurrent cycles never
    interleave their updates; the forecast reads only its own inputs.

    Args:
        state: Engine state to record into
        snapshot: Mapping of app id to bytes used this interval, or a
            sequence of UsageSample records carrying their own mobile split
        bundle: Optional allowance state
        daily_history: Optional daily totals, oldest first; DailyUsage
            records carry labels for analytics
        mobile_bytes: Optional per-app bytes on a metered interface
        now: Reference time for the exhaustion estimate

    Returns:
        CycleResult with alerts, verdict and, with a bundle, the forecast
    """
    config = state.config
    if isinstance(snapshot, (list, tuple)):
        snapshot, sample_mobile = split_samples(snapshot)
        if mobile_bytes is None and sample_mobile:
            mobile_bytes = sample_mobile
    bundle_context = BundleContext.from_bundle(bundle) if bundle is not None else None

    with state.lock:
        detector = DrainDetector(state.history, config)
        alerts = detector.evaluate(snapshot, bundle_context, mobile_bytes)
        if isinstance(snapshot, Mapping) and snapshot:
            state.interval_totals.append(sum(clamp_bytes(v) for v in snapshot.values()))
        interval_totals = list(state.interval_totals)

    prediction = None
    analytics = None
    exhaustion_at = None
    if bundle is not None:
        predictor = BundlePredictor()
        labelled = _label_daily_history(daily_history or [])
        prediction = predictor.predict(bundle, [value for _, value in labelled])
        analytics = predictor.analyze_patterns(labelled)
        exhaustion_at = predictor.estimate_exhaustion_time(
            remaining_bytes=bundle.remaining_bytes,
            interval_samples=interval_totals,
            interval=timedelta(seconds=config.history.interval_seconds),
            now=now
        )

    verdict = _determine_verdict(alerts, prediction)
    logger.info(
        "Cycle complete: %d apps, %d alerts, verdict=%s",
        len(snapshot) if isinstance(snapshot, Mapping) else 0,
        len(alerts),
        verdict.name
    )

    return CycleResult(
        alerts=alerts,
        verdict=verdict,
        prediction=prediction,
        analytics=analytics,
        exhaustion_at=exhaustion_at
    )


def _label_daily_history(daily_history: DailyHistory):
    """Pair each daily total with a label, numbering unlabelled days."""
    labelled = []
    for index, entry in enumerate(daily_history):
        if isinstance(entry, DailyUsage):
            labelled.append((entry.label, clamp_bytes(entry.bytes)))
        else:
            labelled.append((f"day-{index + 1}", clamp_bytes(entry)))
    return labelled


def _determine_verdict(
    alerts: List[DrainAlert],
    prediction: Optional[UsagePrediction]
) -> CycleVerdict:
    """Determine the overall cycle verdict from alerts and prediction."""
    has_failure = prediction is not None and prediction.will_exceed_limit
    has_warnings = False

    for alert in alerts:
        if alert.severity == AlertSeverity.CRITICAL:
            has_failure = True
        elif alert.severity.value >= AlertSeverity.MEDIUM.value:
            has_warnings = True

    if has_failure:
        return CycleVerdict.FAIL
    elif has_warnings:
        return CycleVerdict.WARN
    return CycleVerdict.PASS
