"""
Unit tests for evaluation cycles.

Tests orchestration, verdicts, owned state and serialized access.
"""

import threading
from datetime import datetime, timedelta

from data_watchdog.config.loader import HistoryConfig, WatchdogConfig
from data_watchdog.core.drain import AlertKind, AlertSeverity
from data_watchdog.core.engine import CycleVerdict, EngineState, run_cycle
from data_watchdog.core.models import BundleState, DailyUsage, UsageSample, split_samples
from data_watchdog.core.predictor import UsageTrend
from data_watchdog.core.units import MIB


def _scenario_bundle() -> BundleState:
    return BundleState(
        total_capacity_bytes=5000 * MIB,
        used_bytes=4000 * MIB,
        days_elapsed=20,
        total_days=30
    )


class TestEngineState:
    """Test owned engine state."""

    def test_history_uses_configured_capacity(self):
        state = EngineState(config=WatchdogConfig(history=HistoryConfig(max_samples=3)))
        for value in range(5):
            state.history.record("app", value)

        assert state.history.history_of("app") == [2, 3, 4]
        assert state.interval_totals.maxlen == 3

    def test_states_are_independent(self):
        first = EngineState()
        second = EngineState()
        run_cycle(first, {"app": 10})

        assert first.history.history_of("app") == [10]
        assert second.history.history_of("app") == []

    def test_replay_fills_history_and_interval_totals(self):
        state = EngineState()

        state.replay({"video": [90, 95, 100], "mail": [5]})

        assert state.history.history_of("video") == [90, 95, 100]
        assert state.history.history_of("mail") == [5]
        assert list(state.interval_totals) == [90, 95, 105]

    def test_replay_respects_capacity(self):
        state = EngineState(config=WatchdogConfig(history=HistoryConfig(max_samples=3)))

        state.replay({"app": [1, 2, 3, 4, 5]})

        assert state.history.history_of("app") == [3, 4, 5]
        assert list(state.interval_totals) == [3, 4, 5]

    def test_replay_enables_exhaustion_estimate(self):
        """Test one cycle after a replay has enough intervals to estimate."""
        state = EngineState()
        bundle = BundleState(
            total_capacity_bytes=1000 * MIB,
            used_bytes=400 * MIB,
            days_elapsed=10,
            total_days=30
        )
        now = datetime(2024, 3, 1, 12, 0, 0)
        state.replay({"app": [10 * MIB]})

        result = run_cycle(state, {"app": 10 * MIB}, bundle=bundle, now=now)

        assert result.exhaustion_at == now + timedelta(hours=1)

    def test_reset(self):
        state = EngineState()
        run_cycle(state, {"app": 10})
        state.reset()

        assert state.history.apps() == []
        assert len(state.interval_totals) == 0


class TestRunCycle:
    """Test a full evaluation cycle."""

    def test_without_bundle_only_alerts(self):
        state = EngineState()

        result = run_cycle(state, {"video": 100 * MIB, "mail": 1 * MIB})

        assert result.prediction is None
        assert result.analytics is None
        assert result.exhaustion_at is None
        assert result.alerts[0].app_id == "video"
        assert state.history.history_of("video") == [100 * MIB]

    def test_with_bundle_produces_forecast(self):
        state = EngineState()
        daily = [DailyUsage(label=f"d{i}", bytes=v * MIB)
                 for i, v in enumerate((400, 450, 500, 550, 600, 650, 700))]

        result = run_cycle(state, {"app": 1 * MIB}, bundle=_scenario_bundle(), daily_history=daily)

        assert result.prediction.will_exceed_limit
        assert result.prediction.trend == UsageTrend.INCREASING
        assert result.analytics.peak_days == ["d6", "d5", "d4"]
        assert result.verdict == CycleVerdict.FAIL

    def test_unlabelled_daily_history(self):
        state = EngineState()

        result = run_cycle(state, {"app": 1}, bundle=_scenario_bundle(), daily_history=[10, 30, 20])

        assert result.analytics.peak_days == ["day-2", "day-3", "day-1"]

    def test_bundle_without_daily_history(self):
        result = run_cycle(EngineState(), {"app": 1}, bundle=_scenario_bundle())

        assert result.prediction.trend == UsageTrend.STABLE
        assert result.analytics.average_daily_usage == 0.0

    def test_pacing_alert_included(self):
        result = run_cycle(EngineState(), {"app": 1 * MIB}, bundle=_scenario_bundle())

        pacing = [a for a in result.alerts if a.kind == AlertKind.BUNDLE_PACING]
        assert len(pacing) == 1

    def test_exhaustion_estimate_after_two_cycles(self):
        """Test 600 MiB left at 10 MiB per minute lasts an hour."""
        state = EngineState()
        bundle = BundleState(
            total_capacity_bytes=1000 * MIB,
            used_bytes=400 * MIB,
            days_elapsed=10,
            total_days=30
        )
        now = datetime(2024, 3, 1, 12, 0, 0)

        first = run_cycle(state, {"app": 10 * MIB}, bundle=bundle, now=now)
        second = run_cycle(state, {"app": 10 * MIB}, bundle=bundle, now=now)

        assert first.exhaustion_at is None
        assert second.exhaustion_at == now + timedelta(hours=1)

    def test_usage_samples_as_snapshot(self):
        """Test sample records carry the metered-interface split."""
        state = EngineState()
        samples = [
            UsageSample("video", 60 * MIB, mobile_bytes=55 * MIB),
            UsageSample("mail", 1 * MIB),
        ]

        result = run_cycle(state, samples)

        kinds = [(a.app_id, a.kind) for a in result.alerts]
        assert ("video", AlertKind.MOBILE_PREFERENCE) in kinds
        assert state.history.history_of("mail") == [1 * MIB]

    def test_empty_snapshot(self):
        state = EngineState()

        result = run_cycle(state, {})

        assert result.alerts == []
        assert result.verdict == CycleVerdict.PASS
        assert len(state.interval_totals) == 0


class TestVerdict:
    """Test overall cycle verdicts."""

    def test_critical_alert_fails(self):
        result = run_cycle(EngineState(), {"app": 100 * MIB})
        assert any(a.severity == AlertSeverity.CRITICAL for a in result.alerts)
        assert result.verdict == CycleVerdict.FAIL

    def test_medium_alerts_warn(self):
        """Test ten equal apps each take 10% of traffic (MEDIUM tier)."""
        snapshot = {f"app{i}": 10 * MIB for i in range(10)}

        result = run_cycle(EngineState(), snapshot)

        assert {a.severity for a in result.alerts} == {AlertSeverity.MEDIUM}
        assert result.verdict == CycleVerdict.WARN

    def test_predicted_overage_fails_without_alerts(self):
        result = run_cycle(EngineState(), {}, bundle=_scenario_bundle(), daily_history=[700 * MIB] * 3)

        assert result.alerts == []
        assert result.verdict == CycleVerdict.FAIL


class TestConcurrentCycles:
    """Test cycles sharing one state from several threads."""

    def test_parallel_cycles_serialize_history(self):
        state = EngineState()
        errors = []

        def worker(worker_id):
            try:
                for i in range(50):
                    run_cycle(state, {f"app{worker_id}": i, "shared": 1})
            except Exception as e:
                errors.append(e)

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for thread in threads:
            thread.start()
        for thread in threads:
            thread.join()

        assert errors == []
        for n in range(8):
            assert state.history.history_of(f"app{n}") == list(range(40, 50))
        assert state.history.history_of("shared") == [1] * 10
        assert len(state.interval_totals) == 10


class TestSplitSamples:
    """Test folding sample records into a snapshot."""

    def test_split(self):
        snapshot, mobile = split_samples([
            UsageSample("a", 10, mobile_bytes=4),
            UsageSample("b", 5),
            UsageSample("a", 3, mobile_bytes=1),
            "not a sample",
        ])

        assert snapshot == {"a": 13, "b": 5}
        assert mobile == {"a": 5}

    def test_negative_values_clamped(self):
        snapshot, mobile = split_samples([UsageSample("a", -10, mobile_bytes=-1)])
        assert snapshot == {"a": 0}
        assert mobile == {"a": 0}
