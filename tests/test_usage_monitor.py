# tests/test_usage_monitor.py
"""
Tests for UsageMonitor and trend math.

Covers:
- Alert levels at warning/critical thresholds
- Validation of token counts
- Alert listeners
- Bounded history with running per-persona stats
- Reports (filters, extremes, hourly averages)
- Trends, moving averages and predictions
- Optimization suggestions
- Export/import
"""

from datetime import timedelta

import pytest

from persona_context_engine.models import AlertLevel, InsufficientData, TrendDirection
from persona_context_engine.monitoring import (
    UsageMonitor,
    moving_averages,
    predict_next,
    trend_from_values,
    trend_window,
)


def _monitor(clock, **kwargs) -> UsageMonitor:
    return UsageMonitor(clock=clock, **kwargs)


# ===========================================================================
# Recording
# ===========================================================================


class TestRecord:
    @pytest.mark.asyncio
    async def test_alert_levels(self, clock):
        monitor = _monitor(clock)

        low = await monitor.record("debugger", 100, 1000)
        warning = await monitor.record("debugger", 100, 2500)
        critical = await monitor.record("debugger", 100, 3200)

        assert low.alert_level == AlertLevel.NONE
        assert warning.alert_level == AlertLevel.WARNING
        assert critical.alert_level == AlertLevel.CRITICAL

    def test_thresholds_are_inclusive(self, clock):
        monitor = _monitor(clock)
        assert monitor.alert_level(1999) == AlertLevel.NONE
        assert monitor.alert_level(2000) == AlertLevel.WARNING
        assert monitor.alert_level(3000) == AlertLevel.CRITICAL

    @pytest.mark.asyncio
    async def test_record_fields(self, clock):
        record = await _monitor(clock).record("debugger", 120, 800)
        assert record.total_tokens == 920
        assert record.timestamp == clock.now

    @pytest.mark.asyncio
    async def test_negative_tokens_rejected(self, clock):
        monitor = _monitor(clock)
        with pytest.raises(ValueError):
            await monitor.record("debugger", -1, 10)
        with pytest.raises(ValueError):
            await monitor.record("debugger", 1, -10)
        assert monitor.records == []

    def test_invalid_thresholds(self):
        with pytest.raises(ValueError):
            UsageMonitor(warning_tokens=5000, critical_tokens=3000)

    @pytest.mark.asyncio
    async def test_history_is_bounded_but_stats_are_not(self, clock):
        monitor = _monitor(clock, history_size=3)
        for i in range(5):
            clock.advance(1)
            await monitor.record("debugger", 0, 100 * (i + 1))

        assert [r.context_tokens for r in monitor.records] == [300, 400, 500]
        stats = monitor.persona_stats("debugger")
        assert stats.total_usages == 5
        assert stats.min_context_tokens == 100
        assert stats.max_context_tokens == 500
        assert stats.average_context_tokens == 300

    def test_unknown_persona_stats(self, clock):
        assert _monitor(clock).persona_stats("nobody") is None


class TestAlertListeners:
    @pytest.mark.asyncio
    async def test_listeners_only_see_alerts(self, clock):
        monitor = _monitor(clock)
        seen = []
        monitor.add_alert_listener(seen.append)

        await monitor.record("debugger", 0, 100)
        await monitor.record("debugger", 0, 2500)

        assert [r.alert_level for r in seen] == [AlertLevel.WARNING]

    @pytest.mark.asyncio
    async def test_async_and_failing_listeners(self, clock):
        monitor = _monitor(clock)
        seen = []

        async def async_listener(record):
            seen.append(record.context_tokens)

        def broken(record):
            raise RuntimeError("listener bug")

        monitor.add_alert_listener(broken)
        monitor.add_alert_listener(async_listener)

        record = await monitor.record("debugger", 0, 3500)

        assert record.alert_level == AlertLevel.CRITICAL
        assert seen == [3500]

    @pytest.mark.asyncio
    async def test_remove_listener(self, clock):
        monitor = _monitor(clock)
        seen = []
        monitor.add_alert_listener(seen.append)
        monitor.remove_alert_listener(seen.append)
        await monitor.record("debugger", 0, 2500)
        assert seen == []


# ===========================================================================
# Reports
# ===========================================================================


class TestReport:
    @pytest.mark.asyncio
    async def test_empty_report(self, clock):
        report = _monitor(clock).report(since=clock.now)
        assert report.total_usages == 0
        assert report.period_start == clock.now
        assert report.max_usage is None

    @pytest.mark.asyncio
    async def test_aggregates(self, clock):
        monitor = _monitor(clock)
        start = clock.now
        await monitor.record("debugger", 10, 1000)
        clock.advance(90 * 60)
        await monitor.record("debugger", 10, 2500)
        await monitor.record("architect", 10, 3200)

        report = monitor.report()

        assert report.total_usages == 3
        assert report.period_start == start
        assert report.period_end == clock.now
        assert report.total_context_tokens == 6700
        assert report.total_tokens == 6730
        assert report.average_context_tokens == pytest.approx(6700 / 3)
        assert report.max_usage.tokens == 3200
        assert report.max_usage.persona_id == "architect"
        assert report.min_usage.tokens == 1000
        assert report.alerts.model_dump() == {"total": 2, "warning": 1, "critical": 1}
        assert report.by_persona["debugger"].model_dump() == {
            "count": 2,
            "total_tokens": 3500,
            "warning": 1,
            "critical": 0,
        }
        assert report.hourly == {12: 1000, 13: 2850}

    @pytest.mark.asyncio
    async def test_filters(self, clock):
        monitor = _monitor(clock)
        await monitor.record("debugger", 0, 100)
        clock.advance(3600)
        middle = clock.now
        await monitor.record("architect", 0, 200)
        clock.advance(3600)
        await monitor.record("debugger", 0, 300)

        assert monitor.report(since=middle).total_usages == 2
        assert monitor.report(until=middle).total_usages == 2
        assert monitor.report(persona_id="debugger").total_context_tokens == 400
        assert monitor.report(since=middle, until=middle).total_usages == 1


# ===========================================================================
# Trends
# ===========================================================================


class TestTrendMath:
    @pytest.mark.parametrize("count, window", [(1, 1), (3, 1), (6, 2), (9, 3), (15, 5), (100, 5)])
    def test_window(self, count, window):
        assert trend_window(count) == window

    def test_moving_averages(self):
        assert moving_averages([1, 2, 3, 4], 2) == [1.5, 2.5, 3.5]

    def test_predict_next(self):
        assert predict_next([10, 20, 30]) == 40
        assert predict_next([5, 10, 20, 30]) == 40

    def test_prediction_clamped_at_zero(self):
        assert predict_next([30, 20, 0]) == 0

    def test_prediction_needs_three_points(self):
        result = predict_next([10, 20])
        assert isinstance(result, InsufficientData)
        assert result.required == 3
        assert result.available == 2

    def test_increasing(self):
        trend = trend_from_values([10, 20, 30])
        assert trend.window_size == 1
        assert trend.direction == TrendDirection.INCREASING
        assert trend.change_percentage == "200%"
        assert trend.change_ratio == pytest.approx(2.0)
        assert trend.prediction == 40

    def test_decreasing(self):
        trend = trend_from_values([30, 20, 10])
        assert trend.direction == TrendDirection.DECREASING
        assert trend.change_percentage == "-66.67%"
        assert trend.prediction == 0

    def test_stable(self):
        trend = trend_from_values([100, 102])
        assert trend.direction == TrendDirection.STABLE
        assert isinstance(trend.prediction, InsufficientData)

    def test_zero_baseline(self):
        rising = trend_from_values([0, 10])
        assert rising.change_ratio is None
        assert rising.change_percentage == "n/a"
        assert rising.direction == TrendDirection.INCREASING

        flat = trend_from_values([0, 0])
        assert flat.change_percentage == "0%"
        assert flat.direction == TrendDirection.STABLE

    def test_too_few_values(self):
        assert isinstance(trend_from_values([10]), InsufficientData)
        assert isinstance(trend_from_values([]), InsufficientData)


class TestMonitorTrend:
    @pytest.mark.asyncio
    async def test_trend_sorts_by_timestamp(self, clock):
        monitor = _monitor(clock)
        base = clock.now
        await monitor.record("debugger", 0, 30, timestamp=base + timedelta(minutes=2))
        await monitor.record("debugger", 0, 10, timestamp=base)
        await monitor.record("debugger", 0, 20, timestamp=base + timedelta(minutes=1))

        trend = monitor.trend()

        assert trend.change_percentage == "200%"
        assert trend.moving_averages[0].timestamp == base

    def test_empty_history(self, clock):
        assert isinstance(_monitor(clock).trend(), InsufficientData)


# ===========================================================================
# Suggestions & persistence
# ===========================================================================


class TestSuggestions:
    @pytest.mark.asyncio
    async def test_heavy_persona(self, clock):
        monitor = _monitor(clock)
        for tokens in (1800, 2900, 2900):
            await monitor.record("debugger", 0, tokens)

        kinds = [s.kind for s in monitor.optimization_suggestions("debugger")]

        assert kinds == ["high_average", "high_alert_rate", "near_critical"]

    @pytest.mark.asyncio
    async def test_light_persona(self, clock):
        monitor = _monitor(clock)
        await monitor.record("documenter", 0, 500)
        assert monitor.optimization_suggestions("documenter") == []

    def test_unknown_persona(self, clock):
        assert _monitor(clock).optimization_suggestions("nobody") == []


class TestPersistence:
    @pytest.mark.asyncio
    async def test_export_import(self, clock):
        monitor = _monitor(clock)
        await monitor.record("debugger", 5, 2500)
        clock.advance(60)
        await monitor.record("architect", 5, 100)

        restored = _monitor(clock)
        assert restored.import_json(monitor.export_json()) == 2
        assert restored.records == monitor.records
        assert restored.persona_stats("debugger").warning_count == 1

    @pytest.mark.asyncio
    async def test_clear(self, clock):
        monitor = _monitor(clock)
        await monitor.record("debugger", 0, 100)
        monitor.clear()
        assert monitor.records == []
        assert monitor.persona_stats("debugger") is None
