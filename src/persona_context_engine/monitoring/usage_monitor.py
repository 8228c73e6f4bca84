# persona_context_engine/monitoring/usage_monitor.py
"""
Token usage monitoring.

Records the token cost of each context assembly, raises threshold alerts,
aggregates reports, and extrapolates usage trends. The record log is
append-only and bounded; per-persona running stats cover every record ever
seen, including pruned ones.
"""

from __future__ import annotations

import inspect
import logging
from collections import defaultdict, deque
from collections.abc import Awaitable, Callable, Iterable, Sequence
from datetime import UTC, datetime

from pydantic import BaseModel, Field

from persona_context_engine.models import (
    AlertCounts,
    AlertLevel,
    InsufficientData,
    MovingAverage,
    OptimizationSuggestion,
    PersonaUsageStats,
    PersonaUsageSummary,
    TrendDirection,
    TrendResult,
    UsageExtreme,
    UsageRecord,
    UsageReport,
)

logger = logging.getLogger(__name__)

AlertListener = Callable[[UsageRecord], Awaitable[None] | None]

MIN_TREND_RECORDS = 2
MIN_PREDICTION_POINTS = 3
MAX_TREND_WINDOW = 5
STABLE_BAND = 0.05


class UsageExport(BaseModel):
    """Serialized form of the monitor (history + running stats)."""

    records: list[UsageRecord] = Field(default_factory=list)
    persona_stats: dict[str, PersonaUsageStats] = Field(default_factory=dict)


# =============================================================================
# Trend math
# =============================================================================


def trend_window(count: int) -> int:
    return max(1, min(MAX_TREND_WINDOW, count // 3))


def moving_averages(values: Sequence[float], window: int) -> list[float]:
    return [sum(values[i - window + 1 : i + 1]) / window for i in range(window - 1, len(values))]


def predict_next(averages: Sequence[float]) -> int | InsufficientData:
    """
    Naive linear extrapolation from the last three averages:
    ``last + (last - third_last) / 2``, clamped at zero.
    """
    if len(averages) < MIN_PREDICTION_POINTS:
        return InsufficientData(
            reason="prediction needs at least three moving averages",
            required=MIN_PREDICTION_POINTS,
            available=len(averages),
        )
    first, _, last = averages[-3:]
    return max(0, round(last + (last - first) / 2))


def trend_from_values(
    values: Sequence[float],
    timestamps: Sequence[datetime] | None = None,
) -> TrendResult | InsufficientData:
    """Trend over chronologically ordered context token counts."""
    if len(values) < MIN_TREND_RECORDS:
        return InsufficientData(
            reason="trend needs at least two records",
            required=MIN_TREND_RECORDS,
            available=len(values),
        )

    window = trend_window(len(values))
    averages = moving_averages(values, window)
    first, last = averages[0], averages[-1]

    if first == 0:
        ratio = None
        direction = TrendDirection.INCREASING if last > 0 else TrendDirection.STABLE
        change = "0%" if last == 0 else "n/a"
    else:
        ratio = (last - first) / first
        if abs(ratio) <= STABLE_BAND:
            direction = TrendDirection.STABLE
        elif ratio > 0:
            direction = TrendDirection.INCREASING
        else:
            direction = TrendDirection.DECREASING
        change = f"{round(ratio * 100, 2):g}%"

    stamps: list[datetime | None] = (
        list(timestamps[window - 1 :]) if timestamps is not None else [None] * len(averages)
    )
    return TrendResult(
        direction=direction,
        change_percentage=change,
        change_ratio=ratio,
        window_size=window,
        moving_averages=[
            MovingAverage(timestamp=stamp, average=avg) for stamp, avg in zip(stamps, averages, strict=True)
        ],
        prediction=predict_next(averages),
    )


# =============================================================================
# Monitor
# =============================================================================


class UsageMonitor:
    """Records usage, raises alerts, and reports on the retained history."""

    def __init__(
        self,
        warning_tokens: int = 2000,
        critical_tokens: int = 3000,
        history_size: int = 100,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        if warning_tokens > critical_tokens:
            raise ValueError("warning_tokens must not exceed critical_tokens")
        self.warning_tokens = warning_tokens
        self.critical_tokens = critical_tokens
        self.history_size = history_size
        self._clock = clock or (lambda: datetime.now(UTC))
        self._records: deque[UsageRecord] = deque(maxlen=history_size)
        self._persona_stats: dict[str, PersonaUsageStats] = {}
        self._listeners: list[AlertListener] = []

    # --- recording ---

    def alert_level(self, context_tokens: int) -> AlertLevel:
        if context_tokens >= self.critical_tokens:
            return AlertLevel.CRITICAL
        if context_tokens >= self.warning_tokens:
            return AlertLevel.WARNING
        return AlertLevel.NONE

    async def record(
        self,
        persona_id: str,
        original_tokens: int,
        context_tokens: int,
        timestamp: datetime | None = None,
    ) -> UsageRecord:
        """
        Append a usage record and notify alert listeners.

        Raises:
            ValueError: on negative token counts.
        """
        if original_tokens < 0 or context_tokens < 0:
            raise ValueError("token counts must be non-negative")

        record = UsageRecord(
            persona_id=persona_id,
            timestamp=timestamp or self._clock(),
            original_tokens=original_tokens,
            context_tokens=context_tokens,
            total_tokens=original_tokens + context_tokens,
            alert_level=self.alert_level(context_tokens),
        )
        self._records.append(record)
        self._update_stats(record)

        if record.alert_level is not AlertLevel.NONE:
            logger.warning(
                f"{record.alert_level.value.upper()} token usage for {persona_id}: "
                f"{context_tokens} context tokens"
            )
            await self._notify(record)
        return record

    def _update_stats(self, record: UsageRecord) -> None:
        stats = self._persona_stats.setdefault(record.persona_id, PersonaUsageStats())
        stats.total_usages += 1
        stats.total_context_tokens += record.context_tokens
        stats.max_context_tokens = max(stats.max_context_tokens, record.context_tokens)
        if stats.min_context_tokens is None or record.context_tokens < stats.min_context_tokens:
            stats.min_context_tokens = record.context_tokens
        if record.alert_level is AlertLevel.WARNING:
            stats.warning_count += 1
        elif record.alert_level is AlertLevel.CRITICAL:
            stats.critical_count += 1

    # --- listeners ---

    def add_alert_listener(self, listener: AlertListener) -> None:
        self._listeners.append(listener)

    def remove_alert_listener(self, listener: AlertListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    async def _notify(self, record: UsageRecord) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(record)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Usage alert listener failed for {record.persona_id}")

    # --- queries ---

    @property
    def records(self) -> list[UsageRecord]:
        return list(self._records)

    def persona_stats(self, persona_id: str) -> PersonaUsageStats | None:
        return self._persona_stats.get(persona_id)

    def filter(
        self,
        since: datetime | None = None,
        until: datetime | None = None,
        persona_id: str | None = None,
    ) -> list[UsageRecord]:
        return [
            r
            for r in self._records
            if (since is None or r.timestamp >= since)
            and (until is None or r.timestamp <= until)
            and (persona_id is None or r.persona_id == persona_id)
        ]

    def report(
        self,
        since: datetime | None = None,
        until: datetime | None = None,
        persona_id: str | None = None,
    ) -> UsageReport:
        """Aggregate the retained records matching the filter."""
        records = self.filter(since, until, persona_id)
        if not records:
            return UsageReport(period_start=since, period_end=until)

        by_persona: dict[str, PersonaUsageSummary] = {}
        alerts = AlertCounts()
        hourly: dict[int, list[int]] = defaultdict(list)
        for r in records:
            summary = by_persona.setdefault(r.persona_id, PersonaUsageSummary())
            summary.count += 1
            summary.total_tokens += r.context_tokens
            if r.alert_level is AlertLevel.WARNING:
                summary.warning += 1
                alerts.warning += 1
            elif r.alert_level is AlertLevel.CRITICAL:
                summary.critical += 1
                alerts.critical += 1
            hourly[r.timestamp.hour].append(r.context_tokens)
        alerts.total = alerts.warning + alerts.critical

        total_context = sum(r.context_tokens for r in records)
        highest = max(records, key=lambda r: r.context_tokens)
        lowest = min(records, key=lambda r: r.context_tokens)
        return UsageReport(
            total_usages=len(records),
            period_start=since or min(r.timestamp for r in records),
            period_end=until or max(r.timestamp for r in records),
            total_context_tokens=total_context,
            total_tokens=sum(r.total_tokens for r in records),
            average_context_tokens=total_context / len(records),
            max_usage=UsageExtreme(
                tokens=highest.context_tokens, persona_id=highest.persona_id, timestamp=highest.timestamp
            ),
            min_usage=UsageExtreme(
                tokens=lowest.context_tokens, persona_id=lowest.persona_id, timestamp=lowest.timestamp
            ),
            by_persona=by_persona,
            alerts=alerts,
            hourly={hour: sum(values) / len(values) for hour, values in sorted(hourly.items())},
        )

    def trend(self, records: Iterable[UsageRecord] | None = None) -> TrendResult | InsufficientData:
        """Trend over ``records`` (default: retained history), sorted by time."""
        ordered = sorted(self._records if records is None else records, key=lambda r: r.timestamp)
        return trend_from_values(
            [r.context_tokens for r in ordered],
            [r.timestamp for r in ordered],
        )

    def optimization_suggestions(self, persona_id: str) -> list[OptimizationSuggestion]:
        """Hints derived from the persona's running stats (empty if unknown)."""
        stats = self._persona_stats.get(persona_id)
        if stats is None or stats.total_usages == 0:
            return []

        suggestions = []
        average_limit = self.warning_tokens * 0.8
        if stats.average_context_tokens > average_limit:
            suggestions.append(
                OptimizationSuggestion(
                    kind="high_average",
                    message="Average context size is high; simplify the context content",
                    value=stats.average_context_tokens,
                    threshold=average_limit,
                )
            )
        if stats.alert_rate > 0.2:
            suggestions.append(
                OptimizationSuggestion(
                    kind="high_alert_rate",
                    message="Token limits are exceeded often; enable context compression",
                    value=stats.alert_rate,
                    threshold=0.2,
                )
            )
        critical_limit = self.critical_tokens * 0.9
        if stats.max_context_tokens > critical_limit:
            suggestions.append(
                OptimizationSuggestion(
                    kind="near_critical",
                    message="Peak usage is close to the critical threshold; split or summarize long contexts",
                    value=stats.max_context_tokens,
                    threshold=critical_limit,
                )
            )
        return suggestions

    # --- persistence ---

    def export_json(self) -> bytes:
        state = UsageExport(records=list(self._records), persona_stats=self._persona_stats)
        return state.model_dump_json().encode("utf-8")

    @staticmethod
    def parse_export(data: bytes) -> UsageExport:
        """Validate ``export_json()`` output without touching the monitor."""
        return UsageExport.model_validate_json(data)

    def import_json(self, data: bytes) -> int:
        return self.import_state(self.parse_export(data))

    def import_state(self, state: UsageExport) -> int:
        """Replace history and stats with exported data. Returns the record count kept."""
        self._records = deque(sorted(state.records, key=lambda r: r.timestamp), maxlen=self.history_size)
        self._persona_stats = dict(state.persona_stats)
        return len(self._records)

    def clear(self) -> None:
        self._records.clear()
        self._persona_stats.clear()
