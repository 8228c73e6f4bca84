# persona_context_engine/personas/metrics_history.py
"""
Per-persona session metrics.

Records the outcome of each working session and derives a recency-weighted
effectiveness score that the state machine uses to re-weight task scores.
"""

from __future__ import annotations

import logging
from collections import deque
from collections.abc import Callable, Iterable
from datetime import UTC, datetime

from pydantic import TypeAdapter

from persona_context_engine.models import (
    InsufficientData,
    PersonaPerformance,
    QualityDirection,
    QualityTrend,
    SessionMetrics,
)

logger = logging.getLogger(__name__)

_SESSIONS_ADAPTER = TypeAdapter(list[SessionMetrics])

# Quality score weights
COMPLETION_WEIGHT = 0.3
TOKEN_EFFICIENCY_WEIGHT = 0.3
ERROR_WEIGHT = 0.2
INTERACTION_WEIGHT = 0.2

# Effectiveness rating bands (exclusive lower bounds)
RATING_BANDS: tuple[tuple[float, str], ...] = (
    (0.8, "excellent"),
    (0.6, "good"),
    (0.4, "fair"),
)

# Per-session slope treated as flat
QUALITY_SLOPE_BAND = 0.01


def quality_score(
    completed: bool,
    token_efficiency: float,
    error_rate: float = 0.0,
    interaction_efficiency: float = 0.5,
) -> float:
    """Weighted session quality in [0, 1]."""
    score = (
        COMPLETION_WEIGHT * (1.0 if completed else 0.0)
        + TOKEN_EFFICIENCY_WEIGHT * _clamp(token_efficiency)
        + ERROR_WEIGHT * (1.0 - _clamp(error_rate))
        + INTERACTION_WEIGHT * _clamp(interaction_efficiency)
    )
    return round(_clamp(score), 6)


def rate(effectiveness: float) -> str:
    for bound, label in RATING_BANDS:
        if effectiveness > bound:
            return label
    return "needs improvement"


class MetricsHistory:
    """Bounded history of session metrics."""

    def __init__(
        self,
        max_size: int = 1000,
        effectiveness_window: int = 10,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.max_size = max_size
        self.effectiveness_window = effectiveness_window
        self._clock = clock or (lambda: datetime.now(UTC))
        self._sessions: deque[SessionMetrics] = deque(maxlen=max_size)

    def record_session(
        self,
        persona_id: str,
        *,
        completed: bool = True,
        token_efficiency: float = 0.5,
        error_rate: float = 0.0,
        interaction_efficiency: float = 0.5,
        duration_seconds: float = 0.0,
        quality: float | None = None,
        keywords: Iterable[str] = (),
    ) -> SessionMetrics:
        """
        Append a session outcome.

        ``quality`` overrides the computed quality score when supplied.
        """
        score = quality if quality is not None else quality_score(
            completed, token_efficiency, error_rate, interaction_efficiency
        )
        metrics = SessionMetrics(
            persona_id=persona_id,
            recorded_at=self._clock(),
            quality_score=score,
            duration_seconds=duration_seconds,
            token_efficiency=_clamp(token_efficiency),
            completed=completed,
            keywords=list(keywords),
        )
        self._sessions.append(metrics)
        logger.debug(f"Recorded session for {persona_id}: quality={score:.2f}")
        return metrics

    def sessions(self, persona_id: str | None = None) -> list[SessionMetrics]:
        if persona_id is None:
            return list(self._sessions)
        return [s for s in self._sessions if s.persona_id == persona_id]

    def effectiveness(self, persona_id: str) -> float | None:
        """
        Recency-weighted average quality over the last N sessions.

        The oldest session in the window has weight 1, the newest weight N.
        Returns None when the persona has no recorded sessions.
        """
        recent = self.sessions(persona_id)[-self.effectiveness_window :]
        if not recent:
            return None
        weights = range(1, len(recent) + 1)
        total = sum(w * s.quality_score for w, s in zip(weights, recent, strict=True))
        return total / sum(weights)

    def persona_stats(self, persona_id: str) -> PersonaPerformance:
        """Aggregate performance with an effectiveness rating and recommendations."""
        sessions = self.sessions(persona_id)
        if not sessions:
            return PersonaPerformance(persona_id=persona_id)

        n = len(sessions)
        completion_rate = sum(1 for s in sessions if s.completed) / n
        avg_quality = sum(s.quality_score for s in sessions) / n
        avg_efficiency = sum(s.token_efficiency for s in sessions) / n
        effectiveness = 0.3 * completion_rate + 0.4 * avg_quality + 0.3 * avg_efficiency

        recommendations = []
        if completion_rate < 0.7:
            recommendations.append("Low completion rate: break tasks into smaller steps for this persona")
        if avg_efficiency < 0.5:
            recommendations.append("Low token efficiency: use a more aggressive compression strategy")
        if avg_quality < 0.6:
            recommendations.append("Low quality scores: review the persona's behaviors and focus areas")

        return PersonaPerformance(
            persona_id=persona_id,
            total_sessions=n,
            completion_rate=completion_rate,
            average_duration_seconds=sum(s.duration_seconds for s in sessions) / n,
            average_quality_score=avg_quality,
            average_token_efficiency=avg_efficiency,
            effectiveness_score=effectiveness,
            rating=rate(effectiveness),
            recommendations=recommendations,
        )

    def quality_trend(self, persona_id: str | None = None) -> QualityTrend | InsufficientData:
        """
        Linear-regression slope of quality scores, oldest session first.

        A slope above ``QUALITY_SLOPE_BAND`` is improving, below its negative
        is declining, anything in between is stable.
        """
        sessions = sorted(self.sessions(persona_id), key=lambda s: s.recorded_at)
        n = len(sessions)
        if n < 2:
            return InsufficientData(reason="quality trend needs at least two sessions", required=2, available=n)

        scores = [s.quality_score for s in sessions]
        sum_x = sum(range(n))
        sum_y = sum(scores)
        sum_xy = sum(i * score for i, score in enumerate(scores))
        sum_x2 = sum(i * i for i in range(n))
        slope = (n * sum_xy - sum_x * sum_y) / (n * sum_x2 - sum_x * sum_x)

        if slope > QUALITY_SLOPE_BAND:
            direction = QualityDirection.IMPROVING
        elif slope < -QUALITY_SLOPE_BAND:
            direction = QualityDirection.DECLINING
        else:
            direction = QualityDirection.STABLE
        return QualityTrend(
            direction=direction,
            slope=slope,
            latest_score=scores[-1],
            average_score=sum_y / n,
            sessions=n,
        )

    def clear(self) -> None:
        self._sessions.clear()

    def __len__(self) -> int:
        return len(self._sessions)

    # --- persistence ---

    def to_json(self) -> bytes:
        return _SESSIONS_ADAPTER.dump_json(list(self._sessions))

    @staticmethod
    def parse_json(data: bytes) -> list[SessionMetrics]:
        return _SESSIONS_ADAPTER.validate_json(data)

    def load_json(self, data: bytes) -> int:
        return self.load_sessions(self.parse_json(data))

    def load_sessions(self, sessions: Iterable[SessionMetrics]) -> int:
        """Replace the history with the given sessions. Returns the count kept."""
        self._sessions = deque(sessions, maxlen=self.max_size)
        return len(self._sessions)


def _clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    return max(low, min(high, value))
