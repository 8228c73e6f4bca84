# persona_context_engine/models/usage.py
"""Usage records, reports, trends and persona metrics."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field, model_validator

from persona_context_engine.models.enums import AlertLevel, QualityDirection, TrendDirection

# =============================================================================
# Usage
# =============================================================================


class UsageRecord(BaseModel):
    """Token metrics for one context assembly. Append-only."""

    model_config = {"frozen": True}

    persona_id: str
    timestamp: datetime
    original_tokens: int = Field(..., ge=0)
    context_tokens: int = Field(..., ge=0)
    total_tokens: int = Field(..., ge=0)
    alert_level: AlertLevel = AlertLevel.NONE

    @model_validator(mode="after")
    def _check_totals(self) -> UsageRecord:
        if self.total_tokens - self.original_tokens != self.context_tokens:
            raise ValueError("total_tokens must equal original_tokens + context_tokens")
        return self


class PersonaUsageStats(BaseModel):
    """Running usage statistics for one persona."""

    total_usages: int = 0
    total_context_tokens: int = 0
    max_context_tokens: int = 0
    min_context_tokens: int | None = None
    warning_count: int = 0
    critical_count: int = 0

    @property
    def average_context_tokens(self) -> float:
        if self.total_usages == 0:
            return 0.0
        return self.total_context_tokens / self.total_usages

    @property
    def alert_rate(self) -> float:
        if self.total_usages == 0:
            return 0.0
        return (self.warning_count + self.critical_count) / self.total_usages


class PersonaUsageSummary(BaseModel):
    """Per-persona slice of a usage report."""

    count: int = 0
    total_tokens: int = 0
    warning: int = 0
    critical: int = 0


class AlertCounts(BaseModel):
    total: int = 0
    warning: int = 0
    critical: int = 0


class UsageExtreme(BaseModel):
    tokens: int
    persona_id: str
    timestamp: datetime


class UsageReport(BaseModel):
    """Aggregated usage over a filtered window."""

    total_usages: int = 0
    period_start: datetime | None = None
    period_end: datetime | None = None
    total_context_tokens: int = 0
    total_tokens: int = 0
    average_context_tokens: float = 0.0
    max_usage: UsageExtreme | None = None
    min_usage: UsageExtreme | None = None
    by_persona: dict[str, PersonaUsageSummary] = Field(default_factory=dict)
    alerts: AlertCounts = Field(default_factory=AlertCounts)
    hourly: dict[int, float] = Field(default_factory=dict, description="Average context tokens by hour of day")


class OptimizationSuggestion(BaseModel):
    """A hint for reducing a persona's context size."""

    kind: str
    message: str
    value: float
    threshold: float


# =============================================================================
# Trends
# =============================================================================


class InsufficientData(BaseModel):
    """Explicit 'cannot compute' result returned instead of guessing."""

    reason: str
    required: int
    available: int


class MovingAverage(BaseModel):
    timestamp: datetime | None = None
    average: float


class TrendResult(BaseModel):
    """Direction and extrapolation of context token usage."""

    direction: TrendDirection
    change_percentage: str = Field(..., description='Formatted change, e.g. "200%"')
    change_ratio: float | None = Field(default=None, description="(last - first) / first; None if first is 0")
    window_size: int
    moving_averages: list[MovingAverage] = Field(default_factory=list)
    prediction: int | InsufficientData


# =============================================================================
# Persona metrics
# =============================================================================


class SessionMetrics(BaseModel):
    """Outcome of one working session under a persona."""

    model_config = {"frozen": True}

    persona_id: str
    recorded_at: datetime
    quality_score: float = Field(..., ge=0.0, le=1.0)
    duration_seconds: float = Field(default=0.0, ge=0.0)
    token_efficiency: float = Field(default=0.5, ge=0.0, le=1.0)
    completed: bool = True
    keywords: list[str] = Field(default_factory=list)


class PersonaPerformance(BaseModel):
    """Aggregate performance of a persona across recorded sessions."""

    persona_id: str
    total_sessions: int = 0
    completion_rate: float = 0.0
    average_duration_seconds: float = 0.0
    average_quality_score: float = 0.0
    average_token_efficiency: float = 0.0
    effectiveness_score: float = 0.0
    rating: str = "needs improvement"
    recommendations: list[str] = Field(default_factory=list)


class QualityTrend(BaseModel):
    """Least-squares slope of session quality in recording order."""

    direction: QualityDirection
    slope: float
    latest_score: float
    average_score: float
    sessions: int
