# persona_context_engine/models/session.py
"""Persona session state, switch events, and task analysis results."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field

from persona_context_engine.models.enums import SwitchTrigger


class PersonaHistoryEntry(BaseModel):
    """A completed persona activation. Never edited once appended."""

    model_config = {"frozen": True}

    persona_id: str
    activated_at: datetime
    deactivated_at: datetime
    trigger: SwitchTrigger = SwitchTrigger.MANUAL
    reason: str | None = None

    @property
    def duration_seconds(self) -> float:
        return (self.deactivated_at - self.activated_at).total_seconds()


class PersonaSessionState(BaseModel):
    """
    Current persona plus the audit trail of previous activations.

    ``current_persona_id`` is None while the machine is Idle.
    """

    model_config = {"frozen": True}

    current_persona_id: str | None = None
    activated_at: datetime | None = None
    trigger: SwitchTrigger | None = None
    reason: str | None = None
    history: tuple[PersonaHistoryEntry, ...] = Field(default=())

    @property
    def is_idle(self) -> bool:
        return self.current_persona_id is None

    def with_switch(
        self,
        persona_id: str,
        now: datetime,
        trigger: SwitchTrigger,
        reason: str | None = None,
    ) -> PersonaSessionState:
        """Return the state after switching to ``persona_id`` at ``now``."""
        history = self.history
        if self.current_persona_id is not None and self.activated_at is not None:
            history = history + (
                PersonaHistoryEntry(
                    persona_id=self.current_persona_id,
                    activated_at=self.activated_at,
                    deactivated_at=now,
                    trigger=self.trigger or SwitchTrigger.MANUAL,
                    reason=self.reason,
                ),
            )
        return PersonaSessionState(
            current_persona_id=persona_id,
            activated_at=now,
            trigger=trigger,
            reason=reason,
            history=history,
        )


class PersonaSwitchEvent(BaseModel):
    """Emitted to listeners after a switch has been committed."""

    from_persona_id: str | None
    to_persona_id: str
    trigger: SwitchTrigger
    reason: str | None = None
    confidence: float | None = None
    switched_at: datetime


class TaskScore(BaseModel):
    """Score of a task against a single persona."""

    persona_id: str
    score: float = Field(default=0.0, ge=0.0)


class TaskAnalysis(BaseModel):
    """Result of scoring a task description against every known persona."""

    task_text: str
    keywords: list[str] = Field(default_factory=list)
    scores: dict[str, float] = Field(default_factory=dict)
    matches: dict[str, list[str]] = Field(default_factory=dict)
    primary_persona_id: str | None = None

    def ranked(self) -> list[TaskScore]:
        """Scores ordered from highest to lowest (stable on ties)."""
        ordered = sorted(self.scores.items(), key=lambda item: item[1], reverse=True)
        return [TaskScore(persona_id=pid, score=score) for pid, score in ordered]


class DetectionResult(BaseModel):
    """Outcome of optimal persona detection."""

    persona_id: str | None = Field(..., description="Detected candidate")
    current_persona_id: str | None = None
    confidence: float = 0.0
    switched: bool = False
    scores: dict[str, float] = Field(default_factory=dict)
    analysis: TaskAnalysis
