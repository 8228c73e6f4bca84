# persona_context_engine/models/persona.py
"""Persona definitions and the derived overlay."""

from __future__ import annotations

import re

from pydantic import BaseModel, Field, field_validator

from persona_context_engine.models.enums import ContentKind, SnapshotSignal


def _validate_patterns(patterns: set[str] | list[str]) -> set[str] | list[str]:
    for pattern in patterns:
        try:
            re.compile(pattern, re.IGNORECASE)
        except re.error as e:
            raise ValueError(f"Invalid pattern {pattern!r}: {e}") from e
    return patterns


class OverlayRules(BaseModel):
    """File/line patterns a persona prioritizes or excludes (glob syntax)."""

    model_config = {"frozen": True}

    priority_patterns: list[str] = Field(default_factory=list)
    exclusion_patterns: list[str] = Field(default_factory=list)


class Persona(BaseModel):
    """
    A named behavior profile with keyword affinities and context-overlay rules.

    Personas are immutable once loaded. ``preserve_patterns`` are
    case-insensitive regular expressions; everything else is plain data.
    """

    model_config = {"frozen": True}

    id: str = Field(..., min_length=1)
    description: str = Field(default="")

    # Classification / compression
    preserve_patterns: frozenset[str] = Field(default_factory=frozenset)
    focus_areas: frozenset[str] = Field(default_factory=frozenset)
    compression_weights: dict[ContentKind, float] = Field(default_factory=dict)
    token_allocation: float = Field(default=0.4, gt=0.0, le=1.0)
    overlay_rules: OverlayRules = Field(default_factory=OverlayRules)

    # Task detection
    keywords: tuple[str, ...] = Field(default=())
    context_indicators: tuple[str, ...] = Field(default=())
    context_boosts: dict[SnapshotSignal, float] = Field(default_factory=dict)

    # Prompt overlay
    behaviors: tuple[str, ...] = Field(default=())
    communication_style: str | None = Field(default=None)

    @field_validator("preserve_patterns")
    @classmethod
    def _check_preserve_patterns(cls, value: frozenset[str]) -> frozenset[str]:
        return _validate_patterns(value)

    @field_validator("compression_weights")
    @classmethod
    def _check_weights(cls, value: dict[ContentKind, float]) -> dict[ContentKind, float]:
        for kind, weight in value.items():
            if not 0.0 <= weight <= 1.0:
                raise ValueError(f"compression weight for {kind.value} must be in [0, 1], got {weight}")
        return value

    @field_validator("context_boosts")
    @classmethod
    def _check_boosts(cls, value: dict[SnapshotSignal, float]) -> dict[SnapshotSignal, float]:
        for signal, boost in value.items():
            if boost < 0:
                raise ValueError(f"context boost for {signal.value} must be non-negative")
        return value


class PersonaOverlay(BaseModel):
    """Persona-specific layer merged on top of the base project context."""

    model_config = {"frozen": True}

    persona_id: str
    system_prompt: str
    priority_patterns: list[str] = Field(default_factory=list)
    exclusion_patterns: list[str] = Field(default_factory=list)
    focus_areas: list[str] = Field(default_factory=list)
    token_allocation: float = Field(default=0.4)
    resource_text: str | None = Field(default=None, description="Overlay markdown from storage")

    @property
    def summary(self) -> str:
        """Prompt text including the optional stored overlay resource."""
        if self.resource_text:
            return f"{self.system_prompt}\n\n{self.resource_text.strip()}\n"
        return self.system_prompt
