# persona_context_engine/exceptions.py
"""Exception hierarchy for the persona context engine."""

from __future__ import annotations


class ContextEngineError(Exception):
    """Base class for all engine errors."""


class InvalidPersonaError(ContextEngineError):
    """Unknown persona id. Never mutates session state."""

    def __init__(self, persona_id: str):
        self.persona_id = persona_id
        super().__init__(f"Invalid persona: {persona_id}")


class PersonaSwitchFailedError(ContextEngineError):
    """Context assembly failed during a switch; the switch was rolled back."""

    def __init__(self, persona_id: str, previous_persona_id: str | None):
        self.persona_id = persona_id
        self.previous_persona_id = previous_persona_id
        super().__init__(f"Failed to switch to persona {persona_id!r}; still on {previous_persona_id!r}")


class EstimationError(ContextEngineError):
    """Content could not be serialized for token estimation."""


class CacheCorruptionError(ContextEngineError):
    """A cache entry is malformed. Handled as a miss, never fatal."""


class InvalidStrategyError(ContextEngineError, ValueError):
    """Unknown compression strategy name."""

    def __init__(self, name: str):
        self.name = name
        super().__init__(f"Unknown compression strategy: {name!r}")
