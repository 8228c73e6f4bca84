# persona_context_engine/personas/__init__.py
"""Persona catalog, task analysis, switching, and session metrics."""

from persona_context_engine.personas.analyzer import (  # noqa: F401
    STOP_WORDS,
    TaskAnalyzer,
    TaskAnalyzerConfig,
    extract_keywords,
    rank_personas,
    similarity,
)
from persona_context_engine.personas.catalog import (  # noqa: F401
    DEFAULT_PERSONAS,
    InMemoryPersonaCatalog,
    PersonaCatalog,
)
from persona_context_engine.personas.metrics_history import (  # noqa: F401
    MetricsHistory,
    quality_score,
    rate,
)
from persona_context_engine.personas.state_machine import (  # noqa: F401
    PersonaStateMachine,
    SwitchListener,
)
