# persona_context_engine/__init__.py
"""
Persona Context Engine.

Prepares bounded-size, role-specific context bundles for an AI assistant:
scores a task against persona profiles, switches the active persona,
assembles and compresses project context to a token budget, and tracks
token usage with threshold alerts.
"""

from persona_context_engine.cache import CacheEntry, CacheKey, ResourceCache  # noqa: F401
from persona_context_engine.config import EngineConfig  # noqa: F401
from persona_context_engine.engine import ContextEngine  # noqa: F401
from persona_context_engine.exceptions import (  # noqa: F401
    CacheCorruptionError,
    ContextEngineError,
    EstimationError,
    InvalidPersonaError,
    InvalidStrategyError,
    PersonaSwitchFailedError,
)
from persona_context_engine.tokens import TokenEstimator, TokenEstimatorConfig  # noqa: F401

__version__ = "0.1.0"
