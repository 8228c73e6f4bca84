# persona_context_engine/config.py
"""
Engine configuration.

Every recognized option is listed on ``EngineConfig`` with its default.
Defaults can be overridden through ``PCE_*`` environment variables (a
``.env`` file is honoured) via ``EngineConfig.from_env()``.
"""

from __future__ import annotations

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, model_validator

load_dotenv()

_ENV_PREFIX = "PCE_"

# Central defaults: can be overridden by the same variables from_env() reads
DEFAULT_PERSONA_ID = os.getenv(f"{_ENV_PREFIX}DEFAULT_PERSONA_ID", "developer")
DEFAULT_SWITCH_THRESHOLD = float(os.getenv(f"{_ENV_PREFIX}SWITCH_THRESHOLD", "20"))
DEFAULT_MAX_CONTEXT_TOKENS = int(os.getenv(f"{_ENV_PREFIX}MAX_CONTEXT_TOKENS", "8000"))


class EngineConfig(BaseModel):
    """All engine options with documented defaults."""

    # Resource cache
    max_cache_size: int = Field(default=256, gt=0, description="Maximum cached entries before LRU eviction")
    cache_ttl_seconds: float = Field(default=300.0, gt=0, description="Entry time-to-live")
    cache_sweep_interval_seconds: float = Field(default=300.0, gt=0, description="Background expiry sweep period")

    # Persona switching
    switch_threshold: float = Field(
        default=DEFAULT_SWITCH_THRESHOLD,
        ge=0,
        description="Minimum score gap (top - current) required to auto-switch",
    )
    auto_detection_enabled: bool = Field(default=True)
    history_weighting_enabled: bool = Field(default=True, description="Re-weight scores by past effectiveness")
    default_persona_id: str = Field(default=DEFAULT_PERSONA_ID)

    # Usage monitoring
    warning_tokens: int = Field(default=2000, gt=0)
    critical_tokens: int = Field(default=3000, gt=0)
    usage_history_size: int = Field(default=100, gt=0)
    metrics_history_size: int = Field(default=1000, gt=0)

    # Context assembly / compression
    max_context_tokens: int = Field(default=DEFAULT_MAX_CONTEXT_TOKENS, gt=0)
    log_retention_days: int = Field(default=7, ge=0)

    @model_validator(mode="after")
    def _check_thresholds(self) -> EngineConfig:
        if self.warning_tokens > self.critical_tokens:
            raise ValueError("warning_tokens must not exceed critical_tokens")
        return self

    @classmethod
    def from_env(cls, **overrides: object) -> EngineConfig:
        """Build a config from ``PCE_<OPTION>`` environment variables."""
        values: dict[str, object] = {}
        for name in cls.model_fields:
            raw = os.getenv(f"{_ENV_PREFIX}{name.upper()}")
            if raw is not None:
                values[name] = raw
        values.update(overrides)
        return cls.model_validate(values)
