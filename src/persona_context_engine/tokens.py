# persona_context_engine/tokens.py
"""
Token estimation.

The estimate is an approximation contract, not an exact count for any
particular tokenizer:

    tokens = ceil(ceil(chars / K) + lines * line_overhead)

Structured inputs (mappings, sequences, pydantic models) are serialized to
JSON first and multiplied by ``structure_multiplier``.
"""

from __future__ import annotations

import json
import logging
import math
from collections.abc import Mapping
from typing import Any

from pydantic import BaseModel, Field

from persona_context_engine.exceptions import EstimationError

logger = logging.getLogger(__name__)


class TokenEstimatorConfig(BaseModel):
    """Configuration for token estimation."""

    chars_per_token: float = Field(default=4.0, gt=0, description="K: average characters per token")
    line_overhead: float = Field(default=0.1, ge=0, description="Extra tokens per line")
    structure_multiplier: float = Field(default=1.1, ge=1.0, description="Overhead for structured inputs")


class TokenEstimator:
    """Deterministic, I/O-free token estimator."""

    def __init__(self, config: TokenEstimatorConfig | None = None) -> None:
        self.config = config or TokenEstimatorConfig()

    def estimate(self, content: Any) -> int:
        """
        Estimate tokens for arbitrary content.

        Raises:
            EstimationError: if the content cannot be serialized.
        """
        if content is None:
            return 0
        if isinstance(content, str):
            return self._estimate_text(content)
        if isinstance(content, bytes | bytearray):
            try:
                return self._estimate_text(bytes(content).decode("utf-8"))
            except UnicodeDecodeError as e:
                raise EstimationError(f"Cannot decode bytes for estimation: {e}") from e

        if isinstance(content, BaseModel | Mapping | list | tuple | set | frozenset):
            text = self._serialize(content)
            return math.ceil(self._estimate_text(text) * self.config.structure_multiplier)

        # Scalars and arbitrary objects count as their plain text
        try:
            return self._estimate_text(str(content))
        except Exception as e:
            raise EstimationError(f"Cannot stringify {type(content).__name__}: {e}") from e

    def estimate_breakdown(self, parts: Mapping[str, Any]) -> dict[str, int]:
        """Estimate each named part; includes a ``total`` key."""
        breakdown = {name: self.estimate(value) for name, value in parts.items()}
        breakdown["total"] = sum(breakdown.values())
        return breakdown

    def _estimate_text(self, text: str) -> int:
        if not text:
            return 0
        chars = len(text)
        lines = text.count("\n") + 1
        return math.ceil(math.ceil(chars / self.config.chars_per_token) + lines * self.config.line_overhead)

    @staticmethod
    def _serialize(content: Any) -> str:
        if isinstance(content, BaseModel):
            try:
                return content.model_dump_json()
            except Exception as e:
                raise EstimationError(f"Cannot serialize {type(content).__name__}: {e}") from e
        if isinstance(content, set | frozenset):
            content = sorted(content, key=str)
        try:
            return json.dumps(content, ensure_ascii=False, sort_keys=True, default=str)
        except (TypeError, ValueError) as e:
            raise EstimationError(f"Cannot serialize {type(content).__name__}: {e}") from e
