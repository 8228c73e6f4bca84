# persona_context_engine/compression/engine.py
"""
Compression engine.

Resolves a strategy by name, runs it, and guarantees the token contract:
the estimate of the output never exceeds the estimate of the input. If a
strategy ever produced larger output, the input is returned unchanged and
``metadata.fallback_to_original`` is set.
"""

from __future__ import annotations

import logging
from datetime import datetime

from persona_context_engine.compression.classifier import ImportanceClassifier, parse_sections
from persona_context_engine.compression.strategies import STRATEGIES, CompressionConfig, Strategy
from persona_context_engine.exceptions import InvalidStrategyError
from persona_context_engine.models import (
    CompressionResult,
    ContentSection,
    Persona,
    StrategyName,
)
from persona_context_engine.tokens import TokenEstimator

logger = logging.getLogger(__name__)


def resolve_strategy(name: str | StrategyName) -> StrategyName:
    """Parse a strategy name, raising InvalidStrategyError if unknown."""
    if isinstance(name, StrategyName):
        return name
    try:
        return StrategyName(str(name).strip().lower())
    except ValueError:
        raise InvalidStrategyError(str(name)) from None


class CompressionEngine:
    """Applies named compression strategies."""

    def __init__(
        self,
        estimator: TokenEstimator | None = None,
        classifier: ImportanceClassifier | None = None,
        config: CompressionConfig | None = None,
        strategies: dict[StrategyName, Strategy] | None = None,
    ) -> None:
        self.estimator = estimator or TokenEstimator()
        self.classifier = classifier or ImportanceClassifier()
        self.config = config or CompressionConfig()
        self._strategies = dict(strategies or STRATEGIES)

    @property
    def strategy_names(self) -> list[StrategyName]:
        return list(self._strategies)

    def compress(
        self,
        content: str,
        strategy: str | StrategyName = StrategyName.BALANCED,
        persona: Persona | None = None,
        now: datetime | None = None,
    ) -> CompressionResult:
        """
        Compress ``content`` with the named strategy.

        Raises:
            InvalidStrategyError: if ``strategy`` is not a known name.
        """
        name = resolve_strategy(strategy)
        fn = self._strategies.get(name)
        if fn is None:
            raise InvalidStrategyError(name.value)

        result = fn(
            content,
            persona,
            now,
            estimator=self.estimator,
            classifier=self.classifier,
            config=self.config,
        )

        metadata = result.metadata
        if metadata.compressed_tokens > metadata.original_tokens:
            logger.warning(
                f"{name.value} strategy grew content "
                f"({metadata.original_tokens} -> {metadata.compressed_tokens} tokens); keeping input"
            )
            return CompressionResult(
                content=content,
                metadata=metadata.model_copy(
                    update={
                        "compressed_tokens": metadata.original_tokens,
                        "removed_sections": [],
                        "fallback_to_original": True,
                    }
                ),
            )

        logger.debug(
            f"Compressed with {name.value}: {metadata.original_tokens} -> "
            f"{metadata.compressed_tokens} tokens ({metadata.compression_ratio:.0%} saved)"
        )
        return result

    def classify(self, content: str, persona: Persona | None = None) -> list[ContentSection]:
        """Parse and classify ``content`` into scored sections."""
        return self.classifier.classify(parse_sections(content), persona)
