# persona_context_engine/compression/budget.py
"""
Token budget fitting.

Strategies target rough reduction bands (minimal 10-30%, balanced 30-50%,
aggressive 50-70%) but make no guarantee, so fitting always re-checks the
actual estimate:

1. start with the strategy whose band covers the required reduction
2. escalate minimal -> balanced -> aggressive while over budget
3. drop the lowest-scored sections (the preamble last)
4. truncate, flagging the result
"""

from __future__ import annotations

import logging
from datetime import datetime

from pydantic import BaseModel, Field

from persona_context_engine.compression.classifier import parse_sections, render_sections
from persona_context_engine.compression.engine import CompressionEngine
from persona_context_engine.compression.strategies import normalize_formatting
from persona_context_engine.models import STRATEGY_ORDER, Persona, StrategyName
from persona_context_engine.tokens import TokenEstimator

logger = logging.getLogger(__name__)

# Upper bound of each strategy's target reduction band, in percent
STRATEGY_BANDS: dict[StrategyName, int] = {
    StrategyName.MINIMAL: 30,
    StrategyName.BALANCED: 50,
    StrategyName.AGGRESSIVE: 70,
}


class BudgetFit(BaseModel):
    """Result of fitting content into a token budget."""

    content: str
    original_tokens: int = Field(..., ge=0)
    tokens: int = Field(..., ge=0)
    budget: int = Field(..., ge=0)
    strategy: StrategyName | None = Field(default=None, description="Last strategy applied, None if it already fit")
    dropped_sections: list[str] = Field(default_factory=list)
    truncated: bool = False

    @property
    def within_budget(self) -> bool:
        return self.tokens <= self.budget


class TokenBudgetOptimizer:
    """Chooses and escalates compression strategies until content fits."""

    def __init__(self, engine: CompressionEngine | None = None, truncation_marker: str = "\n[truncated]") -> None:
        self.engine = engine or CompressionEngine()
        self.truncation_marker = truncation_marker

    @property
    def estimator(self) -> TokenEstimator:
        return self.engine.estimator

    def plan(self, tokens: int, budget: int) -> StrategyName | None:
        """Pick the strategy whose band covers the required reduction (None if it fits)."""
        if tokens <= budget:
            return None
        if budget <= 0:
            return StrategyName.AGGRESSIVE
        # Integer comparison keeps the band edges exact
        reduction = (tokens - budget) * 100
        for name in STRATEGY_ORDER:
            if reduction <= STRATEGY_BANDS[name] * tokens:
                return name
        return StrategyName.AGGRESSIVE

    def fit(
        self,
        content: str,
        budget: int,
        persona: Persona | None = None,
        now: datetime | None = None,
    ) -> BudgetFit:
        original = self.estimator.estimate(content)
        budget = max(0, budget)

        planned = self.plan(original, budget)
        if planned is None:
            return BudgetFit(content=content, original_tokens=original, tokens=original, budget=budget)

        text = content
        tokens = original
        strategy = planned
        for name in STRATEGY_ORDER[STRATEGY_ORDER.index(planned) :]:
            strategy = name
            result = self.engine.compress(content, name, persona, now)
            text, tokens = result.content, result.metadata.compressed_tokens
            if tokens <= budget:
                return BudgetFit(content=text, original_tokens=original, tokens=tokens, budget=budget, strategy=name)

        text, dropped = self._drop_sections(text, budget, persona)
        tokens = self.estimator.estimate(text)
        if tokens <= budget:
            return BudgetFit(
                content=text,
                original_tokens=original,
                tokens=tokens,
                budget=budget,
                strategy=strategy,
                dropped_sections=dropped,
            )

        text = self._truncate(text, budget)
        logger.info(f"Content truncated to fit {budget} tokens (was {original})")
        return BudgetFit(
            content=text,
            original_tokens=original,
            tokens=self.estimator.estimate(text),
            budget=budget,
            strategy=strategy,
            dropped_sections=dropped,
            truncated=True,
        )

    def _drop_sections(self, text: str, budget: int, persona: Persona | None) -> tuple[str, list[str]]:
        sections = self.engine.classifier.classify(parse_sections(text), persona)
        # Lowest score first; later sections go first on ties
        order = sorted(
            (i for i, s in enumerate(sections) if not s.is_preamble),
            key=lambda i: (sections[i].score, -i),
        )
        removed: set[int] = set()
        dropped: list[str] = []
        for index in order:
            candidate = [s for i, s in enumerate(sections) if i not in removed]
            if self.estimator.estimate(normalize_formatting(render_sections(candidate))) <= budget:
                break
            removed.add(index)
            dropped.append(sections[index].header)

        kept = [s for i, s in enumerate(sections) if i not in removed]
        if dropped:
            logger.debug(f"Dropped {len(dropped)} sections to fit budget")
        return normalize_formatting(render_sections(kept)), dropped

    def _truncate(self, text: str, budget: int) -> str:
        marker = self.truncation_marker
        if self.estimator.estimate(marker) > budget:
            marker = ""
        # Longest prefix that fits together with the marker
        low, high = 0, len(text)
        while low < high:
            mid = (low + high + 1) // 2
            if self.estimator.estimate(text[:mid].rstrip() + marker) <= budget:
                low = mid
            else:
                high = mid - 1
        prefix = text[:low].rstrip()
        if not prefix:
            return ""
        return prefix + marker
