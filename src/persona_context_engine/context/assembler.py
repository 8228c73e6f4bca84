# persona_context_engine/context/assembler.py
"""
Context assembly - merges the project snapshot with a persona overlay into
a token-bounded ContextBundle.

Flow for ``assemble(persona, task_text)``:

1. read the project snapshot (collaborator I/O)
2. drop files matching the persona's exclusion patterns, order the rest by
   its priority patterns, and render the base markdown
3. load the persona overlay resource through the cache
4. budget = max_context_tokens x persona.token_allocation; an oversized
   overlay resource is fitted first and the base gets whatever is left
5. fit the base with the budget optimizer and classify the final sections

Nothing is committed until every step has succeeded.
"""

from __future__ import annotations

import logging
import math
from collections.abc import Callable
from datetime import UTC, datetime

from persona_context_engine.cache import CacheKey, ResourceCache
from persona_context_engine.compression.budget import TokenBudgetOptimizer
from persona_context_engine.compression.classifier import parse_sections
from persona_context_engine.context.patterns import filter_files
from persona_context_engine.context.snapshot import ProjectSnapshot
from persona_context_engine.context.storage import Storage
from persona_context_engine.models import (
    ContextBundle,
    OperationKind,
    Persona,
    PersonaOverlay,
    ResourceKind,
    SnapshotData,
)
from persona_context_engine.tokens import TokenEstimator

logger = logging.getLogger(__name__)


def build_system_prompt(persona: Persona) -> str:
    """Render the persona's behavior profile as a system prompt."""
    lines = [f"# Active Persona: {persona.id}"]
    if persona.description:
        lines += ["", persona.description]
    if persona.behaviors:
        lines += ["", "## Behaviors"]
        lines += [f"- {behavior}" for behavior in persona.behaviors]
    if persona.focus_areas:
        lines += ["", f"Focus areas: {', '.join(sorted(persona.focus_areas))}"]
    if persona.communication_style:
        lines += [f"Communication style: {persona.communication_style}"]
    return "\n".join(lines) + "\n"


def render_base_content(
    snapshot: SnapshotData,
    persona: Persona,
    task_text: str | None = None,
    max_listed_files: int = 50,
) -> str:
    """Render the snapshot as markdown, filtered and ordered by overlay rules."""
    rules = persona.overlay_rules
    parts = ["# Project Context"]

    if task_text:
        parts.append(f"## Current Task\n{task_text.strip()}")

    errors = snapshot.error_state
    if errors.has_errors or errors.test_failures:
        lines = ["## Error State"]
        if errors.has_errors:
            lines.append("- Active errors detected")
        if errors.test_failures:
            lines.append("- Test failures detected")
        lines += [f"- Error in: {path}" for path in errors.error_files]
        parts.append("\n".join(lines))

    if snapshot.notes:
        parts.append(f"## Recent Changes\n{snapshot.notes.strip()}")

    recent = filter_files(snapshot.recent_files, rules.exclusion_patterns, rules.priority_patterns)
    if recent:
        parts.append("## Recent Files\n" + "\n".join(f"- {path}" for path in recent))

    structure = filter_files(snapshot.file_structure, rules.exclusion_patterns, rules.priority_patterns)
    if structure:
        listed = structure[:max_listed_files]
        lines = ["## File Structure", *(f"- {path}" for path in listed)]
        if len(structure) > len(listed):
            lines.append(f"- ... and {len(structure) - len(listed)} more files")
        parts.append("\n".join(lines))

    return "\n\n".join(parts) + "\n"


class ContextAssembler:
    """Builds context bundles and tracks the currently applied one."""

    def __init__(
        self,
        cache: ResourceCache,
        optimizer: TokenBudgetOptimizer | None = None,
        snapshot: ProjectSnapshot | None = None,
        storage: Storage | None = None,
        max_context_tokens: int = 8000,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.cache = cache
        self.optimizer = optimizer or TokenBudgetOptimizer()
        self.snapshot = snapshot
        self.storage = storage
        self.max_context_tokens = max_context_tokens
        self._clock = clock or (lambda: datetime.now(UTC))
        self._current: ContextBundle | None = None

    @property
    def current_bundle(self) -> ContextBundle | None:
        """Bundle committed by the last successful ``apply``."""
        return self._current

    @property
    def estimator(self) -> TokenEstimator:
        return self.optimizer.estimator

    async def load_overlay(self, persona: Persona) -> PersonaOverlay:
        """Build the persona overlay, reading its stored resource through the cache."""
        resource_text = await self._read_overlay_resource(persona.id)
        rules = persona.overlay_rules
        return PersonaOverlay(
            persona_id=persona.id,
            system_prompt=build_system_prompt(persona),
            priority_patterns=list(rules.priority_patterns),
            exclusion_patterns=list(rules.exclusion_patterns),
            focus_areas=sorted(persona.focus_areas),
            token_allocation=persona.token_allocation,
            resource_text=resource_text or None,
        )

    def invalidate_overlay(self, persona_id: str | None = None) -> int:
        """Drop cached overlay resources (all personas if no id is given)."""
        return self.cache.invalidate(
            lambda key: key.resource_kind == ResourceKind.PERSONA.value
            and (persona_id is None or key.name == persona_id)
        )

    async def assemble(self, persona: Persona, task_text: str | None = None) -> ContextBundle:
        """Assemble a bundle for ``persona`` without committing it."""
        snapshot = await self.snapshot.current() if self.snapshot is not None else SnapshotData()
        overlay = await self.load_overlay(persona)

        base = render_base_content(snapshot, persona, task_text)
        budget = max(0, math.floor(self.max_context_tokens * persona.token_allocation))
        original_overlay_tokens = self.estimator.estimate(overlay.summary)
        overlay, overlay_reduced = self._fit_overlay(overlay, budget, persona)
        overlay_tokens = self.estimator.estimate(overlay.summary)
        base_budget = max(0, budget - overlay_tokens)

        fit = self.optimizer.fit(base, base_budget, persona, now=self._clock())
        sections = self.optimizer.engine.classifier.classify(parse_sections(fit.content), persona)

        breakdown = {"overlay": overlay_tokens, "base": fit.tokens}
        breakdown["total"] = overlay_tokens + fit.tokens
        if fit.truncated:
            logger.warning(f"Context for {persona.id} truncated to {fit.tokens}/{base_budget} base tokens")
        if breakdown["total"] > budget:
            logger.warning(f"System prompt for {persona.id} alone exceeds its {budget} token budget")

        return ContextBundle(
            persona_id=persona.id,
            base_content=fit.content,
            persona_overlay_summary=overlay.summary,
            sections=tuple(sections),
            estimated_tokens=breakdown["total"],
            budget_tokens=budget,
            original_tokens=original_overlay_tokens + fit.original_tokens,
            strategy=fit.strategy,
            truncated=fit.truncated or overlay_reduced,
            token_breakdown=breakdown,
            created_at=self._clock(),
        )

    def _fit_overlay(self, overlay: PersonaOverlay, budget: int, persona: Persona) -> tuple[PersonaOverlay, bool]:
        """Shrink the stored overlay resource until the overlay summary fits ``budget``."""
        tokens = self.estimator.estimate(overlay.summary)
        if tokens <= budget or not overlay.resource_text:
            return overlay, False

        resource_budget = budget - self.estimator.estimate(overlay.system_prompt)
        while resource_budget > 0:
            fit = self.optimizer.fit(overlay.resource_text, resource_budget, persona, now=self._clock())
            fitted = overlay.model_copy(update={"resource_text": fit.content.strip() or None})
            tokens = self.estimator.estimate(fitted.summary)
            if tokens <= budget:
                logger.info(f"Overlay resource for {persona.id} reduced to fit {budget} tokens")
                return fitted, True
            # The joined summary costs a little more than its parts
            resource_budget -= tokens - budget

        logger.warning(f"Overlay resource for {persona.id} dropped: no room left in {budget} tokens")
        return overlay.model_copy(update={"resource_text": None}), True

    async def apply(self, persona: Persona, task_text: str | None = None) -> ContextBundle:
        """Assemble and commit as the current bundle (unchanged on failure)."""
        bundle = await self.assemble(persona, task_text)
        self._current = bundle
        logger.debug(f"Applied context for {persona.id}: {bundle.estimated_tokens}/{bundle.budget_tokens} tokens")
        return bundle

    async def _read_overlay_resource(self, persona_id: str) -> str | None:
        if self.storage is None:
            return None
        storage = self.storage

        async def load() -> str | None:
            data = await storage.read_resource(ResourceKind.PERSONA.value, persona_id)
            # A missing resource is not cached, so a later write is picked up
            return data.decode("utf-8") if data is not None else None

        key = CacheKey(
            operation=OperationKind.READ.value,
            resource_kind=ResourceKind.PERSONA.value,
            name=persona_id,
        )
        return await self.cache.get_or_load(key, load)
