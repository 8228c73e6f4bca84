# persona_context_engine/personas/state_machine.py
"""
Persona state machine.

States: ``Idle -> Active(persona_id)``. The machine is the only writer of
``PersonaSessionState``. Every switch is serialized through an
``asyncio.Lock`` (FIFO in arrival order) and follows compute-then-commit:

1. validate the target (``InvalidPersonaError``, nothing changes)
2. no-op if it is already active
3. apply the persona's context (``PersonaSwitchFailedError`` on failure,
   nothing changes)
4. commit the new state, then notify listeners
"""

from __future__ import annotations

import asyncio
import inspect
import logging
from collections.abc import Awaitable, Callable
from datetime import UTC, datetime
from typing import Protocol

from persona_context_engine.exceptions import InvalidPersonaError, PersonaSwitchFailedError
from persona_context_engine.models import (
    DetectionResult,
    Persona,
    PersonaSessionState,
    PersonaSwitchEvent,
    SwitchTrigger,
)
from persona_context_engine.personas.analyzer import TaskAnalyzer, rank_personas
from persona_context_engine.personas.catalog import PersonaCatalog
from persona_context_engine.personas.metrics_history import MetricsHistory

logger = logging.getLogger(__name__)

SwitchListener = Callable[[PersonaSwitchEvent], Awaitable[None] | None]


class ContextApplier(Protocol):
    """What a switch needs from the context assembler."""

    async def apply(self, persona: Persona) -> object: ...


class PersonaStateMachine:
    """Holds the active persona and decides when to switch."""

    def __init__(
        self,
        catalog: PersonaCatalog,
        assembler: ContextApplier,
        analyzer: TaskAnalyzer,
        metrics: MetricsHistory | None = None,
        switch_threshold: float = 20.0,
        auto_detection_enabled: bool = True,
        history_weighting_enabled: bool = True,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.catalog = catalog
        self.assembler = assembler
        self.analyzer = analyzer
        self.metrics = metrics
        self.switch_threshold = switch_threshold
        self.auto_detection_enabled = auto_detection_enabled
        self.history_weighting_enabled = history_weighting_enabled
        self._clock = clock or (lambda: datetime.now(UTC))
        self._state = PersonaSessionState()
        self._lock = asyncio.Lock()
        self._listeners: list[SwitchListener] = []

    # --- state ---

    @property
    def state(self) -> PersonaSessionState:
        return self._state

    @property
    def current_persona_id(self) -> str | None:
        return self._state.current_persona_id

    async def restore(self, state: PersonaSessionState) -> None:
        """Replace the session state (used when loading persisted state)."""
        async with self._lock:
            self._state = state

    # --- listeners ---

    def add_listener(self, listener: SwitchListener) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: SwitchListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    # --- transitions ---

    async def switch(
        self,
        persona_id: str,
        manual: bool = True,
        reason: str | None = None,
        confidence: float | None = None,
    ) -> PersonaSessionState:
        """
        Switch to ``persona_id``.

        Raises:
            InvalidPersonaError: unknown persona; state unchanged.
            PersonaSwitchFailedError: context assembly failed; state unchanged.
        """
        async with self._lock:
            persona = await self.catalog.get(persona_id)
            if persona is None:
                logger.warning(f"Rejected switch to unknown persona: {persona_id}")
                raise InvalidPersonaError(persona_id)

            previous = self._state
            if previous.current_persona_id == persona_id:
                return previous

            try:
                await self.assembler.apply(persona)
            except Exception as e:
                logger.error(f"Context assembly failed switching to {persona_id}: {e}")
                raise PersonaSwitchFailedError(persona_id, previous.current_persona_id) from e

            now = self._clock()
            if previous.activated_at is not None and now < previous.activated_at:
                now = previous.activated_at
            trigger = SwitchTrigger.MANUAL if manual else SwitchTrigger.AUTO
            self._state = previous.with_switch(persona_id, now, trigger, reason)

            event = PersonaSwitchEvent(
                from_persona_id=previous.current_persona_id,
                to_persona_id=persona_id,
                trigger=trigger,
                reason=reason,
                confidence=confidence,
                switched_at=now,
            )
            logger.info(f"Persona switched: {previous.current_persona_id} -> {persona_id} ({trigger.value})")
            await self._notify(event)
            return self._state

    async def detect_optimal(self, task_text: str) -> DetectionResult:
        """
        Find the best persona for ``task_text`` and auto-switch if the
        confidence (top score minus current persona's score) is above the
        threshold.
        """
        analysis = await self.analyzer.analyze(task_text)
        scores = self._weighted_scores(analysis.scores)

        candidate = rank_personas(scores, self.analyzer.config.priority, self.analyzer.config.default_persona_id)
        current = self.current_persona_id
        top = scores.get(candidate, 0.0) if candidate is not None else 0.0
        confidence = top - (scores.get(current, 0.0) if current is not None else 0.0)

        switched = False
        if (
            candidate is not None
            and candidate != current
            and self.auto_detection_enabled
            and confidence > self.switch_threshold
        ):
            await self.switch(
                candidate,
                manual=False,
                reason=f"auto-detected (confidence {confidence:.1f})",
                confidence=confidence,
            )
            switched = True
        elif candidate != current:
            logger.debug(f"Detected {candidate} (confidence {confidence:.1f}); staying on {current}")

        return DetectionResult(
            persona_id=candidate,
            current_persona_id=self.current_persona_id,
            confidence=confidence,
            switched=switched,
            scores=scores,
            analysis=analysis,
        )

    def _weighted_scores(self, scores: dict[str, float]) -> dict[str, float]:
        if not (self.history_weighting_enabled and self.metrics is not None):
            return dict(scores)
        weighted = {}
        for persona_id, score in scores.items():
            effectiveness = self.metrics.effectiveness(persona_id)
            multiplier = 1.0 if effectiveness is None else 0.5 + effectiveness
            weighted[persona_id] = score * multiplier
        return weighted

    async def _notify(self, event: PersonaSwitchEvent) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception(f"Persona switch listener failed for {event.to_persona_id}")
