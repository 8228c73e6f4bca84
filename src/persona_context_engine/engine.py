# persona_context_engine/engine.py
"""
ContextEngine - the public facade.

Wires the components together with explicit lifecycles (no module-level
singletons) and exposes the operations a presentation layer needs.

Usage::

    from persona_context_engine import ContextEngine, EngineConfig
    from persona_context_engine.personas import InMemoryPersonaCatalog

    engine = await ContextEngine.create(EngineConfig(), InMemoryPersonaCatalog.default())
    try:
        persona_id = await engine.detect_optimal_persona("fix the crash in login")
        bundle = await engine.assemble_context("fix the crash in login")
        print(bundle.content)
    finally:
        await engine.dispose()
"""

from __future__ import annotations

import logging
from collections.abc import Callable
from datetime import UTC, datetime

from persona_context_engine.cache import ResourceCache
from persona_context_engine.compression import (
    CompressionConfig,
    CompressionEngine,
    ImportanceClassifier,
    TokenBudgetOptimizer,
)
from persona_context_engine.config import EngineConfig
from persona_context_engine.context import ContextAssembler, ProjectSnapshot, Storage
from persona_context_engine.exceptions import InvalidPersonaError
from persona_context_engine.models import (
    CacheStats,
    CompressionResult,
    ContextBundle,
    DetectionResult,
    InsufficientData,
    Persona,
    PersonaPerformance,
    PersonaSessionState,
    QualityTrend,
    ResourceKind,
    SessionMetrics,
    StrategyName,
    TaskAnalysis,
    TrendResult,
    UsageRecord,
    UsageReport,
)
from persona_context_engine.monitoring import UsageMonitor
from persona_context_engine.personas import (
    InMemoryPersonaCatalog,
    MetricsHistory,
    PersonaCatalog,
    PersonaStateMachine,
    TaskAnalyzer,
    TaskAnalyzerConfig,
)
from persona_context_engine.tokens import TokenEstimator

logger = logging.getLogger(__name__)


class ContextEngine:
    """Persona-aware context engineering engine."""

    def __init__(
        self,
        config: EngineConfig,
        catalog: PersonaCatalog,
        snapshot: ProjectSnapshot | None = None,
        storage: Storage | None = None,
        project_id: str = "default",
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self.config = config
        self.catalog = catalog
        self.snapshot = snapshot
        self.storage = storage
        self.project_id = project_id
        self._clock = clock or (lambda: datetime.now(UTC))

        self.estimator = TokenEstimator()
        self.cache = ResourceCache.create(config, clock=self._clock)
        self.compression = CompressionEngine(
            estimator=self.estimator,
            classifier=ImportanceClassifier(),
            config=CompressionConfig(log_retention_days=config.log_retention_days),
        )
        self.optimizer = TokenBudgetOptimizer(self.compression)
        self.assembler = ContextAssembler(
            cache=self.cache,
            optimizer=self.optimizer,
            snapshot=snapshot,
            storage=storage,
            max_context_tokens=config.max_context_tokens,
            clock=self._clock,
        )
        self.analyzer = TaskAnalyzer(
            catalog,
            snapshot,
            TaskAnalyzerConfig(default_persona_id=config.default_persona_id),
        )
        self.metrics = MetricsHistory(max_size=config.metrics_history_size, clock=self._clock)
        self.state_machine = PersonaStateMachine(
            catalog=catalog,
            assembler=self.assembler,
            analyzer=self.analyzer,
            metrics=self.metrics,
            switch_threshold=config.switch_threshold,
            auto_detection_enabled=config.auto_detection_enabled,
            history_weighting_enabled=config.history_weighting_enabled,
            clock=self._clock,
        )
        self.usage = UsageMonitor(
            warning_tokens=config.warning_tokens,
            critical_tokens=config.critical_tokens,
            history_size=config.usage_history_size,
            clock=self._clock,
        )

    # --- lifecycle ---

    @classmethod
    async def create(
        cls,
        config: EngineConfig | None = None,
        catalog: PersonaCatalog | None = None,
        snapshot: ProjectSnapshot | None = None,
        storage: Storage | None = None,
        project_id: str = "default",
        clock: Callable[[], datetime] | None = None,
    ) -> ContextEngine:
        """Build an engine and start its background cache sweep."""
        catalog = catalog or InMemoryPersonaCatalog.default()
        engine = cls(config or EngineConfig(), catalog, snapshot, storage, project_id, clock)
        engine.cache.start()
        logger.debug(f"ContextEngine created for project {project_id}")
        return engine

    async def dispose(self) -> None:
        """Stop background work and release cached resources."""
        await self.cache.dispose()
        logger.debug(f"ContextEngine disposed for project {self.project_id}")

    # --- personas ---

    @property
    def session_state(self) -> PersonaSessionState:
        return self.state_machine.state

    @property
    def current_persona_id(self) -> str | None:
        return self.state_machine.current_persona_id

    async def analyze_task(self, task_text: str) -> TaskAnalysis:
        return await self.analyzer.analyze(task_text)

    async def switch_persona(
        self,
        persona_id: str,
        manual: bool = True,
        reason: str | None = None,
    ) -> PersonaSessionState:
        return await self.state_machine.switch(persona_id, manual=manual, reason=reason)

    async def detect(self, task_text: str) -> DetectionResult:
        """Full detection result (candidate, confidence, scores)."""
        return await self.state_machine.detect_optimal(task_text)

    async def detect_optimal_persona(self, task_text: str) -> str | None:
        """Detected persona id; auto-switches when confidence is high enough."""
        return (await self.detect(task_text)).persona_id

    # --- context ---

    async def assemble_context(self, task_text: str | None = None) -> ContextBundle:
        """
        Assemble a bundle for the active persona (default persona when idle)
        and record its token usage.
        """
        persona = await self._require_persona(self.current_persona_id or self.config.default_persona_id)
        bundle = await self.assembler.assemble(persona, task_text)
        await self.usage.record(
            persona.id,
            original_tokens=self.estimator.estimate(task_text or ""),
            context_tokens=bundle.estimated_tokens,
        )
        return bundle

    async def compress(
        self,
        content: str,
        strategy_name: str | StrategyName,
        persona_id: str | None = None,
    ) -> CompressionResult:
        persona = await self._require_persona(persona_id) if persona_id is not None else None
        return self.compression.compress(content, strategy_name, persona, now=self._clock())

    # --- usage ---

    async def record_usage(self, persona_id: str, original_tokens: int, context_tokens: int) -> UsageRecord:
        return await self.usage.record(persona_id, original_tokens, context_tokens)

    def usage_report(
        self,
        since: datetime | None = None,
        until: datetime | None = None,
        persona_id: str | None = None,
    ) -> UsageReport:
        return self.usage.report(since, until, persona_id)

    def usage_trend(self, persona_id: str | None = None) -> TrendResult | InsufficientData:
        records = self.usage.filter(persona_id=persona_id) if persona_id is not None else None
        return self.usage.trend(records)

    def cache_stats(self) -> CacheStats:
        return self.cache.stats()

    # --- metrics ---

    def record_session(self, persona_id: str, **kwargs) -> SessionMetrics:
        """Record a session outcome (see ``MetricsHistory.record_session``)."""
        return self.metrics.record_session(persona_id, **kwargs)

    def persona_stats(self, persona_id: str) -> PersonaPerformance:
        return self.metrics.persona_stats(persona_id)

    def quality_trend(self, persona_id: str | None = None) -> QualityTrend | InsufficientData:
        return self.metrics.quality_trend(persona_id)

    # --- persistence ---

    async def save_state(self, include_cache: bool = False) -> bool:
        """Persist session state, usage history and metrics keyed by project."""
        if self.storage is None:
            logger.debug("No storage configured; state not saved")
            return False

        name = self.project_id
        await self.storage.write_resource(
            ResourceKind.STATE.value, name, self.state_machine.state.model_dump_json().encode("utf-8")
        )
        await self.storage.write_resource(ResourceKind.USAGE.value, name, self.usage.export_json())
        await self.storage.write_resource(ResourceKind.METRICS.value, name, self.metrics.to_json())
        if include_cache:
            await self.storage.write_resource(ResourceKind.CACHE.value, name, self.cache.snapshot())
        logger.info(f"Saved engine state for project {name}")
        return True

    async def load_state(self) -> bool:
        """
        Restore whatever persisted state exists. Returns True if anything was loaded.

        Every stored blob is read and validated before anything is replaced,
        so a corrupt blob leaves the engine untouched.
        """
        if self.storage is None:
            return False

        name = self.project_id
        state_data = await self.storage.read_resource(ResourceKind.STATE.value, name)
        usage_data = await self.storage.read_resource(ResourceKind.USAGE.value, name)
        metrics_data = await self.storage.read_resource(ResourceKind.METRICS.value, name)
        cache_data = await self.storage.read_resource(ResourceKind.CACHE.value, name)

        state = PersonaSessionState.model_validate_json(state_data) if state_data else None
        usage = self.usage.parse_export(usage_data) if usage_data else None
        sessions = self.metrics.parse_json(metrics_data) if metrics_data else None

        if state is not None:
            await self.state_machine.restore(state)
        if usage is not None:
            self.usage.import_state(usage)
        if sessions is not None:
            self.metrics.load_sessions(sessions)
        if cache_data:
            # Best effort: unreadable entries are skipped, never raised
            self.cache.restore(cache_data)

        loaded = any(data for data in (state_data, usage_data, metrics_data, cache_data))
        if loaded:
            logger.info(f"Loaded engine state for project {name}")
        return loaded

    async def _require_persona(self, persona_id: str) -> Persona:
        persona = await self.catalog.get(persona_id)
        if persona is None:
            raise InvalidPersonaError(persona_id)
        return persona
