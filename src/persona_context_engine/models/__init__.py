# persona_context_engine/models/__init__.py
"""
Data models for the persona context engine.

All public names are re-exported here so callers can use
``from persona_context_engine.models import Persona``.
"""

# --- content, compression & bundles -------------------------------------------
from persona_context_engine.models.content import (  # noqa: F401
    CompressionMetadata,
    CompressionResult,
    ContentSection,
    ContextBundle,
    ErrorState,
    RepetitivePattern,
    SnapshotData,
)

# --- enums & constants -------------------------------------------------------
from persona_context_engine.models.enums import (  # noqa: F401
    DEFAULT_PERSONA_PRIORITY,
    STRATEGY_ORDER,
    AlertLevel,
    ContentKind,
    Importance,
    OperationKind,
    QualityDirection,
    ResourceKind,
    SnapshotSignal,
    StrategyName,
    SwitchTrigger,
    TrendDirection,
)

# --- personas ----------------------------------------------------------------
from persona_context_engine.models.persona import (  # noqa: F401
    OverlayRules,
    Persona,
    PersonaOverlay,
)

# --- session state & analysis ------------------------------------------------
from persona_context_engine.models.session import (  # noqa: F401
    DetectionResult,
    PersonaHistoryEntry,
    PersonaSessionState,
    PersonaSwitchEvent,
    TaskAnalysis,
    TaskScore,
)

# --- stats -------------------------------------------------------------------
from persona_context_engine.models.stats import CacheStats  # noqa: F401

# --- usage, trends & metrics -------------------------------------------------
from persona_context_engine.models.usage import (  # noqa: F401
    AlertCounts,
    InsufficientData,
    MovingAverage,
    OptimizationSuggestion,
    PersonaPerformance,
    PersonaUsageStats,
    PersonaUsageSummary,
    QualityTrend,
    SessionMetrics,
    TrendResult,
    UsageExtreme,
    UsageRecord,
    UsageReport,
)
