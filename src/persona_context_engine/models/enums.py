# persona_context_engine/models/enums.py
"""Enums and constants for the persona context engine."""

from enum import Enum

# =============================================================================
# Enums
# =============================================================================


class Importance(str, Enum):
    """Importance bucket assigned to a content section."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"


class ContentKind(str, Enum):
    """Dominant kind of content in a section (used for persona weighting)."""

    PROSE = "prose"
    LIST = "list"
    CODE = "code"
    LOG = "log"
    TABLE = "table"
    ERROR = "error"


class StrategyName(str, Enum):
    """
    Named compression strategies, ordered from least to most aggressive.

    Target reduction bands:
    - minimal: 10-30%
    - balanced: 30-50%
    - aggressive: 50-70%
    """

    MINIMAL = "minimal"
    BALANCED = "balanced"
    AGGRESSIVE = "aggressive"


class AlertLevel(str, Enum):
    """Token usage alert levels."""

    NONE = "none"
    WARNING = "warning"
    CRITICAL = "critical"


class TrendDirection(str, Enum):
    """Direction of a usage trend."""

    INCREASING = "increasing"
    DECREASING = "decreasing"
    STABLE = "stable"


class QualityDirection(str, Enum):
    """Direction of a persona's session quality over time."""

    IMPROVING = "improving"
    DECLINING = "declining"
    STABLE = "stable"


class SwitchTrigger(str, Enum):
    """What caused a persona switch."""

    MANUAL = "manual"
    AUTO = "auto"


class OperationKind(str, Enum):
    """Operation part of a cache key."""

    READ = "read"


class ResourceKind(str, Enum):
    """Resource part of a cache key / storage kind."""

    PERSONA = "persona"
    STATE = "state"
    USAGE = "usage"
    METRICS = "metrics"
    CACHE = "cache"


class SnapshotSignal(str, Enum):
    """Project snapshot signals that personas can be boosted by."""

    HAS_ERRORS = "has_errors"
    TEST_FAILURES = "test_failures"
    PULL_REQUEST = "pull_request"


# =============================================================================
# Constants
# =============================================================================

# Strategy escalation order for budget fitting
STRATEGY_ORDER: tuple[StrategyName, ...] = (
    StrategyName.MINIMAL,
    StrategyName.BALANCED,
    StrategyName.AGGRESSIVE,
)

# Deterministic tie-break order for persona detection
DEFAULT_PERSONA_PRIORITY: tuple[str, ...] = (
    "debugger",
    "architect",
    "reviewer",
    "optimizer",
    "documenter",
    "developer",
)
