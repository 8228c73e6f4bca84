# persona_context_engine/monitoring/__init__.py
"""Token usage monitoring."""

from persona_context_engine.monitoring.usage_monitor import (  # noqa: F401
    AlertListener,
    UsageMonitor,
    moving_averages,
    predict_next,
    trend_from_values,
    trend_window,
)
