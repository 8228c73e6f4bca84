# persona_context_engine/compression/__init__.py
"""
Importance-aware compression.

Usage::

    from persona_context_engine.compression import CompressionEngine

    engine = CompressionEngine()
    result = engine.compress(markdown, "balanced", persona=debugger)
    print(result.metadata.compression_ratio)
"""

from persona_context_engine.compression.budget import (  # noqa: F401
    STRATEGY_BANDS,
    BudgetFit,
    TokenBudgetOptimizer,
)
from persona_context_engine.compression.classifier import (  # noqa: F401
    ImportanceClassifier,
    ImportanceRules,
    detect_kind,
    parse_sections,
    render_sections,
)
from persona_context_engine.compression.engine import (  # noqa: F401
    CompressionEngine,
    resolve_strategy,
)
from persona_context_engine.compression.strategies import (  # noqa: F401
    STRATEGIES,
    CompressionConfig,
    aggressive,
    balanced,
    identify_repetitive_content,
    minimal,
)
