# persona_context_engine/personas/catalog.py
"""
Persona catalog.

The catalog is an external collaborator; ``PersonaCatalog`` is the protocol
the engine consumes. ``InMemoryPersonaCatalog`` ships the six built-in
personas and can load custom persona definitions from JSON files.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import ValidationError

from persona_context_engine.models import ContentKind, OverlayRules, Persona, SnapshotSignal

logger = logging.getLogger(__name__)


@runtime_checkable
class PersonaCatalog(Protocol):
    """Source of immutable persona definitions."""

    async def get_all(self) -> list[Persona]: ...

    async def get(self, persona_id: str) -> Persona | None: ...


# =============================================================================
# Built-in personas
# =============================================================================

DEFAULT_PERSONAS: tuple[Persona, ...] = (
    Persona(
        id="architect",
        description="System design and architecture",
        keywords=(
            "design",
            "architect",
            "structure",
            "system",
            "scalab",
            "interface",
            "api",
            "contract",
            "schema",
            "pattern",
            "module",
            "component",
            "integration",
            "dependenc",
        ),
        context_indicators=("creating new feature", "planning", "designing"),
        focus_areas=frozenset({"system design", "architecture", "patterns", "scalability"}),
        preserve_patterns=frozenset({r"\binterfaces?\b", r"\bcontracts?\b", r"\bdependenc(y|ies)\b"}),
        compression_weights={ContentKind.TABLE: 0.5, ContentKind.LIST: 0.25},
        token_allocation=0.3,
        overlay_rules=OverlayRules(
            priority_patterns=["*.md", "*.yml", "*.json", "architecture/**"],
            exclusion_patterns=["test/**", "node_modules/**", "*.test.*"],
        ),
        behaviors=(
            "Focus on big picture and overall system structure",
            "Prioritize scalability and maintainability",
            "Apply design patterns and architectural principles",
            "Consider integration points and interfaces",
        ),
        communication_style="strategic and high-level",
    ),
    Persona(
        id="debugger",
        description="Bug detection and problem solving",
        keywords=(
            "bug",
            "error",
            "fix",
            "issue",
            "problem",
            "debug",
            "trace",
            "stack",
            "exception",
            "fail",
            "crash",
            "investigate",
            "diagnose",
            "troubleshoot",
        ),
        context_indicators=("error in", "not working", "broken", "failing"),
        context_boosts={SnapshotSignal.HAS_ERRORS: 30.0, SnapshotSignal.TEST_FAILURES: 20.0},
        focus_areas=frozenset({"error handling", "debugging", "testing", "validation"}),
        preserve_patterns=frozenset({r"\berrors?\b", r"\bexceptions?\b", r"stack ?traces?", r"\blogs?\b"}),
        compression_weights={ContentKind.ERROR: 1.0, ContentKind.LOG: 0.75, ContentKind.CODE: 0.5},
        token_allocation=0.5,
        overlay_rules=OverlayRules(
            priority_patterns=["*.log", "*.test.*", "error.*", "debug/**"],
            exclusion_patterns=["docs/**", "*.md"],
        ),
        behaviors=(
            "Systematic and methodical approach",
            "Focus on root cause analysis",
            "Consider edge cases and error scenarios",
            "Trace execution flow step by step",
        ),
        communication_style="detailed and analytical",
    ),
    Persona(
        id="reviewer",
        description="Code quality and standards",
        keywords=(
            "review",
            "audit",
            "check",
            "quality",
            "standard",
            "security",
            "vulnerab",
            "smell",
            "refactor",
            "improve",
            "clean",
            "lint",
        ),
        context_indicators=("review code", "check quality", "pull request"),
        context_boosts={SnapshotSignal.PULL_REQUEST: 20.0},
        focus_areas=frozenset({"code quality", "security", "standards", "best practices"}),
        preserve_patterns=frozenset({r"\bfunctions?\b", r"\bclass(es)?\b", r"\bimports?\b", r"\bexports?\b"}),
        compression_weights={ContentKind.CODE: 0.75, ContentKind.LIST: 0.25},
        token_allocation=0.4,
        overlay_rules=OverlayRules(
            priority_patterns=["*.js", "*.ts", "*.py", "src/**"],
            exclusion_patterns=["dist/**", "build/**", "coverage/**"],
        ),
        behaviors=(
            "Verify coding standards compliance",
            "Identify security vulnerabilities",
            "Suggest optimizations and improvements",
            "Ensure best practices are followed",
        ),
        communication_style="constructive and thorough",
    ),
    Persona(
        id="documenter",
        description="Documentation and guides",
        keywords=(
            "document",
            "docs",
            "readme",
            "guide",
            "tutorial",
            "explain",
            "describe",
            "comment",
            "annotation",
            "example",
            "usage",
            "reference",
        ),
        context_indicators=("write documentation", "explain", "document"),
        focus_areas=frozenset({"documentation", "guides", "examples", "tutorials"}),
        preserve_patterns=frozenset({r"\bapis?\b", r"\busage\b", r"\bexamples?\b"}),
        compression_weights={ContentKind.PROSE: 0.5, ContentKind.CODE: 0.25},
        token_allocation=0.2,
        overlay_rules=OverlayRules(
            priority_patterns=["*.md", "README*", "docs/**", "examples/**"],
            exclusion_patterns=["test/**", "node_modules/**"],
        ),
        behaviors=(
            "Write clear and understandable explanations",
            "Provide practical examples",
            "Ensure comprehensive coverage",
            "Maintain consistent documentation style",
        ),
        communication_style="clear and educational",
    ),
    Persona(
        id="optimizer",
        description="Performance optimization",
        keywords=(
            "optimiz",
            "performance",
            "speed",
            "efficien",
            "benchmark",
            "profil",
            "memory",
            "token",
            "slow",
            "bottleneck",
            "fast",
        ),
        context_indicators=("improve performance", "too slow"),
        focus_areas=frozenset({"performance", "efficiency", "optimization", "benchmarking"}),
        preserve_patterns=frozenset({r"\balgorithms?\b", r"\bloops?\b", r"\bmemory\b", r"\bcomplexity\b"}),
        compression_weights={ContentKind.TABLE: 0.75, ContentKind.CODE: 0.5},
        token_allocation=0.6,
        overlay_rules=OverlayRules(
            priority_patterns=["*.bench.*", "benchmark/**", "perf/**"],
            exclusion_patterns=["docs/**", "*.md"],
        ),
        behaviors=(
            "Analyze performance bottlenecks",
            "Focus on efficiency and resource usage",
            "Measure and benchmark improvements",
            "Apply optimization techniques",
        ),
        communication_style="data-driven and precise",
    ),
    Persona(
        id="developer",
        description="General development (default)",
        keywords=(
            "implement",
            "create",
            "build",
            "develop",
            "add",
            "feature",
            "function",
            "code",
            "write",
            "make",
            "new",
            "update",
        ),
        context_indicators=("add feature",),
        focus_areas=frozenset({"implementation", "features", "functionality", "coding"}),
        preserve_patterns=frozenset({r"\bimplementation\b", r"\blogic\b", r"\bfeatures?\b"}),
        compression_weights={ContentKind.CODE: 0.5},
        token_allocation=0.4,
        overlay_rules=OverlayRules(
            priority_patterns=["src/**", "lib/**", "*.py", "*.ts"],
            exclusion_patterns=["node_modules/**", "dist/**"],
        ),
        behaviors=(
            "Balanced approach to coding",
            "Focus on functionality and correctness",
            "Write clean and maintainable code",
            "Follow project conventions",
        ),
        communication_style="practical and straightforward",
    ),
)


# =============================================================================
# In-memory catalog
# =============================================================================


class InMemoryPersonaCatalog:
    """Dict-backed catalog; personas keep insertion order."""

    def __init__(self, personas: Iterable[Persona] = ()) -> None:
        self._personas: dict[str, Persona] = {}
        for persona in personas:
            self.add(persona)

    @classmethod
    def default(cls) -> InMemoryPersonaCatalog:
        """Catalog containing the built-in personas."""
        return cls(DEFAULT_PERSONAS)

    def add(self, persona: Persona) -> None:
        """Register a persona, replacing any with the same id."""
        if persona.id in self._personas:
            logger.debug(f"Replacing persona definition: {persona.id}")
        self._personas[persona.id] = persona

    def load_directory(self, path: str | Path) -> list[Persona]:
        """
        Load every ``*.json`` persona definition under ``path``.

        Custom definitions override built-ins with the same id.

        Raises:
            ValueError: if a file is not a valid persona definition.
        """
        directory = Path(path)
        if not directory.is_dir():
            logger.debug(f"No custom persona directory at {directory}")
            return []

        loaded = []
        for file in sorted(directory.glob("*.json")):
            try:
                persona = Persona.model_validate_json(file.read_text(encoding="utf-8"))
            except ValidationError as e:
                raise ValueError(f"Invalid persona definition in {file.name}: {e}") from e
            self.add(persona)
            loaded.append(persona)
        logger.info(f"Loaded {len(loaded)} custom personas from {directory}")
        return loaded

    async def get_all(self) -> list[Persona]:
        return list(self._personas.values())

    async def get(self, persona_id: str) -> Persona | None:
        return self._personas.get(persona_id)

    def __len__(self) -> int:
        return len(self._personas)

    def __contains__(self, persona_id: object) -> bool:
        return persona_id in self._personas
