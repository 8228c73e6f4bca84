# persona_context_engine/personas/analyzer.py
"""
Task analysis - scores a free-text task against every known persona.

Per persona:

    keyword_weight   x distinct persona keywords matched (prefix match)
  + indicator_weight if any context indicator phrase occurs
  + focus_weight     x focus-area terms found in the task
  + file_weight      x share of recent files matching priority patterns
  + context boosts   for snapshot signals (errors, test failures, PR)

capped at ``max_score``. The primary persona is the arg-max, ties broken by
a fixed priority list so detection never flips on dict ordering.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable, Sequence

from pydantic import BaseModel, Field

from persona_context_engine.context.patterns import matches_any
from persona_context_engine.context.snapshot import ProjectSnapshot
from persona_context_engine.models import (
    DEFAULT_PERSONA_PRIORITY,
    Persona,
    SnapshotData,
    SnapshotSignal,
    TaskAnalysis,
)
from persona_context_engine.personas.catalog import PersonaCatalog

logger = logging.getLogger(__name__)

WORD_RE = re.compile(r"[a-z0-9][a-z0-9_\-']*")

STOP_WORDS: frozenset[str] = frozenset(
    {
        "the",
        "is",
        "at",
        "which",
        "on",
        "and",
        "a",
        "an",
        "as",
        "are",
        "been",
        "by",
        "for",
        "from",
        "has",
        "have",
        "in",
        "it",
        "of",
        "or",
        "that",
        "to",
        "was",
        "will",
        "with",
        "this",
        "these",
        "those",
        "into",
        "when",
        "where",
        "please",
    }
)


class TaskAnalyzerConfig(BaseModel):
    """Scoring weights."""

    keyword_weight: float = Field(default=20.0, ge=0)
    indicator_weight: float = Field(default=20.0, ge=0)
    focus_weight: float = Field(default=10.0, ge=0)
    file_weight: float = Field(default=30.0, ge=0)
    max_score: float = Field(default=100.0, gt=0)
    min_word_length: int = Field(default=3, ge=1)
    priority: tuple[str, ...] = Field(default=DEFAULT_PERSONA_PRIORITY)
    default_persona_id: str = Field(default="developer")


def extract_keywords(text: str, min_length: int = 3) -> list[str]:
    """Lower-cased word tokens minus stop words and short words, in order."""
    seen: dict[str, None] = {}
    for word in WORD_RE.findall(text.lower()):
        word = word.strip("-'")
        if len(word) >= min_length and word not in STOP_WORDS:
            seen.setdefault(word, None)
    return list(seen)


def similarity(a: str, b: str) -> float:
    """Jaccard similarity of the keyword sets of two texts."""
    left, right = set(extract_keywords(a)), set(extract_keywords(b))
    union = left | right
    if not union:
        return 0.0
    return len(left & right) / len(union)


def rank_personas(
    scores: dict[str, float],
    priority: Sequence[str] = DEFAULT_PERSONA_PRIORITY,
    default_persona_id: str | None = None,
) -> str | None:
    """
    Arg-max of ``scores`` with a deterministic tie-break.

    Ties go to the earlier entry in ``priority``; unknown ids follow
    alphabetically. When every score is zero the default persona wins.
    """
    if not scores:
        return None
    if default_persona_id in scores and all(score <= 0 for score in scores.values()):
        return default_persona_id

    def order(persona_id: str) -> tuple[int, str]:
        try:
            return (priority.index(persona_id), "")
        except ValueError:
            return (len(priority), persona_id)

    top = max(scores.values())
    return min((pid for pid, score in scores.items() if score == top), key=order)


class TaskAnalyzer:
    """Scores tasks against the personas of a catalog."""

    def __init__(
        self,
        catalog: PersonaCatalog,
        snapshot: ProjectSnapshot | None = None,
        config: TaskAnalyzerConfig | None = None,
    ) -> None:
        self.catalog = catalog
        self.snapshot = snapshot
        self.config = config or TaskAnalyzerConfig()

    async def analyze(self, task_text: str) -> TaskAnalysis:
        """Score ``task_text`` against every persona in the catalog."""
        personas = await self.catalog.get_all()
        snapshot = await self.snapshot.current() if self.snapshot is not None else None
        keywords = extract_keywords(task_text, self.config.min_word_length)

        scores: dict[str, float] = {}
        matches: dict[str, list[str]] = {}
        for persona in personas:
            score, matched = self.score_persona(persona, task_text, keywords, snapshot)
            scores[persona.id] = score
            matches[persona.id] = matched

        primary = rank_personas(scores, self.config.priority, self.config.default_persona_id)
        logger.debug(f"Task analysis primary={primary} scores={scores}")
        return TaskAnalysis(
            task_text=task_text,
            keywords=keywords,
            scores=scores,
            matches=matches,
            primary_persona_id=primary,
        )

    def score_persona(
        self,
        persona: Persona,
        task_text: str,
        keywords: Iterable[str],
        snapshot: SnapshotData | None = None,
    ) -> tuple[float, list[str]]:
        """Score one persona; returns the score and the evidence matched."""
        lowered = task_text.lower()
        words = list(keywords)
        matched: list[str] = []

        for keyword in persona.keywords:
            stem = keyword.lower()
            if any(word.startswith(stem) for word in words):
                matched.append(keyword)
        score = len(matched) * self.config.keyword_weight

        indicators = [phrase for phrase in persona.context_indicators if phrase.lower() in lowered]
        if indicators:
            score += self.config.indicator_weight
            matched.extend(indicators)

        for area in sorted(persona.focus_areas):
            if re.search(rf"\b{re.escape(area.lower())}\b", lowered):
                score += self.config.focus_weight
                matched.append(area)

        if snapshot is not None:
            score += self._snapshot_score(persona, snapshot)

        return min(score, self.config.max_score), matched

    def _snapshot_score(self, persona: Persona, snapshot: SnapshotData) -> float:
        score = 0.0
        recent = snapshot.recent_files
        patterns = persona.overlay_rules.priority_patterns
        if recent and patterns:
            hits = sum(1 for path in recent if matches_any(path, patterns))
            score += hits / len(recent) * self.config.file_weight

        signals = {
            SnapshotSignal.HAS_ERRORS: snapshot.error_state.has_errors,
            SnapshotSignal.TEST_FAILURES: snapshot.error_state.test_failures,
            SnapshotSignal.PULL_REQUEST: snapshot.is_pull_request,
        }
        for signal, active in signals.items():
            if active:
                score += persona.context_boosts.get(signal, 0.0)
        return score
