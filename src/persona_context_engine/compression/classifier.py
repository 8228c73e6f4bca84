# persona_context_engine/compression/classifier.py
"""
Importance classification for markdown sections.

Scoring is driven entirely by data tables on ``ImportanceRules``:

    score = sum(keyword matches x bucket weight)
          + section-name heuristics
          + persona bonuses (preserve patterns, focus areas, content-kind weight)

and the score is mapped to a bucket through fixed thresholds. The generic
tables are persona-agnostic; a persona only ever adds non-negative bonus
points, so a section can never be demoted by the active persona.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Iterable

from pydantic import BaseModel, Field

from persona_context_engine.models import ContentKind, ContentSection, Importance, Persona

logger = logging.getLogger(__name__)

HEADER_RE = re.compile(r"^(#{1,6})\s+(.+?)\s*#*\s*$")
FENCE_RE = re.compile(r"^\s*(```|~~~)")
LIST_RE = re.compile(r"^\s*(?:[-*+]|\d+\.)\s+\S")
TABLE_RE = re.compile(r"^\s*\|.*\|\s*$")
LOG_RE = re.compile(r"^\s*\[\d{4}-\d{2}-\d{2}[ T]\d{2}:\d{2}")
ERROR_RE = re.compile(r"(Traceback \(most recent call last\)|\b\w*(Error|Exception):|\bFAILED\b|\bpanic:)")


# =============================================================================
# Rules
# =============================================================================


class ImportanceRules(BaseModel):
    """
    Data tables for importance scoring.

    Keyword entries are case-insensitive regular expressions matched on word
    boundaries against the header and body; section entries are plain
    substrings matched against the header.
    """

    keywords: dict[Importance, tuple[str, ...]] = Field(
        default_factory=lambda: {
            Importance.CRITICAL: (
                "urgent",
                "critical",
                "blocking",
                "blocker",
                r"errors?",
                r"fail(?:ed|ure|ing|s)?",
                "must",
                "required",
                "in_progress",
                "active",
            ),
            Importance.HIGH: (
                "important",
                "priority",
                "deadlines?",
                "milestones?",
                "requirements?",
                "goals?",
            ),
            Importance.MEDIUM: (
                "enhancements?",
                "improvements?",
                r"optimi[sz]e",
                "planned",
                "tasks?",
                "should",
            ),
            Importance.LOW: (
                "notes?",
                "examples?",
                "history",
                "logs?",
                "templates?",
                "completed",
            ),
        }
    )
    keyword_weights: dict[Importance, float] = Field(
        default_factory=lambda: {
            Importance.CRITICAL: 4.0,
            Importance.HIGH: 3.0,
            Importance.MEDIUM: 2.0,
            Importance.LOW: 1.0,
        }
    )
    section_names: dict[Importance, tuple[str, ...]] = Field(
        default_factory=lambda: {
            Importance.CRITICAL: ("subtasks", "acceptance criteria", "goal", "objectives", "current sprint"),
            Importance.HIGH: ("description", "requirements", "architecture", "specifications"),
            Importance.MEDIUM: ("implementation", "testing", "documentation", "notes"),
            Importance.LOW: ("output log", "history", "examples", "templates"),
        }
    )
    section_weights: dict[Importance, float] = Field(
        default_factory=lambda: {
            Importance.CRITICAL: 5.0,
            Importance.HIGH: 4.0,
            Importance.MEDIUM: 3.0,
            Importance.LOW: 1.0,
        }
    )
    thresholds: dict[Importance, float] = Field(
        default_factory=lambda: {
            Importance.CRITICAL: 8.0,
            Importance.HIGH: 5.0,
            Importance.MEDIUM: 3.0,
        }
    )

    # Persona bonuses
    preserve_pattern_bonus: float = Field(default=3.0, ge=0)
    focus_area_bonus: float = Field(default=2.0, ge=0)
    kind_weight_scale: float = Field(default=4.0, ge=0)

    model_config = {"frozen": True}

    def compile_keywords(self) -> dict[Importance, list[re.Pattern[str]]]:
        return {
            bucket: [re.compile(rf"\b(?:{pattern})\b", re.IGNORECASE) for pattern in patterns]
            for bucket, patterns in self.keywords.items()
        }

    def bucket(self, score: float) -> Importance:
        """Map a score to its importance bucket."""
        for importance in (Importance.CRITICAL, Importance.HIGH, Importance.MEDIUM):
            threshold = self.thresholds.get(importance)
            if threshold is not None and score >= threshold:
                return importance
        return Importance.LOW


# =============================================================================
# Parsing
# =============================================================================


def parse_sections(text: str) -> list[ContentSection]:
    """
    Split markdown into sections.

    Lines before the first header form a level-0 preamble (only emitted when
    it has content). Header-like lines inside fenced code blocks are body.
    Rendering the sections' lines back in order reproduces ``text``.
    """
    sections: list[ContentSection] = []
    current = ContentSection()
    in_fence = False

    for line in text.split("\n"):
        if FENCE_RE.match(line):
            in_fence = not in_fence
        match = None if in_fence else HEADER_RE.match(line)
        if match:
            if not current.is_preamble or current.body_lines:
                sections.append(current)
            current = ContentSection(header=match.group(2), level=len(match.group(1)), header_line=line)
        else:
            current.body_lines.append(line)

    if not current.is_preamble or current.body_lines:
        sections.append(current)

    for section in sections:
        section.kind = detect_kind(section)
    return sections


def render_sections(sections: Iterable[ContentSection]) -> str:
    """Join sections back into markdown without altering their lines."""
    lines: list[str] = []
    for section in sections:
        lines.extend(section.lines())
    return "\n".join(lines)


def detect_kind(section: ContentSection) -> ContentKind:
    """Classify the dominant kind of content in a section body."""
    counts = dict.fromkeys(ContentKind, 0)
    in_fence = False

    for line in section.body_lines:
        if FENCE_RE.match(line):
            in_fence = not in_fence
            counts[ContentKind.CODE] += 1
            continue
        if not line.strip():
            continue
        if in_fence:
            counts[ContentKind.CODE] += 1
        elif ERROR_RE.search(line):
            counts[ContentKind.ERROR] += 1
        elif LOG_RE.match(line):
            counts[ContentKind.LOG] += 1
        elif TABLE_RE.match(line):
            counts[ContentKind.TABLE] += 1
        elif LIST_RE.match(line):
            counts[ContentKind.LIST] += 1
        else:
            counts[ContentKind.PROSE] += 1

    best = max(counts.values())
    if best == 0:
        return ContentKind.PROSE
    # Most specific kind wins ties
    for kind in (
        ContentKind.ERROR,
        ContentKind.CODE,
        ContentKind.LOG,
        ContentKind.TABLE,
        ContentKind.LIST,
        ContentKind.PROSE,
    ):
        if counts[kind] == best:
            return kind
    return ContentKind.PROSE


# =============================================================================
# Classifier
# =============================================================================


class ImportanceClassifier:
    """Assigns an importance bucket and score to each section."""

    def __init__(self, rules: ImportanceRules | None = None) -> None:
        self.rules = rules or ImportanceRules()
        self._keyword_patterns = self.rules.compile_keywords()

    def classify(
        self,
        sections: Iterable[ContentSection],
        persona: Persona | None = None,
    ) -> list[ContentSection]:
        """Return scored copies of ``sections`` (inputs are not modified)."""
        preserve = _compile_persona_patterns(persona)
        result = []
        for section in sections:
            score = self.score(section, persona, preserve)
            result.append(
                section.model_copy(
                    update={
                        "score": score,
                        "importance": self.rules.bucket(score),
                        "body_lines": list(section.body_lines),
                    }
                )
            )
        return result

    def score(
        self,
        section: ContentSection,
        persona: Persona | None = None,
        preserve: list[re.Pattern[str]] | None = None,
    ) -> float:
        text = f"{section.header}\n{section.body}"
        score = self._keyword_score(text) + self._section_score(section.header)
        if persona is not None:
            if preserve is None:
                preserve = _compile_persona_patterns(persona)
            score += self._persona_bonus(section, text, persona, preserve)
        return score

    def _keyword_score(self, text: str) -> float:
        score = 0.0
        for bucket, patterns in self._keyword_patterns.items():
            matches = sum(1 for pattern in patterns if pattern.search(text))
            score += matches * self.rules.keyword_weights.get(bucket, 0.0)
        return score

    def _section_score(self, header: str) -> float:
        name = header.lower()
        if not name:
            return 0.0
        score = 0.0
        for bucket, names in self.rules.section_names.items():
            if any(candidate in name for candidate in names):
                score += self.rules.section_weights.get(bucket, 0.0)
        return score

    def _persona_bonus(
        self,
        section: ContentSection,
        text: str,
        persona: Persona,
        preserve: list[re.Pattern[str]],
    ) -> float:
        lowered = text.lower()
        bonus = sum(self.rules.preserve_pattern_bonus for pattern in preserve if pattern.search(text))
        bonus += sum(self.rules.focus_area_bonus for area in persona.focus_areas if area.lower() in lowered)
        bonus += persona.compression_weights.get(section.kind, 0.0) * self.rules.kind_weight_scale
        return bonus


def _compile_persona_patterns(persona: Persona | None) -> list[re.Pattern[str]]:
    if persona is None:
        return []
    # Sorted so scoring order never depends on set iteration order
    return [re.compile(pattern, re.IGNORECASE) for pattern in sorted(persona.preserve_patterns)]
