# persona_context_engine/compression/strategies.py
"""
Compression strategies.

Each strategy is a pure function::

    strategy(content, persona=None, now=None, *, estimator, classifier, config)
        -> CompressionResult

Strategies only ever delete lines or replace a prose paragraph with a
shorter one, so neither the character count nor the line count can grow.

- minimal: cleanup, stale-log pruning, whitespace normalization (idempotent)
- balanced: minimal + drop low sections, de-duplicate, shorten long paragraphs
- aggressive: minimal + keep critical/high only, de-duplicate, collapse paragraphs
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from datetime import UTC, datetime, timedelta
from typing import Protocol

from pydantic import BaseModel, Field

from persona_context_engine.compression.classifier import (
    FENCE_RE,
    HEADER_RE,
    LIST_RE,
    LOG_RE,
    TABLE_RE,
    ImportanceClassifier,
    parse_sections,
    render_sections,
)
from persona_context_engine.models import (
    CompressionMetadata,
    CompressionResult,
    Importance,
    Persona,
    RepetitivePattern,
    StrategyName,
)
from persona_context_engine.tokens import TokenEstimator

logger = logging.getLogger(__name__)

LOG_TIMESTAMP_RE = re.compile(r"\[(\d{4}-\d{2}-\d{2})\s+(\d{2}:\d{2})\]")
SEPARATOR_RE = re.compile(r"^\s*-{4,}\s*$")
EMPTY_BOLD_RE = re.compile(r"\*\*[ \t]*\*\*")
SENTENCE_SPLIT_RE = re.compile(r"(?<=[.!?])\s+")
LIST_ITEM_RE = re.compile(r"^\s*(?:[-*+]|\d+\.)\s+(.+?)\s*$")
QUOTE_RE = re.compile(r"^\s*>")

REPETITIVE_PATTERNS: tuple[re.Pattern[str], ...] = (
    re.compile(r"---\n[\s\S]*?\n---"),  # front matter
    re.compile(r"\*\*.*?\*\*:"),  # bold labels
    re.compile(r"\[.*?\]\(.*?\)"),  # links
    re.compile(r"```[\s\S]*?```"),  # code blocks
    re.compile(r"^\s*[-*+]\s+", re.MULTILINE),  # bullets
    re.compile(r"^\s*\d+\.\s+", re.MULTILINE),  # numbered lists
    re.compile(r"#{1,6}\s+"),  # headers
)


class CompressionConfig(BaseModel):
    """Tunables shared by all strategies."""

    log_retention_days: int = Field(default=7, ge=0, description="Timestamped log lines older than this are pruned")
    max_blank_lines: int = Field(default=2, ge=0, description="Longest run of blank lines kept")
    balanced_paragraph_chars: int = Field(default=300, gt=0)
    balanced_max_sentences: int = Field(default=3, ge=2, description="Paragraphs with more sentences are shortened")
    aggressive_paragraph_chars: int = Field(default=500, gt=0)
    aggressive_max_sentences: int = Field(default=2, ge=2)
    compressed_marker: str = Field(default=" [compressed]")
    collapse_separator: str = Field(default=" ... ")
    repetition_threshold: int = Field(default=3, ge=1, description="Patterns seen more often are reported")


class Strategy(Protocol):
    def __call__(
        self,
        content: str,
        persona: Persona | None = None,
        now: datetime | None = None,
        *,
        estimator: TokenEstimator | None = None,
        classifier: ImportanceClassifier | None = None,
        config: CompressionConfig | None = None,
    ) -> CompressionResult: ...


# =============================================================================
# Building blocks
# =============================================================================


def cleanup(text: str) -> str:
    """Collapse long separator runs and drop empty bold markers."""
    lines = ["---" if SEPARATOR_RE.match(line) else line for line in text.split("\n")]
    return EMPTY_BOLD_RE.sub("", "\n".join(lines))


def remove_old_logs(text: str, now: datetime, retention_days: int) -> tuple[str, int]:
    """
    Remove ``[YYYY-MM-DD HH:MM]`` lines older than the retention window.

    Header lines and fenced code are kept whatever their timestamps.
    """
    cutoff = now - timedelta(days=retention_days)
    kept: list[str] = []
    removed = 0
    in_fence = False

    for line in text.split("\n"):
        if FENCE_RE.match(line):
            in_fence = not in_fence
            kept.append(line)
            continue
        match = None if in_fence or HEADER_RE.match(line) else LOG_TIMESTAMP_RE.search(line)
        if match:
            try:
                stamp = datetime.strptime(f"{match.group(1)} {match.group(2)}", "%Y-%m-%d %H:%M").replace(tzinfo=UTC)
            except ValueError:
                stamp = None
            if stamp is not None and stamp < cutoff:
                removed += 1
                continue
        kept.append(line)
    return "\n".join(kept), removed


def normalize_formatting(text: str, max_blank_lines: int = 2) -> str:
    """
    Strip trailing whitespace, drop leading/trailing blank lines, and cap
    runs of blank lines. A final newline is kept only if the input had one.
    """
    had_final_newline = text.endswith("\n")
    lines: list[str] = []
    blank_run = 0
    for raw in text.split("\n"):
        line = raw.rstrip()
        if not line:
            if not lines:
                continue
            blank_run += 1
            if blank_run > max_blank_lines:
                continue
        else:
            blank_run = 0
        lines.append(line)
    while lines and not lines[-1]:
        lines.pop()
    result = "\n".join(lines)
    if result and had_final_newline:
        result += "\n"
    return result


def remove_duplicates(text: str) -> tuple[str, int]:
    """Drop repeated header lines and repeated list items (outside code fences)."""
    seen_headers: set[str] = set()
    seen_items: set[str] = set()
    kept: list[str] = []
    removed = 0
    in_fence = False

    for line in text.split("\n"):
        if FENCE_RE.match(line):
            in_fence = not in_fence
            kept.append(line)
            continue
        if not in_fence:
            header = HEADER_RE.match(line)
            if header:
                key = header.group(2).strip().lower()
                if key in seen_headers:
                    removed += 1
                    continue
                seen_headers.add(key)
            else:
                item = LIST_ITEM_RE.match(line)
                if item:
                    key = item.group(1).strip().lower()
                    if key in seen_items:
                        removed += 1
                        continue
                    seen_items.add(key)
        kept.append(line)
    return "\n".join(kept), removed


def split_sentences(paragraph: str) -> list[str]:
    return [sentence for sentence in SENTENCE_SPLIT_RE.split(paragraph.strip()) if sentence]


def rewrite_paragraphs(
    text: str,
    min_chars: int,
    max_sentences: int,
    rewrite: Callable[[list[str]], str],
) -> tuple[str, int]:
    """
    Replace long prose paragraphs using ``rewrite(sentences)``.

    Only blocks of plain prose are considered (no headers, list items, tables,
    quotes, log lines, or code). A rewrite is applied only when it is
    strictly shorter than the paragraph it replaces.
    """
    output: list[str] = []
    block: list[str] = []
    changed = 0
    in_fence = False

    def flush() -> None:
        nonlocal changed
        if not block:
            return
        joined = " ".join(line.strip() for line in block)
        sentences = split_sentences(joined)
        if len(joined) > min_chars and len(sentences) > max_sentences:
            replacement = rewrite(sentences)
            if len(replacement) < len("\n".join(block)):
                output.append(replacement)
                changed += 1
                block.clear()
                return
        output.extend(block)
        block.clear()

    for line in text.split("\n"):
        if FENCE_RE.match(line):
            flush()
            in_fence = not in_fence
            output.append(line)
            continue
        if in_fence or not line.strip() or not _is_prose_line(line):
            flush()
            output.append(line)
            continue
        block.append(line)
    flush()
    return "\n".join(output), changed


def _is_prose_line(line: str) -> bool:
    return not (
        HEADER_RE.match(line)
        or LIST_RE.match(line)
        or TABLE_RE.match(line)
        or LOG_RE.match(line)
        or QUOTE_RE.match(line)
        or line.startswith(("    ", "\t"))
    )


def identify_repetitive_content(text: str, threshold: int = 3) -> list[RepetitivePattern]:
    """Report markdown constructs occurring more than ``threshold`` times."""
    patterns = []
    for pattern in REPETITIVE_PATTERNS:
        matches = pattern.findall(text)
        if len(matches) > threshold:
            patterns.append(
                RepetitivePattern(
                    pattern=pattern.pattern,
                    occurrences=len(matches),
                    examples=[str(m) for m in matches[:3]],
                )
            )
    return patterns


# =============================================================================
# Strategies
# =============================================================================


def minimal(
    content: str,
    persona: Persona | None = None,
    now: datetime | None = None,
    *,
    estimator: TokenEstimator | None = None,
    classifier: ImportanceClassifier | None = None,
    config: CompressionConfig | None = None,
) -> CompressionResult:
    """Formatting cleanup and stale-log pruning. Never removes sections."""
    estimator = estimator or TokenEstimator()
    config = config or CompressionConfig()
    text, old_logs = _minimal_text(content, now or datetime.now(UTC), config)

    metadata = CompressionMetadata(
        strategy=StrategyName.MINIMAL,
        original_tokens=estimator.estimate(content),
        compressed_tokens=estimator.estimate(text),
        preserved_sections=[s.header for s in parse_sections(text) if not s.is_preamble],
        old_logs_removed=old_logs,
        repetitive_patterns=identify_repetitive_content(content, config.repetition_threshold),
    )
    return CompressionResult(content=text, metadata=metadata)


def balanced(
    content: str,
    persona: Persona | None = None,
    now: datetime | None = None,
    *,
    estimator: TokenEstimator | None = None,
    classifier: ImportanceClassifier | None = None,
    config: CompressionConfig | None = None,
) -> CompressionResult:
    """Minimal + drop low sections, de-duplicate, shorten long paragraphs."""
    config = config or CompressionConfig()

    def shorten(sentences: list[str]) -> str:
        return " ".join(sentences[:2]) + config.compressed_marker

    return _structural(
        StrategyName.BALANCED,
        content,
        persona,
        now,
        keep={Importance.CRITICAL, Importance.HIGH, Importance.MEDIUM},
        paragraph_chars=config.balanced_paragraph_chars,
        max_sentences=config.balanced_max_sentences,
        rewrite=shorten,
        estimator=estimator,
        classifier=classifier,
        config=config,
    )


def aggressive(
    content: str,
    persona: Persona | None = None,
    now: datetime | None = None,
    *,
    estimator: TokenEstimator | None = None,
    classifier: ImportanceClassifier | None = None,
    config: CompressionConfig | None = None,
) -> CompressionResult:
    """Minimal + keep critical/high sections only, collapse long paragraphs."""
    config = config or CompressionConfig()

    def collapse(sentences: list[str]) -> str:
        return f"{sentences[0]}{config.collapse_separator}{sentences[-1]}"

    return _structural(
        StrategyName.AGGRESSIVE,
        content,
        persona,
        now,
        keep={Importance.CRITICAL, Importance.HIGH},
        paragraph_chars=config.aggressive_paragraph_chars,
        max_sentences=config.aggressive_max_sentences,
        rewrite=collapse,
        estimator=estimator,
        classifier=classifier,
        config=config,
    )


STRATEGIES: dict[StrategyName, Strategy] = {
    StrategyName.MINIMAL: minimal,
    StrategyName.BALANCED: balanced,
    StrategyName.AGGRESSIVE: aggressive,
}


# =============================================================================
# Internals
# =============================================================================


def _minimal_text(content: str, now: datetime, config: CompressionConfig) -> tuple[str, int]:
    # Every pass only shortens the text, so this reaches a fixed point
    text = content
    old_logs = 0
    while True:
        updated = cleanup(text)
        updated, removed = remove_old_logs(updated, now, config.log_retention_days)
        updated = normalize_formatting(updated, config.max_blank_lines)
        old_logs += removed
        if updated == text:
            return text, old_logs
        text = updated


def _structural(
    name: StrategyName,
    content: str,
    persona: Persona | None,
    now: datetime | None,
    *,
    keep: set[Importance],
    paragraph_chars: int,
    max_sentences: int,
    rewrite: Callable[[list[str]], str],
    estimator: TokenEstimator | None,
    classifier: ImportanceClassifier | None,
    config: CompressionConfig,
) -> CompressionResult:
    estimator = estimator or TokenEstimator()
    classifier = classifier or ImportanceClassifier()

    text, old_logs = _minimal_text(content, now or datetime.now(UTC), config)

    sections = classifier.classify(parse_sections(text), persona)
    kept = [s for s in sections if s.is_preamble or s.importance in keep]
    removed = [s.header for s in sections if not s.is_preamble and s.importance not in keep]

    text = render_sections(kept)
    text, duplicates = remove_duplicates(text)
    text, shortened = rewrite_paragraphs(text, paragraph_chars, max_sentences, rewrite)
    text = normalize_formatting(text, config.max_blank_lines)

    if removed:
        logger.debug(f"{name.value} compression dropped {len(removed)} sections")

    metadata = CompressionMetadata(
        strategy=name,
        original_tokens=estimator.estimate(content),
        compressed_tokens=estimator.estimate(text),
        removed_sections=removed,
        preserved_sections=[s.header for s in kept if not s.is_preamble],
        old_logs_removed=old_logs,
        duplicates_removed=duplicates,
        paragraphs_shortened=shortened,
        repetitive_patterns=identify_repetitive_content(content, config.repetition_threshold),
    )
    return CompressionResult(content=text, metadata=metadata)
