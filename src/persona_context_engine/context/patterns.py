# persona_context_engine/context/patterns.py
"""
Glob matching for persona overlay rules.

Patterns use shell glob syntax. A pattern without a ``/`` also matches the
file's base name, so ``*.md`` and ``README*`` match at any depth while
``docs/**`` only matches under ``docs/``.
"""

from __future__ import annotations

from collections.abc import Iterable, Sequence
from fnmatch import fnmatchcase
from posixpath import basename


def matches(path: str, pattern: str) -> bool:
    path = path.replace("\\", "/")
    if path.startswith("./"):
        path = path[2:]
    if fnmatchcase(path, pattern):
        return True
    if pattern.endswith("/**") and path == pattern[:-3]:
        return True
    return "/" not in pattern and fnmatchcase(basename(path), pattern)


def matches_any(path: str, patterns: Iterable[str]) -> bool:
    return any(matches(path, pattern) for pattern in patterns)


def priority_score(path: str, patterns: Sequence[str]) -> int:
    """``(len(patterns) - index) * 10`` for the first matching pattern, else 0."""
    for index, pattern in enumerate(patterns):
        if matches(path, pattern):
            return (len(patterns) - index) * 10
    return 0


def filter_files(
    paths: Iterable[str],
    exclusion_patterns: Sequence[str] = (),
    priority_patterns: Sequence[str] = (),
) -> list[str]:
    """Drop excluded paths and order the rest by priority (stable)."""
    kept = [path for path in paths if not matches_any(path, exclusion_patterns)]
    if not priority_patterns:
        return kept
    return sorted(kept, key=lambda path: priority_score(path, priority_patterns), reverse=True)
