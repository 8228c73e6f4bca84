# persona_context_engine/context/snapshot.py
"""
Project snapshot providers.

``ProjectSnapshot`` is the protocol the engine consumes. ``StaticSnapshot``
returns caller-supplied data; ``DirectorySnapshot`` scans a project tree.
"""

from __future__ import annotations

import asyncio
import logging
import os
from pathlib import Path
from typing import Protocol, runtime_checkable

from persona_context_engine.models import SnapshotData

logger = logging.getLogger(__name__)

DEFAULT_IGNORED_DIRS: frozenset[str] = frozenset(
    {".git", "node_modules", "__pycache__", ".venv", "venv", "dist", "build", ".mypy_cache", ".pytest_cache"}
)


@runtime_checkable
class ProjectSnapshot(Protocol):
    """Source of the current project file structure and error state."""

    async def current(self) -> SnapshotData: ...


class StaticSnapshot:
    """Returns a fixed snapshot; ``update()`` replaces it."""

    def __init__(self, data: SnapshotData | None = None) -> None:
        self._data = data or SnapshotData()

    def update(self, data: SnapshotData) -> None:
        self._data = data

    async def current(self) -> SnapshotData:
        return self._data


class DirectorySnapshot:
    """
    Walks a project directory.

    ``file_structure`` lists relative paths (sorted); ``recent_files`` holds
    the most recently modified ones. Error state is not derived from the
    filesystem and stays clear unless set via ``error_state``.
    """

    def __init__(
        self,
        root: str | Path,
        max_files: int = 500,
        recent_limit: int = 10,
        max_depth: int = 4,
        ignored_dirs: frozenset[str] = DEFAULT_IGNORED_DIRS,
    ) -> None:
        self.root = Path(root)
        self.max_files = max_files
        self.recent_limit = recent_limit
        self.max_depth = max_depth
        self.ignored_dirs = ignored_dirs
        self.error_state = SnapshotData().error_state

    async def current(self) -> SnapshotData:
        return await asyncio.to_thread(self._scan)

    def _scan(self) -> SnapshotData:
        entries: list[tuple[str, float]] = []
        for dirpath, dirnames, filenames in os.walk(self.root):
            rel_dir = Path(dirpath).relative_to(self.root)
            depth = len(rel_dir.parts)
            dirnames[:] = sorted(d for d in dirnames if d not in self.ignored_dirs and depth < self.max_depth)
            for filename in sorted(filenames):
                path = Path(dirpath) / filename
                try:
                    mtime = path.stat().st_mtime
                except OSError as e:
                    logger.debug(f"Skipping unreadable file {path}: {e}")
                    continue
                entries.append(((rel_dir / filename).as_posix(), mtime))
                if len(entries) >= self.max_files:
                    break
            if len(entries) >= self.max_files:
                break

        recent = sorted(entries, key=lambda item: item[1], reverse=True)[: self.recent_limit]
        return SnapshotData(
            file_structure=sorted(path for path, _ in entries),
            recent_files=[path for path, _ in recent],
            error_state=self.error_state,
        )
