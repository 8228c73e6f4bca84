# persona_context_engine/context/storage.py
"""
Resource storage.

Storage is an external collaborator keyed by ``(kind, name)``. It holds the
persona overlay markdown read behind cache misses, plus persisted engine
state (session state, usage history, metrics, cache snapshot).

Design principles:
- Async-native: all I/O operations are async
- Bytes in, bytes out: serialization belongs to the caller
"""

from __future__ import annotations

import asyncio
import logging
import re
from pathlib import Path
from typing import Protocol, runtime_checkable

from pydantic import BaseModel, Field

logger = logging.getLogger(__name__)

_SAFE_NAME_RE = re.compile(r"[^A-Za-z0-9_.\-]")


@runtime_checkable
class Storage(Protocol):
    """Protocol for resource storage backends."""

    async def read_resource(self, kind: str, name: str) -> bytes | None:
        """Return the resource bytes, or None if it does not exist."""
        ...

    async def write_resource(self, kind: str, name: str, data: bytes) -> None:
        """Create or replace a resource."""
        ...


class InMemoryStorage(BaseModel):
    """
    Simple in-memory storage for testing/development.

    Not persistent - resources are lost when the process exits.
    """

    resources: dict[str, bytes] = Field(default_factory=dict)

    @staticmethod
    def _key(kind: str, name: str) -> str:
        return f"{kind}/{name}"

    async def read_resource(self, kind: str, name: str) -> bytes | None:
        return self.resources.get(self._key(kind, name))

    async def write_resource(self, kind: str, name: str, data: bytes) -> None:
        self.resources[self._key(kind, name)] = bytes(data)

    def clear(self) -> None:
        self.resources.clear()


class FileStorage:
    """
    Directory-backed storage: ``<root>/<kind>/<name>``.

    Blocking file I/O runs in a worker thread so the event loop is never
    blocked. Names are sanitized so they cannot escape the root.
    """

    def __init__(self, root: str | Path) -> None:
        self.root = Path(root)

    def path_for(self, kind: str, name: str) -> Path:
        return self.root / _SAFE_NAME_RE.sub("_", kind) / _SAFE_NAME_RE.sub("_", name).lstrip(".")

    async def read_resource(self, kind: str, name: str) -> bytes | None:
        path = self.path_for(kind, name)
        try:
            return await asyncio.to_thread(path.read_bytes)
        except FileNotFoundError:
            return None

    async def write_resource(self, kind: str, name: str, data: bytes) -> None:
        path = self.path_for(kind, name)
        await asyncio.to_thread(self._write, path, bytes(data))
        logger.debug(f"Wrote {len(data)} bytes to {path}")

    @staticmethod
    def _write(path: Path, data: bytes) -> None:
        path.parent.mkdir(parents=True, exist_ok=True)
        tmp = path.with_name(path.name + ".tmp")
        tmp.write_bytes(data)
        tmp.replace(path)
