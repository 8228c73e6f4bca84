# tests/conftest.py
"""
Shared pytest fixtures for persona_context_engine tests.
"""

import logging
from datetime import UTC, datetime, timedelta
from unittest.mock import AsyncMock

import pytest

from persona_context_engine.context import InMemoryStorage
from persona_context_engine.models import ErrorState, Persona, SnapshotData
from persona_context_engine.personas import InMemoryPersonaCatalog

# Configure logging for tests
logging.basicConfig(level=logging.WARNING)
logging.getLogger("persona_context_engine").setLevel(logging.DEBUG)


class FakeClock:
    """Deterministic, manually advanced clock."""

    def __init__(self, start: datetime | None = None):
        self.now = start or datetime(2025, 1, 15, 12, 0, tzinfo=UTC)

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> datetime:
        self.now += timedelta(seconds=seconds)
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def default_catalog():
    """Catalog with the six built-in personas."""
    return InMemoryPersonaCatalog.default()


@pytest.fixture
def scenario_personas():
    """Minimal debugger/architect pair used by the detection scenarios."""
    return [
        Persona(id="debugger", keywords=("fix", "exception", "debug")),
        Persona(id="architect", keywords=("design", "structure")),
    ]


@pytest.fixture
def scenario_catalog(scenario_personas):
    return InMemoryPersonaCatalog(scenario_personas)


@pytest.fixture
def storage():
    return InMemoryStorage()


@pytest.fixture
def snapshot_data():
    return SnapshotData(
        file_structure=[
            "README.md",
            "docs/guide.md",
            "node_modules/pkg/index.js",
            "src/app.py",
            "src/service.py",
            "tests/test_app.py",
            "logs/server.log",
        ],
        recent_files=["src/app.py", "logs/server.log", "docs/guide.md"],
        error_state=ErrorState(has_errors=True, error_files=["src/app.py"]),
        notes="Refactored the login flow.",
    )


@pytest.fixture
def mock_snapshot(snapshot_data):
    """ProjectSnapshot collaborator returning ``snapshot_data``."""
    mock = AsyncMock()
    mock.current.return_value = snapshot_data
    return mock
