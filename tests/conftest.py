"""
Shared test fixtures and configuration.
"""

from pathlib import Path

import pytest

from pkgsync.adapters.mock import MockPackageManager
from pkgsync.core.context import ProcessState
from pkgsync.core.engine.executor import SyncRunner
from pkgsync.core.observability.progress import MemoryProgressFactory
from pkgsync.core.persistence.audit import AuditWriter
from pkgsync.core.services.runtime import RecordingActivator


@pytest.fixture
def mock_pm() -> MockPackageManager:
    """An empty in-memory package manager."""
    return MockPackageManager()


@pytest.fixture
def state() -> ProcessState:
    """Fresh process state (no handlers, empty cache)."""
    return ProcessState()


@pytest.fixture
def progress() -> MemoryProgressFactory:
    return MemoryProgressFactory()


@pytest.fixture
def activator() -> RecordingActivator:
    return RecordingActivator()


@pytest.fixture
def audit(tmp_path: Path) -> AuditWriter:
    return AuditWriter(path=tmp_path / "audit.ndjson")


@pytest.fixture
def runner(mock_pm, state, progress, activator, audit) -> SyncRunner:
    """A runner wired to the mock package manager."""
    return SyncRunner(
        mock_pm,
        state=state,
        progress=progress,
        activator=activator,
        audit=audit,
    )


@pytest.fixture
def write_config(tmp_path: Path):
    """Write a pkgsync.yml into tmp_path and return its path."""

    def _write(content: str) -> Path:
        path = tmp_path / "pkgsync.yml"
        path.write_text(content)
        return path

    return _write
