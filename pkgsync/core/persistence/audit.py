"""
Run history — one NDJSON line per sync, update, add or prune.

The ledger lives at ``.pkgsync/audit.ndjson`` next to pkgsync.yml and is
only ever appended to. Lines that no longer parse are skipped on read.
"""

from __future__ import annotations

import collections
import json
import logging
from datetime import UTC, datetime
from pathlib import Path
from typing import Iterator

from pydantic import BaseModel, Field

from pkgsync.core.models.action import RunStatus, SyncIssue

logger = logging.getLogger(__name__)

LEDGER_DIR = ".pkgsync"
LEDGER_FILE = "audit.ndjson"


class AuditEntry(BaseModel):
    """What one run changed, and how it ended."""

    timestamp: str = Field(default_factory=lambda: datetime.now(UTC).isoformat())
    operation_id: str = ""
    operation: str = ""
    status: RunStatus | None = None

    installed: list[str] = Field(default_factory=list)
    updated: list[str] = Field(default_factory=list)
    removed: list[str] = Field(default_factory=list)

    actions_total: int = 0
    issues: list[SyncIssue] = Field(default_factory=list)

    @property
    def failed_packages(self) -> list[str]:
        return sorted({i.package for i in self.issues if i.package})


class AuditWriter:
    """Append-only ledger of runs.

    Args:
        path: Ledger file. Takes precedence over ``root``.
        root: Directory holding pkgsync.yml; the ledger goes under it.
    """

    def __init__(self, path: Path | None = None, root: Path | None = None):
        if path is None:
            path = (root or Path.cwd()) / LEDGER_DIR / LEDGER_FILE
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def write(self, entry: AuditEntry) -> None:
        """Append ``entry``. A failed write is logged, never raised."""
        line = entry.model_dump_json() + "\n"
        try:
            self._path.parent.mkdir(parents=True, exist_ok=True)
            with self._path.open("a", encoding="utf-8") as f:
                f.write(line)
        except OSError as e:
            logger.error("Could not record %s run %s: %s", entry.operation, entry.operation_id, e)
            return
        logger.debug("Recorded %s run %s (%s)", entry.operation, entry.operation_id, entry.status)

    def entries(self, operation: str | None = None) -> Iterator[AuditEntry]:
        """Yield entries oldest first, optionally only one operation's."""
        if not self._path.is_file():
            return
        with self._path.open("r", encoding="utf-8") as f:
            for line_num, line in enumerate(f, start=1):
                if not line.strip():
                    continue
                try:
                    entry = AuditEntry.model_validate(json.loads(line))
                except ValueError as e:
                    logger.warning("Skipping unreadable ledger line %d: %s", line_num, e)
                    continue
                if operation is None or entry.operation == operation:
                    yield entry

    def read_all(self) -> list[AuditEntry]:
        return list(self.entries())

    def read_recent(self, n: int = 20, operation: str | None = None) -> list[AuditEntry]:
        """The last ``n`` entries, oldest first."""
        return list(collections.deque(self.entries(operation), maxlen=n))
