"""
Tests for the audit ledger.
"""

import json
from pathlib import Path

from pkgsync.core.models import RunStatus, SyncIssue
from pkgsync.core.persistence.audit import AuditEntry, AuditWriter


class TestAuditWriter:
    def test_write_and_read(self, tmp_path: Path):
        writer = AuditWriter(path=tmp_path / "audit.ndjson")
        writer.write(AuditEntry(operation_id="op-1", operation="sync", installed=["a"], status="succeeded"))
        writer.write(AuditEntry(operation_id="op-2", operation="prune", removed=["b"]))

        entries = writer.read_all()
        assert [e.operation_id for e in entries] == ["op-1", "op-2"]
        assert entries[0].installed == ["a"]
        assert entries[0].status == RunStatus.SUCCEEDED
        assert entries[1].removed == ["b"]
        assert entries[1].status is None

    def test_ndjson_format(self, tmp_path: Path):
        path = tmp_path / "audit.ndjson"
        writer = AuditWriter(path=path)
        writer.write(AuditEntry(operation_id="op-1", operation="sync", status=RunStatus.SUCCEEDED))
        lines = path.read_text().splitlines()
        assert len(lines) == 1
        data = json.loads(lines[0])
        assert data["operation"] == "sync"
        assert data["status"] == "succeeded"

    def test_issues_round_trip(self, tmp_path: Path):
        writer = AuditWriter(path=tmp_path / "audit.ndjson")
        writer.write(
            AuditEntry(
                operation="sync",
                status=RunStatus.SUCCEEDED_WITH_ERRORS,
                issues=[
                    SyncIssue(kind="tool", package="b", message="Failed to install b."),
                    SyncIssue(kind="parse", package="a", message="Could not parse package: a"),
                    SyncIssue(message="Sync completed with errors!"),
                ],
            )
        )
        entry = writer.read_all()[0]
        assert [i.kind for i in entry.issues] == ["tool", "parse", "error"]
        assert entry.failed_packages == ["a", "b"]

    def test_default_path_under_root(self, tmp_path: Path):
        writer = AuditWriter(root=tmp_path)
        assert writer.path == tmp_path / ".pkgsync" / "audit.ndjson"
        writer.write(AuditEntry(operation="sync"))
        assert writer.path.is_file()

    def test_read_missing(self, tmp_path: Path):
        assert AuditWriter(path=tmp_path / "none.ndjson").read_all() == []

    def test_read_recent(self, tmp_path: Path):
        writer = AuditWriter(path=tmp_path / "audit.ndjson")
        for i in range(5):
            writer.write(AuditEntry(operation_id=f"op-{i}"))
        assert [e.operation_id for e in writer.read_recent(2)] == ["op-3", "op-4"]

    def test_filter_by_operation(self, tmp_path: Path):
        writer = AuditWriter(path=tmp_path / "audit.ndjson")
        for i, operation in enumerate(["sync", "update", "sync", "prune", "sync"]):
            writer.write(AuditEntry(operation_id=f"op-{i}", operation=operation))

        assert [e.operation_id for e in writer.entries("sync")] == ["op-0", "op-2", "op-4"]
        assert [e.operation_id for e in writer.read_recent(1, operation="update")] == ["op-1"]

    def test_unreadable_lines_skipped(self, tmp_path: Path):
        path = tmp_path / "audit.ndjson"
        writer = AuditWriter(path=path)
        writer.write(AuditEntry(operation_id="op-1"))
        with path.open("a") as f:
            f.write("{not json\n\n")
            f.write('{"status": "exploded"}\n')
        writer.write(AuditEntry(operation_id="op-2"))
        assert [e.operation_id for e in writer.read_all()] == ["op-1", "op-2"]

    def test_write_failure_logged(self, tmp_path: Path, caplog):
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        writer = AuditWriter(path=blocker / "audit.ndjson")

        writer.write(AuditEntry(operation="sync", operation_id="op-1"))

        assert "Could not record sync run op-1" in caplog.text
