"""
Error taxonomy for the reconciliation engine.

Every failure carries a short ``kind`` tag. The executor catches these
at the point of use inside its loops and turns them into accumulated
issues; only the run-level outcome escapes to the caller.
"""

from __future__ import annotations


class PkgSyncError(Exception):
    """Base class for all engine errors."""

    kind = "error"

    def __init__(self, message: str, *, package: str | None = None):
        super().__init__(message)
        self.message = message
        self.package = package


class SpawnFailure(PkgSyncError):
    """The package-manager binary could not be started."""

    kind = "spawn"

    def __init__(self, message: str, *, package: str | None = None, stderr: str = ""):
        super().__init__(message, package=package)
        self.stderr = stderr


class ToolFailure(PkgSyncError):
    """The package manager exited non-zero. ``stderr`` is passed through verbatim."""

    kind = "tool"

    def __init__(self, message: str, *, package: str | None = None, stderr: str = ""):
        super().__init__(message, package=package)
        self.stderr = stderr

    def __str__(self) -> str:
        if self.stderr.strip():
            return f"{self.message}: {self.stderr.strip()}"
        return self.message


class ParseFailure(PkgSyncError):
    """A desired entry has no usable version, or a version cannot be compared."""

    kind = "parse"


class PartialRemovalFailure(PkgSyncError):
    """A recursive removal failed for its root or one of its descendants."""

    kind = "partial_removal"


class HandlerFailure(PkgSyncError):
    """A registered handler raised while being asked for a callback."""

    kind = "handler"


class HandleConsumedError(RuntimeError):
    """A one-shot result handle was waited on a second time."""
