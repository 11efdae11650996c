"""
Action models — the planning and execution contract.

The planner produces Actions; the package-manager adapter returns
ProcessResults; a run accumulates SyncIssues. Actions carry no
identity beyond their target name: they are produced fresh on every
planning pass and discarded after execution.
"""

from __future__ import annotations

from enum import Enum
from typing import Any, Callable, Literal

from pydantic import BaseModel, ConfigDict, Field


class ProcessResult(BaseModel):
    """Verbatim outcome of one package-manager invocation."""

    model_config = ConfigDict(frozen=True)

    args: list[str] = Field(default_factory=list)
    code: int
    stdout: str = ""
    stderr: str = ""
    spawn_failed: bool = False

    @property
    def ok(self) -> bool:
        """Whether the process exited with code 0."""
        return self.code == 0


# ── Actions ─────────────────────────────────────────────────────────


class InstallAction(BaseModel):
    """Install a package that is desired but missing."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["install"] = "install"
    name: str
    version: str | None = None


class UpdateAction(BaseModel):
    """Move an installed package to its pinned version.

    ``downgrade`` only affects messaging; both directions run the same
    install primitive with an explicit version.
    """

    model_config = ConfigDict(frozen=True)

    kind: Literal["update"] = "update"
    name: str
    from_version: str
    to_version: str
    downgrade: bool = False

    @property
    def verb(self) -> str:
        return "Downgrading" if self.downgrade else "Updating"

    @property
    def past(self) -> str:
        return "Downgraded" if self.downgrade else "Upgraded"


class PruneAction(BaseModel):
    """Remove a package that is installed but not desired."""

    model_config = ConfigDict(frozen=True)

    kind: Literal["prune"] = "prune"
    name: str


class ExternalAction(BaseModel):
    """Delegate a desired entry to a registered handler's sync callback."""

    model_config = ConfigDict(frozen=True, arbitrary_types_allowed=True)

    kind: Literal["external"] = "external"
    name: str
    callback: Callable[..., Any]


Action = InstallAction | UpdateAction | PruneAction | ExternalAction


# ── Outcomes ────────────────────────────────────────────────────────


class SyncIssue(BaseModel):
    """One accumulated error. Issues never abort a run."""

    kind: str = "error"
    package: str | None = None
    message: str


class RunStatus(str, Enum):
    """Terminal state of a run. There is no hard-fail state."""

    SUCCEEDED = "succeeded"
    SUCCEEDED_WITH_ERRORS = "succeeded_with_errors"
