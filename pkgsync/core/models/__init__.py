"""
Domain models — Pydantic types for the reconciliation engine.

All models are re-exported here for convenient access:

    from pkgsync.core.models import Package, DesiredEntry, InstallAction, ProcessResult
"""

from pkgsync.core.models.action import (
    Action,
    ExternalAction,
    InstallAction,
    ProcessResult,
    PruneAction,
    RunStatus,
    SyncIssue,
    UpdateAction,
)
from pkgsync.core.models.package import (
    Dependency,
    DesiredEntry,
    DesiredState,
    InstalledState,
    OutdatedPackage,
    Package,
    canonical_name,
)

__all__ = [
    "Action",
    "Dependency",
    "DesiredEntry",
    "DesiredState",
    "ExternalAction",
    "InstallAction",
    "InstalledState",
    "OutdatedPackage",
    "Package",
    "ProcessResult",
    "PruneAction",
    "RunStatus",
    "SyncIssue",
    "UpdateAction",
    "canonical_name",
]
