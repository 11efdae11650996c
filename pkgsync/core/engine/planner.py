"""
Action planner — diff desired state against installed state.

Planning is pure: given the desired entries, a read of installed state
and the handler registry, it classifies every name in the union of the
two into at most one action:

    1. claimed by a handler            → ExternalAction
    2. desired, not installed          → InstallAction
    3. pinned, installed, different    → UpdateAction (up or down)
    4. installed, not declared         → PruneAction (provisional)
    5. otherwise                       → nothing

A declared name whose entry could not be read gets no action at all; it
is never a prune candidate.

Prune actions are provisional: the executor drops any candidate that an
installed package still depends on, after installs have run.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Collection, Mapping

from pydantic import ValidationError

from pkgsync.core.engine.errors import HandlerFailure, ParseFailure
from pkgsync.core.engine.handlers import HandlerRegistry
from pkgsync.core.models.action import (
    ExternalAction,
    InstallAction,
    PruneAction,
    SyncIssue,
    UpdateAction,
)
from pkgsync.core.models.package import (
    DesiredEntry,
    DesiredState,
    InstalledState,
    canonical_name,
)
from pkgsync.core.models.version import is_downgrade, versions_match

logger = logging.getLogger(__name__)


@dataclass
class SyncPlan:
    """Actions computed by one planning pass."""

    external: list[ExternalAction] = field(default_factory=list)
    install: list[InstallAction] = field(default_factory=list)
    update: list[UpdateAction] = field(default_factory=list)
    prune: list[PruneAction] = field(default_factory=list)
    errors: list[SyncIssue] = field(default_factory=list)

    @property
    def total_actions(self) -> int:
        return len(self.external) + len(self.install) + len(self.update) + len(self.prune)

    @property
    def empty(self) -> bool:
        return self.total_actions == 0

    def to_dict(self) -> dict:
        return {
            "external": [a.name for a in self.external],
            "install": [{"name": a.name, "version": a.version} for a in self.install],
            "update": [
                {
                    "name": a.name,
                    "from": a.from_version,
                    "to": a.to_version,
                    "downgrade": a.downgrade,
                }
                for a in self.update
            ],
            "prune": [a.name for a in self.prune],
            "errors": [e.model_dump() for e in self.errors],
        }


def normalize_desired(raw: Mapping[str, Any]) -> tuple[DesiredState, list[SyncIssue]]:
    """Turn raw config values into DesiredEntries keyed by canonical name.

    A bare string becomes ``{version: <string>}``. The map key always
    wins over any ``name`` inside the value. Values that cannot be
    read are reported, not dropped silently; pass ``declared_names(raw)``
    to the planner so those names are not pruned either.
    """
    entries: DesiredState = {}
    errors: list[SyncIssue] = []

    for key, value in raw.items():
        name = canonical_name(str(key))
        if isinstance(value, str):
            data: dict[str, Any] = {"version": value}
        elif isinstance(value, Mapping):
            data = {k: v for k, v in value.items() if k != "name"}
        elif value is None:
            data = {}
        else:
            errors.append(_parse_issue(name, f"Could not parse package: {name} = {value!r}"))
            continue

        try:
            entries[name] = DesiredEntry(name=name, **data)
        except ValidationError as e:
            errors.append(_parse_issue(name, f"Could not parse package: {name} ({e.error_count()} error(s))"))

    return entries, errors


def declared_names(raw: Mapping[str, Any]) -> set[str]:
    """Canonical names of every declared entry, readable or not."""
    return {canonical_name(str(key)) for key in raw}


def plan_sync(
    desired: DesiredState,
    installed: InstalledState,
    handlers: HandlerRegistry | None = None,
    declared: Collection[str] = (),
) -> SyncPlan:
    """Compute the actions that converge ``installed`` towards ``desired``.

    Args:
        desired: Normalized desired entries.
        installed: Installed packages, as just read.
        handlers: Registry consulted for external sync callbacks.
        declared: Every declared name, including entries that failed
            normalization. These are never pruned.

    Returns:
        SyncPlan with actions sorted by name, plus planning errors.
    """
    plan = SyncPlan()

    declared = set(declared)
    for key in sorted(set(installed) | set(desired) | declared):
        entry = desired.get(key)
        package = installed.get(key)

        callback = None
        if handlers is not None and entry is not None:
            try:
                callback = handlers.sync_callback_for(entry)
            except HandlerFailure as e:
                plan.errors.append(SyncIssue(kind=e.kind, package=key, message=str(e)))
                continue
        if callback is not None:
            plan.external.append(ExternalAction(name=key, callback=callback))
        elif entry is not None and package is None:
            if not entry.version:
                plan.errors.append(_parse_issue(key, f"Could not parse package: {key} has no version"))
                continue
            plan.install.append(InstallAction(name=key, version=entry.version))
        elif (
            entry is not None
            and entry.version
            and package is not None
            and not versions_match(entry.version, package.version)
        ):
            try:
                downgrade = is_downgrade(package.version, entry.version)
            except ParseFailure as e:
                plan.errors.append(_parse_issue(key, f"Cannot compare versions of {key}: {e}"))
                continue
            plan.update.append(
                UpdateAction(
                    name=key,
                    from_version=package.version,
                    to_version=entry.version,
                    downgrade=downgrade,
                )
            )
        elif entry is None and package is not None and key not in declared:
            plan.prune.append(PruneAction(name=key))

    logger.debug(
        "Planned: %d external, %d install, %d update, %d prune, %d error(s)",
        len(plan.external),
        len(plan.install),
        len(plan.update),
        len(plan.prune),
        len(plan.errors),
    )
    return plan


def get_percentage(counter: int, total: int) -> int:
    """Progress percentage after ``counter`` of ``total`` actions, clamped to 100."""
    if counter <= 0:
        return 0
    if total <= 0:
        return 100
    return min(100, (100 * counter) // total)


def _parse_issue(name: str, message: str) -> SyncIssue:
    return SyncIssue(kind=ParseFailure.kind, package=name, message=message)
