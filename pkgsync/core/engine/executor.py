"""
Engine executor — the reconciliation state machine.

A sync run converges installed state towards desired state:

    plan → external handlers → installs → updates → re-read state
         → filter prunes → handler prune callbacks → prunes → finalize

Everything runs sequentially on one coroutine: two package-manager
processes never touch the tree at the same time. A failed action is
recorded and the run moves on, so every run reaches a terminal state,
either succeeded or succeeded_with_errors.

One run does not always converge fully. A package that is still needed
by another prune candidate is kept this time and becomes prunable on
the next run, once its dependent is gone.

Flow of the smaller runs:
    update: outdated → install target versions → write config
    add:    install one package → write config
    prune:  drop from config → recursive removal
"""

from __future__ import annotations

import asyncio
import inspect
import logging
import uuid
from dataclasses import dataclass, field
from datetime import UTC, datetime
from typing import Any, Mapping

from pkgsync.adapters.base import PackageManagerAdapter
from pkgsync.core.config.loader import (
    PkgSyncConfig,
    remove_package,
    save_config,
    set_package_version,
)
from pkgsync.core.context import ProcessState, get_process_state
from pkgsync.core.engine.errors import HandlerFailure, PartialRemovalFailure, PkgSyncError
from pkgsync.core.engine.handlers import HandlerCallback
from pkgsync.core.engine.operations import Operations
from pkgsync.core.engine.planner import (
    SyncPlan,
    get_percentage,
    declared_names,
    normalize_desired,
    plan_sync,
)
from pkgsync.core.models.action import RunStatus, SyncIssue
from pkgsync.core.models.package import canonical_name
from pkgsync.core.models.version import DEV_INSTALLED_VERSION, DEV_VERSION, is_dev_version
from pkgsync.core.observability.progress import (
    LogProgressFactory,
    ProgressFactory,
    ProgressHandle,
)
from pkgsync.core.persistence.audit import AuditEntry, AuditWriter
from pkgsync.core.services.runtime import RuntimeActivator

logger = logging.getLogger(__name__)


@dataclass
class RunReport:
    """Result of one run."""

    operation_id: str = ""
    operation: str = ""
    status: RunStatus = RunStatus.SUCCEEDED
    installed: list[str] = field(default_factory=list)
    updated: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    issues: list[SyncIssue] = field(default_factory=list)
    actions_total: int = 0
    nothing_to_do: bool = False

    @property
    def ok(self) -> bool:
        return self.status == RunStatus.SUCCEEDED

    def to_dict(self) -> dict:
        return {
            "operation_id": self.operation_id,
            "operation": self.operation,
            "status": self.status.value,
            "installed": self.installed,
            "updated": self.updated,
            "removed": self.removed,
            "actions_total": self.actions_total,
            "nothing_to_do": self.nothing_to_do,
            "issues": [i.model_dump() for i in self.issues],
        }


class _Run:
    """Progress, counters and accumulated errors of one run."""

    def __init__(self, factory: ProgressFactory, report: RunReport, handle: ProgressHandle):
        self.factory = factory
        self.report = report
        self.handle = handle
        self.error_handles: list[ProgressHandle] = []
        self.ct = 0
        self.total = 0

    @property
    def percentage(self) -> int:
        return get_percentage(self.ct, self.total)

    def issue(self, message: str, *, kind: str = "error", package: str | None = None) -> None:
        """Record an error and open a separate error notification for it."""
        self.report.issues.append(SyncIssue(kind=kind, package=package, message=message))
        self.error_handles.append(self.factory.create("Error", message=message))

    def add_issue(self, issue: SyncIssue) -> None:
        logger.error(issue.message)
        self.issue(issue.message, kind=issue.kind, package=issue.package)

    # Reporter functions handed to handler callbacks

    def report_progress(self, message: str) -> None:
        self.handle.report(message=message)

    def report_error(self, message: str) -> None:
        self.issue(message, kind="handler")


def generate_operation_id() -> str:
    """Generate a unique operation ID."""
    now = datetime.now(UTC).strftime("%Y%m%d-%H%M%S")
    short = uuid.uuid4().hex[:6]
    return f"op-{now}-{short}"


class SyncRunner:
    """Runs sync, update, add and prune against one package manager.

    Args:
        adapter: Package-manager invoker.
        state: Process-scoped handler list and removable cache
            (default: the process-wide instance).
        progress: Factory for progress notifications (default: log them).
        activator: Runtime-activation collaborator.
        dynamic_activation: Whether installs hand packages to the activator.
        audit: Optional audit ledger; one entry per run.
    """

    def __init__(
        self,
        adapter: PackageManagerAdapter,
        *,
        state: ProcessState | None = None,
        progress: ProgressFactory | None = None,
        activator: RuntimeActivator | None = None,
        dynamic_activation: bool = True,
        audit: AuditWriter | None = None,
    ):
        self.state = state or get_process_state()
        self.ops = Operations(
            adapter,
            self.state,
            activator=activator,
            dynamic_activation=dynamic_activation,
        )
        self.reader = self.ops.reader
        self.progress = progress or LogProgressFactory()
        self.audit = audit

    @classmethod
    def from_config(
        cls,
        config: PkgSyncConfig,
        *,
        adapter: PackageManagerAdapter | None = None,
        **kwargs: Any,
    ) -> SyncRunner:
        """Build a runner from loaded settings, auditing next to the config."""
        if adapter is None:
            from pkgsync.adapters.shell.command import PackageManagerCLI

            settings = config.settings
            adapter = PackageManagerCLI(
                binary=settings.binary,
                global_args=settings.global_args,
                timeout=settings.timeout,
            )
        kwargs.setdefault("dynamic_activation", config.settings.dynamic_activation)
        kwargs.setdefault("audit", AuditWriter(root=config.root))
        return cls(adapter, **kwargs)

    # ── Run lifecycle ───────────────────────────────────────────────

    def _start(
        self,
        operation: str,
        title: str,
        message: str | None = None,
        percentage: int | None = None,
    ) -> _Run:
        report = RunReport(operation_id=generate_operation_id(), operation=operation)
        handle = self.progress.create(title, message=message, percentage=percentage)
        return _Run(self.progress, report, handle)

    async def _finish(self, run: _Run, label: str) -> RunReport:
        report = run.report
        report.actions_total = run.total

        if report.issues:
            message = f"{label} completed with errors!"
            logger.error(message)
            run.handle.report(title="Error", message=message, percentage=100)
            run.handle.cancel()
            for error_handle in run.error_handles:
                error_handle.cancel()
            report.status = RunStatus.SUCCEEDED_WITH_ERRORS
        else:
            run.handle.finish()
            report.status = RunStatus.SUCCEEDED

        try:
            await self.state.removable.populate(self.reader)
        except PkgSyncError as e:
            logger.warning("Could not refresh removable packages: %s", e)

        if self.audit is not None:
            self.audit.write(
                AuditEntry(
                    operation_id=report.operation_id,
                    operation=report.operation,
                    installed=report.installed,
                    updated=report.updated,
                    removed=report.removed,
                    status=report.status,
                    actions_total=report.actions_total,
                    issues=report.issues,
                )
            )
        return report

    async def _call_handler(self, callback: HandlerCallback, run: _Run) -> None:
        try:
            result = callback(run.report_progress, run.report_error)
            if inspect.isawaitable(result):
                await result
        except Exception as e:
            logger.error("Handler callback failed: %s", e)
            run.issue(f"Handler failed: {e}", kind="handler")

    # ── Planning ────────────────────────────────────────────────────

    async def plan(self, desired: Mapping[str, Any]) -> SyncPlan:
        """Plan a sync without executing it."""
        entries, errors = normalize_desired(desired)
        installed = await self.reader.installed_packages()
        plan = plan_sync(entries, installed, self.state.handlers, declared_names(desired))
        plan.errors[:0] = errors
        return plan

    # ── Sync ────────────────────────────────────────────────────────

    async def sync(self, desired: Mapping[str, Any]) -> RunReport:
        """Synchronize installed packages with ``desired``.

        - Installs missing packages
        - Moves pinned packages to their pinned versions
        - Removes packages nothing needs any more

        Args:
            desired: Name → version string or ``{version?, opt?}`` mapping.
        """
        logger.info("syncing...")
        run = self._start("sync", "Syncing", percentage=0)
        report = run.report

        entries, errors = normalize_desired(desired)
        for issue in errors:
            run.add_issue(issue)
        declared = declared_names(desired)

        try:
            installed = await self.reader.installed_packages()
        except PkgSyncError as e:
            run.issue(str(e), kind=e.kind)
            return await self._finish(run, "Sync")

        plan = plan_sync(entries, installed, self.state.handlers, declared)
        for issue in plan.errors:
            run.add_issue(issue)
        run.total = plan.total_actions

        # Sync actions handled by registered handlers
        for action in plan.external:
            await self._call_handler(action.callback, run)
            run.ct += 1
            run.handle.report(percentage=run.percentage)

        for action in plan.install:
            await asyncio.sleep(0)
            key = action.name
            run.handle.report(message=f"Installing: {key}")
            # Any development version is requested as the latest unreleased build
            version = DEV_VERSION if is_dev_version(action.version) else action.version
            success = True
            try:
                await self.ops.install(key, version, lazy=entries[key].lazy).wait()
            except PkgSyncError as e:
                success = False
                run.issue(f"Failed to install {key}.", kind=e.kind, package=key)

            run.ct += 1
            await asyncio.sleep(0)
            if success:
                report.installed.append(key)
                run.handle.report(message=f"Installed: {key}", percentage=run.percentage)
            else:
                run.handle.report(percentage=run.percentage)

        for action in plan.update:
            await asyncio.sleep(0)
            key = action.name
            run.handle.report(message=f"{action.verb}: {key}")
            success = True
            try:
                await self.ops.install(key, action.to_version, lazy=entries[key].lazy).wait()
            except PkgSyncError as e:
                success = False
                verb = "downgrade" if action.downgrade else "upgrade"
                run.issue(f"Failed to {verb} {key}.", kind=e.kind, package=key)

            run.ct += 1
            await asyncio.sleep(0)
            if success:
                report.updated.append(key)
                run.handle.report(message=f"{action.past}: {key}", percentage=run.percentage)
            else:
                run.handle.report(percentage=run.percentage)

        # Dependencies of what is installed now must survive, including
        # those of packages installed above.
        try:
            installed = await self.reader.installed_packages()
            referenced = await self.reader.referenced_dependencies(installed)
        except PkgSyncError as e:
            run.issue(f"Cannot determine prunable packages: {e}", kind=e.kind)
            return await self._finish(run, "Sync")

        prunable = [a.name for a in plan.prune if a.name not in referenced]
        run.total = len(plan.external) + len(plan.install) + len(plan.update) + len(prunable)

        if run.ct == 0 and not prunable:
            report.nothing_to_do = True
            if not report.issues:
                message = "Everything is in-sync!"
                logger.info(message)
                await asyncio.sleep(0)
                run.handle.report(message=message, percentage=100)
            return await self._finish(run, "Sync")

        # Let handlers prune what they own before the engine prunes anything
        lookup_failures: list[HandlerFailure] = []
        prune_callbacks = self.state.handlers.prune_callbacks(entries, lookup_failures)
        for failure in lookup_failures:
            run.issue(str(failure), kind=failure.kind)
        for callback in prune_callbacks:
            await self._call_handler(callback, run)
        if prune_callbacks and prunable:
            try:
                still_installed = await self.reader.installed_packages()
            except PkgSyncError as e:
                run.issue(f"Cannot re-read installed packages: {e}", kind=e.kind)
                return await self._finish(run, "Sync")
            prunable = [name for name in prunable if name in still_installed]
            run.total = len(plan.external) + len(plan.install) + len(plan.update) + len(prunable)

        # Prune sequentially, to prevent conflicts in the package tree
        keep = sorted(declared)
        for key in prunable:
            await asyncio.sleep(0)
            run.handle.report(message=f"Removing: {key}")

            success = await self.ops.remove_recursive(key, keep)

            run.ct += 1
            await asyncio.sleep(0)
            if success:
                report.removed.append(key)
                run.handle.report(message=f"Removed: {key}", percentage=run.percentage)
            else:
                run.issue(f"Failed to remove {key}.", kind=PartialRemovalFailure.kind, package=key)
                run.handle.report(percentage=run.percentage)

        return await self._finish(run, "Sync")

    # ── Update ──────────────────────────────────────────────────────

    async def update(self, config: PkgSyncConfig | None = None) -> RunReport:
        """Install the newest version of every outdated package.

        Declared packages get their new version written back to the
        config; undeclared ones (dependencies) are upgraded only.
        """
        run = self._start("update", "Updating", message="Checking for updates...", percentage=0)
        report = run.report
        entries = normalize_desired(config.packages)[0] if config is not None else {}

        try:
            outdated = await self.reader.outdated_packages()
        except PkgSyncError as e:
            run.issue(str(e), kind=e.kind)
            return await self._finish(run, "Update")

        await asyncio.sleep(0)
        run.total = len(outdated)

        for name, package in outdated.items():
            await asyncio.sleep(0)
            run.handle.report(message=name)
            entry = entries.get(name)
            try:
                installed = await self.ops.install(
                    name,
                    package.target_version,
                    lazy=entry.lazy if entry else False,
                ).wait()
            except PkgSyncError as e:
                run.ct += 1
                await asyncio.sleep(0)
                run.issue(f"Failed to update {name}.", kind=e.kind, package=name)
                run.handle.report(percentage=run.percentage)
                continue

            run.ct += 1
            await asyncio.sleep(0)
            report.updated.append(name)
            if config is not None and entry is not None:
                set_package_version(config, name, installed.version)
            run.handle.report(
                message=f"Updated {name}: {package.version} -> {package.target_version}",
                percentage=run.percentage,
            )

        if not outdated:
            await asyncio.sleep(0)
            report.nothing_to_do = True
            run.handle.report(message="Nothing to update!", percentage=100)

        if config is not None and report.updated:
            save_config(config)
        await asyncio.sleep(0)
        return await self._finish(run, "Update")

    # ── Add ─────────────────────────────────────────────────────────

    async def add(
        self,
        name: str,
        version: str | None = None,
        config: PkgSyncConfig | None = None,
    ) -> RunReport:
        """Install one package and record it in the config."""
        name = canonical_name(name)
        run = self._start(
            "add",
            "Installing",
            message=f"{name} -> {version}" if version else name,
        )
        report = run.report
        run.total = 1

        lazy = False
        if config is not None:
            entry = normalize_desired(config.packages)[0].get(name)
            lazy = entry.lazy if entry else False

        try:
            installed = await self.ops.install(name, version, lazy=lazy).wait()
        except PkgSyncError as e:
            run.issue(f"Installation of {name} failed", kind=e.kind, package=name)
            return await self._finish(run, "Installation")

        run.ct = 1
        report.installed.append(name)
        run.handle.report(
            title="Installation successful",
            message=f"{installed.name} -> {installed.version}",
            percentage=100,
        )

        if config is not None:
            recorded = DEV_INSTALLED_VERSION if is_dev_version(version) else installed.version
            set_package_version(config, name, recorded)
            save_config(config)

        return await self._finish(run, "Installation")

    # ── Prune ───────────────────────────────────────────────────────

    async def prune(self, name: str, config: PkgSyncConfig | None = None) -> RunReport:
        """Uninstall a package and its unneeded dependencies, dropping it from the config."""
        name = canonical_name(name)
        run = self._start("prune", "Pruning")
        report = run.report
        run.total = 1

        keep: list[str] = []
        if config is not None:
            remove_package(config, name)
            keep = config.package_names()

        success = await self.ops.remove_recursive(name, keep, progress=run.handle)
        run.ct = 1

        if config is not None:
            save_config(config)

        if success:
            report.removed.append(name)
        else:
            run.issue(f"Failed to remove {name}.", kind=PartialRemovalFailure.kind, package=name)

        return await self._finish(run, "Prune")
