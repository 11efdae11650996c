"""
Single-package operations — install, remove, recursive remove.

These are the primitives the runs in ``executor`` are built from, and
they can be used on their own. Install and remove return a one-shot
ResultHandle immediately; the package manager keeps running while the
caller decides how to wait.

Both invalidate the removable cache before touching the tree.
"""

from __future__ import annotations

import asyncio
import logging
import re
from typing import Collection

from pkgsync.adapters.base import PackageManagerAdapter
from pkgsync.core.context import ProcessState
from pkgsync.core.engine.errors import PkgSyncError, SpawnFailure, ToolFailure
from pkgsync.core.engine.future import ResultHandle
from pkgsync.core.models.action import ProcessResult
from pkgsync.core.models.package import Package, canonical_name
from pkgsync.core.models.version import is_dev_version
from pkgsync.core.observability.progress import ProgressHandle
from pkgsync.core.services.installed_state import InstalledStateReader
from pkgsync.core.services.runtime import NullActivator, RuntimeActivator

logger = logging.getLogger(__name__)


def parse_installed_version(name: str, stdout: str) -> str | None:
    """Recover the installed version from the tool's install output.

    Matches ``<name> <version>`` and stops before any ``-<revision>``.
    """
    match = re.search(
        r"(?:^|\s)" + re.escape(name) + r"\s+([^-\s]+)", stdout, re.IGNORECASE | re.MULTILINE
    )
    return match.group(1) if match else None


def _failure(result: ProcessResult, message: str, package: str) -> PkgSyncError:
    if result.spawn_failed:
        return SpawnFailure(message, package=package, stderr=result.stderr)
    return ToolFailure(message, package=package, stderr=result.stderr)


class Operations:
    """Install/remove primitives bound to one adapter and one process state.

    Args:
        adapter: Package-manager invoker.
        state: Process-scoped state (the removable cache is invalidated here).
        activator: Runtime-activation collaborator for installed packages.
        dynamic_activation: Whether installed packages are activated at all.
    """

    def __init__(
        self,
        adapter: PackageManagerAdapter,
        state: ProcessState,
        activator: RuntimeActivator | None = None,
        dynamic_activation: bool = True,
    ):
        self.adapter = adapter
        self.state = state
        self.reader = InstalledStateReader(adapter)
        self.activator = activator or NullActivator()
        self.dynamic_activation = dynamic_activation

    def install(
        self,
        name: str,
        version: str | None = None,
        *,
        lazy: bool = False,
        progress: ProgressHandle | None = None,
    ) -> ResultHandle[Package]:
        """Install ``name``, optionally at ``version``.

        A development version is requested with ``--dev`` instead of a
        version argument. The handle resolves to the installed Package,
        or raises ToolFailure / SpawnFailure carrying the tool's stderr.
        """
        self.state.removable.invalidate()
        name = canonical_name(name)
        message = f"Installing: {name} -> {version}" if version else f"Installing: {name}"
        logger.info(message)
        if progress is not None:
            progress.report(message=message)

        args = ["install", name]
        if version:
            args.append("--dev" if is_dev_version(version) else version)

        loop = asyncio.get_running_loop()
        future: asyncio.Future[Package] = loop.create_future()

        def on_complete(result: ProcessResult) -> None:
            if not result.ok:
                failed = f"Failed to install {name}"
                logger.error(failed)
                if progress is not None:
                    progress.report(message=failed)
                future.set_exception(_failure(result, failed, name))
                return

            installed = Package(
                name=name,
                version=parse_installed_version(name, result.stdout) or version or "",
                lazy=lazy,
            )
            done = f"Installed: {installed.name} -> {installed.version}"
            logger.info(done)
            if progress is not None:
                progress.report(message=done)

            if self.dynamic_activation and not lazy:
                try:
                    self.activator.activate(name)
                except Exception as e:
                    future.set_exception(
                        PkgSyncError(f"Installed {name} but could not activate it: {e}", package=name)
                    )
                    return
            future.set_result(installed)

        process = self.adapter.run(args, on_complete)
        return ResultHandle(future, blocker=process.blocker)

    def remove(
        self,
        name: str,
        *,
        progress: ProgressHandle | None = None,
    ) -> ResultHandle[ProcessResult]:
        """Uninstall ``name``. The handle resolves to the raw ProcessResult."""
        self.state.removable.invalidate()
        name = canonical_name(name)
        message = f"Uninstalling: {name}"
        logger.info(message)
        if progress is not None:
            progress.report(message=message)

        loop = asyncio.get_running_loop()
        future: asyncio.Future[ProcessResult] = loop.create_future()

        def on_complete(result: ProcessResult) -> None:
            if not result.ok:
                failed = f"Failed to remove {name}."
                logger.error(failed)
                if progress is not None:
                    progress.report(message=failed)
                future.set_exception(_failure(result, failed, name))
                return
            logger.info("Uninstalled: %s", name)
            future.set_result(result)

        process = self.adapter.run(["remove", name], on_complete)
        return ResultHandle(future, blocker=process.blocker)

    async def remove_recursive(
        self,
        name: str,
        keep: Collection[str] = (),
        *,
        progress: ProgressHandle | None = None,
    ) -> bool:
        """Remove ``name``, then every dependency that nothing else needs.

        A dependency is removed only if it is removable after the root
        is gone and is not in ``keep``. Every such dependency is
        attempted even after a failure; nothing is rolled back.

        Returns:
            True only if the root and every attempted descendant were removed.
        """
        name = canonical_name(name)
        keep_names = {canonical_name(k) for k in keep}

        try:
            dependencies = await self.reader.dependencies_of(name)
            await self.remove(name, progress=progress).wait()
            removable = set(await self.reader.removable_packages())
        except PkgSyncError as e:
            logger.error("Recursive removal of %s stopped: %s", name, e)
            return False

        success = True
        for dep in dependencies:
            if dep in removable and dep not in keep_names:
                success = await self.remove_recursive(dep, keep_names, progress=progress) and success
        return success
