"""
Installed-state reader — the read side of truth.

Queries the package manager for what is on disk right now. Nothing is
cached here: installs and removals change the tree out of band, so
callers decide when to read again.

Porcelain formats (tab-separated):

    list --porcelain              name  version  status  tree
    list --outdated --porcelain   name  version  target  repository
    show --porcelain <name>       dependency  <name> [constraint]  <name> <version>
"""

from __future__ import annotations

import logging

from pkgsync.adapters.base import PackageManagerAdapter
from pkgsync.core.engine.errors import SpawnFailure, ToolFailure
from pkgsync.core.models.action import ProcessResult
from pkgsync.core.models.package import (
    Dependency,
    InstalledState,
    OutdatedPackage,
    Package,
    canonical_name,
)
from pkgsync.core.models.version import strip_revision

logger = logging.getLogger(__name__)


class InstalledStateReader:
    """Read-only queries over the package manager's current state."""

    def __init__(self, adapter: PackageManagerAdapter):
        self._adapter = adapter

    async def _query(self, args: list[str], what: str) -> ProcessResult:
        result = await self._adapter.run(args).wait()
        if result.spawn_failed:
            raise SpawnFailure(f"Cannot {what}", stderr=result.stderr)
        if not result.ok:
            raise ToolFailure(f"Failed to {what}", stderr=result.stderr)
        return result

    async def installed_packages(self) -> InstalledState:
        """All installed packages, keyed by lowercase name."""
        result = await self._query(["list", "--porcelain"], "list installed packages")
        packages: InstalledState = {}
        for line in result.stdout.splitlines():
            fields = line.split("\t")
            if len(fields) < 2 or not fields[0].strip():
                continue
            name = canonical_name(fields[0])
            packages[name] = Package(name=name, version=strip_revision(fields[1].strip()))
        logger.debug("Installed packages: %d", len(packages))
        return packages

    async def dependencies_of(self, name: str) -> dict[str, Dependency]:
        """Direct dependencies of an installed package.

        An unknown or uninstalled package has no dependencies.
        """
        name = canonical_name(name)
        result = await self._adapter.run(["show", "--porcelain", name]).wait()
        if result.spawn_failed:
            raise SpawnFailure(f"Cannot query dependencies of {name}", stderr=result.stderr)
        if not result.ok:
            logger.debug("No dependency information for %s: %s", name, result.stderr.strip())
            return {}

        dependencies: dict[str, Dependency] = {}
        for line in result.stdout.splitlines():
            fields = line.split("\t")
            if len(fields) < 2 or fields[0] != "dependency":
                continue
            spec = fields[1].split()
            if not spec:
                continue
            version = None
            if len(fields) > 2:
                resolved = fields[2].split()
                if len(resolved) >= 2:
                    version = strip_revision(resolved[-1])
            dep = Dependency(name=spec[0], version=version)
            dependencies[dep.name] = dep
        return dependencies

    async def outdated_packages(self) -> dict[str, OutdatedPackage]:
        """Installed packages with a newer version available."""
        result = await self._query(
            ["list", "--outdated", "--porcelain"], "list outdated packages"
        )
        outdated: dict[str, OutdatedPackage] = {}
        for line in result.stdout.splitlines():
            fields = line.split("\t")
            if len(fields) < 3:
                continue
            pkg = OutdatedPackage(
                name=fields[0],
                version=strip_revision(fields[1].strip()),
                target_version=strip_revision(fields[2].strip()),
            )
            outdated[pkg.name] = pkg
        return outdated

    async def removable_packages(self) -> list[str]:
        """Installed packages that no other installed package depends on."""
        installed = await self.installed_packages()
        referenced = await self.referenced_dependencies(installed)
        return sorted(name for name in installed if name not in referenced)

    async def referenced_dependencies(self, installed: InstalledState) -> set[str]:
        """Names depended on by any package in ``installed``."""
        referenced: set[str] = set()
        for name in installed:
            referenced.update(
                dep for dep in await self.dependencies_of(name) if dep != name
            )
        return referenced
