"""
Mock package manager — in-memory test double for the CLI adapter.

Simulates a package tree and a package registry, and answers the same
command-line contract as the real tool, with the same output formats.
Used in tests to exercise the engine end to end without
touching disk.

Registry versions are stored without their build revision (``1.0.0``);
output adds ``-1`` the way the real tool does. The development version
is ``scm-1``.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Sequence

from pkgsync.adapters.base import CompletionCallback, PackageManagerAdapter
from pkgsync.core.engine.future import ResultHandle
from pkgsync.core.models.action import ProcessResult
from pkgsync.core.models.version import DEV_INSTALLED_VERSION, parse_version

logger = logging.getLogger(__name__)

TREE = "/mock/tree"


@dataclass
class MockInstalledPackage:
    """One installed package in the simulated tree."""

    name: str
    version: str
    dependencies: list[str] = field(default_factory=list)


class MockPackageManager(PackageManagerAdapter):
    """In-memory package manager.

    By default every command succeeds against the simulated state.
    Failures can be injected per (subcommand, package) pair.
    """

    def __init__(self, adapter_name: str = "mock", available: bool = True):
        self._name = adapter_name
        self._available = available
        # name → version → dependency names
        self._registry: dict[str, dict[str, list[str]]] = {}
        self._installed: dict[str, MockInstalledPackage] = {}
        self._failures: dict[tuple[str, str], str] = {}
        self._call_log: list[list[str]] = []

    @property
    def name(self) -> str:
        return self._name

    @property
    def call_log(self) -> list[list[str]]:
        """Every argument list this mock has received."""
        return self._call_log

    @property
    def call_count(self) -> int:
        return len(self._call_log)

    def calls(self, subcommand: str) -> list[list[str]]:
        """Calls for one subcommand (``install``, ``remove``, ...)."""
        return [c for c in self._call_log if c and c[0] == subcommand]

    def is_available(self) -> bool:
        return self._available

    # ── Setup ───────────────────────────────────────────────────

    def publish(self, name: str, version: str, dependencies: Sequence[str] = ()) -> None:
        """Make a version of a package available in the registry."""
        self._registry.setdefault(name, {})[version] = list(dependencies)

    def preinstall(self, name: str, version: str, dependencies: Sequence[str] = ()) -> None:
        """Put a package in the tree without going through ``install``."""
        self.publish(name, version, dependencies)
        self._installed[name] = MockInstalledPackage(name, version, list(dependencies))

    def set_failure(self, subcommand: str, package: str, stderr: str = "Mock failure") -> None:
        """Make ``subcommand`` fail for ``package``."""
        self._failures[(subcommand, package)] = stderr

    def installed(self) -> dict[str, str]:
        """Snapshot of the tree: name → version."""
        return {name: package.version for name, package in self._installed.items()}

    def reset(self) -> None:
        """Clear the call log and injected failures."""
        self._call_log.clear()
        self._failures.clear()

    # ── Adapter contract ────────────────────────────────────────

    def run(
        self,
        args: Sequence[str],
        on_complete: CompletionCallback | None = None,
    ) -> ResultHandle[ProcessResult]:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[ProcessResult] = loop.create_future()
        self._call_log.append(list(args))
        result = self._dispatch(list(args))

        def _finish() -> None:
            if on_complete is not None:
                try:
                    on_complete(result)
                except Exception as e:
                    logger.error("Completion callback for %s raised: %s", args, e)
            future.set_result(result)

        loop.call_soon(_finish)
        return ResultHandle(future)

    # ── Simulation ──────────────────────────────────────────────

    def _dispatch(self, args: list[str]) -> ProcessResult:
        if not args:
            return self._fail(args, "No command given")
        subcommand, rest = args[0], args[1:]
        if subcommand == "install":
            return self._install(args, rest)
        if subcommand == "remove":
            return self._remove(args, rest)
        if subcommand == "list":
            return self._list(args, rest)
        if subcommand == "show":
            return self._show(args, rest)
        return self._fail(args, f"Unknown command: {subcommand}")

    def _fail(self, args: list[str], stderr: str) -> ProcessResult:
        return ProcessResult(args=args, code=1, stderr=stderr)

    def _latest(self, name: str) -> str | None:
        released = [v for v in self._registry.get(name, {}) if v != DEV_INSTALLED_VERSION]
        if not released:
            return None
        return max(released, key=parse_version)

    def _install(self, args: list[str], rest: list[str]) -> ProcessResult:
        dev = "--dev" in rest
        positional = [a for a in rest if not a.startswith("--")]
        if not positional:
            return self._fail(args, "Argument missing: see 'help install'")
        name = positional[0]
        if ("install", name) in self._failures:
            return self._fail(args, self._failures[("install", name)])

        available = self._registry.get(name, {})
        if dev:
            version = DEV_INSTALLED_VERSION
        elif len(positional) > 1:
            version = positional[1]
        else:
            version = self._latest(name) or ""
        if version not in available:
            return self._fail(args, f"No results matching query were found for {name} {version}".rstrip())

        lines = []
        for dep in available[version]:
            if dep not in self._installed:
                dep_version = self._latest(dep)
                if dep_version is None:
                    return self._fail(args, f"Could not satisfy dependency {dep} of {name}")
                self._installed[dep] = MockInstalledPackage(dep, dep_version, list(self._registry[dep][dep_version]))
                lines.append(f"{dep} {_with_revision(dep_version)} is now installed in {TREE}")

        self._installed[name] = MockInstalledPackage(name, version, list(available[version]))
        lines.append(f"{name} {_with_revision(version)} is now installed in {TREE} (license: MIT)")
        return ProcessResult(args=args, code=0, stdout="\n".join(lines) + "\n")

    def _remove(self, args: list[str], rest: list[str]) -> ProcessResult:
        if not rest:
            return self._fail(args, "Argument missing: see 'help remove'")
        name = rest[0]
        if ("remove", name) in self._failures:
            return self._fail(args, self._failures[("remove", name)])
        if name not in self._installed:
            return self._fail(args, f"Could not find package '{name}' in {TREE}")
        dependents = sorted(
            r.name for r in self._installed.values() if name in r.dependencies and r.name != name
        )
        if dependents:
            return self._fail(
                args,
                f"Will not remove {name}: it is needed by {', '.join(dependents)}",
            )
        version = self._installed.pop(name).version
        return ProcessResult(
            args=args,
            code=0,
            stdout=f"Removing {name} {_with_revision(version)}...\nRemoval successful.\n",
        )

    def _list(self, args: list[str], rest: list[str]) -> ProcessResult:
        if ("list", "*") in self._failures:
            return self._fail(args, self._failures[("list", "*")])
        lines = []
        if "--outdated" in rest:
            for name in sorted(self._installed):
                package = self._installed[name]
                latest = self._latest(name)
                if latest is None or package.version == DEV_INSTALLED_VERSION:
                    continue
                if parse_version(latest) > parse_version(package.version):
                    lines.append(
                        f"{name}\t{_with_revision(package.version)}\t{_with_revision(latest)}\thttps://mock.invalid"
                    )
        else:
            for name in sorted(self._installed):
                package = self._installed[name]
                lines.append(f"{name}\t{_with_revision(package.version)}\tinstalled\t{TREE}")
        return ProcessResult(args=args, code=0, stdout="\n".join(lines) + ("\n" if lines else ""))

    def _show(self, args: list[str], rest: list[str]) -> ProcessResult:
        positional = [a for a in rest if not a.startswith("--")]
        if not positional:
            return self._fail(args, "Argument missing: see 'help show'")
        name = positional[0]
        package = self._installed.get(name)
        if package is None:
            return self._fail(args, f"cannot find package {name}")
        lines = [f"package\t{name}", f"version\t{_with_revision(package.version)}"]
        for dep in package.dependencies:
            dep_package = self._installed.get(dep)
            resolved = f"{dep} {_with_revision(dep_package.version)}" if dep_package else ""
            lines.append(f"dependency\t{dep}\t{resolved}".rstrip("\t"))
        return ProcessResult(args=args, code=0, stdout="\n".join(lines) + "\n")


def _with_revision(version: str) -> str:
    """Add the build revision the real tool prints after a version."""
    if version == DEV_INSTALLED_VERSION:
        return version
    return f"{version}-1"
