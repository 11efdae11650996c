"""
CLI commands for package synchronization.

Thin wrappers over ``pkgsync.core.engine.executor``.
"""

from __future__ import annotations

import asyncio
import json
import sys
from typing import NoReturn

import click

from pkgsync.adapters.base import PackageManagerAdapter
from pkgsync.core.config.loader import ConfigError, PkgSyncConfig, load_config
from pkgsync.core.engine.errors import PkgSyncError
from pkgsync.core.engine.executor import RunReport, SyncRunner
from pkgsync.core.observability.progress import LogProgressFactory, ProgressHandle


class EchoProgress(ProgressHandle):
    """Progress handle that prints to the terminal."""

    def __init__(self, title: str, message: str | None = None, percentage: int | None = None):
        self.title = title
        self.percentage = percentage
        if message:
            self._echo(message)

    def _echo(self, message: str) -> None:
        if self.title == "Error":
            click.secho(f"   ❌ {message}", fg="red")
        elif self.percentage is not None:
            click.echo(f"   [{self.percentage:3d}%] {message}")
        else:
            click.echo(f"   {message}")

    def report(
        self,
        message: str | None = None,
        percentage: int | None = None,
        title: str | None = None,
    ) -> None:
        if title is not None:
            self.title = title
        if percentage is not None:
            self.percentage = percentage
        if message is not None:
            self._echo(message)

    def finish(self) -> None:
        pass

    def cancel(self) -> None:
        pass


class EchoProgressFactory:
    def create(
        self,
        title: str,
        message: str | None = None,
        percentage: int | None = None,
    ) -> ProgressHandle:
        return EchoProgress(title, message=message, percentage=percentage)


# ── Helpers ─────────────────────────────────────────────────────


def _fail(message: str, as_json: bool) -> NoReturn:
    if as_json:
        click.echo(json.dumps({"error": message}, indent=2))
    else:
        click.secho(f"❌ {message}", fg="red")
    sys.exit(1)


def _load(ctx: click.Context, as_json: bool, create: bool = False) -> PkgSyncConfig:
    try:
        return load_config(ctx.obj.get("config_path"), create=create)
    except ConfigError as e:
        _fail(str(e), as_json)


def _adapter(ctx: click.Context, config: PkgSyncConfig) -> PackageManagerAdapter:
    """Adapter from the context (tests inject one), else the real tool."""
    adapter = ctx.obj.get("adapter")
    if adapter is not None:
        return adapter
    from pkgsync.adapters.shell.command import PackageManagerCLI

    return PackageManagerCLI(
        binary=config.settings.binary,
        global_args=config.settings.global_args,
        timeout=config.settings.timeout,
    )


def _runner(ctx: click.Context, config: PkgSyncConfig, as_json: bool) -> SyncRunner:
    quiet = as_json or ctx.obj.get("quiet", False)
    return SyncRunner.from_config(
        config,
        adapter=_adapter(ctx, config),
        state=ctx.obj.get("state"),
        progress=LogProgressFactory() if quiet else EchoProgressFactory(),
    )


def _print_report(report: RunReport, as_json: bool) -> None:
    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
        if not report.ok:
            sys.exit(1)
        return

    click.echo()
    if report.ok:
        click.secho(f"✅ {report.operation} finished", fg="green", bold=True)
    else:
        click.secho(f"⚠️  {report.operation} finished with errors", fg="yellow", bold=True)

    for label, names in (
        ("Installed", report.installed),
        ("Updated", report.updated),
        ("Removed", report.removed),
    ):
        if names:
            click.echo(f"   {label}: {', '.join(names)}")

    if report.issues:
        click.echo()
        click.secho("   Errors:", fg="red", bold=True)
        for issue in report.issues:
            click.echo(f"   • {issue.message}")
        click.echo()
        sys.exit(1)

    click.echo()


# ── Reconcile ───────────────────────────────────────────────────


@click.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def sync(ctx: click.Context, as_json: bool) -> None:
    """Install, update and prune packages to match pkgsync.yml."""
    config = _load(ctx, as_json)
    if not as_json:
        click.secho(f"🔄 Syncing {len(config.packages)} package(s)...", fg="cyan")

    report = asyncio.run(_runner(ctx, config, as_json).sync(config.packages))
    _print_report(report, as_json)


@click.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def plan(ctx: click.Context, as_json: bool) -> None:
    """Show what sync would do, without doing it."""
    config = _load(ctx, as_json)
    try:
        result = asyncio.run(_runner(ctx, config, True).plan(config.packages))
    except PkgSyncError as e:
        _fail(str(e), as_json)

    if as_json:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return

    if result.empty and not result.errors:
        click.secho("✅ Everything is in-sync!", fg="green")
        return

    click.secho(f"📋 Planned actions ({result.total_actions}):", fg="cyan", bold=True)
    for action in result.external:
        click.echo(f"   ⚙️  {action.name} (handler)")
    for action in result.install:
        click.echo(f"   + {action.name} {action.version}")
    for action in result.update:
        arrow = "↓" if action.downgrade else "↑"
        click.echo(f"   {arrow} {action.name} {action.from_version} → {action.to_version}")
    for action in result.prune:
        click.echo(f"   - {action.name} (if unused)")

    if result.errors:
        click.echo()
        click.secho("   Errors:", fg="red", bold=True)
        for issue in result.errors:
            click.echo(f"   • {issue.message}")
        click.echo()
        sys.exit(1)
    click.echo()


# ── Act ─────────────────────────────────────────────────────────


@click.command()
@click.argument("name")
@click.argument("version", required=False)
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def install(ctx: click.Context, name: str, version: str | None, as_json: bool) -> None:
    """Install a package and record it in pkgsync.yml.

    VERSION may be a release or "dev"; the latest release by default.
    """
    config = _load(ctx, as_json, create=True)
    report = asyncio.run(_runner(ctx, config, as_json).add(name, version, config))
    _print_report(report, as_json)


@click.command()
@click.argument("name")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def prune(ctx: click.Context, name: str, as_json: bool) -> None:
    """Uninstall a package and its unused dependencies."""
    config = _load(ctx, as_json, create=True)
    report = asyncio.run(_runner(ctx, config, as_json).prune(name, config))
    _print_report(report, as_json)


@click.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def update(ctx: click.Context, as_json: bool) -> None:
    """Update every outdated package to its newest version."""
    config = _load(ctx, as_json, create=True)
    report = asyncio.run(_runner(ctx, config, as_json).update(config))
    _print_report(report, as_json)


# ── Observe ─────────────────────────────────────────────────────


@click.command("list")
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def list_packages(ctx: click.Context, as_json: bool) -> None:
    """List installed packages."""
    config = _load(ctx, as_json, create=False)
    runner = _runner(ctx, config, True)
    try:
        installed = asyncio.run(runner.reader.installed_packages())
    except PkgSyncError as e:
        _fail(str(e), as_json)

    declared = set(config.package_names())
    pkgs = [
        {"name": p.name, "version": p.version, "declared": p.name in declared}
        for p in sorted(installed.values(), key=lambda p: p.name)
    ]

    if as_json:
        click.echo(json.dumps({"packages": pkgs, "count": len(pkgs)}, indent=2))
        return

    click.secho(f"📦 Installed ({len(pkgs)}):", fg="cyan", bold=True)
    for p in pkgs:
        marker = "" if p["declared"] else "  (dependency)"
        click.echo(f"   {p['name']:<35} {p['version']}{marker}")
    click.echo()


@click.command()
@click.option("--json-output", "--json", "as_json", is_flag=True, help="Output as JSON.")
@click.pass_context
def outdated(ctx: click.Context, as_json: bool) -> None:
    """Check for outdated packages."""
    config = _load(ctx, as_json, create=False)
    runner = _runner(ctx, config, True)
    try:
        result = asyncio.run(runner.reader.outdated_packages())
    except PkgSyncError as e:
        _fail(str(e), as_json)

    pkgs = [p.model_dump() for p in result.values()]

    if as_json:
        click.echo(json.dumps({"outdated": pkgs, "count": len(pkgs)}, indent=2))
        return

    if not pkgs:
        click.secho("✅ All packages up to date", fg="green")
        return

    click.secho(f"📦 Outdated ({len(pkgs)}):", fg="yellow", bold=True)
    for p in pkgs:
        click.echo(f"   {p['name']:<30} {p['version']:<12} → {p['target_version']}")
    click.echo()
