"""
pkgsync — CLI entrypoint.

Usage:
    pkgsync --help
    pkgsync sync
    pkgsync install foo 1.0.0
"""

from __future__ import annotations

from pathlib import Path

import click

from pkgsync import __version__
from pkgsync.core.observability.logging_config import flag_level, setup_logging


@click.group()
@click.version_option(version=__version__, prog_name="pkgsync")
@click.option("--verbose", "-v", is_flag=True, help="Enable verbose output.")
@click.option("--quiet", "-q", is_flag=True, help="Suppress non-essential output.")
@click.option("--debug", is_flag=True, help="Enable debug logging (very verbose).")
@click.option(
    "--config",
    "-c",
    "config_path",
    type=click.Path(exists=False),
    default=None,
    help="Path to pkgsync.yml (default: auto-detect).",
)
@click.pass_context
def cli(
    ctx: click.Context,
    verbose: bool,
    quiet: bool,
    debug: bool,
    config_path: str | None,
) -> None:
    """pkgsync — keep installed packages in sync with pkgsync.yml."""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose
    ctx.obj["quiet"] = quiet
    ctx.obj["debug"] = debug
    ctx.obj["config_path"] = Path(config_path) if config_path else None

    setup_logging(level=flag_level(verbose=verbose, quiet=quiet, debug=debug))


# ── Register commands from pkgsync/ui/cli/ ──────────────────────

from pkgsync.ui.cli.packages import (  # noqa: E402
    install,
    list_packages,
    outdated,
    plan,
    prune,
    sync,
    update,
)

cli.add_command(sync)
cli.add_command(plan)
cli.add_command(install)
cli.add_command(prune)
cli.add_command(update)
cli.add_command(list_packages)
cli.add_command(outdated)


if __name__ == "__main__":
    cli()
