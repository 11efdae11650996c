"""
Logging setup for the pkgsync CLI.

Records go to stderr so stdout stays clean for ``--json`` output.

The console level comes from the global flags, else PKGSYNC_LOG_LEVEL,
else WARNING. PKGSYNC_LOG_FILE adds a file handler with its own level
(PKGSYNC_LOG_FILE_LEVEL), e.g. a DEBUG trace of every package-manager
invocation while the terminal only shows warnings.
"""

from __future__ import annotations

import logging
import os
import sys
from dataclasses import dataclass
from pathlib import Path

ENV_LOG_LEVEL = "PKGSYNC_LOG_LEVEL"
ENV_LOG_FILE = "PKGSYNC_LOG_FILE"
ENV_LOG_FILE_LEVEL = "PKGSYNC_LOG_FILE_LEVEL"

# Console format per level; anything above INFO prints the bare message
_CONSOLE_FORMATS: dict[int, tuple[str, str]] = {
    logging.DEBUG: ("%(asctime)s %(levelname)-5s %(name)s:%(lineno)d %(message)s", "%H:%M:%S"),
    logging.INFO: ("%(asctime)s %(levelname)-5s %(message)s", "%H:%M:%S"),
}
_FILE_FORMAT = "%(asctime)s %(levelname)-5s [%(name)s] %(message)s"
_FILE_DATEFMT = "%Y-%m-%d %H:%M:%S"


@dataclass(frozen=True)
class LogTargets:
    """Where log records go, and from which level."""

    console_level: int
    file: Path | None = None
    file_level: int | None = None

    @property
    def root_level(self) -> int:
        if self.file is None or self.file_level is None:
            return self.console_level
        return min(self.console_level, self.file_level)


def flag_level(*, verbose: bool = False, quiet: bool = False, debug: bool = False) -> str | None:
    """Level selected by the global CLI flags; None defers to the environment."""
    if debug:
        return "DEBUG"
    if verbose:
        return "INFO"
    if quiet:
        return "ERROR"
    return None


def resolve_targets(
    level: str | None = None,
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> LogTargets:
    """Merge explicit arguments with the PKGSYNC_LOG_* environment."""
    console_level = _parse_level(level or os.environ.get(ENV_LOG_LEVEL))
    path = log_file or os.environ.get(ENV_LOG_FILE)
    if not path:
        return LogTargets(console_level=console_level)

    file_level_name = log_file_level or os.environ.get(ENV_LOG_FILE_LEVEL)
    file_level = _parse_level(file_level_name) if file_level_name else console_level
    return LogTargets(console_level=console_level, file=Path(path), file_level=file_level)


def setup_logging(
    level: str | None = None,
    log_file: str | None = None,
    log_file_level: str | None = None,
) -> LogTargets:
    """Configure the root logger once, at process start.

    Args:
        level: Console level name (DEBUG, INFO, WARNING, ERROR, CRITICAL).
        log_file: Path of an extra log file.
        log_file_level: Level of the file handler; defaults to ``level``.

    Returns:
        The resolved targets.
    """
    targets = resolve_targets(level, log_file, log_file_level)
    fmt, datefmt = _CONSOLE_FORMATS.get(targets.console_level, ("%(message)s", None))

    logging.basicConfig(
        level=targets.root_level,
        stream=sys.stderr,
        format=fmt,
        datefmt=datefmt,
        force=True,
    )
    root = logging.getLogger()
    root.handlers[0].setLevel(targets.console_level)

    if targets.file is not None:
        fh = logging.FileHandler(targets.file, encoding="utf-8")
        fh.setLevel(targets.file_level)
        fh.setFormatter(logging.Formatter(_FILE_FORMAT, datefmt=_FILE_DATEFMT))
        root.addHandler(fh)

    # asyncio reports slow callbacks at DEBUG
    asyncio_level = logging.WARNING if targets.console_level > logging.DEBUG else logging.NOTSET
    logging.getLogger("asyncio").setLevel(asyncio_level)

    # A closed stderr must not abort a run
    logging.raiseExceptions = False
    return targets


def _parse_level(level: str | None) -> int:
    if not level:
        return logging.WARNING
    numeric = logging.getLevelName(level.upper())
    return numeric if isinstance(numeric, int) else logging.WARNING
