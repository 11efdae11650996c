"""
Version helpers — development markers and semantic ordering.

Package versions are opaque strings. Two conventions give them meaning:

    - ``dev`` (requested) and ``scm-*`` (installed) mark an unreleased
      build, which sorts above every released version.
    - Released versions are ordered with semantic versioning. Short
      forms like ``1.0`` are coerced to ``1.0.0`` before comparing.
"""

from __future__ import annotations

import semantic_version

from pkgsync.core.engine.errors import ParseFailure

# Requested development version (becomes the ``--dev`` flag on install)
DEV_VERSION = "dev"

# Prefix of installed development versions (e.g. ``scm-1``)
DEV_PREFIX = "scm"

# Version recorded in config after a development install
DEV_INSTALLED_VERSION = "scm-1"


def is_dev_version(version: str | None) -> bool:
    """Whether a version string denotes a development build."""
    if not version:
        return False
    return version == DEV_VERSION or version.startswith(DEV_PREFIX)


def parse_version(version: str) -> semantic_version.Version:
    """Parse a released version, leniently.

    Raises:
        ParseFailure: If the string cannot be read as a version.
    """
    try:
        return semantic_version.Version.coerce(version)
    except ValueError as e:
        raise ParseFailure(f"Unparseable version {version!r}: {e}") from e


def strip_revision(version: str) -> str:
    """Drop the trailing ``-<revision>`` of a released version.

    ``1.0.0-1`` → ``1.0.0``. Development versions keep their suffix so
    they can still be recognised (``scm-1`` stays ``scm-1``).
    """
    if is_dev_version(version):
        return version
    head, sep, tail = version.rpartition("-")
    if sep and head and tail.isdigit():
        return head
    return version


def versions_match(desired: str, installed: str) -> bool:
    """Whether an installed version satisfies a pinned desired version."""
    if is_dev_version(desired) and is_dev_version(installed):
        return True
    return desired == installed


def is_downgrade(installed: str, desired: str) -> bool:
    """Whether moving from ``installed`` to ``desired`` is a downgrade.

    A development build is newer than anything, so leaving one is always
    a downgrade and moving to one never is.

    Raises:
        ParseFailure: If either released version cannot be parsed.
    """
    if installed.startswith(DEV_PREFIX):
        return True
    if is_dev_version(desired):
        return False
    return parse_version(desired) < parse_version(installed)
