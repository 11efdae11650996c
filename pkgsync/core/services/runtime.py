"""
Runtime activation — hand freshly installed packages to the runtime.

Activation (e.g. adding the package's files to a search path) belongs
to the host application. The engine calls ``activate(name)`` after an
install, for eagerly-loaded packages only.
"""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class RuntimeActivator(Protocol):
    def activate(self, name: str) -> None: ...


class NullActivator:
    """Activator for hosts without a runtime: logs and does nothing."""

    def activate(self, name: str) -> None:
        logger.debug("No runtime to activate %s in", name)


class RecordingActivator:
    """Remembers activated packages, in order."""

    def __init__(self) -> None:
        self.activated: list[str] = []

    def activate(self, name: str) -> None:
        logger.debug("Activated %s", name)
        self.activated.append(name)
