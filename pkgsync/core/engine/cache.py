"""
Removable-package cache.

Holds the names of installed packages that are currently safe to prune
(nothing else depends on them), for completion and listing in the UI.
It is a convenience only; the engine never plans from it.

Lifecycle:
    - empty at startup
    - invalidated before every install or remove
    - repopulated after every run, including runs with errors
"""

from __future__ import annotations

import logging

from pkgsync.core.services.installed_state import InstalledStateReader

logger = logging.getLogger(__name__)


class RemovableCache:
    """Process-scoped cache of prunable package names."""

    def __init__(self) -> None:
        self._names: list[str] | None = None

    @property
    def populated(self) -> bool:
        return self._names is not None

    def get(self) -> list[str] | None:
        """Cached names, or None if the cache is stale."""
        return list(self._names) if self._names is not None else None

    def invalidate(self) -> None:
        self._names = None

    async def populate(self, reader: InstalledStateReader) -> list[str]:
        """Recompute the cache from a fresh read of installed state."""
        self._names = await reader.removable_packages()
        logger.debug("Removable packages: %s", ", ".join(self._names) or "(none)")
        return list(self._names)
