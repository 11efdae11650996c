"""
Adapter base — the contract between the engine and the package manager.

The engine never spawns processes itself. It hands an argument list to
an adapter and gets back a one-shot handle; the adapter fires the
completion callback exactly once, on the event loop, when the process
exits.

Adapters do not interpret results: exit code, stdout and stderr are
passed through verbatim in a ProcessResult. They NEVER raise for a
failed process, and a binary that cannot be spawned still produces a
(synthetic, non-zero) ProcessResult.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Callable, Sequence

from pkgsync.core.engine.future import ResultHandle
from pkgsync.core.models.action import ProcessResult

CompletionCallback = Callable[[ProcessResult], None]

# Exit code reported when the binary could not be started
SPAWN_FAILURE_CODE = 127


class PackageManagerAdapter(ABC):
    """Abstract base class for package-manager invokers.

    To create a new adapter:
        1. Subclass PackageManagerAdapter
        2. Implement name, is_available, run
        3. Pass it to the engine (see pkgsync.core.engine.executor)
    """

    @property
    @abstractmethod
    def name(self) -> str:
        """The adapter identifier (e.g., 'luarocks', 'mock')."""

    @abstractmethod
    def is_available(self) -> bool:
        """Check if the underlying tool can be invoked.

        Should be fast and never raise.
        """

    @abstractmethod
    def run(
        self,
        args: Sequence[str],
        on_complete: CompletionCallback | None = None,
    ) -> ResultHandle[ProcessResult]:
        """Start the package manager with ``args`` without blocking.

        Must be called from a coroutine running on an event loop.
        ``on_complete`` fires exactly once, on that loop, when the
        process exits.
        """

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} name={self.name!r}>"
