"""
Handler registry — let external code own the sync/prune of some entries.

A handler may claim a desired entry by returning a sync callback for
it; the planner then leaves that entry alone and the executor runs the
callback instead. Before the engine prunes anything itself, every
handler may return a prune callback to clean up what it owns.

Callbacks receive two reporter functions and may call either any
number of times:

    def callback(report_progress, report_error) -> None | Awaitable[None]
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Protocol, runtime_checkable

from pkgsync.core.engine.errors import HandlerFailure
from pkgsync.core.models.package import DesiredEntry, DesiredState

logger = logging.getLogger(__name__)

Reporter = Callable[[str], None]
HandlerCallback = Callable[[Reporter, Reporter], "None | Awaitable[Any]"]


@runtime_checkable
class PackageHandler(Protocol):
    """Interface of an external handler. Both lookups may return None."""

    def get_sync_callback(self, entry: DesiredEntry) -> HandlerCallback | None:
        """Callback that syncs ``entry``, or None to leave it to the engine."""

    def get_prune_callback(self, entries: DesiredState) -> HandlerCallback | None:
        """Callback that prunes what this handler owns, or None."""


class HandlerRegistry:
    """Ordered list of handlers. Starts empty; registration order matters."""

    def __init__(self) -> None:
        self._handlers: list[PackageHandler] = []

    def register(self, handler: PackageHandler) -> None:
        """Append a handler. Earlier handlers win sync-callback conflicts."""
        self._handlers.append(handler)
        logger.debug("Registered handler: %s", handler.__class__.__name__)

    def __len__(self) -> int:
        return len(self._handlers)

    @property
    def handlers(self) -> list[PackageHandler]:
        return list(self._handlers)

    def sync_callback_for(self, entry: DesiredEntry) -> HandlerCallback | None:
        """First non-None sync callback for ``entry``.

        Raises:
            HandlerFailure: A handler raised during the lookup.
        """
        for handler in self._handlers:
            try:
                callback = handler.get_sync_callback(entry)
            except Exception as e:
                raise _lookup_failure(handler, entry.name, e) from e
            if callback is not None:
                return callback
        return None

    def prune_callbacks(
        self,
        entries: DesiredState,
        errors: list[HandlerFailure] | None = None,
    ) -> list[HandlerCallback]:
        """Prune callbacks of every handler that returns one.

        A handler that raises is skipped and its failure appended to
        ``errors``; without an ``errors`` list the failure is raised.
        """
        callbacks = []
        for handler in self._handlers:
            try:
                callback = handler.get_prune_callback(entries)
            except Exception as e:
                failure = _lookup_failure(handler, None, e)
                if errors is None:
                    raise failure from e
                errors.append(failure)
                continue
            if callback is not None:
                callbacks.append(callback)
        return callbacks

    def clear(self) -> None:
        self._handlers.clear()


def _lookup_failure(handler: PackageHandler, name: str | None, error: Exception) -> HandlerFailure:
    label = handler.__class__.__name__
    logger.error("Handler %s failed: %s", label, error)
    failure = HandlerFailure(f"Handler {label} failed: {error}", package=name)
    failure.__cause__ = error
    return failure
