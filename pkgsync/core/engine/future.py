"""
One-shot result handle.

A handle wraps a single terminal value (a result or an error) produced
once by a background activity, typically a package-manager process.
The consumer picks exactly one way to wait:

    - ``await handle.wait()`` suspends the calling coroutine and
      returns the value (or raises the stored error).
    - ``handle.wait_sync()`` blocks the calling thread until the
      underlying process has exited.

Either call consumes the handle. A second call raises
HandleConsumedError, so the two waits can never race each other.
"""

from __future__ import annotations

import asyncio
from typing import Callable, Generic, TypeVar

from pkgsync.core.engine.errors import HandleConsumedError

T = TypeVar("T")


class ResultHandle(Generic[T]):
    """Single-producer, single-consumer result of an asynchronous operation."""

    def __init__(
        self,
        future: asyncio.Future[T],
        blocker: Callable[[], object] | None = None,
    ) -> None:
        self._future = future
        self._blocker = blocker
        self._consumed = False

    @property
    def blocker(self) -> Callable[[], object] | None:
        """Callable that blocks until the underlying work is finished."""
        return self._blocker

    @property
    def consumed(self) -> bool:
        return self._consumed

    def done(self) -> bool:
        """Whether the terminal value is available (does not consume)."""
        return self._future.done()

    def _consume(self) -> None:
        if self._consumed:
            raise HandleConsumedError("Result handle has already been consumed")
        self._consumed = True

    async def wait(self) -> T:
        """Suspend until the value is available and return it.

        Raises:
            HandleConsumedError: If the handle was already waited on.
            Exception: Whatever error the producer stored.
        """
        self._consume()
        return await self._future

    def wait_sync(self) -> None:
        """Block the current thread until the underlying work has finished.

        The value itself is delivered on the event loop, so this only
        guarantees completion of the external process.
        """
        self._consume()
        if self._blocker is not None:
            self._blocker()

