"""
Package-manager CLI adapter — run the real binary as a child process.

The process runs concurrently with the event loop: output is collected
on a worker thread, and the completion callback is scheduled back onto
the loop. The caller's coroutine is free to suspend while it waits.
"""

from __future__ import annotations

import asyncio
import logging
import shutil
import subprocess
from typing import Sequence

from pkgsync.adapters.base import (
    SPAWN_FAILURE_CODE,
    CompletionCallback,
    PackageManagerAdapter,
)
from pkgsync.core.engine.future import ResultHandle
from pkgsync.core.models.action import ProcessResult

logger = logging.getLogger(__name__)


class PackageManagerCLI(PackageManagerAdapter):
    """Invoke a package-manager executable.

    Args:
        binary: Executable name or path (e.g. ``luarocks``).
        global_args: Arguments prepended to every invocation
            (e.g. ``["--tree", "/opt/rocks"]``).
        timeout: Seconds before a running process is killed.
    """

    def __init__(
        self,
        binary: str = "luarocks",
        global_args: Sequence[str] = (),
        timeout: float | None = 300,
    ):
        self._binary = binary
        self._global_args = list(global_args)
        self._timeout = timeout
        self._pending: set[asyncio.Task] = set()

    @property
    def name(self) -> str:
        return self._binary

    def is_available(self) -> bool:
        return shutil.which(self._binary) is not None

    def command(self, args: Sequence[str]) -> list[str]:
        """Full argument vector for an invocation."""
        return [self._binary, *self._global_args, *args]

    def run(
        self,
        args: Sequence[str],
        on_complete: CompletionCallback | None = None,
    ) -> ResultHandle[ProcessResult]:
        loop = asyncio.get_running_loop()
        future: asyncio.Future[ProcessResult] = loop.create_future()
        cmd = self.command(args)

        def _finish(result: ProcessResult) -> None:
            if on_complete is not None:
                try:
                    on_complete(result)
                except Exception as e:
                    logger.error("Completion callback for '%s' raised: %s", " ".join(cmd), e)
            if not future.done():
                future.set_result(result)

        logger.debug("Executing: %s", " ".join(cmd))

        try:
            proc = subprocess.Popen(
                cmd,
                stdout=subprocess.PIPE,
                stderr=subprocess.PIPE,
                text=True,
            )
        except OSError as e:
            logger.error("Cannot run %s: %s", self._binary, e)
            result = ProcessResult(
                args=list(args),
                code=SPAWN_FAILURE_CODE,
                stderr=f"Failed to spawn {self._binary}: {e}",
                spawn_failed=True,
            )
            loop.call_soon(_finish, result)
            return ResultHandle(future)

        def _communicate() -> ProcessResult:
            try:
                stdout, stderr = proc.communicate(timeout=self._timeout)
            except subprocess.TimeoutExpired:
                proc.kill()
                stdout, stderr = proc.communicate()
                stderr = (stderr or "") + f"\nCommand timed out after {self._timeout}s"
            return ProcessResult(
                args=list(args),
                code=proc.returncode,
                stdout=stdout or "",
                stderr=stderr or "",
            )

        async def _collect() -> None:
            result = await loop.run_in_executor(None, _communicate)
            _finish(result)

        task = loop.create_task(_collect())
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)

        return ResultHandle(future, blocker=proc.wait)
