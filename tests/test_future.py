"""
Tests for the one-shot result handle.
"""

import asyncio

import pytest

from pkgsync.core.engine.errors import HandleConsumedError
from pkgsync.core.engine.future import ResultHandle


def _handle(value=None, error=None, blocker=None) -> ResultHandle:
    future = asyncio.get_running_loop().create_future()
    if error is not None:
        future.set_exception(error)
    else:
        future.set_result(value)
    return ResultHandle(future, blocker=blocker)


class TestResultHandle:
    @pytest.mark.asyncio
    async def test_wait_returns_value(self):
        handle = _handle(42)
        assert await handle.wait() == 42
        assert handle.consumed

    @pytest.mark.asyncio
    async def test_wait_raises_stored_error(self):
        handle = _handle(error=ValueError("boom"))
        with pytest.raises(ValueError, match="boom"):
            await handle.wait()

    @pytest.mark.asyncio
    async def test_second_wait_rejected(self):
        handle = _handle("x")
        await handle.wait()
        with pytest.raises(HandleConsumedError):
            await handle.wait()

    @pytest.mark.asyncio
    async def test_wait_sync_calls_blocker(self):
        calls = []
        handle = _handle("x", blocker=lambda: calls.append("blocked"))
        handle.wait_sync()
        assert calls == ["blocked"]

    @pytest.mark.asyncio
    async def test_wait_after_wait_sync_rejected(self):
        handle = _handle("x", blocker=lambda: None)
        handle.wait_sync()
        with pytest.raises(HandleConsumedError):
            await handle.wait()

    @pytest.mark.asyncio
    async def test_wait_sync_after_wait_rejected(self):
        handle = _handle("x")
        await handle.wait()
        with pytest.raises(HandleConsumedError):
            handle.wait_sync()

    @pytest.mark.asyncio
    async def test_done_does_not_consume(self):
        handle = _handle("x")
        assert handle.done()
        assert not handle.consumed
        assert await handle.wait() == "x"

    @pytest.mark.asyncio
    async def test_pending_until_resolved(self):
        future = asyncio.get_running_loop().create_future()
        handle = ResultHandle(future)
        assert not handle.done()
        asyncio.get_running_loop().call_soon(future.set_result, "late")
        assert await handle.wait() == "late"
