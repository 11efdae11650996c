"""
Tests for adapters — the real process invoker and the mock package manager.

The real invoker is exercised with the running interpreter standing in
for the package manager.
"""

import asyncio
import sys

import pytest

from pkgsync.adapters.base import SPAWN_FAILURE_CODE, PackageManagerAdapter
from pkgsync.adapters.mock import MockPackageManager
from pkgsync.adapters.shell.command import PackageManagerCLI
from pkgsync.core.engine.errors import HandleConsumedError

MISSING_BINARY = "/nonexistent/pkgsync-test-binary"


# ── Process invoker ─────────────────────────────────────────────────


class TestPackageManagerCLI:
    def test_is_adapter(self):
        assert isinstance(PackageManagerCLI(), PackageManagerAdapter)

    def test_command_prepends_global_args(self):
        cli = PackageManagerCLI(binary="luarocks", global_args=["--tree", "/opt/rocks"])
        assert cli.command(["list", "--porcelain"]) == [
            "luarocks",
            "--tree",
            "/opt/rocks",
            "list",
            "--porcelain",
        ]

    def test_available(self):
        assert PackageManagerCLI(binary=sys.executable).is_available()
        assert not PackageManagerCLI(binary=MISSING_BINARY).is_available()

    def test_name_is_binary(self):
        assert PackageManagerCLI(binary="luarocks").name == "luarocks"

    @pytest.mark.asyncio
    async def test_success(self):
        cli = PackageManagerCLI(binary=sys.executable)
        result = await cli.run(["-c", "print('hello')"]).wait()
        assert result.ok
        assert result.code == 0
        assert result.stdout == "hello\n"
        assert not result.spawn_failed

    @pytest.mark.asyncio
    async def test_nonzero_exit_passes_output_through(self):
        cli = PackageManagerCLI(binary=sys.executable)
        result = await cli.run(
            ["-c", "import sys; print('out'); sys.stderr.write('boom'); sys.exit(3)"]
        ).wait()
        assert not result.ok
        assert result.code == 3
        assert result.stdout == "out\n"
        assert result.stderr == "boom"

    @pytest.mark.asyncio
    async def test_callback_fires_once(self):
        cli = PackageManagerCLI(binary=sys.executable)
        seen = []
        result = await cli.run(["-c", "print('x')"], seen.append).wait()
        await asyncio.sleep(0)
        assert seen == [result]

    @pytest.mark.asyncio
    async def test_spawn_failure(self):
        cli = PackageManagerCLI(binary=MISSING_BINARY)
        seen = []
        result = await cli.run(["list"], seen.append).wait()
        assert result.spawn_failed
        assert result.code == SPAWN_FAILURE_CODE
        assert MISSING_BINARY in result.stderr
        assert seen == [result]

    @pytest.mark.asyncio
    async def test_spawn_failure_callback_not_inline(self):
        cli = PackageManagerCLI(binary=MISSING_BINARY)
        seen = []
        handle = cli.run(["list"], seen.append)
        assert seen == []
        await handle.wait()
        assert len(seen) == 1

    @pytest.mark.asyncio
    async def test_wait_sync_blocks_until_exit(self):
        cli = PackageManagerCLI(binary=sys.executable)
        seen = []
        done = asyncio.Event()

        def on_complete(result):
            seen.append(result)
            done.set()

        handle = cli.run(["-c", "import time; time.sleep(0.2); print('late')"], on_complete)
        handle.wait_sync()
        await asyncio.wait_for(done.wait(), timeout=10)
        assert seen[0].stdout == "late\n"
        with pytest.raises(HandleConsumedError):
            await handle.wait()

    @pytest.mark.asyncio
    async def test_timeout_kills_process(self):
        cli = PackageManagerCLI(binary=sys.executable, timeout=0.5)
        result = await cli.run(["-c", "import time; time.sleep(10)"]).wait()
        assert not result.ok
        assert "timed out" in result.stderr

    @pytest.mark.asyncio
    async def test_callback_error_still_resolves(self):
        cli = PackageManagerCLI(binary=sys.executable)

        def broken(result):
            raise RuntimeError("callback bug")

        result = await cli.run(["-c", "print('x')"], broken).wait()
        assert result.ok


# ── Mock package manager ────────────────────────────────────────────


class TestMockPackageManager:
    @pytest.mark.asyncio
    async def test_install_latest(self, mock_pm: MockPackageManager):
        mock_pm.publish("foo", "1.0.0")
        mock_pm.publish("foo", "1.2.0")
        result = await mock_pm.run(["install", "foo"]).wait()
        assert result.ok
        assert "foo 1.2.0-1 is now installed" in result.stdout
        assert mock_pm.installed() == {"foo": "1.2.0"}

    @pytest.mark.asyncio
    async def test_install_dev(self, mock_pm: MockPackageManager):
        mock_pm.publish("foo", "scm-1")
        result = await mock_pm.run(["install", "foo", "--dev"]).wait()
        assert result.ok
        assert "foo scm-1 is now installed" in result.stdout
        assert mock_pm.installed() == {"foo": "scm-1"}

    @pytest.mark.asyncio
    async def test_install_unknown_version(self, mock_pm: MockPackageManager):
        mock_pm.publish("foo", "1.0.0")
        result = await mock_pm.run(["install", "foo", "9.9.9"]).wait()
        assert not result.ok
        assert mock_pm.installed() == {}

    @pytest.mark.asyncio
    async def test_install_pulls_dependencies(self, mock_pm: MockPackageManager):
        mock_pm.publish("lib", "2.0")
        mock_pm.publish("app", "1.0", ["lib"])
        await mock_pm.run(["install", "app", "1.0"]).wait()
        assert mock_pm.installed() == {"app": "1.0", "lib": "2.0"}

    @pytest.mark.asyncio
    async def test_remove_refuses_needed_package(self, mock_pm: MockPackageManager):
        mock_pm.preinstall("lib", "1.0")
        mock_pm.preinstall("app", "1.0", ["lib"])
        result = await mock_pm.run(["remove", "lib"]).wait()
        assert not result.ok
        assert "needed by app" in result.stderr
        assert "lib" in mock_pm.installed()

    @pytest.mark.asyncio
    async def test_remove_missing_package(self, mock_pm: MockPackageManager):
        result = await mock_pm.run(["remove", "ghost"]).wait()
        assert not result.ok
        assert result.stderr == "Could not find package 'ghost' in /mock/tree"

    @pytest.mark.asyncio
    async def test_list_porcelain(self, mock_pm: MockPackageManager):
        mock_pm.preinstall("foo", "1.0")
        mock_pm.preinstall("bar", "scm-1")
        result = await mock_pm.run(["list", "--porcelain"]).wait()
        assert result.stdout.splitlines() == [
            "bar\tscm-1\tinstalled\t/mock/tree",
            "foo\t1.0-1\tinstalled\t/mock/tree",
        ]

    @pytest.mark.asyncio
    async def test_list_outdated(self, mock_pm: MockPackageManager):
        mock_pm.preinstall("foo", "1.0")
        mock_pm.publish("foo", "2.0")
        mock_pm.preinstall("bar", "1.0")
        result = await mock_pm.run(["list", "--outdated", "--porcelain"]).wait()
        lines = result.stdout.splitlines()
        assert len(lines) == 1
        assert lines[0].startswith("foo\t1.0-1\t2.0-1\t")

    @pytest.mark.asyncio
    async def test_show_dependencies(self, mock_pm: MockPackageManager):
        mock_pm.preinstall("lib", "1.0")
        mock_pm.preinstall("app", "1.0", ["lib"])
        result = await mock_pm.run(["show", "--porcelain", "app"]).wait()
        assert "dependency\tlib\tlib 1.0-1" in result.stdout.splitlines()

    @pytest.mark.asyncio
    async def test_injected_failure(self, mock_pm: MockPackageManager):
        mock_pm.publish("foo", "1.0")
        mock_pm.set_failure("install", "foo", "network down")
        result = await mock_pm.run(["install", "foo", "1.0"]).wait()
        assert not result.ok
        assert result.stderr == "network down"

    @pytest.mark.asyncio
    async def test_call_log(self, mock_pm: MockPackageManager):
        await mock_pm.run(["list", "--porcelain"]).wait()
        await mock_pm.run(["install", "foo"]).wait()
        assert mock_pm.call_count == 2
        assert mock_pm.calls("install") == [["install", "foo"]]
        mock_pm.reset()
        assert mock_pm.call_count == 0
