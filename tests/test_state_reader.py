"""
Tests for the installed-state reader.
"""

import pytest

from pkgsync.adapters.mock import MockPackageManager
from pkgsync.adapters.shell.command import PackageManagerCLI
from pkgsync.core.engine.errors import SpawnFailure, ToolFailure
from pkgsync.core.services.installed_state import InstalledStateReader


class TestInstalledStateReader:
    @pytest.mark.asyncio
    async def test_installed_packages(self, mock_pm: MockPackageManager):
        mock_pm.preinstall("foo", "1.0.0")
        mock_pm.preinstall("bar", "scm-1")
        installed = await InstalledStateReader(mock_pm).installed_packages()
        assert {n: p.version for n, p in installed.items()} == {
            "foo": "1.0.0",
            "bar": "scm-1",
        }

    @pytest.mark.asyncio
    async def test_empty_tree(self, mock_pm: MockPackageManager):
        assert await InstalledStateReader(mock_pm).installed_packages() == {}

    @pytest.mark.asyncio
    async def test_list_failure_raises(self, mock_pm: MockPackageManager):
        mock_pm.set_failure("list", "*", "tree is locked")
        with pytest.raises(ToolFailure) as exc:
            await InstalledStateReader(mock_pm).installed_packages()
        assert exc.value.stderr == "tree is locked"
        assert "tree is locked" in str(exc.value)

    @pytest.mark.asyncio
    async def test_spawn_failure_raises(self):
        reader = InstalledStateReader(PackageManagerCLI(binary="/nonexistent/pkgsync-test-binary"))
        with pytest.raises(SpawnFailure):
            await reader.installed_packages()

    @pytest.mark.asyncio
    async def test_dependencies_of(self, mock_pm: MockPackageManager):
        mock_pm.preinstall("lib", "1.2.0")
        mock_pm.preinstall("app", "1.0", ["lib"])
        deps = await InstalledStateReader(mock_pm).dependencies_of("App")
        assert list(deps) == ["lib"]
        assert deps["lib"].version == "1.2.0"

    @pytest.mark.asyncio
    async def test_dependencies_of_unknown(self, mock_pm: MockPackageManager):
        assert await InstalledStateReader(mock_pm).dependencies_of("ghost") == {}

    @pytest.mark.asyncio
    async def test_outdated(self, mock_pm: MockPackageManager):
        mock_pm.preinstall("foo", "1.0")
        mock_pm.publish("foo", "1.1")
        outdated = await InstalledStateReader(mock_pm).outdated_packages()
        assert outdated["foo"].version == "1.0"
        assert outdated["foo"].target_version == "1.1"

    @pytest.mark.asyncio
    async def test_removable(self, mock_pm: MockPackageManager):
        mock_pm.preinstall("lib", "1.0")
        mock_pm.preinstall("app", "1.0", ["lib"])
        mock_pm.preinstall("tool", "1.0")
        assert await InstalledStateReader(mock_pm).removable_packages() == ["app", "tool"]
