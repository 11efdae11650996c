"""
Tests for the configuration loader — pkgsync.yml parsing and write-back.
"""

import textwrap
from pathlib import Path

import pytest
import yaml

from pkgsync.core.config.loader import (
    CONFIG_FILE,
    ConfigError,
    find_config_file,
    load_config,
    remove_package,
    save_config,
    set_package_version,
)


class TestFindConfigFile:
    def test_in_current_dir(self, tmp_path: Path):
        (tmp_path / CONFIG_FILE).write_text("packages: {}\n")
        assert find_config_file(tmp_path) == (tmp_path / CONFIG_FILE).resolve()

    def test_walks_up(self, tmp_path: Path):
        (tmp_path / CONFIG_FILE).write_text("packages: {}\n")
        nested = tmp_path / "a" / "b"
        nested.mkdir(parents=True)
        assert find_config_file(nested) == (tmp_path / CONFIG_FILE).resolve()

    def test_not_found(self, tmp_path: Path):
        assert find_config_file(tmp_path) is None


class TestLoadConfig:
    def test_full(self, write_config):
        path = write_config(textwrap.dedent("""\
            settings:
              binary: /opt/bin/luarocks
              global_args: ["--tree", "/opt/rocks"]
              dynamic_activation: false
            packages:
              foo: "1.0.0"
              bar: { version: dev, opt: true }
        """))
        config = load_config(path)
        assert config.settings.binary == "/opt/bin/luarocks"
        assert config.settings.global_args == ["--tree", "/opt/rocks"]
        assert config.settings.dynamic_activation is False
        assert config.packages["foo"] == "1.0.0"
        assert config.packages["bar"] == {"version": "dev", "opt": True}
        assert config.package_names() == ["foo", "bar"]

    def test_defaults(self, write_config):
        config = load_config(write_config("packages: {}\n"))
        assert config.settings.binary == "luarocks"
        assert config.settings.dynamic_activation is True
        assert config.packages == {}

    def test_empty_file(self, write_config):
        config = load_config(write_config(""))
        assert config.packages == {}

    def test_state_dir(self, write_config, tmp_path: Path):
        config = load_config(write_config("packages: {}\n"))
        assert config.state_dir == tmp_path.resolve() / ".pkgsync"

    def test_missing_file(self, tmp_path: Path):
        with pytest.raises(ConfigError, match="not found"):
            load_config(tmp_path / CONFIG_FILE)

    def test_create(self, tmp_path: Path):
        path = tmp_path / CONFIG_FILE
        config = load_config(path, create=True)
        assert path.is_file()
        assert config.packages == {}
        assert config.settings.binary == "luarocks"

    def test_invalid_yaml(self, write_config):
        with pytest.raises(ConfigError, match="Invalid YAML"):
            load_config(write_config("packages: [unclosed\n"))

    def test_not_a_mapping(self, write_config):
        with pytest.raises(ConfigError, match="Expected a YAML mapping"):
            load_config(write_config("- a\n- b\n"))

    def test_packages_not_a_mapping(self, write_config):
        with pytest.raises(ConfigError, match="'packages' must be a mapping"):
            load_config(write_config("packages: [foo]\n"))

    def test_invalid_settings(self, write_config):
        with pytest.raises(ConfigError, match="Invalid settings"):
            load_config(write_config("settings: { dynamic_activation: maybe }\n"))

    def test_env_binary_override(self, write_config, monkeypatch):
        monkeypatch.setenv("PKGSYNC_BINARY", "/custom/rocks")
        config = load_config(write_config("settings: { binary: luarocks }\n"))
        assert config.settings.binary == "/custom/rocks"


class TestWriteBack:
    def test_set_version_bare(self, write_config):
        path = write_config("packages:\n  foo: '1.0'\n")
        config = load_config(path)
        set_package_version(config, "FOO", "2.0")
        set_package_version(config, "new", "0.1")
        save_config(config)
        assert yaml.safe_load(path.read_text())["packages"] == {"foo": "2.0", "new": "0.1"}

    def test_set_version_structured(self, write_config):
        path = write_config("packages:\n  bar: { version: '1.0', opt: true }\n")
        config = load_config(path)
        set_package_version(config, "bar", "scm-1")
        save_config(config)
        assert yaml.safe_load(path.read_text())["packages"]["bar"] == {
            "version": "scm-1",
            "opt": True,
        }

    def test_remove_package(self, write_config):
        path = write_config("packages:\n  Foo: '1.0'\n  bar: '1.0'\n")
        config = load_config(path)
        assert remove_package(config, "foo") is True
        assert remove_package(config, "ghost") is False
        save_config(config)
        assert yaml.safe_load(path.read_text())["packages"] == {"bar": "1.0"}

    def test_unknown_keys_preserved(self, write_config):
        path = write_config("custom:\n  x: 1\nsettings:\n  binary: luarocks\npackages: {}\n")
        config = load_config(path)
        set_package_version(config, "foo", "1.0")
        save_config(config)
        data = yaml.safe_load(path.read_text())
        assert data["custom"] == {"x": 1}
        assert data["settings"] == {"binary": "luarocks"}

    def test_no_temp_files_left(self, write_config, tmp_path: Path):
        config = load_config(write_config("packages: {}\n"))
        save_config(config)
        assert [p.name for p in tmp_path.iterdir()] == [CONFIG_FILE]
