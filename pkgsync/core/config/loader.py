"""
Configuration loader — reads and writes pkgsync.yml.

The config file holds the engine settings and the desired state:

    settings:
      binary: luarocks
      global_args: ["--tree", "/opt/rocks"]
      dynamic_activation: true
    packages:
      foo: "1.0.0"
      bar: { version: "dev", opt: true }

Package values are either a bare version string or a mapping. They are
returned raw: normalization and error reporting belong to the planner.
Writes are atomic and keep unknown top-level keys.
"""

from __future__ import annotations

import logging
import os
import tempfile
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml
from pydantic import BaseModel, Field, ValidationError

from pkgsync.core.models.package import canonical_name

logger = logging.getLogger(__name__)

# Default config filename
CONFIG_FILE = "pkgsync.yml"

# Environment override for the package-manager binary
ENV_BINARY = "PKGSYNC_BINARY"

DEFAULT_CONFIG = """\
settings:
  binary: luarocks
  global_args: []
  dynamic_activation: true
packages: {}
"""


class ConfigError(Exception):
    """Raised when the configuration is invalid or missing."""

    kind = "config"


class Settings(BaseModel):
    """Engine settings."""

    binary: str = "luarocks"
    global_args: list[str] = Field(default_factory=list)
    dynamic_activation: bool = True
    timeout: float | None = 300


@dataclass
class PkgSyncConfig:
    """A loaded config file."""

    path: Path
    settings: Settings = field(default_factory=Settings)
    packages: dict[str, Any] = field(default_factory=dict)
    raw: dict[str, Any] = field(default_factory=dict)

    @property
    def root(self) -> Path:
        return self.path.parent.resolve()

    @property
    def state_dir(self) -> Path:
        return self.root / ".pkgsync"

    def package_names(self) -> list[str]:
        return [canonical_name(str(name)) for name in self.packages]


def find_config_file(start_dir: Path | None = None) -> Path | None:
    """Search for pkgsync.yml starting from the given directory, walking up.

    Args:
        start_dir: Directory to start searching from (default: cwd).

    Returns:
        Path to pkgsync.yml, or None if not found.
    """
    current = (start_dir or Path.cwd()).resolve()

    for _ in range(20):  # safety limit
        candidate = current / CONFIG_FILE
        if candidate.is_file():
            return candidate
        parent = current.parent
        if parent == current:
            break  # filesystem root
        current = parent

    return None


def load_config(path: Path | None = None, *, create: bool = False) -> PkgSyncConfig:
    """Load and validate the configuration.

    Args:
        path: Explicit path to pkgsync.yml. If None, searches upward.
        create: Write the default config if the file does not exist.

    Returns:
        The loaded config.

    Raises:
        ConfigError: If the file is missing or invalid.
    """
    if path is None:
        path = find_config_file()

    if path is None:
        if not create:
            raise ConfigError(f"No {CONFIG_FILE} found. Specify one with --config.")
        path = Path.cwd() / CONFIG_FILE

    if not path.is_file():
        if not create:
            raise ConfigError(f"Config file not found: {path}")
        logger.info("Creating default config at %s", path)
        _atomic_write(path, DEFAULT_CONFIG)

    logger.debug("Loading config from %s", path)

    try:
        raw_text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise ConfigError(f"Cannot read {path}: {e}") from e

    try:
        data = yaml.safe_load(raw_text) or {}
    except yaml.YAMLError as e:
        raise ConfigError(f"Invalid YAML in {path}: {e}") from e

    if not isinstance(data, dict):
        raise ConfigError(f"Expected a YAML mapping in {path}, got {type(data).__name__}")

    packages = data.get("packages") or {}
    if not isinstance(packages, dict):
        raise ConfigError(f"'packages' must be a mapping in {path}")

    try:
        settings = Settings.model_validate(data.get("settings") or {})
    except ValidationError as e:
        raise ConfigError(f"Invalid settings in {path}: {e}") from e

    env_binary = os.environ.get(ENV_BINARY)
    if env_binary:
        settings = settings.model_copy(update={"binary": env_binary})

    config = PkgSyncConfig(path=path, settings=settings, packages=dict(packages), raw=data)
    logger.info("Loaded %d package(s) from %s", len(config.packages), path)
    return config


def save_config(config: PkgSyncConfig) -> None:
    """Write the packages back to disk, keeping every other key.

    Uses write-to-temp-then-rename to prevent corruption.
    """
    data = dict(config.raw)
    data["packages"] = config.packages
    content = yaml.safe_dump(data, sort_keys=False, default_flow_style=False)
    _atomic_write(config.path, content)
    config.raw = data
    logger.debug("Config saved to %s", config.path)


def set_package_version(config: PkgSyncConfig, name: str, version: str) -> None:
    """Record a new version for a package.

    A structured entry keeps its other keys; anything else becomes a
    bare version string.
    """
    key = _find_key(config, name) or canonical_name(name)
    current = config.packages.get(key)
    if isinstance(current, dict):
        config.packages[key] = {**current, "version": version}
    else:
        config.packages[key] = version


def remove_package(config: PkgSyncConfig, name: str) -> bool:
    """Drop a package from the config. Returns whether it was present."""
    key = _find_key(config, name)
    if key is None:
        return False
    del config.packages[key]
    return True


def _find_key(config: PkgSyncConfig, name: str) -> str | None:
    wanted = canonical_name(name)
    for key in config.packages:
        if canonical_name(str(key)) == wanted:
            return key
    return None


def _atomic_write(path: Path, content: str) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    fd, tmp_path = tempfile.mkstemp(dir=path.parent, prefix=".pkgsync_", suffix=".tmp")
    os.close(fd)
    tmp = Path(tmp_path)
    try:
        tmp.write_text(content, encoding="utf-8")
        tmp.replace(path)
    except Exception:
        tmp.unlink(missing_ok=True)
        raise
