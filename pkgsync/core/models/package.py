"""
Package models — what is installed, and what the user wants installed.

Names are the identity key and are lowercased at every boundary.
Records are immutable: a fresh one is produced whenever installed
state is re-read or an install completes.
"""

from __future__ import annotations

from pydantic import BaseModel, ConfigDict, Field, field_validator


def canonical_name(name: str) -> str:
    """Normalize a package name for use as a map key."""
    return name.strip().lower()


class Package(BaseModel):
    """An installed package."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    lazy: bool = False

    @field_validator("name")
    @classmethod
    def _lower_name(cls, v: str) -> str:
        return canonical_name(v)


class Dependency(BaseModel):
    """A dependency descriptor, as reported for an installed package."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str | None = None

    @field_validator("name")
    @classmethod
    def _lower_name(cls, v: str) -> str:
        return canonical_name(v)


class OutdatedPackage(BaseModel):
    """An installed package with a newer version available."""

    model_config = ConfigDict(frozen=True)

    name: str
    version: str
    target_version: str

    @field_validator("name")
    @classmethod
    def _lower_name(cls, v: str) -> str:
        return canonical_name(v)


class DesiredEntry(BaseModel):
    """A declared package: name, optional pinned version, optional lazy flag.

    On disk the lazy flag is spelled ``opt``. A version of ``None`` means
    "latest" for a one-off install; ``sync`` requires a pin.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    name: str
    version: str | None = None
    lazy: bool = Field(default=False, alias="opt")

    @field_validator("name")
    @classmethod
    def _lower_name(cls, v: str) -> str:
        return canonical_name(v)


InstalledState = dict[str, Package]
DesiredState = dict[str, DesiredEntry]
