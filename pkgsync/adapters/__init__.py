"""Adapters — bindings to the package-manager command line.

Public re-exports for convenient access.
"""

from pkgsync.adapters.base import PackageManagerAdapter
from pkgsync.adapters.mock import MockPackageManager
from pkgsync.adapters.shell.command import PackageManagerCLI

__all__ = [
    "MockPackageManager",
    "PackageManagerAdapter",
    "PackageManagerCLI",
]
