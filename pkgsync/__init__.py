"""pkgsync — declarative package synchronization."""

__version__ = "0.1.0"
