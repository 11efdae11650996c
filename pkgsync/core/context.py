"""
Process state — the handler list and the removable cache.

Both are process-scoped and shared by every run, so they live in one
explicit object that is passed to the engine. Entry points use the
default instance; tests build their own.

    - Handlers:  empty at startup, appended by register().
    - Cache:     empty at startup, invalidated before any install or
                 remove, repopulated after every completed run.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from pkgsync.core.engine.cache import RemovableCache
from pkgsync.core.engine.handlers import HandlerRegistry


@dataclass
class ProcessState:
    """Shared mutable state of the reconciliation engine."""

    handlers: HandlerRegistry = field(default_factory=HandlerRegistry)
    removable: RemovableCache = field(default_factory=RemovableCache)


_default_state: ProcessState | None = None


def get_process_state() -> ProcessState:
    """Return the process-wide state, creating it on first use."""
    global _default_state
    if _default_state is None:
        _default_state = ProcessState()
    return _default_state


def reset_process_state() -> None:
    """Drop the process-wide state (used by tests)."""
    global _default_state
    _default_state = None
