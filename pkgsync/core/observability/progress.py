"""
Progress reporting — the sink a run writes human-readable events to.

A run opens one handle for itself and one extra handle per error, so
errors surface as separate, individually dismissible notifications.
The engine only sees the abstract interface; the CLI and tests provide
concrete sinks.

    handle = factory.create("Syncing", percentage=0)
    handle.report(message="Installing: foo")
    handle.report(percentage=50)
    handle.finish()          # or handle.cancel()
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Protocol

logger = logging.getLogger(__name__)


class ProgressHandle(ABC):
    """One progress notification."""

    @abstractmethod
    def report(
        self,
        message: str | None = None,
        percentage: int | None = None,
        title: str | None = None,
    ) -> None:
        """Update any of message, percentage and title."""

    @abstractmethod
    def finish(self) -> None:
        """Mark the notification as completed."""

    @abstractmethod
    def cancel(self) -> None:
        """Dismiss the notification without marking it complete."""


class ProgressFactory(Protocol):
    """Creates progress handles."""

    def create(
        self,
        title: str,
        message: str | None = None,
        percentage: int | None = None,
    ) -> ProgressHandle: ...


# ── Logging sink (default) ──────────────────────────────────────────


class LogProgress(ProgressHandle):
    """Progress handle that writes every update to the log."""

    def __init__(self, title: str, message: str | None = None, percentage: int | None = None):
        self.title = title
        self.message = message
        self.percentage = percentage
        if message:
            logger.info("[%s] %s", title, message)

    def report(
        self,
        message: str | None = None,
        percentage: int | None = None,
        title: str | None = None,
    ) -> None:
        if title is not None:
            self.title = title
        if percentage is not None:
            self.percentage = percentage
        if message is not None:
            self.message = message
            if self.percentage is not None:
                logger.info("[%s %3d%%] %s", self.title, self.percentage, message)
            else:
                logger.info("[%s] %s", self.title, message)

    def finish(self) -> None:
        logger.debug("[%s] finished", self.title)

    def cancel(self) -> None:
        logger.debug("[%s] cancelled", self.title)


class LogProgressFactory:
    def create(
        self,
        title: str,
        message: str | None = None,
        percentage: int | None = None,
    ) -> ProgressHandle:
        return LogProgress(title, message=message, percentage=percentage)


# ── In-memory sink ──────────────────────────────────────────────────


@dataclass
class MemoryProgress(ProgressHandle):
    """Progress handle that records every event, for tests and JSON output."""

    title: str
    message: str | None = None
    percentage: int | None = None
    events: list[dict[str, Any]] = field(default_factory=list)
    state: str = "active"  # active, finished, cancelled

    def report(
        self,
        message: str | None = None,
        percentage: int | None = None,
        title: str | None = None,
    ) -> None:
        event: dict[str, Any] = {}
        if title is not None:
            self.title = event["title"] = title
        if message is not None:
            self.message = event["message"] = message
        if percentage is not None:
            self.percentage = event["percentage"] = percentage
        self.events.append(event)

    def finish(self) -> None:
        self.state = "finished"

    def cancel(self) -> None:
        self.state = "cancelled"

    @property
    def messages(self) -> list[str]:
        return [e["message"] for e in self.events if "message" in e]

    @property
    def percentages(self) -> list[int]:
        return [e["percentage"] for e in self.events if "percentage" in e]


class MemoryProgressFactory:
    """Keeps every handle it creates, in creation order."""

    def __init__(self) -> None:
        self.handles: list[MemoryProgress] = []

    def create(
        self,
        title: str,
        message: str | None = None,
        percentage: int | None = None,
    ) -> MemoryProgress:
        handle = MemoryProgress(title=title, message=message, percentage=percentage)
        self.handles.append(handle)
        return handle

    def titled(self, title: str) -> list[MemoryProgress]:
        return [h for h in self.handles if h.title == title]
