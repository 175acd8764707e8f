from __future__ import annotations

from abc import ABC, abstractmethod
from enum import StrEnum

import structlog

log = structlog.get_logger()


class Permission(StrEnum):
    granted = "granted"
    denied = "denied"
    default = "default"


class Notifier(ABC):
    """Display side of reminders. Delivery is fire-and-forget."""

    supported: bool = True

    def permission(self) -> Permission:
        return Permission.granted

    async def request_permission(self) -> bool:
        return self.permission() == Permission.granted

    @abstractmethod
    def show(self, title: str, body: str, tag: str, require_interaction: bool = False) -> None:
        """Display one notification. ``tag`` identifies it for de-duplication."""


class LogNotifier(Notifier):
    """Writes reminders to the structured log."""

    def show(self, title: str, body: str, tag: str, require_interaction: bool = False) -> None:
        log.info("notify.sent", title=title, body=body, tag=tag, require_interaction=require_interaction)


class NullNotifier(Notifier):
    """Environment without any notification capability."""

    supported = False

    def permission(self) -> Permission:
        return Permission.denied

    def show(self, title: str, body: str, tag: str, require_interaction: bool = False) -> None:
        return None
