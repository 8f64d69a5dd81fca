"""User-facing notifications (the toast layer of a UI)."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Optional, Protocol

from flashdeck.core.logging import get_logger


class Notifier(Protocol):
    def success(self, message: str, description: Optional[str] = None) -> None: ...

    def error(self, message: str, description: Optional[str] = None) -> None: ...


@dataclass
class Notification:
    level: str
    message: str
    description: Optional[str] = None
    created_at: datetime = field(default_factory=lambda: datetime.now(timezone.utc))


class LogNotifier:
    def __init__(self, name: str = "flashdeck.notify") -> None:
        self.logger = get_logger(name)

    def success(self, message: str, description: Optional[str] = None) -> None:
        self.logger.info(_join(message, description))

    def error(self, message: str, description: Optional[str] = None) -> None:
        self.logger.error(_join(message, description))


class RecordingNotifier:
    """Keeps every notification; the terminal front-ends print from it."""

    def __init__(self) -> None:
        self.items: list[Notification] = []

    def success(self, message: str, description: Optional[str] = None) -> None:
        self.items.append(Notification("success", message, description))

    def error(self, message: str, description: Optional[str] = None) -> None:
        self.items.append(Notification("error", message, description))

    def drain(self) -> list[Notification]:
        items, self.items = self.items, []
        return items

    @property
    def messages(self) -> list[str]:
        return [n.message for n in self.items]


def _join(message: str, description: Optional[str]) -> str:
    return f"{message} ({description})" if description else message
