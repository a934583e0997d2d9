"""
User-facing notifications (toasts).

The messaging core reports failures here instead of raising, so a failed action
leaves the view as it was and the user is told what happened.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Literal

from fitsocial.core.logging import get_logger
from fitsocial.core.time import utc_now

logger = get_logger(__name__)

NoticeLevel = Literal["info", "success", "error"]


@dataclass
class Notice:
    level: NoticeLevel
    message: str
    created_at: datetime = field(default_factory=utc_now)


class Notifier:
    def __init__(self) -> None:
        self.history: list[Notice] = []
        self._listeners: list[Callable[[Notice], None]] = []

    def add_listener(self, listener: Callable[[Notice], None]) -> None:
        self._listeners.append(listener)

    def remove_listener(self, listener: Callable[[Notice], None]) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def notify(self, level: NoticeLevel, message: str) -> Notice:
        notice = Notice(level=level, message=message)
        self.history.append(notice)
        if level == "error":
            logger.warning(f"User notice: {message}")
        else:
            logger.info(f"User notice: {message}")
        for listener in list(self._listeners):
            listener(notice)
        return notice

    def info(self, message: str) -> Notice:
        return self.notify("info", message)

    def success(self, message: str) -> Notice:
        return self.notify("success", message)

    def error(self, message: str) -> Notice:
        return self.notify("error", message)
