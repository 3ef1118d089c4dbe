from __future__ import annotations

import logging
from dataclasses import dataclass
from enum import Enum


logger = logging.getLogger(__name__)


class Level(str, Enum):
    SUCCESS = 'success'
    INFO = 'info'
    WARNING = 'warning'
    ERROR = 'error'


@dataclass(frozen=True)
class Notification:
    level: Level
    message: str


class Notifier:
    """Collects user facing messages; a UI drains ``messages`` to show them."""

    def __init__(self):
        self.messages: list[Notification] = []

    def notify(self, level: Level, message: str) -> Notification:
        notification = Notification(level=level, message=message)
        self.messages.append(notification)
        log_level = logging.ERROR if level == Level.ERROR else logging.INFO
        logger.log(log_level, '%s: %s', level.value, message)
        return notification

    def success(self, message: str) -> Notification:
        return self.notify(Level.SUCCESS, message)

    def warning(self, message: str) -> Notification:
        return self.notify(Level.WARNING, message)

    def error(self, message: str) -> Notification:
        return self.notify(Level.ERROR, message)

    def drain(self) -> list[Notification]:
        messages, self.messages = self.messages, []
        return messages
