# Overview: User-facing outcome messages (toast equivalents) for void and sync flows.

from __future__ import annotations

import logging

log = logging.getLogger(__name__)

INFO = "info"
SUCCESS = "success"
WARNING = "warning"
ERROR = "error"

_LOG_LEVELS = {
    INFO: logging.INFO,
    SUCCESS: logging.INFO,
    WARNING: logging.WARNING,
    ERROR: logging.ERROR,
}


class Notifier:
    """Delivers short messages to whoever is operating the terminal."""

    def notify(self, level: str, message: str) -> None:
        raise NotImplementedError

    def info(self, message: str) -> None:
        self.notify(INFO, message)

    def success(self, message: str) -> None:
        self.notify(SUCCESS, message)

    def warning(self, message: str) -> None:
        self.notify(WARNING, message)

    def error(self, message: str) -> None:
        self.notify(ERROR, message)


class LogNotifier(Notifier):
    """Writes messages to the application log. Default when no UI is attached."""

    def notify(self, level: str, message: str) -> None:
        log.log(_LOG_LEVELS.get(level, logging.INFO), "[%s] %s", level, message)


class CollectingNotifier(Notifier):
    """Keeps messages in order so an HTTP response or a test can return them."""

    def __init__(self):
        self.messages: list[tuple[str, str]] = []

    def notify(self, level: str, message: str) -> None:
        self.messages.append((level, message))

    def to_list(self) -> list[dict]:
        return [{"level": level, "message": message} for level, message in self.messages]
