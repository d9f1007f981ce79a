"""User-visible notifications for explicit actions.

Passive work (polling) only logs. Anything the user asked for and that
failed ends up here so the UI can show it and let the user dismiss it.
"""

from __future__ import annotations

import itertools
import logging
from dataclasses import dataclass
from typing import Callable


@dataclass(frozen=True)
class Notification:
    id: int
    level: str
    message: str


NotificationListener = Callable[[Notification], None]


class NotificationCenter:
    def __init__(self, logger: logging.Logger | None = None) -> None:
        self._items: list[Notification] = []
        self._ids = itertools.count(1)
        self._listeners: list[NotificationListener] = []
        self._logger = logger or logging.getLogger("sunat_sync.notifications")

    @property
    def items(self) -> tuple[Notification, ...]:
        return tuple(self._items)

    @property
    def errors(self) -> tuple[Notification, ...]:
        return tuple(item for item in self._items if item.level == "error")

    def subscribe(self, listener: NotificationListener) -> None:
        self._listeners.append(listener)

    def success(self, message: str) -> Notification:
        self._logger.info(message)
        return self._post("success", message)

    def error(self, message: str) -> Notification:
        self._logger.error(message)
        return self._post("error", message)

    def dismiss(self, notification_id: int) -> None:
        self._items = [item for item in self._items if item.id != notification_id]

    def clear(self) -> None:
        self._items.clear()

    def _post(self, level: str, message: str) -> Notification:
        notification = Notification(next(self._ids), level, message)
        self._items.append(notification)
        for listener in list(self._listeners):
            listener(notification)
        return notification


def error_message(exc: Exception, fallback: str) -> str:
    """Backend ``detail`` when there is one, otherwise ``fallback``."""
    detail = getattr(exc, "detail", None)
    if isinstance(detail, str) and detail:
        return detail
    return fallback
