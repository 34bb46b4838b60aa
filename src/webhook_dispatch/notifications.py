"""Notification dispatch for handler side effects."""

from __future__ import annotations

import logging
from typing import Protocol, runtime_checkable

from .models import Notification

logger = logging.getLogger(__name__)


@runtime_checkable
class NotificationCenter(Protocol):
    """Posts local notifications. Fire-and-forget from the caller's view."""

    async def add(self, notification: Notification) -> None: ...


class LoggingNotificationCenter:
    """Default center that only records notifications in the log."""

    def __init__(self) -> None:
        self.delivered: list[Notification] = []

    async def add(self, notification: Notification) -> None:
        self.delivered.append(notification)
        logger.info(f"notification: {notification.title} - {notification.body}")
