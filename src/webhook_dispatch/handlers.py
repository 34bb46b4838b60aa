"""Response handlers for durable webhook sends.

A handler class is registered per identifier. For every completed
transfer the manager constructs a fresh handler with the current
connection and awaits handle(). Handlers may return a notification to
post as a side effect.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

from .errors import WebhookStatusError
from .models import (
    ConnectionInfo,
    HandlerResult,
    Notification,
    WebhookRequest,
    WebhookResult,
)

logger = logging.getLogger(__name__)

LOCATION = "location"


class WebhookResponseHandler(ABC):
    """Base class for response handlers."""

    def __init__(self, connection: ConnectionInfo) -> None:
        self.connection = connection

    @classmethod
    def should_replace(cls, request: WebhookRequest, other: WebhookRequest) -> bool:
        """Whether `request` supersedes the in-flight `other` of the same kind.

        Only asked for two requests registered under the same identifier.
        """
        return False

    @abstractmethod
    async def handle(self, request: WebhookRequest, result: WebhookResult) -> HandlerResult:
        """React to the outcome of `request`.

        Raising fails the caller's waiter with the raised error.
        """


class WebhookResponseUnhandled(WebhookResponseHandler):
    """Default handler: nothing to do with the response."""

    async def handle(self, request: WebhookRequest, result: WebhookResult) -> HandlerResult:
        return HandlerResult()


class WebhookResponseLocation(WebhookResponseHandler):
    """Handler for location updates.

    A newer location always supersedes an older one still in flight. When
    the server reports the webhook is gone, the user is told that location
    updates have stopped.
    """

    @classmethod
    def should_replace(cls, request: WebhookRequest, other: WebhookRequest) -> bool:
        return True

    async def handle(self, request: WebhookRequest, result: WebhookResult) -> HandlerResult:
        if result.is_success:
            logger.debug(f"location update accepted: {result.value}")
            return HandlerResult()

        if isinstance(result.error, WebhookStatusError) and result.error.is_gone:
            return HandlerResult(
                notification=Notification(
                    title="Location updates stopped",
                    body="The server no longer accepts updates from this device.",
                    identifier="webhook.location.gone",
                    user_info={"status_code": result.error.status_code},
                )
            )

        return HandlerResult()
