"""Webhook dispatch - ephemeral and durable webhook sends.

Main entry point is WebhookManager:

    manager = WebhookManager(DispatchConfig.from_env())
    manager.register(WebhookResponseLocation, LOCATION)
    await manager.start()

    # Fire and wait for the response
    info = await manager.send_ephemeral_model(request, ServerInfo)

    # Durable: survives a restart, response goes to the location handler
    await manager.send(request, LOCATION)
"""

from .config import DispatchConfig
from .connection import ConnectionProvider, StaticConnectionProvider
from .errors import (
    HandlerAlreadyRegisteredError,
    MalformedResponseError,
    NoActiveSessionError,
    TransferCancelledError,
    UnexpectedTypeError,
    UnmappableValueError,
    UnregisteredIdentifierError,
    WebhookError,
    WebhookStatusError,
)
from .handlers import (
    LOCATION,
    WebhookResponseHandler,
    WebhookResponseLocation,
    WebhookResponseUnhandled,
)
from .manager import WebhookManager
from .models import (
    UNHANDLED,
    ConnectionInfo,
    HandlerResult,
    Notification,
    WebhookPersisted,
    WebhookRequest,
    WebhookResult,
)
from .notifications import LoggingNotificationCenter, NotificationCenter

__all__ = [
    # Manager
    "WebhookManager",
    "DispatchConfig",
    # Connection
    "ConnectionInfo",
    "ConnectionProvider",
    "StaticConnectionProvider",
    # Models
    "UNHANDLED",
    "HandlerResult",
    "Notification",
    "WebhookPersisted",
    "WebhookRequest",
    "WebhookResult",
    # Handlers
    "LOCATION",
    "WebhookResponseHandler",
    "WebhookResponseLocation",
    "WebhookResponseUnhandled",
    # Notifications
    "LoggingNotificationCenter",
    "NotificationCenter",
    # Errors
    "HandlerAlreadyRegisteredError",
    "MalformedResponseError",
    "NoActiveSessionError",
    "TransferCancelledError",
    "UnexpectedTypeError",
    "UnmappableValueError",
    "UnregisteredIdentifierError",
    "WebhookError",
    "WebhookStatusError",
]
