"""Error taxonomy for webhook dispatch.

Transport-layer failures are not wrapped: httpx exceptions (connect errors,
TLS failures, timeouts) reach callers unchanged.
"""

from __future__ import annotations


class WebhookError(Exception):
    """Base class for all webhook dispatch errors."""


class NoActiveSessionError(WebhookError):
    """No connection context is available to send to."""

    def __init__(self) -> None:
        super().__init__("No active connection to send webhooks to")


class UnregisteredIdentifierError(WebhookError):
    """A request named a handler identifier nobody registered."""

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(f"No response handler registered for '{identifier}'")


class HandlerAlreadyRegisteredError(WebhookError, ValueError):
    """A handler identifier was registered twice (programmer error)."""

    def __init__(self, identifier: str) -> None:
        self.identifier = identifier
        super().__init__(f"Response handler for '{identifier}' is already registered")


class UnexpectedTypeError(WebhookError):
    """Decoded response did not have the type the caller asked for."""

    def __init__(self, given: str, desired: str) -> None:
        self.given = given
        self.desired = desired
        super().__init__(f"Unexpected response type: got {given}, wanted {desired}")


class UnmappableValueError(WebhookError):
    """Decoded response could not be mapped onto the target model."""

    def __init__(self, model: str, detail: str | None = None) -> None:
        self.model = model
        self.detail = detail
        message = f"Response could not be mapped to {model}"
        if detail:
            message = f"{message}: {detail}"
        super().__init__(message)


class WebhookStatusError(WebhookError):
    """Server answered with a non-2xx status code."""

    def __init__(self, status_code: int, body: bytes | None = None) -> None:
        self.status_code = status_code
        self.body = body
        super().__init__(f"Webhook responded with status {status_code}")

    @property
    def is_gone(self) -> bool:
        """The server no longer knows this webhook (404/410)."""
        return self.status_code in (404, 410)


class MalformedResponseError(WebhookError):
    """Response body was not valid JSON."""

    def __init__(self, detail: str, body: bytes | None = None) -> None:
        self.body = body
        super().__init__(f"Malformed webhook response: {detail}")


class TransferCancelledError(WebhookError):
    """A background transfer was cancelled before it finished."""

    def __init__(self, task_identifier: int) -> None:
        self.task_identifier = task_identifier
        super().__init__(f"Transfer {task_identifier} cancelled")


def is_cancelled(error: BaseException | None) -> bool:
    """Check whether a transfer completion error means 'cancelled'."""
    return isinstance(error, TransferCancelledError)
