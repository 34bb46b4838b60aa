"""Request builder - turns a WebhookRequest into an HTTP request and body."""

from __future__ import annotations

import json

import httpx

from .connection import ConnectionProvider
from .errors import NoActiveSessionError
from .models import ConnectionInfo, WebhookRequest


def encode_payload(request: WebhookRequest) -> bytes:
    """Compact JSON body for a request."""
    return json.dumps(request.to_wire(), separators=(",", ":")).encode("utf-8")


def build_request(
    request: WebhookRequest, connection: ConnectionInfo
) -> tuple[httpx.Request, bytes]:
    """Build the POST request for a webhook call.

    The body is also attached to the returned request so ephemeral sends
    and tests can read it back from there.

    Raises:
        TypeError/ValueError: If the payload is not JSON-serializable
    """
    data = encode_payload(request)

    headers = {"Content-Type": "application/json", **connection.headers}
    if connection.bearer_token:
        headers["Authorization"] = f"Bearer {connection.bearer_token}"

    url_request = httpx.Request("POST", connection.webhook_url, headers=headers, content=data)
    return url_request, data


def build_for_current(
    request: WebhookRequest, connections: ConnectionProvider
) -> tuple[httpx.Request, bytes]:
    """Build against the provider's current connection.

    Raises:
        NoActiveSessionError: If there is no connection
    """
    connection = connections.current()
    if connection is None:
        raise NoActiveSessionError()
    return build_request(request, connection)
