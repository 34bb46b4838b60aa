"""Status-code-aware decoding of webhook responses.

Any non-2xx status is a failure no matter what the body says. For 2xx,
an empty body (or 204/205) decodes to None, anything else must be JSON.
"""

from __future__ import annotations

import json
from typing import Any

from .errors import MalformedResponseError, WebhookStatusError
from .models import WebhookResult

EMPTY_STATUS_CODES = (204, 205)


def decode_webhook_json(data: bytes | None, status_code: int | None) -> Any:
    """Decode a webhook response body.

    Args:
        data: Raw response bytes (None if nothing was received)
        status_code: HTTP status, None when unknown (treated as 200)

    Returns:
        The decoded JSON value, or None for empty responses

    Raises:
        WebhookStatusError: For non-2xx statuses
        MalformedResponseError: If the body is not valid JSON
    """
    status = 200 if status_code is None else status_code

    if not 200 <= status < 300:
        raise WebhookStatusError(status, data)

    if status in EMPTY_STATUS_CODES or not data:
        return None

    try:
        return json.loads(data)
    except (UnicodeDecodeError, json.JSONDecodeError) as e:
        raise MalformedResponseError(str(e), data) from e


def decode_outcome(
    data: bytes | None,
    status_code: int | None,
    error: BaseException | None = None,
) -> WebhookResult:
    """Fold a transport error or a response into a WebhookResult."""
    if error is not None:
        return WebhookResult.failure(error)
    try:
        return WebhookResult.success(decode_webhook_json(data, status_code))
    except (WebhookStatusError, MalformedResponseError) as e:
        return WebhookResult.failure(e)
