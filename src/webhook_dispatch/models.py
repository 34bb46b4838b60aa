"""Data model for webhook dispatch.

Requests, the metadata persisted alongside a durable transfer, the
connection context, and the outcomes handed to response handlers.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import TYPE_CHECKING, Any

from pydantic import BaseModel, ConfigDict, Field, ValidationError

if TYPE_CHECKING:
    from .config import DispatchConfig

UNHANDLED = "unhandled"


class WebhookRequest(BaseModel):
    """An outbound webhook request.

    Example:
        {
            "type": "update_location",
            "data": {"gps": [52.37, 4.89], "gps_accuracy": 12}
        }
    """

    model_config = ConfigDict(frozen=True)

    type: str
    data: Any = None

    def to_wire(self) -> dict[str, Any]:
        """JSON object sent to the server."""
        return {"type": self.type, "data": self.data}


class WebhookPersisted(BaseModel):
    """Metadata attached to a durable transfer for its whole lifetime."""

    request: WebhookRequest
    identifier: str = UNHANDLED

    def to_tag(self) -> str:
        """Serialize for storage as opaque task tag data."""
        return self.model_dump_json()

    @classmethod
    def from_tag(cls, tag: str | None) -> WebhookPersisted | None:
        """Parse tag data back, or None if it is missing or unreadable."""
        if not tag:
            return None
        try:
            return cls.model_validate_json(tag)
        except ValidationError:
            return None


class ConnectionInfo(BaseModel):
    """Destination endpoint and auth context for webhook requests."""

    webhook_url: str
    bearer_token: str | None = None
    headers: dict[str, str] = Field(default_factory=dict)

    @classmethod
    def from_config(cls, config: DispatchConfig) -> ConnectionInfo | None:
        """Build from a DispatchConfig, None when no URL is configured."""
        if not config.webhook_url:
            return None
        return cls(webhook_url=config.webhook_url, bearer_token=config.token)


class Notification(BaseModel):
    """Local notification content a handler asks to have posted."""

    title: str
    body: str = ""
    identifier: str | None = None
    user_info: dict[str, Any] = Field(default_factory=dict)


@dataclass
class HandlerResult:
    """What a response handler produced, including side effects."""

    notification: Notification | None = None


@dataclass
class WebhookResult:
    """Normalized terminal outcome of a webhook exchange."""

    value: Any = None
    error: BaseException | None = None

    @property
    def is_success(self) -> bool:
        return self.error is None

    def unwrap(self) -> Any:
        """Return the decoded value or raise the failure."""
        if self.error is not None:
            raise self.error
        return self.value

    @classmethod
    def success(cls, value: Any) -> WebhookResult:
        return cls(value=value)

    @classmethod
    def failure(cls, error: BaseException) -> WebhookResult:
        return cls(error=error)
