"""Configuration for webhook dispatch.

Values come from constructor arguments or, via from_env(), from
environment variables:

    WEBHOOK_DISPATCH_URL          Webhook endpoint (unset: no active session)
    WEBHOOK_DISPATCH_TOKEN        Bearer token sent with every request
    WEBHOOK_DISPATCH_STORAGE_DIR  Where durable transfers are persisted
    WEBHOOK_DISPATCH_NO_PERSIST   "1" keeps durable transfers in memory only
    WEBHOOK_DISPATCH_TIMEOUT      Request timeout in seconds
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path

ENV_URL = "WEBHOOK_DISPATCH_URL"
ENV_TOKEN = "WEBHOOK_DISPATCH_TOKEN"
ENV_STORAGE_DIR = "WEBHOOK_DISPATCH_STORAGE_DIR"
ENV_NO_PERSIST = "WEBHOOK_DISPATCH_NO_PERSIST"
ENV_TIMEOUT = "WEBHOOK_DISPATCH_TIMEOUT"


def default_storage_dir() -> Path:
    """Default location for persisted background transfers."""
    return Path.home() / ".webhook_dispatch" / "transfers"


@dataclass
class DispatchConfig:
    """Settings shared by the transports and the manager."""

    webhook_url: str | None = None
    token: str | None = None

    # Durable transfer persistence
    storage_dir: Path | None = None
    persist: bool = True

    timeout: float = 30.0

    @classmethod
    def from_env(cls) -> DispatchConfig:
        """Read configuration from WEBHOOK_DISPATCH_* environment variables."""
        storage_dir = os.environ.get(ENV_STORAGE_DIR)
        timeout = os.environ.get(ENV_TIMEOUT)
        return cls(
            webhook_url=os.environ.get(ENV_URL) or None,
            token=os.environ.get(ENV_TOKEN) or None,
            storage_dir=Path(storage_dir) if storage_dir else None,
            persist=os.environ.get(ENV_NO_PERSIST, "") not in ("1", "true", "yes"),
            timeout=float(timeout) if timeout else 30.0,
        )

    def resolved_storage_dir(self) -> Path | None:
        """Directory for durable transfers, or None when persistence is off."""
        if not self.persist:
            return None
        return self.storage_dir or default_storage_dir()
