"""Ephemeral transport - plain request/response, nothing persisted."""

from __future__ import annotations

import logging

import httpx

from ..config import DispatchConfig

logger = logging.getLogger(__name__)


class EphemeralTransport:
    """Uploads over a shared httpx client.

    Sends are independent of each other; a send in flight when the process
    exits is lost.
    """

    def __init__(
        self,
        config: DispatchConfig | None = None,
        client: httpx.AsyncClient | None = None,
    ) -> None:
        self.config = config or DispatchConfig()
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.config.timeout)

    async def upload(self, request: httpx.Request) -> httpx.Response:
        """Send a prepared request and read the whole response.

        Raises:
            httpx.HTTPError: On network, TLS or timeout failures
        """
        response = await self._client.send(request)
        logger.debug(f"{request.method} {request.url} -> {response.status_code}")
        return response

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()
