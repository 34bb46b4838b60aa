"""Pytest configuration and shared fixtures."""

from __future__ import annotations

import asyncio
import json
from collections.abc import AsyncIterator, Callable
from typing import Any

import httpx
import pytest
import pytest_asyncio
from starlette.applications import Starlette
from starlette.requests import Request
from starlette.responses import JSONResponse, Response
from starlette.routing import Route

from webhook_dispatch import (
    ConnectionInfo,
    DispatchConfig,
    LoggingNotificationCenter,
    StaticConnectionProvider,
    WebhookManager,
)
from webhook_dispatch.transport import BackgroundSession, EphemeralTransport, MemoryTransferStore

WEBHOOK_URL = "http://testserver/api/webhook/test-hook"


class FakeWebhookServer:
    """Starlette app standing in for the webhook endpoint.

    Responses are chosen per request type. hold() makes the next request
    of a type wait until the returned event is set.
    """

    def __init__(self) -> None:
        self.received: list[dict[str, Any]] = []
        self.raw_bodies: list[bytes] = []
        self.headers: list[dict[str, str]] = []
        self.completed: list[dict[str, Any]] = []
        self.responses: dict[str, tuple[int, Any]] = {}
        self.holds: dict[str, list[asyncio.Event]] = {}
        self.app = Starlette(
            routes=[Route("/api/webhook/{webhook_id}", self._handle, methods=["POST"])]
        )

    def respond(self, request_type: str, status: int = 200, body: Any = None) -> None:
        """Set the response for a request type (body None means no body)."""
        self.responses[request_type] = (status, body)

    def hold(self, request_type: str) -> asyncio.Event:
        event = asyncio.Event()
        self.holds.setdefault(request_type, []).append(event)
        return event

    async def wait_for_requests(self, count: int, timeout: float = 2.0) -> None:
        async def poll() -> None:
            while len(self.received) < count:
                await asyncio.sleep(0.005)

        await asyncio.wait_for(poll(), timeout=timeout)

    async def _handle(self, request: Request) -> Response:
        raw = await request.body()
        payload = json.loads(raw)
        self.raw_bodies.append(raw)
        self.received.append(payload)
        self.headers.append(dict(request.headers))

        holds = self.holds.get(payload["type"])
        if holds:
            await holds.pop(0).wait()

        self.completed.append(payload)
        status, body = self.responses.get(payload["type"], (200, {}))
        if body is None:
            return Response(status_code=status)
        if isinstance(body, bytes):
            return Response(body, status_code=status, media_type="application/json")
        return JSONResponse(body, status_code=status)


@pytest.fixture
def server() -> FakeWebhookServer:
    return FakeWebhookServer()


@pytest.fixture
def connections() -> StaticConnectionProvider:
    return StaticConnectionProvider(
        ConnectionInfo(webhook_url=WEBHOOK_URL, bearer_token="secret-token")
    )


@pytest.fixture
def notifications() -> LoggingNotificationCenter:
    return LoggingNotificationCenter()


@pytest.fixture
def config() -> DispatchConfig:
    return DispatchConfig(webhook_url=WEBHOOK_URL, token="secret-token", persist=False)


@pytest_asyncio.fixture
async def make_manager(
    config: DispatchConfig,
    connections: StaticConnectionProvider,
    notifications: LoggingNotificationCenter,
) -> AsyncIterator[Callable[..., WebhookManager]]:
    """Factory for managers talking through a given httpx transport."""
    created: list[tuple[WebhookManager, httpx.AsyncClient]] = []

    def factory(
        transport: httpx.AsyncBaseTransport,
        connection_provider: StaticConnectionProvider | None = None,
    ) -> WebhookManager:
        client = httpx.AsyncClient(transport=transport)
        manager = WebhookManager(
            config,
            connections=connection_provider or connections,
            notifications=notifications,
            ephemeral=EphemeralTransport(config, client=client),
            background=BackgroundSession(config, client=client, store=MemoryTransferStore()),
        )
        created.append((manager, client))
        return manager

    yield factory

    for manager, client in created:
        await manager.close()
        await client.aclose()


@pytest_asyncio.fixture
async def manager(
    make_manager: Callable[..., WebhookManager], server: FakeWebhookServer
) -> WebhookManager:
    """Manager wired to the fake webhook server."""
    return make_manager(httpx.ASGITransport(app=server.app))
