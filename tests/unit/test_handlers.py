"""Unit tests for the built-in response handlers."""

from __future__ import annotations

import httpx
import pytest

from webhook_dispatch import (
    ConnectionInfo,
    WebhookRequest,
    WebhookResponseLocation,
    WebhookResponseUnhandled,
    WebhookResult,
    WebhookStatusError,
)

CONNECTION = ConnectionInfo(webhook_url="https://example.test/api/webhook/abc")


class TestWebhookResponseUnhandled:
    @pytest.mark.asyncio
    async def test_returns_empty_result(self) -> None:
        handler = WebhookResponseUnhandled(CONNECTION)

        result = await handler.handle(WebhookRequest(type="x"), WebhookResult.success({}))

        assert result.notification is None

    def test_never_replaces(self) -> None:
        request = WebhookRequest(type="x")
        assert WebhookResponseUnhandled.should_replace(request, request) is False


class TestWebhookResponseLocation:
    def test_newer_location_replaces_older(self) -> None:
        older = WebhookRequest(type="update_location", data={"gps": [1, 1]})
        newer = WebhookRequest(type="update_location", data={"gps": [2, 2]})

        assert WebhookResponseLocation.should_replace(newer, older) is True

    @pytest.mark.asyncio
    async def test_success_has_no_notification(self) -> None:
        handler = WebhookResponseLocation(CONNECTION)

        result = await handler.handle(
            WebhookRequest(type="update_location"), WebhookResult.success(None)
        )

        assert result.notification is None

    @pytest.mark.asyncio
    @pytest.mark.parametrize("status", [404, 410])
    async def test_gone_webhook_notifies(self, status: int) -> None:
        handler = WebhookResponseLocation(CONNECTION)

        result = await handler.handle(
            WebhookRequest(type="update_location"),
            WebhookResult.failure(WebhookStatusError(status)),
        )

        assert result.notification is not None
        assert result.notification.title == "Location updates stopped"
        assert result.notification.user_info == {"status_code": status}

    @pytest.mark.asyncio
    async def test_network_failure_is_quiet(self) -> None:
        handler = WebhookResponseLocation(CONNECTION)

        result = await handler.handle(
            WebhookRequest(type="update_location"),
            WebhookResult.failure(httpx.ConnectError("offline")),
        )

        assert result.notification is None
