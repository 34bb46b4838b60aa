"""Webhook Manager - sends webhooks and dispatches their responses.

Two ways to send:
- Ephemeral: send_ephemeral*() upload directly and return the decoded
  response to the caller. Nothing is tracked.
- Durable: send() hands the upload to the BackgroundSession and returns a
  future right away. When the transfer completes (possibly after a
  restart) the response goes to the handler registered for the request's
  identifier, and the future resolves.

Before a durable transfer starts, in-flight transfers of the same kind are
checked against the handler's should_replace() policy. Replaced transfers
are cancelled and their callers' futures follow the new transfer instead.

All state lives on the event loop. The background session delivers its
delegate callbacks one at a time, so the registries need no locks.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Callable, Coroutine
from typing import Any, TypeVar

from pydantic import BaseModel, ValidationError

from .builder import build_for_current
from .completion import BackgroundEventGroup
from .config import DispatchConfig
from .connection import ConnectionProvider, StaticConnectionProvider
from .decoding import decode_outcome, decode_webhook_json
from .errors import (
    NoActiveSessionError,
    UnexpectedTypeError,
    UnmappableValueError,
    UnregisteredIdentifierError,
    is_cancelled,
)
from .handlers import WebhookResponseHandler
from .models import (
    UNHANDLED,
    ConnectionInfo,
    HandlerResult,
    WebhookPersisted,
    WebhookRequest,
    WebhookResult,
)
from .notifications import LoggingNotificationCenter, NotificationCenter
from .registry import HandlerRegistry, TaskRegistry
from .transport import BackgroundSession, EphemeralTransport, TransferTask

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)


def forward_result(source: asyncio.Future[Any], target: asyncio.Future[Any]) -> None:
    """Resolve `target` with whatever `source` resolves to."""

    def relay(done: asyncio.Future[Any]) -> None:
        if target.done():
            return
        if done.cancelled():
            target.cancel()
        elif done.exception() is not None:
            target.set_exception(done.exception())
        else:
            target.set_result(done.result())

    source.add_done_callback(relay)


def _resolve(waiter: asyncio.Future[None] | None, error: BaseException | None = None) -> None:
    if waiter is None or waiter.done():
        return
    if error is not None:
        waiter.set_exception(error)
    else:
        waiter.set_result(None)


class WebhookManager:
    """Process-wide coordinator for webhook sends.

    Create one at startup and keep it for the life of the process: durable
    transfers can complete at any later wake-up.
    """

    SESSION_IDENTIFIER = "webhook_dispatch.webhook_manager"

    def __init__(
        self,
        config: DispatchConfig | None = None,
        connections: ConnectionProvider | None = None,
        notifications: NotificationCenter | None = None,
        ephemeral: EphemeralTransport | None = None,
        background: BackgroundSession | None = None,
    ) -> None:
        self.config = config or DispatchConfig.from_env()
        self._connections = connections or StaticConnectionProvider.from_config(self.config)
        self._notifications = notifications or LoggingNotificationCenter()

        self._ephemeral = ephemeral or EphemeralTransport(self.config)
        self._background = background or BackgroundSession(
            self.config, identifier=self.SESSION_IDENTIFIER
        )
        self._background.delegate = self

        self._handlers = HandlerRegistry()
        self._tasks = TaskRegistry()
        self._event_group = BackgroundEventGroup()

        # Strong references to handler/coordinator tasks until they finish
        self._running: set[asyncio.Task[Any]] = set()

    @property
    def background_session(self) -> BackgroundSession:
        return self._background

    @property
    def task_registry(self) -> TaskRegistry:
        return self._tasks

    @property
    def event_group(self) -> BackgroundEventGroup:
        return self._event_group

    # =========================================================================
    # Lifecycle
    # =========================================================================

    def register(self, handler: type[WebhookResponseHandler], identifier: str) -> None:
        """Register the response handler for an identifier.

        Must happen before any request with that identifier is sent.

        Raises:
            HandlerAlreadyRegisteredError: If the identifier is taken
        """
        self._handlers.register(handler, identifier)

    async def start(self) -> None:
        """Resume durable transfers left over from a previous process."""
        await self._background.restore()

    def handle_background(self, completion: Callable[[], None]) -> None:
        """Host wake-window entry point.

        `completion` is called exactly once, after the background session
        has delivered all pending events and every handler started for
        them has finished.
        """
        logger.info("handle_background started")
        # Paired with the leave() in did_finish_events
        self._event_group.enter()

        def final() -> None:
            logger.info("final completion")
            completion()

        self._event_group.notify(final)
        self._spawn(self._wake())

    on_wake = handle_background

    async def _wake(self) -> None:
        await self._background.restore()
        self._background.finish_events_when_idle()

    async def flush(self) -> None:
        """Wait for in-flight transfers and the handlers they trigger."""
        while True:
            await self._background.flush()
            if not self._running:
                break
            await asyncio.gather(*list(self._running), return_exceptions=True)

    async def close(self) -> None:
        """Shut down transports. Persisted transfers are kept for restore.

        Futures returned by send() that are still pending are cancelled.
        """
        await self._background.close()
        await self._ephemeral.close()

        # Records stay on disk for restore(); callers in this process are released
        for waiter in self._tasks.pop_all_waiters():
            if not waiter.done():
                waiter.cancel()

        running = list(self._running)
        for task in running:
            task.cancel()
        await asyncio.gather(*running, return_exceptions=True)

    # =========================================================================
    # Sending Ephemeral
    # =========================================================================

    async def send_ephemeral(self, request: WebhookRequest) -> None:
        """Send without tracking, ignoring the response value."""
        await self.send_ephemeral_value(request)

    async def send_ephemeral_value(self, request: WebhookRequest, expected: type = object) -> Any:
        """Send without tracking and return the decoded response.

        Raises:
            NoActiveSessionError: If there is no connection
            httpx.HTTPError: On transport failures
            WebhookStatusError: For non-2xx responses
            MalformedResponseError: If the body is not JSON
            UnexpectedTypeError: If the decoded value is not `expected`
        """
        try:
            url_request, _ = build_for_current(request, self._connections)
            response = await self._ephemeral.upload(url_request)
            value = decode_webhook_json(response.content, response.status_code)

            if not isinstance(value, expected):
                raise UnexpectedTypeError(type(value).__name__, expected.__name__)
        except Exception as e:
            logger.error(f"got failure for {request.type}: {e}")
            raise

        logger.info(f"got successful response for {request.type}")
        logger.debug(f"response for {request.type}: {value}")
        return value

    async def send_ephemeral_model(self, request: WebhookRequest, model: type[M]) -> M:
        """Send without tracking and map the response onto `model`.

        Raises:
            UnexpectedTypeError: If the response is not a JSON object
            UnmappableValueError: If the response does not fit `model`
        """
        value = await self.send_ephemeral_value(request)
        return _map_model(model, value)

    async def send_ephemeral_models(self, request: WebhookRequest, model: type[M]) -> list[M]:
        """Send without tracking and map a list response onto `model`."""
        value = await self.send_ephemeral_value(request)
        if not isinstance(value, list):
            raise UnexpectedTypeError(type(value).__name__, "list")
        return [_map_model(model, item) for item in value]

    # =========================================================================
    # Sending Persistent
    # =========================================================================

    def send(self, request: WebhookRequest, identifier: str = UNHANDLED) -> asyncio.Future[None]:
        """Send through the background session.

        Returns immediately with a future that resolves once the response
        was handled, or with the outcome of a newer request that replaced
        this one. Unknown identifiers fail the future before anything is
        sent.
        """
        waiter: asyncio.Future[None] = asyncio.get_running_loop().create_future()

        handler_type = self._handlers.lookup(identifier)
        if handler_type is None:
            logger.error(f"no existing handler for {identifier}, not sending request")
            waiter.set_exception(UnregisteredIdentifierError(identifier))
            return waiter

        try:
            url_request, data = build_for_current(request, self._connections)
            persisted = WebhookPersisted(request=request, identifier=identifier)
            task = self._background.upload_task(url_request, data, tag=persisted.to_tag())
        except Exception as e:
            self._invoke(handler_type, request, WebhookResult.failure(e), waiter)
            return waiter

        self._tasks.add_waiter(task.task_identifier, waiter)
        self._spawn(self._evaluate_cancellable(task, persisted, waiter))
        task.resume()

        return waiter

    # =========================================================================
    # Private
    # =========================================================================

    async def _evaluate_cancellable(
        self,
        new_task: TransferTask,
        new_persisted: WebhookPersisted,
        new_waiter: asyncio.Future[None],
    ) -> None:
        """Cancel in-flight transfers that `new_task` replaces.

        Only transfers submitted before `new_task` are considered. Transfers
        without readable metadata can never be dispatched and are cancelled
        outright.
        """
        new_type = self._handlers.lookup(new_persisted.identifier)
        if new_type is None:
            return

        replaced: list[TransferTask] = []
        for this_task in await self._background.get_all_tasks():
            info = self._response_info(this_task)
            if info is None:
                logger.error(f"cancelling request without persistence info: {this_task}")
                this_task.cancel()
                continue

            _, this_persisted = info
            if this_task == new_task or this_persisted.identifier != new_persisted.identifier:
                continue
            # Identifiers grow monotonically; a later submission is never replaced
            if this_task.task_identifier > new_task.task_identifier:
                continue

            if new_type.should_replace(new_persisted.request, this_persisted.request):
                replaced.append(this_task)

        for existing_task in replaced:
            existing_waiter = self._tasks.pop_waiter(existing_task.task_identifier)
            if existing_waiter is not None:
                # The replaced caller gets the replacement's outcome
                forward_result(new_waiter, existing_waiter)
            logger.info(f"replacing {existing_task} with {new_task}")
            existing_task.cancel()

    def _response_info(
        self, task: TransferTask
    ) -> tuple[type[WebhookResponseHandler], WebhookPersisted] | None:
        persisted = WebhookPersisted.from_tag(task.tag)
        if persisted is None:
            logger.error(f"no persisted info for {task}")
            return None

        handler_type = self._handlers.lookup(persisted.identifier)
        if handler_type is None:
            logger.error(f"unknown response identifier {persisted.identifier} for {task}")
            return None

        return handler_type, persisted

    def _invoke(
        self,
        handler_type: type[WebhookResponseHandler],
        request: WebhookRequest,
        result: WebhookResult,
        waiter: asyncio.Future[None] | None,
    ) -> None:
        connection = self._connections.current()
        if connection is None:
            logger.error(f"no active connection, cannot handle {request.type}")
            _resolve(waiter, result.error or NoActiveSessionError())
            return

        logger.info(f"starting {request.type} ({handler_type.__name__})")
        # Entered before returning so the wake window cannot close early
        self._event_group.enter()
        self._spawn(self._run_handler(handler_type, connection, request, result, waiter))

    async def _run_handler(
        self,
        handler_type: type[WebhookResponseHandler],
        connection: ConnectionInfo,
        request: WebhookRequest,
        result: WebhookResult,
        waiter: asyncio.Future[None] | None,
    ) -> None:
        try:
            handler_error: BaseException | None = None
            try:
                handler = handler_type(connection)
                handler_result = await handler.handle(request, result)
            except Exception as e:
                if e is not result.error:
                    logger.exception(f"{handler_type.__name__} failed for {request.type}")
                handler_error = e
            else:
                await self._apply(handler_result)

            _resolve(waiter, result.error or handler_error)
        finally:
            if waiter is not None and not waiter.done():
                waiter.cancel()
            logger.info(f"finished {request.type} {handler_type.__name__}")
            self._event_group.leave()

    async def _apply(self, result: HandlerResult) -> None:
        if result.notification is None:
            return
        try:
            await self._notifications.add(result.notification)
        except Exception as e:
            logger.error(f"failed to add notification for result {result}: {e}")

    def _spawn(self, coro: Coroutine[Any, Any, None]) -> None:
        task = asyncio.get_running_loop().create_task(coro)
        self._running.add(task)
        task.add_done_callback(self._running.discard)

    # =========================================================================
    # BackgroundSessionDelegate
    # =========================================================================

    def did_receive_data(self, session: BackgroundSession, task: TransferTask, data: bytes) -> None:
        self._tasks.append_data(task.task_identifier, data)

    def did_complete(
        self, session: BackgroundSession, task: TransferTask, error: BaseException | None
    ) -> None:
        data = self._tasks.pop_data(task.task_identifier)
        waiter = self._tasks.pop_waiter(task.task_identifier)

        if is_cancelled(error):
            logger.info(f"ignoring cancelled task {task.task_identifier}")
            # Replaced tasks had their waiter chained already
            if waiter is not None and not waiter.done():
                waiter.cancel()
            return

        result = decode_outcome(data, task.status_code, error)

        info = self._response_info(task)
        if info is None:
            logger.error(f"couldn't find appropriate handler for {task}")
            persisted = WebhookPersisted.from_tag(task.tag)
            _resolve(waiter, UnregisteredIdentifierError(persisted.identifier if persisted else "unknown"))
            return

        handler_type, persisted = info
        if result.is_success:
            logger.info(f"got response type({handler_type.__name__}) for {persisted.identifier}")
            logger.debug(f"request({persisted.request}) body({result.value})")
        else:
            logger.error(f"failed request for {handler_type.__name__}: {result.error}")

        self._invoke(handler_type, persisted.request, result, waiter)

    def did_finish_events(self, session: BackgroundSession) -> None:
        logger.info("event delivery ended")
        self._event_group.leave()


def _map_model(model: type[M], value: Any) -> M:
    if not isinstance(value, dict):
        raise UnexpectedTypeError(type(value).__name__, "object")
    try:
        return model.model_validate(value)
    except ValidationError as e:
        raise UnmappableValueError(model.__name__, str(e)) from e
