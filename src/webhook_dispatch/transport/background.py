"""Durable background transport.

Uploads are persisted to a TransferStore before they start, so transfers
interrupted by a process exit are picked up again by restore(). Progress
is reported to a BackgroundSessionDelegate through a single delegate
queue: callbacks run one at a time, in the order the events happened.

Events:
- did_receive_data: a chunk of the response body arrived
- did_complete: the transfer finished (error is None on success,
  TransferCancelledError when cancelled)
- did_finish_events: armed by finish_events_when_idle(), sent once no
  transfer is running and every earlier event has been delivered
"""

from __future__ import annotations

import asyncio
import contextlib
import inspect
import logging
from collections.abc import Callable
from typing import Any

import httpx

from ..config import DispatchConfig
from ..errors import TransferCancelledError
from .base import BackgroundSessionDelegate, TransferState, TransferTask
from .store import TransferRecord, TransferStoreProtocol, create_store

logger = logging.getLogger(__name__)

DEFAULT_SESSION_IDENTIFIER = "webhook_dispatch.background"

# Recomputed by httpx for every send
_VOLATILE_HEADERS = ("host", "content-length", "transfer-encoding")


class BackgroundSession:
    """Session running durable uploads and reporting to a delegate."""

    def __init__(
        self,
        config: DispatchConfig | None = None,
        delegate: BackgroundSessionDelegate | None = None,
        client: httpx.AsyncClient | None = None,
        store: TransferStoreProtocol | None = None,
        identifier: str = DEFAULT_SESSION_IDENTIFIER,
    ) -> None:
        self.config = config or DispatchConfig()
        self.identifier = identifier
        self._delegate = delegate
        self._owns_client = client is None
        self._client = client or httpx.AsyncClient(timeout=self.config.timeout)
        self._store = store if store is not None else create_store(self.config)

        self._tasks: dict[int, TransferTask] = {}
        self._runners: dict[int, asyncio.Task[None]] = {}

        self._callbacks: asyncio.Queue[tuple[Callable[..., Any], tuple[Any, ...]] | None] = (
            asyncio.Queue()
        )
        self._worker: asyncio.Task[None] | None = None

        self._restored = False
        self._finish_events_requests = 0
        self._closed = False
        self._delivery_stopped = False

    @property
    def delegate(self) -> BackgroundSessionDelegate | None:
        return self._delegate

    @delegate.setter
    def delegate(self, delegate: BackgroundSessionDelegate | None) -> None:
        self._delegate = delegate

    @property
    def store(self) -> TransferStoreProtocol:
        return self._store

    # =========================================================================
    # Task creation and inventory
    # =========================================================================

    def upload_task(self, request: httpx.Request, body: bytes, tag: str | None = None) -> TransferTask:
        """Create a suspended upload of `body` and persist it.

        Call resume() on the returned task to start it.
        """
        if self._closed:
            raise RuntimeError("BackgroundSession is closed")

        headers = {
            key: value
            for key, value in request.headers.items()
            if key.lower() not in _VOLATILE_HEADERS
        }
        task_identifier = self._store.allocate_identifier()
        task = TransferTask(
            self,
            task_identifier,
            method=request.method,
            url=str(request.url),
            headers=headers,
            tag=tag,
        )

        self._store.save(
            TransferRecord(
                task_identifier=task_identifier,
                method=task.method,
                url=task.url,
                headers=headers,
                tag=tag,
            ),
            body,
        )
        self._tasks[task_identifier] = task

        logger.debug(f"created {task}")
        return task

    async def get_all_tasks(self) -> list[TransferTask]:
        """Transfers that have not completed and are not being cancelled."""
        await self.restore()
        return [
            task
            for task in self._tasks.values()
            if task.state in (TransferState.SUSPENDED, TransferState.RUNNING)
        ]

    async def restore(self) -> list[TransferTask]:
        """Resume transfers persisted by an earlier process.

        Only the first call does anything.
        """
        if self._restored:
            return []
        self._restored = True

        restored = []
        for record in self._store.list_records():
            if record.task_identifier in self._tasks:
                continue

            task = TransferTask(
                self,
                record.task_identifier,
                method=record.method,
                url=record.url,
                headers=record.headers,
                tag=record.tag,
            )
            self._tasks[record.task_identifier] = task
            restored.append(task)

        for task in restored:
            task.resume()

        if restored:
            logger.info(f"restored {len(restored)} background transfer(s)")
        return restored

    # =========================================================================
    # Event window
    # =========================================================================

    def finish_events_when_idle(self) -> None:
        """Send did_finish_events once no transfer is running.

        Every call produces exactly one did_finish_events.
        """
        self._finish_events_requests += 1
        self._check_idle()

    async def flush(self) -> None:
        """Wait until transfers are done and every event was delivered."""
        while self._runners:
            await asyncio.gather(*list(self._runners.values()), return_exceptions=True)
        if self._worker is not None:
            await self._callbacks.join()

    async def close(self) -> None:
        """Stop the session.

        Running uploads are interrupted but stay persisted, so the next
        restore() starts them again.
        """
        if self._closed:
            return
        self._closed = True

        runners = list(self._runners.values())
        for runner in runners:
            runner.cancel()
        await asyncio.gather(*runners, return_exceptions=True)
        self._runners.clear()

        if self._worker is not None:
            await self._callbacks.put(None)
            with contextlib.suppress(asyncio.CancelledError):
                await self._worker
            self._worker = None
        self._delivery_stopped = True

        if self._owns_client:
            await self._client.aclose()

    # =========================================================================
    # TransferTask hooks
    # =========================================================================

    def _resume(self, task: TransferTask) -> None:
        if task.state != TransferState.SUSPENDED or self._closed:
            return

        task.state = TransferState.RUNNING
        runner = asyncio.get_running_loop().create_task(
            self._run(task), name=f"transfer-{task.task_identifier}"
        )
        runner.add_done_callback(lambda r: self._runner_done(task, r))
        self._runners[task.task_identifier] = runner

    def _runner_done(self, task: TransferTask, runner: asyncio.Task[None]) -> None:
        # A runner cancelled before its first step never reaches _run's handler
        if runner.cancelled() and task.state == TransferState.CANCELING:
            self._finish(task, TransferCancelledError(task.task_identifier))

    def _cancel(self, task: TransferTask) -> None:
        if task.state == TransferState.SUSPENDED:
            task.state = TransferState.CANCELING
            self._finish(task, TransferCancelledError(task.task_identifier))
        elif task.state == TransferState.RUNNING:
            task.state = TransferState.CANCELING
            runner = self._runners.get(task.task_identifier)
            if runner is not None:
                runner.cancel()

    # =========================================================================
    # Upload
    # =========================================================================

    async def _run(self, task: TransferTask) -> None:
        error: BaseException | None = None
        try:
            body = self._store.load_body(task.task_identifier)
            if body is None:
                raise FileNotFoundError(f"Body of transfer {task.task_identifier} is missing")

            async with self._client.stream(
                task.method, task.url, headers=task.headers, content=body
            ) as response:
                task.status_code = response.status_code
                async for chunk in response.aiter_bytes():
                    if chunk:
                        self._enqueue(self._deliver_data, task, chunk)
        except asyncio.CancelledError:
            if task.state != TransferState.CANCELING:
                # Shutdown, not a cancel(): keep the record for restore()
                self._runners.pop(task.task_identifier, None)
                raise
            error = TransferCancelledError(task.task_identifier)
        except Exception as e:
            logger.debug(f"transfer {task.task_identifier} failed: {e}")
            error = e

        self._finish(task, error)

    def _finish(self, task: TransferTask, error: BaseException | None) -> None:
        task.state = TransferState.COMPLETED
        self._runners.pop(task.task_identifier, None)
        self._tasks.pop(task.task_identifier, None)
        self._enqueue(self._deliver_complete, task, error)
        self._check_idle()

    def _check_idle(self) -> None:
        if self._runners:
            return
        while self._finish_events_requests:
            self._finish_events_requests -= 1
            self._enqueue(self._deliver_finish_events)

    # =========================================================================
    # Delegate queue
    # =========================================================================

    def _enqueue(self, callback: Callable[..., Any], *args: Any) -> None:
        if self._delivery_stopped:
            logger.debug(f"session closed, dropping {callback.__name__}")
            return
        self._callbacks.put_nowait((callback, args))
        if self._worker is None or self._worker.done():
            self._worker = asyncio.get_running_loop().create_task(
                self._deliver_loop(), name=f"{self.identifier}-delegate"
            )

    async def _deliver_loop(self) -> None:
        while True:
            item = await self._callbacks.get()
            try:
                if item is None:
                    return
                callback, args = item
                result = callback(*args)
                if inspect.isawaitable(result):
                    await result
            except Exception:
                logger.exception("Error in background session delegate")
            finally:
                self._callbacks.task_done()

    def _deliver_data(self, task: TransferTask, data: bytes) -> None:
        if self._delegate is not None:
            self._delegate.did_receive_data(self, task, data)

    def _deliver_complete(self, task: TransferTask, error: BaseException | None) -> None:
        try:
            if self._delegate is not None:
                self._delegate.did_complete(self, task, error)
        finally:
            self._store.remove(task.task_identifier)

    def _deliver_finish_events(self) -> None:
        if self._delegate is not None:
            self._delegate.did_finish_events(self)
