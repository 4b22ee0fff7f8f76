"""Best-effort live channel announcing in-progress schedule edits to the device."""

from __future__ import annotations

import asyncio
import json
import queue
import threading
from collections.abc import Mapping
from contextlib import suppress
from typing import Any, Protocol

import aiohttp

from .config import settings
from .utils import logger


class DraftNotifier(Protocol):
    """Publishes draft lifecycle messages; delivery is never guaranteed."""

    def start(self) -> None:
        ...

    def stop(self) -> None:
        ...

    def publish(self, message: Mapping[str, Any]) -> bool:
        ...

    def poll_messages(self) -> list[dict[str, Any]]:
        ...


class NullDraftNotifier(DraftNotifier):
    """Used when no live channel is configured."""

    def start(self) -> None:
        return None

    def stop(self) -> None:
        return None

    def publish(self, message: Mapping[str, Any]) -> bool:
        return False

    def poll_messages(self) -> list[dict[str, Any]]:
        return []


class WebSocketDraftNotifier(DraftNotifier):
    """WebSocket client for ``/ws/scheduler`` with reconnect and backoff.

    The connection runs on a private event loop in a daemon thread. Messages
    published while disconnected are dropped. Incoming messages are queued
    and handed to the owner through :meth:`poll_messages`, so they are
    processed on the caller's thread.
    """

    def __init__(
        self,
        url: str,
        *,
        initial_backoff: float = 2.0,
        max_backoff: float = 60.0,
        heartbeat: float = 30.0,
    ) -> None:
        self.url = url
        self.initial_backoff = initial_backoff
        self.max_backoff = max_backoff
        self.heartbeat = heartbeat
        self._inbox: queue.Queue[dict[str, Any]] = queue.Queue()
        self._loop: asyncio.AbstractEventLoop | None = None
        self._task: asyncio.Task[None] | None = None
        self._thread: threading.Thread | None = None
        self._ws: aiohttp.ClientWebSocketResponse | None = None
        self._ws_ready = threading.Event()
        self._running = False

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._ws.closed

    def wait_connected(self, timeout: float | None = None) -> bool:
        """Block until the channel is connected; return False on timeout."""
        return self._ws_ready.wait(timeout) and self.connected

    def start(self) -> None:
        if self._thread is not None:
            return
        self._running = True
        self._loop = asyncio.new_event_loop()
        self._task = self._loop.create_task(self._run())
        self._thread = threading.Thread(
            target=self._thread_main, name="es32-live-sync", daemon=True
        )
        self._thread.start()
        logger.bind(url=self.url).info("Live sync channel started")

    def stop(self, timeout: float = 5.0) -> None:
        if self._thread is None:
            return
        self._running = False
        if self._loop is not None and self._task is not None:
            self._loop.call_soon_threadsafe(self._task.cancel)
        if self._thread is not None:
            self._thread.join(timeout)
        self._thread = None
        self._task = None
        self._loop = None
        logger.bind(url=self.url).info("Live sync channel stopped")

    def publish(self, message: Mapping[str, Any]) -> bool:
        loop = self._loop
        if loop is None or not self.connected:
            logger.debug("Live sync not connected; dropping {}", message.get("action"))
            return False
        future = asyncio.run_coroutine_threadsafe(self._send(dict(message)), loop)
        future.add_done_callback(self._log_send_failure)
        return True

    def poll_messages(self) -> list[dict[str, Any]]:
        """Return and remove every message received since the last poll."""
        messages = []
        while True:
            try:
                messages.append(self._inbox.get_nowait())
            except queue.Empty:
                return messages

    def _thread_main(self) -> None:
        loop = self._loop
        task = self._task
        if loop is None or task is None:
            return
        asyncio.set_event_loop(loop)
        with suppress(asyncio.CancelledError):
            loop.run_until_complete(task)
        loop.close()

    async def _send(self, message: dict[str, Any]) -> None:
        ws = self._ws
        if ws is None or ws.closed:
            return
        await ws.send_str(json.dumps(message, default=str))

    @staticmethod
    def _log_send_failure(future: Any) -> None:
        if future.cancelled():
            return
        exc = future.exception()
        if exc is not None:
            logger.warning("Live sync send failed: {}", exc)

    def _receive(self, raw: str) -> None:
        try:
            message = json.loads(raw)
        except json.JSONDecodeError:
            logger.warning("Ignoring malformed live sync message")
            return
        if isinstance(message, dict):
            self._inbox.put(message)

    async def _run(self) -> None:
        backoff = self.initial_backoff
        async with aiohttp.ClientSession() as session:
            while self._running:
                try:
                    async with session.ws_connect(self.url, heartbeat=self.heartbeat) as ws:
                        self._ws = ws
                        self._ws_ready.set()
                        backoff = self.initial_backoff
                        logger.bind(url=self.url).info("Live sync connection established")
                        async for msg in ws:
                            if msg.type == aiohttp.WSMsgType.TEXT:
                                self._receive(msg.data)
                            elif msg.type == aiohttp.WSMsgType.ERROR:
                                break
                except (aiohttp.ClientError, asyncio.TimeoutError) as exc:
                    logger.bind(url=self.url).warning("Live sync connection failed: {}", exc)
                finally:
                    self._ws_ready.clear()
                    self._ws = None

                if not self._running:
                    break
                logger.bind(url=self.url).debug("Reconnecting live sync in {}s", backoff)
                await asyncio.sleep(backoff)
                backoff = min(backoff * 2, self.max_backoff)


_NULL_NOTIFIER = NullDraftNotifier()


def get_draft_notifier() -> DraftNotifier:
    """Return an unstarted live channel when live sync is enabled."""
    if settings.live_sync:
        return WebSocketDraftNotifier(settings.websocket_url)
    return _NULL_NOTIFIER


__all__ = [
    "DraftNotifier",
    "NullDraftNotifier",
    "WebSocketDraftNotifier",
    "get_draft_notifier",
]
