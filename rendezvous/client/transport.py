"""Reconnecting JSON message channel to the signaling server."""
from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Awaitable, Callable, Optional

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from rendezvous.config import settings
from rendezvous.exceptions import TransportError

logger = logging.getLogger(__name__)

Handler = Callable[..., Awaitable[None]]


class TransportChannel:
    """WebSocket channel that reconnects after an unexpected drop.

    ``on_connected`` runs after the first connection and after every
    successful reconnect. ``on_message`` gets each decoded JSON frame, one at a
    time and in order. ``on_closed`` runs once when reconnection gives up; an
    explicit ``close()`` does not trigger it.
    """

    def __init__(
        self,
        url: str,
        on_connected: Handler,
        on_message: Handler,
        on_closed: Optional[Handler] = None,
        reconnect_attempts: int = settings.RECONNECT_ATTEMPTS,
        reconnect_delay: float = settings.RECONNECT_DELAY,
        connect: Callable[[str], Awaitable[Any]] = websockets.connect,
    ):
        if not url.startswith(("ws://", "wss://")):
            raise TransportError(f"Unsupported signaling URL: {url!r}")
        self.url = url
        self.on_connected = on_connected
        self.on_message = on_message
        self.on_closed = on_closed
        self.reconnect_attempts = reconnect_attempts
        self.reconnect_delay = reconnect_delay
        self._connect = connect
        self._ws = None
        self._task: Optional[asyncio.Task] = None
        self._closed = False

    @property
    def connected(self) -> bool:
        return self._ws is not None and not self._closed

    async def _open(self):
        try:
            self._ws = await self._connect(self.url)
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            self._ws = None
            raise TransportError(f"Could not connect to {self.url}: {e}") from e
        logger.info(f"Signaling connected to {self.url}")

    async def start(self) -> None:
        """Open the first connection; failure here is fatal to the caller."""
        await self._open()
        await self.on_connected()
        self._task = asyncio.create_task(self._run())

    async def _run(self):
        while not self._closed:
            try:
                async for raw in self._ws:
                    await self._dispatch(raw)
            except ConnectionClosed as e:
                logger.warning(f"Signaling connection lost: {e}")
            self._ws = None
            if self._closed or not await self._reconnect():
                break

        if not self._closed:
            self._closed = True
            if self.on_closed:
                await self.on_closed()

    async def _reconnect(self) -> bool:
        for attempt in range(1, self.reconnect_attempts + 1):
            await asyncio.sleep(self.reconnect_delay)
            if self._closed:
                return False
            try:
                await self._open()
            except TransportError as e:
                logger.warning(f"Reconnect attempt {attempt}/{self.reconnect_attempts} failed: {e}")
                continue
            await self.on_connected()
            return True
        logger.error(f"Giving up on {self.url} after {self.reconnect_attempts} attempts")
        return False

    async def _dispatch(self, raw):
        try:
            message = json.loads(raw)
        except ValueError:
            logger.warning(f"Dropping undecodable frame: {raw!r:.80}")
            return
        try:
            await self.on_message(message)
        except Exception as e:
            logger.error(f"Error handling signaling message {message!r:.80}: {e}")

    async def send(self, message: dict) -> None:
        if self._ws is None or self._closed:
            raise TransportError("Transport channel is closed")
        try:
            await self._ws.send(json.dumps(message))
        except ConnectionClosed as e:
            raise TransportError(f"Send failed: {e}") from e

    async def close(self) -> None:
        if self._closed:
            return
        self._closed = True
        ws, self._ws = self._ws, None
        if ws is not None:
            await ws.close()
        task = self._task
        if task is not None and task is not asyncio.current_task() and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        logger.info("Signaling channel closed")
