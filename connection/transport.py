"""
WebSocket Transport
Thin wrapper over a `websockets` client connection.

The connection manager only needs open / send / recv / close; keeping the
library behind this seam lets the loopback transport stand in for it.
"""
from typing import Optional

import websockets
from loguru import logger


class TransportClosed(Exception):
    """Raised by send/recv once the underlying connection is gone."""


class WebSocketTransport:
    """Single text-frame WebSocket connection."""

    def __init__(self, url: str, open_timeout: float = 10.0, ping_interval: Optional[float] = 30.0):
        self.url = url
        self.open_timeout = open_timeout
        self.ping_interval = ping_interval
        self._ws = None

    async def open(self) -> None:
        self._ws = await websockets.connect(
            self.url,
            open_timeout=self.open_timeout,
            ping_interval=self.ping_interval,
        )
        logger.info(f"✓ WebSocket open: {self.url}")

    async def send(self, text: str) -> None:
        if self._ws is None:
            raise TransportClosed("transport not open")
        try:
            await self._ws.send(text)
        except websockets.exceptions.ConnectionClosed as e:
            raise TransportClosed(str(e)) from e

    async def recv(self) -> str:
        if self._ws is None:
            raise TransportClosed("transport not open")
        try:
            message = await self._ws.recv()
        except websockets.exceptions.ConnectionClosed as e:
            raise TransportClosed(str(e)) from e
        return message.decode() if isinstance(message, bytes) else message

    async def close(self) -> None:
        if self._ws is None:
            return
        ws, self._ws = self._ws, None
        await ws.close()
        logger.info("WebSocket closed")

    @property
    def is_open(self) -> bool:
        return self._ws is not None
