"""
Loopback Transport
In-memory stand-in for WebSocketTransport.

Outbound frames are decoded and recorded in ``sent``; inbound frames are
queued with ``feed()``. An optional responder is called for every outbound
payload and may return a reply dict, a list of replies, or None.
"""
import asyncio
import json
from typing import Any, Callable, Dict, Iterable, List, Optional, Union

from connection.transport import TransportClosed

Reply = Union[Dict[str, Any], Iterable[Dict[str, Any]], None]
Responder = Callable[[Dict[str, Any]], Reply]

_CLOSED = object()


class LoopbackTransport:
    def __init__(self, responder: Optional[Responder] = None, fail_open: Optional[Exception] = None,
                 open_delay: float = 0.0):
        self.responder = responder
        self.fail_open = fail_open
        self.open_delay = open_delay
        self.sent: List[Dict[str, Any]] = []
        self._inbound: asyncio.Queue = asyncio.Queue()
        self._open = False

    async def open(self) -> None:
        if self.open_delay:
            await asyncio.sleep(self.open_delay)
        if self.fail_open is not None:
            raise self.fail_open
        self._open = True

    async def send(self, text: str) -> None:
        if not self._open:
            raise TransportClosed("loopback closed")
        payload = json.loads(text)
        self.sent.append(payload)
        if self.responder is None:
            return
        reply = self.responder(payload)
        if reply is None:
            return
        for message in ([reply] if isinstance(reply, dict) else reply):
            self.feed(message)

    def feed(self, message: Union[Dict[str, Any], str]) -> None:
        """Queue an inbound frame (dict is JSON-encoded, str is passed through)."""
        self._inbound.put_nowait(message if isinstance(message, str) else json.dumps(message))

    async def recv(self) -> str:
        if not self._open:
            raise TransportClosed("loopback closed")
        message = await self._inbound.get()
        if message is _CLOSED:
            raise TransportClosed("loopback closed")
        return message

    async def close(self) -> None:
        if self._open:
            self._open = False
            self._inbound.put_nowait(_CLOSED)

    def drop(self) -> None:
        """Simulate the remote end going away."""
        self._open = False
        self._inbound.put_nowait(_CLOSED)

    @property
    def is_open(self) -> bool:
        return self._open

    def sent_with(self, key: str) -> List[Dict[str, Any]]:
        return [p for p in self.sent if key in p]
