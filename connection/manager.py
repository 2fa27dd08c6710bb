"""
Connection Manager
Owns the single upstream WebSocket and multiplexes correlated exchanges over it.

- Monotonic ``req_id`` per instance, merged into every outbound payload
- One-shot waiters (request) and persistent waiters (subscribe) keyed by id
- Dispatch strictly by ``req_id``; unknown ids are discarded
- Explicit state machine: DISCONNECTED → CONNECTING → CONNECTED → AUTHORIZED

The waiter table is touched only by this instance's methods and its reader
task, all on one event loop, so no locking is needed.
"""
import asyncio
import json
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Dict, Optional, Set, Union

from loguru import logger

from connection.errors import (
    AuthMalformedResponse,
    AuthRejected,
    ConnectionClosed,
    FeedConnectionError,
    NotAuthorized,
    RequestTimeout,
    UpstreamError,
)
from connection.subscription import Subscription
from connection.transport import TransportClosed, WebSocketTransport
from core.ingestion.normalizer import normalize_identity
from core.models import Identity
from interfaces import ITransport

Waiter = Union[asyncio.Future, Subscription]


class ConnectionState(Enum):
    """Upstream session states."""
    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"      # transport open, not yet authorized
    AUTHORIZED = "authorized"


class ConnectionManager:
    """
    One physical connection; many logical in-flight exchanges.

    Usage:
        manager = ConnectionManager("wss://ws.derivws.com/websockets/v3?app_id=1089")
        await manager.connect()
        identity = await manager.authorize(token)
        reply = await manager.request({"balance": 1})
        sub = await manager.subscribe({"balance": 1, "subscribe": 1}, on_event=print)
        sub.cancel()
        await manager.disconnect()
    """

    def __init__(
        self,
        url: str,
        transport_factory: Optional[Callable[[str], ITransport]] = None,
        connect_timeout: float = 10.0,
        request_timeout: float = 30.0,
        name: str = "Deriv",
    ):
        self.url = url
        self.name = name
        self.connect_timeout = connect_timeout
        self.request_timeout = request_timeout
        self._transport_factory = transport_factory or (
            lambda u: WebSocketTransport(u, open_timeout=connect_timeout))
        self._transport: Optional[ITransport] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()
        self._waiters: Dict[int, Waiter] = {}
        self._next_id = 0
        self.state = ConnectionState.DISCONNECTED
        self.identity: Optional[Identity] = None
        self.last_message_time: Optional[datetime] = None
        self.last_error: Optional[str] = None
        self.messages_received = 0
        self.messages_discarded = 0
        logger.info(f"Connection manager: {name}")

    # ── Lifecycle ────────────────────────────────────────────────────────

    async def connect(self) -> None:
        """Open the transport. Raises FeedConnectionError on failure or timeout."""
        if self.state is not ConnectionState.DISCONNECTED:
            logger.debug(f"{self.name}: connect() ignored in state {self.state.value}")
            return
        self.state = ConnectionState.CONNECTING
        transport = self._transport_factory(self.url)
        try:
            await asyncio.wait_for(transport.open(), timeout=self.connect_timeout)
        except asyncio.TimeoutError:
            self.state = ConnectionState.DISCONNECTED
            self.last_error = f"connect timed out after {self.connect_timeout}s"
            logger.error(f"{self.name}: {self.last_error}")
            raise FeedConnectionError(self.last_error) from None
        except Exception as e:
            self.state = ConnectionState.DISCONNECTED
            self.last_error = str(e)
            logger.error(f"{self.name}: Connection failed: {e}")
            raise FeedConnectionError(f"could not connect to {self.url}: {e}") from e
        self._transport = transport
        self.state = ConnectionState.CONNECTED
        self._reader_task = asyncio.create_task(self._read_loop(transport))
        logger.info(f"✓ {self.name}: Connected")

    async def authorize(self, token: str) -> Identity:
        """Send the credential. Raises AuthRejected / AuthMalformedResponse."""
        try:
            response = await self.request({"authorize": token})
        except UpstreamError as e:
            logger.error(f"❌ {self.name}: Authorization rejected: {e.message}")
            raise AuthRejected(e.code, e.message) from e
        identity = normalize_identity(response)
        if identity is None:
            logger.error(f"❌ {self.name}: No authorization data in response")
            raise AuthMalformedResponse("No authorization data in response")
        self.identity = identity
        self.state = ConnectionState.AUTHORIZED
        logger.info(f"✅ {self.name}: Authorized as {identity.login_id}")
        return identity

    async def disconnect(self) -> None:
        """Close the transport and release every waiter. Idempotent."""
        if self.state is ConnectionState.DISCONNECTED and self._transport is None:
            return
        logger.info(f"{self.name}: Disconnecting...")
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        reader = self._reader_task
        self._reader_task = None
        if reader and reader is not asyncio.current_task():
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass
        await self._teardown("disconnected")
        logger.info(f"🔌 {self.name}: Disconnected")

    async def _teardown(self, reason: str) -> None:
        self.state = ConnectionState.DISCONNECTED
        self.identity = None
        transport, self._transport = self._transport, None
        waiters, self._waiters = self._waiters, {}
        for req_id, waiter in waiters.items():
            if isinstance(waiter, Subscription):
                waiter._close()
            elif not waiter.done():
                waiter.set_exception(ConnectionClosed(f"request {req_id}: connection {reason}"))
        if transport is not None:
            try:
                await transport.close()
            except Exception as e:
                logger.debug(f"{self.name}: close error ignored: {e}")
        if waiters:
            logger.info(f"{self.name}: Released {len(waiters)} pending waiters ({reason})")

    # ── Exchanges ────────────────────────────────────────────────────────

    def _allocate_id(self) -> int:
        self._next_id += 1
        return self._next_id

    def _check_state(self, payload: Dict[str, Any]) -> None:
        if self.state is ConnectionState.AUTHORIZED:
            return
        if self.state is ConnectionState.CONNECTED:
            if "authorize" in payload:
                return
            raise NotAuthorized(f"{next(iter(payload), 'request')} requires authorization")
        raise ConnectionClosed(f"{self.name} is {self.state.value}")

    async def _send(self, message: Dict[str, Any]) -> None:
        if self._transport is None:
            raise ConnectionClosed(f"{self.name} is {self.state.value}")
        logger.debug(f"📤 {self.name}: {_redact(message)}")
        try:
            await self._transport.send(json.dumps(message))
        except TransportClosed as e:
            raise ConnectionClosed(str(e)) from e

    async def request(self, payload: Dict[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        """Send a one-shot request and await the response bearing the same id."""
        self._check_state(payload)
        req_id = self._allocate_id()
        future = asyncio.get_running_loop().create_future()
        self._waiters[req_id] = future
        try:
            await self._send({**payload, "req_id": req_id})
        except Exception:
            self._waiters.pop(req_id, None)
            raise
        wait = self.request_timeout if timeout is None else timeout
        try:
            return await asyncio.wait_for(future, timeout=wait)
        except asyncio.TimeoutError:
            raise RequestTimeout(f"request {req_id} timed out after {wait}s") from None
        finally:
            if self._waiters.get(req_id) is future:
                del self._waiters[req_id]

    async def subscribe(
        self,
        payload: Dict[str, Any],
        on_event: Optional[Callable[[Any], Any]] = None,
        parse: Optional[Callable[[Dict[str, Any]], Any]] = None,
    ) -> Subscription:
        """Open a persistent exchange; every message bearing its id is an event."""
        self._check_state(payload)
        req_id = self._allocate_id()
        subscription = Subscription(req_id, self._forget, on_event=on_event, parse=parse)
        self._waiters[req_id] = subscription
        try:
            await self._send({**payload, "req_id": req_id})
        except Exception:
            self._waiters.pop(req_id, None)
            subscription._close()
            raise
        logger.info(f"{self.name}: Subscribed ({next(iter(payload))}) req_id={req_id}")
        return subscription

    def _forget(self, req_id: int) -> None:
        """Called by Subscription.cancel(): drop the waiter now, tell upstream later."""
        self._waiters.pop(req_id, None)
        if self._transport is None:
            return
        task = asyncio.create_task(self._send_forget(req_id))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _send_forget(self, req_id: int) -> None:
        try:
            await self._send({"forget": req_id})
        except ConnectionClosed as e:
            logger.debug(f"{self.name}: forget {req_id} not sent: {e}")

    # ── Inbound ──────────────────────────────────────────────────────────

    async def _read_loop(self, transport: ITransport) -> None:
        try:
            while True:
                raw = await transport.recv()
                self._dispatch(raw)
        except asyncio.CancelledError:
            raise
        except TransportClosed as e:
            self.last_error = str(e) or "closed by remote"
            logger.warning(f"🔌 {self.name}: Transport closed ({self.last_error})")
        except Exception as e:
            self.last_error = str(e)
            logger.error(f"{self.name}: Reader error: {e}")
        if self._transport is transport:
            self._reader_task = None
            await self._teardown("lost")

    def _dispatch(self, raw: str) -> None:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            self.messages_discarded += 1
            logger.debug(f"{self.name}: undecodable frame discarded")
            return
        if not isinstance(message, dict):
            self.messages_discarded += 1
            return
        self.messages_received += 1
        self.last_message_time = datetime.now()
        req_id = message.get("req_id")
        waiter = self._waiters.get(req_id) if isinstance(req_id, int) else None
        if waiter is None:
            self.messages_discarded += 1
            logger.debug(f"{self.name}: no waiter for req_id={req_id}, discarded")
            return
        logger.debug(f"📥 {self.name}: {message.get('msg_type', '?')} req_id={req_id}")
        if isinstance(waiter, Subscription):
            waiter._deliver(message)
            if not waiter.active:
                self._waiters.pop(req_id, None)
            return
        del self._waiters[req_id]
        if waiter.done():
            return
        if "error" in message:
            waiter.set_exception(UpstreamError.from_response(message))
        else:
            waiter.set_result(message)

    # ── Introspection ────────────────────────────────────────────────────

    @property
    def is_connected(self) -> bool:
        return self.state in (ConnectionState.CONNECTED, ConnectionState.AUTHORIZED)

    @property
    def is_authorized(self) -> bool:
        return self.state is ConnectionState.AUTHORIZED

    @property
    def pending_requests(self) -> int:
        return sum(1 for w in self._waiters.values() if not isinstance(w, Subscription))

    @property
    def active_subscriptions(self) -> int:
        return sum(1 for w in self._waiters.values() if isinstance(w, Subscription))

    def get_stats(self) -> dict:
        """Get connection statistics."""
        return {
            "name": self.name,
            "state": self.state.value,
            "login_id": self.identity.login_id if self.identity else None,
            "pending_requests": self.pending_requests,
            "active_subscriptions": self.active_subscriptions,
            "messages_received": self.messages_received,
            "messages_discarded": self.messages_discarded,
            "last_message_time": self.last_message_time.isoformat() if self.last_message_time else None,
            "last_error": self.last_error,
        }


def _redact(message: Dict[str, Any]) -> Dict[str, Any]:
    if "authorize" in message:
        return {**message, "authorize": "***"}
    return message
