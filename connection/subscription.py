"""
Subscription Handle
Owned by whoever called ConnectionManager.subscribe().

Events arrive two ways: an optional ``on_event`` callback, and an async
iterator over a bounded per-subscription queue (oldest events are
dropped when nobody drains it). ``cancel()`` is synchronous and
idempotent; after it returns no further event is delivered.
"""
import asyncio
from typing import Any, Callable, Dict, Generic, Optional, TypeVar

from loguru import logger

from connection.errors import ConnectionClosed, RequestError, UpstreamError

T = TypeVar("T")

_END = object()

# Events nobody iterates are dropped oldest-first past this many
MAX_BACKLOG = 100


class Subscription(Generic[T]):
    def __init__(
        self,
        req_id: int,
        on_cancel: Callable[[int], None],
        on_event: Optional[Callable[[T], Any]] = None,
        parse: Optional[Callable[[Dict[str, Any]], T]] = None,
        backlog: int = MAX_BACKLOG,
    ):
        self._req_id = req_id
        self._on_cancel = on_cancel
        self._on_event = on_event
        self._parse = parse
        self._queue: asyncio.Queue = asyncio.Queue(maxsize=max(1, backlog))
        self.events_dropped = 0
        self._active = True
        self._error: Optional[RequestError] = None
        self.events_delivered = 0

    @property
    def req_id(self) -> int:
        return self._req_id

    @property
    def active(self) -> bool:
        return self._active

    @property
    def error(self) -> Optional[RequestError]:
        return self._error

    def cancel(self) -> None:
        """Stop delivery and ask upstream to forget. Safe to call repeatedly."""
        if not self._active:
            return
        self._active = False
        self._enqueue(_END)
        self._on_cancel(self._req_id)
        logger.debug(f"Subscription {self._req_id} cancelled")

    # ── Manager-facing ───────────────────────────────────────────────────

    def _deliver(self, message: Dict[str, Any]) -> None:
        if not self._active:
            return
        if "error" in message:
            self._close(UpstreamError.from_response(message))
            return
        event = self._parse(message) if self._parse else message
        self.events_delivered += 1
        self._enqueue(event)
        if self._on_event:
            try:
                self._on_event(event)
            except Exception as e:
                logger.warning(f"Subscription {self._req_id} callback failed: {e}")

    def _enqueue(self, item: Any) -> None:
        if self._queue.full():
            self._queue.get_nowait()
            self.events_dropped += 1
        self._queue.put_nowait(item)

    def _close(self, error: Optional[RequestError] = None) -> None:
        """End the stream without notifying upstream (teardown / upstream error)."""
        if not self._active:
            return
        self._active = False
        self._error = error
        self._enqueue(_END)

    # ── Event channel ────────────────────────────────────────────────────

    def __aiter__(self):
        return self

    async def __anext__(self) -> T:
        item = await self._queue.get()
        if item is _END:
            self._queue.put_nowait(_END)
            if self._error is not None:
                raise self._error
            raise StopAsyncIteration
        return item

    async def next_event(self, timeout: Optional[float] = None) -> T:
        """Await one event. Raises ConnectionClosed once the stream has ended."""
        try:
            return await asyncio.wait_for(self.__anext__(), timeout)
        except StopAsyncIteration:
            raise ConnectionClosed(f"subscription {self._req_id} ended") from None
