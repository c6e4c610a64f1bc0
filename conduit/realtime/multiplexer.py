"""Shared realtime subscriptions over one WebSocket."""

import asyncio
import itertools
import logging
from enum import Enum, auto
from typing import Any, Callable, Dict, List, Optional, Union

import aiohttp

from ..codec import Codec
from ..exceptions import ProtocolError
from ..session import RequestContext
from .protocol import (
    EventMessage,
    FilterContent,
    Operation,
    SubscribeMessage,
    UnsubscribeMessage,
    parse_message,
)

logger = logging.getLogger(__name__)

_MISSING = object()


class SubscriptionState(Enum):
    """Where a key's subscribe message is."""

    UNSUBSCRIBED = auto()  # Nothing sent or queued
    PENDING = auto()       # Waiting in the outbound queue
    ACTIVE = auto()        # Written to an open socket


class SubscriptionEntry:
    """
    One subscription key with its local subscribers and last known value.

    Every local subscriber of the key shares this entry, so the server only
    ever sees one subscription per key.
    """

    def __init__(self, key: str, operation: Operation, request: dict):
        self.key = key
        self.operation = operation
        self.request = request
        self.last_value: Any = _MISSING
        self.subscribers: Dict[int, Callable[[Any], Any]] = {}
        self.state = SubscriptionState.UNSUBSCRIBED
        self.queued_message: Optional[str] = None

    @property
    def has_value(self) -> bool:
        return self.last_value is not _MISSING

    def notify(self, value: Any) -> None:
        """Call every subscriber; one failing callback does not stop the others."""
        for callback in list(self.subscribers.values()):
            try:
                callback(value)
            except Exception:
                logger.exception("Subscriber for %r raised", self.key)


def _document_id(value: Any) -> Any:
    if isinstance(value, dict):
        return value.get("id")
    return value


class SubscriptionMultiplexer:
    """
    Deduplicates live subscriptions and owns the process-wide socket.

    Handles:
    - One subscribe message per key, shared by any number of callbacks
    - Replay of the last known value to late subscribers
    - An outbound queue for messages produced while the socket is not open,
      flushed in order once it opens
    - Re-subscription of live keys after a reconnect
    - Dispatch of inbound get, filter and push events

    Example:
        mux = SubscriptionMultiplexer()
        await mux.connect("wss://db.example.com")

        unsubscribe = mux.subscribe(
            "users.alice.name",
            {"collection": "users", "id": "alice", "path": ["name"]},
            "get",
            print,
        )
    """

    def __init__(
        self,
        codec: Optional[Codec] = None,
        settle_delay: float = 0.1,
        context_factory: Callable[[], RequestContext] = RequestContext,
    ):
        """
        Args:
            codec: Codec applied to outgoing requests and incoming values
            settle_delay: Seconds to wait after the socket opens before flushing
            context_factory: Returns the current credentials, used for messages
                the multiplexer produces on its own (re-subscribe, unsubscribe)
        """
        self.codec = codec or Codec()
        self.settle_delay = settle_delay
        self._context_factory = context_factory

        self._entries: Dict[str, SubscriptionEntry] = {}
        self.queue: List[str] = []
        self._tokens = itertools.count()

        self._ws: Any = None
        self._ready = False
        self._ready_event = asyncio.Event()
        self._send_lock = asyncio.Lock()
        self._sends: set = set()

        self._url: Optional[str] = None
        self._http_session: Optional[aiohttp.ClientSession] = None
        self._reader: Optional[asyncio.Task] = None
        self._open_task: Optional[asyncio.Task] = None

    # Subscriptions

    def subscribe(
        self,
        key: str,
        request: dict,
        operation: Union[str, Operation],
        callback: Callable[[Any], Any],
        context: Optional[RequestContext] = None,
    ) -> Callable[[], None]:
        """
        Register ``callback`` for updates of ``key``.

        Args:
            key: Subscription key (joined path or pipeline key)
            request: Fields sent along with the subscribe message
            operation: "get", "filter" or "push"
            callback: Called with every new value
            context: Credentials for the subscribe message; defaults to the
                multiplexer's context factory

        Returns:
            A function removing the callback; calling it again does nothing
        """
        if not callable(callback):
            raise TypeError("Subscribe parameter must be a function.")
        operation = Operation(operation)

        entry = self._entries.get(key)
        if entry is None:
            entry = SubscriptionEntry(key, operation, request)
            self._entries[key] = entry

        token = next(self._tokens)
        entry.subscribers[token] = callback
        if entry.has_value:
            callback(entry.last_value)

        if entry.state is SubscriptionState.UNSUBSCRIBED:
            self._send_subscribe(entry, context or self._context_factory())

        def unsubscribe() -> None:
            if entry.subscribers.pop(token, None) is not None and not entry.subscribers:
                self._teardown(entry)

        return unsubscribe

    def _subscribe_message(self, entry: SubscriptionEntry, context: RequestContext) -> str:
        request = self.codec.encode(dict(entry.request))
        return SubscribeMessage(
            operation=entry.operation,
            event_name=entry.key,
            request=request,
            authorization=context.authorization,
        ).to_json()

    def _send_subscribe(self, entry: SubscriptionEntry, context: RequestContext) -> None:
        message = self._subscribe_message(entry, context)
        if self.is_open:
            self._write(message)
            entry.state = SubscriptionState.ACTIVE
        else:
            self.queue.append(message)
            entry.queued_message = message
            entry.state = SubscriptionState.PENDING
            logger.debug("Queued subscribe for %r", entry.key)

    def _teardown(self, entry: SubscriptionEntry) -> None:
        if self._entries.get(entry.key) is entry:
            del self._entries[entry.key]

        if entry.state is SubscriptionState.PENDING and entry.queued_message in self.queue:
            self.queue.remove(entry.queued_message)
        elif entry.state is SubscriptionState.ACTIVE and entry.operation is not Operation.PUSH:
            context = self._context_factory()
            message = UnsubscribeMessage(entry.key, context.authorization).to_json()
            if self.is_open:
                self._write(message)
            elif self._ws is not None and not self._ws.closed:
                # Mid-flush: the subscribe is already on the wire
                self.queue.append(message)

        entry.queued_message = None
        entry.state = SubscriptionState.UNSUBSCRIBED

    def entry(self, key: str) -> Optional[SubscriptionEntry]:
        """The entry for ``key``, or None if nobody is subscribed."""
        return self._entries.get(key)

    def cached_value(self, key: str, default: Any = None) -> Any:
        entry = self._entries.get(key)
        if entry is None or not entry.has_value:
            return default
        return entry.last_value

    @property
    def keys(self) -> List[str]:
        return list(self._entries.keys())

    # Outbound

    @property
    def is_open(self) -> bool:
        """Whether new messages go straight to the socket instead of the queue."""
        return self._ready and self._ws is not None and not self._ws.closed

    def _write(self, message: str) -> None:
        task = asyncio.get_running_loop().create_task(self._send(message))
        self._sends.add(task)
        task.add_done_callback(self._on_sent)

    def _on_sent(self, task: asyncio.Task) -> None:
        self._sends.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.warning("Failed to send socket message: %s", task.exception())

    async def _send(self, message: str) -> None:
        async with self._send_lock:
            await self._ws.send_str(message)
        logger.debug("Sent %s", message)

    def _queued_entry(self, message: str) -> Optional[SubscriptionEntry]:
        for entry in self._entries.values():
            if entry.queued_message is message:
                return entry
        return None

    async def flush(self) -> None:
        """Send queued messages oldest first, then start sending directly.

        Each subscribe leaves the queue and its entry becomes ACTIVE before
        the frame is written, so a close or an unsubscribe during the write
        sees it as sent.
        """
        while self.queue:
            message = self.queue.pop(0)
            entry = self._queued_entry(message)
            if entry is not None:
                entry.state = SubscriptionState.ACTIVE
                entry.queued_message = None
            await self._send(message)

        self._ready = True
        self._ready_event.set()

    async def drain(self) -> None:
        """Wait until every message written so far has been sent."""
        if self._sends:
            await asyncio.gather(*list(self._sends), return_exceptions=True)

    async def wait_until_open(self, timeout: Optional[float] = None) -> None:
        """Wait for the socket to open and the queue to be flushed."""
        await asyncio.wait_for(self._ready_event.wait(), timeout)

    # Socket lifecycle

    async def on_open(self, ws: Any) -> None:
        """Adopt a freshly opened socket and flush the queue after the settle delay."""
        self._ws = ws
        await asyncio.sleep(self.settle_delay)
        if self._ws is ws and not ws.closed:
            await self.flush()

    def on_close(self) -> None:
        """Forget the socket and queue re-subscriptions for every live key."""
        self._ws = None
        self._ready = False
        self._ready_event.clear()

        # Unsubscribes for the old connection mean nothing to the next one
        self.queue[:] = [m for m in self.queue if self._queued_entry(m) is not None]

        context = self._context_factory()
        resubscribe = []
        for entry in self._entries.values():
            if entry.state is SubscriptionState.ACTIVE and entry.operation is not Operation.PUSH:
                entry.queued_message = self._subscribe_message(entry, context)
                entry.state = SubscriptionState.PENDING
                resubscribe.append(entry.queued_message)
        self.queue[:0] = resubscribe
        if resubscribe:
            logger.debug("Queued %d re-subscriptions", len(resubscribe))

    async def connect(self, url: str, session: Optional[aiohttp.ClientSession] = None) -> None:
        """Open the socket at ``url`` in the background, replacing any current one.

        Args:
            url: WebSocket URL (ws:// or wss://)
            session: Optional aiohttp session to open the socket with
        """
        await self.disconnect()
        self._url = url
        if session is not None:
            self._http_session = session
        self._reader = asyncio.get_running_loop().create_task(self._run(url))

    async def reconnect(self) -> None:
        if self._url is None:
            raise RuntimeError("connect() has not been called")
        await self.connect(self._url)

    async def _run(self, url: str) -> None:
        if self._http_session is None or self._http_session.closed:
            self._http_session = aiohttp.ClientSession()
        try:
            async with self._http_session.ws_connect(url) as ws:
                logger.info("Connected to %s", url)
                self._open_task = asyncio.get_running_loop().create_task(self.on_open(ws))
                async for msg in ws:
                    if msg.type == aiohttp.WSMsgType.TEXT:
                        try:
                            self.handle_message(msg.data)
                        except Exception:
                            logger.exception("Failed to handle socket message")
                    elif msg.type == aiohttp.WSMsgType.ERROR:
                        logger.warning("WebSocket error: %s", ws.exception())
        except aiohttp.ClientError as e:
            logger.warning("WebSocket connection to %s failed: %s", url, e)
        finally:
            if self._open_task is not None:
                self._open_task.cancel()
                self._open_task = None
            self.on_close()
            logger.info("Disconnected from %s", url)

    async def disconnect(self) -> None:
        """Close the current socket, keeping subscriptions for the next connect."""
        reader, self._reader = self._reader, None
        if self._ws is not None and not self._ws.closed:
            await self._ws.close()
        if reader is not None:
            reader.cancel()
            try:
                await reader
            except asyncio.CancelledError:
                pass

    async def close(self) -> None:
        """Close the socket and the HTTP session used to open it."""
        await self.disconnect()
        if self._http_session is not None and not self._http_session.closed:
            await self._http_session.close()
        self._http_session = None

    # Inbound

    def handle_message(self, raw: str) -> None:
        """Apply one inbound frame to the cache and notify subscribers."""
        try:
            event = parse_message(raw)
        except ProtocolError as e:
            logger.warning("Ignoring malformed socket message: %s", e)
            return

        entry = self._entries.get(event.key)
        if entry is None:
            logger.debug("No subscribers for %r, dropping %s event", event.key, event.operation.value)
            return

        value = self.codec.decode(event.value)

        if event.operation is Operation.GET:
            entry.last_value = value
            entry.notify(value)
        elif event.operation is Operation.FILTER:
            self._apply_filter_event(entry, event, value)
        elif event.operation is Operation.PUSH:
            entry.notify(value)

    def _apply_filter_event(self, entry: SubscriptionEntry, event: EventMessage, value: Any) -> None:
        content = event.filter_content
        if content is None:
            logger.debug("Ignoring filter event with content %r", event.content)
            return

        if content is FilterContent.RESET:
            entry.last_value = value
            entry.notify(value)
            return

        current = list(entry.last_value) if isinstance(entry.last_value, list) else []
        if content is FilterContent.ADD:
            current.append(value)
        elif content is FilterContent.EDIT:
            doc_id = _document_id(value)
            current = [value if _document_id(doc) == doc_id else doc for doc in current]
        elif content is FilterContent.DELETE:
            doc_id = _document_id(value)
            current = [doc for doc in current if _document_id(doc) != doc_id]
        elif content is FilterContent.DROP:
            current = []

        entry.last_value = current
        entry.notify(current)
