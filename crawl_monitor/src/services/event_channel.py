"""Per-session push subscription delivering typed events in arrival order."""
import asyncio
import json
from typing import Any, Awaitable, Callable, List, Optional
from urllib.parse import urlparse

import websockets
from websockets.exceptions import ConnectionClosed, WebSocketException

from ..config import settings
from ..exceptions import EventDecodeError, MonitorError, NetworkError
from ..models.events import Event, parse_event
from ..utils.logger import logger
from . import stomp

EventConsumer = Callable[[Event], None]
ErrorHandler = Callable[[MonitorError], None]
ConnectionListener = Callable[[bool], None]
Connector = Callable[[str], Awaitable[Any]]

# Frames a bare-JSON server sends around the event stream
CONTROL_MESSAGE_TYPES = {"connected", "echo", "ping", "pong"}


class EventChannel:
    """One logical subscription to a session's progress topic.

    Events are handed to the consumer synchronously, one at a time, in the order
    the transport delivered them; nothing is reordered or deduplicated. When the
    connection drops the channel reconnects with exponential backoff, up to
    ``max_retries`` consecutive failed attempts, then gives up and reports a
    :class:`NetworkError`.
    """

    def __init__(
        self,
        protocol: Optional[str] = None,
        max_retries: Optional[int] = None,
        base_delay: Optional[float] = None,
        max_delay: Optional[float] = None,
        connector: Optional[Connector] = None,
    ):
        """Initialize the channel.

        Args:
            protocol: ``"stomp"`` or ``"json"``. Defaults to settings.channel_protocol
            max_retries: Consecutive reconnect attempts before giving up
            base_delay: First backoff delay in seconds
            max_delay: Upper bound for the backoff delay
            connector: Coroutine function opening a WebSocket (defaults to ``websockets.connect``)
        """
        self.protocol = protocol or settings.channel_protocol
        self.max_retries = (
            settings.reconnect_max_attempts if max_retries is None else max_retries
        )
        self.base_delay = settings.reconnect_base_delay if base_delay is None else base_delay
        self.max_delay = settings.reconnect_max_delay if max_delay is None else max_delay
        self._connector = connector or websockets.connect

        self._session_id: Optional[str] = None
        self._consumer: Optional[EventConsumer] = None
        self._on_error: Optional[ErrorHandler] = None
        self._listeners: List[ConnectionListener] = []

        self._task: Optional[asyncio.Task] = None
        self._ws: Any = None
        self._connected = False
        self._closing = False

    @property
    def session_id(self) -> Optional[str]:
        return self._session_id

    @property
    def connected(self) -> bool:
        return self._connected

    @property
    def is_open(self) -> bool:
        """True between ``open()`` and ``close()`` (or giving up), connected or not."""
        return self._task is not None and not self._task.done()

    def add_connection_listener(self, listener: ConnectionListener) -> None:
        """Register a callback receiving True on connect and False on disconnect."""
        self._listeners.append(listener)

    async def open(
        self,
        session_id: str,
        consumer: EventConsumer,
        on_error: Optional[ErrorHandler] = None,
    ) -> None:
        """Subscribe to a session, closing any subscription already open.

        Returns once the receive loop is scheduled; connecting happens in the
        background and is reported through the connection listeners.
        """
        await self.close()

        self._session_id = session_id
        self._consumer = consumer
        self._on_error = on_error
        self._closing = False
        self._task = asyncio.create_task(
            self._run(session_id), name=f"event-channel-{session_id}"
        )
        logger.info(f"Event channel opened for session: {session_id}")

    async def close(self) -> None:
        """Release the subscription and its connection. Safe to call repeatedly."""
        task = self._task
        if task is None and self._ws is None:
            return

        self._closing = True
        ws = self._ws
        if ws is not None:
            await self._close_connection(ws, send_disconnect=True)

        if task is not None and not task.done():
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass

        self._task = None
        self._ws = None
        self._set_connected(False)
        logger.info(f"Event channel closed for session: {self._session_id}")
        self._consumer = None
        self._on_error = None

    async def wait_closed(self) -> None:
        """Wait until the receive loop ends on its own (e.g. retries exhausted)."""
        task = self._task
        if task is not None:
            await asyncio.shield(task)

    def _backoff(self, attempt: int) -> float:
        return min(self.base_delay * (2 ** (attempt - 1)), self.max_delay)

    async def _run(self, session_id: str) -> None:
        url = settings.channel_url(session_id, self.protocol)
        attempt = 0

        while not self._closing:
            try:
                ws = await self._connector(url)
            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                attempt += 1
                logger.warning(
                    f"Event channel connect failed for session {session_id} "
                    f"(attempt {attempt}/{self.max_retries}): {e}"
                )
                if attempt > self.max_retries:
                    self._report(NetworkError(f"Could not connect to {url}: {e}"))
                    break
                await asyncio.sleep(self._backoff(attempt))
                continue

            attempt = 0
            self._ws = ws
            self._set_connected(True)
            try:
                if self.protocol == "stomp":
                    await ws.send(stomp.connect_frame(urlparse(url).hostname or "localhost"))
                    await ws.send(stomp.subscribe_frame(settings.topic(session_id)))
                async for raw in ws:
                    self._dispatch(raw)
            except ConnectionClosed as e:
                logger.warning(f"Event channel connection lost for session {session_id}: {e}")
            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                logger.warning(f"Event channel transport error for session {session_id}: {e!r}")
            finally:
                self._ws = None
                self._set_connected(False)

            if self._closing:
                break

            attempt += 1
            if attempt > self.max_retries:
                self._report(
                    NetworkError(f"Event channel for session {session_id} gave up reconnecting")
                )
                break
            delay = self._backoff(attempt)
            logger.info(
                f"Reconnecting event channel for session {session_id} in {delay:.1f}s "
                f"(attempt {attempt}/{self.max_retries})"
            )
            await asyncio.sleep(delay)

    async def _close_connection(self, ws: Any, send_disconnect: bool) -> None:
        try:
            if send_disconnect and self.protocol == "stomp" and self._connected:
                await ws.send(stomp.disconnect_frame())
            await ws.close()
        except (OSError, WebSocketException) as e:
            logger.debug(f"Ignoring error while closing event channel: {e}")

    def _dispatch(self, raw: Any) -> None:
        """Decode one transport message and hand its events to the consumer."""
        if isinstance(raw, bytes):
            raw = raw.decode("utf-8", errors="replace")

        if self.protocol == "stomp":
            try:
                frames = stomp.parse_frames(raw)
            except stomp.StompProtocolError as e:
                self._report(EventDecodeError(f"Malformed STOMP frame: {e}", raw))
                return
            for frame in frames:
                if frame.command == "MESSAGE":
                    self._deliver_text(frame.body)
                elif frame.command == "ERROR":
                    message = frame.headers.get("message") or frame.body or "broker error"
                    self._report(NetworkError(f"STOMP broker error: {message}"))
                else:
                    logger.debug(f"STOMP {frame.command} received")
        else:
            self._deliver_text(raw)

    def _deliver_text(self, text: str) -> None:
        try:
            envelope = json.loads(text)
        except ValueError as e:
            self._report(EventDecodeError(f"Invalid JSON in event frame: {e}", text))
            return

        if isinstance(envelope, dict) and envelope.get("type") in CONTROL_MESSAGE_TYPES:
            logger.debug(f"Channel control message: {envelope.get('type')}")
            return

        try:
            event = parse_event(envelope)
        except EventDecodeError as e:
            self._report(e)
            return

        consumer = self._consumer
        if consumer is None:
            return
        try:
            consumer(event)
        except Exception as e:
            logger.exception(f"Event consumer failed on {event.kind.value}: {e}")

    def _report(self, error: MonitorError) -> None:
        logger.warning(f"Event channel anomaly: {error}")
        if self._on_error is not None:
            self._on_error(error)

    def _set_connected(self, connected: bool) -> None:
        if connected == self._connected:
            return
        self._connected = connected
        if connected:
            logger.info(f"Event channel connected for session: {self._session_id}")
        for listener in list(self._listeners):
            listener(connected)
