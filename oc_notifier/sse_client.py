"""SSE client for the OpenCode server.

Connects to the /global/event endpoint to receive events from all projects,
decodes them, and hands session status and tool part events to the
registered handlers. Reconnects with exponential backoff whenever the
connection fails or the stream ends.
"""

import asyncio
import logging
from typing import Callable, Optional, TypeVar

import aiohttp
from pydantic import ValidationError

from .config import OpenCodeConfig
from .errors import StreamConnectionError
from .models import (
    EventNames,
    GlobalEvent,
    MessagePart,
    MessagePartProperties,
    SessionStatusProperties,
)
from .sse_decoder import decode_stream

logger = logging.getLogger(__name__)

INITIAL_RECONNECT_DELAY_SEC = 1.0
MAX_RECONNECT_DELAY_SEC = 30.0
CONNECT_TIMEOUT_SEC = 10.0

SessionStatusHandler = Callable[[SessionStatusProperties, str], None]
MessagePartHandler = Callable[[MessagePart, str], None]

T = TypeVar("T")


class ReconnectBackoff:
    """Exponential reconnect delay: doubles per failure, capped, reset on success."""

    def __init__(
        self,
        initial_sec: float = INITIAL_RECONNECT_DELAY_SEC,
        max_sec: float = MAX_RECONNECT_DELAY_SEC,
    ) -> None:
        self.initial_sec = initial_sec
        self.max_sec = max_sec
        self.current = initial_sec

    def next_delay(self) -> float:
        """Delay to wait before the next attempt; advances the backoff."""
        delay = self.current
        self.current = min(self.current * 2, self.max_sec)
        return delay

    def reset(self) -> None:
        self.current = self.initial_sec


class SSEClient:
    """Long-lived reader of the OpenCode global event stream."""

    def __init__(
        self,
        config: OpenCodeConfig,
        http: aiohttp.ClientSession,
        initial_reconnect_delay_sec: float = INITIAL_RECONNECT_DELAY_SEC,
        max_reconnect_delay_sec: float = MAX_RECONNECT_DELAY_SEC,
        connect_timeout_sec: float = CONNECT_TIMEOUT_SEC,
    ) -> None:
        """Initialize the client.

        Args:
            config: OpenCode server settings (URL and credentials)
            http: Shared aiohttp session
            initial_reconnect_delay_sec: First reconnect delay
            max_reconnect_delay_sec: Upper bound for the reconnect delay
            connect_timeout_sec: Timeout for establishing the TCP connection
        """
        self.base_url = config.server_url
        self.headers = config.auth_headers()
        self.http = http
        self.backoff = ReconnectBackoff(initial_reconnect_delay_sec, max_reconnect_delay_sec)

        # The stream itself is unbounded; only connection setup is timed
        self._timeout = aiohttp.ClientTimeout(
            total=None, sock_connect=connect_timeout_sec, sock_read=None
        )

        self._status_handlers: list[SessionStatusHandler] = []
        self._part_handlers: list[MessagePartHandler] = []

        self._running = False
        self._connected = False
        self._stop_event = asyncio.Event()
        self._connect_task: Optional[asyncio.Task] = None

    @property
    def event_url(self) -> str:
        return f"{self.base_url}/global/event"

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def is_connected(self) -> bool:
        return self._connected

    def on_session_status(self, handler: SessionStatusHandler) -> None:
        self._status_handlers.append(handler)

    def on_message_part(self, handler: MessagePartHandler) -> None:
        self._part_handlers.append(handler)

    async def start(self) -> None:
        """Read the event stream until stop() is called."""
        if self._running:
            logger.warning("SSE client already running")
            return

        self._running = True
        self._stop_event.clear()
        self.backoff.reset()

        while self._running:
            self._connect_task = asyncio.create_task(self._connect())
            try:
                await self._connect_task
            except asyncio.CancelledError:
                if self._running:
                    # Cancelled from outside rather than by stop()
                    self._running = False
                    self._connect_task.cancel()
                    raise
                break
            except StreamConnectionError as e:
                logger.error(str(e))
            except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as e:
                logger.error(f"SSE connection error: {e!r}")
            finally:
                self._connected = False
                self._connect_task = None

            if not self._running:
                break

            delay = self.backoff.next_delay()
            logger.info(f"Reconnecting in {delay:.1f}s...")
            await self._wait(delay)

        logger.info("SSE client stopped")

    async def stop(self) -> None:
        """Abort the current connection and stop reconnecting. Idempotent."""
        self._running = False
        self._stop_event.set()
        if self._connect_task is not None and not self._connect_task.done():
            self._connect_task.cancel()

    async def _wait(self, delay_sec: float) -> None:
        """Sleep for delay_sec, returning early if stop() is called."""
        try:
            await asyncio.wait_for(self._stop_event.wait(), timeout=delay_sec)
        except asyncio.TimeoutError:
            pass

    async def _connect(self) -> None:
        """Open the stream and dispatch events until it ends.

        Raises:
            StreamConnectionError: On a non-2xx response or when the stream ends
            aiohttp.ClientError: On network failures
        """
        logger.info(f"Connecting to {self.event_url} (global events from all projects)...")

        headers = {**self.headers, "Accept": "text/event-stream"}
        async with self.http.get(
            self.event_url, headers=headers, timeout=self._timeout
        ) as response:
            if response.status < 200 or response.status >= 300:
                raise StreamConnectionError(
                    f"SSE connection failed: {response.status} {response.reason or ''}".rstrip()
                )

            logger.info("Connected to SSE stream")
            self._connected = True
            self.backoff.reset()  # Reset backoff on successful connection

            async for event in decode_stream(response.content.iter_any()):
                self._dispatch(event)
                if not self._running:
                    return

        if self._running:
            raise StreamConnectionError("SSE stream ended")

    def _dispatch(self, event: GlobalEvent) -> None:
        """Route a decoded envelope to the handlers for its payload type."""
        payload = event.payload
        properties = payload.properties or {}

        if payload.type == EventNames.SESSION_STATUS:
            try:
                status_event = SessionStatusProperties.model_validate(properties)
            except ValidationError as e:
                logger.warning(f"Discarding malformed session.status event: {e.error_count()} error(s)")
                return
            self._call_handlers(self._status_handlers, status_event, event.directory)

        elif payload.type == EventNames.MESSAGE_PART_UPDATED:
            if not self._part_handlers:
                return
            part = properties.get("part")
            # Text and reasoning parts stream constantly; only tool parts matter
            if not isinstance(part, dict) or part.get("type") != EventNames.PART_TYPE_TOOL:
                return
            try:
                part_event = MessagePartProperties.model_validate(properties)
            except ValidationError as e:
                logger.warning(f"Discarding malformed message.part.updated event: {e.error_count()} error(s)")
                return
            self._call_handlers(self._part_handlers, part_event.part, event.directory)

        else:
            logger.debug(f"Ignoring {payload.type} event from {event.directory}")

    def _call_handlers(
        self, handlers: list[Callable[[T, str], None]], item: T, directory: str
    ) -> None:
        for handler in handlers:
            try:
                handler(item, directory)
            except Exception as e:
                logger.error(f"Event handler error: {e}", exc_info=True)
