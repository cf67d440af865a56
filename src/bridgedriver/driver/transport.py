"""TransportClient: one WebSocket connection to one bridge.

Outgoing commands are framed as ``{"id", "command", "args"}``.  A single
reader task demultiplexes incoming frames: replies are routed to the
waiting caller through the correlation table, unsolicited event frames
(no ``id``) are handed to the registered event listeners.

Many requests may be in flight at once; completion order is whatever the
bridge answers in.
"""

from __future__ import annotations

import asyncio
import itertools
import json
import logging
import time
from typing import Awaitable, Callable, Dict, List, Optional, Set

from pydantic import ValidationError
from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from bridgedriver.config import get_driver_config
from bridgedriver.errors import (
    BridgeConnectionError,
    BridgeDisconnectedError,
    ProtocolError,
    RequestTimeoutError,
)
from bridgedriver.models import (
    BridgeEvent,
    Command,
    ConnectionState,
    Endpoint,
    PendingRequest,
    Response,
)

logger = logging.getLogger(__name__)

EventListener = Callable[[BridgeEvent], Optional[Awaitable[None]]]


class TransportClient:
    """Owns exactly one socket; reconnecting means reset() then connect()."""

    def __init__(self) -> None:
        self._state = ConnectionState.DISCONNECTED
        self._endpoint: Optional[Endpoint] = None
        self._ws: Optional[ClientConnection] = None
        self._reader: Optional[asyncio.Task] = None
        self._pending: Dict[str, PendingRequest] = {}
        self._ids = itertools.count(1)
        self._listeners: List[EventListener] = []
        self._event_tasks: Set[asyncio.Task] = set()
        # Serializes connect() and reset()
        self._lock = asyncio.Lock()

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    @property
    def state(self) -> ConnectionState:
        return self._state

    @property
    def endpoint(self) -> Optional[Endpoint]:
        return self._endpoint

    @property
    def pending_count(self) -> int:
        return len(self._pending)

    def is_connected(self) -> bool:
        return self._state is ConnectionState.CONNECTED and self._ws is not None

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def connect(self, endpoint: Endpoint, timeout: Optional[float] = None) -> None:
        """Open the socket and complete the WebSocket handshake.

        :param endpoint: Bridge to connect to.
        :param timeout: Handshake timeout in seconds (config default if None).
        :raises BridgeConnectionError: Refused, timed out, or rejected.
        """
        if timeout is None:
            timeout = get_driver_config().connect_timeout

        async with self._lock:
            if self._state is not ConnectionState.DISCONNECTED:
                raise BridgeConnectionError(
                    f"Already connected to {self._endpoint}; "
                    f"reset before connecting to {endpoint}"
                )
            self._state = ConnectionState.CONNECTING
            logger.info("Connecting to bridge at %s", endpoint.url)

            ws: Optional[ClientConnection] = None
            try:
                ws = await connect(
                    endpoint.url,
                    open_timeout=timeout,
                    max_size=None,
                    proxy=None,
                )
            except (OSError, asyncio.TimeoutError, WebSocketException) as e:
                reason = str(e) or type(e).__name__
                raise BridgeConnectionError(
                    f"Failed to connect to {endpoint}: {reason}"
                ) from e
            finally:
                if ws is None:
                    self._state = ConnectionState.DISCONNECTED

            self._ws = ws
            self._endpoint = endpoint
            self._state = ConnectionState.CONNECTED
            self._reader = asyncio.create_task(self._read_loop(ws))
            logger.info("Connected to bridge at %s", endpoint)

    async def reset(self) -> None:
        """Close the socket and fail every outstanding request.

        Idempotent and never raises; safe to call when already disconnected.
        """
        async with self._lock:
            ws, reader = self._ws, self._reader
            self._reader = None
            if ws is not None:
                logger.info("Resetting connection to %s", self._endpoint)
            self._teardown("Connection reset")

            if reader is not None and reader is not asyncio.current_task():
                reader.cancel()
                await asyncio.wait([reader])

            if ws is not None:
                try:
                    await ws.close()
                except (OSError, WebSocketException) as e:
                    logger.debug("Ignoring error while closing socket: %s", e)

    def _teardown(self, reason: str) -> None:
        self._state = ConnectionState.DISCONNECTED
        self._ws = None
        self._endpoint = None
        pending = list(self._pending.values())
        self._pending.clear()
        for request in pending:
            if not request.result_slot.done():
                request.result_slot.set_exception(
                    BridgeDisconnectedError(
                        f"{reason} while waiting for '{request.command}'"
                    )
                )
        if pending:
            logger.info("Failed %d outstanding request(s): %s", len(pending), reason)

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    async def send_command(
        self, command: Command, timeout: Optional[float] = None
    ) -> Response:
        """Send a command and wait for the reply with the same id.

        A timeout fails only this call; the socket stays open.

        :raises BridgeDisconnectedError: Not connected, or torn down mid-flight.
        :raises RequestTimeoutError: No reply within ``timeout`` seconds.
        """
        if timeout is None:
            timeout = get_driver_config().request_timeout

        ws = self._ws
        if self._state is not ConnectionState.CONNECTED or ws is None:
            raise BridgeDisconnectedError(
                "Not connected to a bridge. Start a session first."
            )

        correlation_id = str(next(self._ids))
        request = PendingRequest(
            correlation_id=correlation_id,
            command=command.name,
            result_slot=asyncio.get_running_loop().create_future(),
        )
        self._pending[correlation_id] = request
        try:
            await ws.send(json.dumps(command.to_frame(correlation_id), default=str))
            return await asyncio.wait_for(request.result_slot, timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "Command '%s' (id %s) unanswered after %.2fs (timeout %ss)",
                command.name, correlation_id,
                time.monotonic() - request.issued_at, timeout,
            )
            raise RequestTimeoutError(command.name, timeout) from None
        except ConnectionClosed as e:
            raise BridgeDisconnectedError(
                f"Connection closed while sending '{command.name}': {e}"
            ) from e
        finally:
            if self._pending.get(correlation_id) is request:
                del self._pending[correlation_id]

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def add_event_listener(self, listener: EventListener) -> Callable[[], None]:
        """Subscribe to unsolicited bridge events.

        The listener survives reconnects.  Coroutine results are scheduled
        as tasks.  Returns a callable that removes the listener.
        """
        self._listeners.append(listener)

        def remove() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return remove

    def _dispatch_event(self, event: BridgeEvent) -> None:
        for listener in list(self._listeners):
            try:
                result = listener(event)
            except Exception:
                logger.exception("Event listener failed for '%s'", event.name)
                continue
            if asyncio.iscoroutine(result):
                task = asyncio.ensure_future(result)
                self._event_tasks.add(task)
                task.add_done_callback(self._event_task_done)

    def _event_task_done(self, task: asyncio.Task) -> None:
        self._event_tasks.discard(task)
        if not task.cancelled() and task.exception() is not None:
            logger.error("Event handler failed: %s", task.exception())

    # ------------------------------------------------------------------
    # Reader
    # ------------------------------------------------------------------

    async def _read_loop(self, ws: ClientConnection) -> None:
        try:
            async for raw in ws:
                self._handle_frame(raw)
        except ConnectionClosed as e:
            logger.warning("Bridge connection closed: %s", e)
        finally:
            # Closed from the remote side (reset() clears _ws first)
            if self._ws is ws:
                logger.info("Bridge at %s went away", self._endpoint)
                self._reader = None
                self._teardown("Bridge closed the connection")

    def _handle_frame(self, raw) -> None:
        try:
            message = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning("Dropping malformed frame: %.200r", raw)
            return
        if not isinstance(message, dict):
            logger.warning("Dropping non-object frame: %.200r", raw)
            return

        correlation_id = message.get("id")
        if correlation_id is None:
            name = message.get("event") or message.get("type")
            if not name:
                logger.warning("Dropping frame with neither id nor event: %.200r", raw)
                return
            self._dispatch_event(
                BridgeEvent(name=str(name), payload=message.get("payload"))
            )
            return

        request = self._pending.get(str(correlation_id))
        if request is None or request.result_slot.done():
            logger.debug("Dropping reply for unknown request id %s", correlation_id)
            return

        try:
            response = Response.from_frame(message)
        except (KeyError, ValidationError) as e:
            request.result_slot.set_exception(
                ProtocolError(f"Malformed reply to '{request.command}': {e}")
            )
            return
        request.result_slot.set_result(response)
