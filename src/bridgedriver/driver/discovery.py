"""DiscoveryProber: find a responding bridge when no endpoint is known.

The bridge binds the first free port from its base port upward, so several
instances on one machine end up on consecutive ports.  Scanning walks the
range in ascending order and stops at the first port that answers.
"""

from __future__ import annotations

import asyncio
import json
import logging
from typing import Any, Optional, Set

from websockets.asyncio.client import ClientConnection, connect
from websockets.exceptions import ConnectionClosed, WebSocketException

from bridgedriver.config import get_driver_config
from bridgedriver.driver import protocol
from bridgedriver.errors import BridgeConnectionError
from bridgedriver.models import Endpoint, SessionInfo

logger = logging.getLogger(__name__)

UNKNOWN_APP = "Unknown app"

_PROBE_ID = "probe"


class DiscoveryProber:
    """Short-lived probe connections; never shares the session transport."""

    def __init__(self) -> None:
        self._open: Set[ClientConnection] = set()

    @property
    def open_count(self) -> int:
        return len(self._open)

    async def probe(
        self, host: str, port: int, timeout: Optional[float] = None
    ) -> SessionInfo:
        """Connect to one port and read the app's display name.

        :raises BridgeConnectionError: Nothing usable answered on the port.
        """
        if timeout is None:
            timeout = get_driver_config().probe_timeout
        endpoint = Endpoint(host=host, port=port)

        try:
            ws = await connect(
                endpoint.url, open_timeout=timeout, max_size=None, proxy=None
            )
        except (OSError, asyncio.TimeoutError, WebSocketException) as e:
            logger.debug("Probe of %s failed: %s", endpoint, e)
            raise BridgeConnectionError(
                f"No bridge at {endpoint}: {str(e) or type(e).__name__}"
            ) from e

        self._open.add(ws)
        try:
            name = await self._fetch_display_name(ws, endpoint, timeout)
        finally:
            self._open.discard(ws)
            await _close_quietly(ws)

        logger.debug("Probe of %s found '%s'", endpoint, name)
        return SessionInfo(display_name=name, endpoint=endpoint)

    async def scan(
        self,
        host: str = "localhost",
        start: Optional[int] = None,
        end: Optional[int] = None,
        timeout: Optional[float] = None,
    ) -> Optional[SessionInfo]:
        """Probe ``start..end`` (inclusive) one port at a time.

        :return: The first responder in ascending port order, or None.
        """
        config = get_driver_config()
        start = config.scan_start if start is None else start
        end = config.scan_end if end is None else end

        logger.info("Scanning %s ports %d-%d for a bridge", host, start, end)
        for port in range(start, end + 1):
            try:
                return await self.probe(host, port, timeout)
            except BridgeConnectionError:
                continue
        logger.info("No bridge answered on %s ports %d-%d", host, start, end)
        return None

    async def release_all(self) -> None:
        """Close any probe sockets still open."""
        sockets = list(self._open)
        self._open.clear()
        for ws in sockets:
            await _close_quietly(ws)

    async def _fetch_display_name(
        self, ws: ClientConnection, endpoint: Endpoint, timeout: float
    ) -> str:
        request = {
            "id": _PROBE_ID,
            "command": protocol.INVOKE_TAURI,
            "args": protocol.invoke_frame_args(protocol.GET_BACKEND_STATE),
        }
        try:
            await ws.send(json.dumps(request))
            reply = await asyncio.wait_for(_await_reply(ws), timeout)
        except asyncio.TimeoutError:
            logger.debug("%s did not report its name in time", endpoint)
            return UNKNOWN_APP
        except ConnectionClosed as e:
            raise BridgeConnectionError(
                f"Bridge at {endpoint} closed during probe: {e}"
            ) from e

        if not reply.get("success"):
            return UNKNOWN_APP
        name = protocol.app_info(reply.get("data")).get("name")
        return str(name) if name else UNKNOWN_APP


async def _await_reply(ws: ClientConnection) -> dict:
    async for raw in ws:
        try:
            message: Any = json.loads(raw)
        except (TypeError, ValueError):
            continue
        if isinstance(message, dict) and message.get("id") == _PROBE_ID:
            return message
    raise ConnectionClosed(None, None)


async def _close_quietly(ws: ClientConnection) -> None:
    try:
        await ws.close()
    except (OSError, WebSocketException) as e:
        logger.debug("Ignoring error while closing probe socket: %s", e)
