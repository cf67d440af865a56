"""SessionManager: owns the connection strategy and the live session.

Connection strategy for start(), strictly sequential, first success wins:

1. localhost at the configured port (skipped when the host already is
   localhost): most targets run next to the controller, and trying
   localhost first avoids attaching to an unrelated remote instance.
2. the configured host at the configured port.
3. a discovery scan of the localhost port range.
4. the configured host at the configured port, once more.

The manager is the single owner of the transport, the prober and the
script registry; every change of connection identity goes through it.
"""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

from pydantic import ValidationError

from bridgedriver.config import DriverConfig, get_driver_config
from bridgedriver.driver import protocol
from bridgedriver.driver.discovery import DiscoveryProber
from bridgedriver.driver.scripts import ScriptRegistry
from bridgedriver.driver.transport import TransportClient
from bridgedriver.driver.windows import WindowResolver
from bridgedriver.errors import BridgeError
from bridgedriver.models import (
    Command,
    Endpoint,
    SessionInfo,
    SessionStatus,
    is_localhost,
)

logger = logging.getLogger(__name__)


class SessionManager:
    """Start, stop and report on the single bridge session.

    Typical flow:
        manager = SessionManager()
        await manager.start()
        await manager.scripts.register("probe", "inline", "...")
        await manager.stop()
    """

    def __init__(
        self,
        config: Optional[DriverConfig] = None,
        client: Optional[TransportClient] = None,
        prober: Optional[DiscoveryProber] = None,
    ):
        self._config = config
        self.client = client or TransportClient()
        self.prober = prober or DiscoveryProber()
        self.windows = WindowResolver(self.client)
        self.scripts = ScriptRegistry(self.client, self.windows)
        self._session: Optional[SessionInfo] = None
        # Overlapping start/stop calls run one after another
        self._lock = asyncio.Lock()

    @property
    def config(self) -> DriverConfig:
        return self._config or get_driver_config()

    @property
    def session(self) -> Optional[SessionInfo]:
        return self._session

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def start(self, host: Optional[str] = None, port: Optional[int] = None) -> str:
        """Bind to a target.  Never raises; the outcome is in the message."""
        async with self._lock:
            config = self.config
            configured_host = host or config.host
            configured_port = port if port is not None else config.port

            await self._teardown()

            if not is_localhost(configured_host):
                session = await self._attempt("localhost", configured_port)
                if session is not None:
                    return _started_message(session)

            session = await self._attempt(configured_host, configured_port)
            if session is not None:
                return _started_message(session)

            found = await self.prober.scan(
                "localhost", config.scan_start, config.scan_end
            )
            if found is not None:
                session = await self._attempt(
                    "localhost", found.endpoint.port, discovered=found
                )
                if session is not None:
                    return _started_message(session)

            session = await self._attempt(configured_host, configured_port)
            if session is not None:
                return _started_message(session)

            logger.warning(
                "No target found at localhost or %s:%s", configured_host, configured_port
            )
            return (
                "Session not started: no target found at localhost "
                f"or {configured_host}:{configured_port}"
            )

    async def stop(self) -> str:
        """Release everything tied to the current session.  Always succeeds."""
        async with self._lock:
            await self._teardown()
        logger.info("Session stopped")
        return "Session stopped"

    def status(self) -> SessionStatus:
        """Cached session fields plus the live connection flag.  No I/O."""
        session = self._session
        if session is None or not self.client.is_connected():
            return SessionStatus()
        return SessionStatus(
            connected=True,
            app=session.display_name,
            identifier=session.identifier,
            host=session.endpoint.host,
            port=session.endpoint.port,
        )

    # ------------------------------------------------------------------
    # Strategy steps
    # ------------------------------------------------------------------

    async def _teardown(self) -> None:
        await self.prober.release_all()
        await self.client.reset()
        self.scripts.reset_initialization()
        self._session = None

    async def _attempt(
        self,
        host: str,
        port: int,
        discovered: Optional[SessionInfo] = None,
    ) -> Optional[SessionInfo]:
        """One strategy step: probe, reset, connect, identify, record."""
        config = self.config
        try:
            endpoint = Endpoint(host=host, port=port)
        except ValidationError:
            logger.warning("Skipping invalid endpoint %s:%s", host, port)
            return None

        try:
            probed = discovered or await self.prober.probe(
                host, port, config.connect_timeout
            )
            await self.client.reset()
            await self.client.connect(endpoint, config.connect_timeout)
        except BridgeError as e:
            logger.info("No target at %s: %s", endpoint, e)
            return None

        identifier = await self._fetch_identifier()
        self._session = SessionInfo(
            display_name=probed.display_name,
            identifier=identifier,
            endpoint=endpoint,
        )
        logger.info(
            "Session bound to '%s' at %s (identifier %s)",
            probed.display_name, endpoint, identifier,
        )
        await self.scripts.initialize()
        return self._session

    async def _fetch_identifier(self) -> Optional[str]:
        """App identifier from the backend state, or None on older plugins."""
        command = Command(
            name=protocol.INVOKE_TAURI,
            args=protocol.invoke_frame_args(protocol.GET_BACKEND_STATE),
        )
        try:
            response = await self.client.send_command(
                command, timeout=self.config.connect_timeout
            )
        except BridgeError as e:
            logger.debug("Backend state unavailable: %s", e)
            return None
        if not response.success:
            return None
        identifier = protocol.app_info(response.data).get("identifier")
        return str(identifier) if identifier else None


def _started_message(session: SessionInfo) -> str:
    return f"Session started with app: {session.display_name} ({session.endpoint})"
