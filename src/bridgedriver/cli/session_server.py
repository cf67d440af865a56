"""Session daemon: asyncio server plus its on-disk record.

The daemon keeps one SessionManager (and with it the bridge connection and
the script registry) alive between CLI invocations.  Requests arrive on a
localhost TCP port derived from the session name; while no request is
being served the bridge connection keeps reading events, so navigation
replays still happen between commands.

Each session also owns two files in the temp dir: a JSON record of the
running daemon (``bridgectl_<name>.pid``) and its log.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import os
import tempfile
from typing import Optional

from pydantic import BaseModel, ValidationError

from bridgedriver.cli import wire
from bridgedriver.cli.session_dispatch import SessionDispatch

logger = logging.getLogger(__name__)

# IANA dynamic/private range
_PORT_MIN = 49152
_PORT_MAX = 65535

REQUEST_READ_TIMEOUT = 30.0


def session_port(name: str) -> int:
    """Deterministic daemon port for a session name."""
    digest = int(hashlib.sha256(name.encode()).hexdigest(), 16)
    return _PORT_MIN + digest % (_PORT_MAX - _PORT_MIN + 1)


def _temp_path(name: str, suffix: str) -> str:
    return os.path.join(tempfile.gettempdir(), f"bridgectl_{name}.{suffix}")


def pid_file_path(name: str) -> str:
    return _temp_path(name, "pid")


def log_file_path(name: str) -> str:
    return _temp_path(name, "log")


class DaemonRecord(BaseModel):
    """What a running daemon writes about itself."""

    pid: int
    port: int
    session_name: str


def write_pid_file(name: str, port: int) -> str:
    """Record this process as the daemon for ``name``.  Returns the path."""
    path = pid_file_path(name)
    record = DaemonRecord(pid=os.getpid(), port=port, session_name=name)
    with open(path, "w", encoding="utf-8") as f:
        f.write(record.model_dump_json())
    return path


def read_pid_file(name: str) -> Optional[DaemonRecord]:
    """The recorded daemon for ``name``, or None if missing or unreadable."""
    try:
        with open(pid_file_path(name), "r", encoding="utf-8") as f:
            return DaemonRecord.model_validate_json(f.read())
    except (OSError, ValidationError):
        return None


def remove_pid_file(name: str) -> None:
    try:
        os.unlink(pid_file_path(name))
    except FileNotFoundError:
        pass


class SessionServer:
    """Answers one request per connection until ``_shutdown`` arrives."""

    def __init__(self, dispatch: SessionDispatch, port: int, session_name: str):
        self._dispatch = dispatch
        self._port = port
        self._session_name = session_name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._stopped: Optional[asyncio.Event] = None

    def serve_forever(self) -> None:
        asyncio.run(self._serve())

    async def _serve(self) -> None:
        self._loop = asyncio.get_running_loop()
        self._stopped = asyncio.Event()
        server = await asyncio.start_server(
            self._handle_connection, wire.HOST, self._port, limit=wire.MAX_LINE
        )
        logger.info(
            "Session daemon '%s' listening on %s:%d (PID %d)",
            self._session_name, wire.HOST, self._port, os.getpid(),
        )
        try:
            async with server:
                await self._stopped.wait()
        finally:
            await self._dispatch.close()
            remove_pid_file(self._session_name)
            logger.info("Session daemon '%s' shut down", self._session_name)

    async def _handle_connection(
        self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter
    ) -> None:
        try:
            try:
                request = await wire.read_message(reader, REQUEST_READ_TIMEOUT)
            except asyncio.TimeoutError:
                logger.warning("Dropping client that sent no request")
                return
            except wire.WireError as e:
                await wire.write_message(writer, {"status": "error", "error": str(e)})
                return
            if request is None:
                return

            command = request.get("command")
            response = await self._dispatch.handle(request)
            if command == "_ping":
                response.update(session=self._session_name, pid=os.getpid())
            await wire.write_message(writer, response)

            if command == "_shutdown":
                self._stopped.set()
        except ConnectionError as e:
            logger.warning("Client went away: %s", e)
        finally:
            writer.close()
            try:
                await writer.wait_closed()
            except ConnectionError:
                pass

    def shutdown(self) -> None:
        """Stop serving; callable from any thread."""
        if self._loop is None or self._stopped is None:
            return
        try:
            self._loop.call_soon_threadsafe(self._stopped.set)
        except RuntimeError:
            # Loop already closed: the server has stopped on its own
            pass
