"""CLI side of the session daemon: find it, start it, talk to it."""

from __future__ import annotations

import logging
import os
import subprocess
import sys
import time
from typing import Any, Dict, Optional

import psutil

from bridgedriver.cli import wire
from bridgedriver.cli.session_server import (
    log_file_path,
    read_pid_file,
    remove_pid_file,
    session_port,
)

logger = logging.getLogger(__name__)

READY_TIMEOUT = 10.0
PING_TIMEOUT = 2.0


def send_command(port: int, request: dict, timeout: float = 30.0) -> dict:
    """Send one request and return the daemon's reply.

    Transport failures come back as ``{"status": "error", ...}`` replies
    so callers handle every outcome the same way.
    """
    try:
        return wire.exchange(port, request, timeout)
    except ConnectionRefusedError:
        return {"status": "error", "error": "Daemon connection refused"}
    except TimeoutError:
        return {"status": "error", "error": "Daemon response timeout"}
    except wire.WireError as e:
        return {"status": "error", "error": f"Bad reply from daemon: {e}"}
    except OSError as e:
        return {"status": "error", "error": f"Connection error: {e}"}


def _ping(port: int) -> Optional[Dict[str, Any]]:
    reply = send_command(port, {"command": "_ping"}, timeout=PING_TIMEOUT)
    return reply if reply.get("status") == "ok" else None


def daemon_state(session_name: str) -> Optional[Dict[str, Any]]:
    """The running daemon's ``_ping`` reply plus its ``port``, or None.

    The reply's ``bridge`` entry is the daemon's session status.  A record
    left behind by a dead or unresponsive daemon is removed.
    """
    record = read_pid_file(session_name)
    if record is None:
        remove_pid_file(session_name)
        return None
    if not psutil.pid_exists(record.pid):
        remove_pid_file(session_name)
        return None

    reply = _ping(record.port)
    if reply is None:
        remove_pid_file(session_name)
        return None
    if reply.get("session") != session_name:
        logger.warning(
            "Port %d collision: expected session '%s' but got '%s'",
            record.port, session_name, reply.get("session"),
        )
        return None
    reply["port"] = record.port
    return reply


def ensure_server(session_name: str, *, log_level: Optional[str] = None) -> int:
    """Port of the daemon for ``session_name``, starting one if needed.

    :raises RuntimeError: the new daemon exited or never answered a ping.
    """
    state = daemon_state(session_name)
    if state is not None:
        bridge = state.get("bridge") or {}
        logger.debug(
            "Reusing daemon '%s' on port %d (bridge connected: %s)",
            session_name, state["port"], bridge.get("connected", False),
        )
        return state["port"]

    port = session_port(session_name)
    cmd = [
        sys.executable, "-m", "bridgedriver.cli.app",
        "_serve",
        "--session-name", session_name,
        "--port", str(port),
    ]
    if log_level:
        cmd.extend(["--log-level", log_level])

    # Detach so the daemon outlives this CLI process
    if os.name == "nt":
        detach = {
            "creationflags": subprocess.CREATE_NEW_PROCESS_GROUP | subprocess.DETACHED_PROCESS
        }
    else:
        detach = {"start_new_session": True}
    # The daemon logs to its own file; its stdio goes nowhere
    proc = subprocess.Popen(
        cmd,
        stdin=subprocess.DEVNULL,
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
        **detach,
    )

    deadline = time.monotonic() + READY_TIMEOUT
    while time.monotonic() < deadline:
        time.sleep(0.3)
        reply = _ping(port)
        if reply is not None and reply.get("session") == session_name:
            return port
        if proc.poll() is not None:
            raise RuntimeError(
                f"Daemon process exited with code {proc.returncode}; "
                f"see {log_file_path(session_name)}"
            )

    raise RuntimeError(
        f"Daemon for session '{session_name}' did not become ready within "
        f"{READY_TIMEOUT:.0f}s"
    )
