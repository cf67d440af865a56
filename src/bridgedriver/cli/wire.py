"""JSON-lines framing between bridgectl and its session daemon.

Each TCP connection carries one request and one reply.  Both are a
single JSON object on one newline-terminated line.  The blocking helpers
serve the CLI side; the ``async`` ones serve the daemon.
"""

from __future__ import annotations

import asyncio
import json
import socket
from typing import Any, Dict, Optional

HOST = "127.0.0.1"
MAX_LINE = 1024 * 1024


class WireError(ValueError):
    """A line that is not a single JSON object."""


def encode(message: Dict[str, Any]) -> bytes:
    return json.dumps(message, default=str).encode("utf-8") + b"\n"


def decode(line: bytes) -> Dict[str, Any]:
    """Parse one line into a message.

    :raises WireError: empty line, over-long line, bad JSON or a non-object.
    """
    if len(line) > MAX_LINE:
        raise WireError(f"Message exceeds {MAX_LINE} bytes")
    text = line.decode("utf-8", errors="replace").strip()
    if not text:
        raise WireError("Empty message")
    try:
        message = json.loads(text)
    except json.JSONDecodeError as e:
        raise WireError(f"Invalid JSON: {e}") from None
    if not isinstance(message, dict):
        raise WireError("Message must be a JSON object")
    return message


def exchange(port: int, message: Dict[str, Any], timeout: float) -> Dict[str, Any]:
    """Send ``message`` to the daemon on ``port`` and return its reply.

    :raises OSError: connect failed, the connection dropped or timed out.
    :raises WireError: the daemon hung up without replying, or sent garbage.
    """
    with socket.create_connection((HOST, port), timeout=timeout) as sock:
        sock.sendall(encode(message))
        with sock.makefile("rb") as stream:
            line = stream.readline(MAX_LINE + 1)
    if not line:
        raise WireError("Daemon closed the connection without replying")
    return decode(line)


async def read_message(
    reader: asyncio.StreamReader, timeout: float
) -> Optional[Dict[str, Any]]:
    """Read one message from a daemon client; None if it hung up first.

    :raises asyncio.TimeoutError: nothing arrived within ``timeout``.
    :raises WireError: see :func:`decode`.
    """
    try:
        line = await asyncio.wait_for(reader.readline(), timeout)
    except ValueError:
        # StreamReader's limit was hit before a newline
        raise WireError(f"Message exceeds {MAX_LINE} bytes") from None
    if not line.strip():
        return None
    return decode(line)


async def write_message(writer: asyncio.StreamWriter, message: Dict[str, Any]) -> None:
    writer.write(encode(message))
    await writer.drain()
