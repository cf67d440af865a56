"""Error taxonomy for the bridge driver.

Every error a caller can see derives from BridgeError so tooling can
surface the message to its end user as-is.
"""

from __future__ import annotations

from typing import List, Optional


class BridgeError(RuntimeError):
    """Base class for all driver errors."""


class BridgeConnectionError(BridgeError):
    """Connecting to a bridge failed (refused, timeout, handshake)."""


class BridgeDisconnectedError(BridgeError):
    """No live connection, or the connection was torn down mid-request."""


class ProtocolError(BridgeError):
    """The bridge answered with a frame that could not be understood."""


class RequestTimeoutError(BridgeError):
    """A single request was not answered in time."""

    def __init__(self, command: str, timeout: Optional[float]):
        self.command = command
        self.timeout = timeout
        super().__init__(f"Command '{command}' timed out after {timeout}s")


class CommandError(BridgeError):
    """The bridge reported ``success: false`` for a command."""

    def __init__(self, message: str, command: Optional[str] = None):
        self.command = command
        super().__init__(message)


class WindowNotFoundError(BridgeError):
    """An explicit window label does not match any open window."""

    def __init__(self, window_id: str, available: List[str]):
        self.window_id = window_id
        self.available = available
        listing = ", ".join(available) if available else "none"
        super().__init__(
            f"Window '{window_id}' not found. Available windows: {listing}"
        )


class InvalidArgumentsError(BridgeError, ValueError):
    """Arguments were rejected before anything was sent."""
