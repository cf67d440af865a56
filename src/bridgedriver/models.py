"""Driver models: endpoints, sessions, wire frames and registry entries."""

from __future__ import annotations

import asyncio
import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field

MAIN_WINDOW = "main"

LOCALHOST_NAMES = ("localhost", "127.0.0.1")


def is_localhost(host: str) -> bool:
    return host in LOCALHOST_NAMES


class ConnectionState(str, Enum):
    """Lifecycle of the single transport connection."""

    DISCONNECTED = "disconnected"
    CONNECTING = "connecting"
    CONNECTED = "connected"


class ScriptKind(str, Enum):
    """How a registered script is materialised in the web view."""

    INLINE = "inline"
    URL = "url"


class Endpoint(BaseModel):
    """A candidate target: host and port of a bridge."""

    model_config = ConfigDict(frozen=True)

    host: str = Field(min_length=1)
    port: int = Field(ge=1, le=65535)

    @property
    def url(self) -> str:
        host = f"[{self.host}]" if ":" in self.host else self.host
        return f"ws://{host}:{self.port}"

    def __str__(self) -> str:
        return f"{self.host}:{self.port}"


class SessionInfo(BaseModel):
    """The target the controller is currently bound to."""

    display_name: str
    identifier: Optional[str] = None
    endpoint: Endpoint


class SessionStatus(BaseModel):
    """Snapshot returned by SessionManager.status()."""

    connected: bool = False
    app: Optional[str] = None
    identifier: Optional[str] = None
    host: Optional[str] = None
    port: Optional[int] = None


class Command(BaseModel):
    """A command to send to the bridge."""

    name: str
    args: Optional[Any] = None

    def to_frame(self, correlation_id: str) -> Dict[str, Any]:
        frame: Dict[str, Any] = {"id": correlation_id, "command": self.name}
        if self.args is not None:
            frame["args"] = self.args
        return frame


class Response(BaseModel):
    """A bridge reply, matched to exactly one pending request."""

    correlation_id: str
    success: bool
    data: Any = None
    error: Optional[str] = None

    @classmethod
    def from_frame(cls, frame: Dict[str, Any]) -> "Response":
        return cls(
            correlation_id=str(frame["id"]),
            success=frame["success"],
            data=frame.get("data"),
            error=frame.get("error"),
        )


class BridgeEvent(BaseModel):
    """An unsolicited frame: carries an event name and no correlation id."""

    name: str
    payload: Any = None


class ScriptEntry(BaseModel):
    """A script the registry keeps injected across navigations."""

    id: str
    kind: ScriptKind
    content: str
    registered_at: float = Field(default_factory=time.time)


class WindowDescriptor(BaseModel):
    """Read-only snapshot of one target window."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    label: str
    title: Optional[str] = None
    url: Optional[str] = None
    focused: bool = False
    visible: bool = True
    is_main: bool = Field(default=False, alias="isMain")


@dataclass
class PendingRequest:
    """An in-flight request awaiting its response."""

    correlation_id: str
    command: str
    result_slot: asyncio.Future
    issued_at: float = field(default_factory=time.monotonic)
