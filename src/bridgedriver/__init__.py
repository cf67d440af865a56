"""bridgedriver: drive a desktop app's embedded web view through its bridge.

Core exports for library usage.
"""

from bridgedriver._version import __version__
from bridgedriver.config import DriverConfig, configure, get_driver_config
from bridgedriver.errors import (
    BridgeConnectionError,
    BridgeDisconnectedError,
    BridgeError,
    CommandError,
    InvalidArgumentsError,
    ProtocolError,
    RequestTimeoutError,
    WindowNotFoundError,
)
from bridgedriver.models import (
    BridgeEvent,
    Command,
    ConnectionState,
    Endpoint,
    Response,
    ScriptEntry,
    ScriptKind,
    SessionInfo,
    SessionStatus,
    WindowDescriptor,
)
from bridgedriver.driver import (
    BridgeCommands,
    DiscoveryProber,
    ScriptRegistry,
    SessionManager,
    TransportClient,
    WindowResolver,
)

__all__ = [
    "__version__",
    # Config
    "DriverConfig",
    "configure",
    "get_driver_config",
    # Errors
    "BridgeError",
    "BridgeConnectionError",
    "BridgeDisconnectedError",
    "ProtocolError",
    "RequestTimeoutError",
    "CommandError",
    "WindowNotFoundError",
    "InvalidArgumentsError",
    # Models
    "BridgeEvent",
    "Command",
    "ConnectionState",
    "Endpoint",
    "Response",
    "ScriptEntry",
    "ScriptKind",
    "SessionInfo",
    "SessionStatus",
    "WindowDescriptor",
    # Driver
    "BridgeCommands",
    "DiscoveryProber",
    "ScriptRegistry",
    "SessionManager",
    "TransportClient",
    "WindowResolver",
]
