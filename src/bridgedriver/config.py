from __future__ import annotations

import os
from dataclasses import dataclass, field
from typing import Optional

DEFAULT_HOST = "localhost"
DEFAULT_PORT = 9223

# Discovery range: the bridge binds the first free port in base..base+99
SCAN_START = 9223
SCAN_END = 9322


def default_host() -> str:
    """Host from MCP_BRIDGE_HOST, then TAURI_DEV_HOST, then localhost."""
    return (
        os.environ.get("MCP_BRIDGE_HOST")
        or os.environ.get("TAURI_DEV_HOST")
        or DEFAULT_HOST
    )


def default_port() -> int:
    """Port from MCP_BRIDGE_PORT, falling back to 9223."""
    raw = os.environ.get("MCP_BRIDGE_PORT")
    if not raw:
        return DEFAULT_PORT
    try:
        return int(raw)
    except ValueError:
        return DEFAULT_PORT


@dataclass
class DriverConfig:
    """Configuration for the bridge driver."""

    host: str = field(default_factory=default_host)
    port: int = field(default_factory=default_port)
    connect_timeout: float = 5.0
    request_timeout: float = 30.0
    probe_timeout: float = 1.0
    scan_start: int = SCAN_START
    scan_end: int = SCAN_END
    log_level: str = field(
        default_factory=lambda: os.environ.get("BRIDGEDRIVER_LOG_LEVEL", "WARNING")
    )


# Module-level late-binding singleton
_config: Optional[DriverConfig] = None


def configure(**kwargs) -> DriverConfig:
    """Create and set the global DriverConfig.

    :param kwargs: Fields to override on DriverConfig.
    :return: The configured DriverConfig instance.
    """
    global _config
    _config = DriverConfig(**kwargs)
    return _config


def get_driver_config() -> DriverConfig:
    """Return the current config, creating a default if needed."""
    global _config
    if _config is None:
        _config = DriverConfig()
    return _config
