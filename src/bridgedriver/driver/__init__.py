from bridgedriver.driver.commands import BridgeCommands
from bridgedriver.driver.discovery import DiscoveryProber
from bridgedriver.driver.scripts import ScriptRegistry
from bridgedriver.driver.session import SessionManager
from bridgedriver.driver.transport import TransportClient
from bridgedriver.driver.windows import WindowResolver

__all__ = [
    "BridgeCommands",
    "DiscoveryProber",
    "ScriptRegistry",
    "SessionManager",
    "TransportClient",
    "WindowResolver",
]
