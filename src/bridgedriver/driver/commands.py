"""BridgeCommands: the operations calling tooling uses on a live session.

Thin wrappers over TransportClient.send_command: validate arguments,
resolve the target window, and turn ``success: false`` replies into
CommandError with a message naming the operation that failed.
"""

from __future__ import annotations

import logging
from typing import Any, Dict, List, Optional

from bridgedriver.driver import protocol
from bridgedriver.driver.session import SessionManager
from bridgedriver.errors import BridgeError, CommandError, InvalidArgumentsError
from bridgedriver.models import MAIN_WINDOW, Command, ScriptKind

logger = logging.getLogger(__name__)

WINDOW_ACTIONS = ("list", "info", "resize")


class BridgeCommands:
    """Command surface over one SessionManager."""

    def __init__(self, manager: SessionManager):
        self.manager = manager

    @property
    def client(self):
        return self.manager.client

    # ------------------------------------------------------------------
    # Session
    # ------------------------------------------------------------------

    async def start_session(self, host: Optional[str] = None, port: Optional[int] = None) -> str:
        return await self.manager.start(host, port)

    async def stop_session(self) -> str:
        return await self.manager.stop()

    def session_status(self) -> Dict[str, Any]:
        return self.manager.status().model_dump()

    # ------------------------------------------------------------------
    # Raw commands
    # ------------------------------------------------------------------

    async def send_raw_command(
        self, name: str, args: Any = None, timeout: Optional[float] = None
    ) -> Any:
        """Send any bridge command and return its ``data``.

        :raises CommandError: The bridge answered ``success: false``.
        """
        if not name:
            raise InvalidArgumentsError("Command name is required")
        response = await self.client.send_command(Command(name=name, args=args), timeout)
        if not response.success:
            raise CommandError(response.error or "Unknown error", command=name)
        return response.data

    async def execute_ipc_command(self, command: str, args: Any = None) -> Dict[str, Any]:
        """Invoke a backend command through the bridge.  Never raises."""
        try:
            result = await self.send_raw_command(
                protocol.INVOKE_TAURI, protocol.invoke_frame_args(command, args)
            )
        except BridgeError as e:
            return {"success": False, "error": str(e)}
        return {"success": True, "result": result}

    async def _plugin_call(self, command: str, what: str, args: Any = None) -> Any:
        outcome = await self.execute_ipc_command(command, args)
        if not outcome["success"]:
            raise CommandError(f"Failed to {what}: {outcome['error']}", command=command)
        return outcome["result"]

    # ------------------------------------------------------------------
    # Backend / IPC monitoring
    # ------------------------------------------------------------------

    async def get_backend_state(self) -> Any:
        return await self._plugin_call(protocol.GET_BACKEND_STATE, "get backend state")

    async def start_ipc_monitor(self) -> Any:
        return await self._plugin_call(protocol.START_IPC_MONITOR, "start IPC monitoring")

    async def stop_ipc_monitor(self) -> Any:
        return await self._plugin_call(protocol.STOP_IPC_MONITOR, "stop IPC monitoring")

    async def manage_ipc_monitor(self, action: str) -> Any:
        if action == "start":
            return await self.start_ipc_monitor()
        if action == "stop":
            return await self.stop_ipc_monitor()
        raise InvalidArgumentsError(f"Unknown monitor action: {action}")

    async def get_ipc_events(self, filter: Optional[str] = None) -> Any:
        """Captured IPC events, optionally narrowed to commands containing ``filter``."""
        events = await self._plugin_call(protocol.GET_IPC_EVENTS, "get IPC events")
        if filter and isinstance(events, list):
            events = [
                e for e in events
                if isinstance(e, dict) and filter in str(e.get("command") or "")
            ]
        return events

    async def emit_test_event(self, event_name: str, payload: Any = None) -> Any:
        if not event_name:
            raise InvalidArgumentsError("Event name is required")
        return await self._plugin_call(
            protocol.EMIT_EVENT,
            "emit event",
            {"eventName": event_name, "payload": payload},
        )

    # ------------------------------------------------------------------
    # Windows
    # ------------------------------------------------------------------

    async def resolve_window(self, window_id: Optional[str] = None) -> str:
        return await self.manager.windows.resolve(window_id)

    async def list_windows(self) -> Dict[str, Any]:
        windows = await self.manager.windows.list_windows()
        return {
            "windows": [w.model_dump(by_alias=True) for w in windows],
            "defaultWindow": MAIN_WINDOW,
            "totalCount": len(windows),
        }

    async def window_info(self, window_id: Optional[str] = None) -> Any:
        label = await self.resolve_window(window_id)
        try:
            return await self.send_raw_command(
                protocol.GET_WINDOW_INFO, {"windowId": label}
            )
        except CommandError as e:
            raise CommandError(
                f"Failed to get window info: {e}", command=protocol.GET_WINDOW_INFO
            ) from e

    async def resize_window(
        self,
        width: int,
        height: int,
        window_id: Optional[str] = None,
        logical: bool = True,
    ) -> Any:
        """Resize a window; logical pixels unless ``logical`` is False."""
        for name, value in (("width", width), ("height", height)):
            if isinstance(value, bool) or not isinstance(value, int) or value <= 0:
                raise InvalidArgumentsError(f"{name} must be a positive integer, got {value!r}")
        label = await self.resolve_window(window_id)
        try:
            return await self.send_raw_command(
                protocol.RESIZE_WINDOW,
                {
                    "width": width,
                    "height": height,
                    "windowId": label,
                    "logical": logical,
                },
            )
        except CommandError as e:
            raise CommandError(
                f"Failed to resize window: {e}", command=protocol.RESIZE_WINDOW
            ) from e

    async def manage_window(
        self,
        action: str,
        window_id: Optional[str] = None,
        width: Optional[int] = None,
        height: Optional[int] = None,
        logical: bool = True,
    ) -> Any:
        if action == "list":
            return await self.list_windows()
        if action == "info":
            return await self.window_info(window_id)
        if action == "resize":
            if width is None or height is None:
                raise InvalidArgumentsError("width and height are required for resize action")
            return await self.resize_window(width, height, window_id, logical)
        raise InvalidArgumentsError(
            f"Unknown action: {action}. Expected one of {', '.join(WINDOW_ACTIONS)}"
        )

    # ------------------------------------------------------------------
    # Web view
    # ------------------------------------------------------------------

    async def execute_js(self, script: str, window_id: Optional[str] = None) -> Any:
        """Run JavaScript in a window (validated before anything is sent)."""
        if not script:
            raise InvalidArgumentsError("Script is required")
        label = await self.resolve_window(window_id)
        try:
            return await self.send_raw_command(
                protocol.EXECUTE_JS, {"script": script, "windowLabel": label}
            )
        except CommandError as e:
            raise CommandError(
                f"Failed to execute script in window '{label}': {e}",
                command=protocol.EXECUTE_JS,
            ) from e

    # ------------------------------------------------------------------
    # Scripts
    # ------------------------------------------------------------------

    async def register_script(
        self, script_id: str, kind: Any = ScriptKind.INLINE, content: str = ""
    ) -> Dict[str, Any]:
        return await self.manager.scripts.register(script_id, kind, content)

    async def remove_script(self, script_id: str) -> Dict[str, Any]:
        return await self.manager.scripts.remove(script_id)

    async def clear_scripts(self) -> Dict[str, int]:
        return await self.manager.scripts.clear()

    def list_scripts(self) -> Dict[str, List[Dict[str, Any]]]:
        return {
            "scripts": [
                entry.model_dump(mode="json") for entry in self.manager.scripts.list()
            ]
        }

    def is_script_registered(self, script_id: str) -> bool:
        return self.manager.scripts.is_registered(script_id)
