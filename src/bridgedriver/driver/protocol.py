"""Wire-level names understood by the bridge plugin."""

from __future__ import annotations

import json
from typing import Any, Dict

# Commands handled by the bridge itself
LIST_WINDOWS = "list_windows"
GET_WINDOW_INFO = "get_window_info"
RESIZE_WINDOW = "resize_window"
EXECUTE_JS = "execute_js"
INVOKE_TAURI = "invoke_tauri"

# Plugin commands reached through invoke_tauri
PLUGIN_PREFIX = "plugin:mcp-bridge|"
GET_BACKEND_STATE = PLUGIN_PREFIX + "get_backend_state"
START_IPC_MONITOR = PLUGIN_PREFIX + "start_ipc_monitor"
STOP_IPC_MONITOR = PLUGIN_PREFIX + "stop_ipc_monitor"
GET_IPC_EVENTS = PLUGIN_PREFIX + "get_ipc_events"
EMIT_EVENT = PLUGIN_PREFIX + "emit_event"

# Events after which previously injected page state is gone
NAVIGATION_EVENTS = frozenset({"page_loaded", "navigation"})

SCRIPT_ID_ATTRIBUTE = "data-mcp-script-id"


def invoke_frame_args(command: str, args: Any = None) -> Dict[str, Any]:
    """Arguments for an ``invoke_tauri`` command."""
    return {"command": command, "args": args if args is not None else {}}


def app_info(state: Any) -> Dict[str, Any]:
    """Extract the ``app`` section of a backend-state payload.

    Older plugins return the state as a JSON string; missing or
    malformed sections yield an empty dict.
    """
    if isinstance(state, str):
        try:
            state = json.loads(state)
        except json.JSONDecodeError:
            return {}
    if not isinstance(state, dict):
        return {}
    app = state.get("app")
    return app if isinstance(app, dict) else {}
