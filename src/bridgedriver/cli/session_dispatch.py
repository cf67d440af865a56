"""SessionDispatch: command dispatch layer for daemon mode.

Maps request dicts to handler coroutines operating on a persistent
SessionManager.  Transport-agnostic: works over TCP or direct in-process
calls.
"""

from __future__ import annotations

import logging
from typing import Any, Awaitable, Callable, Dict, Optional

from bridgedriver._utils import is_json_serializable, parse_json_arg
from bridgedriver.driver.commands import BridgeCommands
from bridgedriver.driver.session import SessionManager
from bridgedriver.errors import InvalidArgumentsError

logger = logging.getLogger(__name__)

Handler = Callable[[dict, dict], Awaitable[dict]]


class SessionDispatch:
    """Command dispatch: request dict -> response dict.  Never raises."""

    def __init__(self, manager: SessionManager):
        self.manager = manager
        self.commands = BridgeCommands(manager)
        self._dispatch: Dict[str, Handler] = self._build_dispatch_table()

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def handle(self, request: dict) -> dict:
        """Process a single request, return a response dict."""
        command = request.get("command", "")
        args = request.get("args") or {}
        flags = request.get("flags") or {}

        # Built-in meta commands
        if command == "_ping":
            return {
                "status": "ok",
                "result": "pong",
                "bridge": self.manager.status().model_dump(),
            }
        if command == "_shutdown":
            return {"status": "ok", "result": "shutdown"}

        handler = self._dispatch.get(command)
        if handler is None:
            return {"status": "error", "error": f"Unknown command: {command}"}
        try:
            return await handler(args, flags)
        except Exception as e:
            logger.exception("Handler error for %s", command)
            return {"status": "error", "error": str(e), "command": command}

    async def close(self) -> None:
        """Stop the driver session before the daemon exits."""
        await self.manager.stop()

    # ------------------------------------------------------------------
    # Dispatch table
    # ------------------------------------------------------------------

    def _build_dispatch_table(self) -> Dict[str, Handler]:
        return {
            # Session
            "session start": self._handle_session_start,
            "session stop": self._handle_session_stop,
            "session status": self._handle_session_status,
            # Windows
            "windows": self._handle_windows,
            "window info": self._handle_window_info,
            "window resize": self._handle_window_resize,
            "resolve": self._handle_resolve,
            # Web view / raw
            "exec": self._handle_exec,
            "invoke": self._handle_invoke,
            "ipc": self._handle_ipc,
            "backend-state": self._handle_backend_state,
            "monitor": self._handle_monitor,
            "events": self._handle_events,
            "emit": self._handle_emit,
            # Scripts
            "script add": self._handle_script_add,
            "script remove": self._handle_script_remove,
            "script list": self._handle_script_list,
            "script clear": self._handle_script_clear,
            "script check": self._handle_script_check,
        }

    # ------------------------------------------------------------------
    # Session handlers
    # ------------------------------------------------------------------

    async def _handle_session_start(self, args: dict, flags: dict) -> dict:
        host = args.get("host") or None
        port = _optional_int(args, "port")
        message = await self.manager.start(host, port)
        status = self.manager.status()
        return {
            "status": "ok",
            "result": message,
            "session": status.model_dump(),
        }

    async def _handle_session_stop(self, args: dict, flags: dict) -> dict:
        return {"status": "ok", "result": await self.manager.stop()}

    async def _handle_session_status(self, args: dict, flags: dict) -> dict:
        return {"status": "ok", "result": self.manager.status().model_dump()}

    # ------------------------------------------------------------------
    # Window handlers
    # ------------------------------------------------------------------

    async def _handle_windows(self, args: dict, flags: dict) -> dict:
        return {"status": "ok", "result": await self.commands.list_windows()}

    async def _handle_window_info(self, args: dict, flags: dict) -> dict:
        result = await self.commands.window_info(_window(args, flags))
        return {"status": "ok", "result": result}

    async def _handle_window_resize(self, args: dict, flags: dict) -> dict:
        width = _optional_int(args, "width")
        height = _optional_int(args, "height")
        result = await self.commands.manage_window(
            "resize",
            window_id=_window(args, flags),
            width=width,
            height=height,
            logical=not args.get("physical", False),
        )
        return {"status": "ok", "result": result}

    async def _handle_resolve(self, args: dict, flags: dict) -> dict:
        label = await self.commands.resolve_window(_window(args, flags))
        return {"status": "ok", "result": label}

    # ------------------------------------------------------------------
    # Web view / raw command handlers
    # ------------------------------------------------------------------

    async def _handle_exec(self, args: dict, flags: dict) -> dict:
        result = await self.commands.execute_js(
            args.get("script", ""), _window(args, flags)
        )
        return {"status": "ok", "result": _serializable(result)}

    async def _handle_invoke(self, args: dict, flags: dict) -> dict:
        timeout = args.get("timeout")
        result = await self.commands.send_raw_command(
            args.get("name", ""),
            parse_json_arg(args.get("args")),
            float(timeout) if timeout is not None else None,
        )
        return {"status": "ok", "result": _serializable(result)}

    async def _handle_ipc(self, args: dict, flags: dict) -> dict:
        command = args.get("name", "")
        if not command:
            raise InvalidArgumentsError("IPC command name is required")
        outcome = await self.commands.execute_ipc_command(
            command, parse_json_arg(args.get("args"))
        )
        if not outcome["success"]:
            return {"status": "error", "error": outcome["error"], "command": "ipc"}
        return {"status": "ok", "result": _serializable(outcome["result"])}

    async def _handle_backend_state(self, args: dict, flags: dict) -> dict:
        return {"status": "ok", "result": await self.commands.get_backend_state()}

    async def _handle_monitor(self, args: dict, flags: dict) -> dict:
        result = await self.commands.manage_ipc_monitor(args.get("action", ""))
        return {"status": "ok", "result": _serializable(result)}

    async def _handle_events(self, args: dict, flags: dict) -> dict:
        events = await self.commands.get_ipc_events(args.get("filter"))
        return {"status": "ok", "result": _serializable(events)}

    async def _handle_emit(self, args: dict, flags: dict) -> dict:
        result = await self.commands.emit_test_event(
            args.get("name", ""), parse_json_arg(args.get("payload"))
        )
        return {"status": "ok", "result": _serializable(result)}

    # ------------------------------------------------------------------
    # Script handlers
    # ------------------------------------------------------------------

    async def _handle_script_add(self, args: dict, flags: dict) -> dict:
        result = await self.commands.register_script(
            args.get("id", ""), args.get("kind", "inline"), args.get("content", "")
        )
        return {"status": "ok", "result": result}

    async def _handle_script_remove(self, args: dict, flags: dict) -> dict:
        return {"status": "ok", "result": await self.commands.remove_script(args.get("id", ""))}

    async def _handle_script_list(self, args: dict, flags: dict) -> dict:
        return {"status": "ok", "result": self.commands.list_scripts()}

    async def _handle_script_clear(self, args: dict, flags: dict) -> dict:
        return {"status": "ok", "result": await self.commands.clear_scripts()}

    async def _handle_script_check(self, args: dict, flags: dict) -> dict:
        script_id = args.get("id", "")
        return {
            "status": "ok",
            "result": {
                "scriptId": script_id,
                "registered": self.commands.is_script_registered(script_id),
            },
        }


def _window(args: dict, flags: dict) -> Optional[str]:
    """Per-command window, falling back to the global --window flag."""
    return args.get("window") or flags.get("window") or None


def _optional_int(args: dict, key: str) -> Optional[int]:
    value = args.get(key)
    if value is None or value == "":
        return None
    try:
        return int(value)
    except (TypeError, ValueError):
        raise InvalidArgumentsError(f"{key} must be an integer, got {value!r}") from None


def _serializable(value: Any) -> Any:
    return value if is_json_serializable(value) else str(value)
