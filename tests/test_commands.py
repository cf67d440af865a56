"""Tests for BridgeCommands argument handling and error mapping."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from fake_bridge import FakeBridge, run_async

from bridgedriver.config import DriverConfig
from bridgedriver.driver import protocol
from bridgedriver.driver.commands import BridgeCommands
from bridgedriver.driver.session import SessionManager
from bridgedriver.errors import (
    BridgeDisconnectedError,
    CommandError,
    InvalidArgumentsError,
    WindowNotFoundError,
)
from bridgedriver.models import Response

WINDOWS = [{"label": "main", "isMain": True}, {"label": "settings"}]


def _make_commands(reply=None):
    """BridgeCommands over a mocked transport.

    ``reply`` maps command name -> Response; anything else succeeds with
    ``data=None`` (list_windows returns WINDOWS).
    """
    reply = reply or {}
    client = MagicMock()
    client.is_connected.return_value = True

    async def send(command, timeout=None):
        if command.name in reply:
            return reply[command.name]
        if command.name == protocol.LIST_WINDOWS:
            return Response(correlation_id="1", success=True, data=WINDOWS)
        return Response(correlation_id="1", success=True, data=None)

    client.send_command = AsyncMock(side_effect=send)
    manager = SessionManager(client=client, prober=MagicMock())
    return BridgeCommands(manager), client


def _sent_names(client):
    return [c.args[0].name for c in client.send_command.await_args_list]


def _failure(error):
    return Response(correlation_id="1", success=False, error=error)


class TestExecuteJs:
    def test_defaults_to_main(self):
        commands, client = _make_commands()
        run_async(commands.execute_js("document.title"))
        command = client.send_command.await_args.args[0]
        assert command.name == "execute_js"
        assert command.args == {"script": "document.title", "windowLabel": "main"}
        assert _sent_names(client) == ["execute_js"]

    def test_explicit_window_is_validated_first(self):
        commands, client = _make_commands()
        run_async(commands.execute_js("1 + 1", "settings"))
        assert _sent_names(client) == ["list_windows", "execute_js"]
        assert client.send_command.await_args.args[0].args["windowLabel"] == "settings"

    def test_unknown_window_sends_nothing_else(self):
        commands, client = _make_commands()
        with pytest.raises(WindowNotFoundError):
            run_async(commands.execute_js("1 + 1", "ghost"))
        assert _sent_names(client) == ["list_windows"]

    def test_empty_script(self):
        commands, client = _make_commands()
        with pytest.raises(InvalidArgumentsError):
            run_async(commands.execute_js(""))
        client.send_command.assert_not_called()

    def test_failure_names_window(self):
        commands, _ = _make_commands({"execute_js": _failure("ReferenceError: foo")})
        with pytest.raises(CommandError) as exc:
            run_async(commands.execute_js("foo()"))
        assert "window 'main'" in str(exc.value)
        assert "ReferenceError: foo" in str(exc.value)


class TestRawCommands:
    def test_send_raw_command_returns_data(self):
        commands, _ = _make_commands({"custom": Response(correlation_id="1", success=True, data=[1, 2])})
        assert run_async(commands.send_raw_command("custom", {"x": 1})) == [1, 2]

    def test_send_raw_command_failure(self):
        commands, _ = _make_commands({"custom": _failure("nope")})
        with pytest.raises(CommandError) as exc:
            run_async(commands.send_raw_command("custom"))
        assert exc.value.command == "custom"
        assert str(exc.value) == "nope"

    def test_send_raw_command_requires_name(self):
        commands, _ = _make_commands()
        with pytest.raises(InvalidArgumentsError):
            run_async(commands.send_raw_command(""))

    def test_execute_ipc_command_success(self):
        commands, client = _make_commands(
            {"invoke_tauri": Response(correlation_id="1", success=True, data={"ok": 1})}
        )
        outcome = run_async(commands.execute_ipc_command("greet", {"name": "x"}))
        assert outcome == {"success": True, "result": {"ok": 1}}
        command = client.send_command.await_args.args[0]
        assert command.args == {"command": "greet", "args": {"name": "x"}}

    def test_execute_ipc_command_never_raises(self):
        commands, client = _make_commands()
        client.send_command.side_effect = BridgeDisconnectedError("Not connected")
        outcome = run_async(commands.execute_ipc_command("greet"))
        assert outcome == {"success": False, "error": "Not connected"}


class TestPluginCommands:
    def test_backend_state(self):
        commands, client = _make_commands(
            {"invoke_tauri": Response(correlation_id="1", success=True, data={"app": {"name": "A"}})}
        )
        assert run_async(commands.get_backend_state()) == {"app": {"name": "A"}}
        assert client.send_command.await_args.args[0].args["command"] == protocol.GET_BACKEND_STATE

    def test_plugin_failure_message(self):
        commands, _ = _make_commands({"invoke_tauri": _failure("plugin missing")})
        with pytest.raises(CommandError) as exc:
            run_async(commands.start_ipc_monitor())
        assert str(exc.value) == "Failed to start IPC monitoring: plugin missing"

    def test_manage_ipc_monitor(self):
        commands, client = _make_commands()
        run_async(commands.manage_ipc_monitor("stop"))
        assert client.send_command.await_args.args[0].args["command"] == protocol.STOP_IPC_MONITOR
        with pytest.raises(InvalidArgumentsError):
            run_async(commands.manage_ipc_monitor("pause"))

    def test_get_ipc_events_filter(self):
        events = [{"command": "greet"}, {"command": "save_file"}, {"command": "greet_all"}]
        commands, _ = _make_commands(
            {"invoke_tauri": Response(correlation_id="1", success=True, data=events)}
        )
        assert run_async(commands.get_ipc_events("greet")) == [
            {"command": "greet"},
            {"command": "greet_all"},
        ]
        assert len(run_async(commands.get_ipc_events())) == 3

    def test_emit_test_event(self):
        commands, client = _make_commands()
        run_async(commands.emit_test_event("refresh", {"n": 1}))
        args = client.send_command.await_args.args[0].args
        assert args["command"] == protocol.EMIT_EVENT
        assert args["args"] == {"eventName": "refresh", "payload": {"n": 1}}
        with pytest.raises(InvalidArgumentsError):
            run_async(commands.emit_test_event(""))


class TestWindows:
    def test_list_windows_shape(self):
        commands, _ = _make_commands()
        result = run_async(commands.list_windows())
        assert result["defaultWindow"] == "main"
        assert result["totalCount"] == 2
        assert result["windows"][0]["label"] == "main"
        assert result["windows"][0]["isMain"] is True

    def test_resize_window(self):
        commands, client = _make_commands()
        run_async(commands.resize_window(800, 600, "settings", logical=False))
        command = client.send_command.await_args.args[0]
        assert command.name == "resize_window"
        assert command.args == {"width": 800, "height": 600, "windowId": "settings", "logical": False}

    @pytest.mark.parametrize("width, height", [(0, 600), (800, -1), (True, 600), ("800", 600)])
    def test_resize_rejects_bad_sizes(self, width, height):
        commands, client = _make_commands()
        with pytest.raises(InvalidArgumentsError):
            run_async(commands.resize_window(width, height))
        client.send_command.assert_not_called()

    def test_window_info_failure(self):
        commands, _ = _make_commands({"get_window_info": _failure("no such window")})
        with pytest.raises(CommandError) as exc:
            run_async(commands.window_info("settings"))
        assert str(exc.value) == "Failed to get window info: no such window"

    def test_window_info_defaults_to_main(self):
        commands, client = _make_commands()
        run_async(commands.window_info())
        command = client.send_command.await_args.args[0]
        assert command.name == "get_window_info"
        assert command.args == {"windowId": "main"}

    @pytest.mark.parametrize("call", [
        lambda c: c.window_info("ghost"),
        lambda c: c.resize_window(100, 100, "ghost"),
        lambda c: c.manage_window("resize", "ghost", width=100, height=100),
    ])
    def test_unknown_window_is_rejected_before_dispatch(self, call):
        commands, client = _make_commands()
        with pytest.raises(WindowNotFoundError) as exc:
            run_async(call(commands))
        assert "Window 'ghost' not found" in str(exc.value)
        assert _sent_names(client) == ["list_windows"]

    def test_manage_window(self):
        commands, _ = _make_commands()
        assert run_async(commands.manage_window("list"))["totalCount"] == 2
        with pytest.raises(InvalidArgumentsError):
            run_async(commands.manage_window("resize", width=800))
        with pytest.raises(InvalidArgumentsError) as exc:
            run_async(commands.manage_window("minimize"))
        assert "list, info, resize" in str(exc.value)


class TestScripts:
    def test_script_round_trip(self):
        async def _run():
            commands, _ = _make_commands()
            await commands.register_script("a", "inline", "x")
            await commands.register_script("b", "url", "https://example/b.js")
            listing = commands.list_scripts()
            registered = commands.is_script_registered("a")
            removed = await commands.remove_script("a")
            cleared = await commands.clear_scripts()
            return listing, registered, removed, cleared

        listing, registered, removed, cleared = run_async(_run())
        assert [s["id"] for s in listing["scripts"]] == ["a", "b"]
        assert listing["scripts"][1]["kind"] == "url"
        assert registered is True
        assert removed["removed"] is True
        assert cleared == {"cleared": 1}


class TestAgainstBridge:
    def test_execute_js_end_to_end(self):
        async def _run():
            async with FakeBridge() as bridge:
                bridge.responders["execute_js"] = lambda args: {"success": True, "data": "Demo Title"}
                manager = SessionManager(
                    config=DriverConfig(host="127.0.0.1", port=bridge.port, connect_timeout=2.0)
                )
                commands = BridgeCommands(manager)
                await commands.start_session()
                title = await commands.execute_js("document.title")
                status = commands.session_status()
                await commands.stop_session()
                return title, status

        title, status = run_async(_run())
        assert title == "Demo Title"
        assert status["connected"] is True
        assert status["app"] == "Test App"
