"""Tests for WindowResolver with a mocked transport."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock

import pytest

from fake_bridge import run_async

from bridgedriver.driver.windows import WindowResolver
from bridgedriver.errors import CommandError, ProtocolError, WindowNotFoundError
from bridgedriver.models import Response

WINDOWS = [
    {"label": "main", "title": "Main", "url": "http://localhost/", "focused": True, "isMain": True},
    {"label": "settings", "title": "Settings", "visible": False, "extra": "ignored"},
]


def _make_resolver(data=WINDOWS, success=True, error=None):
    client = MagicMock()
    client.send_command = AsyncMock(
        return_value=Response(correlation_id="1", success=success, data=data, error=error)
    )
    return WindowResolver(client), client


class TestListWindows:
    def test_descriptors(self):
        resolver, client = _make_resolver()
        windows = run_async(resolver.list_windows())
        assert [w.label for w in windows] == ["main", "settings"]
        assert windows[0].is_main is True
        assert windows[0].focused is True
        assert windows[1].visible is False
        assert client.send_command.await_args.args[0].name == "list_windows"

    def test_failure_reply(self):
        resolver, _ = _make_resolver(data=None, success=False, error="window manager gone")
        with pytest.raises(CommandError) as exc:
            run_async(resolver.list_windows())
        assert "Failed to list windows: window manager gone" in str(exc.value)

    def test_non_list_reply(self):
        resolver, _ = _make_resolver(data={"main": {}})
        with pytest.raises(ProtocolError):
            run_async(resolver.list_windows())


class TestResolve:
    @pytest.mark.parametrize("window_id", [None, ""])
    def test_default_is_main_without_io(self, window_id):
        resolver, client = _make_resolver()
        assert run_async(resolver.resolve(window_id)) == "main"
        client.send_command.assert_not_called()

    def test_known_window(self):
        resolver, client = _make_resolver()
        assert run_async(resolver.resolve("settings")) == "settings"
        client.send_command.assert_awaited_once()

    def test_unknown_window_lists_available(self):
        resolver, _ = _make_resolver()
        with pytest.raises(WindowNotFoundError) as exc:
            run_async(resolver.resolve("missing"))
        assert exc.value.window_id == "missing"
        assert exc.value.available == ["main", "settings"]
        assert "Available windows: main, settings" in str(exc.value)

    def test_explicit_main_is_checked(self):
        resolver, client = _make_resolver(data=[{"label": "other"}])
        with pytest.raises(WindowNotFoundError):
            run_async(resolver.resolve("main"))
        client.send_command.assert_awaited_once()
