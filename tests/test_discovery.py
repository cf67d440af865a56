"""Tests for DiscoveryProber: single probes and ascending port scans."""

from __future__ import annotations

from unittest.mock import AsyncMock

import pytest

from fake_bridge import FakeBridge, closed_port, run_async

from bridgedriver.driver import protocol
from bridgedriver.driver.discovery import UNKNOWN_APP, DiscoveryProber
from bridgedriver.errors import BridgeConnectionError
from bridgedriver.models import Endpoint, SessionInfo


class TestProbe:
    def test_probe_reads_display_name(self):
        async def _run():
            async with FakeBridge(app_name="Demo App") as bridge:
                prober = DiscoveryProber()
                info = await prober.probe("127.0.0.1", bridge.port, timeout=2.0)
                assert info.display_name == "Demo App"
                assert info.endpoint == Endpoint(host="127.0.0.1", port=bridge.port)
                assert prober.open_count == 0

                sent = bridge.commands(protocol.INVOKE_TAURI)
                assert sent[0]["id"] == "probe"
                assert sent[0]["args"]["command"] == protocol.GET_BACKEND_STATE

        run_async(_run())

    def test_probe_failed_state_is_unknown_app(self):
        async def _run():
            async with FakeBridge() as bridge:
                bridge.responders[protocol.INVOKE_TAURI] = lambda args: {
                    "success": False,
                    "error": "no such command",
                }
                info = await DiscoveryProber().probe("127.0.0.1", bridge.port, timeout=2.0)
                assert info.display_name == UNKNOWN_APP

        run_async(_run())

    def test_probe_silent_bridge_is_unknown_app(self):
        async def _run():
            async with FakeBridge() as bridge:
                bridge.silent.add(protocol.INVOKE_TAURI)
                info = await DiscoveryProber().probe("127.0.0.1", bridge.port, timeout=0.2)
                assert info.display_name == UNKNOWN_APP

        run_async(_run())

    def test_probe_state_as_json_string(self):
        async def _run():
            async with FakeBridge() as bridge:
                bridge.responders[protocol.INVOKE_TAURI] = lambda args: {
                    "success": True,
                    "data": '{"app": {"name": "Stringly"}}',
                }
                info = await DiscoveryProber().probe("127.0.0.1", bridge.port, timeout=2.0)
                assert info.display_name == "Stringly"

        run_async(_run())

    def test_probe_closes_its_socket(self):
        async def _run():
            async with FakeBridge() as bridge:
                prober = DiscoveryProber()
                await prober.probe("127.0.0.1", bridge.port, timeout=2.0)
                await prober.probe("127.0.0.1", bridge.port, timeout=2.0)
                assert prober.open_count == 0

        run_async(_run())

    def test_probe_nothing_listening(self):
        async def _run():
            with pytest.raises(BridgeConnectionError):
                await DiscoveryProber().probe("127.0.0.1", closed_port(), timeout=1.0)

        run_async(_run())


class TestScan:
    def test_scan_finds_bridge(self):
        async def _run():
            async with FakeBridge(app_name="Scanned") as bridge:
                found = await DiscoveryProber().scan(
                    "127.0.0.1", bridge.port, bridge.port, timeout=2.0
                )
                assert found is not None
                assert found.display_name == "Scanned"
                assert found.endpoint.port == bridge.port

        run_async(_run())

    def test_scan_nothing_found(self):
        async def _run():
            port = closed_port()
            assert await DiscoveryProber().scan("127.0.0.1", port, port, timeout=0.5) is None

        run_async(_run())

    def test_scan_returns_lowest_responding_port(self):
        async def _run():
            prober = DiscoveryProber()

            async def probe(host, port, timeout=None):
                if port < 9301:
                    raise BridgeConnectionError(f"nothing on {port}")
                return SessionInfo(display_name=f"app-{port}", endpoint=Endpoint(host=host, port=port))

            prober.probe = AsyncMock(side_effect=probe)
            found = await prober.scan("localhost", 9223, 9322)
            assert found.endpoint.port == 9301
            assert found.display_name == "app-9301"
            ports = [c.args[1] for c in prober.probe.call_args_list]
            assert ports == list(range(9223, 9302))

        run_async(_run())

    def test_scan_uses_configured_range(self):
        async def _run():
            from bridgedriver.config import configure

            configure(scan_start=9500, scan_end=9502)
            prober = DiscoveryProber()
            prober.probe = AsyncMock(side_effect=BridgeConnectionError("refused"))
            assert await prober.scan("localhost") is None
            assert [c.args[1] for c in prober.probe.call_args_list] == [9500, 9501, 9502]

        run_async(_run())

    def test_release_all_without_sockets(self):
        async def _run():
            prober = DiscoveryProber()
            await prober.release_all()
            assert prober.open_count == 0

        run_async(_run())
