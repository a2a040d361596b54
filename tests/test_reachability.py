"""Tests for reachability sources."""

from __future__ import annotations

import asyncio
import socket

import pytest

from ssokit.reachability import ManualReachability, PollingReachability

from tests.constants import SHORT_TIMEOUT


class _Edges:
    """Records reachability edges."""

    def __init__(self) -> None:
        self.events: list[str] = []

    def reachable(self) -> None:
        self.events.append("reachable")

    def unreachable(self) -> None:
        self.events.append("unreachable")


def _closed_port() -> int:
    """A local port with nothing listening on it."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind(("127.0.0.1", 0))
        return sock.getsockname()[1]


class TestManualReachability:
    """Tests for edge detection."""

    def _source(self) -> tuple[ManualReachability, _Edges]:
        edges = _Edges()
        source = ManualReachability()
        source.set_handlers(edges.reachable, edges.unreachable)
        return source, edges

    def test_initial_reachable_is_baseline(self) -> None:
        """The first reachable observation is not an edge."""
        source, edges = self._source()
        source.set_reachable(True)
        assert edges.events == []
        assert source.reachable is True

    def test_initial_unreachable_is_reported(self) -> None:
        """Starting offline is reported."""
        source, edges = self._source()
        source.set_reachable(False)
        assert edges.events == ["unreachable"]

    def test_repeated_state_ignored(self) -> None:
        """Only changes are reported."""
        source, edges = self._source()
        for value in (True, True, False, False, True, True):
            source.set_reachable(value)
        assert edges.events == ["unreachable", "reachable"]

    def test_without_handlers(self) -> None:
        """Edges without handlers only update the state."""
        source = ManualReachability()
        source.set_reachable(False)
        assert source.reachable is False


class TestPollingReachability:
    """Tests for the TCP polling source."""

    @pytest.mark.asyncio
    async def test_probe_open_port(self) -> None:
        """A listening port probes as reachable."""
        server = await asyncio.start_server(lambda r, w: w.close(), "127.0.0.1", 0)
        port = server.sockets[0].getsockname()[1]
        try:
            assert await PollingReachability("127.0.0.1", port).probe()
        finally:
            server.close()
            await server.wait_closed()

    @pytest.mark.asyncio
    async def test_probe_closed_port(self) -> None:
        """A refused connection probes as unreachable."""
        assert not await PollingReachability("127.0.0.1", _closed_port(), connect_timeout=1).probe()

    @pytest.mark.asyncio
    async def test_start_requires_host(self) -> None:
        """Starting without a host fails."""
        with pytest.raises(OSError, match="needs a host"):
            await PollingReachability("").start()

    @pytest.mark.asyncio
    async def test_polling_reports_edges(self) -> None:
        """A failing probe is reported as unreachable."""
        edges = _Edges()
        source = PollingReachability("127.0.0.1", _closed_port(), interval=0.01, connect_timeout=1)
        source.set_handlers(edges.reachable, edges.unreachable)

        await source.start()
        await source.start()
        assert source.is_running
        try:
            for _ in range(int(SHORT_TIMEOUT / 0.01)):
                if edges.events:
                    break
                await asyncio.sleep(0.01)
            assert edges.events == ["unreachable"]
        finally:
            await source.stop()
        assert not source.is_running
