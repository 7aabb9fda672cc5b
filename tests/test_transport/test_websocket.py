"""Tests for the WebSocket channel transport."""

from __future__ import annotations

import socket
import time
from collections.abc import Iterator

import pytest
from structlog.testing import capture_logs

from adminprobe.core.bridge import SynchronizationBridge
from adminprobe.server.loopback import LoopbackAdminServer
from adminprobe.transport.websocket import (
    ChannelHandle,
    ChannelOpenError,
    ChannelTransport,
    SendError,
    TransportError,
    WebSocketTransport,
)


@pytest.fixture
def transport() -> Iterator[WebSocketTransport]:
    """Create a transport that bypasses proxies."""
    with WebSocketTransport(proxy=None, open_timeout=2.0, close_timeout=2.0) as transport:
        yield transport


@pytest.fixture
def admin_url(loopback_server: LoopbackAdminServer) -> str:
    """Admin channel URL of the loopback server."""
    return f"ws://127.0.0.1:{loopback_server.port}/lool/adminws/"


def unused_port() -> int:
    """Find a local port with nothing listening."""
    with socket.socket() as sock:
        sock.bind(("127.0.0.1", 0))
        return int(sock.getsockname()[1])


class TestTransportErrors:
    """Tests for the error hierarchy."""

    def test_hierarchy(self) -> None:
        """Transport errors should be ConnectionErrors."""
        assert issubclass(TransportError, ConnectionError)
        assert issubclass(ChannelOpenError, TransportError)
        assert issubclass(SendError, TransportError)

    def test_satisfies_protocol(self) -> None:
        """WebSocketTransport should satisfy ChannelTransport."""
        assert isinstance(WebSocketTransport(), ChannelTransport)


class TestWebSocketTransport:
    """Tests against the loopback server."""

    def test_open_send_receive(self, transport: WebSocketTransport, admin_url: str) -> None:
        """Replies should reach the bridge through the reader thread."""
        bridge = SynchronizationBridge()
        handle = transport.open(admin_url, on_message=bridge.deliver)

        exchange = bridge.prepare()
        transport.send(handle, "documents")

        assert exchange.receive(timeout=3.0) == "NotAuthenticated"
        assert transport.is_open(handle)
        assert transport.open_count == 1

    def test_send_log_omits_arguments(
        self, transport: WebSocketTransport, admin_url: str
    ) -> None:
        """Sent frames should be logged by command only, never with credentials."""
        handle = transport.open(admin_url)

        with capture_logs() as logs:
            transport.send(handle, "auth jwt=secret-token")

        sent = [entry for entry in logs if entry["event"] == "Sent"]
        assert sent == [
            {
                "event": "Sent",
                "log_level": "debug",
                "channel": handle.id,
                "command": "auth",
                "size": len("auth jwt=secret-token"),
            }
        ]
        assert all("secret-token" not in str(entry) for entry in logs)

    def test_close(self, transport: WebSocketTransport, admin_url: str) -> None:
        """Closed channels should refuse to send."""
        handle = transport.open(admin_url)

        transport.close(handle)
        transport.close(handle)

        assert not transport.is_open(handle)
        with pytest.raises(SendError, match="not open"):
            transport.send(handle, "documents")

    @pytest.mark.filterwarnings(r"error:connect\(\) must be used:DeprecationWarning")
    def test_connection_entered_as_context(
        self, transport: WebSocketTransport, admin_url: str
    ) -> None:
        """Opening and closing should manage the connection as a context."""
        handle = transport.open(admin_url)
        transport.send(handle, "documents")

        transport.close(handle)

        assert transport.open_count == 0

    def test_close_unknown_handle(self, transport: WebSocketTransport) -> None:
        """Closing a handle the transport never opened should do nothing."""
        transport.close(ChannelHandle(id=99, endpoint="ws://nowhere/"))

    def test_close_all(self, transport: WebSocketTransport, admin_url: str) -> None:
        """close_all() should close every channel."""
        transport.open(admin_url)
        transport.open(admin_url)

        transport.close_all()

        assert transport.open_count == 0

    def test_open_refused(self, transport: WebSocketTransport) -> None:
        """A refused connection should raise ChannelOpenError."""
        with pytest.raises(ChannelOpenError):
            transport.open(f"ws://127.0.0.1:{unused_port()}/lool/adminws/")

    def test_open_unknown_endpoint_closes(
        self, transport: WebSocketTransport, loopback_server: LoopbackAdminServer
    ) -> None:
        """A channel the server closes should be dropped by its reader."""
        handle = transport.open(f"ws://127.0.0.1:{loopback_server.port}/unknown")

        for _ in range(100):
            if not transport.is_open(handle):
                break
            time.sleep(0.02)

        assert not transport.is_open(handle)
