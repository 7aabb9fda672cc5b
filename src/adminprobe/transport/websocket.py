"""WebSocket channels to the server under test.

Each open channel owns a reader thread. The reader iterates inbound
frames and hands text frames to the channel's ``on_message`` callback;
this is the deliverer context that feeds the SynchronizationBridge.
Sending happens on the caller's (driver) thread.

Architecture:
    ┌──────────────┐  send()   ┌──────────────────┐
    │   driver     │──────────▶│  ClientConnection │
    └──────────────┘           └──────────────────┘
                                        │ frames
                                        ▼
                               ┌──────────────────┐  on_message()
                               │  reader thread   │──────────────▶ bridge
                               └──────────────────┘
"""

from __future__ import annotations

import contextlib
import itertools
import ssl
import threading
from collections.abc import Callable
from dataclasses import dataclass
from typing import Any, Protocol, runtime_checkable

import structlog
import websockets
from websockets.exceptions import InvalidHandshake, InvalidURI
from websockets.sync.client import ClientConnection, connect

log = structlog.get_logger()


MessageCallback = Callable[[str], None]


class TransportError(ConnectionError):
    """A channel could not be used."""


class ChannelOpenError(TransportError):
    """Opening handshake failed."""


class SendError(TransportError):
    """Sending on a channel failed."""


@dataclass(frozen=True)
class ChannelHandle:
    """Reference to an open channel.

    Attributes:
        id: Transport-local identifier
        endpoint: WebSocket URI the channel was opened against
    """

    id: int
    endpoint: str


@runtime_checkable
class ChannelTransport(Protocol):
    """What the test steps need from a transport."""

    def open(
        self,
        endpoint: str,
        *,
        headers: dict[str, str] | None = None,
        on_message: MessageCallback | None = None,
    ) -> ChannelHandle: ...
    def send(self, handle: ChannelHandle, text: str) -> None: ...
    def close(self, handle: ChannelHandle) -> None: ...


@dataclass
class _Link:
    """Per-channel connection state."""

    handle: ChannelHandle
    ws: ClientConnection
    reader: threading.Thread
    stack: contextlib.ExitStack


class WebSocketTransport:
    """Opens, drives and closes WebSocket channels.

    Example:
        with WebSocketTransport() as transport:
            admin = transport.open("wss://host/lool/adminws/", on_message=bridge.deliver)
            transport.send(admin, "documents")
    """

    def __init__(
        self,
        *,
        ssl_context: ssl.SSLContext | None = None,
        proxy: str | bool | None = True,
        open_timeout: float = 10.0,
        close_timeout: float = 5.0,
    ) -> None:
        """Initialize the transport.

        Args:
            ssl_context: TLS context for wss:// endpoints (default context if None)
            proxy: Proxy URI, True to use the environment's proxy settings, None for none
            open_timeout: Seconds allowed for the opening handshake
            close_timeout: Seconds allowed for the closing handshake
        """
        self._ssl_context = ssl_context
        self._proxy = proxy
        self._open_timeout = open_timeout
        self._close_timeout = close_timeout
        self._ids = itertools.count(1)
        self._links: dict[int, _Link] = {}
        self._lock = threading.Lock()

    @classmethod
    def insecure(cls, **kwargs: Any) -> WebSocketTransport:
        """Create a transport that accepts self-signed certificates."""
        context = ssl.create_default_context()
        context.check_hostname = False
        context.verify_mode = ssl.CERT_NONE
        return cls(ssl_context=context, **kwargs)

    @property
    def open_count(self) -> int:
        """Number of channels currently open."""
        with self._lock:
            return len(self._links)

    def is_open(self, handle: ChannelHandle) -> bool:
        """Whether ``handle`` refers to an open channel."""
        with self._lock:
            return handle.id in self._links

    def open(
        self,
        endpoint: str,
        *,
        headers: dict[str, str] | None = None,
        on_message: MessageCallback | None = None,
    ) -> ChannelHandle:
        """Open a channel and start its reader thread.

        Args:
            endpoint: ws:// or wss:// URI
            headers: Extra headers for the opening handshake
            on_message: Called from the reader thread with each text frame

        Returns:
            Handle of the new channel

        Raises:
            ChannelOpenError: If the handshake fails
        """
        kwargs: dict[str, Any] = {
            "additional_headers": headers,
            "open_timeout": self._open_timeout,
            "close_timeout": self._close_timeout,
            "proxy": self._proxy,
        }
        if endpoint.startswith("wss://"):
            kwargs["ssl"] = self._ssl_context or ssl.create_default_context()

        stack = contextlib.ExitStack()
        try:
            ws = stack.enter_context(connect(endpoint, **kwargs))
        except (OSError, InvalidHandshake, InvalidURI) as e:
            stack.close()
            raise ChannelOpenError(f"Cannot open {endpoint}: {e}") from e

        handle = ChannelHandle(id=next(self._ids), endpoint=endpoint)
        reader = threading.Thread(
            target=self._read,
            args=(handle, ws, on_message),
            name=f"adminprobe-reader-{handle.id}",
            daemon=True,
        )
        with self._lock:
            self._links[handle.id] = _Link(handle=handle, ws=ws, reader=reader, stack=stack)
        reader.start()

        log.info("Channel opened", channel=handle.id, endpoint=endpoint)
        return handle

    def send(self, handle: ChannelHandle, text: str) -> None:
        """Send one text frame.

        Raises:
            SendError: If the channel is not open or the send fails
        """
        with self._lock:
            link = self._links.get(handle.id)
        if link is None:
            raise SendError(f"Channel {handle.id} is not open")

        try:
            link.ws.send(text)
        except websockets.exceptions.ConnectionClosed as e:
            raise SendError(f"Channel {handle.id} closed: {e}") from e
        # Arguments may carry credentials (auth jwt=...)
        log.debug("Sent", channel=handle.id, command=text.split(" ", 1)[0], size=len(text))

    def close(self, handle: ChannelHandle) -> None:
        """Close a channel and wait for its reader to finish.

        Closing an unknown or already closed channel does nothing.
        """
        with self._lock:
            link = self._links.pop(handle.id, None)
        if link is None:
            return

        link.stack.close()
        if link.reader is not threading.current_thread():
            link.reader.join(self._close_timeout)
        log.info("Channel closed", channel=handle.id)

    def close_all(self) -> None:
        """Close every open channel."""
        with self._lock:
            handles = [link.handle for link in self._links.values()]
        for handle in handles:
            self.close(handle)

    def _read(
        self,
        handle: ChannelHandle,
        ws: ClientConnection,
        on_message: MessageCallback | None,
    ) -> None:
        """Reader thread body: forward text frames until the channel closes."""
        try:
            for message in ws:
                if isinstance(message, bytes):
                    log.debug("Ignoring binary frame", channel=handle.id, size=len(message))
                    continue
                log.debug("Received", channel=handle.id, message=message)
                if on_message is not None:
                    on_message(message)
        except websockets.exceptions.ConnectionClosed as e:
            code = e.rcvd.code if e.rcvd else None
            log.info("Channel connection lost", channel=handle.id, code=code)
        except Exception as e:
            log.error("Channel reader error", channel=handle.id, error=str(e))
        finally:
            with self._lock:
                # Drop the link if the server closed the channel first
                link = self._links.get(handle.id)
                if link is not None and link.ws is ws:
                    del self._links[handle.id]

    def __enter__(self) -> WebSocketTransport:
        return self

    def __exit__(self, *args: object) -> None:
        self.close_all()
