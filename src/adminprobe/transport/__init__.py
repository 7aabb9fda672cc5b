"""Network collaborators: WebSocket channels and admin login."""

from adminprobe.transport.auth import (
    AdminAuthenticator,
    AdminCookie,
    AuthToken,
    LoginResponse,
    parse_set_cookie,
)
from adminprobe.transport.websocket import (
    ChannelHandle,
    ChannelOpenError,
    ChannelTransport,
    MessageCallback,
    SendError,
    TransportError,
    WebSocketTransport,
)

__all__ = [
    # WebSocket
    "WebSocketTransport",
    "ChannelHandle",
    "ChannelTransport",
    "MessageCallback",
    "TransportError",
    "ChannelOpenError",
    "SendError",
    # Login
    "AdminAuthenticator",
    "AdminCookie",
    "AuthToken",
    "LoginResponse",
    "parse_set_cookie",
]
