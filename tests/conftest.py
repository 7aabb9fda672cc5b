"""Pytest configuration and fixtures."""

from __future__ import annotations

import itertools
from collections.abc import Iterator
from pathlib import Path

import pytest

from adminprobe.core.config import HarnessConfig
from adminprobe.server.loopback import LoopbackAdminServer, ServerConfig
from adminprobe.transport.auth import AdminCookie, LoginResponse
from adminprobe.transport.websocket import ChannelHandle, MessageCallback

GOOD_TOKEN = "good-token"


class FakeAdminServer:
    """In-process admin console behind a fake channel transport.

    Replies are delivered synchronously from send(), before the caller
    starts waiting, which is the ordering prepare() must tolerate.
    """

    def __init__(self, admin_path: str = "/lool/adminws/") -> None:
        self._admin_path = admin_path
        self._ids = itertools.count(1)
        self._pids = itertools.count(4000)
        self._admins: dict[int, MessageCallback | None] = {}
        self._authenticated: set[int] = set()
        self._subscriptions: dict[int, set[str]] = {}
        self._views: dict[int, tuple[str, int]] = {}
        self._doc_pids: dict[str, int] = {}

        self.opened: list[ChannelHandle] = []
        self.sent: list[tuple[int, str]] = []
        self.closed: list[int] = []

        # Fault injection
        self.silent: set[str] = set()
        self.replies: dict[str, str] = {}
        self.users_offset = 0
        self.emit_rmdoc = True

    # ChannelTransport

    def open(
        self,
        endpoint: str,
        *,
        headers: dict[str, str] | None = None,
        on_message: MessageCallback | None = None,
    ) -> ChannelHandle:
        handle = ChannelHandle(id=next(self._ids), endpoint=endpoint)
        self.opened.append(handle)
        if endpoint.endswith(self._admin_path):
            self._admins[handle.id] = on_message
            self._subscriptions[handle.id] = set()
        return handle

    def send(self, handle: ChannelHandle, text: str) -> None:
        self.sent.append((handle.id, text))
        tokens = text.split()
        if tokens[0] in self.silent:
            return
        if handle.id in self._admins and tokens[0] in self.replies:
            self._reply(handle.id, self.replies[tokens[0]])
            return
        if handle.id in self._admins:
            self._admin_command(handle.id, tokens)
        elif tokens[0] == "load":
            self._load(handle.id, tokens[1][len("url=") :])

    def close(self, handle: ChannelHandle) -> None:
        self.closed.append(handle.id)
        self._admins.pop(handle.id, None)
        self._authenticated.discard(handle.id)
        view = self._views.pop(handle.id, None)
        if view is not None and self.emit_rmdoc:
            url, pid = view
            if not any(u == url for u, _ in self._views.values()):
                del self._doc_pids[url]
            self._broadcast("rmdoc", f"rmdoc {pid} {handle.id:04d}")

    # Server behaviour

    @property
    def users(self) -> int:
        return len(self._views)

    @property
    def documents(self) -> int:
        return len({url for url, _ in self._views.values()})

    def _reply(self, admin: int, message: str) -> None:
        callback = self._admins.get(admin)
        if callback is not None:
            callback(message)

    def _admin_command(self, admin: int, tokens: list[str]) -> None:
        action, args = tokens[0], tokens[1:]
        if admin not in self._authenticated and action != "auth":
            self._reply(admin, "NotAuthenticated")
        elif action == "auth":
            if args == [f"jwt={GOOD_TOKEN}"]:
                self._authenticated.add(admin)
            else:
                self._reply(admin, "InvalidAuthToken")
        elif action == "subscribe":
            self._subscriptions[admin].update(args)
        elif action == "active_users_count":
            self._reply(admin, f"active_users_count {self.users + self.users_offset}")
        elif action == "active_docs_count":
            self._reply(admin, f"active_docs_count {self.documents}")

    def _load(self, channel: int, url: str) -> None:
        pid = self._doc_pids.setdefault(url, next(self._pids))
        self._views[channel] = (url, pid)
        basename = url.rsplit("/", 1)[-1]
        self._broadcast("adddoc", f"adddoc {pid} {basename} {channel:04d} 1024")

    def _broadcast(self, event: str, message: str) -> None:
        for admin in list(self._admins):
            if admin in self._authenticated and event in self._subscriptions[admin]:
                self._reply(admin, message)


class FakeAuthenticator:
    """Admin page client returning canned login responses."""

    def __init__(
        self,
        username: str = "admin",
        password: str = "admin",
        cookies: tuple[AdminCookie, ...] | None = None,
    ) -> None:
        self._credentials = (username, password)
        self.cookies = cookies or (
            AdminCookie(
                name="jwt", value=GOOD_TOKEN, path="/loleaflet/dist/admin/", secure=True
            ),
        )
        self.anonymous_status = 401
        self.requests: list[tuple[str, str] | None] = []
        self.closed = False

    def fetch(self, credentials: tuple[str, str] | None = None) -> LoginResponse:
        self.requests.append(credentials)
        if credentials is None:
            return LoginResponse(status_code=self.anonymous_status)
        if credentials != self._credentials:
            return LoginResponse(status_code=401)
        return LoginResponse(status_code=200, cookies=self.cookies)

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def documents_dir(tmp_path: Path) -> Path:
    """Create a directory holding the two suite documents."""
    data = tmp_path / "data"
    data.mkdir()
    (data / "hello.odt").write_bytes(b"hello")
    (data / "insert-delete.odp").write_bytes(b"insert-delete")
    return data


@pytest.fixture
def harness_config(documents_dir: Path) -> HarnessConfig:
    """Create a configuration with short time bounds."""
    return HarnessConfig.model_validate(
        {
            "server": {"uri": "https://localhost:9980", "use_proxy": False},
            "documents": {"directory": str(documents_dir)},
            "timeouts": {"exchange": 0.5, "run": 10.0, "connect": 2.0},
        }
    )


@pytest.fixture
def fake_server() -> FakeAdminServer:
    """Create an in-process admin console."""
    return FakeAdminServer()


@pytest.fixture
def fake_auth() -> FakeAuthenticator:
    """Create an admin page client accepting admin/admin."""
    return FakeAuthenticator()


@pytest.fixture
def loopback_server() -> Iterator[LoopbackAdminServer]:
    """Start a loopback admin server on an ephemeral port."""
    server = LoopbackAdminServer(ServerConfig(port=0, token=GOOD_TOKEN, notify_grace=1.0))
    server.start_background()
    yield server
    server.stop()


@pytest.fixture
def loopback_config(loopback_server: LoopbackAdminServer, documents_dir: Path) -> HarnessConfig:
    """Create a configuration pointing at the loopback server."""
    return HarnessConfig.model_validate(
        {
            "server": {"uri": loopback_server.uri, "use_proxy": False},
            "documents": {"directory": str(documents_dir)},
            "timeouts": {"exchange": 3.0, "run": 30.0, "connect": 5.0},
        }
    )
