"""Loopback admin console server for dry runs and end-to-end tests.

LoopbackAdminServer speaks just enough of the admin console protocol to
exercise every adminprobe step on one port:

    GET <admin_page>           401 without basic auth, jwt cookie with it
    <admin_ws_path>            admin channel (auth, subscribe, counters)
    /lool/<encoded url>/ws     document channel (load url=...)

Architecture:
    ┌──────────────────────────────────────────────┐
    │              LoopbackAdminServer             │
    ├──────────────────────────────────────────────┤
    │  ┌───────────────┐      ┌─────────────────┐  │
    │  │ Admin clients │◀─────│ Documents/views │  │
    │  │ (subscribers) │notify│ (pid, sessions) │  │
    │  └───────────────┘      └─────────────────┘  │
    └──────────────────────────────────────────────┘

Each connection is handled on its own thread by the websockets sync
server; shared state is guarded by one condition variable.
"""

from __future__ import annotations

import base64
import binascii
import contextlib
import itertools
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from http import HTTPStatus

import structlog
from websockets.exceptions import ConnectionClosed
from websockets.http11 import Request, Response
from websockets.sync.server import Server, ServerConnection, serve

from adminprobe.protocol.codec import MessageKind
from adminprobe.protocol.commands import Action, AdminEvent

log = structlog.get_logger()


@dataclass
class ServerConfig:
    """Configuration for LoopbackAdminServer.

    Attributes:
        host: Host to bind to
        port: Port to listen on (0 for an ephemeral port)
        username: Admin page user
        password: Admin page password
        token: Value of the jwt cookie handed out on login
        admin_page: Admin page path
        admin_ws_path: Admin channel path
        notify_grace: Seconds a notification waits for a subscriber
    """

    host: str = "127.0.0.1"
    port: int = 9980
    username: str = "admin"
    password: str = field(default="admin", repr=False)
    token: str = field(default="loopback-token", repr=False)
    admin_page: str = "/loleaflet/dist/admin/admin.html"
    admin_ws_path: str = "/lool/adminws/"
    notify_grace: float = 1.0


@dataclass
class AdminClientState:
    """Per-admin-channel state.

    Attributes:
        ws: WebSocket connection
        authenticated: Whether a valid auth command was received
        subscriptions: Notification names the client subscribed to
        remote: Remote address for logging
    """

    ws: ServerConnection
    authenticated: bool = False
    subscriptions: set[str] = field(default_factory=set)
    remote: str = ""


@dataclass
class LoadedDocument:
    """A document with at least one open view."""

    url: str
    basename: str
    pid: int
    sessions: set[str] = field(default_factory=set)


CommandHandler = Callable[[AdminClientState, list[str]], str | None]

# Memory figure reported in adddoc notifications, in kB
_REPORTED_MEMORY_KB = 1024


class LoopbackAdminServer:
    """In-process stand-in for the admin console of a document server.

    Example:
        server = LoopbackAdminServer(ServerConfig(port=0))
        server.start_background()
        print(server.port)
        ...
        server.stop()
    """

    def __init__(self, config: ServerConfig | None = None) -> None:
        """Initialize the server.

        Args:
            config: Server configuration
        """
        self._config = config or ServerConfig()
        self._server: Server | None = None
        self._thread: threading.Thread | None = None

        self._cond = threading.Condition()
        self._connections: set[ServerConnection] = set()
        self._admins: dict[ServerConnection, AdminClientState] = {}
        self._documents: dict[str, LoadedDocument] = {}
        self._pids = itertools.count(4000)
        self._sessions = itertools.count(1)

        # Admin command handlers registered by action name
        self._handlers: dict[str, CommandHandler] = {}
        self._register_default_handlers()

    @property
    def config(self) -> ServerConfig:
        """Server configuration."""
        return self._config

    @property
    def port(self) -> int:
        """Bound port (useful with port 0)."""
        if self._server is None:
            raise RuntimeError("Server not started")
        return int(self._server.socket.getsockname()[1])

    @property
    def uri(self) -> str:
        """HTTP base URI of the running server."""
        return f"http://{self._config.host}:{self.port}"

    @property
    def is_running(self) -> bool:
        """Whether the server is accepting connections."""
        return self._server is not None

    @property
    def active_user_count(self) -> int:
        """Open document views."""
        with self._cond:
            return sum(len(doc.sessions) for doc in self._documents.values())

    @property
    def active_document_count(self) -> int:
        """Documents with at least one open view."""
        with self._cond:
            return len(self._documents)

    def _register_default_handlers(self) -> None:
        """Register default admin command handlers."""
        self._handlers[Action.AUTH.value] = self._handle_auth
        self._handlers[Action.SUBSCRIBE.value] = self._handle_subscribe
        self._handlers[Action.ACTIVE_USERS_COUNT.value] = self._handle_users_count
        self._handlers[Action.ACTIVE_DOCS_COUNT.value] = self._handle_docs_count
        self._handlers[Action.DOCUMENTS.value] = self._handle_documents

    def register_handler(self, action: str, handler: CommandHandler) -> None:
        """Register or replace the handler for an admin command.

        The handler receives the client state and the command arguments and
        returns the reply text, or None for no reply.
        """
        self._handlers[action] = handler

    def start(self) -> None:
        """Start the server and serve until stop() is called."""
        self._bind()
        assert self._server is not None
        log.info("Loopback server listening", host=self._config.host, port=self.port)
        self._server.serve_forever()

    def start_background(self) -> None:
        """Start serving on a background thread and return immediately."""
        self._bind()
        assert self._server is not None
        self._thread = threading.Thread(
            target=self._server.serve_forever,
            name="adminprobe-loopback",
            daemon=True,
        )
        self._thread.start()
        log.info("Loopback server started", host=self._config.host, port=self.port)

    def stop(self) -> None:
        """Stop the server."""
        if self._server is None:
            return
        log.info("Stopping loopback server")
        self._server.shutdown()
        with self._cond:
            connections = list(self._connections)
        for ws in connections:
            ws.close(code=1001, reason="server shutdown")
        if self._thread is not None:
            self._thread.join(timeout=5.0)
            self._thread = None
        self._server = None

    def _bind(self) -> None:
        if self._server is not None:
            raise RuntimeError("Server already started")
        self._server = serve(
            self._handle_client,
            self._config.host,
            self._config.port,
            process_request=self._process_request,
        )

    # HTTP

    def _process_request(self, connection: ServerConnection, request: Request) -> Response | None:
        """Answer plain HTTP requests for the admin page."""
        path = request.path.split("?", 1)[0]
        if path != self._config.admin_page:
            return None

        if not self._check_basic_auth(request.headers.get("Authorization")):
            response = connection.respond(HTTPStatus.UNAUTHORIZED, "Unauthorized\n")
            response.headers["WWW-Authenticate"] = 'Basic realm="admin"'
            return response

        response = connection.respond(HTTPStatus.OK, "<html>admin</html>\n")
        cookie_path = self._config.admin_page.rsplit("/", 1)[0] + "/"
        response.headers["Set-Cookie"] = (
            f"jwt={self._config.token}; Path={cookie_path}; Secure; HttpOnly"
        )
        return response

    def _check_basic_auth(self, header: str | None) -> bool:
        if header is None or not header.startswith("Basic "):
            return False
        try:
            decoded = base64.b64decode(header[len("Basic ") :], validate=True).decode("utf-8")
        except (binascii.Error, UnicodeDecodeError):
            return False
        username, _, password = decoded.partition(":")
        return username == self._config.username and password == self._config.password

    # WebSocket

    def _handle_client(self, ws: ServerConnection) -> None:
        """Route a new connection by request path."""
        path = ws.request.path if ws.request is not None else ""
        with self._cond:
            self._connections.add(ws)
        try:
            if path == self._config.admin_ws_path:
                self._handle_admin(ws)
            elif path.startswith("/lool/") and path.endswith("/ws"):
                self._handle_document(ws)
            else:
                log.warning("Unknown endpoint", path=path)
                ws.close(code=1008, reason="unknown endpoint")
        finally:
            with self._cond:
                self._connections.discard(ws)

    def _handle_admin(self, ws: ServerConnection) -> None:
        remote = str(ws.remote_address) if ws.remote_address else "unknown"
        state = AdminClientState(ws=ws, remote=remote)
        with self._cond:
            self._admins[ws] = state
        log.info("Admin client connected", remote=remote)

        try:
            for message in ws:
                if isinstance(message, str):
                    self._handle_admin_message(state, message)
                else:
                    log.warning("Unexpected binary message", remote=remote)
        except ConnectionClosed as e:
            log.info("Admin connection closed", remote=remote, code=e.rcvd.code if e.rcvd else None)
        finally:
            with self._cond:
                del self._admins[ws]
            log.info("Admin client disconnected", remote=remote)

    def _handle_admin_message(self, client: AdminClientState, message: str) -> None:
        tokens = message.split()
        if not tokens:
            return
        action = tokens[0]
        log.debug("Admin command", remote=client.remote, action=action)

        if not client.authenticated and action != Action.AUTH.value:
            client.ws.send(MessageKind.NOT_AUTHENTICATED.value)
            return

        handler = self._handlers.get(action)
        if handler is None:
            log.warning("Unknown admin command", action=action)
            return

        reply = handler(client, tokens[1:])
        if reply is not None:
            client.ws.send(reply)

    def _handle_document(self, ws: ServerConnection) -> None:
        view: tuple[LoadedDocument, str] | None = None
        try:
            for message in ws:
                if not isinstance(message, str):
                    continue
                tokens = message.split()
                if tokens[:1] != [Action.LOAD.value] or view is not None:
                    continue
                url = next((t[len("url=") :] for t in tokens[1:] if t.startswith("url=")), None)
                if not url:
                    ws.send("error: cmd=load kind=syntax")
                    continue
                view = self._add_view(url)
        except ConnectionClosed:
            pass
        finally:
            if view is not None:
                self._remove_view(*view)

    # Admin command handlers

    def _handle_auth(self, client: AdminClientState, args: list[str]) -> str | None:
        if args == [f"jwt={self._config.token}"]:
            client.authenticated = True
            log.info("Admin client authenticated", remote=client.remote)
            return None
        return MessageKind.INVALID_AUTH_TOKEN.value

    def _handle_subscribe(self, client: AdminClientState, args: list[str]) -> str | None:
        with self._cond:
            client.subscriptions.update(args)
            self._cond.notify_all()
        log.info("Admin client subscribed", remote=client.remote, events=args)
        return None

    def _handle_users_count(self, _client: AdminClientState, _args: list[str]) -> str | None:
        return f"{MessageKind.ACTIVE_USERS_COUNT.value} {self.active_user_count}"

    def _handle_docs_count(self, _client: AdminClientState, _args: list[str]) -> str | None:
        return f"{MessageKind.ACTIVE_DOCS_COUNT.value} {self.active_document_count}"

    def _handle_documents(self, _client: AdminClientState, _args: list[str]) -> str | None:
        with self._cond:
            entries = [
                f"{doc.pid} {doc.basename} {len(doc.sessions)} {_REPORTED_MEMORY_KB}"
                for doc in self._documents.values()
            ]
        return " ".join([Action.DOCUMENTS.value, *entries])

    # Document bookkeeping and notifications

    def _add_view(self, url: str) -> tuple[LoadedDocument, str]:
        session = f"{next(self._sessions):04d}"
        with self._cond:
            doc = self._documents.get(url)
            if doc is None:
                # Views of one document share its process
                doc = LoadedDocument(url=url, basename=url.rsplit("/", 1)[-1], pid=next(self._pids))
                self._documents[url] = doc
            doc.sessions.add(session)
        log.info("Document view loaded", document=doc.basename, pid=doc.pid, session=session)
        self._notify(
            AdminEvent.ADDDOC,
            f"adddoc {doc.pid} {doc.basename} {session} {_REPORTED_MEMORY_KB}",
        )
        return doc, session

    def _remove_view(self, doc: LoadedDocument, session: str) -> None:
        with self._cond:
            doc.sessions.discard(session)
            if not doc.sessions:
                self._documents.pop(doc.url, None)
        log.info("Document view closed", document=doc.basename, pid=doc.pid, session=session)
        self._notify(AdminEvent.RMDOC, f"rmdoc {doc.pid} {session}")

    def _notify(self, event: AdminEvent, message: str) -> None:
        """Send a notification to every authenticated subscriber."""

        def subscribers() -> list[AdminClientState]:
            return [
                c
                for c in self._admins.values()
                if c.authenticated and event.value in c.subscriptions
            ]

        with self._cond:
            # A subscribe sent just before the triggering command may still be in flight
            self._cond.wait_for(lambda: bool(subscribers()), timeout=self._config.notify_grace)
            targets = subscribers()

        for client in targets:
            with contextlib.suppress(ConnectionClosed):
                client.ws.send(message)
        log.debug("Notification sent", notify=event.value, message=message, clients=len(targets))
