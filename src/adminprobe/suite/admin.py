"""Admin console conformance steps.

Each public method is one test step. Steps share state in registration
order: ``correct_password`` captures the auth token that
``add_doc_notify`` uses, ``add_doc_notify`` opens the document views that
``users_count``/``docs_count`` count and ``rm_doc_notify`` tears down.

Every exchange is prepare() -> send -> wait, so a reply that arrives
before the driver starts waiting is still observed.

Registered Steps:
    incorrect_password                 admin page rejects anonymous access
    correct_password             (*)   basic auth yields a secure jwt cookie
    websocket_without_auth_token       commands before auth -> NotAuthenticated
    websocket_with_incorrect_auth_token (*)  bad token -> InvalidAuthToken
    add_doc_notify               (*)   loading documents -> adddoc notifications
    users_count, docs_count      (*)   server counters match the registry
    rm_doc_notify                (*)   closing a view -> rmdoc notification
    users_count, docs_count      (*)   counters after teardown

    (*) registered only when secure transport is available
"""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass
from typing import TYPE_CHECKING

import structlog

from adminprobe.core.sequencer import TestStep, Verdict
from adminprobe.protocol.codec import (
    ExpectationError,
    MessageKind,
    decode_adddoc,
    decode_invalid_auth_token,
    decode_not_authenticated,
    decode_rmdoc,
    expect_count,
)
from adminprobe.protocol.commands import (
    Action,
    AdminEvent,
    Command,
    make_auth,
    make_load,
    make_query,
    make_subscribe,
)
from adminprobe.transport.auth import AuthToken

if TYPE_CHECKING:
    from adminprobe.core.bridge import SynchronizationBridge
    from adminprobe.core.config import HarnessConfig
    from adminprobe.core.registry import Channel, ConnectionRegistry
    from adminprobe.suite.fixtures import DocumentFixtures, DocumentRef
    from adminprobe.transport.auth import AdminAuthenticator
    from adminprobe.transport.websocket import ChannelHandle, ChannelTransport

log = structlog.get_logger()

# Credential the server must reject
INCORRECT_CREDENTIAL = "jwt=incorrectJWT"

# Properties of the login cookie
AUTH_COOKIE_NAME = "jwt"
AUTH_COOKIE_PATH = "/loleaflet/dist/admin/"

HTTP_UNAUTHORIZED = 401


@dataclass
class DocumentView:
    """An open document channel and its registry entry."""

    document: DocumentRef
    channel: Channel
    handle: ChannelHandle


class AdminSuite:
    """The ordered admin console steps and the state they share."""

    def __init__(
        self,
        config: HarnessConfig,
        *,
        bridge: SynchronizationBridge,
        registry: ConnectionRegistry,
        transport: ChannelTransport,
        authenticator: AdminAuthenticator,
        documents: DocumentFixtures,
        exchange_timeout: Callable[[], float] | None = None,
    ) -> None:
        """Initialize the suite.

        Args:
            config: Harness configuration
            bridge: Bridge the admin channel delivers into
            registry: Ground-truth channel bookkeeping
            transport: Channel transport
            authenticator: Admin page client
            documents: Document fixtures
            exchange_timeout: Returns the bound for the next wait (default from config)
        """
        self._config = config
        self._bridge = bridge
        self._registry = registry
        self._transport = transport
        self._auth = authenticator
        self._documents = documents
        self._exchange_timeout = exchange_timeout or (lambda: config.timeouts.exchange)

        self._token: AuthToken | None = None
        self._admin: ChannelHandle | None = None
        self._views: list[DocumentView] = []

    @property
    def token(self) -> AuthToken | None:
        """Token captured by ``correct_password``."""
        return self._token

    @property
    def views(self) -> list[DocumentView]:
        """Open document views, oldest first."""
        return list(self._views)

    def steps(self) -> list[TestStep]:
        """Steps to register, in execution order."""
        secure = self._config.secure_transport_available

        steps = [TestStep("incorrect_password", self.incorrect_password)]
        if secure:
            steps.append(TestStep("correct_password", self.correct_password))
        steps.append(TestStep("websocket_without_auth_token", self.websocket_without_auth_token))
        if secure:
            steps += [
                TestStep(
                    "websocket_with_incorrect_auth_token",
                    self.websocket_with_incorrect_auth_token,
                ),
                TestStep("add_doc_notify", self.add_doc_notify),
                TestStep("users_count", self.users_count),
                TestStep("docs_count", self.docs_count),
            ]
            if self._config.verify_rmdoc:
                steps += [
                    TestStep("rm_doc_notify", self.rm_doc_notify),
                    TestStep("users_count", self.users_count),
                    TestStep("docs_count", self.docs_count),
                ]
        return steps

    # Steps

    def incorrect_password(self) -> Verdict:
        """The admin page must refuse a request without credentials."""
        response = self._auth.fetch()
        if response.status_code != HTTP_UNAUTHORIZED:
            raise ExpectationError(
                f"Expected status {HTTP_UNAUTHORIZED}, got {response.status_code}"
            )
        return Verdict.PASSED

    def correct_password(self) -> Verdict:
        """Basic auth must yield exactly one secure ``jwt`` cookie."""
        credentials = self._config.credentials
        response = self._auth.fetch((credentials.username, credentials.password))

        # For now the server sets exactly one cookie
        if len(response.cookies) != 1:
            raise ExpectationError(f"Expected exactly one cookie, got {len(response.cookies)}")
        cookie = response.cookies[0]
        if cookie.name != AUTH_COOKIE_NAME:
            raise ExpectationError(f"Expected {AUTH_COOKIE_NAME!r} cookie, got {cookie.name!r}")
        if not (cookie.path.startswith(AUTH_COOKIE_PATH) and cookie.value and cookie.secure):
            raise ExpectationError(
                f"Invalid cookie properties: path={cookie.path!r}, "
                f"secure={cookie.secure}, empty={not cookie.value}"
            )

        self._token = AuthToken(cookie.value)
        log.info("Auth token captured")
        return Verdict.PASSED

    def websocket_without_auth_token(self) -> Verdict:
        """Commands on an unauthenticated admin channel get NotAuthenticated."""
        admin = self._open_admin()
        decode_not_authenticated(self._exchange(admin, make_query(Action.DOCUMENTS)))
        return Verdict.PASSED

    def websocket_with_incorrect_auth_token(self) -> Verdict:
        """A bad token gets InvalidAuthToken."""
        admin = self._open_admin()
        decode_invalid_auth_token(self._exchange(admin, make_auth(INCORRECT_CREDENTIAL)))
        return Verdict.PASSED

    def add_doc_notify(self) -> Verdict:
        """Loading documents produces one adddoc notification per view.

        Opens two views of the primary document and one of the secondary,
        leaving three users on two documents.
        """
        token = self._require_token()
        admin = self._open_admin()
        self._send(admin, make_auth(token.credential))
        self._send(admin, make_subscribe(AdminEvent.ADDDOC))

        primary = self._documents.resolve(self._config.documents.primary)
        secondary = self._documents.resolve(self._config.documents.secondary)

        self._open_view(primary)
        # Another view of the same document
        self._open_view(primary)
        self._open_view(secondary)
        return Verdict.PASSED

    def users_count(self) -> Verdict:
        """Server-reported active users match the registry."""
        reply = self._exchange(self._require_admin(), make_query(Action.ACTIVE_USERS_COUNT))
        expect_count(reply, MessageKind.ACTIVE_USERS_COUNT, self._registry.active_user_count)
        return Verdict.PASSED

    def docs_count(self) -> Verdict:
        """Server-reported active documents match the registry."""
        reply = self._exchange(self._require_admin(), make_query(Action.ACTIVE_DOCS_COUNT))
        expect_count(reply, MessageKind.ACTIVE_DOCS_COUNT, self._registry.active_document_count)
        return Verdict.PASSED

    def rm_doc_notify(self) -> Verdict:
        """Closing the oldest view produces an rmdoc notification for its pid."""
        admin = self._require_admin()
        if not self._views:
            raise RuntimeError("No open document view to close")
        self._send(admin, make_subscribe(AdminEvent.RMDOC))

        view = self._views[0]
        exchange = self._bridge.prepare()
        self._transport.close(view.handle)
        notice = decode_rmdoc(exchange.receive(self._exchange_timeout()))

        if notice.pid != view.channel.pid:
            raise ExpectationError(f"rmdoc for pid {notice.pid}, expected {view.channel.pid}")
        self._registry.close_channel(view.channel)
        self._views.remove(view)
        log.info("Document view removed", pid=notice.pid, reason=notice.reason)
        return Verdict.PASSED

    def close(self) -> None:
        """Close every channel the suite opened."""
        for view in self._views:
            self._transport.close(view.handle)
            self._registry.close_channel(view.channel)
        self._views.clear()
        if self._admin is not None:
            self._transport.close(self._admin)
            self._admin = None

    # Helpers

    def _open_admin(self) -> ChannelHandle:
        """Replace the admin channel with a fresh one."""
        if self._admin is not None:
            self._transport.close(self._admin)
            self._admin = None
        handle = self._transport.open(
            self._config.server.admin_ws_url,
            on_message=self._bridge.deliver,
        )
        self._registry.open_admin_channel()
        self._admin = handle
        return handle

    def _open_view(self, document: DocumentRef) -> DocumentView:
        """Open a document channel, load it and wait for its adddoc."""
        channel = self._registry.open_document_channel(document.url)

        exchange = self._bridge.prepare()
        handle = self._transport.open(document.endpoint)
        self._send(handle, make_load(document.url))
        notice = decode_adddoc(exchange.receive(self._exchange_timeout()), document.basename)

        self._registry.assign_pid(channel, notice.pid)
        view = DocumentView(document=document, channel=channel, handle=handle)
        self._views.append(view)
        log.info("Document view added", document=document.basename, pid=notice.pid)
        return view

    def _send(self, handle: ChannelHandle, command: Command) -> None:
        self._transport.send(handle, command.to_text())
        # Arguments may carry the auth token
        log.debug("Command sent", action=command.action.value)

    def _exchange(self, handle: ChannelHandle, command: Command) -> str:
        """Send ``command`` and return the next message on the admin channel."""
        exchange = self._bridge.prepare()
        self._send(handle, command)
        return exchange.receive(self._exchange_timeout())

    def _require_token(self) -> AuthToken:
        if self._token is None:
            raise RuntimeError("No auth token captured")
        return self._token

    def _require_admin(self) -> ChannelHandle:
        if self._admin is None:
            raise RuntimeError("No admin channel open")
        return self._admin
