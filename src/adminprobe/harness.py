"""Composition of the harness: wires the suite to the sequencer.

AdminHarness builds the collaborators from a HarnessConfig (or accepts
injected ones), registers the suite's steps and runs them to a single
verdict.
"""

from __future__ import annotations

import structlog

from adminprobe.core.bridge import SynchronizationBridge
from adminprobe.core.config import HarnessConfig
from adminprobe.core.registry import ConnectionRegistry
from adminprobe.core.sequencer import TestSequencer, TestStep, Verdict
from adminprobe.suite.admin import AdminSuite
from adminprobe.suite.fixtures import DocumentFixtures
from adminprobe.transport.auth import AdminAuthenticator
from adminprobe.transport.websocket import ChannelTransport, WebSocketTransport

log = structlog.get_logger()


class AdminHarness:
    """Runs the admin console suite against one server.

    Example:
        config = HarnessConfig.from_yaml("adminprobe.yaml")
        with AdminHarness(config) as harness:
            verdict = harness.run()
    """

    def __init__(
        self,
        config: HarnessConfig,
        *,
        transport: ChannelTransport | None = None,
        authenticator: AdminAuthenticator | None = None,
        documents: DocumentFixtures | None = None,
    ) -> None:
        """Initialize the harness.

        Args:
            config: Harness configuration
            transport: Channel transport (default: WebSocketTransport from config)
            authenticator: Admin page client (default: from config)
            documents: Document fixtures (default: from config)
        """
        self._config = config
        server = config.server
        timeouts = config.timeouts

        if transport is None:
            proxy = True if server.use_proxy else None
            if server.verify_tls:
                transport = WebSocketTransport(proxy=proxy, open_timeout=timeouts.connect)
            else:
                transport = WebSocketTransport.insecure(proxy=proxy, open_timeout=timeouts.connect)
        self._transport = transport
        self._auth = authenticator or AdminAuthenticator(
            server.admin_page_url,
            verify=server.verify_tls,
            timeout=timeouts.connect,
            trust_env=server.use_proxy,
        )
        self._documents = documents or DocumentFixtures(
            config.documents.directory,
            server.ws_uri,
            copy=config.documents.copy_documents,
        )

        self._bridge = SynchronizationBridge()
        self._registry = ConnectionRegistry()
        self._sequencer = TestSequencer(run_timeout=timeouts.run)
        self._suite = AdminSuite(
            config,
            bridge=self._bridge,
            registry=self._registry,
            transport=self._transport,
            authenticator=self._auth,
            documents=self._documents,
            exchange_timeout=lambda: self._sequencer.clip(timeouts.exchange),
        )
        for step in self._suite.steps():
            self._sequencer.register(step)

    @property
    def steps(self) -> tuple[TestStep, ...]:
        """Registered steps in execution order."""
        return self._sequencer.steps

    @property
    def sequencer(self) -> TestSequencer:
        """The run's sequencer."""
        return self._sequencer

    @property
    def registry(self) -> ConnectionRegistry:
        """Ground-truth channel bookkeeping."""
        return self._registry

    def run(self, interval: float = 0.0) -> Verdict:
        """Run every registered step.

        Args:
            interval: Seconds between step triggers

        Returns:
            PASSED, or the verdict of the first step that did not pass
        """
        self._registry.reset()
        log.info(
            "Running admin suite",
            server=self._config.server.uri,
            steps=len(self._sequencer.steps),
            secure=self._config.secure_transport_available,
        )
        verdict = self._sequencer.run(interval)
        log.info(
            "Admin suite finished",
            verdict=verdict.value,
            users=self._registry.active_user_count,
            documents=self._registry.active_document_count,
        )
        return verdict

    def close(self) -> None:
        """Close channels, the HTTP client and document copies."""
        self._suite.close()
        if isinstance(self._transport, WebSocketTransport):
            self._transport.close_all()
        self._auth.close()
        self._documents.cleanup()

    def __enter__(self) -> AdminHarness:
        return self

    def __exit__(self, *args: object) -> None:
        self.close()
