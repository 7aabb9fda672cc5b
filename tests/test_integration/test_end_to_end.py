"""End-to-end runs against the loopback admin server over real sockets."""

from __future__ import annotations

import time
from pathlib import Path

import pytest
import yaml
from click.testing import CliRunner
from structlog.testing import capture_logs

from adminprobe.cli.main import cli
from adminprobe.core.config import HarnessConfig
from adminprobe.core.sequencer import Verdict
from adminprobe.harness import AdminHarness
from adminprobe.server.loopback import LoopbackAdminServer
from tests.conftest import GOOD_TOKEN

pytestmark = pytest.mark.integration


class TestEndToEnd:
    """Full suite runs."""

    def test_full_run_passes(
        self, loopback_config: HarnessConfig, loopback_server: LoopbackAdminServer
    ) -> None:
        """Every step should pass against the loopback server."""
        with AdminHarness(loopback_config) as harness:
            verdict = harness.run()

            assert verdict == Verdict.PASSED
            assert harness.registry.active_user_count == 2
            assert harness.registry.active_document_count == 2
            assert loopback_server.active_user_count == 2

    def test_token_never_logged(self, loopback_config: HarnessConfig) -> None:
        """No log event of a full run should contain the auth token."""
        with capture_logs() as logs, AdminHarness(loopback_config) as harness:
            assert harness.run() == Verdict.PASSED

        assert any(entry["event"] == "Sent" for entry in logs)
        assert all(GOOD_TOKEN not in str(entry) for entry in logs)

    def test_insecure_run_passes(self, loopback_config: HarnessConfig) -> None:
        """The token-free steps alone should pass."""
        loopback_config.secure_transport_available = False

        with AdminHarness(loopback_config) as harness:
            assert len(harness.steps) == 2
            assert harness.run() == Verdict.PASSED

    def test_wrong_password_fails(self, loopback_config: HarnessConfig) -> None:
        """A wrong admin password should fail correct_password."""
        loopback_config.credentials.password = "wrong"

        with AdminHarness(loopback_config) as harness:
            assert harness.run() == Verdict.FAILED

    def test_views_closed_after_run(
        self, loopback_config: HarnessConfig, loopback_server: LoopbackAdminServer
    ) -> None:
        """Closing the harness should release every document view."""
        with AdminHarness(loopback_config) as harness:
            harness.run()

        for _ in range(100):
            if loopback_server.active_user_count == 0:
                break
            time.sleep(0.05)
        assert loopback_server.active_document_count == 0

    def test_unreachable_server_fails(self, loopback_config: HarnessConfig) -> None:
        """A server that refuses connections should fail the first step."""
        loopback_config.server.uri = "http://127.0.0.1:1"

        with AdminHarness(loopback_config) as harness:
            assert harness.run() == Verdict.FAILED


class TestCliEndToEnd:
    """The run command against the loopback server."""

    def test_cli_run(self, tmp_path: Path, loopback_config: HarnessConfig) -> None:
        """adminprobe run should exit 0."""
        path = tmp_path / "loopback.yaml"
        path.write_text(yaml.safe_dump(loopback_config.model_dump(mode="json")))

        result = CliRunner().invoke(cli, ["run", str(path), "-q"])

        assert result.exit_code == 0, result.output
        assert "Verdict: passed" in result.output
