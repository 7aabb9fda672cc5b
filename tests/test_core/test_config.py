"""Tests for configuration parsing and validation."""

from __future__ import annotations

from pathlib import Path

import pytest
from pydantic import ValidationError

from adminprobe.core.config import (
    CredentialsConfig,
    DocumentsConfig,
    HarnessConfig,
    ServerConfig,
    TimeoutConfig,
)


class TestServerConfig:
    """Tests for ServerConfig model."""

    def test_defaults(self) -> None:
        """Should default to a local TLS server."""
        server = ServerConfig()
        assert server.uri == "https://localhost:9980"
        assert server.secure is True
        assert server.verify_tls is True
        assert server.use_proxy is True

    def test_derived_urls(self) -> None:
        """WebSocket URLs should follow the HTTP scheme."""
        server = ServerConfig(uri="https://example.org:9980/")

        assert server.uri == "https://example.org:9980"
        assert server.ws_uri == "wss://example.org:9980"
        assert server.admin_page_url == (
            "https://example.org:9980/loleaflet/dist/admin/admin.html"
        )
        assert server.admin_ws_url == "wss://example.org:9980/lool/adminws/"

    def test_plain_http(self) -> None:
        """http:// should map to ws://."""
        server = ServerConfig(uri="http://127.0.0.1:8080")

        assert server.secure is False
        assert server.ws_uri == "ws://127.0.0.1:8080"

    @pytest.mark.parametrize("uri", ["ftp://host", "wss://host:9980", "localhost:9980", "http://"])
    def test_rejects_bad_uri(self, uri: str) -> None:
        """Only http(s) URIs with a host are accepted."""
        with pytest.raises(ValidationError):
            ServerConfig(uri=uri)

    def test_rejects_relative_path(self) -> None:
        """Endpoint paths must be absolute."""
        with pytest.raises(ValidationError, match="must start with"):
            ServerConfig(admin_ws_path="lool/adminws/")


class TestCredentialsConfig:
    """Tests for CredentialsConfig model."""

    def test_password_not_in_repr(self) -> None:
        """The password should not leak through repr."""
        credentials = CredentialsConfig(username="root", password="s3cret")
        assert "s3cret" not in repr(credentials)
        assert "root" in repr(credentials)


class TestDocumentsConfig:
    """Tests for DocumentsConfig model."""

    def test_defaults(self) -> None:
        """Should default to the two suite documents."""
        documents = DocumentsConfig()
        assert documents.primary == "hello.odt"
        assert documents.secondary == "insert-delete.odp"
        assert documents.directory == Path("data")
        assert documents.copy_documents is True

    @pytest.mark.parametrize("name", ["", "sub/hello.odt", "hello world.odt"])
    def test_rejects_bad_basename(self, name: str) -> None:
        """Basenames must be plain file names without whitespace."""
        with pytest.raises(ValidationError):
            DocumentsConfig(primary=name)


class TestTimeoutConfig:
    """Tests for TimeoutConfig model."""

    def test_defaults(self) -> None:
        """Should use the documented defaults."""
        timeouts = TimeoutConfig()
        assert timeouts.exchange == 5.0
        assert timeouts.run == 60.0
        assert timeouts.connect == 10.0

    @pytest.mark.parametrize("field", ["exchange", "run", "connect"])
    def test_rejects_non_positive(self, field: str) -> None:
        """Timeouts must be positive."""
        with pytest.raises(ValidationError, match="positive"):
            TimeoutConfig(**{field: 0})


class TestHarnessConfig:
    """Tests for the root configuration."""

    def test_defaults(self) -> None:
        """An empty configuration should be valid."""
        config = HarnessConfig()
        assert config.secure_transport_available is True
        assert config.verify_rmdoc is True

    def test_from_yaml(self, tmp_path: Path) -> None:
        """Should load a YAML file and resolve the document directory."""
        path = tmp_path / "adminprobe.yaml"
        path.write_text(
            """
server:
  uri: https://docs.example.org
  verify_tls: false
credentials:
  username: root
  password: secret
documents:
  directory: ./fixtures
timeouts:
  exchange: 2.5
verify_rmdoc: false
"""
        )

        config = HarnessConfig.from_yaml(path)

        assert config.server.uri == "https://docs.example.org"
        assert config.server.verify_tls is False
        assert config.credentials.username == "root"
        assert config.documents.directory == tmp_path.resolve() / "fixtures"
        assert config.timeouts.exchange == 2.5
        assert config.timeouts.run == 60.0
        assert config.verify_rmdoc is False

    def test_from_yaml_empty_file(self, tmp_path: Path) -> None:
        """An empty file should give the defaults."""
        path = tmp_path / "empty.yaml"
        path.write_text("")

        config = HarnessConfig.from_yaml(path)

        assert config.server.uri == "https://localhost:9980"
        assert config.documents.directory == tmp_path.resolve() / "data"

    def test_from_yaml_absolute_directory(self, tmp_path: Path) -> None:
        """An absolute document directory should be kept as is."""
        path = tmp_path / "abs.yaml"
        path.write_text(f"documents:\n  directory: {tmp_path / 'elsewhere'}\n")

        config = HarnessConfig.from_yaml(path)

        assert config.documents.directory == tmp_path / "elsewhere"

    def test_from_yaml_missing_file(self, tmp_path: Path) -> None:
        """A missing file should raise FileNotFoundError."""
        with pytest.raises(FileNotFoundError):
            HarnessConfig.from_yaml(tmp_path / "missing.yaml")

    def test_from_yaml_invalid(self, tmp_path: Path) -> None:
        """Invalid values should raise ValidationError."""
        path = tmp_path / "bad.yaml"
        path.write_text("timeouts:\n  run: -1\n")

        with pytest.raises(ValidationError):
            HarnessConfig.from_yaml(path)
