"""Configuration schema and loading for adminprobe runs.

This module defines the Pydantic models for YAML configuration files.
A configuration names the server under test, the admin credentials, the
documents used to generate adddoc/rmdoc traffic and the time bounds.
"""

from __future__ import annotations

from pathlib import Path
from urllib.parse import urlsplit, urlunsplit

from pydantic import BaseModel, Field, field_validator


class ServerConfig(BaseModel):
    """Server under test."""

    uri: str = "https://localhost:9980"
    """HTTP(S) base URI. WebSocket URIs are derived from it (ws/wss)."""

    admin_page: str = "/loleaflet/dist/admin/admin.html"
    """Path of the admin console page guarded by basic authentication."""

    admin_ws_path: str = "/lool/adminws/"
    """Path of the admin WebSocket endpoint."""

    verify_tls: bool = True
    """Whether to verify the server certificate (off for self-signed test servers)."""

    use_proxy: bool = True
    """Whether to honor proxy settings from the environment."""

    @field_validator("uri")
    @classmethod
    def _validate_uri(cls, v: str) -> str:
        parts = urlsplit(v)
        if parts.scheme not in ("http", "https"):
            raise ValueError(f"Expected http:// or https:// URI: {v}")
        if not parts.netloc:
            raise ValueError(f"URI has no host: {v}")
        return v.rstrip("/")

    @field_validator("admin_page", "admin_ws_path")
    @classmethod
    def _validate_path(cls, v: str) -> str:
        if not v.startswith("/"):
            raise ValueError(f"Path must start with '/': {v}")
        return v

    @property
    def secure(self) -> bool:
        """Whether the server is reached over TLS."""
        return self.uri.startswith("https://")

    @property
    def ws_uri(self) -> str:
        """WebSocket base URI matching ``uri``."""
        parts = urlsplit(self.uri)
        scheme = "wss" if parts.scheme == "https" else "ws"
        return urlunsplit((scheme, parts.netloc, parts.path, "", ""))

    @property
    def admin_page_url(self) -> str:
        """Full URL of the admin console page."""
        return self.uri + self.admin_page

    @property
    def admin_ws_url(self) -> str:
        """Full URL of the admin WebSocket endpoint."""
        return self.ws_uri + self.admin_ws_path


class CredentialsConfig(BaseModel):
    """Admin console login."""

    username: str = "admin"
    password: str = Field(default="admin", repr=False)


class DocumentsConfig(BaseModel):
    """Documents opened to generate adddoc/rmdoc notifications."""

    directory: Path = Path("data")
    """Directory holding the source documents."""

    primary: str = "hello.odt"
    """Document opened twice (two views of one document)."""

    secondary: str = "insert-delete.odp"
    """A second, different document."""

    copy_documents: bool = True
    """Load private copies instead of the source files."""

    @field_validator("directory", mode="before")
    @classmethod
    def _coerce_path(cls, v: str | Path) -> Path:
        return Path(v)

    @field_validator("primary", "secondary")
    @classmethod
    def _validate_basename(cls, v: str) -> str:
        if not v or "/" in v or any(c.isspace() for c in v):
            raise ValueError(f"Expected a plain file name without whitespace: {v!r}")
        return v


class TimeoutConfig(BaseModel):
    """Time bounds, in seconds."""

    exchange: float = 5.0
    """Wait for one reply or notification."""

    run: float = 60.0
    """Whole run."""

    connect: float = 10.0
    """Opening a channel or an HTTP request."""

    @field_validator("exchange", "run", "connect")
    @classmethod
    def _validate_positive(cls, v: float) -> float:
        if v <= 0:
            raise ValueError("timeouts must be positive")
        return v


class HarnessConfig(BaseModel):
    """Root adminprobe configuration."""

    server: ServerConfig = Field(default_factory=ServerConfig)
    """Server under test."""

    credentials: CredentialsConfig = Field(default_factory=CredentialsConfig)
    """Admin console login."""

    documents: DocumentsConfig = Field(default_factory=DocumentsConfig)
    """Document fixtures."""

    timeouts: TimeoutConfig = Field(default_factory=TimeoutConfig)
    """Time bounds."""

    secure_transport_available: bool = True
    """Whether the server runs with TLS; steps needing the secure login cookie are
    registered only when set."""

    verify_rmdoc: bool = True
    """Whether to register the rmdoc notification step."""

    @classmethod
    def from_yaml(cls, path: Path | str) -> HarnessConfig:
        """Load configuration from YAML file.

        Args:
            path: Path to YAML configuration file

        Returns:
            Parsed configuration

        Raises:
            FileNotFoundError: If file doesn't exist
            pydantic.ValidationError: If configuration invalid
        """
        import yaml

        path = Path(path)
        with path.open() as f:
            data = yaml.safe_load(f)

        config = cls.model_validate(data or {})

        # Resolve the document directory relative to the config file
        if not config.documents.directory.is_absolute():
            config.documents.directory = path.parent.resolve() / config.documents.directory

        return config
