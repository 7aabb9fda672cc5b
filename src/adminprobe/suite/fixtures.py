"""Document fixtures for generating adddoc/rmdoc traffic.

A fixture resolves a document basename to three strings: a local path,
the ``file://`` URL sent in ``load url=...`` and the document channel
endpoint. By default the source document is copied into a private
temporary directory first, keeping its basename, so the server never
touches the source files.
"""

from __future__ import annotations

import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from urllib.parse import quote

import structlog

log = structlog.get_logger()


@dataclass(frozen=True)
class DocumentRef:
    """A document the harness can open a channel against.

    Attributes:
        path: Local file path
        url: Document URL used in ``load url=<url>``
        endpoint: WebSocket URI of the document channel
    """

    path: Path
    url: str
    endpoint: str

    @property
    def basename(self) -> str:
        """File name, as reported in adddoc notifications."""
        return self.path.name


class DocumentFixtures:
    """Resolves document basenames against a source directory.

    Example:
        with DocumentFixtures(Path("data"), "wss://localhost:9980") as docs:
            hello = docs.resolve("hello.odt")
    """

    def __init__(self, source_dir: Path, ws_uri: str, *, copy: bool = True) -> None:
        """Initialize fixtures.

        Args:
            source_dir: Directory holding the source documents
            ws_uri: WebSocket base URI of the server
            copy: Copy documents into a temporary directory before use
        """
        self._source_dir = Path(source_dir)
        self._ws_uri = ws_uri.rstrip("/")
        self._copy = copy
        self._workdir: Path | None = None

    def resolve(self, basename: str) -> DocumentRef:
        """Resolve ``basename`` to a loadable document.

        Each call returns a distinct copy when copying is enabled; reuse
        the returned DocumentRef to open several views of one document.

        Raises:
            FileNotFoundError: If the source document does not exist
        """
        source = self._source_dir / basename
        if not source.is_file():
            raise FileNotFoundError(f"Document not found: {source}")

        path = source.resolve()
        if self._copy:
            if self._workdir is None:
                self._workdir = Path(tempfile.mkdtemp(prefix="adminprobe-"))
            target_dir = Path(tempfile.mkdtemp(dir=self._workdir))
            path = Path(shutil.copy2(source, target_dir / basename))

        url = path.as_uri()
        ref = DocumentRef(path=path, url=url, endpoint=self.endpoint_for(url))
        log.debug("Document resolved", basename=basename, url=url)
        return ref

    def endpoint_for(self, url: str) -> str:
        """Document channel endpoint for a document URL."""
        return f"{self._ws_uri}/lool/{quote(url, safe='')}/ws"

    def cleanup(self) -> None:
        """Remove copied documents."""
        if self._workdir is not None:
            shutil.rmtree(self._workdir, ignore_errors=True)
            self._workdir = None

    def __enter__(self) -> DocumentFixtures:
        return self

    def __exit__(self, *args: object) -> None:
        self.cleanup()
