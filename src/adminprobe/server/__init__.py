"""Loopback admin console server.

This module provides a small in-process server that enables:
- Dry runs of the full suite without a document server
- Real-socket end-to-end tests of the harness
"""

from adminprobe.server.loopback import (
    AdminClientState,
    LoadedDocument,
    LoopbackAdminServer,
    ServerConfig,
)

__all__ = [
    "AdminClientState",
    "LoadedDocument",
    "LoopbackAdminServer",
    "ServerConfig",
]
