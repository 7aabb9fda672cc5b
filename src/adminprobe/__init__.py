"""adminprobe - Admin console conformance harness.

Drives the admin console of a collaborative document server through its
WebSocket protocol: login, authentication errors, document add/remove
notifications and active user/document counters, checked against the
channels the harness itself opened.
"""

__version__ = "0.1.0"

# Configuration
from adminprobe.core.config import HarnessConfig

# Synchronization and sequencing
from adminprobe.core.bridge import SynchronizationBridge
from adminprobe.core.registry import ConnectionRegistry
from adminprobe.core.sequencer import TestSequencer, TestStep, Verdict

# Harness
from adminprobe.harness import AdminHarness

# Loopback server
from adminprobe.server.loopback import LoopbackAdminServer

__all__ = [
    # Version
    "__version__",
    # Configuration
    "HarnessConfig",
    # Core
    "SynchronizationBridge",
    "ConnectionRegistry",
    "TestSequencer",
    "TestStep",
    "Verdict",
    # Harness
    "AdminHarness",
    # Server
    "LoopbackAdminServer",
]
