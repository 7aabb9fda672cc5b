"""Core configuration, synchronization, bookkeeping and sequencing."""

from adminprobe.core.bridge import (
    Delivered,
    Exchange,
    ExchangeResult,
    ExchangeTimeout,
    SynchronizationBridge,
    TimedOut,
)
from adminprobe.core.config import (
    CredentialsConfig,
    DocumentsConfig,
    HarnessConfig,
    ServerConfig,
    TimeoutConfig,
)
from adminprobe.core.registry import Channel, ChannelRole, ConnectionRegistry
from adminprobe.core.sequencer import (
    Completed,
    Idle,
    Running,
    RunState,
    TestSequencer,
    TestStep,
    Verdict,
)

__all__ = [
    # Configuration
    "HarnessConfig",
    "ServerConfig",
    "CredentialsConfig",
    "DocumentsConfig",
    "TimeoutConfig",
    # Synchronization
    "SynchronizationBridge",
    "Exchange",
    "ExchangeResult",
    "ExchangeTimeout",
    "Delivered",
    "TimedOut",
    # Bookkeeping
    "ConnectionRegistry",
    "Channel",
    "ChannelRole",
    # Sequencing
    "TestSequencer",
    "TestStep",
    "Verdict",
    "RunState",
    "Idle",
    "Running",
    "Completed",
]
