"""Hand-off of inbound messages from transport threads to the test driver.

The driver thread sends a command and then blocks until the transport's
reader thread delivers the reply, or until a bound elapses. Only one
exchange is in flight at a time, so a single message slot is enough.

Exchange Protocol:
    1. Driver calls prepare() - clears the slot, returns an Exchange
    2. Driver sends the triggering command
    3. Driver calls Exchange.wait() - blocks until delivered or timeout
    4. Reader thread calls deliver() - stores the message, wakes waiters

prepare() must come before the send. A reply delivered between the send
and the wait is then kept in the slot and the wait returns immediately.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable
from dataclasses import dataclass

import structlog

log = structlog.get_logger()


class ExchangeTimeout(TimeoutError):
    """No message was delivered within the bound."""


@dataclass(frozen=True)
class Delivered:
    """Outcome of a wait that received a message."""

    message: str


@dataclass(frozen=True)
class TimedOut:
    """Outcome of a wait that hit its bound.

    Attributes:
        waited: Seconds spent waiting
    """

    waited: float


ExchangeResult = Delivered | TimedOut


class Exchange:
    """One prepared request/reply exchange.

    Only obtainable from SynchronizationBridge.prepare(), and good for a
    single wait. A newer prepare() supersedes it.
    """

    def __init__(self, bridge: SynchronizationBridge, generation: int) -> None:
        self._bridge = bridge
        self._generation = generation
        self._awaited = False

    @property
    def generation(self) -> int:
        """Sequence number of this exchange on its bridge."""
        return self._generation

    def wait(self, timeout: float) -> ExchangeResult:
        """Block until a message is delivered or ``timeout`` seconds elapse.

        Args:
            timeout: Maximum seconds to wait

        Returns:
            Delivered with the message, or TimedOut

        Raises:
            RuntimeError: If already awaited or superseded
        """
        if self._awaited:
            raise RuntimeError("Exchange already awaited")
        self._awaited = True
        return self._bridge._wait(self._generation, timeout)

    def receive(self, timeout: float) -> str:
        """Like wait(), but return the message or raise ExchangeTimeout."""
        result = self.wait(timeout)
        if isinstance(result, TimedOut):
            raise ExchangeTimeout(f"No message within {timeout:.3f}s")
        return result.message


class SynchronizationBridge:
    """Single-slot, bounded-wait hand-off between two threads.

    Example:
        # Driver side
        exchange = bridge.prepare()
        transport.send(admin, "active_users_count")
        result = exchange.wait(timeout=5.0)

        # Reader thread side
        bridge.deliver(message)
    """

    def __init__(self) -> None:
        self._cond = threading.Condition()
        self._pending: str | None = None
        self._generation = 0
        self._deliveries = 0

    @property
    def pending(self) -> str | None:
        """Message currently held in the slot, if any."""
        with self._cond:
            return self._pending

    @property
    def deliveries(self) -> int:
        """Total number of deliver() calls."""
        with self._cond:
            return self._deliveries

    def prepare(self) -> Exchange:
        """Clear the slot and start a new exchange.

        Must be called before sending the command that triggers the
        awaited message.
        """
        with self._cond:
            self._pending = None
            self._generation += 1
            # Wake any waiter on the previous exchange so it sees it was superseded
            self._cond.notify_all()
            return Exchange(self, self._generation)

    def deliver(self, message: str) -> None:
        """Store ``message`` and wake all waiters.

        Never blocks on the waiter. A later delivery overwrites an
        unobserved earlier one.
        """
        with self._cond:
            if self._pending is not None:
                log.debug("Overwriting unobserved message", dropped=self._pending)
            self._pending = message
            self._deliveries += 1
            self._cond.notify_all()
        log.debug("Message delivered", message=message)

    def request(self, send: Callable[[], None], timeout: float) -> ExchangeResult:
        """Run one exchange: prepare(), then ``send()``, then wait.

        Args:
            send: Callable that sends the triggering command
            timeout: Maximum seconds to wait for the reply
        """
        exchange = self.prepare()
        send()
        return exchange.wait(timeout)

    def _wait(self, generation: int, timeout: float) -> ExchangeResult:
        start = time.monotonic()
        with self._cond:
            if generation != self._generation:
                raise RuntimeError("Exchange superseded by a newer prepare()")
            # Condition.wait_for releases the lock while blocked
            ready = self._cond.wait_for(
                lambda: self._pending is not None or generation != self._generation,
                timeout=max(timeout, 0.0),
            )
            if generation != self._generation:
                raise RuntimeError("Exchange superseded by a newer prepare()")
            waited = time.monotonic() - start
            if not ready:
                return TimedOut(waited=waited)
            message = self._pending
            self._pending = None
        assert message is not None
        return Delivered(message=message)
