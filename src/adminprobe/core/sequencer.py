"""Single-flight driver for an ordered list of test steps.

Steps are stateful and ordered: a token captured by one step is used by
the next, channels opened by one step are counted by later ones. The
sequencer therefore runs them strictly one at a time and stops the whole
run at the first step that does not pass.

Run Lifecycle:
    advance()          advance()                 advance()
       │                  │                          │
       ▼                  ▼                          ▼
┌─────────────┐   ┌──────────────┐   ┌───────────────────────────┐
│ Idle(i)     │──▶│ Running(i)   │──▶│ Idle(i+1) | Completed(v)  │
└─────────────┘   └──────────────┘   └───────────────────────────┘

A second advance() while Running is ignored. Once Completed, every
advance() is ignored.

Timeouts:
    Each wait inside a step is bounded by the caller. The whole run is
    additionally bounded by run_timeout, measured from the first advance().
    Use clip() to keep a per-exchange wait inside the run bound. Crossing
    the deadline, before or during a step, ends the run as TIMED_OUT.
"""

from __future__ import annotations

import threading
import time
from collections.abc import Callable, Sequence
from dataclasses import dataclass
from enum import Enum

import structlog

log = structlog.get_logger()


class Verdict(str, Enum):
    """Outcome of a step or of a whole run."""

    PASSED = "passed"
    FAILED = "failed"
    TIMED_OUT = "timed_out"

    @property
    def exit_code(self) -> int:
        """Process exit status for this verdict."""
        return _EXIT_CODES[self]


_EXIT_CODES = {Verdict.PASSED: 0, Verdict.FAILED: 1, Verdict.TIMED_OUT: 2}


@dataclass(frozen=True)
class TestStep:
    """One named test case.

    Attributes:
        name: Step name used in log lines
        run: Callable executing the step and returning its verdict
    """

    __test__ = False

    name: str
    run: Callable[[], Verdict]


@dataclass(frozen=True)
class Idle:
    """Waiting for the next trigger."""

    next_index: int = 0


@dataclass(frozen=True)
class Running:
    """A step is executing."""

    index: int


@dataclass(frozen=True)
class Completed:
    """The run is over."""

    verdict: Verdict


RunState = Idle | Running | Completed


class TestSequencer:
    """Runs registered steps in order, one at a time.

    Example:
        >>> sequencer = TestSequencer(run_timeout=60.0)
        >>> sequencer.register(TestStep("login", suite.login))
        >>> verdict = sequencer.run()
    """

    __test__ = False

    # Default bound for the whole run, in seconds
    DEFAULT_RUN_TIMEOUT: float = 60.0

    # Pause in run() while another thread is executing a step
    BUSY_POLL: float = 0.01

    def __init__(
        self,
        steps: Sequence[TestStep] = (),
        run_timeout: float | None = DEFAULT_RUN_TIMEOUT,
        on_complete: Callable[[Verdict], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        """Initialize the sequencer.

        Args:
            steps: Initial steps, in execution order
            run_timeout: Seconds allowed for the whole run, None for unbounded
            on_complete: Called once with the final verdict
            clock: Monotonic clock, injectable for tests
        """
        if run_timeout is not None and run_timeout <= 0:
            raise ValueError("run_timeout must be positive")

        self._steps: list[TestStep] = list(steps)
        self._run_timeout = run_timeout
        self._on_complete = on_complete
        self._clock = clock

        self._state: RunState = Idle()
        self._started_at: float | None = None
        self._guard = threading.Lock()
        self._done = threading.Event()

    @property
    def state(self) -> RunState:
        """Current run state."""
        return self._state

    @property
    def steps(self) -> tuple[TestStep, ...]:
        """Registered steps in execution order."""
        return tuple(self._steps)

    @property
    def started(self) -> bool:
        """Whether the first advance() has happened."""
        return self._started_at is not None

    @property
    def done(self) -> bool:
        """Whether the run has completed."""
        return self._done.is_set()

    @property
    def verdict(self) -> Verdict | None:
        """Final verdict, None until completed."""
        state = self._state
        return state.verdict if isinstance(state, Completed) else None

    def register(self, step: TestStep) -> bool:
        """Append a step.

        Returns:
            True if registered, False if the run has already started
        """
        if self.started:
            log.warning("Step registered after run start ignored", step=step.name)
            return False
        self._steps.append(step)
        return True

    def remaining(self) -> float | None:
        """Seconds left before the run timeout, None if unbounded."""
        if self._run_timeout is None:
            return None
        if self._started_at is None:
            return self._run_timeout
        return max(self._run_timeout - (self._clock() - self._started_at), 0.0)

    def clip(self, timeout: float) -> float:
        """Limit a per-exchange timeout to the time left in the run."""
        remaining = self.remaining()
        return timeout if remaining is None else min(timeout, remaining)

    def advance(self) -> bool:
        """Run the next step, unless one is already running.

        Safe to call from a repeating trigger and from within a step; such
        calls are ignored while a step executes. A step that ends past the
        run deadline completes the run as TIMED_OUT whatever its own verdict.

        Returns:
            False if the call was ignored
        """
        if not self._guard.acquire(blocking=False):
            log.debug("Advance ignored, step in flight")
            return False
        try:
            state = self._state
            if not isinstance(state, Idle):
                return False

            if self._started_at is None:
                self._started_at = self._clock()
                log.info("Starting run", steps=len(self._steps), timeout=self._run_timeout)

            if self.remaining() == 0.0:
                log.error(
                    "Run timed out", timeout=self._run_timeout, next_step=state.next_index + 1
                )
                self._complete(Verdict.TIMED_OUT)
                return True

            index = state.next_index
            if index >= len(self._steps):
                self._complete(Verdict.PASSED)
                return True

            self._state = Running(index)
            verdict = self._invoke(index, self._steps[index])
            index += 1

            if self.remaining() == 0.0:
                log.error("Run timed out", timeout=self._run_timeout, step=index)
                self._complete(Verdict.TIMED_OUT)
            elif verdict != Verdict.PASSED:
                self._complete(verdict)
            elif index == len(self._steps):
                self._complete(Verdict.PASSED)
            else:
                self._state = Idle(index)
            return True
        finally:
            self._guard.release()

    def run(self, interval: float = 0.0) -> Verdict:
        """Trigger advance() until the run completes.

        Args:
            interval: Seconds to pause between triggers

        Returns:
            Final verdict
        """
        while not self._done.is_set():
            advanced = self.advance()
            if interval > 0:
                self._done.wait(interval)
            elif not advanced:
                # Another trigger holds the step
                self._done.wait(self.BUSY_POLL)
        verdict = self.verdict
        assert verdict is not None
        return verdict

    def wait(self, timeout: float | None = None) -> Verdict | None:
        """Block until the run completes.

        Returns:
            Final verdict, or None if ``timeout`` elapsed first
        """
        self._done.wait(timeout)
        return self.verdict

    def _invoke(self, index: int, step: TestStep) -> Verdict:
        """Execute one step, collapsing any error into a verdict."""
        number = index + 1
        log.info("Starting step", number=number, step=step.name)
        try:
            verdict = step.run()
        except TimeoutError as e:
            log.info("Step timed out", number=number, step=step.name, reason=str(e))
            verdict = Verdict.TIMED_OUT
        except ValueError as e:
            log.info("Step failed", number=number, step=step.name, reason=str(e))
            verdict = Verdict.FAILED
        except ConnectionError as e:
            log.info("Step transport failure", number=number, step=step.name, reason=str(e))
            verdict = Verdict.FAILED
        except Exception:
            log.exception("Step raised", number=number, step=step.name)
            verdict = Verdict.FAILED
        log.info("Finished step", number=number, step=step.name, verdict=verdict.value)
        return verdict

    def _complete(self, verdict: Verdict) -> None:
        self._state = Completed(verdict)
        log.info("Run completed", verdict=verdict.value)
        self._done.set()
        if self._on_complete is not None:
            self._on_complete(verdict)
