"""
Circuit breaker guarding calls to a single media backend.
"""

import asyncio
import logging
import time
from enum import Enum

log = logging.getLogger(__name__)


class CircuitState(Enum):
    """States of the circuit breaker."""

    CLOSED = "closed"
    OPEN = "open"
    HALF_OPEN = "half_open"


class CircuitBreakerError(Exception):
    """Raised when a call is attempted while the circuit is open."""


class CircuitBreaker:
    """
    Stops hammering a backend that keeps failing.

    After ``failure_threshold`` consecutive failures the circuit opens and every
    call fails fast for ``recovery_timeout`` seconds. The next call after that is
    let through as a probe; ``success_threshold`` consecutive successes close the
    circuit again, a single failure reopens it.

    Usage:
        async with breaker:
            await do_request()
    """

    def __init__(
        self,
        name: str,
        failure_threshold: int = 5,
        recovery_timeout: float = 30.0,
        success_threshold: int = 1,
    ):
        self.name = name
        self.failure_threshold = failure_threshold
        self.recovery_timeout = recovery_timeout
        self.success_threshold = success_threshold

        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._opened_at: float | None = None
        self._lock = asyncio.Lock()

    @property
    def state(self) -> CircuitState:
        return self._state

    def reset(self) -> None:
        """Forces the circuit closed, e.g. after the backend was re-initialized."""
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._opened_at = None

    def _maybe_half_open(self) -> None:
        if self._state is not CircuitState.OPEN or self._opened_at is None:
            return
        elapsed = time.monotonic() - self._opened_at
        if elapsed >= self.recovery_timeout:
            log.info(
                f"[yellow]Backend '{self.name}': probing recovery after "
                f"{elapsed:.0f}s.[/yellow]"
            )
            self._state = CircuitState.HALF_OPEN
            self._successes = 0

    async def _record_success(self) -> None:
        async with self._lock:
            self._failures = 0
            if self._state is CircuitState.HALF_OPEN:
                self._successes += 1
                if self._successes >= self.success_threshold:
                    log.info(f"[green]Backend '{self.name}' recovered.[/green]")
                    self.reset()

    async def _record_failure(self) -> None:
        async with self._lock:
            self._failures += 1
            if self._state is CircuitState.HALF_OPEN:
                log.warning(
                    f"[yellow]Backend '{self.name}' still failing. "
                    "Circuit reopened.[/yellow]"
                )
                self._state = CircuitState.OPEN
                self._opened_at = time.monotonic()
                self._failures = 0
            elif (
                self._state is CircuitState.CLOSED
                and self._failures >= self.failure_threshold
            ):
                log.error(
                    f"[red]Backend '{self.name}' failed {self._failures} times in a "
                    f"row. Calls blocked for {self.recovery_timeout:.0f}s.[/red]"
                )
                self._state = CircuitState.OPEN
                self._opened_at = time.monotonic()

    async def __aenter__(self):
        async with self._lock:
            self._maybe_half_open()
            if self._state is CircuitState.OPEN:
                raise CircuitBreakerError(
                    f"Backend '{self.name}' is unavailable; retrying after "
                    f"{self.recovery_timeout:.0f} seconds."
                )
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        if exc_type:
            await self._record_failure()
        else:
            await self._record_success()
        return False
