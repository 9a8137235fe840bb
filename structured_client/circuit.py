"""Circuit breaker pattern for per-client failure isolation."""

import threading
import time
from dataclasses import dataclass
from enum import Enum
from typing import Any, Callable, Dict, Optional

from .errors import ErrorType


class CircuitState(Enum):
    """Circuit breaker states."""

    CLOSED = "closed"  # Normal operation, requests pass through
    OPEN = "open"  # Circuit tripped, requests fail fast
    HALF_OPEN = "half_open"  # Single trial probe allowed


@dataclass(frozen=True)
class CircuitBreakerConfig:
    """Configuration for circuit breaker."""

    failure_threshold: int = 5  # Consecutive failures before opening
    reset_timeout: float = 30.0  # Seconds before trying half-open
    enabled: bool = True


class CircuitOpenError(Exception):
    """Raised when circuit is open and request is rejected."""

    error_type = ErrorType.CIRCUIT_OPEN

    def __init__(self, message: str, remaining_timeout: float = 0):
        super().__init__(message)
        self.remaining_timeout = remaining_timeout


class CircuitBreaker:
    """
    Circuit breaker for a single provider client.

    States:
    - CLOSED: Normal operation. Failures increment counter.
    - OPEN: All requests fail fast until the reset timeout elapses.
    - HALF_OPEN: One trial request is let through. Its failure re-opens the
      circuit immediately, its success closes it.

    Any success resets the failure counter and closes the circuit, whatever
    the prior state.
    """

    def __init__(
        self,
        name: str,
        config: Optional[CircuitBreakerConfig] = None,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.name = name
        self.config = config or CircuitBreakerConfig()
        self._clock = clock

        self._state = CircuitState.CLOSED
        self._failure_count = 0
        self._last_failure_time: Optional[float] = None

        self._lock = threading.RLock()

    @property
    def state(self) -> CircuitState:
        """Get current circuit state (no side effects)."""
        return self._state

    @property
    def failure_count(self) -> int:
        """Get current consecutive failure count."""
        return self._failure_count

    @property
    def last_failure_time(self) -> Optional[float]:
        """Clock reading of the most recent recorded failure."""
        return self._last_failure_time

    @property
    def is_closed(self) -> bool:
        return self._state == CircuitState.CLOSED

    @property
    def is_open(self) -> bool:
        return self._state == CircuitState.OPEN

    @property
    def is_half_open(self) -> bool:
        return self._state == CircuitState.HALF_OPEN

    def _reset_timeout_elapsed(self) -> bool:
        """Check if enough time has passed since the last failure."""
        if self._last_failure_time is None:
            return True
        return self._clock() - self._last_failure_time >= self.config.reset_timeout

    def _get_remaining_timeout(self) -> float:
        """Get remaining time until half-open transition."""
        if self._last_failure_time is None:
            return 0
        elapsed = self._clock() - self._last_failure_time
        return max(0, self.config.reset_timeout - elapsed)

    def can_execute(self) -> bool:
        """
        Check if a request should be allowed through.

        An OPEN circuit whose reset timeout has elapsed moves to HALF_OPEN
        as a side effect and lets the probe through.
        """
        if not self.config.enabled:
            return True

        with self._lock:
            if self._state == CircuitState.CLOSED:
                return True

            if self._state == CircuitState.OPEN:
                if self._reset_timeout_elapsed():
                    self._state = CircuitState.HALF_OPEN
                    return True
                return False

            # HALF_OPEN: the probe is in flight
            return True

    def record_success(self) -> None:
        """Record a successful call."""
        if not self.config.enabled:
            return

        with self._lock:
            self._failure_count = 0
            self._state = CircuitState.CLOSED

    def record_failure(self) -> None:
        """Record a failed call."""
        if not self.config.enabled:
            return

        with self._lock:
            self._failure_count += 1
            self._last_failure_time = self._clock()

            if self._state == CircuitState.HALF_OPEN:
                self._state = CircuitState.OPEN
            elif self._failure_count >= self.config.failure_threshold:
                self._state = CircuitState.OPEN

    def open_error(self) -> CircuitOpenError:
        """Build the error reported when this circuit rejects a call."""
        return CircuitOpenError(
            f"Circuit '{self.name}' is open - provider is temporarily unavailable",
            remaining_timeout=self._get_remaining_timeout(),
        )

    def reset(self) -> None:
        """Manually reset the circuit breaker to closed state."""
        with self._lock:
            self._state = CircuitState.CLOSED
            self._failure_count = 0
            self._last_failure_time = None

    def get_stats(self) -> Dict[str, Any]:
        """Get circuit breaker statistics."""
        with self._lock:
            return {
                "name": self.name,
                "state": self._state.value,
                "enabled": self.config.enabled,
                "failure_count": self._failure_count,
                "failure_threshold": self.config.failure_threshold,
                "remaining_timeout": self._get_remaining_timeout() if self._state == CircuitState.OPEN else 0,
            }


class CircuitBreakerRegistry:
    """Registry for the circuit breakers owned by one client."""

    def __init__(self, clock: Callable[[], float] = time.monotonic):
        self._breakers: Dict[str, CircuitBreaker] = {}
        self._clock = clock
        self._lock = threading.RLock()

    def get_or_create(
        self, name: str, config: Optional[CircuitBreakerConfig] = None
    ) -> CircuitBreaker:
        """Get existing circuit breaker or create new one."""
        with self._lock:
            if name not in self._breakers:
                self._breakers[name] = CircuitBreaker(name, config, clock=self._clock)
            return self._breakers[name]

    def get(self, name: str) -> Optional[CircuitBreaker]:
        """Get circuit breaker by name."""
        return self._breakers.get(name)

    def all(self) -> Dict[str, CircuitBreaker]:
        """Get all circuit breakers."""
        return dict(self._breakers)

    def reset_all(self) -> None:
        """Reset all circuit breakers."""
        with self._lock:
            for breaker in self._breakers.values():
                breaker.reset()

    def get_all_stats(self) -> Dict[str, Dict[str, Any]]:
        """Get stats for all circuit breakers."""
        return {name: breaker.get_stats() for name, breaker in self._breakers.items()}
