"""Retry policy: backoff computation and error classification."""

import random
from dataclasses import dataclass, replace
from typing import Callable, Optional, Union

import httpx
from pydantic import ValidationError

from .circuit import CircuitBreakerConfig
from .errors import ErrorType
from .models import RetryStrategy

JITTER_RATIO = 0.25  # +/-25% of the computed delay

NON_RETRYABLE = (ErrorType.VALIDATION, ErrorType.CLIENT_ERROR)


@dataclass(frozen=True)
class Skip:
    """Hook decision: do not retry, surface the error now."""


@dataclass(frozen=True)
class RetryAfter:
    """Hook decision: retry after ``delay`` seconds."""

    delay: float


RetryAction = Union[Skip, RetryAfter]
ErrorHook = Callable[[Exception, int], Optional[RetryAction]]


@dataclass(frozen=True)
class RetryPolicy:
    """Configuration for retry behavior."""

    max_attempts: int = 3
    initial_delay: float = 1.0
    max_delay: float = 30.0
    backoff_factor: float = 2.0
    jitter: bool = True
    rate_limit_delay: float = 5.0  # Fixed delay for rate limits
    on_error: Optional[ErrorHook] = None
    circuit_breaker: Optional[CircuitBreakerConfig] = None

    def with_max_attempts(self, max_attempts: int) -> "RetryPolicy":
        """Copy of this policy with a different attempt budget."""
        return replace(self, max_attempts=max_attempts)

    def decide(
        self,
        error: Exception,
        attempt: int,
        strategy: RetryStrategy = RetryStrategy.EXPONENTIAL,
    ) -> "RetryDecision":
        """
        Decide whether and when to retry after ``error`` on ``attempt``.

        The classification sets the default; the caller's ``on_error`` hook,
        when it returns an action, has the final word. The attempt budget is
        checked by the caller.
        """
        decision = classify_error(error)

        if decision.error_type == ErrorType.RATE_LIMIT:
            decision = replace(decision, delay=self._rate_limit_delay(error))
        elif decision.should_retry:
            decision = replace(decision, delay=calculate_strategy_delay(attempt, self, strategy))

        if self.on_error is not None:
            action = self.on_error(error, attempt)
            if isinstance(action, Skip):
                return replace(decision, should_retry=False, delay=None, reason="Retry vetoed by error hook")
            if isinstance(action, RetryAfter):
                return replace(
                    decision,
                    should_retry=True,
                    delay=max(0.0, action.delay),
                    reason="Retry delay supplied by error hook",
                )

        return decision

    def _rate_limit_delay(self, error: Exception) -> float:
        """Fixed rate-limit delay, or the server's retry-after when reasonable."""
        retry_after = extract_retry_after(error)
        if retry_after is not None and retry_after <= self.max_delay:
            return retry_after
        return self.rate_limit_delay


@dataclass(frozen=True)
class RetryDecision:
    """Outcome of classifying an error."""

    should_retry: bool
    error_type: ErrorType
    reason: str
    delay: Optional[float] = None  # seconds; None until a delay is chosen


def calculate_backoff(attempt: int, policy: RetryPolicy, rng: random.Random = random) -> float:
    """
    Calculate exponential backoff delay with optional jitter.

    ``delay = min(initial_delay * backoff_factor ** (attempt - 1), max_delay)``,
    then perturbed by up to +/-25% when jitter is on, floored at zero.
    """
    delay = policy.initial_delay * (policy.backoff_factor ** (attempt - 1))
    delay = min(delay, policy.max_delay)
    return _apply_jitter(delay, policy, rng)


def calculate_strategy_delay(
    attempt: int,
    policy: RetryPolicy,
    strategy: RetryStrategy = RetryStrategy.EXPONENTIAL,
    rng: random.Random = random,
) -> float:
    """Delay before the retry following ``attempt`` for a retry strategy tag."""
    if strategy == RetryStrategy.IMMEDIATE:
        return 0.0
    if strategy == RetryStrategy.LINEAR:
        delay = min(policy.initial_delay * attempt, policy.max_delay)
        return _apply_jitter(delay, policy, rng)
    return calculate_backoff(attempt, policy, rng)


def _apply_jitter(delay: float, policy: RetryPolicy, rng: random.Random) -> float:
    if policy.jitter:
        jitter_range = delay * JITTER_RATIO
        delay = delay + rng.uniform(-jitter_range, jitter_range)
    return max(0.0, delay)


def extract_retry_after(exception: Exception) -> Optional[float]:
    """Extract retry-after seconds from a provider error or HTTP response."""
    retry_after = getattr(exception, "retry_after", None)
    if retry_after is not None:
        return float(retry_after)

    response = getattr(exception, "response", None)
    if response is not None and hasattr(response, "headers"):
        header = response.headers.get("retry-after")
        if header:
            try:
                return float(header)
            except ValueError:
                return None

    return None


def _status_error_type(status_code: int) -> ErrorType:
    if status_code == 429:
        return ErrorType.RATE_LIMIT
    if status_code >= 500:
        return ErrorType.SERVER_ERROR
    if 400 <= status_code < 500:
        return ErrorType.CLIENT_ERROR
    return ErrorType.UNKNOWN


def error_type_of(error: BaseException) -> ErrorType:
    """
    Map an exception to its error kind.

    Provider errors carry an explicit ``error_type`` tag; the remaining cases
    are recognised by exception class, never by message content.
    """
    tagged = getattr(error, "error_type", None)
    if isinstance(tagged, ErrorType):
        return tagged

    if isinstance(error, ValidationError):
        return ErrorType.VALIDATION

    if isinstance(error, httpx.HTTPStatusError):
        return _status_error_type(error.response.status_code)

    if isinstance(error, (httpx.TimeoutException, httpx.TransportError)):
        return ErrorType.NETWORK_ERROR

    if isinstance(error, (ConnectionError, TimeoutError)):
        return ErrorType.NETWORK_ERROR

    return ErrorType.UNKNOWN


_REASONS = {
    ErrorType.VALIDATION: "Validation errors are not retryable",
    ErrorType.CLIENT_ERROR: "Client errors (4xx) are not retryable",
    ErrorType.RATE_LIMIT: "Rate limit error - using fixed delay",
    ErrorType.SERVER_ERROR: "Server error - using backoff",
    ErrorType.NETWORK_ERROR: "Network error - using backoff",
    ErrorType.UNKNOWN: "Unknown error type - using backoff",
    ErrorType.CONFIGURATION: "Configuration errors are not retryable",
    ErrorType.CIRCUIT_OPEN: "Circuit is open",
}


def classify_error(error: BaseException) -> RetryDecision:
    """Classify an error into a retry decision without a delay."""
    error_type = error_type_of(error)
    should_retry = error_type not in NON_RETRYABLE + (ErrorType.CONFIGURATION, ErrorType.CIRCUIT_OPEN)
    return RetryDecision(
        should_retry=should_retry,
        error_type=error_type,
        reason=_REASONS[error_type],
    )
