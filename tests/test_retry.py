"""Tests for backoff computation, error classification and retry decisions."""

import random

import httpx
import pytest
from pydantic import ValidationError

from structured_client.circuit import CircuitOpenError
from structured_client.errors import ConfigurationError, ErrorType
from structured_client.models import RetryStrategy
from structured_client.providers.base import (
    AuthenticationError,
    InvalidRequestError,
    NetworkError,
    RateLimitError,
    ServerError,
    StructuredOutputError,
)
from structured_client.retry import (
    RetryAfter,
    RetryPolicy,
    Skip,
    calculate_backoff,
    calculate_strategy_delay,
    classify_error,
    error_type_of,
    extract_retry_after,
)

from .conftest import Person


def _status_error(status_code: int, headers=None) -> httpx.HTTPStatusError:
    request = httpx.Request("POST", "https://api.example.com/v1/messages")
    response = httpx.Response(status_code, request=request, headers=headers or {})
    return httpx.HTTPStatusError("error", request=request, response=response)


class TestBackoff:
    def test_exponential_without_jitter(self):
        policy = RetryPolicy(initial_delay=1.0, backoff_factor=2.0, max_delay=30.0, jitter=False)
        assert [calculate_backoff(n, policy) for n in (1, 2, 3, 4)] == [1.0, 2.0, 4.0, 8.0]

    def test_capped_at_max_delay(self):
        policy = RetryPolicy(initial_delay=1.0, backoff_factor=10.0, max_delay=5.0, jitter=False)
        assert calculate_backoff(3, policy) == 5.0

    def test_jitter_within_quarter(self):
        policy = RetryPolicy(initial_delay=4.0, jitter=True)
        rng = random.Random(42)
        for _ in range(200):
            delay = calculate_backoff(1, policy, rng)
            assert 3.0 <= delay <= 5.0

    def test_jitter_never_negative(self):
        policy = RetryPolicy(initial_delay=0.0, jitter=True)
        assert calculate_backoff(1, policy) == 0.0

    def test_strategies(self):
        policy = RetryPolicy(initial_delay=0.5, max_delay=10.0, jitter=False)
        assert calculate_strategy_delay(3, policy, RetryStrategy.IMMEDIATE) == 0.0
        assert calculate_strategy_delay(3, policy, RetryStrategy.LINEAR) == 1.5
        assert calculate_strategy_delay(3, policy, RetryStrategy.EXPONENTIAL) == 2.0


class TestErrorClassification:
    @pytest.mark.parametrize(
        "error, expected",
        [
            (RateLimitError("slow down", "openai"), ErrorType.RATE_LIMIT),
            (ServerError("503 Service Unavailable", "openai"), ErrorType.SERVER_ERROR),
            (NetworkError("connection reset", "openai"), ErrorType.NETWORK_ERROR),
            (AuthenticationError("bad key", "openai"), ErrorType.CLIENT_ERROR),
            (InvalidRequestError("bad request", "openai"), ErrorType.CLIENT_ERROR),
            (StructuredOutputError("no match", "openai"), ErrorType.VALIDATION),
            (ConfigurationError("no provider"), ErrorType.CONFIGURATION),
            (CircuitOpenError("open"), ErrorType.CIRCUIT_OPEN),
            (httpx.ConnectError("refused"), ErrorType.NETWORK_ERROR),
            (httpx.ReadTimeout("timed out"), ErrorType.NETWORK_ERROR),
            (ConnectionResetError(), ErrorType.NETWORK_ERROR),
            (RuntimeError("something odd"), ErrorType.UNKNOWN),
        ],
    )
    def test_error_types(self, error, expected):
        assert error_type_of(error) == expected

    def test_http_status_errors(self):
        assert error_type_of(_status_error(429)) == ErrorType.RATE_LIMIT
        assert error_type_of(_status_error(502)) == ErrorType.SERVER_ERROR
        assert error_type_of(_status_error(404)) == ErrorType.CLIENT_ERROR

    def test_pydantic_validation_error(self):
        with pytest.raises(ValidationError) as exc_info:
            Person.model_validate({"name": "Ada"})
        assert error_type_of(exc_info.value) == ErrorType.VALIDATION

    def test_message_content_is_not_sniffed(self):
        assert error_type_of(RuntimeError("429 rate limit exceeded")) == ErrorType.UNKNOWN

    @pytest.mark.parametrize(
        "error, should_retry",
        [
            (StructuredOutputError("no match", "x"), False),
            (AuthenticationError("bad key", "x"), False),
            (ConfigurationError("none"), False),
            (RateLimitError("slow", "x"), True),
            (ServerError("boom", "x"), True),
            (NetworkError("down", "x"), True),
            (RuntimeError("?"), True),
        ],
    )
    def test_retryability(self, error, should_retry):
        assert classify_error(error).should_retry is should_retry


class TestRetryAfter:
    def test_from_attribute(self):
        assert extract_retry_after(RateLimitError("x", "openai", retry_after=7)) == 7.0

    def test_from_response_header(self):
        assert extract_retry_after(_status_error(429, {"retry-after": "3"})) == 3.0

    def test_missing(self):
        assert extract_retry_after(ServerError("x", "openai")) is None


class TestDecide:
    def test_rate_limit_uses_fixed_delay(self):
        policy = RetryPolicy(rate_limit_delay=5.0, jitter=False)
        decision = policy.decide(RateLimitError("slow", "openai"), attempt=3)
        assert decision.should_retry
        assert decision.delay == 5.0

    def test_rate_limit_honours_reasonable_retry_after(self):
        policy = RetryPolicy(rate_limit_delay=5.0, max_delay=30.0)
        decision = policy.decide(RateLimitError("slow", "openai", retry_after=2.0), attempt=1)
        assert decision.delay == 2.0

    def test_rate_limit_ignores_excessive_retry_after(self):
        policy = RetryPolicy(rate_limit_delay=5.0, max_delay=30.0)
        decision = policy.decide(RateLimitError("slow", "openai", retry_after=120.0), attempt=1)
        assert decision.delay == 5.0

    def test_server_error_uses_backoff(self):
        policy = RetryPolicy(initial_delay=0.01, backoff_factor=2.0, jitter=False)
        assert policy.decide(ServerError("503", "x"), attempt=1).delay == pytest.approx(0.01)
        assert policy.decide(ServerError("503", "x"), attempt=2).delay == pytest.approx(0.02)

    def test_non_retryable_has_no_delay(self):
        decision = RetryPolicy().decide(AuthenticationError("bad key", "x"), attempt=1)
        assert not decision.should_retry
        assert decision.delay is None
        assert decision.error_type == ErrorType.CLIENT_ERROR

    def test_hook_skip_vetoes_retry(self):
        policy = RetryPolicy(on_error=lambda error, attempt: Skip())
        decision = policy.decide(ServerError("503", "x"), attempt=1)
        assert not decision.should_retry

    def test_hook_retry_after_sets_delay(self):
        policy = RetryPolicy(on_error=lambda error, attempt: RetryAfter(attempt * 0.5))
        decision = policy.decide(ServerError("503", "x"), attempt=3)
        assert decision.should_retry
        assert decision.delay == 1.5

    def test_hook_can_retry_non_retryable(self):
        policy = RetryPolicy(on_error=lambda error, attempt: RetryAfter(0.1))
        decision = policy.decide(InvalidRequestError("bad", "x"), attempt=1)
        assert decision.should_retry
        assert decision.delay == 0.1

    def test_hook_returning_none_keeps_default(self):
        seen = []

        def hook(error, attempt):
            seen.append((type(error), attempt))
            return None

        policy = RetryPolicy(initial_delay=1.0, jitter=False, on_error=hook)
        decision = policy.decide(ServerError("503", "x"), attempt=2)
        assert decision.should_retry
        assert decision.delay == 2.0
        assert seen == [(ServerError, 2)]

    def test_with_max_attempts(self):
        policy = RetryPolicy(max_attempts=3, initial_delay=0.2)
        changed = policy.with_max_attempts(7)
        assert changed.max_attempts == 7
        assert changed.initial_delay == 0.2
        assert policy.max_attempts == 3
