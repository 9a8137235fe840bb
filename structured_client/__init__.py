"""
structured-client - Schema-validated LLM generation with retry, caching and circuit breaker.

This package turns a prompt and a pydantic model into validated output with:
- Automatic provider selection ("auto") across configured providers
- Native tool calling where supported, JSON instruction modes elsewhere
- Retries with exponential backoff and jitter, fixed delays for rate limits
- A circuit breaker per provider/model to stop hammering failing backends
- Schema and response caches with LRU eviction and TTL expiry

Basic usage:
    from pydantic import BaseModel
    from structured_client import StructuredClient, GenerationRequest

    class Person(BaseModel):
        name: str
        age: int

    async with StructuredClient() as client:
        result = await client.generate(
            GenerationRequest(schema=Person, prompt="Extract the person", content=text)
        )
        if result.success:
            print(result.data)

With configuration:
    from structured_client import ClientConfig, RetryPolicy, RetryAfter, StructuredClient

    config = ClientConfig(
        default_provider="anthropic",
        enable_caching=True,
        retry_policy=RetryPolicy(max_attempts=5, on_error=lambda e, n: RetryAfter(2.0)),
    )
    client = StructuredClient(config)
"""

__version__ = "0.1.0"

# Main client
from .client import (
    ClientConfig,
    StructuredClient,
    create_client,
)

# Request and result types
from .models import (
    GenerationRequest,
    GenerationResult,
    RetryStrategy,
    TokenUsage,
)

# Errors
from .errors import (
    ConfigurationError,
    ErrorType,
    FieldError,
    format_validation_error,
    summarize_errors,
)

# Retry module
from .retry import (
    RetryAfter,
    RetryDecision,
    RetryPolicy,
    Skip,
    calculate_backoff,
    classify_error,
)

# Circuit breaker module
from .circuit import (
    CircuitBreaker,
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
    CircuitOpenError,
    CircuitState,
)

# Caches
from .schema_cache import SchemaCache, schema_hash
from .response_cache import ResponseCache, ResponseCacheConfig, build_fingerprint

# Modes and pricing
from .modes import Mode, ModeSelection, select_mode, supports_native_structured_output
from .pricing import CostBreakdown, calculate_cost

# Logging
from .log import NullUsageLogger, StructlogUsageLogger, UsageLogger, UsageRecord, configure_logging

# Providers
from .providers import (
    AnthropicProvider,
    BaseProvider,
    OpenAIProvider,
    ProviderConfig,
    ProviderError,
    RateLimitError,
    ServerError,
    StructuredOutputError,
    create_provider,
    register_provider,
)

__all__ = [
    # Version
    "__version__",
    # Client
    "ClientConfig",
    "StructuredClient",
    "create_client",
    # Models
    "GenerationRequest",
    "GenerationResult",
    "RetryStrategy",
    "TokenUsage",
    # Errors
    "ConfigurationError",
    "ErrorType",
    "FieldError",
    "format_validation_error",
    "summarize_errors",
    # Retry
    "RetryAfter",
    "RetryDecision",
    "RetryPolicy",
    "Skip",
    "calculate_backoff",
    "classify_error",
    # Circuit breaker
    "CircuitBreaker",
    "CircuitBreakerConfig",
    "CircuitBreakerRegistry",
    "CircuitOpenError",
    "CircuitState",
    # Caches
    "SchemaCache",
    "schema_hash",
    "ResponseCache",
    "ResponseCacheConfig",
    "build_fingerprint",
    # Modes and pricing
    "Mode",
    "ModeSelection",
    "select_mode",
    "supports_native_structured_output",
    "CostBreakdown",
    "calculate_cost",
    # Logging
    "NullUsageLogger",
    "StructlogUsageLogger",
    "UsageLogger",
    "UsageRecord",
    "configure_logging",
    # Providers
    "AnthropicProvider",
    "BaseProvider",
    "OpenAIProvider",
    "ProviderConfig",
    "ProviderError",
    "RateLimitError",
    "ServerError",
    "StructuredOutputError",
    "create_provider",
    "register_provider",
]
