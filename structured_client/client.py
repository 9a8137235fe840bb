"""Structured generation client with caching, retry and circuit breaker."""

import asyncio
import os
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple, Type, TypeVar

import structlog
from pydantic import BaseModel, ValidationError

from .circuit import CircuitBreaker, CircuitBreakerConfig, CircuitBreakerRegistry
from .errors import ConfigurationError, ErrorType, errors_from_exception
from .log import NullUsageLogger, StructlogUsageLogger, UsageLogger, UsageRecord, new_request_id
from .models import GenerationRequest, GenerationResult, RetryStrategy, TokenUsage
from .modes import ModeSelection, select_mode
from .pricing import CostBreakdown, calculate_cost
from .providers import PROVIDER_CLASSES, BaseProvider, GenerationOptions, ProviderConfig
from .response_cache import ResponseCache, ResponseCacheConfig, build_fingerprint, prompt_hash
from .retry import RetryPolicy, error_type_of
from .schema_cache import SchemaCache

logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=BaseModel)

AUTO = "auto"

CostFunction = Callable[[TokenUsage, str, Optional[str]], CostBreakdown]


def _env_bool(name: str, default: bool) -> bool:
    value = os.environ.get(name)
    if value is None:
        return default
    return value.strip().lower() in ("1", "true", "yes", "on")


@dataclass
class ClientConfig:
    """Configuration for the structured client."""

    # Request defaults
    default_provider: str = AUTO
    default_retry_strategy: RetryStrategy = RetryStrategy.EXPONENTIAL
    default_max_retries: int = 3
    default_timeout: float = 30.0  # seconds

    enable_caching: bool = False
    enable_logging: bool = False

    # Retry settings; None builds a policy from default_max_retries
    retry_policy: Optional[RetryPolicy] = None

    # Provider settings
    provider_configs: Dict[str, ProviderConfig] = field(default_factory=dict)
    default_models: Dict[str, str] = field(default_factory=dict)
    preferred_providers: Tuple[str, ...] = ("anthropic", "openai")

    # Cache settings
    schema_cache_size: int = 100
    response_cache: ResponseCacheConfig = field(default_factory=ResponseCacheConfig)

    @classmethod
    def from_env(cls, prefix: str = "STRUCTURED_CLIENT_") -> "ClientConfig":
        """Build a config from environment variables, falling back to defaults."""
        defaults = cls()
        env = os.environ.get

        strategy = env(f"{prefix}RETRY_STRATEGY")
        cache_defaults = defaults.response_cache
        return cls(
            default_provider=env(f"{prefix}PROVIDER", defaults.default_provider),
            default_retry_strategy=RetryStrategy(strategy.lower()) if strategy else defaults.default_retry_strategy,
            default_max_retries=int(env(f"{prefix}MAX_RETRIES", defaults.default_max_retries)),
            default_timeout=float(env(f"{prefix}TIMEOUT", defaults.default_timeout)),
            enable_caching=_env_bool(f"{prefix}ENABLE_CACHING", defaults.enable_caching),
            enable_logging=_env_bool(f"{prefix}ENABLE_LOGGING", defaults.enable_logging),
            response_cache=ResponseCacheConfig(
                max_size=int(env(f"{prefix}CACHE_MAX_SIZE", cache_defaults.max_size)),
                default_ttl=float(env(f"{prefix}CACHE_TTL", cache_defaults.default_ttl)),
                enable_cleanup=cache_defaults.enable_cleanup,
                cleanup_interval=cache_defaults.cleanup_interval,
            ),
        )


class StructuredClient:
    """
    Schema-validated LLM generation with resilience built in.

    Each ``generate`` call resolves a provider, reuses cached schemas and
    (optionally) cached responses, and calls the provider under a per
    provider/model circuit breaker and a bounded retry loop. Every outcome is
    returned as a ``GenerationResult``; ``generate`` does not raise for
    provider or configuration failures.

    All collaborators can be injected; whatever is not injected is created
    for this client alone.
    """

    def __init__(
        self,
        config: Optional[ClientConfig] = None,
        providers: Optional[Mapping[str, BaseProvider]] = None,
        schema_cache: Optional[SchemaCache] = None,
        response_cache: Optional[ResponseCache] = None,
        usage_logger: Optional[UsageLogger] = None,
        pricing: CostFunction = calculate_cost,
        circuits: Optional[CircuitBreakerRegistry] = None,
    ):
        self.config = config or ClientConfig()

        if providers is None:
            providers = {
                name: provider_class(self.config.provider_configs.get(name))
                for name, provider_class in PROVIDER_CLASSES.items()
            }
        self._providers: Dict[str, BaseProvider] = dict(providers)

        self.schema_cache = schema_cache or SchemaCache(self.config.schema_cache_size)
        self.response_cache = response_cache or ResponseCache(self.config.response_cache)
        self.circuits = circuits or CircuitBreakerRegistry()

        if usage_logger is None:
            usage_logger = StructlogUsageLogger() if self.config.enable_logging else NullUsageLogger()
        self._usage_logger = usage_logger
        self._pricing = pricing

    @property
    def providers(self) -> Dict[str, BaseProvider]:
        return dict(self._providers)

    # Provider resolution

    def _is_available(self, name: str) -> bool:
        provider = self._providers.get(name)
        return provider is not None and provider.is_available()

    def resolve_provider(self, name: Optional[str] = None) -> str:
        """
        Resolve a provider name, picking the first available one for "auto".

        Raises:
            ConfigurationError: If the provider is unknown or not configured,
                or no provider is available for "auto"
        """
        name = name or self.config.default_provider

        if name != AUTO:
            provider = self._providers.get(name)
            if provider is None:
                raise ConfigurationError(f"Unknown provider: {name}", provider=name)
            try:
                provider.validate()
            except ConfigurationError as e:
                raise ConfigurationError(f"Provider {name} is not available: {e}", provider=name) from e
            return name

        for candidate in self.config.preferred_providers:
            if self._is_available(candidate):
                return candidate

        raise ConfigurationError(
            "No supported providers are available. Configure an API key for one of: "
            + ", ".join(self.config.preferred_providers)
        )

    async def get_available_providers(self) -> List[str]:
        """Names of usable providers, plus "auto" when at least one is usable."""
        available = [name for name in self._providers if self._is_available(name)]
        if available:
            available.append(AUTO)
        return available

    async def is_provider_available(self, name: str) -> bool:
        """Check if a specific provider (or "auto") is usable."""
        if name == AUTO:
            return any(self._is_available(candidate) for candidate in self.config.preferred_providers)
        return self._is_available(name)

    # Generation

    def _retry_policy(self, request: GenerationRequest) -> RetryPolicy:
        base = self.config.retry_policy or RetryPolicy(max_attempts=self.config.default_max_retries)
        if isinstance(request.max_retries, RetryPolicy):
            policy = request.max_retries
        elif request.max_retries is not None:
            policy = base.with_max_attempts(request.max_retries)
        else:
            policy = base
        return policy.with_max_attempts(max(1, policy.max_attempts))

    def _circuit(self, provider: str, model: str, policy: RetryPolicy) -> CircuitBreaker:
        return self.circuits.get_or_create(
            f"{provider}:{model}", policy.circuit_breaker or CircuitBreakerConfig()
        )

    def _model_for(self, provider: str, request: GenerationRequest) -> str:
        return (
            request.model
            or self.config.default_models.get(provider)
            or self._providers[provider].default_model
        )

    async def generate(self, request: GenerationRequest[T]) -> GenerationResult[T]:
        """
        Generate output conforming to the request's schema.

        Args:
            request: Schema, prompt and per-request overrides

        Returns:
            GenerationResult; ``success`` tells whether ``data`` or ``errors``
            is populated
        """
        started = time.perf_counter()
        request_id = new_request_id()
        requested = request.provider or self.config.default_provider

        try:
            provider_name = self.resolve_provider(requested)
        except ConfigurationError as e:
            logger.warning("provider_resolution_failed", provider=requested, error=str(e))
            return self._failure(
                request_id,
                started,
                provider=requested,
                model=request.model or "",
                error=e,
                attempts=0,
            )

        provider = self._providers[provider_name]
        model = self._model_for(provider_name, request)
        schema = request.schema
        # Registers the descriptor for stats; validation always uses the caller's class
        self.schema_cache.get_or_set(schema)
        schema_key = self.schema_cache.get_cache_key(schema)
        selection = select_mode(provider_name, model)

        cache_key = None
        if self.config.enable_caching:
            cache_key = build_fingerprint(
                provider=provider_name,
                model=model,
                schema_hash=schema_key,
                prompt=request.prompt,
                content=request.content,
                temperature=request.temperature,
                max_tokens=request.max_tokens,
            )
            cached = self._cached_result(cache_key, schema, request_id, started, provider_name, model, selection)
            if cached is not None:
                return cached

        policy = self._retry_policy(request)
        strategy = request.retry_strategy or self.config.default_retry_strategy
        circuit = self._circuit(provider_name, model, policy)
        options = GenerationOptions(
            model=model,
            temperature=request.temperature,
            max_tokens=request.max_tokens,
            timeout=request.timeout or self.config.default_timeout,
            mode=selection.mode,
            fallback_mode=selection.fallback_mode,
            extra=request.provider_options,
        )

        attempt = 0
        last_error: Optional[Exception] = None

        while attempt < policy.max_attempts:
            if not circuit.can_execute():
                last_error = circuit.open_error()
                logger.warning("circuit_open", circuit=circuit.name, attempts=attempt)
                break

            attempt += 1
            try:
                output = await provider.generate(schema, request.full_prompt, options)
            except Exception as e:
                last_error = e
                circuit.record_failure()
                decision = policy.decide(e, attempt, strategy)
                logger.info(
                    "generation_attempt_failed",
                    provider=provider_name,
                    model=model,
                    attempt=attempt,
                    max_attempts=policy.max_attempts,
                    error_type=decision.error_type.value,
                    will_retry=decision.should_retry and attempt < policy.max_attempts,
                    error=str(e),
                )
                if not decision.should_retry or attempt >= policy.max_attempts:
                    break
                await asyncio.sleep(decision.delay or 0.0)
                continue

            circuit.record_success()
            return self._success(
                request_id, started, provider_name, model, selection, output, attempt, strategy, cache_key,
                cache_metadata={
                    "provider": provider_name,
                    "model": model,
                    "schema_hash": schema_key,
                    "prompt_hash": prompt_hash(request.prompt, request.content),
                },
            )

        return self._failure(
            request_id,
            started,
            provider=provider_name,
            model=model,
            error=last_error,
            attempts=attempt,
            selection=selection,
            strategy=strategy,
        )

    def _cached_result(
        self,
        cache_key: str,
        schema: Type[T],
        request_id: str,
        started: float,
        provider: str,
        model: str,
        selection: ModeSelection,
    ) -> Optional[GenerationResult[T]]:
        payload = self.response_cache.get(cache_key)
        if payload is None:
            logger.debug("response_cache_miss", key=cache_key)
            return None

        try:
            data = schema.model_validate(payload)
        except ValidationError:
            # Stored payload no longer fits the schema; treat as a miss
            self.response_cache.remove(cache_key)
            return None

        logger.debug("response_cache_hit", key=cache_key)
        usage = TokenUsage.zero()
        cost = self._pricing(usage, model, provider)
        result: GenerationResult[T] = GenerationResult(
            success=True,
            data=data,
            attempts=0,
            token_usage=usage,
            processing_time=time.perf_counter() - started,
            provider=provider,
            model=model,
            metadata={
                "request_id": request_id,
                "cached": True,
                "cache_hit": True,
                "cache_key": cache_key,
                "mode": selection.mode.value,
                "is_native_mode": selection.is_native,
                "cost_calculation": cost.to_dict(),
            },
        )
        self._log_usage(result, cost)
        return result

    def _success(
        self,
        request_id: str,
        started: float,
        provider: str,
        model: str,
        selection: ModeSelection,
        output: Any,
        attempts: int,
        strategy: RetryStrategy,
        cache_key: Optional[str],
        cache_metadata: Optional[Dict[str, str]] = None,
    ) -> GenerationResult:
        usage = output.usage
        cost = self._pricing(usage, model, provider)
        usage.estimated_cost = cost.total_cost

        if cache_key is not None:
            self.response_cache.set(
                cache_key,
                output.data.model_dump(mode="json"),
                metadata=cache_metadata,
            )

        result = GenerationResult(
            success=True,
            data=output.data,
            attempts=attempts,
            token_usage=usage,
            processing_time=time.perf_counter() - started,
            provider=provider,
            model=model,
            raw_response=output.raw_text,
            metadata={
                "request_id": request_id,
                "cached": False,
                "mode": selection.mode.value,
                "mode_used": output.mode.value,
                "response_model": output.model or model,
                "is_native_mode": selection.is_native,
                "fallback_mode": selection.fallback_mode.value,
                "mode_selection_reason": selection.reason,
                "retry_strategy": strategy.value,
                "cost_calculation": cost.to_dict(),
            },
        )
        self._log_usage(result, cost)
        return result

    def _failure(
        self,
        request_id: str,
        started: float,
        provider: str,
        model: str,
        error: Optional[Exception],
        attempts: int,
        selection: Optional[ModeSelection] = None,
        strategy: Optional[RetryStrategy] = None,
    ) -> GenerationResult:
        if error is None:
            error = RuntimeError("Generation failed without an error")
        error_type = error_type_of(error)

        usage = TokenUsage.zero()
        cost = self._pricing(usage, model, provider) if model else None

        metadata: Dict[str, Any] = {
            "request_id": request_id,
            "cached": False,
            "error_type": error_type.value,
        }
        if selection is not None:
            metadata.update(
                mode=selection.mode.value,
                is_native_mode=selection.is_native,
                fallback_mode=selection.fallback_mode.value,
            )
        if strategy is not None:
            metadata["retry_strategy"] = strategy.value
        if cost is not None:
            metadata["cost_calculation"] = cost.to_dict()

        result = GenerationResult(
            success=False,
            errors=errors_from_exception(error, error_type),
            attempts=attempts,
            token_usage=usage,
            processing_time=time.perf_counter() - started,
            provider=provider,
            model=model,
            metadata=metadata,
        )
        self._log_usage(result, cost, error=str(error))
        return result

    def _log_usage(
        self,
        result: GenerationResult,
        cost: Optional[CostBreakdown],
        error: Optional[str] = None,
    ) -> None:
        self._usage_logger.log(
            UsageRecord(
                request_id=result.metadata.get("request_id", ""),
                provider=result.provider,
                model=result.model,
                success=result.success,
                attempts=result.attempts,
                processing_time=result.processing_time,
                token_usage=result.token_usage.to_dict(),
                cost=cost.to_dict() if cost is not None else {},
                mode=result.metadata.get("mode"),
                is_native_mode=result.metadata.get("is_native_mode"),
                cached=result.cached,
                error=error,
            )
        )

    # Introspection

    def get_cache_stats(self) -> Dict[str, Dict[str, Any]]:
        """Statistics of the schema and response caches."""
        return {
            "schema_cache": self.schema_cache.get_stats(),
            "response_cache": self.response_cache.get_stats(),
        }

    def get_circuit_stats(self) -> Dict[str, Dict[str, Any]]:
        """Get stats for all circuit breakers."""
        return self.circuits.get_all_stats()

    def reset_circuits(self) -> None:
        """Reset all circuit breakers."""
        self.circuits.reset_all()

    async def close(self) -> None:
        """Close provider connections and stop cache cleanup."""
        for provider in self._providers.values():
            await provider.close_async()
        self.response_cache.stop_cleanup()

    async def __aenter__(self) -> "StructuredClient":
        if self.config.enable_caching:
            self.response_cache.start_cleanup()
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()


# Convenience function for quick usage
def create_client(
    provider: str = AUTO,
    model: Optional[str] = None,
    api_key: Optional[str] = None,
    enable_caching: bool = False,
    enable_logging: bool = False,
    max_retries: int = 3,
) -> StructuredClient:
    """
    Create a structured client with simple configuration.

    Args:
        provider: Default provider ("anthropic", "openai" or "auto")
        model: Default model for that provider
        api_key: API key (uses environment variable if not provided)
        enable_caching: Cache validated responses
        enable_logging: Emit one usage event per request
        max_retries: Attempts per request

    Returns:
        Configured StructuredClient

    Raises:
        ValueError: If api_key or model is given with provider "auto"
    """
    if provider == AUTO and (api_key or model):
        raise ValueError(
            "api_key and model apply to a single provider; pass provider=\"anthropic\" or \"openai\""
        )

    config = ClientConfig(
        default_provider=provider,
        default_max_retries=max_retries,
        enable_caching=enable_caching,
        enable_logging=enable_logging,
    )
    if api_key:
        config.provider_configs[provider] = ProviderConfig(api_key=api_key)
    if model:
        config.default_models[provider] = model

    return StructuredClient(config)
