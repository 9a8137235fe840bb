"""LLM providers."""

from typing import Dict, Optional, Type

from .anthropic import AnthropicProvider
from .base import (
    AuthenticationError,
    BaseProvider,
    GenerationOptions,
    InvalidRequestError,
    Message,
    NetworkError,
    ProviderConfig,
    ProviderError,
    ProviderResult,
    RateLimitError,
    RawOutput,
    ServerError,
    StructuredOutputError,
    UnusableOutputError,
)
from .openai import OpenAIProvider

# Provider registry
PROVIDER_CLASSES: Dict[str, Type[BaseProvider]] = {
    "anthropic": AnthropicProvider,
    "openai": OpenAIProvider,
}


def register_provider(name: str, provider_class: Type[BaseProvider]) -> None:
    """Register a custom provider."""
    PROVIDER_CLASSES[name] = provider_class


def create_provider(name: str, config: Optional[ProviderConfig] = None) -> BaseProvider:
    """Create a provider instance by registered name."""
    provider_class = PROVIDER_CLASSES.get(name)
    if not provider_class:
        raise ValueError(f"Unknown provider: {name}")

    return provider_class(config=config)


__all__ = [
    "AnthropicProvider",
    "AuthenticationError",
    "BaseProvider",
    "GenerationOptions",
    "InvalidRequestError",
    "Message",
    "NetworkError",
    "OpenAIProvider",
    "PROVIDER_CLASSES",
    "ProviderConfig",
    "ProviderError",
    "ProviderResult",
    "RateLimitError",
    "RawOutput",
    "ServerError",
    "StructuredOutputError",
    "UnusableOutputError",
    "create_provider",
    "register_provider",
]
