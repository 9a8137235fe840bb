"""Base provider class for structured-output LLM providers."""

import json
import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from typing import Any, Dict, Generic, List, Mapping, Optional, Type, TypeVar

import httpx
import structlog
from pydantic import BaseModel, ValidationError

from ..errors import ConfigurationError, ErrorType
from ..models import TokenUsage
from ..modes import Mode, select_mode

logger = structlog.get_logger(__name__)

T = TypeVar("T", bound=BaseModel)

_FENCED_JSON = re.compile(r"```(?:json)?\s*(.*?)```", re.DOTALL)


@dataclass
class Message:
    """A chat message."""

    role: str  # "system", "user", "assistant"
    content: str

    def to_dict(self) -> Dict[str, str]:
        """Convert to dictionary."""
        return {"role": self.role, "content": self.content}

    @classmethod
    def system(cls, content: str) -> "Message":
        """Create a system message."""
        return cls(role="system", content=content)

    @classmethod
    def user(cls, content: str) -> "Message":
        """Create a user message."""
        return cls(role="user", content=content)


@dataclass
class ProviderConfig:
    """Configuration for a provider."""

    api_key: Optional[str] = None
    api_key_env: Optional[str] = None  # Environment variable name for API key
    base_url: Optional[str] = None
    timeout: float = 60.0
    max_tokens: int = 4096
    temperature: float = 0.0
    extra_headers: Dict[str, str] = field(default_factory=dict)
    extra_params: Dict[str, Any] = field(default_factory=dict)

    def get_api_key(self) -> Optional[str]:
        """Get API key from config or environment."""
        if self.api_key:
            return self.api_key
        if self.api_key_env:
            return os.environ.get(self.api_key_env)
        return None


@dataclass
class GenerationOptions:
    """Per-call settings passed from the orchestrator to a provider."""

    model: str
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    timeout: Optional[float] = None
    mode: Optional[Mode] = None  # None selects the optimal mode for the model
    fallback_mode: Optional[Mode] = None
    extra: Mapping[str, Any] = field(default_factory=dict)


@dataclass
class ProviderResult(Generic[T]):
    """Validated output of a provider call."""

    data: T
    raw_text: str
    usage: TokenUsage
    model: str
    mode: Mode


class ProviderError(Exception):
    """Base exception for provider errors."""

    error_type = ErrorType.UNKNOWN

    def __init__(
        self,
        message: str,
        provider: str,
        status_code: Optional[int] = None,
        response: Optional[Any] = None,
    ):
        super().__init__(message)
        self.provider = provider
        self.status_code = status_code
        self.response = response


class AuthenticationError(ProviderError):
    """Raised when authentication fails."""

    error_type = ErrorType.CLIENT_ERROR


class RateLimitError(ProviderError):
    """Raised when rate limit is hit."""

    error_type = ErrorType.RATE_LIMIT

    def __init__(
        self,
        message: str,
        provider: str,
        retry_after: Optional[float] = None,
        status_code: Optional[int] = None,
        response: Optional[Any] = None,
    ):
        super().__init__(message, provider, status_code, response)
        self.retry_after = retry_after


class InvalidRequestError(ProviderError):
    """Raised when request is invalid."""

    error_type = ErrorType.CLIENT_ERROR


class ServerError(ProviderError):
    """Raised when server returns an error."""

    error_type = ErrorType.SERVER_ERROR


class NetworkError(ProviderError):
    """Raised when the provider cannot be reached."""

    error_type = ErrorType.NETWORK_ERROR


class StructuredOutputError(ProviderError):
    """Raised when the output does not conform to the schema."""

    error_type = ErrorType.VALIDATION


class UnusableOutputError(Exception):
    """The answer carried no structured payload at all."""


def status_error(provider: str, status_code: int, message: str, response: Any = None) -> ProviderError:
    """Build the provider error matching an HTTP status code."""
    if status_code in (401, 403):
        return AuthenticationError(
            f"Authentication failed: {message}", provider, status_code, response
        )
    if status_code == 429:
        retry_after = None
        if response is not None:
            header = response.headers.get("retry-after")
            try:
                retry_after = float(header) if header else None
            except ValueError:
                retry_after = None
        return RateLimitError(
            f"Rate limit exceeded: {message}", provider, retry_after, status_code, response
        )
    if status_code >= 500:
        return ServerError(f"Server error: {message}", provider, status_code, response)
    if 400 <= status_code < 500:
        return InvalidRequestError(f"Invalid request: {message}", provider, status_code, response)
    return ProviderError(f"API error ({status_code}): {message}", provider, status_code, response)


def extract_json(text: str) -> Any:
    """
    Parse a JSON value out of model text.

    Accepts bare JSON, JSON inside a markdown code block, or JSON surrounded
    by prose (the outermost object is used).
    """
    stripped = text.strip()
    fenced = _FENCED_JSON.search(stripped)
    if fenced:
        stripped = fenced.group(1).strip()

    try:
        return json.loads(stripped)
    except json.JSONDecodeError:
        pass

    start, end = stripped.find("{"), stripped.rfind("}")
    if start != -1 and end > start:
        try:
            return json.loads(stripped[start : end + 1])
        except json.JSONDecodeError:
            pass
    raise UnusableOutputError("No JSON object found in response")


def schema_instructions(schema: Type[BaseModel], mode: Mode) -> str:
    """Instruction text for modes that describe the schema in the prompt."""
    schema_json = json.dumps(schema.model_json_schema(), indent=2)
    if mode == Mode.MD_JSON:
        return (
            "Respond with a JSON object that conforms to this JSON schema, "
            "inside a ```json markdown code block:\n"
            f"{schema_json}"
        )
    return (
        "Respond only with a JSON object that conforms to this JSON schema, "
        "with no other text:\n"
        f"{schema_json}"
    )


class BaseProvider(ABC):
    """Base class for structured-output LLM providers."""

    provider_name: str = "base"
    default_model: str = ""
    available_models: List[str] = []
    api_key_env: Optional[str] = None

    def __init__(self, config: Optional[ProviderConfig] = None):
        self.config = config or ProviderConfig()
        if self.config.api_key_env is None:
            self.config.api_key_env = self.api_key_env
        self._async_client: Optional[Any] = None

    @abstractmethod
    def _create_async_client(self) -> Any:
        """Create the asynchronous HTTP client."""

    @property
    def async_client(self) -> Any:
        """Get or create asynchronous client."""
        if self._async_client is None:
            self._async_client = self._create_async_client()
        return self._async_client

    async def _post(self, path: str, body: Dict[str, Any], timeout: Optional[float] = None) -> Dict[str, Any]:
        """POST a JSON body and return the decoded response, raising tagged errors."""
        try:
            response = await self.async_client.post(
                path, json=body, timeout=timeout or self.config.timeout
            )
        except httpx.TimeoutException as e:
            raise NetworkError(f"Request timed out: {e}", self.provider_name) from e
        except httpx.TransportError as e:
            raise NetworkError(f"Connection failed: {e}", self.provider_name) from e

        if response.status_code != 200:
            try:
                message = response.json().get("error", {}).get("message", response.text)
            except (ValueError, AttributeError):
                message = response.text
            raise status_error(self.provider_name, response.status_code, message, response)

        return response.json()

    def validate(self) -> None:
        """
        Check that the provider is usable.

        Raises:
            ConfigurationError: If no API key is configured
        """
        if not self.config.get_api_key():
            raise ConfigurationError(
                f"Missing API key for provider: {self.provider_name}. "
                f"Set {self.config.api_key_env} or provide api_key in config.",
                provider=self.provider_name,
            )

    def is_available(self) -> bool:
        """Whether the provider is configured for use."""
        try:
            self.validate()
        except ConfigurationError:
            return False
        return True

    @abstractmethod
    async def _request(
        self,
        schema: Type[BaseModel],
        prompt: str,
        options: GenerationOptions,
        mode: Mode,
    ) -> "RawOutput":
        """
        Send one request in ``mode`` and extract the structured payload.

        Raises:
            UnusableOutputError: If the answer has no structured payload
            ProviderError: On transport or API errors
        """

    async def generate(
        self,
        schema: Type[T],
        prompt: str,
        options: GenerationOptions,
    ) -> ProviderResult[T]:
        """
        Generate output conforming to ``schema``.

        The primary mode is tried first; an answer that carries no structured
        payload is re-asked once in the fallback mode.

        Args:
            schema: Pydantic model describing the expected output
            prompt: Full prompt text
            options: Model and sampling settings

        Returns:
            ProviderResult with the validated data

        Raises:
            StructuredOutputError: If the output does not validate
            ProviderError: On transport or API errors
        """
        selection = select_mode(self.provider_name, options.model)
        mode = options.mode or selection.mode
        fallback_mode = options.fallback_mode or selection.fallback_mode

        try:
            output = await self._request(schema, prompt, options, mode)
        except UnusableOutputError as e:
            if fallback_mode == mode:
                raise StructuredOutputError(str(e), self.provider_name) from e
            logger.info(
                "mode_fallback",
                provider=self.provider_name,
                model=options.model,
                mode=mode.value,
                fallback_mode=fallback_mode.value,
            )
            mode = fallback_mode
            try:
                output = await self._request(schema, prompt, options, mode)
            except UnusableOutputError as fallback_error:
                raise StructuredOutputError(
                    str(fallback_error), self.provider_name
                ) from fallback_error

        try:
            data = schema.model_validate(output.payload)
        except ValidationError as e:
            raise StructuredOutputError(
                f"Output does not match {schema.__name__}", self.provider_name
            ) from e

        return ProviderResult(
            data=data,
            raw_text=output.raw_text,
            usage=output.usage,
            model=output.model,
            mode=mode,
        )

    async def close_async(self) -> None:
        """Close asynchronous client."""
        if self._async_client is not None:
            await self._async_client.aclose()
            self._async_client = None

    async def __aenter__(self) -> "BaseProvider":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close_async()


@dataclass
class RawOutput:
    """Unvalidated structured payload extracted from one response."""

    payload: Any
    raw_text: str
    usage: TokenUsage
    model: str
