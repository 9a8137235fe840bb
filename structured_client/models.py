"""Request and result types for structured generation."""

from dataclasses import dataclass, field
from enum import Enum
from types import MappingProxyType
from typing import TYPE_CHECKING, Any, Dict, Generic, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel

from .errors import FieldError

if TYPE_CHECKING:
    from .retry import RetryPolicy

T = TypeVar("T", bound=BaseModel)

CONTENT_SEPARATOR = "\n\nContent to process:\n"


class RetryStrategy(Enum):
    """Shape of the delay between retries of transient failures."""

    IMMEDIATE = "immediate"
    LINEAR = "linear"
    EXPONENTIAL = "exponential"


@dataclass(frozen=True)
class GenerationRequest(Generic[T]):
    """
    A request for output conforming to ``schema``.

    Unset fields fall back to the client's configured defaults.
    """

    schema: Type[T]
    prompt: str
    content: Optional[str] = None
    provider: Optional[str] = None  # concrete provider name or "auto"
    model: Optional[str] = None
    temperature: Optional[float] = None
    max_tokens: Optional[int] = None
    max_retries: Optional[Union[int, "RetryPolicy"]] = None
    retry_strategy: Optional[RetryStrategy] = None
    timeout: Optional[float] = None
    provider_options: Mapping[str, Any] = field(default_factory=dict)

    def __post_init__(self) -> None:
        # Freeze the options mapping along with the rest of the request
        object.__setattr__(self, "provider_options", MappingProxyType(dict(self.provider_options)))

    @property
    def full_prompt(self) -> str:
        """Prompt with the optional content appended."""
        if self.content:
            return f"{self.prompt}{CONTENT_SEPARATOR}{self.content}"
        return self.prompt


@dataclass
class TokenUsage:
    """Token counts and estimated cost of one generation."""

    prompt_tokens: int = 0
    completion_tokens: int = 0
    total_tokens: int = 0
    estimated_cost: float = 0.0

    @classmethod
    def zero(cls) -> "TokenUsage":
        return cls()

    @classmethod
    def from_counts(cls, prompt_tokens: int, completion_tokens: int, total_tokens: Optional[int] = None) -> "TokenUsage":
        """Build usage from raw counts, deriving the total when missing."""
        return cls(
            prompt_tokens=prompt_tokens,
            completion_tokens=completion_tokens,
            total_tokens=total_tokens if total_tokens is not None else prompt_tokens + completion_tokens,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "prompt_tokens": self.prompt_tokens,
            "completion_tokens": self.completion_tokens,
            "total_tokens": self.total_tokens,
            "estimated_cost": self.estimated_cost,
        }


@dataclass
class GenerationResult(Generic[T]):
    """
    Uniform outcome of a generation.

    Every path, success or failure, produces this shape: callers check
    ``success`` and read ``data`` or ``errors``.
    """

    success: bool
    attempts: int
    processing_time: float  # seconds
    provider: str
    model: str
    token_usage: TokenUsage = field(default_factory=TokenUsage)
    data: Optional[T] = None
    errors: List[FieldError] = field(default_factory=list)
    raw_response: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)

    @property
    def cached(self) -> bool:
        """Whether the data was served from the response cache."""
        return bool(self.metadata.get("cached", False))

    def to_dict(self) -> Dict[str, Any]:
        """Convert to a JSON-friendly dictionary."""
        return {
            "success": self.success,
            "data": self.data.model_dump(mode="json") if self.data is not None else None,
            "errors": [error.to_dict() for error in self.errors],
            "attempts": self.attempts,
            "token_usage": self.token_usage.to_dict(),
            "processing_time": self.processing_time,
            "provider": self.provider,
            "model": self.model,
            "metadata": self.metadata,
        }
