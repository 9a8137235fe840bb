"""Error taxonomy and field-level error formatting."""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from pydantic import ValidationError


class ErrorType(Enum):
    """Kinds of failure a generation can end in."""

    VALIDATION = "validation"
    CLIENT_ERROR = "client_error"
    RATE_LIMIT = "rate_limit"
    SERVER_ERROR = "server_error"
    NETWORK_ERROR = "network_error"
    UNKNOWN = "unknown"
    # Reporting only, never produced by classifying a provider error
    CONFIGURATION = "configuration"
    CIRCUIT_OPEN = "circuit_open"


class ConfigurationError(Exception):
    """Raised when no usable provider configuration exists."""

    error_type = ErrorType.CONFIGURATION

    def __init__(self, message: str, provider: Optional[str] = None):
        super().__init__(message)
        self.provider = provider


@dataclass
class FieldError:
    """A single structured error entry in a failed result."""

    field: str
    message: str
    code: str
    value: Any = None
    context: Dict[str, Any] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "field": self.field,
            "message": self.message,
            "code": self.code,
            "value": self.value,
        }


def _field_path(loc: tuple) -> str:
    return ".".join(str(part) for part in loc) if loc else "root"


def format_validation_error(error: ValidationError) -> List[FieldError]:
    """
    Turn a pydantic ValidationError into field-level entries.

    Each entry carries the dotted field path, pydantic's message prefixed with
    the path, the pydantic error type as code and the offending input.
    """
    formatted = []
    for issue in error.errors():
        path = _field_path(issue.get("loc", ()))
        formatted.append(
            FieldError(
                field=path,
                message=f"{path}: {issue.get('msg', 'invalid value')}",
                code=issue.get("type", "validation_error"),
                value=issue.get("input"),
                context={"schema": error.title},
            )
        )
    return formatted


def errors_from_exception(
    error: BaseException,
    error_type: ErrorType = ErrorType.UNKNOWN,
) -> List[FieldError]:
    """
    Convert any exception into the uniform error list of a result.

    Validation errors keep their field-level detail (a provider's
    StructuredOutputError may wrap one as ``__cause__``); anything else becomes
    a single ``root`` entry coded with the error type.
    """
    if isinstance(error, ValidationError):
        return format_validation_error(error)
    if isinstance(error.__cause__, ValidationError):
        return format_validation_error(error.__cause__)

    return [
        FieldError(
            field="root",
            message=str(error) or type(error).__name__,
            code=error_type.value,
            context={"error_class": type(error).__name__},
        )
    ]


def summarize_errors(errors: List[FieldError]) -> Dict[str, Any]:
    """Summarize errors by field for logging or display."""
    by_field: Dict[str, List[str]] = {}
    for entry in errors:
        by_field.setdefault(entry.field, []).append(entry.message)

    count = len(errors)
    fields = len(by_field)
    return {
        "total_errors": count,
        "field_errors": by_field,
        "summary": (
            f"Generation failed with {count} error{'s' if count != 1 else ''} "
            f"across {fields} field{'s' if fields != 1 else ''}"
        ),
    }
