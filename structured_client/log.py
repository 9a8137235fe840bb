"""Structured logging configuration and per-request usage loggers.

Provides JSON output for production and pretty console output for
development. Each completed generation is reported as one
``llm_request_completed`` event.
"""

import logging
import sys
import uuid
from dataclasses import dataclass, field
from typing import Any, Dict, Optional, Protocol

import structlog
from structlog.types import EventDict, WrappedLogger


def add_app_context(
    logger: WrappedLogger, method_name: str, event_dict: EventDict
) -> EventDict:
    """Add application context to all log events."""
    event_dict["app"] = "structured-client"
    return event_dict


def configure_logging(log_level: str = "INFO", environment: str = "development") -> None:
    """Configure structlog for structured logging.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        environment: Environment name (development, production)
    """
    log_level_int = getattr(logging, log_level.upper(), logging.INFO)

    shared_processors: list = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        add_app_context,
    ]

    is_production = environment.lower() == "production"

    if is_production:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer: structlog.types.Processor = structlog.processors.JSONRenderer()
    else:
        renderer = structlog.dev.ConsoleRenderer(colors=True)

    structlog.configure(
        processors=shared_processors
        + [
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        processor=renderer,
        foreign_pre_chain=shared_processors,
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)
    handler.setLevel(log_level_int)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(log_level_int)

    # Reduce noise from the HTTP stack
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)

    structlog.get_logger(__name__).debug(
        "logging_configured",
        log_level=log_level,
        environment=environment,
        renderer="json" if is_production else "console",
    )


def new_request_id() -> str:
    return f"req_{uuid.uuid4().hex[:12]}"


@dataclass
class UsageRecord:
    """Flat summary of one generation for usage logging."""

    request_id: str
    provider: str
    model: str
    success: bool
    attempts: int
    processing_time: float  # seconds
    token_usage: Dict[str, Any]
    cost: Dict[str, Any]
    mode: Optional[str] = None
    is_native_mode: Optional[bool] = None
    cached: bool = False
    error: Optional[str] = None
    extra: Dict[str, Any] = field(default_factory=dict)


class UsageLogger(Protocol):
    """Receives one record per completed generation."""

    def log(self, record: UsageRecord) -> None:
        ...


class StructlogUsageLogger:
    """Emit usage records as structlog events."""

    def __init__(self, logger: Optional[Any] = None):
        self._logger = logger or structlog.get_logger("structured_client.usage")

    def log(self, record: UsageRecord) -> None:
        self._logger.info(
            "llm_request_completed",
            request_id=record.request_id,
            provider=record.provider,
            model=record.model,
            success=record.success,
            attempts=record.attempts,
            processing_time_ms=round(record.processing_time * 1000, 2),
            token_usage=record.token_usage,
            cost=record.cost,
            mode=record.mode,
            is_native_mode=record.is_native_mode,
            cached=record.cached,
            error=record.error,
            **record.extra,
        )


class NullUsageLogger:
    """Discard usage records."""

    def log(self, record: UsageRecord) -> None:
        pass
