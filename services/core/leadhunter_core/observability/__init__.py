"""Observability package for structured logging."""

from leadhunter_core.observability.logging import (
    JsonFormatter,
    RunContext,
    StructuredLogger,
    configure_logging,
    get_logger,
)

__all__ = [
    "JsonFormatter",
    "RunContext",
    "StructuredLogger",
    "configure_logging",
    "get_logger",
]
