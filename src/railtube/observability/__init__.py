"""Observability: run-scoped structured logging."""

from __future__ import annotations

from railtube.observability.logging import (
    LoggingConfig,
    StructuredLoggingHandle,
    configure_structlog,
    generate_run_id,
    get_active_logging_handle,
    setup_structured_logging,
    shutdown_logging,
)

__all__ = [
    "LoggingConfig",
    "StructuredLoggingHandle",
    "configure_structlog",
    "generate_run_id",
    "get_active_logging_handle",
    "setup_structured_logging",
    "shutdown_logging",
]
