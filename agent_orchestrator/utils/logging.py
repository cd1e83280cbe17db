"""
Structured logging for the agent orchestrator.

Library code only obtains loggers. Configuring the logging backend is
left to the embedding application, which calls configure_logging() once
at startup (typically with the values from OrchestrationConfig).
"""

import logging
import sys
from typing import Any, Optional

import structlog

LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


def resolve_log_level(level: str) -> int:
    """
    Map a level name to its numeric logging level.

    Raises:
        ValueError: If the name is not a standard logging level
    """
    name = str(level).upper()
    if name not in LOG_LEVELS:
        raise ValueError(f"Unknown log level {level!r}; expected one of {', '.join(LOG_LEVELS)}")
    return logging.getLevelName(name)


def configure_logging(level: str = "INFO", json_format: bool = False) -> None:
    """
    Configure structlog over the stdlib logging backend.

    Args:
        level: Logging level name (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_format: Render events as JSON instead of the console format
    """
    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=resolve_log_level(level),
    )

    processors = [
        structlog.stdlib.filter_by_level,
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.processors.TimeStamper(fmt="iso"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if json_format:
        processors.append(structlog.processors.JSONRenderer())
    else:
        processors.append(structlog.dev.ConsoleRenderer())

    structlog.configure(
        processors=processors,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )


def get_logger(name: str, **context: Any) -> structlog.BoundLogger:
    """Get a structlog logger, optionally pre-bound with context."""
    logger = structlog.get_logger(name)
    return logger.bind(**context) if context else logger


class LoggerMixin:
    """
    Gives a class a structlog logger named after it.

    Execution-scoped events go through execution_logger(), which binds
    ``execution_id`` (and ``task_id`` when given) as structured context.
    """

    @property
    def logger(self) -> structlog.BoundLogger:
        if not hasattr(self, '_logger'):
            self._logger = get_logger(f"{self.__class__.__module__}.{self.__class__.__name__}")
        return self._logger

    def execution_logger(self, execution_id: str, task_id: Optional[str] = None,
                         **context: Any) -> structlog.BoundLogger:
        """Logger bound to one execution, and optionally one of its tasks."""
        if task_id is not None:
            context["task_id"] = task_id
        return self.logger.bind(execution_id=execution_id, **context)

    def log_operation_start(self, operation: str, **context: Any) -> None:
        self.logger.debug("operation_started", operation=operation, **context)

    def log_operation_success(self, operation: str, duration_ms: int, **context: Any) -> None:
        self.logger.debug("operation_succeeded", operation=operation, duration_ms=duration_ms, **context)

    def log_operation_error(self, operation: str, error: BaseException, **context: Any) -> None:
        self.logger.error(
            "operation_failed",
            operation=operation,
            error=str(error),
            error_type=type(error).__name__,
            **context
        )
