"""
Logger Implementation
=====================

Configures structlog for the analysis engine:
- JSON output for unattended batch runs
- Colored console output for interactive runs
- Per-jurisdiction context binding

Version: 0.1.0
"""

import logging
import sys
from typing import TYPE_CHECKING, Any

import structlog
from structlog.types import Processor


if TYPE_CHECKING:
    from structlog.stdlib import BoundLogger


SERVICE_NAME = "regscore"
SERVICE_VERSION = "0.1.0"

_SENSITIVE_KEYS = ("api_key", "authorization", "secret", "password", "token_value")

# Third-party loggers that are chatty at INFO
_QUIET_LOGGERS = ("httpx", "httpcore", "openai", "anthropic", "asyncio")


def _service_context(service_name: str) -> Processor:
    def add(
        logger: logging.Logger, method_name: str, event_dict: dict[str, Any]
    ) -> dict[str, Any]:
        event_dict.setdefault("service", service_name)
        event_dict.setdefault("version", SERVICE_VERSION)
        return event_dict

    return add


def _censor_secrets(
    logger: logging.Logger,
    method_name: str,
    event_dict: dict[str, Any],
) -> dict[str, Any]:
    """Redact credentials that end up in log context."""

    def censor(value: Any, key: str = "") -> Any:
        if any(s in key.lower() for s in _SENSITIVE_KEYS):
            return "***REDACTED***"
        if isinstance(value, dict):
            return {k: censor(v, str(k)) for k, v in value.items()}
        return value

    return {key: censor(value, key) for key, value in event_dict.items()}


def setup_logging(
    log_level: str = "INFO",
    json_logs: bool = False,
    service_name: str = SERVICE_NAME,
) -> None:
    """
    Configure structlog for the application.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        json_logs: Whether to output JSON lines instead of console output
        service_name: Name reported in the ``service`` field
    """
    level = getattr(logging, log_level.upper())

    for name in _QUIET_LOGGERS:
        logging.getLogger(name).setLevel(max(level, logging.WARNING))

    shared_processors: list[Processor] = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso", utc=True),
        _service_context(service_name),
        _censor_secrets,
    ]

    if json_logs:
        shared_processors.append(structlog.processors.format_exc_info)
        renderer: Processor = structlog.processors.JSONRenderer()
    else:
        shared_processors.append(structlog.dev.set_exc_info)
        renderer = structlog.dev.ConsoleRenderer(
            colors=sys.stderr.isatty(),
            exception_formatter=structlog.dev.RichTracebackFormatter(max_frames=8),
        )

    structlog.configure(
        processors=[
            *shared_processors,
            structlog.stdlib.ProcessorFormatter.wrap_for_formatter,
        ],
        logger_factory=structlog.stdlib.LoggerFactory(),
        wrapper_class=structlog.stdlib.BoundLogger,
        cache_logger_on_first_use=True,
    )

    formatter = structlog.stdlib.ProcessorFormatter(
        foreign_pre_chain=shared_processors,
        processors=[
            structlog.stdlib.ProcessorFormatter.remove_processors_meta,
            renderer,
        ],
    )

    handler = logging.StreamHandler(sys.stderr)
    handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.addHandler(handler)
    root_logger.setLevel(level)


def get_logger(name: str | None = None) -> "BoundLogger":
    """
    Module logger. Events are snake_case names with keyword context.

    Example:
        logger = get_logger(__name__)
        logger.info("jurisdiction_skipped", domain="trees", reason="recent")
    """
    return structlog.stdlib.get_logger(name)


def bind_context(**kwargs: Any) -> None:
    """
    Attach fields to every log line until ``clear_context()``.

    Example:
        bind_context(domain="trees", jurisdiction="NY-Ardsley-Village")
        logger.info("analysis_started")  # carries domain and jurisdiction
    """
    structlog.contextvars.bind_contextvars(**kwargs)


def clear_context() -> None:
    """Clear all bound context variables."""
    structlog.contextvars.clear_contextvars()
