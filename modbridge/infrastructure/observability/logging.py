"""
Structured logging setup for the moderation bridge.
Provides JSON-formatted logs with consistent fields for production monitoring.
"""

import logging
import sys
from typing import Any

import structlog
from structlog.stdlib import LoggerFactory


def setup_logging(log_level: str = "INFO") -> None:
    """
    Configure structured logging with JSON output for production.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    structlog.configure(
        processors=[
            structlog.stdlib.add_log_level,
            structlog.stdlib.add_logger_name,
            structlog.processors.TimeStamper(fmt="iso"),
            _add_job_context,
            structlog.processors.JSONRenderer(),
        ],
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, log_level.upper()),
    )

    # Suppress noisy third-party loggers
    logging.getLogger("httpx").setLevel(logging.WARNING)
    logging.getLogger("httpcore").setLevel(logging.WARNING)


def _add_job_context(logger, method_name: str, event_dict: dict[str, Any]) -> dict[str, Any]:
    """Merge context variables bound by the job runner (job name, run id)."""
    return structlog.contextvars.merge_contextvars(logger, method_name, event_dict)


def bind_job_context(job: str) -> None:
    """Attach the running job name to every log line of this task."""
    structlog.contextvars.bind_contextvars(job=job)


def get_logger(name: str = None) -> structlog.stdlib.BoundLogger:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (usually __name__)

    Returns:
        Configured structlog logger
    """
    return structlog.get_logger(name)


def log_job_summary(job: str, summary: dict) -> None:
    """Log a periodic job result with consistent fields."""
    logger = get_logger("jobs")

    log_data = {"job": job, **{k: v for k, v in summary.items() if k != "errors"}}

    errors = summary.get("errors")
    if errors:
        log_data["errors_count"] = errors if isinstance(errors, int) else len(errors)
        logger.warning("Job finished with errors", **log_data)
    else:
        logger.info("Job finished", **log_data)
