"""
Structured logging configuration using structlog.
"""

import logging
import sys
from typing import Any

import structlog
from chat_ocr.config import settings


SERVICE_NAME = "chat-ocr"


def add_service_context(logger: Any, method_name: str, event_dict: dict) -> dict:
    """Stamp every event with the service name and deployment environment."""
    event_dict.setdefault("service", SERVICE_NAME)
    event_dict.setdefault("environment", settings.environment)
    return event_dict


def configure_logging() -> None:
    """
    Configure structured logging for the service.

    Sets up:
    - JSON formatting outside development
    - Pretty console output for development
    - Standard library logging integration
    - Service name and environment on every event
    """

    logging.basicConfig(
        format="%(message)s",
        stream=sys.stdout,
        level=getattr(logging, settings.log_level.upper())
    )

    shared_processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.add_log_level,
        structlog.stdlib.add_logger_name,
        structlog.processors.TimeStamper(fmt="iso"),
        add_service_context,
        structlog.processors.StackInfoRenderer(),
    ]

    if settings.is_development:
        processors = shared_processors + [
            structlog.dev.ConsoleRenderer()
        ]
    else:
        processors = shared_processors + [
            structlog.processors.format_exc_info,
            structlog.processors.JSONRenderer()
        ]

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        context_class=dict,
        logger_factory=structlog.stdlib.LoggerFactory(),
        cache_logger_on_first_use=True,
    )


def get_logger(name: str) -> Any:
    """
    Get a structured logger instance.

    Args:
        name: Logger name (typically __name__)

    Returns:
        Structured logger instance

    Example:
        >>> logger = get_logger(__name__)
        >>> logger.info("OCR completed", attachment_id="a1", method="tesseract")
    """
    return structlog.get_logger(name)


# Initialize logging on module import
configure_logging()
