"""
Structured logging with structlog.

JSON output for log aggregation in production, console output for local
development. Each request gets a correlation id (taken from the
``X-Correlation-ID`` header or generated) bound through
``structlog.contextvars`` so every entry logged while serving the request,
including authorization decisions and store failures, carries it.
"""

import logging
import logging.config
import uuid
from typing import Optional

import structlog
from flask import Flask, Response, request

CORRELATION_ID_HEADER = 'X-Correlation-ID'


def setup_structured_logging(level: str = 'INFO', log_format: str = 'json') -> structlog.stdlib.BoundLogger:
    """
    Configure structlog and the stdlib root logger.

    Args:
        level: Root log level name
        log_format: ``json`` or ``console``
    """
    level = level.upper()

    processors = [
        structlog.contextvars.merge_contextvars,
        structlog.stdlib.filter_by_level,
        structlog.stdlib.add_logger_name,
        structlog.stdlib.add_log_level,
        structlog.stdlib.PositionalArgumentsFormatter(),
        structlog.processors.TimeStamper(fmt="ISO"),
        structlog.processors.StackInfoRenderer(),
        structlog.processors.format_exc_info,
        structlog.processors.UnicodeDecoder(),
    ]

    if log_format == 'console':
        processors.append(structlog.dev.ConsoleRenderer(colors=False))
    else:
        processors.append(structlog.processors.JSONRenderer())

    structlog.configure(
        processors=processors,
        wrapper_class=structlog.stdlib.BoundLogger,
        logger_factory=structlog.stdlib.LoggerFactory(),
        context_class=dict,
        cache_logger_on_first_use=True,
    )

    logging.config.dictConfig({
        'version': 1,
        'disable_existing_loggers': False,
        'formatters': {
            'plain': {'format': '%(message)s'},
        },
        'handlers': {
            'console': {
                'class': 'logging.StreamHandler',
                'formatter': 'plain',
                'stream': 'ext://sys.stdout',
            },
        },
        'loggers': {
            '': {'handlers': ['console'], 'level': level},
        },
    })

    logger = structlog.get_logger('edu_rbac')
    logger.debug("Structured logging initialized", log_level=level, log_format=log_format)
    return logger


def get_logger(name: Optional[str] = None) -> structlog.stdlib.BoundLogger:
    return structlog.get_logger(name)


def get_correlation_id() -> Optional[str]:
    return structlog.contextvars.get_contextvars().get('correlation_id')


def init_request_logging(app: Flask) -> None:
    """Bind a correlation id per request and echo it on the response."""

    @app.before_request
    def bind_correlation_id():
        structlog.contextvars.clear_contextvars()
        correlation_id = request.headers.get(CORRELATION_ID_HEADER) or uuid.uuid4().hex
        structlog.contextvars.bind_contextvars(
            correlation_id=correlation_id,
            method=request.method,
            path=request.path
        )

    @app.after_request
    def attach_correlation_id(response: Response) -> Response:
        correlation_id = get_correlation_id()
        if correlation_id:
            response.headers[CORRELATION_ID_HEADER] = correlation_id
        return response


__all__ = [
    'CORRELATION_ID_HEADER',
    'setup_structured_logging',
    'get_logger',
    'get_correlation_id',
    'init_request_logging',
]
