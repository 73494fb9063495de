"""Logging and metrics for the authorization service."""

from .logging import get_logger, init_request_logging, setup_structured_logging
from .metrics import create_metrics_endpoint, monitor_store_operation

__all__ = [
    'get_logger',
    'init_request_logging',
    'setup_structured_logging',
    'create_metrics_endpoint',
    'monitor_store_operation',
]
