"""
Prometheus metrics for the authorization subsystem.

Metric objects are module-level singletons registered on the default
``prometheus_client`` registry, so they are shared by every application
instance created in the same process.
"""

import time
from functools import wraps
from typing import Callable

from flask import Flask, Response
from prometheus_client import CONTENT_TYPE_LATEST, Counter, Histogram, generate_latest


authz_decisions_total = Counter(
    'authz_decisions_total',
    'Authorization decisions by outcome and requirement kind',
    ['outcome', 'requirement_kind']
)

authz_decision_duration_seconds = Histogram(
    'authz_decision_duration_seconds',
    'Time spent evaluating a single authorization requirement',
    ['requirement_kind'],
    buckets=[0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5]
)

authz_guard_outcomes_total = Counter(
    'authz_guard_outcomes_total',
    'Enforcement outcomes rendered by route guards',
    ['guard', 'status_code']
)

authz_store_operations_total = Counter(
    'authz_store_operations_total',
    'Repository operations by name and result',
    ['operation', 'result']
)

authz_store_operation_duration_seconds = Histogram(
    'authz_store_operation_duration_seconds',
    'Repository operation latency',
    ['operation'],
    buckets=[0.0005, 0.001, 0.005, 0.01, 0.025, 0.05, 0.1, 0.5, 1.0, 2.0]
)

authz_permission_cache_total = Counter(
    'authz_permission_cache_total',
    'Effective-permission cache lookups and invalidations',
    ['operation', 'result']
)

authz_admin_mutations_total = Counter(
    'authz_admin_mutations_total',
    'Role assignment and permission grant mutations',
    ['operation', 'result']
)


def monitor_store_operation(operation: str) -> Callable:
    """
    Decorator recording count and latency of a repository operation.

    Args:
        operation: Operation label (e.g. ``find_assignments``)
    """
    def decorator(func):
        @wraps(func)
        def wrapper(*args, **kwargs):
            start_time = time.perf_counter()
            result = 'success'
            try:
                return func(*args, **kwargs)
            except Exception:
                result = 'error'
                raise
            finally:
                authz_store_operations_total.labels(operation=operation, result=result).inc()
                authz_store_operation_duration_seconds.labels(operation=operation).observe(
                    time.perf_counter() - start_time
                )
        return wrapper
    return decorator


def create_metrics_endpoint(app: Flask, endpoint_path: str = '/metrics') -> None:
    """Expose the default registry in Prometheus text format."""

    @app.route(endpoint_path, methods=['GET'])
    def prometheus_metrics():
        return Response(generate_latest(), mimetype=CONTENT_TYPE_LATEST, status=200)


__all__ = [
    'authz_decisions_total',
    'authz_decision_duration_seconds',
    'authz_guard_outcomes_total',
    'authz_store_operations_total',
    'authz_store_operation_duration_seconds',
    'authz_permission_cache_total',
    'authz_admin_mutations_total',
    'monitor_store_operation',
    'create_metrics_endpoint',
]
