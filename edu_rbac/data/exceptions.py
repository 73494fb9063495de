"""
Database exception hierarchy for the authorization repositories.

Repositories translate driver errors into these classes so the stores and the
Authorization Engine never depend on pymongo types directly. Any
``DatabaseException`` reaching the Engine is reported as a lookup failure,
never as a denial.
"""

import logging
from enum import Enum
from typing import Optional, Type

import pymongo.errors
from tenacity import (
    before_sleep_log,
    retry,
    retry_if_exception,
    stop_after_attempt,
    wait_exponential_jitter,
)

# tenacity logs retries through the stdlib logger interface
_retry_logger = logging.getLogger(__name__)


class DatabaseOperationType(Enum):
    """Repository operation classes used for error classification"""
    READ = "read"
    WRITE = "write"
    INDEX = "index"
    CONNECTION = "connection"


class DatabaseException(Exception):
    """
    Base exception for repository failures.

    Carries the failing operation and collection so the structured log entry
    for a lookup failure identifies exactly which query broke.
    """

    def __init__(
        self,
        message: str,
        operation: Optional[str] = None,
        operation_type: Optional[DatabaseOperationType] = None,
        collection: Optional[str] = None,
        original_error: Optional[BaseException] = None,
        retry_recommended: bool = False
    ):
        super().__init__(message)
        self.message = message
        self.operation = operation
        self.operation_type = operation_type
        self.collection = collection
        self.original_error = original_error
        self.retry_recommended = retry_recommended

    def to_log_fields(self):
        return {
            'db_error_type': type(self).__name__,
            'db_operation': self.operation,
            'db_operation_type': self.operation_type.value if self.operation_type else None,
            'db_retry_recommended': self.retry_recommended,
            'db_collection': self.collection,
            'db_original_error': str(self.original_error) if self.original_error else None,
        }


class ConnectionException(DatabaseException):
    """Store unreachable or connection dropped."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault('retry_recommended', True)
        super().__init__(message, **kwargs)


class TimeoutException(DatabaseException):
    """Store call exceeded its bounded timeout."""


class QueryException(DatabaseException):
    """Store rejected a query or write."""


class DuplicateRecordException(QueryException):
    """Composite-key uniqueness constraint violated."""


PYMONGO_ERROR_MAPPING = {
    pymongo.errors.DuplicateKeyError: DuplicateRecordException,
    pymongo.errors.ExecutionTimeout: TimeoutException,
    pymongo.errors.WTimeoutError: TimeoutException,
    pymongo.errors.NetworkTimeout: TimeoutException,
    pymongo.errors.ServerSelectionTimeoutError: TimeoutException,
    pymongo.errors.AutoReconnect: ConnectionException,
    pymongo.errors.ConnectionFailure: ConnectionException,
    pymongo.errors.WriteError: QueryException,
    pymongo.errors.OperationFailure: QueryException,
    pymongo.errors.InvalidOperation: QueryException,
    pymongo.errors.PyMongoError: DatabaseException,
}


def classify_pymongo_error(error: BaseException) -> Type[DatabaseException]:
    """
    Classify a PyMongo error into a repository exception type.

    The most specific mapped class in the error's MRO wins. Errors flagged as
    timeouts by the driver (client-side ``pymongo.timeout()`` expiry) are
    always ``TimeoutException``.
    """
    for error_type in type(error).__mro__:
        mapped = PYMONGO_ERROR_MAPPING.get(error_type)
        if mapped is None:
            continue
        if mapped is not DuplicateRecordException and getattr(error, 'timeout', False):
            return TimeoutException
        return mapped
    return DatabaseException


def _is_retryable(error: BaseException) -> bool:
    return isinstance(error, DatabaseException) and error.retry_recommended


def with_database_retry(attempts: int = 2):
    """
    Retry decorator for idempotent reads.

    Only errors flagged ``retry_recommended`` (connection loss) are retried;
    timeouts are final because the caller's time bound has already been
    spent.
    """
    return retry(
        stop=stop_after_attempt(max(1, attempts)),
        wait=wait_exponential_jitter(initial=0.05, max=0.5, jitter=0.05),
        retry=retry_if_exception(_is_retryable),
        before_sleep=before_sleep_log(_retry_logger, logging.WARNING),
        reraise=True,
    )


__all__ = [
    'DatabaseOperationType',
    'DatabaseException',
    'ConnectionException',
    'TimeoutException',
    'QueryException',
    'DuplicateRecordException',
    'classify_pymongo_error',
    'with_database_retry',
]
