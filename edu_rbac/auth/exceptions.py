"""
Authorization Exception Hierarchy

Error taxonomy for the role/permission subsystem. Each class carries a
standardized error code, an HTTP status, and a *safe* user message that is the
only text ever rendered to clients; the full message and metadata stay in the
logs.

Taxonomy:
- ``AuthenticationError``: no principal could be resolved (401)
- ``AuthorizationDenied``: principal identified, requirement not met (403)
- ``NotFoundError``: role/permission name or role id absent from the catalog (404, 400 for body input)
- ``ConflictError``: duplicate role assignment or permission grant (409)
- ``LookupFailure``: the authorization subsystem itself failed (500)
- ``ConfigurationError``: a guard or caller referenced a name outside the catalog (500)

Ordinary "not authorized" outcomes are *not* raised by the Authorization
Engine; they are returned as decisions. These exceptions are used by the
stores for admin mutations and by the Enforcement Layer when rendering.
"""

import uuid
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Iterable, Optional


class AuthorizationErrorCode(Enum):
    """Standardized error codes for categorization in logs and metrics."""

    # Authentication (1000-1999)
    AUTH_TOKEN_MISSING = "AUTH_1001"
    AUTH_TOKEN_INVALID = "AUTH_1002"
    AUTH_HEADER_MALFORMED = "AUTH_1003"

    # Authorization (2000-2999)
    AUTHZ_PERMISSION_DENIED = "AUTHZ_2001"
    AUTHZ_ROLE_INSUFFICIENT = "AUTHZ_2002"

    # Catalog and relation tables (3000-3999)
    CATALOG_ENTRY_NOT_FOUND = "CAT_3001"
    CATALOG_NAME_UNKNOWN = "CAT_3002"
    ASSIGNMENT_CONFLICT = "CAT_3003"

    # Subsystem failures (5000-5999)
    LOOKUP_FAILED = "SYS_5001"
    CONFIGURATION_INVALID = "SYS_5002"


class SecurityException(Exception):
    """
    Base exception for every authentication and authorization failure.

    Args:
        message: Detailed description for logging and debugging
        error_code: Standardized error code for categorization
        user_message: Safe message for client responses
        metadata: Additional context for structured logging
        http_status: Transport status the Enforcement Layer maps this to
    """

    default_status = 500
    default_user_message = "Internal server error"

    def __init__(
        self,
        message: str,
        error_code: AuthorizationErrorCode,
        user_message: Optional[str] = None,
        metadata: Optional[Dict[str, Any]] = None,
        http_status: Optional[int] = None
    ) -> None:
        super().__init__(message)

        self.message = message
        self.error_id = str(uuid.uuid4())
        self.error_code = error_code
        self.user_message = user_message or self.default_user_message
        self.metadata = dict(metadata or {})
        self.http_status = http_status or self.default_status
        self.timestamp = datetime.now(timezone.utc)

        self.metadata.update({
            'error_id': self.error_id,
            'error_code': self.error_code.value,
            'exception_type': self.__class__.__name__,
        })


class AuthenticationError(SecurityException):
    """No principal resolved, or the presented token could not be verified."""

    default_status = 401
    default_user_message = "Authentication required"

    def __init__(
        self,
        message: str,
        error_code: AuthorizationErrorCode = AuthorizationErrorCode.AUTH_TOKEN_MISSING,
        **kwargs
    ) -> None:
        super().__init__(message, error_code, **kwargs)


class AuthorizationDenied(SecurityException):
    """
    Principal identified but lacking the required role or permission.

    ``required`` keeps the requirement names for the audit trail.
    """

    default_status = 403
    default_user_message = "Access denied"

    def __init__(
        self,
        message: str,
        error_code: AuthorizationErrorCode = AuthorizationErrorCode.AUTHZ_PERMISSION_DENIED,
        principal_id: Optional[str] = None,
        required: Optional[Iterable[str]] = None,
        **kwargs
    ) -> None:
        super().__init__(message, error_code, **kwargs)
        self.principal_id = principal_id
        self.required = [str(name) for name in (required or [])]
        self.metadata.update({'principal_id': principal_id, 'required': self.required})


class NotFoundError(SecurityException):
    """A referenced role, permission or role id does not exist."""

    default_status = 404

    def __init__(
        self,
        message: str,
        entity: str,
        name: str,
        **kwargs
    ) -> None:
        kwargs.setdefault('user_message', message)
        super().__init__(message, AuthorizationErrorCode.CATALOG_ENTRY_NOT_FOUND, **kwargs)
        self.entity = entity
        self.name = name
        self.metadata.update({'entity': entity, 'name': name})


class ConflictError(SecurityException):
    """Duplicate (principal, role) assignment or (role, permission) grant."""

    default_status = 409

    def __init__(self, message: str, **kwargs) -> None:
        kwargs.setdefault('user_message', message)
        super().__init__(message, AuthorizationErrorCode.ASSIGNMENT_CONFLICT, **kwargs)


class LookupFailure(SecurityException):
    """
    The authorization subsystem could not evaluate a requirement.

    Raised or reported when a store is unreachable, times out, or faults.
    Must never be rendered as a denial.
    """

    default_status = 500

    def __init__(
        self,
        message: str,
        error_code: AuthorizationErrorCode = AuthorizationErrorCode.LOOKUP_FAILED,
        original_error: Optional[BaseException] = None,
        **kwargs
    ) -> None:
        super().__init__(message, error_code, **kwargs)
        self.original_error = original_error
        if original_error is not None:
            self.metadata['original_error_type'] = type(original_error).__name__


class ConfigurationError(LookupFailure):
    """A requirement or caller referenced a role/permission outside the catalog."""

    def __init__(self, message: str, names: Optional[Iterable[str]] = None, **kwargs) -> None:
        super().__init__(message, AuthorizationErrorCode.CONFIGURATION_INVALID, **kwargs)
        self.names = [str(name) for name in (names or [])]
        self.metadata['names'] = self.names


AUTHENTICATION_ERROR_CODES = {
    AuthorizationErrorCode.AUTH_TOKEN_MISSING,
    AuthorizationErrorCode.AUTH_TOKEN_INVALID,
    AuthorizationErrorCode.AUTH_HEADER_MALFORMED,
}

AUTHORIZATION_ERROR_CODES = {
    AuthorizationErrorCode.AUTHZ_PERMISSION_DENIED,
    AuthorizationErrorCode.AUTHZ_ROLE_INSUFFICIENT,
}

SYSTEM_ERROR_CODES = {
    AuthorizationErrorCode.LOOKUP_FAILED,
    AuthorizationErrorCode.CONFIGURATION_INVALID,
}


def get_error_category(error_code: AuthorizationErrorCode) -> str:
    """
    Map an error code to the category used as a log field and metric label.

    Example:
        get_error_category(AuthorizationErrorCode.LOOKUP_FAILED)
        # Returns: "lookup_failure"
    """
    if error_code in AUTHENTICATION_ERROR_CODES:
        return "authentication"
    elif error_code in AUTHORIZATION_ERROR_CODES:
        return "authorization"
    elif error_code in SYSTEM_ERROR_CODES:
        return "lookup_failure"
    elif error_code.value.startswith("CAT_"):
        return "catalog"
    else:
        return "unknown"


def create_safe_error_response(exception: SecurityException) -> Dict[str, Any]:
    """
    Build the client-facing body for a security exception.

    Only the safe ``user_message`` is exposed; raw store errors stay in logs.
    """
    return {
        'success': False,
        'error': exception.user_message,
    }


__all__ = [
    'AuthorizationErrorCode',
    'SecurityException',
    'AuthenticationError',
    'AuthorizationDenied',
    'NotFoundError',
    'ConflictError',
    'LookupFailure',
    'ConfigurationError',
    'get_error_category',
    'create_safe_error_response',
]
