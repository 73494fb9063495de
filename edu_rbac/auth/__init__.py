"""
Role/permission authorization for the academic records backend.

Submodules:
- ``catalog``: closed role and permission enumerations
- ``role_store`` / ``permission_store``: relation-table stores
- ``cache``: optional effective-permission cache
- ``authorization``: the Authorization Engine
- ``decorators``: the Enforcement Layer (Flask route guards)
- ``identity``: bearer-token verification to principal id
- ``bootstrap``: catalog initialization

Only the catalog and the exception taxonomy are re-exported here; import the
components from their modules.
"""

from .catalog import DEFAULT_ROLE, DEFAULT_ROLE_GRANTS, PermissionName, RoleName
from .exceptions import (
    AuthenticationError,
    AuthorizationDenied,
    ConfigurationError,
    ConflictError,
    LookupFailure,
    NotFoundError,
    SecurityException,
)

__all__ = [
    'RoleName',
    'PermissionName',
    'DEFAULT_ROLE',
    'DEFAULT_ROLE_GRANTS',
    'SecurityException',
    'AuthenticationError',
    'AuthorizationDenied',
    'NotFoundError',
    'ConflictError',
    'LookupFailure',
    'ConfigurationError',
]
