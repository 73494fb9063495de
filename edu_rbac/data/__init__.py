"""
Persistence layer for role/permission reference data and relation tables.

Exposes the repository interface, its two implementations, the record models
and the database exception hierarchy.
"""

from .exceptions import (
    ConnectionException,
    DatabaseException,
    DuplicateRecordException,
    QueryException,
    TimeoutException,
)
from .models import Permission, Role, RoleAssignment, RolePermissionGrant
from .base import AuthorizationRepository
from .memory import InMemoryAuthorizationRepository
from .mongodb import MongoAuthorizationRepository

__all__ = [
    'AuthorizationRepository',
    'InMemoryAuthorizationRepository',
    'MongoAuthorizationRepository',
    'Role',
    'Permission',
    'RoleAssignment',
    'RolePermissionGrant',
    'DatabaseException',
    'ConnectionException',
    'TimeoutException',
    'QueryException',
    'DuplicateRecordException',
]
