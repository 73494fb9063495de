"""
In-memory authorization repository.

Each relation table is an arena of records keyed by its composite index, so
uniqueness and lookups are dictionary operations. A single re-entrant lock
serializes every read and write: an insert or delete is visible to readers
either completely or not at all.

Used as the store for tests and for the ``memory`` store backend in
development.
"""

from threading import RLock
from typing import Collection, Dict, List, Optional, Tuple

import structlog

from edu_rbac.auth.catalog import PermissionName, RoleName
from edu_rbac.data.base import AuthorizationRepository
from edu_rbac.data.exceptions import DuplicateRecordException, DatabaseOperationType
from edu_rbac.data.models import Permission, Role, RoleAssignment, RolePermissionGrant
from edu_rbac.monitoring.metrics import monitor_store_operation

logger = structlog.get_logger(__name__)


class InMemoryAuthorizationRepository(AuthorizationRepository):
    """Thread-safe, process-local implementation of ``AuthorizationRepository``."""

    def __init__(self):
        self._lock = RLock()
        self._roles: Dict[RoleName, Role] = {}
        self._permissions: Dict[PermissionName, Permission] = {}
        self._assignments: Dict[Tuple[str, str], RoleAssignment] = {}
        self._grants: Dict[Tuple[str, str], RolePermissionGrant] = {}

    # Role catalog

    @monitor_store_operation('list_roles')
    def list_roles(self) -> List[Role]:
        with self._lock:
            return sorted(self._roles.values(), key=lambda role: role.name.value)

    @monitor_store_operation('find_role_by_name')
    def find_role_by_name(self, name: RoleName) -> Optional[Role]:
        with self._lock:
            return self._roles.get(RoleName(name))

    @monitor_store_operation('find_role_by_id')
    def find_role_by_id(self, role_id: str) -> Optional[Role]:
        with self._lock:
            return next((role for role in self._roles.values() if role.id == role_id), None)

    @monitor_store_operation('find_roles_by_ids')
    def find_roles_by_ids(self, role_ids: Collection[str]) -> List[Role]:
        wanted = set(role_ids)
        with self._lock:
            return [role for role in self._roles.values() if role.id in wanted]

    @monitor_store_operation('upsert_role')
    def upsert_role(self, role: Role) -> Role:
        with self._lock:
            return self._roles.setdefault(role.name, role)

    # Permission catalog

    @monitor_store_operation('list_permissions')
    def list_permissions(self) -> List[Permission]:
        with self._lock:
            return sorted(self._permissions.values(), key=lambda permission: permission.name.value)

    @monitor_store_operation('find_permission_by_name')
    def find_permission_by_name(self, name: PermissionName) -> Optional[Permission]:
        with self._lock:
            return self._permissions.get(PermissionName(name))

    @monitor_store_operation('find_permissions_by_ids')
    def find_permissions_by_ids(self, permission_ids: Collection[str]) -> List[Permission]:
        wanted = set(permission_ids)
        with self._lock:
            return [permission for permission in self._permissions.values() if permission.id in wanted]

    @monitor_store_operation('upsert_permission')
    def upsert_permission(self, permission: Permission) -> Permission:
        with self._lock:
            return self._permissions.setdefault(permission.name, permission)

    # Assignments

    @monitor_store_operation('insert_assignment')
    def insert_assignment(self, assignment: RoleAssignment) -> RoleAssignment:
        key = (assignment.principal_id, assignment.role_id)
        with self._lock:
            if key in self._assignments:
                raise DuplicateRecordException(
                    f"Assignment already exists for principal {assignment.principal_id} "
                    f"and role {assignment.role_id}",
                    operation='insert_assignment',
                    operation_type=DatabaseOperationType.WRITE,
                    collection='user_roles',
                )
            self._assignments[key] = assignment
            return assignment

    @monitor_store_operation('delete_assignments')
    def delete_assignments(self, principal_id: str, role_id: str) -> int:
        with self._lock:
            return 1 if self._assignments.pop((principal_id, role_id), None) else 0

    @monitor_store_operation('find_assignments')
    def find_assignments(self, principal_id: str) -> List[RoleAssignment]:
        with self._lock:
            return [
                assignment for (holder, _), assignment in self._assignments.items()
                if holder == principal_id
            ]

    @monitor_store_operation('assignment_exists')
    def assignment_exists(self, principal_id: str, role_ids: Collection[str]) -> bool:
        with self._lock:
            return any((principal_id, role_id) in self._assignments for role_id in role_ids)

    @monitor_store_operation('find_principals_with_role')
    def find_principals_with_role(self, role_id: str) -> List[str]:
        with self._lock:
            return [holder for (holder, held_role) in self._assignments if held_role == role_id]

    # Grants

    @monitor_store_operation('insert_grant')
    def insert_grant(self, grant: RolePermissionGrant) -> RolePermissionGrant:
        key = (grant.role_id, grant.permission_id)
        with self._lock:
            if key in self._grants:
                raise DuplicateRecordException(
                    f"Grant already exists for role {grant.role_id} "
                    f"and permission {grant.permission_id}",
                    operation='insert_grant',
                    operation_type=DatabaseOperationType.WRITE,
                    collection='role_permissions',
                )
            self._grants[key] = grant
            return grant

    @monitor_store_operation('delete_grants')
    def delete_grants(self, role_id: str, permission_id: str) -> int:
        with self._lock:
            return 1 if self._grants.pop((role_id, permission_id), None) else 0

    @monitor_store_operation('find_grants')
    def find_grants(self, role_ids: Collection[str]) -> List[RolePermissionGrant]:
        wanted = set(role_ids)
        with self._lock:
            return [grant for (role_id, _), grant in self._grants.items() if role_id in wanted]

    @monitor_store_operation('grant_exists')
    def grant_exists(self, role_ids: Collection[str], permission_ids: Collection[str]) -> bool:
        with self._lock:
            return any(
                (role_id, permission_id) in self._grants
                for role_id in role_ids
                for permission_id in permission_ids
            )

    def ping(self) -> bool:
        return True

    def clear(self) -> None:
        """Drop every record, catalogs included."""
        with self._lock:
            self._roles.clear()
            self._permissions.clear()
            self._assignments.clear()
            self._grants.clear()
        logger.debug("In-memory authorization repository cleared")


__all__ = ['InMemoryAuthorizationRepository']
