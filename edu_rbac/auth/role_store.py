"""
Role Store

Queries the role catalog and manages principal <-> role assignments.

Assignment is non-idempotent: a duplicate raises ``ConflictError``. Removal
is idempotent: an absent assignment is not an error. Both mutations
invalidate the principal's cached effective permissions before returning and
raise ``LookupFailure`` when that invalidation fails.
"""

from typing import Dict, Iterable, List, Optional, Union

import structlog

from edu_rbac.auth.cache import NullPermissionCache, PermissionCache
from edu_rbac.auth.catalog import RoleName
from edu_rbac.auth.exceptions import ConfigurationError, ConflictError, NotFoundError
from edu_rbac.data.base import AuthorizationRepository
from edu_rbac.data.exceptions import DuplicateRecordException
from edu_rbac.data.models import Role, RoleAssignment
from edu_rbac.monitoring.metrics import authz_admin_mutations_total

logger = structlog.get_logger(__name__)

RoleLike = Union[str, RoleName]


class RoleStore:
    """
    Role catalog and principal-role assignment operations.

    Args:
        repository: Relation-table repository
        permission_cache: Cache to invalidate on assignment changes
    """

    def __init__(
        self,
        repository: AuthorizationRepository,
        permission_cache: Optional[PermissionCache] = None
    ):
        self.repository = repository
        self.permission_cache = permission_cache or NullPermissionCache()

    def list_roles(self) -> List[Role]:
        """All roles, ordered by name ascending."""
        return self.repository.list_roles()

    def get_role_by_name(self, name: RoleLike) -> Optional[Role]:
        """Return the role, or ``None`` when the name is unknown."""
        try:
            role_name = RoleName.parse(name)
        except ConfigurationError:
            return None
        return self.repository.find_role_by_name(role_name)

    def get_role_by_id(self, role_id: str) -> Optional[Role]:
        return self.repository.find_role_by_id(role_id)

    def list_assignments_for(self, principal_id: str) -> List[RoleAssignment]:
        """Assignments held by the principal, each joined with its role."""
        assignments = self.repository.find_assignments(principal_id)
        roles = {
            role.id: role
            for role in self.repository.find_roles_by_ids({a.role_id for a in assignments})
        }
        joined = [
            assignment.model_copy(update={'role': roles[assignment.role_id]})
            for assignment in assignments
            if assignment.role_id in roles
        ]
        return sorted(joined, key=lambda assignment: assignment.role.name.value)

    def list_roles_for(self, principal_id: str) -> List[Role]:
        return [assignment.role for assignment in self.list_assignments_for(principal_id)]

    def assign_role(self, principal_id: str, role_name: RoleLike) -> RoleAssignment:
        """
        Assign a role to a principal.

        Raises:
            NotFoundError: Role name unknown
            ConflictError: Principal already holds the role
            LookupFailure: The permission cache could not be invalidated
        """
        role = self._require_role(role_name)
        assignment = RoleAssignment(principal_id=principal_id, role_id=role.id)

        # Nothing is written while the cache is unreachable
        self.permission_cache.invalidate(principal_id)

        try:
            self.repository.insert_assignment(assignment)
        except DuplicateRecordException:
            authz_admin_mutations_total.labels(operation='assign_role', result='conflict').inc()
            raise ConflictError(
                f"Role {role.name.value} already assigned to user {principal_id}",
                metadata={'principal_id': principal_id, 'role': role.name.value}
            ) from None

        self.permission_cache.invalidate(principal_id)
        authz_admin_mutations_total.labels(operation='assign_role', result='success').inc()
        logger.info(
            "Role assigned",
            event_type="authz.role_assigned",
            principal_id=principal_id,
            role=role.name.value
        )
        return assignment.model_copy(update={'role': role})

    def remove_role(self, principal_id: str, role_name: RoleLike) -> None:
        """
        Remove a role from a principal. Succeeds silently when not held.

        Raises:
            NotFoundError: Role name unknown
            LookupFailure: The permission cache could not be invalidated; safe to retry
        """
        role = self._require_role(role_name)
        removed = self.repository.delete_assignments(principal_id, role.id)

        self.permission_cache.invalidate(principal_id)
        authz_admin_mutations_total.labels(operation='remove_role', result='success').inc()
        logger.info(
            "Role removed",
            event_type="authz.role_removed",
            principal_id=principal_id,
            role=role.name.value,
            removed=removed
        )

    def has_role(self, principal_id: str, role_name: RoleLike) -> bool:
        return self.has_any_role(principal_id, [role_name])

    def has_any_role(self, principal_id: str, role_names: Iterable[RoleLike]) -> bool:
        """
        True iff the principal holds at least one of the named roles.

        Raises:
            ConfigurationError: A name is outside the catalog or was never bootstrapped
        """
        roles = self._resolve_catalog_roles(role_names)
        if not roles:
            return False
        return self.repository.assignment_exists(principal_id, [role.id for role in roles])

    def _require_role(self, role_name: RoleLike) -> Role:
        role = self.get_role_by_name(role_name)
        if role is None:
            raise NotFoundError(
                f"Role {role_name} not found",
                entity='role',
                name=str(role_name)
            )
        return role

    def _resolve_catalog_roles(self, role_names: Iterable[RoleLike]) -> List[Role]:
        names = RoleName.parse_many(role_names)
        if not names:
            return []
        catalog: Dict[RoleName, Role] = {role.name: role for role in self.repository.list_roles()}
        missing = [name.value for name in names if name not in catalog]
        if missing:
            raise ConfigurationError(
                f"Roles missing from the role catalog: {', '.join(missing)}",
                names=missing
            )
        return [catalog[name] for name in names]


__all__ = ['RoleStore']
