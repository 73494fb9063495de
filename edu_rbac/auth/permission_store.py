"""
Permission Store

Queries the permission catalog, manages role <-> permission grants and
computes each principal's effective permission set.

The effective set is never stored. It is the deduplicated union of the
permissions granted to every role the principal holds, recomputed from the
relation tables on each check unless a ``PermissionCache`` is configured.
Grant changes invalidate every principal holding the affected role.
"""

from typing import Dict, FrozenSet, Iterable, List, Optional, Union

import structlog

from edu_rbac.auth.cache import NullPermissionCache, PermissionCache
from edu_rbac.auth.catalog import PermissionName
from edu_rbac.auth.exceptions import ConfigurationError, ConflictError, NotFoundError
from edu_rbac.data.base import AuthorizationRepository
from edu_rbac.data.exceptions import DuplicateRecordException
from edu_rbac.data.models import Permission, Role, RolePermissionGrant
from edu_rbac.monitoring.metrics import authz_admin_mutations_total

logger = structlog.get_logger(__name__)

PermissionLike = Union[str, PermissionName]


class PermissionStore:
    """
    Permission catalog, role grants and effective-permission queries.

    Args:
        repository: Relation-table repository
        permission_cache: Effective-permission cache shared with ``RoleStore``
    """

    def __init__(
        self,
        repository: AuthorizationRepository,
        permission_cache: Optional[PermissionCache] = None
    ):
        self.repository = repository
        self.permission_cache = permission_cache or NullPermissionCache()

    # Catalog

    def list_permissions(self) -> List[Permission]:
        """All permissions, ordered by name ascending."""
        return self.repository.list_permissions()

    def get_permission_by_name(self, name: PermissionLike) -> Optional[Permission]:
        """Return the permission, or ``None`` when the name is unknown."""
        try:
            permission_name = PermissionName.parse(name)
        except ConfigurationError:
            return None
        return self.repository.find_permission_by_name(permission_name)

    # Role grants

    def list_grants_for(self, role_id: str) -> List[RolePermissionGrant]:
        """Grants held by the role, each joined with its permission."""
        grants = self.repository.find_grants([role_id])
        permissions = self._permissions_by_id(grant.permission_id for grant in grants)
        joined = [
            grant.model_copy(update={'permission': permissions[grant.permission_id]})
            for grant in grants
            if grant.permission_id in permissions
        ]
        return sorted(joined, key=lambda grant: grant.permission.name.value)

    def list_permissions_for(self, role_id: str) -> List[Permission]:
        return [grant.permission for grant in self.list_grants_for(role_id)]

    def grant_permission(self, role_id: str, permission_name: PermissionLike) -> RolePermissionGrant:
        """
        Grant a permission to a role.

        Raises:
            NotFoundError: Role id or permission name unknown
            ConflictError: Role already holds the permission
            LookupFailure: The permission cache could not be invalidated
        """
        role = self._require_role(role_id)
        permission = self._require_permission(permission_name)
        grant = RolePermissionGrant(role_id=role.id, permission_id=permission.id)

        # Nothing is written while the cache is unreachable
        self._invalidate_role_holders(role.id)

        try:
            self.repository.insert_grant(grant)
        except DuplicateRecordException:
            authz_admin_mutations_total.labels(operation='grant_permission', result='conflict').inc()
            raise ConflictError(
                f"Permission {permission.name.value} already assigned to role {role_id}",
                metadata={'role_id': role_id, 'permission': permission.name.value}
            ) from None

        self._invalidate_role_holders(role.id)
        authz_admin_mutations_total.labels(operation='grant_permission', result='success').inc()
        logger.info(
            "Permission granted",
            event_type="authz.permission_granted",
            role=role.name.value,
            permission=permission.name.value
        )
        return grant.model_copy(update={'permission': permission})

    def revoke_permission(self, role_id: str, permission_name: PermissionLike) -> None:
        """
        Revoke a permission from a role. Succeeds silently when not granted.

        Raises:
            NotFoundError: Permission name unknown
            LookupFailure: The permission cache could not be invalidated; safe to retry
        """
        permission = self._require_permission(permission_name)
        removed = self.repository.delete_grants(role_id, permission.id)

        self._invalidate_role_holders(role_id)
        authz_admin_mutations_total.labels(operation='revoke_permission', result='success').inc()
        logger.info(
            "Permission revoked",
            event_type="authz.permission_revoked",
            role_id=role_id,
            permission=permission.name.value,
            removed=removed
        )

    def role_has_permission(self, role_id: str, permission_name: PermissionLike) -> bool:
        permissions = self._resolve_catalog_permissions([permission_name])
        return self.repository.grant_exists([role_id], [permission.id for permission in permissions])

    # Effective permissions

    def effective_permissions(self, principal_id: str) -> FrozenSet[Permission]:
        """
        Union of the permissions granted to every role the principal holds.

        A principal with no roles has an empty set; that is not an error.
        """
        assignments = self.repository.find_assignments(principal_id)
        if not assignments:
            return frozenset()
        grants = self.repository.find_grants({a.role_id for a in assignments})
        return frozenset(self._permissions_by_id(grant.permission_id for grant in grants).values())

    def effective_permission_names(self, principal_id: str) -> FrozenSet[PermissionName]:
        """Effective permission names, served from the cache when enabled."""
        cached = self.permission_cache.get(principal_id)
        if cached is not None:
            return cached

        token = self.permission_cache.begin(principal_id)
        names = frozenset(permission.name for permission in self.effective_permissions(principal_id))
        self.permission_cache.store(principal_id, names, token)
        return names

    def has_permission(self, principal_id: str, permission_name: PermissionLike) -> bool:
        return self.has_any_permission(principal_id, [permission_name])

    def has_any_permission(self, principal_id: str, permission_names: Iterable[PermissionLike]) -> bool:
        """
        True iff the principal's effective set contains at least one name.

        Raises:
            ConfigurationError: A name is outside the catalog or was never bootstrapped
        """
        required = {permission.name for permission in self._resolve_catalog_permissions(permission_names)}
        if not required:
            return False
        return not required.isdisjoint(self.effective_permission_names(principal_id))

    # Helpers

    def _permissions_by_id(self, permission_ids: Iterable[str]) -> Dict[str, Permission]:
        wanted = set(permission_ids)
        if not wanted:
            return {}
        return {
            permission.id: permission
            for permission in self.repository.find_permissions_by_ids(wanted)
        }

    def _require_role(self, role_id: str) -> Role:
        role = self.repository.find_role_by_id(role_id)
        if role is None:
            raise NotFoundError(f"Role {role_id} not found", entity='role', name=role_id)
        return role

    def _require_permission(self, permission_name: PermissionLike) -> Permission:
        permission = self.get_permission_by_name(permission_name)
        if permission is None:
            raise NotFoundError(
                f"Permission {permission_name} not found",
                entity='permission',
                name=str(permission_name)
            )
        return permission

    def _resolve_catalog_permissions(self, permission_names: Iterable[PermissionLike]) -> List[Permission]:
        names = PermissionName.parse_many(permission_names)
        if not names:
            return []
        catalog = {permission.name: permission for permission in self.repository.list_permissions()}
        missing = [name.value for name in names if name not in catalog]
        if missing:
            raise ConfigurationError(
                f"Permissions missing from the permission catalog: {', '.join(missing)}",
                names=missing
            )
        return [catalog[name] for name in names]

    def _invalidate_role_holders(self, role_id: str) -> None:
        if not self.permission_cache.enabled:
            return
        self.permission_cache.invalidate_many(self.repository.find_principals_with_role(role_id))


__all__ = ['PermissionStore']
