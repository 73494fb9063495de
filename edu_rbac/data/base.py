"""
Repository interface for the role/permission relation tables.

The authorization subsystem persists four record kinds:

- ``roles`` and ``permissions``: reference catalogs keyed by unique name
- ``user_roles``: principal <-> role assignments, unique per (principal_id, role_id)
- ``role_permissions``: role <-> permission grants, unique per (role_id, permission_id)

Implementations must make every single-record insert and every delete atomic
with respect to concurrent readers, and must enforce the composite-key
uniqueness themselves by raising ``DuplicateRecordException``. The stores are
written against this interface only, so the in-memory fake and the MongoDB
backend are interchangeable.
"""

from abc import ABC, abstractmethod
from typing import Collection, List, Optional

from edu_rbac.auth.catalog import PermissionName, RoleName
from edu_rbac.data.models import Permission, Role, RoleAssignment, RolePermissionGrant


class AuthorizationRepository(ABC):
    """Abstract relation-table store used by the Role and Permission stores."""

    # Role catalog

    @abstractmethod
    def list_roles(self) -> List[Role]:
        """All roles ordered by name ascending."""

    @abstractmethod
    def find_role_by_name(self, name: RoleName) -> Optional[Role]:
        ...

    @abstractmethod
    def find_role_by_id(self, role_id: str) -> Optional[Role]:
        ...

    @abstractmethod
    def find_roles_by_ids(self, role_ids: Collection[str]) -> List[Role]:
        ...

    @abstractmethod
    def upsert_role(self, role: Role) -> Role:
        """Insert the role unless one with the same name exists; return the stored role."""

    # Permission catalog

    @abstractmethod
    def list_permissions(self) -> List[Permission]:
        """All permissions ordered by name ascending."""

    @abstractmethod
    def find_permission_by_name(self, name: PermissionName) -> Optional[Permission]:
        ...

    @abstractmethod
    def find_permissions_by_ids(self, permission_ids: Collection[str]) -> List[Permission]:
        ...

    @abstractmethod
    def upsert_permission(self, permission: Permission) -> Permission:
        ...

    # Principal <-> role assignments

    @abstractmethod
    def insert_assignment(self, assignment: RoleAssignment) -> RoleAssignment:
        """
        Persist an assignment.

        Raises:
            DuplicateRecordException: When (principal_id, role_id) already exists.
        """

    @abstractmethod
    def delete_assignments(self, principal_id: str, role_id: str) -> int:
        """Delete matching assignments; returns the number removed (0 is not an error)."""

    @abstractmethod
    def find_assignments(self, principal_id: str) -> List[RoleAssignment]:
        ...

    @abstractmethod
    def assignment_exists(self, principal_id: str, role_ids: Collection[str]) -> bool:
        """True iff the principal holds at least one of ``role_ids``."""

    @abstractmethod
    def find_principals_with_role(self, role_id: str) -> List[str]:
        ...

    # Role <-> permission grants

    @abstractmethod
    def insert_grant(self, grant: RolePermissionGrant) -> RolePermissionGrant:
        """
        Persist a grant.

        Raises:
            DuplicateRecordException: When (role_id, permission_id) already exists.
        """

    @abstractmethod
    def delete_grants(self, role_id: str, permission_id: str) -> int:
        ...

    @abstractmethod
    def find_grants(self, role_ids: Collection[str]) -> List[RolePermissionGrant]:
        ...

    @abstractmethod
    def grant_exists(self, role_ids: Collection[str], permission_ids: Collection[str]) -> bool:
        """True iff any of ``role_ids`` holds any of ``permission_ids``."""

    # Health

    @abstractmethod
    def ping(self) -> bool:
        ...


__all__ = ['AuthorizationRepository']
