"""
Catalog bootstrap.

Writes the role and permission catalogs and the default role -> permission
grants. Every step is an upsert or a duplicate-tolerant insert, so running
the bootstrap on every application start is safe.
"""

from dataclasses import dataclass
from typing import Dict

import structlog

from edu_rbac.auth.catalog import (
    DEFAULT_ROLE_GRANTS,
    PERMISSION_DESCRIPTIONS,
    ROLE_DESCRIPTIONS,
    PermissionName,
    RoleName,
)
from edu_rbac.data.base import AuthorizationRepository
from edu_rbac.data.exceptions import DuplicateRecordException
from edu_rbac.data.models import Permission, Role, RolePermissionGrant

logger = structlog.get_logger(__name__)


@dataclass
class BootstrapSummary:
    roles: int = 0
    permissions: int = 0
    grants_created: int = 0
    grants_existing: int = 0


def bootstrap_catalog(
    repository: AuthorizationRepository,
    apply_default_grants: bool = True
) -> BootstrapSummary:
    """
    Ensure every catalog role and permission exists in ``repository``.

    Args:
        repository: Target relation-table repository
        apply_default_grants: Also grant the default permission set to each role

    Returns:
        Counts of catalog entries and grants written or already present
    """
    summary = BootstrapSummary()

    roles: Dict[RoleName, Role] = {}
    for role_name in RoleName:
        roles[role_name] = repository.upsert_role(
            Role(name=role_name, description=ROLE_DESCRIPTIONS[role_name])
        )
        summary.roles += 1

    permissions: Dict[PermissionName, Permission] = {}
    for permission_name in PermissionName:
        permissions[permission_name] = repository.upsert_permission(
            Permission(name=permission_name, description=PERMISSION_DESCRIPTIONS[permission_name])
        )
        summary.permissions += 1

    if apply_default_grants:
        for role_name, granted in DEFAULT_ROLE_GRANTS.items():
            role = roles[role_name]
            for permission_name in sorted(granted, key=lambda name: name.value):
                grant = RolePermissionGrant(
                    role_id=role.id,
                    permission_id=permissions[permission_name].id
                )
                try:
                    repository.insert_grant(grant)
                    summary.grants_created += 1
                except DuplicateRecordException:
                    summary.grants_existing += 1

    logger.info(
        "Authorization catalog bootstrapped",
        roles=summary.roles,
        permissions=summary.permissions,
        grants_created=summary.grants_created,
        grants_existing=summary.grants_existing
    )
    return summary


__all__ = ['BootstrapSummary', 'bootstrap_catalog']
