"""
Per-application container for the authorization collaborators.

``create_app`` builds one ``AuthorizationServices`` and registers it under
``app.extensions['edu_rbac']``; guards and blueprints look it up through
``get_services()`` instead of reaching for module-level singletons.
"""

from dataclasses import dataclass

from flask import current_app

from edu_rbac.auth.authorization import AuthorizationEngine
from edu_rbac.auth.cache import PermissionCache
from edu_rbac.auth.permission_store import PermissionStore
from edu_rbac.auth.role_store import RoleStore
from edu_rbac.data.base import AuthorizationRepository

EXTENSION_KEY = 'edu_rbac'


@dataclass
class AuthorizationServices:
    repository: AuthorizationRepository
    permission_cache: PermissionCache
    role_store: RoleStore
    permission_store: PermissionStore
    engine: AuthorizationEngine

    @classmethod
    def build(cls, repository: AuthorizationRepository, permission_cache: PermissionCache) -> 'AuthorizationServices':
        """Wire both stores to one repository and one shared cache."""
        role_store = RoleStore(repository, permission_cache)
        permission_store = PermissionStore(repository, permission_cache)
        return cls(
            repository=repository,
            permission_cache=permission_cache,
            role_store=role_store,
            permission_store=permission_store,
            engine=AuthorizationEngine(role_store, permission_store),
        )


def get_services() -> AuthorizationServices:
    return current_app.extensions[EXTENSION_KEY]


__all__ = ['AuthorizationServices', 'EXTENSION_KEY', 'get_services']
