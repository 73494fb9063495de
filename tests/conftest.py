"""
Shared pytest fixtures for the authorization service.

Unit tests run the stores and the engine against the in-memory repository
with a bootstrapped catalog and no default grants, so each test states the
grants it relies on. Integration tests build the Flask application with the
``testing`` configuration (full bootstrap, default grants) and sign bearer
tokens with the configured secret.
"""

from datetime import datetime, timedelta, timezone
from typing import Callable, Dict

import pytest
from flask import Flask
from flask.testing import FlaskClient

from edu_rbac.app import create_app
from edu_rbac.auth.authorization import AuthorizationEngine
from edu_rbac.auth.bootstrap import bootstrap_catalog
from edu_rbac.auth.cache import NullPermissionCache
from edu_rbac.auth.catalog import RoleName
from edu_rbac.auth.identity import TokenVerifier
from edu_rbac.auth.permission_store import PermissionStore
from edu_rbac.auth.role_store import RoleStore
from edu_rbac.auth.services import AuthorizationServices, get_services
from edu_rbac.data.memory import InMemoryAuthorizationRepository


def pytest_configure(config):
    config.addinivalue_line("markers", "unit: fast isolated tests")
    config.addinivalue_line("markers", "integration: tests exercising the Flask application end to end")


@pytest.fixture
def repository() -> InMemoryAuthorizationRepository:
    """Catalog written, no role -> permission grants."""
    repository = InMemoryAuthorizationRepository()
    bootstrap_catalog(repository, apply_default_grants=False)
    yield repository
    repository.clear()


@pytest.fixture
def services(repository) -> AuthorizationServices:
    return AuthorizationServices.build(repository, NullPermissionCache())


@pytest.fixture
def role_store(services) -> RoleStore:
    return services.role_store


@pytest.fixture
def permission_store(services) -> PermissionStore:
    return services.permission_store


@pytest.fixture
def engine(services) -> AuthorizationEngine:
    return services.engine


@pytest.fixture
def role_id(repository) -> Callable[[str], str]:
    """Look up a bootstrapped role id by name."""
    def lookup(name: str) -> str:
        return repository.find_role_by_name(RoleName(name)).id
    return lookup


@pytest.fixture
def flask_app() -> Flask:
    app = create_app('testing', repository=InMemoryAuthorizationRepository())
    with app.app_context():
        yield app


@pytest.fixture
def client(flask_app) -> FlaskClient:
    return flask_app.test_client()


@pytest.fixture
def app_services(flask_app) -> AuthorizationServices:
    return get_services()


@pytest.fixture
def token_factory(flask_app) -> Callable[..., str]:
    """Sign a bearer token for a principal with the application's secret."""
    verifier = TokenVerifier(flask_app.config['JWT_SECRET'], algorithms=[flask_app.config['JWT_ALGORITHM']])

    def issue(principal_id: str, expires_in: int = 3600, **claims) -> str:
        payload = {
            'userId': principal_id,
            'exp': datetime.now(timezone.utc) + timedelta(seconds=expires_in),
        }
        payload.update(claims)
        return verifier.issue(payload)

    return issue


@pytest.fixture
def auth_headers(token_factory, app_services) -> Callable[..., Dict[str, str]]:
    """Headers for a principal, optionally assigning roles first."""
    def build(principal_id: str, *roles: str) -> Dict[str, str]:
        for role in roles:
            app_services.role_store.assign_role(principal_id, role)
        return {'Authorization': f"Bearer {token_factory(principal_id)}"}

    return build


@pytest.fixture
def admin_headers(auth_headers) -> Dict[str, str]:
    return auth_headers('admin-1', 'admin')
