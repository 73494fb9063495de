"""
Flask application factory.

Builds the authorization service: configuration, logging, the relation-table
repository, the optional effective-permission cache, the Role and Permission
stores, the Authorization Engine, identity resolution, error handlers, the
administrative blueprints, ``/health`` and ``/metrics``.

Collaborators are constructed here and injected; nothing below this module
reaches for a global store handle.

Examples:
    app = create_app('development')
    app = create_app('testing', repository=InMemoryAuthorizationRepository())
    app = create_app('production', MONGODB_URI='mongodb://db:27017')
"""

from typing import Optional

import structlog
from flask import Flask

from edu_rbac.auth.bootstrap import bootstrap_catalog
from edu_rbac.auth.cache import PermissionCache, create_permission_cache
from edu_rbac.auth.decorators import init_auth_error_handlers
from edu_rbac.auth.identity import IdentityResolver, TokenVerifier, init_identity_resolution
from edu_rbac.auth.services import EXTENSION_KEY, AuthorizationServices, get_services
from edu_rbac.blueprints import register_blueprints
from edu_rbac.config.settings import get_config, validate_configuration
from edu_rbac.data.base import AuthorizationRepository
from edu_rbac.data.memory import InMemoryAuthorizationRepository
from edu_rbac.data.mongodb import MongoAuthorizationRepository
from edu_rbac.monitoring.logging import init_request_logging, setup_structured_logging
from edu_rbac.monitoring.metrics import create_metrics_endpoint

logger = structlog.get_logger(__name__)


class ConfigurationInvalid(RuntimeError):
    """Settings failed validation; the application refuses to start."""


def create_repository(config) -> AuthorizationRepository:
    """Build the repository selected by ``STORE_BACKEND``."""
    if config['STORE_BACKEND'] == 'mongodb':
        return MongoAuthorizationRepository.from_uri(
            config['MONGODB_URI'],
            config['MONGODB_DATABASE'],
            operation_timeout=config['AUTHZ_STORE_TIMEOUT_SECONDS'],
            retry_attempts=config['AUTHZ_STORE_RETRY_ATTEMPTS']
        )
    return InMemoryAuthorizationRepository()


def register_health_endpoint(app: Flask) -> None:

    @app.route('/health', methods=['GET'])
    def health():
        try:
            reachable = get_services().repository.ping()
        except Exception as e:
            logger.warning("Health check failed", error=str(e))
            reachable = False

        status_code = 200 if reachable else 503
        return {
            'success': reachable,
            'status': 'healthy' if reachable else 'unhealthy',
            'store': 'reachable' if reachable else 'unreachable',
        }, status_code


def create_app(
    config_name: Optional[str] = None,
    repository: Optional[AuthorizationRepository] = None,
    permission_cache: Optional[PermissionCache] = None,
    **config_overrides
) -> Flask:
    """
    Create the Flask application.

    Args:
        config_name: ``development``, ``testing`` or ``production`` (defaults to ``APP_ENV``)
        repository: Pre-built repository; otherwise built from ``STORE_BACKEND``
        permission_cache: Pre-built cache; otherwise built from ``PERMISSION_CACHE_BACKEND``
        **config_overrides: Setting overrides applied after the config class

    Raises:
        ConfigurationInvalid: When ``validate_configuration`` reports problems
    """
    app = Flask(__name__)
    app.config.from_object(get_config(config_name))
    app.config.update(config_overrides)

    setup_structured_logging(app.config['LOG_LEVEL'], app.config['LOG_FORMAT'])

    issues = validate_configuration(app.config)
    if issues:
        logger.error("Configuration validation failed", issues=issues)
        raise ConfigurationInvalid("; ".join(issues))

    if repository is None:
        repository = create_repository(app.config)
    if permission_cache is None:
        permission_cache = create_permission_cache(
            app.config['PERMISSION_CACHE_BACKEND'],
            ttl_seconds=app.config['PERMISSION_CACHE_TTL_SECONDS'],
            redis_url=app.config['REDIS_URL']
        )

    if app.config['BOOTSTRAP_CATALOG']:
        bootstrap_catalog(repository)

    app.extensions[EXTENSION_KEY] = AuthorizationServices.build(repository, permission_cache)

    verifier = TokenVerifier(
        app.config['JWT_SECRET'],
        algorithms=[app.config['JWT_ALGORITHM']],
        leeway=app.config['JWT_LEEWAY_SECONDS']
    )
    init_request_logging(app)
    init_identity_resolution(app, IdentityResolver(verifier))
    init_auth_error_handlers(app)

    register_blueprints(app)
    register_health_endpoint(app)
    create_metrics_endpoint(app, '/metrics')

    logger.info(
        "Application created",
        environment=app.config['APP_ENV'],
        store_backend=type(repository).__name__,
        permission_cache=type(permission_cache).__name__
    )
    return app


__all__ = ['create_app', 'create_repository', 'ConfigurationInvalid']
