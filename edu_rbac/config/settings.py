"""
Environment-specific configuration classes.

Settings are read from environment variables (with ``.env`` support via
python-dotenv) into class attributes, one class per deployment environment.
``get_config`` selects the class from ``APP_ENV``; ``create_app`` copies it
onto ``app.config`` and then applies keyword overrides.

Key settings:
- ``JWT_SECRET`` / ``JWT_ALGORITHM``: bearer token verification
- ``STORE_BACKEND``: ``memory`` or ``mongodb``
- ``AUTHZ_STORE_TIMEOUT_SECONDS``: bound on every store call
- ``AUTHZ_STORE_RETRY_ATTEMPTS``: read retries on connection errors
- ``PERMISSION_CACHE_BACKEND``: ``none``, ``memory`` or ``redis``
- ``BOOTSTRAP_CATALOG``: write roles, permissions and default grants on start
"""

import logging
import os
from typing import Any, Dict, List, Optional, Type

from dotenv import load_dotenv

load_dotenv()

logger = logging.getLogger(__name__)

DEFAULT_JWT_SECRET = 'change-me-in-production'

STORE_BACKENDS = ('memory', 'mongodb')
CACHE_BACKENDS = ('none', 'memory', 'redis')
LOG_FORMATS = ('json', 'console')


def _env_bool(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes', 'on')


class BaseConfig:
    """Settings shared by every environment."""

    APP_NAME = os.getenv('APP_NAME', 'edu-rbac')
    APP_ENV = os.getenv('APP_ENV', 'development')

    DEBUG = False
    TESTING = False

    # Identity
    JWT_SECRET = os.getenv('JWT_SECRET', DEFAULT_JWT_SECRET)
    JWT_ALGORITHM = os.getenv('JWT_ALGORITHM', 'HS256')
    JWT_LEEWAY_SECONDS = int(os.getenv('JWT_LEEWAY_SECONDS', '0'))

    # Relation-table store
    STORE_BACKEND = os.getenv('STORE_BACKEND', 'memory')
    MONGODB_URI = os.getenv('MONGODB_URI', 'mongodb://localhost:27017')
    MONGODB_DATABASE = os.getenv('MONGODB_DATABASE', 'edu_rbac')
    AUTHZ_STORE_TIMEOUT_SECONDS = float(os.getenv('AUTHZ_STORE_TIMEOUT_SECONDS', '2.0'))
    AUTHZ_STORE_RETRY_ATTEMPTS = int(os.getenv('AUTHZ_STORE_RETRY_ATTEMPTS', '2'))

    # Effective-permission cache
    PERMISSION_CACHE_BACKEND = os.getenv('PERMISSION_CACHE_BACKEND', 'none')
    PERMISSION_CACHE_TTL_SECONDS = int(os.getenv('PERMISSION_CACHE_TTL_SECONDS', '300'))
    REDIS_URL = os.getenv('REDIS_URL', 'redis://localhost:6379/0')

    # Logging
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO')
    LOG_FORMAT = os.getenv('LOG_FORMAT', 'json')

    BOOTSTRAP_CATALOG = _env_bool('BOOTSTRAP_CATALOG', 'true')

    @classmethod
    def as_dict(cls) -> Dict[str, Any]:
        return {key: getattr(cls, key) for key in dir(cls) if key.isupper()}


class DevelopmentConfig(BaseConfig):
    APP_ENV = 'development'
    DEBUG = True
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'DEBUG')
    LOG_FORMAT = os.getenv('LOG_FORMAT', 'console')


class TestingConfig(BaseConfig):
    """In-memory store, no cache, fixed secret."""

    APP_ENV = 'testing'
    TESTING = True
    DEBUG = True
    JWT_SECRET = 'testing-secret-key-with-enough-length'
    STORE_BACKEND = 'memory'
    PERMISSION_CACHE_BACKEND = 'none'
    LOG_LEVEL = 'WARNING'
    LOG_FORMAT = 'console'
    BOOTSTRAP_CATALOG = True


class ProductionConfig(BaseConfig):
    APP_ENV = 'production'
    STORE_BACKEND = os.getenv('STORE_BACKEND', 'mongodb')
    LOG_FORMAT = os.getenv('LOG_FORMAT', 'json')


config_map: Dict[str, Type[BaseConfig]] = {
    'development': DevelopmentConfig,
    'testing': TestingConfig,
    'production': ProductionConfig,
}


def get_config(environment: Optional[str] = None) -> Type[BaseConfig]:
    """
    Get configuration class for the specified environment.

    Args:
        environment: Target environment name (defaults to ``APP_ENV``)

    Raises:
        ValueError: If environment is not supported
    """
    if environment is None:
        environment = os.getenv('APP_ENV', 'development')

    environment = environment.lower()

    if environment not in config_map:
        raise ValueError(
            f"Unsupported environment '{environment}'. "
            f"Supported environments: {list(config_map.keys())}"
        )

    return config_map[environment]


def validate_configuration(config: Dict[str, Any]) -> List[str]:
    """
    Validate settings and return a list of problems (empty when valid).

    Args:
        config: Mapping of setting name to value, e.g. ``app.config``
    """
    issues = []

    if config.get('STORE_BACKEND') not in STORE_BACKENDS:
        issues.append(f"STORE_BACKEND must be one of {', '.join(STORE_BACKENDS)}")

    if config.get('PERMISSION_CACHE_BACKEND') not in CACHE_BACKENDS:
        issues.append(f"PERMISSION_CACHE_BACKEND must be one of {', '.join(CACHE_BACKENDS)}")

    if config.get('LOG_FORMAT') not in LOG_FORMATS:
        issues.append(f"LOG_FORMAT must be one of {', '.join(LOG_FORMATS)}")

    if not config.get('JWT_SECRET'):
        issues.append("JWT_SECRET is required")

    if config.get('AUTHZ_STORE_TIMEOUT_SECONDS', 0) <= 0:
        issues.append("AUTHZ_STORE_TIMEOUT_SECONDS must be positive")

    if config.get('AUTHZ_STORE_RETRY_ATTEMPTS', 0) < 1:
        issues.append("AUTHZ_STORE_RETRY_ATTEMPTS must be at least 1")

    if config.get('STORE_BACKEND') == 'mongodb' and not config.get('MONGODB_URI'):
        issues.append("MONGODB_URI is required for the mongodb store backend")

    if config.get('PERMISSION_CACHE_BACKEND') == 'redis' and not config.get('REDIS_URL'):
        issues.append("REDIS_URL is required for the redis permission cache")

    if config.get('APP_ENV') == 'production' and config.get('JWT_SECRET') == DEFAULT_JWT_SECRET:
        issues.append("JWT_SECRET must be changed from the built-in default in production")

    if issues:
        logger.warning("Configuration validation found issues", extra={'issues': issues})

    return issues


__all__ = [
    'BaseConfig',
    'DevelopmentConfig',
    'TestingConfig',
    'ProductionConfig',
    'config_map',
    'get_config',
    'validate_configuration',
    'DEFAULT_JWT_SECRET',
]
