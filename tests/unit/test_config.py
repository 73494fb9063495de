"""Unit tests for configuration selection and validation."""

import pytest

from edu_rbac.app import ConfigurationInvalid, create_app
from edu_rbac.config.settings import (
    DEFAULT_JWT_SECRET,
    DevelopmentConfig,
    ProductionConfig,
    TestingConfig,
    get_config,
    validate_configuration,
)

pytestmark = pytest.mark.unit


class TestGetConfig:

    @pytest.mark.parametrize('name,expected', [
        ('development', DevelopmentConfig),
        ('testing', TestingConfig),
        ('PRODUCTION', ProductionConfig),
    ])
    def test_known_environments(self, name, expected):
        assert get_config(name) is expected

    def test_defaults_to_app_env(self, monkeypatch):
        monkeypatch.setenv('APP_ENV', 'testing')

        assert get_config() is TestingConfig

    def test_unknown_environment(self):
        with pytest.raises(ValueError):
            get_config('qa')


class TestValidateConfiguration:

    def test_testing_config_is_valid(self):
        assert validate_configuration(TestingConfig.as_dict()) == []

    def test_cache_is_off_by_default(self):
        assert TestingConfig.PERMISSION_CACHE_BACKEND == 'none'

    def test_store_timeout_default(self):
        assert TestingConfig.AUTHZ_STORE_TIMEOUT_SECONDS > 0

    def test_rejects_unknown_backends(self):
        config = dict(TestingConfig.as_dict(), STORE_BACKEND='postgres', PERMISSION_CACHE_BACKEND='memcached')

        issues = validate_configuration(config)

        assert any('STORE_BACKEND' in issue for issue in issues)
        assert any('PERMISSION_CACHE_BACKEND' in issue for issue in issues)

    def test_rejects_non_positive_timeout(self):
        config = dict(TestingConfig.as_dict(), AUTHZ_STORE_TIMEOUT_SECONDS=0)

        assert any('AUTHZ_STORE_TIMEOUT_SECONDS' in issue for issue in validate_configuration(config))

    def test_production_refuses_default_secret(self):
        config = dict(TestingConfig.as_dict(), APP_ENV='production', JWT_SECRET=DEFAULT_JWT_SECRET)

        assert any('JWT_SECRET' in issue for issue in validate_configuration(config))

    def test_create_app_refuses_invalid_configuration(self):
        with pytest.raises(ConfigurationInvalid):
            create_app('testing', STORE_BACKEND='postgres')
