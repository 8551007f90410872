import os

import pytest

os.environ.setdefault('DATABASE_URL', 'sqlite:///./test.db')

from clinic_backend.core import config  # noqa: E402


def test_get_bool_parses_common_truthy_values() -> None:
    assert config._get_bool(' Yes ') is True
    assert config._get_bool('0') is False
    assert config._get_bool(None, default=True) is True


def test_get_list_splits_and_drops_blanks() -> None:
    assert config._get_list('http://a.test, ,http://b.test ', default=[]) == ['http://a.test', 'http://b.test']
    assert config._get_list(None, default=['x']) == ['x']


def test_validate_runtime_config_ignores_development(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'APP_ENV', 'development')
    monkeypatch.setattr(config, 'DATABASE_URL', 'sqlite:///./clinic.db')

    config.validate_runtime_config()


def test_validate_runtime_config_rejects_sqlite_in_production(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'APP_ENV', 'production')
    monkeypatch.setenv('DATABASE_URL', 'sqlite:///./clinic.db')
    monkeypatch.setattr(config, 'DATABASE_URL', 'sqlite:///./clinic.db')

    with pytest.raises(RuntimeError, match='PostgreSQL'):
        config.validate_runtime_config()


def test_validate_runtime_config_requires_database_url_in_production(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'APP_ENV', 'production')
    monkeypatch.delenv('DATABASE_URL', raising=False)

    with pytest.raises(RuntimeError, match='DATABASE_URL must be set'):
        config.validate_runtime_config()


def test_validate_runtime_config_accepts_postgres_in_production(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setattr(config, 'APP_ENV', 'production')
    monkeypatch.setenv('DATABASE_URL', 'postgresql+psycopg://clinic@db/clinic')
    monkeypatch.setattr(config, 'DATABASE_URL', 'postgresql+psycopg://clinic@db/clinic')

    config.validate_runtime_config()
