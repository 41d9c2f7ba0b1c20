import pytest
from franchise_authz.config.settings import env_bool, env_int, load_settings
from franchise_authz.config.pagination import normalize_pagination


def test_defaults(monkeypatch):
    monkeypatch.delenv('AUTHZ_IMPERSONATION_TTL_SECONDS', raising=False)
    monkeypatch.delenv('AUTHZ_DETECT_CONCURRENT_EDITS', raising=False)
    settings = load_settings()
    assert settings['AUTHZ_IMPERSONATION_TTL_SECONDS'] == 3600
    assert settings['AUTHZ_DETECT_CONCURRENT_EDITS'] is True


def test_env_overrides(monkeypatch):
    monkeypatch.setenv('AUTHZ_IMPERSONATION_TTL_SECONDS', '120')
    monkeypatch.setenv('AUTHZ_DETECT_CONCURRENT_EDITS', 'off')
    settings = load_settings()
    assert settings['AUTHZ_IMPERSONATION_TTL_SECONDS'] == 120
    assert settings['AUTHZ_DETECT_CONCURRENT_EDITS'] is False


def test_env_helpers(monkeypatch):
    monkeypatch.setenv('X_FLAG', 'Yes')
    assert env_bool('X_FLAG', False) is True
    assert env_bool('X_MISSING', True) is True
    monkeypatch.setenv('X_INT', 'ten')
    with pytest.raises(ValueError):
        env_int('X_INT', 1)


def test_pagination_bounds():
    assert normalize_pagination(None, None) == (50, 0)
    assert normalize_pagination('500', '3') == (200, 3)
    with pytest.raises(ValueError):
        normalize_pagination('10', '-1')
    with pytest.raises(ValueError):
        normalize_pagination('abc', None)
    assert normalize_pagination('0', '') == (1, 0)
