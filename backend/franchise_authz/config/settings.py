"""Environment driven settings for the app factory.

Values are read after ``load_dotenv()`` so a local ``.env`` file works in development.
"""
from __future__ import annotations
import os
from typing import Any, Dict

TRUTHY = {'1', 'true', 'yes', 'on'}

DEFAULTS: Dict[str, Any] = {
    'JWT_SECRET_KEY': 'dev-secret',
    'DATABASE_URL': 'sqlite:///dev.db',
    'AUTHZ_IMPERSONATION_TTL_SECONDS': 3600,
    'AUTHZ_DETECT_CONCURRENT_EDITS': True,
}


def env_bool(name: str, default: bool) -> bool:
    raw = os.getenv(name)
    if raw is None:
        return default
    return raw.strip().lower() in TRUTHY


def env_int(name: str, default: int) -> int:
    raw = os.getenv(name)
    if raw is None or not raw.strip():
        return default
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f'{name} must be an integer, got {raw!r}')


def load_settings() -> Dict[str, Any]:
    return {
        'JWT_SECRET_KEY': os.getenv('JWT_SECRET_KEY', DEFAULTS['JWT_SECRET_KEY']),
        'DATABASE_URL': os.getenv('DATABASE_URL', DEFAULTS['DATABASE_URL']),
        'AUTHZ_IMPERSONATION_TTL_SECONDS': env_int('AUTHZ_IMPERSONATION_TTL_SECONDS', DEFAULTS['AUTHZ_IMPERSONATION_TTL_SECONDS']),
        'AUTHZ_DETECT_CONCURRENT_EDITS': env_bool('AUTHZ_DETECT_CONCURRENT_EDITS', DEFAULTS['AUTHZ_DETECT_CONCURRENT_EDITS']),
    }
