"""Typed errors raised by the authorization core.

Each error carries the HTTP status and title used by the unified JSON error
handler registered in ``create_app``; callers outside Flask can rely on the
class alone.
"""
from __future__ import annotations
from typing import Iterable, Optional


class AuthzError(Exception):
    status = 400
    title = 'Bad Request'
    default_detail = 'Authorization error'

    def __init__(self, detail: Optional[str] = None):
        self.detail = detail or self.default_detail
        super().__init__(self.detail)

    @property
    def code(self) -> str:
        return type(self).__name__

    def to_payload(self):
        return {
            'error': {
                'status': self.status,
                'title': self.title,
                'detail': self.detail,
                'code': self.code,
            }
        }


class NoRoleAssigned(AuthzError):
    status = 409
    title = 'Conflict'
    default_detail = 'User has no role assigned'


class InvalidPermissionKey(AuthzError):
    default_detail = 'Unknown permission key'

    def __init__(self, keys: Iterable[str] = ()):
        self.keys = sorted(keys)
        detail = f'Unknown permission keys: {self.keys}' if self.keys else None
        super().__init__(detail)


class Unauthorized(AuthzError):
    status = 403
    title = 'Forbidden'
    default_detail = 'Actor lacks the required scope or capability'


class ConcurrentModification(AuthzError):
    status = 409
    title = 'Conflict'
    default_detail = 'Permission set changed since it was loaded; reload and retry'


class ImpersonationNotPermitted(AuthzError):
    status = 403
    title = 'Forbidden'
    default_detail = 'Actor is not allowed to impersonate'


class ImpersonationTargetInvalid(AuthzError):
    default_detail = 'Impersonation target is invalid'


class AuditWriteFailed(AuthzError):
    status = 500
    title = 'Internal Server Error'
    default_detail = 'Audit entry could not be written; change aborted'


__all__ = [
    'AuthzError', 'NoRoleAssigned', 'InvalidPermissionKey', 'Unauthorized', 'ConcurrentModification',
    'ImpersonationNotPermitted', 'ImpersonationTargetInvalid', 'AuditWriteFailed',
]
