"""Authoritative per-(user, branch) permission sets.

The stored rows are the only input to access decisions; role defaults are a template used by
``apply_defaults`` and never consulted when reading. Every write replaces the full set for the
pair in one transaction together with its audit entries.
"""
from __future__ import annotations
from dataclasses import dataclass, field
from datetime import datetime
from typing import FrozenSet, Iterable, List, Optional
from flask import current_app
from sqlalchemy import select, delete

from franchise_authz import get_db
from franchise_authz.constants.roles import Role, normalize_role
from franchise_authz.errors import ConcurrentModification, NoRoleAssigned
from franchise_authz.models.audit import PermissionAuditLogEntry
from franchise_authz.models.authz import UserBranchPermission
from franchise_authz.services.audit import diff_permission_sets, record_permission_diff
from franchise_authz.services.catalogue import role_defaults, validate_keys
from franchise_authz.services.policy import assert_can_manage_permissions
from franchise_authz.utils.clock import utcnow


@dataclass(frozen=True)
class SaveResult:
    permissions: FrozenSet[str]
    granted: FrozenSet[str] = frozenset()
    revoked: FrozenSet[str] = frozenset()
    audit_entries: List[PermissionAuditLogEntry] = field(default_factory=list)

    @property
    def changed(self) -> bool:
        return bool(self.granted or self.revoked)


def _pair_filter(user_id: int, branch_id: int):
    return (UserBranchPermission.user_id == user_id, UserBranchPermission.branch_id == branch_id)


def load(user_id: int, branch_id: int, session=None) -> FrozenSet[str]:
    """Current effective set; empty when no rows exist."""
    if session is None:
        session = get_db()
    keys = session.execute(
        select(UserBranchPermission.permission_key).where(*_pair_filter(user_id, branch_id))
    ).scalars().all()
    return frozenset(keys)


def _locked_keys(session, user_id: int, branch_id: int) -> FrozenSet[str]:
    # FOR UPDATE where the backend supports it; SQLite serializes writers anyway
    rows = session.execute(
        select(UserBranchPermission.permission_key).where(*_pair_filter(user_id, branch_id)).with_for_update()
    ).scalars().all()
    return frozenset(rows)


def _replace(session, user_id: int, branch_id: int, actor_id: int, new_set: FrozenSet[str],
             snapshot: FrozenSet[str], now: Optional[datetime]) -> SaveResult:
    granted, revoked = diff_permission_sets(new_set, snapshot)
    try:
        current = _locked_keys(session, user_id, branch_id)
        if current != snapshot and current_app.config.get('AUTHZ_DETECT_CONCURRENT_EDITS', True):
            current_app.logger.warning(
                'Concurrent permission edit for user %s branch %s by actor %s', user_id, branch_id, actor_id)
            raise ConcurrentModification()
        session.execute(delete(UserBranchPermission).where(*_pair_filter(user_id, branch_id)))
        granted_at = now or utcnow()
        session.add_all([
            UserBranchPermission(user_id=user_id, branch_id=branch_id, permission_key=key,
                                 granted_by=actor_id, granted_at=granted_at)
            for key in sorted(new_set)
        ])
        session.flush()
        entries = record_permission_diff(actor_id, user_id, branch_id, granted, revoked,
                                         session=session, created_at=granted_at)
        session.commit()
    except Exception:
        session.rollback()
        raise
    current_app.logger.info(
        'Permission set replaced user=%s branch=%s actor=%s granted=%d revoked=%d',
        user_id, branch_id, actor_id, len(granted), len(revoked))
    return SaveResult(permissions=new_set, granted=granted, revoked=revoked, audit_entries=entries)


def save(user_id: int, branch_id: int, actor_id: int, new_set: Iterable[str], snapshot: Iterable[str],
         session=None, now: Optional[datetime] = None) -> SaveResult:
    """Replace the (user, branch) set with new_set, auditing the diff against snapshot.

    snapshot must be what ``load`` returned for the same pair in the current editing session,
    never the role defaults. actor_id is the real acting user, even while impersonating.
    """
    if session is None:
        session = get_db()
    new_set = frozenset(new_set)
    snapshot = frozenset(snapshot)
    assert_can_manage_permissions(actor_id, branch_id, session)
    validate_keys(new_set, session)
    if new_set == snapshot:
        current_app.logger.debug('No-op permission save user=%s branch=%s', user_id, branch_id)
        return SaveResult(permissions=load(user_id, branch_id, session))
    return _replace(session, user_id, branch_id, actor_id, new_set, snapshot, now)


def apply_defaults(user_id: int, branch_id: int, role, actor_id: int,
                   session=None, now: Optional[datetime] = None) -> SaveResult:
    """Reset the (user, branch) set to exactly the role template, through the same audited replace."""
    if session is None:
        session = get_db()
    resolved: Optional[Role] = normalize_role(role) if role is not None else None
    if resolved is None:
        raise NoRoleAssigned(f'User {user_id} has no role to take defaults from')
    assert_can_manage_permissions(actor_id, branch_id, session)
    defaults = role_defaults(resolved, session)
    validate_keys(defaults, session)
    snapshot = load(user_id, branch_id, session)
    if defaults == snapshot:
        return SaveResult(permissions=defaults)
    result = _replace(session, user_id, branch_id, actor_id, defaults, snapshot, now)
    current_app.logger.info('Applied %s defaults to user=%s branch=%s', resolved.value, user_id, branch_id)
    return result
