from __future__ import annotations
from datetime import datetime
from typing import Any, Dict, FrozenSet, Iterable, List, Optional, Tuple
from flask import current_app
from sqlalchemy import select, func
from sqlalchemy.exc import SQLAlchemyError

from franchise_authz import get_db
from franchise_authz.errors import AuditWriteFailed
from franchise_authz.models.audit import AuditAction, AuditLog, PermissionAuditLogEntry


def diff_permission_sets(new_set: Iterable[str], snapshot: Iterable[str]) -> Tuple[FrozenSet[str], FrozenSet[str]]:
    """Return (granted, revoked) going from snapshot to new_set."""
    new_set = frozenset(new_set)
    snapshot = frozenset(snapshot)
    return new_set - snapshot, snapshot - new_set


def audit_action(kind: str, keys: Iterable[str]) -> AuditAction:
    keys = list(keys)
    if kind == 'grant':
        return AuditAction.BULK_GRANT if len(keys) > 1 else AuditAction.GRANT
    if kind == 'revoke':
        return AuditAction.BULK_REVOKE if len(keys) > 1 else AuditAction.REVOKE
    raise ValueError(f'unknown audit kind {kind!r}')


def record_permission_diff(actor_user_id: int, target_user_id: int, branch_id: int,
                           granted: Iterable[str], revoked: Iterable[str], session=None,
                           created_at: Optional[datetime] = None) -> List[PermissionAuditLogEntry]:
    """Append at most two entries (grant batch, revoke batch) inside the caller's transaction.

    Nothing is written for an empty batch. Persistence errors surface as AuditWriteFailed so the
    enclosing permission change is rolled back with them.
    """
    if session is None:
        session = get_db()
    entries = []
    for kind, keys in (('grant', granted), ('revoke', revoked)):
        keys = sorted(keys)
        if not keys:
            continue
        entries.append(PermissionAuditLogEntry(
            actor_user_id=actor_user_id,
            target_user_id=target_user_id,
            branch_id=branch_id,
            action=audit_action(kind, keys),
            permission_keys=keys,
        ))
        if created_at is not None:
            entries[-1].created_at = created_at
    if not entries:
        return entries
    try:
        session.add_all(entries)
        session.flush()
    except SQLAlchemyError as e:
        current_app.logger.error('Permission audit write failed for user %s branch %s: %s', target_user_id, branch_id, e)
        raise AuditWriteFailed() from e
    return entries


def list_permission_audit(filters: Optional[Dict[str, Any]] = None, limit: int = 50, offset: int = 0, session=None):
    """Newest first. Returns (rows, total)."""
    if session is None:
        session = get_db()
    filters = filters or {}
    stmt = select(PermissionAuditLogEntry)
    for field in ('target_user_id', 'actor_user_id', 'branch_id'):
        if filters.get(field) is not None:
            stmt = stmt.where(getattr(PermissionAuditLogEntry, field) == filters[field])
    if filters.get('action') is not None:
        stmt = stmt.where(PermissionAuditLogEntry.action == AuditAction(filters['action']))
    total = session.execute(select(func.count()).select_from(stmt.subquery())).scalar_one()
    rows = session.execute(
        stmt.order_by(PermissionAuditLogEntry.id.desc()).offset(offset).limit(limit)
    ).scalars().all()
    return rows, total


def add_audit(actor_user_id: int, action: str, entity: Optional[str] = None, entity_id: Optional[str] = None,
              meta: Optional[Dict[str, Any]] = None, session=None):
    """Persist a generic activity entry within the current DB session.

    Parameters:
      actor_user_id: the real acting user (never an impersonated identity)
      action: short action code e.g. IMPERSONATION.START
      entity: optional entity name (User, ...)
      entity_id: optional primary key string
      meta: additional JSON-safe dictionary (shallow copied)
    """
    if session is None:
        session = get_db()
    log = AuditLog(
        actor_user_id=actor_user_id,
        action=action,
        entity=entity,
        entity_id=str(entity_id) if entity_id is not None else None,
        meta=dict(meta or {}),
    )
    session.add(log)
    # No commit here; caller's transaction boundary controls durability.
    return log
