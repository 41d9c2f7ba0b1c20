"""Impersonation sessions: read paths see the viewed user, writes stay with the real actor.

State lives in one impersonation_sessions row per real actor so every tab and device of that
actor observes the same session. Expired rows are ignored on read; deleting them is left to
``purge_expired`` run by a background job. A session also ends as soon as its real actor is
deactivated or loses the right to impersonate.
"""
from __future__ import annotations
from datetime import datetime, timedelta
from typing import Optional
from flask import current_app
from sqlalchemy import delete
from sqlalchemy.exc import IntegrityError

from franchise_authz import get_db
from franchise_authz.errors import ImpersonationNotPermitted, ImpersonationTargetInvalid
from franchise_authz.models.impersonation import ImpersonationSession
from franchise_authz.services.audit import add_audit
from franchise_authz.services.policy import can_impersonate, get_user
from franchise_authz.utils.clock import utcnow, as_utc


def _ttl() -> timedelta:
    return timedelta(seconds=int(current_app.config.get('AUTHZ_IMPERSONATION_TTL_SECONDS', 3600)))


def _is_live(row: Optional[ImpersonationSession], now: datetime) -> bool:
    return row is not None and as_utc(row.expires_at) > now


def _actor_may_impersonate(real_actor_id: int, session) -> bool:
    actor = get_user(real_actor_id, session)
    return actor is not None and bool(actor.is_active) and can_impersonate(real_actor_id, session)


def _locked_row(session, real_actor_id: int) -> Optional[ImpersonationSession]:
    return session.get(ImpersonationSession, real_actor_id, with_for_update=True, populate_existing=True)


def _upsert(session, real_actor_id: int, viewed_user_id: int, now: datetime) -> ImpersonationSession:
    row = _locked_row(session, real_actor_id)
    replaced = row.viewed_user_id if _is_live(row, now) else None
    if row is None:
        row = ImpersonationSession(real_actor_id=real_actor_id)
        session.add(row)
    row.viewed_user_id = viewed_user_id
    row.started_at = now
    row.last_seen_at = now
    row.expires_at = now + _ttl()
    add_audit(real_actor_id, 'IMPERSONATION.START', 'User', viewed_user_id,
              {'replaced_user_id': replaced} if replaced is not None else None, session=session)
    session.commit()
    return row


def start(real_actor_id: int, viewed_user_id: int, session=None, now: Optional[datetime] = None) -> ImpersonationSession:
    """Begin viewing as viewed_user_id, replacing any session the actor already had."""
    if session is None:
        session = get_db()
    now = now or utcnow()
    if not _actor_may_impersonate(real_actor_id, session):
        raise ImpersonationNotPermitted()
    if viewed_user_id == real_actor_id:
        raise ImpersonationTargetInvalid('Cannot impersonate yourself')
    target = get_user(viewed_user_id, session)
    if target is None or not target.is_active:
        raise ImpersonationTargetInvalid(f'User {viewed_user_id} does not exist or is inactive')
    try:
        row = _upsert(session, real_actor_id, viewed_user_id, now)
    except IntegrityError:
        # another request of the same actor inserted the row first; replace it instead
        session.rollback()
        current_app.logger.warning('Concurrent impersonation start for user %s, retrying as update', real_actor_id)
        try:
            row = _upsert(session, real_actor_id, viewed_user_id, now)
        except Exception:
            session.rollback()
            raise
    except Exception:
        session.rollback()
        raise
    current_app.logger.info('User %s started viewing as user %s', real_actor_id, viewed_user_id)
    return row


def _terminate(session, row: ImpersonationSession, audit_meta: Optional[dict]):
    viewed = row.viewed_user_id
    try:
        session.delete(row)
        if audit_meta is not None:
            add_audit(row.real_actor_id, 'IMPERSONATION.END', 'User', viewed, audit_meta, session=session)
        session.commit()
    except Exception:
        session.rollback()
        raise
    return viewed


def end(real_actor_id: int, session=None, now: Optional[datetime] = None) -> bool:
    """Return to the actor's own identity.

    Returns False (and writes no audit) when there was no live session; a leftover expired row
    is removed silently.
    """
    if session is None:
        session = get_db()
    row = session.get(ImpersonationSession, real_actor_id, populate_existing=True)
    if row is None:
        return False
    if not _is_live(row, now or utcnow()):
        _terminate(session, row, None)
        return False
    viewed = _terminate(session, row, {})
    current_app.logger.info('User %s stopped viewing as user %s', real_actor_id, viewed)
    return True


def active_session(real_actor_id: int, session=None, now: Optional[datetime] = None) -> Optional[ImpersonationSession]:
    """The live session of real_actor_id, or None.

    A live session whose actor is no longer active or no longer allowed to impersonate is
    ended on the spot.
    """
    if session is None:
        session = get_db()
    row = session.get(ImpersonationSession, real_actor_id, populate_existing=True)
    if not _is_live(row, now or utcnow()):
        return None
    if not _actor_may_impersonate(real_actor_id, session):
        viewed = _terminate(session, row, {'reason': 'actor_revoked'})
        current_app.logger.warning('Ended impersonation of user %s: actor %s lost the capability', viewed, real_actor_id)
        return None
    return row


def effective_identity(real_actor_id: int, session=None, now: Optional[datetime] = None) -> int:
    """Whose view read paths should render: the viewed user while a session is live, else the actor."""
    row = active_session(real_actor_id, session, now)
    return row.viewed_user_id if row is not None else real_actor_id


def heartbeat(real_actor_id: int, session=None, now: Optional[datetime] = None) -> Optional[ImpersonationSession]:
    """Extend a live session's expiry; expired or missing sessions are not revived."""
    if session is None:
        session = get_db()
    now = now or utcnow()
    row = active_session(real_actor_id, session, now)
    if row is None:
        return None
    row.last_seen_at = now
    row.expires_at = now + _ttl()
    session.commit()
    return row


def purge_expired(session=None, now: Optional[datetime] = None) -> int:
    if session is None:
        session = get_db()
    result = session.execute(
        delete(ImpersonationSession)
        .where(ImpersonationSession.expires_at <= (now or utcnow()))
        .execution_options(synchronize_session='fetch')
    )
    session.commit()
    return result.rowcount or 0
