from __future__ import annotations
from datetime import datetime
from enum import Enum as PyEnum
from typing import List, Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, String, JSON, DateTime, Enum, event, func

from .authz import Base, _enum_values  # reuse same metadata


class AuditAction(str, PyEnum):
    GRANT = 'grant'
    REVOKE = 'revoke'
    BULK_GRANT = 'bulk_grant'
    BULK_REVOKE = 'bulk_revoke'


class PermissionAuditLogEntry(Base):
    """Append-only history of changes to user_branch_permissions."""
    __tablename__ = 'permission_audit_log'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    actor_user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    target_user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    branch_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    action: Mapped[AuditAction] = mapped_column(
        Enum(AuditAction, name='permission_audit_action', native_enum=False, length=16, values_callable=_enum_values),
        nullable=False,
    )
    permission_keys: Mapped[List[str]] = mapped_column(JSON, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())

    def to_dict(self):
        return {
            'id': self.id,
            'actor_user_id': self.actor_user_id,
            'target_user_id': self.target_user_id,
            'branch_id': self.branch_id,
            'action': self.action.value,
            'permission_keys': list(self.permission_keys or []),
            'created_at': self.created_at.isoformat() if self.created_at else None,
        }


class AuditLog(Base):
    """Generic activity trail for events other than user permission changes (impersonation, role templates)."""
    __tablename__ = 'audit_logs'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    actor_user_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    action: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    entity: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    entity_id: Mapped[Optional[str]] = mapped_column(String(64), nullable=True)
    meta: Mapped[dict] = mapped_column(JSON, default=dict)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=func.now())


class ImmutableAuditEntry(Exception):
    pass


@event.listens_for(PermissionAuditLogEntry, 'before_update')
@event.listens_for(AuditLog, 'before_update')
def _reject_update(mapper, connection, target):
    raise ImmutableAuditEntry(f'{type(target).__name__} rows are append-only')


@event.listens_for(PermissionAuditLogEntry, 'before_delete')
@event.listens_for(AuditLog, 'before_delete')
def _reject_delete(mapper, connection, target):
    raise ImmutableAuditEntry(f'{type(target).__name__} rows are append-only')
