from __future__ import annotations
from datetime import datetime
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import Integer, ForeignKey, DateTime, CheckConstraint

from .authz import Base


class ImpersonationSession(Base):
    """At most one row per real actor; shared by every tab/device of that actor."""
    __tablename__ = 'impersonation_sessions'
    real_actor_id: Mapped[int] = mapped_column(Integer, ForeignKey('users.id', ondelete='CASCADE'), primary_key=True)
    viewed_user_id: Mapped[int] = mapped_column(Integer, ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    started_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
    expires_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, index=True)
    last_seen_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)

    __table_args__ = (CheckConstraint('real_actor_id <> viewed_user_id', name='ck_impersonation_not_self'),)

    def to_dict(self):
        return {
            'real_actor_id': self.real_actor_id,
            'viewed_user_id': self.viewed_user_id,
            'started_at': self.started_at.isoformat(),
            'expires_at': self.expires_at.isoformat(),
        }
