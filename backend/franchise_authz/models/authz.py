from __future__ import annotations
from datetime import datetime
from typing import Optional
from sqlalchemy.orm import declarative_base, Mapped, mapped_column
from sqlalchemy import String, Integer, Boolean, ForeignKey, UniqueConstraint, DateTime, Enum, Text, func, text

from franchise_authz.constants.roles import Role

Base = declarative_base()


def _enum_values(enum_cls):
    return [m.value for m in enum_cls]


RoleColumn = Enum(Role, name='role', native_enum=False, length=32, values_callable=_enum_values)


# --- Host-owned identity tables (read by the core) ---
class User(Base):
    __tablename__ = 'users'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    email: Mapped[str] = mapped_column(String(128), unique=True, index=True, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), server_default=text('CURRENT_TIMESTAMP'), server_onupdate=text('CURRENT_TIMESTAMP'))


class UserRole(Base):
    """Raw role assignment; may hold legacy identifiers, normalized on read."""
    __tablename__ = 'user_roles'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    role: Mapped[str] = mapped_column(String(32), nullable=False)
    __table_args__ = (UniqueConstraint('user_id', 'role', name='uq_user_role'),)


class UserBranchAccess(Base):
    __tablename__ = 'user_branch_access'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False, index=True)
    branch_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    __table_args__ = (UniqueConstraint('user_id', 'branch_id', name='uq_user_branch_access'),)


# --- Catalogue ---
class PermissionDefinition(Base):
    __tablename__ = 'permission_definitions'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    key: Mapped[str] = mapped_column(String(64), unique=True, nullable=False, index=True)
    module: Mapped[str] = mapped_column(String(32), nullable=False, index=True)
    name: Mapped[str] = mapped_column(String(128), nullable=False)
    description: Mapped[Optional[str]] = mapped_column(Text, nullable=True)
    min_role: Mapped[Role] = mapped_column(RoleColumn, nullable=False)
    scope: Mapped[str] = mapped_column(String(16), nullable=False, default='local')

    def to_dict(self):
        return {
            'key': self.key,
            'module': self.module,
            'name': self.name,
            'description': self.description,
            'min_role': self.min_role.value,
            'scope': self.scope,
        }


class RoleDefaultPermission(Base):
    __tablename__ = 'role_default_permissions'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    role: Mapped[Role] = mapped_column(RoleColumn, nullable=False, index=True)
    permission_key: Mapped[str] = mapped_column(ForeignKey('permission_definitions.key', ondelete='CASCADE'), nullable=False)
    __table_args__ = (UniqueConstraint('role', 'permission_key', name='uq_role_default_permission'),)


# --- Effective permission store ---
class UserBranchPermission(Base):
    """One row per granted key; the rows for (user_id, branch_id) are the whole effective set."""
    __tablename__ = 'user_branch_permissions'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    user_id: Mapped[int] = mapped_column(ForeignKey('users.id', ondelete='CASCADE'), nullable=False)
    branch_id: Mapped[int] = mapped_column(Integer, nullable=False)
    permission_key: Mapped[str] = mapped_column(ForeignKey('permission_definitions.key'), nullable=False)
    granted_by: Mapped[int] = mapped_column(Integer, nullable=False)
    granted_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, server_default=func.now())
    __table_args__ = (
        UniqueConstraint('user_id', 'branch_id', 'permission_key', name='uq_user_branch_permission'),
    )
