"""initial authorization core tables

Revision ID: 0001_initial_authz
Revises:
Create Date: 2026-10-18
"""
from __future__ import annotations
from alembic import op
import sqlalchemy as sa
from sqlalchemy import inspect

revision = '0001_initial_authz'
down_revision = None
branch_labels = None
depends_on = None

ROLE_VALUES = ('admin', 'coordinator', 'partner', 'franchisee', 'branch_manager', 'cashier', 'kitchen_display')
AUDIT_ACTIONS = ('grant', 'revoke', 'bulk_grant', 'bulk_revoke')


def _role_column(name):
    return sa.Column(name, sa.Enum(*ROLE_VALUES, name='role', native_enum=False, length=32), nullable=False)


def upgrade():
    bind = op.get_bind(); insp = inspect(bind)

    # Host-owned identity tables; created only when the host schema does not provide them
    if not insp.has_table('users'):
        op.create_table('users',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('name', sa.String(length=128), nullable=False),
            sa.Column('email', sa.String(length=128), nullable=False, unique=True),
            sa.Column('is_active', sa.Boolean(), nullable=False, server_default=sa.text('1')),
            sa.Column('updated_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
        )
        op.create_index('ix_users_email', 'users', ['email'])

    if not insp.has_table('user_roles'):
        op.create_table('user_roles',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
            sa.Column('role', sa.String(length=32), nullable=False),
            sa.UniqueConstraint('user_id', 'role', name='uq_user_role'),
        )
        op.create_index('ix_user_roles_user_id', 'user_roles', ['user_id'])

    if not insp.has_table('user_branch_access'):
        op.create_table('user_branch_access',
            sa.Column('id', sa.Integer(), primary_key=True),
            sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
            sa.Column('branch_id', sa.Integer(), nullable=False),
            sa.UniqueConstraint('user_id', 'branch_id', name='uq_user_branch_access'),
        )
        op.create_index('ix_user_branch_access_user_id', 'user_branch_access', ['user_id'])
        op.create_index('ix_user_branch_access_branch_id', 'user_branch_access', ['branch_id'])

    op.create_table('permission_definitions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('key', sa.String(length=64), nullable=False, unique=True),
        sa.Column('module', sa.String(length=32), nullable=False),
        sa.Column('name', sa.String(length=128), nullable=False),
        sa.Column('description', sa.Text(), nullable=True),
        _role_column('min_role'),
        sa.Column('scope', sa.String(length=16), nullable=False, server_default='local'),
    )
    op.create_index('ix_permission_definitions_key', 'permission_definitions', ['key'])
    op.create_index('ix_permission_definitions_module', 'permission_definitions', ['module'])

    op.create_table('role_default_permissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        _role_column('role'),
        sa.Column('permission_key', sa.String(length=64),
                  sa.ForeignKey('permission_definitions.key', ondelete='CASCADE'), nullable=False),
        sa.UniqueConstraint('role', 'permission_key', name='uq_role_default_permission'),
    )
    op.create_index('ix_role_default_permissions_role', 'role_default_permissions', ['role'])

    op.create_table('user_branch_permissions',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('permission_key', sa.String(length=64), sa.ForeignKey('permission_definitions.key'), nullable=False),
        sa.Column('granted_by', sa.Integer(), nullable=False),
        sa.Column('granted_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
        sa.UniqueConstraint('user_id', 'branch_id', 'permission_key', name='uq_user_branch_permission'),
    )

    op.create_table('permission_audit_log',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=False),
        sa.Column('target_user_id', sa.Integer(), nullable=False),
        sa.Column('branch_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.Enum(*AUDIT_ACTIONS, name='permission_audit_action', native_enum=False, length=16), nullable=False),
        sa.Column('permission_keys', sa.JSON(), nullable=False),
        sa.Column('created_at', sa.DateTime(timezone=True), nullable=False, server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    for col in ('actor_user_id', 'target_user_id', 'branch_id'):
        op.create_index(f'ix_permission_audit_log_{col}', 'permission_audit_log', [col])

    op.create_table('audit_logs',
        sa.Column('id', sa.Integer(), primary_key=True),
        sa.Column('actor_user_id', sa.Integer(), nullable=False),
        sa.Column('action', sa.String(length=64), nullable=False),
        sa.Column('entity', sa.String(length=64), nullable=True),
        sa.Column('entity_id', sa.String(length=64), nullable=True),
        sa.Column('meta', sa.JSON(), nullable=True),
        sa.Column('created_at', sa.DateTime(timezone=True), server_default=sa.text('CURRENT_TIMESTAMP')),
    )
    op.create_index('ix_audit_logs_actor_user_id', 'audit_logs', ['actor_user_id'])
    op.create_index('ix_audit_logs_action', 'audit_logs', ['action'])

    op.create_table('impersonation_sessions',
        sa.Column('real_actor_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), primary_key=True),
        sa.Column('viewed_user_id', sa.Integer(), sa.ForeignKey('users.id', ondelete='CASCADE'), nullable=False),
        sa.Column('started_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('expires_at', sa.DateTime(timezone=True), nullable=False),
        sa.Column('last_seen_at', sa.DateTime(timezone=True), nullable=False),
        sa.CheckConstraint('real_actor_id <> viewed_user_id', name='ck_impersonation_not_self'),
    )
    op.create_index('ix_impersonation_sessions_expires_at', 'impersonation_sessions', ['expires_at'])


def downgrade():
    for table in ['impersonation_sessions', 'audit_logs', 'permission_audit_log', 'user_branch_permissions',
                  'role_default_permissions', 'permission_definitions']:
        op.drop_table(table)
    # users / user_roles / user_branch_access belong to the host schema and are left in place
