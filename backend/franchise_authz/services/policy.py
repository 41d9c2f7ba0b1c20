from __future__ import annotations
from dataclasses import dataclass, field
from typing import FrozenSet, List, Optional, Set
from sqlalchemy import select

from franchise_authz import get_db
from franchise_authz.constants.permissions import MANAGE_STAFF
from franchise_authz.constants.roles import Role, BRAND_WIDE_ROLES, highest_role, normalize_roles
from franchise_authz.errors import Unauthorized
from franchise_authz.models.authz import User, UserRole, UserBranchAccess


@dataclass(frozen=True)
class BranchScope:
    brand_wide: bool
    branches: FrozenSet[int] = field(default_factory=frozenset)

    def allows(self, branch_id: int) -> bool:
        return self.brand_wide or branch_id in self.branches

    def to_dict(self):
        return {'brand_wide': self.brand_wide, 'branch_ids': sorted(self.branches)}


def raw_roles(user_id: int, session=None) -> List[str]:
    if session is None:
        session = get_db()
    return list(session.execute(select(UserRole.role).where(UserRole.user_id == user_id)).scalars())


def user_roles(user_id: int, session=None) -> Set[Role]:
    """Canonical roles of a user; legacy identifiers are normalized, unknown ones dropped."""
    return normalize_roles(raw_roles(user_id, session))


def user_highest_role(user_id: int, session=None) -> Optional[Role]:
    return highest_role(user_roles(user_id, session))


def get_user(user_id: int, session=None) -> Optional[User]:
    if session is None:
        session = get_db()
    return session.get(User, user_id)


def allowed_branches(user_id: int, session=None) -> BranchScope:
    """Branches a user may address, independent of which keys they hold there."""
    if session is None:
        session = get_db()
    if user_highest_role(user_id, session) in BRAND_WIDE_ROLES:
        return BranchScope(brand_wide=True)
    branch_ids = session.execute(
        select(UserBranchAccess.branch_id).where(UserBranchAccess.user_id == user_id)
    ).scalars().all()
    return BranchScope(brand_wide=False, branches=frozenset(branch_ids))


def assert_branch_access(user_id: int, branch_id: int, session=None):
    if not allowed_branches(user_id, session).allows(branch_id):
        raise Unauthorized(f'Branch {branch_id} is outside the scope of user {user_id}')


def can_manage_permissions(actor_id: int, branch_id: int, session=None) -> bool:
    """Actor needs the branch in scope, and either the admin role or manage_staff granted at that branch."""
    from franchise_authz.services.permission_store import load  # circular: store authorizes through policy
    if session is None:
        session = get_db()
    if not allowed_branches(actor_id, session).allows(branch_id):
        return False
    if user_highest_role(actor_id, session) == Role.ADMIN:
        return True
    return MANAGE_STAFF in load(actor_id, branch_id, session=session)


def assert_can_manage_permissions(actor_id: int, branch_id: int, session=None):
    if not can_manage_permissions(actor_id, branch_id, session):
        raise Unauthorized(f'User {actor_id} may not manage permissions for branch {branch_id}')


def can_impersonate(actor_id: int, session=None) -> bool:
    # Superadmin-only capability, deliberately not a catalogue key
    return user_highest_role(actor_id, session) == Role.ADMIN
