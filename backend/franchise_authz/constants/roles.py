"""Fixed role hierarchy, highest authority first.

Never reorder members silently: the order is what ``highest_role`` resolves against
and what ``PermissionDefinition.min_role`` is compared with.
"""
from __future__ import annotations
from enum import Enum
from typing import Iterable, List, Optional, Set


class Role(str, Enum):
    ADMIN = 'admin'
    COORDINATOR = 'coordinator'
    PARTNER = 'partner'
    FRANCHISEE = 'franchisee'
    BRANCH_MANAGER = 'branch_manager'
    CASHIER = 'cashier'
    KITCHEN_DISPLAY = 'kitchen_display'


ROLE_ORDER: List[Role] = list(Role)

# Legacy identifiers still present in user_roles rows from earlier deployments
LEGACY_ALIASES = {
    'manager': Role.BRANCH_MANAGER,
    'employee': Role.CASHIER,
    'superadmin': Role.ADMIN,
    'coordinador': Role.COORDINATOR,
    'socio': Role.PARTNER,
    'franquiciado': Role.FRANCHISEE,
    'encargado': Role.BRANCH_MANAGER,
    'gerente': Role.BRANCH_MANAGER,
    'cajero': Role.CASHIER,
    'empleado': Role.CASHIER,
    'kds': Role.KITCHEN_DISPLAY,
}

# Roles whose scope spans every branch of the brand
BRAND_WIDE_ROLES = frozenset({Role.ADMIN, Role.COORDINATOR, Role.PARTNER})

ROLE_LABELS = {
    Role.ADMIN: 'Superadmin',
    Role.COORDINATOR: 'Coordinator',
    Role.PARTNER: 'Brand partner',
    Role.FRANCHISEE: 'Franchisee',
    Role.BRANCH_MANAGER: 'Branch manager',
    Role.CASHIER: 'Cashier',
    Role.KITCHEN_DISPLAY: 'Kitchen display',
}


def normalize_role(raw) -> Optional[Role]:
    """Map a raw role assignment (canonical or legacy, any case) to a Role; unknown -> None."""
    if isinstance(raw, Role):
        return raw
    if not isinstance(raw, str):
        return None
    value = raw.strip().lower()
    try:
        return Role(value)
    except ValueError:
        return LEGACY_ALIASES.get(value)


def normalize_roles(raw_roles: Iterable) -> Set[Role]:
    out = set()
    for raw in raw_roles or ():
        role = normalize_role(raw)
        if role is not None:
            out.add(role)
    return out


def highest_role(roles: Iterable[Role]) -> Optional[Role]:
    present = set(roles)
    for role in ROLE_ORDER:
        if role in present:
            return role
    return None


def role_rank(role: Role) -> int:
    """0 is the highest authority."""
    return ROLE_ORDER.index(role)


def at_least(role: Optional[Role], minimum: Role) -> bool:
    if role is None:
        return False
    return role_rank(role) <= role_rank(minimum)


def outranks(role: Optional[Role], other: Optional[Role]) -> bool:
    """Strictly higher authority; any role outranks no role."""
    if role is None:
        return False
    if other is None:
        return True
    return role_rank(role) < role_rank(other)


__all__ = [
    'Role', 'ROLE_ORDER', 'LEGACY_ALIASES', 'BRAND_WIDE_ROLES', 'ROLE_LABELS',
    'normalize_role', 'normalize_roles', 'highest_role', 'role_rank', 'at_least', 'outranks',
]
