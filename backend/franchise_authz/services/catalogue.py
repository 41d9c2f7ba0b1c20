from __future__ import annotations
from typing import Dict, FrozenSet, Iterable, List, Optional, Tuple
from flask import current_app
from sqlalchemy import select, delete

from franchise_authz import get_db
from franchise_authz.constants.permissions import MODULES, PERMISSION_DEFINITIONS, ROLE_DEFAULTS
from franchise_authz.constants.roles import Role, normalize_role
from franchise_authz.errors import InvalidPermissionKey, NoRoleAssigned, Unauthorized
from franchise_authz.models.authz import PermissionDefinition, RoleDefaultPermission
from franchise_authz.services.audit import add_audit
from franchise_authz.services.policy import user_highest_role


def _module_sort_key(defn: PermissionDefinition):
    try:
        pos = MODULES.index(defn.module)
    except ValueError:
        pos = len(MODULES)
    return (pos, defn.module, defn.key)


def all_definitions(session=None) -> List[PermissionDefinition]:
    """Every catalogue entry, ordered by module display order then key."""
    if session is None:
        session = get_db()
    rows = session.execute(select(PermissionDefinition)).scalars().all()
    return sorted(rows, key=_module_sort_key)


def by_module(session=None) -> Dict[str, List[PermissionDefinition]]:
    """Group definitions by module. Known modules without definitions map to an empty list."""
    grouped: Dict[str, List[PermissionDefinition]] = {m: [] for m in MODULES}
    for defn in all_definitions(session):
        grouped.setdefault(defn.module, []).append(defn)
    return grouped


def catalogue_keys(session=None) -> FrozenSet[str]:
    if session is None:
        session = get_db()
    return frozenset(session.execute(select(PermissionDefinition.key)).scalars().all())


def validate_keys(keys: Iterable[str], session=None) -> FrozenSet[str]:
    keys = frozenset(keys)
    unknown = keys - catalogue_keys(session)
    if unknown:
        raise InvalidPermissionKey(unknown)
    return keys


def module_counts(granted: Iterable[str], session=None) -> Dict[str, Tuple[int, int]]:
    """module -> (granted, total) for the "N of M granted" summaries."""
    granted = set(granted)
    return {
        module: (sum(1 for d in defs if d.key in granted), len(defs))
        for module, defs in by_module(session).items()
    }


def role_defaults(role: Optional[Role], session=None) -> FrozenSet[str]:
    if role is None:
        return frozenset()
    if session is None:
        session = get_db()
    rows = session.execute(
        select(RoleDefaultPermission.permission_key).where(RoleDefaultPermission.role == role)
    ).scalars().all()
    return frozenset(rows)


def ensure_catalogue(session) -> int:
    """Insert missing catalogue entries; existing keys are left untouched. Returns number created."""
    existing = {d.key for d in session.execute(select(PermissionDefinition)).scalars().all()}
    created = 0
    for spec in PERMISSION_DEFINITIONS:
        if spec.key in existing:
            continue
        session.add(PermissionDefinition(
            key=spec.key, module=spec.module, name=spec.name, description=spec.description,
            min_role=spec.min_role, scope=spec.scope,
        ))
        created += 1
    session.flush()
    return created


def ensure_role_defaults(session) -> int:
    """Seed templates for roles that have none yet. Templates already present (possibly edited
    through ``replace_role_defaults``) are left untouched. Returns number of rows created."""
    seeded_roles = set(session.execute(select(RoleDefaultPermission.role).distinct()).scalars().all())
    known = catalogue_keys(session)
    created = 0
    for role, keys in ROLE_DEFAULTS.items():
        unknown = keys - known
        if unknown:
            raise InvalidPermissionKey(unknown)
        if role in seeded_roles:
            continue
        for key in sorted(keys):
            session.add(RoleDefaultPermission(role=role, permission_key=key))
            created += 1
    session.flush()
    return created


def replace_role_defaults(role, keys: Iterable[str], actor_id: int, session=None) -> Tuple[FrozenSet[str], FrozenSet[str]]:
    """Replace the template of one role (admin only). Returns (granted, revoked) against the old template.

    Stored user sets are not touched: a template change only affects later ``apply_defaults`` calls
    and the override counts.
    """
    if session is None:
        session = get_db()
    resolved = normalize_role(role)
    if resolved is None:
        raise NoRoleAssigned(f'Unknown role {role!r}')
    if user_highest_role(actor_id, session) != Role.ADMIN:
        raise Unauthorized(f'User {actor_id} may not edit role templates')
    keys = validate_keys(keys, session)
    current = role_defaults(resolved, session)
    granted, revoked = keys - current, current - keys
    if not granted and not revoked:
        return granted, revoked
    try:
        session.execute(delete(RoleDefaultPermission).where(RoleDefaultPermission.role == resolved))
        session.add_all([RoleDefaultPermission(role=resolved, permission_key=k) for k in sorted(keys)])
        add_audit(actor_id, 'ROLE_TEMPLATE.UPDATE', 'Role', resolved.value,
                  {'granted': sorted(granted), 'revoked': sorted(revoked)}, session=session)
        session.commit()
    except Exception:
        session.rollback()
        raise
    current_app.logger.info('Role template %s updated by %s: +%d -%d',
                            resolved.value, actor_id, len(granted), len(revoked))
    return granted, revoked
