"""Display-only comparison of a stored permission set against its role template.

Nothing in here may be called from an access check: the stored set alone decides access.
"""
from __future__ import annotations
from typing import Iterable, List, Optional

from franchise_authz.constants.roles import Role
from franchise_authz.services.catalogue import all_definitions, role_defaults

INHERITED = 'inherited'
GRANT = 'grant'
REVOKE = 'revoke'


def count_overrides(role: Optional[Role], stored: Iterable[str], session=None) -> int:
    """|stored - D| + |D - stored|; without a role every stored key counts."""
    stored = frozenset(stored)
    if role is None:
        return len(stored)
    template = role_defaults(role, session)
    return len(stored - template) + len(template - stored)


def override_state(key: str, template: frozenset, stored: frozenset) -> str:
    if (key in stored) == (key in template):
        return INHERITED
    return GRANT if key in stored else REVOKE


def classify_overrides(role: Optional[Role], stored: Iterable[str], session=None) -> List[dict]:
    """Per catalogue entry: whether the template includes it, whether it is granted, and the override state."""
    stored = frozenset(stored)
    template = role_defaults(role, session)
    items = []
    for defn in all_definitions(session):
        items.append({
            'key': defn.key,
            'module': defn.module,
            'name': defn.name,
            'in_template': defn.key in template,
            'granted': defn.key in stored,
            'state': override_state(defn.key, template, stored),
        })
    return items
