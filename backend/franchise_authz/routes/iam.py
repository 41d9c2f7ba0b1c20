"""HTTP adapter over the authorization core.

Read endpoints resolve "whose view" through g.viewer_id; every mutation passes g.actor_id,
the real authenticated user, to the services.
"""
from flask import Blueprint, request, abort, g

from franchise_authz.constants.permissions import MODULE_LABELS
from franchise_authz.constants.roles import ROLE_ORDER, ROLE_LABELS, Role, highest_role, normalize_role
from franchise_authz.decorators.auth import require_actor
from franchise_authz.errors import Unauthorized
from franchise_authz.models.audit import AuditAction
from franchise_authz.services import catalogue, impersonation, permission_store
from franchise_authz.services.audit import list_permission_audit
from franchise_authz.services.overrides import INHERITED, classify_overrides, count_overrides
from franchise_authz.services.policy import (
    allowed_branches, assert_branch_access, can_impersonate, can_manage_permissions, get_user,
    user_highest_role, user_roles,
)
from franchise_authz.utils.listing import make_list_response, request_pagination

iam_bp = Blueprint('iam', __name__)


def _key_list(data: dict, field: str):
    value = data.get(field)
    if value is None:
        abort(400, description=f'{field} required')
    if not isinstance(value, list) or any(not isinstance(k, str) for k in value):
        abort(400, description=f'{field} must be list[str]')
    return value


def _int_arg(name: str):
    raw = request.args.get(name)
    if raw is None or raw == '':
        return None
    try:
        return int(raw)
    except ValueError:
        abort(400, description=f'{name} must be int')


def _require_manage(viewer_id: int, branch_id: int):
    if not can_manage_permissions(viewer_id, branch_id):
        raise Unauthorized(f'User {viewer_id} may not manage permissions for branch {branch_id}')


def _can_view_user(viewer_id: int, user_id: int) -> bool:
    if viewer_id == user_id:
        return True
    viewer_scope = allowed_branches(viewer_id)
    if viewer_scope.brand_wide:
        return True
    target_scope = allowed_branches(user_id)
    shared = viewer_scope.branches if target_scope.brand_wide else viewer_scope.branches & target_scope.branches
    return any(can_manage_permissions(viewer_id, b) for b in shared)


def _permission_set_json(user_id: int, branch_id: int, keys):
    counts = catalogue.module_counts(keys)
    return {
        'user_id': user_id,
        'branch_id': branch_id,
        'permissions': sorted(keys),
        'modules': {m: {'granted': n, 'total': total} for m, (n, total) in counts.items()},
    }


# --- Identity ---

@iam_bp.get('/auth/me')
@require_actor
def me():
    viewer = g.viewer_id
    user = get_user(viewer)
    roles = user_roles(viewer)
    top = highest_role(roles)
    return {
        'id': g.actor_id,
        'viewing_as': viewer if viewer != g.actor_id else None,
        'user': {'id': viewer, 'name': user.name if user else None, 'email': user.email if user else None},
        'roles': sorted(r.value for r in roles),
        'highest_role': top.value if top else None,
        'branch_scope': allowed_branches(viewer).to_dict(),
        'can_impersonate': can_impersonate(g.actor_id),
    }


@iam_bp.get('/me/branches/<int:branch_id>/permissions')
@require_actor
def my_branch_permissions(branch_id: int):
    assert_branch_access(g.viewer_id, branch_id)
    return _permission_set_json(g.viewer_id, branch_id, permission_store.load(g.viewer_id, branch_id))


# --- Catalogue & hierarchy ---

@iam_bp.get('/permissions')
@require_actor
def list_permissions():
    if request.args.get('grouped') in ('1', 'true'):
        return {
            'data': [
                {'module': module, 'label': MODULE_LABELS.get(module, module), 'permissions': [d.to_dict() for d in defs]}
                for module, defs in catalogue.by_module().items()
            ]
        }
    return {'data': [d.to_dict() for d in catalogue.all_definitions()]}


@iam_bp.get('/roles')
@require_actor
def list_roles():
    return {
        'data': [
            {
                'role': role.value,
                'rank': rank,
                'label': ROLE_LABELS[role],
                'default_permissions': sorted(catalogue.role_defaults(role)),
            }
            for rank, role in enumerate(ROLE_ORDER)
        ]
    }


@iam_bp.put('/roles/<role_name>/permissions')
@require_actor
def put_role_template(role_name: str):
    role = normalize_role(role_name)
    if role is None:
        abort(404, description=f'Unknown role {role_name!r}')
    new_set = _key_list(request.json or {}, 'permissions')
    granted, revoked = catalogue.replace_role_defaults(role, new_set, g.actor_id)
    return {
        'role': role.value,
        'default_permissions': sorted(catalogue.role_defaults(role)),
        'granted': sorted(granted),
        'revoked': sorted(revoked),
    }


# --- Branch scope ---

@iam_bp.get('/users/<int:user_id>/branches')
@require_actor
def user_branches(user_id: int):
    if not _can_view_user(g.viewer_id, user_id):
        raise Unauthorized(f'User {g.viewer_id} may not view user {user_id}')
    return {'user_id': user_id, **allowed_branches(user_id).to_dict()}


# --- Effective permission store ---

@iam_bp.get('/users/<int:user_id>/branches/<int:branch_id>/permissions')
@require_actor
def get_user_branch_permissions(user_id: int, branch_id: int):
    _require_manage(g.viewer_id, branch_id)
    return _permission_set_json(user_id, branch_id, permission_store.load(user_id, branch_id))


@iam_bp.put('/users/<int:user_id>/branches/<int:branch_id>/permissions')
@require_actor
def put_user_branch_permissions(user_id: int, branch_id: int):
    data = request.json or {}
    new_set = _key_list(data, 'permissions')
    snapshot = _key_list(data, 'snapshot')
    result = permission_store.save(user_id, branch_id, g.actor_id, new_set, snapshot)
    return {
        **_permission_set_json(user_id, branch_id, result.permissions),
        'granted': sorted(result.granted),
        'revoked': sorted(result.revoked),
        'audit_entry_ids': [e.id for e in result.audit_entries],
    }


@iam_bp.post('/users/<int:user_id>/branches/<int:branch_id>/permissions/reset')
@require_actor
def reset_user_branch_permissions(user_id: int, branch_id: int):
    data = request.get_json(silent=True) or {}
    if data.get('role') is not None:
        role = normalize_role(data['role'])
        if role is None:
            abort(400, description=f"Unknown role {data['role']!r}")
    else:
        role = user_highest_role(user_id)
    result = permission_store.apply_defaults(user_id, branch_id, role, g.actor_id)
    return {
        **_permission_set_json(user_id, branch_id, result.permissions),
        'role': role.value,
        'granted': sorted(result.granted),
        'revoked': sorted(result.revoked),
        'audit_entry_ids': [e.id for e in result.audit_entries],
    }


@iam_bp.get('/users/<int:user_id>/branches/<int:branch_id>/overrides')
@require_actor
def get_user_overrides(user_id: int, branch_id: int):
    _require_manage(g.viewer_id, branch_id)
    role = user_highest_role(user_id)
    stored = permission_store.load(user_id, branch_id)
    items = classify_overrides(role, stored)
    if request.args.get('all') not in ('1', 'true'):
        items = [i for i in items if i['state'] != INHERITED]
    return {
        'user_id': user_id,
        'branch_id': branch_id,
        'role': role.value if role else None,
        'override_count': count_overrides(role, stored),
        'data': items,
    }


# --- Permission audit history ---

@iam_bp.get('/audit/permissions')
@require_actor
def list_permission_audit_entries():
    branch_id = _int_arg('branch_id')
    if branch_id is not None:
        _require_manage(g.viewer_id, branch_id)
    elif user_highest_role(g.viewer_id) != Role.ADMIN:
        raise Unauthorized('branch_id filter required')
    action = request.args.get('action')
    if action and action not in {a.value for a in AuditAction}:
        abort(400, description=f'Unknown action {action!r}')
    limit, offset = request_pagination()
    filters = {
        'branch_id': branch_id,
        'target_user_id': _int_arg('target_user_id'),
        'actor_user_id': _int_arg('actor_user_id'),
        'action': action or None,
    }
    rows, total = list_permission_audit(filters, limit, offset)
    return make_list_response([r.to_dict() for r in rows], total, limit, offset)


# --- Impersonation ---

def _impersonation_json():
    row = impersonation.active_session(g.actor_id)
    return {
        'active': row is not None,
        'session': row.to_dict() if row is not None else None,
        'effective_user_id': row.viewed_user_id if row is not None else g.actor_id,
    }


@iam_bp.get('/impersonation')
@require_actor
def get_impersonation():
    return _impersonation_json()


@iam_bp.post('/impersonation')
@require_actor
def start_impersonation():
    data = request.json or {}
    target = data.get('user_id')
    if not isinstance(target, int) or isinstance(target, bool):
        abort(400, description='user_id must be int')
    impersonation.start(g.actor_id, target)
    return _impersonation_json(), 201


@iam_bp.delete('/impersonation')
@require_actor
def end_impersonation():
    ended = impersonation.end(g.actor_id)
    return {'ended': ended, **_impersonation_json()}


@iam_bp.post('/impersonation/heartbeat')
@require_actor
def impersonation_heartbeat():
    if impersonation.heartbeat(g.actor_id) is None:
        abort(404, description='No active impersonation session')
    return _impersonation_json()
