from franchise_authz import get_db
from franchise_authz.constants.permissions import MODULES, PERMISSION_DEFINITIONS
from franchise_authz.models.audit import PermissionAuditLogEntry
from tests.test_utils_seed import seed_user, jwt_headers

BRANCH = 1


def _staff_and_admin():
    admin = seed_user('admin@example.com', roles=['admin'])
    staff = seed_user('staff@example.com', roles=['cashier'], branch_ids=[BRANCH])
    return admin, staff


def test_requires_token(client):
    resp = client.get('/iam/permissions')
    assert resp.status_code == 401


def test_catalogue_flat_and_grouped(client):
    admin, _ = _staff_and_admin()
    flat = client.get('/iam/permissions', headers=jwt_headers(admin))
    assert flat.status_code == 200
    assert len(flat.get_json()['data']) == len(PERMISSION_DEFINITIONS)
    grouped = client.get('/iam/permissions?grouped=1', headers=jwt_headers(admin)).get_json()['data']
    assert [g['module'] for g in grouped] == MODULES
    reports = next(g for g in grouped if g['module'] == 'reports')
    assert {p['key']: p['scope'] for p in reports['permissions']}['reports.brand'] == 'brand'


def test_roles_listing(client):
    admin, _ = _staff_and_admin()
    data = client.get('/iam/roles', headers=jwt_headers(admin)).get_json()['data']
    assert data[0]['role'] == 'admin' and data[0]['rank'] == 0
    cashier = next(r for r in data if r['role'] == 'cashier')
    assert cashier['default_permissions'] == ['orders.create', 'orders.view']


def test_me_reports_scope(client):
    _, staff = _staff_and_admin()
    body = client.get('/iam/auth/me', headers=jwt_headers(staff)).get_json()
    assert body['id'] == staff.id
    assert body['viewing_as'] is None
    assert body['roles'] == ['cashier']
    assert body['highest_role'] == 'cashier'
    assert body['branch_scope'] == {'brand_wide': False, 'branch_ids': [BRANCH]}
    assert body['can_impersonate'] is False


def test_edit_flow_through_api(client):
    admin, staff = _staff_and_admin()
    url = f'/iam/users/{staff.id}/branches/{BRANCH}/permissions'
    headers = jwt_headers(admin)

    reset = client.post(url + '/reset', headers=headers)
    assert reset.status_code == 200, reset.get_json()
    body = reset.get_json()
    assert body['role'] == 'cashier'
    assert body['permissions'] == ['orders.create', 'orders.view']
    assert body['modules']['orders'] == {'granted': 2, 'total': 3}

    loaded = client.get(url, headers=headers).get_json()
    snapshot = loaded['permissions']
    put = client.put(url, json={'permissions': ['orders.view'], 'snapshot': snapshot}, headers=headers)
    assert put.status_code == 200, put.get_json()
    assert put.get_json()['revoked'] == ['orders.create']
    assert len(put.get_json()['audit_entry_ids']) == 1

    overrides = client.get(f'/iam/users/{staff.id}/branches/{BRANCH}/overrides', headers=headers).get_json()
    assert overrides['override_count'] == 1
    assert [(i['key'], i['state']) for i in overrides['data']] == [('orders.create', 'revoke')]

    # stale snapshot
    stale = client.put(url, json={'permissions': [], 'snapshot': snapshot}, headers=headers)
    assert stale.status_code == 409
    assert stale.get_json()['error']['code'] == 'ConcurrentModification'


def test_put_validation(client):
    admin, staff = _staff_and_admin()
    url = f'/iam/users/{staff.id}/branches/{BRANCH}/permissions'
    missing = client.put(url, json={'permissions': []}, headers=jwt_headers(admin))
    assert missing.status_code == 400
    bad_type = client.put(url, json={'permissions': 'orders.view', 'snapshot': []}, headers=jwt_headers(admin))
    assert bad_type.status_code == 400
    unknown = client.put(url, json={'permissions': ['orders.view', 'nope.nope'], 'snapshot': []}, headers=jwt_headers(admin))
    assert unknown.status_code == 400
    assert unknown.get_json()['error']['code'] == 'InvalidPermissionKey'


def test_reset_without_role_conflicts(client):
    admin = seed_user('admin@example.com', roles=['admin'])
    roleless = seed_user('roleless@example.com', branch_ids=[BRANCH])
    resp = client.post(f'/iam/users/{roleless.id}/branches/{BRANCH}/permissions/reset', headers=jwt_headers(admin))
    assert resp.status_code == 409
    assert resp.get_json()['error']['code'] == 'NoRoleAssigned'
    explicit = client.post(f'/iam/users/{roleless.id}/branches/{BRANCH}/permissions/reset',
                           json={'role': 'kds'}, headers=jwt_headers(admin))
    assert explicit.status_code == 200
    assert explicit.get_json()['permissions'] == ['kds.update_status', 'kds.view']
    bad = client.post(f'/iam/users/{roleless.id}/branches/{BRANCH}/permissions/reset',
                      json={'role': 'janitor'}, headers=jwt_headers(admin))
    assert bad.status_code == 400


def test_staff_cannot_edit_permissions(client):
    _, staff = _staff_and_admin()
    resp = client.put(f'/iam/users/{staff.id}/branches/{BRANCH}/permissions',
                      json={'permissions': ['orders.view'], 'snapshot': []}, headers=jwt_headers(staff))
    assert resp.status_code == 403
    assert resp.get_json()['error']['code'] == 'Unauthorized'


def test_my_branch_permissions(client):
    staff = seed_user('me@example.com', roles=['cashier'], branch_ids=[BRANCH],
                      permissions={BRANCH: {'orders.view'}})
    ok = client.get(f'/iam/me/branches/{BRANCH}/permissions', headers=jwt_headers(staff))
    assert ok.status_code == 200
    assert ok.get_json()['permissions'] == ['orders.view']
    other = client.get('/iam/me/branches/2/permissions', headers=jwt_headers(staff))
    assert other.status_code == 403


def test_user_branches_visibility(client):
    admin, staff = _staff_and_admin()
    outsider = seed_user('outsider@example.com', roles=['cashier'], branch_ids=[7])
    assert client.get(f'/iam/users/{staff.id}/branches', headers=jwt_headers(admin)).get_json()['branch_ids'] == [BRANCH]
    assert client.get(f'/iam/users/{staff.id}/branches', headers=jwt_headers(staff)).status_code == 200
    assert client.get(f'/iam/users/{staff.id}/branches', headers=jwt_headers(outsider)).status_code == 403


def test_permission_audit_history(client):
    admin, staff = _staff_and_admin()
    url = f'/iam/users/{staff.id}/branches/{BRANCH}/permissions'
    client.put(url, json={'permissions': ['orders.view'], 'snapshot': []}, headers=jwt_headers(admin))
    client.put(url, json={'permissions': ['kds.view'], 'snapshot': ['orders.view']}, headers=jwt_headers(admin))

    resp = client.get(f'/iam/audit/permissions?branch_id={BRANCH}', headers=jwt_headers(admin))
    assert resp.status_code == 200
    body = resp.get_json()
    assert body['pagination']['total'] == 3
    # newest first
    assert [e['action'] for e in body['data']] == ['revoke', 'grant', 'grant']
    assert [e['permission_keys'] for e in body['data']] == [['orders.view'], ['kds.view'], ['orders.view']]

    etag = resp.headers['ETag']
    cached = client.get(f'/iam/audit/permissions?branch_id={BRANCH}',
                        headers={**jwt_headers(admin), 'If-None-Match': etag})
    assert cached.status_code == 304

    revokes = client.get(f'/iam/audit/permissions?branch_id={BRANCH}&action=revoke', headers=jwt_headers(admin)).get_json()
    assert revokes['pagination']['total'] == 1
    bad_action = client.get('/iam/audit/permissions?action=explode', headers=jwt_headers(admin))
    assert bad_action.status_code == 400
    assert client.get('/iam/audit/permissions', headers=jwt_headers(staff)).status_code == 403
    session = get_db()
    assert session.query(PermissionAuditLogEntry).count() == 3


def test_role_template_edit(client):
    admin, staff = _staff_and_admin()
    url = '/iam/roles/cashier/permissions'
    resp = client.put(url, json={'permissions': ['orders.view', 'kds.view']}, headers=jwt_headers(admin))
    assert resp.status_code == 200, resp.get_json()
    body = resp.get_json()
    assert body['default_permissions'] == ['kds.view', 'orders.view']
    assert body['granted'] == ['kds.view']
    assert body['revoked'] == ['orders.create']
    roles = client.get('/iam/roles', headers=jwt_headers(admin)).get_json()['data']
    assert next(r for r in roles if r['role'] == 'cashier')['default_permissions'] == ['kds.view', 'orders.view']

    assert client.put(url, json={'permissions': ['orders.view']}, headers=jwt_headers(staff)).status_code == 403
    assert client.put(url, json={'permissions': ['orders.nope']}, headers=jwt_headers(admin)).status_code == 400
    assert client.put(url, json={}, headers=jwt_headers(admin)).status_code == 400
    assert client.put('/iam/roles/janitor/permissions', json={'permissions': []},
                      headers=jwt_headers(admin)).status_code == 404
