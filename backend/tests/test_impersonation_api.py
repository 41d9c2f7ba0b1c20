from sqlalchemy import select
from franchise_authz import get_db
from franchise_authz.models.audit import PermissionAuditLogEntry
from franchise_authz.models.authz import UserBranchPermission
from tests.test_utils_seed import seed_user, jwt_headers

BRANCH = 1


def _people():
    admin = seed_user('root@example.com', roles=['admin'])
    owner = seed_user('owner@example.com', roles=['franchisee'], branch_ids=[BRANCH],
                      permissions={BRANCH: {'users.manage_staff', 'finance.view_pnl'}})
    cashier = seed_user('cashier@example.com', roles=['cashier'], branch_ids=[BRANCH])
    return admin, owner, cashier


def test_reads_follow_viewed_user(client):
    admin, owner, _ = _people()
    headers = jwt_headers(admin)
    start = client.post('/iam/impersonation', json={'user_id': owner.id}, headers=headers)
    assert start.status_code == 201, start.get_json()
    assert start.get_json()['effective_user_id'] == owner.id

    me = client.get('/iam/auth/me', headers=headers).get_json()
    assert me['id'] == admin.id
    assert me['viewing_as'] == owner.id
    assert me['roles'] == ['franchisee']
    assert me['branch_scope'] == {'brand_wide': False, 'branch_ids': [BRANCH]}
    # capability stays with the real actor
    assert me['can_impersonate'] is True

    mine = client.get(f'/iam/me/branches/{BRANCH}/permissions', headers=headers).get_json()
    assert mine['permissions'] == ['finance.view_pnl', 'users.manage_staff']
    # viewed user has no access to branch 2 even though the admin would
    assert client.get('/iam/me/branches/2/permissions', headers=headers).status_code == 403


def test_writes_attributed_to_real_actor(client):
    admin, owner, cashier = _people()
    headers = jwt_headers(admin)
    client.post('/iam/impersonation', json={'user_id': owner.id}, headers=headers)
    resp = client.put(f'/iam/users/{cashier.id}/branches/{BRANCH}/permissions',
                      json={'permissions': ['orders.view'], 'snapshot': []}, headers=headers)
    assert resp.status_code == 200, resp.get_json()
    session = get_db()
    entry = session.execute(select(PermissionAuditLogEntry)).scalars().one()
    assert entry.actor_user_id == admin.id
    row = session.execute(select(UserBranchPermission).where(UserBranchPermission.user_id == cashier.id)).scalars().one()
    assert row.granted_by == admin.id


def test_viewing_as_cashier_hides_admin_screens(client):
    admin, _, cashier = _people()
    headers = jwt_headers(admin)
    client.post('/iam/impersonation', json={'user_id': cashier.id}, headers=headers)
    resp = client.get(f'/iam/users/{cashier.id}/branches/{BRANCH}/permissions', headers=headers)
    assert resp.status_code == 403


def test_end_and_status(client):
    admin, owner, _ = _people()
    headers = jwt_headers(admin)
    assert client.get('/iam/impersonation', headers=headers).get_json()['active'] is False
    client.post('/iam/impersonation', json={'user_id': owner.id}, headers=headers)
    status = client.get('/iam/impersonation', headers=headers).get_json()
    assert status['active'] is True
    assert status['session']['viewed_user_id'] == owner.id
    assert client.post('/iam/impersonation/heartbeat', headers=headers).status_code == 200
    ended = client.delete('/iam/impersonation', headers=headers).get_json()
    assert ended['ended'] is True and ended['active'] is False
    assert client.get('/iam/auth/me', headers=headers).get_json()['viewing_as'] is None
    assert client.post('/iam/impersonation/heartbeat', headers=headers).status_code == 404


def test_start_rejections(client):
    admin, owner, cashier = _people()
    denied = client.post('/iam/impersonation', json={'user_id': cashier.id}, headers=jwt_headers(owner))
    assert denied.status_code == 403
    assert denied.get_json()['error']['code'] == 'ImpersonationNotPermitted'
    self_target = client.post('/iam/impersonation', json={'user_id': admin.id}, headers=jwt_headers(admin))
    assert self_target.status_code == 400
    assert self_target.get_json()['error']['code'] == 'ImpersonationTargetInvalid'
    bad_body = client.post('/iam/impersonation', json={'user_id': 'x'}, headers=jwt_headers(admin))
    assert bad_body.status_code == 400


def test_reset_while_impersonating_is_attributed_to_admin(client):
    admin, owner, cashier = _people()
    headers = jwt_headers(admin)
    client.post('/iam/impersonation', json={'user_id': owner.id}, headers=headers)
    resp = client.post(f'/iam/users/{cashier.id}/branches/{BRANCH}/permissions/reset', headers=headers)
    assert resp.status_code == 200, resp.get_json()
    assert resp.get_json()['permissions'] == ['orders.create', 'orders.view']

    session = get_db()
    entries = session.execute(select(PermissionAuditLogEntry)
                              .where(PermissionAuditLogEntry.target_user_id == cashier.id)).scalars().all()
    assert len(entries) == 1
    assert entries[0].actor_user_id == admin.id
    granted_by = set(session.execute(select(UserBranchPermission.granted_by)
                                     .where(UserBranchPermission.user_id == cashier.id)).scalars())
    assert granted_by == {admin.id}
