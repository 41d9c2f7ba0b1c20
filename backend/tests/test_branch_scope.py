import pytest
from franchise_authz.errors import Unauthorized
from franchise_authz.services.policy import (
    allowed_branches, assert_branch_access, can_manage_permissions, can_impersonate,
)
from tests.test_utils_seed import seed_user


@pytest.mark.parametrize('role', ['admin', 'coordinator', 'partner', 'socio'])
def test_brand_wide_roles_see_every_branch(role):
    user = seed_user(f'{role}@example.com', roles=[role])
    scope = allowed_branches(user.id)
    assert scope.brand_wide
    assert scope.allows(1) and scope.allows(9999)
    assert scope.to_dict() == {'brand_wide': True, 'branch_ids': []}


def test_local_roles_limited_to_assigned_branches():
    user = seed_user('manager@example.com', roles=['branch_manager'], branch_ids=[3, 1])
    scope = allowed_branches(user.id)
    assert not scope.brand_wide
    assert scope.branches == {1, 3}
    assert scope.to_dict()['branch_ids'] == [1, 3]
    assert not scope.allows(2)


def test_scope_does_not_depend_on_permission_rows():
    # Keys stored for a branch do not widen the scope
    user = seed_user('k@example.com', roles=['cashier'], branch_ids=[1], permissions={2: {'orders.view'}})
    assert allowed_branches(user.id).branches == {1}
    with pytest.raises(Unauthorized):
        assert_branch_access(user.id, 2)
    assert_branch_access(user.id, 1)


def test_user_without_role_or_branches_has_empty_scope():
    user = seed_user('empty@example.com')
    scope = allowed_branches(user.id)
    assert not scope.brand_wide
    assert scope.branches == frozenset()


def test_can_manage_permissions_rules():
    admin = seed_user('a@example.com', roles=['admin'])
    coordinator = seed_user('c@example.com', roles=['coordinator'])
    manager = seed_user('m@example.com', roles=['branch_manager'], branch_ids=[1, 2],
                        permissions={1: {'users.manage_staff'}})
    assert can_manage_permissions(admin.id, 42)
    # brand-wide scope alone is not enough without the key
    assert not can_manage_permissions(coordinator.id, 1)
    assert can_manage_permissions(manager.id, 1)
    assert not can_manage_permissions(manager.id, 2)
    assert not can_manage_permissions(manager.id, 5)


def test_only_admin_can_impersonate():
    admin = seed_user('a@example.com', roles=['superadmin'])
    franchisee = seed_user('f@example.com', roles=['franchisee'], branch_ids=[1],
                           permissions={1: {'users.manage_staff'}})
    assert can_impersonate(admin.id)
    assert not can_impersonate(franchisee.id)
