"""Central catalogue of permission keys and role templates.

Keys are stable identifiers stored in user_branch_permissions rows and audit entries.
Never rename a key silently: add the new one and retire the old one via migration.
"""
from __future__ import annotations
from dataclasses import dataclass
from typing import Dict, FrozenSet, List

from .roles import Role

# Display order of modules; a module may legitimately have no definitions
MODULES: List[str] = [
    'pos', 'orders', 'kds', 'cash', 'inventory', 'finance', 'hr', 'suppliers', 'config', 'reports', 'users',
]

MODULE_LABELS = {
    'pos': 'Point of sale',
    'orders': 'Orders',
    'kds': 'Kitchen (KDS)',
    'cash': 'Cash register',
    'inventory': 'Inventory & menu',
    'finance': 'Finance',
    'hr': 'Human resources',
    'suppliers': 'Suppliers',
    'config': 'Configuration',
    'reports': 'Reports',
    'users': 'Users',
}

MANAGE_STAFF = 'users.manage_staff'


@dataclass(frozen=True)
class PermissionSpec:
    key: str
    module: str
    name: str
    description: str
    min_role: Role
    scope: str = 'local'


PERMISSION_DEFINITIONS: List[PermissionSpec] = [
    PermissionSpec('pos.operate', 'pos', 'Operate POS', 'Ring up sales at the point of sale', Role.CASHIER),
    PermissionSpec('pos.apply_discount', 'pos', 'Apply discounts', 'Apply manual discounts to a ticket', Role.BRANCH_MANAGER),
    PermissionSpec('orders.view', 'orders', 'View orders', 'See active and historical orders', Role.CASHIER),
    PermissionSpec('orders.create', 'orders', 'Create orders', 'Take new orders from any channel', Role.CASHIER),
    PermissionSpec('orders.cancel', 'orders', 'Cancel orders', 'Cancel an order after it was sent to the kitchen', Role.BRANCH_MANAGER),
    PermissionSpec('kds.view', 'kds', 'View kitchen display', 'See the kitchen order queue', Role.KITCHEN_DISPLAY),
    PermissionSpec('kds.update_status', 'kds', 'Update order status', 'Mark orders as in preparation or ready', Role.KITCHEN_DISPLAY),
    PermissionSpec('cash.open_close', 'cash', 'Open and close register', 'Open and close the cash register shift', Role.CASHIER),
    PermissionSpec('cash.withdraw', 'cash', 'Cash withdrawals', 'Move cash from the register to the safe', Role.BRANCH_MANAGER),
    PermissionSpec('cash.view_safe', 'cash', 'View safe', 'See safe balances and movements', Role.BRANCH_MANAGER),
    PermissionSpec('inventory.view', 'inventory', 'View stock', 'See stock levels and movements', Role.BRANCH_MANAGER),
    PermissionSpec('inventory.count', 'inventory', 'Stock counts', 'Record physical inventory counts', Role.BRANCH_MANAGER),
    PermissionSpec('inventory.toggle_availability', 'inventory', 'Toggle availability', 'Mark menu items as unavailable', Role.CASHIER),
    PermissionSpec('finance.view_pnl', 'finance', 'View P&L', 'See the branch profit and loss statement', Role.FRANCHISEE),
    PermissionSpec('finance.view_invoices', 'finance', 'View invoices', 'See supplier and fiscal invoices', Role.FRANCHISEE),
    PermissionSpec('hr.view_team', 'hr', 'View team', 'See the branch staff list', Role.BRANCH_MANAGER),
    PermissionSpec('hr.edit_schedules', 'hr', 'Edit schedules', 'Edit staff shift schedules', Role.BRANCH_MANAGER),
    PermissionSpec('hr.view_payroll', 'hr', 'View payroll', 'See payroll and salary advances', Role.FRANCHISEE),
    PermissionSpec('hr.clock_in', 'hr', 'Clock in/out', 'Record own attendance', Role.KITCHEN_DISPLAY),
    PermissionSpec('suppliers.view', 'suppliers', 'View suppliers', 'See supplier accounts', Role.BRANCH_MANAGER),
    PermissionSpec('suppliers.pay', 'suppliers', 'Pay suppliers', 'Register payments to suppliers', Role.FRANCHISEE),
    PermissionSpec('config.edit_branch', 'config', 'Edit branch settings', 'Edit opening hours, printers and channels', Role.FRANCHISEE),
    PermissionSpec('config.delivery_zones', 'config', 'Delivery zones', 'Configure delivery zones and fees', Role.COORDINATOR),
    PermissionSpec('reports.sales', 'reports', 'Sales reports', 'See sales reports', Role.BRANCH_MANAGER),
    PermissionSpec('reports.brand', 'reports', 'Brand reports', 'Compare results across branches', Role.PARTNER, scope='brand'),
    PermissionSpec('users.invite', 'users', 'Invite staff', 'Invite new employees to the branch', Role.BRANCH_MANAGER),
    PermissionSpec(MANAGE_STAFF, 'users', 'Manage staff permissions', 'Edit the permission set of branch staff', Role.FRANCHISEE),
]

# Catalogue order
ALL_PERMISSION_KEYS: List[str] = [d.key for d in PERMISSION_DEFINITIONS]

# Template sets used to seed or reset a user's explicit set; never read during access checks
ROLE_DEFAULTS: Dict[Role, FrozenSet[str]] = {
    Role.ADMIN: frozenset(ALL_PERMISSION_KEYS),
    Role.COORDINATOR: frozenset({
        'orders.view', 'inventory.view', 'inventory.toggle_availability', 'config.delivery_zones',
        'reports.sales', 'reports.brand',
    }),
    Role.PARTNER: frozenset({'finance.view_pnl', 'reports.sales', 'reports.brand'}),
    Role.FRANCHISEE: frozenset(k for k in ALL_PERMISSION_KEYS if k not in {'config.delivery_zones', 'reports.brand'}),
    Role.BRANCH_MANAGER: frozenset({
        'pos.operate', 'pos.apply_discount', 'orders.view', 'orders.create', 'orders.cancel',
        'kds.view', 'cash.open_close', 'cash.withdraw', 'cash.view_safe',
        'inventory.view', 'inventory.count', 'inventory.toggle_availability',
        'hr.view_team', 'hr.edit_schedules', 'hr.clock_in', 'suppliers.view', 'reports.sales', 'users.invite',
    }),
    Role.CASHIER: frozenset({'orders.view', 'orders.create'}),
    Role.KITCHEN_DISPLAY: frozenset({'kds.view', 'kds.update_status'}),
}
