#!/usr/bin/env python
"""Idempotent seed script for the permission catalogue & role templates.

Usage:
    python backend/scripts/seed_authz.py                          # seed normally
    python backend/scripts/seed_authz.py --show-roles             # print role -> template counts (after ensuring seed)
    python backend/scripts/seed_authz.py --dry-run                # run logic then rollback (no DB changes)
    python backend/scripts/seed_authz.py --validate               # exit 2 when stored templates reference unknown keys
    python backend/scripts/seed_authz.py --purge-expired-sessions # delete expired impersonation rows
"""
from __future__ import annotations
import os, sys, argparse, textwrap
from sqlalchemy import select

# Allow running from repo root
sys.path.append(os.path.abspath('backend'))

from franchise_authz import create_app, get_db, init_db  # noqa: E402
from franchise_authz.constants.permissions import MODULES  # noqa: E402
from franchise_authz.constants.roles import ROLE_ORDER, Role  # noqa: E402
from franchise_authz.models.authz import PermissionDefinition, RoleDefaultPermission, User, UserRole  # noqa: E402
from franchise_authz.services.catalogue import ensure_catalogue, ensure_role_defaults  # noqa: E402
from franchise_authz.services.impersonation import purge_expired  # noqa: E402


def ensure_initial_admin(session):
    admin_email = os.getenv('SEED_ADMIN_EMAIL', 'admin@example.com')
    existing = session.execute(select(User).where(User.email == admin_email)).scalar_one_or_none()
    if existing:
        return None
    user = User(name='Superadmin', email=admin_email)
    session.add(user)
    session.flush()
    session.add(UserRole(user_id=user.id, role=Role.ADMIN.value))
    print(f"[INFO] Created initial admin user {admin_email}.")
    return user


def summarize_roles(session):
    rows = []
    for role in ROLE_ORDER:
        keys = sorted(session.execute(
            select(RoleDefaultPermission.permission_key).where(RoleDefaultPermission.role == role)
        ).scalars().all())
        rows.append((role.value, len(keys), keys[:8]))
    return rows


def print_role_summary(session):
    rows = summarize_roles(session)
    name_w = max(len(r[0]) for r in rows)
    print(f"{'Role'.ljust(name_w)} | Count | Sample (up to 8)")
    print('-' * (name_w + 40))
    for name, cnt, sample in rows:
        print(f"{name.ljust(name_w)} | {str(cnt).rjust(5)} | {', '.join(sample)}")


def validate(session):
    problems = []
    known_modules = set(MODULES)
    keys = set()
    for defn in session.execute(select(PermissionDefinition)).scalars().all():
        keys.add(defn.key)
        if defn.module not in known_modules:
            problems.append(f"Unknown module '{defn.module}' for key: {defn.key}")
        if not defn.key.startswith(f'{defn.module}.'):
            problems.append(f"Key '{defn.key}' is not prefixed by its module '{defn.module}'")
    for row in session.execute(select(RoleDefaultPermission)).scalars().all():
        if row.permission_key not in keys:
            problems.append(f"Role '{row.role.value}' template references missing key: {row.permission_key}")
    return problems


def parse_args():
    p = argparse.ArgumentParser(
        description="Seed permission catalogue & role templates",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=textwrap.dedent("""Examples:\n  seed normally: seed_authz.py\n  dry run: seed_authz.py --dry-run\n  show roles: seed_authz.py --show-roles\n""")
    )
    p.add_argument('--show-roles', action='store_true', help='Print role template counts after seeding')
    p.add_argument('--dry-run', action='store_true', help='Rollback after operations (no commit)')
    p.add_argument('--validate', action='store_true', help='Validate catalogue & role template references; exits non-zero on problems')
    p.add_argument('--purge-expired-sessions', action='store_true', help='Delete expired impersonation sessions')
    return p.parse_args()


def main():
    args = parse_args()
    app = create_app()
    with app.app_context():
        # Bootstrap schema when migrations were not run yet; real environments use alembic upgrade
        init_db()
        session = get_db()
        try:
            created_p = ensure_catalogue(session)
            created_r = ensure_role_defaults(session)
            ensure_initial_admin(session)
            if args.validate:
                problems = validate(session)
                if problems:
                    print('\n[VALIDATION] FAIL:')
                    for p in problems:
                        print(' -', p)
                    session.rollback()
                    sys.exit(2)
                print('[VALIDATION] OK: catalogue & role templates consistent.')
            if args.dry_run:
                session.rollback()
                print(f"[DRY-RUN] (rolled back) Permissions would create: {created_p}, Template rows would create: {created_r}")
            else:
                session.commit()
                print(f"[DONE] Permissions created: {created_p}, Template rows created: {created_r}")
            if args.show_roles:
                print('\nRole Template Summary:')
                print_role_summary(session)
            if args.purge_expired_sessions and not args.dry_run:
                purged = purge_expired(session)
                print(f"[DONE] Expired impersonation sessions purged: {purged}")
        except Exception:
            session.rollback()
            raise
        finally:
            session.close()


if __name__ == '__main__':
    main()
