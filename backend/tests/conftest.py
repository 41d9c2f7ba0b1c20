import os, sys, pytest
# Ensure backend directory is on path so 'franchise_authz' and 'tests' can be imported
ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if ROOT not in sys.path:
    sys.path.insert(0, ROOT)
from franchise_authz import create_app, get_db, init_db
from franchise_authz.models.authz import Base
from franchise_authz.services.catalogue import ensure_catalogue, ensure_role_defaults


@pytest.fixture(scope='session', autouse=True)
def app_instance():
    os.environ['DATABASE_URL'] = 'sqlite+pysqlite:///:memory:'
    app = create_app({'TESTING': True, 'JWT_SECRET_KEY': 'test-secret-key-with-enough-bytes'})
    with app.app_context():
        init_db()
    yield app


@pytest.fixture(autouse=True)
def app_context(app_instance):
    """Fresh tables with the seeded catalogue & role templates for every test."""
    with app_instance.app_context():
        session = get_db()
        session.rollback()
        # Core deletes: audit tables reject ORM-level deletes
        for table in reversed(Base.metadata.sorted_tables):
            session.execute(table.delete())
        session.commit()
        session.expunge_all()
        ensure_catalogue(session)
        ensure_role_defaults(session)
        session.commit()
        yield app_instance


@pytest.fixture()
def client(app_instance):
    return app_instance.test_client()
