from flask import Flask
from werkzeug.exceptions import HTTPException
from flask_jwt_extended import JWTManager
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool
from sqlalchemy.orm import sessionmaker, scoped_session
from dotenv import load_dotenv
from typing import Optional, Dict, Any

load_dotenv()

db_engine = None
SessionLocal = None
jwt = JWTManager()


def _make_engine(db_url: str):
    if db_url.endswith(':memory:'):
        # one shared connection, otherwise every session sees its own empty in-memory database
        return create_engine(db_url, future=True, connect_args={"check_same_thread": False}, poolclass=StaticPool)
    return create_engine(db_url, future=True)


def _error_body(status: int, title: str, detail, code: Optional[str] = None):
    error = {'status': status, 'title': title, 'detail': detail}
    if code:
        error['code'] = code
    return {'error': error}, status


def create_app(config: Optional[Dict[str, Any]] = None):
    """App factory: settings from env (+ optional overrides), DB session registry, JWT, /iam blueprint."""
    global db_engine, SessionLocal
    from .config.settings import load_settings
    from .errors import AuthzError
    from .routes.iam import iam_bp

    app = Flask(__name__)
    app.config.update(load_settings())
    if config:
        app.config.update(config)

    db_engine = _make_engine(app.config['DATABASE_URL'])
    SessionLocal = scoped_session(sessionmaker(bind=db_engine, expire_on_commit=False, autoflush=False))

    jwt.init_app(app)
    app.register_blueprint(iam_bp, url_prefix='/iam')

    @app.teardown_appcontext
    def remove_session(exc):  # type: ignore
        SessionLocal.remove()

    @app.route('/healthz')
    def health():
        return {'status': 'ok'}

    @app.errorhandler(Exception)
    def handle_errors(e):  # type: ignore
        if isinstance(e, AuthzError):
            if e.status >= 500:
                app.logger.error('%s: %s', e.code, e.detail)
            return e.to_payload(), e.status
        if isinstance(e, HTTPException):
            return _error_body(e.code, e.name, e.description)
        app.logger.exception('Unhandled exception')
        return _error_body(500, 'Internal Server Error', 'Unexpected error')

    return app


def init_db(engine=None):
    """Create all tables (bootstrap / tests); production schemas go through alembic."""
    from .models.authz import Base
    from .models import audit, impersonation  # noqa: F401  register tables on Base.metadata
    Base.metadata.create_all(engine or db_engine)


def get_db():
    return SessionLocal()
