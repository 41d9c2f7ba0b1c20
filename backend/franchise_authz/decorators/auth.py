from functools import wraps
from flask import g
from flask_jwt_extended import verify_jwt_in_request, get_jwt_identity
from franchise_authz.services.impersonation import effective_identity


def require_actor(fn):
    """Resolve both identities for the request.

    g.actor_id  - the authenticated real actor; every write and audit entry uses it.
    g.viewer_id - whose view read paths render (the impersonated user while a session is live).
    """
    @wraps(fn)
    def wrapper(*args, **kwargs):
        verify_jwt_in_request()
        # Identity stored as string, cast back to int for DB lookup
        g.actor_id = int(get_jwt_identity())
        g.viewer_id = effective_identity(g.actor_id)
        return fn(*args, **kwargs)
    return wrapper
