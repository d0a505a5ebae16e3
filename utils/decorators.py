from __future__ import annotations
import logging
from functools import wraps
from flask import request, g, abort

from api.extensions import get_token_issuer
from models.user import Role
from utils.exceptions import TokenError

logger = logging.getLogger(__name__)


def _bearer_token() -> str | None:
    auth = request.headers.get("Authorization", "")
    scheme, _, token = auth.partition(" ")
    if scheme != "Bearer":
        return None
    return token.strip() or None


def jwt_required():
    """
    Require a valid access token.
    - no bearer token -> 401
    - bad signature, wrong kind or expired -> 403
    On success the decoded claims are in g.current_claims.
    """
    def decorator(fn):
        @wraps(fn)
        def wrapper(*args, **kwargs):
            token = _bearer_token()
            if token is None:
                abort(401, description="Access token required")
            try:
                claims = get_token_issuer().decode_access_token(token)
            except TokenError as exc:
                logger.debug("Rejected access token: %s", exc)
                abort(403, description="Invalid or expired token")

            g.current_claims = claims
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def roles_required(required_roles: list[str]):
    """
    Allow access if the token's role is one of required_roles; 403 otherwise.
    """
    req = {getattr(r, "value", r) for r in required_roles or []}
    def decorator(fn):
        @wraps(fn)
        @jwt_required()
        def wrapper(*args, **kwargs):
            if g.current_claims.role not in req:
                abort(403, description="Access denied: insufficient role")
            return fn(*args, **kwargs)

        return wrapper

    return decorator


def admin_required():
    return roles_required([Role.ADMIN])
