"""
Authentication blueprint:
- POST   /auth/register
- POST   /auth/login
- POST   /auth/refresh
- POST   /auth/logout            (all devices)
- GET    /auth/sessions
- DELETE /auth/sessions/<id>

Access tokens are short-lived JWTs checked purely by signature and
expiry. Refresh tokens are JWTs signed with a separate secret and also
recorded in the session store; each one can be exchanged exactly once
(rotation), after which it is revoked.
"""
from __future__ import annotations

import logging

from flask import Blueprint, request, jsonify, g, abort

from models.schemas.user import RegisterSchema, LoginSchema, RefreshSchema, UserOutSchema
from models.schemas.session import SessionOutSchema
from utils.decorators import jwt_required
from utils.exceptions import TokenError
from utils.security import AccessTokenClaims

from .extensions import get_credentials, get_session_store, get_storage, get_token_issuer

logger = logging.getLogger(__name__)

bp = Blueprint("auth", __name__)

register_schema = RegisterSchema()
login_schema = LoginSchema()
refresh_schema = RefreshSchema()
user_out_schema = UserOutSchema()
session_list_schema = SessionOutSchema(many=True)


def _client_info() -> tuple[str | None, str | None]:
    return request.remote_addr or None, request.headers.get("User-Agent") or None


def _start_session(user) -> dict:
    """Issue an access/refresh pair for user and record the refresh token."""
    issuer = get_token_issuer()
    claims = AccessTokenClaims.for_user(user)
    access = issuer.issue_access_token(claims)
    refresh = issuer.issue_refresh_token(claims)
    ip_address, user_agent = _client_info()
    get_session_store().create(
        user_id=claims.user_id,
        token=refresh.token,
        expires_at=refresh.expires_at,
        ip_address=ip_address,
        user_agent=user_agent,
    )
    return {"accessToken": access.token, "refreshToken": refresh.token}


@bp.post("/register")
def register():
    """
    Register a new user and open a first session.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      - in: body
        name: body
        schema:
          type: object
          required: [email, password]
          properties:
            email: { type: string }
            password: { type: string }
            name: { type: string }
    responses:
      201:
        description: Created (returns user and token pair)
      400:
        description: Missing email or password
      409:
        description: Email already registered
    """
    data = register_schema.load(request.get_json(silent=True) or {})
    email = data.get("email")
    password = data.get("password")
    if not email or not password:
        abort(400, description="Email and password are required")

    # user row and first session commit together
    with get_storage().transaction():
        user = get_credentials().register(email, password, data.get("name"))
        tokens = _start_session(user)

    return jsonify(
        {
            "message": "User registered successfully",
            "user": user_out_schema.dump(user),
            **tokens,
        }
    ), 201


@bp.post("/login")
def login():
    """
    Login: return the user and a new access/refresh token pair
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           required: [email, password]
           properties:
             email: { type: string }
             password: { type: string }
    responses:
      200:
        description: OK (returns tokens)
      400:
        description: Missing email or password
      401:
        description: Invalid credentials
    """
    data = login_schema.load(request.get_json(silent=True) or {})
    email = data.get("email")
    password = data.get("password")
    if not email or not password:
        abort(400, description="Email and password are required")

    user = get_credentials().verify_login(email, password)
    tokens = _start_session(user)

    return jsonify(
        {
            "message": "Login successful",
            "user": user_out_schema.dump(user),
            **tokens,
        }
    ), 200


@bp.post("/refresh")
def refresh():
    """
    Exchange a refresh token for a new access/refresh pair (rotation).
    The presented refresh token is revoked; replaying it fails with 403.
    ---
    tags:
      - Auth
    consumes:
      - application/json
    parameters:
      -  in: body
         name: body
         schema:
           type: object
           required: [refreshToken]
           properties:
             refreshToken: { type: string }
    responses:
      200:
        description: OK (returns new token pair)
      400:
        description: Missing refresh token
      403:
        description: Invalid, expired or already used refresh token
    """
    data = refresh_schema.load(request.get_json(silent=True) or {})
    token = data.get("refresh_token")
    if not token:
        abort(400, description="Refresh token is required")

    issuer = get_token_issuer()
    try:
        claims = issuer.decode_refresh_token(token)
    except TokenError as exc:
        logger.info("Refresh rejected: %s", exc)
        abort(403, description="Invalid or expired refresh token")

    store = get_session_store()
    record = store.find_active(token, claims.user_id)
    if record is None:
        # revoked, expired or unknown all look the same to the caller
        logger.warning("Refresh rejected: no active session for user %s", claims.user_id)
        abort(403, description="Invalid or expired refresh token")

    access = issuer.issue_access_token(claims)
    new_refresh = issuer.issue_refresh_token(claims)
    ip_address, user_agent = _client_info()
    # raises SessionNotActive (403) when a concurrent refresh won the race
    store.rotate(
        old_id=record.id,
        new_token=new_refresh.token,
        new_user_id=claims.user_id,
        new_expires_at=new_refresh.expires_at,
        ip_address=ip_address,
        user_agent=user_agent,
    )

    return jsonify(
        {
            "message": "Token refreshed successfully",
            "accessToken": access.token,
            "refreshToken": new_refresh.token,
        }
    ), 200


@bp.post("/logout")
@jwt_required()
def logout():
    """
    Logout from all devices: revokes every refresh token of the caller
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: Logged out (also when nothing was left to revoke)
      401:
        description: Missing access token
      403:
        description: Invalid or expired access token
    """
    get_session_store().revoke_all(g.current_claims.user_id)
    return jsonify({"message": "Logged out from all devices"}), 200


@bp.get("/sessions")
@jwt_required()
def list_sessions():
    """
    List the caller's active sessions, newest first
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    responses:
      200:
        description: OK
        schema:
          type: object
          properties:
            sessions:
              type: array
              items:
                type: object
                properties:
                  id: { type: string }
                  createdAt: { type: string, format: date-time }
                  expiresAt: { type: string, format: date-time }
                  ipAddress: { type: string }
                  userAgent: { type: string }
      401:
        description: Missing access token
    """
    sessions = get_session_store().list_active(g.current_claims.user_id)
    return jsonify({"sessions": session_list_schema.dump(sessions)}), 200


@bp.delete("/sessions/<session_id>")
@jwt_required()
def revoke_session(session_id: str):
    """
    Revoke one of the caller's sessions.
    Unknown ids, other users' ids and already revoked sessions are a no-op.
    ---
    tags:
      - Auth
    security:
      - Bearer: []
    parameters:
      - in: path
        name: session_id
        type: string
        required: true
    responses:
      200:
        description: OK
      401:
        description: Missing access token
    """
    get_session_store().revoke_one(session_id, g.current_claims.user_id)
    return jsonify({"message": "Session revoked successfully"}), 200
