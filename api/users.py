"""
Admin-only user management. Users are never hard-deleted; DELETE sets
deleted_at and revokes every session the user still holds.
"""
from __future__ import annotations

import logging

from flask import Blueprint, jsonify, abort

from models.user import User, Role
from models.schemas.user import UserOutSchema
from utils.decorators import admin_required

from .extensions import get_session_store, get_storage

logger = logging.getLogger(__name__)

bp = Blueprint("users", __name__)

user_out_schema = UserOutSchema()
user_list_out_schema = UserOutSchema(many=True)


def _get_live_user(user_id: str) -> User:
    session = get_storage().get_session()
    user = (
        session.query(User)
        .filter(User.id == user_id, User.deleted_at.is_(None))
        .first()
    )
    if not user:
        abort(404, description="User not found")
    return user


@bp.get("")
@admin_required()
def list_users():
    """
    List all regular (non-admin, non-deleted) users - admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    responses:
      200: { description: OK }
      401: { description: Missing access token }
      403: { description: Not an admin }
    """
    session = get_storage().get_session()
    rows = (
        session.query(User)
        .filter(User.role == Role.USER, User.deleted_at.is_(None))
        .order_by(User.created_at.asc())
        .all()
    )
    return jsonify({"users": user_list_out_schema.dump(rows)}), 200


@bp.get("/<user_id>")
@admin_required()
def get_user(user_id: str):
    """
    Get one user - admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: path
        name: user_id
        type: string
        required: true
    responses:
      200: { description: OK }
      404: { description: User not found }
    """
    return jsonify({"user": user_out_schema.dump(_get_live_user(user_id))}), 200


@bp.put("/<user_id>/block")
@admin_required()
def toggle_block(user_id: str):
    """
    Toggle the blocked flag of a user - admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: path
        name: user_id
        type: string
        required: true
    responses:
      200: { description: OK }
      404: { description: User not found }
    """
    with get_storage().transaction():
        user = _get_live_user(user_id)
        user.blocked = not user.blocked
    logger.info("User %s blocked=%s", user.id, user.blocked)
    return jsonify({"user": user_out_schema.dump(user)}), 200


@bp.put("/<user_id>/activate")
@admin_required()
def toggle_active(user_id: str):
    """
    Toggle the active flag of a user - admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: path
        name: user_id
        type: string
        required: true
    responses:
      200: { description: OK }
      404: { description: User not found }
    """
    with get_storage().transaction():
        user = _get_live_user(user_id)
        user.active = not user.active
    logger.info("User %s active=%s", user.id, user.active)
    return jsonify({"user": user_out_schema.dump(user)}), 200


@bp.delete("/<user_id>")
@admin_required()
def delete_user(user_id: str):
    """
    Soft delete a user and revoke all of their sessions - admin
    ---
    tags:
      - Users
    security:
      - Bearer: []
    parameters:
      - in: path
        name: user_id
        type: string
        required: true
    responses:
      200: { description: OK }
      404: { description: User not found }
    """
    with get_storage().transaction():
        user = _get_live_user(user_id)
        user.soft_delete()
        get_session_store().revoke_all(user.id)
    logger.info("User %s soft-deleted", user.id)
    return jsonify({"message": "User deleted successfully", "user": user_out_schema.dump(user)}), 200
