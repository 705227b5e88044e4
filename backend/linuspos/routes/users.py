# Overview: Flask API routes for user administration; parses input and returns JSON responses.

"""
User administration (requires canManageUsers).

Users are never deleted, only toggled inactive; the admin account cannot be
toggled at all.
"""
from flask import Blueprint, request, jsonify, current_app

from ..services import auth_service
from ..services.auth_service import UserNotFoundError, ProtectedAccountError
from ..services.permission_service import CAN_MANAGE_USERS
from ..models.auth import ROLE_STAFF
from ..validation import ValidationError, ConflictError
from ..decorators import require_auth, require_permission

users_bp = Blueprint("users", __name__, url_prefix="/api/users")


@users_bp.get("")
@require_auth
@require_permission(CAN_MANAGE_USERS)
def list_users_route():
    users = auth_service.list_users()
    return jsonify({"items": [u.to_dict() for u in users], "count": len(users)})


@users_bp.post("")
@require_auth
@require_permission(CAN_MANAGE_USERS)
def create_user_route():
    """Body: {username, password, name, role?, permissions?}"""
    data = request.get_json(silent=True) or {}

    try:
        user = auth_service.create_user(
            username=data.get("username"),
            password=data.get("password"),
            name=data.get("name"),
            role=data.get("role") or ROLE_STAFF,
            permissions=data.get("permissions"),
        )
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400
    except ConflictError as e:
        return jsonify({"error": str(e)}), 409
    except Exception:
        current_app.logger.exception("Failed to create user")
        return jsonify({"error": "Internal server error"}), 500

    current_app.logger.info("User %s created", user.username)
    return jsonify(user.to_dict()), 201


@users_bp.put("/<username>/toggle")
@require_auth
@require_permission(CAN_MANAGE_USERS)
def toggle_user_route(username: str):
    try:
        user = auth_service.toggle_user_active(username)
    except ProtectedAccountError as e:
        return jsonify({"error": str(e)}), 409
    except UserNotFoundError as e:
        return jsonify({"error": str(e)}), 404

    current_app.logger.info(
        "User %s %s", user.username, "activated" if user.is_active else "deactivated"
    )
    return jsonify(user.to_dict())
