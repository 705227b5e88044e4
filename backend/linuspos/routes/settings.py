from __future__ import annotations

from flask import Blueprint, jsonify, request, g, current_app

from ..decorators import require_auth, require_permission
from ..services import settings_service
from ..services.permission_service import CAN_MANAGE_SETTINGS
from ..validation import ValidationError


settings_bp = Blueprint("settings", __name__, url_prefix="/api")


@settings_bp.get("/settings")
@require_auth
def get_settings_route():
    return jsonify(settings_service.get_settings().to_dict())


@settings_bp.put("/settings")
@settings_bp.patch("/settings")
@require_auth
@require_permission(CAN_MANAGE_SETTINGS)
def update_settings_route():
    payload = request.get_json(silent=True)
    try:
        settings = settings_service.update_settings(payload, user_id=g.current_user.id)
    except ValidationError as e:
        return jsonify({"error": str(e)}), 400

    current_app.logger.info("Settings updated by %s", g.current_user.username)
    return jsonify(settings.to_dict())
