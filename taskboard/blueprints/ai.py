"""AI blueprint — /api/ai

POST /api/ai  {action: generate|summarize|suggest, title?, content?}
  200 {result: text}
  400 {error} unknown/missing action
  500 {error} AI key not configured
  502 {error} upstream failure
"""

from flask import Blueprint, current_app, jsonify, request
from flask_login import login_required

from taskboard.errors import ValidationError
from taskboard.extensions import limiter
from taskboard.services.completion_service import get_completion_client

ai_bp = Blueprint("ai", __name__, url_prefix="/api/ai")


@ai_bp.route("", methods=["POST"])
@login_required
@limiter.limit(lambda: current_app.config.get("AI_RATE_LIMIT", "20 per minute"))
def complete():
    data = request.get_json(silent=True)
    if not isinstance(data, dict):
        raise ValidationError("Invalid payload.")

    result = get_completion_client().complete(
        data.get("action"),
        title=data.get("title"),
        content=data.get("content"),
    )
    return jsonify({"result": result})
