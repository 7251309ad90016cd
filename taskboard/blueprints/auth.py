"""Auth blueprint — /auth/*

JSON registration, login, logout and session introspection.

Route Map:
  POST /auth/register   — Create an account and log in
  POST /auth/login      — Email + password login
  POST /auth/logout     — End the session
  GET  /auth/me         — Current user
  GET  /auth/csrf       — CSRF token for the X-CSRFToken header
"""

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf
from werkzeug.security import check_password_hash, generate_password_hash

from taskboard.errors import Unauthenticated, ValidationError
from taskboard.extensions import db, limiter
from taskboard.models.audit import AuditEvent
from taskboard.models.user import User

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


# ──────────────────────────────────────────────
# POST /auth/register
# ──────────────────────────────────────────────

@auth_bp.route("/register", methods=["POST"])
@limiter.limit("10 per minute")
def register():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").lower().strip()
    password = data.get("password") or ""
    full_name = (data.get("full_name") or "").strip()

    # --- Validation ---
    if not email:
        raise ValidationError("Email is required.")
    if not password:
        raise ValidationError("Password is required.")
    if len(password) < 8:
        raise ValidationError("Password must be at least 8 characters.")
    if User.query.filter_by(email=email).first():
        raise ValidationError("An account with this email already exists.")

    user = User(
        email=email,
        password_hash=generate_password_hash(password),
        full_name=full_name or None,
    )
    db.session.add(user)
    db.session.flush()  # get user.id

    db.session.add(AuditEvent(
        actor_user_id=user.id,
        action="user.registered",
        metadata_={"email": email},
    ))
    db.session.commit()

    login_user(user)
    return jsonify(user.to_dict()), 201


# ──────────────────────────────────────────────
# POST /auth/login
# ──────────────────────────────────────────────

@auth_bp.route("/login", methods=["POST"])
@limiter.limit("15 per minute")
def login():
    data = request.get_json(silent=True) or {}
    email = (data.get("email") or "").lower().strip()
    password = data.get("password") or ""

    if not email or not password:
        raise ValidationError("Email and password are required.")

    user = User.query.filter_by(email=email).first()
    if user is None or not check_password_hash(user.password_hash, password):
        raise Unauthenticated("Invalid email or password.")
    if not user.is_active:
        raise Unauthenticated("Your account has been deactivated.")

    login_user(user, remember=bool(data.get("remember")))
    return jsonify(user.to_dict())


# ──────────────────────────────────────────────
# POST /auth/logout
# ──────────────────────────────────────────────

@auth_bp.route("/logout", methods=["POST"])
def logout():
    logout_user()
    return jsonify({"success": True})


@auth_bp.route("/me")
@login_required
def me():
    return jsonify(current_user.to_dict())


@auth_bp.route("/csrf")
def csrf_token():
    return jsonify({"csrf_token": generate_csrf()})
