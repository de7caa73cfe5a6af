"""Auth blueprint — /auth/*

JSON registration, login, logout and current-user lookup.
Sessions are cookie-based via Flask-Login.
"""

import logging
import re

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from werkzeug.security import check_password_hash, generate_password_hash

from app.errors import AuthenticationError, ValidationError
from app.extensions import db, limiter
from app.models.user import User
from app.services.audit_service import log_audit

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")

EMAIL_RE = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")


# ──────────────────────────────────────────────
# POST /auth/register
# ──────────────────────────────────────────────

@auth_bp.route("/register", methods=["POST"])
@limiter.limit("10 per minute")
def register():
    """Create an account and log it in."""
    data = request.get_json(silent=True) or {}
    email = str(data.get("email") or "").lower().strip()
    password = str(data.get("password") or "")
    full_name = str(data.get("full_name") or data.get("name") or "").strip()

    # --- Validation ---
    errors = []

    if not email:
        errors.append("Email is required.")
    elif not EMAIL_RE.match(email):
        errors.append("Email is invalid.")
    if not password:
        errors.append("Password is required.")
    elif len(password) < 8:
        errors.append("Password must be at least 8 characters.")
    if not full_name:
        errors.append("Full name is required.")

    if email and User.query.filter_by(email=email).first():
        errors.append("An account with this email already exists.")

    if errors:
        raise ValidationError(errors[0], details={"errors": errors})

    # --- Create user ---
    user = User(
        email=email,
        password_hash=generate_password_hash(password),
        full_name=full_name,
    )
    db.session.add(user)
    db.session.flush()  # get user.id

    log_audit("user.registered", actor_user_id=user.id, metadata={"email": email})
    db.session.commit()

    login_user(user)
    logger.info(f"Registered user {user.id}")
    return jsonify({"success": True, "data": user.to_dict()}), 201


# ──────────────────────────────────────────────
# POST /auth/login
# ──────────────────────────────────────────────

@auth_bp.route("/login", methods=["POST"])
@limiter.limit("15 per minute")
def login():
    """Standard email + password login."""
    data = request.get_json(silent=True) or {}
    email = str(data.get("email") or "").lower().strip()
    password = str(data.get("password") or "")
    remember = bool(data.get("remember"))

    if not email or not password:
        raise ValidationError("Email and password are required.")

    user = User.query.filter_by(email=email).first()

    if user is None or not check_password_hash(user.password_hash, password):
        raise AuthenticationError("Invalid email or password.", code="INVALID_CREDENTIALS")

    if not user.is_active:
        raise AuthenticationError("Your account has been deactivated.", code="ACCOUNT_DISABLED")

    login_user(user, remember=remember)
    return jsonify({"success": True, "data": user.to_dict()})


# ──────────────────────────────────────────────
# POST /auth/logout
# ──────────────────────────────────────────────

@auth_bp.route("/logout", methods=["POST"])
def logout():
    logout_user()
    return jsonify({"success": True})


# ──────────────────────────────────────────────
# GET /auth/me
# ──────────────────────────────────────────────

@auth_bp.route("/me")
@login_required
def me():
    return jsonify({"success": True, "data": current_user.to_dict()})
