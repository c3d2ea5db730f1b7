"""
Authentication Routes (JSON)

Provides:
- /auth/login
- /auth/logout
- /auth/csrf-token

Rules:
- Only active users may log in.
- Credentials validated via password hash.
- A successful login records the timestamp and client IP on the user.
"""

import logging

from flask import Blueprint, jsonify, request
from flask_login import current_user, login_required, login_user, logout_user
from flask_wtf.csrf import generate_csrf

from ...audit import client_ip
from ...extensions import db
from ...models import User, utcnow

logger = logging.getLogger(__name__)

auth_bp = Blueprint("auth", __name__, url_prefix="/auth")


def user_payload(user: User) -> dict:
    return {
        "id": user.id,
        "username": user.username,
        "name": user.name,
        "email": user.email,
        "role": user.role.value,
        "supplier_id": user.supplier_id,
        "is_active": user.is_active,
    }


# ============================================================
# LOGIN
# ============================================================

@auth_bp.route("/login", methods=["POST"])
def login():
    """Authenticate a user from a JSON (or form) body."""
    data = request.get_json(silent=True) or request.form
    username = (data.get("username") or "").strip()
    password = data.get("password") or ""

    user = User.query.filter_by(username=username).first()

    if not user or not user.check_password(password):
        logger.info("Failed login for %r", username)
        return jsonify({"error": "Invalid username or password", "code": "INVALID_CREDENTIALS"}), 401

    if not user.is_active:
        return jsonify({"error": "Account is inactive", "code": "INACTIVE_ACCOUNT"}), 403

    login_user(user)

    user.last_login_at = utcnow()
    user.last_login_ip = client_ip()
    db.session.commit()

    logger.info("User %s logged in", user.username)
    return jsonify(user_payload(user))


# ============================================================
# LOGOUT
# ============================================================

@auth_bp.route("/logout", methods=["POST"])
@login_required
def logout():
    """Log out the current user."""
    logger.info("User %s logged out", current_user.username)
    logout_user()
    return jsonify({"status": "logged_out"})


# ============================================================
# CSRF TOKEN
# ============================================================

@auth_bp.route("/csrf-token", methods=["GET"])
def csrf_token():
    """Token clients send back in the X-CSRFToken header."""
    return jsonify({"csrf_token": generate_csrf()})


@auth_bp.route("/me", methods=["GET"])
@login_required
def me():
    return jsonify(user_payload(current_user))
