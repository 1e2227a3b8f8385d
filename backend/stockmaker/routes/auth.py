# Overview: Login, logout, current user, password reset and user administration.

from flask import Blueprint, request, jsonify, current_app, g

from ..extensions import db
from ..models import User
from ..services import auth_service, password_reset_service, session_service
from ..services.auth_service import AuthError, PasswordValidationError
from ..services.password_reset_service import PasswordResetError
from ..decorators import require_auth, require_role
from ..time_utils import to_utc_z


auth_bp = Blueprint("auth", __name__, url_prefix="/api/auth")


@auth_bp.post("/login")
def login_route():
    """Exchange email + password for a bearer token."""
    try:
        data = request.get_json(silent=True) or {}
        email = data.get("email")
        password = data.get("password")

        if not all([email, password]):
            return jsonify({"error": "email and password required"}), 400

        user = auth_service.authenticate(email, password)
        if not user:
            return jsonify({"error": "Invalid credentials"}), 401

        session, token = session_service.create_session(
            user_id=user.id,
            user_agent=request.headers.get("User-Agent"),
            ip_address=request.remote_addr,
        )
        return jsonify({
            "user": user.to_dict(),
            "token": token,
            "expires_at": to_utc_z(session.expires_at),
            "message": "Login successful",
        }), 200

    except Exception:
        current_app.logger.exception("Failed to login user")
        return jsonify({"error": "Internal server error"}), 500


@auth_bp.post("/logout")
@require_auth
def logout_route():
    session_service.revoke_session(g.session_token, reason="User logout")
    return jsonify({"message": "Logout successful"}), 200


@auth_bp.get("/me")
@require_auth
def me_route():
    return jsonify({"user": g.current_user.to_dict()}), 200


@auth_bp.post("/password-reset/request")
def request_password_reset_route():
    data = request.get_json(silent=True) or {}
    email = data.get("email")
    if not email:
        return jsonify({"error": "email required"}), 400
    try:
        password_reset_service.request_reset(email)
    except Exception:
        current_app.logger.exception("Failed to issue password reset code")
        return jsonify({"error": "Internal server error"}), 500
    # Same answer whether or not the account exists
    return jsonify({"message": "If the account exists, a reset code has been sent"}), 200


@auth_bp.post("/password-reset/confirm")
def confirm_password_reset_route():
    data = request.get_json(silent=True) or {}
    try:
        password_reset_service.reset_password(
            data.get("email") or "", data.get("otp") or "", data.get("new_password") or "",
        )
        return jsonify({"message": "Password updated"}), 200
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except PasswordResetError as e:
        return jsonify({"error": str(e)}), e.status_code


@auth_bp.get("/users")
@require_auth
@require_role("admin")
def list_users_route():
    users = db.session.query(User).order_by(User.email.asc()).all()
    return jsonify({"items": [u.to_dict() for u in users], "count": len(users)}), 200


@auth_bp.post("/users")
@require_auth
@require_role("admin")
def create_user_route():
    """Admins create staff accounts; there is no self-registration."""
    data = request.get_json(silent=True) or {}
    try:
        user = auth_service.create_user(
            email=data.get("email") or "",
            password=data.get("password") or "",
            role=data.get("role") or "staff",
            full_name=data.get("full_name"),
            phone=data.get("phone"),
        )
        return jsonify({"user": user.to_dict()}), 201
    except PasswordValidationError as e:
        return jsonify({"error": str(e)}), 400
    except AuthError as e:
        return jsonify({"error": str(e)}), e.status_code
