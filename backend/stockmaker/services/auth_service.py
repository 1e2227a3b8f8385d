# Overview: Password hashing, credential checks and user administration.

"""
Authentication Service

Passwords are hashed with bcrypt (cost factor 12) after a strength check.
Session tokens are handled separately in session_service.
"""

import re

import bcrypt

from ..extensions import db
from ..models import User
from ..models.auth import USER_ROLES
from ..time_utils import utcnow
from ..validation import EMAIL_RE


class PasswordValidationError(Exception):
    """Raised when password doesn't meet strength requirements."""
    pass


class AuthError(Exception):
    """User administration failure (duplicate email, bad role, ...)."""

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def validate_password_strength(password: str) -> None:
    """
    Minimum 8 characters with at least one uppercase letter, one lowercase
    letter, one digit and one special character.
    """
    if not password or len(password) < 8:
        raise PasswordValidationError("Password must be at least 8 characters long")

    if not re.search(r'[A-Z]', password):
        raise PasswordValidationError("Password must contain at least one uppercase letter")

    if not re.search(r'[a-z]', password):
        raise PasswordValidationError("Password must contain at least one lowercase letter")

    if not re.search(r'\d', password):
        raise PasswordValidationError("Password must contain at least one digit")

    if not re.search(r"[!@#$%^&*(),.'\":{}|<>_\-]", password):
        raise PasswordValidationError("Password must contain at least one special character")


def hash_password(password: str) -> str:
    validate_password_strength(password)
    salt = bcrypt.gensalt(rounds=12)
    hashed = bcrypt.hashpw(password.encode('utf-8'), salt)
    return hashed.decode('utf-8')


def verify_password(password: str, password_hash: str) -> bool:
    """Constant-time bcrypt comparison; malformed hashes never match."""
    try:
        return bcrypt.checkpw(password.encode('utf-8'), password_hash.encode('utf-8'))
    except ValueError:
        return False


def normalize_email(email: str) -> str:
    return (email or "").strip().lower()


def create_user(
    email: str,
    password: str,
    role: str = "staff",
    full_name: str | None = None,
    phone: str | None = None,
) -> User:
    """
    Create a user. Raises PasswordValidationError for a weak password and
    AuthError for a malformed/duplicate email or unknown role.
    """
    email = normalize_email(email)
    if not EMAIL_RE.match(email):
        raise AuthError("A valid email is required")
    if role not in USER_ROLES:
        raise AuthError(f"role must be one of: {', '.join(USER_ROLES)}")

    existing = db.session.query(User).filter_by(email=email).first()
    if existing:
        raise AuthError(f"User with email '{email}' already exists", status_code=409)

    user = User(
        email=email,
        password_hash=hash_password(password),
        role=role,
        full_name=full_name,
        phone=phone,
        is_active=True,
    )
    db.session.add(user)
    db.session.commit()
    return user


def authenticate(email: str, password: str) -> User | None:
    """Return the active user for these credentials, else None."""
    email = normalize_email(email)
    user = db.session.query(User).filter_by(email=email).first()
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.password_hash):
        return None

    user.last_login_at = utcnow()
    db.session.commit()
    return user


def set_password(user: User, new_password: str) -> None:
    """Re-hash without committing; callers own the transaction."""
    user.password_hash = hash_password(new_password)


def list_admins() -> list[User]:
    return db.session.query(User).filter_by(role="admin", is_active=True).all()
