# Overview: Password reset by emailed one-time code.

from __future__ import annotations

import hashlib
import logging
import secrets
from datetime import timedelta

import httpx
from flask import current_app

from ..extensions import db
from ..models import PasswordResetOtp, User
from ..time_utils import utcnow
from .auth_service import hash_password, normalize_email
from .notification_channels import EmailChannel
from .session_service import revoke_all_user_sessions

logger = logging.getLogger(__name__)


class PasswordResetError(Exception):
    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


def _hash_otp(email: str, otp: str) -> str:
    return hashlib.sha256(f"{email}:{otp}".encode("utf-8")).hexdigest()


def generate_otp() -> str:
    return f"{secrets.randbelow(1_000_000):06d}"


def _send_otp_email(email: str, otp: str, ttl_minutes: int, channel: EmailChannel | None) -> bool:
    shop = current_app.config["SHOP_NAME"]
    subject = f"{shop} password reset code"
    text = f"Your password reset code is {otp}. It expires in {ttl_minutes} minutes."
    html = (
        f"<p>Your password reset code is <strong>{otp}</strong>.</p>"
        f"<p>It expires in {ttl_minutes} minutes. If you did not ask for it, ignore this email.</p>"
    )
    if channel is not None:
        return channel.send(email, subject, text, html)

    config = current_app.config
    with httpx.Client(timeout=config.get("NOTIFICATION_HTTP_TIMEOUT", 10.0)) as client:
        email_channel = EmailChannel(client, api_key=config.get("RESEND_API_KEY"), sender=config["REMINDER_EMAIL_FROM"])
        if not email_channel.is_configured():
            logger.warning("Password reset requested but no email provider is configured")
            return False
        return email_channel.send(email, subject, text, html)


def request_reset(email: str, channel: EmailChannel | None = None) -> bool:
    """
    Issue a code for an active user and email it. Unknown emails are
    accepted silently so the endpoint does not reveal who has an account.
    Returns whether an email went out.
    """
    email = normalize_email(email)
    user = db.session.query(User).filter_by(email=email, is_active=True).first()
    if not user:
        return False

    ttl = current_app.config["PASSWORD_RESET_OTP_TTL_MINUTES"]
    otp = generate_otp()

    # Older unused codes stop working once a new one is issued
    db.session.query(PasswordResetOtp).filter_by(email=email, used=False).update(
        {PasswordResetOtp.used: True}, synchronize_session=False,
    )
    db.session.add(PasswordResetOtp(
        email=email,
        otp_hash=_hash_otp(email, otp),
        expires_at=utcnow() + timedelta(minutes=ttl),
        used=False,
    ))
    db.session.commit()

    return _send_otp_email(email, otp, ttl, channel)


def reset_password(email: str, otp: str, new_password: str) -> None:
    """
    Consume a live code and set the new password. All of the user's
    sessions are revoked.
    """
    email = normalize_email(email)
    if not otp or not new_password:
        raise PasswordResetError("email, otp and new_password are required")

    record = (
        db.session.query(PasswordResetOtp)
        .filter_by(email=email, otp_hash=_hash_otp(email, str(otp).strip()), used=False)
        .order_by(PasswordResetOtp.id.desc())
        .first()
    )
    if not record or record.expires_at < utcnow():
        raise PasswordResetError("Invalid or expired code")

    user = db.session.query(User).filter_by(email=email, is_active=True).first()
    if not user:
        raise PasswordResetError("Invalid or expired code")

    user.password_hash = hash_password(new_password)
    record.used = True
    revoke_all_user_sessions(user.id, "Password reset")
    db.session.commit()
