# backend/stockmaker/config.py
from __future__ import annotations
import os


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return default
    return int(raw)


class Config:
    # Optional "SECRET_KEY", with default dev key
    SECRET_KEY = os.environ.get("SECRET_KEY", "dev-secret-key-change-me")

    # SQLite DB stored next to the app unless DATABASE_URL points elsewhere
    SQLALCHEMY_DATABASE_URI = os.environ.get(
        "DATABASE_URL",
        "sqlite:///stockmaker.sqlite3",
    )
    SQLALCHEMY_TRACK_MODIFICATIONS = False

    LOG_LEVEL = os.environ.get("LOG_LEVEL", "INFO")

    # Shop identity used in reminder messages
    SHOP_NAME = os.environ.get("SHOP_NAME", "Stock Maker")
    SHOP_PHONE = os.environ.get("SHOP_PHONE", "")
    CURRENCY_SYMBOL = os.environ.get("CURRENCY_SYMBOL", "₹")
    DEFAULT_COUNTRY_CODE = os.environ.get("DEFAULT_COUNTRY_CODE", "91")

    # Business thresholds
    REMINDER_LOOKAHEAD_DAYS = _env_int("REMINDER_LOOKAHEAD_DAYS", 3)
    LOW_STOCK_DEFAULT_THRESHOLD = _env_int("LOW_STOCK_DEFAULT_THRESHOLD", 10)
    RISKY_OVERDUE_COUNT = _env_int("RISKY_OVERDUE_COUNT", 3)
    RISKY_OVERDUE_AMOUNT_CENTS = _env_int("RISKY_OVERDUE_AMOUNT_CENTS", 2_000_000)

    # Email (Resend)
    RESEND_API_KEY = os.environ.get("RESEND_API_KEY")
    REMINDER_EMAIL_FROM = os.environ.get("REMINDER_EMAIL_FROM", "Stock Maker <onboarding@resend.dev>")

    # WhatsApp (UltraMsg)
    ULTRAMSG_INSTANCE_ID = os.environ.get("ULTRAMSG_INSTANCE_ID")
    ULTRAMSG_TOKEN = os.environ.get("ULTRAMSG_TOKEN")

    # SMS (Twilio)
    TWILIO_ACCOUNT_SID = os.environ.get("TWILIO_ACCOUNT_SID")
    TWILIO_AUTH_TOKEN = os.environ.get("TWILIO_AUTH_TOKEN")
    TWILIO_PHONE_NUMBER = os.environ.get("TWILIO_PHONE_NUMBER")

    NOTIFICATION_HTTP_TIMEOUT = float(os.environ.get("NOTIFICATION_HTTP_TIMEOUT", "10"))

    PASSWORD_RESET_OTP_TTL_MINUTES = _env_int("PASSWORD_RESET_OTP_TTL_MINUTES", 10)
