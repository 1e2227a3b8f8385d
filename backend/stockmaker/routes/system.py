# backend/stockmaker/routes/system.py
"""
Health endpoint: database reachability, admin bootstrap state and which
reminder channels have credentials.
"""

import time

import httpx
from flask import Blueprint, current_app
from sqlalchemy.exc import SQLAlchemyError

from ..extensions import db
from ..models import User
from ..services.notification_channels import build_channels
from ..time_utils import utcnow, to_utc_z

system_bp = Blueprint("system", __name__)


def check_database_health() -> dict:
    start_time = time.time()
    try:
        user_count = db.session.query(User).count()
        admin_count = db.session.query(User).filter_by(role="admin", is_active=True).count()
        elapsed_ms = (time.time() - start_time) * 1000

        result = {
            "status": "healthy",
            "latency_ms": round(elapsed_ms, 2),
            "details": {"users": user_count, "admins": admin_count},
        }
        if admin_count == 0:
            result["status"] = "degraded"
            result["warning"] = "No active admin user; run `flask system init`"
        return result
    except SQLAlchemyError:
        db.session.rollback()
        elapsed_ms = (time.time() - start_time) * 1000
        current_app.logger.exception("Database health check failed")
        return {
            "status": "unhealthy",
            "latency_ms": round(elapsed_ms, 2),
            "error": "Database error",
        }


def check_reminder_channels() -> dict:
    with httpx.Client() as client:
        configured = [c.name for c in build_channels(current_app.config, client)]
    return {
        "status": "healthy" if configured else "degraded",
        "details": {"configured_channels": configured},
    }


@system_bp.get("/health")
def health():
    """200 when healthy or degraded, 503 when the database is unreachable."""
    start_time = time.time()

    checks = {
        "database": check_database_health(),
        "reminder_channels": check_reminder_channels(),
    }
    statuses = [c["status"] for c in checks.values()]
    if "unhealthy" in statuses:
        overall_status, http_status = "unhealthy", 503
    elif "degraded" in statuses:
        overall_status, http_status = "degraded", 200
    else:
        overall_status, http_status = "healthy", 200

    return {
        "status": overall_status,
        "timestamp": to_utc_z(utcnow()),
        "total_latency_ms": round((time.time() - start_time) * 1000, 2),
        "checks": checks,
    }, http_status
