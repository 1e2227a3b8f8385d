# Overview: Audit trail writes and queries; entries share the caller's transaction.

from __future__ import annotations

from datetime import date, datetime, timedelta

from flask import has_request_context, request

from ..extensions import db
from ..models import AuditLog
from ..time_utils import utcnow

AUDIT_ACTIONS = ("INSERT", "UPDATE", "DELETE")
AUDIT_LIST_LIMIT = 500


def record_change(
    *,
    action: str,
    table_name: str,
    record_id: int | None,
    user_id: int | None,
    old_data: dict | None = None,
    new_data: dict | None = None,
) -> AuditLog:
    """
    Stage an audit row in the current session.

    The caller commits; an audit entry never outlives a rolled-back change.
    """
    if action not in AUDIT_ACTIONS:
        raise ValueError(f"Unknown audit action: {action}")

    ip_address = None
    user_agent = None
    if has_request_context():
        ip_address = request.remote_addr
        user_agent = request.headers.get("User-Agent")

    entry = AuditLog(
        user_id=user_id,
        action=action,
        table_name=table_name,
        record_id=record_id,
        old_data=old_data,
        new_data=new_data,
        ip_address=ip_address,
        user_agent=user_agent,
        created_at=utcnow(),
    )
    db.session.add(entry)
    db.session.flush()
    return entry


def list_audit_logs(
    *,
    start_date: date | None = None,
    end_date: date | None = None,
    action: str | None = None,
    table_name: str | None = None,
    limit: int = AUDIT_LIST_LIMIT,
) -> list[AuditLog]:
    """Newest first. end_date is inclusive of the whole day."""
    query = db.session.query(AuditLog)
    if start_date:
        query = query.filter(AuditLog.created_at >= datetime.combine(start_date, datetime.min.time()))
    if end_date:
        query = query.filter(AuditLog.created_at < datetime.combine(end_date + timedelta(days=1), datetime.min.time()))
    if action:
        query = query.filter(AuditLog.action == action.upper())
    if table_name:
        query = query.filter(AuditLog.table_name == table_name)
    limit = max(1, min(limit, AUDIT_LIST_LIMIT))
    return query.order_by(AuditLog.created_at.desc(), AuditLog.id.desc()).limit(limit).all()
