from __future__ import annotations

import logging
from datetime import datetime, timezone
from typing import Any, Mapping

from fastapi import Request
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from attendance_engine.models import AuditActorType, AuditLog

logger = logging.getLogger("attendance_engine.audit")

PERIOD_ENTITY = "attendance_period"
DAY_ENTITY = "attendance_day"
OVERRIDE_ENTITY = "month_override"
EXPORT_ENTITY = "export"


def actor_id_from_claims(claims: Mapping[str, Any] | None) -> str:
    """Name recorded in updated_by/frozen_by columns and in the audit trail."""
    if not claims:
        return "system"
    for key in ("username", "sub"):
        value = claims.get(key)
        if value:
            return str(value)
    return "admin"


def month_key(owner_id: int, year: int, month: int) -> str:
    """Stable audit key for a company month or an employee month, e.g. ``7:2026-03``."""
    return f"{owner_id}:{year:04d}-{month:02d}"


def _client_ip(request: Request) -> str | None:
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip() or None
    return request.client.host if request.client else None


def log_audit(
    db: Session,
    *,
    actor_type: AuditActorType,
    actor_id: str,
    action: str,
    success: bool,
    entity_type: str | None = None,
    entity_id: str | None = None,
    ip: str | None = None,
    user_agent: str | None = None,
    details: dict[str, Any] | None = None,
    request_id: str | None = None,
) -> bool:
    """Append one row to audit_logs in its own commit.

    Runs after the attendance write it describes has committed, so a failed
    audit insert is rolled back and logged without undoing that write.
    Returns whether the row was stored.
    """
    event = {
        "request_id": request_id,
        "action": action,
        "actor_type": actor_type.value,
        "actor_id": actor_id,
        "entity_type": entity_type,
        "entity_id": entity_id,
        "success": success,
    }
    db.add(
        AuditLog(
            ts_utc=datetime.now(timezone.utc),
            actor_type=actor_type,
            actor_id=actor_id,
            action=action,
            entity_type=entity_type,
            entity_id=entity_id,
            ip=ip,
            user_agent=user_agent,
            success=success,
            details=details or {},
        )
    )
    try:
        db.commit()
    except SQLAlchemyError:
        db.rollback()
        logger.exception("audit_log_write_failed", extra=event)
        return False

    logger.info("audit_event", extra={**event, "details": details or {}})
    return True


def log_admin_audit(
    db: Session,
    request: Request,
    *,
    claims: Mapping[str, Any] | None,
    action: str,
    entity_type: str,
    entity_id: str,
    details: dict[str, Any] | None = None,
) -> bool:
    return log_audit(
        db,
        actor_type=AuditActorType.ADMIN,
        actor_id=actor_id_from_claims(claims),
        action=action,
        success=True,
        entity_type=entity_type,
        entity_id=entity_id,
        ip=_client_ip(request),
        user_agent=request.headers.get("User-Agent"),
        details=details,
        request_id=getattr(request.state, "request_id", None),
    )
