from __future__ import annotations

from datetime import date, datetime
from decimal import Decimal
from enum import Enum

from sqlalchemy.orm import Session

from dairy_ledger.models import AuditLog, AuthEvent


def _json_safe(value):
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, Decimal):
        return str(value)
    if isinstance(value, (date, datetime)):
        return value.isoformat()
    if isinstance(value, dict):
        return {str(key): _json_safe(item) for key, item in value.items()}
    if isinstance(value, (list, tuple, set, frozenset)):
        return [_json_safe(item) for item in value]
    return value


def log_auth_event(
    db: Session,
    *,
    attempted_username: str,
    success: bool,
    ip: str | None,
    user_agent: str | None,
    principal_id: int | None = None,
    failure_reason: str | None = None,
) -> None:
    db.add(
        AuthEvent(
            attempted_username=attempted_username[:200],
            success=success,
            failure_reason=failure_reason,
            principal_id=principal_id,
            ip=ip,
            user_agent=user_agent,
        )
    )


def log_audit(
    db: Session,
    *,
    actor_principal_id: int | None,
    action: str,
    ip: str | None,
    entity_type: str | None = None,
    entity_id: int | None = None,
    metadata: dict | None = None,
) -> AuditLog:
    """Queue an audit row in the caller's transaction; money and dates are stored as strings."""
    row = AuditLog(
        actor_principal_id=actor_principal_id,
        action=action,
        entity_type=entity_type,
        entity_id=entity_id,
        ip=ip,
        meta=_json_safe(metadata or {}),
    )
    db.add(row)
    return row
