from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time
from typing import Any

from sqlalchemy import inspect
from sqlalchemy.orm import Session

from dental_booking.models.audit_log import AuditLog
from dental_booking.services.actor import Actor


@dataclass(frozen=True)
class AuditContext:
    request_id: str | None = None
    ip_address: str | None = None


NO_AUDIT_CONTEXT = AuditContext()


def _jsonable(value: Any) -> Any:
    if hasattr(value, "value"):
        return value.value
    if isinstance(value, (datetime, date, time)):
        return value.isoformat()
    return value


def snapshot_model(obj: Any | None) -> dict | None:
    if obj is None:
        return None
    data: dict[str, Any] = {}
    mapper = inspect(obj).mapper
    for column in mapper.columns:
        key = column.key
        data[key] = _jsonable(getattr(obj, key))
    return data


def log_event(
    db: Session,
    *,
    actor: Actor | None,
    action: str,
    entity_type: str,
    entity_id: str,
    before_obj: Any | None = None,
    after_obj: Any | None = None,
    before_data: dict | None = None,
    after_data: dict | None = None,
    request_id: str | None = None,
    ip_address: str | None = None,
) -> AuditLog:
    entry = AuditLog(
        actor_user_id=actor.user_id if actor else None,
        actor_role=actor.role.value if actor else "guest",
        action=action,
        entity_type=entity_type,
        entity_id=str(entity_id),
        request_id=request_id,
        ip_address=ip_address,
        before_json=before_data if before_data is not None else snapshot_model(before_obj),
        after_json=after_data if after_data is not None else snapshot_model(after_obj),
    )
    db.add(entry)
    return entry


def log_appointment_event(
    db: Session,
    *,
    actor: Actor | None,
    action: str,
    appointment: Any,
    before_data: dict | None = None,
    context: AuditContext = NO_AUDIT_CONTEXT,
) -> AuditLog:
    return log_event(
        db,
        actor=actor,
        action=action,
        entity_type="appointment",
        entity_id=str(appointment.id),
        before_data=before_data,
        after_obj=appointment,
        request_id=context.request_id,
        ip_address=context.ip_address,
    )
