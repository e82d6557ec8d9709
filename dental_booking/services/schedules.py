from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import date, datetime, timezone

from sqlalchemy import select
from sqlalchemy.orm import Session

from dental_booking.core.errors import InvalidTransition, NotFound, UnauthorizedTransition, ValidationError
from dental_booking.models.schedule import DentistSchedule, ScheduleStatus, Shift
from dental_booking.models.user import Role
from dental_booking.services.actor import Actor
from dental_booking.services.audit import NO_AUDIT_CONTEXT, AuditContext, log_event, snapshot_model
from dental_booking.services.shifts import shift_has_ended, week_start
from dental_booking.services.transactions import run_in_transaction

logger = logging.getLogger("dental_booking.schedules")

APPROVER_ROLES = frozenset({Role.owner})


@dataclass
class ScheduleCell:
    work_date: date
    shift: Shift


def _find_duplicate(db: Session, dentist_id: int, cell: ScheduleCell) -> DentistSchedule | None:
    return db.scalars(
        select(DentistSchedule).where(
            DentistSchedule.dentist_id == dentist_id,
            DentistSchedule.work_date == cell.work_date,
            DentistSchedule.shift == cell.shift,
            DentistSchedule.deleted_at.is_(None),
        )
    ).first()


def register_schedule(
    db: Session,
    actor: Actor,
    cells: list[ScheduleCell],
    *,
    now: datetime,
    context: AuditContext = NO_AUDIT_CONTEXT,
) -> list[DentistSchedule]:
    """Register working shifts for the calling dentist; each cell starts pending."""
    if actor.role != Role.dentist or actor.dentist_id is None:
        raise UnauthorizedTransition("Only dentists can register working shifts.")
    if not cells:
        raise ValidationError(fields={"schedules": "Select at least one shift."})
    for cell in cells:
        if shift_has_ended(cell.work_date, cell.shift, now):
            raise ValidationError(
                "Working shifts must be in the future.",
                fields={"work_date": f"{cell.work_date.isoformat()} {cell.shift.value} has passed."},
            )

    def work() -> list[DentistSchedule]:
        created: list[DentistSchedule] = []
        for cell in cells:
            duplicate = _find_duplicate(db, actor.dentist_id, cell)
            if duplicate is not None:
                if duplicate.status != ScheduleStatus.rejected:
                    raise ValidationError(
                        "This shift is already registered.",
                        fields={"work_date": f"{cell.work_date.isoformat()} {cell.shift.value}"},
                    )
                duplicate.deleted_at = datetime.now(timezone.utc)
                duplicate.deleted_by_user_id = actor.user_id
            schedule = DentistSchedule(
                dentist_id=actor.dentist_id,
                work_date=cell.work_date,
                shift=cell.shift,
                week_start_date=week_start(cell.work_date),
                is_active=True,
                status=ScheduleStatus.pending,
                created_by_user_id=actor.user_id,
                updated_by_user_id=actor.user_id,
            )
            db.add(schedule)
            db.flush()
            log_event(
                db,
                actor=actor,
                action="schedule.registered",
                entity_type="schedule",
                entity_id=str(schedule.id),
                after_obj=schedule,
                request_id=context.request_id,
                ip_address=context.ip_address,
            )
            created.append(schedule)
        return created

    created = run_in_transaction(db, work, label="schedule registration")
    logger.info("Dentist %s registered %s shift(s)", actor.dentist_id, len(created))
    return created


def _own_pending_schedule(db: Session, actor: Actor, schedule_id: int, verb: str) -> DentistSchedule:
    if actor.role != Role.dentist or actor.dentist_id is None:
        raise UnauthorizedTransition(f"Only dentists can {verb} working shifts.")
    schedule = db.get(DentistSchedule, schedule_id)
    if not schedule or schedule.deleted_at is not None:
        raise NotFound("Schedule not found")
    if schedule.dentist_id != actor.dentist_id:
        raise UnauthorizedTransition(f"You can only {verb} your own working shifts.")
    if schedule.status != ScheduleStatus.pending:
        raise InvalidTransition(
            f"A {schedule.status.value} shift cannot be changed; only pending shifts can."
        )
    return schedule


def edit_schedule(
    db: Session,
    actor: Actor,
    schedule_id: int,
    cell: ScheduleCell,
    *,
    now: datetime,
    context: AuditContext = NO_AUDIT_CONTEXT,
) -> DentistSchedule:
    """Move a pending shift to another date or shift before the owner reviews it."""
    if shift_has_ended(cell.work_date, cell.shift, now):
        raise ValidationError(
            "Working shifts must be in the future.",
            fields={"work_date": f"{cell.work_date.isoformat()} {cell.shift.value} has passed."},
        )

    def work() -> DentistSchedule:
        schedule = _own_pending_schedule(db, actor, schedule_id, "edit")
        duplicate = _find_duplicate(db, schedule.dentist_id, cell)
        if duplicate is not None and duplicate.id != schedule.id:
            raise ValidationError(
                "This shift is already registered.",
                fields={"work_date": f"{cell.work_date.isoformat()} {cell.shift.value}"},
            )
        before_data = snapshot_model(schedule)
        schedule.work_date = cell.work_date
        schedule.shift = cell.shift
        schedule.week_start_date = week_start(cell.work_date)
        schedule.updated_by_user_id = actor.user_id
        db.flush()
        log_event(
            db,
            actor=actor,
            action="schedule.edited",
            entity_type="schedule",
            entity_id=str(schedule.id),
            before_data=before_data,
            after_obj=schedule,
            request_id=context.request_id,
            ip_address=context.ip_address,
        )
        return schedule

    return run_in_transaction(db, work, label="schedule edit")


def cancel_schedule(
    db: Session,
    actor: Actor,
    schedule_id: int,
    *,
    context: AuditContext = NO_AUDIT_CONTEXT,
) -> DentistSchedule:
    def work() -> DentistSchedule:
        schedule = _own_pending_schedule(db, actor, schedule_id, "cancel")
        before_data = snapshot_model(schedule)
        schedule.deleted_at = datetime.now(timezone.utc)
        schedule.deleted_by_user_id = actor.user_id
        schedule.updated_by_user_id = actor.user_id
        db.flush()
        log_event(
            db,
            actor=actor,
            action="schedule.cancelled",
            entity_type="schedule",
            entity_id=str(schedule.id),
            before_data=before_data,
            after_obj=schedule,
            request_id=context.request_id,
            ip_address=context.ip_address,
        )
        return schedule

    schedule = run_in_transaction(db, work, label="schedule cancel")
    logger.info("Dentist %s withdrew pending shift %s", actor.dentist_id, schedule_id)
    return schedule


def review_schedule(
    db: Session,
    actor: Actor,
    schedule_id: int,
    *,
    approve: bool,
    context: AuditContext = NO_AUDIT_CONTEXT,
) -> DentistSchedule:
    if actor.role not in APPROVER_ROLES:
        raise UnauthorizedTransition("Only the clinic owner can review schedules.")

    def work() -> DentistSchedule:
        schedule = db.get(DentistSchedule, schedule_id)
        if not schedule or schedule.deleted_at is not None:
            raise NotFound("Schedule not found")
        before_data = snapshot_model(schedule)
        schedule.status = ScheduleStatus.approved if approve else ScheduleStatus.rejected
        schedule.updated_by_user_id = actor.user_id
        db.flush()
        log_event(
            db,
            actor=actor,
            action="schedule.approved" if approve else "schedule.rejected",
            entity_type="schedule",
            entity_id=str(schedule.id),
            before_data=before_data,
            after_obj=schedule,
            request_id=context.request_id,
            ip_address=context.ip_address,
        )
        return schedule

    return run_in_transaction(db, work, label="schedule review")


def set_schedule_active(
    db: Session,
    actor: Actor,
    schedule_id: int,
    *,
    is_active: bool,
) -> DentistSchedule:
    """Dentists toggle whether they actually work an approved shift."""

    def work() -> DentistSchedule:
        schedule = db.get(DentistSchedule, schedule_id)
        if not schedule or schedule.deleted_at is not None:
            raise NotFound("Schedule not found")
        owns = actor.role == Role.dentist and actor.dentist_id == schedule.dentist_id
        if not owns and actor.role not in APPROVER_ROLES:
            raise UnauthorizedTransition()
        schedule.is_active = is_active
        schedule.updated_by_user_id = actor.user_id
        db.flush()
        return schedule

    return run_in_transaction(db, work, label="schedule toggle")


def list_schedules(
    db: Session,
    *,
    dentist_id: int | None = None,
    status: ScheduleStatus | None = None,
    from_date: date | None = None,
    to_date: date | None = None,
) -> list[DentistSchedule]:
    stmt = select(DentistSchedule).where(DentistSchedule.deleted_at.is_(None))
    if dentist_id is not None:
        stmt = stmt.where(DentistSchedule.dentist_id == dentist_id)
    if status is not None:
        stmt = stmt.where(DentistSchedule.status == status)
    if from_date is not None:
        stmt = stmt.where(DentistSchedule.work_date >= from_date)
    if to_date is not None:
        stmt = stmt.where(DentistSchedule.work_date <= to_date)
    stmt = stmt.order_by(DentistSchedule.work_date.asc(), DentistSchedule.id.asc())
    return list(db.scalars(stmt))
