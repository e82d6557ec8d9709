"""Appointment status machine.

confirmed is the only non-terminal state::

    confirmed -> attended   (staff)
    confirmed -> absented   (staff)
    confirmed -> canceled   (staff, or the owning patient inside the policy window)

Rows carry a version counter; a write based on a stale read is rejected
instead of overwriting the newer status.
"""

from __future__ import annotations

import logging
from datetime import date, datetime, time, timezone

from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session
from sqlalchemy.orm.exc import StaleDataError

from dental_booking.core.errors import (
    InvalidTransition,
    NotFound,
    SlotConflict,
    UnauthorizedTransition,
    ValidationError,
)
from dental_booking.models.appointment import Appointment, AppointmentStatus, AppointmentType
from dental_booking.models.user import STAFF_ROLES, Role
from dental_booking.services import cancellation, notifications, reschedule
from dental_booking.services.actor import Actor
from dental_booking.services.audit import (
    NO_AUDIT_CONTEXT,
    AuditContext,
    log_appointment_event,
    snapshot_model,
)
from dental_booking.services.booking import ensure_no_same_day_booking, lock_dentist
from dental_booking.services.calendar import check_slot_bookable, get_dentist
from dental_booking.services.shifts import shift_for_time
from dental_booking.services.transactions import run_in_transaction

logger = logging.getLogger("dental_booking.lifecycle")

MAX_CANCEL_REASON_LENGTH = 200

TRANSITION_ROLES: dict[AppointmentStatus, frozenset[Role]] = {
    AppointmentStatus.attended: STAFF_ROLES,
    AppointmentStatus.absented: STAFF_ROLES,
    AppointmentStatus.canceled: STAFF_ROLES | {Role.patient},
}
TRANSITION_SOURCES = frozenset({AppointmentStatus.confirmed})

STATUS_ACTIONS = {
    AppointmentStatus.attended: "appointment.attended",
    AppointmentStatus.absented: "appointment.absented",
    AppointmentStatus.canceled: "appointment.canceled",
}


def load_appointment(db: Session, appointment_id: int) -> Appointment:
    appointment = db.get(Appointment, appointment_id)
    if not appointment or appointment.deleted_at is not None:
        raise NotFound("Appointment not found")
    return appointment


def ensure_can_view(actor: Actor, appointment: Appointment) -> None:
    if actor.is_staff or actor.role in {Role.assistant, Role.owner, Role.administrator}:
        return
    if actor.role == Role.patient and appointment.patient_id == actor.patient_id:
        return
    # Same answer as a missing row, so ids of other patients are not probeable.
    raise NotFound("Appointment not found")


def _check_version(appointment: Appointment, expected_version: int | None) -> None:
    if expected_version is not None and appointment.version_id != expected_version:
        raise InvalidTransition("The appointment was changed by someone else. Reload and try again.")


def _flush_versioned(db: Session) -> None:
    try:
        db.flush()
    except StaleDataError as exc:
        raise InvalidTransition(
            "The appointment was changed by someone else. Reload and try again."
        ) from exc


def check_transition(actor: Actor, appointment: Appointment, target: AppointmentStatus) -> None:
    roles = TRANSITION_ROLES.get(target)
    if roles is None:
        raise InvalidTransition(f"Appointments cannot be moved to {target.value}.")
    if actor.role not in roles:
        raise UnauthorizedTransition()
    if appointment.status not in TRANSITION_SOURCES:
        raise InvalidTransition(
            f"A {appointment.status.value} appointment cannot become {target.value}."
        )
    if actor.role == Role.patient and appointment.patient_id != actor.patient_id:
        raise UnauthorizedTransition("You can only change your own appointments.")


def change_status(
    db: Session,
    actor: Actor,
    appointment_id: int,
    target: AppointmentStatus,
    *,
    now: datetime,
    reason: str | None = None,
    expected_version: int | None = None,
    context: AuditContext = NO_AUDIT_CONTEXT,
) -> Appointment:
    if reason is not None and len(reason) > MAX_CANCEL_REASON_LENGTH:
        raise ValidationError(
            fields={"reason": f"Must be at most {MAX_CANCEL_REASON_LENGTH} characters."}
        )

    def work() -> Appointment:
        appointment = load_appointment(db, appointment_id)
        ensure_can_view(actor, appointment)
        check_transition(actor, appointment, target)
        _check_version(appointment, expected_version)
        if target == AppointmentStatus.canceled:
            cancellation.check_cancel(
                appointment.appointment_date,
                appointment.appointment_time,
                now,
                actor.role,
                appointment.status,
            )
        before_data = snapshot_model(appointment)
        appointment.status = target
        appointment.updated_by_user_id = actor.user_id
        if target == AppointmentStatus.canceled:
            appointment.cancel_reason = (reason or "").strip() or None
            appointment.cancelled_at = datetime.now(timezone.utc)
            appointment.cancelled_by_user_id = actor.user_id
        _flush_versioned(db)
        notifications.notify_status_changed(db, appointment)
        log_appointment_event(
            db,
            actor=actor,
            action=STATUS_ACTIONS[target],
            appointment=appointment,
            before_data=before_data,
            context=context,
        )
        return appointment

    appointment = run_in_transaction(db, work, label=f"status change to {target.value}")
    logger.info(
        "Appointment %s moved to %s by user %s (%s)",
        appointment_id,
        target.value,
        actor.user_id,
        actor.role.value,
    )
    return appointment


def cancel(
    db: Session,
    actor: Actor,
    appointment_id: int,
    *,
    now: datetime,
    reason: str | None = None,
    expected_version: int | None = None,
    context: AuditContext = NO_AUDIT_CONTEXT,
) -> Appointment:
    return change_status(
        db,
        actor,
        appointment_id,
        AppointmentStatus.canceled,
        now=now,
        reason=reason,
        expected_version=expected_version,
        context=context,
    )


def mark_attended(db: Session, actor: Actor, appointment_id: int, *, now: datetime, **kwargs) -> Appointment:
    return change_status(db, actor, appointment_id, AppointmentStatus.attended, now=now, **kwargs)


def mark_absented(db: Session, actor: Actor, appointment_id: int, *, now: datetime, **kwargs) -> Appointment:
    return change_status(db, actor, appointment_id, AppointmentStatus.absented, now=now, **kwargs)


def reschedule_appointment(
    db: Session,
    actor: Actor,
    appointment_id: int,
    *,
    dentist_id: int,
    appointment_date: date,
    appointment_time: time,
    reason: str | None,
    now: datetime,
    expected_version: int | None = None,
    context: AuditContext = NO_AUDIT_CONTEXT,
) -> Appointment:
    """Move a confirmed appointment to another dentist, date or time in place."""
    if not actor.is_staff:
        raise UnauthorizedTransition("Only staff can reschedule appointments.")
    if datetime.combine(appointment_date, appointment_time) <= now:
        raise ValidationError(
            "The appointment date cannot be in the past.",
            fields={"appointment_date": "The appointment date cannot be in the past."},
        )
    get_dentist(db, dentist_id)

    def work() -> Appointment:
        appointment = load_appointment(db, appointment_id)
        if appointment.status != AppointmentStatus.confirmed:
            raise InvalidTransition(
                f"A {appointment.status.value} appointment cannot be rescheduled."
            )
        _check_version(appointment, expected_version)
        shift = shift_for_time(
            appointment_time,
            follow_up=appointment.appointment_type == AppointmentType.follow_up.value,
        )
        previous_dentist_user_id = appointment.dentist.user_id if appointment.dentist else None
        lock_dentist(db, dentist_id)
        ok, message = check_slot_bookable(
            db,
            dentist_id=dentist_id,
            work_date=appointment_date,
            shift=shift,
            exclude_appointment_id=appointment.id,
        )
        if not ok:
            raise SlotConflict(message)
        if appointment.patient_id is not None:
            ensure_no_same_day_booking(
                db,
                patient_id=appointment.patient_id,
                appointment_date=appointment_date,
                exclude_appointment_id=appointment.id,
            )

        before_data = snapshot_model(appointment)
        reschedule.relocate(
            appointment,
            dentist_id=dentist_id,
            appointment_date=appointment_date,
            appointment_time=appointment_time,
            shift=shift,
        )
        if reason is not None:
            appointment.content = reason.strip() or None
        appointment.updated_by_user_id = actor.user_id
        try:
            _flush_versioned(db)
        except IntegrityError as exc:
            raise SlotConflict() from exc
        db.refresh(appointment)
        notifications.notify_rescheduled(
            db, appointment, previous_dentist_user_id=previous_dentist_user_id
        )
        log_appointment_event(
            db,
            actor=actor,
            action="appointment.rescheduled",
            appointment=appointment,
            before_data=before_data,
            context=context,
        )
        return appointment

    appointment = run_in_transaction(db, work, label="reschedule")
    logger.info(
        "Appointment %s rescheduled to dentist %s on %s %s",
        appointment_id,
        dentist_id,
        appointment_date,
        appointment.shift.value,
    )
    return appointment


def archive(
    db: Session,
    actor: Actor,
    appointment_id: int,
    *,
    context: AuditContext = NO_AUDIT_CONTEXT,
) -> Appointment:
    if not actor.is_staff:
        raise UnauthorizedTransition()

    def work() -> Appointment:
        appointment = db.get(Appointment, appointment_id)
        if not appointment:
            raise NotFound("Appointment not found")
        if appointment.deleted_at is not None:
            return appointment
        before_data = snapshot_model(appointment)
        appointment.deleted_at = datetime.now(timezone.utc)
        appointment.deleted_by_user_id = actor.user_id
        appointment.updated_by_user_id = actor.user_id
        _flush_versioned(db)
        log_appointment_event(
            db,
            actor=actor,
            action="appointment.archived",
            appointment=appointment,
            before_data=before_data,
            context=context,
        )
        return appointment

    return run_in_transaction(db, work, label="archive")
