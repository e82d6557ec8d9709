"""Booking channels: guest, signed-in patient and reception follow-up.

Every channel ends in ``reserve_slot``, which re-checks the slot and inserts
the appointment in the same transaction. The live-slot unique index on
``appointments`` backs that check when two bookers race.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from datetime import date, datetime, time

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from dental_booking.core.errors import (
    NotFound,
    PhoneAlreadyRegistered,
    SlotConflict,
    UnauthorizedTransition,
    ValidationError,
)
from dental_booking.models.appointment import (
    LIVE_STATUSES,
    Appointment,
    AppointmentStatus,
    AppointmentType,
)
from dental_booking.models.dentist import Dentist
from dental_booking.models.patient import Patient
from dental_booking.models.schedule import Shift
from dental_booking.models.user import Role
from dental_booking.services import notifications, reschedule
from dental_booking.services.actor import Actor
from dental_booking.services.audit import NO_AUDIT_CONTEXT, AuditContext, log_appointment_event
from dental_booking.services.calendar import check_slot_bookable, get_dentist
from dental_booking.services.captcha import CaptchaStore
from dental_booking.services.patients import (
    create_patient,
    find_patient_by_phone,
    get_patient,
    normalize_phone,
)
from dental_booking.services.shifts import shift_for_time
from dental_booking.services.transactions import run_in_transaction

logger = logging.getLogger("dental_booking.booking")

PHONE_PATTERN = re.compile(r"^0\d{9}$")
EMAIL_PATTERN = re.compile(r"^[^@\s]+@[^@\s]+\.[^@\s]+$")
MAX_REASON_LENGTH = 500
MAX_NAME_LENGTH = 200


@dataclass
class SlotRequest:
    dentist_id: int
    appointment_date: date
    appointment_time: time
    reason: str | None = None


@dataclass
class GuestBooking:
    full_name: str
    email: str
    phone: str
    slot: SlotRequest
    captcha_value: str
    captcha_input: str


@dataclass
class BookingResult:
    appointment: Appointment
    notice: PhoneAlreadyRegistered | None = None


def _validate_slot_fields(
    db: Session,
    slot: SlotRequest,
    *,
    now: datetime,
    follow_up: bool,
    errors: dict[str, str],
) -> Shift | None:
    shift: Shift | None = None
    if not (slot.reason or "").strip():
        errors["medical_issue"] = "Please describe the reason for the visit."
    elif len(slot.reason) > MAX_REASON_LENGTH:
        errors["medical_issue"] = f"Must be at most {MAX_REASON_LENGTH} characters."
    try:
        shift = shift_for_time(slot.appointment_time, follow_up=follow_up)
    except ValidationError as exc:
        errors.update(exc.fields)
    if datetime.combine(slot.appointment_date, slot.appointment_time) <= now:
        errors["appointment_date"] = "The appointment date cannot be in the past."
    try:
        get_dentist(db, slot.dentist_id)
    except NotFound:
        errors["dentist_id"] = "Dentist not found."
    return shift


def validate_guest_fields(
    db: Session,
    *,
    full_name: str,
    email: str,
    phone: str,
    slot: SlotRequest,
    now: datetime,
) -> Shift:
    """Check every guest booking field and raise one ValidationError listing all problems."""
    errors: dict[str, str] = {}
    name = (full_name or "").strip()
    if not name:
        errors["full_name"] = "Full name is required."
    elif len(name) > MAX_NAME_LENGTH:
        errors["full_name"] = f"Must be at most {MAX_NAME_LENGTH} characters."
    if not EMAIL_PATTERN.match((email or "").strip()):
        errors["email"] = "Invalid email format."
    if not PHONE_PATTERN.match(normalize_phone(phone)):
        errors["phone"] = "Phone number must have 10 digits and start with 0."
    shift = _validate_slot_fields(db, slot, now=now, follow_up=False, errors=errors)
    if errors:
        raise ValidationError(fields=errors)
    return shift


def ensure_no_same_day_booking(
    db: Session, *, patient_id: int, appointment_date: date, exclude_appointment_id: int | None = None
) -> None:
    stmt = select(Appointment.id).where(
        Appointment.patient_id == patient_id,
        Appointment.appointment_date == appointment_date,
        Appointment.status.in_(LIVE_STATUSES),
        Appointment.deleted_at.is_(None),
    )
    if exclude_appointment_id is not None:
        stmt = stmt.where(Appointment.id != exclude_appointment_id)
    if db.scalar(stmt.limit(1)) is not None:
        raise ValidationError(
            "You already have an appointment on this date.",
            fields={"appointment_date": "Already booked for this date."},
        )


def lock_dentist(db: Session, dentist_id: int) -> Dentist:
    """Serialise bookers of one dentist; a no-op on SQLite."""
    dentist = db.scalars(
        select(Dentist).where(Dentist.id == dentist_id).with_for_update()
    ).first()
    if not dentist or not dentist.is_active:
        raise NotFound("Dentist not found")
    return dentist


def flush_slot_write(db: Session) -> None:
    try:
        db.flush()
    except IntegrityError as exc:
        logger.info("Live-slot constraint rejected a booking: %s", exc.orig)
        raise SlotConflict() from exc


def reserve_slot(
    db: Session,
    *,
    patient: Patient,
    slot: SlotRequest,
    shift: Shift,
    appointment_type: str,
    is_new_patient: bool,
    created_by_user_id: int | None,
    source: Appointment | None = None,
) -> Appointment:
    lock_dentist(db, slot.dentist_id)
    ok, reason = check_slot_bookable(
        db, dentist_id=slot.dentist_id, work_date=slot.appointment_date, shift=shift
    )
    if not ok:
        raise SlotConflict(reason)
    ensure_no_same_day_booking(db, patient_id=patient.id, appointment_date=slot.appointment_date)

    appointment = Appointment(
        patient_id=patient.id,
        dentist_id=slot.dentist_id,
        status=AppointmentStatus.confirmed,
        appointment_date=slot.appointment_date,
        appointment_time=slot.appointment_time,
        shift=shift,
        appointment_type=appointment_type,
        is_new_patient=is_new_patient,
        content=(slot.reason or "").strip() or None,
        created_by_user_id=created_by_user_id,
        updated_by_user_id=created_by_user_id,
    )
    reschedule.link(appointment, source)
    db.add(appointment)
    flush_slot_write(db)
    db.refresh(appointment)
    return appointment


def book_as_guest(
    db: Session,
    request: GuestBooking,
    *,
    captcha: CaptchaStore,
    now: datetime,
    context: AuditContext = NO_AUDIT_CONTEXT,
) -> BookingResult:
    shift = validate_guest_fields(
        db,
        full_name=request.full_name,
        email=request.email,
        phone=request.phone,
        slot=request.slot,
        now=now,
    )
    known = find_patient_by_phone(db, request.phone)
    if known is not None:
        # Refuse before the captcha is spent; reserve_slot repeats this under the lock.
        ensure_no_same_day_booking(
            db, patient_id=known.id, appointment_date=request.slot.appointment_date
        )
    captcha.verify(request.captcha_value, request.captcha_input)

    def work() -> BookingResult:
        patient = find_patient_by_phone(db, request.phone)
        notice: PhoneAlreadyRegistered | None = None
        is_new = patient is None
        if patient is None:
            try:
                patient = create_patient(
                    db, full_name=request.full_name, phone=request.phone, email=request.email
                )
            except IntegrityError as exc:
                raise ValidationError(
                    "This phone number was registered a moment ago. Please try again.",
                    fields={"phone": "Already registered."},
                ) from exc
        else:
            notice = PhoneAlreadyRegistered()
        appointment = reserve_slot(
            db,
            patient=patient,
            slot=request.slot,
            shift=shift,
            appointment_type=(
                AppointmentType.first_time.value if is_new else AppointmentType.consultation.value
            ),
            is_new_patient=is_new,
            created_by_user_id=None,
        )
        notifications.notify_booked(db, appointment)
        log_appointment_event(
            db, actor=None, action="appointment.booked_guest", appointment=appointment, context=context
        )
        return BookingResult(appointment=appointment, notice=notice)

    result = run_in_transaction(db, work, label="guest booking")
    logger.info(
        "Guest booking %s created for dentist %s on %s %s",
        result.appointment.id,
        result.appointment.dentist_id,
        result.appointment.appointment_date,
        result.appointment.shift.value,
    )
    return result


def book_as_patient(
    db: Session,
    actor: Actor,
    slot: SlotRequest,
    *,
    now: datetime,
    context: AuditContext = NO_AUDIT_CONTEXT,
) -> Appointment:
    if actor.role != Role.patient:
        raise UnauthorizedTransition("Only patients can book for themselves.")
    if actor.patient_id is None:
        raise NotFound("Patient profile not found")
    errors: dict[str, str] = {}
    shift = _validate_slot_fields(db, slot, now=now, follow_up=False, errors=errors)
    if errors:
        raise ValidationError(fields=errors)

    def work() -> Appointment:
        patient = get_patient(db, actor.patient_id)
        appointment = reserve_slot(
            db,
            patient=patient,
            slot=slot,
            shift=shift,
            appointment_type=AppointmentType.consultation.value,
            is_new_patient=False,
            created_by_user_id=actor.user_id,
        )
        notifications.notify_booked(db, appointment)
        log_appointment_event(
            db, actor=actor, action="appointment.booked", appointment=appointment, context=context
        )
        return appointment

    appointment = run_in_transaction(db, work, label="patient booking")
    logger.info("Patient %s booked appointment %s", actor.patient_id, appointment.id)
    return appointment


def book_follow_up(
    db: Session,
    actor: Actor,
    *,
    patient_id: int,
    slot: SlotRequest,
    source_appointment_id: int | None = None,
    now: datetime,
    context: AuditContext = NO_AUDIT_CONTEXT,
) -> Appointment:
    if actor.role != Role.receptionist:
        raise UnauthorizedTransition("Only reception can book follow-up appointments.")
    errors: dict[str, str] = {}
    shift = _validate_slot_fields(db, slot, now=now, follow_up=True, errors=errors)
    if errors:
        raise ValidationError(fields=errors)

    def work() -> Appointment:
        patient = get_patient(db, patient_id)
        source = reschedule.resolve_source(
            db, patient_id=patient.id, source_appointment_id=source_appointment_id
        )
        latest = reschedule.latest_appointment_for_patient(db, patient.id)
        if latest is not None and latest.status == AppointmentStatus.confirmed:
            raise ValidationError(
                "The patient already has an upcoming confirmed appointment.",
                fields={"patient_id": "Already has a confirmed appointment."},
            )
        appointment = reserve_slot(
            db,
            patient=patient,
            slot=slot,
            shift=shift,
            appointment_type=AppointmentType.follow_up.value,
            is_new_patient=False,
            created_by_user_id=actor.user_id,
            source=source,
        )
        notifications.notify_booked(db, appointment)
        log_appointment_event(
            db,
            actor=actor,
            action="appointment.follow_up_created",
            appointment=appointment,
            context=context,
        )
        return appointment

    appointment = run_in_transaction(db, work, label="follow-up booking")
    logger.info(
        "Follow-up appointment %s created for patient %s (from %s)",
        appointment.id,
        patient_id,
        appointment.rescheduled_from_appointment_id,
    )
    return appointment
