from datetime import date, datetime

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from sqlalchemy import select
from sqlalchemy.orm import Session

from dental_booking.core.errors import NotFound, UnauthorizedTransition
from dental_booking.core.settings import settings
from dental_booking.db.session import get_db
from dental_booking.deps import get_actor, get_audit_context, get_captcha_store, get_now
from dental_booking.models.appointment import Appointment, AppointmentStatus
from dental_booking.models.audit_log import AuditLog
from dental_booking.models.user import Role
from dental_booking.schemas.appointment import (
    AppointmentCancel,
    AppointmentOut,
    AppointmentReschedule,
    AppointmentStatusUpdate,
    CancellationInfoOut,
    CaptchaOut,
    ChainEntryOut,
    FollowUpCreate,
    GuestBookingCreate,
    GuestBookingOut,
    GuestBookingValidate,
    NoticeOut,
    PatientBookingCreate,
    ValidationOut,
)
from dental_booking.schemas.audit_log import AuditLogOut
from dental_booking.schemas.schedule import WeekGridOut
from dental_booking.services import booking, cancellation, lifecycle, reschedule
from dental_booking.services.actor import Actor
from dental_booking.services.audit import AuditContext
from dental_booking.services.calendar import get_slots
from dental_booking.services.captcha import CaptchaStore
from dental_booking.services.patients import find_patient_by_phone
from dental_booking.services.rate_limit import SimpleRateLimiter

router = APIRouter(prefix="/appointments", tags=["appointments"])

CAPTCHA_LIMITER = SimpleRateLimiter(
    max_events=settings.captcha_requests_per_minute, window_seconds=60
)
GUEST_BOOKING_LIMITER = SimpleRateLimiter(
    max_events=settings.guest_bookings_per_minute, window_seconds=60
)


def _client_key(request: Request) -> str:
    return request.client.host if request.client else "unknown"


def _slot_request(payload) -> booking.SlotRequest:
    return booking.SlotRequest(
        dentist_id=payload.dentist_id,
        appointment_date=payload.appointment_date,
        appointment_time=payload.appointment_time,
        reason=getattr(payload, "medical_issue", None) or getattr(payload, "reason_for_follow_up", None),
    )


@router.get("/slots", response_model=WeekGridOut)
def list_slots(
    dentist_id: int,
    week_offset: int = Query(default=0),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    grid = get_slots(db, dentist_id=dentist_id, week_offset=week_offset, now=now)
    return WeekGridOut.from_grid(grid)


@router.post("/captcha", response_model=CaptchaOut)
def create_captcha(request: Request, store: CaptchaStore = Depends(get_captcha_store)):
    if not CAPTCHA_LIMITER.allow(_client_key(request)):
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Too many requests")
    return CaptchaOut(captcha=store.issue(), expires_in_seconds=store.ttl_seconds)


@router.post("/guest/validate", response_model=ValidationOut)
def validate_guest_booking(
    payload: GuestBookingValidate,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    shift = booking.validate_guest_fields(
        db,
        full_name=payload.full_name,
        email=payload.email,
        phone=payload.phone,
        slot=_slot_request(payload),
        now=now,
    )
    registered = find_patient_by_phone(db, payload.phone) is not None
    return ValidationOut(valid=True, shift=shift, phone_registered=registered)


@router.post("/guest", response_model=GuestBookingOut, status_code=status.HTTP_201_CREATED)
def book_guest_appointment(
    payload: GuestBookingCreate,
    request: Request,
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
    store: CaptchaStore = Depends(get_captcha_store),
    context: AuditContext = Depends(get_audit_context),
):
    if not GUEST_BOOKING_LIMITER.allow(_client_key(request)):
        raise HTTPException(status_code=status.HTTP_429_TOO_MANY_REQUESTS, detail="Too many requests")
    result = booking.book_as_guest(
        db,
        booking.GuestBooking(
            full_name=payload.full_name,
            email=payload.email,
            phone=payload.phone,
            slot=_slot_request(payload),
            captcha_value=payload.captcha_value,
            captcha_input=payload.captcha_input,
        ),
        captcha=store,
        now=now,
        context=context,
    )
    notice = None
    if result.notice is not None:
        notice = NoticeOut(code=result.notice.code, detail=result.notice.message)
    return GuestBookingOut(
        appointment=AppointmentOut.model_validate(result.appointment), notice=notice
    )


@router.post("", response_model=AppointmentOut, status_code=status.HTTP_201_CREATED)
def book_patient_appointment(
    payload: PatientBookingCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    now: datetime = Depends(get_now),
    context: AuditContext = Depends(get_audit_context),
):
    return booking.book_as_patient(db, actor, _slot_request(payload), now=now, context=context)


@router.post("/follow-up", response_model=AppointmentOut, status_code=status.HTTP_201_CREATED)
def book_follow_up_appointment(
    payload: FollowUpCreate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    now: datetime = Depends(get_now),
    context: AuditContext = Depends(get_audit_context),
):
    return booking.book_follow_up(
        db,
        actor,
        patient_id=payload.patient_id,
        slot=_slot_request(payload),
        source_appointment_id=payload.source_appointment_id,
        now=now,
        context=context,
    )


@router.get("", response_model=list[AppointmentOut])
def list_appointments(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    dentist_id: int | None = Query(default=None),
    patient_id: int | None = Query(default=None),
    status_filter: AppointmentStatus | None = Query(default=None, alias="status"),
    from_date: date | None = Query(default=None, alias="from"),
    to_date: date | None = Query(default=None, alias="to"),
):
    stmt = select(Appointment).where(Appointment.deleted_at.is_(None))
    if actor.role == Role.patient:
        if actor.patient_id is None:
            return []
        stmt = stmt.where(Appointment.patient_id == actor.patient_id)
    elif actor.role == Role.dentist:
        stmt = stmt.where(Appointment.dentist_id == actor.dentist_id)
    else:
        if dentist_id is not None:
            stmt = stmt.where(Appointment.dentist_id == dentist_id)
        if patient_id is not None:
            stmt = stmt.where(Appointment.patient_id == patient_id)
    if status_filter is not None:
        stmt = stmt.where(Appointment.status == status_filter)
    if from_date is not None:
        stmt = stmt.where(Appointment.appointment_date >= from_date)
    if to_date is not None:
        stmt = stmt.where(Appointment.appointment_date <= to_date)
    stmt = stmt.order_by(Appointment.appointment_date.desc(), Appointment.appointment_time.desc())
    return list(db.scalars(stmt))


def _visible_appointment(db: Session, actor: Actor, appointment_id: int) -> Appointment:
    appointment = lifecycle.load_appointment(db, appointment_id)
    lifecycle.ensure_can_view(actor, appointment)
    if actor.role == Role.dentist and appointment.dentist_id != actor.dentist_id:
        raise NotFound("Appointment not found")
    return appointment


@router.get("/{appointment_id}", response_model=AppointmentOut)
def get_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return _visible_appointment(db, actor, appointment_id)


@router.get("/{appointment_id}/cancellation", response_model=CancellationInfoOut)
def get_cancellation_info(
    appointment_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    now: datetime = Depends(get_now),
):
    appointment = _visible_appointment(db, actor, appointment_id)
    remaining = cancellation.time_until(
        appointment.appointment_date, appointment.appointment_time, now
    )
    allowed = cancellation.can_cancel(
        appointment.appointment_date,
        appointment.appointment_time,
        now,
        actor.role,
        appointment.status,
    )
    return CancellationInfoOut(
        appointment_id=appointment.id,
        can_cancel=allowed,
        cancel_deadline=remaining.cancel_deadline,
        is_past=remaining.is_past,
        days=remaining.days,
        hours=remaining.hours,
        minutes=remaining.minutes,
        label=remaining.label,
    )


@router.get("/{appointment_id}/chain", response_model=list[ChainEntryOut])
def get_appointment_chain(
    appointment_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    _visible_appointment(db, actor, appointment_id)
    return reschedule.provenance_chain(db, appointment_id)


@router.post("/{appointment_id}/cancel", response_model=AppointmentOut)
def cancel_appointment(
    appointment_id: int,
    payload: AppointmentCancel,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    now: datetime = Depends(get_now),
    context: AuditContext = Depends(get_audit_context),
):
    return lifecycle.cancel(
        db,
        actor,
        appointment_id,
        now=now,
        reason=payload.reason,
        expected_version=payload.version_id,
        context=context,
    )


@router.post("/{appointment_id}/status", response_model=AppointmentOut)
def update_appointment_status(
    appointment_id: int,
    payload: AppointmentStatusUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    now: datetime = Depends(get_now),
    context: AuditContext = Depends(get_audit_context),
):
    return lifecycle.change_status(
        db,
        actor,
        appointment_id,
        AppointmentStatus(payload.status),
        now=now,
        reason=payload.reason,
        expected_version=payload.version_id,
        context=context,
    )


@router.put("/{appointment_id}", response_model=AppointmentOut)
def reschedule_appointment(
    appointment_id: int,
    payload: AppointmentReschedule,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    now: datetime = Depends(get_now),
    context: AuditContext = Depends(get_audit_context),
):
    return lifecycle.reschedule_appointment(
        db,
        actor,
        appointment_id,
        dentist_id=payload.dentist_id,
        appointment_date=payload.appointment_date,
        appointment_time=payload.appointment_time,
        reason=payload.reason_for_follow_up,
        now=now,
        expected_version=payload.version_id,
        context=context,
    )


@router.post("/{appointment_id}/archive", response_model=AppointmentOut)
def archive_appointment(
    appointment_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    context: AuditContext = Depends(get_audit_context),
):
    return lifecycle.archive(db, actor, appointment_id, context=context)


@router.get("/{appointment_id}/audit", response_model=list[AuditLogOut])
def appointment_audit(
    appointment_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    limit: int = Query(default=50, ge=1, le=200),
    offset: int = Query(default=0, ge=0),
):
    if not actor.is_staff and actor.role not in {Role.owner, Role.administrator}:
        raise UnauthorizedTransition()
    stmt = (
        select(AuditLog)
        .where(
            AuditLog.entity_type == "appointment",
            AuditLog.entity_id == str(appointment_id),
        )
        .order_by(AuditLog.created_at.desc(), AuditLog.id.desc())
        .limit(limit)
        .offset(offset)
    )
    return list(db.scalars(stmt))
