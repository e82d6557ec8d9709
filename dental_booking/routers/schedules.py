from datetime import date, datetime

from fastapi import APIRouter, Depends, Query, status
from sqlalchemy.orm import Session

from dental_booking.db.session import get_db
from dental_booking.deps import get_actor, get_audit_context, get_now
from dental_booking.models.schedule import ScheduleStatus
from dental_booking.models.user import Role
from dental_booking.schemas.schedule import (
    DentistWeekOut,
    ScheduleActiveUpdate,
    ScheduleCellIn,
    ScheduleOut,
    ScheduleRegister,
    ScheduleReview,
    WeekGridOut,
)
from dental_booking.services.actor import Actor
from dental_booking.services.audit import AuditContext
from dental_booking.services.calendar import get_available_schedules
from dental_booking.services.schedules import (
    ScheduleCell,
    cancel_schedule,
    edit_schedule,
    list_schedules,
    register_schedule,
    review_schedule,
    set_schedule_active,
)

router = APIRouter(prefix="/schedules", tags=["schedules"])


@router.post("", response_model=list[ScheduleOut], status_code=status.HTTP_201_CREATED)
def register(
    payload: ScheduleRegister,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    now: datetime = Depends(get_now),
    context: AuditContext = Depends(get_audit_context),
):
    cells = [ScheduleCell(work_date=item.work_date, shift=item.shift) for item in payload.schedules]
    return register_schedule(db, actor, cells, now=now, context=context)


@router.get("", response_model=list[ScheduleOut])
def list_for_actor(
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    dentist_id: int | None = Query(default=None),
    status_filter: ScheduleStatus | None = Query(default=None, alias="status"),
    from_date: date | None = Query(default=None, alias="from"),
    to_date: date | None = Query(default=None, alias="to"),
):
    if actor.role == Role.dentist:
        dentist_id = actor.dentist_id
    return list_schedules(
        db, dentist_id=dentist_id, status=status_filter, from_date=from_date, to_date=to_date
    )


@router.post("/{schedule_id}/approval", response_model=ScheduleOut)
def review(
    schedule_id: int,
    payload: ScheduleReview,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    context: AuditContext = Depends(get_audit_context),
):
    return review_schedule(db, actor, schedule_id, approve=payload.approve, context=context)


@router.patch("/{schedule_id}/active", response_model=ScheduleOut)
def toggle_active(
    schedule_id: int,
    payload: ScheduleActiveUpdate,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
):
    return set_schedule_active(db, actor, schedule_id, is_active=payload.is_active)


@router.get("/available", response_model=list[DentistWeekOut])
def list_available(
    week_offset: int = Query(default=0),
    db: Session = Depends(get_db),
    now: datetime = Depends(get_now),
):
    return [
        DentistWeekOut(
            dentist_id=item.dentist_id,
            dentist_name=item.dentist_name,
            week=WeekGridOut.from_grid(item.grid),
        )
        for item in get_available_schedules(db, week_offset=week_offset, now=now)
    ]


@router.put("/{schedule_id}", response_model=ScheduleOut)
def edit(
    schedule_id: int,
    payload: ScheduleCellIn,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    now: datetime = Depends(get_now),
    context: AuditContext = Depends(get_audit_context),
):
    cell = ScheduleCell(work_date=payload.work_date, shift=payload.shift)
    return edit_schedule(db, actor, schedule_id, cell, now=now, context=context)


@router.delete("/{schedule_id}", response_model=ScheduleOut)
def cancel(
    schedule_id: int,
    db: Session = Depends(get_db),
    actor: Actor = Depends(get_actor),
    context: AuditContext = Depends(get_audit_context),
):
    return cancel_schedule(db, actor, schedule_id, context=context)
