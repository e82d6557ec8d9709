from __future__ import annotations

from dataclasses import dataclass, field
from datetime import date, datetime, timedelta

from sqlalchemy import select
from sqlalchemy.orm import Session

from dental_booking.core.errors import NotFound, ValidationError
from dental_booking.models.appointment import LIVE_STATUSES, Appointment
from dental_booking.models.dentist import Dentist
from dental_booking.models.schedule import DentistSchedule, ScheduleStatus, Shift
from dental_booking.services.shifts import SHIFT_ORDER, shift_has_ended, week_start

BOOKING_WEEK_OFFSETS = (0, 1)


@dataclass
class SlotCell:
    date: date
    shift: Shift
    available: bool
    is_past: bool = False


@dataclass
class WeekGrid:
    dentist_id: int
    week_offset: int
    week_start: date
    week_end: date
    slots: list[SlotCell] = field(default_factory=list)


def get_dentist(db: Session, dentist_id: int) -> Dentist:
    dentist = db.get(Dentist, dentist_id)
    if not dentist or not dentist.is_active:
        raise NotFound("Dentist not found")
    return dentist


def week_bounds(today: date, week_offset: int) -> tuple[date, date]:
    start = week_start(today) + timedelta(weeks=week_offset)
    return start, start + timedelta(days=6)


def _bookable_schedule_stmt(dentist_id: int):
    return select(DentistSchedule).where(
        DentistSchedule.dentist_id == dentist_id,
        DentistSchedule.is_active.is_(True),
        DentistSchedule.status == ScheduleStatus.approved,
        DentistSchedule.deleted_at.is_(None),
    )


def _live_appointments_stmt(dentist_id: int):
    return select(Appointment).where(
        Appointment.dentist_id == dentist_id,
        Appointment.status.in_(LIVE_STATUSES),
        Appointment.deleted_at.is_(None),
    )


def get_slots(db: Session, *, dentist_id: int, week_offset: int, now: datetime) -> WeekGrid:
    if week_offset not in BOOKING_WEEK_OFFSETS:
        raise ValidationError(
            "Only the current and next week can be booked.",
            fields={"week_offset": "Must be 0 or 1."},
        )
    get_dentist(db, dentist_id)
    start, end = week_bounds(now.date(), week_offset)
    grid = WeekGrid(dentist_id=dentist_id, week_offset=week_offset, week_start=start, week_end=end)

    schedules = list(
        db.scalars(
            _bookable_schedule_stmt(dentist_id).where(
                DentistSchedule.work_date >= start, DentistSchedule.work_date <= end
            )
        )
    )
    if not schedules:
        return grid

    occupied = {
        (appt.appointment_date, appt.shift)
        for appt in db.scalars(
            _live_appointments_stmt(dentist_id).where(
                Appointment.appointment_date >= start, Appointment.appointment_date <= end
            )
        ).unique()
    }

    seen: set[tuple[date, Shift]] = set()
    for row in sorted(schedules, key=lambda item: (item.work_date, SHIFT_ORDER[item.shift])):
        key = (row.work_date, row.shift)
        if key in seen:
            continue
        seen.add(key)
        is_past = shift_has_ended(row.work_date, row.shift, now)
        grid.slots.append(
            SlotCell(
                date=row.work_date,
                shift=row.shift,
                available=key not in occupied and not is_past,
                is_past=is_past,
            )
        )
    return grid


def has_bookable_schedule(db: Session, *, dentist_id: int, work_date: date, shift: Shift) -> bool:
    stmt = _bookable_schedule_stmt(dentist_id).where(
        DentistSchedule.work_date == work_date, DentistSchedule.shift == shift
    )
    return db.scalar(stmt.limit(1)) is not None


def slot_is_occupied(
    db: Session,
    *,
    dentist_id: int,
    work_date: date,
    shift: Shift,
    exclude_appointment_id: int | None = None,
) -> bool:
    stmt = _live_appointments_stmt(dentist_id).where(
        Appointment.appointment_date == work_date, Appointment.shift == shift
    )
    if exclude_appointment_id is not None:
        stmt = stmt.where(Appointment.id != exclude_appointment_id)
    return db.scalars(stmt.limit(1)).first() is not None


def check_slot_bookable(
    db: Session,
    *,
    dentist_id: int,
    work_date: date,
    shift: Shift,
    exclude_appointment_id: int | None = None,
) -> tuple[bool, str | None]:
    if not has_bookable_schedule(db, dentist_id=dentist_id, work_date=work_date, shift=shift):
        return False, "The dentist is not working this shift."
    if slot_is_occupied(
        db,
        dentist_id=dentist_id,
        work_date=work_date,
        shift=shift,
        exclude_appointment_id=exclude_appointment_id,
    ):
        return False, "This time slot is already booked."
    return True, None


@dataclass
class DentistWeek:
    dentist_id: int
    dentist_name: str
    grid: WeekGrid


def get_available_schedules(db: Session, *, week_offset: int, now: datetime) -> list[DentistWeek]:
    """Week grids of every active dentist that has at least one working shift that week."""
    dentists = list(
        db.scalars(select(Dentist).where(Dentist.is_active.is_(True)).order_by(Dentist.id)).unique()
    )
    weeks = []
    for dentist in dentists:
        grid = get_slots(db, dentist_id=dentist.id, week_offset=week_offset, now=now)
        if grid.slots:
            weeks.append(DentistWeek(dentist_id=dentist.id, dentist_name=dentist.full_name, grid=grid))
    return weeks
