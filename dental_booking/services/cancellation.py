"""Cancellation policy for appointments.

Pure functions of the appointment start, the current clinic time and the
caller's role. Patients must cancel at least ``CANCELLATION_LEAD_HOURS``
before the start; staff may cancel any confirmed appointment.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from dental_booking.core.errors import (
    CancellationWindowExceeded,
    InvalidTransition,
    UnauthorizedTransition,
)
from dental_booking.core.settings import settings
from dental_booking.models.appointment import AppointmentStatus
from dental_booking.models.user import STAFF_ROLES, Role


@dataclass(frozen=True)
class TimeRemaining:
    days: int
    hours: int
    minutes: int
    is_past: bool
    label: str
    cancel_deadline: datetime


def lead_time() -> timedelta:
    return timedelta(hours=settings.cancellation_lead_hours)


def cancel_deadline(appointment_date: date, appointment_time: time) -> datetime:
    return datetime.combine(appointment_date, appointment_time) - lead_time()


def within_patient_window(appointment_date: date, appointment_time: time, now: datetime) -> bool:
    return now <= cancel_deadline(appointment_date, appointment_time)


def can_cancel(
    appointment_date: date,
    appointment_time: time,
    now: datetime,
    role: Role,
    status: AppointmentStatus = AppointmentStatus.confirmed,
) -> bool:
    if status != AppointmentStatus.confirmed:
        return False
    if role in STAFF_ROLES:
        return True
    if role == Role.patient:
        return within_patient_window(appointment_date, appointment_time, now)
    return False


def check_cancel(
    appointment_date: date,
    appointment_time: time,
    now: datetime,
    role: Role,
    status: AppointmentStatus,
) -> None:
    if status != AppointmentStatus.confirmed:
        raise InvalidTransition(f"A {status.value} appointment cannot be cancelled.")
    if role in STAFF_ROLES:
        return
    if role != Role.patient:
        raise UnauthorizedTransition()
    if not within_patient_window(appointment_date, appointment_time, now):
        raise CancellationWindowExceeded(
            f"Appointments can only be cancelled at least "
            f"{settings.cancellation_lead_hours} hours in advance."
        )


def _plural(value: int, unit: str) -> str:
    return f"{value} {unit}" if value == 1 else f"{value} {unit}s"


def time_until(appointment_date: date, appointment_time: time, now: datetime) -> TimeRemaining:
    starts_at = datetime.combine(appointment_date, appointment_time)
    deadline = starts_at - lead_time()
    delta = starts_at - now
    if delta <= timedelta(0):
        return TimeRemaining(0, 0, 0, True, "Appointment time has passed", deadline)

    total_minutes = int(delta.total_seconds() // 60)
    days, remainder = divmod(total_minutes, 24 * 60)
    hours, minutes = divmod(remainder, 60)
    if days:
        label = f"{_plural(days, 'day')} {_plural(hours, 'hour')} left"
    elif hours:
        label = f"{_plural(hours, 'hour')} {_plural(minutes, 'minute')} left"
    else:
        label = f"{_plural(minutes, 'minute')} left"
    return TimeRemaining(days, hours, minutes, False, label, deadline)
