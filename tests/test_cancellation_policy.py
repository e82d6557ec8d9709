from datetime import date, datetime, time

import pytest

from dental_booking.core.errors import (
    CancellationWindowExceeded,
    InvalidTransition,
    UnauthorizedTransition,
)
from dental_booking.models.appointment import AppointmentStatus
from dental_booking.models.user import Role
from dental_booking.services.cancellation import can_cancel, cancel_deadline, check_cancel, time_until

DAY = date(2026, 10, 21)
TWO_PM = time(14, 0)


@pytest.mark.parametrize(
    ("now", "expected"),
    [
        (datetime(2026, 10, 21, 10, 0), True),
        (datetime(2026, 10, 21, 12, 0), True),
        (datetime(2026, 10, 21, 12, 0, 1), False),
        (datetime(2026, 10, 21, 13, 15), False),
        (datetime(2026, 10, 21, 15, 0), False),
    ],
)
def test_patient_window_boundary(now: datetime, expected: bool):
    assert can_cancel(DAY, TWO_PM, now, Role.patient) is expected


@pytest.mark.parametrize("role", [Role.receptionist, Role.dentist])
def test_staff_may_cancel_inside_window(role: Role):
    now = datetime(2026, 10, 21, 13, 15)
    assert can_cancel(DAY, TWO_PM, now, role) is True
    check_cancel(DAY, TWO_PM, now, role, AppointmentStatus.confirmed)


@pytest.mark.parametrize("role", [Role.owner, Role.assistant, Role.administrator])
def test_other_roles_never_cancel(role: Role):
    now = datetime(2026, 10, 21, 8, 0)
    assert can_cancel(DAY, TWO_PM, now, role) is False
    with pytest.raises(UnauthorizedTransition):
        check_cancel(DAY, TWO_PM, now, role, AppointmentStatus.confirmed)


@pytest.mark.parametrize(
    "status", [AppointmentStatus.attended, AppointmentStatus.absented, AppointmentStatus.canceled]
)
def test_only_confirmed_appointments_cancel(status: AppointmentStatus):
    now = datetime(2026, 10, 20, 8, 0)
    assert can_cancel(DAY, TWO_PM, now, Role.receptionist, status) is False
    with pytest.raises(InvalidTransition):
        check_cancel(DAY, TWO_PM, now, Role.receptionist, status)


def test_patient_late_cancel_raises_window_error():
    with pytest.raises(CancellationWindowExceeded) as excinfo:
        check_cancel(DAY, TWO_PM, datetime(2026, 10, 21, 13, 15), Role.patient, AppointmentStatus.confirmed)
    assert excinfo.value.code == "cancellation_window_exceeded"
    assert "2 hours" in excinfo.value.message


def test_cancel_deadline_is_two_hours_before_start():
    assert cancel_deadline(DAY, TWO_PM) == datetime(2026, 10, 21, 12, 0)


def test_time_until_labels():
    remaining = time_until(DAY, TWO_PM, datetime(2026, 10, 21, 10, 30))
    assert (remaining.days, remaining.hours, remaining.minutes) == (0, 3, 30)
    assert remaining.label == "3 hours 30 minutes left"
    assert remaining.is_past is False

    remaining = time_until(DAY, TWO_PM, datetime(2026, 10, 19, 13, 0))
    assert remaining.label == "2 days 1 hour left"

    remaining = time_until(DAY, TWO_PM, datetime(2026, 10, 21, 13, 59))
    assert remaining.label == "1 minute left"


def test_time_until_past_appointment():
    remaining = time_until(DAY, TWO_PM, datetime(2026, 10, 21, 14, 0))
    assert remaining.is_past is True
    assert remaining.label == "Appointment time has passed"
