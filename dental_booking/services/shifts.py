"""Clinic shift windows.

This is the single source of the shift -> time window mapping. The calendar,
booking, lifecycle and schema layers all read it from here.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

from dental_booking.core.errors import ValidationError
from dental_booking.models.schedule import Shift


@dataclass(frozen=True)
class ShiftWindow:
    shift: Shift
    start: time
    end: time
    label: str

    def contains(self, value: time) -> bool:
        return self.start <= value < self.end


SHIFT_WINDOWS: dict[Shift, ShiftWindow] = {
    Shift.morning: ShiftWindow(Shift.morning, time(8, 0), time(11, 0), "Morning"),
    Shift.afternoon: ShiftWindow(Shift.afternoon, time(14, 0), time(17, 0), "Afternoon"),
    Shift.evening: ShiftWindow(Shift.evening, time(17, 0), time(20, 0), "Evening"),
}

# Reception books follow-ups from 13:00 in the afternoon.
FOLLOW_UP_SHIFT_WINDOWS: dict[Shift, ShiftWindow] = {
    **SHIFT_WINDOWS,
    Shift.afternoon: ShiftWindow(Shift.afternoon, time(13, 0), time(17, 0), "Afternoon"),
}

SHIFT_ORDER = {shift: index for index, shift in enumerate(SHIFT_WINDOWS)}


def windows_for(follow_up: bool = False) -> dict[Shift, ShiftWindow]:
    return FOLLOW_UP_SHIFT_WINDOWS if follow_up else SHIFT_WINDOWS


def shift_for_time(value: time, *, follow_up: bool = False) -> Shift:
    for window in windows_for(follow_up).values():
        if window.contains(value):
            return window.shift
    raise ValidationError(
        "Appointment time is outside clinic shifts.",
        fields={"appointment_time": "Choose a time within the morning, afternoon or evening shift."},
    )


def canonical_start(shift: Shift) -> time:
    return SHIFT_WINDOWS[shift].start


def shift_end(shift: Shift) -> time:
    return SHIFT_WINDOWS[shift].end


def shift_has_ended(work_date: date, shift: Shift, now: datetime) -> bool:
    return datetime.combine(work_date, shift_end(shift)) <= now


def week_start(day: date) -> date:
    return day - timedelta(days=day.weekday())
