from datetime import date, datetime, time

import pytest

from dental_booking.core.errors import NotFound, ValidationError
from dental_booking.models import ScheduleStatus, Shift
from dental_booking.services import lifecycle
from dental_booking.services.calendar import check_slot_bookable, get_slots
from dental_booking.services.users import resolve_actor

from conftest import NEXT_MONDAY, NOW, TUESDAY, WEDNESDAY, add_shift, book_for


def _cells(grid):
    return [(cell.date, cell.shift, cell.available) for cell in grid.slots]


@pytest.mark.parametrize("week_offset", [-1, 2, 5])
def test_week_offset_outside_horizon_is_rejected(db, dentist, week_offset):
    with pytest.raises(ValidationError) as excinfo:
        get_slots(db, dentist_id=dentist.id, week_offset=week_offset, now=NOW)
    assert "week_offset" in excinfo.value.fields


def test_unknown_dentist_is_not_found(db):
    with pytest.raises(NotFound):
        get_slots(db, dentist_id=999, week_offset=0, now=NOW)


def test_no_schedule_gives_empty_grid(db, dentist):
    grid = get_slots(db, dentist_id=dentist.id, week_offset=0, now=NOW)
    assert grid.slots == []
    assert grid.week_start == date(2026, 10, 19)
    assert grid.week_end == date(2026, 10, 25)


def test_only_active_approved_cells_are_listed(db, dentist):
    add_shift(db, dentist.id, TUESDAY, Shift.morning)
    add_shift(db, dentist.id, TUESDAY, Shift.afternoon, status=ScheduleStatus.pending)
    add_shift(db, dentist.id, WEDNESDAY, Shift.morning, status=ScheduleStatus.rejected)
    add_shift(db, dentist.id, WEDNESDAY, Shift.evening, is_active=False)

    grid = get_slots(db, dentist_id=dentist.id, week_offset=0, now=NOW)
    assert _cells(grid) == [(TUESDAY, Shift.morning, True)]


def test_cells_are_ordered_by_date_and_shift(db, dentist):
    add_shift(db, dentist.id, WEDNESDAY, Shift.morning)
    add_shift(db, dentist.id, TUESDAY, Shift.evening)
    add_shift(db, dentist.id, TUESDAY, Shift.morning)

    grid = get_slots(db, dentist_id=dentist.id, week_offset=0, now=NOW)
    assert [(cell.date, cell.shift) for cell in grid.slots] == [
        (TUESDAY, Shift.morning),
        (TUESDAY, Shift.evening),
        (WEDNESDAY, Shift.morning),
    ]


def test_occupied_cell_is_unavailable_until_cancelled(db, dentist, patient_user, receptionist_user):
    add_shift(db, dentist.id, TUESDAY, Shift.morning)
    add_shift(db, dentist.id, TUESDAY, Shift.afternoon)
    appointment = book_for(db, patient_user, dentist.id, TUESDAY, time(8, 30))

    grid = get_slots(db, dentist_id=dentist.id, week_offset=0, now=NOW)
    assert _cells(grid) == [
        (TUESDAY, Shift.morning, False),
        (TUESDAY, Shift.afternoon, True),
    ]

    lifecycle.cancel(db, resolve_actor(db, receptionist_user), appointment.id, now=NOW)
    grid = get_slots(db, dentist_id=dentist.id, week_offset=0, now=NOW)
    assert _cells(grid)[0] == (TUESDAY, Shift.morning, True)


def test_attended_appointment_keeps_slot_occupied(db, dentist, patient_user, receptionist_user):
    add_shift(db, dentist.id, TUESDAY, Shift.morning)
    appointment = book_for(db, patient_user, dentist.id, TUESDAY, time(9, 0))
    lifecycle.mark_attended(db, resolve_actor(db, receptionist_user), appointment.id, now=NOW)

    ok, reason = check_slot_bookable(db, dentist_id=dentist.id, work_date=TUESDAY, shift=Shift.morning)
    assert ok is False
    assert reason == "This time slot is already booked."


def test_shifts_that_have_ended_are_marked_past(db, dentist):
    add_shift(db, dentist.id, TUESDAY, Shift.morning)
    add_shift(db, dentist.id, WEDNESDAY, Shift.afternoon)

    grid = get_slots(db, dentist_id=dentist.id, week_offset=0, now=datetime(2026, 10, 21, 12, 0))
    tuesday, wednesday = grid.slots
    assert (tuesday.available, tuesday.is_past) == (False, True)
    assert (wednesday.available, wednesday.is_past) == (True, False)


def test_next_week_is_separate_from_current(db, dentist):
    add_shift(db, dentist.id, TUESDAY, Shift.morning)
    add_shift(db, dentist.id, NEXT_MONDAY, Shift.evening)

    this_week = get_slots(db, dentist_id=dentist.id, week_offset=0, now=NOW)
    next_week = get_slots(db, dentist_id=dentist.id, week_offset=1, now=NOW)
    assert _cells(this_week) == [(TUESDAY, Shift.morning, True)]
    assert _cells(next_week) == [(NEXT_MONDAY, Shift.evening, True)]
    assert next_week.week_start == NEXT_MONDAY


def test_slot_without_schedule_is_not_bookable(db, dentist):
    ok, reason = check_slot_bookable(db, dentist_id=dentist.id, work_date=TUESDAY, shift=Shift.morning)
    assert ok is False
    assert reason == "The dentist is not working this shift."
