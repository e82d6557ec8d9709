from datetime import datetime, time

import pytest
from sqlalchemy import select

from dental_booking.core.errors import (
    CancellationWindowExceeded,
    InvalidTransition,
    NotFound,
    SlotConflict,
    UnauthorizedTransition,
    ValidationError,
)
from dental_booking.models import Appointment, AppointmentStatus, AuditLog, Shift
from dental_booking.services import lifecycle
from dental_booking.services.booking import SlotRequest, book_follow_up
from dental_booking.services.calendar import get_slots
from dental_booking.services.users import resolve_actor

from conftest import NOW, TUESDAY, WEDNESDAY, add_shift, book_for

TERMINAL = [AppointmentStatus.attended, AppointmentStatus.absented, AppointmentStatus.canceled]


@pytest.fixture()
def booked(db, dentist, patient_user):
    add_shift(db, dentist.id, WEDNESDAY, Shift.afternoon)
    return book_for(db, patient_user, dentist.id, WEDNESDAY, time(14, 0))


@pytest.fixture()
def reception(db, receptionist_user):
    return resolve_actor(db, receptionist_user)


@pytest.fixture()
def patient(db, patient_user):
    return resolve_actor(db, patient_user)


def _status(db, appointment_id):
    db.expire_all()
    return db.get(Appointment, appointment_id).status


def test_patient_cancels_four_hours_ahead(db, booked, patient):
    result = lifecycle.cancel(
        db, patient, booked.id, now=datetime(2026, 10, 21, 10, 0), reason="Travelling"
    )
    assert result.status == AppointmentStatus.canceled
    assert result.cancel_reason == "Travelling"
    assert result.cancelled_by_user_id == patient.user_id
    assert result.cancelled_at is not None


def test_patient_cancel_inside_window_is_refused(db, booked, patient):
    with pytest.raises(CancellationWindowExceeded):
        lifecycle.cancel(db, patient, booked.id, now=datetime(2026, 10, 21, 13, 15))
    assert _status(db, booked.id) == AppointmentStatus.confirmed


def test_patient_cancel_at_exact_deadline(db, booked, patient):
    result = lifecycle.cancel(db, patient, booked.id, now=datetime(2026, 10, 21, 12, 0))
    assert result.status == AppointmentStatus.canceled


def test_staff_cancel_ignores_window(db, booked, reception):
    result = lifecycle.cancel(db, reception, booked.id, now=datetime(2026, 10, 21, 13, 50))
    assert result.status == AppointmentStatus.canceled


def test_attended_cannot_be_cancelled(db, booked, reception):
    lifecycle.mark_attended(db, reception, booked.id, now=NOW)
    with pytest.raises(InvalidTransition):
        lifecycle.cancel(db, reception, booked.id, now=NOW)
    assert _status(db, booked.id) == AppointmentStatus.attended


@pytest.mark.parametrize("reached", TERMINAL)
@pytest.mark.parametrize("target", TERMINAL)
def test_terminal_states_are_closed(db, booked, reception, reached, target):
    lifecycle.change_status(db, reception, booked.id, reached, now=NOW)
    with pytest.raises(InvalidTransition):
        lifecycle.change_status(db, reception, booked.id, target, now=NOW)
    assert _status(db, booked.id) == reached


def test_confirmed_is_never_a_target(db, booked, reception):
    with pytest.raises(InvalidTransition):
        lifecycle.change_status(db, reception, booked.id, AppointmentStatus.confirmed, now=NOW)


@pytest.mark.parametrize("target", [AppointmentStatus.attended, AppointmentStatus.absented])
def test_patient_cannot_mark_attendance(db, booked, patient, target):
    with pytest.raises(UnauthorizedTransition):
        lifecycle.change_status(db, patient, booked.id, target, now=NOW)


def test_dentist_marks_absent(db, booked, dentist_user):
    result = lifecycle.mark_absented(db, resolve_actor(db, dentist_user), booked.id, now=NOW)
    assert result.status == AppointmentStatus.absented


def test_clinic_owner_cannot_cancel(db, booked, owner_user):
    with pytest.raises(UnauthorizedTransition):
        lifecycle.cancel(db, resolve_actor(db, owner_user), booked.id, now=NOW)


@pytest.mark.parametrize("reached", [None, AppointmentStatus.attended])
def test_other_patient_cancel_looks_like_missing_row(db, booked, reception, second_patient_user, reached):
    if reached is not None:
        lifecycle.change_status(db, reception, booked.id, reached, now=NOW)
    with pytest.raises(NotFound):
        lifecycle.cancel(db, resolve_actor(db, second_patient_user), booked.id, now=NOW)


def test_cancel_reason_length_is_limited(db, booked, reception):
    with pytest.raises(ValidationError) as excinfo:
        lifecycle.cancel(db, reception, booked.id, now=NOW, reason="x" * 201)
    assert "reason" in excinfo.value.fields


def test_transitions_bump_version_and_audit(db, booked, reception):
    assert booked.version_id == 1
    result = lifecycle.mark_attended(db, reception, booked.id, now=NOW)
    assert result.version_id == 2

    entry = db.scalars(
        select(AuditLog).where(AuditLog.entity_id == str(booked.id), AuditLog.action == "appointment.attended")
    ).one()
    assert entry.before_json["status"] == "confirmed"
    assert entry.after_json["status"] == "attended"
    assert entry.actor_role == "receptionist"


def test_expected_version_mismatch_is_rejected(db, booked, reception):
    with pytest.raises(InvalidTransition):
        lifecycle.mark_attended(db, reception, booked.id, now=NOW, expected_version=7)
    assert _status(db, booked.id) == AppointmentStatus.confirmed


def test_write_from_stale_read_is_rejected(db, session_factory, booked, reception):
    appointment_id = booked.id
    stale = session_factory()
    fresh = session_factory()
    try:
        stale.get(Appointment, appointment_id)
        lifecycle.mark_attended(fresh, reception, appointment_id, now=NOW)
        with pytest.raises(InvalidTransition):
            lifecycle.cancel(stale, reception, appointment_id, now=NOW)
    finally:
        stale.close()
        fresh.close()
    assert _status(db, appointment_id) == AppointmentStatus.attended


def test_reschedule_moves_appointment_in_place(db, dentist, other_dentist, booked, reception):
    add_shift(db, other_dentist.id, TUESDAY, Shift.evening)

    moved = lifecycle.reschedule_appointment(
        db,
        reception,
        booked.id,
        dentist_id=other_dentist.id,
        appointment_date=TUESDAY,
        appointment_time=time(17, 30),
        reason="Dentist on leave",
        now=NOW,
    )

    assert moved.id == booked.id
    assert moved.status == AppointmentStatus.confirmed
    assert (moved.dentist_id, moved.appointment_date, moved.shift) == (other_dentist.id, TUESDAY, Shift.evening)
    assert moved.content == "Dentist on leave"
    assert moved.rescheduled_from_appointment_id is None

    freed = get_slots(db, dentist_id=dentist.id, week_offset=0, now=NOW)
    assert [(cell.date, cell.shift, cell.available) for cell in freed.slots] == [
        (WEDNESDAY, Shift.afternoon, True)
    ]
    actions = db.scalars(select(AuditLog.action).where(AuditLog.entity_id == str(booked.id))).all()
    assert "appointment.rescheduled" in actions


def test_reschedule_within_same_slot_is_allowed(db, dentist, booked, reception):
    moved = lifecycle.reschedule_appointment(
        db,
        reception,
        booked.id,
        dentist_id=dentist.id,
        appointment_date=WEDNESDAY,
        appointment_time=time(15, 30),
        reason=None,
        now=NOW,
    )
    assert moved.appointment_time == time(15, 30)
    assert moved.content == "Toothache"


def test_reschedule_into_taken_slot_conflicts(db, dentist, booked, second_patient_user, reception):
    add_shift(db, dentist.id, TUESDAY, Shift.morning)
    book_for(db, second_patient_user, dentist.id, TUESDAY, time(8, 30))

    with pytest.raises(SlotConflict):
        lifecycle.reschedule_appointment(
            db,
            reception,
            booked.id,
            dentist_id=dentist.id,
            appointment_date=TUESDAY,
            appointment_time=time(9, 0),
            reason=None,
            now=NOW,
        )
    db.expire_all()
    assert db.get(Appointment, booked.id).appointment_date == WEDNESDAY


def test_terminal_appointment_cannot_be_rescheduled(db, dentist, booked, reception):
    lifecycle.mark_absented(db, reception, booked.id, now=NOW)
    with pytest.raises(InvalidTransition):
        lifecycle.reschedule_appointment(
            db,
            reception,
            booked.id,
            dentist_id=dentist.id,
            appointment_date=WEDNESDAY,
            appointment_time=time(15, 0),
            reason=None,
            now=NOW,
        )


def test_patient_cannot_reschedule(db, dentist, booked, patient):
    with pytest.raises(UnauthorizedTransition):
        lifecycle.reschedule_appointment(
            db,
            patient,
            booked.id,
            dentist_id=dentist.id,
            appointment_date=WEDNESDAY,
            appointment_time=time(15, 0),
            reason=None,
            now=NOW,
        )


def test_archive_hides_appointment_and_frees_slot(db, dentist, booked, reception):
    lifecycle.archive(db, reception, booked.id)

    with pytest.raises(NotFound):
        lifecycle.load_appointment(db, booked.id)
    grid = get_slots(db, dentist_id=dentist.id, week_offset=0, now=NOW)
    assert grid.slots[0].available is True


def test_patient_sees_only_own_appointment(db, booked, patient, second_patient_user):
    lifecycle.ensure_can_view(patient, booked)
    with pytest.raises(NotFound):
        lifecycle.ensure_can_view(resolve_actor(db, second_patient_user), booked)


def test_reschedule_refuses_second_visit_on_same_day(db, dentist, other_dentist, booked, patient_user, reception):
    add_shift(db, dentist.id, TUESDAY, Shift.morning)
    add_shift(db, other_dentist.id, TUESDAY, Shift.afternoon)
    book_for(db, patient_user, dentist.id, TUESDAY, time(8, 30))

    with pytest.raises(ValidationError) as excinfo:
        lifecycle.reschedule_appointment(
            db,
            reception,
            booked.id,
            dentist_id=other_dentist.id,
            appointment_date=TUESDAY,
            appointment_time=time(14, 30),
            reason=None,
            now=NOW,
        )
    assert "appointment_date" in excinfo.value.fields
    db.expire_all()
    assert db.get(Appointment, booked.id).appointment_date == WEDNESDAY


def test_follow_up_keeps_early_afternoon_on_reschedule(db, dentist, patient_user, reception):
    add_shift(db, dentist.id, TUESDAY, Shift.morning)
    add_shift(db, dentist.id, WEDNESDAY, Shift.afternoon)
    first = book_for(db, patient_user, dentist.id, TUESDAY, time(8, 30))
    lifecycle.mark_attended(db, reception, first.id, now=NOW)
    follow_up = book_follow_up(
        db,
        reception,
        patient_id=first.patient_id,
        slot=SlotRequest(
            dentist_id=dentist.id,
            appointment_date=WEDNESDAY,
            appointment_time=time(13, 30),
            reason="Check healing",
        ),
        now=NOW,
    )

    moved = lifecycle.reschedule_appointment(
        db,
        reception,
        follow_up.id,
        dentist_id=dentist.id,
        appointment_date=WEDNESDAY,
        appointment_time=time(13, 0),
        reason=None,
        now=NOW,
    )
    assert moved.appointment_time == time(13, 0)
    assert moved.shift == Shift.afternoon
