"""Provenance links between appointments.

Staff edits move an appointment in place: the row keeps its id and status
and the old slot is released because the row no longer occupies it.
Follow-up appointments are new rows whose ``rescheduled_from_appointment_id``
points at the visit they derive from; that visit keeps its own status.
"""

from __future__ import annotations

from datetime import date, time

from sqlalchemy import select
from sqlalchemy.orm import Session

from dental_booking.core.errors import NotFound, ValidationError
from dental_booking.models.appointment import Appointment
from dental_booking.models.schedule import Shift

MAX_CHAIN_LENGTH = 100


def relocate(
    appointment: Appointment,
    *,
    dentist_id: int,
    appointment_date: date,
    appointment_time: time,
    shift: Shift,
) -> None:
    appointment.dentist_id = dentist_id
    appointment.appointment_date = appointment_date
    appointment.appointment_time = appointment_time
    appointment.shift = shift


def latest_appointment_for_patient(db: Session, patient_id: int) -> Appointment | None:
    return db.scalars(
        select(Appointment)
        .where(Appointment.patient_id == patient_id, Appointment.deleted_at.is_(None))
        .order_by(
            Appointment.appointment_date.desc(),
            Appointment.appointment_time.desc(),
            Appointment.id.desc(),
        )
        .limit(1)
    ).first()


def resolve_source(
    db: Session, *, patient_id: int, source_appointment_id: int | None
) -> Appointment | None:
    if source_appointment_id is None:
        return latest_appointment_for_patient(db, patient_id)
    source = db.get(Appointment, source_appointment_id)
    if not source or source.deleted_at is not None:
        raise NotFound("Source appointment not found")
    return source


def link(appointment: Appointment, source: Appointment | None) -> None:
    if source is None:
        appointment.rescheduled_from_appointment_id = None
        return
    if source.patient_id != appointment.patient_id:
        raise ValidationError(
            "The source appointment belongs to a different patient.",
            fields={"source_appointment_id": "Must be an appointment of the same patient."},
        )
    if source.id == appointment.id:
        raise ValidationError("An appointment cannot follow itself.")
    appointment.rescheduled_from_appointment_id = source.id


def provenance_chain(db: Session, appointment_id: int) -> list[Appointment]:
    """Return the appointment followed by each ancestor, newest first."""
    current = db.get(Appointment, appointment_id)
    if not current or current.deleted_at is not None:
        raise NotFound("Appointment not found")
    chain: list[Appointment] = []
    seen: set[int] = set()
    while current is not None and current.id not in seen and len(chain) < MAX_CHAIN_LENGTH:
        chain.append(current)
        seen.add(current.id)
        if current.rescheduled_from_appointment_id is None:
            break
        current = db.get(Appointment, current.rescheduled_from_appointment_id)
    return chain
