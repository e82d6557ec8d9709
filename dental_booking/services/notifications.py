"""Outbox for appointment notifications.

Rows written here are delivered by the external notification service and
are committed in the same transaction as the appointment change.
"""

from __future__ import annotations

import logging

from sqlalchemy.orm import Session

from dental_booking.models.appointment import Appointment
from dental_booking.models.notification import Notification

logger = logging.getLogger("dental_booking.notifications")


def notify_user(
    db: Session,
    *,
    user_id: int | None,
    title: str,
    message: str,
    appointment_id: int | None = None,
    kind: str = "appointment",
) -> Notification | None:
    if user_id is None:
        return None
    notification = Notification(
        user_id=user_id,
        title=title,
        message=message,
        kind=kind,
        appointment_id=appointment_id,
    )
    db.add(notification)
    logger.info("Queued %s notification for user %s", kind, user_id)
    return notification


def _slot_text(appointment: Appointment) -> str:
    return (
        f"{appointment.appointment_date.isoformat()} "
        f"{appointment.appointment_time.strftime('%H:%M')} ({appointment.shift.value})"
    )


def notify_booked(db: Session, appointment: Appointment) -> None:
    patient_user_id = appointment.patient.user_id if appointment.patient else None
    dentist_user_id = appointment.dentist.user_id if appointment.dentist else None
    patient_name = appointment.patient.full_name if appointment.patient else "a patient"
    notify_user(
        db,
        user_id=patient_user_id,
        title="Appointment booked",
        message=f"Your appointment is confirmed for {_slot_text(appointment)}.",
        appointment_id=appointment.id,
    )
    notify_user(
        db,
        user_id=dentist_user_id,
        title="New appointment",
        message=f"{patient_name} booked an appointment with you for {_slot_text(appointment)}.",
        appointment_id=appointment.id,
    )


def notify_status_changed(db: Session, appointment: Appointment) -> None:
    status_text = appointment.status.value
    notify_user(
        db,
        user_id=appointment.patient.user_id if appointment.patient else None,
        title="Appointment updated",
        message=f"Your appointment on {_slot_text(appointment)} is now {status_text}.",
        appointment_id=appointment.id,
    )
    notify_user(
        db,
        user_id=appointment.dentist.user_id if appointment.dentist else None,
        title="Appointment updated",
        message=f"The appointment on {_slot_text(appointment)} is now {status_text}.",
        appointment_id=appointment.id,
    )


def notify_rescheduled(db: Session, appointment: Appointment, *, previous_dentist_user_id: int | None) -> None:
    message = f"The appointment has been moved to {_slot_text(appointment)}."
    recipients = [
        appointment.patient.user_id if appointment.patient else None,
        previous_dentist_user_id,
        appointment.dentist.user_id if appointment.dentist else None,
    ]
    seen: set[int] = set()
    for user_id in recipients:
        if user_id is None or user_id in seen:
            continue
        seen.add(user_id)
        notify_user(
            db,
            user_id=user_id,
            title="Appointment changed",
            message=message,
            appointment_id=appointment.id,
        )
