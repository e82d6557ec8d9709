from __future__ import annotations

import re

from sqlalchemy import select
from sqlalchemy.orm import Session

from dental_booking.core.errors import NotFound
from dental_booking.models.patient import Patient

_PHONE_STRIP = re.compile(r"[\s.\-()]")


def normalize_phone(phone: str) -> str:
    value = _PHONE_STRIP.sub("", phone or "")
    if value.startswith("+84"):
        value = "0" + value[3:]
    return value


def get_patient(db: Session, patient_id: int) -> Patient:
    patient = db.get(Patient, patient_id)
    if not patient or patient.deleted_at is not None:
        raise NotFound("Patient not found")
    return patient


def find_patient_by_phone(db: Session, phone: str) -> Patient | None:
    return db.scalar(
        select(Patient)
        .where(Patient.phone == normalize_phone(phone), Patient.deleted_at.is_(None))
        .limit(1)
    )


def find_patient_by_user(db: Session, user_id: int) -> Patient | None:
    return db.scalar(
        select(Patient).where(Patient.user_id == user_id, Patient.deleted_at.is_(None)).limit(1)
    )


def create_patient(
    db: Session,
    *,
    full_name: str,
    phone: str,
    email: str | None,
    created_by_user_id: int | None = None,
) -> Patient:
    patient = Patient(
        full_name=full_name.strip(),
        phone=normalize_phone(phone),
        email=email.lower().strip() if email else None,
        created_by_user_id=created_by_user_id,
        updated_by_user_id=created_by_user_id,
    )
    db.add(patient)
    db.flush()
    return patient
