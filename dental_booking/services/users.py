from __future__ import annotations

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from dental_booking.core.security import hash_password, verify_password
from dental_booking.models.dentist import Dentist
from dental_booking.models.patient import Patient
from dental_booking.models.user import Role, User
from dental_booking.services.actor import Actor
from dental_booking.services.patients import find_patient_by_user, normalize_phone


def get_user_by_email(db: Session, email: str) -> User | None:
    return db.scalar(select(User).where(User.email == email.lower().strip()))


def authenticate(db: Session, email: str, password: str) -> User | None:
    user = get_user_by_email(db, email)
    if not user or not user.is_active:
        return None
    if not verify_password(password, user.hashed_password):
        return None
    return user


def create_user(
    db: Session,
    *,
    email: str,
    password: str,
    full_name: str = "",
    role: Role = Role.patient,
    phone: str | None = None,
    is_active: bool = True,
) -> User:
    if role == Role.patient and not phone:
        raise ValueError("Patient accounts need a phone number")
    user = User(
        email=email.lower().strip(),
        full_name=full_name,
        phone=phone,
        role=role,
        is_active=is_active,
        hashed_password=hash_password(password),
    )
    db.add(user)
    db.flush()
    if role == Role.dentist:
        db.add(Dentist(user_id=user.id))
    elif role == Role.patient:
        db.add(
            Patient(
                user_id=user.id,
                full_name=full_name,
                phone=normalize_phone(phone),
                email=user.email,
            )
        )
    db.commit()
    db.refresh(user)
    return user


def user_count(db: Session) -> int:
    return int(db.scalar(select(func.count(User.id))) or 0)


def seed_initial_admin(db: Session, *, email: str, password: str) -> bool:
    if user_count(db) > 0:
        return False
    create_user(
        db,
        email=email,
        password=password,
        full_name="Administrator",
        role=Role.administrator,
        is_active=True,
    )
    return True


def resolve_actor(db: Session, user: User) -> Actor:
    patient_id: int | None = None
    dentist_id: int | None = None
    if user.role == Role.patient:
        patient = find_patient_by_user(db, user.id)
        patient_id = patient.id if patient else None
    elif user.role == Role.dentist:
        dentist_id = db.scalar(select(Dentist.id).where(Dentist.user_id == user.id))
    return Actor(user_id=user.id, role=user.role, patient_id=patient_id, dentist_id=dentist_id)
