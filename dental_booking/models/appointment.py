from __future__ import annotations

import enum
from datetime import date, datetime, time

from sqlalchemy import Boolean, Date, DateTime, Enum, ForeignKey, Index, Integer, String, Text, Time, text
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dental_booking.models.base import AuditMixin, Base, SoftDeleteMixin
from dental_booking.models.schedule import Shift


class AppointmentStatus(str, enum.Enum):
    confirmed = "confirmed"
    attended = "attended"
    absented = "absented"
    canceled = "canceled"


LIVE_STATUSES = frozenset(
    {AppointmentStatus.confirmed, AppointmentStatus.attended, AppointmentStatus.absented}
)
TERMINAL_STATUSES = frozenset(
    {AppointmentStatus.attended, AppointmentStatus.absented, AppointmentStatus.canceled}
)


class AppointmentType(str, enum.Enum):
    first_time = "first-time"
    follow_up = "follow-up"
    consultation = "consultation"
    treatment = "treatment"


_LIVE_SLOT_WHERE = "status <> 'canceled' AND deleted_at IS NULL"


class Appointment(Base, AuditMixin, SoftDeleteMixin):
    __tablename__ = "appointments"
    __table_args__ = (
        Index(
            "uq_appointments_live_slot",
            "dentist_id",
            "appointment_date",
            "shift",
            unique=True,
            postgresql_where=text(_LIVE_SLOT_WHERE),
            sqlite_where=text(_LIVE_SLOT_WHERE),
        ),
        Index("ix_appointments_patient_date", "patient_id", "appointment_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    patient_id: Mapped[int | None] = mapped_column(ForeignKey("patients.id"), nullable=True)
    dentist_id: Mapped[int] = mapped_column(ForeignKey("dentists.id"), nullable=False)
    status: Mapped[AppointmentStatus] = mapped_column(
        Enum(AppointmentStatus, name="appointment_status", native_enum=False, length=20),
        default=AppointmentStatus.confirmed,
        nullable=False,
    )
    appointment_date: Mapped[date] = mapped_column(Date, nullable=False)
    appointment_time: Mapped[time] = mapped_column(Time, nullable=False)
    shift: Mapped[Shift] = mapped_column(
        Enum(Shift, name="appointment_shift", native_enum=False, length=20), nullable=False
    )
    appointment_type: Mapped[str] = mapped_column(
        String(40), default=AppointmentType.first_time.value, nullable=False
    )
    is_new_patient: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    rescheduled_from_appointment_id: Mapped[int | None] = mapped_column(
        ForeignKey("appointments.id"), nullable=True
    )
    content: Mapped[str | None] = mapped_column(Text, nullable=True)
    cancel_reason: Mapped[str | None] = mapped_column(String(200), nullable=True)
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)
    cancelled_by_user_id: Mapped[int | None] = mapped_column(ForeignKey("users.id"), nullable=True)
    version_id: Mapped[int] = mapped_column(Integer, nullable=False)

    __mapper_args__ = {"version_id_col": version_id}

    patient = relationship(
        "Patient", back_populates="appointments", foreign_keys=[patient_id], lazy="joined"
    )
    dentist = relationship("Dentist", back_populates="appointments", lazy="joined")
    rescheduled_from = relationship(
        "Appointment", remote_side=[id], foreign_keys=[rescheduled_from_appointment_id]
    )

    @property
    def starts_at(self) -> datetime:
        return datetime.combine(self.appointment_date, self.appointment_time)

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_STATUSES
