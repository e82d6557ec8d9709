from __future__ import annotations

import enum
from datetime import date

from sqlalchemy import Boolean, Date, Enum, ForeignKey, Index
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dental_booking.models.base import AuditMixin, Base, SoftDeleteMixin


class Shift(str, enum.Enum):
    morning = "morning"
    afternoon = "afternoon"
    evening = "evening"


class ScheduleStatus(str, enum.Enum):
    pending = "pending"
    approved = "approved"
    rejected = "rejected"


class DentistSchedule(Base, AuditMixin, SoftDeleteMixin):
    __tablename__ = "dentist_schedules"
    __table_args__ = (
        Index("ix_dentist_schedules_dentist_week", "dentist_id", "week_start_date"),
    )

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    dentist_id: Mapped[int] = mapped_column(ForeignKey("dentists.id"), nullable=False)
    work_date: Mapped[date] = mapped_column(Date, nullable=False)
    shift: Mapped[Shift] = mapped_column(Enum(Shift, name="shift_enum"), nullable=False)
    week_start_date: Mapped[date] = mapped_column(Date, nullable=False)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)
    status: Mapped[ScheduleStatus] = mapped_column(
        Enum(ScheduleStatus, name="schedule_status"),
        default=ScheduleStatus.pending,
        nullable=False,
    )

    dentist = relationship("Dentist", back_populates="schedules")

    @property
    def is_bookable(self) -> bool:
        return (
            self.is_active
            and self.status == ScheduleStatus.approved
            and self.deleted_at is None
        )
