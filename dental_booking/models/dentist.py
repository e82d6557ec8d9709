from __future__ import annotations

from sqlalchemy import Boolean, ForeignKey, String
from sqlalchemy.orm import Mapped, mapped_column, relationship

from dental_booking.models.base import Base


class Dentist(Base):
    __tablename__ = "dentists"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), unique=True, nullable=False)
    specialty: Mapped[str | None] = mapped_column(String(120), nullable=True)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True, nullable=False)

    user = relationship("User", lazy="joined")
    schedules = relationship("DentistSchedule", back_populates="dentist")
    appointments = relationship("Appointment", back_populates="dentist")

    @property
    def full_name(self) -> str:
        return self.user.full_name if self.user else ""
