from __future__ import annotations

from dataclasses import dataclass

from dental_booking.models.user import STAFF_ROLES, Role


@dataclass(frozen=True)
class Actor:
    """Caller identity resolved once at the HTTP boundary.

    ``patient_id`` and ``dentist_id`` are filled when the user owns the
    corresponding profile.
    """

    user_id: int
    role: Role
    patient_id: int | None = None
    dentist_id: int | None = None

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES
