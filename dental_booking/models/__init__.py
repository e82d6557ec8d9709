from dental_booking.models.base import Base
from dental_booking.models.user import Role, STAFF_ROLES, User
from dental_booking.models.audit_log import AuditLog
from dental_booking.models.dentist import Dentist
from dental_booking.models.patient import Patient
from dental_booking.models.schedule import DentistSchedule, ScheduleStatus, Shift
from dental_booking.models.appointment import (
    LIVE_STATUSES,
    TERMINAL_STATUSES,
    Appointment,
    AppointmentStatus,
    AppointmentType,
)
from dental_booking.models.notification import Notification

__all__ = [
    "Base",
    "Role",
    "STAFF_ROLES",
    "User",
    "AuditLog",
    "Dentist",
    "Patient",
    "DentistSchedule",
    "ScheduleStatus",
    "Shift",
    "Appointment",
    "AppointmentStatus",
    "AppointmentType",
    "LIVE_STATUSES",
    "TERMINAL_STATUSES",
    "Notification",
]
