from datetime import date, datetime, time
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, EmailStr, Field

from dental_booking.models.appointment import AppointmentStatus
from dental_booking.models.schedule import Shift
from dental_booking.schemas.actor import ActorOut


class SlotFields(BaseModel):
    dentist_id: int
    appointment_date: date
    appointment_time: time
    medical_issue: str = Field(min_length=1, max_length=500)


class GuestBookingValidate(SlotFields):
    full_name: str = Field(min_length=1, max_length=200)
    email: EmailStr
    phone: str = Field(min_length=1, max_length=20)


class GuestBookingCreate(GuestBookingValidate):
    captcha_value: str
    captcha_input: str


class PatientBookingCreate(SlotFields):
    pass


class FollowUpCreate(BaseModel):
    patient_id: int
    dentist_id: int
    appointment_date: date
    appointment_time: time
    reason_for_follow_up: str = Field(min_length=1, max_length=500)
    source_appointment_id: Optional[int] = None


class AppointmentReschedule(BaseModel):
    dentist_id: int
    appointment_date: date
    appointment_time: time
    reason_for_follow_up: Optional[str] = Field(default=None, max_length=500)
    version_id: Optional[int] = None


class AppointmentCancel(BaseModel):
    reason: Optional[str] = Field(default=None, max_length=200)
    version_id: Optional[int] = None


class AppointmentStatusUpdate(BaseModel):
    status: Literal["attended", "absented", "canceled"]
    reason: Optional[str] = Field(default=None, max_length=200)
    version_id: Optional[int] = None


class CaptchaOut(BaseModel):
    captcha: str
    expires_in_seconds: int


class PatientSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str
    phone: str
    email: Optional[str] = None


class DentistSummary(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    full_name: str


class AppointmentOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    patient_id: Optional[int] = None
    patient: Optional[PatientSummary] = None
    dentist_id: int
    dentist: Optional[DentistSummary] = None
    status: AppointmentStatus
    appointment_date: date
    appointment_time: time
    shift: Shift
    appointment_type: str
    is_new_patient: bool
    rescheduled_from_appointment_id: Optional[int] = None
    content: Optional[str] = None
    cancel_reason: Optional[str] = None
    cancelled_at: Optional[datetime] = None
    version_id: int
    created_at: datetime
    updated_at: datetime
    created_by: Optional[ActorOut] = None
    updated_by: Optional[ActorOut] = None


class NoticeOut(BaseModel):
    code: str
    detail: str


class GuestBookingOut(BaseModel):
    appointment: AppointmentOut
    notice: Optional[NoticeOut] = None


class ValidationOut(BaseModel):
    valid: bool
    shift: Shift
    phone_registered: bool


class CancellationInfoOut(BaseModel):
    appointment_id: int
    can_cancel: bool
    cancel_deadline: datetime
    is_past: bool
    days: int
    hours: int
    minutes: int
    label: str


class ChainEntryOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    status: AppointmentStatus
    appointment_date: date
    appointment_time: time
    shift: Shift
    appointment_type: str
    dentist_id: int
    rescheduled_from_appointment_id: Optional[int] = None
