"""Domain errors raised by the scheduling services.

Every error carries a stable ``code`` and a human readable message. Routers
never catch these; the handler registered in ``main`` renders them.
"""

from __future__ import annotations

from fastapi import status


class SchedulingError(Exception):
    code = "scheduling_error"
    status_code = status.HTTP_400_BAD_REQUEST
    default_message = "The request could not be completed."

    def __init__(self, message: str | None = None, *, fields: dict[str, str] | None = None) -> None:
        self.message = message or self.default_message
        self.fields = fields or {}
        super().__init__(self.message)

    def to_payload(self) -> dict:
        payload: dict = {"code": self.code, "detail": self.message}
        if self.fields:
            payload["fields"] = self.fields
        return payload


class ValidationError(SchedulingError):
    code = "validation_error"
    status_code = status.HTTP_422_UNPROCESSABLE_ENTITY
    default_message = "Please check the highlighted fields."


class InvalidCaptcha(SchedulingError):
    code = "invalid_captcha"
    default_message = "The verification code is incorrect. Please try again."


class PhoneAlreadyRegistered(SchedulingError):
    """Soft error: surfaced next to a successful guest booking, never raised to the caller."""

    code = "phone_already_registered"
    status_code = status.HTTP_200_OK
    default_message = (
        "This phone number already belongs to a patient account. "
        "Sign in to manage or cancel your appointments."
    )


class SlotConflict(SchedulingError):
    code = "slot_conflict"
    status_code = status.HTTP_409_CONFLICT
    default_message = "This time slot is no longer available. Please choose another slot."


class CancellationWindowExceeded(SchedulingError):
    code = "cancellation_window_exceeded"
    status_code = status.HTTP_409_CONFLICT
    default_message = "Appointments can only be cancelled at least 2 hours in advance."


class UnauthorizedTransition(SchedulingError):
    code = "unauthorized_transition"
    status_code = status.HTTP_403_FORBIDDEN
    default_message = "You are not allowed to perform this action."


class InvalidTransition(SchedulingError):
    code = "invalid_transition"
    status_code = status.HTTP_409_CONFLICT
    default_message = "The appointment can no longer be changed."


class NotFound(SchedulingError):
    code = "not_found"
    status_code = status.HTTP_404_NOT_FOUND
    default_message = "Not found."


class StorageUnavailable(SchedulingError):
    code = "storage_unavailable"
    status_code = status.HTTP_503_SERVICE_UNAVAILABLE
    default_message = "The service is temporarily unavailable. Please try again."
