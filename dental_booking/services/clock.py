from __future__ import annotations

from datetime import datetime

from dental_booking.core.settings import settings


def clinic_now() -> datetime:
    """Current wall-clock time in the clinic timezone, without tzinfo.

    Appointment dates and times are stored as clinic-local values, so all
    comparisons happen on naive local datetimes.
    """
    return datetime.now(settings.clinic_tz).replace(tzinfo=None)
