from datetime import date, datetime
from typing import Optional

from pydantic import BaseModel, ConfigDict, Field

from dental_booking.models.schedule import ScheduleStatus, Shift
from dental_booking.services.shifts import SHIFT_WINDOWS


class ScheduleCellIn(BaseModel):
    work_date: date
    shift: Shift


class ScheduleRegister(BaseModel):
    schedules: list[ScheduleCellIn] = Field(min_length=1)


class ScheduleReview(BaseModel):
    approve: bool


class ScheduleActiveUpdate(BaseModel):
    is_active: bool


class ScheduleOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: int
    dentist_id: int
    work_date: date
    shift: Shift
    week_start_date: date
    is_active: bool
    status: ScheduleStatus
    created_at: datetime
    updated_at: datetime


class SlotCellOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    date: date
    shift: Shift
    available: bool
    is_past: bool = False
    start_time: Optional[str] = None
    end_time: Optional[str] = None


class WeekGridOut(BaseModel):
    dentist_id: int
    week_offset: int
    week_start: date
    week_end: date
    slots: list[SlotCellOut]

    @classmethod
    def from_grid(cls, grid) -> "WeekGridOut":
        return cls(
            dentist_id=grid.dentist_id,
            week_offset=grid.week_offset,
            week_start=grid.week_start,
            week_end=grid.week_end,
            slots=[
                SlotCellOut(
                    date=cell.date,
                    shift=cell.shift,
                    available=cell.available,
                    is_past=cell.is_past,
                    start_time=SHIFT_WINDOWS[cell.shift].start.strftime("%H:%M:%S"),
                    end_time=SHIFT_WINDOWS[cell.shift].end.strftime("%H:%M:%S"),
                )
                for cell in grid.slots
            ],
        )


class DentistWeekOut(BaseModel):
    dentist_id: int
    dentist_name: str
    week: WeekGridOut
