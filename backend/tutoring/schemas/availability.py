"""Availability and schedule conflict schemas."""

from datetime import date, datetime
from typing import Dict, List, Optional

from pydantic import Field

from ._strict_base import StrictModel, StrictRequestModel


class AvailableSlotResponse(StrictModel):
    id: int
    teacher_id: int
    weekday: int = Field(..., ge=0, le=6, description="0=Sunday..6=Saturday")
    weekday_name: str
    start_time: str
    end_time: str
    is_active: bool


class ScheduleResponse(StrictModel):
    teacher_id: int
    available_slots: List[AvailableSlotResponse]
    total_slots: int


class ScheduleUpdateResponse(StrictModel):
    available_slots: List[AvailableSlotResponse]
    created_count: int
    deleted_count: int
    updated_count: int = 0


class WeeklyScheduleUpdate(StrictRequestModel):
    """Weekly map keyed ``"1"`` (Monday) .. ``"7"`` (Sunday); validated by the codec."""

    weekly_schedule: Dict[str, List[str]]


class WeeklyScheduleResponse(StrictModel):
    weekly_schedule: Dict[str, List[str]]
    total_slots: int
    slots_by_day: Dict[str, int]
    created_count: Optional[int] = None
    deleted_count: Optional[int] = None
    updated_count: Optional[int] = None


class ScheduleConflict(StrictModel):
    slot_id: int
    reservation_id: int
    reserve_time: datetime
    student_id: int
    reason: str


class CheckPeriod(StrictModel):
    from_date: date
    to_date: date


class ConflictCheckResponse(StrictModel):
    has_conflicts: bool
    conflicts: List[ScheduleConflict]
    total_conflicts: int
    check_period: CheckPeriod
