# backend/tutoring/services/availability_service.py
"""
Availability Service

Manages a teacher's recurring weekly availability. Every update replaces
the whole schedule (delete all, insert new) in one transaction, so a
failed validation never leaves a partial schedule behind.

Two input formats are supported:
- ``available_slots``: explicit ``{weekday, start_time, end_time}`` rows
- ``weekly_schedule``: the ISO weekday map of standard slot labels, handled
  by ``tutoring.domain.weekly_schedule``
"""

from datetime import time
import logging
from typing import Any, Dict, List, Mapping, Optional, Sequence, Union

from sqlalchemy.orm import Session

from ..core.exceptions import ValidationException
from ..core.timezone_utils import parse_time_string
from ..domain.weekly_schedule import (
    SlotWindow,
    count_slots_by_day,
    decode_weekly_schedule,
    encode_weekly_schedule,
)
from ..models.availability import AvailableSlot
from ..repositories.availability_repository import AvailabilityRepository
from ..repositories.factory import RepositoryFactory
from ..schemas.availability import (
    AvailableSlotResponse,
    ScheduleResponse,
    ScheduleUpdateResponse,
    WeeklyScheduleResponse,
    WeeklyScheduleUpdate,
)
from .base import BaseService
from .teacher_service import TeacherService

logger = logging.getLogger(__name__)


def validate_slot_payload(slots: Any) -> tuple[List[SlotWindow], Dict[str, List[str]]]:
    """
    Validate raw slot rows.

    Returns the parsed windows and a field-indexed error map; the windows
    are only meaningful when the error map is empty.
    """
    if not isinstance(slots, (list, tuple)):
        return [], {"available_slots": ["The available_slots field must be a list."]}

    errors: Dict[str, List[str]] = {}
    windows: List[SlotWindow] = []
    for index, slot in enumerate(slots):
        prefix = f"available_slots[{index}]"
        if not isinstance(slot, Mapping):
            errors.setdefault(prefix, []).append("Each slot must be an object.")
            continue

        weekday = slot.get("weekday")
        if weekday is None or weekday == "":
            errors.setdefault(f"{prefix}.weekday", []).append("The weekday field is required.")
        elif isinstance(weekday, bool) or not isinstance(weekday, int):
            errors.setdefault(f"{prefix}.weekday", []).append("The weekday must be an integer.")
        elif not 0 <= weekday <= 6:
            errors.setdefault(f"{prefix}.weekday", []).append("The weekday must be between 0 and 6.")

        parsed: Dict[str, Optional[time]] = {}
        for field in ("start_time", "end_time"):
            raw = slot.get(field)
            if raw is None or raw == "":
                errors.setdefault(f"{prefix}.{field}", []).append(f"The {field} field is required.")
                parsed[field] = None
                continue
            parsed[field] = parse_time_string(raw)
            if parsed[field] is None:
                errors.setdefault(f"{prefix}.{field}", []).append(
                    f"The {field} must be in HH:MM format."
                )

        start, end = parsed["start_time"], parsed["end_time"]
        if start is not None and end is not None and end <= start:
            errors.setdefault(f"{prefix}.end_time", []).append(
                "The end_time must be after start_time."
            )

        if not any(key.startswith(prefix) for key in errors):
            windows.append(SlotWindow(weekday=weekday, start_time=start, end_time=end))
    return windows, errors


def _slot_responses(slots) -> List[AvailableSlotResponse]:
    return [AvailableSlotResponse.model_validate(slot.to_dict()) for slot in slots]


class AvailabilityService(BaseService):
    """Service layer for weekly availability."""

    def __init__(
        self,
        db: Session,
        repository: Optional[AvailabilityRepository] = None,
        teacher_service: Optional[TeacherService] = None,
    ):
        super().__init__(db)
        self.repository = repository or RepositoryFactory.create_availability_repository(db)
        self.teacher_service = teacher_service or TeacherService(db)

    @BaseService.measure_operation("replace_weekly_slots")
    def replace_weekly_slots(
        self, teacher_id: int, slots: Sequence[Mapping[str, Any]]
    ) -> ScheduleUpdateResponse:
        """
        Replace all of a teacher's slots with ``slots``.

        Raises:
            TeacherNotFoundException: If the teacher does not exist
            ValidationException: If any slot is malformed (nothing is written)
        """
        self.log_operation("replace_weekly_slots", teacher_id=teacher_id)
        self.teacher_service.get_teacher(teacher_id)

        windows, errors = validate_slot_payload(slots)
        if errors:
            raise ValidationException(errors=errors)

        created, deleted_count = self._replace(teacher_id, windows)
        return ScheduleUpdateResponse(
            available_slots=_slot_responses(created),
            created_count=len(created),
            deleted_count=deleted_count,
        )

    @BaseService.measure_operation("get_weekly_slots")
    def get_weekly_slots(self, teacher_id: int) -> List[AvailableSlot]:
        """Active slots ordered by weekday, then start time."""
        return self.repository.get_slots_for_teacher(teacher_id, active_only=True)

    @BaseService.measure_operation("get_schedule")
    def get_schedule(self, teacher_id: int) -> ScheduleResponse:
        """All slots of a teacher, including deactivated ones, formatted for display."""
        self.teacher_service.get_teacher(teacher_id)
        slots = self.repository.get_slots_for_teacher(teacher_id, active_only=False)
        return ScheduleResponse(
            teacher_id=teacher_id,
            available_slots=_slot_responses(slots),
            total_slots=len(slots),
        )

    def is_time_within_availability(self, teacher_id: int, weekday: int, at: time) -> bool:
        """True if any active slot on ``weekday`` (0=Sunday) contains ``at`` in [start, end)."""
        return self.repository.has_slot_covering(teacher_id, weekday, at)

    @BaseService.measure_operation("get_weekly_schedule")
    def get_weekly_schedule(self, teacher_id: int) -> WeeklyScheduleResponse:
        self.teacher_service.get_teacher(teacher_id)
        slots = self.repository.get_slots_for_teacher(teacher_id, active_only=True)
        weekly = encode_weekly_schedule(slots)
        return WeeklyScheduleResponse(
            weekly_schedule=weekly,
            total_slots=sum(len(labels) for labels in weekly.values()),
            slots_by_day=count_slots_by_day(weekly),
        )

    @BaseService.measure_operation("update_weekly_schedule")
    def update_weekly_schedule(
        self, teacher_id: int, weekly_schedule: Union[WeeklyScheduleUpdate, Mapping[str, List[str]]]
    ) -> WeeklyScheduleResponse:
        """
        Replace the schedule from the weekly map format.

        Raises:
            TeacherNotFoundException: If the teacher does not exist
            ValidationException: Unknown weekday keys, duplicate or non-standard labels
        """
        self.log_operation("update_weekly_schedule", teacher_id=teacher_id)
        self.teacher_service.get_teacher(teacher_id)
        if isinstance(weekly_schedule, WeeklyScheduleUpdate):
            weekly_schedule = weekly_schedule.weekly_schedule

        windows = decode_weekly_schedule(weekly_schedule)
        created, deleted_count = self._replace(teacher_id, windows)

        weekly = encode_weekly_schedule(created)
        return WeeklyScheduleResponse(
            weekly_schedule=weekly,
            total_slots=len(created),
            slots_by_day=count_slots_by_day(weekly),
            created_count=len(created),
            deleted_count=deleted_count,
            updated_count=0,
        )

    def _replace(self, teacher_id: int, windows: List[SlotWindow]):
        with self.transaction():
            deleted_count = self.repository.delete_all_for_teacher(teacher_id)
            created = self.repository.bulk_create_slots(teacher_id, windows)

        self.logger.info(
            f"Replaced schedule for teacher {teacher_id}: "
            f"{deleted_count} deleted, {len(created)} created"
        )
        return created, deleted_count
