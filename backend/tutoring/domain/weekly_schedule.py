"""
Weekly schedule codec.

Converts between the UI-facing weekly map and stored slot rows:

* UI map: ISO weekday string ``"1"`` (Monday) .. ``"7"`` (Sunday) to a list
  of standard slot labels such as ``"09:00"``.
* Storage rows: ``(weekday, start_time, end_time)`` with weekday
  0=Sunday..6=Saturday and one-hour windows.

This is the only module that knows about the 1..7 numbering.
"""

from collections import defaultdict
from datetime import datetime, time, timedelta
from typing import Any, Dict, Iterable, List, Mapping, NamedTuple

from ..core.exceptions import ValidationException
from ..core.timezone_utils import format_hhmm

STANDARD_SLOT_DURATION = timedelta(hours=1)

# Hour marks a teacher can pick in the weekly schedule editor.
STANDARD_SLOTS = tuple(f"{hour:02d}:00" for hour in range(6, 23))

ISO_WEEKDAY_KEYS = tuple(str(day) for day in range(1, 8))


class SlotWindow(NamedTuple):
    weekday: int
    start_time: time
    end_time: time


def iso_to_storage_weekday(iso_day: int) -> int:
    return 0 if iso_day == 7 else iso_day


def storage_to_iso_weekday(weekday: int) -> int:
    return 7 if weekday == 0 else weekday


def validate_weekly_schedule(weekly_schedule: Any) -> Dict[str, List[str]]:
    """Return field-indexed error messages; an empty dict means valid."""
    if not isinstance(weekly_schedule, Mapping):
        return {"weekly_schedule": ["The weekly schedule must map weekdays to slot lists"]}

    errors: Dict[str, List[str]] = {}
    for day, labels in weekly_schedule.items():
        field = f"weekly_schedule.{day}"
        if str(day) not in ISO_WEEKDAY_KEYS:
            errors.setdefault(field, []).append(f"Invalid weekday: {day}")
            continue
        if not isinstance(labels, (list, tuple)):
            errors.setdefault(field, []).append("Slots must be given as a list")
            continue

        seen = set()
        for label in labels:
            if label in seen:
                errors.setdefault(field, []).append(f"Duplicate time slot: {label}")
                continue
            seen.add(label)
            if label not in STANDARD_SLOTS:
                errors.setdefault(field, []).append(f"Invalid time slot: {label}")
    return errors


def decode_weekly_schedule(weekly_schedule: Mapping[str, Iterable[str]]) -> List[SlotWindow]:
    """Expand a weekly map into one-hour storage windows.

    Raises:
        ValidationException: if the map fails ``validate_weekly_schedule``
    """
    errors = validate_weekly_schedule(weekly_schedule)
    if errors:
        raise ValidationException(errors=errors)

    windows: List[SlotWindow] = []
    for day in sorted(weekly_schedule, key=lambda key: int(key)):
        weekday = iso_to_storage_weekday(int(day))
        for label in weekly_schedule[day]:
            start = datetime.strptime(label, "%H:%M")
            windows.append(
                SlotWindow(
                    weekday=weekday,
                    start_time=start.time(),
                    end_time=(start + STANDARD_SLOT_DURATION).time(),
                )
            )
    return windows


def encode_weekly_schedule(rows: Iterable[Any]) -> Dict[str, List[str]]:
    """Group stored rows back into the weekly map.

    ``rows`` may be ``SlotWindow`` tuples or slot models; only ``weekday`` and
    ``start_time`` are read. Days without slots are omitted.
    """
    grouped: Dict[str, set] = defaultdict(set)
    for row in rows:
        grouped[str(storage_to_iso_weekday(row.weekday))].add(format_hhmm(row.start_time))
    return {day: sorted(grouped[day]) for day in ISO_WEEKDAY_KEYS if day in grouped}


def count_slots_by_day(weekly_schedule: Mapping[str, List[str]]) -> Dict[str, int]:
    return {day: len(labels) for day, labels in weekly_schedule.items()}
