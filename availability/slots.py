"""Candidate time-of-day slots implied by a physician's working hours."""
from __future__ import annotations

from datetime import time
from typing import List, Optional

from .policy import DailyWindow

SLOT_MINUTES = 30
LUNCH_HOUR = 12


def generate_slots(daily_window: Optional[DailyWindow]) -> List[time]:
    """Return every half-hour boundary in ``[start_hour, end_hour)``.

    The noon hour is always skipped for the clinic-wide lunch break. A missing
    or degenerate window yields no slots.
    """

    if daily_window is None or daily_window.is_degenerate:
        return []

    slots: List[time] = []
    for hour in range(daily_window.start_hour, min(daily_window.end_hour, 24)):
        if hour == LUNCH_HOUR:
            continue
        for minute in range(0, 60, SLOT_MINUTES):
            slots.append(time(hour=hour, minute=minute))
    return slots


def minute_of_day(slot: time) -> int:
    return slot.hour * 60 + slot.minute


__all__ = ["LUNCH_HOUR", "SLOT_MINUTES", "generate_slots", "minute_of_day"]
