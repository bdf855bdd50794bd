"""Physician booking policy model.

A :class:`Policy` is an immutable snapshot of the rules a physician configured
for patient bookings. Policies are read from the document store and compared
structurally, so every field is hashable and order-insensitive collections are
stored as frozensets.
"""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Any, Dict, FrozenSet, List, Mapping, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)

DEFAULT_MAX_APPOINTMENTS_PER_DAY = 10


def coerce_date(value: object) -> date:
    """Return the calendar day for a ``date``, ``datetime`` or ISO string."""

    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    if isinstance(value, str):
        text = value.strip()
        try:
            return date.fromisoformat(text[:10])
        except ValueError as exc:
            raise ValueError(f"Unsupported date value: {value!r}") from exc
    raise ValueError(f"Unsupported date value: {value!r}")


def parse_minute_of_day(value: object) -> Optional[int]:
    """Convert ``"HH:MM"`` into minutes past midnight, or ``None`` if invalid."""

    if not isinstance(value, str):
        return None
    hours, _, minutes = value.strip().partition(":")
    try:
        hour = int(hours)
        minute = int(minutes or "0")
    except ValueError:
        return None
    if not (0 <= hour <= 24 and 0 <= minute < 60):
        return None
    total = hour * 60 + minute
    return total if total <= 24 * 60 else None


def _format_minute_of_day(minutes: Optional[int], fallback: str) -> str:
    if minutes is None:
        return fallback
    return f"{minutes // 60:02d}:{minutes % 60:02d}"


@dataclass(frozen=True)
class DailyWindow:
    """Working hours for a day, ``[start_hour, end_hour)``."""

    start_hour: int
    end_hour: int

    @property
    def is_degenerate(self) -> bool:
        return self.start_hour >= self.end_hour


@dataclass(frozen=True)
class BookingWindow:
    """Inclusive range of calendar dates patients may book into."""

    start_date: Optional[date] = None
    end_date: Optional[date] = None

    def contains(self, day: date) -> bool:
        if self.start_date is not None and day < self.start_date:
            return False
        if self.end_date is not None and day > self.end_date:
            return False
        return True


@dataclass(frozen=True)
class BlockedTimeSlot:
    """A date-specific exclusion on top of the daily working hours.

    ``start_minute`` and ``end_minute`` are minutes past midnight. Entries whose
    times could not be parsed, or whose start is not before the end, are kept
    so they round-trip through the store but never match a slot.
    """

    date: date
    start_minute: Optional[int]
    end_minute: Optional[int]
    reason: str = ""
    raw_start: str = ""
    raw_end: str = ""

    @property
    def is_inert(self) -> bool:
        return (
            self.start_minute is None
            or self.end_minute is None
            or self.start_minute >= self.end_minute
        )

    def covers(self, day: date, minute_of_day: int) -> bool:
        if self.is_inert or day != self.date:
            return False
        return self.start_minute <= minute_of_day < self.end_minute

    @classmethod
    def from_document(cls, entry: Mapping[str, Any]) -> "BlockedTimeSlot":
        if not isinstance(entry, Mapping):
            raise ValueError("Blocked time slot entries must be mappings")
        raw_start = entry.get("startTime", entry.get("start_time", ""))
        raw_end = entry.get("endTime", entry.get("end_time", ""))
        return cls(
            date=coerce_date(entry.get("date")),
            start_minute=parse_minute_of_day(raw_start),
            end_minute=parse_minute_of_day(raw_end),
            reason=str(entry.get("reason") or ""),
            raw_start=str(raw_start or ""),
            raw_end=str(raw_end or ""),
        )

    def to_document(self) -> Dict[str, str]:
        return {
            "date": self.date.isoformat(),
            "startTime": _format_minute_of_day(self.start_minute, self.raw_start),
            "endTime": _format_minute_of_day(self.end_minute, self.raw_end),
            "reason": self.reason,
        }


@dataclass(frozen=True)
class Policy:
    """One physician's booking rules.

    Weekdays use 0 for Sunday through 6 for Saturday. A policy with no working
    days or no daily window never yields a bookable date.
    """

    working_days: FrozenSet[int] = frozenset()
    daily_window: Optional[DailyWindow] = None
    holidays: FrozenSet[date] = frozenset()
    booking_window: Optional[BookingWindow] = None
    max_appointments_per_day: int = DEFAULT_MAX_APPOINTMENTS_PER_DAY
    blocked_time_slots: Tuple[BlockedTimeSlot, ...] = field(default_factory=tuple)

    @classmethod
    def unconfigured(cls) -> "Policy":
        """Policy used for physicians without stored settings."""

        return cls()

    def blocks_for(self, day: date) -> List[BlockedTimeSlot]:
        return [block for block in self.blocked_time_slots if block.date == day]

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "Policy":
        """Build a policy from a stored settings document.

        Accepts either the settings document itself or one wrapping the rules
        under an ``availability`` key. Camel-case field names are the stored
        format; snake-case names are accepted as well.
        """

        if not isinstance(document, Mapping):
            raise ValueError("Policy document must be a mapping")
        nested = document.get("availability")
        if isinstance(nested, Mapping):
            document = nested

        def pick(*keys: str) -> Any:
            for key in keys:
                if key in document and document[key] is not None:
                    return document[key]
            return None

        return cls(
            working_days=_parse_working_days(pick("days", "workingDays", "working_days")),
            daily_window=_parse_daily_window(
                pick("startTime", "startHour", "start_hour"),
                pick("endTime", "endHour", "end_hour"),
            ),
            holidays=_parse_holidays(pick("holidays")),
            booking_window=_parse_booking_window(
                pick("bookingStartDate", "booking_start_date"),
                pick("bookingEndDate", "booking_end_date"),
            ),
            max_appointments_per_day=_parse_capacity(
                pick("maxAppointmentsPerDay", "max_appointments_per_day")
            ),
            blocked_time_slots=_parse_blocked_slots(
                pick("blockedTimeSlots", "blocked_time_slots")
            ),
        )

    def to_document(self) -> Dict[str, Any]:
        """Render the policy in the stored ``availability`` format."""

        window = self.daily_window
        booking = self.booking_window or BookingWindow()
        return {
            "days": sorted(self.working_days),
            "startTime": window.start_hour if window else None,
            "endTime": window.end_hour if window else None,
            "holidays": [holiday.isoformat() for holiday in sorted(self.holidays)],
            "bookingStartDate": booking.start_date.isoformat() if booking.start_date else None,
            "bookingEndDate": booking.end_date.isoformat() if booking.end_date else None,
            "maxAppointmentsPerDay": self.max_appointments_per_day,
            "blockedTimeSlots": [block.to_document() for block in self.blocked_time_slots],
        }


def _as_int(value: Any) -> Optional[int]:
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float) and value.is_integer():
        return int(value)
    if isinstance(value, str):
        try:
            return int(value.strip())
        except ValueError:
            return None
    return None


def _parse_working_days(raw: Any) -> FrozenSet[int]:
    if not isinstance(raw, (list, tuple, set, frozenset)):
        return frozenset()
    days = set()
    for item in raw:
        day = _as_int(item)
        if day is None or not 0 <= day <= 6:
            logger.warning("Ignoring invalid working day %r", item)
            continue
        days.add(day)
    return frozenset(days)


def _parse_daily_window(start: Any, end: Any) -> Optional[DailyWindow]:
    start_hour = _as_int(start)
    end_hour = _as_int(end)
    if start_hour is None or end_hour is None:
        return None
    if not (0 <= start_hour < 24 and 0 < end_hour <= 24) or start_hour >= end_hour:
        logger.warning("Ignoring degenerate daily window %r-%r", start, end)
        return None
    return DailyWindow(start_hour=start_hour, end_hour=end_hour)


def _parse_holidays(raw: Any) -> FrozenSet[date]:
    if not isinstance(raw, (list, tuple, set, frozenset)):
        return frozenset()
    holidays = set()
    for item in raw:
        try:
            holidays.add(coerce_date(item))
        except ValueError:
            logger.warning("Ignoring unparseable holiday %r", item)
    return frozenset(holidays)


def _parse_optional_date(raw: Any) -> Optional[date]:
    if raw in (None, ""):
        return None
    try:
        return coerce_date(raw)
    except ValueError:
        logger.warning("Ignoring unparseable booking window date %r", raw)
        return None


def _parse_booking_window(start: Any, end: Any) -> Optional[BookingWindow]:
    start_date = _parse_optional_date(start)
    end_date = _parse_optional_date(end)
    if start_date is None and end_date is None:
        return None
    return BookingWindow(start_date=start_date, end_date=end_date)


def _parse_capacity(raw: Any) -> int:
    capacity = _as_int(raw)
    if capacity is None or capacity <= 0:
        if raw is not None:
            logger.warning(
                "Invalid maxAppointmentsPerDay %r; using %s", raw, DEFAULT_MAX_APPOINTMENTS_PER_DAY
            )
        return DEFAULT_MAX_APPOINTMENTS_PER_DAY
    return capacity


def _parse_blocked_slots(raw: Any) -> Tuple[BlockedTimeSlot, ...]:
    if not isinstance(raw, Sequence) or isinstance(raw, str):
        return ()
    blocks: List[BlockedTimeSlot] = []
    for entry in raw:
        try:
            blocks.append(BlockedTimeSlot.from_document(entry))
        except ValueError as exc:
            logger.warning("Skipping invalid blocked time slot %r: %s", entry, exc)
    return tuple(blocks)


__all__ = [
    "DEFAULT_MAX_APPOINTMENTS_PER_DAY",
    "BlockedTimeSlot",
    "BookingWindow",
    "DailyWindow",
    "Policy",
    "coerce_date",
    "parse_minute_of_day",
]
