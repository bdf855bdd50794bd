"""Availability decisions for one physician.

The evaluator combines a :class:`~availability.policy.Policy`, the canonical
slots for its working hours and a :class:`~availability.booking_index.BookingIndex`
to answer which dates and times can be booked. All operations are pure
functions of those inputs and the injected clock.
"""
from __future__ import annotations

import enum
from datetime import date, datetime, time, timedelta
from typing import Callable, List, Optional, Union

from .booking_index import BookingIndex
from .policy import Policy
from .slots import generate_slots, minute_of_day

Clock = Callable[[], datetime]
DateLike = Union[date, datetime]


class DayStatus(str, enum.Enum):
    """Why a date is or is not bookable, in evaluation order."""

    UNCONFIGURED = "unconfigured"
    OUTSIDE_BOOKING_WINDOW = "outside_booking_window"
    NON_WORKING_DAY = "non_working_day"
    HOLIDAY = "holiday"
    FULLY_BOOKED = "fully_booked"
    NO_OPEN_SLOTS = "no_open_slots"
    AVAILABLE = "available"


def sunday_based_weekday(day: date) -> int:
    """Return 0 for Sunday through 6 for Saturday."""

    return (day.weekday() + 1) % 7


def _as_date(value: DateLike) -> date:
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    raise TypeError("day must be a date or datetime instance")


def _local_now(clock: Clock) -> datetime:
    now = clock()
    if now.tzinfo is not None:
        return now.astimezone().replace(tzinfo=None)
    return now


class AvailabilityEvaluator:
    """Answers availability questions for one policy and booking index.

    A missing policy is evaluated as :meth:`Policy.unconfigured`, so an
    unconfigured physician never shows bookable dates.
    """

    def __init__(
        self,
        policy: Optional[Policy],
        booking_index: Optional[BookingIndex] = None,
        *,
        clock: Optional[Clock] = None,
    ) -> None:
        self._configured = policy is not None
        self.policy = policy if policy is not None else Policy.unconfigured()
        self.booking_index = booking_index if booking_index is not None else BookingIndex()
        self._clock: Clock = clock or datetime.now
        self._candidate_slots = tuple(generate_slots(self.policy.daily_window))

    @property
    def candidate_slots(self) -> List[time]:
        return list(self._candidate_slots)

    def is_date_fully_booked(self, day: DateLike) -> bool:
        day = _as_date(day)
        return self.booking_index.count_for(day) >= self.policy.max_appointments_per_day

    def get_available_times_for_date(self, day: DateLike) -> List[time]:
        """Return the open slots for ``day`` in ascending order."""

        day = _as_date(day)
        now = _local_now(self._clock)
        blocks = self.policy.blocks_for(day)
        bookings = self.booking_index.for_date(day)

        open_slots: List[time] = []
        for slot in self._candidate_slots:
            slot_minute = minute_of_day(slot)
            if any(block.covers(day, slot_minute) for block in blocks):
                continue
            if datetime.combine(day, slot) <= now:
                continue
            if bookings.is_booked_at(slot):
                continue
            open_slots.append(slot)
        return open_slots

    def describe_date(self, day: DateLike) -> DayStatus:
        """Classify ``day``; only :attr:`DayStatus.AVAILABLE` is bookable."""

        day = _as_date(day)
        policy = self.policy
        if not self._configured or not policy.working_days:
            return DayStatus.UNCONFIGURED
        if policy.booking_window is not None and not policy.booking_window.contains(day):
            return DayStatus.OUTSIDE_BOOKING_WINDOW
        if sunday_based_weekday(day) not in policy.working_days:
            return DayStatus.NON_WORKING_DAY
        if day in policy.holidays:
            return DayStatus.HOLIDAY
        if self.is_date_fully_booked(day):
            return DayStatus.FULLY_BOOKED
        if not self.get_available_times_for_date(day):
            return DayStatus.NO_OPEN_SLOTS
        return DayStatus.AVAILABLE

    def is_date_available(self, day: DateLike) -> bool:
        return self.describe_date(day) is DayStatus.AVAILABLE

    def is_slot_available(self, moment: datetime) -> bool:
        """Return whether ``moment`` is an open slot on a bookable date."""

        if not isinstance(moment, datetime):
            raise TypeError("moment must be a datetime instance")
        if moment.tzinfo is not None:
            moment = moment.astimezone().replace(tzinfo=None)
        day = moment.date()
        if not self.is_date_available(day):
            return False
        wanted = time(hour=moment.hour, minute=moment.minute)
        if moment.second or moment.microsecond:
            return False
        return wanted in self.get_available_times_for_date(day)

    def available_dates(self, start: DateLike, end: DateLike) -> List[date]:
        """Return the bookable dates in the inclusive range ``[start, end]``."""

        current = _as_date(start)
        last = _as_date(end)
        dates: List[date] = []
        while current <= last:
            if self.is_date_available(current):
                dates.append(current)
            current += timedelta(days=1)
        return dates


__all__ = ["AvailabilityEvaluator", "Clock", "DayStatus", "sunday_based_weekday"]
