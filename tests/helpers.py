"""Shared fixtures for the availability tests."""
from datetime import date, datetime

from availability.policy import DailyWindow, Policy

# 2026-03-02 and 2026-03-09 are Mondays.
TODAY = date(2026, 3, 2)
NOW = datetime(2026, 3, 2, 10, 10)
FUTURE_MONDAY = date(2026, 3, 9)
FUTURE_SUNDAY = date(2026, 3, 8)


def fixed_clock(moment=NOW):
    return lambda: moment


def weekday_policy(**overrides) -> Policy:
    fields = {
        "working_days": frozenset({1, 2, 3, 4, 5}),
        "daily_window": DailyWindow(start_hour=8, end_hour=17),
        "max_appointments_per_day": 10,
    }
    fields.update(overrides)
    return Policy(**fields)


class FakeMonotonic:
    def __init__(self, start: float = 1000.0) -> None:
        self.value = start

    def __call__(self) -> float:
        return self.value

    def advance(self, seconds: float) -> None:
        self.value += seconds
