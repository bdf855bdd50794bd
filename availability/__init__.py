"""Appointment availability engine for the clinic booking portal."""

from .booking_index import BookedAppointment, BookingIndex, DayBookings, build_index, iter_build_index
from .cache import AvailabilityCache, AvailabilitySnapshot
from .evaluator import AvailabilityEvaluator, DayStatus
from .notifications import ChangeNotifier
from .policy import BlockedTimeSlot, BookingWindow, DailyWindow, Policy
from .slots import generate_slots
from .store import ScheduleStoreProtocol, StoreAPIError, StoreError, WriteResult

__all__ = [
    "AvailabilityCache",
    "AvailabilityEvaluator",
    "AvailabilitySnapshot",
    "BlockedTimeSlot",
    "BookedAppointment",
    "BookingIndex",
    "BookingWindow",
    "ChangeNotifier",
    "DailyWindow",
    "DayBookings",
    "DayStatus",
    "Policy",
    "ScheduleStoreProtocol",
    "StoreAPIError",
    "StoreError",
    "WriteResult",
    "build_index",
    "generate_slots",
    "iter_build_index",
]
