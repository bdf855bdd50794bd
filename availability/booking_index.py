"""Date-keyed index of a physician's booked appointments."""
from __future__ import annotations

import logging
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Any, Dict, Generator, Iterable, List, Mapping, Optional, Tuple, Union

logger = logging.getLogger(__name__)

DEFAULT_BATCH_SIZE = 200

# Statuses that never occupy a slot, whatever the feed already filtered.
RELEASED_STATUSES = frozenset({"cancelled", "canceled"})

_TRUE_FLAGS = frozenset({"true", "1", "yes"})
_FALSE_FLAGS = frozenset({"false", "0", "no", ""})


def coerce_flag(value: object) -> bool:
    """Read a stored boolean that may arrive as a string such as ``"false"``."""

    if value is None:
        return False
    if isinstance(value, bool):
        return value
    if isinstance(value, int):
        return value != 0
    if isinstance(value, str):
        text = value.strip().lower()
        if text in _TRUE_FLAGS:
            return True
        if text in _FALSE_FLAGS:
            return False
    raise ValueError(f"Unsupported flag value: {value!r}")


def is_archived(document: Mapping[str, Any]) -> bool:
    try:
        return coerce_flag(document.get("archived"))
    except ValueError:
        # Left in the feed; build_index skips the record with a warning.
        return False


def _to_local_naive(moment: datetime) -> datetime:
    if moment.tzinfo is not None:
        return moment.astimezone().replace(tzinfo=None)
    return moment


def coerce_datetime(value: object) -> datetime:
    """Parse an appointment timestamp into a naive local ``datetime``."""

    if isinstance(value, datetime):
        return _to_local_naive(value)
    if isinstance(value, str) and value.strip():
        text = value.strip()
        if text.endswith("Z"):
            text = f"{text[:-1]}+00:00"
        try:
            return _to_local_naive(datetime.fromisoformat(text))
        except ValueError as exc:
            raise ValueError("Appointment timestamps must be ISO formatted") from exc
    raise ValueError(f"Unsupported appointment timestamp: {value!r}")


@dataclass(frozen=True)
class BookedAppointment:
    """An appointment as read from the appointment feed."""

    date_time: datetime
    status: str = "scheduled"
    archived: bool = False
    appointment_id: Optional[str] = None

    @property
    def occupies_slot(self) -> bool:
        return not self.archived and self.status.strip().lower() not in RELEASED_STATUSES

    @classmethod
    def from_document(cls, document: Mapping[str, Any]) -> "BookedAppointment":
        if not isinstance(document, Mapping):
            raise ValueError("Appointment documents must be mappings")
        raw_time = document.get("schedule", document.get("dateTime", document.get("date_time")))
        appointment_id = document.get("$id", document.get("id"))
        return cls(
            date_time=coerce_datetime(raw_time),
            status=str(document.get("status") or "scheduled"),
            archived=coerce_flag(document.get("archived")),
            appointment_id=str(appointment_id) if appointment_id is not None else None,
        )


AppointmentLike = Union[BookedAppointment, Mapping[str, Any]]


@dataclass(frozen=True)
class DayBookings:
    """Booked timestamps for one calendar date, in feed order."""

    timestamps: Tuple[datetime, ...] = ()

    @property
    def count(self) -> int:
        return len(self.timestamps)

    def is_booked_at(self, slot: time) -> bool:
        return any(
            stamp.hour == slot.hour and stamp.minute == slot.minute
            for stamp in self.timestamps
        )


EMPTY_DAY = DayBookings()


@dataclass(frozen=True)
class BookingIndex:
    """Mapping of calendar date to the bookings held on that date."""

    days: Mapping[date, DayBookings] = field(default_factory=dict)

    def for_date(self, day: date) -> DayBookings:
        return self.days.get(day, EMPTY_DAY)

    def count_for(self, day: date) -> int:
        return self.for_date(day).count

    @property
    def total(self) -> int:
        return sum(bucket.count for bucket in self.days.values())

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, BookingIndex):
            return NotImplemented
        return dict(self.days) == dict(other.days)

    def __hash__(self) -> int:
        return hash(tuple(sorted(self.days.items())))


def _normalize(entry: AppointmentLike) -> Optional[BookedAppointment]:
    if isinstance(entry, BookedAppointment):
        return entry
    try:
        return BookedAppointment.from_document(entry)
    except ValueError as exc:
        logger.warning("Skipping invalid appointment record %r: %s", entry, exc)
        return None


def iter_build_index(
    appointments: Iterable[AppointmentLike],
    batch_size: int = DEFAULT_BATCH_SIZE,
) -> Generator[int, None, BookingIndex]:
    """Build the index in batches, yielding the processed count after each.

    The generator's return value is the finished :class:`BookingIndex`, which
    is identical to what :func:`build_index` produces for the same input.
    """

    if batch_size <= 0:
        raise ValueError("batch_size must be a positive integer")

    buckets: Dict[date, List[datetime]] = {}
    processed = 0
    for entry in appointments:
        appointment = _normalize(entry)
        processed += 1
        if appointment is not None and appointment.occupies_slot:
            stamp = appointment.date_time
            buckets.setdefault(stamp.date(), []).append(stamp)
        if processed % batch_size == 0:
            yield processed
    if processed % batch_size:
        yield processed

    return BookingIndex(
        days={day: DayBookings(timestamps=tuple(stamps)) for day, stamps in buckets.items()}
    )


def build_index(
    appointments: Iterable[AppointmentLike],
    batch_size: Optional[int] = None,
) -> BookingIndex:
    """Return a fresh index of the occupying appointments."""

    builder = iter_build_index(appointments, batch_size or DEFAULT_BATCH_SIZE)
    while True:
        try:
            next(builder)
        except StopIteration as finished:
            return finished.value


__all__ = [
    "BookedAppointment",
    "BookingIndex",
    "DayBookings",
    "RELEASED_STATUSES",
    "build_index",
    "coerce_datetime",
    "coerce_flag",
    "is_archived",
    "iter_build_index",
]
