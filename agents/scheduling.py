"""Scheduling agent providing booking and physician settings operations."""

from __future__ import annotations

import logging
from datetime import datetime as DateTime
from typing import Any, Dict, Optional, Protocol

from availability.cache import AvailabilityCache
from availability.evaluator import Clock
from availability.notifications import ChangeNotifier
from availability.policy import Policy
from availability.store import ScheduleStoreProtocol, WriteResult

logger = logging.getLogger(__name__)


class BookingStoreProtocol(ScheduleStoreProtocol, Protocol):
    def create_appointment(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """Persist a new appointment document and return it."""


class SlotUnavailableError(ValueError):
    """Raised when the requested time is not an open slot."""


def _validate_identifier(value: str, label: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError(f"{label} must be a non-empty string")
    return value.strip()


def _require_datetime(appointment_datetime: DateTime) -> DateTime:
    if not isinstance(appointment_datetime, DateTime):
        raise TypeError("datetime must be a datetime instance")
    return appointment_datetime


def book_appointment(
    patient_id: str,
    physician_id: str,
    datetime: DateTime,
    *,
    cache: AvailabilityCache,
    store: BookingStoreProtocol,
    notifier: Optional[ChangeNotifier] = None,
    reason: str = "",
    clock: Optional[Clock] = None,
) -> Dict[str, Any]:
    """Book an appointment if the engine reports the slot as open.

    The check is advisory: two patients reading the same snapshot can both
    pass it, and only the store decides which booking is kept.
    """

    patient_id = _validate_identifier(patient_id, "patient_id")
    physician_id = _validate_identifier(physician_id, "physician_id")
    appointment_datetime = _require_datetime(datetime)

    snapshot = cache.get(physician_id)
    evaluator = snapshot.evaluator(clock=clock)
    if not evaluator.is_slot_available(appointment_datetime):
        status = evaluator.describe_date(appointment_datetime)
        logger.info(
            "Rejected booking for %s with %s at %s (%s)",
            patient_id,
            physician_id,
            appointment_datetime.isoformat(),
            status.value,
        )
        raise SlotUnavailableError("Requested time slot is unavailable")

    record = store.create_appointment(
        {
            "userId": patient_id,
            "primaryPhysician": physician_id,
            "schedule": appointment_datetime.isoformat(),
            "status": "scheduled",
            "reason": reason,
            "archived": False,
        }
    )
    logger.info(
        "Appointment %s booked with %s on %s",
        record.get("$id"),
        physician_id,
        appointment_datetime.isoformat(),
    )

    cache.invalidate(physician_id)
    if notifier is not None:
        notifier.publish_appointment_change(record)

    return {
        "appointment_id": record.get("$id"),
        "patient_id": patient_id,
        "physician_id": physician_id,
        "datetime": appointment_datetime,
    }


def save_policy(
    physician_id: str,
    policy: Policy,
    *,
    store: ScheduleStoreProtocol,
    cache: AvailabilityCache,
    notifier: Optional[ChangeNotifier] = None,
) -> WriteResult:
    """Persist a physician's policy and drop the cached copy on success."""

    physician_id = _validate_identifier(physician_id, "physician_id")
    if not isinstance(policy, Policy):
        raise TypeError("policy must be a Policy instance")

    result = store.write_policy(physician_id, policy)
    if not result.success:
        logger.warning("Policy update for %s failed: %s", physician_id, result.error)
        return result

    cache.invalidate(physician_id)
    if notifier is not None:
        notifier.publish_policy_change(physician_id, policy.to_document())
    return result
