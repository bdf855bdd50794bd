"""In-process fan-out of policy and appointment change notifications."""
from __future__ import annotations

import itertools
import logging
import threading
from typing import Any, Callable, Dict, List, Mapping, Optional, Tuple

logger = logging.getLogger(__name__)

PolicyCallback = Callable[[str, Optional[Mapping[str, Any]]], None]
AppointmentCallback = Callable[[Optional[Mapping[str, Any]]], None]
Unsubscribe = Callable[[], None]


class ChangeNotifier:
    """Registry of change subscribers.

    Every ``subscribe_*`` call returns a callable that removes the
    registration; calling it more than once is harmless.
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._sequence = itertools.count(1)
        self._policy_subscribers: Dict[int, Tuple[str, PolicyCallback]] = {}
        self._appointment_subscribers: Dict[int, AppointmentCallback] = {}

    def subscribe_policy_changes(self, physician_id: str, callback: PolicyCallback) -> Unsubscribe:
        if not physician_id:
            raise ValueError("physician_id must be provided")
        with self._lock:
            token = next(self._sequence)
            self._policy_subscribers[token] = (physician_id, callback)

        def unsubscribe() -> None:
            with self._lock:
                self._policy_subscribers.pop(token, None)

        return unsubscribe

    def subscribe_appointment_changes(self, callback: AppointmentCallback) -> Unsubscribe:
        with self._lock:
            token = next(self._sequence)
            self._appointment_subscribers[token] = callback

        def unsubscribe() -> None:
            with self._lock:
                self._appointment_subscribers.pop(token, None)

        return unsubscribe

    @property
    def subscriber_count(self) -> int:
        with self._lock:
            return len(self._policy_subscribers) + len(self._appointment_subscribers)

    def publish_policy_change(
        self, physician_id: str, payload: Optional[Mapping[str, Any]] = None
    ) -> int:
        """Notify subscribers of ``physician_id``; returns how many were called."""

        with self._lock:
            callbacks: List[PolicyCallback] = [
                callback
                for subscribed_id, callback in self._policy_subscribers.values()
                if subscribed_id == physician_id
            ]
        logger.debug("Publishing policy change for %s to %d subscriber(s)", physician_id, len(callbacks))
        for callback in callbacks:
            try:
                callback(physician_id, payload)
            except Exception:  # noqa: BLE001 - one subscriber must not starve the rest
                logger.exception("Policy change subscriber failed for %s", physician_id)
        return len(callbacks)

    def publish_appointment_change(self, payload: Optional[Mapping[str, Any]] = None) -> int:
        with self._lock:
            callbacks = list(self._appointment_subscribers.values())
        logger.debug("Publishing appointment change to %d subscriber(s)", len(callbacks))
        for callback in callbacks:
            try:
                callback(payload)
            except Exception:  # noqa: BLE001 - one subscriber must not starve the rest
                logger.exception("Appointment change subscriber failed")
        return len(callbacks)


def physician_from_payload(payload: Optional[Mapping[str, Any]]) -> Optional[str]:
    """Extract the physician an appointment change belongs to, if present."""

    if not isinstance(payload, Mapping):
        return None
    for key in ("primaryPhysician", "physician_id", "physicianId", "doctorId"):
        value = payload.get(key)
        if isinstance(value, str) and value.strip():
            return value.strip()
    return None


__all__ = [
    "AppointmentCallback",
    "ChangeNotifier",
    "PolicyCallback",
    "Unsubscribe",
    "physician_from_payload",
]
