"""Connector interfaces for the clinic booking portal."""

from __future__ import annotations

import itertools
from datetime import datetime
from typing import Any, Dict, List, Optional

from availability.booking_index import is_archived
from availability.policy import Policy
from availability.store import WriteResult


class InMemoryScheduleStore:
    """In-memory store simulator for physician policies and appointments."""

    def __init__(self) -> None:
        self._policies: Dict[str, Policy] = {}
        self._appointments: Dict[str, Dict[str, Any]] = {}
        self._sequence = itertools.count(1)

    def read_policy(self, physician_id: str) -> Optional[Policy]:
        return self._policies.get(physician_id)

    def write_policy(self, physician_id: str, policy: Policy) -> WriteResult:
        if not physician_id:
            return WriteResult(success=False, error="physician_id must be provided")
        if not isinstance(policy, Policy):
            return WriteResult(success=False, error="policy must be a Policy instance")
        self._policies[physician_id] = policy
        return WriteResult(success=True)

    def read_appointments(self, physician_id: str) -> List[Dict[str, Any]]:
        return [
            dict(document)
            for document in self._appointments.values()
            if document["primaryPhysician"] == physician_id and not is_archived(document)
        ]

    def create_appointment(self, data: Dict[str, Any]) -> Dict[str, Any]:
        schedule = data.get("schedule")
        if isinstance(schedule, datetime):
            data = {**data, "schedule": schedule.isoformat()}
        document = {"$id": str(next(self._sequence)), "status": "scheduled", "archived": False, **data}
        self._appointments[document["$id"]] = document
        return dict(document)

    def update_appointment(self, appointment_id: str, **changes: Any) -> bool:
        document = self._appointments.get(appointment_id)
        if document is None:
            return False
        document.update(changes)
        return True


__all__ = ["InMemoryScheduleStore"]
