"""Contracts for the policy and appointment store used by the cache."""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol, Sequence, Union

from .booking_index import BookedAppointment
from .policy import Policy


class StoreError(RuntimeError):
    """Base exception for schedule store failures."""


class StoreAPIError(StoreError):
    """Raised when the remote store cannot be reached or answers with an error."""


@dataclass(frozen=True)
class WriteResult:
    success: bool
    error: Optional[str] = None


class ScheduleStoreProtocol(Protocol):
    """Minimal interface required from a policy and appointment store."""

    def read_policy(self, physician_id: str) -> Optional[Union[Policy, Mapping[str, Any]]]:
        """Return the stored policy, or ``None`` for an unconfigured physician."""

    def write_policy(self, physician_id: str, policy: Policy) -> WriteResult:
        """Persist ``policy`` for ``physician_id``."""

    def read_appointments(
        self, physician_id: str
    ) -> Sequence[Union[BookedAppointment, Mapping[str, Any]]]:
        """Return the physician's non-archived appointments."""


def coerce_policy(raw: Optional[Union[Policy, Mapping[str, Any]]]) -> Optional[Policy]:
    if raw is None or isinstance(raw, Policy):
        return raw
    return Policy.from_document(raw)


__all__ = [
    "ScheduleStoreProtocol",
    "StoreAPIError",
    "StoreError",
    "WriteResult",
    "coerce_policy",
]
