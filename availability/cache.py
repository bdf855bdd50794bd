"""Time-boxed cache of physician policies and booking indexes.

Entries are replaced as a whole, so a reader always sees a policy together
with the booking index built from the same fetch. Change notifications evict
or refresh entries ahead of their TTL; the TTL only bounds how long a missed
notification can go unnoticed.
"""
from __future__ import annotations

import dataclasses
import logging
import os
import threading
import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, List, Mapping, Optional

from .booking_index import BookingIndex, build_index
from .evaluator import AvailabilityEvaluator, Clock
from .notifications import ChangeNotifier, Unsubscribe, physician_from_payload
from .policy import Policy
from .store import ScheduleStoreProtocol, StoreError, coerce_policy

logger = logging.getLogger(__name__)

DEFAULT_TTL_SECONDS = float(os.getenv("AVAILABILITY_CACHE_TTL_SECONDS", "300"))


@dataclass(frozen=True)
class AvailabilitySnapshot:
    """Policy and booking index for one physician, read from the same fetch.

    ``stale`` is set when the store could not be reached and the snapshot is
    either the last known-good data or the unconfigured default; ``error``
    carries the failure message for display.
    """

    physician_id: str
    policy: Optional[Policy]
    booking_index: BookingIndex
    fetched_at: float
    stale: bool = False
    error: Optional[str] = None

    def evaluator(self, clock: Optional[Clock] = None) -> AvailabilityEvaluator:
        return AvailabilityEvaluator(self.policy, self.booking_index, clock=clock)


@dataclass(frozen=True)
class _CacheEntry:
    snapshot: AvailabilitySnapshot
    expires_at: float


SnapshotListener = Callable[[AvailabilitySnapshot], None]


class AvailabilityCache:
    """Per-physician cache in front of a :class:`ScheduleStoreProtocol`."""

    def __init__(
        self,
        store: ScheduleStoreProtocol,
        *,
        ttl_seconds: float = DEFAULT_TTL_SECONDS,
        clock: Callable[[], float] = time.monotonic,
        notifier: Optional[ChangeNotifier] = None,
        batch_size: Optional[int] = None,
    ) -> None:
        if ttl_seconds <= 0:
            raise ValueError("ttl_seconds must be positive")
        self._store = store
        self._ttl_seconds = ttl_seconds
        self._clock = clock
        self._batch_size = batch_size

        self._state_lock = threading.Lock()
        self._entries: Dict[str, _CacheEntry] = {}
        self._last_good: Dict[str, AvailabilitySnapshot] = {}
        self._generations: Dict[str, int] = {}
        self._epoch = 0
        self._fetch_locks: Dict[str, threading.Lock] = {}

        self._listeners: List[SnapshotListener] = []
        self._notifier: Optional[ChangeNotifier] = None
        self._appointment_unsubscribe: Optional[Unsubscribe] = None
        self._policy_unsubscribes: Dict[str, Unsubscribe] = {}

        if notifier is not None:
            self.attach(notifier)

    @property
    def ttl_seconds(self) -> float:
        return self._ttl_seconds

    def get(self, physician_id: str) -> AvailabilitySnapshot:
        """Return the cached snapshot, fetching it on a miss or after expiry."""

        physician_id = _validate_identifier(physician_id)
        self._ensure_policy_subscription(physician_id)

        snapshot = self._fresh_snapshot(physician_id)
        if snapshot is not None:
            logger.debug("Availability cache hit for %s", physician_id)
            return snapshot

        with self._fetch_lock(physician_id):
            # Another caller may have completed the fetch while we waited.
            snapshot = self._fresh_snapshot(physician_id)
            if snapshot is not None:
                logger.debug("Availability cache filled while waiting for %s", physician_id)
                return snapshot
            logger.debug("Availability cache miss for %s", physician_id)
            return self._load(physician_id)

    def refresh(self, physician_id: str) -> AvailabilitySnapshot:
        """Fetch ``physician_id`` now, regardless of the cached entry's age."""

        physician_id = _validate_identifier(physician_id)
        with self._fetch_lock(physician_id):
            return self._load(physician_id)

    def invalidate(self, physician_id: str) -> bool:
        """Evict ``physician_id``; returns whether an entry was present."""

        with self._state_lock:
            removed = self._entries.pop(physician_id, None)
            self._generations[physician_id] = self._generations.get(physician_id, 0) + 1
        if removed is not None:
            logger.info("Invalidated availability cache entry for %s", physician_id)
        return removed is not None

    def clear(self) -> None:
        """Evict every entry, including fetches still in flight."""

        with self._state_lock:
            self._epoch += 1
            self._entries.clear()

    def cached_physicians(self) -> List[str]:
        with self._state_lock:
            return sorted(self._entries)

    def add_listener(self, listener: SnapshotListener) -> Unsubscribe:
        """Call ``listener`` whenever a fetch changes a physician's data."""

        with self._state_lock:
            self._listeners.append(listener)

        def remove() -> None:
            with self._state_lock:
                if listener in self._listeners:
                    self._listeners.remove(listener)

        return remove

    def attach(self, notifier: ChangeNotifier) -> None:
        """Drive invalidation from ``notifier`` until :meth:`close` is called."""

        if self._notifier is notifier:
            return
        self._unsubscribe_all()
        self._notifier = notifier
        self._appointment_unsubscribe = notifier.subscribe_appointment_changes(
            self._on_appointment_change
        )
        for physician_id in self.cached_physicians():
            self._ensure_policy_subscription(physician_id)

    def close(self) -> None:
        """Drop every notifier subscription and the per-physician bookkeeping."""

        self._unsubscribe_all()
        with self._state_lock:
            self._last_good.clear()
            self._fetch_locks.clear()

    def _unsubscribe_all(self) -> None:
        if self._appointment_unsubscribe is not None:
            self._appointment_unsubscribe()
            self._appointment_unsubscribe = None
        with self._state_lock:
            unsubscribes = list(self._policy_unsubscribes.values())
            self._policy_unsubscribes.clear()
        for unsubscribe in unsubscribes:
            unsubscribe()
        self._notifier = None

    def _fresh_snapshot(self, physician_id: str) -> Optional[AvailabilitySnapshot]:
        entry = self._entries.get(physician_id)
        if entry is not None and self._clock() < entry.expires_at:
            return entry.snapshot
        return None

    def _fetch_lock(self, physician_id: str) -> threading.Lock:
        with self._state_lock:
            lock = self._fetch_locks.get(physician_id)
            if lock is None:
                lock = threading.Lock()
                self._fetch_locks[physician_id] = lock
            return lock

    def _ensure_policy_subscription(self, physician_id: str) -> None:
        notifier = self._notifier
        if notifier is None:
            return
        with self._state_lock:
            if physician_id in self._policy_unsubscribes:
                return
            self._policy_unsubscribes[physician_id] = notifier.subscribe_policy_changes(
                physician_id, self._on_policy_change
            )

    def _load(self, physician_id: str) -> AvailabilitySnapshot:
        with self._state_lock:
            generation = (self._epoch, self._generations.get(physician_id, 0))
            previous = self._last_good.get(physician_id)

        try:
            raw_policy = self._store.read_policy(physician_id)
            appointments = self._store.read_appointments(physician_id)
            policy = coerce_policy(raw_policy)
        except (StoreError, ValueError) as exc:
            logger.warning("Failed to fetch availability for %s: %s", physician_id, exc)
            return self._fallback(physician_id, previous, exc)

        booking_index = build_index(appointments, self._batch_size)
        changed = True
        if previous is not None:
            if policy == previous.policy:
                policy = previous.policy
            changed = policy is not previous.policy or booking_index != previous.booking_index

        now = self._clock()
        snapshot = AvailabilitySnapshot(
            physician_id=physician_id,
            policy=policy,
            booking_index=booking_index,
            fetched_at=now,
        )
        with self._state_lock:
            if (self._epoch, self._generations.get(physician_id, 0)) == generation:
                self._entries[physician_id] = _CacheEntry(
                    snapshot=snapshot, expires_at=now + self._ttl_seconds
                )
            else:
                logger.debug("Discarding superseded fetch for %s", physician_id)
            self._last_good[physician_id] = snapshot
            listeners = list(self._listeners) if changed else []

        logger.info(
            "Loaded availability for %s (%s, %d booked)",
            physician_id,
            "configured" if policy is not None else "unconfigured",
            booking_index.total,
        )
        for listener in listeners:
            try:
                listener(snapshot)
            except Exception:  # noqa: BLE001 - listeners must not break cache reads
                logger.exception("Availability listener failed for %s", physician_id)
        return snapshot

    def _fallback(
        self,
        physician_id: str,
        previous: Optional[AvailabilitySnapshot],
        exc: Exception,
    ) -> AvailabilitySnapshot:
        if previous is not None:
            logger.warning("Serving last known availability for %s", physician_id)
            return dataclasses.replace(previous, stale=True, error=str(exc))
        return AvailabilitySnapshot(
            physician_id=physician_id,
            policy=None,
            booking_index=BookingIndex(),
            fetched_at=self._clock(),
            stale=True,
            error=str(exc),
        )

    def _refresh_if_cached(self, physician_id: str) -> None:
        if self.invalidate(physician_id):
            self.refresh(physician_id)

    def _on_policy_change(self, physician_id: str, payload: Optional[Mapping[str, Any]]) -> None:
        logger.info("Policy changed for %s", physician_id)
        self._refresh_if_cached(physician_id)

    def _on_appointment_change(self, payload: Optional[Mapping[str, Any]]) -> None:
        physician_id = physician_from_payload(payload)
        if physician_id is None:
            logger.info("Appointment change without physician; clearing availability cache")
            self.clear()
            return
        logger.info("Appointments changed for %s", physician_id)
        self._refresh_if_cached(physician_id)


def _validate_identifier(value: str) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValueError("physician_id must be a non-empty string")
    return value.strip()


__all__ = ["AvailabilityCache", "AvailabilitySnapshot", "DEFAULT_TTL_SECONDS"]
