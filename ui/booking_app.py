"""Patient booking web application.

This module exposes a small Flask application that serves the booking
calendar's availability views as JSON. Every answer comes from the shared
availability cache, so the calendar and the booking agent agree on which
dates and times are open.
"""
from __future__ import annotations

from datetime import date, datetime, timedelta
import os
from typing import Callable, List, MutableMapping, Optional

from flask import Flask, Response, abort, jsonify, request

from availability.cache import AvailabilityCache, AvailabilitySnapshot
from availability.evaluator import DayStatus

DATE_FORMAT = "%Y-%m-%d"
TIME_FORMAT = "%H:%M"
DEFAULT_RANGE_DAYS = 30
MAX_RANGE_DAYS = 366


def parse_iso_date(value: str | None) -> date | None:
    if not value:
        return None
    try:
        return datetime.strptime(value, DATE_FORMAT).date()
    except ValueError:
        return None


def _snapshot_meta(snapshot: AvailabilitySnapshot) -> MutableMapping[str, object]:
    return {
        "physician_id": snapshot.physician_id,
        "configured": snapshot.policy is not None,
        "stale": snapshot.stale,
        "error": snapshot.error,
    }


def build_calendar_context(
    snapshot: AvailabilitySnapshot,
    start: date,
    end: date,
    clock: Optional[Callable[[], datetime]] = None,
) -> MutableMapping[str, object]:
    evaluator = snapshot.evaluator(clock=clock)
    days: List[MutableMapping[str, object]] = []
    current = start
    while current <= end:
        status = evaluator.describe_date(current)
        days.append(
            {
                "date": current.strftime(DATE_FORMAT),
                "status": status.value,
                "available": status is DayStatus.AVAILABLE,
            }
        )
        current += timedelta(days=1)
    context = _snapshot_meta(snapshot)
    context.update({"start": start.strftime(DATE_FORMAT), "end": end.strftime(DATE_FORMAT), "days": days})
    return context


def build_day_context(
    snapshot: AvailabilitySnapshot,
    target_date: date,
    clock: Optional[Callable[[], datetime]] = None,
) -> MutableMapping[str, object]:
    evaluator = snapshot.evaluator(clock=clock)
    status = evaluator.describe_date(target_date)
    times = []
    if status is DayStatus.AVAILABLE:
        times = [slot.strftime(TIME_FORMAT) for slot in evaluator.get_available_times_for_date(target_date)]
    context = _snapshot_meta(snapshot)
    context.update(
        {
            "date": target_date.strftime(DATE_FORMAT),
            "status": status.value,
            "fully_booked": evaluator.is_date_fully_booked(target_date),
            "times": times,
        }
    )
    return context


def create_app(
    cache: AvailabilityCache,
    clock: Optional[Callable[[], datetime]] = None,
) -> Flask:
    app = Flask(__name__)
    now = clock or datetime.now

    @app.route("/physicians/<physician_id>/availability", methods=["GET"])
    def availability_calendar(physician_id: str) -> Response:
        """Return the per-date status for a range of dates."""
        start = parse_iso_date(request.args.get("start")) or now().date()
        end = parse_iso_date(request.args.get("end")) or start + timedelta(days=DEFAULT_RANGE_DAYS - 1)
        if end < start or (end - start).days >= MAX_RANGE_DAYS:
            abort(400, description="Invalid date range")
        snapshot = cache.get(physician_id)
        return jsonify(build_calendar_context(snapshot, start, end, clock=now))

    @app.route("/physicians/<physician_id>/availability/<day>", methods=["GET"])
    def availability_day(physician_id: str, day: str) -> Response:
        target_date = parse_iso_date(day)
        if target_date is None:
            abort(400, description="Dates must use YYYY-MM-DD")
        snapshot = cache.get(physician_id)
        return jsonify(build_day_context(snapshot, target_date, clock=now))

    return app


if __name__ == "__main__":
    from connector import InMemoryScheduleStore

    create_app(AvailabilityCache(InMemoryScheduleStore())).run(
        host="0.0.0.0",
        port=int(os.environ.get("PORT", "5000")),
        debug=False,
    )
