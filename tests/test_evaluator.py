import unittest
from datetime import date, datetime, time, timedelta, timezone

from availability.booking_index import BookedAppointment, build_index
from availability.evaluator import AvailabilityEvaluator, DayStatus, sunday_based_weekday
from availability.policy import BlockedTimeSlot, BookingWindow
from helpers import FUTURE_MONDAY, FUTURE_SUNDAY, NOW, TODAY, fixed_clock, weekday_policy

ALL_SLOTS = [time(h, m) for h in (8, 9, 10, 11, 13, 14, 15, 16) for m in (0, 30)]


def _bookings(day: date, *slots: time):
    return build_index([BookedAppointment(datetime.combine(day, slot)) for slot in slots])


def _block(day: date, start: str, end: str) -> BlockedTimeSlot:
    return BlockedTimeSlot.from_document({"date": day.isoformat(), "startTime": start, "endTime": end})


class FailClosedTests(unittest.TestCase):
    def test_absent_policy_never_available(self) -> None:
        evaluator = AvailabilityEvaluator(None, clock=fixed_clock())

        for offset in range(14):
            day = TODAY + timedelta(days=offset)
            self.assertFalse(evaluator.is_date_available(day))
            self.assertEqual(evaluator.describe_date(day), DayStatus.UNCONFIGURED)
        self.assertEqual(evaluator.get_available_times_for_date(FUTURE_MONDAY), [])

    def test_empty_working_days_never_available(self) -> None:
        evaluator = AvailabilityEvaluator(
            weekday_policy(working_days=frozenset()), clock=fixed_clock()
        )
        for offset in range(14):
            self.assertFalse(evaluator.is_date_available(TODAY + timedelta(days=offset)))


class DateRuleTests(unittest.TestCase):
    def test_weekday_numbering_starts_on_sunday(self) -> None:
        self.assertEqual(sunday_based_weekday(FUTURE_SUNDAY), 0)
        self.assertEqual(sunday_based_weekday(FUTURE_MONDAY), 1)
        self.assertEqual(sunday_based_weekday(date(2026, 3, 14)), 6)

    def test_non_working_day(self) -> None:
        evaluator = AvailabilityEvaluator(weekday_policy(), clock=fixed_clock())
        self.assertFalse(evaluator.is_date_available(FUTURE_SUNDAY))
        self.assertEqual(evaluator.describe_date(FUTURE_SUNDAY), DayStatus.NON_WORKING_DAY)

    def test_holiday(self) -> None:
        policy = weekday_policy(holidays=frozenset({FUTURE_MONDAY}))
        evaluator = AvailabilityEvaluator(policy, clock=fixed_clock())
        self.assertFalse(evaluator.is_date_available(FUTURE_MONDAY))
        self.assertEqual(evaluator.describe_date(FUTURE_MONDAY), DayStatus.HOLIDAY)
        self.assertTrue(evaluator.is_date_available(FUTURE_MONDAY + timedelta(days=1)))

    def test_booking_window_bounds_are_inclusive(self) -> None:
        start = FUTURE_MONDAY
        end = FUTURE_MONDAY + timedelta(days=7)
        policy = weekday_policy(booking_window=BookingWindow(start_date=start, end_date=end))
        evaluator = AvailabilityEvaluator(policy, clock=fixed_clock())

        self.assertTrue(evaluator.is_date_available(start))
        self.assertTrue(evaluator.is_date_available(end))
        for offset in range(1, 30):
            before = start - timedelta(days=offset)
            after = end + timedelta(days=offset)
            self.assertFalse(evaluator.is_date_available(before))
            self.assertFalse(evaluator.is_date_available(after))
        self.assertEqual(
            evaluator.describe_date(end + timedelta(days=1)), DayStatus.OUTSIDE_BOOKING_WINDOW
        )

    def test_open_ended_booking_window(self) -> None:
        policy = weekday_policy(booking_window=BookingWindow(end_date=FUTURE_MONDAY))
        evaluator = AvailabilityEvaluator(policy, clock=fixed_clock())
        self.assertTrue(evaluator.is_date_available(FUTURE_MONDAY))
        self.assertFalse(evaluator.is_date_available(FUTURE_MONDAY + timedelta(days=1)))

    def test_datetime_input_ignores_time_of_day(self) -> None:
        evaluator = AvailabilityEvaluator(weekday_policy(), clock=fixed_clock())
        late = datetime.combine(FUTURE_MONDAY, time(23, 59))
        self.assertTrue(evaluator.is_date_available(late))

    def test_available_dates_in_range(self) -> None:
        evaluator = AvailabilityEvaluator(weekday_policy(), clock=fixed_clock())
        dates = evaluator.available_dates(FUTURE_SUNDAY, FUTURE_SUNDAY + timedelta(days=7))
        self.assertEqual(dates, [FUTURE_MONDAY + timedelta(days=i) for i in range(5)])


class CapacityTests(unittest.TestCase):
    def test_capacity_ceiling_blocks_date_with_open_slots(self) -> None:
        booked = ALL_SLOTS[:3]
        policy = weekday_policy(max_appointments_per_day=3)
        evaluator = AvailabilityEvaluator(policy, _bookings(FUTURE_MONDAY, *booked), clock=fixed_clock())

        self.assertTrue(evaluator.is_date_fully_booked(FUTURE_MONDAY))
        self.assertFalse(evaluator.is_date_available(FUTURE_MONDAY))
        self.assertEqual(evaluator.describe_date(FUTURE_MONDAY), DayStatus.FULLY_BOOKED)
        self.assertTrue(evaluator.get_available_times_for_date(FUTURE_MONDAY))

    def test_below_capacity(self) -> None:
        policy = weekday_policy(max_appointments_per_day=3)
        evaluator = AvailabilityEvaluator(
            policy, _bookings(FUTURE_MONDAY, *ALL_SLOTS[:2]), clock=fixed_clock()
        )
        self.assertFalse(evaluator.is_date_fully_booked(FUTURE_MONDAY))
        self.assertTrue(evaluator.is_date_available(FUTURE_MONDAY))


class AvailableTimesTests(unittest.TestCase):
    def test_blocked_window_excludes_only_that_date(self) -> None:
        next_day = FUTURE_MONDAY + timedelta(days=1)
        policy = weekday_policy(blocked_time_slots=(_block(FUTURE_MONDAY, "09:00", "10:00"),))
        evaluator = AvailabilityEvaluator(policy, clock=fixed_clock())

        times = evaluator.get_available_times_for_date(FUTURE_MONDAY)

        self.assertNotIn(time(9, 0), times)
        self.assertNotIn(time(9, 30), times)
        self.assertIn(time(10, 0), times)
        self.assertEqual(evaluator.get_available_times_for_date(next_day), ALL_SLOTS)

    def test_inert_blocked_entry_matches_nothing(self) -> None:
        policy = weekday_policy(blocked_time_slots=(_block(FUTURE_MONDAY, "10:00", "09:00"),))
        evaluator = AvailabilityEvaluator(policy, clock=fixed_clock())
        self.assertEqual(evaluator.get_available_times_for_date(FUTURE_MONDAY), ALL_SLOTS)

    def test_past_and_current_slots_are_excluded_today(self) -> None:
        evaluator = AvailabilityEvaluator(weekday_policy(), clock=fixed_clock(NOW))

        times = evaluator.get_available_times_for_date(TODAY)

        self.assertEqual(times[0], time(10, 30))
        self.assertTrue(all(datetime.combine(TODAY, slot) > NOW for slot in times))

    def test_slot_at_current_instant_is_excluded(self) -> None:
        evaluator = AvailabilityEvaluator(weekday_policy(), clock=fixed_clock(datetime(2026, 3, 2, 10, 0)))
        self.assertEqual(evaluator.get_available_times_for_date(TODAY)[0], time(10, 30))

    def test_aware_clock_is_compared_in_local_time(self) -> None:
        local_now = datetime(2026, 3, 2, 10, 10)
        aware_now = local_now.astimezone(timezone.utc)
        evaluator = AvailabilityEvaluator(weekday_policy(), clock=fixed_clock(aware_now))
        self.assertEqual(evaluator.get_available_times_for_date(TODAY)[0], time(10, 30))

    def test_past_date_has_no_times(self) -> None:
        evaluator = AvailabilityEvaluator(weekday_policy(), clock=fixed_clock())
        last_friday = TODAY - timedelta(days=3)
        self.assertEqual(evaluator.get_available_times_for_date(last_friday), [])
        self.assertEqual(evaluator.describe_date(last_friday), DayStatus.NO_OPEN_SLOTS)

    def test_booked_slot_matches_exact_minute_only(self) -> None:
        bookings = build_index([BookedAppointment(datetime.combine(FUTURE_MONDAY, time(10, 15)))])
        evaluator = AvailabilityEvaluator(weekday_policy(), bookings, clock=fixed_clock())
        self.assertEqual(evaluator.get_available_times_for_date(FUTURE_MONDAY), ALL_SLOTS)

    def test_every_slot_blocked_makes_date_unavailable(self) -> None:
        policy = weekday_policy(blocked_time_slots=(_block(FUTURE_MONDAY, "08:00", "17:00"),))
        evaluator = AvailabilityEvaluator(policy, clock=fixed_clock())
        self.assertFalse(evaluator.is_date_available(FUTURE_MONDAY))
        self.assertEqual(evaluator.describe_date(FUTURE_MONDAY), DayStatus.NO_OPEN_SLOTS)

    def test_is_slot_available(self) -> None:
        bookings = _bookings(FUTURE_MONDAY, time(10, 0))
        evaluator = AvailabilityEvaluator(weekday_policy(), bookings, clock=fixed_clock())

        self.assertTrue(evaluator.is_slot_available(datetime.combine(FUTURE_MONDAY, time(9, 30))))
        self.assertFalse(evaluator.is_slot_available(datetime.combine(FUTURE_MONDAY, time(10, 0))))
        self.assertFalse(evaluator.is_slot_available(datetime.combine(FUTURE_MONDAY, time(9, 15))))
        self.assertFalse(evaluator.is_slot_available(datetime.combine(FUTURE_MONDAY, time(12, 0))))
        self.assertFalse(evaluator.is_slot_available(datetime.combine(FUTURE_SUNDAY, time(9, 30))))
        with self.assertRaises(TypeError):
            evaluator.is_slot_available(FUTURE_MONDAY)


class EndToEndScenarioTests(unittest.TestCase):
    def test_open_future_monday(self) -> None:
        evaluator = AvailabilityEvaluator(weekday_policy(), build_index([]), clock=fixed_clock())

        self.assertTrue(evaluator.is_date_available(FUTURE_MONDAY))
        self.assertEqual(evaluator.get_available_times_for_date(FUTURE_MONDAY), ALL_SLOTS)
        self.assertEqual(len(ALL_SLOTS), 16)

    def test_fully_booked_future_monday(self) -> None:
        evaluator = AvailabilityEvaluator(
            weekday_policy(), _bookings(FUTURE_MONDAY, *ALL_SLOTS[:10]), clock=fixed_clock()
        )

        self.assertTrue(evaluator.is_date_fully_booked(FUTURE_MONDAY))
        self.assertFalse(evaluator.is_date_available(FUTURE_MONDAY))

    def test_blocked_and_booked_future_monday(self) -> None:
        policy = weekday_policy(blocked_time_slots=(_block(FUTURE_MONDAY, "09:00", "09:30"),))
        evaluator = AvailabilityEvaluator(
            policy, _bookings(FUTURE_MONDAY, time(10, 0)), clock=fixed_clock()
        )

        times = evaluator.get_available_times_for_date(FUTURE_MONDAY)

        self.assertNotIn(time(9, 0), times)
        self.assertNotIn(time(10, 0), times)
        for expected in (time(8, 0), time(8, 30), time(9, 30), time(10, 30)):
            self.assertIn(expected, times)
        self.assertEqual(times, sorted(times))


if __name__ == "__main__":
    unittest.main()
