import unittest
from datetime import time

from availability.cache import AvailabilityCache
from availability.store import StoreAPIError
from connector import InMemoryScheduleStore
from helpers import FUTURE_MONDAY, FakeMonotonic, fixed_clock, weekday_policy
from ui.booking_app import create_app


class BookingAppTests(unittest.TestCase):
    def setUp(self) -> None:
        self.store = InMemoryScheduleStore()
        self.store.write_policy("dr-abundo", weekday_policy(max_appointments_per_day=2))
        self.cache = AvailabilityCache(self.store, clock=FakeMonotonic())
        self.client = create_app(self.cache, clock=fixed_clock()).test_client()

    def test_calendar_reports_status_per_date(self) -> None:
        response = self.client.get(
            "/physicians/dr-abundo/availability?start=2026-03-07&end=2026-03-09"
        )

        self.assertEqual(response.status_code, 200)
        payload = response.get_json()
        self.assertTrue(payload["configured"])
        self.assertFalse(payload["stale"])
        self.assertEqual(
            [(day["date"], day["status"]) for day in payload["days"]],
            [
                ("2026-03-07", "non_working_day"),
                ("2026-03-08", "non_working_day"),
                ("2026-03-09", "available"),
            ],
        )

    def test_day_view_lists_open_times(self) -> None:
        self.store.create_appointment(
            {"primaryPhysician": "dr-abundo", "schedule": f"{FUTURE_MONDAY.isoformat()}T08:00:00"}
        )

        payload = self.client.get(f"/physicians/dr-abundo/availability/{FUTURE_MONDAY.isoformat()}").get_json()

        self.assertEqual(payload["status"], "available")
        self.assertFalse(payload["fully_booked"])
        self.assertEqual(payload["times"][0], "08:30")
        self.assertNotIn("12:00", payload["times"])

    def test_day_view_distinguishes_fully_booked(self) -> None:
        for slot in (time(8, 0), time(8, 30)):
            self.store.create_appointment(
                {"primaryPhysician": "dr-abundo", "schedule": f"{FUTURE_MONDAY.isoformat()}T{slot.isoformat()}"}
            )

        payload = self.client.get(f"/physicians/dr-abundo/availability/{FUTURE_MONDAY.isoformat()}").get_json()

        self.assertEqual(payload["status"], "fully_booked")
        self.assertTrue(payload["fully_booked"])
        self.assertEqual(payload["times"], [])

    def test_unconfigured_physician(self) -> None:
        payload = self.client.get(f"/physicians/dr-new/availability/{FUTURE_MONDAY.isoformat()}").get_json()

        self.assertFalse(payload["configured"])
        self.assertEqual(payload["status"], "unconfigured")

    def test_store_outage_is_flagged_stale(self) -> None:
        def offline(physician_id):
            raise StoreAPIError("store offline")

        self.store.read_policy = offline

        with self.assertLogs("availability.cache", level="WARNING"):
            payload = self.client.get("/physicians/dr-abundo/availability").get_json()

        self.assertTrue(payload["stale"])
        self.assertEqual(payload["error"], "store offline")
        self.assertEqual(len(payload["days"]), 30)

    def test_invalid_requests(self) -> None:
        self.assertEqual(self.client.get("/physicians/dr-abundo/availability/03-09-2026").status_code, 400)
        self.assertEqual(
            self.client.get("/physicians/dr-abundo/availability?start=2026-03-09&end=2026-03-01").status_code,
            400,
        )


if __name__ == "__main__":
    unittest.main()
