from datetime import date, datetime, timedelta, timezone
from unittest import mock

from sqlalchemy.exc import OperationalError

from bookingwidget.config import settings
from bookingwidget.errors import AvailabilityUnknown
from bookingwidget.services.bookings import controller
from bookingwidget.services.completion_checker import complete_ended_bookings
from bookingwidget.services.slots import availability, calculate_activity_availability, calculate_calendar
from bookingwidget.services.slots.redis_store import config_fingerprint

from .support import BASE_CONFIG, VENUE_KEY, DatabaseTestCase, FakeRedis

DAY = date(2030, 1, 7)
NOW = datetime(2030, 1, 6, 12, 0)
CUSTOMER = {"name": "Grace Hopper", "email": "grace@example.com"}


def _store_error(*args, **kwargs):
    raise OperationalError("SELECT version FROM capacity_versions", {}, Exception("disk I/O error"))


class AvailabilityTestCase(DatabaseTestCase):

    def book(self, quantity, start_time="10:00", day=DAY):
        return controller.submit(
            self.db, VENUE_KEY, self.activity.id, day, start_time,
            [{"ticket_type_id": "adult", "quantity": quantity}], CUSTOMER, now=NOW,
        )


class TestDayAvailability(AvailabilityTestCase):
    """Slots for one day, with the store and cache in the loop."""

    def test_open_day(self):
        result = calculate_activity_availability(self.db, self.activity, DAY, now=NOW)

        self.assertTrue(result.ok)
        self.assertEqual([s.start_str for s in result.slots], ["10:00", "11:00", "12:00", "13:00"])
        self.assertEqual(result.snapshot_version, 0)

    def test_bookings_reduce_capacity(self):
        self.book(3)
        result = calculate_activity_availability(self.db, self.activity, DAY, now=NOW)

        self.assertEqual(result.snapshot_version, 1)
        self.assertEqual(result.slots[0].capacity_remaining, 1)
        self.assertEqual(result.slots[1].capacity_remaining, 4)

    def test_store_failure_is_unknown_not_empty(self):
        with mock.patch.object(availability, "read_capacity_snapshot", side_effect=_store_error) as read:
            result = calculate_activity_availability(self.db, self.activity, DAY, now=NOW)

        self.assertEqual(result.status, "unknown")
        self.assertEqual(result.slots, [])
        self.assertEqual(read.call_count, 1 + settings.availability_read_retries)

    def test_transient_failure_retried(self):
        calls = iter([_store_error, None])

        def flaky(*args, **kwargs):
            step = next(calls)
            if step is not None:
                step()
            return availability.CapacitySnapshot()

        with mock.patch.object(availability, "read_capacity_snapshot", side_effect=flaky):
            result = calculate_activity_availability(self.db, self.activity, DAY, now=NOW)
        self.assertTrue(result.ok)

    def test_corrupt_booking_time_is_unknown(self):
        booking = self.book(2)
        booking.start_time = "25:99"
        self.db.commit()

        with mock.patch.object(availability, "read_capacity_snapshot", wraps=availability.read_capacity_snapshot) as read:
            result = calculate_activity_availability(self.db, self.activity, DAY, now=NOW)

        self.assertEqual(result.status, "unknown")
        self.assertEqual(result.slots, [])
        self.assertEqual(read.call_count, 1)
        with self.assertRaises(AvailabilityUnknown):
            self.book(1, "12:00")

    def test_malformed_config_unavailable(self):
        broken = self.add_activity(self.venue, "Broken", "{not json")
        result = calculate_activity_availability(self.db, broken, DAY, now=NOW)
        self.assertEqual(result.status, "unavailable")
        self.assertEqual(result.detail, "Booking temporarily unavailable")

        invalid = self.add_activity(self.venue, "Invalid", {"startTime": "20:00", "endTime": "08:00"})
        self.assertEqual(calculate_activity_availability(self.db, invalid, DAY, now=NOW).status, "unavailable")

    def test_cache_keyed_by_version(self):
        redis = FakeRedis()
        fingerprint = config_fingerprint(self.activity.widget_config)

        calculate_activity_availability(self.db, self.activity, DAY, now=NOW, redis=redis)
        self.assertIn(f"slots:day:{self.activity.id}:{DAY.isoformat()}:0:{fingerprint}", redis.values)

        controller.submit(
            self.db, VENUE_KEY, self.activity.id, DAY, "10:00",
            [{"ticket_type_id": "adult", "quantity": 4}], CUSTOMER, now=NOW, redis=redis,
        )
        result = calculate_activity_availability(self.db, self.activity, DAY, now=NOW, redis=redis)

        self.assertFalse(result.slots[0].bookable)
        self.assertIn(f"slots:day:{self.activity.id}:{DAY.isoformat()}:1:{fingerprint}", redis.values)

    def test_cached_slots_still_filtered_by_clock(self):
        redis = FakeRedis()
        calculate_activity_availability(self.db, self.activity, DAY, now=NOW, redis=redis)

        later = datetime(2030, 1, 7, 11, 30)
        result = calculate_activity_availability(self.db, self.activity, DAY, now=later, redis=redis)
        self.assertEqual([s.start_str for s in result.slots], ["12:00", "13:00"])


class TestCalendar(AvailabilityTestCase):

    def test_range(self):
        days = calculate_calendar(self.db, self.activity, DAY - timedelta(days=2), DAY + timedelta(days=1), now=NOW)

        self.assertEqual([d.reason for d in days], ["past", None, None, None])
        self.assertEqual(days[2].open_slots_count, 4)

    def test_beyond_window_and_blocked(self):
        activity = self.add_activity(self.venue, "Short window", {
            "operatingDays": ["monday", "tuesday"],
            "blockedDates": ["2030-01-08"],
            "advanceBookingWindow": {"maxDays": 2},
        })
        days = calculate_calendar(self.db, activity, DAY, DAY + timedelta(days=3), now=NOW)

        self.assertEqual([d.reason for d in days], [None, "blocked", "beyond_advance_window", "beyond_advance_window"])

        days = calculate_calendar(self.db, activity, DAY, DAY + timedelta(days=2), now=datetime(2030, 1, 7, 6, 0))
        self.assertEqual([d.reason for d in days], [None, "blocked", "closed"])

    def test_fully_booked(self):
        for start in ("10:00", "11:00", "12:00", "13:00"):
            self.book(4, start)
        day = calculate_calendar(self.db, self.activity, DAY, DAY, now=NOW)[0]
        self.assertEqual((day.has_slots, day.reason), (False, "fully_booked"))

    def test_store_failure_marks_unknown(self):
        with mock.patch.object(availability, "read_capacity_snapshot", side_effect=_store_error):
            day = calculate_calendar(self.db, self.activity, DAY, DAY, now=NOW)[0]
        self.assertEqual(day.reason, "unknown")

    def test_reversed_range(self):
        with self.assertRaises(ValueError):
            calculate_calendar(self.db, self.activity, DAY, DAY - timedelta(days=1), now=NOW)

    def test_range_clamped(self):
        days = calculate_calendar(self.db, self.activity, DAY, DAY + timedelta(days=400), now=NOW)
        self.assertEqual(len(days), 93)


class TestCompletionChecker(AvailabilityTestCase):
    """Confirmed bookings are completed once their slot has ended."""

    def test_completes_ended_confirmed(self):
        confirmed = self.book(2)
        controller.confirm_payment(self.db, confirmed.id)
        pending = self.book(1, "11:00")

        self.assertEqual(complete_ended_bookings(self.db, datetime(2030, 1, 7, 10, 59)), 0)
        self.assertEqual(complete_ended_bookings(self.db, datetime(2030, 1, 7, 12, 0)), 1)

        self.db.expire_all()
        self.assertEqual(controller.get_booking(self.db, confirmed.id).status, "completed")
        self.assertEqual(controller.get_booking(self.db, pending.id).status, "pending")

    def test_nothing_to_do(self):
        self.assertEqual(complete_ended_bookings(self.db, NOW), 0)

    def test_slot_end_uses_venue_timezone(self):
        pacific = self.add_activity(self.venue, "Harbor", {**BASE_CONFIG, "timezone": "America/Los_Angeles"})
        booking = controller.submit(
            self.db, VENUE_KEY, pacific.id, DAY, "10:00",
            [{"ticket_type_id": "adult", "quantity": 2}], CUSTOMER, now=NOW,
        )
        controller.confirm_payment(self.db, booking.id)

        # 04:00 and 10:30 in Los Angeles; the 10:00-11:00 slot is still running
        self.assertEqual(complete_ended_bookings(self.db, datetime(2030, 1, 7, 12, 0, tzinfo=timezone.utc)), 0)
        self.assertEqual(complete_ended_bookings(self.db, datetime(2030, 1, 7, 18, 30, tzinfo=timezone.utc)), 0)
        # 11:30 in Los Angeles
        self.assertEqual(complete_ended_bookings(self.db, datetime(2030, 1, 7, 19, 30, tzinfo=timezone.utc)), 1)

        self.db.expire_all()
        self.assertEqual(controller.get_booking(self.db, booking.id).status, "completed")
