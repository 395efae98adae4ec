import unittest
from datetime import date, datetime

from bookingwidget.services.slots import CapacitySnapshot, compute_slots, resolve_day_window
from bookingwidget.services.slots.calculator import (
    REASON_BLOCKED,
    REASON_SOLD_OUT,
    BookedInterval,
    Slot,
)
from bookingwidget.services.widget import load_widget_config

MONDAY = date(2030, 1, 7)
TUESDAY = date(2030, 1, 8)


def _config(**overrides):
    raw = {
        "operatingDays": ["monday"],
        "startTime": "10:00",
        "endTime": "12:00",
        "slotIntervalMinutes": 60,
        "maxPlayers": 6,
    }
    raw.update(overrides)
    return load_widget_config(raw)


class TestDayWindow(unittest.TestCase):
    """Precedence: blocked date > per-date hours > custom dates > weekly > global."""

    def test_operating_day(self):
        config = _config()
        self.assertEqual(resolve_day_window(config, MONDAY).start, 10 * 60)
        self.assertIsNone(resolve_day_window(config, TUESDAY))

    def test_custom_date_opens_closed_weekday(self):
        config = _config(customDates=[{"date": "2030-01-08", "startTime": "18:00", "endTime": "20:00"}])
        window = resolve_day_window(config, TUESDAY)
        self.assertEqual((window.start, window.end), (18 * 60, 20 * 60))

    def test_per_date_hours_beat_custom_dates(self):
        config = _config(
            customDates=[{"date": "2030-01-07", "startTime": "18:00", "endTime": "20:00"}],
            customHours={"2030-01-07": {"startTime": "13:00", "endTime": "14:00"}},
        )
        self.assertEqual(resolve_day_window(config, MONDAY).start, 13 * 60)

    def test_weekly_override(self):
        config = _config(customHours={"monday": {"startTime": "08:00", "endTime": "09:00"}})
        self.assertEqual(resolve_day_window(config, MONDAY).start, 8 * 60)

    def test_blocked_date_wins(self):
        config = _config(
            blockedDates=["2030-01-07"],
            customDates=[{"date": "2030-01-07", "startTime": "18:00", "endTime": "20:00"}],
            customHours={"2030-01-07": {"startTime": "13:00", "endTime": "14:00"}},
        )
        self.assertIsNone(resolve_day_window(config, MONDAY))
        self.assertEqual(compute_slots(config, MONDAY), [])


class TestComputeSlots(unittest.TestCase):
    """Slot generation, capacity and partial blocks."""

    def test_two_hour_window_hourly(self):
        slots = compute_slots(_config(), MONDAY)

        self.assertEqual([(s.start_str, s.end_str) for s in slots], [("10:00", "11:00"), ("11:00", "12:00")])
        self.assertTrue(all(s.bookable for s in slots))
        self.assertTrue(all(s.capacity_remaining == 6 for s in slots))

    def test_closed_weekday_is_empty(self):
        self.assertEqual(compute_slots(_config(), TUESDAY), [])

    def test_slots_ascending_fixed_length(self):
        config = _config(startTime="09:00", endTime="21:00", slotIntervalMinutes=45)
        slots = compute_slots(config, MONDAY)

        self.assertTrue(slots)
        for slot in slots:
            self.assertEqual(slot.end_time - slot.start_time, 45)
        for a, b in zip(slots, slots[1:]):
            self.assertLessEqual(a.end_time, b.start_time)

    def test_partial_last_slot_dropped(self):
        config = _config(endTime="11:30")
        slots = compute_slots(config, MONDAY)
        self.assertEqual([s.start_str for s in slots], ["10:00"])

    def test_window_shorter_than_interval(self):
        config = _config(endTime="10:30")
        self.assertEqual(compute_slots(config, MONDAY), [])

    def test_capacity_subtracted(self):
        snapshot = CapacitySnapshot(3, (BookedInterval(10 * 60, 11 * 60, 4),))
        slots = compute_slots(_config(), MONDAY, snapshot)

        self.assertEqual(slots[0].capacity_remaining, 2)
        self.assertEqual(slots[1].capacity_remaining, 6)

    def test_sold_out(self):
        snapshot = CapacitySnapshot(1, (BookedInterval(10 * 60, 11 * 60, 6),))
        first = compute_slots(_config(), MONDAY, snapshot)[0]

        self.assertFalse(first.bookable)
        self.assertEqual(first.capacity_remaining, 0)
        self.assertEqual(first.reason, REASON_SOLD_OUT)
        self.assertEqual(first.ticket_types_available, ())

    def test_partial_block(self):
        config = _config(blockedDates=[{"date": "2030-01-07", "startTime": "11:30", "endTime": "12:00"}])
        slots = compute_slots(config, MONDAY)

        self.assertTrue(slots[0].bookable)
        self.assertFalse(slots[1].bookable)
        self.assertEqual(slots[1].reason, REASON_BLOCKED)

    def test_ticket_types_listed(self):
        config = _config(ticketTypes=[
            {"id": "adult", "name": "Adult", "pricePerUnit": 30},
            {"id": "child", "name": "Child", "pricePerUnit": 15},
        ])
        self.assertEqual(compute_slots(config, MONDAY)[0].ticket_types_available, ("adult", "child"))

    def test_deterministic(self):
        config = _config()
        snapshot = CapacitySnapshot(2, (BookedInterval(10 * 60, 11 * 60, 1),))
        now = datetime(2030, 1, 6, 12, 0)
        self.assertEqual(
            compute_slots(config, MONDAY, snapshot, now),
            compute_slots(config, MONDAY, snapshot, now),
        )

    def test_dict_round_trip(self):
        slot = compute_slots(_config(), MONDAY)[0]
        self.assertEqual(Slot.from_dict(slot.to_dict()), slot)


class TestAdvanceWindow(unittest.TestCase):
    """Slots outside [now + min lead, now + max lead] are dropped."""

    def test_min_lead(self):
        config = _config(advanceBookingWindow={"minHours": 2})
        slots = compute_slots(config, MONDAY, now=datetime(2030, 1, 7, 8, 30))
        self.assertEqual([s.start_str for s in slots], ["11:00"])

    def test_past_slots_dropped(self):
        slots = compute_slots(_config(), MONDAY, now=datetime(2030, 1, 7, 10, 15))
        self.assertEqual([s.start_str for s in slots], ["11:00"])

    def test_max_lead(self):
        config = _config(advanceBookingWindow={"maxDays": 3})
        self.assertEqual(compute_slots(config, MONDAY, now=datetime(2029, 12, 31, 9, 0)), [])
        self.assertEqual(len(compute_slots(config, MONDAY, now=datetime(2030, 1, 5, 9, 0))), 2)

    def test_same_day_disallowed(self):
        config = _config(advanceBookingWindow={"sameDayAllowed": False})
        self.assertEqual(compute_slots(config, MONDAY, now=datetime(2030, 1, 7, 6, 0)), [])
        self.assertEqual(len(compute_slots(config, MONDAY, now=datetime(2030, 1, 6, 6, 0))), 2)

    def test_no_now_skips_filter(self):
        config = _config(advanceBookingWindow={"minHours": 200, "maxDays": 30})
        self.assertEqual(len(compute_slots(config, MONDAY)), 2)


class TestCountedStatuses(unittest.TestCase):

    def test_no_show_counting_is_opt_in(self):
        self.assertNotIn("no-show", _config().counted_statuses())
        self.assertIn("no-show", _config(countNoShowAgainstCapacity=True).counted_statuses())


if __name__ == "__main__":
    unittest.main()
