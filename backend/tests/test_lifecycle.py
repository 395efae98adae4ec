import unittest

from bookingwidget.errors import InvalidTransition
from bookingwidget.services.bookings.lifecycle import (
    CANCELLED,
    COMPLETED,
    CONFIRMED,
    NO_SHOW,
    PENDING,
    STATUSES,
    assert_transition,
    can_transition,
    is_terminal,
)


class TestTransitions(unittest.TestCase):
    """pending → confirmed | cancelled; confirmed → completed | cancelled | no-show."""

    def test_allowed(self):
        for current, target in (
            (PENDING, CONFIRMED),
            (PENDING, CANCELLED),
            (CONFIRMED, COMPLETED),
            (CONFIRMED, CANCELLED),
            (CONFIRMED, NO_SHOW),
        ):
            self.assertTrue(can_transition(current, target), (current, target))

    def test_rejected(self):
        for current, target in (
            (PENDING, COMPLETED),
            (PENDING, NO_SHOW),
            (CONFIRMED, PENDING),
            (COMPLETED, CANCELLED),
            (CANCELLED, CONFIRMED),
            (NO_SHOW, COMPLETED),
            (CONFIRMED, CONFIRMED),
        ):
            self.assertFalse(can_transition(current, target), (current, target))

    def test_terminal(self):
        self.assertEqual({s for s in STATUSES if is_terminal(s)}, {COMPLETED, CANCELLED, NO_SHOW})

    def test_assert_raises_with_states(self):
        with self.assertRaises(InvalidTransition) as ctx:
            assert_transition(COMPLETED, CANCELLED)
        self.assertEqual((ctx.exception.current, ctx.exception.target), (COMPLETED, CANCELLED))
        self.assertEqual(ctx.exception.status_code, 409)

    def test_unknown_status(self):
        self.assertFalse(can_transition("archived", CONFIRMED))


if __name__ == "__main__":
    unittest.main()
