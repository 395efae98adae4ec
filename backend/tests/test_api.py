from datetime import date, timedelta

from fastapi.testclient import TestClient

from bookingwidget.database import get_db
from bookingwidget.main import app
from bookingwidget.redis_client import get_redis
from bookingwidget.services.embed.page import UNAVAILABLE_MESSAGE
from bookingwidget.services.payments import RefundResult, get_payments

from .support import OTHER_VENUE_KEY, UNKNOWN_KEY, VENUE_KEY, DatabaseTestCase, FakePayments


class ApiTestCase(DatabaseTestCase):
    """TestClient over the app, bound to the per-test database."""

    def setUp(self):
        super().setUp()

        def override_db():
            db = self.Session()
            try:
                yield db
            finally:
                db.close()

        self.payments = FakePayments(RefundResult("failed", detail="Card declined"))
        app.dependency_overrides[get_db] = override_db
        app.dependency_overrides[get_redis] = lambda: None
        app.dependency_overrides[get_payments] = lambda: self.payments
        self.client = TestClient(app)

        # Within the default 30-day window, whatever today is
        self.day = (date.today() + timedelta(days=3)).isoformat()

    def tearDown(self):
        app.dependency_overrides.clear()
        super().tearDown()

    def slots_url(self, embed_key=VENUE_KEY, activity_id=None, suffix="slots"):
        return f"/widget/{embed_key}/activities/{activity_id or self.activity.id}/{suffix}"

    def create_booking(self, quantity=2, start_time="10:00"):
        resp = self.client.post(self.slots_url(suffix="bookings"), json={
            "date": self.day,
            "start_time": start_time,
            "ticket_selections": [{"ticket_type_id": "adult", "quantity": quantity}],
            "customer": {"name": "Alan Turing", "email": "alan@example.com"},
        })
        self.assertEqual(resp.status_code, 201, resp.text)
        return resp.json()


class TestSlotsApi(ApiTestCase):

    def test_day_slots(self):
        resp = self.client.get(self.slots_url(), params={"date": self.day})

        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(data["status"], "ok")
        self.assertEqual([s["start_time"] for s in data["slots"]], ["10:00", "11:00", "12:00", "13:00"])
        self.assertEqual(data["slots"][0]["ticket_types_available"], ["adult", "child"])

    def test_malformed_key(self):
        resp = self.client.get(self.slots_url(embed_key="emb_BAD"), params={"date": self.day})
        self.assertEqual(resp.status_code, 400)
        self.assertEqual(resp.json()["code"], "embed_key_invalid")

    def test_unknown_key(self):
        resp = self.client.get(self.slots_url(embed_key=UNKNOWN_KEY), params={"date": self.day})
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["code"], "embed_key_not_found")

    def test_activity_of_other_venue(self):
        other = self.add_venue(OTHER_VENUE_KEY, "Other")
        foreign = self.add_activity(other, "Foreign", {})
        resp = self.client.get(self.slots_url(activity_id=foreign.id), params={"date": self.day})
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["code"], "activity_not_found")

    def test_calendar(self):
        resp = self.client.get(self.slots_url(suffix="calendar"), params={"start_date": self.day})
        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(data["start_date"], self.day)
        self.assertTrue(data["days"][0]["has_slots"])
        self.assertEqual(data["slot_interval_minutes"], 60)

    def test_calendar_reversed_range(self):
        end = (date.fromisoformat(self.day) - timedelta(days=1)).isoformat()
        resp = self.client.get(self.slots_url(suffix="calendar"), params={"start_date": self.day, "end_date": end})
        self.assertEqual(resp.status_code, 400)


class TestBookingsApi(ApiTestCase):

    def test_submit(self):
        data = self.create_booking()
        self.assertEqual(data["status"], "pending")
        self.assertEqual(data["total_amount"], 60.0)
        self.assertEqual(data["ticket_selections"][0]["ticket_type_id"], "adult")

        resp = self.client.get(f"/bookings/{data['id']}")
        self.assertEqual(resp.json()["confirmation_code"], data["confirmation_code"])

    def test_submit_invalid(self):
        resp = self.client.post(self.slots_url(suffix="bookings"), json={
            "date": self.day,
            "start_time": "10:00",
            "ticket_selections": [{"ticket_type_id": "adult", "quantity": 1}],
            "customer": {"name": "", "email": ""},
        })
        self.assertEqual(resp.status_code, 422)
        body = resp.json()
        self.assertEqual(body["code"], "booking_invalid")
        self.assertEqual({e["field"] for e in body["errors"]}, {"customer.name", "customer.email"})

    def test_slot_full(self):
        self.create_booking(4)
        resp = self.client.post(self.slots_url(suffix="bookings"), json={
            "date": self.day,
            "start_time": "10:00",
            "ticket_selections": [{"ticket_type_id": "child", "quantity": 1}],
            "customer": {"name": "Late", "email": "late@example.com"},
        })
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["code"], "slot_full")

    def test_missing_booking(self):
        resp = self.client.get("/bookings/999")
        self.assertEqual(resp.status_code, 404)
        self.assertEqual(resp.json()["code"], "booking_not_found")

    def test_confirm_and_cancel_with_failed_refund(self):
        booking = self.create_booking()
        resp = self.client.post(f"/bookings/{booking['id']}/confirm-payment", json={})
        self.assertEqual(resp.json()["payment_status"], "paid")

        resp = self.client.post(f"/bookings/{booking['id']}/cancel", json={"reason": "Weather", "issue_refund": True})

        self.assertEqual(resp.status_code, 200)
        data = resp.json()
        self.assertEqual(data["booking"]["status"], "cancelled")
        self.assertEqual(data["booking"]["payment_status"], "paid")
        self.assertEqual(data["refund_status"], "failed")
        self.assertEqual(data["refund_error"]["code"], "refund_failed")

        self.payments.request_result = RefundResult("succeeded", refund_id="re_9")
        resp = self.client.post(f"/bookings/{booking['id']}/refund")
        self.assertEqual(resp.json()["booking"]["payment_status"], "refunded")

        resp = self.client.get(f"/bookings/{booking['id']}/refund")
        self.assertEqual(resp.json()["refund_status"], "succeeded")

    def test_cancel_twice(self):
        booking = self.create_booking()
        self.client.post(f"/bookings/{booking['id']}/cancel", json={})
        resp = self.client.post(f"/bookings/{booking['id']}/cancel", json={})
        self.assertEqual(resp.status_code, 409)
        self.assertEqual(resp.json()["code"], "invalid_transition")

    def test_no_show_and_complete(self):
        first = self.create_booking(1)
        second = self.create_booking(1, "11:00")
        for booking in (first, second):
            self.client.post(f"/bookings/{booking['id']}/confirm-payment", json={})

        self.assertEqual(self.client.post(f"/bookings/{first['id']}/no-show").json()["status"], "no-show")
        self.assertEqual(self.client.post(f"/bookings/{second['id']}/complete").json()["status"], "completed")

    def test_patch_and_delete_not_allowed(self):
        booking = self.create_booking()
        self.assertEqual(self.client.patch(f"/bookings/{booking['id']}", json={}).status_code, 405)
        self.assertEqual(self.client.delete(f"/bookings/{booking['id']}").status_code, 405)


class TestEmbedApi(ApiTestCase):

    def test_widget_page(self):
        resp = self.client.get("/embed", params={"widgetId": "farebook", "widgetKey": VENUE_KEY})

        self.assertEqual(resp.status_code, 200)
        self.assertIn("text/html", resp.headers["content-type"])
        self.assertIn("Escape Room Central", resp.text)
        self.assertIn("The Vault", resp.text)
        self.assertIn("resize-iframe", resp.text)

    def test_widget_page_bad_keys(self):
        self.assertEqual(self.client.get("/embed", params={"widgetKey": "emb_x"}).status_code, 400)
        self.assertEqual(self.client.get("/embed", params={"widgetKey": UNKNOWN_KEY}).status_code, 404)
        self.assertEqual(self.client.get("/embed").status_code, 400)

    def test_broken_activity_shown_unavailable(self):
        self.add_activity(self.venue, "Haunted Attic", "{broken")
        resp = self.client.get("/embed", params={"widgetKey": VENUE_KEY})

        self.assertEqual(resp.status_code, 200)
        self.assertIn("Haunted Attic", resp.text)
        self.assertIn(UNAVAILABLE_MESSAGE, resp.text)
        self.assertIn("The Vault", resp.text)

    def test_loader(self):
        resp = self.client.get("/embed/bookingtms.js")
        self.assertEqual(resp.status_code, 200)
        self.assertIn("application/javascript", resp.headers["content-type"])
        self.assertIn("bookingtms-widget", resp.text)

    def test_embed_code(self):
        resp = self.client.get("/embed/code", params={"embed_key": VENUE_KEY, "format": "url"})
        data = resp.json()
        self.assertTrue(data["ok"])
        self.assertTrue(data["code"].endswith(f"/embed?widgetId=farebook&widgetKey={VENUE_KEY}"))

        data = self.client.get("/embed/code", params={"embed_key": "nope"}).json()
        self.assertFalse(data["ok"])
        self.assertIsNone(data["code"])

    def test_bulk_codes(self):
        resp = self.client.post("/embed/codes", json={
            "format": "script",
            "venues": [{"id": 50, "name": "Broken", "embed_key": "emb_123"}],
            "venue_ids": [self.venue.id],
        })
        results = resp.json()["results"]

        self.assertEqual([r["ok"] for r in results], [False, True])
        self.assertIn(f'data-embed-key="{VENUE_KEY}"', results[1]["code"])

    def test_key_from_url(self):
        resp = self.client.get("/embed/key", params={"url": f"https://bookingtms.com/embed?widgetKey={VENUE_KEY}"})
        self.assertEqual(resp.json(), {"embed_key": VENUE_KEY, "valid": True})


class TestHealth(ApiTestCase):

    def test_health(self):
        resp = self.client.get("/health")
        self.assertEqual(resp.status_code, 200)
        self.assertEqual(resp.json()["status"], "ok")
