"""
Locust Load Test Suite

The API trusts the gateway's X-User-Id header, so load users are plain ids.
Seed riders with ids in [RIDER_ID_START, RIDER_ID_START + RIDER_COUNT) and
point the run at existing offers:

  POOLING_OFFER_ID  pooling offer with few seats (e.g. 4)
  RENTAL_OFFER_ID   rental offer with a window of at least 4 hours

Run scenarios:
  locust -f locustfile.py --tags seats       # Last-seat race
  locust -f locustfile.py --tags slots       # Overlapping rental slots
  locust -f locustfile.py --tags browse      # Read throughput
  locust -f locustfile.py --tags edge        # Bad input
  locust -f locustfile.py                    # All tests
"""

import itertools
import os
import random

from locust import HttpUser, between, events, tag, task

POOLING_OFFER_ID = int(os.environ.get("POOLING_OFFER_ID", "1"))
RENTAL_OFFER_ID = int(os.environ.get("RENTAL_OFFER_ID", "1"))
RIDER_ID_START = int(os.environ.get("RIDER_ID_START", "1000"))
RIDER_COUNT = int(os.environ.get("RIDER_COUNT", "500"))

_rider_ids = itertools.cycle(range(RIDER_ID_START, RIDER_ID_START + RIDER_COUNT))

ROUTE = {"from_lat": 12.95, "from_lng": 77.55, "to_lat": 13.05, "to_lng": 77.65}
SLOTS = [("09:00", "11:00"), ("10:00", "12:00"), ("11:00", "13:00")]


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print(f"\nPooling offer {POOLING_OFFER_ID}, rental offer {RENTAL_OFFER_ID}, "
          f"riders {RIDER_ID_START}..{RIDER_ID_START + RIDER_COUNT - 1}\n")


class RiderUser(HttpUser):
    abstract = True

    def on_start(self):
        self.headers = {"X-User-Id": str(next(_rider_ids))}


class SeatRaceUser(RiderUser):
    """
    TEST 1: Many riders -> few seats

    Run: locust -f locustfile.py --tags seats -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT total_seats - available_seats FROM pooling_offers WHERE id = X;
      SELECT COUNT(*) FROM offer_participants WHERE offer_id = X;
    Both must match and never exceed total_seats.
    """
    wait_time = between(0, 0.1)

    @tag("seats")
    @task
    def book_last_seats(self):
        with self.client.post(
            "/api/v1/bookings/pooling",
            json={"offer_id": POOLING_OFFER_ID, "payment_method": "upi", "route": ROUTE},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            # 409: sold out or already booked
            if resp.status_code in (201, 409):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class SlotRaceUser(RiderUser):
    """
    TEST 2: Overlapping rental slots

    Run: locust -f locustfile.py --tags slots -u 50 -r 25 --run-time 30s

    After test, no two non-cancelled bookings on the offer may overlap.
    """
    wait_time = between(0, 0.2)

    @tag("slots")
    @task
    def book_overlapping_slot(self):
        start, end = random.choice(SLOTS)
        with self.client.post(
            "/api/v1/bookings/rental",
            json={
                "offer_id": RENTAL_OFFER_ID,
                "payment_method": "offline_cash",
                "start_time": start,
                "end_time": end,
            },
            headers=self.headers,
            catch_response=True,
            name="/api/v1/bookings/rental [slot]",
        ) as resp:
            if resp.status_code in (201, 409):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class BrowseUser(HttpUser):
    """
    TEST 3: Read throughput

    Run: locust -f locustfile.py --tags browse -u 100 -r 20 --run-time 60s
    """
    wait_time = between(0.1, 0.5)

    @tag("browse")
    @task(10)
    def list_pooling_offers(self):
        self.client.get(f"/api/v1/offers/pooling?page={random.randint(1, 5)}", name="/api/v1/offers/pooling")

    @tag("browse")
    @task(5)
    def quote(self):
        self.client.post(
            f"/api/v1/offers/pooling/{POOLING_OFFER_ID}/quote",
            json=ROUTE,
            name="/api/v1/offers/pooling/{id}/quote",
        )

    @tag("browse")
    @task(3)
    def rental_slots(self):
        self.client.get(f"/api/v1/offers/rental/{RENTAL_OFFER_ID}/slots", name="/api/v1/offers/rental/{id}/slots")

    @tag("browse")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(RiderUser):
    """
    TEST 4: Bad input

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def _expect(self, resp, allowed):
        if resp.status_code in allowed:
            resp.success()
        else:
            resp.failure(f"Expected {allowed}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_offer(self):
        with self.client.post(
            "/api/v1/bookings/pooling",
            json={"offer_id": 999999, "payment_method": "upi", "route": ROUTE},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, (404,))

    @tag("edge")
    @task
    def malformed_slot(self):
        with self.client.post(
            "/api/v1/bookings/rental",
            json={"offer_id": RENTAL_OFFER_ID, "payment_method": "upi", "start_time": "9am", "end_time": "11:00"},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, (422,))

    @tag("edge")
    @task
    def missing_identity(self):
        with self.client.get("/api/v1/bookings/", catch_response=True) as resp:
            self._expect(resp, (401,))

    @tag("edge")
    @task
    def wrong_passenger_code(self):
        with self.client.post(
            "/api/v1/trips/bookings/999999/verify-code",
            json={"code": "12a4"},
            headers=self.headers,
            catch_response=True,
        ) as resp:
            self._expect(resp, (404, 422))
