"""
Locust Load Test Suite

Run scenarios:
  locust -f locustfile.py --tags concurrency  # Test overselling a free event
  locust -f locustfile.py --tags throughput   # Test cache
  locust -f locustfile.py --tags edge         # Test bad input
  locust -f locustfile.py                     # All tests

The concurrency scenario needs an admin to approve its event. Start the API
with ADMIN_EMAILS containing LOAD_ADMIN_EMAIL and register that account once.
"""

import os
import random
import string
from datetime import datetime, timezone, timedelta

from gevent.lock import Semaphore
from locust import HttpUser, task, between, tag, events

ADMIN_EMAIL = os.environ.get("LOAD_ADMIN_EMAIL", "admin@example.com")
ADMIN_PASSWORD = os.environ.get("LOAD_ADMIN_PASSWORD", "adminpassword")
CONCURRENCY_SEATS = 10

# Shared state
EVENT_IDS = []
CONCURRENCY_EVENT_ID = None
_setup_lock = Semaphore()


def random_email():
    return f"load_{random.randint(10000, 99999)}_{random.randint(0, 999)}@test.com"


def random_username():
    return "u_" + "".join(random.choices(string.ascii_lowercase, k=8))


def sign_up(client) -> dict:
    """Register a throwaway account and return its auth header."""
    email = random_email()
    password = "loadtest123"
    client.post("/api/v1/auth/register", json={
        "email": email,
        "username": random_username(),
        "password": password,
    })
    resp = client.post("/api/v1/auth/login", json={"email": email, "password": password})
    if resp.status_code != 200:
        return {}
    return {"Authorization": f"Bearer {resp.json()['access_token']}"}


def event_payload(venue_id: int, seats: int) -> dict:
    day = datetime.now(timezone.utc).date() + timedelta(days=random.randint(30, 300))
    hour = random.randint(8, 20)
    return {
        "venue_id": venue_id,
        "name": f"Load Event {random.randint(1, 100000)}",
        "description": "Load test event",
        "event_date": day.isoformat(),
        "start_time": f"{hour:02d}:00",
        "end_time": f"{hour + 2:02d}:00",
        "max_attendees": seats,
    }


def create_approved_event(client, seats: int):
    """Create a venue and a free event on it, then push the event through both approvals."""
    organizer = sign_up(client)
    if not organizer:
        return None

    venue = client.post("/api/v1/venues/",
        json={"name": "Load Hall", "hourly_rate": 0, "capacity": 1000},
        headers=organizer)
    if venue.status_code != 201:
        return None

    event = client.post("/api/v1/events/", json=event_payload(venue.json()["id"], seats), headers=organizer)
    if event.status_code != 201:
        return None
    event_id = event.json()["id"]

    # The organizer owns the venue, so it can give the venue approval itself
    client.post(f"/api/v1/events/{event_id}/venue-approve", json={"decision": "approved"}, headers=organizer)

    login = client.post("/api/v1/auth/login", json={"email": ADMIN_EMAIL, "password": ADMIN_PASSWORD})
    if login.status_code != 200:
        print(f"\n✗ Admin login failed for {ADMIN_EMAIL}; event {event_id} stays pending\n")
        return None
    admin = {"Authorization": f"Bearer {login.json()['access_token']}"}
    approved = client.post(f"/api/v1/events/{event_id}/admin-approve",
        json={"decision": "approved"}, headers=admin)
    if approved.status_code != 200:
        return None
    return event_id


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "="*60)
    print(f"SETUP: first concurrency user creates a {CONCURRENCY_SEATS}-seat event")
    print("="*60)


class ConcurrencyUser(HttpUser):
    """
    TEST 1: Concurrency - 100 users → 10 seats

    Run: locust -f locustfile.py --tags concurrency -u 100 -r 50 --run-time 30s

    After test, verify:
      SELECT current_attendees, max_attendees FROM events WHERE id = X;
      SELECT COALESCE(SUM(quantity), 0) FROM tickets WHERE event_id = X AND status = 'active';
    Both counts should be equal and ≤ 10
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        global CONCURRENCY_EVENT_ID
        self.headers = sign_up(self.client)
        with _setup_lock:
            if CONCURRENCY_EVENT_ID is None:
                CONCURRENCY_EVENT_ID = create_approved_event(self.client, CONCURRENCY_SEATS)
                if CONCURRENCY_EVENT_ID:
                    print(f"\n✓ Created event {CONCURRENCY_EVENT_ID} with {CONCURRENCY_SEATS} seats\n")

    @tag("concurrency")
    @task
    def buy_limited_tickets(self):
        """All users fight for the same 10 seats."""
        if not CONCURRENCY_EVENT_ID or not self.headers:
            return

        with self.client.post("/api/v1/tickets/",
            json={"event_id": CONCURRENCY_EVENT_ID, "quantity": 1},
            headers=self.headers,
            name="/api/v1/tickets/ [contended]",
            catch_response=True
        ) as resp:
            if resp.status_code == 201:
                resp.success()
            elif resp.status_code == 409:
                resp.success()  # Expected: sold out
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: Stop Redis, run again

    Compare:
      - Avg response time
      - Requests/sec
      - P95/P99 latency
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_events_cached(self):
        """Hammer the cached endpoint."""
        page = random.randint(1, 5)
        resp = self.client.get(f"/api/v1/events/?page={page}&page_size=20",
            name="/api/v1/events/ [cached]")
        if resp.status_code == 200:
            for event in resp.json().get("events", []):
                if event["id"] not in EVENT_IDS:
                    EVENT_IDS.append(event["id"])

    @tag("throughput")
    @task(1)
    def health_check(self):
        self.client.get("/health")


class EdgeCaseUser(HttpUser):
    """
    TEST 3: Edge cases - Bad input handling

    Run: locust -f locustfile.py --tags edge -u 20 -r 5 --run-time 30s

    System should NOT crash, return proper error codes.
    """
    wait_time = between(0.5, 1.5)

    def on_start(self):
        self.headers = sign_up(self.client)

    def _expect(self, resp, allowed):
        if resp.status_code in allowed:
            resp.success()
        else:
            resp.failure(f"Expected {allowed}, got {resp.status_code}")

    @tag("edge")
    @task
    def invalid_event_id(self):
        """Buy for a non-existent event."""
        with self.client.post("/api/v1/tickets/",
            json={"event_id": 999999, "quantity": 1},
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def zero_quantity(self):
        with self.client.post("/api/v1/tickets/",
            json={"event_id": 1, "quantity": 0},
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, [422])

    @tag("edge")
    @task
    def huge_quantity(self):
        """Try to buy more than one purchase allows."""
        with self.client.post("/api/v1/tickets/",
            json={"event_id": 1, "quantity": 999999},
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, [422])

    @tag("edge")
    @task
    def inverted_booking_window(self):
        day = (datetime.now(timezone.utc).date() + timedelta(days=7)).isoformat()
        with self.client.post("/api/v1/bookings/",
            json={"venue_id": 1, "booking_date": day, "start_time": "14:00", "end_time": "12:00"},
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, [400, 404, 422])

    @tag("edge")
    @task
    def forged_payment_callback(self):
        with self.client.post("/api/v1/payments/verify",
            json={"gateway_order_id": "order_missing", "gateway_payment_id": "pay_x", "gateway_signature": "bad"},
            catch_response=True
        ) as resp:
            self._expect(resp, [404])

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post("/api/v1/tickets/",
            data="not json at all",
            headers=self.headers,
            catch_response=True
        ) as resp:
            self._expect(resp, [400, 422])

    @tag("edge")
    @task
    def missing_auth(self):
        with self.client.post("/api/v1/tickets/",
            json={"event_id": 1, "quantity": 1},
            catch_response=True
        ) as resp:
            self._expect(resp, [401])


class RealisticUser(HttpUser):
    """
    TEST 4: Realistic mixed workload

    Run: locust -f locustfile.py -u 200 -r 20 --run-time 120s

    Simulates real traffic:
      - Mostly browsing
      - Some free ticket purchases
      - Occasional checks of own tickets
    """
    wait_time = between(1, 3)

    def on_start(self):
        self.headers = sign_up(self.client)

    @task(50)
    def browse_events(self):
        resp = self.client.get("/api/v1/events/?page=1&page_size=20")
        if resp.status_code == 200:
            for event in resp.json().get("events", []):
                if event["id"] not in EVENT_IDS:
                    EVENT_IDS.append(event["id"])

    @task(20)
    def view_event(self):
        if EVENT_IDS and self.headers:
            self.client.get(f"/api/v1/events/{random.choice(EVENT_IDS)}",
                headers=self.headers, name="/api/v1/events/{id}")

    @task(10)
    def buy_tickets(self):
        if EVENT_IDS and self.headers:
            with self.client.post("/api/v1/tickets/",
                json={"event_id": random.choice(EVENT_IDS), "quantity": random.randint(1, 3)},
                headers=self.headers,
                catch_response=True
            ) as resp:
                if resp.status_code in (201, 403, 409):
                    resp.success()

    @task(5)
    def my_tickets(self):
        if self.headers:
            self.client.get("/api/v1/tickets/", headers=self.headers)
