"""
Locust Load Test Suite

Needs a seeded event with tables (ids passed via environment):
  LOCUST_EVENT_ID=35 LOCUST_TABLE_IDS=5,6,7

Run scenarios:
  locust -f locustfile.py --tags contention   # Many customers, few tables
  locust -f locustfile.py --tags throughput   # Cached listings
  locust -f locustfile.py --tags edge         # Bad input
  locust -f locustfile.py                     # All tests
"""

import os
import random
import uuid

from locust import HttpUser, task, between, tag, events

EVENT_ID = int(os.environ.get("LOCUST_EVENT_ID", "1"))
TABLE_IDS = [int(t) for t in os.environ.get("LOCUST_TABLE_IDS", "1,2,3").split(",") if t]

# (status_code -> count) for the contention run
OUTCOMES = {}


def random_email():
    return f"load_{uuid.uuid4().hex[:10]}@test.com"


def booking_payload(table_id: int, **extra) -> dict:
    return {
        "event_id": EVENT_ID,
        "table_id": table_id,
        "customer_email": random_email(),
        "party_size": 2,
        "guest_names": ["Load Guest", "Load Guest Two"],
        **extra,
    }


@events.test_start.add_listener
def on_test_start(environment, **kwargs):
    print("\n" + "=" * 60)
    print(f"Contention target: event {EVENT_ID}, tables {TABLE_IDS}")
    print("=" * 60)


@events.test_stop.add_listener
def on_test_stop(environment, **kwargs):
    print("\nBooking outcomes:", OUTCOMES)
    print(
        "Verify: SELECT table_id, COUNT(*) FROM bookings "
        f"WHERE event_id = {EVENT_ID} AND status IN ('confirmed','reserved','comp') "
        "GROUP BY table_id;  -- every count must be 1"
    )


class ContentionUser(HttpUser):
    """
    TEST 1: Contention - hundreds of customers -> a handful of tables

    Run: locust -f locustfile.py --tags contention -u 200 -r 100 --run-time 30s

    Each user holds a table, validates it, then books it. Exactly one
    booking per table may succeed; everyone else must get 409 (or a hold
    refusal), never a 5xx.
    """
    wait_time = between(0, 0.1)

    def on_start(self):
        self.session_id = uuid.uuid4().hex

    @tag("contention")
    @task
    def hold_then_book(self):
        table_id = random.choice(TABLE_IDS)
        hold = self.client.post(
            "/api/v1/holds",
            json={"event_id": EVENT_ID, "table_id": table_id, "session_id": self.session_id},
            name="/api/v1/holds",
        )
        token = None
        if hold.status_code == 200 and hold.json().get("issued"):
            token = hold.json()["token"]

        with self.client.post(
            "/api/v1/bookings",
            json=booking_payload(table_id, hold_token=token, session_id=self.session_id),
            name="/api/v1/bookings [contended]",
            catch_response=True,
        ) as resp:
            OUTCOMES[resp.status_code] = OUTCOMES.get(resp.status_code, 0) + 1
            if resp.status_code in (201, 409, 410):
                resp.success()  # 409: table taken, 410: sales closed
            else:
                resp.failure(f"Unexpected: {resp.status_code}")

    @tag("contention")
    @task(3)
    def validate_table(self):
        with self.client.post(
            "/api/v1/validate-table",
            json={"event_id": EVENT_ID, "table_id": random.choice(TABLE_IDS)},
            catch_response=True,
        ) as resp:
            if resp.status_code in (200, 409):
                resp.success()
            else:
                resp.failure(f"Unexpected: {resp.status_code}")


class ThroughputUser(HttpUser):
    """
    TEST 2: Throughput - Cache effectiveness

    Run twice:
      1. With Redis: locust -f locustfile.py --tags throughput -u 100 -r 20 --run-time 60s
      2. Without Redis: REDIS_ENABLED=false on the API, run again
    """
    wait_time = between(0.1, 0.5)

    @tag("throughput", "read")
    @task(10)
    def list_events_cached(self):
        page = random.randint(1, 5)
        self.client.get(f"/api/v1/events?page={page}&page_size=20",
            name="/api/v1/events [cached]")

    @tag("throughput", "read")
    @task(3)
    def table_map(self):
        self.client.get(f"/api/v1/events/{EVENT_ID}/tables",
            name="/api/v1/events/{id}/tables")

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

    def _expect(self, resp, allowed):
        if resp.status_code in allowed:
            resp.success()
        else:
            resp.failure(f"Expected {allowed}, got {resp.status_code}")

    @tag("edge")
    @task
    def unknown_event(self):
        with self.client.post("/api/v1/bookings",
            json={**booking_payload(TABLE_IDS[0]), "event_id": 999999},
            catch_response=True,
        ) as resp:
            self._expect(resp, (404,))

    @tag("edge")
    @task
    def zero_party(self):
        with self.client.post("/api/v1/bookings",
            json=booking_payload(TABLE_IDS[0], party_size=0),
            catch_response=True,
        ) as resp:
            self._expect(resp, (400,))

    @tag("edge")
    @task
    def malformed_json(self):
        with self.client.post("/api/v1/bookings",
            data="not json at all",
            headers={"Content-Type": "application/json"},
            catch_response=True,
        ) as resp:
            self._expect(resp, (400,))

    @tag("edge")
    @task
    def unsigned_webhook(self):
        with self.client.post("/api/v1/payments/webhook",
            json={"id": "evt_fake", "type": "charge.refunded", "data": {"object": {}}},
            catch_response=True,
        ) as resp:
            self._expect(resp, (400,))

    @tag("edge")
    @task
    def admin_without_auth(self):
        with self.client.post("/api/v1/admin/validate-reassignment",
            json={"event_id": EVENT_ID, "new_table_id": TABLE_IDS[0]},
            catch_response=True,
        ) as resp:
            self._expect(resp, (401,))
