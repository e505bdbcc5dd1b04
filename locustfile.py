from locust import HttpUser, task, between, events
import os
import uuid

from auth import create_access_token

# Many riders hammering one ride: seats must never go negative
RIDE_ID = os.getenv("LOAD_TEST_RIDE_ID")


@events.test_start.add_listener
def check_ride(environment, **kwargs):
    if not RIDE_ID:
        raise RuntimeError("Set LOAD_TEST_RIDE_ID to the ride to book against")


class RiderUser(HttpUser):
    wait_time = between(1, 3)

    def on_start(self):
        self.rider_id = str(uuid.uuid4())
        token = create_access_token(self.rider_id, email=f"{self.rider_id}@loadtest.campus.edu")
        self.headers = {"Authorization": f"Bearer {token}"}
        self.booking_id = None

    @task(3)
    def book_seat(self):
        if self.booking_id:
            return
        with self.client.post(
            f"/rides/{RIDE_ID}/bookings",
            json={"seats": 1},
            headers=self.headers,
            name="/rides/[id]/bookings",
            catch_response=True,
        ) as response:
            if response.status_code == 201:
                self.booking_id = response.json()["id"]
                response.success()
            elif response.status_code == 409:
                # Sold out or already booked is an expected outcome under load
                response.success()
            else:
                response.failure(f"Failed with status {response.status_code}: {response.text}")

    @task(1)
    def cancel_booking(self):
        if not self.booking_id:
            return
        with self.client.post(
            f"/bookings/{self.booking_id}/cancel",
            headers=self.headers,
            name="/bookings/[id]/cancel",
            catch_response=True,
        ) as response:
            if response.status_code == 200:
                self.booking_id = None
                response.success()
            else:
                response.failure(f"Failed with status {response.status_code}: {response.text}")

    @task(2)
    def view_ride(self):
        self.client.get(f"/rides/{RIDE_ID}", name="/rides/[id]")
