"""
Integration tests for the booking, availability and payout routes.
"""
from datetime import timedelta
from uuid import uuid4

import pytest

from salonbook.lib.jwt import create_access_token
from salonbook.models import Booking, BookingStatus, UserRole

from tests.helpers import auth_headers, reload


@pytest.fixture
def booking_payload(store, service, booking_date):
    return {
        "store_id": str(store.id),
        "store_service_id": str(service.id),
        "booking_date": booking_date.isoformat(),
        "start_time": "10:00",
        "payment_percentage": 50,
    }


@pytest.mark.integration
class TestCreateBooking:

    def test_create(self, client, customer, booking_payload):
        response = client.post("/bookings", json=booking_payload, headers=auth_headers(customer))

        assert response.status_code == 201
        data = response.json()
        assert data["status"] == "PENDING"
        assert data["payment_status"] == "PARTIAL"
        assert data["start_time"] == "10:00"
        assert data["end_time"] == "11:00"
        assert data["total_price"] == 500.0
        assert data["paid_amount"] == 250.0
        assert data["customer_id"] == str(customer.id)

    def test_conflict(self, client, customer, other_customer, booking_payload):
        client.post("/bookings", json=booking_payload, headers=auth_headers(customer))

        booking_payload["start_time"] = "10:30"
        response = client.post("/bookings", json=booking_payload, headers=auth_headers(other_customer))

        assert response.status_code == 409
        body = response.json()
        assert body["error"] == "Time slot not available"
        assert body["correlation_id"]

    def test_missing_fields(self, client, customer, booking_payload):
        del booking_payload["start_time"]
        response = client.post("/bookings", json=booking_payload, headers=auth_headers(customer))

        assert response.status_code == 422
        assert response.json()["error"] == "All booking details are required"

    def test_bad_percentage(self, client, customer, booking_payload):
        booking_payload["payment_percentage"] = 30
        response = client.post("/bookings", json=booking_payload, headers=auth_headers(customer))

        assert response.status_code == 422
        assert response.json()["error"] == "Payment percentage must be 50 or 100"

    def test_unknown_service(self, client, customer, booking_payload):
        booking_payload["store_service_id"] = str(uuid4())
        response = client.post("/bookings", json=booking_payload, headers=auth_headers(customer))

        assert response.status_code == 404

    def test_requires_token(self, client, booking_payload):
        response = client.post("/bookings", json=booking_payload)

        assert response.status_code == 401
        assert response.json()["error"] == "Access token required"

    def test_invalid_token(self, client, booking_payload):
        response = client.post(
            "/bookings", json=booking_payload, headers={"Authorization": "Bearer not-a-jwt"}
        )
        assert response.status_code == 401

    def test_expired_token(self, client, customer, booking_payload):
        token = create_access_token(str(customer.id), "CUSTOMER", expires_delta=timedelta(minutes=-1))
        response = client.post(
            "/bookings", json=booking_payload, headers={"Authorization": f"Bearer {token}"}
        )
        assert response.status_code == 401
        assert response.json()["error"] == "Token expired"

    def test_owner_cannot_book(self, client, owner, booking_payload):
        response = client.post("/bookings", json=booking_payload, headers=auth_headers(owner))

        assert response.status_code == 403


@pytest.mark.integration
class TestReadBookings:

    def test_my_bookings(self, client, customer, other_customer, make_booking, booking_date):
        make_booking("10:00", "11:00")
        make_booking("12:00", "13:00", status=BookingStatus.CANCELLED)
        make_booking("14:00", "15:00", customer_id=other_customer.id)

        response = client.get("/bookings/my-bookings", headers=auth_headers(customer))
        assert response.status_code == 200
        assert len(response.json()) == 2

        response = client.get(
            "/bookings/my-bookings", params={"status": "CANCELLED"}, headers=auth_headers(customer)
        )
        assert [b["start_time"] for b in response.json()] == ["12:00"]

        response = client.get(
            "/bookings/my-bookings",
            params={"date": (booking_date + timedelta(days=1)).isoformat()},
            headers=auth_headers(customer),
        )
        assert response.json() == []

    def test_store_bookings_for_owner(self, client, owner, store, make_booking):
        make_booking("15:00", "16:00")
        make_booking("09:00", "10:00")

        response = client.get(f"/bookings/store/{store.id}", headers=auth_headers(owner))

        assert response.status_code == 200
        assert [b["start_time"] for b in response.json()] == ["09:00", "15:00"]

    def test_store_bookings_hidden_from_other_owner(self, client, store, make_user):
        stranger = make_user(UserRole.OWNER, name="Other Owner")
        response = client.get(f"/bookings/store/{store.id}", headers=auth_headers(stranger))

        assert response.status_code == 404

    def test_store_bookings_forbidden_for_customer(self, client, customer, store):
        response = client.get(f"/bookings/store/{store.id}", headers=auth_headers(customer))

        assert response.status_code == 403

    def test_get_booking(self, client, customer, other_customer, make_booking):
        booking = make_booking()

        assert client.get(f"/bookings/{booking.id}", headers=auth_headers(customer)).status_code == 200
        response = client.get(f"/bookings/{booking.id}", headers=auth_headers(other_customer))
        assert response.status_code == 404
        assert response.json()["details"]["resource"] == "Booking"


@pytest.mark.integration
class TestStatusUpdates:

    def test_owner_confirms(self, client, owner, make_booking):
        booking = make_booking()

        response = client.patch(
            f"/bookings/{booking.id}/status", json={"status": "CONFIRMED"}, headers=auth_headers(owner)
        )

        assert response.status_code == 200
        assert response.json()["status"] == "CONFIRMED"
        assert reload(Booking, booking.id).status == BookingStatus.CONFIRMED

    def test_terminal_status_is_final(self, client, owner, make_booking):
        booking = make_booking(status=BookingStatus.COMPLETED)

        response = client.patch(
            f"/bookings/{booking.id}/status", json={"status": "CANCELLED"}, headers=auth_headers(owner)
        )

        assert response.status_code == 422
        assert response.json()["error"] == "Cannot change booking status from COMPLETED to CANCELLED"

    def test_customer_cannot_change_status(self, client, customer, make_booking):
        booking = make_booking()

        response = client.patch(
            f"/bookings/{booking.id}/status", json={"status": "CANCELLED"}, headers=auth_headers(customer)
        )

        assert response.status_code == 403

    def test_unknown_status(self, client, owner, make_booking):
        booking = make_booking()

        response = client.patch(
            f"/bookings/{booking.id}/status", json={"status": "ARCHIVED"}, headers=auth_headers(owner)
        )

        assert response.status_code == 422
        assert response.json()["error"] == "Invalid status"


@pytest.mark.integration
class TestAvailabilityRoutes:

    def test_public_slot_lookup(self, client, store, service, monday_hours, booking_date, make_booking):
        make_booking("09:00", "10:00")

        response = client.get(f"/bookings/availability/{store.id}/{service.id}/{booking_date.isoformat()}")

        assert response.status_code == 200
        data = response.json()
        assert data["date"] == booking_date.isoformat()
        starts = [slot["start_time"] for slot in data["slots"]]
        assert starts[0] == "10:00"
        assert "09:30" not in starts
        assert data["slots"][-1] == {"start_time": "17:00", "end_time": "18:00"}

    def test_slot_taken_by_reservation_disappears(
        self, client, customer, store, service, monday_hours, booking_date, booking_payload
    ):
        url = f"/bookings/availability/{store.id}/{service.id}/{booking_date.isoformat()}"
        before = [s["start_time"] for s in client.get(url).json()["slots"]]
        assert "10:00" in before

        client.post("/bookings", json=booking_payload, headers=auth_headers(customer))

        after = [s["start_time"] for s in client.get(url).json()["slots"]]
        assert "10:00" not in after
        assert "11:00" in after

    def test_replace_store_hours(self, client, owner, store, monday_hours):
        response = client.put(
            f"/stores/{store.id}/availability",
            json={"availability": [
                {"day_of_week": 1, "start_time": "10:00", "end_time": "14:00"},
                {"day_of_week": 1, "start_time": "15:00", "end_time": "19:00"},
            ]},
            headers=auth_headers(owner),
        )

        assert response.status_code == 200
        assert [w["start_time"] for w in response.json()] == ["10:00", "15:00"]

        listed = client.get(f"/stores/{store.id}/availability").json()
        assert len(listed) == 2

    def test_overlapping_store_hours_rejected(self, client, owner, store):
        response = client.put(
            f"/stores/{store.id}/availability",
            json={"availability": [
                {"day_of_week": 2, "start_time": "09:00", "end_time": "13:00"},
                {"day_of_week": 2, "start_time": "12:00", "end_time": "18:00"},
            ]},
            headers=auth_headers(owner),
        )

        assert response.status_code == 422
        assert response.json()["error"] == "Availability windows overlap"

    def test_employee_hours(self, client, owner, store, service, employee, booking_date):
        response = client.put(
            f"/employees/{employee.id}/availability",
            json={
                "store_id": str(store.id),
                "availability": [{"day_of_week": 1, "start_time": "13:00", "end_time": "15:00"}],
            },
            headers=auth_headers(owner),
        )
        assert response.status_code == 200

        listed = client.get(f"/employees/{employee.id}/availability/{store.id}", headers=auth_headers(owner))
        assert len(listed.json()) == 1

        slots = client.get(
            f"/bookings/availability/{store.id}/{service.id}/{booking_date.isoformat()}",
            params={"employee_id": str(employee.id)},
        ).json()["slots"]
        assert [s["start_time"] for s in slots] == ["13:00", "13:30", "14:00"]


@pytest.mark.integration
def test_payouts_listing_requires_owner(client, customer, owner):
    assert client.get("/payouts", headers=auth_headers(customer)).status_code == 403

    response = client.get("/payouts", headers=auth_headers(owner))
    assert response.status_code == 200
    assert response.json() == []
