"""
Integration tests for the REST API endpoints.

Runs the real app against the per-test SQLite database; notifications
and the clock are swapped for the in-memory sink and fake clock from
``conftest``.  Caller identity travels in the ``X-User-Id`` header.
"""

from __future__ import annotations

from datetime import timedelta

import pytest


def _as(user_id: int) -> dict:
    return {"X-User-Id": str(user_id)}


async def _publish(client, clock, driver_id, *, seats_total=1, price=20.0, days=3):
    resp = await client.post(
        "/api/v1/rides",
        json={
            "origin": "North Campus",
            "destination": "Airport",
            "departure_at": (clock() + timedelta(days=days)).isoformat(),
            "price_per_seat": price,
            "seats_total": seats_total,
        },
        headers=_as(driver_id),
    )
    assert resp.status_code == 201, resp.text
    return resp.json()


async def _book(client, ride_id, passenger_id, payment_confirmed=True):
    return await client.post(
        f"/api/v1/rides/{ride_id}/bookings",
        json={"payment_confirmed": payment_confirmed},
        headers=_as(passenger_id),
    )


async def _set_status(client, booking_id, actor_id, status):
    return await client.patch(
        f"/api/v1/bookings/{booking_id}",
        json={"status": status},
        headers=_as(actor_id),
    )


class TestEndToEnd:
    @pytest.mark.asyncio
    async def test_single_seat_lifecycle(self, client, clock, users, sink):
        ride = await _publish(client, clock, users.driver, seats_total=1, price=20)
        assert ride["seats_available"] == 1
        assert ride["status"] == "upcoming"

        # Passenger A books: pending does not reserve
        resp = await _book(client, ride["id"], users.alice)
        assert resp.status_code == 201
        booking_a = resp.json()
        assert booking_a["status"] == "pending"
        assert booking_a["payment_status"] == "held"
        ride_view = (await client.get(f"/api/v1/rides/{ride['id']}")).json()
        assert ride_view["seats_available"] == 1

        # Driver accepts A
        resp = await _set_status(client, booking_a["id"], users.driver, "accepted")
        assert resp.status_code == 200
        assert resp.json()["status"] == "accepted"
        ride_view = (await client.get(f"/api/v1/rides/{ride['id']}")).json()
        assert ride_view["seats_available"] == 0
        assert ride_view["accepted_passenger_ids"] == [users.alice]

        # Passenger B is turned away
        resp = await _book(client, ride["id"], users.bob)
        assert resp.status_code == 400
        assert resp.json()["code"] == "no_seats_available"

        # Departure passes, driver marks complete
        clock.advance(days=3, hours=2)
        resp = await client.patch(
            f"/api/v1/rides/{ride['id']}",
            json={"status": "completed"},
            headers=_as(users.driver),
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "completed"

        # A confirms with a 5-star rating
        resp = await client.post(
            f"/api/v1/bookings/{booking_a['id']}/confirm",
            json={"rating": 5},
            headers=_as(users.alice),
        )
        assert resp.status_code == 200, resp.text
        body = resp.json()
        assert body["booking"]["status"] == "completed"
        assert body["booking"]["payment_status"] == "released"
        assert body["review"]["rating"] == 5
        assert body["review"]["reviewer_id"] == users.alice
        assert body["review"]["reviewee_id"] == users.driver

        ride_view = (await client.get(f"/api/v1/rides/{ride['id']}")).json()
        assert ride_view["status"] == "completed"
        assert ride_view["accepted_passenger_ids"] == []

        audit = (await client.get(f"/api/v1/admin/rides/{ride['id']}/ledger")).json()
        assert audit["balanced"] is True
        assert audit["accepted_bookings"] == 0

        assert "Alice joined the ride" in [m["content"] for m in sink.messages]


class TestCreateRide:
    @pytest.mark.asyncio
    async def test_departure_must_be_in_future(self, client, clock, users):
        resp = await client.post(
            "/api/v1/rides",
            json={
                "origin": "A",
                "destination": "B",
                "departure_at": (clock() - timedelta(hours=1)).isoformat(),
                "price_per_seat": 5,
                "seats_total": 2,
            },
            headers=_as(users.driver),
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"

    @pytest.mark.asyncio
    async def test_seat_bounds(self, client, clock, users):
        resp = await client.post(
            "/api/v1/rides",
            json={
                "origin": "A",
                "destination": "B",
                "departure_at": (clock() + timedelta(days=1)).isoformat(),
                "price_per_seat": 5,
                "seats_total": 9,
            },
            headers=_as(users.driver),
        )
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_malformed_body(self, client, users):
        resp = await client.post(
            "/api/v1/rides", json={"origin": "A"}, headers=_as(users.driver)
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"


class TestErrorMapping:
    @pytest.mark.asyncio
    async def test_missing_identity_is_401(self, client, clock, users):
        ride = await _publish(client, clock, users.driver)
        resp = await client.post(
            f"/api/v1/rides/{ride['id']}/bookings", json={"payment_confirmed": True}
        )
        assert resp.status_code == 401
        assert resp.json()["code"] == "unauthenticated"

    @pytest.mark.asyncio
    async def test_unverified_passenger_is_403(self, client, clock, users):
        ride = await _publish(client, clock, users.driver)
        resp = await _book(client, ride["id"], users.unverified)
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_missing_payment_is_400(self, client, clock, users):
        ride = await _publish(client, clock, users.driver)
        resp = await _book(client, ride["id"], users.alice, payment_confirmed=False)
        assert resp.status_code == 400
        assert resp.json()["code"] == "validation_error"

    @pytest.mark.asyncio
    async def test_duplicate_booking_is_400(self, client, clock, users):
        ride = await _publish(client, clock, users.driver, seats_total=3)
        await _book(client, ride["id"], users.alice)
        resp = await _book(client, ride["id"], users.alice)
        assert resp.status_code == 400
        assert resp.json()["code"] == "duplicate_booking"

    @pytest.mark.asyncio
    async def test_unknown_booking_is_404(self, client, users):
        resp = await _set_status(client, 424242, users.driver, "accepted")
        assert resp.status_code == 404
        assert resp.json()["code"] == "not_found"

    @pytest.mark.asyncio
    async def test_unknown_ride_is_404(self, client):
        resp = await client.get("/api/v1/rides/424242")
        assert resp.status_code == 404

    @pytest.mark.asyncio
    async def test_wrong_actor_is_403(self, client, clock, users):
        ride = await _publish(client, clock, users.driver)
        booking = (await _book(client, ride["id"], users.alice)).json()
        resp = await _set_status(client, booking["id"], users.alice, "accepted")
        assert resp.status_code == 403
        assert resp.json()["detail"] == "Only the driver can update booking status"

    @pytest.mark.asyncio
    async def test_invalid_status_value_is_400(self, client, clock, users):
        ride = await _publish(client, clock, users.driver)
        booking = (await _book(client, ride["id"], users.alice)).json()
        resp = await _set_status(client, booking["id"], users.driver, "completed")
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid_status_value"

    @pytest.mark.asyncio
    async def test_repeat_accept_is_400(self, client, clock, users):
        ride = await _publish(client, clock, users.driver, seats_total=2)
        booking = (await _book(client, ride["id"], users.alice)).json()
        await _set_status(client, booking["id"], users.driver, "accepted")
        resp = await _set_status(client, booking["id"], users.driver, "accepted")
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid_transition"

    @pytest.mark.asyncio
    async def test_early_confirmation_is_400(self, client, clock, users):
        ride = await _publish(client, clock, users.driver)
        booking = (await _book(client, ride["id"], users.alice)).json()
        await _set_status(client, booking["id"], users.driver, "accepted")
        resp = await client.post(
            f"/api/v1/bookings/{booking['id']}/confirm",
            json={},
            headers=_as(users.alice),
        )
        assert resp.status_code == 400
        assert resp.json()["code"] == "invalid_transition"


class TestBookingReads:
    @pytest.mark.asyncio
    async def test_booking_detail_for_participants_only(self, client, clock, users):
        ride = await _publish(client, clock, users.driver)
        booking = (await _book(client, ride["id"], users.alice)).json()

        resp = await client.get(f"/api/v1/bookings/{booking['id']}", headers=_as(users.alice))
        assert resp.status_code == 200
        assert resp.json()["ride"]["id"] == ride["id"]
        assert resp.json()["review_time_remaining_seconds"] == 0

        resp = await client.get(f"/api/v1/bookings/{booking['id']}", headers=_as(users.bob))
        assert resp.status_code == 403

    @pytest.mark.asyncio
    async def test_pending_confirmation_list(self, client, clock, users):
        ride = await _publish(client, clock, users.driver, days=1)
        booking = (await _book(client, ride["id"], users.alice)).json()
        await _set_status(client, booking["id"], users.driver, "accepted")

        resp = await client.get("/api/v1/bookings/pending-confirmation", headers=_as(users.alice))
        assert resp.json() == []

        clock.advance(days=1, hours=1)
        resp = await client.get("/api/v1/bookings/pending-confirmation", headers=_as(users.alice))
        assert resp.status_code == 200
        assert [b["id"] for b in resp.json()] == [booking["id"]]


class TestRatePassenger:
    @pytest.mark.asyncio
    async def test_driver_rates_passenger_once(self, client, clock, users):
        ride = await _publish(client, clock, users.driver)
        booking = (await _book(client, ride["id"], users.alice)).json()
        await _set_status(client, booking["id"], users.driver, "accepted")

        url = f"/api/v1/bookings/{booking['id']}/rate-passenger"
        resp = await client.post(url, json={"rating": 4}, headers=_as(users.driver))
        assert resp.status_code == 200
        assert resp.json() == {"success": True}

        resp = await client.post(url, json={"rating": 5}, headers=_as(users.driver))
        assert resp.status_code == 400
        assert resp.json()["code"] == "duplicate_review"

    @pytest.mark.asyncio
    async def test_out_of_range_and_wrong_actor(self, client, clock, users):
        ride = await _publish(client, clock, users.driver)
        booking = (await _book(client, ride["id"], users.alice)).json()
        await _set_status(client, booking["id"], users.driver, "accepted")

        url = f"/api/v1/bookings/{booking['id']}/rate-passenger"
        resp = await client.post(url, json={"rating": 0}, headers=_as(users.driver))
        assert resp.status_code == 400
        resp = await client.post(url, json={"rating": 3}, headers=_as(users.alice))
        assert resp.status_code == 403


class TestRideCancellation:
    @pytest.mark.asyncio
    async def test_cancel_cascades_to_bookings(self, client, clock, users, sink):
        ride = await _publish(client, clock, users.driver, seats_total=2)
        accepted = (await _book(client, ride["id"], users.alice)).json()
        pending = (await _book(client, ride["id"], users.bob)).json()
        await _set_status(client, accepted["id"], users.driver, "accepted")

        resp = await client.patch(
            f"/api/v1/rides/{ride['id']}",
            json={"status": "cancelled"},
            headers=_as(users.driver),
        )
        assert resp.status_code == 200
        assert resp.json()["status"] == "cancelled"
        assert resp.json()["seats_available"] == 2

        for booking_id, passenger in ((accepted["id"], users.alice), (pending["id"], users.bob)):
            detail = (
                await client.get(f"/api/v1/bookings/{booking_id}", headers=_as(passenger))
            ).json()
            assert detail["status"] == "cancelled"
            assert detail["payment_status"] == "refunded"

        # frozen afterwards
        resp = await _book(client, ride["id"], users.cara)
        assert resp.status_code == 400

    @pytest.mark.asyncio
    async def test_only_driver_changes_ride(self, client, clock, users):
        ride = await _publish(client, clock, users.driver)
        resp = await client.patch(
            f"/api/v1/rides/{ride['id']}",
            json={"status": "cancelled"},
            headers=_as(users.alice),
        )
        assert resp.status_code == 403


class TestLedgerAudit:
    @pytest.mark.asyncio
    async def test_unknown_ride_uses_the_error_envelope(self, client):
        resp = await client.get("/api/v1/admin/rides/424242/ledger")
        assert resp.status_code == 404
        assert resp.json() == {"detail": "Ride not found", "code": "not_found"}


class TestHealth:
    @pytest.mark.asyncio
    async def test_health(self, client):
        resp = await client.get("/api/v1/admin/health")
        assert resp.status_code == 200
        assert resp.json() == {"status": "ok"}
