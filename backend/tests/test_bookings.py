"""
Tests for venue booking endpoints: windows, edits, owner decisions and
counter-offers, payment, cancellation and completion.
"""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient

BOOKING_DATE = (datetime.now(timezone.utc).date() + timedelta(days=14)).isoformat()


def booking_body(venue_id: int, start: str = "10:00", end: str = "12:30", **extra) -> dict:
    return {"venue_id": venue_id, "booking_date": BOOKING_DATE, "start_time": start, "end_time": end, **extra}


async def request_booking(client, headers, venue_id, start="10:00", end="12:30"):
    response = await client.post("/api/v1/bookings/", json=booking_body(venue_id, start, end), headers=headers)
    assert response.status_code == 201, response.text
    return response.json()


async def decide(client, headers, booking_id, decision="accept", reason=None):
    return await client.put(
        f"/api/v1/bookings/{booking_id}/status",
        json={"decision": decision, "reason": reason},
        headers=headers,
    )


@pytest.mark.asyncio
async def test_create_booking_prices_window(client: AsyncClient, auth_headers, venue):
    """2.5 hours at 1000/hour."""
    data = await request_booking(client, auth_headers, venue.id)
    assert data["status"] == "pending"
    assert data["payment_status"] == "pending"
    assert data["total_amount"] == 2500


@pytest.mark.asyncio
async def test_create_booking_unauthenticated(client: AsyncClient, venue):
    response = await client.post("/api/v1/bookings/", json=booking_body(venue.id))
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_create_booking_inverted_window(client: AsyncClient, auth_headers, venue):
    response = await client.post(
        "/api/v1/bookings/", json=booking_body(venue.id, "14:00", "12:00"), headers=auth_headers
    )
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_window"


@pytest.mark.asyncio
async def test_create_booking_too_many_guests(client: AsyncClient, auth_headers, venue):
    response = await client.post(
        "/api/v1/bookings/", json=booking_body(venue.id, expected_guests=500), headers=auth_headers
    )
    assert response.status_code == 400


@pytest.mark.asyncio
async def test_create_booking_unknown_venue(client: AsyncClient, auth_headers):
    response = await client.post("/api/v1/bookings/", json=booking_body(99999), headers=auth_headers)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_booking_on_a_past_date_is_paid_through(
    client: AsyncClient, auth_headers, owner_headers, make_user, venue, gateway
):
    """Dates are not checked against today; 2024-01-10 10:00-12:00 goes through the whole flow."""
    window = {"venue_id": venue.id, "booking_date": "2024-01-10", "start_time": "10:00", "end_time": "12:00"}
    created = await client.post("/api/v1/bookings/", json=window, headers=auth_headers)
    assert created.status_code == 201, created.text
    assert created.json()["total_amount"] == 2000

    accepted = await decide(client, owner_headers, created.json()["id"])
    assert accepted.json()["status"] == "accepted"

    checkout = await client.post(f"/api/v1/bookings/{created.json()['id']}/pay", headers=auth_headers)
    verified = await client.post(
        "/api/v1/payments/verify", json=gateway.callback(checkout.json()["gateway_order_id"])
    )
    assert verified.status_code == 200

    paid = (await client.get(f"/api/v1/bookings/{created.json()['id']}", headers=auth_headers)).json()
    assert paid["payment_status"] == "paid"
    assert paid["status"] == "accepted"

    _, other = await make_user("other")
    overlapping = await client.post(
        "/api/v1/bookings/", json={**window, "start_time": "11:00", "end_time": "13:00"}, headers=other
    )
    assert overlapping.status_code == 409
    assert overlapping.json()["code"] == "venue_unavailable"


@pytest.mark.asyncio
async def test_update_pending_booking_reprices(client: AsyncClient, auth_headers, make_user, venue):
    booking = await request_booking(client, auth_headers, venue.id)

    updated = await client.put(
        f"/api/v1/bookings/{booking['id']}",
        json={"end_time": "14:00", "expected_guests": 40, "purpose": "Workshop"},
        headers=auth_headers,
    )
    assert updated.status_code == 200, updated.text
    data = updated.json()
    assert data["end_time"] == "14:00:00"
    assert data["total_amount"] == 4000
    assert data["expected_guests"] == 40
    assert data["purpose"] == "Workshop"

    inverted = await client.put(
        f"/api/v1/bookings/{booking['id']}", json={"start_time": "15:00"}, headers=auth_headers
    )
    assert inverted.status_code == 400

    crowded = await client.put(
        f"/api/v1/bookings/{booking['id']}", json={"expected_guests": 500}, headers=auth_headers
    )
    assert crowded.status_code == 400

    _, stranger = await make_user("stranger")
    not_theirs = await client.put(f"/api/v1/bookings/{booking['id']}", json={"purpose": "Mine"}, headers=stranger)
    assert not_theirs.status_code == 403


@pytest.mark.asyncio
async def test_update_answered_booking_refused(client: AsyncClient, auth_headers, owner_headers, venue):
    booking = await request_booking(client, auth_headers, venue.id)
    await decide(client, owner_headers, booking["id"])

    response = await client.put(
        f"/api/v1/bookings/{booking['id']}", json={"end_time": "18:00"}, headers=auth_headers
    )
    assert response.status_code == 409
    assert response.json()["code"] == "invalid_state"


@pytest.mark.asyncio
async def test_update_booking_onto_accepted_window_refused(
    client: AsyncClient, auth_headers, owner_headers, make_user, venue
):
    _, other = await make_user("other")
    taken = await request_booking(client, other, venue.id, "14:00", "16:00")
    await decide(client, owner_headers, taken["id"])
    booking = await request_booking(client, auth_headers, venue.id, "10:00", "12:00")

    response = await client.put(
        f"/api/v1/bookings/{booking['id']}", json={"end_time": "15:00"}, headers=auth_headers
    )
    assert response.status_code == 409
    assert response.json()["code"] == "venue_unavailable"


@pytest.mark.asyncio
async def test_owner_accepts_with_modified_window(client: AsyncClient, auth_headers, owner_headers, venue):
    booking = await request_booking(client, auth_headers, venue.id, "10:00", "12:30")

    response = await client.put(
        f"/api/v1/bookings/{booking['id']}/status",
        json={
            "decision": "accept",
            "modified_window": {"booking_date": BOOKING_DATE, "start_time": "13:00", "end_time": "15:00"},
        },
        headers=owner_headers,
    )
    assert response.status_code == 200, response.text
    data = response.json()
    assert data["status"] == "accepted"
    assert (data["start_time"], data["end_time"]) == ("13:00:00", "15:00:00")
    assert data["total_amount"] == 2000
    assert data["requested_booking_date"] == BOOKING_DATE
    assert (data["requested_start_time"], data["requested_end_time"]) == ("10:00:00", "12:30:00")


@pytest.mark.asyncio
async def test_modified_window_only_with_accept(client: AsyncClient, auth_headers, owner_headers, venue):
    booking = await request_booking(client, auth_headers, venue.id)
    response = await client.put(
        f"/api/v1/bookings/{booking['id']}/status",
        json={
            "decision": "reject",
            "reason": "Full",
            "modified_window": {"booking_date": BOOKING_DATE, "start_time": "13:00", "end_time": "15:00"},
        },
        headers=owner_headers,
    )
    assert response.status_code == 400

    current = await client.get(f"/api/v1/bookings/{booking['id']}", headers=auth_headers)
    assert current.json()["status"] == "pending"


@pytest.mark.asyncio
async def test_modified_window_must_be_free(client: AsyncClient, auth_headers, owner_headers, make_user, venue):
    _, other = await make_user("other")
    taken = await request_booking(client, other, venue.id, "14:00", "16:00")
    await decide(client, owner_headers, taken["id"])
    booking = await request_booking(client, auth_headers, venue.id, "10:00", "12:00")

    response = await client.put(
        f"/api/v1/bookings/{booking['id']}/status",
        json={
            "decision": "accept",
            "modified_window": {"booking_date": BOOKING_DATE, "start_time": "15:00", "end_time": "17:00"},
        },
        headers=owner_headers,
    )
    assert response.status_code == 409
    assert response.json()["code"] == "venue_unavailable"


@pytest.mark.asyncio
async def test_overlapping_accepts_one_wins(client: AsyncClient, make_user, owner_headers, venue):
    """Two pending requests for overlapping windows: only the first accept succeeds."""
    _, alice = await make_user("alice")
    _, bob = await make_user("bob")
    first = await request_booking(client, alice, venue.id, "10:00", "12:00")
    second = await request_booking(client, bob, venue.id, "11:00", "13:00")

    accepted = await decide(client, owner_headers, first["id"])
    assert accepted.status_code == 200
    assert accepted.json()["status"] == "accepted"
    assert accepted.json()["owner_responded_at"] is not None

    clash = await decide(client, owner_headers, second["id"])
    assert clash.status_code == 409
    assert clash.json()["code"] == "venue_unavailable"

    still_pending = await client.get(f"/api/v1/bookings/{second['id']}", headers=bob)
    assert still_pending.json()["status"] == "pending"


@pytest.mark.asyncio
async def test_new_request_over_accepted_window_refused(client: AsyncClient, make_user, owner_headers, venue):
    _, alice = await make_user("alice")
    _, bob = await make_user("bob")
    first = await request_booking(client, alice, venue.id, "10:00", "12:00")
    await decide(client, owner_headers, first["id"])

    response = await client.post(
        "/api/v1/bookings/", json=booking_body(venue.id, "11:30", "12:30"), headers=bob
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_touching_windows_do_not_overlap(client: AsyncClient, make_user, owner_headers, venue):
    """[10,12) and [12,14) can both be accepted."""
    _, alice = await make_user("alice")
    _, bob = await make_user("bob")
    first = await request_booking(client, alice, venue.id, "10:00", "12:00")
    second = await request_booking(client, bob, venue.id, "12:00", "14:00")

    assert (await decide(client, owner_headers, first["id"])).status_code == 200
    assert (await decide(client, owner_headers, second["id"])).status_code == 200


@pytest.mark.asyncio
async def test_blocked_slots_refuse_requests(client: AsyncClient, auth_headers, owner_headers, venue):
    partial = await client.post(
        f"/api/v1/venues/{venue.id}/blocked-slots",
        json={"date": BOOKING_DATE, "start_time": "09:00", "end_time": "11:00", "reason": "Cleaning"},
        headers=owner_headers,
    )
    assert partial.status_code == 201

    response = await client.post(
        "/api/v1/bookings/", json=booking_body(venue.id, "10:30", "12:00"), headers=auth_headers
    )
    assert response.status_code == 409

    await request_booking(client, auth_headers, venue.id, "11:00", "12:00")


@pytest.mark.asyncio
async def test_full_day_block(client: AsyncClient, auth_headers, owner_headers, venue):
    await client.post(
        f"/api/v1/venues/{venue.id}/blocked-slots",
        json={"date": BOOKING_DATE},
        headers=owner_headers,
    )
    response = await client.post(
        "/api/v1/bookings/", json=booking_body(venue.id, "20:00", "21:00"), headers=auth_headers
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_only_owner_blocks_slots(client: AsyncClient, auth_headers, venue):
    response = await client.post(
        f"/api/v1/venues/{venue.id}/blocked-slots",
        json={"date": BOOKING_DATE},
        headers=auth_headers,
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_only_owner_responds(client: AsyncClient, auth_headers, venue):
    booking = await request_booking(client, auth_headers, venue.id)
    response = await decide(client, auth_headers, booking["id"])
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_reject_requires_reason_and_is_final(client: AsyncClient, auth_headers, owner_headers, venue):
    booking = await request_booking(client, auth_headers, venue.id)

    no_reason = await decide(client, owner_headers, booking["id"], "reject")
    assert no_reason.status_code == 400

    rejected = await decide(client, owner_headers, booking["id"], "reject", "Private function that day")
    assert rejected.status_code == 200
    assert rejected.json()["status"] == "rejected"
    assert rejected.json()["rejection_reason"] == "Private function that day"

    again = await decide(client, owner_headers, booking["id"], "accept")
    assert again.status_code == 409
    assert again.json()["code"] == "invalid_state"


@pytest.mark.asyncio
async def test_cancel_unpaid_booking(client: AsyncClient, auth_headers, venue):
    booking = await request_booking(client, auth_headers, venue.id)

    response = await client.post(
        f"/api/v1/bookings/{booking['id']}/cancel", json={"reason": "Plans changed"}, headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json()["status"] == "cancelled"
    assert response.json()["refund_id"] is None

    again = await client.post(
        f"/api/v1/bookings/{booking['id']}/cancel", json={"reason": "Twice"}, headers=auth_headers
    )
    assert again.status_code == 409


@pytest.mark.asyncio
async def test_cancelled_booking_frees_window(client: AsyncClient, make_user, owner_headers, venue):
    _, alice = await make_user("alice")
    _, bob = await make_user("bob")
    first = await request_booking(client, alice, venue.id, "10:00", "12:00")
    await decide(client, owner_headers, first["id"])
    await client.post(f"/api/v1/bookings/{first['id']}/cancel", json={"reason": "No"}, headers=alice)

    await request_booking(client, bob, venue.id, "10:00", "12:00")


@pytest.mark.asyncio
async def test_stranger_cannot_cancel_or_view(client: AsyncClient, auth_headers, make_user, venue):
    booking = await request_booking(client, auth_headers, venue.id)
    _, mallory = await make_user("mallory")

    cancel = await client.post(
        f"/api/v1/bookings/{booking['id']}/cancel", json={"reason": "x"}, headers=mallory
    )
    assert cancel.status_code == 403
    view = await client.get(f"/api/v1/bookings/{booking['id']}", headers=mallory)
    assert view.status_code == 403


@pytest.mark.asyncio
async def test_pay_requires_acceptance(client: AsyncClient, auth_headers, venue):
    booking = await request_booking(client, auth_headers, venue.id)
    response = await client.post(f"/api/v1/bookings/{booking['id']}/pay", headers=auth_headers)
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_accept_pay_complete(client: AsyncClient, auth_headers, owner_headers, venue, gateway):
    """Accepted booking is paid through the gateway, then completed by the owner."""
    booking = await request_booking(client, auth_headers, venue.id)
    await decide(client, owner_headers, booking["id"])

    early = await client.post(f"/api/v1/bookings/{booking['id']}/complete", headers=owner_headers)
    assert early.status_code == 409

    checkout = await client.post(f"/api/v1/bookings/{booking['id']}/pay", headers=auth_headers)
    assert checkout.status_code == 201
    order = checkout.json()
    assert order["amount"] == 2500
    assert order["platform_fee"] == 125

    verified = await client.post("/api/v1/payments/verify", json=gateway.callback(order["gateway_order_id"]))
    assert verified.status_code == 200
    assert verified.json()["status"] == "success"
    assert verified.json()["net_amount"] == 2375

    paid = (await client.get(f"/api/v1/bookings/{booking['id']}", headers=auth_headers)).json()
    assert paid["payment_status"] == "paid"
    assert paid["payment_id"] == order["payment_id"]
    assert paid["platform_fee"] == 125

    completed = await client.post(f"/api/v1/bookings/{booking['id']}/complete", headers=owner_headers)
    assert completed.status_code == 200
    assert completed.json()["status"] == "completed"


@pytest.mark.asyncio
async def test_repeat_checkout_reuses_order(client: AsyncClient, auth_headers, owner_headers, venue):
    booking = await request_booking(client, auth_headers, venue.id)
    await decide(client, owner_headers, booking["id"])

    first = await client.post(f"/api/v1/bookings/{booking['id']}/pay", headers=auth_headers)
    second = await client.post(f"/api/v1/bookings/{booking['id']}/pay", headers=auth_headers)
    assert first.json()["gateway_order_id"] == second.json()["gateway_order_id"]


@pytest.mark.asyncio
async def test_venue_booking_list_for_owner(client: AsyncClient, auth_headers, owner_headers, venue):
    await request_booking(client, auth_headers, venue.id, "10:00", "11:00")
    await request_booking(client, auth_headers, venue.id, "12:00", "13:00")

    response = await client.get(f"/api/v1/bookings/venue/{venue.id}", headers=owner_headers)
    assert response.status_code == 200
    assert [b["start_time"] for b in response.json()] == ["10:00:00", "12:00:00"]

    forbidden = await client.get(f"/api/v1/bookings/venue/{venue.id}", headers=auth_headers)
    assert forbidden.status_code == 403

    mine = await client.get("/api/v1/bookings/", headers=auth_headers)
    assert len(mine.json()) == 2
