"""
Tests for ticket endpoints including concurrency scenarios.
"""

import asyncio
import base64
import json

import pytest
from httpx import AsyncClient


async def buy(client, headers, event_id, quantity=1):
    return await client.post(
        "/api/v1/tickets/", json={"event_id": event_id, "quantity": quantity}, headers=headers
    )


async def attendees(client, headers, event_id) -> int:
    response = await client.get(f"/api/v1/events/{event_id}", headers=headers)
    return response.json()["current_attendees"]


@pytest.mark.asyncio
async def test_free_ticket_issued_immediately(client: AsyncClient, auth_headers, free_event):
    response = await buy(client, auth_headers, free_event.id, quantity=2)
    assert response.status_code == 201
    data = response.json()
    assert data["payment_required"] is False
    ticket = data["ticket"]
    assert ticket["status"] == "active"
    assert ticket["ticket_code"].startswith("TKT-")
    assert ticket["price"] == 0

    assert await attendees(client, auth_headers, free_event.id) == 2


@pytest.mark.asyncio
async def test_qr_payload_identifies_ticket(client: AsyncClient, auth_headers, test_user, free_event):
    ticket = (await buy(client, auth_headers, free_event.id)).json()["ticket"]
    decoded = json.loads(base64.b64decode(ticket["qr_payload"]))
    assert decoded == {
        "ticketId": ticket["ticket_code"],
        "eventId": str(free_event.id),
        "userId": str(test_user.id),
    }


@pytest.mark.asyncio
async def test_buy_unauthenticated(client: AsyncClient, free_event):
    response = await client.post("/api/v1/tickets/", json={"event_id": free_event.id, "quantity": 1})
    assert response.status_code == 401


@pytest.mark.asyncio
async def test_buy_too_many_in_one_order(client: AsyncClient, auth_headers, free_event):
    response = await buy(client, auth_headers, free_event.id, quantity=11)
    assert response.status_code == 422


@pytest.mark.asyncio
async def test_buy_nonexistent_event(client: AsyncClient, auth_headers):
    response = await buy(client, auth_headers, 99999)
    assert response.status_code == 404


@pytest.mark.asyncio
async def test_request_larger_than_remaining(client: AsyncClient, auth_headers, make_event):
    """8 of 10 taken: 3 is refused, 2 fills the event exactly."""
    event = await make_event(max_attendees=10, current_attendees=8)

    too_many = await buy(client, auth_headers, event.id, quantity=3)
    assert too_many.status_code == 409
    assert await attendees(client, auth_headers, event.id) == 8

    exact = await buy(client, auth_headers, event.id, quantity=2)
    assert exact.status_code == 201
    assert await attendees(client, auth_headers, event.id) == 10

    sold_out = await buy(client, auth_headers, event.id)
    assert sold_out.status_code == 409


@pytest.mark.asyncio
async def test_concurrent_purchases_never_oversell(client: AsyncClient, auth_headers, make_user, make_event):
    """20 buyers race for 5 spots: exactly 5 tickets are issued."""
    event = await make_event(max_attendees=5)
    buyers = [await make_user(f"buyer{i}") for i in range(20)]

    responses = await asyncio.gather(*(buy(client, headers, event.id) for _, headers in buyers))
    codes = sorted(r.status_code for r in responses)

    assert codes.count(201) == 5
    assert codes.count(409) == 15
    assert await attendees(client, auth_headers, event.id) == 5


@pytest.mark.asyncio
async def test_unapproved_event_not_on_sale(client: AsyncClient, auth_headers, venue):
    created = await client.post(
        "/api/v1/events/",
        json={
            "venue_id": venue.id,
            "name": "Not yet approved",
            "event_date": "2099-01-01",
            "start_time": "10:00",
            "end_time": "12:00",
            "max_attendees": 10,
        },
        headers=auth_headers,
    )
    response = await buy(client, auth_headers, created.json()["id"])
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_private_event_needs_unlock(client: AsyncClient, make_user, make_event):
    event = await make_event(event_type="private")
    _, guest = await make_user("guest")

    assert (await buy(client, guest, event.id)).status_code == 403
    await client.post(f"/api/v1/events/{event.id}/access", json={"code": "ABCD1234"}, headers=guest)
    assert (await buy(client, guest, event.id)).status_code == 201


@pytest.mark.asyncio
async def test_paid_ticket_activates_on_payment(client: AsyncClient, auth_headers, paid_event, gateway):
    purchase = await buy(client, auth_headers, paid_event.id, quantity=2)
    assert purchase.status_code == 201
    assert purchase.json()["payment_required"] is True
    ticket = purchase.json()["ticket"]
    assert ticket["status"] == "pending"
    assert ticket["price"] == 1000
    # No capacity is held before payment
    assert await attendees(client, auth_headers, paid_event.id) == 0

    checkout = await client.post(f"/api/v1/tickets/{ticket['id']}/pay", headers=auth_headers)
    assert checkout.status_code == 201
    assert checkout.json()["amount"] == 1000
    assert checkout.json()["platform_fee"] == 50

    verified = await client.post("/api/v1/payments/verify", json=gateway.callback(checkout.json()["gateway_order_id"]))
    assert verified.status_code == 200

    active = await client.get(f"/api/v1/tickets/{ticket['id']}", headers=auth_headers)
    assert active.json()["status"] == "active"
    assert active.json()["payment_id"] == checkout.json()["payment_id"]
    assert await attendees(client, auth_headers, paid_event.id) == 2


@pytest.mark.asyncio
async def test_sold_out_before_verification_refunds(
    client: AsyncClient, auth_headers, make_user, make_event, gateway
):
    """Two pending holds for the last 2 spots: the second payment to verify is refunded."""
    event = await make_event(max_attendees=2, ticket_price=300)
    _, alice = await make_user("alice")
    _, bob = await make_user("bob")

    orders = []
    for headers in (alice, bob):
        ticket = (await buy(client, headers, event.id, quantity=2)).json()["ticket"]
        checkout = await client.post(f"/api/v1/tickets/{ticket['id']}/pay", headers=headers)
        orders.append((ticket["id"], checkout.json()["gateway_order_id"]))

    for (_, order_id), payment_id in zip(orders, ("pay_alice", "pay_bob")):
        response = await client.post("/api/v1/payments/verify", json=gateway.callback(order_id, payment_id))
        assert response.status_code == 200
        assert response.json()["status"] == "success"

    alice_ticket = (await client.get(f"/api/v1/tickets/{orders[0][0]}", headers=alice)).json()
    bob_ticket = (await client.get(f"/api/v1/tickets/{orders[1][0]}", headers=bob)).json()
    assert alice_ticket["status"] == "active"
    assert bob_ticket["status"] == "cancelled"
    assert await attendees(client, auth_headers, event.id) == 2

    refunds = (await client.get("/api/v1/refunds/", headers=bob)).json()
    assert len(refunds) == 1
    assert refunds[0]["reason"] == "other"
    assert refunds[0]["status"] == "pending"
    assert refunds[0]["amount"] == 600


async def scan(client, headers, action, ticket, event_id, payload=None):
    return await client.post(
        f"/api/v1/tickets/{ticket['ticket_code']}/{action}",
        json={"qr_payload": payload or ticket["qr_payload"], "event_id": event_id},
        headers=headers,
    )


@pytest.mark.asyncio
async def test_validate_then_check_in_once(client: AsyncClient, auth_headers, make_user, free_event):
    _, holder = await make_user("holder")
    ticket = (await buy(client, holder, free_event.id)).json()["ticket"]

    valid = await scan(client, auth_headers, "validate", ticket, free_event.id)
    assert valid.status_code == 200
    assert valid.json()["is_used"] is False

    admitted = await scan(client, auth_headers, "checkin", ticket, free_event.id)
    assert admitted.status_code == 200
    assert admitted.json()["is_used"] is True
    assert admitted.json()["status"] == "used"
    assert admitted.json()["used_at"] is not None

    second = await scan(client, auth_headers, "checkin", ticket, free_event.id)
    assert second.status_code == 409
    assert second.json()["code"] == "already_used"

    revalidate = await scan(client, auth_headers, "validate", ticket, free_event.id)
    assert revalidate.status_code == 409


@pytest.mark.asyncio
async def test_concurrent_check_in_admits_once(client: AsyncClient, auth_headers, owner_headers, make_user, free_event):
    _, holder = await make_user("holder")
    ticket = (await buy(client, holder, free_event.id)).json()["ticket"]

    results = await asyncio.gather(
        scan(client, auth_headers, "checkin", ticket, free_event.id),
        scan(client, owner_headers, "checkin", ticket, free_event.id),
    )
    assert sorted(r.status_code for r in results) == [200, 409]


@pytest.mark.asyncio
async def test_scan_at_wrong_event(client: AsyncClient, auth_headers, free_event, make_event):
    other = await make_event(start_hour=8)
    ticket = (await buy(client, auth_headers, free_event.id)).json()["ticket"]

    response = await scan(client, auth_headers, "validate", ticket, other.id)
    assert response.status_code == 409
    assert response.json()["code"] == "wrong_event"


@pytest.mark.asyncio
async def test_tampered_qr_rejected(client: AsyncClient, auth_headers, free_event):
    ticket = (await buy(client, auth_headers, free_event.id)).json()["ticket"]
    forged = base64.b64encode(json.dumps({
        "ticketId": ticket["ticket_code"], "eventId": str(free_event.id), "userId": "999",
    }).encode()).decode()

    mismatch = await scan(client, auth_headers, "validate", ticket, free_event.id, payload=forged)
    assert mismatch.status_code == 400
    assert mismatch.json()["code"] == "invalid_ticket"

    garbage = await scan(client, auth_headers, "validate", ticket, free_event.id, payload="%%%not-base64")
    assert garbage.status_code == 400


@pytest.mark.asyncio
async def test_check_in_requires_authority(client: AsyncClient, make_user, free_event):
    _, holder = await make_user("holder")
    ticket = (await buy(client, holder, free_event.id)).json()["ticket"]

    response = await scan(client, holder, "checkin", ticket, free_event.id)
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_venue_owner_and_admin_can_check_in(
    client: AsyncClient, owner_headers, admin_headers, make_user, free_event
):
    _, holder = await make_user("holder")
    first = (await buy(client, holder, free_event.id)).json()["ticket"]
    second = (await buy(client, holder, free_event.id)).json()["ticket"]

    assert (await scan(client, owner_headers, "checkin", first, free_event.id)).status_code == 200
    assert (await scan(client, admin_headers, "checkin", second, free_event.id)).status_code == 200


@pytest.mark.asyncio
async def test_cancel_free_ticket_releases_spots(client: AsyncClient, auth_headers, free_event):
    ticket = (await buy(client, auth_headers, free_event.id, quantity=4)).json()["ticket"]

    response = await client.post(
        f"/api/v1/tickets/{ticket['id']}/cancel", json={"reason": "Cannot make it"}, headers=auth_headers
    )
    assert response.status_code == 200
    assert response.json()["ticket"]["status"] == "cancelled"
    assert response.json()["refund"] is None
    assert await attendees(client, auth_headers, free_event.id) == 0


@pytest.mark.asyncio
async def test_cancel_paid_ticket_opens_refund(client: AsyncClient, auth_headers, paid_event, gateway):
    ticket = (await buy(client, auth_headers, paid_event.id)).json()["ticket"]
    order = (await client.post(f"/api/v1/tickets/{ticket['id']}/pay", headers=auth_headers)).json()
    await client.post("/api/v1/payments/verify", json=gateway.callback(order["gateway_order_id"]))

    response = await client.post(
        f"/api/v1/tickets/{ticket['id']}/cancel", json={"reason": "Cannot make it"}, headers=auth_headers
    )
    assert response.status_code == 200
    data = response.json()
    assert data["ticket"]["status"] == "active"
    assert data["refund"]["status"] == "pending"
    assert data["refund"]["reason"] == "user_request"
    assert data["refund"]["amount"] == 500
    assert await attendees(client, auth_headers, paid_event.id) == 1


@pytest.mark.asyncio
async def test_cancel_someone_elses_ticket(client: AsyncClient, auth_headers, make_user, free_event):
    ticket = (await buy(client, auth_headers, free_event.id)).json()["ticket"]
    _, mallory = await make_user("mallory")
    response = await client.post(
        f"/api/v1/tickets/{ticket['id']}/cancel", json={"reason": "x"}, headers=mallory
    )
    assert response.status_code == 403


@pytest.mark.asyncio
async def test_event_ticket_list_for_organizer(client: AsyncClient, auth_headers, make_user, free_event):
    _, holder = await make_user("holder")
    await buy(client, holder, free_event.id)

    response = await client.get(f"/api/v1/tickets/event/{free_event.id}", headers=auth_headers)
    assert response.status_code == 200
    assert len(response.json()) == 1

    forbidden = await client.get(f"/api/v1/tickets/event/{free_event.id}", headers=holder)
    assert forbidden.status_code == 403
