"""
Tests for admin payouts: completed bookings to venue owners, past events'
ticket sales to organizers, and settlement.
"""

from datetime import datetime, timedelta, timezone

import pytest
from httpx import AsyncClient
from sqlalchemy import update

from app.models.event import Event

BOOKING_DATE = (datetime.now(timezone.utc).date() + timedelta(days=10)).isoformat()


async def completed_booking(client, headers, owner_headers, venue_id, gateway) -> dict:
    """A 10:00-12:30 booking at 1000/hour: accepted, paid and completed."""
    booking = (await client.post(
        "/api/v1/bookings/",
        json={"venue_id": venue_id, "booking_date": BOOKING_DATE, "start_time": "10:00", "end_time": "12:30"},
        headers=headers,
    )).json()
    await client.put(f"/api/v1/bookings/{booking['id']}/status", json={"decision": "accept"}, headers=owner_headers)
    order = (await client.post(f"/api/v1/bookings/{booking['id']}/pay", headers=headers)).json()
    await client.post("/api/v1/payments/verify", json=gateway.callback(order["gateway_order_id"]))
    completed = await client.post(f"/api/v1/bookings/{booking['id']}/complete", headers=owner_headers)
    assert completed.status_code == 200, completed.text
    return completed.json()


async def paid_tickets(client, headers, event_id, gateway, quantity, gateway_payment_id) -> dict:
    ticket = (await client.post(
        "/api/v1/tickets/", json={"event_id": event_id, "quantity": quantity}, headers=headers
    )).json()["ticket"]
    order = (await client.post(f"/api/v1/tickets/{ticket['id']}/pay", headers=headers)).json()
    verified = await client.post(
        "/api/v1/payments/verify", json=gateway.callback(order["gateway_order_id"], gateway_payment_id)
    )
    assert verified.status_code == 200
    return order


async def move_event_to_yesterday(session_factory, event_id: int):
    async with session_factory() as session:
        await session.execute(
            update(Event)
            .where(Event.id == event_id)
            .values(event_date=datetime.now(timezone.utc).date() - timedelta(days=1))
        )
        await session.commit()


@pytest.mark.asyncio
async def test_booking_payout_to_venue_owner(
    client: AsyncClient, auth_headers, owner, owner_headers, admin_headers, venue, gateway
):
    booking = await completed_booking(client, auth_headers, owner_headers, venue.id, gateway)

    response = await client.post(
        "/api/v1/payments/payouts",
        json={"type": "venue_booking", "reference_id": booking["id"], "bank_details": "IBAN XX00 1234"},
        headers=admin_headers,
    )
    assert response.status_code == 201, response.text
    payout = response.json()
    assert payout["recipient_id"] == owner.id
    assert payout["gross_amount"] == 2500
    assert payout["platform_commission"] == 125
    assert payout["net_amount"] == 2375
    assert payout["status"] == "pending"

    duplicate = await client.post(
        "/api/v1/payments/payouts",
        json={"type": "venue_booking", "reference_id": booking["id"]},
        headers=admin_headers,
    )
    assert duplicate.status_code == 409
    assert duplicate.json()["code"] == "conflict"


@pytest.mark.asyncio
async def test_booking_payout_needs_completion(
    client: AsyncClient, auth_headers, owner_headers, admin_headers, venue
):
    booking = (await client.post(
        "/api/v1/bookings/",
        json={"venue_id": venue.id, "booking_date": BOOKING_DATE, "start_time": "10:00", "end_time": "12:00"},
        headers=auth_headers,
    )).json()
    await client.put(f"/api/v1/bookings/{booking['id']}/status", json={"decision": "accept"}, headers=owner_headers)

    response = await client.post(
        "/api/v1/payments/payouts",
        json={"type": "venue_booking", "reference_id": booking["id"]},
        headers=admin_headers,
    )
    assert response.status_code == 409
    assert response.json()["code"] == "invalid_state"


@pytest.mark.asyncio
async def test_payouts_are_admin_only(client: AsyncClient, auth_headers, owner_headers, venue, gateway):
    booking = await completed_booking(client, auth_headers, owner_headers, venue.id, gateway)
    response = await client.post(
        "/api/v1/payments/payouts",
        json={"type": "venue_booking", "reference_id": booking["id"]},
        headers=owner_headers,
    )
    assert response.status_code == 403
    assert (await client.get("/api/v1/payments/payouts", headers=owner_headers)).status_code == 403


@pytest.mark.asyncio
async def test_event_payout_counts_settled_ticket_sales(
    client: AsyncClient, test_user, admin_headers, make_user, paid_event, session_factory, gateway
):
    _, first = await make_user("first")
    _, second = await make_user("second")
    await paid_tickets(client, first, paid_event.id, gateway, quantity=2, gateway_payment_id="pay_test_1")
    await paid_tickets(client, second, paid_event.id, gateway, quantity=1, gateway_payment_id="pay_test_2")
    # An unpaid hold does not count
    await client.post("/api/v1/tickets/", json={"event_id": paid_event.id, "quantity": 1}, headers=second)

    body = {"type": "event_tickets", "reference_id": paid_event.id}
    too_early = await client.post("/api/v1/payments/payouts", json=body, headers=admin_headers)
    assert too_early.status_code == 409

    await move_event_to_yesterday(session_factory, paid_event.id)
    response = await client.post("/api/v1/payments/payouts", json=body, headers=admin_headers)
    assert response.status_code == 201, response.text
    payout = response.json()
    assert payout["recipient_id"] == test_user.id
    assert payout["gross_amount"] == 1500
    assert payout["platform_commission"] == 75
    assert payout["net_amount"] == 1425


@pytest.mark.asyncio
async def test_event_without_sales_has_nothing_to_pay(
    client: AsyncClient, admin_headers, free_event, session_factory
):
    await move_event_to_yesterday(session_factory, free_event.id)
    response = await client.post(
        "/api/v1/payments/payouts",
        json={"type": "event_tickets", "reference_id": free_event.id},
        headers=admin_headers,
    )
    assert response.status_code == 400
    assert response.json()["code"] == "invalid_amount"


@pytest.mark.asyncio
async def test_cancelled_event_is_not_paid_out(client: AsyncClient, auth_headers, admin_headers, paid_event):
    await client.post(f"/api/v1/events/{paid_event.id}/cancel", json={"reason": "Storm"}, headers=auth_headers)
    response = await client.post(
        "/api/v1/payments/payouts",
        json={"type": "event_tickets", "reference_id": paid_event.id},
        headers=admin_headers,
    )
    assert response.status_code == 409


@pytest.mark.asyncio
async def test_settle_and_list_payouts(
    client: AsyncClient, auth_headers, owner_headers, admin_headers, venue, gateway
):
    booking = await completed_booking(client, auth_headers, owner_headers, venue.id, gateway)
    payout = (await client.post(
        "/api/v1/payments/payouts",
        json={"type": "venue_booking", "reference_id": booking["id"]},
        headers=admin_headers,
    )).json()

    pending = (await client.get(
        "/api/v1/payments/payouts", params={"status_filter": "pending"}, headers=admin_headers
    )).json()
    assert pending["total"] == 1
    assert pending["payouts"][0]["id"] == payout["id"]

    settled = await client.put(
        f"/api/v1/payments/payouts/{payout['id']}", json={"status": "processed"}, headers=admin_headers
    )
    assert settled.status_code == 200
    assert settled.json()["status"] == "processed"
    assert settled.json()["processed_at"] is not None

    again = await client.put(
        f"/api/v1/payments/payouts/{payout['id']}",
        json={"status": "failed", "failure_reason": "Bounced"},
        headers=admin_headers,
    )
    assert again.status_code == 409
    assert again.json()["code"] == "already_processed"

    listing = (await client.get("/api/v1/payments/payouts", headers=admin_headers)).json()
    assert listing["total"] == 1
    assert listing["payouts"][0]["status"] == "processed"
    assert (await client.get(
        "/api/v1/payments/payouts", params={"status_filter": "pending"}, headers=admin_headers
    )).json()["total"] == 0
