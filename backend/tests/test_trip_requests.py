"""
Trip request creation and browsing tests.
"""

import pytest
from sqlalchemy import select, func

from backend.app.models.trip_request import TripRequest


@pytest.mark.asyncio
async def test_create_trip_request(client, auth_headers, trip_request_payload):
    response = await client.post(
        "/v1/trip-requests",
        json=trip_request_payload(pickup_instructions="  Meet at the north entrance  "),
        headers=auth_headers("rider_riley", "tr-1"),
    )

    assert response.status_code == 201
    data = response.json()
    assert data["rider_id"] == "rider_riley"
    assert data["status"] == "ACTIVE"
    assert data["seats_needed"] == 2
    assert data["pickup_instructions"] == "Meet at the north entrance"


@pytest.mark.asyncio
async def test_trip_request_replay(client, auth_headers, trip_request_payload, db_session):
    payload = trip_request_payload()
    first = await client.post("/v1/trip-requests", json=payload, headers=auth_headers("rider_riley", "tr-1"))
    second = await client.post("/v1/trip-requests", json=payload, headers=auth_headers("rider_riley", "tr-1"))

    assert (first.status_code, second.status_code) == (201, 200)
    assert first.json()["id"] == second.json()["id"]

    result = await db_session.execute(select(func.count(TripRequest.id)))
    assert result.scalar() == 1


@pytest.mark.asyncio
async def test_ride_and_trip_request_keys_are_separate(client, auth_headers, ride_payload, trip_request_payload):
    """The same key used for different operation kinds creates both entities."""
    ride = await client.post("/v1/rides", json=ride_payload(), headers=auth_headers("user_uma", "shared"))
    trip = await client.post(
        "/v1/trip-requests", json=trip_request_payload(), headers=auth_headers("user_uma", "shared")
    )

    assert ride.status_code == 201
    assert trip.status_code == 201


@pytest.mark.asyncio
async def test_trip_request_seats_out_of_range(client, auth_headers, trip_request_payload):
    response = await client.post(
        "/v1/trip-requests",
        json=trip_request_payload(seats_needed=9),
        headers=auth_headers("rider_riley", "tr-1"),
    )

    assert response.status_code == 422


@pytest.mark.asyncio
async def test_list_trip_requests_filters_by_seats_max(client, auth_headers, post_trip_request):
    small = await post_trip_request(seats_needed=1)
    await post_trip_request(seats_needed=4)

    response = await client.get(
        "/v1/trip-requests", params={"seats_max": 2}, headers=auth_headers("driver_dana")
    )

    assert response.status_code == 200
    assert [item["id"] for item in response.json()["items"]] == [small["id"]]


@pytest.mark.asyncio
async def test_closed_trip_requests_are_not_listed(client, auth_headers, post_trip_request, post_offer):
    trip = await post_trip_request()
    offer = await post_offer(trip["id"], "driver_dana")
    accepted = await client.post(f"/v1/offers/{offer['id']}/accept", headers=auth_headers("rider_riley"))
    assert accepted.status_code == 200

    response = await client.get("/v1/trip-requests", headers=auth_headers("driver_eli"))

    assert trip["id"] not in [item["id"] for item in response.json()["items"]]


@pytest.mark.asyncio
async def test_list_trip_requests_pagination(client, auth_headers, post_trip_request):
    created = [await post_trip_request() for _ in range(3)]

    first = await client.get("/v1/trip-requests", params={"limit": 2}, headers=auth_headers("driver_dana"))
    second = await client.get(
        "/v1/trip-requests",
        params={"limit": 2, "cursor": first.json()["next_cursor"]},
        headers=auth_headers("driver_dana"),
    )

    ids = [item["id"] for item in first.json()["items"] + second.json()["items"]]
    assert ids == [trip["id"] for trip in created]
    assert second.json()["next_cursor"] is None
