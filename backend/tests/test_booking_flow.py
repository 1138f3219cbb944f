"""
Direct booking tests: seat accounting, duplicates, cancellation.
"""

from datetime import timedelta

import pytest
from sqlalchemy import select, func

from backend.app.core.clock import utcnow
from backend.app.models.booking import Booking
from backend.app.models.enums import BookingStatus, DistanceCategory, RideStatus
from backend.app.models.ride import Ride
from backend.app.models.user import User


async def seats_available(db_session, ride_id: int) -> int:
    ride = await db_session.get(Ride, ride_id, populate_existing=True)
    return ride.seats_available


async def book(client, auth_headers, rider_id, ride_id, seats, key=None):
    return await client.post(
        "/v1/bookings",
        json={"ride_id": ride_id, "seats_booked": seats},
        headers=auth_headers(rider_id, key or f"book-{rider_id}-{ride_id}-{seats}"),
    )


@pytest.mark.asyncio
async def test_booking_takes_seats(client, auth_headers, post_ride, db_session):
    ride = await post_ride(seats_total=4)

    response = await book(client, auth_headers, "rider_riley", ride["id"], 3)

    assert response.status_code == 201
    booking = response.json()
    assert booking["kind"] == "DIRECT"
    assert booking["ride_id"] == ride["id"]
    assert booking["status"] == "CONFIRMED"
    assert booking["seats_booked"] == 3
    assert await seats_available(db_session, ride["id"]) == 1


@pytest.mark.asyncio
async def test_three_plus_two_on_four_seats(client, auth_headers, post_ride, db_session):
    ride = await post_ride(seats_total=4)

    first = await book(client, auth_headers, "rider_riley", ride["id"], 3)
    second = await book(client, auth_headers, "rider_sam", ride["id"], 2)

    assert first.status_code == 201
    assert second.status_code == 409
    assert second.json()["message"] == "Not enough seats available."
    assert await seats_available(db_session, ride["id"]) == 1


@pytest.mark.asyncio
async def test_seats_never_overshoot(client, auth_headers, post_ride, db_session):
    ride = await post_ride(seats_total=4)

    outcomes = [
        (await book(client, auth_headers, f"rider_{n}", ride["id"], 1)).status_code
        for n in range(6)
    ]

    assert outcomes.count(201) == 4
    assert outcomes.count(409) == 2
    assert await seats_available(db_session, ride["id"]) == 0

    booked = await db_session.execute(
        select(func.sum(Booking.seats_booked)).where(
            Booking.ride_id == ride["id"], Booking.status == BookingStatus.CONFIRMED
        )
    )
    assert booked.scalar() == 4


@pytest.mark.asyncio
async def test_booking_replay_does_not_take_more_seats(client, auth_headers, post_ride, db_session):
    ride = await post_ride(seats_total=4)

    first = await book(client, auth_headers, "rider_riley", ride["id"], 2, key="same")
    second = await book(client, auth_headers, "rider_riley", ride["id"], 2, key="same")

    assert (first.status_code, second.status_code) == (201, 200)
    assert first.json()["id"] == second.json()["id"]
    assert await seats_available(db_session, ride["id"]) == 2


@pytest.mark.asyncio
async def test_second_confirmed_booking_on_same_ride(client, auth_headers, post_ride, db_session):
    ride = await post_ride(seats_total=4)
    await book(client, auth_headers, "rider_riley", ride["id"], 1, key="first")

    response = await book(client, auth_headers, "rider_riley", ride["id"], 1, key="second")

    assert response.status_code == 409
    assert response.json()["message"] == "You already have a confirmed booking for this ride."
    assert await seats_available(db_session, ride["id"]) == 3


@pytest.mark.asyncio
async def test_driver_cannot_book_own_ride(client, auth_headers, post_ride):
    ride = await post_ride(driver_id="driver_dana")

    response = await book(client, auth_headers, "driver_dana", ride["id"], 1)

    assert response.status_code == 409


@pytest.mark.asyncio
async def test_booking_missing_ride(client, auth_headers):
    response = await book(client, auth_headers, "rider_riley", 4040, 1)

    assert response.status_code == 404
    assert response.json()["message"] == "Ride not found."


@pytest.mark.asyncio
async def test_booking_departed_ride(client, auth_headers, db_session):
    db_session.add(User(external_id="driver_old", email="driver_old@campus.edu"))
    await db_session.flush()
    now = utcnow()
    ride = Ride(
        driver_id="driver_old",
        origin_text="Old Gym",
        destination_text="Harbor",
        earliest_depart_at=now - timedelta(hours=3),
        latest_depart_at=now - timedelta(hours=1),
        distance_category=DistanceCategory.SHORT,
        price_cents=0,
        seats_total=3,
        seats_available=3,
        status=RideStatus.ACTIVE,
    )
    db_session.add(ride)
    await db_session.commit()

    response = await book(client, auth_headers, "rider_riley", ride.id, 1)

    assert response.status_code == 409
    assert response.json()["message"] == "Ride has departed."
    assert await seats_available(db_session, ride.id) == 3


@pytest.mark.asyncio
async def test_booking_seats_out_of_range(client, auth_headers, post_ride):
    ride = await post_ride()

    response = await book(client, auth_headers, "rider_riley", ride["id"], 0)

    assert response.status_code == 422


# Cancellation

@pytest.mark.asyncio
async def test_cancel_booking_releases_seats_once(client, auth_headers, post_ride, db_session):
    ride = await post_ride(seats_total=4)
    booking = (await book(client, auth_headers, "rider_riley", ride["id"], 3)).json()

    first = await client.post(f"/v1/bookings/{booking['id']}/cancel", headers=auth_headers("rider_riley"))
    second = await client.post(f"/v1/bookings/{booking['id']}/cancel", headers=auth_headers("rider_riley"))

    assert first.status_code == 200
    assert first.json() == {
        "booking_id": booking["id"],
        "status": "CANCELLED",
        "message": "Booking cancelled successfully.",
    }
    assert second.status_code == 200
    assert second.json()["message"] == "Booking already cancelled."
    assert await seats_available(db_session, ride["id"]) == 4


@pytest.mark.asyncio
async def test_rider_can_rebook_after_cancelling(client, auth_headers, post_ride, db_session):
    ride = await post_ride(seats_total=2)
    booking = (await book(client, auth_headers, "rider_riley", ride["id"], 2, key="a")).json()
    await client.post(f"/v1/bookings/{booking['id']}/cancel", headers=auth_headers("rider_riley"))

    again = await book(client, auth_headers, "rider_riley", ride["id"], 2, key="b")

    assert again.status_code == 201
    assert await seats_available(db_session, ride["id"]) == 0


@pytest.mark.asyncio
async def test_only_the_rider_can_cancel_booking(client, auth_headers, post_ride, db_session):
    ride = await post_ride(seats_total=4)
    booking = (await book(client, auth_headers, "rider_riley", ride["id"], 1)).json()

    response = await client.post(f"/v1/bookings/{booking['id']}/cancel", headers=auth_headers("rider_sam"))

    assert response.status_code == 403
    assert response.json()["message"] == "You are not authorized to cancel this booking."
    assert await seats_available(db_session, ride["id"]) == 3


@pytest.mark.asyncio
async def test_cancel_missing_booking(client, auth_headers):
    response = await client.post("/v1/bookings/777/cancel", headers=auth_headers("rider_riley"))

    assert response.status_code == 404
    assert response.json()["message"] == "Booking not found."


@pytest.mark.asyncio
async def test_matched_booking_cannot_be_cancelled_directly(
    client, auth_headers, post_trip_request, post_offer
):
    trip = await post_trip_request()
    offer = await post_offer(trip["id"], "driver_ana")
    accepted = await client.post(f"/v1/offers/{offer['id']}/accept", headers=auth_headers("rider_riley"))
    booking_id = accepted.json()["booking"]["id"]

    response = await client.post(f"/v1/bookings/{booking_id}/cancel", headers=auth_headers("rider_riley"))

    assert response.status_code == 409


# History

@pytest.mark.asyncio
async def test_my_bookings_lists_both_flows(client, auth_headers, post_ride, post_trip_request, post_offer):
    ride = await post_ride()
    direct = (await book(client, auth_headers, "rider_riley", ride["id"], 1)).json()
    trip = await post_trip_request(rider_id="rider_riley")
    offer = await post_offer(trip["id"], "driver_ana")
    matched = (await client.post(
        f"/v1/offers/{offer['id']}/accept", headers=auth_headers("rider_riley")
    )).json()["booking"]

    response = await client.get("/v1/bookings/mine", headers=auth_headers("rider_riley"))

    assert response.status_code == 200
    items = response.json()["items"]
    assert [item["id"] for item in items] == [matched["id"], direct["id"]]
    assert [item["kind"] for item in items] == ["MATCHED", "DIRECT"]


@pytest.mark.asyncio
async def test_my_bookings_status_filter_and_pagination(client, auth_headers, post_ride):
    rides = [await post_ride() for _ in range(3)]
    bookings = [(await book(client, auth_headers, "rider_riley", ride["id"], 1)).json() for ride in rides]
    await client.post(f"/v1/bookings/{bookings[0]['id']}/cancel", headers=auth_headers("rider_riley"))

    confirmed_page = await client.get(
        "/v1/bookings/mine", params={"limit": 1}, headers=auth_headers("rider_riley")
    )
    assert [item["id"] for item in confirmed_page.json()["items"]] == [bookings[2]["id"]]
    next_page = await client.get(
        "/v1/bookings/mine",
        params={"limit": 1, "cursor": confirmed_page.json()["next_cursor"]},
        headers=auth_headers("rider_riley"),
    )
    assert [item["id"] for item in next_page.json()["items"]] == [bookings[1]["id"]]
    assert next_page.json()["next_cursor"] is None

    cancelled = await client.get(
        "/v1/bookings/mine", params={"status": "CANCELLED"}, headers=auth_headers("rider_riley")
    )
    assert [item["id"] for item in cancelled.json()["items"]] == [bookings[0]["id"]]
