import asyncio
import logging
import pytest
from datetime import datetime, timedelta
from sqlalchemy import select, func
from sqlalchemy.exc import OperationalError

from conftest import auth_headers
from models import Car, Ride, Booking, Notification
from booking_engine import BookingEngine
from exceptions import InsufficientSeats, RideNotFound, BookingAlreadyCancelled


async def seats_left(client, ride_id):
    res = await client.get(f"/rides/{ride_id}")
    return res.json()["available_seats"]


@pytest.mark.asyncio
async def test_book_then_cancel_restores_seats(client, publish_ride):
    """
    Ride with 4 seats; rider books 2, then cancels and gets them back.
    """
    ride = await publish_ride(seats=4)

    res = await client.post(f"/rides/{ride['id']}/bookings", json={"seats": 2}, headers=auth_headers("rider_a"))
    assert res.status_code == 201
    booking = res.json()
    assert booking["seats_booked"] == 2
    assert booking["status"] == "active"
    assert await seats_left(client, ride["id"]) == 2

    active = await client.get(f"/rides/{ride['id']}/bookings", headers=auth_headers("owner_1"))
    assert [b["seats_booked"] for b in active.json() if b["status"] == "active"] == [2]

    cancel = await client.post(f"/bookings/{booking['id']}/cancel", headers=auth_headers("rider_a"))
    assert cancel.status_code == 200
    assert cancel.json()["status"] == "cancelled"
    assert cancel.json()["cancelled_at"] is not None
    assert await seats_left(client, ride["id"]) == 4


@pytest.mark.asyncio
async def test_insufficient_seats_leaves_everything_unchanged(client, publish_ride, test_db):
    ride = await publish_ride(seats=2)

    res = await client.post(f"/rides/{ride['id']}/bookings", json={"seats": 3}, headers=auth_headers("rider_a"))
    assert res.status_code == 409
    assert res.json()["detail"] == "Not enough available seats"

    assert await seats_left(client, ride["id"]) == 2
    bookings = await test_db.execute(select(func.count(Booking.id)))
    assert bookings.scalar_one() == 0
    notifications = await test_db.execute(select(func.count(Notification.id)))
    assert notifications.scalar_one() == 0


@pytest.mark.asyncio
async def test_booking_notifies_owner(client, publish_ride):
    ride = await publish_ride(seats=3)
    await client.post(f"/rides/{ride['id']}/bookings", json={"seats": 1}, headers=auth_headers("rider_a"))

    res = await client.get("/notifications", headers=auth_headers("owner_1"))
    notes = res.json()
    assert len(notes) == 1
    assert notes[0]["type"] == "booking"
    assert notes[0]["ride_id"] == ride["id"]
    assert notes[0]["message"] == "Someone booked 1 seat(s) on your ride from Springfield to Shelbyville"


@pytest.mark.asyncio
async def test_booking_rejections(client, publish_ride):
    ride = await publish_ride(seats=3)
    url = f"/rides/{ride['id']}/bookings"

    missing = await client.post("/rides/does-not-exist/bookings", json={"seats": 1}, headers=auth_headers("rider_a"))
    assert missing.status_code == 404
    assert missing.json()["detail"] == "Ride does not exist"

    own = await client.post(url, json={"seats": 1}, headers=auth_headers("owner_1"))
    assert own.status_code == 400
    assert own.json()["detail"] == "You cannot book your own ride"

    zero = await client.post(url, json={"seats": 0}, headers=auth_headers("rider_a"))
    assert zero.status_code == 400

    first = await client.post(url, json={"seats": 1}, headers=auth_headers("rider_a"))
    assert first.status_code == 201
    again = await client.post(url, json={"seats": 1}, headers=auth_headers("rider_a"))
    assert again.status_code == 409
    assert again.json()["detail"] == "You already have an active booking for this ride"
    # The rejected attempt must not have taken seats
    assert await seats_left(client, ride["id"]) == 2


@pytest.mark.asyncio
async def test_closed_ride_cannot_be_booked(client, publish_ride):
    ride = await publish_ride(seats=3)
    await client.patch(f"/rides/{ride['id']}/status", json={"status": "finished"}, headers=auth_headers("owner_1"))

    res = await client.post(f"/rides/{ride['id']}/bookings", json={"seats": 1}, headers=auth_headers("rider_a"))
    assert res.status_code == 400
    assert await seats_left(client, ride["id"]) == 3


@pytest.mark.asyncio
async def test_cancelling_twice_does_not_double_credit(client, publish_ride):
    ride = await publish_ride(seats=4)
    booking = (await client.post(f"/rides/{ride['id']}/bookings", json={"seats": 3}, headers=auth_headers("rider_a"))).json()

    first = await client.post(f"/bookings/{booking['id']}/cancel", headers=auth_headers("rider_a"))
    assert first.status_code == 200
    second = await client.post(f"/bookings/{booking['id']}/cancel", headers=auth_headers("rider_a"))
    assert second.status_code == 409
    assert second.json()["detail"] == "Booking is already cancelled"

    assert await seats_left(client, ride["id"]) == 4


@pytest.mark.asyncio
async def test_only_rider_can_cancel(client, publish_ride):
    ride = await publish_ride(seats=4)
    booking = (await client.post(f"/rides/{ride['id']}/bookings", json={"seats": 2}, headers=auth_headers("rider_a"))).json()

    res = await client.post(f"/bookings/{booking['id']}/cancel", headers=auth_headers("owner_1"))
    assert res.status_code == 403
    assert await seats_left(client, ride["id"]) == 2

    missing = await client.post("/bookings/nope/cancel", headers=auth_headers("rider_a"))
    assert missing.status_code == 404


@pytest.mark.asyncio
async def test_rider_can_rebook_after_cancelling(client, publish_ride):
    ride = await publish_ride(seats=4)
    url = f"/rides/{ride['id']}/bookings"
    booking = (await client.post(url, json={"seats": 2}, headers=auth_headers("rider_a"))).json()
    await client.post(f"/bookings/{booking['id']}/cancel", headers=auth_headers("rider_a"))

    res = await client.post(url, json={"seats": 1}, headers=auth_headers("rider_a"))
    assert res.status_code == 201

    mine = await client.get("/bookings/mine", headers=auth_headers("rider_a"))
    assert sorted(b["status"] for b in mine.json()) == ["active", "cancelled"]


@pytest.mark.asyncio
async def test_seat_accounting_holds_across_bookings_and_cancellations(client, publish_ride, test_db):
    ride = await publish_ride(seats=4)
    url = f"/rides/{ride['id']}/bookings"

    a = (await client.post(url, json={"seats": 1}, headers=auth_headers("rider_a"))).json()
    await client.post(url, json={"seats": 2}, headers=auth_headers("rider_b"))
    await client.post(f"/bookings/{a['id']}/cancel", headers=auth_headers("rider_a"))
    await client.post(url, json={"seats": 3}, headers=auth_headers("rider_c"))  # rejected, only 2 left
    await client.post(url, json={"seats": 2}, headers=auth_headers("rider_d"))

    result = await test_db.execute(
        select(func.coalesce(func.sum(Booking.seats_booked), 0)).where(
            Booking.ride_id == ride["id"], Booking.status == "active"
        )
    )
    active_seats = result.scalar_one()
    assert await seats_left(client, ride["id"]) + active_seats == 4
    assert await seats_left(client, ride["id"]) == 0


async def _seed_ride(session_factory, seats):
    async with session_factory() as session:
        car = Car(owner_id="owner_1", name="Van", max_capacity=seats)
        session.add(car)
        await session.flush()
        start = datetime.utcnow() + timedelta(days=1)
        ride = Ride(
            owner_id="owner_1",
            car_id=car.id,
            pickup_location="Library",
            destination_location="Airport",
            start_datetime=start,
            end_datetime=start + timedelta(hours=1),
            price_per_seat=5.0,
            available_seats=seats,
        )
        session.add(ride)
        await session.commit()
        return ride.id


async def _book(session_factory, ride_id, rider_id, seats):
    async with session_factory() as session:
        return await BookingEngine(session).book_seats(ride_id, rider_id, seats)


@pytest.mark.asyncio
async def test_concurrent_bookings_for_all_seats_only_one_wins(file_db):
    ride_id = await _seed_ride(file_db, seats=3)

    results = await asyncio.gather(
        _book(file_db, ride_id, "rider_a", 3),
        _book(file_db, ride_id, "rider_b", 3),
        return_exceptions=True,
    )

    winners = [r for r in results if isinstance(r, Booking)]
    losers = [r for r in results if isinstance(r, Exception)]
    assert len(winners) == 1
    assert len(losers) == 1
    assert isinstance(losers[0], InsufficientSeats)

    async with file_db() as session:
        ride = await session.get(Ride, ride_id)
        assert ride.available_seats == 0
        count = await session.execute(select(func.count(Booking.id)).where(Booking.ride_id == ride_id))
        assert count.scalar_one() == 1


@pytest.mark.asyncio
async def test_engine_rejects_unknown_ride_and_repeat_cancel(file_db):
    ride_id = await _seed_ride(file_db, seats=2)

    async with file_db() as session:
        with pytest.raises(RideNotFound):
            await BookingEngine(session).book_seats("missing", "rider_a", 1)

    booking = await _book(file_db, ride_id, "rider_a", 2)
    async with file_db() as session:
        engine = BookingEngine(session)
        await engine.cancel_booking(booking.id, "rider_a")
        with pytest.raises(BookingAlreadyCancelled):
            await engine.cancel_booking(booking.id, "rider_a")

    async with file_db() as session:
        ride = await session.get(Ride, ride_id)
        assert ride.available_seats == 2


async def _cancel(session_factory, booking_id, rider_id):
    async with session_factory() as session:
        return await BookingEngine(session).cancel_booking(booking_id, rider_id)


@pytest.mark.asyncio
async def test_seat_accounting_holds_under_concurrent_cancel_and_book(file_db):
    ride_id = await _seed_ride(file_db, seats=4)
    booking_a = await _book(file_db, ride_id, "rider_a", 2)
    await _book(file_db, ride_id, "rider_b", 2)

    # The same booking cancelled twice while another rider books the freed seats
    results = await asyncio.gather(
        _cancel(file_db, booking_a.id, "rider_a"),
        _cancel(file_db, booking_a.id, "rider_a"),
        _book(file_db, ride_id, "rider_c", 2),
        return_exceptions=True,
    )

    cancels = results[:2]
    assert sum(isinstance(r, Booking) for r in cancels) == 1
    assert sum(isinstance(r, BookingAlreadyCancelled) for r in cancels) == 1
    assert isinstance(results[2], (Booking, InsufficientSeats))

    async with file_db() as session:
        ride = await session.get(Ride, ride_id)
        active = await session.execute(
            select(func.coalesce(func.sum(Booking.seats_booked), 0)).where(
                Booking.ride_id == ride_id, Booking.status == "active"
            )
        )
        assert ride.available_seats + active.scalar_one() == 4
        assert 0 <= ride.available_seats <= 4


@pytest.mark.asyncio
async def test_store_errors_are_logged_with_traceback(file_db, monkeypatch, caplog):
    ride_id = await _seed_ride(file_db, seats=2)

    async with file_db() as session:
        async def broken_execute(*args, **kwargs):
            raise OperationalError("UPDATE rides", {}, Exception("disk I/O error"))

        monkeypatch.setattr(session, "execute", broken_execute)
        with caplog.at_level(logging.WARNING, logger="booking_engine"):
            with pytest.raises(OperationalError):
                await BookingEngine(session).book_seats(ride_id, "rider_a", 1)

    errors = [r for r in caplog.records if r.name == "booking_engine"]
    assert len(errors) == 1
    assert errors[0].levelno == logging.ERROR
    assert errors[0].exc_info is not None

    async with file_db() as session:
        ride = await session.get(Ride, ride_id)
        assert ride.available_seats == 2


@pytest.mark.asyncio
async def test_rejections_are_logged_as_warnings(file_db, caplog):
    ride_id = await _seed_ride(file_db, seats=1)

    async with file_db() as session:
        with caplog.at_level(logging.WARNING, logger="booking_engine"):
            with pytest.raises(InsufficientSeats):
                await BookingEngine(session).book_seats(ride_id, "rider_a", 2)

    records = [r for r in caplog.records if r.name == "booking_engine"]
    assert [r.levelno for r in records] == [logging.WARNING]
    assert records[0].exc_info is None
