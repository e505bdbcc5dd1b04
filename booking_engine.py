import logging
import datetime
from typing import List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select, update

from models import Ride, Booking
from exceptions import (
    CampusRidesError, InvalidSeatCount, RideNotFound, RideClosed, OwnRideBooking, InsufficientSeats,
    DuplicateBooking, BookingNotFound, BookingAlreadyCancelled, PermissionDenied,
)
from notifications import build_notification, publish_notification, ride_label
from events import hub, user_topic, ride_topic

logger = logging.getLogger(__name__)

CLOSED_RIDE_STATUSES = ("finished", "cancelled")


class BookingEngine:
    """
    Moves seat capacity between a ride and its bookings.

    Both directions run as a single transaction whose contended write is a
    conditional UPDATE on ``rides.available_seats`` (optimistic locking): the
    row is only touched if the condition still holds when the statement runs,
    so concurrent riders can never overbook a ride or double-credit seats.
    On any failure the transaction is rolled back and nothing is persisted.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def book_seats(self, ride_id: str, rider_id: str, seats: int) -> Booking:
        """
        Decrements the ride's seat counter and records an active booking plus
        a notification for the ride owner, all-or-nothing.

        Raises:
            InvalidSeatCount: seats is not a positive integer.
            RideNotFound, OwnRideBooking, RideClosed, InsufficientSeats,
            DuplicateBooking: the ride could not take this booking.
        """
        if isinstance(seats, bool) or not isinstance(seats, int) or seats <= 0:
            raise InvalidSeatCount()

        try:
            stmt = update(Ride).where(
                Ride.id == ride_id,
                Ride.available_seats >= seats,
                Ride.status.notin_(CLOSED_RIDE_STATUSES),
                Ride.owner_id != rider_id,
            ).values(
                available_seats=Ride.available_seats - seats
            ).execution_options(synchronize_session=False)

            result = await self.db.execute(stmt)
            if result.rowcount == 0:
                raise await self._booking_rejection(ride_id, rider_id)

            existing = await self.db.execute(
                select(Booking.id).where(
                    Booking.ride_id == ride_id,
                    Booking.rider_id == rider_id,
                    Booking.status == "active",
                )
            )
            if existing.first():
                raise DuplicateBooking()

            ride = await self.db.get(Ride, ride_id, populate_existing=True)
            booking = Booking(
                ride_id=ride_id,
                rider_id=rider_id,
                seats_booked=seats,
                status="active",
            )
            notification = build_notification(
                ride.owner_id,
                "booking",
                f"Someone booked {seats} seat(s) on your ride {ride_label(ride)}",
                ride_id=ride_id,
            )
            self.db.add_all([booking, notification])
            await self.db.commit()
        except IntegrityError:
            # Lost a race against the same rider's concurrent request
            await self.db.rollback()
            logger.warning("Duplicate booking rejected for ride %s rider %s", ride_id, rider_id)
            raise DuplicateBooking()
        except CampusRidesError as exc:
            await self.db.rollback()
            logger.warning("Booking rejected for ride %s: %s", ride_id, exc)
            raise
        except Exception:
            await self.db.rollback()
            logger.exception("Booking failed for ride %s", ride_id)
            raise

        await self.db.refresh(booking)
        logger.info("Rider %s booked %d seat(s) on ride %s", rider_id, seats, ride_id)

        publish_notification(notification)
        hub.publish(user_topic(rider_id), "booking.created", {"booking_id": booking.id, "ride_id": ride_id})
        hub.publish(ride_topic(ride_id), "ride.updated", {"ride_id": ride_id, "available_seats": ride.available_seats})
        return booking

    async def _booking_rejection(self, ride_id: str, rider_id: str) -> Exception:
        """Works out why the conditional decrement matched no row."""
        ride = await self.db.get(Ride, ride_id, populate_existing=True)
        if not ride:
            return RideNotFound()
        if ride.owner_id == rider_id:
            return OwnRideBooking()
        if ride.status in CLOSED_RIDE_STATUSES:
            return RideClosed()
        return InsufficientSeats()

    async def cancel_booking(self, booking_id: str, user_id: str) -> Booking:
        """
        Flips an active booking to cancelled and returns its seats to the ride
        in the same transaction. Only the rider who made the booking may cancel
        it, and a booking can only be cancelled once.
        """
        try:
            stmt = update(Booking).where(
                Booking.id == booking_id,
                Booking.rider_id == user_id,
                Booking.status == "active",
            ).values(
                status="cancelled",
                cancelled_at=datetime.datetime.utcnow(),
            ).execution_options(synchronize_session=False)

            result = await self.db.execute(stmt)
            if result.rowcount == 0:
                raise await self._cancellation_rejection(booking_id, user_id)

            booking = await self.db.get(Booking, booking_id, populate_existing=True)

            # Increment in the database so the current counter is always used
            ride_stmt = update(Ride).where(
                Ride.id == booking.ride_id
            ).values(
                available_seats=Ride.available_seats + booking.seats_booked
            ).execution_options(synchronize_session=False)

            ride_result = await self.db.execute(ride_stmt)
            if ride_result.rowcount == 0:
                raise RideNotFound()

            ride = await self.db.get(Ride, booking.ride_id, populate_existing=True)
            notification = build_notification(
                ride.owner_id,
                "cancellation",
                f"A booking for {booking.seats_booked} seat(s) on your ride {ride_label(ride)} has been cancelled",
                ride_id=ride.id,
            )
            self.db.add(notification)
            await self.db.commit()
        except CampusRidesError as exc:
            await self.db.rollback()
            logger.warning("Cancellation rejected for booking %s: %s", booking_id, exc)
            raise
        except Exception:
            await self.db.rollback()
            logger.exception("Cancellation failed for booking %s", booking_id)
            raise

        await self.db.refresh(booking)
        logger.info("Booking %s cancelled, %d seat(s) returned to ride %s", booking_id, booking.seats_booked, ride.id)

        publish_notification(notification)
        hub.publish(user_topic(user_id), "booking.cancelled", {"booking_id": booking.id, "ride_id": ride.id})
        hub.publish(ride_topic(ride.id), "ride.updated", {"ride_id": ride.id, "available_seats": ride.available_seats})
        return booking

    async def _cancellation_rejection(self, booking_id: str, user_id: str) -> Exception:
        booking = await self.db.get(Booking, booking_id, populate_existing=True)
        if not booking:
            return BookingNotFound()
        if booking.rider_id != user_id:
            return PermissionDenied("Only the rider who made this booking can cancel it")
        return BookingAlreadyCancelled()

    async def bookings_for_rider(self, rider_id: str) -> List[Booking]:
        stmt = select(Booking).where(
            Booking.rider_id == rider_id
        ).order_by(Booking.booking_time.desc()).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def bookings_for_ride(self, ride_id: str, active_only: bool = False) -> List[Booking]:
        stmt = select(Booking).where(Booking.ride_id == ride_id)
        if active_only:
            stmt = stmt.where(Booking.status == "active")
        stmt = stmt.order_by(Booking.booking_time).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def has_active_booking(self, ride_id: str, rider_id: str) -> bool:
        result = await self.db.execute(
            select(Booking.id).where(
                Booking.ride_id == ride_id,
                Booking.rider_id == rider_id,
                Booking.status == "active",
            )
        )
        return result.first() is not None
