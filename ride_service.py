import logging
import datetime
from typing import List, Optional
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, func

from models import Ride, Car, Booking
from schemas import RideCreate
from exceptions import RideNotFound, CarNotFound, PermissionDenied, ValidationError
from notifications import build_notification, publish_notification, ride_label
from events import hub, ride_topic

logger = logging.getLogger(__name__)

RIDE_STATUS_LABELS = {
    "not_started": "Not Started",
    "waiting_for_customer": "Waiting for Customer",
    "started": "Started",
    "finished": "Finished",
    "cancelled": "Cancelled",
}


def same_place(a: str, b: str) -> bool:
    return a.strip().lower() == b.strip().lower()


class RideService:
    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def publish_ride(self, owner_id: str, data: RideCreate) -> Ride:
        """
        Publishes a ride for one of the owner's cars.

        Seats offered can never exceed the car's capacity; this is what keeps
        ``available_seats`` within ``[0, max_capacity]`` once bookings and
        cancellations start moving it.
        """
        if same_place(data.pickup_location, data.destination_location):
            raise ValidationError("Pickup and destination locations cannot be the same.")
        if data.end_datetime <= data.start_datetime:
            raise ValidationError("End date/time must be after the start date/time.")

        car = await self.db.get(Car, data.car_id)
        if not car or car.owner_id != owner_id:
            raise CarNotFound()
        if data.available_seats > car.max_capacity:
            raise ValidationError(f"Available seats cannot exceed car capacity of {car.max_capacity}.")

        fields = data.model_dump()
        if not data.tolls_included:
            fields["toll_price"] = 0.0

        ride = Ride(owner_id=owner_id, status="not_started", **fields)
        self.db.add(ride)
        await self.db.commit()
        await self.db.refresh(ride)
        logger.info("Ride %s published by %s with %d seat(s)", ride.id, owner_id, ride.available_seats)
        return ride

    async def get_ride(self, ride_id: str) -> Ride:
        ride = await self.db.get(Ride, ride_id, populate_existing=True)
        if not ride:
            raise RideNotFound()
        return ride

    async def get_owned_ride(self, ride_id: str, owner_id: str) -> Ride:
        ride = await self.get_ride(ride_id)
        if ride.owner_id != owner_id:
            raise PermissionDenied("Only the ride owner can do this")
        return ride

    async def search(
        self,
        pickup: str,
        destination: str,
        max_price: Optional[float] = None,
        min_seats: Optional[int] = None,
        air_conditioning: bool = False,
        wifi: bool = False,
    ) -> List[Ride]:
        if same_place(pickup, destination):
            raise ValidationError("Pickup and destination locations cannot be the same.")

        stmt = select(Ride).where(
            func.lower(func.trim(Ride.pickup_location)) == pickup.strip().lower(),
            func.lower(func.trim(Ride.destination_location)) == destination.strip().lower(),
        )
        if max_price is not None:
            stmt = stmt.where(Ride.price_per_seat <= max_price)
        if min_seats:
            stmt = stmt.where(Ride.available_seats >= min_seats)
        if air_conditioning:
            stmt = stmt.where(Ride.air_conditioning.is_(True))
        if wifi:
            stmt = stmt.where(Ride.wifi_available.is_(True))

        stmt = stmt.order_by(Ride.start_datetime).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def rides_for_owner(self, owner_id: str) -> List[Ride]:
        stmt = select(Ride).where(Ride.owner_id == owner_id).order_by(
            Ride.start_datetime.desc()
        ).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def update_status(self, ride_id: str, owner_id: str, status: str) -> Ride:
        """
        Sets the ride status. Any status may follow any other; only ownership
        is checked. Riders with an active booking are notified.
        """
        ride = await self.get_owned_ride(ride_id, owner_id)
        if ride.status == status:
            return ride

        previous = ride.status
        ride.status = status
        ride.updated_at = datetime.datetime.utcnow()

        result = await self.db.execute(
            select(Booking.rider_id).where(
                Booking.ride_id == ride_id,
                Booking.status == "active",
            )
        )
        rider_ids = sorted(set(result.scalars().all()))
        notifications = [
            build_notification(
                rider_id,
                "ride_status",
                f"Your ride {ride_label(ride)} is now {RIDE_STATUS_LABELS[status]}",
                ride_id=ride_id,
            )
            for rider_id in rider_ids
        ]
        self.db.add_all(notifications)
        await self.db.commit()
        await self.db.refresh(ride)
        logger.info("Ride %s status %s -> %s", ride_id, previous, status)

        for notification in notifications:
            publish_notification(notification)
        hub.publish(ride_topic(ride_id), "ride.updated", {"ride_id": ride_id, "status": status})
        return ride
