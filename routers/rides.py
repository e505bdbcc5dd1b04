from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List, Optional

from database import get_db
from auth import require_user
from schemas import (
    RideCreate, RideResponse, RideStatusUpdate, BookingCreate, BookingResponse, ChatOpenResponse,
)
from ride_service import RideService
from booking_engine import BookingEngine
from chat_service import ChatService, participants, unread_for
from exceptions import PermissionDenied

router = APIRouter(prefix="/rides", tags=["rides"])

@router.post("", response_model=RideResponse, status_code=201)
async def publish_ride(ride: RideCreate, current=Depends(require_user), db: AsyncSession = Depends(get_db)):
    return await RideService(db).publish_ride(current["user_id"], ride)

@router.get("/search", response_model=List[RideResponse])
async def search_rides(
    pickup: str = Query(..., alias="from"),
    destination: str = Query(..., alias="to"),
    max_price: Optional[float] = Query(None, ge=0),
    min_seats: Optional[int] = Query(None, ge=1),
    air_conditioning: bool = False,
    wifi: bool = False,
    db: AsyncSession = Depends(get_db),
):
    return await RideService(db).search(
        pickup, destination,
        max_price=max_price,
        min_seats=min_seats,
        air_conditioning=air_conditioning,
        wifi=wifi,
    )

@router.get("/mine", response_model=List[RideResponse])
async def my_rides(current=Depends(require_user), db: AsyncSession = Depends(get_db)):
    return await RideService(db).rides_for_owner(current["user_id"])

@router.get("/{ride_id}", response_model=RideResponse)
async def get_ride(ride_id: str, db: AsyncSession = Depends(get_db)):
    return await RideService(db).get_ride(ride_id)

@router.get("/{ride_id}/bookings", response_model=List[BookingResponse])
async def ride_bookings(ride_id: str, current=Depends(require_user), db: AsyncSession = Depends(get_db)):
    await RideService(db).get_owned_ride(ride_id, current["user_id"])
    return await BookingEngine(db).bookings_for_ride(ride_id)

@router.patch("/{ride_id}/status", response_model=RideResponse)
async def update_ride_status(ride_id: str, body: RideStatusUpdate, current=Depends(require_user), db: AsyncSession = Depends(get_db)):
    return await RideService(db).update_status(ride_id, current["user_id"], body.status.value)

@router.post("/{ride_id}/bookings", response_model=BookingResponse, status_code=201)
async def book_ride(ride_id: str, body: BookingCreate, current=Depends(require_user), db: AsyncSession = Depends(get_db)):
    return await BookingEngine(db).book_seats(ride_id, current["user_id"], body.seats)

@router.post("/{ride_id}/chat", response_model=ChatOpenResponse)
async def open_ride_chat(ride_id: str, current=Depends(require_user), db: AsyncSession = Depends(get_db)):
    """Opens (or reuses) the conversation between the caller and the ride owner."""
    user_id = current["user_id"]
    ride = await RideService(db).get_ride(ride_id)
    if ride.owner_id == user_id:
        raise PermissionDenied("You cannot chat with yourself about your own ride")
    if not await BookingEngine(db).has_active_booking(ride_id, user_id):
        raise PermissionDenied("You need to book this ride before chatting with the owner.")

    chat, created = await ChatService(db).get_or_create_chat(ride.owner_id, user_id)
    return ChatOpenResponse(
        id=chat.id,
        participants=participants(chat),
        last_message=chat.last_message,
        updated_at=chat.updated_at,
        unread_count=unread_for(chat, user_id),
        created=created,
    )
