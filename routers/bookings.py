from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from database import get_db
from auth import require_user
from schemas import BookingResponse
from booking_engine import BookingEngine

router = APIRouter(prefix="/bookings", tags=["bookings"])

@router.get("/mine", response_model=List[BookingResponse])
async def my_bookings(current=Depends(require_user), db: AsyncSession = Depends(get_db)):
    return await BookingEngine(db).bookings_for_rider(current["user_id"])

@router.post("/{booking_id}/cancel", response_model=BookingResponse)
async def cancel_booking(booking_id: str, current=Depends(require_user), db: AsyncSession = Depends(get_db)):
    return await BookingEngine(db).cancel_booking(booking_id, current["user_id"])
