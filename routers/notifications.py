from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from database import get_db
from auth import require_user
from schemas import NotificationResponse, UnreadCount
from notifications import NotificationService

router = APIRouter(prefix="/notifications", tags=["notifications"])

@router.get("", response_model=List[NotificationResponse])
async def list_notifications(
    unread_only: bool = False,
    limit: int = Query(50, ge=1, le=200),
    current=Depends(require_user),
    db: AsyncSession = Depends(get_db),
):
    return await NotificationService(db).list_for_user(current["user_id"], unread_only=unread_only, limit=limit)

@router.get("/unread-count", response_model=UnreadCount)
async def unread_count(current=Depends(require_user), db: AsyncSession = Depends(get_db)):
    return UnreadCount(unread=await NotificationService(db).unread_count(current["user_id"]))

@router.post("/read-all", response_model=UnreadCount)
async def mark_all_read(current=Depends(require_user), db: AsyncSession = Depends(get_db)):
    await NotificationService(db).mark_all_read(current["user_id"])
    return UnreadCount(unread=0)

@router.post("/{notification_id}/read", response_model=NotificationResponse)
async def mark_read(notification_id: str, current=Depends(require_user), db: AsyncSession = Depends(get_db)):
    return await NotificationService(db).mark_read(notification_id, current["user_id"])
