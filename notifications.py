from typing import List
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy import select, update, func

from models import Notification
from exceptions import NotificationNotFound
from events import hub, user_topic


def build_notification(user_id: str, type_: str, message: str, ride_id: str = None, chat_id: str = None) -> Notification:
    """Returns an unsaved notification; callers add it inside their own transaction."""
    return Notification(
        user_id=user_id,
        type=type_,
        message=message,
        read=False,
        ride_id=ride_id,
        chat_id=chat_id,
    )


def publish_notification(notification: Notification):
    """Pushes a committed notification to its owner's live feed."""
    hub.publish(
        user_topic(notification.user_id),
        "notification.created",
        {
            "id": notification.id,
            "type": notification.type,
            "message": notification.message,
            "ride_id": notification.ride_id,
            "chat_id": notification.chat_id,
        },
    )


def ride_label(ride) -> str:
    pickup = ride.pickup_city or ride.pickup_location
    destination = ride.destination_city or ride.destination_location
    return f"from {pickup} to {destination}"


class NotificationService:
    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def list_for_user(self, user_id: str, unread_only: bool = False, limit: int = 50) -> List[Notification]:
        stmt = select(Notification).where(Notification.user_id == user_id)
        if unread_only:
            stmt = stmt.where(Notification.read.is_(False))
        stmt = stmt.order_by(Notification.created_at.desc()).limit(limit)
        # Bulk "mark all read" bypasses the identity map
        stmt = stmt.execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def unread_count(self, user_id: str) -> int:
        stmt = select(func.count(Notification.id)).where(
            Notification.user_id == user_id,
            Notification.read.is_(False),
        )
        result = await self.db.execute(stmt)
        return result.scalar_one()

    async def mark_read(self, notification_id: str, user_id: str) -> Notification:
        result = await self.db.execute(
            select(Notification).where(Notification.id == notification_id)
        )
        notification = result.scalar_one_or_none()
        # Other users' notifications are reported as missing
        if not notification or notification.user_id != user_id:
            raise NotificationNotFound()
        notification.read = True
        await self.db.commit()
        await self.db.refresh(notification)
        return notification

    async def mark_all_read(self, user_id: str) -> int:
        stmt = update(Notification).where(
            Notification.user_id == user_id,
            Notification.read.is_(False),
        ).values(read=True).execution_options(synchronize_session=False)
        result = await self.db.execute(stmt)
        await self.db.commit()
        return result.rowcount
