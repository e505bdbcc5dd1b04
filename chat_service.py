import hashlib
import logging
import datetime
from typing import List, Tuple
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.exc import IntegrityError
from sqlalchemy import select, update, or_

from models import Chat, Message, User
from exceptions import ChatNotFound, PermissionDenied, ValidationError
from notifications import build_notification, publish_notification
from events import hub, user_topic, chat_topic

logger = logging.getLogger(__name__)


def pair_key(user_a: str, user_b: str) -> str:
    """Deterministic key for an unordered pair of participants."""
    first, second = sorted([user_a, user_b])
    return hashlib.sha256(f"{first}|{second}".encode("utf-8")).hexdigest()


def participants(chat: Chat) -> List[str]:
    return [chat.participant_a, chat.participant_b]


def unread_for(chat: Chat, user_id: str) -> int:
    if user_id == chat.participant_a:
        return chat.unread_a
    if user_id == chat.participant_b:
        return chat.unread_b
    return 0


class ChatService:
    """
    Two-party conversations.

    A conversation is keyed by its participant pair, so there is at most one
    chat per pair. Creation relies on the unique ``pair_key`` column rather than
    scanning existing chats, which keeps concurrent "open chat" calls from both
    sides from producing duplicates.
    """

    def __init__(self, db_session: AsyncSession):
        self.db = db_session

    async def get_or_create_chat(self, user_a: str, user_b: str) -> Tuple[Chat, bool]:
        if user_a == user_b:
            raise ValidationError("You cannot start a chat with yourself")

        key = pair_key(user_a, user_b)
        chat = await self._find_by_key(key)
        if chat:
            return chat, False

        first, second = sorted([user_a, user_b])
        chat = Chat(
            pair_key=key,
            participant_a=first,
            participant_b=second,
            last_message="",
            unread_a=0,
            unread_b=0,
            message_count=0,
        )
        self.db.add(chat)
        try:
            await self.db.commit()
        except IntegrityError:
            # The other participant created it first
            await self.db.rollback()
            chat = await self._find_by_key(key)
            if not chat:
                raise
            return chat, False

        await self.db.refresh(chat)
        logger.info("Created chat %s", chat.id)
        return chat, True

    async def _find_by_key(self, key: str):
        result = await self.db.execute(
            select(Chat).where(Chat.pair_key == key).execution_options(populate_existing=True)
        )
        return result.scalar_one_or_none()

    async def get_chat(self, chat_id: str, user_id: str) -> Chat:
        result = await self.db.execute(
            select(Chat).where(Chat.id == chat_id).execution_options(populate_existing=True)
        )
        chat = result.scalar_one_or_none()
        if not chat:
            raise ChatNotFound()
        if user_id not in participants(chat):
            raise PermissionDenied("You are not a participant in this chat")
        return chat

    async def list_chats(self, user_id: str) -> List[Chat]:
        stmt = select(Chat).where(
            or_(Chat.participant_a == user_id, Chat.participant_b == user_id)
        ).order_by(Chat.updated_at.desc()).execution_options(populate_existing=True)
        result = await self.db.execute(stmt)
        return list(result.scalars().all())

    async def send_message(self, chat_id: str, sender_id: str, text: str) -> Message:
        """
        Appends a message and bumps the recipient's unread counter.

        The message sequence comes from the chat's counter, incremented in the
        same transaction, so messages in a chat are strictly ordered.
        """
        text = (text or "").strip()
        if not text:
            raise ValidationError("Message cannot be empty")

        chat = await self.get_chat(chat_id, sender_id)
        recipient_id = chat.participant_b if sender_id == chat.participant_a else chat.participant_a
        now = datetime.datetime.utcnow()

        values = {
            "message_count": Chat.message_count + 1,
            "last_message": text,
            "updated_at": now,
        }
        if recipient_id == chat.participant_a:
            values["unread_a"] = Chat.unread_a + 1
        else:
            values["unread_b"] = Chat.unread_b + 1

        try:
            await self.db.execute(
                update(Chat).where(Chat.id == chat_id).values(**values)
                .execution_options(synchronize_session=False)
            )
            chat = await self.db.get(Chat, chat_id, populate_existing=True)

            message = Message(
                chat_id=chat_id,
                sender_id=sender_id,
                text=text,
                sequence=chat.message_count,
                created_at=now,
            )
            notification = build_notification(
                recipient_id,
                "chat",
                f"New message: {text[:100]}",
                chat_id=chat_id,
            )
            self.db.add_all([message, notification])
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            logger.exception("Failed to send message in chat %s", chat_id)
            raise

        await self.db.refresh(message)

        hub.publish(chat_topic(chat_id), "message.created", {
            "id": message.id,
            "sender_id": sender_id,
            "text": text,
            "sequence": message.sequence,
        })
        publish_notification(notification)
        return message

    async def list_messages(self, chat_id: str, user_id: str) -> List[Message]:
        await self.get_chat(chat_id, user_id)
        result = await self.db.execute(
            select(Message).where(Message.chat_id == chat_id).order_by(Message.sequence)
        )
        return list(result.scalars().all())

    async def mark_read(self, chat_id: str, user_id: str) -> Chat:
        chat = await self.get_chat(chat_id, user_id)
        if user_id == chat.participant_a:
            chat.unread_a = 0
        else:
            chat.unread_b = 0
        await self.db.commit()
        await self.db.refresh(chat)
        return chat

    async def recipient_email(self, chat: Chat, sender_id: str):
        recipient_id = chat.participant_b if sender_id == chat.participant_a else chat.participant_a
        result = await self.db.execute(select(User.email).where(User.id == recipient_id))
        return result.scalar_one_or_none()
