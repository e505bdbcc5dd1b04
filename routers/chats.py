import logging
from fastapi import APIRouter, Depends, BackgroundTasks
from sqlalchemy.ext.asyncio import AsyncSession
from typing import List

from database import get_db
from auth import require_user
from schemas import ChatResponse, MessageCreate, MessageResponse
from chat_service import ChatService, participants, unread_for
from mailer import Mailer, get_mailer

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/chats", tags=["chats"])

def to_response(chat, user_id: str) -> ChatResponse:
    return ChatResponse(
        id=chat.id,
        participants=participants(chat),
        last_message=chat.last_message or "",
        updated_at=chat.updated_at,
        unread_count=unread_for(chat, user_id),
    )

@router.get("", response_model=List[ChatResponse])
async def list_chats(current=Depends(require_user), db: AsyncSession = Depends(get_db)):
    chats = await ChatService(db).list_chats(current["user_id"])
    return [to_response(c, current["user_id"]) for c in chats]

@router.get("/{chat_id}", response_model=ChatResponse)
async def get_chat(chat_id: str, current=Depends(require_user), db: AsyncSession = Depends(get_db)):
    chat = await ChatService(db).get_chat(chat_id, current["user_id"])
    return to_response(chat, current["user_id"])

@router.get("/{chat_id}/messages", response_model=List[MessageResponse])
async def list_messages(chat_id: str, current=Depends(require_user), db: AsyncSession = Depends(get_db)):
    return await ChatService(db).list_messages(chat_id, current["user_id"])

@router.post("/{chat_id}/messages", response_model=MessageResponse, status_code=201)
async def send_message(
    chat_id: str,
    body: MessageCreate,
    background_tasks: BackgroundTasks,
    current=Depends(require_user),
    db: AsyncSession = Depends(get_db),
    mailer: Mailer = Depends(get_mailer),
):
    service = ChatService(db)
    message = await service.send_message(chat_id, current["user_id"], body.text)

    # Email the other participant once the message is committed
    chat = await service.get_chat(chat_id, current["user_id"])
    recipient_email = await service.recipient_email(chat, current["user_id"])
    if recipient_email:
        background_tasks.add_task(mailer.send_chat_notification, recipient_email, message.text, chat_id)
    else:
        logger.info("No email on file for recipient in chat %s, skipping email", chat_id)
    return message

@router.post("/{chat_id}/read", response_model=ChatResponse)
async def mark_chat_read(chat_id: str, current=Depends(require_user), db: AsyncSession = Depends(get_db)):
    chat = await ChatService(db).mark_read(chat_id, current["user_id"])
    return to_response(chat, current["user_id"])
