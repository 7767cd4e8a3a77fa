"""Friend-to-friend chat.

Messages are stored on both sides of the friend edge and then emitted to the
edge's room. A client that missed the emission reads the history instead.
"""

import logging

from fastapi import APIRouter, Depends

from shared.schemas import (
    ChatHistoryRequest, ChatMessage, ChatUserRequest, MessageCreate, is_valid_id,
)
from ..cache import user_key
from ..errors import NotFoundError, ValidationError, server_errors
from ..services import Services, clean, clean_email, concurrent_writes, get_services

logger = logging.getLogger(__name__)

router = APIRouter(tags=["chat"])

MAX_HISTORY = 200


@router.post("/chatUser")
async def get_chat_user(body: ChatUserRequest, services: Services = Depends(get_services)):
    """Public identity of the person on the other side of a chat."""
    user_email = clean_email(body.user_email)
    chat_email = clean_email(body.chat_email)
    if not user_email or not chat_email:
        raise ValidationError("Both e-mails are required")

    with server_errors("Failed to fetch chat user"):
        chat_user = await services.user(chat_email, "Chat user not found")
    return {
        "data": {
            "_id": chat_user["_id"],
            "email": chat_user["email"],
            "first_name": chat_user.get("first_name"),
            "last_name": chat_user.get("last_name"),
            "profile_image": chat_user.get("profile_image"),
        }
    }


@router.post("/chat/{friend_id}")
async def send_message(
    friend_id: str,
    body: MessageCreate,
    services: Services = Depends(get_services),
):
    """Store a message on both sides of the edge, then emit it to the chat room."""
    sender_email = clean_email(body.sender_email)
    receiver_email = clean_email(body.receiver_email)
    text = clean(body.text)
    limit = services.settings.max_message_length
    if not sender_email or not receiver_email or not is_valid_id(friend_id):
        raise ValidationError("Sender, receiver and a valid friend ID are required")
    if not 1 <= len(text) <= limit:
        raise ValidationError(f"Message must be between 1 and {limit} characters")

    with server_errors("Failed to send message"):
        edge = await services.db.get_friend(sender_email, friend_id)
        if not edge or edge["email"] != receiver_email:
            raise NotFoundError("Friend not found")

        message = ChatMessage(
            friend_id=friend_id,
            sender_email=sender_email,
            receiver_email=receiver_email,
            text=text,
        ).to_doc()
        await concurrent_writes(
            "send message",
            sender=services.db.push_chat_message(sender_email, friend_id, message),
            receiver=services.db.push_chat_message(receiver_email, friend_id, message),
        )

    await services.cache.delete(user_key(sender_email), user_key(receiver_email))
    services.fanout.emit_to_room(friend_id, "receiveMessage", message)

    logger.debug(f"Message {message['_id']} on edge {friend_id}")
    return {"message": "Message sent", "data": message}


@router.post("/getChatMessages")
async def get_messages(body: ChatHistoryRequest, services: Services = Depends(get_services)):
    """Most recent messages of a chat, oldest first."""
    user_email = clean_email(body.user_email)
    friend_id = clean(body.friend_id)
    if not user_email or not is_valid_id(friend_id):
        raise ValidationError("E-mail and a valid friend ID are required")

    with server_errors("Failed to fetch messages"):
        edge = await services.db.get_friend(user_email, friend_id)
    if not edge:
        raise NotFoundError("Friend not found")

    limit = min(max(body.limit, 1), MAX_HISTORY)
    return {
        "data": edge.get("chats", [])[-limit:],
        "friend": {
            "email": edge["email"],
            "first_name": edge.get("first_name"),
            "last_name": edge.get("last_name"),
            "profile_image": edge.get("profile_image"),
        },
    }
