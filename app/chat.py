# FILE: app/chat.py
# ==============================================================================
# Guest/host messages attached to an approved booking request.
# ==============================================================================
import logging
from typing import List

from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from . import models
from .booking_requests import get_booking_request
from .errors import AuthorizationError, InvalidStateError, ValidationError
from .security import Identity, ensure_user

MAX_MESSAGE_LENGTH = 2000


async def _participant_request(db: AsyncSession, identity: Identity, booking_request_id: int) -> models.BookingRequest:
    identity = ensure_user(identity)
    request = await get_booking_request(db, booking_request_id)
    if identity.user_id not in (request.guest_id, request.host_id):
        raise AuthorizationError("Only the guest and host of this booking can use its chat")
    return request


async def list_messages(db: AsyncSession, identity: Identity, booking_request_id: int) -> List[models.ChatMessage]:
    await _participant_request(db, identity, booking_request_id)
    result = await db.execute(
        select(models.ChatMessage)
        .where(models.ChatMessage.booking_request_id == booking_request_id)
        .order_by(models.ChatMessage.created_at, models.ChatMessage.id)
    )
    return list(result.scalars().all())


async def post_message(db: AsyncSession, identity: Identity, booking_request_id: int, text: str) -> models.ChatMessage:
    request = await _participant_request(db, identity, booking_request_id)
    if request.status != models.BookingRequestStatus.APPROVED:
        raise InvalidStateError("Chat is available once the booking is approved")
    text = (text or "").strip()
    if not text:
        raise ValidationError("Message cannot be empty")
    if len(text) > MAX_MESSAGE_LENGTH:
        raise ValidationError(f"Message is longer than {MAX_MESSAGE_LENGTH} characters")

    message = models.ChatMessage(booking_request_id=request.id, sender_id=identity.user_id, message=text)
    db.add(message)
    await db.commit()
    await db.refresh(message)
    logging.info(f"CHAT: Message {message.id} posted on request {request.id} by {identity.user_id}.")
    return message
