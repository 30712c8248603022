"""
GreenAPI payload decoding.

Turns GreenAPI webhook notifications, ``getChatHistory`` items and ``getChats`` entries into the
canonical models. Nothing outside this module reads GreenAPI JSON.
"""

from datetime import UTC, datetime
from typing import Any

from chatbridge.core.logging.logger import get_logger
from chatbridge.domain.enums import MessageDirection, MessageStatus, MessageType
from chatbridge.domain.errors import InvalidAddressError
from chatbridge.domain.models import (
    CustomerProfile,
    InboundEvent,
    NormalizedConversation,
    NormalizedMessage,
    StatusUpdate,
)
from chatbridge.utils.media import message_type_for_media
from chatbridge.utils.phone import normalize_phone

logger = get_logger(__name__)

INCOMING_MESSAGE = "incomingMessageReceived"
OUTGOING_MESSAGE = "outgoingMessageReceived"
OUTGOING_API_MESSAGE = "outgoingAPIMessageReceived"
OUTGOING_STATUS = "outgoingMessageStatus"

_MESSAGE_EVENTS = {INCOMING_MESSAGE, OUTGOING_MESSAGE, OUTGOING_API_MESSAGE}

_STATUS_MAP = {
    "pending": MessageStatus.QUEUED,
    "sent": MessageStatus.SENT,
    "delivered": MessageStatus.DELIVERED,
    "read": MessageStatus.READ,
    "failed": MessageStatus.FAILED,
    "noAccount": MessageStatus.FAILED,
    "notInGroup": MessageStatus.FAILED,
}

_TYPE_HINTS = {
    "imageMessage": MessageType.IMAGE,
    "videoMessage": MessageType.VIDEO,
    "audioMessage": MessageType.AUDIO,
    "documentMessage": MessageType.DOCUMENT,
}


def chat_id_to_address(chat_id: str | None) -> str:
    """``18095551234@c.us`` -> ``+18095551234``; raises for group chats."""
    if not chat_id or not chat_id.endswith("@c.us"):
        raise InvalidAddressError(chat_id, "not a GreenAPI personal chat id")
    return normalize_phone(chat_id)


def _timestamp(value: Any) -> datetime:
    try:
        return datetime.fromtimestamp(int(value), tz=UTC)
    except (TypeError, ValueError, OverflowError):
        return datetime.now(UTC)


def _content(message_data: dict[str, Any]) -> tuple[str, MessageType, str | None, str | None]:
    """Extract (body, type, media url, mime type) from a ``messageData`` block."""
    type_message = message_data.get("typeMessage", "textMessage")

    if type_message == "textMessage":
        text = (message_data.get("textMessageData") or {}).get("textMessage", "")
        return text or "", MessageType.TEXT, None, None

    if type_message in ("extendedTextMessage", "quotedMessage"):
        extended = message_data.get("extendedTextMessageData") or {}
        return extended.get("text", "") or "", MessageType.TEXT, None, None

    file_data = message_data.get("fileMessageData") or {}
    media_url = file_data.get("downloadUrl")
    mime_type = file_data.get("mimeType")
    message_type = _TYPE_HINTS.get(type_message) or message_type_for_media(
        media_url, mime_type
    )
    if message_type == MessageType.TEXT:
        message_type = MessageType.DOCUMENT
    return file_data.get("caption", "") or "", message_type, media_url, mime_type


def decode_webhook(payload: dict[str, Any], business_address: str | None) -> InboundEvent:
    """
    Decode one GreenAPI webhook notification.

    Args:
        payload: Raw notification body
        business_address: Tenant's normalized number, used when ``instanceData.wid`` is absent

    Returns:
        InboundEvent; ``message``/``status_update`` are None for events this service ignores
    """
    event_type = payload.get("typeWebhook")
    instance = payload.get("instanceData") or {}
    id_message = (
        payload.get("idMessage")
        or instance.get("idMessage")
        or (payload.get("messageData") or {}).get("idMessage")
    )

    if event_type == OUTGOING_STATUS:
        raw_status = payload.get("status", "")
        status = _STATUS_MAP.get(raw_status)
        event_id = f"{id_message}:{raw_status}" if id_message else None
        if not id_message or status is None:
            return InboundEvent(event_id=event_id, event_type=event_type)
        return InboundEvent(
            event_id=event_id,
            event_type=event_type,
            status_update=StatusUpdate(
                external_id=id_message,
                status=status,
                timestamp=_timestamp(payload.get("timestamp")),
            ),
        )

    event = InboundEvent(event_id=id_message, event_type=event_type)
    if event_type not in _MESSAGE_EVENTS or not id_message:
        return event

    sender = payload.get("senderData") or {}
    try:
        customer = chat_id_to_address(sender.get("chatId"))
        wid = instance.get("wid")
        business = normalize_phone(wid) if wid else business_address
    except InvalidAddressError as exc:
        logger.debug(f"GreenAPI event {id_message} skipped: {exc.message}")
        return event

    if not business:
        logger.warning(f"GreenAPI event {id_message} has no business address")
        return event

    body, message_type, media_url, mime_type = _content(payload.get("messageData") or {})
    inbound = event_type == INCOMING_MESSAGE
    event.message = NormalizedMessage(
        external_id=id_message,
        direction=MessageDirection.INBOUND if inbound else MessageDirection.OUTBOUND,
        from_address=customer if inbound else business,
        to_address=business if inbound else customer,
        body=body,
        message_type=message_type,
        media_url=media_url,
        media_content_type=mime_type,
        status=MessageStatus.RECEIVED if inbound else MessageStatus.SENT,
        timestamp=_timestamp(payload.get("timestamp")),
        sender_name=sender.get("senderName") if inbound else None,
    )
    return event


def decode_history_item(
    item: dict[str, Any], customer_address: str, business_address: str
) -> NormalizedMessage | None:
    """Decode one ``getChatHistory`` entry; returns None for empty entries."""
    id_message = item.get("idMessage")
    if not id_message:
        return None

    outgoing = item.get("type") == "outgoing"
    body = item.get("textMessage") or item.get("caption") or ""
    if not body and isinstance(item.get("extendedTextMessage"), dict):
        body = item["extendedTextMessage"].get("text", "")

    media_url = item.get("downloadUrl") or item.get("fileUrl") or item.get("url")
    mime_type = item.get("mimeType")
    if media_url:
        message_type = message_type_for_media(media_url, mime_type)
    else:
        message_type = _TYPE_HINTS.get(item.get("typeMessage", ""), MessageType.TEXT)

    if not body and not media_url:
        return None

    return NormalizedMessage(
        external_id=id_message,
        direction=MessageDirection.OUTBOUND if outgoing else MessageDirection.INBOUND,
        from_address=business_address if outgoing else customer_address,
        to_address=customer_address if outgoing else business_address,
        body=body,
        message_type=message_type,
        media_url=media_url,
        media_content_type=mime_type,
        status=_STATUS_MAP.get(item.get("statusMessage", ""), MessageStatus.DELIVERED)
        if outgoing
        else MessageStatus.RECEIVED,
        timestamp=_timestamp(item.get("timestamp")),
        sender_name=item.get("senderName"),
    )


def decode_chat(chat: dict[str, Any]) -> NormalizedConversation | None:
    """Decode one ``getChats`` entry; group chats and malformed ids yield None."""
    try:
        address = chat_id_to_address(chat.get("id"))
    except InvalidAddressError:
        return None

    last_at = chat.get("lastMessageTime") or chat.get("timestamp")
    return NormalizedConversation(
        customer_address=address,
        customer_name=chat.get("name") or None,
        last_message_at=_timestamp(last_at) if last_at else None,
        unread_count=int(chat.get("unreadCount") or 0),
    )


def decode_contact(info: dict[str, Any]) -> CustomerProfile | None:
    name = info.get("name") or info.get("contactName")
    avatar = info.get("avatar")
    if not name and not avatar:
        return None
    return CustomerProfile(name=name or None, avatar_url=avatar or None)
