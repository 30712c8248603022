"""
Twilio payload decoding.

Inbound messages and status callbacks arrive as flat key/value forms (``MessageSid``, ``From``,
``Body``, ``MessageStatus``, ...); the Messages list resource returns snake_case JSON.
"""

from datetime import UTC, datetime
from email.utils import parsedate_to_datetime
from typing import Any

from chatbridge.core.logging.logger import get_logger
from chatbridge.domain.enums import MessageDirection, MessageStatus, MessageType
from chatbridge.domain.errors import InvalidAddressError
from chatbridge.domain.models import InboundEvent, NormalizedMessage, StatusUpdate
from chatbridge.utils.media import message_type_for_media
from chatbridge.utils.phone import normalize_phone

logger = get_logger(__name__)

INBOUND_EVENT = "message.received"
STATUS_EVENT = "message.status"

_STATUS_MAP = {
    "accepted": MessageStatus.QUEUED,
    "queued": MessageStatus.QUEUED,
    "sending": MessageStatus.QUEUED,
    "sent": MessageStatus.SENT,
    "delivered": MessageStatus.DELIVERED,
    "read": MessageStatus.READ,
    "failed": MessageStatus.FAILED,
    "undelivered": MessageStatus.FAILED,
    "received": MessageStatus.RECEIVED,
}


def parse_twilio_date(value: str | None) -> datetime:
    """Twilio dates are RFC 2822 (``Wed, 18 Aug 2021 20:01:10 +0000``)."""
    if not value:
        return datetime.now(UTC)
    try:
        parsed = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return datetime.now(UTC)
    return parsed if parsed.tzinfo else parsed.replace(tzinfo=UTC)


def map_status(raw: str | None) -> MessageStatus | None:
    return _STATUS_MAP.get((raw or "").lower())


def decode_webhook(payload: dict[str, Any]) -> InboundEvent:
    """
    Decode a Twilio inbound-message webhook or status callback.

    A payload carrying ``MessageStatus``/``SmsStatus`` other than ``received`` is a status
    callback; its event id is ``<MessageSid>:<status>`` so each transition is logged once.
    """
    sid = payload.get("MessageSid") or payload.get("SmsMessageSid")
    raw_status = payload.get("MessageStatus") or payload.get("SmsStatus")

    if raw_status and raw_status.lower() != "received":
        status = map_status(raw_status)
        event_id = f"{sid}:{raw_status.lower()}" if sid else None
        event = InboundEvent(event_id=event_id, event_type=STATUS_EVENT)
        if sid and status is not None:
            event.status_update = StatusUpdate(external_id=sid, status=status)
        return event

    event = InboundEvent(event_id=sid, event_type=INBOUND_EVENT)
    if not sid:
        return event

    try:
        customer = normalize_phone(payload.get("From"))
        business = normalize_phone(payload.get("To"))
    except InvalidAddressError as exc:
        logger.debug(f"Twilio event {sid} skipped: {exc.message}")
        return event

    media_url = None
    media_type = None
    if int(payload.get("NumMedia") or 0) > 0:
        media_url = payload.get("MediaUrl0")
        media_type = payload.get("MediaContentType0")

    event.message = NormalizedMessage(
        external_id=sid,
        direction=MessageDirection.INBOUND,
        from_address=customer,
        to_address=business,
        body=payload.get("Body") or "",
        message_type=message_type_for_media(media_url, media_type)
        if media_url
        else MessageType.TEXT,
        media_url=media_url,
        media_content_type=media_type,
        status=MessageStatus.RECEIVED,
        sender_name=payload.get("ProfileName"),
    )
    return event


def decode_resource(item: dict[str, Any]) -> NormalizedMessage | None:
    """Decode one entry of the Messages list resource."""
    sid = item.get("sid")
    if not sid:
        return None
    try:
        from_address = normalize_phone(item.get("from"))
        to_address = normalize_phone(item.get("to"))
    except InvalidAddressError:
        return None

    outbound = (item.get("direction") or "").startswith("outbound")
    return NormalizedMessage(
        external_id=sid,
        direction=MessageDirection.OUTBOUND if outbound else MessageDirection.INBOUND,
        from_address=from_address,
        to_address=to_address,
        body=item.get("body") or "",
        message_type=MessageType.TEXT
        if int(item.get("num_media") or 0) == 0
        else MessageType.DOCUMENT,
        status=map_status(item.get("status"))
        or (MessageStatus.SENT if outbound else MessageStatus.RECEIVED),
        timestamp=parse_twilio_date(item.get("date_sent") or item.get("date_created")),
    )
