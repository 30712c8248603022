"""Helpers for classifying media and building conversation previews."""

import mimetypes
from urllib.parse import urlparse

from chatbridge.domain.enums import MessageType

PREVIEW_LENGTH = 100

_EXTENSION_TYPES = {
    ".jpg": MessageType.IMAGE,
    ".jpeg": MessageType.IMAGE,
    ".png": MessageType.IMAGE,
    ".gif": MessageType.IMAGE,
    ".webp": MessageType.IMAGE,
    ".mp4": MessageType.VIDEO,
    ".mov": MessageType.VIDEO,
    ".avi": MessageType.VIDEO,
    ".3gp": MessageType.VIDEO,
    ".mp3": MessageType.AUDIO,
    ".ogg": MessageType.AUDIO,
    ".oga": MessageType.AUDIO,
    ".wav": MessageType.AUDIO,
    ".m4a": MessageType.AUDIO,
    ".aac": MessageType.AUDIO,
}


def message_type_for_media(
    media_url: str | None, content_type: str | None = None
) -> MessageType:
    """
    Classify a media attachment.

    The content type wins when present; otherwise the URL extension decides. Anything
    unrecognized is a document.
    """
    if not media_url and not content_type:
        return MessageType.TEXT

    if content_type:
        major = content_type.split("/", 1)[0].lower()
        if major == "image":
            return MessageType.IMAGE
        if major == "video":
            return MessageType.VIDEO
        if major == "audio":
            return MessageType.AUDIO
        return MessageType.DOCUMENT

    path = urlparse(media_url).path.lower()
    for extension, message_type in _EXTENSION_TYPES.items():
        if path.endswith(extension):
            return message_type
    return MessageType.DOCUMENT


def guess_content_type(media_url: str | None) -> str | None:
    if not media_url:
        return None
    content_type, _ = mimetypes.guess_type(urlparse(media_url).path)
    return content_type


def file_name_from_url(media_url: str) -> str:
    name = urlparse(media_url).path.rsplit("/", 1)[-1]
    return name or "file"


def build_preview(body: str | None, message_type: MessageType | str) -> str:
    """First 100 characters of the body, or ``[image]`` style for body-less media."""
    text = (body or "").strip()
    if not text:
        value = message_type.value if isinstance(message_type, MessageType) else message_type
        return f"[{value}]"
    if len(text) > PREVIEW_LENGTH:
        return text[:PREVIEW_LENGTH] + "..."
    return text
