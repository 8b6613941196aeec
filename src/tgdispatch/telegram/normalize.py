from __future__ import annotations

from typing import Any

import msgspec

from ..model import (
    UNDEFINED_ID,
    UPDATE_KINDS,
    NormalizedUpdate,
    UnrecognizedUpdateKind,
)
from .api_models import decode_update

__all__ = [
    "CONTENT_TYPES",
    "content_type_of",
    "is_self_forward",
    "normalize_update",
    "parse_update_body",
]

# Telegram message fields in the order used to tag a message's content type.
CONTENT_TYPES: tuple[str, ...] = (
    "text",
    "animation",
    "audio",
    "channel_chat_created",
    "contact",
    "delete_chat_photo",
    "dice",
    "document",
    "game",
    "group_chat_created",
    "invoice",
    "left_chat_member",
    "location",
    "migrate_from_chat_id",
    "migrate_to_chat_id",
    "new_chat_members",
    "new_chat_photo",
    "new_chat_title",
    "passport_data",
    "photo",
    "pinned_message",
    "poll",
    "sticker",
    "story",
    "successful_payment",
    "supergroup_chat_created",
    "venue",
    "video",
    "video_note",
    "voice",
    "video_chat_started",
    "video_chat_ended",
    "video_chat_participants_invited",
    "video_chat_scheduled",
    "message_auto_delete_timer_changed",
    "chat_shared",
    "users_shared",
    "web_app_data",
)

_FORWARD_FIELDS = (
    "forward_origin",
    "forward_from",
    "forward_from_chat",
)


def _id_string(holder: Any) -> str:
    if not isinstance(holder, dict):
        return UNDEFINED_ID
    value = holder.get("id")
    if value is None:
        return UNDEFINED_ID
    return str(value)


def content_type_of(message: dict[str, Any], *, default: str) -> str:
    for field in CONTENT_TYPES:
        if message.get(field):
            return field
    return default


def parse_update_body(body: bytes | str | dict[str, Any]) -> dict[str, Any]:
    if isinstance(body, dict):
        return body
    try:
        return decode_update(body)
    except (msgspec.DecodeError, msgspec.ValidationError):
        raise UnrecognizedUpdateKind() from None


def normalize_update(raw: Any) -> NormalizedUpdate:
    if not isinstance(raw, dict):
        raise UnrecognizedUpdateKind()
    for kind in UPDATE_KINDS:
        payload = raw.get(kind)
        if not isinstance(payload, dict):
            continue
        callback_id: str | None = None
        callback_data: str | None = None
        if kind == "callback_query":
            callback_id = str(payload["id"]) if payload.get("id") is not None else None
            data = payload.get("data")
            callback_data = data if isinstance(data, str) else None
            embedded = payload.get("message")
            message = embedded if isinstance(embedded, dict) else {}
        else:
            message = payload
        return NormalizedUpdate(
            kind=kind,
            message=message,
            chat_id=_id_string(message.get("chat")),
            sender_id=_id_string(message.get("from")),
            content_type=content_type_of(message, default=kind),
            callback_id=callback_id,
            callback_data=callback_data,
        )
    raise UnrecognizedUpdateKind(sorted(str(key) for key in raw))


def is_self_forward(message: dict[str, Any]) -> bool:
    """A message the user forwarded into their own private chat with the bot."""
    if not any(message.get(field) is not None for field in _FORWARD_FIELDS):
        return False
    chat = message.get("chat")
    sender = message.get("from")
    if not isinstance(chat, dict) or not isinstance(sender, dict):
        return False
    chat_id = chat.get("id")
    return chat_id is not None and chat_id == sender.get("id")
