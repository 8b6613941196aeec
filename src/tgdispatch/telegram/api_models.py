from __future__ import annotations

from typing import Any

import msgspec

__all__ = [
    "Chat",
    "Contact",
    "File",
    "Message",
    "MessageEntity",
    "MessageReply",
    "User",
    "WebhookInfo",
    "decode_update",
]


class User(msgspec.Struct, forbid_unknown_fields=False):
    id: int
    is_bot: bool = False
    username: str | None = None
    first_name: str | None = None
    last_name: str | None = None


class Chat(msgspec.Struct, forbid_unknown_fields=False):
    id: int
    type: str | None = None
    title: str | None = None


class MessageEntity(msgspec.Struct, forbid_unknown_fields=False):
    type: str
    offset: int = 0
    length: int = 0


class Contact(msgspec.Struct, forbid_unknown_fields=False):
    phone_number: str | None = None
    first_name: str | None = None
    user_id: int | None = None


class MessageReply(msgspec.Struct, forbid_unknown_fields=False):
    message_id: int | None = None
    text: str | None = None


class Message(msgspec.Struct, forbid_unknown_fields=False):
    message_id: int | None = None
    chat: Chat | None = None
    from_: User | None = msgspec.field(default=None, name="from")
    text: str | None = None
    caption: str | None = None
    entities: list[MessageEntity] | None = None
    contact: Contact | None = None
    reply_to_message: MessageReply | None = None


class File(msgspec.Struct, forbid_unknown_fields=False):
    file_id: str | None = None
    file_unique_id: str | None = None
    file_size: int | None = None
    file_path: str | None = None


class WebhookInfo(msgspec.Struct, forbid_unknown_fields=False):
    url: str = ""
    pending_update_count: int = 0
    max_connections: int | None = None
    last_error_message: str | None = None


def decode_update(payload: bytes | str) -> dict[str, Any]:
    """Decode webhook/getUpdates JSON into a plain update dict.

    Handlers receive the nested payload dicts as-is, so the update is kept
    untyped here; typed views are built from it where they are needed.
    """
    decoded = msgspec.json.decode(payload)
    if not isinstance(decoded, dict):
        raise msgspec.ValidationError("Expected a JSON object for an update")
    return decoded
