from __future__ import annotations

from collections.abc import Sequence
from typing import Any

import msgspec

from ..model import (
    AUTH_BY_CONTACT,
    BOT_COMMAND,
    CONTACT,
    EDITED_MESSAGE_TEXT,
    MENTION,
    REPLY_TO_MESSAGE,
    NormalizedUpdate,
)
from ..registry import PatternRule
from .api_models import Message

__all__ = ["classify", "classify_update"]


def _message_view(message: Any) -> Message | None:
    if isinstance(message, Message):
        return message
    if not isinstance(message, dict):
        return None
    try:
        return msgspec.convert(message, type=Message)
    except msgspec.ValidationError:
        return None


def _has_entity(view: Message, kind: str) -> bool:
    return any(entity.type == kind for entity in view.entities or ())


def _classify_contact(view: Message | None) -> str:
    if view is None or view.contact is None or view.from_ is None:
        return CONTACT
    if not view.from_.is_bot and view.contact.user_id == view.from_.id:
        return AUTH_BY_CONTACT
    return CONTACT


def _message_text(message: Any) -> str:
    if isinstance(message, Message):
        return message.text or ""
    if isinstance(message, dict) and isinstance(message.get("text"), str):
        return message["text"]
    return ""


def _classify_text(
    message: Any,
    *,
    update_kind: str,
    content_type: str,
    rules: Sequence[PatternRule],
) -> str:
    text = _message_text(message)
    for rule in rules:
        if rule.matches(text):
            return rule.name
    if update_kind == "edited_message":
        return EDITED_MESSAGE_TEXT
    view = _message_view(message)
    if view is None:
        return content_type
    if view.reply_to_message is not None:
        return REPLY_TO_MESSAGE
    # TODO: emit every matching event for mixed texts like "hello @bot /ping"
    if _has_entity(view, "mention"):
        return MENTION
    if _has_entity(view, "bot_command"):
        return BOT_COMMAND
    return content_type


def classify(
    message: Any,
    *,
    update_kind: str,
    content_type: str,
    rules: Sequence[PatternRule] = (),
) -> str:
    """Pick the single event name for a message; never returns nothing."""
    if content_type == "contact":
        return _classify_contact(_message_view(message))
    if content_type == "text":
        return _classify_text(
            message,
            update_kind=update_kind,
            content_type=content_type,
            rules=rules,
        )
    return content_type


def classify_update(
    update: NormalizedUpdate, rules: Sequence[PatternRule] = ()
) -> str:
    return classify(
        update.message,
        update_kind=update.kind,
        content_type=update.content_type,
        rules=rules,
    )
