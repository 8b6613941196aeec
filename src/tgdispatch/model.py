"""Dispatch domain types (update kinds, scopes, failures, errors)."""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Literal, TypeAlias

UpdateKind: TypeAlias = Literal[
    "message",
    "edited_message",
    "channel_post",
    "callback_query",
    "inline_query",
]

UPDATE_KINDS: tuple[UpdateKind, ...] = (
    "message",
    "edited_message",
    "channel_post",
    "callback_query",
    "inline_query",
)

Scope: TypeAlias = Literal["private", "public"]

FailureKind: TypeAlias = Literal["handler", "attachment"]

UNDEFINED_ID = "undefined"

# Structural event names produced by the classifier and the narrow entry points.
AUTH_BY_CONTACT = "auth_by_contact"
CONTACT = "contact"
EDITED_MESSAGE_TEXT = "edited_message_text"
REPLY_TO_MESSAGE = "reply_to_message"
MENTION = "mention"
BOT_COMMAND = "bot_command"
MESSAGE_FORWARDS = "message_forwards"
CHANNEL_POST = "channel_post"
INLINE_QUERY = "inline_query"

STRUCTURAL_EVENTS: frozenset[str] = frozenset(
    {
        AUTH_BY_CONTACT,
        CONTACT,
        EDITED_MESSAGE_TEXT,
        REPLY_TO_MESSAGE,
        MENTION,
        BOT_COMMAND,
        MESSAGE_FORWARDS,
        CHANNEL_POST,
        INLINE_QUERY,
    }
)

DEFAULT_ERROR_STATUS = 400


class DispatchError(Exception):
    status_code: int | None = None


class UnrecognizedUpdateKind(DispatchError):
    status_code = 400

    def __init__(self, keys: list[str] | None = None) -> None:
        self.keys = list(keys or [])
        shown = ", ".join(self.keys) if self.keys else "<empty>"
        super().__init__(f"Unknown Telegram update (keys: {shown})")


class AttachmentResolutionError(DispatchError):
    def __init__(self, file_id: str, reason: str) -> None:
        super().__init__(f"failed to resolve file {file_id!r}: {reason}")
        self.file_id = file_id
        self.reason = reason


@dataclass(frozen=True, slots=True)
class ResolvedFile:
    file_path: str
    url: str

    def as_dict(self) -> dict[str, str]:
        return {"file_path": self.file_path, "url": self.url}


@dataclass(frozen=True, slots=True)
class NormalizedUpdate:
    kind: UpdateKind
    message: dict[str, Any]
    chat_id: str
    sender_id: str
    content_type: str
    callback_id: str | None = None
    callback_data: str | None = None

    @property
    def chat_type(self) -> str | None:
        chat = self.message.get("chat")
        if isinstance(chat, dict):
            value = chat.get("type")
            return value if isinstance(value, str) else None
        return None

    @property
    def scope(self) -> Scope:
        return "private" if self.chat_type == "private" else "public"


@dataclass(frozen=True, slots=True)
class DispatchFailure:
    """What the error channel receives when a handler or a flush fails."""

    kind: FailureKind
    error: BaseException
    scope: Scope | None = None
    event: str | None = None
    chat_id: str | None = None


def status_code_for(error: BaseException) -> int:
    status = getattr(error, "status_code", None)
    if isinstance(status, int) and not isinstance(status, bool):
        return status
    return DEFAULT_ERROR_STATUS
