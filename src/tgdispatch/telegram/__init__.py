"""Telegram-specific parsing, classification, file resolution and batching."""

from .classify import classify, classify_update
from .client import BotClient, TelegramClient, TelegramRetryAfter
from .files import AttachmentResolver
from .forwards import ForwardAggregator
from .normalize import is_self_forward, normalize_update

__all__ = [
    "AttachmentResolver",
    "BotClient",
    "ForwardAggregator",
    "TelegramClient",
    "TelegramRetryAfter",
    "classify",
    "classify_update",
    "is_self_forward",
    "normalize_update",
]
