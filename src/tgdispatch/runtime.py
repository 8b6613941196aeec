from __future__ import annotations

import importlib
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from dataclasses import dataclass
from typing import Any

import anyio

from .config import ConfigError, DispatchSettings
from .dispatcher import Dispatcher, ErrorChannel, log_failure, open_dispatcher
from .logging import get_logger
from .model import UPDATE_KINDS, UnrecognizedUpdateKind, status_code_for
from .registry import Handler
from .telegram.api_models import WebhookInfo
from .telegram.client import (
    TELEGRAM_HOST,
    BotClient,
    TelegramClient,
    TelegramRetryAfter,
)
from .telegram.normalize import parse_update_body

logger = get_logger(__name__)

__all__ = [
    "HandlerSet",
    "client_for",
    "handle_webhook",
    "load_handler_set",
    "poll_updates",
    "register_webhook",
    "run_bot",
    "run_polling",
    "webhook_path",
    "webhook_url",
]

OK_STATUS = 200
WEBHOOK_MAX_CONNECTIONS = 3


@dataclass(frozen=True, slots=True)
class HandlerSet:
    private_events: Mapping[Any, Handler]
    public_events: Mapping[Any, Handler]
    on_error: ErrorChannel = log_failure


def load_handler_set(target: str) -> HandlerSet:
    """Import `module` (or `module:attr`) exposing PRIVATE_EVENTS/PUBLIC_EVENTS."""
    module_name, _, attr = target.partition(":")
    try:
        module = importlib.import_module(module_name)
    except ImportError as e:
        raise ConfigError(
            f"Failed to import handlers module {module_name!r}: {e}"
        ) from e
    try:
        source: Any = getattr(module, attr) if attr else module
    except AttributeError:
        raise ConfigError(f"Handlers module has no attribute {attr!r}.") from None
    private_events = getattr(source, "PRIVATE_EVENTS", {})
    public_events = getattr(source, "PUBLIC_EVENTS", {})
    for value in (private_events, public_events):
        if not isinstance(value, Mapping):
            raise ConfigError(
                f"PRIVATE_EVENTS/PUBLIC_EVENTS in {target!r} must be mappings."
            )
    on_error = getattr(source, "on_error", None) or log_failure
    if not callable(on_error):
        raise ConfigError(f"`on_error` in {target!r} is not callable.")
    return HandlerSet(
        private_events=private_events,
        public_events=public_events,
        on_error=on_error,
    )


def client_for(settings: DispatchSettings) -> TelegramClient:
    """Bot API client for the configured token, on a custom API host if set."""
    return TelegramClient(settings.bot_token, host=settings.api_host or TELEGRAM_HOST)


def webhook_path(token: str) -> str:
    return f"/telegram/bot{token}"


def webhook_url(public_url: str, token: str) -> str:
    return public_url.rstrip("/") + webhook_path(token)


async def handle_webhook(dispatcher: Dispatcher, body: bytes | str | dict) -> int:
    """Dispatch one webhook body and return the HTTP status to answer with."""
    try:
        update = parse_update_body(body)
        await dispatcher.dispatch(update)
    except Exception as exc:  # noqa: BLE001
        status = status_code_for(exc)
        logger.error(
            "webhook.dispatch_failed",
            status=status,
            error=str(exc),
            error_type=exc.__class__.__name__,
        )
        return status
    return OK_STATUS


async def register_webhook(
    bot: TelegramClient,
    *,
    public_url: str,
    max_connections: int = WEBHOOK_MAX_CONNECTIONS,
) -> WebhookInfo | None:
    deleted = await bot.delete_webhook()
    logger.info("webhook.deleted", ok=deleted)
    url = webhook_url(public_url, bot.token)
    if not await bot.set_webhook(
        url,
        max_connections=max_connections,
        allowed_updates=list(UPDATE_KINDS),
    ):
        logger.error("webhook.set_failed", url=url)
        return None
    info = await bot.get_webhook_info()
    if info is not None:
        logger.info(
            "webhook.info",
            url=info.url,
            pending_update_count=info.pending_update_count,
            max_connections=info.max_connections,
            last_error_message=info.last_error_message,
        )
    return info


async def poll_updates(
    bot: BotClient,
    *,
    offset: int | None = None,
    timeout_s: int = 50,
    sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
) -> AsyncIterator[dict[str, Any]]:
    while True:
        try:
            updates = await bot.get_updates(
                offset=offset,
                timeout_s=timeout_s,
                allowed_updates=list(UPDATE_KINDS),
            )
        except TelegramRetryAfter as exc:
            logger.info("polling.retry_after", retry_after=exc.retry_after)
            await sleep(exc.retry_after)
            continue
        if updates is None:
            logger.info("polling.get_updates.failed")
            await sleep(2)
            continue
        logger.debug("polling.updates", count=len(updates))
        for upd in updates:
            update_id = upd.get("update_id") if isinstance(upd, dict) else None
            if isinstance(update_id, int):
                offset = update_id + 1
            yield upd


async def run_polling(
    dispatcher: Dispatcher,
    updates: AsyncIterator[dict[str, Any]],
) -> None:
    """Dispatch updates one at a time, in the order they arrive."""
    async for update in updates:
        try:
            await dispatcher.dispatch(update)
        except UnrecognizedUpdateKind as exc:
            logger.warning("polling.unrecognized_update", keys=exc.keys)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "polling.dispatch_failed",
                update_id=update.get("update_id") if isinstance(update, dict) else None,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )


async def run_bot(settings: DispatchSettings, handlers: HandlerSet) -> None:
    bot = client_for(settings)
    try:
        await bot.delete_webhook()
        me = await bot.get_me()
        if me is not None:
            logger.info("bot.identity", bot_id=me.id, username=me.username)
        async with open_dispatcher(
            bot=bot,
            token=settings.bot_token,
            private_events=handlers.private_events,
            public_events=handlers.public_events,
            on_error=handlers.on_error,
            forward_quiet_s=settings.forward_quiet_s,
        ) as dispatcher:
            logger.info("polling.started", forward_quiet_s=settings.forward_quiet_s)
            await run_polling(dispatcher, poll_updates(bot))
    finally:
        await bot.close()
