from __future__ import annotations

import inspect
from collections.abc import AsyncIterator, Awaitable, Callable, Mapping
from contextlib import asynccontextmanager
from typing import TYPE_CHECKING, Any, TypeAlias

import anyio

from .logging import get_logger
from .model import (
    CHANNEL_POST,
    INLINE_QUERY,
    MESSAGE_FORWARDS,
    DispatchFailure,
    FailureKind,
    NormalizedUpdate,
    Scope,
)
from .registry import EventRegistry, Handler
from .telegram.classify import classify_update
from .telegram.client import TELEGRAM_HOST
from .telegram.files import AttachmentResolver
from .telegram.forwards import DEFAULT_QUIET_S, ForwardAggregator
from .telegram.normalize import is_self_forward, normalize_update

if TYPE_CHECKING:
    from anyio.abc import TaskGroup
else:
    TaskGroup = object

logger = get_logger(__name__)

__all__ = ["Dispatcher", "ErrorChannel", "log_failure", "open_dispatcher"]

ErrorChannel: TypeAlias = Callable[[Any, DispatchFailure], Awaitable[None] | None]
EventsLike: TypeAlias = EventRegistry | Mapping[Any, Handler] | None

_PRIVATE_INLINE_CHAT_TYPES = frozenset({"private", "sender"})
_PUBLIC_INLINE_CHAT_TYPES = frozenset({"group", "supergroup"})


def log_failure(bot: Any, failure: DispatchFailure) -> None:
    _ = bot
    logger.error(
        "dispatch.failed",
        kind=failure.kind,
        scope=failure.scope,
        event_name=failure.event,
        chat_id=failure.chat_id,
        error=str(failure.error),
        error_type=failure.error.__class__.__name__,
    )


def _as_registry(events: EventsLike) -> EventRegistry:
    if isinstance(events, EventRegistry):
        return events
    return EventRegistry.from_mapping(events)


class Dispatcher:
    """Routes raw Telegram updates to exactly one handler per event.

    Two registries are kept: `private` for one-to-one chats with the bot and
    `public` for groups, supergroups and channels. Handler failures never
    leave the dispatcher; they go to `on_error(bot, failure)`.
    """

    def __init__(
        self,
        *,
        bot: Any,
        task_group: TaskGroup,
        private_events: EventsLike = None,
        public_events: EventsLike = None,
        token: str | None = None,
        resolver: AttachmentResolver | None = None,
        on_error: ErrorChannel = log_failure,
        forward_quiet_s: float = DEFAULT_QUIET_S,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ) -> None:
        self._bot = bot
        self._private = _as_registry(private_events)
        self._public = _as_registry(public_events)
        if resolver is None:
            resolver = AttachmentResolver(
                bot,
                token=token if token is not None else bot.token,
                host=getattr(bot, "host", TELEGRAM_HOST),
            )
        self._resolver = resolver
        self._on_error = on_error
        self._forwards = ForwardAggregator(
            task_group=task_group,
            flush=self._flush_forwards,
            quiet_s=forward_quiet_s,
            sleep=sleep,
        )

    @property
    def bot(self) -> Any:
        return self._bot

    @property
    def forwards(self) -> ForwardAggregator:
        return self._forwards

    @property
    def resolver(self) -> AttachmentResolver:
        return self._resolver

    def registry_for(self, scope: Scope) -> EventRegistry:
        return self._private if scope == "private" else self._public

    async def dispatch(self, raw: Any) -> None:
        update = normalize_update(raw)
        if update.kind == "channel_post":
            await self.dispatch_channel_post(update.message)
        elif update.kind == "callback_query":
            await self.dispatch_callback_query(update)
        elif update.kind == "inline_query":
            await self.dispatch_inline_query(update.message)
        else:
            await self.dispatch_message(update)

    async def dispatch_message(self, update: NormalizedUpdate) -> None:
        message = update.message
        if is_self_forward(message):
            self._forwards.add(update.chat_id, message)
            return
        await self._resolver.enrich(message)
        scope = update.scope
        registry = self.registry_for(scope)
        event = classify_update(update, registry.rules)
        handler = registry.get(event)
        if handler is None:
            logger.warning(
                "dispatch.unknown_event",
                scope=scope,
                event_name=event,
                chat_id=update.chat_id,
            )
            return
        logger.debug(
            "dispatch.event", scope=scope, event_name=event, chat_id=update.chat_id
        )
        await self._invoke(
            handler, message, scope=scope, event=event, chat_id=update.chat_id
        )

    async def dispatch_channel_post(self, message: dict[str, Any]) -> None:
        handler = self._public.get(CHANNEL_POST)
        chat_id = _chat_id(message)
        if handler is None:
            logger.warning(
                "dispatch.unknown_event",
                scope="public",
                event_name=CHANNEL_POST,
                chat_id=chat_id,
            )
            return
        await self._invoke(
            handler, message, scope="public", event=CHANNEL_POST, chat_id=chat_id
        )

    async def dispatch_callback_query(self, update: NormalizedUpdate) -> None:
        data = update.callback_data
        message = update.message
        chat_id = _chat_id(message)
        if not isinstance(data, str):
            logger.debug("dispatch.callback.no_data", chat_id=chat_id)
            return
        matched = False
        for scope in ("public", "private"):
            handler = self.registry_for(scope).get(data)
            if handler is None:
                continue
            matched = True
            payload = {"id": update.callback_id, **message}
            await self._invoke(
                handler, payload, scope=scope, event=data, chat_id=chat_id
            )
        if not matched:
            logger.warning(
                "dispatch.unknown_event",
                scope="callback",
                event_name=data,
                chat_id=chat_id,
            )

    async def dispatch_inline_query(self, query: dict[str, Any]) -> None:
        chat_type = query.get("chat_type")
        if chat_type in _PRIVATE_INLINE_CHAT_TYPES:
            scope: Scope = "private"
        elif chat_type in _PUBLIC_INLINE_CHAT_TYPES:
            scope = "public"
        else:
            logger.debug("dispatch.inline_query.ignored", chat_type=chat_type)
            return
        handler = self.registry_for(scope).get(INLINE_QUERY)
        if handler is None:
            logger.warning(
                "dispatch.unknown_event", scope=scope, event_name=INLINE_QUERY
            )
            return
        await self._invoke(handler, query, scope=scope, event=INLINE_QUERY)

    async def _flush_forwards(
        self, chat_id: str, messages: list[dict[str, Any]]
    ) -> None:
        handler = self._private.get(MESSAGE_FORWARDS)
        if handler is None:
            logger.debug(
                "forward.batch.dropped",
                chat_id=chat_id,
                forward_count=len(messages),
                reason="no_handler",
            )
            return
        try:
            resolved = await self._resolver.enrich_all(messages)
        except Exception as exc:  # noqa: BLE001
            await self._report(
                "attachment",
                exc,
                scope="private",
                event=MESSAGE_FORWARDS,
                chat_id=chat_id,
            )
            return
        await self._invoke(
            handler,
            resolved,
            scope="private",
            event=MESSAGE_FORWARDS,
            chat_id=chat_id,
        )

    async def _invoke(
        self,
        handler: Handler,
        payload: Any,
        *,
        scope: Scope,
        event: str,
        chat_id: str | None = None,
    ) -> None:
        try:
            result = handler(self._bot, payload)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:  # noqa: BLE001
            await self._report(
                "handler", exc, scope=scope, event=event, chat_id=chat_id
            )

    async def _report(
        self,
        kind: FailureKind,
        error: Exception,
        *,
        scope: Scope | None,
        event: str | None,
        chat_id: str | None,
    ) -> None:
        failure = DispatchFailure(
            kind=kind, error=error, scope=scope, event=event, chat_id=chat_id
        )
        try:
            result = self._on_error(self._bot, failure)
            if inspect.isawaitable(result):
                await result
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "dispatch.error_channel_failed",
                kind=kind,
                event_name=event,
                error=str(exc),
                error_type=exc.__class__.__name__,
                original_error=str(error),
            )


def _chat_id(message: dict[str, Any]) -> str | None:
    chat = message.get("chat")
    if isinstance(chat, dict) and chat.get("id") is not None:
        return str(chat["id"])
    return None


@asynccontextmanager
async def open_dispatcher(**kwargs: Any) -> AsyncIterator[Dispatcher]:
    """Run a dispatcher with its own task group for pending forward flushes.

    Leaving the block waits for scheduled flushes to fire.
    """
    async with anyio.create_task_group() as tg:
        yield Dispatcher(task_group=tg, **kwargs)
