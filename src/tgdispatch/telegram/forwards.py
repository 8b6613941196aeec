from __future__ import annotations

from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

import anyio

from ..logging import get_logger

if TYPE_CHECKING:
    from anyio.abc import TaskGroup
else:
    TaskGroup = object

logger = get_logger(__name__)

__all__ = ["DEFAULT_QUIET_S", "ForwardAggregator", "ForwardBatch"]

DEFAULT_QUIET_S = 1.0

FlushCallback = Callable[[str, list[dict[str, Any]]], Awaitable[None]]


@dataclass(slots=True)
class ForwardBatch:
    chat_id: str
    messages: list[dict[str, Any]] = field(default_factory=list)
    generation: int = 0
    cancel_scope: anyio.CancelScope | None = None


class ForwardAggregator:
    """Debounces self-forwarded messages into one batch per chat.

    Every new message for a chat pushes its flush back by `quiet_s`; the batch
    is handed to `flush` once the chat has been quiet that long.
    """

    def __init__(
        self,
        *,
        task_group: TaskGroup,
        flush: FlushCallback,
        quiet_s: float = DEFAULT_QUIET_S,
        sleep: Callable[[float], Awaitable[None]] = anyio.sleep,
    ) -> None:
        self._task_group = task_group
        self._flush = flush
        self._quiet_s = quiet_s
        self._sleep = sleep
        self._batches: dict[str, ForwardBatch] = {}

    @property
    def quiet_s(self) -> float:
        return self._quiet_s

    def pending_chat_ids(self) -> list[str]:
        return list(self._batches)

    def pending_messages(self, chat_id: str) -> list[dict[str, Any]]:
        batch = self._batches.get(chat_id)
        return list(batch.messages) if batch is not None else []

    def add(self, chat_id: str, message: dict[str, Any]) -> None:
        batch = self._batches.get(chat_id)
        if batch is None:
            batch = ForwardBatch(chat_id=chat_id, messages=[message])
            self._batches[chat_id] = batch
            logger.debug(
                "forward.batch.open",
                chat_id=chat_id,
                message_id=message.get("message_id"),
            )
        else:
            batch.messages.append(message)
            logger.debug(
                "forward.batch.extend",
                chat_id=chat_id,
                message_id=message.get("message_id"),
                forward_count=len(batch.messages),
            )
        self._reschedule(batch)

    def _reschedule(self, batch: ForwardBatch) -> None:
        if batch.cancel_scope is not None:
            batch.cancel_scope.cancel()
        batch.cancel_scope = None
        batch.generation += 1
        logger.debug(
            "forward.batch.schedule",
            chat_id=batch.chat_id,
            generation=batch.generation,
            quiet_s=self._quiet_s,
        )
        self._task_group.start_soon(self._debounce_flush, batch, batch.generation)

    def _is_current(self, batch: ForwardBatch, generation: int) -> bool:
        return (
            batch.generation == generation
            and self._batches.get(batch.chat_id) is batch
        )

    async def _debounce_flush(self, batch: ForwardBatch, generation: int) -> None:
        if not self._is_current(batch, generation):
            return
        with anyio.CancelScope() as scope:
            batch.cancel_scope = scope
            await self._sleep(self._quiet_s)
        if scope.cancelled_caught or not self._is_current(batch, generation):
            return
        # Drop the batch before flushing so a racing forward opens a new one.
        del self._batches[batch.chat_id]
        batch.cancel_scope = None
        messages = list(batch.messages)
        logger.debug(
            "forward.batch.flush",
            chat_id=batch.chat_id,
            forward_count=len(messages),
            quiet_s=self._quiet_s,
        )
        try:
            await self._flush(batch.chat_id, messages)
        except Exception as exc:  # noqa: BLE001
            logger.error(
                "forward.batch.flush_failed",
                chat_id=batch.chat_id,
                error=str(exc),
                error_type=exc.__class__.__name__,
            )
