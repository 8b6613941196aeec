from __future__ import annotations

from collections.abc import Sequence
from typing import Any, Protocol

import anyio

from ..logging import get_logger
from ..model import AttachmentResolutionError, ResolvedFile
from .api_models import File
from .client import TELEGRAM_HOST

logger = get_logger(__name__)

__all__ = ["AttachmentResolver", "FileLookup", "file_url"]

# Message fields that carry a single downloadable blob.
SINGLE_FILE_FIELDS = ("voice", "document", "video", "audio", "video_note")
THUMBNAIL_FIELDS = ("thumbnail", "thumb")


class FileLookup(Protocol):
    async def get_file(self, file_id: str) -> File | dict[str, Any] | None: ...


def file_url(token: str, file_path: str, *, host: str = TELEGRAM_HOST) -> str:
    return f"https://{host}/file/bot{token}/{file_path}"


def _file_path(info: File | dict[str, Any] | None) -> str | None:
    if isinstance(info, File):
        value = info.file_path
    elif isinstance(info, dict):
        value = info.get("file_path")
    else:
        return None
    return value if isinstance(value, str) and value else None


def _file_id(block: Any) -> str | None:
    if not isinstance(block, dict):
        return None
    value = block.get("file_id")
    return value if isinstance(value, str) and value else None


def _has_positive_size(block: dict[str, Any]) -> bool:
    size = block.get("file_size")
    return isinstance(size, (int, float)) and not isinstance(size, bool) and size > 0


def _thumbnail(block: dict[str, Any]) -> dict[str, Any] | None:
    for field in THUMBNAIL_FIELDS:
        thumb = block.get(field)
        if _file_id(thumb) is not None:
            return thumb
    return None


class AttachmentResolver:
    """Attaches `file: {file_path, url}` to every downloadable block of a message."""

    def __init__(
        self,
        bot: FileLookup,
        *,
        token: str,
        host: str = TELEGRAM_HOST,
    ) -> None:
        if not token:
            raise ValueError("Telegram token is empty")
        self._bot = bot
        self._token = token
        self._host = host

    def file_url(self, file_path: str) -> str:
        return file_url(self._token, file_path, host=self._host)

    async def resolve_file(self, file_id: str) -> ResolvedFile:
        try:
            info = await self._bot.get_file(file_id)
        except AttachmentResolutionError:
            raise
        except Exception as exc:  # noqa: BLE001
            reason = str(exc) or exc.__class__.__name__
            raise AttachmentResolutionError(file_id, reason) from exc
        file_path = _file_path(info)
        if file_path is None:
            raise AttachmentResolutionError(file_id, "getFile returned no file_path")
        logger.debug("attachments.resolve", file_id=file_id, file_path=file_path)
        return ResolvedFile(file_path=file_path, url=self.file_url(file_path))

    async def _attach(self, block: dict[str, Any]) -> None:
        file_id = _file_id(block)
        if file_id is None:
            return
        block["file"] = (await self.resolve_file(file_id)).as_dict()

    async def enrich(self, message: dict[str, Any]) -> dict[str, Any]:
        for field in SINGLE_FILE_FIELDS:
            block = message.get(field)
            if _file_id(block) is None:
                continue
            await self._attach(block)
            thumb = _thumbnail(block)
            if thumb is not None:
                await self._attach(thumb)
        photos = message.get("photo")
        if isinstance(photos, list):
            message["photo"] = await self._resolve_photos(photos)
        return message

    async def _resolve_photos(self, photos: list[Any]) -> list[Any]:
        resolved: list[Any] = list(photos)
        errors: list[AttachmentResolutionError] = []

        async def resolve_at(index: int, photo: dict[str, Any], file_id: str) -> None:
            try:
                file = await self.resolve_file(file_id)
            except AttachmentResolutionError as exc:
                errors.append(exc)
                return
            resolved[index] = {**photo, "file": file.as_dict()}

        async with anyio.create_task_group() as tg:
            for index, photo in enumerate(photos):
                file_id = _file_id(photo)
                if file_id is None or not _has_positive_size(photo):
                    continue
                tg.start_soon(resolve_at, index, photo, file_id)
        if errors:
            raise errors[0]
        return resolved

    async def enrich_all(
        self, messages: Sequence[dict[str, Any]]
    ) -> list[dict[str, Any]]:
        """Enrich messages concurrently; the result keeps the input order."""
        results: list[dict[str, Any]] = list(messages)
        errors: list[AttachmentResolutionError] = []

        async def enrich_at(index: int, message: dict[str, Any]) -> None:
            try:
                results[index] = await self.enrich(message)
            except AttachmentResolutionError as exc:
                errors.append(exc)

        async with anyio.create_task_group() as tg:
            for index, message in enumerate(messages):
                tg.start_soon(enrich_at, index, message)
        if errors:
            raise errors[0]
        return results
