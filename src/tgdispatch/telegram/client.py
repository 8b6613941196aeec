from __future__ import annotations

import re
from typing import Any, Protocol

import httpx
import msgspec

from ..logging import get_logger
from .api_models import File, User, WebhookInfo

logger = get_logger(__name__)

TELEGRAM_HOST = "api.telegram.org"


class RetryAfter(Exception):
    def __init__(self, retry_after: float, description: str | None = None) -> None:
        super().__init__(description or f"retry after {retry_after}")
        self.retry_after = float(retry_after)
        self.description = description


class TelegramRetryAfter(RetryAfter):
    pass


class BotClient(Protocol):
    """The bot handle passed to every event handler."""

    async def close(self) -> None: ...

    async def get_updates(
        self,
        offset: int | None,
        timeout_s: int = 50,
        allowed_updates: list[str] | None = None,
    ) -> list[dict] | None: ...

    async def get_file(self, file_id: str) -> File | None: ...

    async def send_message(
        self,
        chat_id: int | str,
        text: str,
        reply_to_message_id: int | None = None,
        disable_notification: bool | None = False,
        parse_mode: str | None = None,
        reply_markup: dict[str, Any] | None = None,
    ) -> dict | None: ...

    async def answer_callback_query(
        self,
        callback_query_id: str,
        text: str | None = None,
        show_alert: bool | None = None,
    ) -> bool: ...


def _retry_after_from_payload(payload: dict[str, Any]) -> float | None:
    params = payload.get("parameters")
    if isinstance(params, dict):
        retry_after = params.get("retry_after")
        if isinstance(retry_after, (int, float)):
            return float(retry_after)
    description = payload.get("description")
    if isinstance(description, str):
        return _retry_after_from_description(description)
    return None


def _retry_after_from_description(description: str) -> float | None:
    match = re.search(r"retry after (\d+)", description, flags=re.IGNORECASE)
    if match is None:
        return None
    return float(match.group(1))


def _retry_after_from_response(resp: httpx.Response) -> float | None:
    try:
        payload = resp.json()
    except ValueError:
        return None
    if not isinstance(payload, dict):
        return None
    return _retry_after_from_payload(payload)


class TelegramClient:
    def __init__(
        self,
        token: str,
        timeout_s: float = 120,
        client: httpx.AsyncClient | None = None,
        host: str = TELEGRAM_HOST,
    ) -> None:
        if not token:
            raise ValueError("Telegram token is empty")
        self._token = token
        self._host = host
        self._base = f"https://{host}/bot{token}"
        self._client = client or httpx.AsyncClient(timeout=timeout_s)
        self._owns_client = client is None

    @property
    def token(self) -> str:
        return self._token

    @property
    def host(self) -> str:
        return self._host

    async def close(self) -> None:
        if self._owns_client:
            await self._client.aclose()

    async def _post(self, method: str, json_data: dict[str, Any]) -> Any | None:
        logger.debug("telegram.request", method=method, payload=json_data)
        try:
            resp = await self._client.post(f"{self._base}/{method}", json=json_data)
        except httpx.HTTPError as e:
            url = getattr(e.request, "url", None)
            logger.error(
                "telegram.network_error",
                method=method,
                url=str(url) if url is not None else None,
                error=str(e),
                error_type=e.__class__.__name__,
            )
            return None

        try:
            resp.raise_for_status()
        except httpx.HTTPStatusError as e:
            if resp.status_code == 429:
                retry_after = _retry_after_from_response(resp)
                if retry_after is not None:
                    logger.info(
                        "telegram.rate_limited",
                        method=method,
                        status=resp.status_code,
                        url=str(resp.request.url),
                        retry_after=retry_after,
                    )
                    raise TelegramRetryAfter(retry_after) from e
            logger.error(
                "telegram.http_error",
                method=method,
                status=resp.status_code,
                url=str(resp.request.url),
                error=str(e),
                body=resp.text,
            )
            return None

        try:
            payload = resp.json()
        except ValueError as e:
            logger.error(
                "telegram.bad_response",
                method=method,
                status=resp.status_code,
                url=str(resp.request.url),
                error=str(e),
                error_type=e.__class__.__name__,
                body=resp.text,
            )
            return None

        if not isinstance(payload, dict):
            logger.error(
                "telegram.invalid_payload",
                method=method,
                url=str(resp.request.url),
                payload=payload,
            )
            return None

        if not payload.get("ok"):
            retry_after = _retry_after_from_payload(payload)
            if retry_after is not None and payload.get("error_code") == 429:
                logger.info(
                    "telegram.rate_limited",
                    method=method,
                    url=str(resp.request.url),
                    retry_after=retry_after,
                )
                raise TelegramRetryAfter(retry_after)
            logger.error(
                "telegram.api_error",
                method=method,
                url=str(resp.request.url),
                payload=payload,
            )
            return None

        logger.debug("telegram.response", method=method, payload=payload)
        return payload.get("result")

    async def get_updates(
        self,
        offset: int | None,
        timeout_s: int = 50,
        allowed_updates: list[str] | None = None,
    ) -> list[dict] | None:
        params: dict[str, Any] = {"timeout": timeout_s}
        if offset is not None:
            params["offset"] = offset
        if allowed_updates is not None:
            params["allowed_updates"] = allowed_updates
        result = await self._post("getUpdates", params)
        return result if isinstance(result, list) else None

    async def get_file(self, file_id: str) -> File | None:
        result = await self._post("getFile", {"file_id": file_id})
        if not isinstance(result, dict):
            return None
        try:
            return msgspec.convert(result, type=File)
        except msgspec.ValidationError as e:
            logger.error(
                "telegram.invalid_payload",
                method="getFile",
                payload=result,
                error=str(e),
            )
            return None

    async def get_me(self) -> User | None:
        result = await self._post("getMe", {})
        if not isinstance(result, dict):
            return None
        try:
            return msgspec.convert(result, type=User)
        except msgspec.ValidationError:
            return None

    async def send_message(
        self,
        chat_id: int | str,
        text: str,
        reply_to_message_id: int | None = None,
        disable_notification: bool | None = False,
        parse_mode: str | None = None,
        reply_markup: dict[str, Any] | None = None,
    ) -> dict | None:
        params: dict[str, Any] = {"chat_id": chat_id, "text": text}
        if disable_notification is not None:
            params["disable_notification"] = disable_notification
        if reply_to_message_id is not None:
            params["reply_to_message_id"] = reply_to_message_id
        if parse_mode is not None:
            params["parse_mode"] = parse_mode
        if reply_markup is not None:
            params["reply_markup"] = reply_markup
        result = await self._post("sendMessage", params)
        return result if isinstance(result, dict) else None

    async def answer_callback_query(
        self,
        callback_query_id: str,
        text: str | None = None,
        show_alert: bool | None = None,
    ) -> bool:
        params: dict[str, Any] = {"callback_query_id": callback_query_id}
        if text is not None:
            params["text"] = text
        if show_alert is not None:
            params["show_alert"] = show_alert
        return bool(await self._post("answerCallbackQuery", params))

    async def set_webhook(
        self,
        url: str,
        *,
        max_connections: int | None = None,
        allowed_updates: list[str] | None = None,
    ) -> bool:
        params: dict[str, Any] = {"url": url}
        if max_connections is not None:
            params["max_connections"] = max_connections
        if allowed_updates is not None:
            params["allowed_updates"] = allowed_updates
        return bool(await self._post("setWebhook", params))

    async def delete_webhook(self, *, drop_pending_updates: bool = False) -> bool:
        params: dict[str, Any] = {}
        if drop_pending_updates:
            params["drop_pending_updates"] = True
        return bool(await self._post("deleteWebhook", params))

    async def get_webhook_info(self) -> WebhookInfo | None:
        result = await self._post("getWebhookInfo", {})
        if not isinstance(result, dict):
            return None
        try:
            return msgspec.convert(result, type=WebhookInfo)
        except msgspec.ValidationError:
            return None
