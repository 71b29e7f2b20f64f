"""Async Telegram Bot API wrapper for BOTVIP."""

import logging
import time
from pathlib import Path
from typing import Any

import httpx

from botvip.errors import TelegramAPIError

logger = logging.getLogger(__name__)

API_BASE_URL = "https://api.telegram.org"


class TelegramClient:
    """Minimal Bot API client over a shared ``httpx.AsyncClient``.

    Every method raises ``TelegramAPIError`` when Telegram answers
    ``ok: false`` or the request itself fails, so callers only deal with one
    exception type.
    """

    def __init__(
        self,
        token: str,
        http_client: httpx.AsyncClient | None = None,
        base_url: str = API_BASE_URL,
        timeout: float = 20.0,
    ) -> None:
        self._http = http_client or httpx.AsyncClient(timeout=timeout)
        self._base = f"{base_url}/bot{token}"

    async def close(self) -> None:
        await self._http.aclose()

    async def _call(
        self,
        method: str,
        params: dict[str, Any] | None = None,
        files: dict[str, Any] | None = None,
        timeout: float | None = None,
    ) -> Any:
        payload = {k: v for k, v in (params or {}).items() if v is not None}
        url = f"{self._base}/{method}"
        extra: dict[str, Any] = {}
        if timeout is not None:
            extra["timeout"] = timeout
        try:
            if files:
                response = await self._http.post(url, data=payload, files=files, **extra)
            else:
                response = await self._http.post(url, json=payload, **extra)
        except httpx.HTTPError as e:
            raise TelegramAPIError(method, str(e) or type(e).__name__) from e

        try:
            body = response.json()
        except ValueError as e:
            raise TelegramAPIError(method, "non-JSON response", response.status_code) from e

        if not body.get("ok"):
            raise TelegramAPIError(
                method,
                body.get("description", "unknown error"),
                body.get("error_code", response.status_code),
            )
        return body.get("result")

    # ------------------------------------------------------------------
    # Messaging
    # ------------------------------------------------------------------

    async def send_message(
        self,
        chat_id: str,
        text: str,
        reply_markup: dict[str, Any] | None = None,
        parse_mode: str | None = None,
    ) -> dict[str, Any]:
        return await self._call(
            "sendMessage",
            {
                "chat_id": chat_id,
                "text": text,
                "reply_markup": reply_markup,
                "parse_mode": parse_mode,
            },
        )

    async def _send_file(
        self, method: str, field: str, chat_id: str, path: Path, caption: str | None
    ) -> dict[str, Any]:
        data: dict[str, Any] = {"chat_id": str(chat_id)}
        if caption:
            data["caption"] = caption
        with path.open("rb") as fh:
            return await self._call(method, data, files={field: (path.name, fh.read())})

    async def send_photo(self, chat_id: str, path: Path, caption: str | None = None) -> dict[str, Any]:
        return await self._send_file("sendPhoto", "photo", chat_id, path, caption)

    async def send_audio(self, chat_id: str, path: Path, caption: str | None = None) -> dict[str, Any]:
        return await self._send_file("sendAudio", "audio", chat_id, path, caption)

    async def answer_callback_query(self, callback_query_id: str, text: str | None = None) -> bool:
        return await self._call(
            "answerCallbackQuery", {"callback_query_id": callback_query_id, "text": text}
        )

    # ------------------------------------------------------------------
    # Channel access
    # ------------------------------------------------------------------

    async def create_single_use_invite(self, channel_id: str, ttl_seconds: int) -> str:
        """Create an invite link valid for one join within ``ttl_seconds``."""
        result = await self._call(
            "createChatInviteLink",
            {
                "chat_id": channel_id,
                "expire_date": int(time.time()) + ttl_seconds,
                "member_limit": 1,
            },
        )
        return result["invite_link"]

    async def ban_then_unban(self, channel_id: str, user_id: str) -> None:
        """Remove a member from the channel while still allowing a future rejoin."""
        await self._call("banChatMember", {"chat_id": channel_id, "user_id": user_id})
        await self._call(
            "unbanChatMember",
            {"chat_id": channel_id, "user_id": user_id, "only_if_banned": True},
        )
        logger.info("Removed user %s from channel %s", user_id, channel_id)

    async def get_chat_type(self, chat_id: str) -> str | None:
        """Return ``private``, ``group``, ``supergroup`` or ``channel``."""
        result = await self._call("getChat", {"chat_id": chat_id})
        return result.get("type") if result else None

    # ------------------------------------------------------------------
    # Update delivery
    # ------------------------------------------------------------------

    async def get_me(self) -> dict[str, Any]:
        return await self._call("getMe")

    async def get_updates(self, offset: int | None = None, timeout: int = 30) -> list[dict[str, Any]]:
        return await self._call(
            "getUpdates",
            {
                "offset": offset,
                "timeout": timeout,
                "allowed_updates": ["message", "callback_query"],
            },
            timeout=timeout + 10,
        )

    async def set_webhook(self, url: str, secret_token: str | None = None) -> bool:
        logger.info("Registering Telegram webhook at %s", url)
        return await self._call(
            "setWebhook",
            {
                "url": url,
                "secret_token": secret_token or None,
                "allowed_updates": ["message", "callback_query"],
            },
        )

    async def delete_webhook(self) -> bool:
        return await self._call("deleteWebhook")
