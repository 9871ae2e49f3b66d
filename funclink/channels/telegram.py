"""Telegram Bot API transport."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from funclink.errors import BotBlockedError, ChatNotFoundError, InvalidBotTokenError, TelegramDeliveryError

LOGGER = logging.getLogger(__name__)


class TelegramTransport:
    """Sends messages through a bot, one HTTP request per message."""

    def __init__(self, base_url: str = "https://api.telegram.org", timeout_seconds: float = 30.0) -> None:
        self._base_url = base_url
        self._timeout_seconds = timeout_seconds

    async def send_message(
        self,
        bot_token: str,
        chat_id: str | int,
        text: str,
        disable_web_page_preview: bool = False,
        parse_mode: str | None = None,
    ) -> dict[str, Any]:
        """Send ``text`` to ``chat_id`` and return the API ``result`` object."""

        chat = str(chat_id).strip()
        if not chat.startswith("@") and not chat.lstrip("-").isdigit():
            LOGGER.warning("Chat id %r is neither numeric nor an @username", chat)
        payload: dict[str, Any] = {
            "chat_id": chat,
            "text": text,
            "disable_web_page_preview": disable_web_page_preview,
        }
        if parse_mode:
            payload["parse_mode"] = parse_mode

        LOGGER.info("Sending %d chars to Telegram chat %s (token %s...)", len(text), chat, bot_token[:10])
        timeout = httpx.Timeout(self._timeout_seconds)
        try:
            async with httpx.AsyncClient(base_url=self._base_url, timeout=timeout) as client:
                response = await client.post(f"/bot{bot_token}/sendMessage", json=payload)
        except httpx.HTTPError as exc:
            LOGGER.error("Telegram request to chat %s failed: %s", chat, exc)
            raise TelegramDeliveryError(f"Telegram request failed: {exc}") from exc

        data = _json_or_empty(response)
        if response.status_code == 200 and data.get("ok"):
            return data.get("result") or {}
        raise _delivery_error(response.status_code, str(data.get("description") or response.text), chat)


def _json_or_empty(response: httpx.Response) -> dict[str, Any]:
    try:
        data = response.json()
    except ValueError:
        return {}
    return data if isinstance(data, dict) else {}


def _delivery_error(status_code: int, description: str, chat: str) -> TelegramDeliveryError:
    lowered = description.lower()
    message = f"Telegram API error {status_code}: {description}"
    if "chat not found" in lowered:
        LOGGER.error("Telegram chat %s not found; is the bot a member of the chat?", chat)
        return ChatNotFoundError(message)
    if "bot was blocked" in lowered:
        LOGGER.error("Telegram bot was blocked by the user of chat %s", chat)
        return BotBlockedError(message)
    if status_code in (401, 404) or "unauthorized" in lowered or "invalid token" in lowered:
        LOGGER.error("Telegram rejected the bot token; check the channel settings")
        return InvalidBotTokenError(message)
    LOGGER.error("Telegram refused message to chat %s: %s", chat, message)
    return TelegramDeliveryError(message)
