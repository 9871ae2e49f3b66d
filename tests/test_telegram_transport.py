"""Tests for TelegramTransport."""

from __future__ import annotations

from unittest.mock import AsyncMock, MagicMock, patch

import httpx
import pytest

from funclink.channels.telegram import TelegramTransport
from funclink.errors import BotBlockedError, ChatNotFoundError, InvalidBotTokenError, TelegramDeliveryError


def _mock_response(data: dict, status_code: int = 200) -> MagicMock:
    resp = MagicMock()
    resp.status_code = status_code
    resp.json.return_value = data
    resp.text = str(data)
    return resp


def _mock_client(response: MagicMock | None = None, error: Exception | None = None) -> AsyncMock:
    mock_client = AsyncMock()
    mock_client.__aenter__ = AsyncMock(return_value=mock_client)
    mock_client.__aexit__ = AsyncMock(return_value=False)
    mock_client.post = AsyncMock(return_value=response, side_effect=error)
    return mock_client


@pytest.mark.asyncio
async def test_send_message_posts_to_bot_endpoint():
    mock_client = _mock_client(_mock_response({"ok": True, "result": {"message_id": 42}}))

    with patch("funclink.channels.telegram.httpx.AsyncClient", return_value=mock_client):
        result = await TelegramTransport().send_message("123:abc", " -100500 ", "клиент: Иван")

    assert result == {"message_id": 42}
    path = mock_client.post.call_args.args[0]
    payload = mock_client.post.call_args.kwargs["json"]
    assert path == "/bot123:abc/sendMessage"
    assert payload["chat_id"] == "-100500"
    assert payload["text"] == "клиент: Иван"
    assert "parse_mode" not in payload


@pytest.mark.asyncio
@pytest.mark.parametrize(
    ("status", "description", "error_type"),
    [
        (400, "Bad Request: chat not found", ChatNotFoundError),
        (403, "Forbidden: bot was blocked by the user", BotBlockedError),
        (401, "Unauthorized", InvalidBotTokenError),
        (429, "Too Many Requests: retry after 5", TelegramDeliveryError),
    ],
)
async def test_api_errors_map_to_distinct_exceptions(status, description, error_type):
    response = _mock_response({"ok": False, "error_code": status, "description": description}, status)
    mock_client = _mock_client(response)

    with patch("funclink.channels.telegram.httpx.AsyncClient", return_value=mock_client):
        with pytest.raises(error_type) as excinfo:
            await TelegramTransport().send_message("123:abc", "1", "hi")

    assert description in str(excinfo.value)
    assert mock_client.post.await_count == 1


@pytest.mark.asyncio
async def test_network_error_is_wrapped():
    mock_client = _mock_client(error=httpx.ConnectTimeout("timed out"))

    with patch("funclink.channels.telegram.httpx.AsyncClient", return_value=mock_client):
        with pytest.raises(TelegramDeliveryError):
            await TelegramTransport().send_message("123:abc", "1", "hi")
