"""OpenAI Assistants implementation of ToolApi."""

from __future__ import annotations

import logging
from typing import Any

import httpx

from funclink.config import Settings
from funclink.errors import ToolApiError
from funclink.remote.base import ToolApi

_LOGGER = logging.getLogger(__name__)


class OpenAIAssistantsApi(ToolApi):
    """Tool list access through the OpenAI Assistants REST endpoints."""

    def __init__(self, settings: Settings) -> None:
        self._settings = settings

    async def retrieve_assistant(self, assistant_ref: str) -> dict[str, Any]:
        return await self._request("GET", f"/assistants/{assistant_ref}")

    async def update_assistant(self, assistant_ref: str, tools: list[dict[str, Any]]) -> dict[str, Any]:
        data = await self._request("POST", f"/assistants/{assistant_ref}", json={"tools": tools})
        _LOGGER.info("Remote assistant %s updated, %d tools", assistant_ref, len(data.get("tools") or []))
        return data

    async def _request(self, method: str, path: str, json: dict[str, Any] | None = None) -> dict[str, Any]:
        timeout = httpx.Timeout(self._settings.request_timeout_seconds)
        headers = {
            "Authorization": f"Bearer {self._settings.openai_api_key}",
            "Content-Type": "application/json",
            "OpenAI-Beta": self._settings.openai_assistants_beta,
        }
        try:
            async with httpx.AsyncClient(base_url=self._settings.openai_base_url, timeout=timeout) as client:
                response = await client.request(method, path, headers=headers, json=json)
                response.raise_for_status()
                data = response.json()
        except httpx.HTTPStatusError as exc:
            _LOGGER.error(
                "Assistants API %s %s failed: %s %s",
                method,
                path,
                exc.response.status_code,
                exc.response.text[:300],
            )
            raise ToolApiError(f"Assistants API returned {exc.response.status_code} for {method} {path}") from exc
        except httpx.HTTPError as exc:
            _LOGGER.error("Assistants API %s %s failed: %s", method, path, exc)
            raise ToolApiError(f"Assistants API request failed: {exc}") from exc
        except ValueError as exc:
            _LOGGER.error("Assistants API %s %s returned a non-JSON body", method, path)
            raise ToolApiError(f"Assistants API returned an unreadable body for {method} {path}") from exc
        if not isinstance(data, dict):
            raise ToolApiError(f"Assistants API returned {type(data).__name__} for {method} {path}")
        return data
