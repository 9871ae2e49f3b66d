"""Remote assistant tool API interface."""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any


class ToolApi(ABC):
    """Remote service that owns an assistant's tool list.

    The update call replaces the whole list; there is no partial add or remove.
    """

    @abstractmethod
    async def retrieve_assistant(self, assistant_ref: str) -> dict[str, Any]:
        """Return the remote assistant resource, including its ``tools`` list."""

    @abstractmethod
    async def update_assistant(self, assistant_ref: str, tools: list[dict[str, Any]]) -> dict[str, Any]:
        """Replace the remote assistant's tool list and return the updated resource."""
