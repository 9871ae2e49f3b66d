"""Core domain models used across layers."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any


class SyncMode(str, Enum):
    """Direction of a registry reconciliation."""

    OBSERVE = "observe"
    PUSH = "push"
    PULL = "pull"


class MatchTier(str, Enum):
    """Precedence level at which a call name matched. Declaration order is precedence."""

    EXACT = "exact"
    CASE_INSENSITIVE = "case_insensitive"
    CONTAINMENT = "containment"
    CATEGORY = "category"
    TOKEN_OVERLAP = "token_overlap"


class ChannelType:
    TELEGRAM = "telegram"
    EMAIL = "email"


@dataclass(slots=True)
class Assistant:
    """Local assistant record mirrored by a remote assistant resource."""

    id: int
    name: str
    remote_assistant_id: str | None = None


@dataclass(slots=True)
class FunctionDefinition:
    """Callable capability an operator can attach to assistants."""

    id: int
    name: str
    description: str | None
    parameters: Any
    default_channel_id: int | None = None


@dataclass(slots=True)
class FunctionAssistantLink:
    """Attachment of a function to an assistant."""

    id: int
    function_id: int
    assistant_id: int
    enabled: bool = True
    channel_enabled: bool = True
    notification_channel_id: int | None = None
    settings: dict[str, Any] = field(default_factory=dict)
    created_at: datetime | None = None
    updated_at: datetime | None = None
    last_used: datetime | None = None


@dataclass(slots=True)
class NotificationChannel:
    """Delivery target with transport credentials in ``settings``."""

    id: int
    name: str
    type: str
    settings: dict[str, Any] = field(default_factory=dict)
    status: str = "active"
    last_used: datetime | None = None


@dataclass(slots=True)
class RemoteToolEntry:
    """Function tool as currently listed on the remote assistant."""

    name: str
    description: str | None = None
    parameters: dict[str, Any] | None = None

    @classmethod
    def from_tool(cls, tool: dict[str, Any]) -> RemoteToolEntry:
        function = tool.get("function") or {}
        return cls(
            name=function.get("name", ""),
            description=function.get("description"),
            parameters=function.get("parameters"),
        )


@dataclass(slots=True)
class Invocation:
    """Raw function call received from the remote assistant."""

    name: str
    raw_arguments: str
    call_id: str | None = None


@dataclass(slots=True)
class ActivityLogEntry:
    """Append-only audit record."""

    action: str
    assistant_id: int | None
    details: dict[str, Any]
    timestamp: datetime | None = None
    id: int | None = None


@dataclass(slots=True)
class Resolution:
    """Local function matched for an inbound call name."""

    link: FunctionAssistantLink
    function: FunctionDefinition
    tier: MatchTier


@dataclass(slots=True)
class ReconcileResult:
    """Outcome of one assistant's reconciliation.

    In observe mode ``added`` and ``removed`` hold the pending diff; in push
    and pull mode they hold the canonical names actually written.
    """

    assistant_id: int
    mode: SyncMode
    added: list[str] = field(default_factory=list)
    removed: list[str] = field(default_factory=list)
    error: str | None = None

    @property
    def changed(self) -> bool:
        return bool(self.added or self.removed)

    def to_dict(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"added": list(self.added), "removed": list(self.removed)}
        if self.error:
            payload["error"] = self.error
        return payload


@dataclass(slots=True)
class AddFunctionResult:
    success: bool
    added: bool = False
    function_name: str | None = None


@dataclass(slots=True)
class DispatchResult:
    """Outcome of delivering one call through a notification channel."""

    success: bool
    data: str | None = None
    error: str | None = None
    error_kind: str | None = None
    message: str | None = None
    delivered: bool = False

    def to_envelope(self) -> dict[str, Any]:
        """Return the ``{success, data?|error?, message?}`` shape sent back to the assistant."""

        envelope: dict[str, Any] = {"success": self.success}
        if self.success:
            if self.data is not None:
                envelope["data"] = self.data
        else:
            envelope["error"] = self.error or "Unknown error"
        if self.message:
            envelope["message"] = self.message
        return envelope
