"""Entry point for function calls raised by remote assistant runs."""

from __future__ import annotations

import json
import logging
from typing import Any

from funclink.activity import ActivityLog
from funclink.db import Database
from funclink.dispatcher import ChannelDispatcher
from funclink.errors import NotFoundError
from funclink.models import DispatchResult, Invocation
from funclink.resolver import CallResolver

LOGGER = logging.getLogger(__name__)


def parse_arguments(raw: Any) -> dict[str, Any]:
    """Decode a call's argument string; anything but a JSON object becomes ``{}``."""

    if isinstance(raw, dict):
        return raw
    if not raw:
        return {}
    try:
        parsed = json.loads(raw)
    except (TypeError, json.JSONDecodeError):
        LOGGER.warning("Unparseable function arguments %r, using empty object", str(raw)[:200])
        return {}
    if not isinstance(parsed, dict):
        LOGGER.warning("Function arguments are not a JSON object (%s), using empty object", type(parsed).__name__)
        return {}
    return parsed


class FunctionCallProcessor:
    """Resolves and dispatches every tool call of an assistant run.

    Always returns exactly one output per tool call so the remote run never
    waits on a missing result.
    """

    def __init__(
        self,
        db: Database,
        resolver: CallResolver,
        dispatcher: ChannelDispatcher,
        activity: ActivityLog,
    ) -> None:
        self._db = db
        self._resolver = resolver
        self._dispatcher = dispatcher
        self._activity = activity

    async def process_tool_calls(self, assistant_ref: str, tool_calls: list[dict[str, Any]]) -> list[dict[str, str]]:
        """Return ``[{tool_call_id, output}]`` for the tool calls of one run."""

        LOGGER.info("Processing %d tool calls for remote assistant %s", len(tool_calls), assistant_ref)
        assistant = self._db.get_assistant_by_remote_id(assistant_ref)
        if assistant is None:
            LOGGER.error("Remote assistant %s has no local record", assistant_ref)
            return [
                _output(
                    call,
                    DispatchResult(
                        success=False,
                        error="Assistant not found",
                        error_kind=NotFoundError.kind,
                        message=f"Could not process function {_call_name(call)}",
                    ),
                )
                for call in tool_calls
            ]

        outputs = []
        for call in tool_calls:
            invocation = Invocation(
                name=_call_name(call),
                raw_arguments=(call.get("function") or {}).get("arguments") or "",
                call_id=call.get("id"),
            )
            name = invocation.name
            try:
                arguments = parse_arguments(invocation.raw_arguments)
                self._activity.record("function_called", assistant.id, functionName=name, arguments=arguments)
                result = await self.handle_function_call(assistant.id, name, arguments)
            except Exception as exc:  # noqa: BLE001
                LOGGER.exception("Tool call %s (%s) failed", invocation.call_id, name)
                result = DispatchResult(
                    success=False, error=str(exc) or type(exc).__name__, message=f"Could not process function {name}"
                )
            self._activity.record(
                "function_success" if result.success else "function_error",
                assistant.id,
                functionName=name,
                result=result.to_envelope(),
            )
            outputs.append(_output(call, result))
        return outputs

    async def handle_function_call(self, assistant_id: int, name: str, arguments: dict[str, Any]) -> DispatchResult:
        """Resolve one call against the assistant's functions and deliver it."""

        resolution = self._resolver.resolve(assistant_id, name)
        if resolution is None:
            return DispatchResult(success=False, error="Function not found", error_kind=NotFoundError.kind)
        return await self._dispatcher.dispatch(resolution.link, resolution.function, arguments)


def _call_name(call: dict[str, Any]) -> str:
    return str((call.get("function") or {}).get("name") or "")


def _output(call: dict[str, Any], result: DispatchResult) -> dict[str, str]:
    return {
        "tool_call_id": str(call.get("id") or ""),
        "output": json.dumps(result.to_envelope(), ensure_ascii=False),
    }
