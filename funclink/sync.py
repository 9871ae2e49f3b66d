"""Reconciliation of local function attachments with remote assistant tool lists."""

from __future__ import annotations

import asyncio
import logging
from collections import defaultdict
from typing import Any, Iterable

from funclink.activity import ActivityLog
from funclink.db import Database
from funclink.errors import FuncLinkError, NotFoundError
from funclink.models import (
    AddFunctionResult,
    Assistant,
    FunctionDefinition,
    ReconcileResult,
    RemoteToolEntry,
    SyncMode,
)
from funclink.naming import normalize
from funclink.remote.base import ToolApi

LOGGER = logging.getLogger(__name__)


def minimal_schema() -> dict[str, Any]:
    return {"type": "object", "properties": {}, "required": []}


class RegistrySynchronizer:
    """Computes and applies the difference between local links and remote tools.

    The remote list is read, recomputed and replaced as a whole on every write.
    Reconciliations of the same assistant are serialized inside this process;
    writers in other processes can still overwrite each other.
    """

    def __init__(self, db: Database, tool_api: ToolApi, activity: ActivityLog) -> None:
        self._db = db
        self._tool_api = tool_api
        self._activity = activity
        self._locks: defaultdict[int, asyncio.Lock] = defaultdict(asyncio.Lock)

    async def reconcile(
        self,
        assistant: Assistant,
        mode: SyncMode | str,
        exclude_function_ids: Iterable[int] = (),
    ) -> ReconcileResult:
        """Reconcile one assistant in a single direction.

        Raises:
            NotFoundError: the assistant is not mirrored remotely.
            ToolApiError: the remote fetch or update failed.
        """
        mode = SyncMode(mode)
        if not assistant.remote_assistant_id:
            raise NotFoundError(f"Assistant {assistant.id} has no remote assistant id")
        async with self._locks[assistant.id]:
            return await self._reconcile(assistant, mode, frozenset(exclude_function_ids))

    async def _reconcile(self, assistant: Assistant, mode: SyncMode, excluded: frozenset[int]) -> ReconcileResult:
        ref = assistant.remote_assistant_id
        remote = await self._tool_api.retrieve_assistant(ref)
        tools = list(remote.get("tools") or [])
        remote_names = list(
            dict.fromkeys(RemoteToolEntry.from_tool(tool).name for tool in tools if tool.get("type") == "function")
        )
        local = self._local_functions(assistant.id, excluded)

        to_add = [name for name in local if name not in remote_names]
        to_remove = [name for name in remote_names if name not in local]
        LOGGER.info(
            "Assistant %s (%s) mode=%s remote=%s local=%s to_add=%s to_remove=%s",
            assistant.id,
            ref,
            mode.value,
            remote_names,
            list(local),
            to_add,
            to_remove,
        )

        if mode is SyncMode.OBSERVE:
            return ReconcileResult(assistant.id, mode, added=to_add, removed=to_remove)

        if mode is SyncMode.PUSH:
            if to_add:
                tools.extend(self._tool_descriptor(name, local[name]) for name in to_add)
                await self._tool_api.update_assistant(ref, tools)
            return ReconcileResult(assistant.id, mode, added=to_add)

        if to_remove:
            doomed = set(to_remove)
            kept = [
                tool
                for tool in tools
                if tool.get("type") != "function" or RemoteToolEntry.from_tool(tool).name not in doomed
            ]
            await self._tool_api.update_assistant(ref, kept)
        return ReconcileResult(assistant.id, mode, removed=to_remove)

    def _local_functions(self, assistant_id: int, excluded: frozenset[int]) -> dict[str, FunctionDefinition]:
        local: dict[str, FunctionDefinition] = {}
        for link, function in self._db.list_enabled_functions(assistant_id):
            if link.function_id in excluded:
                LOGGER.debug("Skipping excluded function %s on assistant %s", link.function_id, assistant_id)
                continue
            name = normalize(function.name)
            if name in local:
                LOGGER.warning(
                    "Functions %s and %s both normalize to %r on assistant %s; keeping %s",
                    local[name].id,
                    function.id,
                    name,
                    assistant_id,
                    local[name].id,
                )
                continue
            local[name] = function
        return local

    def _tool_descriptor(self, name: str, function: FunctionDefinition) -> dict[str, Any]:
        return {
            "type": "function",
            "function": {
                "name": name,
                "description": function.description or function.name,
                "parameters": self._checked_parameters(function),
            },
        }

    def _checked_parameters(self, function: FunctionDefinition) -> dict[str, Any]:
        """Return the function's parameter schema, repairing it in place if malformed."""

        parameters = function.parameters
        if (
            isinstance(parameters, dict)
            and parameters.get("type", "object") == "object"
            and isinstance(parameters.get("properties", {}), dict)
            and isinstance(parameters.get("required", []), list)
        ):
            return parameters
        LOGGER.warning("Function %s (%r) has a malformed parameter schema, repairing", function.id, function.name)
        function.parameters = minimal_schema()
        self._db.update_function_parameters(function.id, function.parameters)
        return function.parameters

    async def reconcile_one(
        self,
        assistant_id: int,
        mode: SyncMode | str = SyncMode.OBSERVE,
        exclude_function_ids: Iterable[int] = (),
    ) -> ReconcileResult:
        """Reconcile one assistant by local id, reporting failures in the result."""

        mode = SyncMode(mode)
        try:
            assistant = self._db.get_assistant(assistant_id)
            if assistant is None:
                raise NotFoundError(f"Assistant {assistant_id} not found")
            return await self.reconcile(assistant, mode, exclude_function_ids)
        except FuncLinkError as exc:
            LOGGER.warning("Reconciliation of assistant %s failed: %s", assistant_id, exc)
            return ReconcileResult(assistant_id, mode, error=str(exc))
        except Exception as exc:  # noqa: BLE001
            LOGGER.exception("Reconciliation of assistant %s failed unexpectedly", assistant_id)
            return ReconcileResult(assistant_id, mode, error=str(exc) or type(exc).__name__)

    async def reconcile_all(
        self,
        mode: SyncMode | str = SyncMode.OBSERVE,
        exclude_function_ids: Iterable[int] = (),
    ) -> dict[int, ReconcileResult]:
        """Reconcile every remotely mirrored assistant; one failure never stops the batch."""

        mode = SyncMode(mode)
        excluded = frozenset(exclude_function_ids)
        results: dict[int, ReconcileResult] = {}
        for assistant in self._db.list_assistants():
            if not assistant.remote_assistant_id:
                continue
            try:
                result = await self.reconcile(assistant, mode, excluded)
            except Exception as exc:  # noqa: BLE001
                LOGGER.warning("Reconciliation of assistant %s failed: %s", assistant.id, exc)
                result = ReconcileResult(assistant.id, mode, error=str(exc))
            results[assistant.id] = result
            if result.changed or result.error:
                self._activity.record(
                    "functions_synced",
                    assistant.id,
                    mode=mode.value,
                    added=result.added,
                    removed=result.removed,
                    error=result.error,
                )

        failed = sum(1 for r in results.values() if r.error)
        self._activity.record(
            "bulk_sync_completed",
            None,
            mode=mode.value,
            total=len(results),
            failed=failed,
            added=sum(len(r.added) for r in results.values()),
            removed=sum(len(r.removed) for r in results.values()),
        )
        LOGGER.info("Bulk reconciliation (%s) finished: %d assistants, %d failed", mode.value, len(results), failed)
        return results

    async def add_single_function(self, assistant_id: int, function_id: int) -> AddFunctionResult:
        """Attach one function to the remote assistant if it is not listed yet."""

        assistant = self._db.get_assistant(assistant_id)
        if assistant is None or not assistant.remote_assistant_id:
            LOGGER.error("Assistant %s not found or not mirrored remotely", assistant_id)
            return AddFunctionResult(success=False)
        function = self._db.get_function(function_id)
        if function is None:
            LOGGER.error("Function %s not found", function_id)
            return AddFunctionResult(success=False)

        name = normalize(function.name)
        try:
            async with self._locks[assistant.id]:
                remote = await self._tool_api.retrieve_assistant(assistant.remote_assistant_id)
                tools = list(remote.get("tools") or [])
                if any(
                    tool.get("type") == "function" and RemoteToolEntry.from_tool(tool).name == name for tool in tools
                ):
                    LOGGER.info("Function %r already present on assistant %s", name, assistant_id)
                    return AddFunctionResult(success=True, added=False, function_name=name)
                tools.append(self._tool_descriptor(name, function))
                await self._tool_api.update_assistant(assistant.remote_assistant_id, tools)
        except FuncLinkError as exc:
            LOGGER.error("Adding function %r to assistant %s failed: %s", name, assistant_id, exc)
            return AddFunctionResult(success=False, function_name=name)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Adding function %r to assistant %s failed unexpectedly", name, assistant_id)
            return AddFunctionResult(success=False, function_name=name)

        self._activity.record("function_added", assistant_id, functionId=function_id, functionName=name)
        return AddFunctionResult(success=True, added=True, function_name=name)

    async def remove_function_by_name(self, assistant_id: int, function_name: str) -> bool:
        """Remove a function tool matching either the raw or the canonical name."""

        assistant = self._db.get_assistant(assistant_id)
        if assistant is None or not assistant.remote_assistant_id:
            LOGGER.error("Assistant %s not found or not mirrored remotely", assistant_id)
            return False

        names = {function_name, normalize(function_name)}
        try:
            async with self._locks[assistant.id]:
                remote = await self._tool_api.retrieve_assistant(assistant.remote_assistant_id)
                tools = list(remote.get("tools") or [])
                kept = [
                    tool
                    for tool in tools
                    if tool.get("type") != "function" or RemoteToolEntry.from_tool(tool).name not in names
                ]
                if len(kept) == len(tools):
                    similar = [
                        entry.name
                        for entry in (RemoteToolEntry.from_tool(t) for t in tools if t.get("type") == "function")
                        if any(n in entry.name or entry.name in n for n in names)
                    ]
                    LOGGER.warning(
                        "Function %r not found on assistant %s; similar names: %s", function_name, assistant_id, similar
                    )
                    return False
                await self._tool_api.update_assistant(assistant.remote_assistant_id, kept)
        except FuncLinkError as exc:
            LOGGER.error("Removing function %r from assistant %s failed: %s", function_name, assistant_id, exc)
            return False
        except Exception:  # noqa: BLE001
            LOGGER.exception("Removing function %r from assistant %s failed unexpectedly", function_name, assistant_id)
            return False

        self._activity.record("function_removed", assistant_id, functionName=function_name)
        return True

    async def list_remote_functions(self, assistant_id: int) -> list[str]:
        """Return the names of the function tools currently on the remote assistant."""

        assistant = self._db.get_assistant(assistant_id)
        if assistant is None or not assistant.remote_assistant_id:
            raise NotFoundError(f"Assistant {assistant_id} not found or not mirrored remotely")
        remote = await self._tool_api.retrieve_assistant(assistant.remote_assistant_id)
        return [
            RemoteToolEntry.from_tool(tool).name for tool in remote.get("tools") or [] if tool.get("type") == "function"
        ]
