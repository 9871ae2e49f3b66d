"""Command-line entrypoint."""

from __future__ import annotations

import argparse
import asyncio
import json
import logging
import sys
from dataclasses import dataclass
from typing import Any

from funclink.activity import ActivityLog
from funclink.channels.email import SmtpTransport
from funclink.channels.telegram import TelegramTransport
from funclink.config import Settings, load_settings
from funclink.db import Database
from funclink.dispatcher import ChannelDispatcher
from funclink.errors import FuncLinkError
from funclink.logging_setup import configure_logging
from funclink.models import SyncMode
from funclink.processor import FunctionCallProcessor
from funclink.remote.openai_assistants import OpenAIAssistantsApi
from funclink.resolver import CallResolver
from funclink.scheduler import SyncScheduler
from funclink.sync import RegistrySynchronizer

LOGGER = logging.getLogger(__name__)

_MODES = [mode.value for mode in SyncMode]


@dataclass(slots=True)
class App:
    settings: Settings
    db: Database
    synchronizer: RegistrySynchronizer
    processor: FunctionCallProcessor


def build_app(settings: Settings) -> App:
    """Initialize app layers."""

    db = Database(settings.database_path)
    db.initialize()
    activity = ActivityLog(db)

    synchronizer = RegistrySynchronizer(db, OpenAIAssistantsApi(settings), activity)
    dispatcher = ChannelDispatcher(
        db=db,
        telegram=TelegramTransport(settings.telegram_api_base_url, settings.request_timeout_seconds),
        mailer=SmtpTransport(settings.request_timeout_seconds),
        activity=activity,
        settings=settings,
    )
    processor = FunctionCallProcessor(db, CallResolver(db), dispatcher, activity)
    return App(settings=settings, db=db, synchronizer=synchronizer, processor=processor)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="funclink", description="Assistant function registry and call dispatch")
    sub = parser.add_subparsers(dest="command", required=True)

    one = sub.add_parser("reconcile", help="reconcile one assistant's remote tool list")
    one.add_argument("assistant_id", type=int)
    one.add_argument("--mode", choices=_MODES, default=SyncMode.OBSERVE.value)
    one.add_argument("--exclude", type=int, nargs="*", default=[], metavar="FUNCTION_ID")

    every = sub.add_parser("reconcile-all", help="reconcile every mirrored assistant")
    every.add_argument("--mode", choices=_MODES, default=SyncMode.OBSERVE.value)
    every.add_argument("--exclude", type=int, nargs="*", default=[], metavar="FUNCTION_ID")

    remote = sub.add_parser("remote-functions", help="list the function tools on the remote assistant")
    remote.add_argument("assistant_id", type=int)

    process = sub.add_parser("process", help="resolve and dispatch tool calls read as JSON")
    process.add_argument("assistant_ref", help="remote assistant id")
    process.add_argument("file", nargs="?", type=argparse.FileType("r", encoding="utf-8"), default=sys.stdin)

    sub.add_parser("watch", help="run the periodic bulk reconciliation")
    return parser


async def run(args: argparse.Namespace, app: App) -> Any:
    """Execute one CLI command and return its JSON-serializable result."""

    if args.command == "reconcile":
        result = await app.synchronizer.reconcile_one(args.assistant_id, args.mode, args.exclude)
        return result.to_dict()
    if args.command == "reconcile-all":
        results = await app.synchronizer.reconcile_all(args.mode, args.exclude)
        return {str(assistant_id): result.to_dict() for assistant_id, result in results.items()}
    if args.command == "remote-functions":
        try:
            return {"activeFunctions": await app.synchronizer.list_remote_functions(args.assistant_id)}
        except FuncLinkError as exc:
            return {"success": False, "error": str(exc)}
    if args.command == "process":
        payload = json.load(args.file)
        tool_calls = payload.get("tool_calls", []) if isinstance(payload, dict) else payload
        return await app.processor.process_tool_calls(args.assistant_ref, tool_calls)
    if args.command == "watch":
        scheduler = SyncScheduler(
            app.synchronizer,
            mode=app.settings.sync_mode,
            interval_seconds=app.settings.sync_interval_seconds,
        )
        try:
            await scheduler.run_forever()
        finally:
            scheduler.stop()
            LOGGER.info("Sync scheduler stopped")
        return None
    raise ValueError(f"Unknown command: {args.command}")


def main(argv: list[str] | None = None) -> None:
    """Synchronous wrapper for asyncio entrypoint."""

    args = build_parser().parse_args(argv)
    settings = load_settings()
    configure_logging(settings.log_level)
    result = asyncio.run(run(args, build_app(settings)))
    if result is not None:
        json.dump(result, sys.stdout, ensure_ascii=False, indent=2)
        sys.stdout.write("\n")


if __name__ == "__main__":
    main()
