import json
from unittest.mock import AsyncMock, MagicMock

import pytest

from funclink.activity import ActivityLog
from funclink.db import Database
from funclink.dispatcher import ChannelDispatcher
from funclink.processor import FunctionCallProcessor, parse_arguments
from funclink.resolver import CallResolver


@pytest.fixture
def db(tmp_path):
    database = Database(tmp_path / "funclink.db")
    database.initialize()
    return database


def _processor(db: Database, telegram: MagicMock) -> FunctionCallProcessor:
    activity = ActivityLog(db)
    dispatcher = ChannelDispatcher(db, telegram, MagicMock(), activity)
    return FunctionCallProcessor(db, CallResolver(db), dispatcher, activity)


def _telegram() -> MagicMock:
    telegram = MagicMock()
    telegram.send_message = AsyncMock(return_value={"message_id": 1})
    return telegram


def _assistant_with_telegram_function(db: Database, channel_settings: dict) -> int:
    assistant_id = db.create_assistant("Sales", "asst_7")
    channel_id = db.create_channel("tg", "telegram", channel_settings)
    function_id = db.create_function("Отправить в Telegram", {"type": "object"}, default_channel_id=channel_id)
    db.link_function(function_id, assistant_id)
    return assistant_id


def _call(call_id: str, name: str, arguments: str) -> dict:
    return {"id": call_id, "type": "function", "function": {"name": name, "arguments": arguments}}


def test_parse_arguments_recovers_malformed_input():
    assert parse_arguments('{"a": 1}') == {"a": 1}
    assert parse_arguments("{broken") == {}
    assert parse_arguments("[1, 2]") == {}
    assert parse_arguments("") == {}
    assert parse_arguments(None) == {}


@pytest.mark.asyncio
async def test_resolved_call_is_delivered_to_telegram(db):
    assistant_id = _assistant_with_telegram_function(db, {"botToken": "123:abc", "chatId": "-100"})
    telegram = _telegram()

    outputs = await _processor(db, telegram).process_tool_calls(
        "asst_7", [_call("call_1", "otpravit_v_telegram", '{"клиент":"Иван"}')]
    )

    assert outputs[0]["tool_call_id"] == "call_1"
    assert json.loads(outputs[0]["output"])["success"] is True
    telegram.send_message.assert_awaited_once()
    assert "клиент: Иван" in telegram.send_message.await_args.args[2]
    actions = [entry.action for entry in db.list_activity(assistant_id=assistant_id)]
    assert actions == ["function_called", "function_data_sent", "function_success"]


@pytest.mark.asyncio
async def test_missing_chat_id_is_reported_without_network_call(db):
    assistant_id = _assistant_with_telegram_function(db, {"botToken": "123:abc"})
    telegram = _telegram()

    outputs = await _processor(db, telegram).process_tool_calls(
        "asst_7", [_call("call_1", "otpravit_v_telegram", '{"клиент":"Иван"}')]
    )

    envelope = json.loads(outputs[0]["output"])
    assert envelope["success"] is False
    assert "chat id" in envelope["error"]
    telegram.send_message.assert_not_called()
    [failure] = db.list_activity(assistant_id=assistant_id, action="function_delivery_failed")
    assert failure.details["errorKind"] == "InvalidConfiguration"


@pytest.mark.asyncio
async def test_every_tool_call_gets_an_output(db):
    _assistant_with_telegram_function(db, {"botToken": "123:abc", "chatId": "-100"})
    telegram = _telegram()

    outputs = await _processor(db, telegram).process_tool_calls(
        "asst_7",
        [
            _call("call_1", "unknown_xy", "{}"),
            _call("call_2", "otpravit_v_telegram", "not json"),
        ],
    )

    assert [o["tool_call_id"] for o in outputs] == ["call_1", "call_2"]
    first, second = (json.loads(o["output"]) for o in outputs)
    assert first == {"success": False, "error": "Function not found"}
    assert second["success"] is True
    assert telegram.send_message.await_args.args[2] == "No data"


@pytest.mark.asyncio
async def test_unknown_assistant_fails_every_call(db):
    outputs = await _processor(db, _telegram()).process_tool_calls(
        "asst_missing", [_call("call_1", "a", "{}"), _call("call_2", "b", "{}")]
    )

    assert len(outputs) == 2
    for output in outputs:
        envelope = json.loads(output["output"])
        assert envelope["success"] is False
        assert envelope["error"] == "Assistant not found"
        assert "message" in envelope


@pytest.mark.asyncio
async def test_unexpected_error_becomes_failure_envelope(db):
    _assistant_with_telegram_function(db, {"botToken": "123:abc", "chatId": "-100"})
    telegram = MagicMock()
    telegram.send_message = AsyncMock(side_effect=RuntimeError("boom"))

    outputs = await _processor(db, telegram).process_tool_calls(
        "asst_7", [_call("call_1", "otpravit_v_telegram", "{}")]
    )

    envelope = json.loads(outputs[0]["output"])
    assert envelope["success"] is False
    assert envelope["error"] == "boom"
