import pytest

from funclink.db import Database
from funclink.models import ActivityLogEntry


def _db(tmp_path) -> Database:
    db = Database(tmp_path / "funclink.db")
    db.initialize()
    return db


def test_database_initialization_is_repeatable(tmp_path):
    db = _db(tmp_path)
    db.initialize()
    assert db.list_assistants() == []


def test_link_function_upserts_single_link(tmp_path):
    db = _db(tmp_path)
    assistant_id = db.create_assistant("Sales", "asst_1")
    function_id = db.create_function("Звонок клиента", {"type": "object", "properties": {}})

    first = db.link_function(function_id, assistant_id)
    second = db.link_function(function_id, assistant_id, enabled=False)

    assert first == second
    links = db.list_links(assistant_id)
    assert len(links) == 1
    assert links[0].enabled is False
    assert db.list_links(assistant_id, enabled_only=True) == []


def test_list_enabled_functions_joins_definitions(tmp_path):
    db = _db(tmp_path)
    assistant_id = db.create_assistant("Sales", "asst_1")
    channel_id = db.create_channel("tg", "telegram", {"botToken": "t", "chatId": "1"})
    f1 = db.create_function("Звонок клиента", {"type": "object"}, description="call", default_channel_id=channel_id)
    f2 = db.create_function("Disabled one", {"type": "object"})
    db.link_function(f1, assistant_id)
    db.link_function(f2, assistant_id, enabled=False)

    pairs = db.list_enabled_functions(assistant_id)

    assert len(pairs) == 1
    link, function = pairs[0]
    assert link.function_id == f1
    assert function.name == "Звонок клиента"
    assert function.default_channel_id == channel_id


def test_create_function_rejects_canonical_name_collision(tmp_path):
    db = _db(tmp_path)
    db.create_function("Звонок клиента", {})
    with pytest.raises(ValueError):
        db.create_function("zvonok  klienta", {})


def test_malformed_parameters_survive_storage(tmp_path):
    db = _db(tmp_path)
    function_id = db.create_function("broken", "{not json")
    assert db.get_function(function_id).parameters == "{not json"

    db.update_function_parameters(function_id, {"type": "object", "properties": {}, "required": []})
    assert db.get_function(function_id).parameters["type"] == "object"


def test_delete_function_removes_links(tmp_path):
    db = _db(tmp_path)
    assistant_id = db.create_assistant("Sales", "asst_1")
    function_id = db.create_function("lead", {})
    db.link_function(function_id, assistant_id)

    db.delete_function(function_id)

    assert db.list_links(assistant_id) == []


def test_link_channel_updates(tmp_path):
    db = _db(tmp_path)
    assistant_id = db.create_assistant("Sales")
    channel_id = db.create_channel("mail", "email", {"email": "ops@example.com"})
    link_id = db.link_function(db.create_function("lead", {}), assistant_id)

    db.set_link_channel(link_id, channel_id)
    db.set_link_channel_enabled(link_id, False)
    db.touch_link(link_id)

    link = db.get_link(link_id)
    assert link.notification_channel_id == channel_id
    assert link.channel_enabled is False
    assert link.last_used is not None


def test_activity_log_filters(tmp_path):
    db = _db(tmp_path)
    db.append_activity(ActivityLogEntry(action="function_called", assistant_id=1, details={"functionName": "a"}))
    db.append_activity(ActivityLogEntry(action="function_success", assistant_id=1, details={}))
    db.append_activity(ActivityLogEntry(action="function_called", assistant_id=2, details={}))

    entries = db.list_activity(assistant_id=1, action="function_called")

    assert len(entries) == 1
    assert entries[0].details == {"functionName": "a"}
    assert entries[0].timestamp is not None


def test_link_can_be_disabled_and_reenabled(tmp_path):
    db = _db(tmp_path)
    assistant_id = db.create_assistant("Sales", "asst_1")
    link_id = db.link_function(db.create_function("lead", {}), assistant_id)

    db.set_link_enabled(link_id, False)

    assert db.get_link(link_id).enabled is False
    assert db.list_enabled_functions(assistant_id) == []

    db.set_link_enabled(link_id, True)

    assert [link.id for link, _ in db.list_enabled_functions(assistant_id)] == [link_id]


def test_update_channel_settings_replaces_settings(tmp_path):
    db = _db(tmp_path)
    channel_id = db.create_channel("tg", "telegram", {"botToken": "old", "chatId": "1"})

    db.update_channel_settings(channel_id, {"botToken": "new", "chatId": "-100"})

    channel = db.get_channel(channel_id)
    assert channel.settings == {"botToken": "new", "chatId": "-100"}
    assert channel.status == "active"
