"""SQLite persistence layer for functions, links, channels and activity."""

from __future__ import annotations

import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime, timezone
from pathlib import Path
from typing import Any, Iterator

from funclink.models import (
    ActivityLogEntry,
    Assistant,
    FunctionAssistantLink,
    FunctionDefinition,
    NotificationChannel,
)
from funclink.naming import normalize

SCHEMA_VERSION = 1


class Database:
    """Small SQLite wrapper with explicit schema management."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @contextmanager
    def _connect(self) -> Iterator[sqlite3.Connection]:
        conn = sqlite3.connect(self._path)
        conn.row_factory = sqlite3.Row
        conn.execute("PRAGMA foreign_keys = ON")
        try:
            yield conn
            conn.commit()
        finally:
            conn.close()

    def initialize(self) -> None:
        """Create or migrate schema."""

        with self._connect() as conn:
            conn.execute("CREATE TABLE IF NOT EXISTS schema_version (version INTEGER NOT NULL)")
            row = conn.execute("SELECT version FROM schema_version LIMIT 1").fetchone()
            if row is None:
                self._create_schema(conn)
                conn.execute("INSERT INTO schema_version (version) VALUES (?)", (SCHEMA_VERSION,))
            elif row["version"] != SCHEMA_VERSION:
                raise RuntimeError(
                    f"Unsupported schema version {row['version']} (expected {SCHEMA_VERSION})"
                )

    def _create_schema(self, conn: sqlite3.Connection) -> None:
        conn.executescript(
            """
            CREATE TABLE IF NOT EXISTS assistants (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                remote_assistant_id TEXT UNIQUE,
                created_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS notification_channels (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                type TEXT NOT NULL,
                status TEXT NOT NULL DEFAULT 'active',
                settings_json TEXT NOT NULL,
                last_used TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL
            );

            CREATE TABLE IF NOT EXISTS functions (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                name TEXT NOT NULL,
                description TEXT,
                parameters_json TEXT NOT NULL,
                channel_id INTEGER,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                FOREIGN KEY(channel_id) REFERENCES notification_channels(id) ON DELETE SET NULL
            );

            CREATE TABLE IF NOT EXISTS function_assistants (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                function_id INTEGER NOT NULL,
                assistant_id INTEGER NOT NULL,
                notification_channel_id INTEGER,
                enabled INTEGER NOT NULL DEFAULT 1,
                channel_enabled INTEGER NOT NULL DEFAULT 1,
                settings_json TEXT NOT NULL,
                last_used TEXT,
                created_at TEXT NOT NULL,
                updated_at TEXT NOT NULL,
                UNIQUE(function_id, assistant_id),
                FOREIGN KEY(function_id) REFERENCES functions(id) ON DELETE CASCADE,
                FOREIGN KEY(assistant_id) REFERENCES assistants(id) ON DELETE CASCADE,
                FOREIGN KEY(notification_channel_id) REFERENCES notification_channels(id) ON DELETE SET NULL
            );

            CREATE TABLE IF NOT EXISTS activity_logs (
                id INTEGER PRIMARY KEY AUTOINCREMENT,
                assistant_id INTEGER,
                action TEXT NOT NULL,
                details_json TEXT NOT NULL,
                created_at TEXT NOT NULL
            );
            """
        )

    # Assistants

    def create_assistant(self, name: str, remote_assistant_id: str | None = None) -> int:
        with self._connect() as conn:
            cur = conn.execute(
                "INSERT INTO assistants(name, remote_assistant_id, created_at) VALUES (?, ?, ?)",
                (name, remote_assistant_id, _utc_now_iso()),
            )
            return int(cur.lastrowid)

    def get_assistant(self, assistant_id: int) -> Assistant | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, name, remote_assistant_id FROM assistants WHERE id = ?", (assistant_id,)
            ).fetchone()
        return _assistant(row) if row else None

    def get_assistant_by_remote_id(self, remote_assistant_id: str) -> Assistant | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, name, remote_assistant_id FROM assistants WHERE remote_assistant_id = ?",
                (remote_assistant_id,),
            ).fetchone()
        return _assistant(row) if row else None

    def list_assistants(self) -> list[Assistant]:
        with self._connect() as conn:
            rows = conn.execute("SELECT id, name, remote_assistant_id FROM assistants ORDER BY id").fetchall()
        return [_assistant(row) for row in rows]

    # Functions

    def create_function(
        self,
        name: str,
        parameters: Any,
        description: str | None = None,
        default_channel_id: int | None = None,
    ) -> int:
        """Persist a function definition.

        Raises:
            ValueError: if the name normalizes to the canonical name of an
                existing function. The remote API and the resolver could not
                tell the two apart.
        """
        canonical = normalize(name)
        clash = next((f for f in self.list_functions() if normalize(f.name) == canonical), None)
        if clash is not None:
            raise ValueError(
                f"Function name {name!r} collides with function {clash.id} ({clash.name!r}) as {canonical!r}"
            )
        now = _utc_now_iso()
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO functions(name, description, parameters_json, channel_id, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (name, description, _dump_parameters(parameters), default_channel_id, now, now),
            )
            return int(cur.lastrowid)

    def get_function(self, function_id: int) -> FunctionDefinition | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, name, description, parameters_json, channel_id FROM functions WHERE id = ?",
                (function_id,),
            ).fetchone()
        return _function(row) if row else None

    def list_functions(self) -> list[FunctionDefinition]:
        with self._connect() as conn:
            rows = conn.execute(
                "SELECT id, name, description, parameters_json, channel_id FROM functions ORDER BY id"
            ).fetchall()
        return [_function(row) for row in rows]

    def update_function_parameters(self, function_id: int, parameters: dict[str, Any]) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE functions SET parameters_json = ?, updated_at = ? WHERE id = ?",
                (json.dumps(parameters, ensure_ascii=False), _utc_now_iso(), function_id),
            )

    def delete_function(self, function_id: int) -> None:
        """Delete a function; its assistant links go with it."""

        with self._connect() as conn:
            conn.execute("DELETE FROM functions WHERE id = ?", (function_id,))

    # Function/assistant links

    def link_function(
        self,
        function_id: int,
        assistant_id: int,
        enabled: bool = True,
        channel_enabled: bool = True,
        notification_channel_id: int | None = None,
        settings: dict[str, Any] | None = None,
    ) -> int:
        """Attach a function to an assistant, updating the existing link if there is one."""

        now = _utc_now_iso()
        with self._connect() as conn:
            conn.execute(
                """
                INSERT INTO function_assistants(
                    function_id, assistant_id, notification_channel_id, enabled, channel_enabled,
                    settings_json, created_at, updated_at
                )
                VALUES (?, ?, ?, ?, ?, ?, ?, ?)
                ON CONFLICT(function_id, assistant_id) DO UPDATE SET
                    notification_channel_id=excluded.notification_channel_id,
                    enabled=excluded.enabled,
                    channel_enabled=excluded.channel_enabled,
                    settings_json=excluded.settings_json,
                    updated_at=excluded.updated_at
                """,
                (
                    function_id,
                    assistant_id,
                    notification_channel_id,
                    int(enabled),
                    int(channel_enabled),
                    json.dumps(settings or {}),
                    now,
                    now,
                ),
            )
            row = conn.execute(
                "SELECT id FROM function_assistants WHERE function_id = ? AND assistant_id = ?",
                (function_id, assistant_id),
            ).fetchone()
        return int(row["id"])

    def get_link(self, link_id: int) -> FunctionAssistantLink | None:
        with self._connect() as conn:
            row = conn.execute("SELECT * FROM function_assistants WHERE id = ?", (link_id,)).fetchone()
        return _link(row) if row else None

    def list_links(self, assistant_id: int, enabled_only: bool = False) -> list[FunctionAssistantLink]:
        query = "SELECT * FROM function_assistants WHERE assistant_id = ?"
        if enabled_only:
            query += " AND enabled = 1"
        with self._connect() as conn:
            rows = conn.execute(query + " ORDER BY id", (assistant_id,)).fetchall()
        return [_link(row) for row in rows]

    def list_enabled_functions(
        self, assistant_id: int
    ) -> list[tuple[FunctionAssistantLink, FunctionDefinition]]:
        """Return enabled links of an assistant with their definitions, ordered by link id."""

        with self._connect() as conn:
            rows = conn.execute(
                """
                SELECT fa.*, f.name AS f_name, f.description AS f_description,
                       f.parameters_json AS f_parameters_json, f.channel_id AS f_channel_id
                FROM function_assistants fa
                JOIN functions f ON f.id = fa.function_id
                WHERE fa.assistant_id = ? AND fa.enabled = 1
                ORDER BY fa.id
                """,
                (assistant_id,),
            ).fetchall()
        return [
            (
                _link(row),
                FunctionDefinition(
                    id=row["function_id"],
                    name=row["f_name"],
                    description=row["f_description"],
                    parameters=_load_parameters(row["f_parameters_json"]),
                    default_channel_id=row["f_channel_id"],
                ),
            )
            for row in rows
        ]

    def set_link_enabled(self, link_id: int, enabled: bool) -> None:
        self._update_link(link_id, "enabled", int(enabled))

    def set_link_channel_enabled(self, link_id: int, channel_enabled: bool) -> None:
        self._update_link(link_id, "channel_enabled", int(channel_enabled))

    def set_link_channel(self, link_id: int, channel_id: int | None) -> None:
        self._update_link(link_id, "notification_channel_id", channel_id)

    def touch_link(self, link_id: int) -> None:
        self._update_link(link_id, "last_used", _utc_now_iso())

    def _update_link(self, link_id: int, column: str, value: Any) -> None:
        with self._connect() as conn:
            conn.execute(
                f"UPDATE function_assistants SET {column} = ?, updated_at = ? WHERE id = ?",
                (value, _utc_now_iso(), link_id),
            )

    # Notification channels

    def create_channel(
        self, name: str, channel_type: str, settings: dict[str, Any], status: str = "active"
    ) -> int:
        now = _utc_now_iso()
        with self._connect() as conn:
            cur = conn.execute(
                """
                INSERT INTO notification_channels(name, type, status, settings_json, created_at, updated_at)
                VALUES (?, ?, ?, ?, ?, ?)
                """,
                (name, channel_type, status, json.dumps(settings, ensure_ascii=False), now, now),
            )
            return int(cur.lastrowid)

    def get_channel(self, channel_id: int) -> NotificationChannel | None:
        with self._connect() as conn:
            row = conn.execute(
                "SELECT id, name, type, status, settings_json, last_used FROM notification_channels WHERE id = ?",
                (channel_id,),
            ).fetchone()
        if row is None:
            return None
        return NotificationChannel(
            id=row["id"],
            name=row["name"],
            type=row["type"],
            settings=json.loads(row["settings_json"]),
            status=row["status"],
            last_used=_parse_ts(row["last_used"]),
        )

    def update_channel_settings(self, channel_id: int, settings: dict[str, Any]) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE notification_channels SET settings_json = ?, updated_at = ? WHERE id = ?",
                (json.dumps(settings, ensure_ascii=False), _utc_now_iso(), channel_id),
            )

    def touch_channel(self, channel_id: int) -> None:
        with self._connect() as conn:
            conn.execute(
                "UPDATE notification_channels SET last_used = ? WHERE id = ?",
                (_utc_now_iso(), channel_id),
            )

    # Activity log

    def append_activity(self, entry: ActivityLogEntry) -> int:
        timestamp = entry.timestamp or datetime.now(timezone.utc)
        with self._connect() as conn:
            cur = conn.execute(
                "INSERT INTO activity_logs(assistant_id, action, details_json, created_at) VALUES (?, ?, ?, ?)",
                (
                    entry.assistant_id,
                    entry.action,
                    json.dumps(entry.details, ensure_ascii=False, default=str),
                    timestamp.isoformat(),
                ),
            )
            return int(cur.lastrowid)

    def list_activity(
        self, assistant_id: int | None = None, action: str | None = None, limit: int = 50
    ) -> list[ActivityLogEntry]:
        clauses: list[str] = []
        params: list[Any] = []
        if assistant_id is not None:
            clauses.append("assistant_id = ?")
            params.append(assistant_id)
        if action is not None:
            clauses.append("action = ?")
            params.append(action)
        where = f"WHERE {' AND '.join(clauses)}" if clauses else ""
        with self._connect() as conn:
            rows = conn.execute(
                f"SELECT id, assistant_id, action, details_json, created_at FROM activity_logs {where} "
                "ORDER BY id ASC LIMIT ?",
                (*params, limit),
            ).fetchall()
        return [
            ActivityLogEntry(
                id=row["id"],
                assistant_id=row["assistant_id"],
                action=row["action"],
                details=json.loads(row["details_json"]),
                timestamp=_parse_ts(row["created_at"]),
            )
            for row in rows
        ]


def _assistant(row: sqlite3.Row) -> Assistant:
    return Assistant(id=row["id"], name=row["name"], remote_assistant_id=row["remote_assistant_id"])


def _function(row: sqlite3.Row) -> FunctionDefinition:
    return FunctionDefinition(
        id=row["id"],
        name=row["name"],
        description=row["description"],
        parameters=_load_parameters(row["parameters_json"]),
        default_channel_id=row["channel_id"],
    )


def _link(row: sqlite3.Row) -> FunctionAssistantLink:
    return FunctionAssistantLink(
        id=row["id"],
        function_id=row["function_id"],
        assistant_id=row["assistant_id"],
        enabled=bool(row["enabled"]),
        channel_enabled=bool(row["channel_enabled"]),
        notification_channel_id=row["notification_channel_id"],
        settings=json.loads(row["settings_json"] or "{}"),
        created_at=_parse_ts(row["created_at"]),
        updated_at=_parse_ts(row["updated_at"]),
        last_used=_parse_ts(row["last_used"]),
    )


def _dump_parameters(parameters: Any) -> str:
    # Strings are stored verbatim so that a malformed schema survives until sync repairs it.
    if isinstance(parameters, str):
        return parameters
    return json.dumps(parameters, ensure_ascii=False)


def _load_parameters(raw: str) -> Any:
    try:
        return json.loads(raw)
    except json.JSONDecodeError:
        return raw


def _parse_ts(value: str | None) -> datetime | None:
    return datetime.fromisoformat(value) if value else None


def _utc_now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()
