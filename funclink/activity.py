"""Activity trail sink."""

from __future__ import annotations

import logging
from typing import Any

from funclink.db import Database
from funclink.models import ActivityLogEntry

LOGGER = logging.getLogger(__name__)


class ActivityLog:
    """Append-only activity log.

    Recording is fire-and-forget: a storage failure is logged and never
    reaches the sync or dispatch operation that produced the event.
    """

    def __init__(self, db: Database) -> None:
        self._db = db

    def record(self, action: str, assistant_id: int | None, **details: Any) -> None:
        entry = ActivityLogEntry(action=action, assistant_id=assistant_id, details=details)
        try:
            self._db.append_activity(entry)
        except Exception:  # noqa: BLE001
            LOGGER.exception("Failed to record activity %r for assistant %s", action, assistant_id)
