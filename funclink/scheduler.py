"""Async loop for periodic bulk reconciliation."""

from __future__ import annotations

import asyncio
import logging
from typing import Iterable

from funclink.models import ReconcileResult, SyncMode
from funclink.sync import RegistrySynchronizer

LOGGER = logging.getLogger(__name__)


class SyncScheduler:
    """Runs a bulk reconciliation every ``interval_seconds``."""

    def __init__(
        self,
        synchronizer: RegistrySynchronizer,
        mode: SyncMode | str = SyncMode.OBSERVE,
        interval_seconds: float = 900.0,
        exclude_function_ids: Iterable[int] = (),
    ) -> None:
        self._synchronizer = synchronizer
        self._mode = SyncMode(mode)
        self._interval_seconds = interval_seconds
        self._exclude_function_ids = frozenset(exclude_function_ids)
        self._stop_event = asyncio.Event()

    async def run_once(self) -> dict[int, ReconcileResult]:
        """Run one bulk pass and log assistants that drifted."""

        results = await self._synchronizer.reconcile_all(self._mode, self._exclude_function_ids)
        for assistant_id, result in results.items():
            if result.changed:
                LOGGER.info(
                    "Assistant %s drift (%s): added=%s removed=%s",
                    assistant_id,
                    self._mode.value,
                    result.added,
                    result.removed,
                )
        return results

    async def run_forever(self) -> None:
        """Run scheduler loop until stop() is called."""

        while not self._stop_event.is_set():
            try:
                await self.run_once()
            except Exception:  # noqa: BLE001
                LOGGER.exception("Bulk reconciliation pass failed")
            try:
                await asyncio.wait_for(self._stop_event.wait(), timeout=self._interval_seconds)
            except asyncio.TimeoutError:
                pass

    def stop(self) -> None:
        """Signal the loop to stop."""

        self._stop_event.set()
