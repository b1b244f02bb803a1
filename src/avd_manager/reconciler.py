"""Reconciliation: corrects drift between the store and the running devices.

One pass is a detector run merged into the store with
``StateStore.apply_running_set``; only differing records change and
listeners hear about it only when something did. The scheduler repeats the
pass on a fixed period while at least one image is known.
"""

from __future__ import annotations

import asyncio
import contextlib
from typing import TYPE_CHECKING

from avd_manager._logging import get_logger
from avd_manager.constants import RECONCILE_INTERVAL_SECONDS

if TYPE_CHECKING:
    from avd_manager.running_detector import RunningStateDetector
    from avd_manager.state_store import StateStore

logger = get_logger(__name__)


async def reconcile_once(detector: RunningStateDetector, store: StateStore) -> frozenset[str]:
    """Run one detection pass and merge it into *store*.

    Returns:
        Names whose ``is_running`` changed
    """
    running = await detector.running_image_names()
    return await store.apply_running_set(running)


class ReconciliationScheduler:
    """Background task re-polling the detector on a fixed period."""

    def __init__(
        self,
        detector: RunningStateDetector,
        store: StateStore,
        interval_seconds: float = RECONCILE_INTERVAL_SECONDS,
    ) -> None:
        self._detector = detector
        self._store = store
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None

    @property
    def is_running(self) -> bool:
        return self._task is not None and not self._task.done()

    async def start(self) -> None:
        """Start the periodic task. No-op if already started."""
        if self._task is not None:
            return
        self._task = asyncio.create_task(self._loop(), name="reconciliation-scheduler")
        logger.info("Reconciliation scheduler started", extra={"interval_seconds": self._interval})

    async def stop(self) -> None:
        """Stop the periodic task. No-op if not started."""
        if self._task is None:
            return
        self._task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await self._task
        self._task = None
        logger.info("Reconciliation scheduler stopped")

    async def _loop(self) -> None:
        while True:
            try:
                await asyncio.sleep(self._interval)
                await self._tick()
            except asyncio.CancelledError:
                break
            except (OSError, RuntimeError, ValueError):
                logger.debug("Reconciliation tick failed", exc_info=True)

    async def _tick(self) -> None:
        if not self._store.has_images:
            return
        changed = await reconcile_once(self._detector, self._store)
        if changed:
            logger.debug("Reconciliation tick corrected drift", extra={"changed": sorted(changed)})
