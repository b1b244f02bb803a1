"""EmulatorManager: constructs, wires and tears down the engine components.

Lifecycle:
    manager = EmulatorManager(config)
    await manager.start()     # enumerate, first detection pass, start scheduler
    ...                       # start_image / stop_image / refresh
    await manager.close()     # cancel every tracked task, stop the scheduler

or as an async context manager. Nothing here is a singleton; two managers
with different configurations can run side by side.
"""

from __future__ import annotations

import asyncio
from typing import TYPE_CHECKING, Self

from avd_manager._logging import get_logger
from avd_manager.command_executor import SubprocessCommandExecutor
from avd_manager.config import ManagerConfig
from avd_manager.image_enumerator import ImageEnumerator
from avd_manager.lifecycle import LifecycleController
from avd_manager.models import ImageState, InventoryStatus, StopOutcome
from avd_manager.reconciler import ReconciliationScheduler, reconcile_once
from avd_manager.running_detector import RunningStateDetector
from avd_manager.sdk import AndroidSdk
from avd_manager.state_store import StateStore
from avd_manager.subprocess_utils import log_task_exception

if TYPE_CHECKING:
    from avd_manager.command_executor import CommandExecutor

logger = get_logger(__name__)


class EmulatorManager:
    """Facade over enumeration, detection, lifecycle control and reconciliation.

    Attributes:
        config: Engine configuration
        sdk: SDK tool-path provider (unused when an executor is injected)
    """

    def __init__(
        self,
        config: ManagerConfig | None = None,
        *,
        executor: CommandExecutor | None = None,
        sdk: AndroidSdk | None = None,
    ) -> None:
        self.config = config or ManagerConfig()
        self.sdk = sdk if sdk is not None else AndroidSdk.discover(self.config.sdk_root)

        self._owns_executor = executor is None
        self._executor: CommandExecutor = (
            executor
            if executor is not None
            else SubprocessCommandExecutor(self.sdk, timeout_seconds=self.config.command_timeout_seconds)
        )

        self._store = StateStore()
        self._enumerator = ImageEnumerator(self._executor, self.config.get_avd_home())
        self._detector = RunningStateDetector(self._executor)
        self._controller = LifecycleController(self._executor, self._detector, self._store, self.config)
        self._scheduler = ReconciliationScheduler(
            self._detector,
            self._store,
            interval_seconds=self.config.reconcile_interval_seconds,
        )
        self._load_lock = asyncio.Lock()
        self._watchdogs: set[asyncio.Task[None]] = set()
        self._started = False
        self._closed = False

    @property
    def store(self) -> StateStore:
        return self._store

    @property
    def detector(self) -> RunningStateDetector:
        return self._detector

    @property
    def controller(self) -> LifecycleController:
        return self._controller

    @property
    def scheduler(self) -> ReconciliationScheduler:
        return self._scheduler

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def start(self, *, schedule: bool = True) -> None:
        """Load the inventory and, unless *schedule* is False, start periodic reconciliation.

        Idempotent.
        """
        if self._started:
            return
        self._started = True
        logger.info(
            "Starting emulator manager",
            extra={"sdk_root": str(self.sdk.root) if self.sdk.root else None, "schedule": schedule},
        )
        await self.load_images()
        if schedule:
            await self._scheduler.start()

    async def close(self) -> None:
        """Cancel all background work. Idempotent; launched emulators keep running."""
        if self._closed:
            return
        self._closed = True

        await self._scheduler.stop()
        await self._controller.aclose()

        watchdogs = list(self._watchdogs)
        for task in watchdogs:
            task.cancel()
        await asyncio.gather(*watchdogs, return_exceptions=True)

        if self._owns_executor and isinstance(self._executor, SubprocessCommandExecutor):
            await self._executor.aclose()
        logger.info("Emulator manager closed")

    async def __aenter__(self) -> Self:
        await self.start()
        return self

    async def __aexit__(
        self,
        _exc_type: type[BaseException] | None,
        _exc_val: BaseException | None,
        _exc_tb: object,
    ) -> None:
        await self.close()

    # ------------------------------------------------------------------
    # Inventory
    # ------------------------------------------------------------------

    async def load_images(self) -> InventoryStatus:
        """Enumerate images into the store, then run one detection pass.

        If enumeration outlasts ``load_timeout_seconds`` on a first load, the
        store switches to TIMED_OUT (its placeholder entry becomes visible)
        while enumeration carries on; its result replaces the placeholder
        when it arrives.

        Returns:
            Inventory status after the load
        """
        async with self._load_lock:
            watchdog = asyncio.create_task(self._load_watchdog(), name="load-watchdog")
            self._watchdogs.add(watchdog)
            watchdog.add_done_callback(self._watchdogs.discard)
            watchdog.add_done_callback(log_task_exception)
            try:
                images = await self._enumerator.list_images()
            finally:
                watchdog.cancel()

            await self._store.replace_images(images)
            if images:
                await reconcile_once(self._detector, self._store)

        logger.info(
            "Inventory loaded",
            extra={"status": self._store.status.value, "images": len(self._store.names())},
        )
        return self._store.status

    async def _load_watchdog(self) -> None:
        await asyncio.sleep(self.config.load_timeout_seconds)
        if self._store.status is InventoryStatus.LOADING:
            logger.warning(
                "Enumeration is taking too long, check the Android SDK configuration",
                extra={"timeout_seconds": self.config.load_timeout_seconds},
            )
            await self._store.set_status(InventoryStatus.TIMED_OUT)

    async def refresh(self) -> InventoryStatus:
        """Re-enumerate images and reconcile their running state."""
        return await self.load_images()

    async def reconcile(self) -> frozenset[str]:
        """Run one reconciliation pass now; returns the names that changed."""
        return await reconcile_once(self._detector, self._store)

    def images(self) -> list[ImageState]:
        """Presentation snapshot: the records, or the placeholder entry."""
        return self._store.view()

    # ------------------------------------------------------------------
    # Lifecycle operations
    # ------------------------------------------------------------------

    async def start_image(self, name: str) -> bool:
        """Launch *name*; see LifecycleController.start."""
        return await self._controller.start(name)

    async def stop_image(self, name: str) -> StopOutcome | None:
        """Stop *name*; see LifecycleController.stop."""
        return await self._controller.stop(name)

    async def wait_for_pending(self) -> None:
        """Wait for launch verifications and post-stop reconciliations to finish."""
        await self._controller.wait_for_pending()
