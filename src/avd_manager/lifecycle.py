"""Lifecycle controller: starts and stops images and corrects the store afterwards.

Per image, at most one start or stop is in flight. Two guards enforce it:
    - an asyncio.Lock per image, held for the whole dispatch
    - the store's intent sets (starting / stopping), visible to readers

A second request for a busy image is ignored, not queued.

Start:
    dispatch ``emulator -avd NAME`` in background mode, set is_running=True
    at once, then confirm through the detector in a tracked task (grace delay,
    then a bounded number of retries). An unconfirmed launch keeps its
    optimistic state unless ``revert_unconfirmed_start`` is set.

Stop strategies, tried in order until one succeeds:
    1. ENDPOINT        ``adb -s SERIAL emu kill`` + ``shell reboot -p``
    2. PROCESS_SIGNAL  PID from ``ps aux``; SIGTERM, grace, SIGKILL
    3. PATTERN_KILL    ``pkill -f "emulator.*(-avd |@)NAME( |$)"``
    then is_running=False and a full reconciliation shortly after.
"""

from __future__ import annotations

import asyncio
import contextlib
import logging
from collections.abc import Awaitable, Callable, Coroutine
from typing import TYPE_CHECKING, Any

from tenacity import (
    AsyncRetrying,
    before_sleep_log,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from avd_manager._logging import get_logger
from avd_manager.constants import ADB_TOOL, EMULATOR_TOOL, KILL_TOOL, PKILL_TOOL, PS_TOOL
from avd_manager.exceptions import ImageNotFoundError, LaunchDispatchFailedError, ToolUnresolvableError
from avd_manager.models import CommandMode, StopMethod, StopOutcome, TransitionIntent
from avd_manager.parsing import emulator_process_pattern, find_emulator_pid
from avd_manager.reconciler import reconcile_once
from avd_manager.subprocess_utils import log_task_exception

if TYPE_CHECKING:
    from avd_manager.command_executor import CommandExecutor
    from avd_manager.config import ManagerConfig
    from avd_manager.running_detector import RunningStateDetector
    from avd_manager.state_store import StateStore

logger = get_logger(__name__)


class _LaunchNotConfirmed(Exception):
    """Detector did not report the image yet (drives the verification retry)."""


class LifecycleController:
    """Drives start/stop transitions for images known to the store."""

    def __init__(
        self,
        executor: CommandExecutor,
        detector: RunningStateDetector,
        store: StateStore,
        config: ManagerConfig,
    ) -> None:
        self._executor = executor
        self._detector = detector
        self._store = store
        self._config = config
        self._op_locks: dict[str, asyncio.Lock] = {}
        self._verifiers: dict[str, asyncio.Task[None]] = {}
        self._tasks: set[asyncio.Task[Any]] = set()

    @property
    def pending_tasks(self) -> int:
        """Verification and post-stop reconciliation tasks still running."""
        return len(self._tasks)

    # ------------------------------------------------------------------
    # Start
    # ------------------------------------------------------------------

    async def start(self, name: str) -> bool:
        """Launch *name*.

        Returns:
            True if the launch was dispatched, False if the request was ignored
            because the image is busy (start/stop in flight or a launch still
            awaiting confirmation).

        Raises:
            ImageNotFoundError: The store does not know *name*
            ToolUnresolvableError: The emulator executable cannot be located
            LaunchDispatchFailedError: The launch failed at dispatch
        """
        self._require_known(name)
        lock = self._lock_for(name)
        if lock.locked() or self._store.is_verifying(name):
            logger.info("Start ignored, operation in flight", extra={"image": name})
            return False

        async with lock:
            if not await self._store.begin_intent(name, TransitionIntent.STARTING):
                logger.info("Start ignored, operation in flight", extra={"image": name})
                return False
            try:
                await self._dispatch_launch(name)
                await self._store.set_running(name, True)
                await self._store.set_verifying(name, True)
                self._schedule_verification(name)
            finally:
                await self._store.end_intent(name, TransitionIntent.STARTING)

        logger.info("Image launch dispatched", extra={"image": name})
        return True

    async def _dispatch_launch(self, name: str) -> None:
        result = await self._executor.execute(EMULATOR_TOOL, ["-avd", name], CommandMode.BACKGROUND)
        if result.spawn_failed or result.has_error_marker:
            raise LaunchDispatchFailedError(
                f"Failed to launch image {name!r}",
                context={"image": name, "spawn_failed": result.spawn_failed},
                output=result.output,
            )

    def _schedule_verification(self, name: str) -> None:
        task = self._track(self._verify_launch(name), f"verify-launch-{name}")
        self._verifiers[name] = task

        def forget(done: asyncio.Task[None]) -> None:
            if self._verifiers.get(name) is done:
                del self._verifiers[name]

        task.add_done_callback(forget)

    async def _verify_launch(self, name: str) -> None:
        try:
            await asyncio.sleep(self._config.start_grace_seconds)
            confirmed = await self._await_detection(name)
            if confirmed:
                await self._store.set_running(name, True)
                logger.info("Image launch confirmed", extra={"image": name})
            elif self._config.revert_unconfirmed_start:
                await self._store.set_running(name, False)
                logger.warning("Image launch not confirmed, reverted to stopped", extra={"image": name})
            else:
                logger.warning(
                    "Image launch not confirmed, keeping optimistic state",
                    extra={"image": name, "attempts": self._config.start_verify_retries + 1},
                )
        finally:
            await self._store.set_verifying(name, False)

    async def _await_detection(self, name: str) -> bool:
        try:
            async for attempt in AsyncRetrying(
                stop=stop_after_attempt(self._config.start_verify_retries + 1),
                wait=wait_fixed(self._config.start_verify_interval_seconds),
                retry=retry_if_exception_type(_LaunchNotConfirmed),
                before_sleep=before_sleep_log(logger, logging.DEBUG),
                reraise=True,
            ):
                with attempt:
                    await self._confirm_running(name)
        except _LaunchNotConfirmed:
            return False
        return True

    async def _confirm_running(self, name: str) -> None:
        observations = await self._detector.observe([name])
        if not any(obs.is_running for obs in observations):
            raise _LaunchNotConfirmed(name)

    async def _cancel_verification(self, name: str) -> None:
        task = self._verifiers.pop(name, None)
        if task is None:
            return
        task.cancel()
        with contextlib.suppress(asyncio.CancelledError):
            await task
        # A task cancelled before its first step never runs its finally block
        await self._store.set_verifying(name, False)
        logger.debug("Pending launch verification cancelled", extra={"image": name})

    # ------------------------------------------------------------------
    # Stop
    # ------------------------------------------------------------------

    async def stop(self, name: str) -> StopOutcome | None:
        """Stop *name*, trying each stop strategy in turn.

        Returns:
            The outcome, or None if the request was ignored because a start or
            stop is already in flight. ``outcome.exhausted`` means no strategy
            reported success; the image is marked stopped regardless and the
            follow-up reconciliation corrects it.

        Raises:
            ImageNotFoundError: The store does not know *name*
            ToolUnresolvableError: No strategy could locate its executable
        """
        self._require_known(name)
        lock = self._lock_for(name)
        if lock.locked():
            logger.info("Stop ignored, operation in flight", extra={"image": name})
            return None

        async with lock:
            if not await self._store.begin_intent(name, TransitionIntent.STOPPING):
                logger.info("Stop ignored, operation in flight", extra={"image": name})
                return None
            try:
                await self._cancel_verification(name)
                outcome = await self._run_stop_strategies(name)
                await self._store.set_running(name, False)
                self._track(self._reconcile_after_stop(), f"reconcile-after-stop-{name}")
            finally:
                await self._store.end_intent(name, TransitionIntent.STOPPING)

        return outcome

    async def _run_stop_strategies(self, name: str) -> StopOutcome:
        strategies: list[tuple[StopMethod, Callable[[str], Awaitable[bool]]]] = [
            (StopMethod.ENDPOINT, self._stop_via_endpoint),
            (StopMethod.PROCESS_SIGNAL, self._stop_via_process_signal),
            (StopMethod.PATTERN_KILL, self._stop_via_pattern_kill),
        ]
        unresolved: list[ToolUnresolvableError] = []

        for method, strategy in strategies:
            try:
                if await strategy(name):
                    logger.info("Image stopped", extra={"image": name, "method": method.value})
                    return StopOutcome(name=name, method=method)
            except ToolUnresolvableError as e:
                logger.debug("Stop strategy unavailable", extra={"image": name, "method": method.value, "tool": e.tool})
                unresolved.append(e)

        if len(unresolved) == len(strategies):
            raise ToolUnresolvableError(
                unresolved[0].tool,
                {"image": name, "unresolved_tools": [e.tool for e in unresolved]},
            )

        logger.warning("All stop strategies failed", extra={"image": name})
        return StopOutcome(name=name, exhausted=True)

    async def _stop_via_endpoint(self, name: str) -> bool:
        endpoints = await self._detector.list_endpoints()
        resolved = await self._detector.resolve_endpoints(endpoints)
        serial = next((serial for serial, resolved_name in resolved.items() if resolved_name == name), None)
        if serial is None:
            return False

        killed = await self._executor.execute(ADB_TOOL, ["-s", serial, "emu", "kill"])
        powered_off = await self._executor.execute(ADB_TOOL, ["-s", serial, "shell", "reboot", "-p"])
        return killed.succeeded or powered_off.succeeded

    async def _stop_via_process_signal(self, name: str) -> bool:
        pid = find_emulator_pid(await self._executor.run(PS_TOOL, ["aux"]), name)
        if pid is None:
            return False

        logger.debug("Signalling emulator process", extra={"image": name, "pid": pid})
        await self._executor.execute(KILL_TOOL, ["-TERM", str(pid)])
        await asyncio.sleep(self._config.stop_signal_grace_seconds)
        # Fails harmlessly when SIGTERM was enough
        await self._executor.execute(KILL_TOOL, ["-KILL", str(pid)])
        return True

    async def _stop_via_pattern_kill(self, name: str) -> bool:
        result = await self._executor.execute(PKILL_TOOL, ["-f", emulator_process_pattern(name)])
        return not result.spawn_failed and result.exit_code == 0

    async def _reconcile_after_stop(self) -> None:
        await asyncio.sleep(self._config.stop_reconcile_delay_seconds)
        await reconcile_once(self._detector, self._store)

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _require_known(self, name: str) -> None:
        if self._store.get(name) is None:
            raise ImageNotFoundError(name)

    def _lock_for(self, name: str) -> asyncio.Lock:
        return self._op_locks.setdefault(name, asyncio.Lock())

    def _track(self, coro: Coroutine[Any, Any, None], task_name: str) -> asyncio.Task[None]:
        task = asyncio.create_task(coro, name=task_name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        task.add_done_callback(log_task_exception)
        return task

    async def wait_for_pending(self) -> None:
        """Wait until every verification and post-stop reconciliation finished."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    async def aclose(self) -> None:
        """Cancel all tracked tasks and wait for them to unwind."""
        tasks = list(self._tasks)
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._verifiers.clear()
