"""Tests for EmulatorManager: loading, placeholders, wiring and teardown."""

from __future__ import annotations

import asyncio
from pathlib import Path

from avd_manager.command_executor import SubprocessCommandExecutor
from avd_manager.config import ManagerConfig
from avd_manager.constants import NO_IMAGES_PLACEHOLDER_NAME, TIMEOUT_PLACEHOLDER_NAME
from avd_manager.manager import EmulatorManager
from avd_manager.models import InventoryStatus, LifecycleState
from avd_manager.sdk import AndroidSdk
from tests.fakes import AVDMANAGER_LIST_OUTPUT, PIXEL_7, PIXEL_TABLET, FakeAndroidHost, FakeCommandExecutor

# ============================================================================
# Loading
# ============================================================================


async def test_load_shows_images_not_running(fast_config: ManagerConfig) -> None:
    """Enumerated images with no attached endpoints are listed as not running."""
    host = FakeAndroidHost([PIXEL_7], details_output=AVDMANAGER_LIST_OUTPUT)
    async with EmulatorManager(fast_config, executor=host, sdk=AndroidSdk(None)) as manager:
        assert manager.store.status is InventoryStatus.READY
        [state] = manager.images()
        assert state.name == PIXEL_7
        assert not state.is_running
        assert state.lifecycle_state is LifecycleState.STOPPED


async def test_load_detects_already_running(fast_config: ManagerConfig, host: FakeAndroidHost) -> None:
    host.boot(PIXEL_TABLET)
    async with EmulatorManager(fast_config, executor=host, sdk=AndroidSdk(None)) as manager:
        assert not manager.store.is_running(PIXEL_7)
        assert manager.store.is_running(PIXEL_TABLET)


async def test_empty_inventory(fast_config: ManagerConfig) -> None:
    host = FakeAndroidHost([])
    async with EmulatorManager(fast_config, executor=host, sdk=AndroidSdk(None)) as manager:
        assert manager.store.status is InventoryStatus.EMPTY
        assert not manager.store.has_images
        [placeholder] = manager.images()
        assert placeholder.name == NO_IMAGES_PLACEHOLDER_NAME
        assert host.commands("adb") == []


async def test_slow_enumeration_shows_timeout_placeholder(fast_config: ManagerConfig) -> None:
    """Past the load timeout a placeholder appears; the late result still replaces it."""
    release = asyncio.Event()
    executor = FakeCommandExecutor()

    async def slow_list(tool: str, args: tuple[str, ...]) -> str:
        await release.wait()
        return f"{PIXEL_7}\n"

    executor.script("emulator", ["-list-avds"], slow_list)
    executor.script("adb", ["devices"], "List of devices attached\n")
    config = fast_config.model_copy(update={"load_timeout_seconds": 0.05})
    manager = EmulatorManager(config, executor=executor, sdk=AndroidSdk(None))

    load = asyncio.create_task(manager.load_images())
    await asyncio.sleep(0.15)
    assert manager.store.status is InventoryStatus.TIMED_OUT
    [placeholder] = manager.images()
    assert placeholder.name == TIMEOUT_PLACEHOLDER_NAME

    release.set()
    assert await load is InventoryStatus.READY
    assert [state.name for state in manager.images()] == [PIXEL_7]
    await manager.close()


async def test_refresh_picks_up_new_images(manager: EmulatorManager, host: FakeAndroidHost) -> None:
    host.images.append("Wear_OS_API_30")

    assert await manager.refresh() is InventoryStatus.READY
    assert manager.store.names() == [PIXEL_7, PIXEL_TABLET, "Wear_OS_API_30"]


async def test_listeners_see_start_transitions(manager: EmulatorManager) -> None:
    seen: list[LifecycleState] = []

    def record(changed: frozenset[str]) -> None:
        if PIXEL_7 in changed:
            seen.append(manager.store.get(PIXEL_7).lifecycle_state)  # type: ignore[union-attr]

    manager.store.subscribe(record)
    await manager.start_image(PIXEL_7)

    assert seen[0] is LifecycleState.STARTING
    assert seen[-1] is LifecycleState.RUNNING


# ============================================================================
# Wiring and Teardown
# ============================================================================


async def test_scheduler_runs_while_open(fast_config: ManagerConfig, host: FakeAndroidHost) -> None:
    async with EmulatorManager(fast_config, executor=host, sdk=AndroidSdk(None)) as manager:
        assert manager.scheduler.is_running
        host.boot(PIXEL_7)
        await asyncio.sleep(fast_config.reconcile_interval_seconds * 4)
        assert manager.store.is_running(PIXEL_7)

    assert not manager.scheduler.is_running


async def test_close_is_idempotent(fast_config: ManagerConfig, host: FakeAndroidHost) -> None:
    manager = EmulatorManager(fast_config, executor=host, sdk=AndroidSdk(None))
    await manager.start()
    await manager.start()
    await manager.close()
    await manager.close()
    assert not manager.scheduler.is_running


def test_default_executor_uses_sdk_paths(tmp_path: Path) -> None:
    sdk = AndroidSdk(tmp_path)
    manager = EmulatorManager(ManagerConfig(avd_home=tmp_path), sdk=sdk)

    assert manager.sdk is sdk
    assert isinstance(manager._executor, SubprocessCommandExecutor)
    assert manager._executor.timeout_seconds == ManagerConfig().command_timeout_seconds
