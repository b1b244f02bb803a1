"""Tests for reconcile_once and ReconciliationScheduler.

Verifies drift correction, change-only notification, and that the background
task starts, ticks, and stops cleanly.
"""

from __future__ import annotations

import asyncio
from unittest.mock import AsyncMock, MagicMock

from avd_manager.models import TransitionIntent, VirtualDeviceImage
from avd_manager.reconciler import ReconciliationScheduler, reconcile_once
from avd_manager.running_detector import RunningStateDetector
from avd_manager.state_store import StateStore
from tests.fakes import PIXEL_7, PIXEL_TABLET, FakeAndroidHost

# ============================================================================
# Helpers
# ============================================================================


def _image(name: str) -> VirtualDeviceImage:
    return VirtualDeviceImage(name=name, device="pixel", api_level="33", target="Android 13.0")


async def _loaded_store(*names: str) -> StateStore:
    store = StateStore()
    await store.replace_images([_image(name) for name in names])
    return store


def _detector_mock(running: set[str] | None = None) -> MagicMock:
    detector = MagicMock(spec=RunningStateDetector)
    detector.running_image_names = AsyncMock(return_value=running or set())
    return detector


# ============================================================================
# Single pass
# ============================================================================


async def test_no_endpoints_means_not_running() -> None:
    """Enumerated image with an empty endpoint list is shown as not running."""
    host = FakeAndroidHost([PIXEL_7])
    store = await _loaded_store(PIXEL_7)

    changed = await reconcile_once(RunningStateDetector(host), store)

    assert changed == frozenset()
    record = store.get(PIXEL_7)
    assert record is not None
    assert not record.is_running


async def test_corrects_drift_both_ways() -> None:
    host = FakeAndroidHost([PIXEL_7, PIXEL_TABLET])
    store = await _loaded_store(PIXEL_7, PIXEL_TABLET)
    await store.set_running(PIXEL_7, True)
    host.boot(PIXEL_TABLET)

    changed = await reconcile_once(RunningStateDetector(host), store)

    assert changed == frozenset({PIXEL_7, PIXEL_TABLET})
    assert not store.is_running(PIXEL_7)
    assert store.is_running(PIXEL_TABLET)


async def test_in_flight_images_untouched() -> None:
    store = await _loaded_store(PIXEL_7)
    await store.begin_intent(PIXEL_7, TransitionIntent.STARTING)

    changed = await reconcile_once(_detector_mock({PIXEL_7}), store)

    assert changed == frozenset()
    assert not store.is_running(PIXEL_7)


# ============================================================================
# Scheduler
# ============================================================================


async def test_scheduler_starts_and_stops() -> None:
    store = await _loaded_store(PIXEL_7)
    scheduler = ReconciliationScheduler(_detector_mock(), store, interval_seconds=0.05)

    await scheduler.start()
    assert scheduler.is_running

    await scheduler.stop()
    assert not scheduler.is_running


async def test_scheduler_start_is_idempotent() -> None:
    store = await _loaded_store(PIXEL_7)
    scheduler = ReconciliationScheduler(_detector_mock(), store, interval_seconds=0.05)

    await scheduler.start()
    task = scheduler._task
    await scheduler.start()
    assert scheduler._task is task

    await scheduler.stop()
    await scheduler.stop()
    assert scheduler._task is None


async def test_scheduler_stop_without_start_is_safe() -> None:
    scheduler = ReconciliationScheduler(_detector_mock(), StateStore(), interval_seconds=0.05)
    await scheduler.stop()
    assert not scheduler.is_running


async def test_scheduler_applies_detected_state() -> None:
    store = await _loaded_store(PIXEL_7)
    notifications: list[frozenset[str]] = []
    store.subscribe(notifications.append)
    scheduler = ReconciliationScheduler(_detector_mock({PIXEL_7}), store, interval_seconds=0.02)

    await scheduler.start()
    await asyncio.sleep(0.15)
    await scheduler.stop()

    assert store.is_running(PIXEL_7)
    assert notifications == [frozenset({PIXEL_7})]


async def test_scheduler_idle_without_images() -> None:
    detector = _detector_mock({PIXEL_7})
    scheduler = ReconciliationScheduler(detector, StateStore(), interval_seconds=0.02)

    await scheduler.start()
    await asyncio.sleep(0.1)
    await scheduler.stop()

    detector.running_image_names.assert_not_awaited()


async def test_no_ticks_after_stop() -> None:
    store = await _loaded_store(PIXEL_7)
    detector = _detector_mock()
    scheduler = ReconciliationScheduler(detector, store, interval_seconds=0.02)

    await scheduler.start()
    await asyncio.sleep(0.07)
    await scheduler.stop()
    calls = detector.running_image_names.await_count

    await asyncio.sleep(0.1)
    assert detector.running_image_names.await_count == calls


async def test_tick_failure_does_not_stop_loop() -> None:
    store = await _loaded_store(PIXEL_7)
    detector = _detector_mock()
    failures = [OSError("adb vanished")]

    async def detect() -> set[str]:
        if failures:
            raise failures.pop()
        return {PIXEL_7}

    detector.running_image_names.side_effect = detect
    scheduler = ReconciliationScheduler(detector, store, interval_seconds=0.02)

    await scheduler.start()
    await asyncio.sleep(0.15)
    await scheduler.stop()

    assert store.is_running(PIXEL_7)
