"""Shared pytest fixtures for avd-manager tests."""

from __future__ import annotations

import os
from collections.abc import AsyncGenerator
from pathlib import Path

import pytest

from avd_manager.config import ManagerConfig
from avd_manager.manager import EmulatorManager
from avd_manager.sdk import AndroidSdk
from tests.fakes import AVDMANAGER_LIST_OUTPUT, PIXEL_7, PIXEL_TABLET, FakeAndroidHost

# ============================================================================
# Configuration
# ============================================================================


@pytest.fixture
def fast_config(tmp_path: Path) -> ManagerConfig:
    """ManagerConfig with every delay shrunk so lifecycle tests finish quickly."""
    return ManagerConfig(
        avd_home=tmp_path / "avd",
        command_timeout_seconds=5.0,
        start_grace_seconds=0.01,
        start_verify_retries=3,
        start_verify_interval_seconds=0.01,
        stop_signal_grace_seconds=0.0,
        stop_reconcile_delay_seconds=0.01,
        reconcile_interval_seconds=0.05,
        load_timeout_seconds=1.0,
    )


# ============================================================================
# Simulated Host
# ============================================================================


@pytest.fixture
def host() -> FakeAndroidHost:
    """Simulated host with two images, nothing running."""
    return FakeAndroidHost([PIXEL_7, PIXEL_TABLET], details_output=AVDMANAGER_LIST_OUTPUT)


@pytest.fixture
async def manager(fast_config: ManagerConfig, host: FakeAndroidHost) -> AsyncGenerator[EmulatorManager, None]:
    """Loaded EmulatorManager over the simulated host, scheduler not started."""
    mgr = EmulatorManager(fast_config, executor=host, sdk=AndroidSdk(None))
    await mgr.start(schedule=False)
    yield mgr
    await mgr.close()


# ============================================================================
# Test Utilities
# ============================================================================

_ENV_PREFIXES = ("ANDROID_", "AVD_MANAGER_")


@pytest.fixture(autouse=True)
def setup_test_environment():
    """Keep the developer's Android environment variables out of the tests."""
    saved = {key: os.environ.pop(key) for key in list(os.environ) if key.startswith(_ENV_PREFIXES)}
    yield
    for key in [key for key in os.environ if key.startswith(_ENV_PREFIXES)]:
        os.environ.pop(key)
    os.environ.update(saved)
