"""avd-manager: lifecycle reconciliation for Android Virtual Devices.

Discovers locally-defined AVDs, tracks which ones are running, and starts or
stops them through the Android SDK command-line tools. State changes are
applied optimistically and then confirmed against what ``adb`` reports.

Quick Start:
    ```python
    from avd_manager import EmulatorManager

    async with EmulatorManager() as manager:
        for state in manager.images():
            print(state.name, state.lifecycle_state.value)
        await manager.start_image("Pixel_7_API_33")
    ```

With Configuration:
    ```python
    from pathlib import Path

    from avd_manager import EmulatorManager, ManagerConfig

    config = ManagerConfig(
        sdk_root=Path("~/Library/Android/sdk"),
        reconcile_interval_seconds=2.0,
    )
    async with EmulatorManager(config) as manager:
        outcome = await manager.stop_image("Pixel_7_API_33")
    ```

Requirements:
    - Android SDK with the emulator and platform-tools packages
      (or ``emulator`` and ``adb`` on PATH)
    - Python 3.12+
"""

from avd_manager.command_executor import CommandExecutor, SubprocessCommandExecutor
from avd_manager.config import ManagerConfig
from avd_manager.exceptions import (
    AvdManagerError,
    DispatchFailedError,
    ImageNotFoundError,
    LaunchDispatchFailedError,
    PermanentError,
    ToolUnresolvableError,
    TransientError,
)
from avd_manager.manager import EmulatorManager
from avd_manager.models import (
    CommandMode,
    CommandResult,
    DeviceObservation,
    ImageState,
    InventoryStatus,
    LifecycleState,
    StopMethod,
    StopOutcome,
    VirtualDeviceImage,
)
from avd_manager.sdk import AndroidSdk, ToolPathProvider
from avd_manager.settings import Settings
from avd_manager.state_store import StateStore

__all__ = [
    "AndroidSdk",
    "AvdManagerError",
    "CommandExecutor",
    "CommandMode",
    "CommandResult",
    "DeviceObservation",
    "DispatchFailedError",
    "EmulatorManager",
    "ImageNotFoundError",
    "ImageState",
    "InventoryStatus",
    "LaunchDispatchFailedError",
    "LifecycleState",
    "ManagerConfig",
    "PermanentError",
    "Settings",
    "StateStore",
    "StopMethod",
    "StopOutcome",
    "SubprocessCommandExecutor",
    "ToolPathProvider",
    "ToolUnresolvableError",
    "TransientError",
    "VirtualDeviceImage",
]

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("avd-manager")
except PackageNotFoundError:
    __version__ = "0.0.0.dev0"
