"""Engine configuration for avd-manager.

ManagerConfig carries every timing the engine uses plus the SDK/AVD locations.
Defaults match the behaviour of the interactive tool; tests shrink the delays.

Example:
    ```python
    from avd_manager import EmulatorManager, ManagerConfig

    async with EmulatorManager(ManagerConfig(sdk_root=Path("~/Android/Sdk"))) as manager:
        await manager.start_image("Pixel_7_API_33")
    ```
"""

from __future__ import annotations

from pathlib import Path

from pydantic import BaseModel, ConfigDict, Field

from avd_manager import constants
from avd_manager.sdk import default_avd_home


class ManagerConfig(BaseModel):
    """Configuration for EmulatorManager and its components.

    Attributes:
        sdk_root: Android SDK root. None auto-detects; if detection fails the
            tools are resolved through PATH.
        avd_home: Directory holding ``<name>.avd/config.ini`` files. None uses
            ANDROID_AVD_HOME / ANDROID_USER_HOME / ~/.android/avd.
        command_timeout_seconds: Hard deadline for foreground commands.
        start_grace_seconds: Delay before verifying a launch.
        start_verify_retries: Verification attempts after the first.
        start_verify_interval_seconds: Delay between verification attempts.
        stop_signal_grace_seconds: SIGTERM to SIGKILL delay when stopping by PID.
        stop_reconcile_delay_seconds: Delay before reconciling after a stop.
        reconcile_interval_seconds: Period of the background scheduler.
        load_timeout_seconds: Enumeration time before the placeholder appears.
        revert_unconfirmed_start: Set is_running back to False when a launch
            is never confirmed. Off by default: slow images keep their
            optimistic state until the scheduler sees them.
    """

    model_config = ConfigDict(
        frozen=True,
        extra="forbid",
    )

    sdk_root: Path | None = Field(default=None, description="Android SDK root (auto-detect if None)")
    avd_home: Path | None = Field(default=None, description="AVD definitions directory")

    command_timeout_seconds: float = Field(default=constants.COMMAND_TIMEOUT_SECONDS, gt=0, le=300)
    start_grace_seconds: float = Field(default=constants.START_GRACE_SECONDS, ge=0)
    start_verify_retries: int = Field(default=constants.START_VERIFY_RETRIES, ge=0, le=20)
    start_verify_interval_seconds: float = Field(default=constants.START_VERIFY_INTERVAL_SECONDS, ge=0)
    stop_signal_grace_seconds: float = Field(default=constants.STOP_SIGNAL_GRACE_SECONDS, ge=0)
    stop_reconcile_delay_seconds: float = Field(default=constants.STOP_RECONCILE_DELAY_SECONDS, ge=0)
    reconcile_interval_seconds: float = Field(default=constants.RECONCILE_INTERVAL_SECONDS, gt=0)
    load_timeout_seconds: float = Field(default=constants.LOAD_TIMEOUT_SECONDS, gt=0)

    revert_unconfirmed_start: bool = Field(
        default=False,
        description="Revert optimistic is_running when launch verification is exhausted",
    )

    def get_avd_home(self) -> Path:
        """AVD home directory, resolved from the environment when not configured."""
        if self.avd_home is not None:
            return self.avd_home.expanduser()
        return default_avd_home()
