"""Constants for avd-manager timings, tool names and output formats."""

from typing import Final

# ============================================================================
# External Tools
# ============================================================================

EMULATOR_TOOL: Final[str] = "emulator"
"""Runtime executable (launches and lists images)."""

ADB_TOOL: Final[str] = "adb"
"""Bridge executable (lists endpoints, resolves names, graceful stop)."""

AVDMANAGER_TOOL: Final[str] = "avdmanager"
"""Image-manager executable (detailed metadata listing)."""

PS_TOOL: Final[str] = "ps"
KILL_TOOL: Final[str] = "kill"
PKILL_TOOL: Final[str] = "pkill"

# ============================================================================
# Timings (seconds)
# ============================================================================

COMMAND_TIMEOUT_SECONDS: Final[float] = 10.0
"""Hard deadline for foreground commands; partial output is used after it."""

START_GRACE_SECONDS: Final[float] = 3.0
"""Delay before the first post-launch verification."""

START_VERIFY_RETRIES: Final[int] = 3
"""Additional verification attempts after the first one."""

START_VERIFY_INTERVAL_SECONDS: Final[float] = 2.0
"""Delay between verification retries."""

STOP_SIGNAL_GRACE_SECONDS: Final[float] = 1.0
"""Delay between SIGTERM and SIGKILL in the process-listing stop strategy."""

STOP_RECONCILE_DELAY_SECONDS: Final[float] = 2.0
"""Delay before the full reconciliation pass that follows a stop."""

RECONCILE_INTERVAL_SECONDS: Final[float] = 5.0
"""Period of the background reconciliation scheduler."""

LOAD_TIMEOUT_SECONDS: Final[float] = 10.0
"""Enumeration time after which the misconfiguration placeholder is shown."""

KILL_WAIT_SECONDS: Final[float] = 2.0
"""How long to wait for a force-killed foreground command to be reaped."""

# ============================================================================
# Metadata Defaults
# ============================================================================

UNKNOWN_DEVICE: Final[str] = "Unknown Device"
UNKNOWN_API_LEVEL: Final[str] = "Unknown"
DEFAULT_TARGET: Final[str] = "Android"

# ============================================================================
# Output Tokens
# ============================================================================

ERROR_MARKER: Final[str] = "error"
"""Case-insensitive substring that marks a failed command in captured output."""

SENTINEL_TOKENS: Final[frozenset[str]] = frozenset({"ok", "null", "ko", "none", "(null)"})
"""Tokens that tools print instead of a real value; never valid image names."""

EMULATOR_SERIAL_PREFIX: Final[str] = "emulator-"
"""adb serial prefix of virtual-device endpoints."""

READY_ENDPOINT_STATUS: Final[str] = "device"
"""adb status of an endpoint ready for interaction."""

AVD_NAME_PROPERTIES: Final[tuple[str, ...]] = (
    "ro.boot.qemu.avd_name",
    "ro.kernel.qemu.avd_name",
)
"""System properties carrying the image name, newest first."""

# ============================================================================
# Placeholders
# ============================================================================

NO_IMAGES_PLACEHOLDER_NAME: Final[str] = "No_Emulators_Found"
TIMEOUT_PLACEHOLDER_NAME: Final[str] = "Timeout_Check_SDK_Config"
