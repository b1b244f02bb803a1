"""Android SDK location: the configuration provider consumed by the engine.

The engine only needs one thing from the SDK collaborator: a concrete path
for a logical tool name. ``AndroidSdk`` derives those paths from a single SDK
root; when no root is configured or detected the provider returns None and the
command executor falls back to PATH (degraded mode).

SDK layout:
    <root>/emulator/emulator
    <root>/platform-tools/adb
    <root>/cmdline-tools/latest/bin/avdmanager   (or legacy <root>/tools/bin/avdmanager)
"""

from __future__ import annotations

import os
from pathlib import Path
from typing import Protocol, runtime_checkable

from avd_manager._logging import get_logger
from avd_manager.constants import ADB_TOOL, AVDMANAGER_TOOL, EMULATOR_TOOL
from avd_manager.platform_utils import HostOS, detect_host_os

logger = get_logger(__name__)


@runtime_checkable
class ToolPathProvider(Protocol):
    """Supplies configured executable paths to the command executor."""

    def tool_path(self, tool: str) -> Path | None:
        """Configured path for *tool*, or None when the provider has no opinion."""
        ...


def _exe(name: str, *, script: bool = False) -> str:
    if detect_host_os() == HostOS.WINDOWS:
        return f"{name}.bat" if script else f"{name}.exe"
    return name


def validate_sdk_root(path: Path | str | None) -> bool:
    """Check that *path* looks like an SDK root (emulator and platform-tools present)."""
    if path is None or not str(path).strip():
        return False
    root = Path(str(path).strip()).expanduser()
    emulator_ok = (root / "emulator" / _exe("emulator")).is_file()
    adb_ok = (root / "platform-tools" / _exe("adb")).is_file()
    logger.debug(
        "Validated SDK root",
        extra={"sdk_root": str(root), "emulator_found": emulator_ok, "adb_found": adb_ok},
    )
    return emulator_ok and adb_ok


def sdk_root_candidates(host_os: HostOS | None = None) -> list[Path]:
    """Common SDK install locations for the host, most likely first."""
    host_os = host_os or detect_host_os()
    home = Path.home()
    match host_os:
        case HostOS.MACOS:
            return [
                home / "Library" / "Android" / "sdk",
                Path("/Applications/Android Studio.app/Contents/android-sdk"),
                Path("/usr/local/android-sdk"),
                Path("/opt/android-sdk"),
            ]
        case HostOS.WINDOWS:
            local_app_data = os.environ.get("LOCALAPPDATA")
            base = Path(local_app_data) if local_app_data else home / "AppData" / "Local"
            return [base / "Android" / "Sdk"]
        case _:
            return [
                home / "Android" / "Sdk",
                Path("/usr/local/android-sdk"),
                Path("/opt/android-sdk"),
                Path("/usr/lib/android-sdk"),
            ]


def auto_detect_sdk_root(candidates: list[Path] | None = None) -> Path | None:
    """Return the first candidate that validates, or None."""
    for candidate in candidates if candidates is not None else sdk_root_candidates():
        if validate_sdk_root(candidate):
            logger.info("Android SDK detected", extra={"sdk_root": str(candidate)})
            return candidate
    logger.info("Android SDK not found in common locations, tools will be resolved via PATH")
    return None


def default_avd_home() -> Path:
    """Directory holding ``<name>.avd`` folders (same lookup order as the SDK tools)."""
    if avd_home := os.environ.get("ANDROID_AVD_HOME"):
        return Path(avd_home).expanduser()
    if user_home := os.environ.get("ANDROID_USER_HOME"):
        return Path(user_home).expanduser() / "avd"
    return Path.home() / ".android" / "avd"


class AndroidSdk:
    """Tool paths derived from an SDK root.

    Attributes:
        root: SDK root directory, or None for PATH-only degraded mode
    """

    def __init__(self, root: Path | None = None) -> None:
        self.root = root.expanduser() if root is not None else None

    @classmethod
    def discover(cls, root: Path | None = None) -> AndroidSdk:
        """Use *root* when given, otherwise auto-detect.

        An explicit root that fails validation is still used: the executor
        checks each tool path on disk and falls back to PATH per tool.
        """
        if root is not None:
            if not validate_sdk_root(root):
                logger.warning("Configured Android SDK root looks invalid", extra={"sdk_root": str(root)})
            return cls(root)
        return cls(auto_detect_sdk_root())

    @property
    def is_valid(self) -> bool:
        return validate_sdk_root(self.root)

    def tool_path(self, tool: str) -> Path | None:
        if self.root is None:
            return None
        match tool:
            case "emulator":
                return self.root / "emulator" / _exe(EMULATOR_TOOL)
            case "adb":
                return self.root / "platform-tools" / _exe(ADB_TOOL)
            case "avdmanager":
                candidates = [
                    self.root / "cmdline-tools" / "latest" / "bin" / _exe(AVDMANAGER_TOOL, script=True),
                    self.root / "tools" / "bin" / _exe(AVDMANAGER_TOOL, script=True),
                ]
                for candidate in candidates:
                    if candidate.is_file():
                        return candidate
                return candidates[0]
            case _:
                return None

    def __repr__(self) -> str:
        return f"AndroidSdk(root={self.root!r})"
