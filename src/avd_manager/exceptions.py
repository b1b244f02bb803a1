"""Exception hierarchy for avd-manager.

All exceptions inherit from AvdManagerError.

Hierarchy:
    AvdManagerError (base)
    ├── TransientError (retryable marker base)
    │   └── DispatchFailedError
    │       └── LaunchDispatchFailedError  ← error marker when launching an image
    └── PermanentError (non-retryable marker base)
        ├── ToolUnresolvableError          ← executable not configured and not on PATH
        └── ImageNotFoundError             ← name unknown to the state store

Conditions that are deliberately NOT exceptions:
    - a foreground command hitting its deadline (CommandResult.timed_out)
    - unparsable metadata (VirtualDeviceImage.metadata_source == "default")
    - all stop strategies failing (StopOutcome.exhausted, logged as a warning)
"""

from __future__ import annotations

from typing import Any


class AvdManagerError(Exception):
    """Base exception with structured context.

    Attributes:
        message: Human-readable error message
        context: Structured context for logging (passed as ``extra``)
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None):
        super().__init__(message)
        self.message = message
        self.context = context or {}


class TransientError(AvdManagerError):
    """Base for errors that may succeed when the operation is retried."""


class PermanentError(AvdManagerError):
    """Base for errors that retrying will not fix (configuration, unknown names)."""


class DispatchFailedError(TransientError):
    """A lifecycle command reported an explicit failure when it was dispatched.

    Attributes:
        output: Captured command output that carried the failure marker
    """

    def __init__(self, message: str, context: dict[str, Any] | None = None, output: str = ""):
        super().__init__(message, context)
        self.output = output


class LaunchDispatchFailedError(DispatchFailedError):
    """Launching an image failed at dispatch time (spawn error or error marker)."""


class ToolUnresolvableError(PermanentError):
    """Neither the configured SDK path nor PATH yields the executable.

    Attributes:
        tool: Logical tool name (``emulator``, ``adb``, ...)
    """

    def __init__(self, tool: str, context: dict[str, Any] | None = None):
        super().__init__(
            f"Cannot resolve executable {tool!r}: not found in the Android SDK or on PATH",
            {"tool": tool, **(context or {})},
        )
        self.tool = tool


class ImageNotFoundError(PermanentError):
    """The requested image is not known to the state store.

    Attributes:
        name: Requested image name
    """

    def __init__(self, name: str):
        super().__init__(f"Virtual device image {name!r} not found", {"image": name})
        self.name = name
