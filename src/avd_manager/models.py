"""Data models for avd-manager."""

from enum import Enum
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field, computed_field

from avd_manager.constants import ERROR_MARKER, READY_ENDPOINT_STATUS


class CommandMode(str, Enum):
    """How the command executor waits for a child process."""

    FOREGROUND = "foreground"
    BACKGROUND = "background"


class TransitionIntent(str, Enum):
    """In-flight operation marker held by the state store."""

    STARTING = "starting"
    STOPPING = "stopping"


class LifecycleState(str, Enum):
    """Per-image state as seen by presentation layers."""

    STOPPED = "stopped"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"


class InventoryStatus(str, Enum):
    """Outcome of the most recent enumeration."""

    LOADING = "loading"
    READY = "ready"
    EMPTY = "empty"
    TIMED_OUT = "timed_out"


class StopMethod(str, Enum):
    """Stop strategy that reported success."""

    ENDPOINT = "endpoint"
    PROCESS_SIGNAL = "process_signal"
    PATTERN_KILL = "pattern_kill"


class CommandResult(BaseModel):
    """Captured outcome of one external command."""

    model_config = ConfigDict(frozen=True)

    output: str = Field(default="", description="Combined stdout/stderr text")
    exit_code: int | None = Field(default=None, description="Exit status (None: background or never spawned)")
    timed_out: bool = Field(default=False, description="Foreground deadline hit; output may be partial")
    spawn_failed: bool = Field(default=False, description="The executable could not be started")

    @property
    def has_error_marker(self) -> bool:
        """Heuristic failure check on the text, kept for output-inspecting callers."""
        return ERROR_MARKER in self.output.lower()

    @property
    def succeeded(self) -> bool:
        """Structured success: spawned, not timed out, exit 0 when known, no marker."""
        if self.spawn_failed or self.timed_out or self.has_error_marker:
            return False
        return self.exit_code in (0, None)


class VirtualDeviceImage(BaseModel):
    """A locally-registered AVD. Immutable; rebuilt on every enumeration."""

    model_config = ConfigDict(frozen=True)

    name: str = Field(min_length=1)
    device: str
    api_level: str
    target: str
    metadata_source: Literal["avdmanager", "config", "default", "placeholder"] = "default"

    @property
    def degraded(self) -> bool:
        """True when no metadata source could describe this image."""
        return self.metadata_source == "default"

    @property
    def api_display(self) -> str:
        return f"API {self.api_level}"


class DeviceObservation(BaseModel):
    """Runtime fact produced by the running-state detector."""

    model_config = ConfigDict(frozen=True)

    name: str
    is_running: bool


class Endpoint(BaseModel):
    """A bridge endpoint as listed by ``adb devices``."""

    model_config = ConfigDict(frozen=True)

    serial: str
    status: str

    @property
    def is_ready(self) -> bool:
        return self.status == READY_ENDPOINT_STATUS


class ImageState(BaseModel):
    """One record of the reconciled state. Replaced, never mutated."""

    model_config = ConfigDict(frozen=True)

    image: VirtualDeviceImage
    is_running: bool = False
    starting: bool = False
    stopping: bool = False

    @property
    def name(self) -> str:
        return self.image.name

    @computed_field  # type: ignore[prop-decorator]
    @property
    def lifecycle_state(self) -> LifecycleState:
        if self.starting:
            return LifecycleState.STARTING
        if self.stopping:
            return LifecycleState.STOPPING
        return LifecycleState.RUNNING if self.is_running else LifecycleState.STOPPED


class StopOutcome(BaseModel):
    """Result of a stop request."""

    model_config = ConfigDict(frozen=True)

    name: str
    method: StopMethod | None = None
    exhausted: bool = False
