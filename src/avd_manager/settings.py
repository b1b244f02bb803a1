"""Runtime configuration from environment variables."""

from pathlib import Path

from pydantic import AliasChoices, Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from avd_manager import constants
from avd_manager.config import ManagerConfig


class Settings(BaseSettings):
    """Environment-driven settings.

    Every field can be set with the AVD_MANAGER_ prefix, e.g.
    AVD_MANAGER_RECONCILE_INTERVAL_SECONDS=2. The SDK root and AVD home also
    honour the variables the Android tools themselves read.
    """

    model_config = SettingsConfigDict(
        env_prefix="AVD_MANAGER_",
        extra="ignore",
        populate_by_name=True,
    )

    sdk_root: Path | None = Field(
        default=None,
        validation_alias=AliasChoices("AVD_MANAGER_SDK_ROOT", "ANDROID_SDK_ROOT", "ANDROID_HOME"),
    )
    avd_home: Path | None = Field(
        default=None,
        validation_alias=AliasChoices("AVD_MANAGER_AVD_HOME", "ANDROID_AVD_HOME"),
    )

    command_timeout_seconds: float = constants.COMMAND_TIMEOUT_SECONDS
    reconcile_interval_seconds: float = constants.RECONCILE_INTERVAL_SECONDS
    load_timeout_seconds: float = constants.LOAD_TIMEOUT_SECONDS
    revert_unconfirmed_start: bool = False

    def to_config(self, **overrides: object) -> ManagerConfig:
        """Build a ManagerConfig from these settings; keyword overrides win."""
        values: dict[str, object] = {
            "sdk_root": self.sdk_root,
            "avd_home": self.avd_home,
            "command_timeout_seconds": self.command_timeout_seconds,
            "reconcile_interval_seconds": self.reconcile_interval_seconds,
            "load_timeout_seconds": self.load_timeout_seconds,
            "revert_unconfirmed_start": self.revert_unconfirmed_start,
        }
        values.update({k: v for k, v in overrides.items() if v is not None})
        return ManagerConfig(**values)  # type: ignore[arg-type]
