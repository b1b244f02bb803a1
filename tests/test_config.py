"""Unit tests for ManagerConfig and Settings.

No mocks - uses real environment variables (via monkeypatch) and tmp_path.
"""

from pathlib import Path

import pytest
from pydantic import ValidationError

from avd_manager.config import ManagerConfig
from avd_manager.settings import Settings

# ============================================================================
# ManagerConfig
# ============================================================================


class TestManagerConfigValidation:
    """Tests for ManagerConfig field validation."""

    def test_defaults(self) -> None:
        """Defaults match the interactive tool's timings."""
        config = ManagerConfig()
        assert config.sdk_root is None
        assert config.avd_home is None
        assert config.command_timeout_seconds == 10.0
        assert config.start_grace_seconds == 3.0
        assert config.start_verify_retries == 3
        assert config.start_verify_interval_seconds == 2.0
        assert config.stop_signal_grace_seconds == 1.0
        assert config.stop_reconcile_delay_seconds == 2.0
        assert config.reconcile_interval_seconds == 5.0
        assert config.load_timeout_seconds == 10.0
        assert config.revert_unconfirmed_start is False

    def test_command_timeout_range(self) -> None:
        assert ManagerConfig(command_timeout_seconds=0.5).command_timeout_seconds == 0.5
        with pytest.raises(ValidationError):
            ManagerConfig(command_timeout_seconds=0)
        with pytest.raises(ValidationError):
            ManagerConfig(command_timeout_seconds=301)

    def test_verify_retries_range(self) -> None:
        assert ManagerConfig(start_verify_retries=0).start_verify_retries == 0
        with pytest.raises(ValidationError):
            ManagerConfig(start_verify_retries=-1)
        with pytest.raises(ValidationError):
            ManagerConfig(start_verify_retries=21)

    def test_reconcile_interval_must_be_positive(self) -> None:
        with pytest.raises(ValidationError):
            ManagerConfig(reconcile_interval_seconds=0)

    def test_unknown_field_rejected(self) -> None:
        with pytest.raises(ValidationError):
            ManagerConfig(poll_seconds=1)  # type: ignore[call-arg]

    def test_frozen(self) -> None:
        config = ManagerConfig()
        with pytest.raises(ValidationError):
            config.start_grace_seconds = 1.0  # type: ignore[misc]


class TestAvdHome:
    def test_explicit(self, tmp_path: Path) -> None:
        assert ManagerConfig(avd_home=tmp_path).get_avd_home() == tmp_path

    def test_android_avd_home(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ANDROID_AVD_HOME", str(tmp_path / "avds"))
        assert ManagerConfig().get_avd_home() == tmp_path / "avds"

    def test_android_user_home(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ANDROID_USER_HOME", str(tmp_path))
        assert ManagerConfig().get_avd_home() == tmp_path / "avd"

    def test_default(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("HOME", str(tmp_path))
        assert ManagerConfig().get_avd_home() == tmp_path / ".android" / "avd"


# ============================================================================
# Settings
# ============================================================================


class TestSettings:
    def test_defaults(self) -> None:
        config = Settings().to_config()
        assert config == ManagerConfig()

    def test_prefixed_variables(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AVD_MANAGER_RECONCILE_INTERVAL_SECONDS", "2.5")
        monkeypatch.setenv("AVD_MANAGER_REVERT_UNCONFIRMED_START", "true")

        config = Settings().to_config()
        assert config.reconcile_interval_seconds == 2.5
        assert config.revert_unconfirmed_start is True

    def test_android_sdk_root(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ANDROID_SDK_ROOT", str(tmp_path))
        assert Settings().sdk_root == tmp_path

    def test_android_home_fallback(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ANDROID_HOME", str(tmp_path))
        assert Settings().sdk_root == tmp_path

    def test_own_variable_wins(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ANDROID_SDK_ROOT", str(tmp_path / "android"))
        monkeypatch.setenv("AVD_MANAGER_SDK_ROOT", str(tmp_path / "mine"))
        assert Settings().sdk_root == tmp_path / "mine"

    def test_overrides_win_and_none_is_ignored(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("ANDROID_AVD_HOME", str(tmp_path / "env"))

        config = Settings().to_config(avd_home=None, sdk_root=tmp_path / "cli")
        assert config.avd_home == tmp_path / "env"
        assert config.sdk_root == tmp_path / "cli"

    def test_invalid_value_rejected(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("AVD_MANAGER_COMMAND_TIMEOUT_SECONDS", "soon")
        with pytest.raises(ValidationError):
            Settings()
