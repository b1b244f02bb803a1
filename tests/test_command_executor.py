"""Tests for SubprocessCommandExecutor.

Real subprocesses: the Python interpreter running the tests stands in for the
SDK tools, exposed through a ToolPathProvider under the name "python".
"""

from __future__ import annotations

import asyncio
import os
import stat
import sys
import time
from pathlib import Path

import pytest

from avd_manager.command_executor import CommandExecutor, SubprocessCommandExecutor
from avd_manager.exceptions import ToolUnresolvableError
from avd_manager.models import CommandMode

# ============================================================================
# Helpers
# ============================================================================


class _Paths:
    """ToolPathProvider mapping logical names to fixed paths."""

    def __init__(self, **paths: Path) -> None:
        self._paths = paths

    def tool_path(self, tool: str) -> Path | None:
        return self._paths.get(tool)


@pytest.fixture
def executor() -> SubprocessCommandExecutor:
    return SubprocessCommandExecutor(_Paths(python=Path(sys.executable)), timeout_seconds=5.0)


def _script(code: str) -> list[str]:
    return ["-c", code]


# ============================================================================
# Foreground
# ============================================================================


class TestForeground:
    async def test_satisfies_protocol(self, executor: SubprocessCommandExecutor) -> None:
        assert isinstance(executor, CommandExecutor)

    async def test_combines_stdout_and_stderr(self, executor: SubprocessCommandExecutor) -> None:
        result = await executor.execute(
            "python",
            _script("import sys; print('out'); sys.stdout.flush(); print('err', file=sys.stderr)"),
        )
        assert result.exit_code == 0
        assert "out" in result.output
        assert "err" in result.output
        assert result.succeeded

    async def test_run_returns_text(self, executor: SubprocessCommandExecutor) -> None:
        assert (await executor.run("python", _script("print('Pixel_7_API_33')"))).strip() == "Pixel_7_API_33"

    async def test_non_zero_exit_does_not_raise(self, executor: SubprocessCommandExecutor) -> None:
        result = await executor.execute("python", _script("import sys; print('nope'); sys.exit(3)"))
        assert result.exit_code == 3
        assert not result.timed_out
        assert not result.succeeded

    async def test_error_marker_detected(self, executor: SubprocessCommandExecutor) -> None:
        result = await executor.execute("python", _script("print('ERROR: unknown AVD')"))
        assert result.exit_code == 0
        assert result.has_error_marker
        assert not result.succeeded

    async def test_deadline_returns_partial_output(self, executor: SubprocessCommandExecutor) -> None:
        """A command outliving its deadline is killed; what it printed so far is kept."""
        code = "import sys, time; print('partial'); sys.stdout.flush(); time.sleep(30)"
        started = time.monotonic()
        result = await executor.execute("python", _script(code), timeout=0.5)
        elapsed = time.monotonic() - started

        assert result.timed_out
        assert "partial" in result.output
        assert not result.succeeded
        assert elapsed < 5.0

    async def test_run_honours_per_call_deadline(self, executor: SubprocessCommandExecutor) -> None:
        """run() is part of the CommandExecutor contract and forwards the per-call deadline."""
        runner: CommandExecutor = executor
        code = "import sys, time; print('partial'); sys.stdout.flush(); time.sleep(30)"
        started = time.monotonic()
        output = await runner.run("python", _script(code), timeout=0.5)

        assert "partial" in output
        assert time.monotonic() - started < 5.0

    async def test_large_output_is_not_truncated(self, executor: SubprocessCommandExecutor) -> None:
        result = await executor.execute("python", _script("print('x' * 200_000)"))
        assert len(result.output.strip()) == 200_000


# ============================================================================
# Background
# ============================================================================


class TestBackground:
    async def test_returns_immediately_with_empty_output(self, executor: SubprocessCommandExecutor) -> None:
        started = time.monotonic()
        result = await executor.execute(
            "python",
            _script("import time; print('ignored'); time.sleep(2)"),
            CommandMode.BACKGROUND,
        )
        assert time.monotonic() - started < 1.5
        assert result.output == ""
        assert result.exit_code is None
        assert not result.spawn_failed
        await executor.aclose()


# ============================================================================
# Tool Resolution
# ============================================================================


class TestToolResolution:
    async def test_configured_path_wins(self, executor: SubprocessCommandExecutor) -> None:
        assert await executor.resolve_tool("python") == sys.executable

    async def test_unresolvable_tool_raises(self) -> None:
        executor = SubprocessCommandExecutor(None)
        with pytest.raises(ToolUnresolvableError) as exc_info:
            await executor.execute("avdm-test-no-such-tool", ["--version"])
        assert exc_info.value.tool == "avdm-test-no-such-tool"

    async def test_falls_back_to_path(self, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        interpreter = Path(sys.executable)
        monkeypatch.setenv("PATH", str(interpreter.parent))
        executor = SubprocessCommandExecutor(_Paths(**{interpreter.name: tmp_path / "missing"}))

        resolved = await executor.resolve_tool(interpreter.name)
        assert Path(resolved).parent == interpreter.parent

    async def test_spawn_failure_reported_as_result(self, tmp_path: Path) -> None:
        """An executable that cannot be exec'd yields a failure result, not an exception."""
        bogus = tmp_path / "emulator"
        bogus.write_bytes(b"\x00\x01\x02 not a binary")
        bogus.chmod(bogus.stat().st_mode | stat.S_IXUSR)
        executor = SubprocessCommandExecutor(_Paths(emulator=bogus))

        result = await executor.execute("emulator", ["-list-avds"])
        assert result.spawn_failed
        assert result.output.startswith("Error:")
        assert not result.succeeded


@pytest.mark.skipif(os.name != "posix", reason="relies on POSIX exec semantics")
async def test_timeout_kills_child_processes(executor: SubprocessCommandExecutor, tmp_path: Path) -> None:
    """Descendants of a timed-out command are killed with it."""
    marker = tmp_path / "grandchild-alive"
    code = (
        "import subprocess, sys, time\n"
        "grandchild = 'import sys, time; time.sleep(1.5); open(sys.argv[1], \"w\").close()'\n"
        "subprocess.Popen([sys.executable, '-c', grandchild, sys.argv[1]])\n"
        "time.sleep(30)\n"
    )
    result = await executor.execute("python", [*_script(code), str(marker)], timeout=0.5)
    assert result.timed_out

    await asyncio.sleep(2.0)
    assert not marker.exists()
