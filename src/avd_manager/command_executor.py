"""Command executor: runs the SDK and OS tools the engine drives.

Contract:
- ``run(tool, args, mode) -> str``: combined stdout/stderr text. Never raises
  on a non-zero exit; callers that only see text look for an error marker.
- ``execute(tool, args, mode) -> CommandResult``: same call, plus the exit
  status, a timeout flag and a spawn-failure flag for callers that want real
  signals instead of substring checks.

Tool resolution:
    1. path from the ToolPathProvider (SDK root), if it exists and is executable
    2. PATH lookup (shutil.which)
    otherwise ToolUnresolvableError is raised before anything is spawned.

Modes:
- FOREGROUND: output is streamed into a buffer until the child exits or the
  deadline passes. On the deadline the child and its descendants are
  SIGKILLed and the partial output is returned with ``timed_out=True``.
- BACKGROUND: the child is started in its own session with output discarded
  and the call returns at once with empty output. A reaper task collects the
  exit status so no zombie is left; ``aclose()`` cancels reapers but leaves
  the children running (a launched emulator must outlive the manager).
"""

from __future__ import annotations

import asyncio
import os
import shlex
import shutil
from collections.abc import Sequence
from pathlib import Path
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from avd_manager._logging import get_logger
from avd_manager.constants import COMMAND_TIMEOUT_SECONDS
from avd_manager.exceptions import ToolUnresolvableError
from avd_manager.models import CommandMode, CommandResult
from avd_manager.platform_utils import ProcessWrapper
from avd_manager.resource_cleanup import cleanup_process
from avd_manager.subprocess_utils import collect_output, log_task_exception

if TYPE_CHECKING:
    from avd_manager.sdk import ToolPathProvider

logger = get_logger(__name__)


@runtime_checkable
class CommandExecutor(Protocol):
    """Runs an external tool and reports what it printed."""

    async def execute(
        self,
        tool: str,
        args: Sequence[str],
        mode: CommandMode = CommandMode.FOREGROUND,
        *,
        timeout: float | None = None,
    ) -> CommandResult:
        """Run *tool* with *args* and return the structured result.

        *timeout* overrides the executor deadline for one foreground run.

        Raises:
            ToolUnresolvableError: The executable cannot be located
        """
        ...

    async def run(
        self,
        tool: str,
        args: Sequence[str],
        mode: CommandMode = CommandMode.FOREGROUND,
        *,
        timeout: float | None = None,
    ) -> str:
        """Run *tool* with *args* and return its combined output text."""
        ...


def _is_executable(path: Path) -> bool:
    return path.is_file() and os.access(path, os.X_OK)


class SubprocessCommandExecutor:
    """CommandExecutor backed by asyncio subprocesses."""

    def __init__(
        self,
        tool_paths: ToolPathProvider | None = None,
        *,
        timeout_seconds: float = COMMAND_TIMEOUT_SECONDS,
    ) -> None:
        self._tool_paths = tool_paths
        self._timeout = timeout_seconds
        self._reapers: set[asyncio.Task[int]] = set()

    @property
    def timeout_seconds(self) -> float:
        return self._timeout

    async def resolve_tool(self, tool: str) -> str:
        """Resolve a logical tool name to an executable path.

        Raises:
            ToolUnresolvableError: Neither the provider nor PATH has it
        """
        configured = self._tool_paths.tool_path(tool) if self._tool_paths is not None else None
        if configured is not None:
            if await asyncio.to_thread(_is_executable, configured):
                return str(configured)
            logger.debug("Configured tool path unusable, trying PATH", extra={"tool": tool, "path": str(configured)})

        found = await asyncio.to_thread(shutil.which, tool)
        if found:
            return found

        raise ToolUnresolvableError(tool, {"configured_path": str(configured) if configured else None})

    async def run(
        self,
        tool: str,
        args: Sequence[str],
        mode: CommandMode = CommandMode.FOREGROUND,
        *,
        timeout: float | None = None,
    ) -> str:
        result = await self.execute(tool, args, mode, timeout=timeout)
        return result.output

    async def execute(
        self,
        tool: str,
        args: Sequence[str],
        mode: CommandMode = CommandMode.FOREGROUND,
        *,
        timeout: float | None = None,
    ) -> CommandResult:
        executable = await self.resolve_tool(tool)
        argv = [executable, *args]
        command_line = shlex.join([tool, *args])

        logger.debug("Executing command", extra={"command": command_line, "executable": executable, "mode": mode.value})

        try:
            if mode is CommandMode.BACKGROUND:
                return await self._spawn_background(argv, tool, command_line)
            return await self._run_foreground(argv, tool, command_line, self._timeout if timeout is None else timeout)
        except OSError as e:
            logger.warning(
                "Command failed to start",
                extra={"command": command_line, "error": str(e), "error_type": type(e).__name__},
            )
            return CommandResult(output=f"Error: {e}", spawn_failed=True)

    async def _run_foreground(self, argv: list[str], tool: str, command_line: str, timeout: float) -> CommandResult:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.PIPE,
            stderr=asyncio.subprocess.STDOUT,
        )
        wrapper = ProcessWrapper(proc)
        buffer = bytearray()
        timed_out = False

        try:
            async with asyncio.timeout(timeout):
                await collect_output(proc.stdout, buffer)
                await proc.wait()
        except TimeoutError:
            timed_out = True
            logger.warning(
                "Command exceeded deadline, using partial output",
                extra={"command": command_line, "timeout_seconds": timeout, "captured_bytes": len(buffer)},
            )
        finally:
            # Also covers cancellation of the caller: never leave the child behind
            if proc.returncode is None:
                await cleanup_process(wrapper, name=tool, context_id=command_line)

        output = buffer.decode(errors="replace")
        logger.debug(
            "Command finished",
            extra={"command": command_line, "exit_code": proc.returncode, "output_chars": len(output)},
        )
        return CommandResult(output=output, exit_code=proc.returncode, timed_out=timed_out)

    async def _spawn_background(self, argv: list[str], tool: str, command_line: str) -> CommandResult:
        proc = await asyncio.create_subprocess_exec(
            *argv,
            stdin=asyncio.subprocess.DEVNULL,
            stdout=asyncio.subprocess.DEVNULL,
            stderr=asyncio.subprocess.DEVNULL,
            start_new_session=True,
        )
        reaper = asyncio.create_task(proc.wait(), name=f"reap-{tool}-{proc.pid}")
        self._reapers.add(reaper)
        reaper.add_done_callback(self._reapers.discard)
        reaper.add_done_callback(log_task_exception)

        logger.info("Background command started", extra={"command": command_line, "pid": proc.pid})
        return CommandResult(output="")

    async def aclose(self) -> None:
        """Stop reaping background children (the children keep running)."""
        reapers = list(self._reapers)
        for task in reapers:
            task.cancel()
        await asyncio.gather(*reapers, return_exceptions=True)
        self._reapers.clear()
