"""Host OS detection and PID-reuse safe process handling.

Uses psutil for both: its OS constants decide where the Android SDK usually
lives, and its Process objects let us kill a timed-out tool together with any
children it forked (``avdmanager`` is a shell script that execs a JVM).
"""

import asyncio
import contextlib
from enum import Enum, auto
from functools import cache

import psutil


class HostOS(Enum):
    """Host operating systems with known SDK layouts."""

    LINUX = auto()
    MACOS = auto()
    WINDOWS = auto()
    UNKNOWN = auto()


@cache
def detect_host_os() -> HostOS:
    """Detect the host operating system using psutil constants."""
    if psutil.LINUX:
        return HostOS.LINUX
    if psutil.MACOS:
        return HostOS.MACOS
    if psutil.WINDOWS:
        return HostOS.WINDOWS
    return HostOS.UNKNOWN


class ProcessWrapper:
    """PID-reuse safe wrapper around an asyncio subprocess.

    The psutil handle is taken right after spawn, so later signals go to the
    process we started even if the PID has since been recycled.
    """

    def __init__(self, async_proc: asyncio.subprocess.Process) -> None:
        self.async_proc = async_proc
        self.psutil_proc: psutil.Process | None = None

        if async_proc.pid:
            with contextlib.suppress(psutil.NoSuchProcess, psutil.AccessDenied):
                self.psutil_proc = psutil.Process(async_proc.pid)

    @property
    def pid(self) -> int | None:
        return self.async_proc.pid

    @property
    def returncode(self) -> int | None:
        return self.async_proc.returncode

    async def wait(self) -> int:
        return await self.async_proc.wait()

    async def is_running(self) -> bool:
        """Check liveness without blocking the event loop."""
        if not self.psutil_proc:
            return self.async_proc.returncode is None
        try:
            return await asyncio.to_thread(self.psutil_proc.is_running)
        except (psutil.NoSuchProcess, psutil.AccessDenied):
            return False

    async def terminate(self) -> None:
        """Send SIGTERM to the process only."""
        if self.psutil_proc and await self.is_running():
            with contextlib.suppress(psutil.NoSuchProcess, psutil.AccessDenied):
                await asyncio.to_thread(self.psutil_proc.terminate)
        elif self.async_proc.returncode is None:
            with contextlib.suppress(ProcessLookupError):
                self.async_proc.terminate()

    async def kill_tree(self) -> None:
        """SIGKILL the process and every descendant it spawned.

        Descendants are collected before the parent dies; afterwards they are
        reparented and no longer discoverable through it.
        """
        if self.psutil_proc is None:
            if self.async_proc.returncode is None:
                with contextlib.suppress(ProcessLookupError):
                    self.async_proc.kill()
            return

        def _kill() -> None:
            try:
                children = self.psutil_proc.children(recursive=True)  # type: ignore[union-attr]
            except (psutil.NoSuchProcess, psutil.AccessDenied):
                children = []
            for proc in [self.psutil_proc, *children]:
                with contextlib.suppress(psutil.NoSuchProcess, psutil.AccessDenied):
                    proc.kill()  # type: ignore[union-attr]

        await asyncio.to_thread(_kill)

    async def wait_with_timeout(self, timeout: float) -> int:
        """Wait for exit.

        Raises:
            TimeoutError: The process did not exit within *timeout* seconds
        """
        async with asyncio.timeout(timeout):
            return await self.async_proc.wait()
