"""Running-state detector: which images currently have a live emulator.

Detection goes through the bridge only:
    1. ``adb devices`` lists endpoints; only emulator endpoints in the
       ``device`` state qualify (``offline``/``unauthorized`` are skipped)
    2. each endpoint is resolved to an image name by the first query strategy
       that returns a real name

The result is best effort. An image missing from the set may simply not have
registered with adb yet, but callers treat the set as ground truth.
"""

from __future__ import annotations

import asyncio
from collections.abc import Sequence
from typing import TYPE_CHECKING

from avd_manager._logging import get_logger
from avd_manager.constants import ADB_TOOL, AVD_NAME_PROPERTIES, EMULATOR_SERIAL_PREFIX
from avd_manager.exceptions import ToolUnresolvableError
from avd_manager.models import DeviceObservation, Endpoint
from avd_manager.parsing import parse_adb_devices, parse_avd_name_reply

if TYPE_CHECKING:
    from avd_manager.command_executor import CommandExecutor

logger = get_logger(__name__)


def name_query_strategies(serial: str) -> list[list[str]]:
    """adb argument lists that may reveal the image behind *serial*, in order."""
    strategies = [["-s", serial, "emu", "avd", "name"]]
    strategies.extend(["-s", serial, "shell", "getprop", prop] for prop in AVD_NAME_PROPERTIES)
    return strategies


class RunningStateDetector:
    """Determines the set of running image names."""

    def __init__(self, executor: CommandExecutor) -> None:
        self._executor = executor

    async def list_endpoints(self) -> list[Endpoint]:
        """Emulator endpoints ready for interaction.

        Raises:
            ToolUnresolvableError: adb cannot be located
        """
        result = await self._executor.execute(ADB_TOOL, ["devices"])
        if result.spawn_failed:
            return []
        return [
            endpoint
            for endpoint in parse_adb_devices(result.output)
            if endpoint.is_ready and endpoint.serial.startswith(EMULATOR_SERIAL_PREFIX)
        ]

    async def resolve_image_name(self, serial: str) -> str:
        """Image name for an endpoint, or "" when every strategy fails.

        Raises:
            ToolUnresolvableError: adb cannot be located
        """
        for args in name_query_strategies(serial):
            result = await self._executor.execute(ADB_TOOL, args)
            if result.spawn_failed or result.timed_out:
                continue
            if name := parse_avd_name_reply(result.output):
                return name
        logger.debug("Could not resolve endpoint to an image", extra={"serial": serial})
        return ""

    async def resolve_endpoints(self, endpoints: Sequence[Endpoint]) -> dict[str, str]:
        """Resolve endpoints concurrently; returns serial -> name for resolved ones."""
        names = await asyncio.gather(*(self.resolve_image_name(ep.serial) for ep in endpoints))
        return {ep.serial: name for ep, name in zip(endpoints, names, strict=True) if name}

    async def running_image_names(self) -> set[str]:
        """Names of images with a live, resolvable endpoint. Never raises."""
        try:
            endpoints = await self.list_endpoints()
            resolved = await self.resolve_endpoints(endpoints)
        except ToolUnresolvableError as e:
            logger.warning("Bridge tool unavailable, reporting nothing running", extra={"tool": e.tool})
            return set()

        running = set(resolved.values())
        logger.debug(
            "Running-state detection finished",
            extra={"endpoints": len(endpoints), "running": sorted(running)},
        )
        return running

    async def observe(self, names: Sequence[str]) -> list[DeviceObservation]:
        """One observation per requested name, from a single detection pass."""
        running = await self.running_image_names()
        return [DeviceObservation(name=name, is_running=name in running) for name in names]
