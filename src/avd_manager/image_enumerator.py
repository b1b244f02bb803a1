"""Image enumerator: lists locally-registered AVDs with descriptive metadata.

Sources, in order of preference for each image:
    1. ``avdmanager list avd`` block for the name
    2. ``<avd_home>/<name>.avd/config.ini``
    3. defaults ("Unknown Device", "Unknown", "Android")

The name list itself always comes from ``emulator -list-avds``; metadata never
decides whether an image is listed.
"""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import TYPE_CHECKING

import aiofiles

from avd_manager._logging import get_logger
from avd_manager.constants import AVDMANAGER_TOOL, EMULATOR_TOOL
from avd_manager.exceptions import ToolUnresolvableError
from avd_manager.models import VirtualDeviceImage
from avd_manager.parsing import AvdDetails, details_from_config, parse_avd_details, parse_config_ini, parse_image_names

if TYPE_CHECKING:
    from avd_manager.command_executor import CommandExecutor

logger = get_logger(__name__)


class ImageEnumerator:
    """Lists virtual device images through the command executor."""

    def __init__(self, executor: CommandExecutor, avd_home: Path) -> None:
        self._executor = executor
        self._avd_home = avd_home

    async def list_images(self) -> list[VirtualDeviceImage]:
        """Enumerate images. Never raises; a missing tool yields an empty list."""
        names_output, details_output = await asyncio.gather(
            self._run_quietly(EMULATOR_TOOL, ["-list-avds"]),
            self._run_quietly(AVDMANAGER_TOOL, ["list", "avd"]),
        )

        names = parse_image_names(names_output)
        if not names:
            logger.info("No virtual device images found", extra={"avd_home": str(self._avd_home)})
            return []

        details = parse_avd_details(details_output)
        images = [await self._describe(name, details.get(name)) for name in names]

        degraded = [image.name for image in images if image.degraded]
        logger.info(
            "Enumerated virtual device images",
            extra={"count": len(images), "with_default_metadata": len(degraded)},
        )
        return images

    async def _describe(self, name: str, listed: AvdDetails | None) -> VirtualDeviceImage:
        if listed is not None:
            return VirtualDeviceImage(
                name=name,
                device=listed.device,
                api_level=listed.api_level,
                target=listed.target,
                metadata_source="avdmanager",
            )

        from_config = details_from_config(await self._read_config(name))
        if from_config is not None:
            return VirtualDeviceImage(
                name=name,
                device=from_config.device,
                api_level=from_config.api_level,
                target=from_config.target,
                metadata_source="config",
            )

        logger.debug("No metadata for image, using defaults", extra={"image": name})
        defaults = AvdDetails()
        return VirtualDeviceImage(
            name=name,
            device=defaults.device,
            api_level=defaults.api_level,
            target=defaults.target,
            metadata_source="default",
        )

    async def _read_config(self, name: str) -> dict[str, str]:
        path = self._avd_home / f"{name}.avd" / "config.ini"
        try:
            async with aiofiles.open(path, encoding="utf-8", errors="replace") as f:
                return parse_config_ini(await f.read())
        except OSError:
            return {}

    async def _run_quietly(self, tool: str, args: list[str]) -> str:
        try:
            return await self._executor.run(tool, args)
        except ToolUnresolvableError as e:
            logger.warning("Tool unavailable, skipping", extra={"tool": e.tool})
            return ""
