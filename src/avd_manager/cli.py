"""Command-line interface for avd-manager.

Usage:
    avdm list                      # Images and their state
    avdm list --json               # Same, machine readable
    avdm start Pixel_7_API_33      # Launch an image
    avdm start Pixel_7_API_33 --wait
    avdm stop Pixel_7_API_33       # Stop a running image
    avdm watch                     # Print state changes as they are detected
    avdm sdk                       # Show the resolved SDK and tool paths
"""

from __future__ import annotations

import asyncio
import json
import sys
from collections.abc import Awaitable, Callable
from pathlib import Path
from typing import NoReturn

import click

from avd_manager import __version__
from avd_manager._logging import configure_logging
from avd_manager.command_executor import SubprocessCommandExecutor
from avd_manager.config import ManagerConfig
from avd_manager.constants import ADB_TOOL, AVDMANAGER_TOOL, EMULATOR_TOOL
from avd_manager.exceptions import AvdManagerError, ImageNotFoundError, ToolUnresolvableError
from avd_manager.manager import EmulatorManager
from avd_manager.models import ImageState, InventoryStatus
from avd_manager.sdk import AndroidSdk
from avd_manager.settings import Settings

# Exit codes following Unix conventions
EXIT_SUCCESS = 0
EXIT_CLI_ERROR = 2
EXIT_ENGINE_ERROR = 125

_STATE_COLORS: dict[str, str] = {
    "running": "green",
    "starting": "yellow",
    "stopping": "yellow",
    "stopped": "white",
}


def build_manager(config: ManagerConfig) -> EmulatorManager:
    """Construct the manager used by every command."""
    return EmulatorManager(config)


def format_error(title: str, message: str, suggestions: list[str] | None = None) -> str:
    """Format an error message following What → Why → Fix pattern."""
    lines = [
        click.style(f"Error: {title}", fg="red", bold=True),
        "",
        f"  {message}",
    ]

    if suggestions:
        lines.extend(["", "  Suggestions:"])
        lines.extend(f"    • {suggestion}" for suggestion in suggestions)

    return "\n".join(lines)


def format_table(states: list[ImageState]) -> str:
    """Render image states as an aligned text table."""
    header = ("NAME", "STATE", "API", "DEVICE", "TARGET")
    rows = [
        (
            state.name,
            state.lifecycle_state.value,
            state.image.api_level,
            state.image.device,
            state.image.target,
        )
        for state in states
    ]
    widths = [max(len(row[i]) for row in [header, *rows]) for i in range(len(header))]

    lines = ["  ".join(cell.ljust(width) for cell, width in zip(header, widths, strict=True)).rstrip()]
    for row in rows:
        cells = [cell.ljust(width) for cell, width in zip(row, widths, strict=True)]
        cells[1] = click.style(cells[1], fg=_STATE_COLORS.get(row[1]))
        lines.append("  ".join(cells).rstrip())
    return "\n".join(lines)


def format_states_json(status: InventoryStatus, states: list[ImageState]) -> str:
    """Format the inventory as JSON."""
    output = {
        "status": status.value,
        "images": [state.model_dump(mode="json") for state in states],
    }
    return json.dumps(output, indent=2)


async def _with_manager(
    config: ManagerConfig,
    action: Callable[[EmulatorManager], Awaitable[int]],
    *,
    schedule: bool = False,
) -> int:
    """Run *action* against a started manager; map engine errors to exit codes."""
    manager = build_manager(config)
    try:
        await manager.start(schedule=schedule)
        return await action(manager)

    except ImageNotFoundError as e:
        click.echo(
            format_error(
                "Unknown image",
                e.message,
                ["Run 'avdm list' to see the available images"],
            ),
            err=True,
        )
        return EXIT_CLI_ERROR

    except ToolUnresolvableError as e:
        click.echo(
            format_error(
                f"Cannot find '{e.tool}'",
                e.message,
                [
                    "Set ANDROID_SDK_ROOT or pass --sdk-root",
                    "Add the SDK's emulator and platform-tools directories to PATH",
                ],
            ),
            err=True,
        )
        return EXIT_ENGINE_ERROR

    except AvdManagerError as e:
        click.echo(format_error("Emulator manager error", e.message), err=True)
        return EXIT_ENGINE_ERROR

    finally:
        await manager.close()


@click.group(context_settings={"help_option_names": ["-h", "--help"]})
@click.option(
    "--sdk-root",
    type=click.Path(file_okay=False, path_type=Path),
    help="Android SDK root (default: ANDROID_SDK_ROOT / auto-detect)",
)
@click.option(
    "--avd-home",
    type=click.Path(file_okay=False, path_type=Path),
    help="AVD directory (default: ANDROID_AVD_HOME / ~/.android/avd)",
)
@click.option("-v", "--verbose", is_flag=True, help="Show debug logging")
@click.option("-q", "--quiet", is_flag=True, help="Only show errors")
@click.version_option(__version__, "-V", "--version", prog_name="avd-manager")
@click.pass_context
def main(ctx: click.Context, sdk_root: Path | None, avd_home: Path | None, verbose: bool, quiet: bool) -> None:
    """Manage Android Virtual Devices from the terminal."""
    configure_logging(level="DEBUG" if verbose else "WARNING", quiet=quiet)
    ctx.obj = Settings().to_config(sdk_root=sdk_root, avd_home=avd_home)


@main.command("list")
@click.option("--json", "json_output", is_flag=True, help="Output as JSON")
@click.pass_obj
def list_command(config: ManagerConfig, json_output: bool) -> NoReturn:
    """List virtual device images and whether they are running."""

    async def action(manager: EmulatorManager) -> int:
        states = manager.images()
        if json_output:
            click.echo(format_states_json(manager.store.status, states))
        else:
            click.echo(format_table(states))
        return EXIT_SUCCESS

    sys.exit(asyncio.run(_with_manager(config, action)))


@main.command("start")
@click.argument("name")
@click.option("--wait", is_flag=True, help="Wait until the launch is confirmed or given up on")
@click.pass_obj
def start_command(config: ManagerConfig, name: str, wait: bool) -> NoReturn:
    """Launch the image NAME."""

    async def action(manager: EmulatorManager) -> int:
        if not await manager.start_image(name):
            click.echo(f"{name}: operation already in progress")
            return EXIT_SUCCESS
        click.echo(f"{name}: launch dispatched")
        if wait:
            await manager.wait_for_pending()
            state = manager.store.get(name)
            confirmed = state is not None and state.is_running
            click.echo(f"{name}: {'running' if confirmed else 'not confirmed'}")
        return EXIT_SUCCESS

    sys.exit(asyncio.run(_with_manager(config, action)))


@main.command("stop")
@click.argument("name")
@click.pass_obj
def stop_command(config: ManagerConfig, name: str) -> NoReturn:
    """Stop the image NAME."""

    async def action(manager: EmulatorManager) -> int:
        outcome = await manager.stop_image(name)
        if outcome is None:
            click.echo(f"{name}: operation already in progress")
        elif outcome.exhausted:
            click.echo(f"{name}: no stop method succeeded", err=True)
        else:
            click.echo(f"{name}: stopped ({outcome.method.value if outcome.method else 'unknown'})")
        return EXIT_SUCCESS

    sys.exit(asyncio.run(_with_manager(config, action)))


@main.command("watch")
@click.option("-i", "--interval", type=float, help="Seconds between detection passes")
@click.option("--duration", type=float, help="Stop watching after this many seconds")
@click.pass_obj
def watch_command(config: ManagerConfig, interval: float | None, duration: float | None) -> NoReturn:
    """Print image state changes as they are detected (Ctrl-C to quit)."""
    if interval is not None:
        if interval <= 0:
            raise click.UsageError("--interval must be positive")
        config = config.model_copy(update={"reconcile_interval_seconds": interval})

    async def action(manager: EmulatorManager) -> int:
        click.echo(format_table(manager.images()))

        def on_change(changed: frozenset[str]) -> None:
            for name in sorted(changed):
                state = manager.store.get(name)
                if state is not None:
                    click.echo(f"{name}: {state.lifecycle_state.value}")

        unsubscribe = manager.store.subscribe(on_change)
        try:
            if duration is None:
                await asyncio.Event().wait()
            else:
                await asyncio.sleep(duration)
        finally:
            unsubscribe()
        return EXIT_SUCCESS

    try:
        exit_code = asyncio.run(_with_manager(config, action, schedule=True))
    except KeyboardInterrupt:
        exit_code = EXIT_SUCCESS
    sys.exit(exit_code)


@main.command("sdk")
@click.pass_obj
def sdk_command(config: ManagerConfig) -> NoReturn:
    """Show the SDK root and where each tool resolves."""
    sdk = AndroidSdk.discover(config.sdk_root)
    executor = SubprocessCommandExecutor(sdk, timeout_seconds=config.command_timeout_seconds)

    async def resolve_all() -> dict[str, str | None]:
        resolved: dict[str, str | None] = {}
        for tool in (EMULATOR_TOOL, ADB_TOOL, AVDMANAGER_TOOL):
            try:
                resolved[tool] = await executor.resolve_tool(tool)
            except ToolUnresolvableError:
                resolved[tool] = None
        return resolved

    resolved = asyncio.run(resolve_all())

    click.echo(f"SDK root:   {sdk.root or '(not found, using PATH)'}")
    click.echo(f"Valid:      {'yes' if sdk.is_valid else 'no'}")
    click.echo(f"AVD home:   {config.get_avd_home()}")
    for tool, path in resolved.items():
        shown = path if path is not None else click.style("not found", fg="red")
        click.echo(f"{tool + ':':<12}{shown}")

    sys.exit(EXIT_SUCCESS if all(resolved[tool] for tool in (EMULATOR_TOOL, ADB_TOOL)) else EXIT_ENGINE_ERROR)


if __name__ == "__main__":
    main()
