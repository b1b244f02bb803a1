"""Parsers for the text printed by emulator, avdmanager, adb and ps.

Every parser is total: unrecognised input yields empty or partial results,
never an exception. Output formats differ between SDK releases, so each
parser accepts the variants seen in the wild and ignores everything else.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from avd_manager.constants import (
    DEFAULT_TARGET,
    ERROR_MARKER,
    SENTINEL_TOKENS,
    UNKNOWN_API_LEVEL,
    UNKNOWN_DEVICE,
)
from avd_manager.models import Endpoint

# AVD names as accepted by avdmanager create: letters, digits, dot, underscore, dash
_AVD_NAME_PATTERN = re.compile(r"^[A-Za-z0-9._-]+$")

# "API level 33", "API Level 33", "Android API 34"
_API_LEVEL_PATTERN = re.compile(r"\bAPI(?:\s+level)?\s+(\d+)\b", re.IGNORECASE)

# "Android 13.0 (Tiramisu)" -> "13.0"
_ANDROID_VERSION_PATTERN = re.compile(r"\bAndroid\s+(\d+(?:\.\d+)?L?)\b")

# Platform version -> API level, for "Based on: Android 13.0 (Tiramisu)" lines
_VERSION_TO_API: dict[str, str] = {
    "15": "35",
    "15.0": "35",
    "14": "34",
    "14.0": "34",
    "13": "33",
    "13.0": "33",
    "12L": "32",
    "12": "31",
    "12.0": "31",
    "11": "30",
    "11.0": "30",
    "10": "29",
    "10.0": "29",
    "9": "28",
    "9.0": "28",
    "8.1": "27",
    "8.0": "26",
    "7.1": "25",
    "7.0": "24",
}

_ERE_SPECIALS = frozenset(".[]()*+?^$|\\{}")


@dataclass(frozen=True)
class AvdDetails:
    """Descriptive metadata for one image, from whichever source had it."""

    device: str = UNKNOWN_DEVICE
    api_level: str = UNKNOWN_API_LEVEL
    target: str = DEFAULT_TARGET


# ============================================================================
# Image lists
# ============================================================================


def parse_image_names(output: str) -> list[str]:
    """Parse ``emulator -list-avds`` output into image names.

    Diagnostic lines (``INFO    | ...``, ``Error: ...``) never look like an AVD
    name and are skipped. Duplicates are dropped, order is kept.
    """
    names: list[str] = []
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if line and _AVD_NAME_PATTERN.match(line) and line not in names:
            names.append(line)
    return names


def _api_level_from_text(text: str) -> str | None:
    if match := _API_LEVEL_PATTERN.search(text):
        return match.group(1)
    if match := _ANDROID_VERSION_PATTERN.search(text):
        return _VERSION_TO_API.get(match.group(1))
    return None


def _based_on_summary(based_on: str) -> str:
    # "Android 13.0 (Tiramisu) Tag/ABI: google_apis/arm64-v8a" -> "Android 13.0 (Tiramisu)"
    return based_on.split("Tag/ABI:")[0].strip()


def parse_avd_details(output: str) -> dict[str, AvdDetails]:
    """Parse ``avdmanager list avd`` into per-name metadata.

    Blocks are separated by dashed lines; a final block without a separator is
    kept. Blocks that carry an ``Error:`` line (AVDs avdmanager could not load)
    are dropped so the caller falls back to other sources.
    """
    details: dict[str, AvdDetails] = {}
    block: dict[str, str] = {}

    def flush() -> None:
        name = block.get("name")
        if name and "error" not in block:
            target_line = block.get("target", "")
            based_on = _based_on_summary(block.get("based on", ""))
            api_level = _api_level_from_text(target_line) or _api_level_from_text(based_on) or UNKNOWN_API_LEVEL
            details[name] = AvdDetails(
                device=block.get("device") or UNKNOWN_DEVICE,
                api_level=api_level,
                target=based_on or target_line or DEFAULT_TARGET,
            )
        block.clear()

    for raw_line in output.splitlines():
        line = raw_line.strip()
        if line.startswith("---"):
            flush()
            continue
        key, sep, value = line.partition(":")
        if not sep:
            continue
        key = key.strip().lower()
        if key == "name" and "name" in block:
            # Two blocks without a separator between them
            flush()
        if key in {"name", "device", "target", "based on", "error"}:
            block[key] = value.strip()
    flush()
    return details


def parse_config_ini(text: str) -> dict[str, str]:
    """Parse a ``config.ini`` (key=value lines) into a dict."""
    values: dict[str, str] = {}
    for raw_line in text.splitlines():
        key, sep, value = raw_line.partition("=")
        if sep and key.strip() and not key.lstrip().startswith("#"):
            values[key.strip()] = value.strip()
    return values


def details_from_config(config: dict[str, str]) -> AvdDetails | None:
    """Derive metadata from a parsed ``config.ini``; None when it is empty."""
    if not config:
        return None

    device = (
        config.get("hw.device.name")
        or config.get("hw.device.manufacturer")
        or config.get("avd.ini.displayname")
        or UNKNOWN_DEVICE
    )

    api_level: str | None = None
    for component in config.get("image.sysdir.1", "").split("/"):
        if component.startswith("android-") and component.removeprefix("android-").isdigit():
            api_level = component.removeprefix("android-")
            break
    target = config.get("target", "")
    if api_level is None and target.startswith("android-") and target.removeprefix("android-").isdigit():
        api_level = target.removeprefix("android-")
    if api_level is None and "API" in config.get("tag.display", ""):
        api_level = next((tok for tok in config["tag.display"].split() if tok.isdigit()), None)

    if target.startswith("android-"):
        level = target.removeprefix("android-")
        tag_id = config.get("tag.id", "")
        if "playstore" in tag_id:
            summary = f"Android {level} (Google Play)"
        elif "google_apis" in tag_id:
            summary = f"Android {level} (Google APIs)"
        else:
            summary = f"Android {level}"
    else:
        summary = target or config.get("tag.display") or DEFAULT_TARGET

    return AvdDetails(device=device, api_level=api_level or UNKNOWN_API_LEVEL, target=summary)


# ============================================================================
# Endpoints and name resolution
# ============================================================================


def parse_adb_devices(output: str) -> list[Endpoint]:
    """Parse ``adb devices`` output into endpoints (all statuses).

    Skips the header and daemon chatter (``* daemon started successfully``).
    """
    endpoints: list[Endpoint] = []
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line or line.startswith("*") or line.lower().startswith("list of devices"):
            continue
        tokens = line.split()
        if len(tokens) < 2:
            continue
        endpoints.append(Endpoint(serial=tokens[0], status=tokens[1]))
    return endpoints


def is_sentinel(value: str) -> bool:
    """True for placeholder replies (``OK``, ``null``, ``KO: ...``) that are not values."""
    token = value.strip().lower()
    if token in SENTINEL_TOKENS:
        return True
    return token.startswith(("ok:", "ko:"))


def is_error_reply(line: str) -> bool:
    """True for a tool error line (``error``, ``error: device ... not found``).

    Only the leading word counts: an image name may contain ``error``.
    """
    token = line.strip().lower()
    return token == ERROR_MARKER or token.startswith((f"{ERROR_MARKER}:", f"{ERROR_MARKER} "))


def parse_avd_name_reply(output: str) -> str:
    """Extract an image name from an ``emu avd name`` / ``getprop`` reply.

    ``emu avd name`` prints the name followed by ``OK``; getprop prints the
    bare value or nothing. Returns "" when no line is an acceptable name.
    """
    for raw_line in output.splitlines():
        line = raw_line.strip()
        if not line or is_sentinel(line) or is_error_reply(line):
            continue
        if _AVD_NAME_PATTERN.match(line):
            return line
    return ""


# ============================================================================
# Process listing
# ============================================================================


def _is_launch_of(tokens: list[str], name: str) -> bool:
    if not any("emulator" in tok or "qemu-system" in tok for tok in tokens):
        return False
    if f"@{name}" in tokens:
        return True
    return any(tok == "-avd" and i + 1 < len(tokens) and tokens[i + 1] == name for i, tok in enumerate(tokens))


def find_emulator_pid(ps_output: str, name: str) -> int | None:
    """Find the PID of the emulator process running *name* in ``ps aux`` output.

    The PID is the second column; a matching line whose second column is not
    numeric is skipped.
    """
    for raw_line in ps_output.splitlines():
        tokens = raw_line.split()
        if len(tokens) < 2 or not _is_launch_of(tokens, name):
            continue
        if tokens[1].isdigit():
            return int(tokens[1])
    return None


def emulator_process_pattern(name: str) -> str:
    """Extended regex for ``pkill -f`` matching the emulator launched for *name*."""
    escaped = "".join(f"\\{ch}" if ch in _ERE_SPECIALS else ch for ch in name)
    return f"emulator.*(-avd |@){escaped}( |$)"
